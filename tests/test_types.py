"""Tests for shared pydantic types."""

import pytest
from pydantic import ValidationError

from lexis_kg.types import (
    AlternativeTranslation,
    BatchEnrichmentOutput,
    Cluster,
    DictionaryEntry,
    DiscoveredHighlight,
    Expansion,
    Highlight,
    HighlightCleaningOutput,
    ItemResult,
    LexicalRecord,
    WorkItem,
    WorkStatus,
)


class TestWorkItem:
    """Tests for WorkItem type."""

    def test_defaults(self):
        """New work items start pending at sequence 0."""
        item = WorkItem(id="a", parent_id="p", source_text="Hi kumt.")
        assert item.status == WorkStatus.PENDING
        assert item.sequence == 0
        assert item.error_message is None

    def test_requires_source_text(self):
        with pytest.raises(ValidationError):
            WorkItem(id="a", parent_id="p")

    def test_status_from_string(self):
        item = WorkItem(id="a", parent_id="p", source_text="x", status="error")
        assert item.status == WorkStatus.ERROR


class TestExpansion:
    """Tests for the enrichment output contract."""

    def test_valid(self):
        expansion = Expansion(
            cleaned_text="Hi kumt iin.",
            best_translation="Er kommt herein.",
            confidence_score=0.85,
        )
        assert expansion.alternative_translations == []
        assert expansion.discovered_highlights == []
        assert expansion.related_terms == []

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            Expansion(cleaned_text="x", best_translation="y", confidence_score=1.5)

    def test_confidence_rejects_bool(self):
        with pytest.raises(ValidationError):
            Expansion(cleaned_text="x", best_translation="y", confidence_score=True)

    def test_empty_text_rejected(self):
        with pytest.raises(ValidationError):
            Expansion(cleaned_text="", best_translation="y", confidence_score=0.5)

    def test_alternative_default_confidence(self):
        assert AlternativeTranslation(translation="Er tritt ein.").confidence_score == 0.8

    def test_highlight_relevance_accepts_anything(self):
        """Relevance is normalized later, not rejected here."""
        found = DiscoveredHighlight(phrase="kumt iin", relevance_score="very high")
        assert found.relevance_score == "very high"
        assert found.type == "idiom"


class TestItemResult:
    """Tests for ItemResult and batch output."""

    def test_needs_one_expansion(self):
        with pytest.raises(ValidationError):
            ItemResult(item_id="a", expansions=[])

    def test_batch_output_requires_results(self):
        with pytest.raises(ValidationError):
            BatchEnrichmentOutput.model_validate({})


class TestHighlight:
    """Tests for Highlight type."""

    def test_key_is_normalized(self):
        assert Highlight(term="  Kumt IIN ").key == "kumt iin"

    def test_relevance_range(self):
        with pytest.raises(ValidationError):
            Highlight(term="x", relevance_score=11)

    def test_cleaning_output_defaults(self):
        assert HighlightCleaningOutput.model_validate({}).entries == []


class TestCluster:
    """Tests for Cluster type."""

    def test_members_and_len(self):
        primary = LexicalRecord(id="1", term="Hog", explanation="a pig")
        duplicate = LexicalRecord(id="2", term="Hog/Pig", explanation="pig or hog")
        cluster = Cluster(
            key="hog",
            primary=primary,
            duplicates=[duplicate],
            explanations=["a pig", "pig or hog"],
        )
        assert len(cluster) == 2
        assert cluster.member_ids == ["1", "2"]
        assert cluster.merged_explanation == "a pig ++ pig or hog"


class TestDictionaryEntry:
    """Tests for dictionary import models."""

    def test_minimal(self):
        entry = DictionaryEntry.model_validate({"headword": "Haus"})
        assert entry.senses == []
        assert entry.source_name == "import"

    def test_nested(self):
        entry = DictionaryEntry.model_validate({
            "headword": "Haus",
            "senses": [{
                "translations": ["Hüs"],
                "examples": [{"text": "Et ~ es grot."}],
                "relations": [{"target": "Hütte"}],
            }],
        })
        sense = entry.senses[0]
        assert sense.examples[0].translation is None
        assert sense.relations[0].relation_type == "see_also"
