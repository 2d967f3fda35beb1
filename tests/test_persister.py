"""Tests for per-item validation and idempotent persistence."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from lexis_kg.api.run_context import RunContext
from lexis_kg.ingestion.ledger import JobLedger
from lexis_kg.ingestion.persister import (
    ResultPersister,
    build_enriched_results,
    filter_tags,
    normalize_relevance,
    validate_batch_output,
)
from lexis_kg.ingestion.resolution import ConceptIndex, ResolutionCascade
from lexis_kg.storage.base import StorageError
from lexis_kg.types import Expansion, WorkItem, WorkStatus


def _result(item_id, **overrides):
    expansion = {
        "cleaned_text": "Hi kumt iin.",
        "best_translation": "Er kommt herein.",
        "confidence_score": 0.9,
    }
    expansion.update(overrides)
    return {"item_id": item_id, "expansions": [expansion]}


def _expansion(**overrides):
    return Expansion.model_validate(_result("x", **overrides)["expansions"][0])


@pytest_asyncio.fixture
async def claimed(storage):
    """Two work items already claimed by a run."""
    await storage.add_work_items([
        WorkItem(id="a", parent_id="c_kommen", sequence=0, source_text="hi kumt iin"),
        WorkItem(id="b", parent_id="c_kommen", sequence=1, source_text="dji kumt"),
    ])
    await JobLedger(storage).mark_processing(["a", "b"])
    return storage


def _persister(storage, config, cascade=None):
    ctx = RunContext.create(config)
    return ResultPersister(storage, JobLedger(storage), ctx, cascade=cascade), ctx


class TestNormalization:
    """Test relevance and tag normalization."""

    def test_relevance(self):
        assert normalize_relevance(7) == 7
        assert normalize_relevance(7.6) == 8
        assert normalize_relevance(0) == 0
        assert normalize_relevance(10) == 10

    def test_invalid_relevance_defaults(self):
        for value in ("high", None, 11, -1, True, [7]):
            assert normalize_relevance(value) == 5
        assert normalize_relevance("high", default=3) == 3

    def test_filter_tags(self):
        assert filter_tags(["Idiom", "nonsense", "place", "idiom", 3]) == ["idiom", "place"]


class TestValidateBatchOutput:
    """Test per-item validation of a batch response."""

    def test_missing_results_fails_every_item(self):
        report = validate_batch_output({}, ["a", "b"])
        assert report.valid == {}
        assert set(report.errors) == {"a", "b"}
        assert "results" in report.errors["a"]

    def test_non_object_payload(self):
        report = validate_batch_output(["not", "an", "object"], ["a"])
        assert set(report.errors) == {"a"}

    def test_malformed_item_fails_alone(self):
        payload = {"results": [_result("a"), _result("b", confidence_score=1.7)]}
        report = validate_batch_output(payload, ["a", "b"])

        assert list(report.valid) == ["a"]
        assert report.errors["b"].startswith("Invalid result")

    def test_missing_item(self):
        report = validate_batch_output({"results": [_result("a")]}, ["a", "b"])
        assert report.errors == {"b": "No result returned for item"}

    def test_unknown_ids_ignored(self):
        payload = {"results": [_result("a"), _result("zzz")]}
        report = validate_batch_output(payload, ["a"])

        assert list(report.valid) == ["a"]
        assert report.unknown_ids == ["zzz"]

    def test_empty_expansions_invalid(self):
        payload = {"results": [{"item_id": "a", "expansions": []}]}
        report = validate_batch_output(payload, ["a"])
        assert "a" in report.errors

    def test_boolean_confidence_invalid(self):
        report = validate_batch_output({"results": [_result("a", confidence_score=True)]}, ["a"])
        assert "a" in report.errors

    def test_each_id_lands_once(self):
        payload = {"results": [_result("a"), _result("b", best_translation="")]}
        report = validate_batch_output(payload, ["a", "b", "c"])
        assert set(report.valid) | set(report.errors) == {"a", "b", "c"}
        assert not set(report.valid) & set(report.errors)


class TestBuildEnrichedResults:
    """Test deterministic result rows."""

    def test_best_and_alternatives(self):
        expansion = _expansion(
            alternative_translations=[
                {"translation": "Er tritt ein.", "confidence_score": 0.6},
                {"translation": "Er kommt rein."},
            ]
        )
        rows = build_enriched_results("a", [expansion, _expansion(cleaned_text="Second.")])

        assert [r.id for r in rows] == ["a:0:best", "a:0:alt_1", "a:0:alt_2", "a:1:best"]
        assert rows[2].confidence == 0.8
        assert rows[3].cleaned_text == "Second."


class TestResultPersister:
    """Test persistence against an in-memory store."""

    @pytest.mark.asyncio
    async def test_persist_completes_item(self, claimed, config):
        persister, ctx = _persister(claimed, config)
        [item] = await claimed.get_work_items(["a"])

        assert await persister.persist(item, [_expansion()]) is True

        [stored] = await claimed.get_work_items(["a"])
        assert stored.status == WorkStatus.COMPLETED
        rows = await claimed.get_enriched_results("a")
        assert [r.translation for r in rows] == ["Er kommt herein."]
        assert ctx.counters.completed == 1

    @pytest.mark.asyncio
    async def test_repersist_overwrites(self, claimed, config):
        persister, _ = _persister(claimed, config)
        [item] = await claimed.get_work_items(["a"])

        await persister.persist(item, [_expansion()])
        await persister.persist(item, [_expansion(best_translation="Er kommt rein.")])

        rows = await claimed.get_enriched_results("a")
        assert [r.translation for r in rows] == ["Er kommt rein."]

    @pytest.mark.asyncio
    async def test_highlight_never_downgraded(self, claimed, config):
        persister, ctx = _persister(claimed, config)
        item_a, item_b = await claimed.get_work_items(["a", "b"])
        found = {"phrase": "kumt iin", "gloss": "kommt herein", "type": "idiom"}

        await persister.persist(
            item_a, [_expansion(discovered_highlights=[{**found, "relevance_score": 5}])]
        )
        await persister.persist(
            item_b, [_expansion(discovered_highlights=[{**found, "relevance_score": 3}])]
        )
        stored = await claimed.get_highlight("kumt iin")
        assert stored.relevance_score == 5
        assert stored.source_work_item_id == "a"
        assert stored.tags == ["idiom"]
        assert ctx.counters.highlights_written == 1

    @pytest.mark.asyncio
    async def test_highlight_upgraded(self, claimed, config):
        persister, _ = _persister(claimed, config)
        item_a, item_b = await claimed.get_work_items(["a", "b"])

        await persister.persist(
            item_a,
            [_expansion(discovered_highlights=[{"phrase": "Kumt iin", "relevance_score": 5}])],
        )
        await persister.persist(
            item_b,
            [_expansion(discovered_highlights=[{"phrase": "kumt iin ", "relevance_score": 8}])],
        )
        stored = await claimed.get_highlight("kumt iin")
        assert stored.relevance_score == 8
        assert stored.source_work_item_id == "b"

    @pytest.mark.asyncio
    async def test_invalid_relevance_uses_default(self, claimed, config):
        persister, _ = _persister(claimed, config)
        [item] = await claimed.get_work_items(["a"])

        await persister.persist(
            item,
            [_expansion(discovered_highlights=[{"phrase": "tu leet", "relevance_score": "high"}])],
        )
        stored = await claimed.get_highlight("tu leet")
        assert stored.relevance_score == 5

    @pytest.mark.asyncio
    async def test_relations_resolved_and_unresolved(self, claimed, config):
        cascade = ResolutionCascade(ConceptIndex(labels={"Haus": "c_haus", "kommen": "c_kommen"}))
        persister, ctx = _persister(claimed, config, cascade)
        [item] = await claimed.get_work_items(["a"])
        related = [
            {"term": "Haus²"},
            {"term": "Schiff"},
            {"term": "kommen"},
        ]

        await persister.persist(
            item, [_expansion(related_terms=related)], source_concept_id="c_kommen"
        )

        assert ctx.counters.relations_written == 1
        assert ctx.counters.unresolved_references == 1
        assert await claimed.count_rows("relations") == 1

    @pytest.mark.asyncio
    async def test_relations_need_source_concept(self, claimed, config):
        cascade = ResolutionCascade(ConceptIndex(labels={"Haus": "c_haus"}))
        persister, ctx = _persister(claimed, config, cascade)
        [item] = await claimed.get_work_items(["a"])

        await persister.persist(item, [_expansion(related_terms=[{"term": "Haus"}])])

        assert await claimed.count_rows("relations") == 0
        assert ctx.counters.unresolved_references == 0

    @pytest.mark.asyncio
    async def test_storage_error_fails_only_item(self, claimed, config):
        persister, ctx = _persister(claimed, config)
        item_a, item_b = await claimed.get_work_items(["a", "b"])
        original = claimed.write_enriched_results
        claimed.write_enriched_results = AsyncMock(side_effect=StorageError("disk full"))

        assert await persister.persist(item_a, [_expansion()]) is False

        claimed.write_enriched_results = original
        assert await persister.persist(item_b, [_expansion()]) is True

        stored_a, stored_b = await claimed.get_work_items(["a", "b"])
        assert stored_a.status == WorkStatus.ERROR
        assert "disk full" in stored_a.error_message
        assert stored_b.status == WorkStatus.COMPLETED
        assert ctx.counters.failed == 1
        assert "disk full" in ctx.last_error

    @pytest.mark.asyncio
    async def test_fail_marks_error(self, claimed, config):
        persister, ctx = _persister(claimed, config)

        await persister.fail("a", "No result returned for item")

        [stored] = await claimed.get_work_items(["a"])
        assert stored.status == WorkStatus.ERROR
        assert stored.error_message == "No result returned for item"
        assert ctx.counters.failed == 1
