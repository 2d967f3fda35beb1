"""Tests for batched context assembly."""

import pytest
import pytest_asyncio

from lexis_kg.ingestion.context import ContextAssembler, tokenize
from lexis_kg.types import Concept, ConceptTerm, Highlight, Term, WorkItem


def _item(item_id, sequence, text, parent_id="c_kommen"):
    return WorkItem(id=item_id, parent_id=parent_id, sequence=sequence, source_text=text)


@pytest_asyncio.fixture
async def seeded(storage):
    await storage.upsert_concept(Concept(id="c_kommen", label="kommen", sense_id="kommen_1"))
    await storage.upsert_term(Term(id="t_kumt", text="kumt", language="halunder"))
    await storage.upsert_term(Term(id="t_kommen", text="kommen", language="german"))
    await storage.link_concept_term(ConceptTerm(concept_id="c_kommen", term_id="t_kumt"))
    await storage.link_concept_term(ConceptTerm(concept_id="c_kommen", term_id="t_kommen"))
    await storage.add_work_items([
        _item("e0", 0, "Hi kumt iin."),
        _item("e1", 1, "Dji kumt tu leet."),
        _item("e2", 2, "Wi gung tuhüs."),
        _item("e3", 3, "Dat es 't iinde."),
        _item("x0", 0, "Oor tekst.", parent_id="other"),
    ])
    await storage.upsert_highlight(Highlight(term="kumt iin", gloss="kommt herein", relevance_score=8))
    await storage.upsert_highlight(Highlight(term="tu leet", gloss="zu spät", relevance_score=2))
    return storage


class TestTokenize:
    """Test word extraction."""

    def test_unique_lowercase_words(self):
        assert tokenize("Hi kumt, hi kumt 'not'!") == ["hi", "kumt", "not"]

    def test_apostrophes_inside_words(self):
        assert tokenize("Dat es 't iinde") == ["dat", "es", "t", "iinde"]


class TestContextAssembler:
    """Test context assembly against an in-memory store."""

    @pytest.mark.asyncio
    async def test_senses_for_known_words(self, seeded, config):
        [item] = await seeded.get_work_items(["e1"])
        [ctx] = await ContextAssembler(seeded, config).assemble([item])

        assert list(ctx.senses) == ["kumt"]
        sense = ctx.senses["kumt"][0]
        assert sense.label == "kommen"
        assert sense.concept_id == "c_kommen"
        assert sense.translations == ["kommen"]
        assert "dji" in ctx.unknown_words

    @pytest.mark.asyncio
    async def test_headword_from_parent(self, seeded, config):
        items = await seeded.get_work_items(["e0", "x0"])
        contexts = await ContextAssembler(seeded, config).assemble(items)

        by_id = {ctx.item.id: ctx for ctx in contexts}
        assert by_id["e0"].headword.label == "kommen"
        assert by_id["x0"].headword is None

    @pytest.mark.asyncio
    async def test_window_same_parent_excludes_item(self, seeded, config):
        [item] = await seeded.get_work_items(["e1"])
        [ctx] = await ContextAssembler(seeded, config).assemble([item])

        assert [n.id for n in ctx.window] == ["e0", "e2"]

    @pytest.mark.asyncio
    async def test_window_disabled(self, seeded, config):
        config = config.with_overrides(context_window_before=0, context_window_after=0)
        [item] = await seeded.get_work_items(["e1"])
        [ctx] = await ContextAssembler(seeded, config).assemble([item])

        assert ctx.window == []

    @pytest.mark.asyncio
    async def test_known_idioms_above_threshold(self, seeded, config):
        items = await seeded.get_work_items(["e0", "e1"])
        contexts = await ContextAssembler(seeded, config).assemble(items)

        by_id = {ctx.item.id: ctx for ctx in contexts}
        assert [h.term for h in by_id["e0"].idioms] == ["kumt iin"]
        # "tu leet" is below the relevance threshold
        assert by_id["e1"].idioms == []

    @pytest.mark.asyncio
    async def test_preserves_input_order(self, seeded, config):
        items = await seeded.get_work_items(["e0", "e1", "e2"])
        contexts = await ContextAssembler(seeded, config).assemble(list(reversed(items)))

        assert [ctx.item.id for ctx in contexts] == ["e2", "e1", "e0"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, storage, config):
        assert await ContextAssembler(storage, config).assemble([]) == []
