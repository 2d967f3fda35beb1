"""Tests for dictionary import, relation linking and text ingestion."""

import pytest

from lexis_kg.api.dictionary import DictionaryImporter, ingest_texts
from lexis_kg.ingestion.ledger import JobLedger
from lexis_kg.types import DictionaryEntry

ENTRIES = [
    {
        "headword": "Haus",
        "part_of_speech": "noun",
        "gender": "n",
        "senses": [
            {
                "sense_number": "1",
                "definition": "building",
                "translations": ["Hüs"],
                "examples": [
                    {"text": "Et ~ es grot.", "translation": "Das Haus ist groß."},
                    {"text": "  "},
                ],
                "relations": [
                    {"target": "Hütte", "relation_type": "related"},
                    {"target": "Schiff"},
                ],
            }
        ],
    },
    {
        "headword": "Hütte",
        "senses": [{"translations": ["Hütt"], "relations": [{"target": "Hüs"}]}],
    },
    {"headword": "  ", "senses": []},
    {"headword": "Boot"},
]


class TestImportEntries:
    """Test pass 1 of the dictionary import."""

    @pytest.mark.asyncio
    async def test_summary(self, storage, config):
        summary = await DictionaryImporter(config, storage).import_entries(ENTRIES)

        assert summary.entries == 4
        assert summary.skipped == 1
        assert summary.concepts == 3
        assert summary.examples == 1
        assert summary.relation_refs == 3

    @pytest.mark.asyncio
    async def test_examples_become_pending_items(self, storage, config):
        await DictionaryImporter(config, storage).import_entries(ENTRIES)

        [item] = await JobLedger(storage).select_pending(10)
        [concept] = await storage.get_concepts([item.parent_id])
        assert concept.label == "Haus"
        assert concept.sense_id == "Haus_1"
        assert concept.definition == "building"
        assert item.source_text == "Et ~ es grot."
        assert item.target_hint == "Das Haus ist groß."
        assert item.id == f"{concept.id}_ex0000"

    @pytest.mark.asyncio
    async def test_translations_feed_sense_lookup(self, storage, config):
        await DictionaryImporter(config, storage).import_entries(ENTRIES)

        senses = await storage.lookup_senses(
            ["hüs"], source_language="halunder", target_language="german"
        )
        assert senses["hüs"][0].label == "Haus"
        assert senses["hüs"][0].translations == ["Haus"]

    @pytest.mark.asyncio
    async def test_reimport_is_idempotent(self, storage, config):
        importer = DictionaryImporter(config, storage)
        await importer.import_entries(ENTRIES)
        await importer.import_entries(ENTRIES)

        assert await storage.count_rows("concepts") == 3
        assert await storage.count_rows("work_items") == 1
        assert await storage.count_rows("relation_refs") == 3

    @pytest.mark.asyncio
    async def test_accepts_models_and_skips_malformed(self, storage, config):
        summary = await DictionaryImporter(config, storage).import_entries([
            DictionaryEntry(headword="Boot"),
            {"headword": "Schiff", "senses": "not a list"},
        ])

        assert summary.concepts == 1
        assert summary.skipped == 1


class TestLinkRelations:
    """Test pass 2 of the dictionary import."""

    @pytest.mark.asyncio
    async def test_resolves_references(self, storage, config):
        importer = DictionaryImporter(config, storage)
        await importer.import_entries(ENTRIES)

        summary = await importer.link_relations()

        assert summary.references == 3
        assert summary.resolved == 2
        assert summary.unresolved == 1
        assert summary.relations_written == 2
        assert summary.by_strategy == {"exact": 1, "cross_language": 1}
        assert await storage.count_rows("relations") == 2

    @pytest.mark.asyncio
    async def test_second_pass_only_retries_when_asked(self, storage, config):
        importer = DictionaryImporter(config, storage)
        await importer.import_entries(ENTRIES)
        await importer.link_relations()

        assert (await importer.link_relations()).references == 0

        await importer.import_entries([{"headword": "Schiff"}])
        summary = await importer.link_relations(retry_unresolved=True)
        assert summary.references == 1
        assert summary.resolved == 1
        assert await storage.count_rows("relations") == 3

    @pytest.mark.asyncio
    async def test_nothing_to_link(self, storage, config):
        summary = await DictionaryImporter(config, storage).link_relations()
        assert summary.references == 0


class TestIngestTexts:
    """Test running-text ingestion."""

    @pytest.mark.asyncio
    async def test_segments_into_items(self, storage):
        count = await ingest_texts(storage, {"t1": "Wat kumt diar? Ik wiit et nich", "t2": "  "})

        assert count == 2
        items = await JobLedger(storage).select_pending(10)
        assert [(i.id, i.sequence) for i in items] == [("t1_s0000", 0), ("t1_s0001", 1)]
        assert items[1].source_text == "Ik wiit et nich"

    @pytest.mark.asyncio
    async def test_reingest_upserts(self, storage):
        await ingest_texts(storage, {"t1": "Een. Twee."})
        await ingest_texts(storage, {"t1": "Een. Twee."})

        assert await storage.count_rows("work_items") == 2
