"""
Dictionary and Text Import

Loads structured input into the store so the enrichment pipeline has work.

Dictionary import runs in two passes:
    Pass 1 (``import_entries``): upsert one concept per sense (natural key
        ``sense_id``), the headword as a target-language term, each
        translation as a source-language term, the concept-term links, and
        every example as a pending work item under its concept. Relation
        targets are stored as unresolved references.
    Pass 2 (``link_relations``): once all concepts exist, resolve each
        stored reference through the resolution cascade and write relations.

The headword is the concept label (target language); translations are
the source-language forms that the context assembler looks words up by.

Example:
    >>> importer = DictionaryImporter(config, storage)
    >>> await importer.import_entries(entries)
    >>> await importer.link_relations()
    >>> await ingest_texts(storage, {"text-1": "Wat kumt diar? Ik wiit et nich."})
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from lexis_kg.config import LexisConfig
from lexis_kg.ingestion.resolution import ConceptIndex, ResolutionCascade
from lexis_kg.ingestion.segmentation import segment_text
from lexis_kg.storage.base import StorageBackend
from lexis_kg.types import (
    Concept,
    ConceptTerm,
    DictionaryEntry,
    DictionarySense,
    Relation,
    Term,
    WorkItem,
)
from lexis_kg.utils.text import new_id

logger = logging.getLogger(__name__)

REF_PENDING = "pending"
REF_RESOLVED = "resolved"
REF_UNRESOLVED = "unresolved"


class ImportSummary(BaseModel):
    entries: int = 0
    skipped: int = 0
    concepts: int = 0
    terms: int = 0
    examples: int = 0
    relation_refs: int = 0


class LinkSummary(BaseModel):
    references: int = 0
    resolved: int = 0
    unresolved: int = 0
    relations_written: int = 0
    by_strategy: dict[str, int] = Field(default_factory=dict)


class DictionaryImporter:
    """
    Two-pass importer for structured dictionary entries.

    Args:
        config: Configuration (languages and page size)
        storage: Initialized storage backend
    """

    def __init__(self, config: LexisConfig, storage: StorageBackend) -> None:
        self.config = config
        self.storage = storage

    async def import_entries(
        self,
        entries: Iterable[DictionaryEntry | Mapping[str, Any]],
    ) -> ImportSummary:
        """Pass 1: concepts, terms, links, example work items, relation references."""
        summary = ImportSummary()

        for raw in entries:
            summary.entries += 1
            try:
                entry = raw if isinstance(raw, DictionaryEntry) else DictionaryEntry.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping malformed dictionary entry #{summary.entries}: {e}")
                summary.skipped += 1
                continue

            headword = entry.headword.strip()
            if not headword:
                logger.warning(f"Skipping dictionary entry #{summary.entries}: missing headword")
                summary.skipped += 1
                continue

            senses = entry.senses or [DictionarySense()]
            for index, sense in enumerate(senses, start=1):
                await self._import_sense(entry, headword, sense, index, summary)

        logger.info(
            f"Imported {summary.entries - summary.skipped} entries "
            f"({summary.concepts} concepts, {summary.examples} examples, "
            f"{summary.relation_refs} relation references, {summary.skipped} skipped)"
        )
        return summary

    async def _import_sense(
        self,
        entry: DictionaryEntry,
        headword: str,
        sense: DictionarySense,
        index: int,
        summary: ImportSummary,
    ) -> None:
        storage = self.storage
        sense_number = sense.sense_number or str(index)
        concept_id = await storage.upsert_concept(
            Concept(
                id=new_id(),
                label=headword,
                part_of_speech=entry.part_of_speech,
                definition=sense.definition,
                sense_id=sense.sense_id or f"{headword}_{sense_number}",
                sense_number=sense_number,
                notes=sense.notes,
            )
        )
        summary.concepts += 1

        headword_term = await storage.upsert_term(
            Term(id=new_id(), text=headword, language=self.config.target_language)
        )
        await storage.link_concept_term(
            ConceptTerm(concept_id=concept_id, term_id=headword_term, source_name=entry.source_name)
        )
        summary.terms += 1

        for translation in sense.translations:
            translation = translation.strip()
            if not translation:
                continue
            term_id = await storage.upsert_term(
                Term(id=new_id(), text=translation, language=self.config.source_language)
            )
            await storage.link_concept_term(
                ConceptTerm(
                    concept_id=concept_id,
                    term_id=term_id,
                    source_name=entry.source_name,
                    pronunciation=entry.pronunciation,
                    gender=entry.gender,
                    plural_form=entry.plural_form,
                    etymology=entry.etymology,
                )
            )
            summary.terms += 1

        examples = [
            WorkItem(
                id=f"{concept_id}_ex{position:04d}",
                parent_id=concept_id,
                sequence=position,
                source_text=example.text.strip(),
                target_hint=example.translation,
                note=example.note,
            )
            for position, example in enumerate(sense.examples)
            if example.text.strip()
        ]
        summary.examples += await storage.add_work_items(examples)

        refs = [
            {
                "id": f"{concept_id}:ref{position}",
                "source_concept_id": concept_id,
                "target_text": relation.target,
                "relation_type": relation.relation_type,
                "note": relation.note,
            }
            for position, relation in enumerate(sense.relations)
            if relation.target.strip()
        ]
        summary.relation_refs += await storage.add_relation_refs(refs)

    async def link_relations(self, *, retry_unresolved: bool = False) -> LinkSummary:
        """
        Pass 2: resolve stored relation references into relations.

        Args:
            retry_unresolved: Also retry references an earlier pass could not resolve
        """
        storage = self.storage
        page_size = min(self.config.page_size, storage.max_rows_per_request)

        statuses = [REF_PENDING, REF_UNRESOLVED] if retry_unresolved else [REF_PENDING]
        refs: list[dict[str, Any]] = []
        for status in statuses:
            offset = 0
            while True:
                page = await storage.fetch_relation_refs(status, offset=offset, limit=page_size)
                refs.extend(page)
                offset += len(page)
                if len(page) < page_size:
                    break

        summary = LinkSummary(references=len(refs))
        if not refs:
            return summary

        index = await ConceptIndex.load(
            storage,
            foreign_language=self.config.source_language,
            page_size=self.config.page_size,
        )
        cascade = ResolutionCascade(index)

        for ref in refs:
            resolution = cascade.resolve_detailed(ref["target_text"])
            if resolution is None:
                logger.warning(
                    f"Target concept not found for relation "
                    f"{ref['source_concept_id']} -> '{ref['target_text']}'"
                )
                summary.unresolved += 1
                await storage.set_relation_ref_status(ref["id"], REF_UNRESOLVED)
                continue

            summary.resolved += 1
            summary.by_strategy[resolution.strategy] = summary.by_strategy.get(resolution.strategy, 0) + 1
            if resolution.concept_id != ref["source_concept_id"]:
                summary.relations_written += await storage.add_relations(
                    [
                        Relation(
                            source_concept_id=ref["source_concept_id"],
                            target_concept_id=resolution.concept_id,
                            relation_type=ref.get("relation_type") or "see_also",
                            note=ref.get("note"),
                        )
                    ]
                )
            await storage.set_relation_ref_status(ref["id"], REF_RESOLVED, resolution.concept_id)

        logger.info(
            f"Linked {summary.resolved}/{summary.references} references "
            f"({summary.relations_written} new relations, {summary.unresolved} unresolved)"
        )
        return summary


async def ingest_texts(storage: StorageBackend, texts: Mapping[str, str]) -> int:
    """
    Segment running texts into pending work items.

    Args:
        storage: Initialized storage backend
        texts: Mapping of text id to full text

    Returns:
        Number of work items written
    """
    total = 0
    for text_id, text in texts.items():
        items = segment_text(text_id, text)
        if not items:
            logger.warning(f"Text {text_id} has no sentences; skipped")
            continue
        total += await storage.add_work_items(items)
    logger.info(f"Ingested {len(texts)} texts as {total} work items")
    return total
