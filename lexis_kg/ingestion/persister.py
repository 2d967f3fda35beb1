"""
Result Validator & Persister

Turns one validated oracle response into rows:

- an EnrichedResult per expansion ("best") and per alternative ("alt_<n>")
- upserted highlights for every discovered idiom or cultural note
- relations for cross-references that the resolution cascade can resolve

Validation is per item: one malformed entry fails only its own work item,
and an item the oracle did not answer for fails with a clear message.
Persistence is idempotent (deterministic result ids, upsert-by-key
highlights, insert-if-absent relations), so an item re-processed after a
crash overwrites rather than duplicates.

Example:
    >>> report = validate_batch_output(payload, [item.id for item in batch])
    >>> for item in batch:
    ...     if item.id in report.valid:
    ...         await persister.persist(item, report.valid[item.id])
    ...     else:
    ...         await persister.fail(item.id, report.errors[item.id])
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from lexis_kg.api.run_context import RunContext
from lexis_kg.ingestion.ledger import JobLedger
from lexis_kg.ingestion.resolution import ResolutionCascade
from lexis_kg.storage.base import StorageBackend, StorageError
from lexis_kg.types import (
    HIGHLIGHT_TAGS,
    EnrichedResult,
    Expansion,
    Highlight,
    ItemResult,
    Relation,
    WorkItem,
)

logger = logging.getLogger(__name__)

DEFAULT_RELEVANCE = 5


def normalize_relevance(value: Any, default: int = DEFAULT_RELEVANCE) -> int:
    """Relevance score as an int in 0..10, or ``default`` when invalid or missing."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not 0 <= value <= 10:
        return default
    return int(round(value))


def filter_tags(tags: Sequence[Any]) -> list[str]:
    """Known tags only, lowercased, in first-seen order."""
    kept: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip().lower()
        if tag in HIGHLIGHT_TAGS and tag not in kept:
            kept.append(tag)
    return kept


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


@dataclass
class ValidationReport:
    """Per-item outcome of validating one batch response."""

    valid: dict[str, list[Expansion]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    unknown_ids: list[str] = field(default_factory=list)


def _short(error: ValidationError) -> str:
    first = error.errors()[0] if error.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"{loc}: {first.get('msg', str(error))}" if loc else str(first.get("msg", error))


def validate_batch_output(payload: Any, item_ids: Sequence[str]) -> ValidationReport:
    """
    Validate an enrichment response against the items of its sub-batch.

    Args:
        payload: Parsed JSON object returned by the oracle
        item_ids: Ids of the items that were sent

    Returns:
        ValidationReport; every id in ``item_ids`` ends up in exactly one of
        ``valid`` or ``errors``
    """
    report = ValidationReport()
    expected = list(dict.fromkeys(item_ids))

    results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(results, list):
        message = "Oracle response has no 'results' list"
        report.errors = {item_id: message for item_id in expected}
        return report

    wanted = set(expected)
    for entry in results:
        if not isinstance(entry, dict):
            continue
        item_id = entry.get("item_id")
        if not isinstance(item_id, str) or item_id not in wanted:
            report.unknown_ids.append(str(item_id))
            continue
        if item_id in report.valid:
            continue
        try:
            parsed = ItemResult.model_validate(entry)
        except ValidationError as e:
            report.errors.setdefault(item_id, f"Invalid result: {_short(e)}")
            continue
        report.valid[item_id] = parsed.expansions
        report.errors.pop(item_id, None)

    for item_id in expected:
        if item_id not in report.valid and item_id not in report.errors:
            report.errors[item_id] = "No result returned for item"

    if report.unknown_ids:
        logger.warning(f"Oracle returned results for unknown items: {report.unknown_ids[:5]}")
    return report


# -----------------------------------------------------------------------------
# Persistence
# -----------------------------------------------------------------------------


def build_enriched_results(item_id: str, expansions: list[Expansion]) -> list[EnrichedResult]:
    rows: list[EnrichedResult] = []
    for index, expansion in enumerate(expansions):
        rows.append(
            EnrichedResult(
                id=f"{item_id}:{index}:best",
                work_item_id=item_id,
                cleaned_text=expansion.cleaned_text,
                translation=expansion.best_translation,
                confidence=expansion.confidence_score,
                notes=expansion.notes,
                variant="best",
            )
        )
        for n, alt in enumerate(expansion.alternative_translations, start=1):
            rows.append(
                EnrichedResult(
                    id=f"{item_id}:{index}:alt_{n}",
                    work_item_id=item_id,
                    cleaned_text=expansion.cleaned_text,
                    translation=alt.translation,
                    confidence=alt.confidence_score,
                    notes=alt.notes,
                    variant=f"alt_{n}",
                )
            )
    return rows


class ResultPersister:
    """
    Writes validated results and moves items to their final ledger status.

    Derived-table failures (StorageError) fail only the current item. Ledger
    failures propagate: they are run-level.

    Args:
        storage: Storage backend
        ledger: Job ledger used for the final status transition
        ctx: Run context (counters and run log)
        cascade: Resolution cascade for related terms; None skips relations
        default_relevance: Score used when the oracle's score is invalid
    """

    def __init__(
        self,
        storage: StorageBackend,
        ledger: JobLedger,
        ctx: RunContext,
        *,
        cascade: ResolutionCascade | None = None,
        default_relevance: int = DEFAULT_RELEVANCE,
    ) -> None:
        self._storage = storage
        self._ledger = ledger
        self._ctx = ctx
        self._cascade = cascade
        self._default_relevance = default_relevance

    def build_highlights(self, item: WorkItem, expansions: list[Expansion]) -> list[Highlight]:
        highlights: list[Highlight] = []
        for expansion in expansions:
            for found in expansion.discovered_highlights:
                term = found.phrase.strip()
                if not term:
                    continue
                highlights.append(
                    Highlight(
                        term=term,
                        gloss=found.gloss,
                        explanation=found.explanation,
                        feature_type=found.type,
                        relevance_score=normalize_relevance(
                            found.relevance_score, self._default_relevance
                        ),
                        tags=filter_tags([found.type]),
                        source_work_item_id=item.id,
                        source_ids=[item.id],
                    )
                )
        return highlights

    def build_relations(
        self,
        item: WorkItem,
        expansions: list[Expansion],
        source_concept_id: str | None,
    ) -> list[Relation]:
        references = [ref for exp in expansions for ref in exp.related_terms]
        if not references:
            return []
        if self._cascade is None or source_concept_id is None:
            logger.debug(f"Item {item.id}: {len(references)} related terms without a source concept")
            return []

        relations: list[Relation] = []
        for ref in references:
            target = self._cascade.resolve(ref.term)
            if target is None:
                self._ctx.counters.unresolved_references += 1
                logger.warning(f"Unresolved reference '{ref.term}' in item {item.id}")
                continue
            if target == source_concept_id:
                continue
            relations.append(
                Relation(
                    source_concept_id=source_concept_id,
                    target_concept_id=target,
                    relation_type=ref.relation_type or "see_also",
                    note=ref.note,
                    work_item_id=item.id,
                )
            )
        return relations

    async def persist(
        self,
        item: WorkItem,
        expansions: list[Expansion],
        *,
        source_concept_id: str | None = None,
    ) -> bool:
        """
        Persist one item's expansions and complete it.

        Args:
            item: The work item (must be processing)
            expansions: Validated expansions for the item
            source_concept_id: Concept that owns the item, for related terms

        Returns:
            True if the item was completed, False if it was marked error
        """
        try:
            await self._storage.write_enriched_results(build_enriched_results(item.id, expansions))

            written = 0
            for highlight in self.build_highlights(item, expansions):
                if await self._storage.upsert_highlight(highlight):
                    written += 1
            self._ctx.counters.highlights_written += written

            relations = self.build_relations(item, expansions, source_concept_id)
            if relations:
                self._ctx.counters.relations_written += await self._storage.add_relations(relations)
        except StorageError as e:
            await self.fail(item.id, f"Persisting results failed: {e}")
            return False

        if await self._ledger.mark_completed(item.id):
            self._ctx.counters.completed += 1
        return True

    async def fail(self, item_id: str, message: str) -> None:
        """Mark one item error and count it."""
        if await self._ledger.mark_error(item_id, message):
            self._ctx.counters.failed += 1
        self._ctx.record_error(f"Item {item_id}: {message}")
