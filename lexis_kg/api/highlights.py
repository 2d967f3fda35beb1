"""
Highlight Cleaning Pipeline

Turns raw linguistic notes (LexicalRecord rows) into curated highlights:

1. Page through every raw record
2. Skip records whose term already has a highlight or that were folded
   into one by an earlier run
3. Sort by normalized term, chunk, and cluster near-duplicates
4. Send cluster primaries with their merged explanations to the oracle
5. Upsert one highlight per cluster (never lowering relevance) and map
   every cluster member to it

Example:
    >>> pipeline = HighlightCleaningPipeline(config, storage, llm)
    >>> summary = await pipeline.run()
    >>> summary.highlights_written
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from lexis_kg.api.oracle_pipeline import OraclePipeline
from lexis_kg.ingestion.dedup import cluster_in_chunks
from lexis_kg.ingestion.executor import OracleCaller
from lexis_kg.ingestion.persister import filter_tags, normalize_relevance
from lexis_kg.ingestion.prompts import build_highlight_prompt, build_highlight_system_prompt
from lexis_kg.ingestion.retry import RetryExhaustedError
from lexis_kg.providers.base import OracleError
from lexis_kg.storage.base import StorageError
from lexis_kg.types import (
    BatchOutcome,
    CleanedHighlight,
    Cluster,
    Highlight,
    HighlightCleaningOutput,
    LexicalRecord,
    RunSummary,
)
from lexis_kg.utils.cost_telemetry import telemetry_collector, telemetry_stage
from lexis_kg.utils.text import normalize_key

logger = logging.getLogger(__name__)


class HighlightCleaningPipeline(OraclePipeline):
    """Deduplicates and cleans raw linguistic notes into highlights."""

    stage = "highlight_cleaning"

    async def load_records(self) -> list[LexicalRecord]:
        """Every raw record not yet folded into a highlight, sorted by key."""
        page_size = min(self.config.page_size, self.storage.max_rows_per_request)
        records: list[LexicalRecord] = []
        offset = 0
        while True:
            page = await self.storage.fetch_lexical_records(offset=offset, limit=page_size)
            records.extend(page)
            offset += len(page)
            if len(page) < page_size:
                break

        existing = await self.storage.highlight_keys()
        mapped = await self.storage.mapped_record_ids()
        fresh: list[LexicalRecord] = []
        for record in records:
            key = normalize_key(record.term)
            if not key:
                logger.warning(f"Skipping lexical record {record.id}: empty term")
                continue
            if key in existing or (record.id, record.source_table) in mapped:
                self.ctx.counters.skipped += 1
                continue
            fresh.append(record)

        self.ctx.log.info(
            f"Fetched {len(records)} raw records; {self.ctx.counters.skipped} already processed"
        )
        return sorted(fresh, key=lambda r: normalize_key(r.term))

    async def run(self) -> RunSummary:
        ctx = self.ctx
        ctx.start(total=0)

        try:
            records = await self.load_records()
            clusters = cluster_in_chunks(
                records,
                chunk_size=self.config.dedup_chunk_size,
                key=lambda r: r.term,
                explanation=lambda r: r.explanation,
                key_threshold=self.config.dedup_key_threshold,
                explanation_threshold=self.config.dedup_explanation_threshold,
            )
            ctx.counters.selected = len(records)
            ctx.total = len(clusters)
            ctx.log.info(f"Merged {len(records)} records into {len(clusters)} clusters")

            worker = _HighlightWorker(self, self._caller())
            with telemetry_collector(ctx.costs), telemetry_stage(self.stage):
                report = await self._executor().run(clusters, worker)
        except Exception as e:
            self._fail_run(e)
            raise

        return self._finish(report)


class _HighlightWorker:
    """Cleans one sub-batch of clusters."""

    def __init__(self, pipeline: HighlightCleaningPipeline, caller: OracleCaller) -> None:
        self.pipeline = pipeline
        self.caller = caller
        self.system_prompt = build_highlight_system_prompt(pipeline.config)

    async def __call__(self, clusters: list[Cluster[LexicalRecord]]) -> BatchOutcome:
        ctx = self.pipeline.ctx
        outcome = BatchOutcome(item_ids=[c.primary.id for c in clusters])

        prompt = build_highlight_prompt(clusters)
        ctx.tracer(prompt, outcome.item_ids)

        try:
            payload = await self.caller(prompt, system=self.system_prompt)
            output = HighlightCleaningOutput.model_validate(payload)
        except RetryExhaustedError as e:
            self._fail(clusters, outcome, str(e))
            outcome.aborted = True
            return outcome
        except (OracleError, ValidationError) as e:
            self._fail(clusters, outcome, f"Highlight cleaning failed: {e}")
            return outcome

        # Echoed index first, normalized term as fallback.
        by_index: dict[int, CleanedHighlight] = {}
        by_key: dict[str, CleanedHighlight] = {}
        for entry in output.entries:
            if entry.index is not None:
                by_index.setdefault(entry.index, entry)
            by_key.setdefault(normalize_key(entry.term), entry)

        for i, cluster in enumerate(clusters):
            entry = by_index.get(i) or by_key.get(cluster.key)
            if entry is None:
                self._fail([cluster], outcome, f"No cleaned entry for '{cluster.primary.term}'")
                continue
            try:
                await self._save(cluster, entry)
            except StorageError as e:
                self._fail([cluster], outcome, f"Saving '{cluster.primary.term}' failed: {e}")
                continue
            outcome.completed += 1
            ctx.counters.completed += 1

        return outcome

    async def _save(self, cluster: Cluster[LexicalRecord], entry: CleanedHighlight) -> None:
        storage = self.pipeline.storage
        config = self.pipeline.config
        highlight = Highlight(
            term=cluster.primary.term.strip(),
            gloss=entry.gloss,
            explanation=entry.explanation,
            feature_type=entry.feature_type or cluster.primary.feature_type or "idiom",
            relevance_score=normalize_relevance(
                entry.relevance_score, config.highlight_default_relevance
            ),
            tags=filter_tags(entry.tags),
            source_ids=cluster.member_ids,
        )
        if await storage.upsert_highlight(highlight):
            self.pipeline.ctx.counters.highlights_written += 1
        await storage.add_duplicate_mappings(
            [(record.id, record.source_table, cluster.key) for record in cluster.members]
        )

    def _fail(
        self,
        clusters: list[Cluster[LexicalRecord]],
        outcome: BatchOutcome,
        message: str,
    ) -> None:
        outcome.error = message
        outcome.failed += len(clusters)
        self.pipeline.ctx.counters.failed += len(clusters)
        self.pipeline.ctx.record_error(message)
