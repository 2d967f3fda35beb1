"""
Enrichment Pipeline

One run over the job ledger:

1. Reset stale items (processing/error -> pending)
2. Select up to ``limit`` pending items in (parent, sequence) order
3. Collapse exact duplicates (same normalized source text) into clusters
4. Load the concept index for resolving cross-references
5. Send cluster primaries to the oracle in budgeted, staggered sub-batches
6. Validate each item's result and persist it for every cluster member

Each sub-batch worker claims its own items (pending -> processing) right
before its call, so items the budget never reaches stay pending.

Example:
    >>> pipeline = EnrichmentPipeline(config, storage, llm)
    >>> summary = await pipeline.run(limit=300)
    >>> print(summary.status, summary.completed, summary.failed)
"""

from __future__ import annotations

import logging

from lexis_kg.api.oracle_pipeline import OraclePipeline
from lexis_kg.ingestion.context import ContextAssembler
from lexis_kg.ingestion.dedup import cluster_records
from lexis_kg.ingestion.executor import OracleCaller
from lexis_kg.ingestion.ledger import JobLedger
from lexis_kg.ingestion.persister import ResultPersister, validate_batch_output
from lexis_kg.ingestion.prompts import build_enrichment_prompt, build_enrichment_system_prompt
from lexis_kg.ingestion.resolution import ConceptIndex, ResolutionCascade
from lexis_kg.ingestion.retry import RetryExhaustedError
from lexis_kg.providers.base import OracleError
from lexis_kg.types import BatchOutcome, Cluster, RunSummary, WorkItem
from lexis_kg.utils.cost_telemetry import telemetry_collector, telemetry_stage

logger = logging.getLogger(__name__)


class EnrichmentPipeline(OraclePipeline):
    """Cleans, translates and annotates pending work items."""

    stage = "enrichment"

    async def run(self, limit: int) -> RunSummary:
        """
        Process up to ``limit`` pending work items.

        Returns:
            RunSummary with the final status (completed, budget_exhausted,
            aborted) and counters

        Raises:
            StorageError: Ledger failure; in-flight items stay processing
                until the next run resets them
        """
        if limit <= 0:
            raise ValueError("limit must be positive")

        ctx = self.ctx
        ctx.start(total=0)
        ledger = JobLedger(self.storage, page_size=self.config.page_size)

        try:
            await ledger.reset_stale()
            items = await ledger.select_pending(limit)
            ctx.counters.selected = len(items)
            ctx.total = len(items)
            ctx.log.info(f"Selected {len(items)} pending items (limit {limit})")

            clusters = cluster_records(
                items,
                key=lambda item: item.source_text,
                use_containment=False,
                use_fuzzy=False,
            )
            if len(clusters) < len(items):
                ctx.log.info(
                    f"Collapsed {len(items) - len(clusters)} duplicate items into "
                    f"{len(clusters)} oracle inputs"
                )

            index = await ConceptIndex.load(
                self.storage,
                foreign_language=self.config.source_language,
                page_size=self.config.page_size,
            )
            persister = ResultPersister(
                self.storage,
                ledger,
                ctx,
                cascade=ResolutionCascade(index),
                default_relevance=self.config.highlight_default_relevance,
            )
            worker = _EnrichmentWorker(
                self,
                ledger,
                persister,
                ContextAssembler(self.storage, self.config),
                self._caller(),
                {cluster.primary.id: cluster for cluster in clusters},
            )

            with telemetry_collector(ctx.costs), telemetry_stage(self.stage):
                report = await self._executor().run(
                    [cluster.primary for cluster in clusters], worker
                )
        except Exception as e:
            self._fail_run(e)
            raise

        by_primary = worker.clusters
        ctx.counters.skipped = sum(len(by_primary[item.id]) for item in report.undispatched)
        return self._finish(report)


class _EnrichmentWorker:
    """Processes one sub-batch of cluster primaries."""

    def __init__(
        self,
        pipeline: EnrichmentPipeline,
        ledger: JobLedger,
        persister: ResultPersister,
        assembler: ContextAssembler,
        caller: OracleCaller,
        clusters: dict[str, Cluster[WorkItem]],
    ) -> None:
        self.pipeline = pipeline
        self.ledger = ledger
        self.persister = persister
        self.assembler = assembler
        self.caller = caller
        self.clusters = clusters
        self.system_prompt = build_enrichment_system_prompt(pipeline.config)

    async def __call__(self, primaries: list[WorkItem]) -> BatchOutcome:
        ctx = self.pipeline.ctx
        storage = self.pipeline.storage

        member_ids = [m.id for p in primaries for m in self.clusters[p.id].members]
        outcome = BatchOutcome(item_ids=member_ids)
        claimed = set(await self.ledger.mark_processing(member_ids))

        # First claimed member of each cluster stands in for the cluster.
        units: list[list[WorkItem]] = []
        for primary in primaries:
            members = [m for m in self.clusters[primary.id].members if m.id in claimed]
            if members:
                units.append(members)
        if not units:
            return outcome

        representatives = [members[0] for members in units]
        contexts = await self.assembler.assemble(representatives)
        prompt = build_enrichment_prompt(contexts)
        ctx.tracer(prompt, [item.id for item in representatives])

        try:
            payload = await self.caller(prompt, system=self.system_prompt)
        except RetryExhaustedError as e:
            await self._fail_all(units, outcome, str(e))
            outcome.aborted = True
            return outcome
        except OracleError as e:
            await self._fail_all(units, outcome, f"Oracle call failed: {e}")
            return outcome

        report = validate_batch_output(payload, [item.id for item in representatives])

        parent_ids = sorted({m.parent_id for members in units for m in members})
        concept_ids = {c.id for c in await storage.get_concepts(parent_ids)}

        for members in units:
            expansions = report.valid.get(members[0].id)
            for member in members:
                if expansions is None:
                    await self.persister.fail(member.id, report.errors[members[0].id])
                    outcome.failed += 1
                    continue
                source = member.parent_id if member.parent_id in concept_ids else None
                if await self.persister.persist(member, expansions, source_concept_id=source):
                    outcome.completed += 1
                else:
                    outcome.failed += 1

        ctx.log.info(
            f"Sub-batch of {len(member_ids)} items: "
            f"{outcome.completed} completed, {outcome.failed} failed"
        )
        return outcome

    async def _fail_all(
        self,
        units: list[list[WorkItem]],
        outcome: BatchOutcome,
        message: str,
    ) -> None:
        outcome.error = message
        for members in units:
            for member in members:
                await self.persister.fail(member.id, message)
                outcome.failed += 1
