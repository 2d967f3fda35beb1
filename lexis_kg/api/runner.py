"""
Run Manager

Owns the single active enrichment run behind the control surface. A run
executes as a background asyncio task; its RunContext stays readable for
progress polling after it finishes, until the next run replaces it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from lexis_kg.api.enrichment import EnrichmentPipeline
from lexis_kg.api.run_context import RunAlreadyActiveError, RunContext
from lexis_kg.config import LexisConfig
from lexis_kg.ingestion.ledger import JobLedger
from lexis_kg.providers.base import LLMProvider
from lexis_kg.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class RunManager:
    """
    Starts enrichment runs one at a time.

    Args:
        config: Pipeline configuration
        storage: Initialized storage backend
        llm: Oracle provider
    """

    def __init__(self, config: LexisConfig, storage: StorageBackend, llm: LLMProvider) -> None:
        self.config = config
        self.storage = storage
        self.llm = llm
        self.current: RunContext | None = None
        self._task: asyncio.Task[Any] | None = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, limit: int) -> RunContext:
        """
        Launch a run in the background.

        Raises:
            RunAlreadyActiveError: A run is still in progress
            ValueError: ``limit`` is not positive
        """
        if self.is_active:
            raise RunAlreadyActiveError("A run is already in progress")
        if limit <= 0:
            raise ValueError("limit must be positive")

        ctx = RunContext.create(self.config)
        pipeline = EnrichmentPipeline(self.config, self.storage, self.llm, ctx=ctx)
        ctx.start(total=0)
        self.current = ctx
        self._task = asyncio.create_task(self._execute(pipeline, limit))
        ctx.log.info(f"Run accepted (limit {limit})")
        return ctx

    async def _execute(self, pipeline: EnrichmentPipeline, limit: int) -> None:
        try:
            await pipeline.run(limit)
        except Exception:
            # Status and last error are already recorded on the run context.
            logger.exception(f"Run {pipeline.ctx.run_id} failed")

    async def wait(self) -> None:
        """Wait for the active run, if any, to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def shutdown(self) -> None:
        if self.is_active and self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.info("Active run cancelled on shutdown")

    def progress(self) -> dict[str, Any]:
        if self.current is None:
            return {"status": "idle", "percentComplete": 0.0, "logs": []}
        return self.current.progress(self.config.progress_log_tail)

    async def stats(self) -> dict[str, Any]:
        ledger = JobLedger(self.storage, page_size=self.config.page_size)
        counts = await ledger.status_counts()
        return {
            "workItems": counts,
            "highlights": await self.storage.count_rows("highlights"),
            "relations": await self.storage.count_rows("relations"),
            "enrichedResults": await self.storage.count_rows("enriched_results"),
            "active": self.is_active,
        }
