"""
Oracle Pipeline Base

Shared wiring for pipelines that send sub-batches to the oracle: one run
context, one retrying caller and one batch executor per run, built from
configuration.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from lexis_kg.api.run_context import RunContext, RunStatus
from lexis_kg.config import LexisConfig
from lexis_kg.ingestion.executor import (
    BatchExecutor,
    ExecutionReport,
    ExecutorSettings,
    OracleCaller,
)
from lexis_kg.ingestion.retry import RetryPolicy
from lexis_kg.providers.base import LLMProvider
from lexis_kg.storage.base import StorageBackend
from lexis_kg.types import RunSummary

logger = logging.getLogger(__name__)


class OraclePipeline:
    """
    Base for oracle-driven pipelines.

    Args:
        config: Pipeline configuration
        storage: Initialized storage backend
        llm: Oracle provider
        ctx: Run context; a fresh one is created from ``config`` if omitted
        sleep: Awaitable sleep used for stagger, cooldown and backoff
    """

    stage = "oracle"

    def __init__(
        self,
        config: LexisConfig,
        storage: StorageBackend,
        llm: LLMProvider,
        *,
        ctx: RunContext | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.storage = storage
        self.llm = llm
        self.ctx = ctx or RunContext.create(config)
        self._sleep = sleep

    def _caller(self) -> OracleCaller:
        policy = dataclasses.replace(RetryPolicy.from_config(self.config), sleep=self._sleep)
        return OracleCaller(
            self.llm,
            policy,
            timeout=self.config.call_timeout_seconds or None,
            ctx=self.ctx,
        )

    def _executor(self) -> BatchExecutor:
        return BatchExecutor(ExecutorSettings.from_config(self.config), self.ctx, sleep=self._sleep)

    def _fail_run(self, error: BaseException) -> None:
        message = f"{type(error).__name__}: {error}"
        logger.error(f"{self.stage} run {self.ctx.run_id} failed: {message}")
        self.ctx.finish(RunStatus.FAILED, error=message)

    def _finish(self, report: ExecutionReport[Any]) -> RunSummary:
        if report.aborted:
            status = RunStatus.ABORTED
        elif report.budget_exhausted:
            status = RunStatus.BUDGET_EXHAUSTED
        else:
            status = RunStatus.COMPLETED
        self.ctx.finish(status)
        summary = self.ctx.summary()
        if summary.cost is not None:
            breakdown = summary.cost.breakdown
            for stage in breakdown.by_stage:
                logger.info(
                    f"{stage.stage}: {stage.calls} oracle calls, {stage.total_tokens} tokens, "
                    f"${stage.estimated_cost_usd:.4f} estimated"
                )
            for warning in summary.cost.warnings:
                self.ctx.log.warning(warning)
        return summary
