"""
Rate-Limited Batch Executor

Drives oracle calls over a queue of work under three limits at once:

- a hard per-run call budget (RunBudget): once spent, nothing more is
  dispatched and the remaining items simply stay pending for a later run
- a bounded pool of concurrent calls
- the oracle's own rate limiting, absorbed by the RetryPolicy inside
  OracleCaller

Dispatch pattern:
    items -> fixed-size sub-batches -> groups of ``concurrency`` sub-batches.
    Inside a group, call starts are staggered by ``stagger_seconds``; between
    groups the executor pauses for ``cooldown_seconds``.

Failure handling:
    Workers isolate per-item failures themselves and report a BatchOutcome.
    An exception escaping a worker is run-level: the current group is allowed
    to finish, then the exception propagates and nothing further is
    dispatched. An outcome flagged ``aborted`` (rate limit persisted through
    every retry) also stops further dispatch, without raising.

Example:
    >>> executor = BatchExecutor(ExecutorSettings.from_config(config), ctx)
    >>> report = await executor.run(items, worker)
    >>> report.dispatched, len(report.undispatched)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from lexis_kg.api.run_context import RunContext
from lexis_kg.config import LexisConfig
from lexis_kg.ingestion.retry import RetryPolicy
from lexis_kg.providers.base import LLMProvider, OracleTimeoutError
from lexis_kg.types import BatchOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

Worker = Callable[[list[T]], Awaitable[BatchOutcome]]

MAX_CONCURRENCY = 15


@dataclass(frozen=True)
class ExecutorSettings:
    batch_size: int = 3
    concurrency: int = 10
    stagger_seconds: float = 0.1
    cooldown_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

    @classmethod
    def from_config(cls, config: LexisConfig) -> "ExecutorSettings":
        if not 1 <= config.concurrency <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency must be between 1 and {MAX_CONCURRENCY}, got {config.concurrency}"
            )
        if config.concurrency < 3:
            logger.warning(f"Concurrency {config.concurrency} is below the usual 3-15 range")
        return cls(
            batch_size=config.batch_size,
            concurrency=config.concurrency,
            stagger_seconds=config.stagger_ms / 1000.0,
            cooldown_seconds=config.cooldown_seconds,
        )


@dataclass
class ExecutionReport(Generic[T]):
    """What the executor did with its input."""

    dispatched: int = 0
    outcomes: list[BatchOutcome] = field(default_factory=list)
    undispatched: list[T] = field(default_factory=list)
    budget_exhausted: bool = False
    aborted: bool = False


class BatchExecutor:
    """
    Dispatches sub-batches to a worker under budget and concurrency limits.

    Args:
        settings: Batch size, pool size, stagger and cooldown
        ctx: Run context (budget and counters are updated in place)
        sleep: Awaitable sleep, replaceable in tests
    """

    def __init__(
        self,
        settings: ExecutorSettings,
        ctx: RunContext,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._ctx = ctx
        self._sleep = sleep

    def split(self, items: Sequence[T]) -> list[list[T]]:
        size = self._settings.batch_size
        return [list(items[i:i + size]) for i in range(0, len(items), size)]

    async def run(self, items: Sequence[T], worker: Worker[T]) -> ExecutionReport[T]:
        """
        Process ``items`` with ``worker`` one sub-batch per call.

        Raises:
            Exception: The first run-level exception escaping a worker
        """
        settings = self._settings
        sub_batches = self.split(items)
        groups = [
            sub_batches[i:i + settings.concurrency]
            for i in range(0, len(sub_batches), settings.concurrency)
        ]
        semaphore = asyncio.Semaphore(settings.concurrency)
        report: ExecutionReport[T] = ExecutionReport()
        next_batch = 0

        for group_index, group in enumerate(groups):
            allowed: list[list[T]] = []
            for batch in group:
                if not self._ctx.budget.try_acquire():
                    report.budget_exhausted = True
                    break
                allowed.append(batch)

            if not allowed:
                break

            next_batch += len(allowed)
            report.dispatched += len(allowed)
            self._ctx.counters.dispatched_calls += len(allowed)
            logger.debug(
                f"Dispatching group {group_index + 1}/{len(groups)} "
                f"({len(allowed)} sub-batches)"
            )

            results = await asyncio.gather(
                *[
                    self._dispatch(batch, worker, semaphore, delay=i * settings.stagger_seconds)
                    for i, batch in enumerate(allowed)
                ],
                return_exceptions=True,
            )

            run_error: BaseException | None = None
            for result in results:
                if isinstance(result, BaseException):
                    run_error = run_error or result
                else:
                    report.outcomes.append(result)
                    report.aborted = report.aborted or result.aborted

            if run_error is not None:
                raise run_error

            if report.budget_exhausted:
                break
            if report.aborted:
                self._ctx.log.error("Rate limit persisted through all retries; stopping dispatch")
                break
            if group_index + 1 < len(groups) and settings.cooldown_seconds > 0:
                await self._sleep(settings.cooldown_seconds)

        for batch in sub_batches[next_batch:]:
            report.undispatched.extend(batch)
        if report.budget_exhausted:
            self._ctx.log.warning(
                f"Run budget of {self._ctx.budget.limit} calls reached; "
                f"{len(report.undispatched)} items stay pending"
            )
        return report

    async def _dispatch(
        self,
        batch: list[T],
        worker: Worker[T],
        semaphore: asyncio.Semaphore,
        *,
        delay: float,
    ) -> BatchOutcome:
        if delay > 0:
            await self._sleep(delay)
        async with semaphore:
            return await worker(batch)


class OracleCaller:
    """
    One oracle call with a hard timeout, retried under a RetryPolicy.

    Args:
        llm: Oracle provider
        policy: Retry policy (rate limits only, by default)
        timeout: Seconds before a single attempt fails with OracleTimeoutError
        ctx: Optional run context; retries are written to its log
    """

    def __init__(
        self,
        llm: LLMProvider,
        policy: RetryPolicy,
        *,
        timeout: float | None = None,
        ctx: RunContext | None = None,
    ) -> None:
        self._llm = llm
        self._policy = policy
        self._timeout = timeout
        self._ctx = ctx

    async def __call__(self, prompt: str, *, system: str | None = None) -> dict[str, Any]:
        async def _attempt() -> dict[str, Any]:
            try:
                return await asyncio.wait_for(
                    self._llm.complete_json(prompt, system=system),
                    timeout=self._timeout,
                )
            except TimeoutError as e:
                raise OracleTimeoutError(
                    f"Oracle call exceeded {self._timeout:.0f}s timeout"
                ) from e

        return await self._policy.call(_attempt, on_retry=self._on_retry)

    def _on_retry(self, attempt: int, error: BaseException, delay: float) -> None:
        if self._ctx is not None:
            self._ctx.log.warning(
                f"Rate limited (attempt {attempt}), backing off {delay:.1f}s"
            )
