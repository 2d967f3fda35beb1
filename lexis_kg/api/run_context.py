"""
Run Context

Explicit per-run state passed to every pipeline component: counters, the
call budget, a bounded rolling log, a prompt-tracing hook and the cost
collector. Nothing here is process-global, so two runs (or two tests) never
share state.

Example:
    >>> ctx = RunContext.create(config)
    >>> ctx.start(total=120)
    >>> if ctx.budget.try_acquire():
    ...     ...  # dispatch one oracle call
    >>> ctx.log.info("Sub-batch done")
    >>> ctx.progress()["percentComplete"]
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from lexis_kg.config import LexisConfig
from lexis_kg.types import RunSummary
from lexis_kg.utils.cost_telemetry import CostCollector
from lexis_kg.utils.text import new_id

logger = logging.getLogger(__name__)


class RunAlreadyActiveError(RuntimeError):
    """A run was started while another one is still active."""


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunStatus.IDLE, RunStatus.RUNNING)


class RunBudget:
    """Hard cap on oracle dispatches for one run."""

    def __init__(self, limit: int) -> None:
        if limit < 0:
            raise ValueError("budget limit must not be negative")
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def try_acquire(self, n: int = 1) -> bool:
        """Reserve ``n`` dispatches; False (and nothing reserved) if that would exceed the cap."""
        if self.used + n > self.limit:
            return False
        self.used += n
        return True


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"timestamp": self.timestamp, "level": self.level, "message": self.message}


class RunLog:
    """Bounded rolling log of run-level messages, mirrored to ``logging``."""

    def __init__(self, maxlen: int = 1000, *, run_id: str = "") -> None:
        self._entries: deque[LogEntry] = deque(maxlen=maxlen)
        self._prefix = f"[{run_id[:8]}] " if run_id else ""

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, level: int, message: str) -> None:
        logger.log(level, f"{self._prefix}{message}")
        self._entries.append(
            LogEntry(
                timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
                level=logging.getLevelName(level).lower(),
                message=message,
            )
        )

    def info(self, message: str) -> None:
        self.add(logging.INFO, message)

    def warning(self, message: str) -> None:
        self.add(logging.WARNING, message)

    def error(self, message: str) -> None:
        self.add(logging.ERROR, message)

    def tail(self, n: int | None = None) -> list[LogEntry]:
        entries = list(self._entries)
        return entries if n is None else entries[-n:]


TraceSink = Callable[[str, list[str]], None]


class PromptTracer:
    """
    Samples the first ``sample`` prompts of a run and hands them to a sink.

    Args:
        sample: Number of prompts to pass through; 0 disables tracing
        sink: Receives (prompt, item_ids); defaults to a DEBUG log line
    """

    def __init__(self, sample: int = 1, sink: TraceSink | None = None) -> None:
        self.sample = sample
        self.seen = 0
        self._sink = sink or self._log_sink

    @staticmethod
    def _log_sink(prompt: str, item_ids: list[str]) -> None:
        logger.debug(f"Prompt for {item_ids}:\n{prompt}")

    def __call__(self, prompt: str, item_ids: list[str]) -> None:
        if self.seen >= self.sample:
            return
        self.seen += 1
        self._sink(prompt, item_ids)


@dataclass
class RunCounters:
    selected: int = 0
    dispatched_calls: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    highlights_written: int = 0
    relations_written: int = 0
    unresolved_references: int = 0


@dataclass
class RunContext:
    """State of one pipeline run."""

    budget: RunBudget
    log: RunLog
    tracer: PromptTracer
    costs: CostCollector
    run_id: str = field(default_factory=new_id)
    counters: RunCounters = field(default_factory=RunCounters)
    status: RunStatus = RunStatus.IDLE
    total: int = 0
    last_error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def create(
        cls,
        config: LexisConfig,
        *,
        budget: int | None = None,
        trace_sink: TraceSink | None = None,
    ) -> "RunContext":
        """Build a fresh context from configuration."""
        run_id = new_id()
        log = RunLog(config.log_buffer_size, run_id=run_id)
        return cls(
            run_id=run_id,
            budget=RunBudget(config.run_budget if budget is None else budget),
            log=log,
            tracer=PromptTracer(config.trace_prompts, trace_sink),
            costs=CostCollector(warn_threshold_usd=config.cost_debug_warn_threshold_usd),
        )

    @property
    def processed(self) -> int:
        return self.counters.completed + self.counters.failed

    @property
    def percent_complete(self) -> float:
        if self.total <= 0:
            return 100.0 if self.status.is_terminal else 0.0
        return round(min(100.0, 100.0 * self.processed / self.total), 1)

    @property
    def is_active(self) -> bool:
        return self.status == RunStatus.RUNNING

    def start(self, total: int) -> None:
        self.status = RunStatus.RUNNING
        self.total = total
        self.started_at = datetime.now(timezone.utc)

    def finish(self, status: RunStatus, error: str | None = None) -> None:
        self.status = status
        if error:
            self.last_error = error
        self.finished_at = datetime.now(timezone.utc)
        self.log.info(
            f"Run finished: {status.value} "
            f"({self.counters.completed} completed, {self.counters.failed} failed, "
            f"{self.counters.dispatched_calls} calls)"
        )

    def record_error(self, message: str) -> None:
        """Remember the latest failure and log it."""
        self.last_error = message
        self.log.error(message)

    def progress(self, log_tail: int | None = 100) -> dict[str, Any]:
        """Progress document served by the control surface."""
        payload: dict[str, Any] = {
            "runId": self.run_id,
            "status": self.status.value,
            "percentComplete": self.percent_complete,
            "processed": self.processed,
            "total": self.total,
            "logs": [entry.as_dict() for entry in self.log.tail(log_tail)],
        }
        if self.last_error:
            payload["lastError"] = self.last_error
        return payload

    def summary(self) -> RunSummary:
        c = self.counters
        return RunSummary(
            run_id=self.run_id,
            status=self.status.value,
            selected=c.selected,
            dispatched_calls=c.dispatched_calls,
            completed=c.completed,
            failed=c.failed,
            skipped=c.skipped,
            highlights_written=c.highlights_written,
            relations_written=c.relations_written,
            unresolved_references=c.unresolved_references,
            budget_exhausted=self.status == RunStatus.BUDGET_EXHAUSTED,
            cost_usd=self.costs.total_cost_usd,
            last_error=self.last_error,
            cost=self.costs.summary() if self.costs.calls else None,
        )
