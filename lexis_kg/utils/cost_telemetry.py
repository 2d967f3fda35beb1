"""
Run-scoped cost telemetry helpers.

Each pipeline run owns a CostCollector and attaches it via contextvars while
it executes. Providers read the active collector and stage and emit usage
records automatically, so concurrent runs never mix their numbers.

Example:
    >>> collector = CostCollector()
    >>> with telemetry_collector(collector), telemetry_stage("enrichment"):
    ...     await provider.complete_json(prompt)
    >>> collector.total_cost_usd
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from lexis_kg.config.pricing import PRICING_VERSION
from lexis_kg.types.results import (
    CostBreakdown,
    CostDebugReport,
    CostUsageRecord,
    StageCostBreakdown,
)

_COLLECTOR: ContextVar[CostCollector | None] = ContextVar(
    "lexis_cost_collector",
    default=None,
)
_STAGE: ContextVar[str] = ContextVar("lexis_cost_stage", default="unknown")


class CostCollector:
    """Accumulates provider usage records for one run."""

    def __init__(self, *, warn_threshold_usd: float | None = None) -> None:
        self._records: list[CostUsageRecord] = []
        self._warn_threshold_usd = warn_threshold_usd

    def add(self, record: CostUsageRecord) -> None:
        self._records.append(record)

    @property
    def calls(self) -> int:
        return len(self._records)

    @property
    def total_cost_usd(self) -> float:
        return sum(record.estimated_cost_usd for record in self._records)

    def summary(self) -> CostDebugReport:
        """Build aggregate report across all records, most expensive stage first."""
        by_stage: dict[str, StageCostBreakdown] = {}
        warnings: set[str] = set()
        breakdown = CostBreakdown()

        for record in self._records:
            breakdown.total_calls += 1
            breakdown.total_input_tokens += record.input_tokens
            breakdown.total_output_tokens += record.output_tokens
            breakdown.total_tokens += record.total_tokens
            breakdown.total_estimated_cost_usd += record.estimated_cost_usd
            breakdown.total_latency_ms += record.latency_ms

            stage = by_stage.setdefault(record.stage, StageCostBreakdown(stage=record.stage))
            stage.calls += 1
            stage.input_tokens += record.input_tokens
            stage.output_tokens += record.output_tokens
            stage.total_tokens += record.total_tokens
            stage.estimated_cost_usd += record.estimated_cost_usd
            stage.total_latency_ms += record.latency_ms

            if record.metadata.get("pricing_found") is False:
                warnings.add(
                    f"Missing pricing for model '{record.model}' in stage '{record.stage}'. "
                    "Cost shown as 0.0 for those calls."
                )

        total_cost = breakdown.total_estimated_cost_usd
        if self._warn_threshold_usd is not None and total_cost >= self._warn_threshold_usd:
            warnings.add(
                f"Estimated run cost ${total_cost:.6f} exceeded threshold "
                f"${self._warn_threshold_usd:.6f}."
            )

        breakdown.by_stage = sorted(
            by_stage.values(), key=lambda s: s.estimated_cost_usd, reverse=True
        )
        return CostDebugReport(
            enabled=True,
            pricing_version=PRICING_VERSION,
            breakdown=breakdown,
            warnings=sorted(warnings),
        )


@contextmanager
def telemetry_collector(collector: CostCollector | None) -> Iterator[None]:
    """Set the active run collector for provider instrumentation."""
    token = _COLLECTOR.set(collector)
    try:
        yield
    finally:
        _COLLECTOR.reset(token)


@contextmanager
def telemetry_stage(stage: str) -> Iterator[None]:
    """Set pipeline stage label for provider instrumentation."""
    token = _STAGE.set(stage)
    try:
        yield
    finally:
        _STAGE.reset(token)


def current_stage() -> str:
    return _STAGE.get()


def record_usage(record: CostUsageRecord) -> None:
    """Add record to the active collector if telemetry is enabled."""
    collector = _COLLECTOR.get()
    if collector is not None:
        collector.add(record)
