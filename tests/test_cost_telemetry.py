"""Tests for run-scoped cost telemetry aggregation."""

from lexis_kg.config.pricing import estimate_llm_cost_usd
from lexis_kg.types.results import CostUsageRecord
from lexis_kg.utils.cost_telemetry import (
    CostCollector,
    current_stage,
    record_usage,
    telemetry_collector,
    telemetry_stage,
)


def _record(stage: str, cost: float, **kwargs) -> CostUsageRecord:
    values = {
        "provider": "openai",
        "model": "gpt-4.1-mini",
        "operation": "complete_json",
        "stage": stage,
        "input_tokens": 100,
        "output_tokens": 20,
        "total_tokens": 120,
        "estimated_cost_usd": cost,
        "latency_ms": 15,
    }
    values.update(kwargs)
    return CostUsageRecord(**values)


def test_cost_collector_aggregates_by_stage() -> None:
    """Collector should aggregate totals and per-stage metrics."""
    collector = CostCollector()
    collector.add(_record("highlight_cleaning", 0.0001))
    collector.add(_record("enrichment", 0.001))
    collector.add(_record("enrichment", 0.002, input_tokens=50, total_tokens=70))

    report = collector.summary()
    assert report.enabled is True
    assert report.breakdown.total_calls == 3
    assert report.breakdown.total_tokens == 310
    assert report.breakdown.total_input_tokens == 250
    assert len(report.breakdown.by_stage) == 2
    # most expensive stage first
    assert report.breakdown.by_stage[0].stage == "enrichment"
    assert report.breakdown.by_stage[0].calls == 2


def test_cost_collector_warns_on_threshold() -> None:
    """Collector should include warning when threshold is exceeded."""
    collector = CostCollector(warn_threshold_usd=0.0005)
    collector.add(_record("enrichment", 0.001))

    report = collector.summary()
    assert report.warnings
    assert "exceeded threshold" in report.warnings[0]


def test_cost_collector_warns_on_missing_pricing() -> None:
    """Unknown models are reported once per model and stage."""
    collector = CostCollector()
    for _ in range(2):
        collector.add(_record("enrichment", 0.0, model="mystery", metadata={"pricing_found": False}))

    assert len(collector.summary().warnings) == 1


def test_record_usage_only_inside_collector_scope() -> None:
    """Records outside a run scope are dropped."""
    collector = CostCollector()
    record_usage(_record("enrichment", 0.001))

    with telemetry_collector(collector), telemetry_stage("enrichment"):
        assert current_stage() == "enrichment"
        record_usage(_record(current_stage(), 0.001))

    assert current_stage() == "unknown"
    assert collector.calls == 1


def test_estimate_llm_cost() -> None:
    cost, priced = estimate_llm_cost_usd("gpt-4.1-mini", input_tokens=1_000_000, output_tokens=0)
    assert priced is True
    assert cost == 0.4

    assert estimate_llm_cost_usd("unknown-model", input_tokens=10, output_tokens=10) == (0.0, False)
