"""
Result Types

Types for oracle output contracts, run reporting and cost telemetry.

Oracle Output Models (validated before anything is persisted):
    - AlternativeTranslation: A lower-ranked translation
    - DiscoveredHighlight: Idiom or cultural note found in a sentence
    - RelatedTerm: Free-text cross-reference to another headword
    - Expansion: One cleaned sentence with its translations
    - ItemResult: All expansions for one work item
    - BatchEnrichmentOutput: Response for one sub-batch of work items
    - CleanedHighlight / HighlightCleaningOutput: Response for highlight cleaning

Run Models:
    - BatchOutcome: Per sub-batch result reported to the executor
    - RunSummary: Counters for one pipeline run

Cost Telemetry Models:
    - CostUsageRecord, StageCostBreakdown, CostBreakdown, CostDebugReport
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

# -----------------------------------------------------------------------------
# Oracle Output Models
# -----------------------------------------------------------------------------


class AlternativeTranslation(BaseModel):
    translation: str
    confidence_score: float = Field(default=0.8, ge=0.0, le=1.0)
    notes: str | None = None


class DiscoveredHighlight(BaseModel):
    """An idiom, place name or cultural note found while cleaning a sentence."""

    phrase: str = Field(..., min_length=1, description="Span of source text")
    gloss: str = Field(default="", description="Target-language meaning")
    explanation: str = Field(default="", description="Why the span is notable")
    type: str = Field(default="idiom", description="Category tag")
    relevance_score: Any = Field(
        default=None, description="0-10; invalid values fall back to the default"
    )


class RelatedTerm(BaseModel):
    term: str = Field(..., min_length=1, description="Free-text reference to a headword")
    relation_type: str = "see_also"
    note: str | None = None


class Expansion(BaseModel):
    """
    One cleaned sentence.

    A raw example can expand into several sentences (abbreviations such as
    "~" or "jmd." spelled out), each with its own translation.
    """

    cleaned_text: str = Field(..., min_length=1)
    best_translation: str = Field(..., min_length=1)
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    notes: str | None = None
    alternative_translations: list[AlternativeTranslation] = Field(default_factory=list)
    discovered_highlights: list[DiscoveredHighlight] = Field(default_factory=list)
    related_terms: list[RelatedTerm] = Field(default_factory=list)

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _reject_bool(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("confidence_score must be numeric")
        return value


class ItemResult(BaseModel):
    item_id: str = Field(..., description="Id of the work item this result belongs to")
    expansions: list[Expansion] = Field(..., min_length=1)


class BatchEnrichmentOutput(BaseModel):
    """
    Oracle response for one sub-batch.

    Items are validated individually; see ``validate_batch_output``.
    """

    results: list[dict[str, Any]] = Field(...)


class CleanedHighlight(BaseModel):
    index: int | None = Field(
        default=None, description="Position of the input entry this record cleans"
    )
    term: str = Field(..., min_length=1)
    gloss: str = ""
    explanation: str = ""
    feature_type: str = "idiom"
    relevance_score: Any = None
    tags: list[str] = Field(default_factory=list)


class HighlightCleaningOutput(BaseModel):
    entries: list[CleanedHighlight] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Run Models
# -----------------------------------------------------------------------------


class BatchOutcome(BaseModel):
    """What happened to one dispatched sub-batch."""

    item_ids: list[str] = Field(default_factory=list)
    completed: int = 0
    failed: int = 0
    aborted: bool = Field(
        default=False, description="Rate limit persisted through every retry"
    )
    error: str | None = None


# -----------------------------------------------------------------------------
# Cost Telemetry Models
# -----------------------------------------------------------------------------


class CostUsageRecord(BaseModel):
    """Usage of one provider call."""

    provider: str
    model: str
    operation: str
    stage: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    latency_ms: int = 0
    estimated: bool = Field(
        default=False, description="Token counts came from the local tokenizer"
    )
    metadata: dict[str, Any] = Field(default_factory=dict)


class StageCostBreakdown(BaseModel):
    stage: str
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    total_latency_ms: int = 0


class CostBreakdown(BaseModel):
    total_calls: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    total_estimated_cost_usd: float = 0.0
    total_latency_ms: int = 0
    by_stage: list[StageCostBreakdown] = Field(default_factory=list)


class CostDebugReport(BaseModel):
    enabled: bool = True
    pricing_version: str
    breakdown: CostBreakdown
    warnings: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Run Summary
# -----------------------------------------------------------------------------


class RunSummary(BaseModel):
    """Counters for one pipeline run."""

    run_id: str
    status: str
    selected: int = 0
    dispatched_calls: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    highlights_written: int = 0
    relations_written: int = 0
    unresolved_references: int = 0
    budget_exhausted: bool = False
    cost_usd: float = 0.0
    last_error: str | None = None
    cost: CostDebugReport | None = Field(
        default=None, description="Per-stage cost report; None when no oracle call was made"
    )
