"""
Data Types

Pydantic models shared across the pipeline.

Modules:
    work: WorkItem, WorkStatus, LexicalRecord, Cluster
    lexicon: Concept, Term, Relation, Highlight, EnrichedResult, dictionary import models
    results: Oracle output contracts, run summaries, cost telemetry
"""

from lexis_kg.types.lexicon import (
    HIGHLIGHT_TAGS,
    Concept,
    ConceptTerm,
    DictionaryEntry,
    DictionaryExample,
    DictionaryRelation,
    DictionarySense,
    EnrichedResult,
    Highlight,
    Relation,
    SenseInfo,
    Term,
)
from lexis_kg.types.results import (
    AlternativeTranslation,
    BatchEnrichmentOutput,
    BatchOutcome,
    CleanedHighlight,
    CostUsageRecord,
    DiscoveredHighlight,
    Expansion,
    HighlightCleaningOutput,
    ItemResult,
    RelatedTerm,
    RunSummary,
)
from lexis_kg.types.work import DUPLICATE_SEPARATOR, Cluster, LexicalRecord, WorkItem, WorkStatus

__all__ = [
    # Work
    "WorkItem",
    "WorkStatus",
    "LexicalRecord",
    "Cluster",
    "DUPLICATE_SEPARATOR",
    # Lexicon
    "Concept",
    "ConceptTerm",
    "Term",
    "Relation",
    "Highlight",
    "HIGHLIGHT_TAGS",
    "EnrichedResult",
    "SenseInfo",
    "DictionaryEntry",
    "DictionaryExample",
    "DictionaryRelation",
    "DictionarySense",
    # Results
    "AlternativeTranslation",
    "DiscoveredHighlight",
    "RelatedTerm",
    "Expansion",
    "ItemResult",
    "BatchEnrichmentOutput",
    "CleanedHighlight",
    "HighlightCleaningOutput",
    "BatchOutcome",
    "RunSummary",
    "CostUsageRecord",
]
