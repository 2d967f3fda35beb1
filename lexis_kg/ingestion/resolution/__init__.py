"""
Entity Resolution

Maps dirty free-text references to canonical concept ids.

Modules:
    cascade: Ordered resolution strategies and the first-match combinator
    index: Read-only in-memory concept lookup loaded per run
"""

from lexis_kg.ingestion.resolution.cascade import (
    DEFAULT_STRATEGIES,
    Resolution,
    ResolutionCascade,
    clean_term,
    expand_alternation,
)
from lexis_kg.ingestion.resolution.index import ConceptIndex, ConceptLookup

__all__ = [
    "ConceptIndex",
    "ConceptLookup",
    "DEFAULT_STRATEGIES",
    "Resolution",
    "ResolutionCascade",
    "clean_term",
    "expand_alternation",
]
