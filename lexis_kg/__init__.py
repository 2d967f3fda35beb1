"""
LexisKG - Lexical Knowledge Base Enrichment

Incrementally turns a raw bilingual lexical corpus (dictionary entries,
example sentences, running texts) into a cleaned, cross-referenced
knowledge base, using an LLM as the oracle for correction, translation and
annotation.

Example:
    >>> from lexis_kg import LexisConfig, EnrichmentPipeline
    >>> from lexis_kg.storage import DuckDBBackend
    >>> from lexis_kg.providers import create_llm_provider
    >>> config = LexisConfig()
    >>> async with DuckDBBackend(config.db_path) as storage:
    ...     pipeline = EnrichmentPipeline(config, storage, create_llm_provider(config))
    ...     summary = await pipeline.run(limit=300)

Main Classes:
    EnrichmentPipeline: Clean and translate pending work items
    HighlightCleaningPipeline: Deduplicate and clean raw linguistic notes
    DictionaryImporter: Load structured dictionary entries
    LexisConfig: Configuration management
"""

__version__ = "0.1.0"


# Public API - lazy imports to avoid loading optional dependencies
def __getattr__(name: str):
    """Lazy import public API components."""

    if name == "LexisConfig":
        from lexis_kg.config.settings import LexisConfig
        return LexisConfig

    if name in (
        "EnrichmentPipeline",
        "HighlightCleaningPipeline",
        "DictionaryImporter",
        "RunManager",
        "ingest_texts",
    ):
        from lexis_kg import api
        return getattr(api, name)

    if name in ("WorkItem", "WorkStatus", "Concept", "Highlight", "RunSummary"):
        from lexis_kg import types
        return getattr(types, name)

    raise AttributeError(f"module 'lexis_kg' has no attribute {name!r}")


__all__ = [
    "LexisConfig",
    "EnrichmentPipeline",
    "HighlightCleaningPipeline",
    "DictionaryImporter",
    "RunManager",
    "ingest_texts",
    "WorkItem",
    "WorkStatus",
    "Concept",
    "Highlight",
    "RunSummary",
    "__version__",
]
