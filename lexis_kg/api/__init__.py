"""
Pipelines and Run Management

Modules:
    run_context: Per-run state (budget, counters, rolling log, tracing)
    enrichment: EnrichmentPipeline over the job ledger
    highlights: HighlightCleaningPipeline over raw linguistic notes
    dictionary: DictionaryImporter and text ingestion
    runner: RunManager behind the control surface
"""


# Lazy imports: ingestion modules import run_context from this package.
def __getattr__(name: str):
    if name == "EnrichmentPipeline":
        from lexis_kg.api.enrichment import EnrichmentPipeline
        return EnrichmentPipeline

    if name == "HighlightCleaningPipeline":
        from lexis_kg.api.highlights import HighlightCleaningPipeline
        return HighlightCleaningPipeline

    if name in ("DictionaryImporter", "ingest_texts"):
        from lexis_kg.api import dictionary
        return getattr(dictionary, name)

    if name == "RunManager":
        from lexis_kg.api.runner import RunManager
        return RunManager

    if name in ("RunContext", "RunStatus", "RunAlreadyActiveError"):
        from lexis_kg.api import run_context
        return getattr(run_context, name)

    raise AttributeError(f"module 'lexis_kg.api' has no attribute {name!r}")


__all__ = [
    "DictionaryImporter",
    "EnrichmentPipeline",
    "HighlightCleaningPipeline",
    "RunAlreadyActiveError",
    "RunContext",
    "RunManager",
    "RunStatus",
    "ingest_texts",
]
