"""
Command-Line Interface

CLI commands for lexis-kg operations.

Commands:
    lexis-kg run                - Run the enrichment pipeline over pending items
    lexis-kg reset-stale        - Move processing/error items back to pending
    lexis-kg status             - Work item counts per status
    lexis-kg import-dictionary  - Import structured dictionary entries (pass 1)
    lexis-kg link-relations     - Resolve imported cross-references (pass 2)
    lexis-kg ingest-texts       - Segment running texts into work items
    lexis-kg clean-highlights   - Deduplicate and clean raw linguistic notes
    lexis-kg resolve            - Resolve one free-text reference
    lexis-kg export             - Export tables to Parquet or CSV
    lexis-kg serve              - Start the HTTP control surface

Usage:
    lexis-kg import-dictionary entries.jsonl --db ./lexis.duckdb
    lexis-kg link-relations --db ./lexis.duckdb
    lexis-kg run --limit 300 --budget 100
    lexis-kg export --all --out ./export --format csv
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from lexis_kg.config import LexisConfig

__all__ = ["main", "app"]

app = typer.Typer(
    name="lexis-kg",
    help="Resilient LLM enrichment pipeline for bilingual lexical corpora",
    no_args_is_help=True,
)
console = Console()

_state: dict[str, Any] = {"config_path": None, "db": None}


@app.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="TOML configuration file",
        exists=True,
        dir_okay=False,
    ),
    db: Optional[str] = typer.Option(
        None,
        "--db",
        help="DuckDB database file (overrides configuration)",
    ),
) -> None:
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    _state["config_path"] = config
    _state["db"] = db


def _load_config(**overrides: Any) -> LexisConfig:
    path = _state["config_path"]
    config = LexisConfig.from_file(path) if path else LexisConfig()
    if _state["db"]:
        overrides["db_path"] = _state["db"]
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return config.with_overrides(**overrides) if overrides else config


def _open_storage(config: LexisConfig):
    from lexis_kg.storage.duckdb import DuckDBBackend

    return DuckDBBackend(config.db_path, max_rows_per_request=config.page_size)


def _read_json_records(path: Path) -> list[Any]:
    """A JSON array, or one JSON object per line."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".jsonl":
        return [json.loads(line) for line in text.splitlines() if line.strip()]
    data = json.loads(text)
    return data if isinstance(data, list) else [data]


def _print_summary(title: str, summary: Any) -> None:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key, value in summary.model_dump(exclude={"cost"}).items():
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in value.items()) or "-"
        table.add_row(key, str(value))
    console.print(table)

    cost = getattr(summary, "cost", None)
    if cost is None:
        return
    stages = Table(title=f"Estimated cost (pricing {cost.pricing_version})")
    stages.add_column("Stage", style="cyan")
    stages.add_column("Calls", justify="right")
    stages.add_column("Tokens", justify="right")
    stages.add_column("USD", justify="right", style="green")
    for stage in cost.breakdown.by_stage:
        stages.add_row(
            stage.stage,
            str(stage.calls),
            str(stage.total_tokens),
            f"{stage.estimated_cost_usd:.4f}",
        )
    console.print(stages)
    for warning in cost.warnings:
        console.print(f"[yellow]{warning}[/]")


# -----------------------------------------------------------------------------
# Pipeline runs
# -----------------------------------------------------------------------------


@app.command()
def run(
    limit: int = typer.Option(..., "--limit", "-n", min=1, help="Max pending items to select"),
    budget: Optional[int] = typer.Option(None, "--budget", "-b", min=0, help="Max oracle calls"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1, max=15),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
) -> None:
    """Run the enrichment pipeline over pending work items."""

    async def _run() -> None:
        from lexis_kg.api.enrichment import EnrichmentPipeline
        from lexis_kg.providers import create_llm_provider

        config = _load_config(run_budget=budget, concurrency=concurrency, batch_size=batch_size)
        async with _open_storage(config) as storage:
            pipeline = EnrichmentPipeline(config, storage, create_llm_provider(config))
            summary = await pipeline.run(limit)
        _print_summary(f"Run {summary.run_id[:8]}: {summary.status}", summary)

    asyncio.run(_run())


@app.command("clean-highlights")
def clean_highlights(
    budget: Optional[int] = typer.Option(None, "--budget", "-b", min=0, help="Max oracle calls"),
) -> None:
    """Deduplicate raw linguistic notes and clean them into highlights."""

    async def _run() -> None:
        from lexis_kg.api.highlights import HighlightCleaningPipeline
        from lexis_kg.providers import create_llm_provider

        config = _load_config(run_budget=budget)
        async with _open_storage(config) as storage:
            pipeline = HighlightCleaningPipeline(config, storage, create_llm_provider(config))
            summary = await pipeline.run()
        _print_summary(f"Highlight cleaning: {summary.status}", summary)

    asyncio.run(_run())


# -----------------------------------------------------------------------------
# Ledger administration
# -----------------------------------------------------------------------------


@app.command("reset-stale")
def reset_stale() -> None:
    """Move processing and error items back to pending."""

    async def _run() -> None:
        from lexis_kg.ingestion.ledger import JobLedger

        config = _load_config()
        async with _open_storage(config) as storage:
            count = await JobLedger(storage, page_size=config.page_size).reset_stale()
        console.print(f"[green]Reset {count} items to pending[/]")

    asyncio.run(_run())


@app.command()
def status() -> None:
    """Show work item counts per status."""

    async def _run() -> None:
        from lexis_kg.ingestion.ledger import JobLedger
        from lexis_kg.types import WorkStatus

        config = _load_config()
        async with _open_storage(config) as storage:
            counts = await JobLedger(storage, page_size=config.page_size).status_counts()
            highlights = await storage.count_rows("highlights")
            relations = await storage.count_rows("relations")

        table = Table(title=f"Store: {config.db_path}")
        table.add_column("Status", style="cyan")
        table.add_column("Items", justify="right", style="green")
        for work_status in WorkStatus:
            table.add_row(work_status.value, str(counts.get(work_status.value, 0)))
        table.add_row("highlights", str(highlights), style="dim")
        table.add_row("relations", str(relations), style="dim")
        console.print(table)

    asyncio.run(_run())


# -----------------------------------------------------------------------------
# Import
# -----------------------------------------------------------------------------


@app.command("import-dictionary")
def import_dictionary(
    path: Path = typer.Argument(..., help="JSON array or JSONL file of entries", exists=True),
    link: bool = typer.Option(True, "--link/--no-link", help="Run the relation pass afterwards"),
) -> None:
    """Import structured dictionary entries."""

    async def _run() -> None:
        from lexis_kg.api.dictionary import DictionaryImporter

        config = _load_config()
        entries = _read_json_records(path)
        async with _open_storage(config) as storage:
            importer = DictionaryImporter(config, storage)
            summary = await importer.import_entries(entries)
            _print_summary(f"Imported {path.name}", summary)
            if link:
                _print_summary("Relations", await importer.link_relations())

    asyncio.run(_run())


@app.command("link-relations")
def link_relations(
    retry_unresolved: bool = typer.Option(
        False, "--retry-unresolved", help="Also retry references that failed before"
    ),
) -> None:
    """Resolve imported cross-references into relations."""

    async def _run() -> None:
        from lexis_kg.api.dictionary import DictionaryImporter

        config = _load_config()
        async with _open_storage(config) as storage:
            summary = await DictionaryImporter(config, storage).link_relations(
                retry_unresolved=retry_unresolved
            )
        _print_summary("Relations", summary)

    asyncio.run(_run())


@app.command("ingest-texts")
def ingest_texts_command(
    path: Path = typer.Argument(
        ...,
        help="Directory of .txt files (id = file stem) or JSON object {id: text}",
        exists=True,
    ),
) -> None:
    """Segment running texts into sentence work items."""

    async def _run() -> None:
        from lexis_kg.api.dictionary import ingest_texts

        if path.is_dir():
            texts = {p.stem: p.read_text(encoding="utf-8") for p in sorted(path.glob("*.txt"))}
        else:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                console.print("[red]Expected a JSON object mapping text ids to texts[/]")
                raise typer.Exit(code=1)
            texts = {str(k): str(v) for k, v in data.items()}

        config = _load_config()
        async with _open_storage(config) as storage:
            count = await ingest_texts(storage, texts)
        console.print(f"[green]Ingested {len(texts)} texts as {count} work items[/]")

    asyncio.run(_run())


# -----------------------------------------------------------------------------
# Inspection and export
# -----------------------------------------------------------------------------


@app.command()
def resolve(
    term: str = typer.Argument(..., help="Free-text reference, e.g. 'Haus²' or 'see Hus'"),
) -> None:
    """Resolve one reference through the cascade and show the matching strategy."""

    async def _run() -> None:
        from lexis_kg.ingestion.resolution import ConceptIndex, ResolutionCascade

        config = _load_config()
        async with _open_storage(config) as storage:
            index = await ConceptIndex.load(
                storage,
                foreign_language=config.source_language,
                page_size=config.page_size,
            )
            resolution = ResolutionCascade(index).resolve_detailed(term)
            concepts = await storage.get_concepts([resolution.concept_id]) if resolution else []

        if resolution is None:
            console.print(f"[yellow]No concept found for '{term}'[/]")
            raise typer.Exit(code=1)
        label = concepts[0].label if concepts else "?"
        console.print(Panel(
            f"Concept: {resolution.concept_id}\n"
            f"Label: {label}\n"
            f"Strategy: {resolution.strategy}",
            title=f"Resolved '{term}'",
        ))

    asyncio.run(_run())


@app.command()
def export(
    tables: Optional[list[str]] = typer.Argument(None, help="Tables to export"),
    all_tables: bool = typer.Option(False, "--all", help="Export every table"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output directory"),
    fmt: str = typer.Option("parquet", "--format", "-f", help="parquet or csv"),
) -> None:
    """Export tables to Parquet or CSV files."""

    async def _run() -> None:
        from lexis_kg.storage.export import export_table

        config = _load_config()
        out_dir = out or Path(config.export_dir)
        async with _open_storage(config) as storage:
            names = storage.table_names() if all_tables else list(tables or [])
            if not names:
                console.print("[red]Name at least one table or pass --all[/]")
                raise typer.Exit(code=1)
            for name in names:
                try:
                    result = await export_table(
                        storage, name, out_dir, fmt=fmt, page_size=config.page_size
                    )
                except ValueError as e:
                    console.print(f"[red]{e}[/]")
                    raise typer.Exit(code=1)
                console.print(f"{result.table}: {result.rows} rows -> {result.path}")

    asyncio.run(_run())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port", "-p"),
) -> None:
    """Start the HTTP control surface."""
    import uvicorn

    from lexis_kg.providers import create_llm_provider
    from lexis_kg.server import create_app

    config = _load_config()
    storage = _open_storage(config)
    app_ = create_app(config, storage, create_llm_provider(config))
    try:
        uvicorn.run(app_, host=host, port=port)
    finally:
        asyncio.run(storage.close())


def main() -> None:
    """Entry point for the CLI."""
    app()
