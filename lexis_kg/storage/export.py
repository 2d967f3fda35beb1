"""
Table Export

Paginated full-table dumps to Parquet or CSV.

Pages are read with the store's per-request cap and streamed into one output
file, so a table of any size is exported without holding it in memory. The
file is written to a temporary name and renamed when complete; a file lock
keeps two exports of the same target from interleaving.

Example:
    >>> result = await export_table(storage, "enriched_results", "./exports")
    >>> result.path, result.rows
    (PosixPath('exports/enriched_results.parquet'), 1532)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import pyarrow as pa
import pyarrow.csv as pv
import pyarrow.parquet as pq
from filelock import FileLock

from lexis_kg.storage.base import StorageBackend

logger = logging.getLogger(__name__)

ExportFormat = Literal["parquet", "csv"]


@dataclass(frozen=True)
class ExportResult:
    table: str
    path: Path
    rows: int
    pages: int


class _TableWriter:
    """Streams Arrow pages into a Parquet or CSV file."""

    def __init__(self, path: Path, schema: pa.Schema, fmt: ExportFormat) -> None:
        self._writer: pq.ParquetWriter | pv.CSVWriter
        if fmt == "parquet":
            self._writer = pq.ParquetWriter(path, schema, compression="zstd")
        else:
            self._writer = pv.CSVWriter(path, schema)

    def write(self, page: pa.Table) -> None:
        self._writer.write_table(page)

    def close(self) -> None:
        self._writer.close()


async def export_table(
    storage: StorageBackend,
    table: str,
    out_dir: str | Path,
    *,
    fmt: ExportFormat = "parquet",
    page_size: int = 1000,
    lock_timeout: float = 30,
) -> ExportResult:
    """
    Dump every row of ``table`` to ``out_dir/<table>.<fmt>``.

    Args:
        storage: Initialized storage backend
        table: Table name (see ``storage.table_names()``)
        out_dir: Output directory, created if missing
        fmt: "parquet" or "csv"
        page_size: Rows per read (capped by the backend)
        lock_timeout: Seconds to wait for a concurrent export of the same file

    Raises:
        ValueError: Unknown table or format
    """
    if fmt not in ("parquet", "csv"):
        raise ValueError(f"Unsupported export format: {fmt}")
    if table not in storage.table_names():
        raise ValueError(f"Unknown table: {table}")

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"{table}.{fmt}"
    temp_path = out_dir / f".{table}.{fmt}.tmp"

    with FileLock(out_dir / f".{table}.{fmt}.lock", timeout=lock_timeout):
        rows = 0
        pages = 0
        offset = 0
        writer: _TableWriter | None = None
        try:
            while True:
                page = await storage.fetch_arrow_page(table, offset=offset, limit=page_size)
                if writer is None:
                    writer = _TableWriter(temp_path, page.schema, fmt)
                if page.num_rows == 0:
                    break
                writer.write(page)
                rows += page.num_rows
                pages += 1
                offset += page.num_rows
                if page.num_rows < min(page_size, storage.max_rows_per_request):
                    break
        finally:
            if writer is not None:
                writer.close()

        temp_path.replace(path)

    logger.info(f"Exported {rows} rows from {table} to {path} ({pages} pages)")
    return ExportResult(table=table, path=path, rows=rows, pages=pages)
