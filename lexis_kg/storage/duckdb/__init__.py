"""DuckDB storage backend."""

from lexis_kg.storage.duckdb.backend import DuckDBBackend

__all__ = ["DuckDBBackend"]
