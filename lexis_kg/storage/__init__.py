"""
Storage Layer

Modules:
    base: Abstract StorageBackend interface and StorageError
    duckdb/: DuckDB implementation (ledger, lexicon, derived tables)
    export: Paginated full-table dumps to Parquet / CSV

Design:
    - All operations are async; blocking DuckDB calls run in asyncio.to_thread
    - Reads are range-paginated and capped per request
    - Upserts are keyed by natural keys (sense_id, (text, language), term key)
"""

from lexis_kg.storage.base import StorageBackend, StorageError
from lexis_kg.storage.duckdb import DuckDBBackend

__all__ = ["StorageBackend", "StorageError", "DuckDBBackend"]
