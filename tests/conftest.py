"""Shared fixtures: fast configuration and an in-memory DuckDB store."""

import pytest
import pytest_asyncio

from lexis_kg.config import LexisConfig
from lexis_kg.storage.duckdb import DuckDBBackend


@pytest.fixture
def config():
    """Configuration with every delay set to zero."""
    return LexisConfig(
        db_path=":memory:",
        batch_size=2,
        concurrency=3,
        stagger_ms=0,
        cooldown_seconds=0.0,
        run_budget=100,
        retry_max_attempts=3,
        retry_base_delay=0.0,
        retry_jitter=0.0,
        trace_prompts=0,
        context_window_before=1,
        context_window_after=1,
    )


@pytest_asyncio.fixture
async def storage():
    backend = DuckDBBackend(":memory:")
    await backend.initialize()
    yield backend
    await backend.close()
