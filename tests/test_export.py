"""Tests for paginated table export."""

import pyarrow.csv as pv
import pyarrow.parquet as pq
import pytest

from lexis_kg.storage.duckdb import DuckDBBackend
from lexis_kg.storage.export import export_table
from lexis_kg.types import WorkItem


def _items(n):
    return [
        WorkItem(id=f"i{k}", parent_id="p", sequence=k, source_text=f"Sentence {k}.")
        for k in range(n)
    ]


class TestExportTable:
    """Test Parquet and CSV dumps."""

    @pytest.mark.asyncio
    async def test_parquet_pages_through_row_cap(self, tmp_path):
        async with DuckDBBackend(":memory:", max_rows_per_request=2) as storage:
            await storage.add_work_items(_items(5))

            result = await export_table(storage, "work_items", tmp_path, page_size=100)

        assert result.rows == 5
        assert result.pages == 3
        assert result.path == tmp_path / "work_items.parquet"
        table = pq.read_table(result.path)
        assert table.column("id").to_pylist() == ["i0", "i1", "i2", "i3", "i4"]

    @pytest.mark.asyncio
    async def test_csv(self, storage, tmp_path):
        await storage.add_work_items(_items(2))

        result = await export_table(storage, "work_items", tmp_path, fmt="csv")

        table = pv.read_csv(result.path)
        assert table.num_rows == 2
        assert "source_text" in table.column_names

    @pytest.mark.asyncio
    async def test_empty_table_writes_schema(self, storage, tmp_path):
        result = await export_table(storage, "highlights", tmp_path)

        assert result.rows == 0
        assert "term_key" in pq.read_table(result.path).column_names

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, storage, tmp_path):
        await storage.add_work_items(_items(1))
        await export_table(storage, "work_items", tmp_path)

        assert not list(tmp_path.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_unknown_table(self, storage, tmp_path):
        with pytest.raises(ValueError, match="Unknown table"):
            await export_table(storage, "secrets", tmp_path)

    @pytest.mark.asyncio
    async def test_unknown_format(self, storage, tmp_path):
        with pytest.raises(ValueError, match="Unsupported export format"):
            await export_table(storage, "work_items", tmp_path, fmt="xlsx")
