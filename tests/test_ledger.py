"""Tests for the job ledger: stale reset, paginated selection, transitions."""

import pytest

from lexis_kg.ingestion.ledger import JobLedger
from lexis_kg.storage.duckdb import DuckDBBackend
from lexis_kg.types import WorkItem, WorkStatus


def _item(item_id, parent_id="p1", sequence=0, status=WorkStatus.PENDING):
    return WorkItem(
        id=item_id,
        parent_id=parent_id,
        sequence=sequence,
        source_text=f"text {item_id}",
        status=status,
    )


class TestResetStale:
    """Test stale-job recovery."""

    @pytest.mark.asyncio
    async def test_resets_processing_and_error(self, storage):
        """Processing and error items go back to pending; completed stays."""
        await storage.add_work_items([
            _item("a", status=WorkStatus.PROCESSING),
            _item("b", sequence=1, status=WorkStatus.ERROR),
            _item("c", sequence=2, status=WorkStatus.COMPLETED),
            _item("d", sequence=3),
        ])
        ledger = JobLedger(storage)

        assert await ledger.reset_stale() == 2

        counts = await ledger.status_counts()
        assert counts["pending"] == 3
        assert counts["completed"] == 1
        assert counts["processing"] == 0
        assert counts["error"] == 0

    @pytest.mark.asyncio
    async def test_idempotent(self, storage):
        """A second reset changes nothing."""
        await storage.add_work_items([_item("a", status=WorkStatus.PROCESSING)])
        ledger = JobLedger(storage)

        await ledger.reset_stale()
        before = await ledger.status_counts()
        assert await ledger.reset_stale() == 0
        assert await ledger.status_counts() == before


class TestSelectPending:
    """Test paginated selection of pending work."""

    @pytest.mark.asyncio
    async def test_ordered_by_parent_and_sequence(self, storage):
        """Items come back ordered by (parent_id, sequence), not insertion order."""
        await storage.add_work_items([
            _item("b2", parent_id="b", sequence=2),
            _item("a1", parent_id="a", sequence=1),
            _item("b0", parent_id="b", sequence=0),
            _item("a0", parent_id="a", sequence=0),
        ])
        items = await JobLedger(storage).select_pending(10)
        assert [i.id for i in items] == ["a0", "a1", "b0", "b2"]

    @pytest.mark.asyncio
    async def test_pages_through_row_cap(self):
        """Selection crosses the store's row cap without losing order."""
        async with DuckDBBackend(":memory:", max_rows_per_request=2) as storage:
            await storage.add_work_items([_item(f"i{n}", sequence=n) for n in range(5)])
            ledger = JobLedger(storage, page_size=1000)

            items = await ledger.select_pending(10)
            assert [i.id for i in items] == ["i0", "i1", "i2", "i3", "i4"]

            limited = await ledger.select_pending(3)
            assert [i.id for i in limited] == ["i0", "i1", "i2"]

    @pytest.mark.asyncio
    async def test_skips_non_pending(self, storage):
        """Only pending items are selected."""
        await storage.add_work_items([
            _item("a"),
            _item("b", sequence=1, status=WorkStatus.COMPLETED),
        ])
        items = await JobLedger(storage).select_pending(10)
        assert [i.id for i in items] == ["a"]

    @pytest.mark.asyncio
    async def test_zero_limit(self, storage):
        """A non-positive limit selects nothing."""
        await storage.add_work_items([_item("a")])
        assert await JobLedger(storage).select_pending(0) == []

    @pytest.mark.asyncio
    async def test_unsupported_ordering(self, storage):
        """Only the (parent_id, sequence) ordering is supported."""
        with pytest.raises(ValueError):
            await JobLedger(storage).select_pending(5, order_by=("id",))


class TestTransitions:
    """Test ledger status transitions."""

    @pytest.mark.asyncio
    async def test_claim_only_pending(self, storage):
        """A second claim of the same items claims nothing."""
        await storage.add_work_items([_item("a"), _item("b", sequence=1)])
        ledger = JobLedger(storage)

        assert sorted(await ledger.mark_processing(["a", "b"])) == ["a", "b"]
        assert await ledger.mark_processing(["a", "b"]) == []

    @pytest.mark.asyncio
    async def test_complete_requires_processing(self, storage):
        """A pending item cannot jump straight to completed."""
        await storage.add_work_items([_item("a")])
        ledger = JobLedger(storage)

        assert await ledger.mark_completed("a") is False
        await ledger.mark_processing(["a"])
        assert await ledger.mark_completed("a") is True

        [item] = await storage.get_work_items(["a"])
        assert item.status == WorkStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_error_keeps_message(self, storage):
        """Failed items carry their error message."""
        await storage.add_work_items([_item("a")])
        ledger = JobLedger(storage)
        await ledger.mark_processing(["a"])

        assert await ledger.mark_error("a", "Invalid result") is True

        [item] = await storage.get_work_items(["a"])
        assert item.status == WorkStatus.ERROR
        assert item.error_message == "Invalid result"
        assert item.updated_at is not None

    @pytest.mark.asyncio
    async def test_completed_never_reset(self, storage):
        """Completed items survive a stale reset untouched."""
        await storage.add_work_items([_item("a")])
        ledger = JobLedger(storage)
        await ledger.mark_processing(["a"])
        await ledger.mark_completed("a")

        await ledger.reset_stale()

        [item] = await storage.get_work_items(["a"])
        assert item.status == WorkStatus.COMPLETED


class TestLedgerInit:
    """Test constructor validation."""

    def test_rejects_non_positive_page_size(self):
        """Page size must be positive."""
        with pytest.raises(ValueError):
            JobLedger(object(), page_size=0)
