"""
Job Ledger

Single source of truth for what remains to be enriched.

Transitions:
    reset_stale:      processing | error -> pending   (run start)
    mark_processing:  pending -> processing
    mark_completed:   processing -> completed
    mark_error:       processing -> error             (item kept, message stored)

Reads are paginated with a fixed page size so that backends with a
per-request row cap still return every matching row up to ``limit``.

Example:
    >>> ledger = JobLedger(storage, page_size=1000)
    >>> await ledger.reset_stale()
    >>> items = await ledger.select_pending(limit=5000)
    >>> claimed = await ledger.mark_processing([i.id for i in items[:3]])
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from lexis_kg.storage.base import StorageBackend
from lexis_kg.types import WorkItem, WorkStatus

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000

# Only stable ordering supported by the store.
_ORDER_BY = ("parent_id", "sequence")


class JobLedger:
    """Work item lifecycle on top of a storage backend."""

    def __init__(self, storage: StorageBackend, *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._storage = storage
        self._page_size = page_size

    async def reset_stale(self) -> int:
        """
        Move every processing or error item back to pending.

        Idempotent; run at pipeline start to recover items left behind by an
        interrupted run.

        Returns:
            Number of items reset
        """
        count = await self._storage.reset_work_items(
            [WorkStatus.PROCESSING, WorkStatus.ERROR],
            WorkStatus.PENDING,
        )
        if count:
            logger.info(f"Reset {count} stale work items to pending")
        return count

    async def select_pending(
        self,
        limit: int,
        order_by: Sequence[str] = _ORDER_BY,
    ) -> list[WorkItem]:
        """
        Return up to ``limit`` pending items ordered by (parent_id, sequence).

        Pages through the store until ``limit`` rows are collected or a short
        page signals the end.
        """
        if tuple(order_by) != _ORDER_BY:
            raise ValueError(f"Unsupported ordering: {tuple(order_by)}")
        if limit <= 0:
            return []

        page_size = min(self._page_size, self._storage.max_rows_per_request)
        items: list[WorkItem] = []
        offset = 0
        while len(items) < limit:
            want = min(page_size, limit - len(items))
            page = await self._storage.fetch_work_items(
                WorkStatus.PENDING, offset=offset, limit=want
            )
            items.extend(page)
            offset += len(page)
            if len(page) < want:
                break

        logger.debug(f"Selected {len(items)} pending items (limit {limit})")
        return items

    async def mark_processing(self, ids: list[str]) -> list[str]:
        """
        Claim pending items.

        Returns:
            Ids actually moved to processing; items no longer pending are skipped
        """
        claimed = await self._storage.update_work_status(
            ids, WorkStatus.PROCESSING, expected=[WorkStatus.PENDING]
        )
        if len(claimed) != len(set(ids)):
            skipped = sorted(set(ids) - set(claimed))
            logger.warning(f"Could not claim {len(skipped)} items (not pending): {skipped[:5]}")
        return claimed

    async def mark_completed(self, item_id: str) -> bool:
        updated = await self._storage.update_work_status(
            [item_id], WorkStatus.COMPLETED, expected=[WorkStatus.PROCESSING]
        )
        if not updated:
            logger.warning(f"Work item {item_id} was not processing; completion ignored")
        return bool(updated)

    async def mark_error(self, item_id: str, message: str) -> bool:
        """Fail an item, keeping it for the next stale reset."""
        updated = await self._storage.update_work_status(
            [item_id],
            WorkStatus.ERROR,
            expected=[WorkStatus.PROCESSING],
            error_message=message or "unknown error",
        )
        if not updated:
            logger.warning(f"Work item {item_id} was not processing; error ignored")
        return bool(updated)

    async def status_counts(self) -> dict[str, int]:
        return await self._storage.count_work_items()
