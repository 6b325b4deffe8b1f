"""
Durable, ordered store of pending mutations.

The store keeps the queue in memory and writes the full snapshot through
a persistence backend after every mutation, so the queue survives process
restarts in enqueue order. Mutations are serialised with an asyncio lock:
the producer (enqueue) may run at any time, including in the middle of a
sync pass, while the engine removes and updates items.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .models import OperationType, QueueItem, generate_item_id
from .persistence.base import QueuePersistence

logger = logging.getLogger(__name__)


def _dedupe(items: list[QueueItem]) -> list[QueueItem]:
    """Keep the first occurrence of each id (hand-edited files may repeat one)."""
    seen: set[str] = set()
    unique = []
    for item in items:
        if item.id in seen:
            logger.warning(f"Ignoring duplicate queue item {item.id} on load")
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


class QueueStore:
    """FIFO queue of QueueItems backed by a persistence port."""

    def __init__(self, persistence: QueuePersistence):
        """Initialize the queue store.

        Args:
            persistence: Backend that stores the queue snapshot
        """
        self.persistence = persistence
        self._items: list[QueueItem] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._items)

    async def load(self) -> list[QueueItem]:
        """Load the persisted queue, replacing the in-memory copy.

        The persistence backend already degrades corrupt state to an
        empty queue; duplicate ids from a hand-edited file keep their
        first occurrence.
        """
        async with self._lock:
            self._items = _dedupe(await self.persistence.load())
            self._loaded = True
            logger.debug(f"Loaded {len(self._items)} queued operations")
            return self.snapshot()

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._items = _dedupe(await self.persistence.load())
            self._loaded = True

    async def save(self, items: list[QueueItem] | None = None) -> None:
        """Persist a snapshot (the current queue if none given)."""
        async with self._lock:
            if items is not None:
                self._items = [item.copy() for item in items]
                self._loaded = True
            await self._persist()

    async def _persist(self) -> None:
        await self.persistence.save(self._items)

    async def enqueue(
        self,
        table: str,
        operation: OperationType | str,
        data: dict[str, Any],
        max_retries: int = 3,
    ) -> str:
        """Append a new mutation and persist the queue.

        The item stays queued in memory even if persisting fails; the
        failure is raised so the caller knows the item is not yet durable.

        Args:
            table: Target table name
            operation: create, update or delete
            data: Row payload
            max_retries: Retry ceiling for this item

        Returns:
            The new item id

        Raises:
            ValueError: For an unknown operation or negative max_retries
            StorageIOError: If the snapshot could not be persisted
        """
        operation = OperationType(operation)
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        async with self._lock:
            await self._ensure_loaded()

            item_id = generate_item_id()
            while any(existing.id == item_id for existing in self._items):
                item_id = generate_item_id()

            self._items.append(
                QueueItem(
                    id=item_id,
                    table=table,
                    operation=operation,
                    data=dict(data),
                    max_retries=max_retries,
                )
            )
            await self._persist()

        logger.debug(f"Queued {operation.value} on {table} as {item_id}")
        return item_id

    async def remove(self, item_id: str) -> bool:
        """Remove an item and persist the queue.

        Returns:
            True if the item was found and removed
        """
        async with self._lock:
            remaining = [item for item in self._items if item.id != item_id]
            if len(remaining) == len(self._items):
                return False
            await self.persistence.save(remaining)
            self._items = remaining
            return True

    async def increment_retry(self, item_id: str) -> int | None:
        """Increment an item's retry count and persist the queue.

        Returns:
            The new retry count, or None if the item is not queued
        """
        async with self._lock:
            for index, item in enumerate(self._items):
                if item.id == item_id:
                    updated = item.copy()
                    updated.retry_count += 1
                    items = list(self._items)
                    items[index] = updated
                    await self.persistence.save(items)
                    self._items = items
                    return updated.retry_count
            return None

    async def clear(self) -> int:
        """Drop every queued item without syncing.

        Returns:
            Number of items removed
        """
        async with self._lock:
            count = len(self._items)
            await self.persistence.save([])
            self._items = []
            return count

    def get(self, item_id: str) -> QueueItem | None:
        """Get a copy of a queued item by id."""
        for item in self._items:
            if item.id == item_id:
                return item.copy()
        return None

    def snapshot(self) -> list[QueueItem]:
        """Copies of the queued items, in FIFO order.

        Iterating a snapshot keeps items enqueued mid-pass out of that pass.
        """
        return [item.copy() for item in self._items]
