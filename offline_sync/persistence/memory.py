"""In-memory persistence, for tests and ephemeral queues."""

from __future__ import annotations

import logging

from ..models import QueueItem
from .base import QueuePersistence, decode_items, encode_items

logger = logging.getLogger(__name__)


class MemoryQueuePersistence(QueuePersistence):
    """Keeps the queue as a serialized JSON string.

    Storing the encoded form rather than the objects means a reload yields
    fresh copies, just like a real durable backend would.
    """

    def __init__(self, raw: str | None = None):
        self.raw = raw
        self.save_count = 0

    async def load(self) -> list[QueueItem]:
        try:
            return decode_items(self.raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable in-memory queue: {e}")
            return []

    async def save(self, items: list[QueueItem]) -> None:
        self.raw = encode_items(items)
        self.save_count += 1
