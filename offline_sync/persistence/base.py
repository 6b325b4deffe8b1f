"""
Persistence port for the offline queue.

A persistence backend stores the whole queue snapshot, in order, and gives
it back on load. Backends must degrade to an empty queue when the stored
state is corrupt or unreadable rather than raising from load().
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from ..models import QueueItem


class QueuePersistence(ABC):
    """Abstract durable store for the queue snapshot."""

    @abstractmethod
    async def load(self) -> list[QueueItem]:
        """Load the persisted queue, in enqueue order.

        Returns:
            Persisted items, or an empty list if nothing usable is stored
        """

    @abstractmethod
    async def save(self, items: list[QueueItem]) -> None:
        """Replace the persisted queue with the given snapshot.

        Raises:
            StorageIOError: If the snapshot could not be written
        """

    async def close(self) -> None:
        """Release any held resources."""


def encode_items(items: list[QueueItem]) -> str:
    """Serialize a snapshot as a JSON array."""
    return json.dumps([item.to_dict() for item in items])


def decode_items(raw: str | bytes | None) -> list[QueueItem]:
    """Parse a JSON array snapshot.

    Raises:
        ValueError: If the payload is not a list of queue item objects
        KeyError: If an item is missing a required field
    """
    if not raw:
        return []
    payload: Any = json.loads(raw)
    if not isinstance(payload, list):
        raise ValueError("Queue snapshot must be a JSON array")
    return [QueueItem.from_dict(entry) for entry in payload]
