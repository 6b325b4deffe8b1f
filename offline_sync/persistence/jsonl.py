"""
JSONL file persistence for the offline queue.

One queue item per line, in enqueue order. Writes go to a temp file in
the same directory which is then renamed over the queue file, so a crash
mid-write leaves either the old or the new snapshot, never half of one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError
from ..models import QueueItem
from .base import QueuePersistence

logger = logging.getLogger(__name__)


class JsonlQueuePersistence(QueuePersistence):
    """Persists the queue snapshot to a JSONL file."""

    def __init__(self, queue_path: Path | str):
        """Initialize the file backend.

        Args:
            queue_path: Path to the queue file (parent dirs created on save)
        """
        self.queue_path = Path(queue_path).expanduser()

    async def load(self) -> list[QueueItem]:
        """Load the queue, falling back to empty on any read or parse error."""
        if not await aiofiles.os.path.exists(self.queue_path):
            return []

        items: list[QueueItem] = []
        try:
            async with aiofiles.open(self.queue_path, encoding="utf-8") as f:
                async for line in f:
                    line = line.strip()
                    if line:
                        items.append(QueueItem.from_dict(json.loads(line)))
        except (ValueError, KeyError, TypeError, OSError) as e:
            # Corrupted queue, start fresh
            logger.warning(f"Failed to load sync queue from {self.queue_path}: {e}")
            return []

        return items

    async def save(self, items: list[QueueItem]) -> None:
        """Write the snapshot atomically using temp file + rename."""
        try:
            await aiofiles.os.makedirs(self.queue_path.parent, exist_ok=True)
        except OSError as e:
            raise StorageIOError("create_directory", str(self.queue_path.parent), e) from e

        fd, temp_path = tempfile.mkstemp(
            dir=self.queue_path.parent,
            prefix=".tmp_",
            suffix=".jsonl",
        )
        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                for item in items:
                    await f.write(json.dumps(item.to_dict()) + "\n")
                await f.flush()
                os.fsync(f.fileno())

            await aiofiles.os.replace(temp_path, self.queue_path)
        except Exception as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise StorageIOError("save_queue", str(self.queue_path), e) from e
