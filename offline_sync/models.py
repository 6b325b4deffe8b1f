"""
Data model for the offline sync queue.

QueueItem is the only durable record; everything else here is produced
fresh per sync pass and handed to listeners.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class OperationType(Enum):
    """Kind of mutation recorded in the queue."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ConflictStrategy(Enum):
    """Policy for resolving a detected conflict."""

    CLIENT_WINS = "client-wins"
    SERVER_WINS = "server-wins"
    MERGE = "merge"
    MANUAL = "manual"

    @classmethod
    def parse(cls, value: ConflictStrategy | str | None) -> ConflictStrategy:
        """Coerce a strategy name, falling back to server-wins for unknown names."""
        if isinstance(value, ConflictStrategy):
            return value
        if value is None:
            return cls.SERVER_WINS
        try:
            return cls(value.replace("_", "-").lower())
        except ValueError:
            return cls.SERVER_WINS


class ConflictKind(Enum):
    """How a conflict was detected."""

    DUPLICATE_KEY = "duplicate_key"  # create hit an existing row
    STALE_WRITE = "stale_write"  # server version marker is newer
    DELETED_ON_SERVER = "deleted_on_server"  # update target no longer exists


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def generate_item_id() -> str:
    """Generate a queue item id: enqueue time plus a random suffix."""
    return f"{now_ms()}-{uuid.uuid4().hex[:9]}"


@dataclass
class QueueItem:
    """A durable record of one pending mutation.

    Attributes:
        id: Unique identifier, generated at enqueue time
        table: Target collection/table name
        operation: Kind of mutation
        data: Row payload (create/update) or at least the primary key (delete)
        timestamp: Enqueue time in epoch milliseconds
        retry_count: Number of failed sync attempts so far
        max_retries: Ceiling after which the item is dropped
    """

    id: str
    table: str
    operation: OperationType
    data: dict[str, Any]
    timestamp: int = field(default_factory=now_ms)
    retry_count: int = 0
    max_retries: int = 3

    @property
    def exhausted(self) -> bool:
        """True once the item has used up its retries."""
        return self.retry_count >= self.max_retries

    def copy(self) -> QueueItem:
        """Detached copy, safe to hand out to callers."""
        return QueueItem(
            id=self.id,
            table=self.table,
            operation=self.operation,
            data=dict(self.data),
            timestamp=self.timestamp,
            retry_count=self.retry_count,
            max_retries=self.max_retries,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "table": self.table,
            "operation": self.operation.value,
            "data": self.data,
            "timestamp": self.timestamp,
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueueItem:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            table=data["table"],
            operation=OperationType(data["operation"]),
            data=data.get("data") or {},
            timestamp=int(data.get("timestamp", 0)),
            retry_count=int(data.get("retryCount", 0)),
            max_retries=int(data.get("maxRetries", 3)),
        )


@dataclass
class ConflictResolution:
    """Outcome of the conflict resolver for one item."""

    strategy: ConflictStrategy
    resolved_data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "strategy": self.strategy.value,
            "resolved_data": self.resolved_data,
        }


@dataclass
class ConflictOutcome:
    """A conflict encountered during a sync pass."""

    item: QueueItem
    server_data: dict[str, Any]
    kind: ConflictKind
    resolution: ConflictResolution | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "item": self.item.to_dict(),
            "server_data": self.server_data,
            "kind": self.kind.value,
            "resolution": self.resolution.to_dict() if self.resolution else None,
        }


@dataclass
class SyncResult:
    """Aggregate result of one sync pass."""

    success: bool
    synced: int = 0
    failed: int = 0
    retried: int = 0
    conflicts: list[ConflictOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @classmethod
    def skipped(cls, reason: str) -> SyncResult:
        """Empty result for a pass that never touched the queue."""
        return cls(success=False, errors=[reason])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "synced": self.synced,
            "failed": self.failed,
            "retried": self.retried,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


@dataclass
class QueueStatus:
    """Snapshot of the queue for status displays."""

    total: int
    pending: int
    failed: int
    is_online: bool
    is_syncing: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total": self.total,
            "pending": self.pending,
            "failed": self.failed,
            "is_online": self.is_online,
            "is_syncing": self.is_syncing,
        }
