"""
Custom exceptions for the offline sync engine.

Remote store adapters raise the RemoteStoreError family so the engine
can classify failures without knowing the transport. Conflict and drop
errors are produced by the engine itself and never escape sync().
"""

from typing import Any


class OfflineSyncError(Exception):
    """Base exception for all offline sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RemoteStoreError(OfflineSyncError):
    """Raised by a remote data store adapter."""


class DuplicateKeyError(RemoteStoreError):
    """Raised when an insert collides with an existing row."""

    def __init__(self, table: str, row_id: Any):
        super().__init__(
            f"Duplicate key in {table}: {row_id}",
            {"table": table, "row_id": row_id},
        )
        self.table = table
        self.row_id = row_id


class NotFoundError(RemoteStoreError):
    """Raised when a row does not exist on the remote store."""

    def __init__(self, table: str, row_id: Any):
        super().__init__(
            f"Row not found in {table}: {row_id}",
            {"table": table, "row_id": row_id},
        )
        self.table = table
        self.row_id = row_id


class TransientError(RemoteStoreError):
    """Raised for any other remote failure; retried with backoff."""

    def __init__(
        self,
        operation: str,
        table: str | None = None,
        cause: Exception | None = None,
        status: int | None = None,
    ):
        details: dict[str, Any] = {"operation": operation}
        if table:
            details["table"] = table
        if status is not None:
            details["status"] = status
        if cause:
            details["cause"] = str(cause)
        message = f"Remote {operation} failed"
        if table:
            message += f" on {table}"
        if cause:
            message += f": {cause}"
        elif status is not None:
            message += f": HTTP {status}"
        super().__init__(message, details)
        self.operation = operation
        self.table = table
        self.cause = cause
        self.status = status


class SyncConflictError(OfflineSyncError):
    """Raised when a queued write cannot be applied blindly.

    Carries the server snapshot that the conflict resolver works from.
    """

    kind = "conflict"

    def __init__(
        self,
        item_id: str,
        table: str,
        server_data: dict[str, Any],
        kind: str | None = None,
    ):
        kind = kind or self.kind
        super().__init__(
            f"Sync conflict for item {item_id} on {table}: {kind}",
            {"item_id": item_id, "table": table, "kind": kind},
        )
        self.item_id = item_id
        self.table = table
        self.server_data = server_data
        self.kind = kind


class StaleWriteError(SyncConflictError):
    """Raised when the server row carries a newer version marker."""

    kind = "stale_write"

    def __init__(
        self,
        item_id: str,
        table: str,
        server_data: dict[str, Any],
        local_version: Any = None,
        remote_version: Any = None,
    ):
        super().__init__(item_id, table, server_data)
        if local_version is not None:
            self.details["local_version"] = str(local_version)
        if remote_version is not None:
            self.details["remote_version"] = str(remote_version)
        self.local_version = local_version
        self.remote_version = remote_version


class PermanentDropError(OfflineSyncError):
    """Describes a queue item dropped after exhausting its retries.

    Only ever reported through SyncResult.failed and SyncResult.errors.
    """

    def __init__(self, item_id: str, retries: int, cause: Exception | None = None):
        details: dict[str, Any] = {"item_id": item_id, "retries": retries}
        if cause:
            details["cause"] = str(cause)
        message = f"Dropped item {item_id} after {retries} retries"
        if cause:
            message += f": {cause}"
        super().__init__(message, details)
        self.item_id = item_id
        self.retries = retries
        self.cause = cause


class StorageIOError(OfflineSyncError):
    """Raised when the queue cannot be read from or written to its backend."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Queue storage failed during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class ConfigurationError(OfflineSyncError):
    """Raised when sync configuration is invalid."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Invalid configuration for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
