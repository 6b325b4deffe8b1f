"""
Offline Sync

Durable offline mutation queue with automatic replay against a remote
data store.

Provides:
- Persistent FIFO queue of create/update/delete mutations (JSONL, SQLite, memory)
- Sync engine with last-write-wins conflict detection
- Conflict strategies: server-wins, client-wins, merge, manual
- Exponential backoff with jitter for transient remote errors
- Connectivity monitoring with automatic sync on reconnect
- Remote adapters for PostgREST (Supabase) and Azure Cosmos DB

Usage:

    >>> from offline_sync import PostgrestRemoteStore, create_sync_service
    >>> remote = PostgrestRemoteStore("https://proj.supabase.co/rest/v1", api_key=key)
    >>> async with await create_sync_service(remote) as service:
    ...     await service.queue_operation("students", "update", {"id": "s1", "name": "Ada"})
    ...     result = await service.sync("merge")
    ...     print(service.get_status().to_dict())
"""

from .config import SyncConfig
from .conflict import ConflictResolver, merge_rows
from .engine import SyncEngine
from .exceptions import (
    ConfigurationError,
    DuplicateKeyError,
    NotFoundError,
    OfflineSyncError,
    PermanentDropError,
    RemoteStoreError,
    StaleWriteError,
    StorageIOError,
    SyncConflictError,
    TransientError,
)
from .logging_utils import configure_structured_logging, get_sync_logger
from .models import (
    ConflictKind,
    ConflictOutcome,
    ConflictResolution,
    ConflictStrategy,
    OperationType,
    QueueItem,
    QueueStatus,
    SyncResult,
)
from .network import ManualNetworkStatus, NetworkMonitor, NetworkStatusPort, ProbingNetworkStatus
from .persistence import (
    JsonlQueuePersistence,
    MemoryQueuePersistence,
    QueuePersistence,
    SqliteQueuePersistence,
)
from .queue_store import QueueStore
from .remote import InMemoryRemoteStore, PostgrestRemoteStore, RemoteDataStore
from .retry import RetryPolicy, RetryScheduler
from .service import OfflineSyncService, build_postgrest_store, create_sync_service

__version__ = "0.1.0"

__all__ = [
    # Service
    "OfflineSyncService",
    "create_sync_service",
    "build_postgrest_store",
    "SyncConfig",
    # Engine
    "SyncEngine",
    "ConflictResolver",
    "merge_rows",
    "RetryPolicy",
    "RetryScheduler",
    # Queue
    "QueueStore",
    "QueuePersistence",
    "JsonlQueuePersistence",
    "MemoryQueuePersistence",
    "SqliteQueuePersistence",
    # Network
    "NetworkStatusPort",
    "ManualNetworkStatus",
    "ProbingNetworkStatus",
    "NetworkMonitor",
    # Remote
    "RemoteDataStore",
    "InMemoryRemoteStore",
    "PostgrestRemoteStore",
    # Models
    "OperationType",
    "ConflictStrategy",
    "ConflictKind",
    "QueueItem",
    "ConflictResolution",
    "ConflictOutcome",
    "SyncResult",
    "QueueStatus",
    # Exceptions
    "OfflineSyncError",
    "RemoteStoreError",
    "DuplicateKeyError",
    "NotFoundError",
    "TransientError",
    "SyncConflictError",
    "StaleWriteError",
    "PermanentDropError",
    "StorageIOError",
    "ConfigurationError",
    # Logging
    "configure_structured_logging",
    "get_sync_logger",
]
