"""
Offline sync service.

The surface the host application talks to. Wires the queue store, the
network monitor and the sync engine together:

- queue_operation() records a mutation durably and, when online,
  kicks off a background pass
- coming back online with queued work kicks off a background pass
- sync(), retry_item() and resolve_manually() run on demand
- get_status() and listeners feed status displays

Example:
    >>> config = SyncConfig.from_env()
    >>> remote = build_postgrest_store(config, "https://proj.supabase.co/rest/v1", api_key=key)
    >>> async with await create_sync_service(remote, config) as service:
    ...     await service.queue_operation("students", "update", {"id": "s1", "name": "A"})
    ...     status = service.get_status()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .config import SyncConfig
from .conflict import ConflictResolver
from .engine import SyncEngine, SyncListener
from .models import ConflictStrategy, OperationType, QueueItem, QueueStatus, SyncResult
from .network import ManualNetworkStatus, NetworkMonitor, NetworkStatusPort, ProbingNetworkStatus
from .persistence import (
    JsonlQueuePersistence,
    MemoryQueuePersistence,
    QueuePersistence,
    SqliteQueuePersistence,
)
from .queue_store import QueueStore
from .remote.base import RemoteDataStore
from .remote.postgrest import PostgrestRemoteStore
from .retry import RetryScheduler

logger = logging.getLogger(__name__)


def build_persistence(config: SyncConfig) -> QueuePersistence:
    """Create the queue persistence backend named in the config."""
    if config.persistence == "memory":
        return MemoryQueuePersistence()
    if config.persistence == "sqlite":
        return SqliteQueuePersistence(config.queue_path.with_suffix(".db"))
    return JsonlQueuePersistence(config.queue_path)


def build_network_status(config: SyncConfig) -> NetworkStatusPort:
    """Create the connectivity source named in the config."""
    if config.connectivity_check_url:
        kwargs: dict[str, Any] = {"interval": config.probe_interval_s}
        if config.request_timeout_s is not None:
            kwargs["timeout"] = config.request_timeout_s
        return ProbingNetworkStatus(config.connectivity_check_url, **kwargs)
    return ManualNetworkStatus(online=True)


def build_postgrest_store(
    config: SyncConfig,
    base_url: str,
    api_key: str | None = None,
    access_token: str | None = None,
) -> PostgrestRemoteStore:
    """Create a PostgREST adapter using the config's id field and request timeout."""
    return PostgrestRemoteStore(
        base_url,
        api_key=api_key,
        access_token=access_token,
        id_field=config.id_field,
        request_timeout=config.request_timeout_s,
    )


class OfflineSyncService:
    """Durable offline queue with automatic replay."""

    def __init__(
        self,
        remote: RemoteDataStore,
        persistence: QueuePersistence | None = None,
        network: NetworkStatusPort | None = None,
        config: SyncConfig | None = None,
        scheduler: RetryScheduler | None = None,
    ):
        """Initialize the service.

        Args:
            remote: Remote data store the queue is replayed against
            persistence: Queue backend (built from config if None)
            network: Connectivity source (built from config if None)
            config: Service configuration
            scheduler: Retry scheduler (built from config if None)
        """
        self.config = config or SyncConfig()
        self.remote = remote
        self.network = network or build_network_status(self.config)
        self.queue = QueueStore(persistence or build_persistence(self.config))
        self.monitor = NetworkMonitor(self.network, self.queue, self._on_reconnect)
        self.engine = SyncEngine(
            queue=self.queue,
            remote=remote,
            is_online=self.network.is_online,
            resolver=ConflictResolver(self.config.version_field),
            scheduler=scheduler or RetryScheduler(self.config.retry_policy()),
            id_field=self.config.id_field,
            version_field=self.config.version_field,
        )

        self._background: set[asyncio.Task[SyncResult]] = set()
        self._started = False

    async def start(self) -> None:
        """Load the persisted queue and begin watching connectivity.

        If already online with queued work left over from a previous run,
        a pass is started in the background.
        """
        if self._started:
            return

        await self.queue.load()
        self.monitor.start()
        if isinstance(self.network, ProbingNetworkStatus):
            await self.network.start()
        self._started = True

        logger.info(f"Offline sync started with {len(self.queue)} queued operations")
        if self.network.is_online() and len(self.queue) > 0:
            self._schedule_sync()

    async def close(self) -> None:
        """Stop watching connectivity and wait for background passes."""
        self.monitor.stop()
        if isinstance(self.network, ProbingNetworkStatus):
            await self.network.stop()
        await self.wait_for_background()
        await self.queue.persistence.close()
        self._started = False

    async def __aenter__(self) -> OfflineSyncService:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _on_reconnect(self) -> None:
        if self.config.sync_on_reconnect:
            self._schedule_sync()

    def _schedule_sync(self) -> None:
        """Start a pass in the background, keeping a reference to the task."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; background sync skipped")
            return

        task = loop.create_task(self.sync())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_for_background(self) -> None:
        """Wait until every background pass started so far has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def queue_operation(
        self,
        table: str,
        operation: OperationType | str,
        data: dict[str, Any],
        max_retries: int | None = None,
    ) -> str:
        """Record a mutation for later replay.

        Args:
            table: Target table name
            operation: create, update or delete
            data: Row payload including the primary key
            max_retries: Retry ceiling (config default if None)

        Returns:
            Queue item id
        """
        if max_retries is None:
            max_retries = self.config.max_retries
        item_id = await self.queue.enqueue(table, operation, data, max_retries)

        if self.config.sync_on_enqueue and self.network.is_online():
            self._schedule_sync()
        return item_id

    async def sync(self, conflict_strategy: ConflictStrategy | str | None = None) -> SyncResult:
        """Run a pass now (see SyncEngine.sync)."""
        return await self.engine.sync(conflict_strategy or self.config.strategy)

    async def retry_item(
        self,
        item_id: str,
        conflict_strategy: ConflictStrategy | str | None = None,
    ) -> bool:
        """Retry one queued item now; True iff it synced and was removed."""
        return await self.engine.retry_item(item_id, conflict_strategy or self.config.strategy)

    async def resolve_manually(self, item_id: str, data: dict[str, Any]) -> bool:
        """Apply reviewed data for an item held back by a manual conflict."""
        return await self.engine.resolve_manually(item_id, data)

    def add_sync_listener(self, listener: SyncListener) -> Callable[[], None]:
        """Subscribe to pass results; returns the unsubscribe function."""
        return self.engine.add_sync_listener(listener)

    def get_status(self) -> QueueStatus:
        """Counts for status displays.

        ``failed`` counts items that used up their retries and are waiting
        for attention; ``pending`` is everything else.
        """
        items = self.queue.snapshot()
        failed = sum(1 for item in items if item.exhausted)
        return QueueStatus(
            total=len(items),
            pending=len(items) - failed,
            failed=failed,
            is_online=self.network.is_online(),
            is_syncing=self.engine.is_syncing,
        )

    def get_queued_items(self) -> list[QueueItem]:
        """Copies of every queued item, for manual review."""
        return self.queue.snapshot()

    async def clear_queue(self) -> int:
        """Drop all queued items without syncing them.

        Returns:
            Number of items dropped
        """
        count = await self.queue.clear()
        logger.warning(f"Cleared sync queue: {count} operations dropped")
        return count


async def create_sync_service(
    remote: RemoteDataStore,
    config: SyncConfig | None = None,
    network: NetworkStatusPort | None = None,
) -> OfflineSyncService:
    """Create and start a sync service.

    Args:
        remote: Remote data store to replay against
        config: Configuration (loaded from settings.yaml and env if None)
        network: Connectivity source (built from config if None)

    Returns:
        Started OfflineSyncService
    """
    if config is None:
        config = SyncConfig.from_env(SyncConfig.from_yaml())

    service = OfflineSyncService(remote=remote, config=config, network=network)
    await service.start()
    return service
