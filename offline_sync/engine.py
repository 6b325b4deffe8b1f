"""
Sync engine for replaying queued mutations.

Drains the offline queue against the remote data store:
- Strict FIFO over a snapshot of the queue, one item at a time
- Last-write-wins conflict detection on updates via the version marker
- Pluggable conflict resolution (server-wins, client-wins, merge, manual)
- Exponential backoff for transient failures, then permanent drop
- Sync results published to registered listeners

Only one pass runs at a time. The in-flight flag is checked and set with
no suspension point in between, which is enough under asyncio's
cooperative scheduling.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from .conflict import ConflictResolver
from .exceptions import (
    DuplicateKeyError,
    NotFoundError,
    PermanentDropError,
    StaleWriteError,
    SyncConflictError,
)
from .logging_utils import SyncLoggerAdapter
from .models import (
    ConflictKind,
    ConflictOutcome,
    ConflictStrategy,
    OperationType,
    QueueItem,
    SyncResult,
)
from .queue_store import QueueStore
from .remote.base import RemoteDataStore
from .retry import RetryScheduler
from .version import DEFAULT_VERSION_FIELD, is_server_newer

logger = logging.getLogger(__name__)

SyncListener = Callable[[SyncResult], None]


class SyncEngine:
    """Replays queued mutations against a remote data store."""

    def __init__(
        self,
        queue: QueueStore,
        remote: RemoteDataStore,
        is_online: Callable[[], bool] | None = None,
        resolver: ConflictResolver | None = None,
        scheduler: RetryScheduler | None = None,
        id_field: str = "id",
        version_field: str = DEFAULT_VERSION_FIELD,
    ):
        """Initialize the sync engine.

        Args:
            queue: Queue store holding pending mutations
            remote: Remote data store to apply them to
            is_online: Connectivity check (always online if None)
            resolver: Conflict resolver
            scheduler: Retry scheduler for transient failures
            id_field: Primary key field of queued rows
            version_field: Version marker field for last-write-wins checks
        """
        self.queue = queue
        self.remote = remote
        self._is_online = is_online or (lambda: True)
        self.resolver = resolver or ConflictResolver(version_field)
        self.scheduler = scheduler or RetryScheduler()
        self.id_field = id_field
        self.version_field = version_field

        self._syncing = False
        self._listeners: list[SyncListener] = []

    @property
    def is_syncing(self) -> bool:
        """True while a pass (or single-item retry) is running."""
        return self._syncing

    def add_sync_listener(self, listener: SyncListener) -> Callable[[], None]:
        """Register a callback invoked with every completed pass's result.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self._listeners = [cb for cb in self._listeners if cb is not listener]

        return unsubscribe

    def _publish(self, result: SyncResult) -> None:
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Sync listener raised")

    async def sync(
        self,
        conflict_strategy: ConflictStrategy | str = ConflictStrategy.SERVER_WINS,
    ) -> SyncResult:
        """Run one pass over the queue.

        Never raises: every per-item failure is classified and counted.
        Returns an empty, unsuccessful result without touching the queue
        if a pass is already running or the device is offline.

        Args:
            conflict_strategy: How to resolve conflicts met in this pass

        Returns:
            Aggregate result of the pass
        """
        if self._syncing:
            logger.warning("Sync already in progress")
            return SyncResult.skipped("Sync already in progress")

        if not self._is_online():
            logger.warning("Cannot sync while offline")
            return SyncResult.skipped("Cannot sync while offline")

        self._syncing = True
        strategy = ConflictStrategy.parse(conflict_strategy)
        start_time = time.monotonic()
        result = SyncResult(success=True)

        try:
            items = self.queue.snapshot()
            logger.info(f"Sync pass started: {len(items)} queued, strategy={strategy.value}")

            for item in items:
                # Cleared or removed since the snapshot was taken
                if self.queue.get(item.id) is None:
                    continue
                await self._process_item(item, strategy, result, backoff=True)
        finally:
            self._syncing = False

        result.success = result.failed == 0
        result.duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            f"Sync pass finished: synced={result.synced} failed={result.failed} "
            f"retried={result.retried} conflicts={len(result.conflicts)} "
            f"duration={result.duration_ms}ms"
        )

        self._publish(result)
        return result

    async def retry_item(
        self,
        item_id: str,
        conflict_strategy: ConflictStrategy | str = ConflictStrategy.SERVER_WINS,
    ) -> bool:
        """Run the per-item sync logic for one item, outside a full pass.

        No backoff delay is awaited, and the call is refused while a pass
        is running so the item is never applied twice concurrently.

        Returns:
            True iff the item succeeded and was removed from the queue
        """
        if self._syncing:
            logger.warning(f"Cannot retry {item_id}: sync in progress")
            return False

        item = self.queue.get(item_id)
        if item is None:
            return False

        self._syncing = True
        try:
            result = SyncResult(success=True)
            return await self._process_item(
                item, ConflictStrategy.parse(conflict_strategy), result, backoff=False
            )
        finally:
            self._syncing = False

    async def resolve_manually(self, item_id: str, data: dict[str, Any]) -> bool:
        """Apply externally chosen data for an item left queued by a conflict.

        The write skips the last-write-wins check: the caller has already
        looked at the server row and decided.

        Returns:
            True iff the write succeeded and the item was removed
        """
        if self._syncing:
            logger.warning(f"Cannot resolve {item_id}: sync in progress")
            return False

        item = self.queue.get(item_id)
        if item is None:
            return False

        log = self._item_logger(item)
        self._syncing = True
        try:
            await self._attempt(item, data, check_version=False)
            await self.queue.remove(item.id)
            log.info("Manually resolved item synced")
            return True
        except Exception as e:
            log.warning(f"Manual resolution failed: {e}")
            await self._count_failed_attempt(item, log)
            return False
        finally:
            self._syncing = False

    def _item_logger(self, item: QueueItem) -> SyncLoggerAdapter:
        return SyncLoggerAdapter.for_item(logger, item)

    def _row_id(self, item: QueueItem, data: dict[str, Any]) -> Any:
        row_id = item.data.get(self.id_field, data.get(self.id_field))
        if row_id is None and item.operation != OperationType.CREATE:
            raise ValueError(f"Queued {item.operation.value} has no '{self.id_field}'")
        return row_id

    async def _attempt(
        self,
        item: QueueItem,
        data: dict[str, Any],
        check_version: bool = True,
    ) -> None:
        """Apply one queued mutation to the remote store.

        Returns on success (including deleting an already absent row).

        Raises:
            SyncConflictError: The write cannot be applied blindly
            Exception: Anything else is a transient failure
        """
        table = item.table
        row_id = self._row_id(item, data)

        if item.operation == OperationType.CREATE:
            try:
                await self.remote.insert(table, data)
            except DuplicateKeyError:
                try:
                    server_data = await self.remote.select_by_id(table, row_id)
                except NotFoundError:
                    server_data = {}
                raise SyncConflictError(
                    item.id, table, server_data, ConflictKind.DUPLICATE_KEY.value
                ) from None

        elif item.operation == OperationType.UPDATE:
            try:
                current = await self.remote.select_by_id(table, row_id)
            except NotFoundError:
                raise SyncConflictError(
                    item.id, table, {}, ConflictKind.DELETED_ON_SERVER.value
                ) from None

            if check_version and is_server_newer(current, data, self.version_field):
                raise StaleWriteError(
                    item.id,
                    table,
                    current,
                    local_version=data.get(self.version_field),
                    remote_version=current.get(self.version_field),
                )

            try:
                await self.remote.update(table, row_id, data)
            except NotFoundError:
                raise SyncConflictError(
                    item.id, table, {}, ConflictKind.DELETED_ON_SERVER.value
                ) from None

        elif item.operation == OperationType.DELETE:
            try:
                await self.remote.delete(table, row_id)
            except NotFoundError:
                # Already absent: the goal state holds
                pass

    async def _process_item(
        self,
        item: QueueItem,
        strategy: ConflictStrategy,
        result: SyncResult,
        backoff: bool,
    ) -> bool:
        """Sync one item and fold the outcome into the result.

        Returns:
            True iff the item was applied and removed
        """
        log = self._item_logger(item)
        try:
            try:
                await self._attempt(item, item.data)
            except SyncConflictError as conflict:
                return await self._handle_conflict(item, conflict, strategy, result, log)
            except Exception as e:
                await self._handle_transient(item, e, result, log, backoff)
                return False

            await self.queue.remove(item.id)
            result.synced += 1
            log.debug("Item synced")
            return True

        except Exception as e:
            log.exception(f"Unexpected error syncing item {item.id}")
            result.failed += 1
            result.errors.append(f"Unexpected error syncing {item.id}: {e}")
            try:
                await self._count_failed_attempt(item, log)
            except Exception:
                log.exception("Could not record failed attempt")
            return False

    async def _handle_conflict(
        self,
        item: QueueItem,
        conflict: SyncConflictError,
        strategy: ConflictStrategy,
        result: SyncResult,
        log: SyncLoggerAdapter,
    ) -> bool:
        resolution = self.resolver.resolve(item, conflict.server_data, strategy)
        result.conflicts.append(
            ConflictOutcome(
                item=item,
                server_data=conflict.server_data,
                kind=ConflictKind(conflict.kind),
                resolution=resolution,
            )
        )
        log.info(f"Conflict ({conflict.kind}) resolved with {resolution.strategy.value}")

        if resolution.resolved_data is None:
            # Manual: leave queued for review
            await self._count_failed_attempt(item, log)
            result.failed += 1
            return False

        try:
            await self._attempt(item, resolution.resolved_data, check_version=False)
        except Exception as e:
            log.warning(f"Resolved write failed: {e}")
            await self._count_failed_attempt(item, log)
            result.failed += 1
            result.errors.append(f"Resolved write failed for {item.id}: {e}")
            return False

        await self.queue.remove(item.id)
        result.synced += 1
        return True

    async def _handle_transient(
        self,
        item: QueueItem,
        error: Exception,
        result: SyncResult,
        log: SyncLoggerAdapter,
        backoff: bool,
    ) -> None:
        if self.scheduler.should_retry(item):
            attempt = item.retry_count
            await self.queue.increment_retry(item.id)
            result.retried += 1
            log.warning(
                f"Transient error, retry {attempt + 1}/{item.max_retries}: {error}"
            )
            if backoff:
                await self.scheduler.wait(attempt, context_msg=item.id)
            return

        await self.queue.remove(item.id)
        drop = PermanentDropError(item.id, item.retry_count, error)
        result.failed += 1
        result.errors.append(drop.message)
        log.error(drop.message, extra=drop.details)

    async def _count_failed_attempt(self, item: QueueItem, log: SyncLoggerAdapter) -> None:
        """Record a failed attempt for an item that stays queued.

        The count saturates at max_retries; such items show up as failed
        in the queue status until retried, resolved or cleared.
        """
        current = self.queue.get(item.id)
        if current is None:
            return
        if current.retry_count < current.max_retries:
            await self.queue.increment_retry(item.id)
        else:
            log.warning("Item needs attention: retries exhausted")
