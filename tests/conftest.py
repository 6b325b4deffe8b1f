"""
Shared test configuration and fixtures.

Provides in-memory stand-ins for every port the sync engine talks to:
a recording remote store, in-memory queue persistence, a manually
driven network status and a retry scheduler that never really sleeps.
"""

import asyncio
import logging
from typing import Any

import pytest

from offline_sync.engine import SyncEngine
from offline_sync.exceptions import TransientError
from offline_sync.network import ManualNetworkStatus
from offline_sync.persistence import MemoryQueuePersistence
from offline_sync.queue_store import QueueStore
from offline_sync.remote.memory import InMemoryRemoteStore
from offline_sync.retry import RetryPolicy, RetryScheduler

logger = logging.getLogger(__name__)


class RecordingSleeper:
    """Sleep replacement that records requested delays and returns at once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FlakyRemoteStore(InMemoryRemoteStore):
    """
    In-memory remote store that fails selected operations.

    ``fail_with`` maps an operation name (insert/select/update/delete) to
    the number of times it should raise TransientError before behaving;
    a negative count fails forever.
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None):
        super().__init__(tables)
        self.fail_with: dict[str, int] = {}

    def _maybe_fail(self, operation: str, table: str) -> None:
        remaining = self.fail_with.get(operation, 0)
        if remaining == 0:
            return
        if remaining > 0:
            self.fail_with[operation] = remaining - 1
        raise TransientError(operation, table, status=503)

    async def insert(self, table, row):
        self._maybe_fail("insert", table)
        return await super().insert(table, row)

    async def select_by_id(self, table, row_id):
        self._maybe_fail("select", table)
        return await super().select_by_id(table, row_id)

    async def update(self, table, row_id, patch):
        self._maybe_fail("update", table)
        return await super().update(table, row_id, patch)

    async def delete(self, table, row_id):
        self._maybe_fail("delete", table)
        return await super().delete(table, row_id)


class BlockingRemoteStore(InMemoryRemoteStore):
    """In-memory remote store whose calls wait until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def insert(self, table, row):
        self.entered.set()
        await self.release.wait()
        return await super().insert(table, row)


@pytest.fixture
def sleeper():
    """Fixture providing a recording no-op sleeper."""
    return RecordingSleeper()


@pytest.fixture
def scheduler(sleeper):
    """Fixture providing a retry scheduler with fixed jitter and no real sleeps."""
    return RetryScheduler(RetryPolicy(), sleep=sleeper, rng=lambda: 0.0)


@pytest.fixture
def persistence():
    """Fixture providing in-memory queue persistence."""
    return MemoryQueuePersistence()


@pytest.fixture
async def queue(persistence):
    """Fixture providing a loaded queue store."""
    store = QueueStore(persistence)
    await store.load()
    return store


@pytest.fixture
def remote():
    """Fixture providing a flaky-capable in-memory remote store."""
    return FlakyRemoteStore()


@pytest.fixture
def network():
    """Fixture providing manually driven network status, initially online."""
    return ManualNetworkStatus(online=True)


@pytest.fixture
def engine(queue, remote, network, scheduler):
    """Fixture providing a sync engine wired to the in-memory ports."""
    return SyncEngine(
        queue=queue,
        remote=remote,
        is_online=network.is_online,
        scheduler=scheduler,
    )
