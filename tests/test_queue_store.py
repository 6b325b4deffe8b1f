"""Tests for the durable queue store."""

import pytest

from offline_sync.exceptions import StorageIOError
from offline_sync.models import OperationType, QueueItem
from offline_sync.persistence import MemoryQueuePersistence
from offline_sync.queue_store import QueueStore


class BrokenPersistence(MemoryQueuePersistence):
    """Persistence whose saves always fail."""

    async def save(self, items):
        raise StorageIOError("save_queue", "memory")


class SwitchablePersistence(MemoryQueuePersistence):
    """Persistence whose saves fail once ``broken`` is set."""

    broken = False

    async def save(self, items):
        if self.broken:
            raise StorageIOError("save_queue", "memory")
        await super().save(items)


class TestEnqueue:
    """Tests for adding items."""

    @pytest.mark.asyncio
    async def test_enqueue_persists_immediately(self, queue, persistence):
        """Every enqueue writes the snapshot through."""
        item_id = await queue.enqueue("students", "create", {"id": "s1"})

        assert persistence.save_count == 1
        reloaded = await persistence.load()
        assert [item.id for item in reloaded] == [item_id]

    @pytest.mark.asyncio
    async def test_enqueue_sets_defaults(self, queue):
        """New items start with zero retries and the given ceiling."""
        item_id = await queue.enqueue("students", "update", {"id": "s1"}, max_retries=5)

        item = queue.get(item_id)
        assert item.operation == OperationType.UPDATE
        assert item.retry_count == 0
        assert item.max_retries == 5
        assert item.timestamp > 0

    @pytest.mark.asyncio
    async def test_enqueue_generates_unique_ids(self, queue):
        """Ids are unique even when enqueued in the same millisecond."""
        ids = [await queue.enqueue("t", "create", {"id": i}) for i in range(50)]
        assert len(set(ids)) == 50

    @pytest.mark.asyncio
    async def test_enqueue_copies_payload(self, queue):
        """Later changes to the caller's dict do not leak into the queue."""
        data = {"id": "s1", "name": "A"}
        item_id = await queue.enqueue("students", "create", data)
        data["name"] = "B"

        assert queue.get(item_id).data["name"] == "A"

    @pytest.mark.asyncio
    async def test_enqueue_rejects_unknown_operation(self, queue):
        """Unknown operations are refused."""
        with pytest.raises(ValueError):
            await queue.enqueue("students", "upsert", {"id": "s1"})

    @pytest.mark.asyncio
    async def test_enqueue_rejects_negative_max_retries(self, queue):
        """A negative retry ceiling is refused."""
        with pytest.raises(ValueError):
            await queue.enqueue("students", "create", {"id": "s1"}, max_retries=-1)

    @pytest.mark.asyncio
    async def test_enqueue_persistence_failure_propagates(self):
        """A failed write is raised; the item stays queued in memory."""
        queue = QueueStore(BrokenPersistence())
        await queue.load()

        with pytest.raises(StorageIOError):
            await queue.enqueue("students", "create", {"id": "s1"})

        assert len(queue) == 1


class TestMutations:
    """Tests for remove, increment_retry and clear."""

    @pytest.mark.asyncio
    async def test_remove(self, queue):
        """Removing an item reports whether it was present."""
        item_id = await queue.enqueue("students", "create", {"id": "s1"})

        assert await queue.remove(item_id) is True
        assert await queue.remove(item_id) is False
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_increment_retry(self, queue, persistence):
        """increment_retry bumps the count and persists it."""
        item_id = await queue.enqueue("students", "create", {"id": "s1"})

        assert await queue.increment_retry(item_id) == 1
        assert await queue.increment_retry(item_id) == 2
        reloaded = await persistence.load()
        assert reloaded[0].retry_count == 2

    @pytest.mark.asyncio
    async def test_increment_unknown_item(self, queue):
        """increment_retry on an unknown id returns None."""
        assert await queue.increment_retry("missing") is None

    @pytest.mark.asyncio
    async def test_clear(self, queue, persistence):
        """clear drops everything and returns how many items went."""
        await queue.enqueue("students", "create", {"id": "s1"})
        await queue.enqueue("students", "create", {"id": "s2"})

        assert await queue.clear() == 2
        assert len(queue) == 0
        assert await persistence.load() == []

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self, queue):
        """Mutating a snapshot does not affect the queue."""
        item_id = await queue.enqueue("students", "create", {"id": "s1"})

        snapshot = queue.snapshot()
        snapshot[0].retry_count = 99
        snapshot[0].data["id"] = "changed"

        item = queue.get(item_id)
        assert item.retry_count == 0
        assert item.data["id"] == "s1"


    @pytest.mark.asyncio
    async def test_failed_save_keeps_queue_unchanged(self):
        """A mutation whose write fails leaves the in-memory queue as persisted."""
        persistence = SwitchablePersistence()
        queue = QueueStore(persistence)
        await queue.load()
        first = await queue.enqueue("students", "create", {"id": "s1"})
        second = await queue.enqueue("students", "create", {"id": "s2"})
        persistence.broken = True

        with pytest.raises(StorageIOError):
            await queue.remove(first)
        with pytest.raises(StorageIOError):
            await queue.increment_retry(second)
        with pytest.raises(StorageIOError):
            await queue.clear()

        assert [item.id for item in queue.snapshot()] == [first, second]
        assert queue.get(second).retry_count == 0
        persistence.broken = False
        assert [item.id for item in await persistence.load()] == [first, second]


class TestDurability:
    """Tests for reloading the queue in a fresh store."""

    @pytest.mark.asyncio
    async def test_reload_preserves_ids_order_and_retries(self, queue, persistence):
        """A new store over the same persistence sees the identical queue."""
        first = await queue.enqueue("a", "create", {"id": 1})
        second = await queue.enqueue("b", "delete", {"id": 2})
        await queue.increment_retry(second)
        await queue.save()

        reloaded = QueueStore(persistence)
        items = await reloaded.load()

        assert [item.id for item in items] == [first, second]
        assert [item.to_dict() for item in items] == [
            item.to_dict() for item in queue.snapshot()
        ]

    @pytest.mark.asyncio
    async def test_load_drops_duplicate_ids(self):
        """Duplicate ids in stored state keep their first occurrence."""
        persistence = MemoryQueuePersistence()
        await persistence.save(
            [
                QueueItem(id="x", table="a", operation=OperationType.CREATE, data={"n": 1}),
                QueueItem(id="x", table="a", operation=OperationType.CREATE, data={"n": 2}),
            ]
        )

        items = await QueueStore(persistence).load()

        assert len(items) == 1
        assert items[0].data == {"n": 1}


    @pytest.mark.asyncio
    async def test_lazy_load_drops_duplicate_ids(self):
        """Enqueueing before load() also filters duplicate stored ids."""
        persistence = MemoryQueuePersistence()
        await persistence.save(
            [
                QueueItem(id="x", table="a", operation=OperationType.CREATE, data={"n": 1}),
                QueueItem(id="x", table="a", operation=OperationType.CREATE, data={"n": 2}),
            ]
        )
        queue = QueueStore(persistence)

        new_id = await queue.enqueue("a", "create", {"n": 3})

        ids = [item.id for item in queue.snapshot()]
        assert ids == ["x", new_id]
        assert queue.get("x").data == {"n": 1}
        assert [item.id for item in await persistence.load()] == ["x", new_id]

    @pytest.mark.asyncio
    async def test_save_replaces_snapshot(self, queue, persistence):
        """save() with explicit items replaces the queue."""
        await queue.enqueue("a", "create", {"id": 1})
        item = QueueItem(id="manual", table="b", operation=OperationType.UPDATE, data={"id": 2})

        await queue.save([item])

        assert [i.id for i in queue.snapshot()] == ["manual"]
        assert [i.id for i in await persistence.load()] == ["manual"]
