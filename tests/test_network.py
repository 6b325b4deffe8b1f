"""Tests for network status ports and the reconnect monitor."""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from offline_sync.network import ManualNetworkStatus, NetworkMonitor, ProbingNetworkStatus


async def not_found(request):
    return web.Response(status=404)


async def ok(request):
    return web.Response()


class TestManualNetworkStatus:
    """Tests for host-driven connectivity state."""

    def test_initial_state(self):
        assert ManualNetworkStatus().is_online() is True
        assert ManualNetworkStatus(online=False).is_online() is False

    def test_notifies_on_change_only(self):
        status = ManualNetworkStatus()
        seen = []
        status.on_change(seen.append)

        status.set_online(True)
        status.set_online(False)
        status.set_online(False)
        status.set_online(True)

        assert seen == [False, True]

    def test_unsubscribe(self):
        status = ManualNetworkStatus()
        seen = []
        unsubscribe = status.on_change(seen.append)
        unsubscribe()

        status.set_online(False)

        assert seen == []

    def test_raising_callback_does_not_stop_others(self):
        status = ManualNetworkStatus()
        seen = []

        def broken(online):
            raise RuntimeError("boom")

        status.on_change(broken)
        status.on_change(seen.append)
        status.set_online(False)

        assert seen == [False]


class TestNetworkMonitor:
    """Tests for sync-on-reconnect triggering."""

    @pytest.mark.asyncio
    async def test_reconnect_with_pending_work(self, queue):
        status = ManualNetworkStatus(online=False)
        triggered = []
        monitor = NetworkMonitor(status, queue, lambda: triggered.append(True))
        monitor.start()
        await queue.enqueue("students", "create", {"id": "s1"})

        status.set_online(True)

        assert triggered == [True]
        assert monitor.is_online() is True

    @pytest.mark.asyncio
    async def test_reconnect_with_empty_queue(self, queue):
        status = ManualNetworkStatus(online=False)
        triggered = []
        monitor = NetworkMonitor(status, queue, lambda: triggered.append(True))
        monitor.start()

        status.set_online(True)

        assert triggered == []

    @pytest.mark.asyncio
    async def test_going_offline_does_not_trigger(self, queue):
        status = ManualNetworkStatus(online=True)
        triggered = []
        monitor = NetworkMonitor(status, queue, lambda: triggered.append(True))
        monitor.start()
        await queue.enqueue("students", "create", {"id": "s1"})

        status.set_online(False)

        assert triggered == []
        assert monitor.is_online() is False

    @pytest.mark.asyncio
    async def test_stopped_monitor_ignores_changes(self, queue):
        status = ManualNetworkStatus(online=False)
        triggered = []
        monitor = NetworkMonitor(status, queue, lambda: triggered.append(True))
        monitor.start()
        monitor.stop()
        await queue.enqueue("students", "create", {"id": "s1"})

        status.set_online(True)

        assert triggered == []


class TestProbingNetworkStatus:
    """Tests for HTTP connectivity probing."""

    @pytest.mark.asyncio
    async def test_probe_reachable_endpoint(self):
        """Any HTTP answer counts as online."""
        app = web.Application()
        app.router.add_route("HEAD", "/", not_found)

        async with TestServer(app) as server:
            status = ProbingNetworkStatus(str(server.make_url("/")), initial=False)
            seen = []
            status.on_change(seen.append)

            assert await status.probe() is True

        assert status.is_online() is True
        assert seen == [True]

    @pytest.mark.asyncio
    async def test_probe_unreachable_endpoint(self):
        """Connection failures count as offline."""
        app = web.Application()
        async with TestServer(app) as server:
            url = str(server.make_url("/"))
        # Server is shut down; nothing listens on the port any more
        status = ProbingNetworkStatus(url, timeout=1.0)

        assert await status.probe() is False
        assert status.is_online() is False

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        app = web.Application()
        app.router.add_route("HEAD", "/", ok)

        async with TestServer(app) as server:
            status = ProbingNetworkStatus(str(server.make_url("/")), interval=60)
            await status.start()
            await status.stop()

        assert status._task is None
