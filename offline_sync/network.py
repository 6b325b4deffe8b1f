"""
Network availability tracking.

A network status port reports whether the device is online and notifies
subscribers of changes. The NetworkMonitor sits on top of a port and
kicks off a sync pass when connectivity comes back and work is waiting.
Going offline only flips the state: in-flight remote calls fail on their
own and take the ordinary retry path.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

import aiohttp

from .queue_store import QueueStore

logger = logging.getLogger(__name__)

StatusCallback = Callable[[bool], None]
Unsubscribe = Callable[[], None]


class NetworkStatusPort(ABC):
    """Source of online/offline state."""

    def __init__(self) -> None:
        self._callbacks: list[StatusCallback] = []

    @abstractmethod
    def is_online(self) -> bool:
        """Current connectivity state."""

    def on_change(self, callback: StatusCallback) -> Unsubscribe:
        """Subscribe to connectivity changes.

        Returns:
            Function that removes the subscription
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            self._callbacks = [c for c in self._callbacks if c is not callback]

        return unsubscribe

    def _notify(self, online: bool) -> None:
        for callback in list(self._callbacks):
            try:
                callback(online)
            except Exception:
                logger.exception("Network status callback failed")


class ManualNetworkStatus(NetworkStatusPort):
    """Connectivity state driven by the host application.

    Suits hosts that already receive platform online/offline events and
    just need to forward them.
    """

    def __init__(self, online: bool = True):
        super().__init__()
        self._online = online

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Update the state, notifying subscribers only on a change."""
        if online == self._online:
            return
        self._online = online
        self._notify(online)


class ProbingNetworkStatus(NetworkStatusPort):
    """Connectivity state from periodically probing an HTTP endpoint.

    Any HTTP response counts as online; connection errors and timeouts
    count as offline.
    """

    def __init__(
        self,
        check_url: str,
        interval: float = 15.0,
        timeout: float = 5.0,
        initial: bool = True,
    ):
        """Initialize the prober.

        Args:
            check_url: URL to request
            interval: Seconds between probes
            timeout: Seconds before a probe counts as failed
            initial: Assumed state before the first probe
        """
        super().__init__()
        self.check_url = check_url
        self.interval = interval
        self.timeout = timeout
        self._online = initial
        self._task: asyncio.Task[None] | None = None

    def is_online(self) -> bool:
        return self._online

    async def probe(self) -> bool:
        """Run a single probe and update the state.

        Returns:
            True if the endpoint answered
        """
        try:
            client_timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.head(self.check_url, allow_redirects=False):
                    online = True
        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            logger.debug(f"Connectivity probe to {self.check_url} failed: {e}")
            online = False

        if online != self._online:
            self._online = online
            logger.info(f"Network is now {'online' if online else 'offline'}")
            self._notify(online)
        return online

    async def start(self) -> None:
        """Start probing in the background."""
        if self._task is not None:
            return

        async def probe_loop() -> None:
            while True:
                try:
                    await self.probe()
                    await asyncio.sleep(self.interval)
                except asyncio.CancelledError:
                    break

        self._task = asyncio.create_task(probe_loop())

    async def stop(self) -> None:
        """Stop background probing."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


class NetworkMonitor:
    """Triggers a sync pass on every offline -> online transition."""

    def __init__(
        self,
        status: NetworkStatusPort,
        queue: QueueStore,
        on_reconnect: Callable[[], None],
    ):
        """Initialize the monitor.

        Args:
            status: Connectivity source
            queue: Queue checked for pending work on reconnect
            on_reconnect: Called when back online with a non-empty queue
        """
        self.status = status
        self.queue = queue
        self.on_reconnect = on_reconnect
        self._online = status.is_online()
        self._unsubscribe: Unsubscribe | None = None

    def is_online(self) -> bool:
        return self._online

    def start(self) -> None:
        """Subscribe to the status port."""
        if self._unsubscribe is None:
            self._online = self.status.is_online()
            self._unsubscribe = self.status.on_change(self._handle_change)

    def stop(self) -> None:
        """Unsubscribe from the status port."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_change(self, online: bool) -> None:
        was_online = self._online
        self._online = online

        if online and not was_online:
            logger.info(f"Back online with {len(self.queue)} queued operations")
            if len(self.queue) > 0:
                self.on_reconnect()
        elif not online and was_online:
            logger.info("Gone offline; queued operations will wait")
