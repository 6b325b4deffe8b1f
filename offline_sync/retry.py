"""Retry scheduling for queued mutations.

Provides exponential backoff with jitter and the retryable/drop decision
for items that hit transient remote errors. The scheduler does not loop
by itself; the sync engine asks it for a decision after each failure and
awaits the delay before moving on.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .models import QueueItem

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """Configuration for exponential backoff."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    multiplier: float = 2.0
    jitter: bool = True  # up to one base_delay of random spread


class RetryScheduler:
    """Computes backoff delays and decides whether an item may be retried.

    Delay for attempt ``n`` (0-indexed) is
    ``min(max_delay, base_delay * multiplier**n)`` plus jitter in
    ``[0, base_delay)`` so items and processes that failed together do not
    retry in lockstep.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Sleeper | None = None,
        rng: Callable[[], float] | None = None,
    ):
        """Initialize the scheduler.

        Args:
            policy: Backoff configuration (defaults if None)
            sleep: Awaitable sleep taking seconds (asyncio.sleep if None)
            rng: Source of jitter in [0, 1) (random.random if None)
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.random

    def delay_ms(self, attempt: int) -> float:
        """Backoff delay in milliseconds for the given attempt."""
        policy = self.policy
        delay = min(
            float(policy.max_delay_ms),
            policy.base_delay_ms * (policy.multiplier ** max(attempt, 0)),
        )
        if policy.jitter:
            delay += self._rng() * policy.base_delay_ms
        return delay

    def should_retry(self, item: QueueItem) -> bool:
        """True if the item still has retries left."""
        return item.retry_count < item.max_retries

    async def wait(self, attempt: int, context_msg: str = "") -> float:
        """Sleep out the backoff for an attempt.

        Returns:
            The delay that was waited, in milliseconds
        """
        delay = self.delay_ms(attempt)
        ctx = f" [{context_msg}]" if context_msg else ""
        logger.debug("BACKOFF: attempt=%d delay=%.0fms%s", attempt + 1, delay, ctx)
        await self._sleep(delay / 1000)
        return delay
