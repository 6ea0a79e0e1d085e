"""Token-bucket rate limiter for the analysis endpoint.

The bucket starts with a single permit so the first call never waits for a
tick.  A background task adds one permit every ``60 / requests_per_minute``
seconds while fewer than ``max_outstanding`` permits are sitting unused.
Permits are consumed, never handed back: capacity only comes from the clock.

The limiter bounds *rate*.  How many calls are in flight at once is bounded
separately by the pipeline's fan-out width.

Usage::

    limiter = RateLimiter(40)          # 40 requests per minute
    permit = await limiter.acquire()   # suspends until a permit exists
    ...                                # make the request
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Permit:
    """Opaque proof that one throttled call may proceed."""

    sequence: int


class RateLimiter:
    def __init__(self, requests_per_minute: int, max_outstanding: Optional[int] = None) -> None:
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        if max_outstanding is None:
            max_outstanding = requests_per_minute
        if max_outstanding < 1:
            raise ValueError("max_outstanding must be at least 1")

        self.requests_per_minute = requests_per_minute
        self.max_outstanding = max_outstanding
        self.interval = 60.0 / requests_per_minute

        self._available = 1
        self._issued = 0
        self._added = 0
        self._condition = asyncio.Condition()
        self._task: Optional[asyncio.Task] = None

    @property
    def available(self) -> int:
        """Permits currently waiting to be acquired."""
        return self._available

    @property
    def issued(self) -> int:
        """Permits handed out since construction."""
        return self._issued

    @property
    def added(self) -> int:
        """Permits created by the replenishment clock."""
        return self._added

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the replenishment task on the running event loop.

        Called implicitly by :meth:`acquire`.  The task lives as long as the
        loop does; nothing in the scan stops it.
        """
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._replenish(), name="rate-limiter-replenish")
        logger.debug(
            "rate limiter started: one permit every %.3fs, cap %d",
            self.interval,
            self.max_outstanding,
        )

    def close(self) -> None:
        """Cancel the replenishment task (for embedding in short-lived loops)."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def acquire(self) -> Permit:
        """Wait for a permit and consume it."""
        self.start()
        async with self._condition:
            await self._condition.wait_for(lambda: self._available > 0)
            self._available -= 1
            self._issued += 1
            return Permit(self._issued)

    async def _tick(self) -> None:
        async with self._condition:
            if self._available < self.max_outstanding:
                self._available += 1
                self._added += 1
                self._condition.notify(1)

    async def _replenish(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while True:
            # Schedule against absolute deadlines so ticks do not drift.
            deadline += self.interval
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            await self._tick()
