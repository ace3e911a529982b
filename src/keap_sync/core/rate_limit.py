"""Token-bucket pacing for bursts of Keap calls.

Tag application fires one request per tag; the bucket keeps those
bursts under Keap's per-second quota instead of leaning on 429 retries.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

# Waits below this are float noise from summing intervals, not real debt.
_EPSILON = 1e-9


class TokenBucket:
    """Async token bucket.

    Args:
        rate: Tokens added per second.
        capacity: Maximum burst size. Defaults to one token, which gives
            evenly spaced calls (1 / rate seconds apart).
        clock: Monotonic time source, injectable for tests.
        sleep: Async sleep, injectable for tests.
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = max(capacity, 1.0)
        self._clock = clock
        self._sleep = sleep
        self._interval = 1.0 / rate
        # Burst allowance: how far ahead of the clock the schedule may run.
        self._tolerance = (self.capacity - 1.0) * self._interval
        self._next_at = clock()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Take one slot, sleeping at most once until it is due."""
        async with self._lock:
            now = self._clock()
            scheduled = max(now, self._next_at)
            wait = scheduled - self._tolerance - now
            if wait > _EPSILON:
                await self._sleep(wait)
            self._next_at = scheduled + self._interval
