"""
Async rate limiter bounding concurrency and spacing of mailbox API calls.
"""

import asyncio
import time
from contextlib import asynccontextmanager


class AsyncRateLimiter:
    """At most ``max_concurrent`` calls in flight, started at least ``min_interval`` apart."""

    def __init__(self, max_concurrent: int = 5, min_interval: float = 0.1,
                 clock=time.monotonic, sleep=asyncio.sleep):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._spacing_lock = asyncio.Lock()
        self._last_start = None
        self._clock = clock
        self._sleep = sleep

    async def _wait_for_slot(self):
        async with self._spacing_lock:
            if self._last_start is not None:
                elapsed = self._clock() - self._last_start
                if elapsed < self.min_interval:
                    await self._sleep(self.min_interval - elapsed)
            self._last_start = self._clock()

    @asynccontextmanager
    async def acquire(self):
        async with self._semaphore:
            await self._wait_for_slot()
            yield

    async def run(self, func, *args, **kwargs):
        """Await ``func(*args, **kwargs)`` under the limiter."""
        async with self.acquire():
            return await func(*args, **kwargs)
