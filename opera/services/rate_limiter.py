from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class RateLimiter:
    """Serializing min-interval limiter.

    Used as ``async with limiter:``. Callers run one at a time, and each one
    starts at least ``min_interval`` seconds after the previous one started.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = max(float(min_interval), 0.0)
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_start: float | None = None

    async def __aenter__(self) -> "RateLimiter":
        await self._lock.acquire()
        try:
            wait = self.time_until_ready()
            if wait > 0:
                await self._sleep(wait)
            self._last_start = self._clock()
        except BaseException:
            self._lock.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._lock.release()

    def time_until_ready(self) -> float:
        if self._last_start is None:
            return 0.0
        elapsed = self._clock() - self._last_start
        return max(self.min_interval - elapsed, 0.0)

    @property
    def busy(self) -> bool:
        return self._lock.locked()
