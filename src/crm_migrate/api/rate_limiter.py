"""Rate limiting implementation for CRM API calls."""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque

from loguru import logger

# wait used when the oldest grant sits exactly on the window edge
BOUNDARY_TICK = 0.001


class RateLimiter:
    """Sliding window rate limiter for API requests.

    Grants at most ``max_requests`` requests within any trailing window of
    ``interval`` seconds. Configure it slightly below the API's documented
    ceiling (96 for a hard limit of 100) to absorb clock skew.
    """

    def __init__(
        self,
        max_requests: int,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed per window
            interval: Window length in seconds
            clock: Monotonic time source
            sleep: Coroutine used to wait for a free slot
        """
        if max_requests <= 0:
            raise ValueError('max_requests must be positive')
        if interval <= 0:
            raise ValueError('interval must be positive')

        self.max_requests = max_requests
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> float:
        """Wait until one more request fits in the window, then claim it.

        The lock is held while waiting, so concurrent callers are granted
        slots one at a time in arrival order.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)

                if len(self._timestamps) < self.max_requests:
                    self._timestamps.append(now)
                    return waited

                wait_time = max(
                    self._timestamps[0] + self.interval - now, BOUNDARY_TICK
                )
                logger.debug(
                    f'Rate limit reached ({self.max_requests}/{self.interval}s), '
                    f'waiting {wait_time:.3f}s'
                )
                await self._sleep(wait_time)
                waited += wait_time

    def available(self) -> int:
        """Number of requests that could be granted right now."""
        self._evict(self._clock())
        return self.max_requests - len(self._timestamps)

    def reset(self) -> None:
        """Forget all granted requests."""
        self._timestamps.clear()

    def _evict(self, now: float) -> None:
        # a grant exactly one interval old is still inside the window
        cutoff = now - self.interval
        while self._timestamps and self._timestamps[0] < cutoff:
            self._timestamps.popleft()
