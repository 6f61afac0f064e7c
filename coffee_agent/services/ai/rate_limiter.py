"""
Rolling-window rate limiter for the generative-text provider.

Every call waits until fewer than `max_calls` calls fall inside the trailing
window and at least `min_delay` seconds have passed since the previous call.
A provider-reported rate limit puts the limiter into a flat cooldown and
clears the window.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Serializes provider calls into an evenly spaced pattern."""

    def __init__(
        self,
        max_calls: int = 10,
        window_seconds: float = 60.0,
        min_delay_seconds: float = 6.0,
        cooldown_seconds: float = 60.0,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self.min_delay_seconds = min_delay_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[float] = deque()
        self._blocked_until = 0.0
        self._lock = asyncio.Lock()

    @property
    def calls_in_window(self) -> int:
        self._prune(self._clock())
        return len(self._calls)

    def _prune(self, now: float) -> None:
        while self._calls and self._calls[0] <= now - self.window_seconds:
            self._calls.popleft()

    def _wait_time(self, now: float) -> float:
        self._prune(now)
        wait = max(0.0, self._blocked_until - now)
        if len(self._calls) >= self.max_calls:
            wait = max(wait, self._calls[0] + self.window_seconds - now)
        if self._calls:
            wait = max(wait, self._calls[-1] + self.min_delay_seconds - now)
        return wait

    async def acquire(self) -> None:
        """Wait until a call is allowed, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                wait = self._wait_time(now)
                if wait <= 0:
                    break
                logger.debug(f"Rate limiter waiting {wait:.1f}s ({len(self._calls)} calls in window)")
                await self._sleep(wait)
            self._calls.append(self._clock())

    def enter_cooldown(self) -> None:
        """Block all calls for the cooldown period and reset the window."""
        now = self._clock()
        self._blocked_until = max(self._blocked_until, now + self.cooldown_seconds)
        self._calls.clear()
        logger.warning(f"Provider rate limit hit, cooling down for {self.cooldown_seconds:.0f}s")
