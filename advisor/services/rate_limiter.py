# =============================================================================
# Rate Limiter — Outbound Sliding Window per Provider
# =============================================================================
#
# Twelve Data's free tier allows 8 requests per minute. Indicator tools fan
# out into several requests, so calls are paced client-side instead of
# relying on 429 responses and retries alone.
#
# Each acquire() records a timestamp. Entries older than the window are
# pruned; when the window is full the caller sleeps until the oldest entry
# ages out.
#
# DESIGN DECISION: Sliding window over fixed window. Fixed windows allow
# burst traffic at window boundaries (8 requests at 0:59 + 8 at 1:00 = 16
# in 2 seconds), which is exactly what the provider rejects.
#
# Scope is one process. The lock serialises concurrent tool calls so two
# coroutines never claim the same slot. It is created per event loop, so the
# process-wide client can be reused across separate asyncio.run() calls.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Allow at most `max_calls` acquisitions per `window_seconds`."""

    def __init__(
        self,
        max_calls: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[float] = deque()
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Return a lock bound to the running event loop.

        A shared limiter outlives any one loop (CLI runs and tests each call
        asyncio.run), so the lock is recreated when the loop changes. The
        window itself carries over.
        """
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _prune(self, now: float) -> None:
        window_start = now - self.window_seconds
        while self._calls and self._calls[0] <= window_start:
            self._calls.popleft()

    async def acquire(self) -> float:
        """
        Wait for a free slot and claim it.

        Returns:
            Seconds spent waiting (0.0 when a slot was free).
        """
        waited = 0.0
        async with self._get_lock():
            self._prune(self._clock())
            while len(self._calls) >= self.max_calls:
                delay = self._calls[0] + self.window_seconds - self._clock()
                if delay > 0:
                    logger.info(
                        "Rate limit window full (%d/%d). Waiting %.1fs",
                        len(self._calls), self.max_calls, delay,
                    )
                    await self._sleep(delay)
                    waited += delay
                self._prune(self._clock())
            self._calls.append(self._clock())
        return waited

    @property
    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._calls)
