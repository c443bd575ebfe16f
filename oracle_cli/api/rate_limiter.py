"""
Paces store API calls so lookups for a whole library do not trip Steam's
429 "Too Many Requests" throttling.
"""

import asyncio
import logging
import time

log = logging.getLogger(__name__)

# Seconds without a 429 before the rate starts creeping back up
RECOVERY_QUIET_PERIOD = 300


class AdaptiveRateLimiter:
    """
    Spaces calls at least `1 / rate` seconds apart. A 429 halves the rate (or
    pauses for the server's Retry-After hint); a quiet period lets it recover
    slowly toward `max_calls_per_second`.
    """

    def __init__(
        self,
        initial_calls_per_second: float = 1.5,
        max_calls_per_second: float = 2.0,
        min_calls_per_second: float = 0.2,
    ):
        self._rate = initial_calls_per_second
        self._max_rate = max_calls_per_second
        self._min_rate = min_calls_per_second
        self._last_call_time = 0.0
        self._last_429_time = 0.0
        self._paused_until = 0.0
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def on_429(self, retry_after: float | None = None) -> None:
        """Slows down after the store rejected a call."""
        async with self._lock:
            self._rate = max(self._min_rate, self._rate * 0.5)
            now = time.monotonic()
            self._last_429_time = now
            if retry_after:
                self._paused_until = max(self._paused_until, now + retry_after)
            log.warning(
                f"[yellow]Steam store rate limit hit. New rate: "
                f"{self._rate:.2f} calls/s[/yellow]"
            )

    async def acquire(self) -> None:
        """Waits until the next call is allowed."""
        async with self._lock:
            now = time.monotonic()
            if now - self._last_429_time > RECOVERY_QUIET_PERIOD:
                self._rate = min(self._max_rate, self._rate * 1.01)

            wait = max(
                self._paused_until - now,
                (self._last_call_time + 1.0 / self._rate) - now,
            )
            if wait > 0:
                await asyncio.sleep(wait)

            self._last_call_time = time.monotonic()
