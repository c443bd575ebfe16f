"""
Circuit breaker that stops hammering the Steam store once it keeps failing.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

log = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when a call is refused because the circuit is open."""


class CircuitBreaker:
    """
    Async context manager guarding one upstream service.

    Only exceptions listed in `trip_on` count as failures, so an answer the
    caller merely dislikes (an unknown app id, say) never opens the circuit.

    States:
    - CLOSED: calls pass through
    - OPEN: calls fail fast with CircuitBreakerError
    - HALF_OPEN: after `recovery_timeout`, calls probe the service again
    """

    def __init__(
        self,
        name: str = "service",
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        success_threshold: int = 2,
        trip_on: tuple[type[BaseException], ...] = (Exception,),
    ):
        """
        Args:
            name: Label used in log messages.
            failure_threshold: Consecutive failures that open the circuit.
            recovery_timeout: Seconds to stay open before probing.
            success_threshold: Successful probes needed to close again.
            trip_on: Exception types that count as failures.
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.trip_on = trip_on

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None

    def _remaining_open_time(self) -> float:
        if self._opened_at is None:
            return 0.0
        return self.recovery_timeout - (time.monotonic() - self._opened_at)

    async def __aenter__(self):
        async with self._lock:
            if self._state is CircuitState.OPEN:
                remaining = self._remaining_open_time()
                if remaining > 0:
                    raise CircuitBreakerError(
                        f"{self.name} is unavailable after repeated failures. "
                        f"Retrying in {remaining:.0f}s."
                    )
                log.info(f"[yellow]Probing {self.name} again...[/yellow]")
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        async with self._lock:
            if exc_type is not None and issubclass(exc_type, self.trip_on):
                self._record_failure()
            else:
                self._record_success()
        return False

    def _record_success(self) -> None:
        self._failure_count = 0
        if self._state is CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                log.info(f"[green]✓ {self.name} recovered.[/green]")
                self.reset()

    def _record_failure(self) -> None:
        self._failure_count += 1
        if self._state is CircuitState.HALF_OPEN:
            log.warning(f"[yellow]{self.name} is still failing.[/yellow]")
            self._open()
        elif self._failure_count >= self.failure_threshold:
            log.error(
                f"[red]✗ {self.name} failed {self._failure_count} times in a row. "
                f"Pausing calls for {self.recovery_timeout}s.[/red]"
            )
            self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = time.monotonic()
        self._failure_count = 0
        self._success_count = 0
