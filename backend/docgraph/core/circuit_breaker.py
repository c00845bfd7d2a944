"""Circuit breaker for backend API calls.

Three states:
  CLOSED:    normal operation, requests pass through
  OPEN:      too many consecutive failures, requests are rejected immediately
  HALF_OPEN: cooldown elapsed, one probe request is allowed through

Only transport-level failures count against the breaker; the caller
decides which exceptions those are via ``failure_types``.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from docgraph.core.exceptions import BackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(BackendError):
    """Raised when the circuit is open and calls are being rejected."""

    code = "BACKEND_UNAVAILABLE"

    def __init__(self, name: str, retry_after: float):
        super().__init__(f"Circuit breaker '{name}' is OPEN; retry in {retry_after:.0f}s")
        self.breaker_name = name
        self.retry_after = retry_after


class CircuitBreaker:
    """Async-safe circuit breaker guarding one external service."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        cooldown_seconds: float = 30,
        failure_types: tuple[type[BaseException], ...] = (Exception,),
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.failure_types = failure_types

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float = 0.0
        self._probe_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        """Current circuit state (reads as HALF_OPEN once the cooldown has passed)."""
        if self._state == CircuitState.OPEN and self._cooldown_remaining() <= 0:
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``func(*args, **kwargs)`` through the breaker.

        The coroutine is only created once the call is admitted.
        Raises CircuitBreakerOpen when the circuit is OPEN or a
        half-open probe is already running.
        """
        async with self._lock:
            current = self.state
            if current == CircuitState.OPEN or (current == CircuitState.HALF_OPEN and self._probe_in_flight):
                raise CircuitBreakerOpen(self.name, max(self._cooldown_remaining(), 0.0))
            if current == CircuitState.HALF_OPEN:
                logger.info("Circuit '%s' HALF_OPEN, allowing probe request", self.name)
                self._probe_in_flight = True

        try:
            result = await func(*args, **kwargs)
        except self.failure_types:
            await self._on_failure()
            raise
        except asyncio.CancelledError:
            self._probe_in_flight = False
            raise
        except Exception:
            # Not a transport failure: the service answered
            await self._on_success()
            raise

        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.OPEN:
                logger.info("Circuit '%s' recovered, CLOSED", self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._probe_in_flight = False

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            was_probe = self._probe_in_flight
            self._probe_in_flight = False

            if was_probe or self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()
                logger.warning(
                    "Circuit '%s' OPEN after %d failure(s) (cooldown %ss)",
                    self.name, self._failure_count, self.cooldown_seconds,
                )

    def _cooldown_remaining(self) -> float:
        return self.cooldown_seconds - (time.monotonic() - self._opened_at)

    def reset(self) -> None:
        """Manually reset the circuit to CLOSED (useful in tests)."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._probe_in_flight = False
