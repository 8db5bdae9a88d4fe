"""
Async circuit breaker guarding each external provider.

States
------
CLOSED:    calls pass through; consecutive failures are counted.
OPEN:      calls fail fast with ``CircuitOpenError`` until the recovery
            timeout elapses.
HALF_OPEN: exactly one trial call is let through; success closes the
            circuit, failure re-opens it.

A tripped breaker turns a slow, failing upstream into an instant degraded
outcome, which keeps the fan-out phases inside their deadlines.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a call is attempted against an open circuit."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Circuit '{name}' is OPEN – request blocked")
        self.circuit_name = name


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Parameters
    ----------
    name:
        Provider name used in logs and on the health endpoint.
    failure_threshold:
        Consecutive failures that open the circuit.
    recovery_timeout:
        Seconds spent OPEN before a trial call is allowed.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._trial_running = False
        self.calls = 0
        self.failures = 0
        self.rejections = 0

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.recovery_timeout
        ):
            self._move_to(CircuitState.HALF_OPEN)
        return self._state

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and not self._trial_running:
            self._trial_running = True
            return True
        return False

    def record_success(self) -> None:
        self._trial_running = False
        self._consecutive_failures = 0
        if self._state != CircuitState.CLOSED:
            self._move_to(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self._trial_running = False
        self.failures += 1
        self._consecutive_failures += 1
        if (
            self._state == CircuitState.HALF_OPEN
            or self._consecutive_failures >= self.failure_threshold
        ):
            self._opened_at = self._clock()
            self._move_to(CircuitState.OPEN)

    async def call(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run *func* through the breaker; raise ``CircuitOpenError`` if blocked."""
        if not self.allow_request():
            self.rejections += 1
            raise CircuitOpenError(self.name)
        self.calls += 1
        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            self._trial_running = False
            raise
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def _move_to(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        logger.warning(
            "CircuitBreaker '%s': %s → %s (consecutive failures=%d)",
            self.name, self._state.value, new_state.value, self._consecutive_failures,
        )
        self._state = new_state

    def status(self) -> dict[str, Any]:
        """Serialisable snapshot for the health endpoint."""
        return {
            "state": self.state.value,
            "consecutive_failures": self._consecutive_failures,
            "calls": self.calls,
            "failures": self.failures,
            "rejections": self.rejections,
            "recovery_timeout_s": self.recovery_timeout,
        }


# ---------------------------------------------------------------------------
# Registry – every provider breaker is listed on /health
# ---------------------------------------------------------------------------
_registry: dict[str, CircuitBreaker] = {}


def register(cb: CircuitBreaker) -> CircuitBreaker:
    _registry[cb.name] = cb
    return cb


def get_all_statuses() -> dict[str, dict[str, Any]]:
    return {name: cb.status() for name, cb in _registry.items()}
