"""
Circuit breaker for calls to a flaky dependency.

After ``failure_threshold`` consecutive failures the breaker opens and
rejects calls outright until ``recovery_timeout`` has elapsed. The next call
is then let through as a probe: success closes the breaker, failure reopens
it for another full period. Only one probe is in flight at a time; other
callers are rejected until it settles.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Tuple, Type

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenException(Exception):
    """Raised instead of calling through while the breaker is open."""

    def __init__(self, name: str, retry_in: float, state: str = "OPEN"):
        super().__init__(f"Circuit breaker '{name}' is {state} - blocking call")
        self.retry_in = retry_in


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Only exceptions listed in ``failure_exceptions`` count as failures.
    Anything else (a "not found" answer, say) is a healthy response from the
    protected dependency and passes through untouched.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        failure_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_exceptions = failure_exceptions
        self.name = name
        self.logger = get_logger(f"circuit_breaker.{name}")
        self._clock = clock

        self._state = CircuitBreakerState.CLOSED
        self._consecutive_failures = 0
        self._open_until = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        if self._state == CircuitBreakerState.OPEN and self._clock() >= self._open_until:
            self._state = CircuitBreakerState.HALF_OPEN
            self.logger.info("Circuit breaker half-open, probing", name=self.name)
        return self._state

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run ``func`` unless the breaker is open or a probe is already running."""
        state = self.state
        if state == CircuitBreakerState.OPEN:
            raise CircuitBreakerOpenException(self.name, self._open_until - self._clock())
        if state == CircuitBreakerState.HALF_OPEN and self._probe_in_flight:
            raise CircuitBreakerOpenException(self.name, 0.0, state="HALF_OPEN")

        probing = state == CircuitBreakerState.HALF_OPEN
        if probing:
            self._probe_in_flight = True
        try:
            result = await func(*args, **kwargs)
        except self.failure_exceptions:
            self._on_failure()
            raise
        except Exception:
            # The dependency answered; the answer just was not a result
            self._on_success()
            raise
        finally:
            if probing:
                self._probe_in_flight = False

        self._on_success()
        return result

    def _on_success(self):
        if self._state == CircuitBreakerState.HALF_OPEN:
            self.logger.info("Circuit breaker closed after successful probe", name=self.name)
        self._state = CircuitBreakerState.CLOSED
        self._consecutive_failures = 0

    def _on_failure(self):
        self._consecutive_failures += 1
        probing = self._state == CircuitBreakerState.HALF_OPEN
        if probing or self._consecutive_failures >= self.failure_threshold:
            self._state = CircuitBreakerState.OPEN
            self._open_until = self._clock() + self.recovery_timeout
            self.logger.warning(
                "Circuit breaker opened",
                name=self.name,
                consecutive_failures=self._consecutive_failures,
                threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
            )

    def get_state(self) -> Dict[str, Any]:
        """Snapshot for health and debugging."""
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self._consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }

    def is_open(self) -> bool:
        return self.state == CircuitBreakerState.OPEN
