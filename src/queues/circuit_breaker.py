"""Circuit breaker for best-effort async side calls.

Ingestion publishes immediate-recompute triggers through this breaker: when
Redis is down, triggers are skipped quickly instead of adding a timeout to
every accepted event. The interval scheduler still picks the items up.

Usage:
    breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=30.0)
    try:
        await breaker.call(queue.publish, job)
    except CircuitOpenError:
        ...
"""

import enum
import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""


class CircuitBreaker:
    """CLOSED -> OPEN after N consecutive failures; one trial call after a timeout.

    Args:
        failure_threshold: Consecutive failures before opening circuit.
        recovery_timeout: Seconds before allowing a trial call.
        name: Name used in log messages.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        name: str = "circuit_breaker",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    async def call(
        self,
        fn: Callable[..., Coroutine[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run fn through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open and the recovery
                timeout has not elapsed.
        """
        if self._state == CircuitState.OPEN:
            if self._clock() - self._opened_at < self._recovery_timeout:
                raise CircuitOpenError(f"Circuit breaker {self._name} is OPEN")
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit breaker %s: OPEN -> HALF_OPEN", self._name)

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise

        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker %s: HALF_OPEN -> CLOSED", self._name)
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        return result

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if (
            self._state == CircuitState.HALF_OPEN
            or self._consecutive_failures >= self._failure_threshold
        ):
            if self._state != CircuitState.OPEN:
                logger.warning(
                    "Circuit breaker %s: %s -> OPEN after %d failures",
                    self._name,
                    self._state.value.upper(),
                    self._consecutive_failures,
                )
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
