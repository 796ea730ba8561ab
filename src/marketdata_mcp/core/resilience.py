"""
Resilience primitives for outbound content fetches.

Provides a fetch timeout wrapper, a linear retry delay schedule and a circuit
breaker so that an unhealthy content provider fails fast instead of holding
every fallback chain open for the full request timeout.

Example usage:

    from marketdata_mcp.core.resilience import (
        CircuitBreaker,
        run_with_timeout,
    )

    breaker = CircuitBreaker(name="brightdata")
    if breaker.can_execute():
        try:
            body = await run_with_timeout(client.fetch(url), 90.0, "fetch")
            breaker.record_success()
        except TimeoutException:
            breaker.record_failure()
            raise
"""

from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Awaitable, Dict, Optional, TypeVar
import asyncio
import time


#: Default upper bound for one content fetch, matching the provider's own limit
FETCH_TIMEOUT: float = 90.0

#: Delay added per retry attempt for transient gateway errors
RETRY_STEP_SECONDS: float = 1.0


T = TypeVar("T")


class TimeoutException(Exception):
    """Operation timed out.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded.
        operation: Name of the operation that timed out.
    """

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.operation = operation


async def run_with_timeout(
    awaitable: Awaitable[T],
    seconds: float,
    operation: str = "operation",
) -> T:
    """Await ``awaitable`` with a deadline.

    Cancellation of the caller is propagated unchanged; only the deadline
    expiring is converted.

    Raises:
        TimeoutException: If the operation exceeds the timeout.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise TimeoutException(
            f"{operation} timed out after {seconds}s",
            timeout_seconds=seconds,
            operation=operation,
        )


def retry_delay(attempt: int, step: float = RETRY_STEP_SECONDS) -> float:
    """Linear backoff: 1s after the first failure, 2s after the second, ..."""
    return step * max(1, attempt)


class CircuitState(Enum):
    """Circuit breaker states.

    CLOSED: Normal operation, requests flow through.
    OPEN: Failures exceeded threshold, requests rejected.
    HALF_OPEN: Testing recovery, limited requests allowed.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Circuit breaker for the content provider.

    Attributes:
        name: Identifier for this circuit breaker.
        failure_threshold: Consecutive failures before opening (default 5).
        recovery_timeout: Seconds before testing recovery (default 30).
        half_open_max_calls: Trial calls allowed in half-open (default 1).
    """

    name: str = "default"
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 1

    state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    failure_count: int = field(default=0, init=False)
    last_failure_time: float = field(default=0.0, init=False)
    half_open_calls: int = field(default=0, init=False)
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    def can_execute(self) -> bool:
        """Return True if a request may proceed."""
        with self._lock:
            if self.state == CircuitState.CLOSED:
                return True

            if self.state == CircuitState.OPEN:
                if time.time() - self.last_failure_time >= self.recovery_timeout:
                    self.state = CircuitState.HALF_OPEN
                    self.half_open_calls = 1
                    return True
                return False

            if self.half_open_calls < self.half_open_max_calls:
                self.half_open_calls += 1
                return True
            return False

    def retry_after(self) -> float:
        """Seconds until an open circuit will admit a trial call."""
        with self._lock:
            if self.state != CircuitState.OPEN:
                return 0.0
            elapsed = time.time() - self.last_failure_time
            return max(0.0, self.recovery_timeout - elapsed)

    def record_success(self) -> None:
        """Record a successful call; a successful trial call closes the circuit."""
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.half_open_calls = 0

    def record_failure(self) -> None:
        """Record a failed call; a failed trial call reopens the circuit."""
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()

            if self.state == CircuitState.HALF_OPEN:
                self.state = CircuitState.OPEN
            elif self.failure_count >= self.failure_threshold:
                self.state = CircuitState.OPEN

    def release_half_open_slot(self) -> None:
        """Give back a half-open slot whose call ended without an outcome.

        Calls that neither succeed nor fail in a way that says anything about
        provider health (client errors, cancellation) must not hold the
        half-open slot, or the circuit never admits another call.
        """
        with self._lock:
            if self.state == CircuitState.HALF_OPEN and self.half_open_calls > 0:
                self.half_open_calls -= 1

    def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.half_open_calls = 0
            self.last_failure_time = 0.0

    def get_status(self) -> Dict[str, Any]:
        """Get current circuit breaker status."""
        retry_after = self.retry_after()
        with self._lock:
            return {
                "name": self.name,
                "state": self.state.value,
                "failure_count": self.failure_count,
                "failure_threshold": self.failure_threshold,
                "retry_after_seconds": retry_after or None,
            }
