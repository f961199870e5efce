"""
Circuit Breaker implementation.

Fails fast while a backing service keeps failing, then lets a probe call
through once the recovery timeout has elapsed.
"""
import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pkg.logger.logger import get_logger


logger = get_logger(__name__)


T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, rejecting calls
    HALF_OPEN = "half_open"  # Probing recovery


class CircuitBreakerError(Exception):
    """Exception raised when the circuit rejects a call."""

    def __init__(self, name: str) -> None:
        """
        Initialize circuit breaker error.

        Args:
            name: Name of the rejecting circuit.
        """
        self.name = name
        self.message = f"Circuit breaker '{name}' is open"
        super().__init__(self.message)


class CircuitBreaker:
    """
    Circuit Breaker for async calls.

    Only exceptions listed in ``tracked_exceptions`` count as failures, so
    client errors (not found, validation) never open the circuit.

    Attributes:
        failure_threshold: Consecutive failures before opening.
        recovery_timeout: Seconds to stay open before probing.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        tracked_exceptions: tuple[type[BaseException], ...] = (Exception,),
    ) -> None:
        """
        Initialize the circuit breaker.

        Args:
            name: Circuit name for logging.
            failure_threshold: Number of consecutive failures to open circuit.
            recovery_timeout: Seconds before a probe call is allowed.
            tracked_exceptions: Exception types counted as failures.
        """
        self._name = name
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._tracked = tracked_exceptions

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Get current consecutive failure count."""
        return self._failure_count

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Execute an async function through the circuit breaker.

        Args:
            func: Async function to execute.
            *args: Function arguments.
            **kwargs: Function keyword arguments.

        Returns:
            Function result.

        Raises:
            CircuitBreakerError: If the circuit rejects the call.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = time.monotonic() - (self._opened_at or 0.0)
                if elapsed < self._recovery_timeout:
                    raise CircuitBreakerError(self._name)
                logger.info("Circuit breaker probing recovery", circuit=self._name)
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitBreakerError(self._name)
                self._probe_in_flight = True

        try:
            result = await func(*args, **kwargs)
        except self._tracked:
            await self._on_failure()
            raise
        except BaseException:
            await self._release_probe()
            raise
        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info("Circuit breaker closed after recovery", circuit=self._name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._probe_in_flight = False

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._probe_in_flight = False
            if (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self._failure_threshold
            ):
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        "Circuit breaker opened",
                        circuit=self._name,
                        failures=self._failure_count,
                        threshold=self._failure_threshold,
                    )
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()

    async def _release_probe(self) -> None:
        async with self._lock:
            self._probe_in_flight = False

    def reset(self) -> None:
        """Reset the circuit breaker to closed state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._probe_in_flight = False
        logger.info("Circuit breaker reset", circuit=self._name)
