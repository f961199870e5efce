"""
Resilience package.
"""
from .circuit_breaker import CircuitBreaker, CircuitBreakerError, CircuitState
from .retry import RetryPolicy, backoff_delay, retry_async

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerError",
    "CircuitState",
    "RetryPolicy",
    "backoff_delay",
    "retry_async",
]
