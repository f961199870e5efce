"""
Retry with exponential backoff and jitter.
"""
import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from pkg.logger.logger import get_logger


logger = get_logger(__name__)


T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """
    Delay before the given retry attempt.

    Full jitter: a random value between zero and the exponential cap, so
    concurrent callers do not retry in lockstep.

    Args:
        attempt: Zero-based retry attempt.
        base_delay: Delay cap of the first retry in seconds.
        max_delay: Upper bound of any delay in seconds.

    Returns:
        Delay in seconds.
    """
    cap = min(max_delay, base_delay * (2 ** attempt))
    return random.uniform(0, cap)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    **kwargs: Any,
) -> T:
    """
    Call an async function, retrying on the given exception types.

    Only retry idempotent operations.

    Args:
        func: Async function to call.
        *args: Function arguments.
        attempts: Total number of calls, including the first one.
        base_delay: Backoff base in seconds.
        max_delay: Backoff cap in seconds.
        retry_on: Exception types that trigger a retry.
        **kwargs: Function keyword arguments.

    Returns:
        Function result.

    Raises:
        The last exception once attempts are exhausted, or any exception
        not listed in ``retry_on`` immediately.
    """
    for attempt in range(attempts):
        try:
            return await func(*args, **kwargs)
        except retry_on as e:
            if attempt == attempts - 1:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "Retrying after transient failure",
                function=getattr(func, "__name__", repr(func)),
                attempt=attempt + 1,
                attempts=attempts,
                delay=round(delay, 3),
                error=str(e),
            )
            await asyncio.sleep(delay)
    raise RuntimeError("attempts must be >= 1")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings bundled for injection.

    Attributes:
        attempts: Total number of calls, including the first one.
        base_delay: Backoff base in seconds.
        max_delay: Backoff cap in seconds.
        retry_on: Exception types that trigger a retry.
    """
    attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Call ``func`` under this policy."""
        return await retry_async(
            func,
            *args,
            attempts=self.attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            retry_on=self.retry_on,
            **kwargs,
        )
