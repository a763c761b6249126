"""
Retry Utilities.

Provides retry with exponential backoff for package downloads.
"""

import asyncio
import functools
import random
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

from fhirfish.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Create decorator for retrying coroutines with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts after the first call
        initial_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        jitter: Whether to add random jitter to delays
        exceptions: Tuple of exceptions to catch and retry
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        logger.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=max_retries + 1,
                            error=str(e),
                        )
                        raise

                    actual_delay = delay * (0.5 + random.random()) if jitter else delay
                    logger.warning(
                        "retry_scheduled",
                        function=func.__name__,
                        attempt=attempt + 1,
                        error=str(e),
                        delay=round(actual_delay, 2),
                    )
                    await asyncio.sleep(actual_delay)

                    # Calculate next delay
                    delay = min(delay * exponential_base, max_delay)

            raise RuntimeError("Retry loop exited without a result")

        return wrapper

    return decorator


__all__ = ["retry_with_backoff"]
