"""
Retry Decorator with Exponential Backoff
Automatic retry logic for transient failures
"""

import asyncio
import functools
import random
from typing import Type, Tuple, Optional, Callable

from .logger import get_logger

logger = get_logger()


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """Delay before retry number ``attempt + 1`` (attempt is zero-based)"""
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    if jitter:
        delay = delay * (0.5 + random.random())
    return delay


def retry_async(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None
):
    """
    Async retry decorator with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts after the first call
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries
        exponential_base: Base for exponential backoff calculation
        jitter: Add random jitter to prevent thundering herd
        retryable_exceptions: Tuple of exception types to retry on
        on_retry: Optional callback called on each retry (exception, attempt)
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            retries = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    if retries >= max_retries:
                        logger.error(f"{func.__name__} failed after {retries + 1} attempt(s): {e}")
                        raise
                    delay = backoff_delay(retries, base_delay, max_delay, exponential_base, jitter)
                    retries += 1
                    logger.warning(
                        f"{func.__name__} attempt {retries} failed, retrying in {delay:.1f}s: {str(e)[:100]}"
                    )
                    if on_retry:
                        on_retry(e, retries)
                    await asyncio.sleep(delay)

        return wrapper
    return decorator
