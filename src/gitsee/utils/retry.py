"""
Retry utility with exponential backoff for transient GitHub failures.
"""

import os
import asyncio
import logging
import random
from functools import wraps
from typing import Callable, TypeVar, Optional

import httpx

logger = logging.getLogger(__name__)

T = TypeVar('T')


# HTTP status codes that should be retried
RETRYABLE_STATUS_CODES = {
    429,  # Too Many Requests (rate limit)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if an error should be retried.

    Errors carrying a status_code are retried only for rate limits and
    server-side failures. Transport errors and timeouts are always retried.

    Args:
        error: The exception to check

    Returns:
        True if the error should be retried
    """
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code in RETRYABLE_STATUS_CODES

    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return True

    error_str = str(error).lower()
    network_keywords = [
        "connection",
        "timeout",
        "network",
        "unreachable",
        "temporarily",
    ]
    return any(keyword in error_str for keyword in network_keywords)


def calculate_delay(
    attempt: int,
    base_delay: float,
    exponential_base: float,
    max_delay: float,
    jitter: bool
) -> float:
    """
    Calculate delay for retry attempt with exponential backoff.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        exponential_base: Base for exponential backoff
        max_delay: Maximum delay in seconds
        jitter: Whether to add random jitter

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    if jitter:
        delay = delay * (0.5 + random.random() * 0.5)

    return delay


def retry_with_backoff(
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    exponential_base: Optional[float] = None,
    jitter: bool = True
):
    """
    Decorator for retrying async functions with exponential backoff.

    Reads configuration from environment variables if not provided:
    - MAX_RETRIES: Maximum number of retry attempts (default: 2)
    - RETRY_BASE_DELAY: Initial delay in seconds (default: 0.5)
    - RETRY_MAX_DELAY: Maximum delay between retries (default: 10.0)
    - RETRY_BACKOFF_BASE: Exponential base for backoff (default: 2.0)

    Args:
        max_retries: Maximum retry attempts
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        jitter: Add random jitter to delays

    Returns:
        Decorated function with retry logic
    """
    if max_retries is None:
        max_retries = int(os.getenv("MAX_RETRIES", "2"))
    if base_delay is None:
        base_delay = float(os.getenv("RETRY_BASE_DELAY", "0.5"))
    if max_delay is None:
        max_delay = float(os.getenv("RETRY_MAX_DELAY", "10.0"))
    if exponential_base is None:
        exponential_base = float(os.getenv("RETRY_BACKOFF_BASE", "2.0"))

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(f"{func.__name__} succeeded on attempt {attempt + 1}")

                    return result

                except Exception as e:
                    if attempt >= max_retries:
                        logger.error(f"{func.__name__} failed after {max_retries + 1} attempts")
                        raise

                    if not is_retryable_error(e):
                        logger.debug(f"{func.__name__} failed with non-retryable error: {e}")
                        raise

                    delay = calculate_delay(
                        attempt,
                        base_delay,
                        exponential_base,
                        max_delay,
                        jitter
                    )

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}/{max_retries + 1}, "
                        f"retrying in {delay:.2f}s: {e}"
                    )

                    await asyncio.sleep(delay)

        return wrapper

    return decorator
