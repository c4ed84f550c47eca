"""
Retry logic with exponential backoff for handling transient failures.

Provides a decorator for retrying operations that fail due to transient
contention on the shared database file, and the delay schedule used by the
offline action queue between replay attempts.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
) -> float:
    """
    Delay before the next attempt after `attempt` failures.

    Args:
        attempt: Number of failed attempts so far (1 = first failure)
        base_delay: Delay after the first failure
        max_delay: Upper bound on the delay
        exponential_base: Growth factor per failure

    Returns:
        Delay in the same unit as base_delay
    """
    if attempt < 1:
        return 0
    return min(base_delay * (exponential_base ** (attempt - 1)), max_delay)


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation (delay *= base)
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)

    Example:
        @exponential_backoff(max_retries=3, base_delay=0.05, exceptions=(DatabaseBusyError,))
        def write_rows(session, rows):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    # Don't sleep after the last attempt
                    if attempt < max_retries:
                        current_delay = backoff_delay(
                            attempt + 1, base_delay, max_delay, exponential_base
                        )

                        if on_retry:
                            on_retry(attempt + 1, e, current_delay)

                        time.sleep(current_delay)
                    else:
                        raise RetryError(
                            f"Failed after {max_retries + 1} attempts: {str(e)}"
                        ) from e

        return wrapper
    return decorator
