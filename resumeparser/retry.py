"""
Backoff for calls to the resume service.

Only transient failures are retried: timeouts, dropped connections and
the status codes in RETRYABLE_STATUS_CODES. A 4xx answer is final.
"""

import functools
import time
from typing import Callable, Iterator, Optional, Tuple, Type

RETRYABLE_STATUS_CODES = frozenset({
    408,  # Request Timeout
    429,  # Too Many Requests
    500,
    502,
    503,
    504,
})


class RetryError(Exception):
    """Every attempt failed; the last failure is chained as __cause__."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class RetryableStatus(Exception):
    """Raised for a response whose status code is worth another attempt."""

    def __init__(self, response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def backoff_delays(
    retries: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
) -> Iterator[float]:
    """Yield the wait before each retry: base, base*factor, ... capped at max_delay."""
    delay = base_delay
    for _ in range(retries):
        yield min(delay, max_delay)
        delay *= exponential_base


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
):
    """
    Retry the decorated call on `exceptions`, sleeping between attempts.

    Args:
        max_retries: Retries after the first attempt (0 = single attempt)
        base_delay: Wait before the first retry, in seconds
        max_delay: Upper bound for any single wait
        exponential_base: Growth factor of the wait
        exceptions: Exception types that trigger a retry; others propagate
        on_retry: Called as on_retry(attempt, error, delay) before sleeping

    Raises:
        RetryError: after max_retries + 1 failed attempts
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delays = backoff_delays(max_retries, base_delay, max_delay, exponential_base)
            attempt = 0
            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    delay = next(delays, None)
                    if delay is None:
                        raise RetryError(f"Failed after {attempt} attempts: {e}", attempts=attempt) from e
                    if on_retry:
                        on_retry(attempt, e, delay)
                    time.sleep(delay)

        return wrapper
    return decorator
