"""Retry utilities for connection setup using tenacity.

Examples:
    Retry opening a protocol client with exponential backoff::

        >>> @with_retry(max_attempts=3)
        ... async def open_client(options: ClientOptions) -> ProtocolClient:
        ...     return factory(options)

    Add extra retryable exceptions::

        >>> @with_retry(max_attempts=5, extra_exceptions=(TransientNetworkError,))
        ... async def open_client(options: ClientOptions) -> ProtocolClient:
        ...     ...
"""

from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 4,
    extra_exceptions: tuple[type[Exception], ...] = (),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for retrying async functions with exponential backoff.

    Retries on timeouts and connection errors (refused or reset
    handshakes) plus any additional exception types specified via
    extra_exceptions.

    Args:
        max_attempts: Maximum number of attempts, including the first.
        min_wait: Minimum wait time between retries in seconds.
        max_wait: Maximum wait time between retries in seconds.
        extra_exceptions: Additional exception types to retry on.

    Returns:
        Decorator that wraps the function with retry logic.
    """
    retryable = (
        TimeoutError,
        ConnectionError,
        *extra_exceptions,
    )
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(retryable),
        reraise=True,
    )
