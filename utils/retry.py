"""Startup Retry Utilities for Turnstile

Request-path store calls are never retried: a failure surfaces as an
internal error and the client decides. Retries are reserved for process
startup, where the database may come up a few seconds after the service.

Built on top of the `tenacity` library.

Example:
    >>> from utils.retry import retry_with_backoff
    >>>
    >>> @retry_with_backoff(max_attempts=5)
    ... async def connect():
    ...     await db.init()
"""

import logging
from functools import wraps
from typing import Awaitable, Callable, Optional, Tuple, Type

from tenacity import (
    AsyncRetrying,
    after_log,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import settings

logger = logging.getLogger(__name__)


class BackendNotReadyError(Exception):
    """Raised by a readiness check that reports the backend is not up yet."""
    pass


def retry_with_backoff(
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: float = 30.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    logger_instance: Optional[logging.Logger] = None
):
    """Decorator for retrying async functions with exponential backoff.

    Args:
        max_attempts: Maximum attempts (default: settings.STARTUP_RETRY_ATTEMPTS)
        base_delay: Initial delay in seconds (default: settings.STARTUP_RETRY_DELAY)
        max_delay: Maximum delay between attempts in seconds
        exceptions: Tuple of exceptions to retry on
        logger_instance: Custom logger (default: module logger)

    Returns:
        Decorated async function; the last exception is re-raised when
        attempts run out

    Example:
        >>> @retry_with_backoff(max_attempts=3, base_delay=0.5)
        ... async def ping():
        ...     if not await db.health_check():
        ...         raise BackendNotReadyError("database not ready")
    """
    max_attempts = max_attempts or settings.STARTUP_RETRY_ATTEMPTS
    base_delay = base_delay or settings.STARTUP_RETRY_DELAY
    log = logger_instance or logger

    def decorator(func: Callable[..., Awaitable]) -> Callable[..., Awaitable]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(multiplier=base_delay, max=max_delay),
                retry=retry_if_exception_type(exceptions),
                before_sleep=before_sleep_log(log, logging.WARNING),
                after=after_log(log, logging.DEBUG),
                reraise=True
            ):
                with attempt:
                    return await func(*args, **kwargs)

        return wrapper

    return decorator


async def wait_for_backend(
    check: Callable[[], Awaitable[bool]],
    name: str = "database",
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
) -> None:
    """Poll ``check`` until it returns True.

    Args:
        check: Async health check returning True when the backend is ready
        name: Backend name for log messages
        max_attempts: Maximum attempts (default: settings.STARTUP_RETRY_ATTEMPTS)
        base_delay: Initial delay (default: settings.STARTUP_RETRY_DELAY)

    Raises:
        BackendNotReadyError: If the backend never became ready
    """
    @retry_with_backoff(
        max_attempts=max_attempts,
        base_delay=base_delay,
        exceptions=(BackendNotReadyError,),
    )
    async def _check_ready() -> None:
        if not await check():
            raise BackendNotReadyError(f"{name} is not ready")

    await _check_ready()
    logger.info(f"{name} is ready")
