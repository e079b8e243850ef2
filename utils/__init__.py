"""Utility modules for Turnstile

Provides error kinds and startup retry helpers.
"""

from utils.errors import (
    APIError,
    BadRequestError,
    ForbiddenError,
    InternalError,
    UnauthorizedError,
    status_for,
)

from utils.retry import (
    BackendNotReadyError,
    retry_with_backoff,
    wait_for_backend,
)

__all__ = [
    # Errors
    "APIError",
    "BadRequestError",
    "ForbiddenError",
    "InternalError",
    "UnauthorizedError",
    "status_for",

    # Retry utilities
    "BackendNotReadyError",
    "retry_with_backoff",
    "wait_for_backend",
]
