"""Error Kinds for Turnstile

Every failure that reaches the HTTP boundary is an ``APIError`` subclass.
Each class carries a stable wire code, a human message used in logs and
development responses, a ``public_message`` safe to show in production, and
an optional ``inner`` exception whose text is only exposed in development.

Example:
    >>> from utils.errors import UnauthorizedError, status_for
    >>> err = UnauthorizedError("invalid refresh token")
    >>> err.code, err.status_code
    ('UNAUTHORIZED', 401)
    >>> status_for("SOMETHING_ELSE")
    400
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable machine-readable codes carried in ``data.code``."""

    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_BY_CODE = {
    ErrorCode.BAD_REQUEST.value: 400,
    ErrorCode.UNAUTHORIZED.value: 401,
    ErrorCode.FORBIDDEN.value: 403,
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.CONFLICT.value: 409,
    ErrorCode.INTERNAL_ERROR.value: 500,
}


def status_for(code: str) -> int:
    """Map an error code to its HTTP status; unknown codes map to 400."""
    if isinstance(code, ErrorCode):
        code = code.value
    return STATUS_BY_CODE.get(code, 400)


class APIError(Exception):
    """Base class for errors rendered into the response envelope.

    Attributes:
        code: Wire code (see ErrorCode)
        message: Human-readable message
        public_message: Message shown when inner detail is suppressed
        inner: Underlying exception, if any
    """

    code: str = ErrorCode.BAD_REQUEST.value
    default_message: str = "Bad request"
    default_public_message: Optional[str] = None

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        inner: Optional[BaseException] = None,
        public_message: Optional[str] = None,
    ) -> None:
        self.message = message or self.default_message
        self.public_message = public_message or self.default_public_message or self.message
        self.inner = inner
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return status_for(self.code)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(code='{self.code}', message='{self.message}')>"


class BadRequestError(APIError):
    """Request is malformed or invalid (400)."""

    code = ErrorCode.BAD_REQUEST.value
    default_message = "Bad request"


class UnauthorizedError(APIError):
    """Authentication failed or missing (401)."""

    code = ErrorCode.UNAUTHORIZED.value
    default_message = "Unauthorized"


class InvalidCredentialsError(UnauthorizedError):
    """Unknown user, wrong password or unknown tenant; never distinguished."""

    default_message = "Invalid credentials"


class AccountDisabledError(UnauthorizedError):
    """Valid password, but the user or its tenant is deactivated."""

    default_message = "Account is disabled"
    default_public_message = "Authentication failed"


class DemoExpiredError(UnauthorizedError):
    """Valid credentials, but the demo period has lapsed."""

    default_message = "Demo period has expired"


class ForbiddenError(APIError):
    """Token valid but an authorization predicate denies access (403)."""

    code = ErrorCode.FORBIDDEN.value
    default_message = "Forbidden"


class NotFoundError(APIError):
    """Requested resource not found (404)."""

    code = ErrorCode.NOT_FOUND.value
    default_message = "Not found"


class ConflictError(APIError):
    """Resource conflict, e.g. duplicate creation (409)."""

    code = ErrorCode.CONFLICT.value
    default_message = "Conflict"


class InternalError(APIError):
    """Backend unavailable, deadline exceeded or signing failure (500)."""

    code = ErrorCode.INTERNAL_ERROR.value
    default_message = "Internal server error"
    default_public_message = "Internal server error"


__all__ = [
    "ErrorCode",
    "STATUS_BY_CODE",
    "status_for",
    "APIError",
    "BadRequestError",
    "UnauthorizedError",
    "InvalidCredentialsError",
    "AccountDisabledError",
    "DemoExpiredError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "InternalError",
]
