"""
Response Envelope and Exception Handlers

Every response body, success or failure, has the shape::

    {"status": "success" | "error", "message": <text>, "data": <payload>}

Failures carry ``data = {"code": <ErrorCode>}``; in development the text of
the underlying error is added as ``data.error``. In production only the
public message is shown.

Example:
    >>> from api.errors import error_envelope
    >>> error_envelope("UNAUTHORIZED", "Invalid credentials")
    {'status': 'error', 'message': 'Invalid credentials', 'data': {'code': 'UNAUTHORIZED'}}
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from services.database import BackendUnavailableError
from utils.errors import APIError, ErrorCode, status_for

logger = logging.getLogger(__name__)

CODE_BY_STATUS = {
    400: ErrorCode.BAD_REQUEST.value,
    401: ErrorCode.UNAUTHORIZED.value,
    403: ErrorCode.FORBIDDEN.value,
    404: ErrorCode.NOT_FOUND.value,
    409: ErrorCode.CONFLICT.value,
}

SUCCESS = "success"
ERROR = "error"


def success_envelope(message: str, data: Any = None) -> Dict[str, Any]:
    return {"status": SUCCESS, "message": message, "data": data}


def error_envelope(
    code: str,
    message: str,
    inner: Optional[str] = None,
    development: bool = False,
) -> Dict[str, Any]:
    """Build a failure envelope.

    Args:
        code: Error code; the HTTP status is derived with ``status_for``
        message: Human-readable message
        inner: Underlying error text, only included in development
        development: Whether the process runs in development mode

    Returns:
        Envelope dictionary
    """
    data: Dict[str, Any] = {"code": code}
    if development and inner:
        data["error"] = inner
    return {"status": ERROR, "message": message, "data": data}


def _correlation_id(request: Request) -> Optional[str]:
    return getattr(request.state, "correlation_id", None)


def _respond(code: str, message: str, inner: Optional[str] = None) -> JSONResponse:
    envelope = error_envelope(code, message, inner, development=settings.is_development)
    return JSONResponse(status_code=status_for(code), content=envelope)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    development = settings.is_development
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"{exc.code}: {exc.message}",
        extra={"correlation_id": _correlation_id(request), "path": request.url.path},
        exc_info=exc.inner if exc.status_code >= 500 else None
    )
    message = exc.message if development else exc.public_message
    inner = str(exc.inner) if exc.inner is not None else None
    return _respond(exc.code, message, inner)


async def backend_error_handler(request: Request, exc: BackendUnavailableError) -> JSONResponse:
    logger.error(
        f"Backend unavailable: {exc.message}",
        extra={"correlation_id": _correlation_id(request), "path": request.url.path}
    )
    return _respond(ErrorCode.INTERNAL_ERROR.value, "Internal server error", exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(
        "Rejected request payload",
        extra={"correlation_id": _correlation_id(request), "path": request.url.path}
    )
    return _respond(ErrorCode.BAD_REQUEST.value, "Invalid request payload", str(exc.errors()))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = CODE_BY_STATUS.get(exc.status_code, ErrorCode.BAD_REQUEST.value)
    if exc.status_code >= 500:
        code = ErrorCode.INTERNAL_ERROR.value
    envelope = error_envelope(code, str(exc.detail), development=settings.is_development)
    return JSONResponse(status_code=exc.status_code, content=envelope, headers=exc.headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={"correlation_id": _correlation_id(request), "path": request.url.path},
        exc_info=True
    )
    return _respond(ErrorCode.INTERNAL_ERROR.value, "Internal server error", str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope-producing handlers on ``app``."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(BackendUnavailableError, backend_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
