"""Request Context Binding for Turnstile

Turns the bearer token of an incoming request into a request-scoped
identity context, and exposes the accessors and guards protected routes
use to reach tenant data.

Features:
    - FastAPI dependency that verifies the bearer token
    - Context variable carrying the identity across async calls
    - Typed accessors (user id, tenant id, role checks)
    - Guard dependencies for admin-only and tenant-scoped routes

Example:
    >>> from fastapi import Depends
    >>> from auth.tenant_context import require_tenant_access
    >>>
    >>> @router.get("/gyms/{gym_id}/members")
    >>> async def list_members(gym_id: str, ctx=Depends(require_tenant_access)):
    ...     return await members_for(ctx.tenant_id)
"""

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import Depends, Request

from auth import permissions
from utils.errors import ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

# Context variable for storing the identity across async calls
_request_context: ContextVar[Optional["RequestContext"]] = ContextVar("request_context", default=None)


@dataclass(frozen=True)
class RequestContext:
    """Identity attached to an authenticated request.

    Attributes:
        user_id: Principal id
        user_type: "platform_admin" or "tenant_user"
        username: Principal username
        role: Tenant role, None for platform admins
        tenant_id: Gym id, None for platform admins
        verification_status: Tenant verification status
        claims: Full verified claim set
    """

    user_id: str
    user_type: str
    username: str
    role: Optional[str] = None
    tenant_id: Optional[str] = None
    verification_status: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "RequestContext":
        return cls(
            user_id=claims["user_id"],
            user_type=claims["user_type"],
            username=claims.get("username", ""),
            role=claims.get("role"),
            tenant_id=claims.get("gym_id"),
            verification_status=claims.get("verification_status"),
            claims=dict(claims),
        )


def set_request_context(context: Optional[RequestContext]) -> None:
    _request_context.set(context)


def get_request_context_var() -> Optional[RequestContext]:
    """Identity bound to the current task, if any."""
    return _request_context.get()


def clear_request_context() -> None:
    _request_context.set(None)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an ``Authorization`` header value.

    The ``Bearer`` scheme is matched exactly, including case.

    Raises:
        UnauthorizedError: Header missing, another scheme, or empty token

    Example:
        >>> extract_bearer_token("Bearer abc.def.ghi")
        'abc.def.ghi'
    """
    if not authorization:
        raise UnauthorizedError("Authorization header required")
    if not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError("Invalid authorization format")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise UnauthorizedError("Invalid authorization format")
    return token


async def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency that authenticates the request.

    Verifies the bearer token (signature and time only, no store access)
    and binds the resulting identity to the request and the current task.

    Raises:
        UnauthorizedError: Missing, malformed, invalid or expired token
    """
    token = extract_bearer_token(request.headers.get("Authorization"))

    validation = request.app.state.auth_service.validate_token(token)
    if not validation.valid:
        logger.info(f"Rejected bearer token: {validation.message}")
        raise UnauthorizedError("Invalid or expired token")

    context = RequestContext.from_claims(validation.claims)
    request.state.auth = context
    set_request_context(context)

    logger.debug(
        "Authenticated request",
        extra={"user_id": context.user_id, "user_type": context.user_type, "tenant_id": context.tenant_id}
    )
    return context


def _require(context: Optional[RequestContext]) -> RequestContext:
    if context is None:
        context = get_request_context_var()
    if context is None:
        raise UnauthorizedError("Request is not authenticated")
    return context


def user_id_from(context: Optional[RequestContext] = None) -> str:
    """User id of the authenticated principal.

    Raises:
        UnauthorizedError: If no identity is bound
    """
    return _require(context).user_id


def tenant_id_from(context: Optional[RequestContext] = None) -> Optional[str]:
    """Gym id of the principal; None for platform admins."""
    return _require(context).tenant_id


def is_platform_admin(context: Optional[RequestContext] = None) -> bool:
    return permissions.is_platform_admin(_require(context).claims)


def is_gym_admin(context: Optional[RequestContext] = None) -> bool:
    return permissions.is_gym_admin(_require(context).claims)


def validate_tenant_access(requested_tenant_id: Optional[str], context: Optional[RequestContext] = None) -> None:
    """Fail unless the principal may reach ``requested_tenant_id``.

    Raises:
        ForbiddenError: Cross-tenant access by a tenant user
    """
    ctx = _require(context)
    if not permissions.has_tenant_access(ctx.claims, requested_tenant_id):
        logger.warning(
            "Cross-tenant access denied",
            extra={"user_id": ctx.user_id, "tenant_id": ctx.tenant_id, "requested_tenant_id": requested_tenant_id}
        )
        raise ForbiddenError("Access to this gym is not allowed")


async def require_platform_admin(
    context: RequestContext = Depends(get_request_context),
) -> RequestContext:
    """Route guard: platform administrators only."""
    if not is_platform_admin(context):
        raise ForbiddenError("Platform administrator access required")
    return context


async def require_gym_admin(
    context: RequestContext = Depends(get_request_context),
) -> RequestContext:
    """Route guard: platform admins and tenant admins."""
    if not is_gym_admin(context):
        raise ForbiddenError("Gym administrator access required")
    return context


async def require_tenant_access(
    gym_id: str,
    context: RequestContext = Depends(get_request_context),
) -> RequestContext:
    """Route guard for paths carrying a ``gym_id`` parameter."""
    validate_tenant_access(gym_id, context)
    return context
