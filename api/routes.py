"""
Turnstile API Routes

REST endpoints of the authentication service. Every body is wrapped in the
``{status, message, data}`` envelope.

Endpoints:
    POST   /auth/login       - Log in (admin, or tenant user with X-Gym-ID)
    POST   /auth/refresh     - Exchange a refresh token for an access token
    POST   /auth/logout      - Revoke a refresh token (idempotent)
    POST   /auth/logout-all  - Revoke every refresh token of the caller
    GET    /auth/validate    - Verify a bearer access token
    GET    /auth/me          - Identity bound to the bearer token

Example:
    >>> import httpx
    >>> response = httpx.post(
    ...     "http://localhost:8080/auth/login",
    ...     headers={"X-Gym-ID": "6f1c..."},
    ...     json={"username": "jane", "password": "s3cret"},
    ... )
    >>> response.json()["data"]["user_info"]["role"]
    'user'
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from api.errors import success_envelope
from auth.service import AuthService
from auth.tenant_context import RequestContext, extract_bearer_token, get_request_context
from config import settings
from models.schemas import LoginRequest, RefreshTokenRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _client_ip(request: Request):
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Authenticate and issue an access/refresh token pair.

    Without the tenant header (or with a blank one) the credentials are
    checked against the platform admins; otherwise against the users of
    the named gym.
    """
    pair = await service.login(
        body,
        tenant_selector=request.headers.get(settings.TENANT_HEADER),
        client_ip=_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return success_envelope("Login successful", pair.model_dump(mode="json"))


@router.post("/refresh")
async def refresh(
    body: RefreshTokenRequest,
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    pair = await service.refresh(body.refresh_token)
    return success_envelope("Token refreshed successfully", pair.model_dump(mode="json"))


@router.post("/logout")
async def logout(
    body: RefreshTokenRequest,
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    await service.logout(body.refresh_token)
    return success_envelope("Logout successful")


@router.post("/logout-all")
async def logout_all(
    context: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Revoke every refresh token held by the caller, in every gym."""
    revoked = await service.logout_all(context.user_id, context.user_type)
    return success_envelope("Logged out from all sessions", {"revoked": revoked})


@router.get("/validate")
async def validate(
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Report whether the bearer token is valid.

    A missing header or a non-Bearer scheme is a 401; a present but
    invalid token is a 200 with ``valid: false``.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    result = service.validate_token(token)
    return success_envelope(result.message, result.model_dump(mode="json"))


@router.get("/me")
async def me(context: RequestContext = Depends(get_request_context)) -> Dict[str, Any]:
    return success_envelope(
        "Authenticated",
        {
            "user_id": context.user_id,
            "username": context.username,
            "user_type": context.user_type,
            "role": context.role,
            "gym_id": context.tenant_id,
            "verification_status": context.verification_status,
        },
    )
