"""Authentication and Authorization modules for Turnstile

Provides the token codec, password hashing, the auth service, authorization
predicates and request context binding.
"""

from auth.jwt_handler import (
    PasswordTooLongError,
    TokenCodec,
    TokenError,
    TokenExpiredError,
    TokenMalformedError,
    TokenSignatureError,
    TokenSigningError,
    hash_password,
    needs_rehash,
    verify_password,
)

from auth.permissions import (
    demo_limitations_apply,
    has_role_at_least,
    has_tenant_access,
    is_demo_expired,
)

from auth.service import AuthService

from auth.tenant_context import (
    RequestContext,
    get_request_context,
    require_gym_admin,
    require_platform_admin,
    require_tenant_access,
    validate_tenant_access,
)

__all__ = [
    # Token codec / hasher
    "PasswordTooLongError",
    "TokenCodec",
    "TokenError",
    "TokenExpiredError",
    "TokenMalformedError",
    "TokenSignatureError",
    "TokenSigningError",
    "hash_password",
    "needs_rehash",
    "verify_password",

    # Predicates
    "demo_limitations_apply",
    "has_role_at_least",
    "has_tenant_access",
    "is_demo_expired",

    # Service
    "AuthService",

    # Request context
    "RequestContext",
    "get_request_context",
    "require_gym_admin",
    "require_platform_admin",
    "require_tenant_access",
    "validate_tenant_access",
]
