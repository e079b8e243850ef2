"""
Value Objects and API Schemas

Pydantic v2 models shared by the stores, the token codec, the authentication
service and the HTTP layer. Store records are plain snapshots; they are never
written back through these objects.

Example:
    >>> from models.schemas import AccessClaims
    >>> claims = AccessClaims(
    ...     user_id="u-1", username="root", user_type="platform_admin",
    ...     is_active=True, iat=1700000000, exp=1700086400
    ... )
    >>> claims.gym_id is None
    True
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.identity import UserType, utc_now

# bcrypt only reads the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


# ============================================================================
# STORE RECORDS
# ============================================================================


class PlatformAdminRecord(BaseModel):
    """Snapshot of a row in the global admin table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    password_hash: str
    is_active: bool
    last_login_at: Optional[datetime] = None


class TenantUserRecord(BaseModel):
    """Snapshot of a row in a tenant's user table.

    ``tenant_id`` is the owning gym's id, not its schema name.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    username: str
    email: str
    password_hash: str
    role: str
    is_active: bool
    verification_status: str
    created_at: datetime
    last_login_at: Optional[datetime] = None


class TenantRecord(BaseModel):
    """Resolved tenant selector."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    domain: str
    is_active: bool


class RefreshTokenRecord(BaseModel):
    """A live refresh token as persisted by the refresh-token store.

    Example:
        >>> record = RefreshTokenRecord(
        ...     token="eyJ...", user_id="u-1", user_type="platform_admin",
        ...     issued_at=now, expires_at=now + timedelta(days=7)
        ... )
    """

    token: str
    user_id: str
    user_type: UserType
    tenant_id: Optional[str] = None
    issued_at: datetime
    expires_at: datetime

    model_config = ConfigDict(use_enum_values=True)


class LoginAttempt(BaseModel):
    """Append-only login audit entry."""

    model_config = ConfigDict(use_enum_values=True)

    user_id: Optional[str] = None
    user_type: UserType
    tenant_id: Optional[str] = None
    success: bool
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    attempted_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# TOKEN CLAIMS
# ============================================================================


class AccessClaims(BaseModel):
    """Decoded payload of an access token.

    Unknown claims present in a verified token are ignored.
    """

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    user_id: str = Field(..., min_length=1)
    username: str
    user_type: UserType
    is_active: bool
    gym_id: Optional[str] = None
    role: Optional[str] = None
    verification_status: Optional[str] = None
    iat: float
    exp: float


class RefreshClaims(BaseModel):
    """Decoded payload of a refresh token.

    ``jti`` makes two tokens minted for the same identity in the same
    second distinct, so a replaced record never matches its successor.
    """

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    user_id: str = Field(..., min_length=1)
    user_type: UserType
    gym_id: Optional[str] = None
    jti: str = Field(..., min_length=1)
    iat: float
    exp: float


# ============================================================================
# REQUEST/RESPONSE SCHEMAS
# ============================================================================


class LoginRequest(BaseModel):
    """Credentials posted to /auth/login.

    Example:
        >>> LoginRequest(username="root", password="p@ss")
    """

    username: str = Field(..., min_length=1, max_length=255, description="Username")
    password: str = Field(..., min_length=1, description="Plaintext password")

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        """Reject passwords longer than bcrypt can hash (counted in UTF-8 bytes)."""
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


class RefreshTokenRequest(BaseModel):
    """Body of /auth/refresh and /auth/logout."""

    refresh_token: str = Field(..., min_length=1, description="Refresh token from login")


class UserInfo(BaseModel):
    """Public description of the authenticated principal."""

    user_id: str
    username: str
    email: Optional[str] = None
    user_type: str
    role: Optional[str] = None
    gym_id: Optional[str] = None
    verification_status: Optional[str] = None


class TokenPair(BaseModel):
    """Result of login and refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime = Field(..., description="Access token expiry (UTC)")
    user_info: UserInfo


class TokenValidation(BaseModel):
    """Result of validating an access token; never raises on bad input."""

    valid: bool
    claims: Optional[Dict[str, Any]] = None
    message: str
