"""
Identity Models for the Public Schema

SQLAlchemy 2.0 models for the relations shared by every tenant: gyms,
platform administrators, live refresh tokens and the login history.

Example:
    >>> from models.identity import RefreshToken, UserType
    >>> row = RefreshToken(
    ...     token="eyJhbGciOi...",
    ...     user_id="0b6c...",
    ...     user_type=UserType.PLATFORM_ADMIN.value,
    ...     gym_id=None,
    ...     expires_at=utc_now() + timedelta(days=7)
    ... )
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Timezone-aware current UTC instant."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all public-schema models."""
    pass


class UserType(str, Enum):
    """Identity population a principal belongs to."""
    PLATFORM_ADMIN = "platform_admin"
    TENANT_USER = "tenant_user"


class Role(str, Enum):
    """Tenant-user role, ordered admin > user > guest."""
    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"


class VerificationStatus(str, Enum):
    """Tenant-user verification axis, independent from role."""
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    DEMO = "demo"


class Gym(Base):
    """A tenant. Its ``domain`` is used verbatim as the tenant schema name.

    Attributes:
        id: Gym identifier (UUID string), sent as the tenant selector at login
        name: Display name
        domain: DNS-safe unique domain, immutable
        is_active: False denies every tenant-user login
    """

    __tablename__ = "gym"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        return f"<Gym(id='{self.id}', domain='{self.domain}', is_active={self.is_active})>"


class PlatformAdmin(Base):
    """Global administrator, not bound to any tenant."""

    __tablename__ = "admin"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        return f"<PlatformAdmin(id='{self.id}', username='{self.username}', is_active={self.is_active})>"


class RefreshToken(Base):
    """Live refresh-token record.

    At most one row exists per (user_id, user_type, gym_id). Because NULL
    never collides in a plain unique constraint, the invariant is enforced by
    two partial unique indexes: one for platform admins (gym_id IS NULL) and
    one for tenant users (gym_id IS NOT NULL).
    """

    __tablename__ = "refresh_token"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    user_type: Mapped[str] = mapped_column(String(50), nullable=False)
    gym_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("gym.id", ondelete="CASCADE"), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint(
            "user_type IN ('platform_admin', 'tenant_user')",
            name="ck_refresh_token_user_type",
        ),
        CheckConstraint(
            "(user_type = 'platform_admin' AND gym_id IS NULL) OR "
            "(user_type = 'tenant_user' AND gym_id IS NOT NULL)",
            name="ck_refresh_token_gym_scope",
        ),
        Index("idx_refresh_token_user", "user_id", "user_type"),
        Index("idx_refresh_token_expires_at", "expires_at"),
        Index(
            "uq_refresh_token_admin_identity",
            "user_id",
            "user_type",
            unique=True,
            postgresql_where=text("gym_id IS NULL"),
            sqlite_where=text("gym_id IS NULL"),
        ),
        Index(
            "uq_refresh_token_tenant_identity",
            "user_id",
            "user_type",
            "gym_id",
            unique=True,
            postgresql_where=text("gym_id IS NOT NULL"),
            sqlite_where=text("gym_id IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<RefreshToken(user_id='{self.user_id}', user_type='{self.user_type}', "
            f"gym_id='{self.gym_id}', expires_at='{self.expires_at}')>"
        )


class LoginHistory(Base):
    """Append-only record of login attempts, successful or not."""

    __tablename__ = "login_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    user_type: Mapped[str] = mapped_column(String(50), nullable=False)
    gym_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    login_successful: Mapped[bool] = mapped_column(Boolean, nullable=False)
    login_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint(
            "user_type IN ('platform_admin', 'tenant_user')",
            name="ck_login_history_user_type",
        ),
        Index("idx_login_history_user", "user_id", "user_type"),
        Index("idx_login_history_login_at", "login_at"),
    )


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
