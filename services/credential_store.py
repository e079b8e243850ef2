"""
Credential Store

Read interface over the two identity populations: the global admin table
(keyed by username) and each tenant's user table (keyed by tenant and
username). Inactive records are returned like any other; the caller decides
what ``is_active=False`` means. ``None`` is the ordinary not-found result.

Example:
    >>> store = SQLCredentialStore(db)
    >>> admin = await store.find_platform_admin_by_username("root")
    >>> if admin and admin.is_active:
    ...     ...
"""

import logging
from typing import Dict, Optional, Protocol

from sqlalchemy import select, update

from models.identity import Gym, PlatformAdmin, ensure_utc, utc_now
from models.schemas import PlatformAdminRecord, TenantRecord, TenantUserRecord
from models.tenant_tables import tenant_user
from services.database import DatabaseService

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Lookup contract used by the authentication service.

    Every method raises ``BackendUnavailableError`` on infrastructure
    failure and never for a missing record.
    """

    async def find_tenant(self, tenant_id: str) -> Optional[TenantRecord]: ...

    async def find_platform_admin_by_username(self, username: str) -> Optional[PlatformAdminRecord]: ...

    async def find_platform_admin_by_id(self, admin_id: str) -> Optional[PlatformAdminRecord]: ...

    async def find_tenant_user_by_username(
        self, tenant_id: str, username: str
    ) -> Optional[TenantUserRecord]: ...

    async def find_tenant_user_by_id(self, tenant_id: str, user_id: str) -> Optional[TenantUserRecord]: ...

    async def touch_platform_admin_last_login(self, admin_id: str) -> None: ...

    async def touch_tenant_user_last_login(self, tenant_id: str, user_id: str) -> None: ...


class SQLCredentialStore:
    """Credential store backed by the public schema and per-tenant schemas.

    Tenant users are read through a connection whose placeholder schema is
    rebound to the gym's domain. Domains are immutable, so each gym's domain
    is remembered once ``find_tenant`` has resolved it; the activation flag
    is always read fresh.
    """

    def __init__(self, db: DatabaseService):
        self.db = db
        # gym id -> domain
        self._domains: Dict[str, str] = {}

    async def find_tenant(self, tenant_id: str) -> Optional[TenantRecord]:
        """Resolve a gym id to its domain and activation flag.

        Soft-deleted gyms are treated as unknown.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(Gym).where(Gym.id == tenant_id, Gym.deleted_at.is_(None))
            )
            gym = result.scalar_one_or_none()

        if gym is None:
            self._domains.pop(tenant_id, None)
            return None

        self._domains[gym.id] = gym.domain
        return TenantRecord.model_validate(gym)

    async def _domain_of(self, tenant_id: str) -> Optional[str]:
        domain = self._domains.get(tenant_id)
        if domain is None:
            tenant = await self.find_tenant(tenant_id)
            domain = tenant.domain if tenant else None
        return domain

    async def find_platform_admin_by_username(self, username: str) -> Optional[PlatformAdminRecord]:
        return await self._find_admin(PlatformAdmin.username == username)

    async def find_platform_admin_by_id(self, admin_id: str) -> Optional[PlatformAdminRecord]:
        return await self._find_admin(PlatformAdmin.id == admin_id)

    async def _find_admin(self, condition) -> Optional[PlatformAdminRecord]:
        async with self.db.session() as session:
            result = await session.execute(select(PlatformAdmin).where(condition))
            admin = result.scalar_one_or_none()
        if admin is None:
            return None
        record = PlatformAdminRecord.model_validate(admin)
        record.last_login_at = ensure_utc(record.last_login_at)
        return record

    async def find_tenant_user_by_username(
        self, tenant_id: str, username: str
    ) -> Optional[TenantUserRecord]:
        return await self._find_tenant_user(tenant_id, tenant_user.c.username == username)

    async def find_tenant_user_by_id(self, tenant_id: str, user_id: str) -> Optional[TenantUserRecord]:
        return await self._find_tenant_user(tenant_id, tenant_user.c.id == user_id)

    async def _find_tenant_user(self, tenant_id: str, condition) -> Optional[TenantUserRecord]:
        domain = await self._domain_of(tenant_id)
        if domain is None:
            return None

        async with self.db.tenant_connection(domain) as conn:
            result = await conn.execute(select(tenant_user).where(condition))
            row = result.mappings().first()

        if row is None:
            return None

        return TenantUserRecord(
            id=row["id"],
            tenant_id=tenant_id,
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            role=row["role"],
            is_active=row["is_active"],
            verification_status=row["verification_status"],
            created_at=ensure_utc(row["created_at"]),
            last_login_at=ensure_utc(row["last_login_at"]),
        )

    async def touch_platform_admin_last_login(self, admin_id: str) -> None:
        async with self.db.session() as session:
            await session.execute(
                update(PlatformAdmin)
                .where(PlatformAdmin.id == admin_id)
                .values(last_login_at=utc_now())
            )

    async def touch_tenant_user_last_login(self, tenant_id: str, user_id: str) -> None:
        domain = await self._domain_of(tenant_id)
        if domain is None:
            return

        async with self.db.tenant_connection(domain) as conn:
            await conn.execute(
                update(tenant_user)
                .where(tenant_user.c.id == user_id)
                .values(last_login_at=utc_now(), updated_at=utc_now())
            )
