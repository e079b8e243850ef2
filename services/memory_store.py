"""
In-Memory Stores

Process-local implementation of the credential, refresh-token and
login-history contracts, used for development (STORAGE_BACKEND=memory) and
tests. Each dictionary is guarded by an asyncio lock so concurrent logins
for one identity still leave a single live token.

Example:
    >>> store = InMemoryStore()
    >>> gym = store.add_tenant("iron-gym")
    >>> store.add_tenant_user(gym.id, "jane", "jane@iron.gym", hash_password("pw"))
    >>> await store.find_tenant_user_by_username(gym.id, "jane")
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from models.identity import Role, VerificationStatus, new_id, utc_now
from models.schemas import (
    LoginAttempt,
    PlatformAdminRecord,
    RefreshTokenRecord,
    TenantRecord,
    TenantUserRecord,
)
from services.tenant_provisioner import validate_domain
from utils.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

IdentityKey = Tuple[str, str, Optional[str]]


class InMemoryStore:
    """Credential, refresh-token and login-history store in plain dictionaries.

    Args:
        clock: Current-time source used for expiry checks and timestamps
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self._lock = asyncio.Lock()

        self._tenants: Dict[str, TenantRecord] = {}
        self._admins: Dict[str, PlatformAdminRecord] = {}
        # tenant id -> user id -> record
        self._tenant_users: Dict[str, Dict[str, TenantUserRecord]] = {}

        self._tokens: Dict[str, RefreshTokenRecord] = {}
        self._token_by_identity: Dict[IdentityKey, str] = {}

        self.login_attempts: List[LoginAttempt] = []

    # ========================================================================
    # Seeding
    # ========================================================================

    def add_tenant(self, domain: str, is_active: bool = True, tenant_id: Optional[str] = None) -> TenantRecord:
        """Register a gym. The domain must be DNS-safe and unused."""
        validate_domain(domain)
        if any(t.domain == domain for t in self._tenants.values()):
            raise ConflictError(f"Gym domain '{domain}' already exists")
        tenant = TenantRecord(id=tenant_id or new_id(), domain=domain, is_active=is_active)
        self._tenants[tenant.id] = tenant
        self._tenant_users[tenant.id] = {}
        return tenant

    def set_tenant_active(self, tenant_id: str, is_active: bool) -> None:
        tenant = self._tenants[tenant_id]
        self._tenants[tenant_id] = tenant.model_copy(update={"is_active": is_active})

    def add_platform_admin(
        self,
        username: str,
        email: str,
        password_hash: str,
        is_active: bool = True,
    ) -> PlatformAdminRecord:
        if any(a.username == username for a in self._admins.values()):
            raise ConflictError(f"Admin '{username}' already exists")
        admin = PlatformAdminRecord(
            id=new_id(),
            username=username,
            email=email,
            password_hash=password_hash,
            is_active=is_active,
        )
        self._admins[admin.id] = admin
        return admin

    def update_platform_admin(self, admin_id: str, **changes) -> PlatformAdminRecord:
        admin = self._admins[admin_id].model_copy(update=changes)
        self._admins[admin_id] = admin
        return admin

    def add_tenant_user(
        self,
        tenant_id: str,
        username: str,
        email: str,
        password_hash: str,
        role: str = Role.USER.value,
        verification_status: str = VerificationStatus.VERIFIED.value,
        is_active: bool = True,
        created_at: Optional[datetime] = None,
    ) -> TenantUserRecord:
        """Add a user to a gym; usernames are unique within that gym only."""
        if tenant_id not in self._tenants:
            raise NotFoundError(f"Gym '{tenant_id}' not found")
        users = self._tenant_users[tenant_id]
        if any(u.username == username for u in users.values()):
            raise ConflictError(f"User '{username}' already exists in this gym")
        user = TenantUserRecord(
            id=new_id(),
            tenant_id=tenant_id,
            username=username,
            email=email,
            password_hash=password_hash,
            role=role,
            is_active=is_active,
            verification_status=verification_status,
            created_at=created_at or self.clock(),
        )
        users[user.id] = user
        return user

    def update_tenant_user(self, tenant_id: str, user_id: str, **changes) -> TenantUserRecord:
        users = self._tenant_users[tenant_id]
        users[user_id] = users[user_id].model_copy(update=changes)
        return users[user_id]

    # ========================================================================
    # Credential store
    # ========================================================================

    async def find_tenant(self, tenant_id: str) -> Optional[TenantRecord]:
        return self._tenants.get(tenant_id)

    async def find_platform_admin_by_username(self, username: str) -> Optional[PlatformAdminRecord]:
        for admin in self._admins.values():
            if admin.username == username:
                return admin
        return None

    async def find_platform_admin_by_id(self, admin_id: str) -> Optional[PlatformAdminRecord]:
        return self._admins.get(admin_id)

    async def find_tenant_user_by_username(self, tenant_id: str, username: str) -> Optional[TenantUserRecord]:
        for user in self._tenant_users.get(tenant_id, {}).values():
            if user.username == username:
                return user
        return None

    async def find_tenant_user_by_id(self, tenant_id: str, user_id: str) -> Optional[TenantUserRecord]:
        return self._tenant_users.get(tenant_id, {}).get(user_id)

    async def touch_platform_admin_last_login(self, admin_id: str) -> None:
        if admin_id in self._admins:
            self.update_platform_admin(admin_id, last_login_at=self.clock())

    async def touch_tenant_user_last_login(self, tenant_id: str, user_id: str) -> None:
        if user_id in self._tenant_users.get(tenant_id, {}):
            self.update_tenant_user(tenant_id, user_id, last_login_at=self.clock())

    # ========================================================================
    # Refresh-token store
    # ========================================================================

    async def put(self, record: RefreshTokenRecord) -> None:
        """Insert the token, replacing any previous token of the same identity."""
        key = (record.user_id, record.user_type, record.tenant_id)
        async with self._lock:
            previous = self._token_by_identity.get(key)
            if previous is not None:
                self._tokens.pop(previous, None)
            self._tokens[record.token] = record
            self._token_by_identity[key] = record.token

    async def lookup(self, token: str) -> Optional[RefreshTokenRecord]:
        record = self._tokens.get(token)
        if record is None or record.expires_at <= self.clock():
            return None
        return record

    def _drop(self, token: str) -> None:
        record = self._tokens.pop(token, None)
        if record is None:
            return
        key = (record.user_id, record.user_type, record.tenant_id)
        if self._token_by_identity.get(key) == token:
            del self._token_by_identity[key]

    async def revoke(self, token: str) -> None:
        async with self._lock:
            self._drop(token)

    async def revoke_all(self, user_id: str, user_type: str) -> int:
        async with self._lock:
            doomed = [
                token for token, record in self._tokens.items()
                if record.user_id == user_id and record.user_type == user_type
            ]
            for token in doomed:
                self._drop(token)
        return len(doomed)

    async def sweep(self) -> int:
        now = self.clock()
        async with self._lock:
            doomed = [token for token, record in self._tokens.items() if record.expires_at <= now]
            for token in doomed:
                self._drop(token)
        return len(doomed)

    def live_token_count(self) -> int:
        return len(self._tokens)

    # ========================================================================
    # Login history
    # ========================================================================

    async def record(self, attempt: LoginAttempt) -> None:
        self.login_attempts.append(attempt)
