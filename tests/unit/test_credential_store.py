"""
Tests for the SQL Credential Store

The conftest attaches a second SQLite database named ``iron-gym``, which
stands in for the gym's PostgreSQL schema: tenant tables are rebound to it
through ``schema_translate_map`` exactly as in production.

Example:
    >>> pytest tests/unit/test_credential_store.py -v
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import event, insert, update

from auth.jwt_handler import hash_password
from models.identity import Gym, PlatformAdmin, new_id, utc_now
from models.tenant_tables import tenant_user
from services.credential_store import SQLCredentialStore

CREATED = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(test_db) -> SQLCredentialStore:
    return SQLCredentialStore(test_db)


async def _seed(db) -> dict:
    async with db.session() as session:
        gym = Gym(name="Iron Gym", domain="iron-gym")
        gone = Gym(name="Closed Gym", domain="closed-gym", deleted_at=CREATED)
        admin = PlatformAdmin(username="root", email="root@example.com", password_hash=hash_password("pw"))
        session.add_all([gym, gone, admin])
        await session.flush()
        ids = {"gym": gym.id, "gone": gone.id, "admin": admin.id}

    user_id = new_id()
    async with db.tenant_connection("iron-gym") as conn:
        await conn.run_sync(lambda sync_conn: tenant_user.create(sync_conn))
        await conn.execute(
            insert(tenant_user).values(
                id=user_id,
                username="jane",
                email="jane@iron.gym",
                password_hash=hash_password("pw"),
                role="user",
                verification_status="demo",
                is_active=True,
                created_at=CREATED,
                updated_at=CREATED,
            )
        )
    ids["user"] = user_id
    return ids


class TestPlatformAdmins:
    """Test admin lookups on the public table."""

    @pytest.mark.asyncio
    async def test_find_by_username_and_id(self, store, test_db):
        ids = await _seed(test_db)

        by_name = await store.find_platform_admin_by_username("root")
        by_id = await store.find_platform_admin_by_id(ids["admin"])

        assert by_name.id == ids["admin"] == by_id.id
        assert by_name.is_active is True

    @pytest.mark.asyncio
    async def test_unknown_admin(self, store, test_db):
        await _seed(test_db)
        assert await store.find_platform_admin_by_username("ghost") is None

    @pytest.mark.asyncio
    async def test_touch_last_login(self, store, test_db):
        ids = await _seed(test_db)
        await store.touch_platform_admin_last_login(ids["admin"])

        admin = await store.find_platform_admin_by_id(ids["admin"])
        assert admin.last_login_at is not None
        assert admin.last_login_at.tzinfo is not None


class TestTenants:
    """Test gym resolution."""

    @pytest.mark.asyncio
    async def test_find_tenant(self, store, test_db):
        ids = await _seed(test_db)
        tenant = await store.find_tenant(ids["gym"])

        assert tenant.domain == "iron-gym"
        assert tenant.is_active is True

    @pytest.mark.asyncio
    async def test_soft_deleted_tenant_is_unknown(self, store, test_db):
        ids = await _seed(test_db)
        assert await store.find_tenant(ids["gone"]) is None


class TestTenantUsers:
    """Test lookups in the tenant's own schema."""

    @pytest.mark.asyncio
    async def test_find_by_username(self, store, test_db):
        ids = await _seed(test_db)
        user = await store.find_tenant_user_by_username(ids["gym"], "jane")

        assert user.id == ids["user"]
        assert user.tenant_id == ids["gym"]
        assert user.verification_status == "demo"
        assert user.created_at == CREATED

    @pytest.mark.asyncio
    async def test_find_by_id(self, store, test_db):
        ids = await _seed(test_db)
        user = await store.find_tenant_user_by_id(ids["gym"], ids["user"])
        assert user.username == "jane"

    @pytest.mark.asyncio
    async def test_unknown_tenant_returns_none(self, store, test_db):
        await _seed(test_db)
        assert await store.find_tenant_user_by_username(new_id(), "jane") is None

    @pytest.mark.asyncio
    async def test_touch_last_login(self, store, test_db):
        ids = await _seed(test_db)
        await store.touch_tenant_user_last_login(ids["gym"], ids["user"])

        user = await store.find_tenant_user_by_id(ids["gym"], ids["user"])
        assert user.last_login_at is not None


class TestDomainResolution:
    """Test that a gym's domain is resolved once per store."""

    @staticmethod
    def _count_gym_queries(db) -> list:
        statements = []

        @event.listens_for(db.engine.sync_engine, "before_cursor_execute")
        def record(conn, cursor, statement, parameters, context, executemany):
            if "FROM gym" in statement:
                statements.append(statement)

        return statements

    @pytest.mark.asyncio
    async def test_login_path_reads_gym_once(self, store, test_db):
        ids = await _seed(test_db)
        gym_queries = self._count_gym_queries(test_db)

        tenant = await store.find_tenant(ids["gym"])
        user = await store.find_tenant_user_by_username(tenant.id, "jane")
        await store.touch_tenant_user_last_login(tenant.id, user.id)

        assert len(gym_queries) == 1

    @pytest.mark.asyncio
    async def test_activation_flag_is_always_fresh(self, store, test_db):
        ids = await _seed(test_db)
        await store.find_tenant(ids["gym"])

        async with test_db.session() as session:
            await session.execute(update(Gym).where(Gym.id == ids["gym"]).values(is_active=False))

        assert (await store.find_tenant(ids["gym"])).is_active is False

    @pytest.mark.asyncio
    async def test_deleted_gym_is_forgotten(self, store, test_db):
        ids = await _seed(test_db)
        await store.find_tenant(ids["gym"])

        async with test_db.session() as session:
            await session.execute(update(Gym).where(Gym.id == ids["gym"]).values(deleted_at=utc_now()))

        assert await store.find_tenant(ids["gym"]) is None
        assert await store.find_tenant_user_by_username(ids["gym"], "jane") is None
