"""Pytest Configuration and Fixtures for Turnstile Tests

Provides shared fixtures, test utilities, and configuration for the
Turnstile test suite. The environment is prepared before any project module
is imported because settings are loaded at import time.

Example:
    >>> def test_login(client, seeded_store):
    ...     response = client.post("/auth/login", json={...})
    ...     assert response.status_code == 200
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Generator

# Settings are read at import time
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("APP_ENV", "production")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SWEEP_ENABLED", "false")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import event

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from auth.jwt_handler import TokenCodec, hash_password
from auth.service import AuthService
from main import app
from models.identity import Role, VerificationStatus
from services.database import DatabaseService
from services.memory_store import InMemoryStore

TEST_SECRET = os.environ["JWT_SECRET"]
ADMIN_PASSWORD = "admin-password-1"
USER_PASSWORD = "member-password-1"


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


# ============================================================================
# Clock Fixtures
# ============================================================================


class FakeClock:
    """Controllable time source shared by the codec, service and store.

    Example:
        >>> clock = FakeClock()
        >>> clock.advance(hours=25)
    """

    def __init__(self, start: datetime = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Auth Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def admin_password_hash() -> str:
    return hash_password(ADMIN_PASSWORD)


@pytest.fixture(scope="session")
def user_password_hash() -> str:
    return hash_password(USER_PASSWORD)


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec(secret=TEST_SECRET, clock=clock)


@pytest.fixture
def memory_store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def seeded_store(memory_store, admin_password_hash, user_password_hash) -> InMemoryStore:
    """In-memory store with one admin and two gyms.

    Seeds:
        - platform admin ``root``
        - gym ``iron-gym`` with ``jane`` (user), ``boss`` (admin),
          ``visitor`` (demo guest created now) and ``dormant`` (inactive)
        - gym ``steel-gym`` with its own ``jane``
    """
    store = memory_store
    store.add_platform_admin("root", "root@example.com", admin_password_hash)

    iron = store.add_tenant("iron-gym")
    store.add_tenant_user(iron.id, "jane", "jane@iron.gym", user_password_hash)
    store.add_tenant_user(iron.id, "boss", "boss@iron.gym", user_password_hash, role=Role.ADMIN.value)
    store.add_tenant_user(
        iron.id, "visitor", "visitor@iron.gym", user_password_hash,
        role=Role.GUEST.value, verification_status=VerificationStatus.DEMO.value,
    )
    store.add_tenant_user(iron.id, "dormant", "dormant@iron.gym", user_password_hash, is_active=False)

    steel = store.add_tenant("steel-gym")
    store.add_tenant_user(steel.id, "jane", "jane@steel.gym", user_password_hash)
    return store


def tenant_id_of(store: InMemoryStore, domain: str) -> str:
    return next(t.id for t in store._tenants.values() if t.domain == domain)


@pytest.fixture
def auth_service(seeded_store, codec, clock) -> AuthService:
    return AuthService(
        credentials=seeded_store,
        refresh_tokens=seeded_store,
        codec=codec,
        login_history=seeded_store,
        store_timeout=1.0,
        demo_period=timedelta(days=14),
        clock=clock,
    )


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================


@pytest.fixture
def client(auth_service) -> Generator[TestClient, None, None]:
    """FastAPI test client wired to the seeded in-memory service.

    Yields:
        TestClient instance
    """
    with TestClient(app) as test_client:
        app.state.auth_service = auth_service
        yield test_client


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def test_db(tmp_path) -> AsyncGenerator[DatabaseService, None]:
    """SQLite database with the public relations created.

    A second database file is attached under the name ``iron-gym`` so
    tenant tables can be rebound to it like a PostgreSQL schema.

    Yields:
        Initialized DatabaseService
    """
    db = DatabaseService(database_url=f"sqlite+aiosqlite:///{tmp_path / 'public.db'}")
    await db.init()

    tenant_file = tmp_path / "iron-gym.db"

    @event.listens_for(db.engine.sync_engine, "connect")
    def attach_tenant_database(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute(f"ATTACH DATABASE '{tenant_file}' AS \"iron-gym\"")
        cursor.close()

    await db.create_schema()
    yield db
    await db.close()
