"""
Integration Tests for the Auth API

End-to-end scenarios over HTTP against the in-memory backend and a
controllable clock.

Example:
    >>> pytest tests/integration/test_api_endpoints.py -v
"""

import pytest

from auth.jwt_handler import hash_password
from models.identity import Role, VerificationStatus

USER_PASSWORD = "member-password-1"

pytestmark = pytest.mark.integration


def _gym(store, domain):
    return next(t.id for t in store._tenants.values() if t.domain == domain)


def _login(client, username, password, gym_id=None):
    headers = {"X-Gym-ID": gym_id} if gym_id else {}
    return client.post("/auth/login", json={"username": username, "password": password}, headers=headers)


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# Service Endpoints
# ============================================================================


class TestServiceEndpoints:
    """Test root and health endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "turnstile"

    def test_health_on_memory_backend(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["dependencies"] == {"storage": "memory"}

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"


# ============================================================================
# Scenarios
# ============================================================================


class TestScenarios:
    """Literal end-to-end scenarios."""

    def test_happy_admin_login(self, client, seeded_store, codec):
        seeded_store.add_platform_admin("superroot", "superroot@example.com", hash_password("p@ss"))

        response = _login(client, "superroot", "p@ss")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        data = body["data"]
        assert codec.verify_access_token(data["access_token"]).user_type == "platform_admin"
        assert data["token_type"] == "bearer"
        assert data["user_info"]["username"] == "superroot"

        record = seeded_store._tokens[data["refresh_token"]]
        assert record.user_type == "platform_admin"
        assert record.tenant_id is None

    def test_tenant_login_demo_expired(self, client, seeded_store, clock):
        clock.advance(days=30)

        response = _login(client, "visitor", USER_PASSWORD, _gym(seeded_store, "iron-gym"))

        assert response.status_code == 401
        body = response.json()
        assert body["status"] == "error"
        assert body["data"] == {"code": "UNAUTHORIZED"}
        assert seeded_store.live_token_count() == 0

    def test_refresh_after_role_change(self, client, seeded_store, clock, codec):
        gym_id = _gym(seeded_store, "iron-gym")
        login = _login(client, "jane", USER_PASSWORD, gym_id).json()["data"]
        assert codec.verify_access_token(login["access_token"]).role == "user"

        clock.advance(seconds=30)
        seeded_store.update_tenant_user(gym_id, login["user_info"]["user_id"], role=Role.ADMIN.value)

        clock.advance(seconds=30)
        response = client.post("/auth/refresh", json={"refresh_token": login["refresh_token"]})

        assert response.status_code == 200
        data = response.json()["data"]
        claims = codec.verify_access_token(data["access_token"])
        assert claims.role == "admin"
        assert claims.user_id == login["user_info"]["user_id"]
        assert claims.exp > codec.verify_access_token(login["access_token"]).exp

    def test_second_login_evicts_first(self, client, seeded_store):
        gym_id = _gym(seeded_store, "iron-gym")
        r1 = _login(client, "jane", USER_PASSWORD, gym_id).json()["data"]["refresh_token"]
        r2 = _login(client, "jane", USER_PASSWORD, gym_id).json()["data"]["refresh_token"]

        assert client.post("/auth/refresh", json={"refresh_token": r1}).status_code == 401
        assert client.post("/auth/refresh", json={"refresh_token": r2}).status_code == 200

    def test_logout_is_irreversible(self, client):
        refresh = _login(client, "root", "admin-password-1").json()["data"]["refresh_token"]

        first = client.post("/auth/logout", json={"refresh_token": refresh})
        assert first.status_code == 200
        assert first.json()["status"] == "success"

        assert client.post("/auth/refresh", json={"refresh_token": refresh}).status_code == 401
        assert client.post("/auth/logout", json={"refresh_token": refresh}).status_code == 200

    def test_validate_tampered_token(self, client):
        access = _login(client, "root", "admin-password-1").json()["data"]["access_token"]
        header, payload, signature = access.split(".")
        flipped = payload[:5] + ("A" if payload[5] != "A" else "B") + payload[6:]

        response = client.get("/auth/validate", headers=_bearer(f"{header}.{flipped}.{signature}"))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["valid"] is False
        assert data["message"] == "Invalid token"


# ============================================================================
# Login Endpoint
# ============================================================================


class TestLoginEndpoint:
    """Test POST /auth/login edge cases."""

    def test_wrong_password(self, client):
        response = _login(client, "root", "nope")

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    def test_unknown_gym_is_invalid_credentials(self, client):
        response = _login(client, "jane", USER_PASSWORD, "00000000-0000-0000-0000-000000000000")

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    def test_missing_fields_is_400(self, client):
        response = client.post("/auth/login", json={"username": "root"})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request payload"

    def test_password_over_72_bytes_is_400(self, client, caplog):
        with caplog.at_level("ERROR"):
            response = _login(client, "root", "x" * 80)

        assert response.status_code == 400
        assert response.json()["data"] == {"code": "BAD_REQUEST"}
        assert not [r for r in caplog.records if r.levelname == "ERROR"]

    def test_malformed_json_is_400(self, client):
        response = client.post(
            "/auth/login", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_tenant_login(self, client, seeded_store):
        gym_id = _gym(seeded_store, "steel-gym")
        response = _login(client, "jane", USER_PASSWORD, gym_id)

        assert response.status_code == 200
        info = response.json()["data"]["user_info"]
        assert info["gym_id"] == gym_id
        assert info["email"] == "jane@steel.gym"

    def test_login_history_records_client(self, client, seeded_store):
        client.post(
            "/auth/login",
            json={"username": "root", "password": "admin-password-1"},
            headers={"User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.9"},
        )

        attempt = seeded_store.login_attempts[-1]
        assert attempt.success is True
        assert attempt.client_ip == "203.0.113.9"
        assert attempt.user_agent == "pytest-agent"


# ============================================================================
# Validate / Me / Logout-all Endpoints
# ============================================================================


class TestProtectedEndpoints:
    """Test endpoints that read the bearer token."""

    def test_validate_valid_token(self, client):
        access = _login(client, "root", "admin-password-1").json()["data"]["access_token"]

        response = client.get("/auth/validate", headers=_bearer(access))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["valid"] is True
        assert data["claims"]["username"] == "root"

    def test_validate_accepts_trailing_whitespace(self, client):
        access = _login(client, "root", "admin-password-1").json()["data"]["access_token"]

        response = client.get("/auth/validate", headers={"Authorization": f"Bearer {access}   "})
        assert response.json()["data"]["valid"] is True

    def test_validate_without_header_is_401(self, client):
        response = client.get("/auth/validate")

        assert response.status_code == 401
        assert response.json()["message"] == "Authorization header required"

    def test_validate_without_space_after_bearer_is_401(self, client):
        access = _login(client, "root", "admin-password-1").json()["data"]["access_token"]

        response = client.get("/auth/validate", headers={"Authorization": f"Bearer{access}"})
        assert response.status_code == 401

    def test_validate_expired_token(self, client, clock):
        access = _login(client, "root", "admin-password-1").json()["data"]["access_token"]
        clock.advance(hours=25)

        response = client.get("/auth/validate", headers=_bearer(access))
        assert response.status_code == 200
        assert response.json()["data"]["valid"] is False

    def test_me(self, client, seeded_store):
        gym_id = _gym(seeded_store, "iron-gym")
        access = _login(client, "boss", USER_PASSWORD, gym_id).json()["data"]["access_token"]

        data = client.get("/auth/me", headers=_bearer(access)).json()["data"]

        assert data["username"] == "boss"
        assert data["role"] == "admin"
        assert data["gym_id"] == gym_id

    def test_me_requires_token(self, client):
        assert client.get("/auth/me").status_code == 401

    def test_logout_all(self, client, seeded_store):
        iron = _gym(seeded_store, "iron-gym")
        login = _login(client, "jane", USER_PASSWORD, iron).json()["data"]

        response = client.post("/auth/logout-all", headers=_bearer(login["access_token"]))

        assert response.status_code == 200
        assert response.json()["data"] == {"revoked": 1}
        assert client.post("/auth/refresh", json={"refresh_token": login["refresh_token"]}).status_code == 401

    def test_demo_user_within_window_can_log_in(self, client, seeded_store):
        gym_id = _gym(seeded_store, "iron-gym")
        seeded_store.add_tenant_user(
            gym_id, "trial", "trial@iron.gym", hash_password(USER_PASSWORD),
            role=Role.GUEST.value, verification_status=VerificationStatus.DEMO.value,
        )

        response = _login(client, "trial", USER_PASSWORD, gym_id)
        assert response.status_code == 200
        assert response.json()["data"]["user_info"]["verification_status"] == "demo"
