"""
Tests for Authorization Predicates

Example:
    >>> pytest tests/unit/test_permissions.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.permissions import (
    demo_limitations_apply,
    has_role_at_least,
    has_tenant_access,
    is_demo_expired,
    is_gym_admin,
    is_platform_admin,
    role_satisfies,
)

ADMIN_CLAIM = {"user_id": "a-1", "user_type": "platform_admin"}
GYM_ADMIN_CLAIM = {"user_id": "u-1", "user_type": "tenant_user", "gym_id": "g-1", "role": "admin"}
MEMBER_CLAIM = {"user_id": "u-2", "user_type": "tenant_user", "gym_id": "g-1", "role": "user"}


class TestTenantAccess:
    """Test tenant-scope matching and the platform-admin bypass."""

    def test_platform_admin_reaches_any_tenant(self):
        assert has_tenant_access(ADMIN_CLAIM, "g-1")
        assert has_tenant_access(ADMIN_CLAIM, "g-999")

    def test_tenant_user_reaches_own_tenant(self):
        assert has_tenant_access(MEMBER_CLAIM, "g-1")

    def test_tenant_user_denied_other_tenant(self):
        assert not has_tenant_access(MEMBER_CLAIM, "g-2")

    def test_tenant_user_without_gym_is_denied(self):
        claim = {"user_type": "tenant_user", "role": "user"}
        assert not has_tenant_access(claim, "g-1")
        assert not has_tenant_access(claim, None)

    def test_unknown_user_type_is_denied(self):
        assert not has_tenant_access({"user_type": "robot", "gym_id": "g-1"}, "g-1")

    def test_missing_claim_is_denied(self):
        assert not has_tenant_access(None, "g-1")


class TestRoles:
    """Test the admin > user > guest ordering."""

    @pytest.mark.parametrize("actual,required,expected", [
        ("admin", "admin", True),
        ("admin", "user", True),
        ("admin", "guest", True),
        ("user", "admin", False),
        ("user", "user", True),
        ("user", "guest", True),
        ("guest", "user", False),
        ("guest", "guest", True),
    ])
    def test_role_order(self, actual, required, expected):
        assert role_satisfies(actual, required) is expected

    @pytest.mark.parametrize("actual,required", [
        ("superuser", "guest"),
        ("admin", "owner"),
        (None, "guest"),
        ("", "guest"),
    ])
    def test_unknown_roles_fail_closed(self, actual, required):
        assert role_satisfies(actual, required) is False

    def test_has_role_at_least_accepts_claims(self):
        assert has_role_at_least(GYM_ADMIN_CLAIM, "user")
        assert not has_role_at_least(MEMBER_CLAIM, "admin")
        assert not has_role_at_least(ADMIN_CLAIM, "guest")

    def test_gym_admin(self):
        assert is_gym_admin(ADMIN_CLAIM)
        assert is_gym_admin(GYM_ADMIN_CLAIM)
        assert not is_gym_admin(MEMBER_CLAIM)

    def test_platform_admin(self):
        assert is_platform_admin(ADMIN_CLAIM)
        assert not is_platform_admin(GYM_ADMIN_CLAIM)


class TestDemoLimitations:
    """Test verification-status gates."""

    def test_verified_is_unrestricted(self):
        limited, reason = demo_limitations_apply("verified")
        assert limited is False
        assert reason

    @pytest.mark.parametrize("status", ["demo", "unverified", "banana", None])
    def test_other_statuses_are_restricted(self, status):
        limited, reason = demo_limitations_apply(status)
        assert limited is True
        assert reason

    def test_demo_guest_expires_after_period(self):
        created = datetime(2026, 1, 1, tzinfo=timezone.utc)
        period = timedelta(days=14)

        assert not is_demo_expired("guest", "demo", created, period, created + timedelta(days=13))
        assert is_demo_expired("guest", "demo", created, period, created + period)

    def test_only_demo_guests_expire(self):
        created = datetime(2020, 1, 1, tzinfo=timezone.utc)
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        period = timedelta(days=14)

        assert not is_demo_expired("user", "demo", created, period, now)
        assert not is_demo_expired("guest", "verified", created, period, now)

    def test_demo_guest_without_creation_time_is_expired(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert is_demo_expired("guest", "demo", None, timedelta(days=14), now)
