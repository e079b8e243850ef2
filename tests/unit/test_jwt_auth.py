"""
Tests for the Token Codec and Password Hasher

Covers the two token profiles, the distinct verification failures and the
bcrypt hasher.

Example:
    >>> pytest tests/unit/test_jwt_auth.py -v
"""

from datetime import timedelta

import pytest
from jose import jwt

from auth.jwt_handler import (
    PasswordTooLongError,
    TokenCodec,
    TokenExpiredError,
    TokenMalformedError,
    TokenSignatureError,
    hash_password,
    needs_rehash,
    verify_password,
)
from config import settings

TEST_SECRET = settings.JWT_SECRET.get_secret_value()


def _admin_token(codec):
    return codec.create_access_token(
        user_id="admin-1", username="root", user_type="platform_admin", is_active=True
    )


# ============================================================================
# Access Token Tests
# ============================================================================


class TestAccessToken:
    """Test access token creation and verification."""

    def test_round_trip_tenant_claims(self, codec):
        token, claims = codec.create_access_token(
            user_id="user-1",
            username="jane",
            user_type="tenant_user",
            is_active=True,
            gym_id="gym-1",
            role="user",
            verification_status="verified",
        )

        decoded = codec.verify_access_token(token)
        assert decoded == claims
        assert decoded.gym_id == "gym-1"
        assert decoded.role == "user"

    def test_lifetime_is_24_hours(self, codec):
        _, claims = _admin_token(codec)
        assert claims.exp - claims.iat == 24 * 3600

    def test_admin_token_omits_tenant_claims(self, codec):
        token, _ = _admin_token(codec)
        payload = jwt.get_unverified_claims(token)

        assert "gym_id" not in payload
        assert "role" not in payload
        assert payload["user_type"] == "platform_admin"

    def test_header_declares_hs256(self, codec):
        token, _ = _admin_token(codec)
        assert jwt.get_unverified_header(token)["alg"] == "HS256"

    def test_expired_at_exact_expiry(self, codec, clock):
        token, _ = _admin_token(codec)
        clock.advance(hours=24)

        with pytest.raises(TokenExpiredError):
            codec.verify_access_token(token)

    def test_valid_one_second_before_expiry(self, codec, clock):
        token, _ = _admin_token(codec)
        clock.advance(hours=24, seconds=-1)

        assert codec.verify_access_token(token).user_id == "admin-1"

    def test_same_tick_tokens_are_strictly_ordered(self, codec):
        _, first = _admin_token(codec)
        _, second = _admin_token(codec)

        assert second.iat > first.iat
        assert second.exp > first.exp

    def test_fractional_timestamps_round_trip(self, codec, clock):
        clock.advance(microseconds=250000)
        token, claims = _admin_token(codec)

        decoded = codec.verify_access_token(token)
        assert decoded.iat == claims.iat == clock().timestamp()
        assert decoded.exp - decoded.iat == pytest.approx(24 * 3600)

    def test_refresh_token_is_not_an_access_token(self, codec):
        refresh, _ = codec.create_refresh_token(user_id="admin-1", user_type="platform_admin")

        with pytest.raises(TokenMalformedError):
            codec.verify_access_token(refresh)


# ============================================================================
# Refresh Token Tests
# ============================================================================


class TestRefreshToken:
    """Test refresh token creation and verification."""

    def test_round_trip(self, codec):
        token, claims = codec.create_refresh_token(user_id="user-1", user_type="tenant_user", gym_id="gym-1")

        decoded = codec.verify_refresh_token(token)
        assert decoded.user_id == "user-1"
        assert decoded.gym_id == "gym-1"
        assert decoded.jti == claims.jti

    def test_lifetime_is_7_days(self, codec):
        _, claims = codec.create_refresh_token(user_id="user-1", user_type="platform_admin")
        assert claims.exp - claims.iat == 7 * 24 * 3600

    def test_same_second_tokens_differ(self, codec):
        first, _ = codec.create_refresh_token(user_id="user-1", user_type="platform_admin")
        second, _ = codec.create_refresh_token(user_id="user-1", user_type="platform_admin")
        assert first != second

    def test_carries_no_role(self, codec):
        token, _ = codec.create_refresh_token(user_id="user-1", user_type="tenant_user", gym_id="gym-1")
        assert "role" not in jwt.get_unverified_claims(token)


# ============================================================================
# Verification Failure Tests
# ============================================================================


class TestVerificationFailures:
    """Test the distinct malformed / signature / expired failures."""

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b", "Bearer x.y.z"])
    def test_garbage_is_malformed(self, codec, token):
        with pytest.raises(TokenMalformedError):
            codec.verify_access_token(token)

    def test_wrong_secret_is_signature_error(self, codec, clock):
        other = TokenCodec(secret="another-secret-that-is-long-enough-123", clock=clock)
        token, _ = _admin_token(other)

        with pytest.raises(TokenSignatureError):
            codec.verify_access_token(token)

    def test_tampered_payload_is_signature_error(self, codec):
        token, _ = _admin_token(codec)
        other, _ = codec.create_access_token(
            user_id="admin-2", username="mallory", user_type="platform_admin", is_active=True
        )
        header, _, signature = token.split(".")
        forged_payload = other.split(".")[1]

        with pytest.raises(TokenSignatureError):
            codec.verify_access_token(f"{header}.{forged_payload}.{signature}")

    def test_other_algorithm_is_rejected(self, codec, clock):
        hs512 = TokenCodec(secret=TEST_SECRET, algorithm="HS512", clock=clock)
        token, _ = _admin_token(hs512)

        with pytest.raises(TokenSignatureError):
            codec.verify_access_token(token)

    def test_none_algorithm_is_rejected(self, codec):
        token, _ = _admin_token(codec)
        _, payload, _ = token.split(".")
        # {"alg":"none","typ":"JWT"}
        unsigned = f"eyJhbGciOiJub25lIiwidHlwIjoiSldUIn0.{payload}."

        with pytest.raises(TokenSignatureError):
            codec.verify_access_token(unsigned)

    def test_missing_claims_are_malformed(self, codec):
        token = jwt.encode({"user_id": "u-1", "iat": 0, "exp": 10}, TEST_SECRET, algorithm="HS256")

        with pytest.raises(TokenMalformedError):
            codec.verify_access_token(token)

    def test_issued_in_the_future_is_malformed(self, codec, clock):
        future = TokenCodec(secret=TEST_SECRET, clock=lambda: clock() + timedelta(minutes=5))
        token, _ = _admin_token(future)

        with pytest.raises(TokenMalformedError):
            codec.verify_access_token(token)

    def test_small_clock_skew_is_tolerated(self, codec, clock):
        ahead = TokenCodec(secret=TEST_SECRET, clock=lambda: clock() + timedelta(seconds=20))
        token, _ = _admin_token(ahead)

        assert codec.verify_access_token(token).username == "root"

    def test_non_hmac_algorithm_cannot_be_configured(self):
        with pytest.raises(ValueError):
            TokenCodec(secret=TEST_SECRET, algorithm="RS256")


# ============================================================================
# Password Hashing Tests
# ============================================================================


class TestPasswordHashing:
    """Test bcrypt hashing and verification."""

    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")

        assert hashed != "correct horse"
        assert hashed.startswith("$2")
        assert verify_password("correct horse", hashed) is True
        assert verify_password("wrong horse", hashed) is False

    def test_same_password_different_salts(self):
        assert hash_password("secret") != hash_password("secret")

    def test_unreadable_hash_is_a_mismatch(self):
        assert verify_password("secret", "not-a-bcrypt-hash") is False

    def test_needs_rehash_for_current_hash(self):
        assert needs_rehash(hash_password("secret")) is False

    def test_longest_accepted_password(self):
        password = "x" * 72
        assert verify_password(password, hash_password(password)) is True

    @pytest.mark.parametrize("password", ["x" * 73, "é" * 37])
    def test_password_over_72_bytes_is_rejected(self, password):
        with pytest.raises(PasswordTooLongError):
            hash_password(password)

    def test_overlong_password_never_matches_its_prefix(self, caplog):
        hashed = hash_password("x" * 72)

        with caplog.at_level("ERROR"):
            assert verify_password("x" * 72 + "A", hashed) is False
        assert caplog.records == []
