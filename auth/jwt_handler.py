"""JWT Token Codec and Password Hashing for Turnstile

Provides signing and verification of the two token profiles and the bcrypt
password hasher.

Features:
    - Access tokens: claim-rich, at most 24 hours
    - Refresh tokens: minimal claims plus a random ``jti``, 7 days
    - Single fixed HMAC algorithm; any other header ``alg`` is rejected
    - Distinct failures: malformed, bad signature, expired
    - Injectable clock for deterministic expiry checks
    - Adaptive bcrypt hashes with the cost stored inside the hash

Example:
    >>> from auth.jwt_handler import TokenCodec
    >>>
    >>> codec = TokenCodec(secret="x" * 32)
    >>> token, claims = codec.create_access_token(
    ...     user_id="u-1", username="root",
    ...     user_type="platform_admin", is_active=True
    ... )
    >>> codec.verify_access_token(token).username
    'root'
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError

from config import settings
from models.identity import utc_now
from models.schemas import MAX_PASSWORD_BYTES, AccessClaims, RefreshClaims

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

ClaimsT = TypeVar("ClaimsT", bound=BaseModel)

# Standard registered claims are verified by hand against the injected clock
_DECODE_OPTIONS = {
    "verify_exp": False,
    "verify_iat": False,
    "verify_nbf": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


class TokenError(Exception):
    """Base class for token failures.

    Example:
        >>> raise TokenError("Invalid token")
    """
    pass


class TokenMalformedError(TokenError):
    """Token is not a well-formed token of the expected profile."""
    pass


class TokenSignatureError(TokenError):
    """Signature does not verify, or the header declares another algorithm."""
    pass


class TokenExpiredError(TokenError):
    """Signature verifies but ``now >= exp``."""
    pass


class TokenSigningError(TokenError):
    """Signing a token failed."""
    pass


class PasswordTooLongError(ValueError):
    """Password exceeds the bytes bcrypt can hash."""
    pass


class TokenCodec:
    """Signs and verifies access and refresh tokens with one shared secret.

    Attributes:
        algorithm: The only HMAC algorithm used and accepted
        access_ttl: Access token lifetime
        refresh_ttl: Refresh token lifetime
        clock_skew: Tolerated future drift of ``iat``

    Example:
        >>> codec = TokenCodec.from_settings()
        >>> refresh, claims = codec.create_refresh_token(
        ...     user_id="u-1", user_type="tenant_user", gym_id="g-1"
        ... )
        >>> codec.verify_refresh_token(refresh).gym_id
        'g-1'
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(hours=24),
        refresh_ttl: timedelta = timedelta(days=7),
        clock_skew: timedelta = timedelta(seconds=30),
        clock: Callable[[], datetime] = utc_now,
    ):
        if not algorithm.startswith("HS"):
            raise ValueError(f"Only HMAC algorithms are supported, got {algorithm}")
        self._secret = secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.clock_skew = clock_skew
        self.clock = clock
        self._last_issued: Optional[float] = None

    @classmethod
    def from_settings(cls, clock: Callable[[], datetime] = utc_now) -> "TokenCodec":
        """Build the codec from the process-wide settings."""
        return cls(
            secret=settings.JWT_SECRET.get_secret_value(),
            algorithm=settings.JWT_ALGORITHM,
            access_ttl=timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            clock_skew=timedelta(seconds=settings.TOKEN_CLOCK_SKEW_SECONDS),
            clock=clock,
        )

    def _now(self) -> float:
        return self.clock().timestamp()

    def _issue_time(self) -> float:
        """Issue timestamp at microsecond precision, strictly increasing per codec.

        Tokens minted within the same clock tick still get distinct, ordered
        ``iat`` and ``exp`` values.
        """
        issued_at = round(self._now(), 6)
        if self._last_issued is not None and issued_at <= self._last_issued:
            issued_at = round(self._last_issued + 1e-6, 6)
        self._last_issued = issued_at
        return issued_at

    @staticmethod
    def _expiry(issued_at: float, ttl: timedelta) -> float:
        return round(issued_at + ttl.total_seconds(), 6)

    def _sign(self, claims: BaseModel) -> str:
        try:
            return jwt.encode(claims.model_dump(exclude_none=True), self._secret, algorithm=self.algorithm)
        except JWTError as e:
            logger.error(f"Failed to sign token: {e}")
            raise TokenSigningError(f"Token signing failed: {e}") from e

    def create_access_token(
        self,
        *,
        user_id: str,
        username: str,
        user_type: str,
        is_active: bool,
        gym_id: Optional[str] = None,
        role: Optional[str] = None,
        verification_status: Optional[str] = None,
    ) -> Tuple[str, AccessClaims]:
        """Create a signed access token.

        Args:
            user_id: Principal id
            username: Principal username
            user_type: "platform_admin" or "tenant_user"
            is_active: Activation flag at issue time
            gym_id: Owning gym (tenant users only)
            role: Tenant role (tenant users only)
            verification_status: Tenant verification status (tenant users only)

        Returns:
            Tuple of (encoded token, the claims it carries)

        Raises:
            TokenSigningError: If signing fails

        Example:
            >>> token, claims = codec.create_access_token(
            ...     user_id="u-1", username="jane", user_type="tenant_user",
            ...     is_active=True, gym_id="g-1", role="user",
            ...     verification_status="verified"
            ... )
            >>> claims.exp - claims.iat
            86400.0
        """
        issued_at = self._issue_time()
        claims = AccessClaims(
            user_id=user_id,
            username=username,
            user_type=user_type,
            is_active=is_active,
            gym_id=gym_id,
            role=role,
            verification_status=verification_status,
            iat=issued_at,
            exp=self._expiry(issued_at, self.access_ttl),
        )
        token = self._sign(claims)

        logger.debug(
            "Created access token",
            extra={"user_id": user_id, "user_type": user_type, "tenant_id": gym_id}
        )
        return token, claims

    def create_refresh_token(
        self,
        *,
        user_id: str,
        user_type: str,
        gym_id: Optional[str] = None,
    ) -> Tuple[str, RefreshClaims]:
        """Create a signed refresh token.

        Refresh tokens carry only the identity; role and activation are
        re-read from the credential store at refresh time.

        Returns:
            Tuple of (encoded token, the claims it carries)
        """
        issued_at = self._issue_time()
        claims = RefreshClaims(
            user_id=user_id,
            user_type=user_type,
            gym_id=gym_id,
            jti=secrets.token_urlsafe(16),
            iat=issued_at,
            exp=self._expiry(issued_at, self.refresh_ttl),
        )
        return self._sign(claims), claims

    def verify_access_token(self, token: str) -> AccessClaims:
        """Verify an access token and return its claims.

        Raises:
            TokenMalformedError: Not a well-formed access token
            TokenSignatureError: Bad signature or unexpected algorithm
            TokenExpiredError: Token is at or past its expiry
        """
        return self._verify(token, AccessClaims)

    def verify_refresh_token(self, token: str) -> RefreshClaims:
        """Verify a refresh token and return its claims.

        Raises:
            TokenMalformedError: Not a well-formed refresh token
            TokenSignatureError: Bad signature or unexpected algorithm
            TokenExpiredError: Token is at or past its expiry
        """
        return self._verify(token, RefreshClaims)

    def _verify(self, token: str, model: Type[ClaimsT]) -> ClaimsT:
        payload = self._decode(token)

        try:
            claims = model.model_validate(payload)
        except ValidationError as e:
            raise TokenMalformedError(f"Token claims do not match {model.__name__}") from e

        now = self._now()
        if claims.exp <= claims.iat:
            raise TokenMalformedError("Token expires before it is issued")
        if claims.iat > now + self.clock_skew.total_seconds():
            raise TokenMalformedError("Token issued in the future")
        if now >= claims.exp:
            raise TokenExpiredError("Token has expired")

        return claims

    def _decode(self, token: str) -> Dict[str, Any]:
        if not isinstance(token, str) or not token:
            raise TokenMalformedError("Empty token")

        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise TokenMalformedError(f"Malformed token: {e}") from e

        if header.get("alg") != self.algorithm:
            raise TokenSignatureError(f"Unexpected signing algorithm: {header.get('alg')}")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options=_DECODE_OPTIONS,
            )
        except JWTError as e:
            raise TokenSignatureError(f"Invalid token: {e}") from e

        if not isinstance(payload, dict):
            raise TokenMalformedError("Token payload is not an object")
        return payload


# Password hashing utilities

def hash_password(password: str) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password (algorithm and cost are embedded)

    Raises:
        PasswordTooLongError: Password is longer than 72 bytes in UTF-8

    Example:
        >>> hashed = hash_password("my-secret-password")
        >>> print(hashed[:4])
        $2b$
    """
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordTooLongError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash in constant time.

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        True if password matches, False otherwise (including unreadable hashes
        and passwords too long to have been hashed)

    Example:
        >>> hashed = hash_password("secret")
        >>> verify_password("secret", hashed)
        True
        >>> verify_password("wrong", hashed)
        False
    """
    if len(plain_password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False

    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.debug(f"Password verification error: {type(e).__name__}")
        return False


def needs_rehash(hashed_password: str) -> bool:
    """True when the hash was made with outdated parameters."""
    return pwd_context.needs_update(hashed_password)
