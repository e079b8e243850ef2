"""Authentication Service

Orchestrates login for both identity populations, token refresh, logout
and access-token validation. Holds no mutable state of its own: everything
shared between requests lives in the credential and refresh-token stores.

Every store call runs under a deadline. A store that times out or reports
``BackendUnavailableError`` surfaces as ``InternalError``; nothing is retried.

Example:
    >>> service = AuthService(
    ...     credentials=SQLCredentialStore(db),
    ...     refresh_tokens=SQLRefreshTokenStore(db),
    ...     codec=TokenCodec.from_settings(),
    ... )
    >>> pair = await service.login(LoginRequest(username="root", password="p@ss"))
    >>> pair.user_info.user_type
    'platform_admin'
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from auth.jwt_handler import (
    TokenCodec,
    TokenError,
    TokenExpiredError,
    TokenSigningError,
    hash_password,
    verify_password,
)
from auth.permissions import is_demo_expired
from models.identity import UserType, utc_now
from models.schemas import (
    AccessClaims,
    LoginAttempt,
    LoginRequest,
    RefreshTokenRecord,
    TokenPair,
    TokenValidation,
    UserInfo,
)
from services.credential_store import CredentialStore
from services.database import BackendUnavailableError
from services.login_history import LoginHistoryStore
from services.refresh_token_store import RefreshTokenStore
from utils.errors import (
    AccountDisabledError,
    DemoExpiredError,
    InternalError,
    InvalidCredentialsError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

INVALID_TOKEN_MESSAGE = "Invalid token"
INVALID_REFRESH_TOKEN_MESSAGE = "invalid refresh token"


def _from_timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _is_valid_tenant_selector(selector: str) -> bool:
    try:
        UUID(selector)
    except ValueError:
        return False
    return True


class AuthService:
    """Login, refresh, logout and validation over injected stores.

    Args:
        credentials: Credential store (admins, tenants, tenant users)
        refresh_tokens: Refresh-token store
        codec: Token codec holding the signing secret
        login_history: Optional login audit store
        store_timeout: Deadline in seconds for each store call
        demo_period: Lifetime of demo guest accounts
        clock: Current-time source, shared with demo-window checks
    """

    _dummy_hash: Optional[str] = None

    def __init__(
        self,
        credentials: CredentialStore,
        refresh_tokens: RefreshTokenStore,
        codec: TokenCodec,
        login_history: Optional[LoginHistoryStore] = None,
        store_timeout: float = 5.0,
        demo_period: timedelta = timedelta(days=14),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.credentials = credentials
        self.refresh_tokens = refresh_tokens
        self.codec = codec
        self.login_history = login_history
        self.store_timeout = store_timeout
        self.demo_period = demo_period
        self.clock = clock

    # ========================================================================
    # Store access
    # ========================================================================

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store call under the deadline, mapping failures to InternalError."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.store_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Store deadline exceeded during {operation}")
            raise InternalError(f"Deadline exceeded during {operation}", inner=e) from e
        except BackendUnavailableError as e:
            logger.error(f"Store unavailable during {operation}: {e.message}")
            raise InternalError(f"Backend unavailable during {operation}", inner=e) from e

    async def _best_effort(self, operation: str, awaitable: Awaitable[None]) -> None:
        try:
            await self._call(operation, awaitable)
        except InternalError as e:
            logger.warning(f"Ignoring failed {operation}: {e.message}")

    async def _password_matches(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(verify_password, password, password_hash)

    async def _burn_password_check(self, password: str) -> None:
        """Spend one verification on a throwaway hash so unknown users cost as much as known ones."""
        if AuthService._dummy_hash is None:
            AuthService._dummy_hash = await asyncio.to_thread(hash_password, secrets.token_urlsafe(16))
        await self._password_matches(password, AuthService._dummy_hash)

    async def _record_attempt(
        self,
        user_type: UserType,
        success: bool,
        user_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        if self.login_history is None:
            return
        attempt = LoginAttempt(
            user_id=user_id,
            user_type=user_type,
            tenant_id=tenant_id,
            success=success,
            client_ip=client_ip,
            user_agent=user_agent,
            attempted_at=self.clock(),
        )
        await self._best_effort("login history write", self.login_history.record(attempt))

    # ========================================================================
    # Login
    # ========================================================================

    async def login(
        self,
        credentials: LoginRequest,
        tenant_selector: Optional[str] = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        """Authenticate a platform admin (no selector) or a tenant user.

        Unknown users, wrong passwords and unknown tenant selectors all fail
        with the same ``InvalidCredentialsError``. Disabled accounts are only
        reported after the password has been shown to be correct.

        Args:
            credentials: Username and password
            tenant_selector: Gym id; absent or blank selects the admin path
            client_ip: Caller address, for the login history
            user_agent: Caller user agent, for the login history

        Returns:
            Access token, refresh token, access expiry and user info

        Raises:
            InvalidCredentialsError: Unknown user/tenant or wrong password
            AccountDisabledError: User or tenant is deactivated
            DemoExpiredError: Guest demo account past its demo period
            InternalError: Store failure or deadline exceeded
        """
        selector = (tenant_selector or "").strip()
        if selector:
            return await self._login_tenant_user(credentials, selector, client_ip, user_agent)
        return await self._login_platform_admin(credentials, client_ip, user_agent)

    async def _login_platform_admin(
        self,
        credentials: LoginRequest,
        client_ip: Optional[str],
        user_agent: Optional[str],
    ) -> TokenPair:
        user_type = UserType.PLATFORM_ADMIN
        admin = await self._call(
            "admin lookup",
            self.credentials.find_platform_admin_by_username(credentials.username),
        )

        if admin is None:
            await self._burn_password_check(credentials.password)
            await self._record_attempt(user_type, False, client_ip=client_ip, user_agent=user_agent)
            logger.info("Admin login failed: unknown user")
            raise InvalidCredentialsError()

        if not await self._password_matches(credentials.password, admin.password_hash):
            await self._record_attempt(user_type, False, admin.id, client_ip=client_ip, user_agent=user_agent)
            logger.info("Admin login failed: bad password", extra={"user_id": admin.id})
            raise InvalidCredentialsError()

        if not admin.is_active:
            await self._record_attempt(user_type, False, admin.id, client_ip=client_ip, user_agent=user_agent)
            logger.info("Admin login refused: account disabled", extra={"user_id": admin.id})
            raise AccountDisabledError()

        pair = await self._issue_tokens(
            user_id=admin.id,
            username=admin.username,
            email=admin.email,
            user_type=user_type,
            is_active=admin.is_active,
        )

        await self._best_effort(
            "admin last-login update",
            self.credentials.touch_platform_admin_last_login(admin.id),
        )
        await self._record_attempt(user_type, True, admin.id, client_ip=client_ip, user_agent=user_agent)

        logger.info("Admin login succeeded", extra={"user_id": admin.id, "user_type": user_type.value})
        return pair

    async def _login_tenant_user(
        self,
        credentials: LoginRequest,
        selector: str,
        client_ip: Optional[str],
        user_agent: Optional[str],
    ) -> TokenPair:
        user_type = UserType.TENANT_USER

        tenant = None
        if _is_valid_tenant_selector(selector):
            tenant = await self._call("tenant lookup", self.credentials.find_tenant(selector))

        user = None
        if tenant is not None:
            user = await self._call(
                "tenant user lookup",
                self.credentials.find_tenant_user_by_username(tenant.id, credentials.username),
            )

        if user is None:
            await self._burn_password_check(credentials.password)
            await self._record_attempt(
                user_type, False,
                tenant_id=tenant.id if tenant else None,
                client_ip=client_ip, user_agent=user_agent,
            )
            logger.info("Tenant login failed: unknown tenant or user")
            raise InvalidCredentialsError()

        if not await self._password_matches(credentials.password, user.password_hash):
            await self._record_attempt(user_type, False, user.id, tenant.id, client_ip, user_agent)
            logger.info("Tenant login failed: bad password", extra={"user_id": user.id, "tenant_id": tenant.id})
            raise InvalidCredentialsError()

        if not user.is_active or not tenant.is_active:
            await self._record_attempt(user_type, False, user.id, tenant.id, client_ip, user_agent)
            logger.info(
                "Tenant login refused: user or gym disabled",
                extra={"user_id": user.id, "tenant_id": tenant.id}
            )
            raise AccountDisabledError()

        if is_demo_expired(user.role, user.verification_status, user.created_at, self.demo_period, self.clock()):
            await self._record_attempt(user_type, False, user.id, tenant.id, client_ip, user_agent)
            logger.info("Tenant login refused: demo expired", extra={"user_id": user.id, "tenant_id": tenant.id})
            raise DemoExpiredError()

        pair = await self._issue_tokens(
            user_id=user.id,
            username=user.username,
            email=user.email,
            user_type=user_type,
            is_active=user.is_active,
            gym_id=tenant.id,
            role=user.role,
            verification_status=user.verification_status,
        )

        await self._best_effort(
            "tenant user last-login update",
            self.credentials.touch_tenant_user_last_login(tenant.id, user.id),
        )
        await self._record_attempt(user_type, True, user.id, tenant.id, client_ip, user_agent)

        logger.info(
            "Tenant login succeeded",
            extra={"user_id": user.id, "user_type": user_type.value, "tenant_id": tenant.id}
        )
        return pair

    def _mint_access_token(self, **claims) -> tuple:
        try:
            return self.codec.create_access_token(**claims)
        except TokenSigningError as e:
            raise InternalError("Failed to sign access token", inner=e) from e

    async def _issue_tokens(
        self,
        *,
        user_id: str,
        username: str,
        email: Optional[str],
        user_type: UserType,
        is_active: bool,
        gym_id: Optional[str] = None,
        role: Optional[str] = None,
        verification_status: Optional[str] = None,
    ) -> TokenPair:
        access_token, access_claims = self._mint_access_token(
            user_id=user_id,
            username=username,
            user_type=user_type.value,
            is_active=is_active,
            gym_id=gym_id,
            role=role,
            verification_status=verification_status,
        )

        try:
            refresh_token, refresh_claims = self.codec.create_refresh_token(
                user_id=user_id, user_type=user_type.value, gym_id=gym_id
            )
        except TokenSigningError as e:
            raise InternalError("Failed to sign refresh token", inner=e) from e

        await self._call(
            "refresh token store",
            self.refresh_tokens.put(
                RefreshTokenRecord(
                    token=refresh_token,
                    user_id=user_id,
                    user_type=user_type,
                    tenant_id=gym_id,
                    issued_at=_from_timestamp(refresh_claims.iat),
                    expires_at=_from_timestamp(refresh_claims.exp),
                )
            ),
        )

        return self._token_pair(access_token, access_claims, refresh_token, email)

    @staticmethod
    def _token_pair(
        access_token: str,
        access_claims: AccessClaims,
        refresh_token: str,
        email: Optional[str],
    ) -> TokenPair:
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=_from_timestamp(access_claims.exp),
            user_info=UserInfo(
                user_id=access_claims.user_id,
                username=access_claims.username,
                email=email,
                user_type=access_claims.user_type,
                role=access_claims.role,
                gym_id=access_claims.gym_id,
                verification_status=access_claims.verification_status,
            ),
        )

    # ========================================================================
    # Validation
    # ========================================================================

    def validate_token(self, token: Optional[str]) -> TokenValidation:
        """Verify an access token by signature and time only.

        Never consults a store and never raises for a bad token.

        Example:
            >>> service.validate_token("garbage")
            TokenValidation(valid=False, claims=None, message='Invalid token')
        """
        try:
            claims = self.codec.verify_access_token(token)
        except TokenExpiredError:
            return TokenValidation(valid=False, message="Token has expired")
        except TokenError as e:
            logger.debug(f"Access token rejected: {e}")
            return TokenValidation(valid=False, message=INVALID_TOKEN_MESSAGE)

        return TokenValidation(
            valid=True,
            claims=claims.model_dump(exclude_none=True),
            message="Token is valid",
        )

    # ========================================================================
    # Refresh / logout
    # ========================================================================

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a live refresh token for a new access token.

        The refresh token itself is returned unchanged. Role and activation
        are re-read from the credential store so changes since login apply.

        Raises:
            UnauthorizedError: Invalid, expired, revoked or orphaned token,
                or the user is gone or disabled
            InternalError: Store failure or deadline exceeded
        """
        try:
            claims = self.codec.verify_refresh_token(refresh_token)
        except TokenExpiredError:
            await self._best_effort("expired refresh token cleanup", self.refresh_tokens.revoke(refresh_token))
            raise UnauthorizedError(INVALID_REFRESH_TOKEN_MESSAGE)
        except TokenError as e:
            logger.info(f"Refresh token rejected: {e}")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN_MESSAGE)

        record = await self._call("refresh token lookup", self.refresh_tokens.lookup(refresh_token))
        if record is None:
            logger.info("Refresh token not live", extra={"user_id": claims.user_id})
            raise UnauthorizedError(INVALID_REFRESH_TOKEN_MESSAGE)

        if record.expires_at <= self.clock():
            await self._call("refresh token cleanup", self.refresh_tokens.revoke(refresh_token))
            raise UnauthorizedError(INVALID_REFRESH_TOKEN_MESSAGE)

        if record.user_type == UserType.PLATFORM_ADMIN.value:
            admin = await self._call(
                "admin lookup", self.credentials.find_platform_admin_by_id(record.user_id)
            )
            if admin is None or not admin.is_active:
                raise UnauthorizedError("User not found or inactive")
            access_token, access_claims = self._mint_access_token(
                user_id=admin.id,
                username=admin.username,
                user_type=UserType.PLATFORM_ADMIN.value,
                is_active=admin.is_active,
            )
            email = admin.email
        else:
            if not record.tenant_id:
                raise UnauthorizedError(INVALID_REFRESH_TOKEN_MESSAGE)
            tenant = await self._call("tenant lookup", self.credentials.find_tenant(record.tenant_id))
            user = None
            if tenant is not None:
                user = await self._call(
                    "tenant user lookup",
                    self.credentials.find_tenant_user_by_id(record.tenant_id, record.user_id),
                )
            if user is None or not user.is_active or not tenant.is_active:
                raise UnauthorizedError("User not found or inactive")
            access_token, access_claims = self._mint_access_token(
                user_id=user.id,
                username=user.username,
                user_type=UserType.TENANT_USER.value,
                is_active=user.is_active,
                gym_id=tenant.id,
                role=user.role,
                verification_status=user.verification_status,
            )
            email = user.email

        logger.info(
            "Access token refreshed",
            extra={"user_id": record.user_id, "user_type": record.user_type, "tenant_id": record.tenant_id}
        )
        return self._token_pair(access_token, access_claims, refresh_token, email)

    async def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Idempotent; only store failures raise."""
        await self._call("refresh token revoke", self.refresh_tokens.revoke(refresh_token))

    async def logout_all(self, user_id: str, user_type: str) -> int:
        """Revoke every refresh token of an identity across all tenants.

        Returns:
            Number of revoked tokens
        """
        return await self._call(
            "refresh token bulk revoke", self.refresh_tokens.revoke_all(user_id, user_type)
        )
