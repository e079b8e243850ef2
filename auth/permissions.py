"""Authorization Predicates

Pure functions over a verified access claim. They never raise; missing or
unknown fields deny. Callers turn a ``False`` into a forbidden error.

Example:
    >>> from auth.permissions import has_role_at_least
    >>> has_role_at_least("admin", "guest")
    True
    >>> has_role_at_least("guest", "admin")
    False
"""

from datetime import datetime, timedelta
from typing import Any, Optional, Tuple

from models.identity import Role, UserType, VerificationStatus

# Higher rank wins: admin > user > guest
ROLE_RANK = {
    Role.GUEST.value: 1,
    Role.USER.value: 2,
    Role.ADMIN.value: 3,
}


def _field(claim: Any, name: str) -> Optional[Any]:
    if claim is None:
        return None
    if isinstance(claim, dict):
        return claim.get(name)
    return getattr(claim, name, None)


def is_platform_admin(claim: Any) -> bool:
    """True iff the claim belongs to a platform administrator."""
    return _field(claim, "user_type") == UserType.PLATFORM_ADMIN.value


def is_gym_admin(claim: Any) -> bool:
    """Platform admins, or tenant users with the admin role."""
    if is_platform_admin(claim):
        return True
    return (
        _field(claim, "user_type") == UserType.TENANT_USER.value
        and _field(claim, "role") == Role.ADMIN.value
    )


def has_tenant_access(claim: Any, requested_tenant_id: Optional[str]) -> bool:
    """Platform admins reach any tenant; tenant users only their own.

    Example:
        >>> has_tenant_access({"user_type": "tenant_user", "gym_id": "g-1"}, "g-2")
        False
    """
    if is_platform_admin(claim):
        return True
    if _field(claim, "user_type") != UserType.TENANT_USER.value:
        return False
    tenant_id = _field(claim, "gym_id")
    return bool(tenant_id) and bool(requested_tenant_id) and tenant_id == requested_tenant_id


def role_satisfies(actual: Optional[str], required: Optional[str]) -> bool:
    """Compare two roles on the admin > user > guest order.

    Unknown or missing roles on either side fail closed.
    """
    if actual not in ROLE_RANK or required not in ROLE_RANK:
        return False
    return ROLE_RANK[actual] >= ROLE_RANK[required]


def has_role_at_least(claim_or_role: Any, required: Optional[str]) -> bool:
    """True if the role (or the role carried by a claim) is at least ``required``.

    Accepts a bare role string or an access claim.

    Example:
        >>> has_role_at_least({"role": "user"}, "guest")
        True
        >>> has_role_at_least("superuser", "guest")
        False
    """
    if isinstance(claim_or_role, str) or claim_or_role is None:
        actual = claim_or_role
    else:
        actual = _field(claim_or_role, "role")
    return role_satisfies(actual, required)


def demo_limitations_apply(verification_status: Optional[str]) -> Tuple[bool, str]:
    """Whether a verification status restricts the user, with a reason.

    Returns:
        Tuple of (limited, human-readable reason)

    Example:
        >>> demo_limitations_apply("verified")
        (False, 'Account is verified')
    """
    if verification_status == VerificationStatus.VERIFIED.value:
        return False, "Account is verified"
    if verification_status == VerificationStatus.DEMO.value:
        return True, "Demo account: access is limited to the demo period"
    if verification_status == VerificationStatus.UNVERIFIED.value:
        return True, "Account is not verified yet"
    return True, "Unknown verification status"


def is_demo_expired(
    role: Optional[str],
    verification_status: Optional[str],
    created_at: Optional[datetime],
    demo_period: timedelta,
    now: datetime,
) -> bool:
    """True for guest demo accounts whose demo window has elapsed.

    The window starts at account creation. A demo guest without a creation
    time is treated as expired.
    """
    if role != Role.GUEST.value or verification_status != VerificationStatus.DEMO.value:
        return False
    if created_at is None:
        return True
    return now >= created_at + demo_period
