"""
Tenant Provisioner

Materializes the database schema of a gym. The schema is named after the
gym's domain, so the domain is validated against a strict DNS-label pattern
before any SQL is issued; every emitted identifier is then quoted by the
dialect through ``schema_translate_map``.

The whole provisioning runs in one transaction on PostgreSQL (DDL is
transactional there): a failure in any table or index rolls the schema back,
so no half-built namespace is ever visible.

Example:
    >>> provisioner = TenantProvisioner(db)
    >>> await provisioner.provision("iron-gym")
    >>> await provisioner.list_tenants()
    ['iron-gym']
"""

import logging
import re
from typing import List, Optional

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateSchema, DropSchema

from models.identity import Gym
from models.tenant_tables import for_tenant, tenant_metadata
from services.database import BackendUnavailableError, DatabaseService
from utils.errors import BadRequestError

logger = logging.getLogger(__name__)

DOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")

SYSTEM_SCHEMAS = frozenset({"public", "information_schema", "pg_catalog", "pg_toast"})


class ProvisioningError(BackendUnavailableError):
    """Raised when a tenant schema cannot be created.

    The transaction is rolled back before this propagates.

    Example:
        >>> raise ProvisioningError("schema already exists", domain="iron-gym")
    """
    pass


def validate_domain(domain: Optional[str]) -> str:
    """Check that ``domain`` is a DNS-safe label usable as a schema name.

    Lowercase alphanumerics and hyphens, 1-63 characters, no leading or
    trailing hyphen. Schema names reserved by PostgreSQL are refused.

    Args:
        domain: Candidate gym domain

    Returns:
        The domain, unchanged

    Raises:
        BadRequestError: If the domain is not acceptable

    Example:
        >>> validate_domain("iron-gym")
        'iron-gym'
        >>> validate_domain("-bad")
        Traceback (most recent call last):
        ...
        utils.errors.BadRequestError: Invalid gym domain
    """
    if not isinstance(domain, str) or not DOMAIN_PATTERN.match(domain):
        raise BadRequestError("Invalid gym domain")
    if domain in SYSTEM_SCHEMAS:
        raise BadRequestError("Gym domain is reserved")
    return domain


class TenantProvisioner:
    """Creates, lists and drops per-tenant schemas."""

    def __init__(self, db: DatabaseService):
        self.db = db

    async def provision(self, domain: str, gym_id: Optional[str] = None) -> None:
        """Create the tenant schema and every per-tenant relation.

        If the schema already exists, provisioning is only allowed when it
        is owned by ``gym_id`` (the gym row with this domain has that id);
        in that case missing relations are created and existing ones left
        alone. Otherwise the call fails fast.

        Args:
            domain: Gym domain, used verbatim as schema name
            gym_id: Id of the gym that owns the domain, if already persisted

        Raises:
            BadRequestError: If the domain is not DNS-safe (no SQL issued)
            ProvisioningError: If the namespace is taken or any DDL fails
        """
        validate_domain(domain)

        try:
            async with self.db.engine.begin() as conn:
                exists = await conn.run_sync(
                    lambda sync_conn: inspect(sync_conn).has_schema(domain)
                )
                if exists:
                    owner = await conn.scalar(select(Gym.id).where(Gym.domain == domain))
                    if gym_id is None or owner != gym_id:
                        raise ProvisioningError(
                            f"Schema '{domain}' already exists", domain=domain
                        )
                    logger.info(f"Schema {domain} exists, creating missing relations", extra={"domain": domain})

                await conn.execute(CreateSchema(domain, if_not_exists=True))
                tenant_conn = await for_tenant(conn, domain)
                await tenant_conn.run_sync(tenant_metadata.create_all, checkfirst=True)

        except SQLAlchemyError as e:
            logger.error(f"Provisioning of {domain} failed: {str(e)}", extra={"domain": domain})
            raise ProvisioningError(f"Provisioning failed: {str(e)}", domain=domain) from e

        logger.info(f"Provisioned tenant schema {domain}", extra={"domain": domain})

    async def drop(self, domain: str) -> None:
        """Drop a tenant schema and everything in it. Irreversible."""
        validate_domain(domain)
        try:
            async with self.db.engine.begin() as conn:
                await conn.execute(DropSchema(domain, cascade=True, if_exists=True))
        except SQLAlchemyError as e:
            raise ProvisioningError(f"Dropping schema failed: {str(e)}", domain=domain) from e

        logger.warning(f"Dropped tenant schema {domain}", extra={"domain": domain})

    async def list_tenants(self) -> List[str]:
        """Names of all non-system schemas."""
        try:
            async with self.db.engine.connect() as conn:
                names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_schema_names())
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"Listing schemas failed: {str(e)}") from e

        return sorted(
            name for name in names
            if name not in SYSTEM_SCHEMAS and not name.startswith("pg_")
        )
