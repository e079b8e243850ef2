#!/usr/bin/env python3
"""Register a gym and build its tenant schema.

If a gym with the domain already exists, only its schema is (re)provisioned:
missing relations are created and existing ones left alone.

Usage:
    python scripts/provision_tenant.py --domain iron-gym --name "Iron Gym"
    python scripts/provision_tenant.py --domain iron-gym --drop
    python scripts/provision_tenant.py --list

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    JWT_SECRET: Required by the settings loader
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


async def provision_tenant(domain: str, name: Optional[str], email: Optional[str] = None) -> str:
    """Ensure the gym row exists, then provision its schema.

    Returns:
        The gym id, to be sent as the tenant selector at login
    """
    from sqlalchemy import select

    from models.identity import Gym
    from services.database import get_database
    from services.tenant_provisioner import TenantProvisioner, validate_domain

    validate_domain(domain)

    db = get_database()
    await db.init()
    try:
        async with db.session() as session:
            gym = await session.scalar(select(Gym).where(Gym.domain == domain))
            if gym is None:
                gym = Gym(name=name or domain, domain=domain, email=email)
                session.add(gym)
                await session.flush()
                print(f"Registered gym {domain} (id: {gym.id})")
            gym_id = gym.id

        await TenantProvisioner(db).provision(domain, gym_id=gym_id)
    finally:
        await db.close()

    print(f"Provisioned schema {domain}; tenant selector: {gym_id}")
    return gym_id


async def drop_tenant(domain: str) -> None:
    from services.database import get_database
    from services.tenant_provisioner import TenantProvisioner

    db = get_database()
    await db.init()
    try:
        await TenantProvisioner(db).drop(domain)
    finally:
        await db.close()

    print(f"Dropped schema {domain}")


async def list_tenants() -> list:
    from services.database import get_database
    from services.tenant_provisioner import TenantProvisioner

    db = get_database()
    await db.init()
    try:
        domains = await TenantProvisioner(db).list_tenants()
    finally:
        await db.close()

    for domain in domains:
        print(domain)
    return domains


def main() -> int:
    parser = argparse.ArgumentParser(description="Register a gym and build its tenant schema")
    parser.add_argument("--domain", help="DNS-safe gym domain (schema name)")
    parser.add_argument("--name", help="Display name (defaults to the domain)")
    parser.add_argument("--email", help="Contact email")
    parser.add_argument("--drop", action="store_true", help="Drop the schema and all its data")
    parser.add_argument("--list", action="store_true", help="List provisioned tenant schemas")
    args = parser.parse_args()

    if not args.list and not args.domain:
        parser.error("--domain is required unless --list is given")

    from utils.errors import APIError
    from services.database import BackendUnavailableError

    try:
        if args.list:
            asyncio.run(list_tenants())
        elif args.drop:
            asyncio.run(drop_tenant(args.domain))
        else:
            asyncio.run(provision_tenant(args.domain, args.name, args.email))
    except (APIError, BackendUnavailableError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
