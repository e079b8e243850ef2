#!/usr/bin/env python3
"""Create the first platform administrator.

Usage:
    # Using environment variables:
    ADMIN_USERNAME=root ADMIN_EMAIL=root@example.com ADMIN_PASSWORD='S3cure!pass' \
        python scripts/bootstrap_admin.py

    # Or with command line args:
    python scripts/bootstrap_admin.py --username root --email root@example.com --password 'S3cure!pass'

Environment Variables:
    ADMIN_USERNAME: Username of the admin
    ADMIN_EMAIL: Email of the admin
    ADMIN_PASSWORD: Password of the admin (at least 12 characters)
    DATABASE_URL: PostgreSQL connection string
    JWT_SECRET: Required by the settings loader even though no token is issued
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

MIN_PASSWORD_LENGTH = 12
MAX_PASSWORD_BYTES = 72


async def bootstrap_admin(username: str, email: str, password: str, dry_run: bool = False) -> dict:
    """Insert the admin row unless the username is already taken.

    Returns:
        dict with user_id, username and status ('created', 'exists' or 'dry_run')
    """
    # Import here so settings are read after argument parsing
    from sqlalchemy import select

    from auth.jwt_handler import hash_password
    from models.identity import PlatformAdmin
    from services.database import get_database

    db = get_database()
    await db.init()
    try:
        async with db.session() as session:
            existing = await session.scalar(select(PlatformAdmin).where(PlatformAdmin.username == username))
            if existing is not None:
                print(f"Admin {username} already exists (id: {existing.id})")
                return {"user_id": existing.id, "username": username, "status": "exists"}

            if dry_run:
                print(f"[DRY RUN] Would create admin {username} <{email}>")
                return {"user_id": None, "username": username, "status": "dry_run"}

            admin = PlatformAdmin(
                username=username,
                email=email,
                password_hash=await asyncio.to_thread(hash_password, password),
            )
            session.add(admin)
            await session.flush()
            admin_id = admin.id
    finally:
        await db.close()

    print(f"Created admin {username} (id: {admin_id})")
    return {"user_id": admin_id, "username": username, "status": "created"}


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the first platform administrator")
    parser.add_argument("--username", default=os.environ.get("ADMIN_USERNAME"))
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"))
    parser.add_argument("--password", default=os.environ.get("ADMIN_PASSWORD"))
    parser.add_argument("--dry-run", action="store_true", help="Show what would happen")
    args = parser.parse_args()

    if not args.username or not args.email or not args.password:
        print("Error: username, email and password are required", file=sys.stderr)
        return 1

    if len(args.password) < MIN_PASSWORD_LENGTH:
        print(f"Error: password must be at least {MIN_PASSWORD_LENGTH} characters", file=sys.stderr)
        return 1

    if len(args.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"Error: password must be at most {MAX_PASSWORD_BYTES} bytes", file=sys.stderr)
        return 1

    asyncio.run(bootstrap_admin(args.username, args.email, args.password, dry_run=args.dry_run))
    return 0


if __name__ == "__main__":
    sys.exit(main())
