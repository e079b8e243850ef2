"""
Refresh-Token Store

Persistent table of live refresh tokens. ``put`` is an atomic upsert keyed
on the identity (user_id, user_type, gym_id): a new login replaces the
previous token, so at most one live refresh token exists per identity.

Example:
    >>> store = SQLRefreshTokenStore(db)
    >>> await store.put(record)
    >>> live = await store.lookup(record.token)
    >>> await store.revoke(record.token)
"""

import logging
from typing import Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite

from models.identity import RefreshToken, ensure_utc, new_id, utc_now
from models.schemas import RefreshTokenRecord
from services.database import DatabaseService

logger = logging.getLogger(__name__)


class RefreshTokenStore(Protocol):
    """Contract of the refresh-token store.

    Storage failures raise ``BackendUnavailableError``.
    """

    async def put(self, record: RefreshTokenRecord) -> None: ...

    async def lookup(self, token: str) -> Optional[RefreshTokenRecord]: ...

    async def revoke(self, token: str) -> None: ...

    async def revoke_all(self, user_id: str, user_type: str) -> int: ...

    async def sweep(self) -> int: ...


refresh_token_table = RefreshToken.__table__

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SQLRefreshTokenStore:
    """Refresh-token store on the ``refresh_token`` table.

    The upsert targets one of two partial unique indexes depending on
    whether the identity is tenant-scoped, and runs as a single
    ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent logins for the same
    identity serialize on the row lock.
    """

    def __init__(self, db: DatabaseService):
        self.db = db

    def _insert(self):
        try:
            return _INSERT_BY_DIALECT[self.db.dialect_name]
        except KeyError:
            raise NotImplementedError(
                f"Refresh-token upsert is not supported on dialect '{self.db.dialect_name}'"
            )

    async def put(self, record: RefreshTokenRecord) -> None:
        """Insert or replace the live token for the record's identity.

        Args:
            record: Token record; ``tenant_id`` is required iff the identity
                is a tenant user
        """
        columns = refresh_token_table.c
        if record.tenant_id is None:
            conflict_columns = [columns.user_id, columns.user_type]
            conflict_where = columns.gym_id.is_(None)
        else:
            conflict_columns = [columns.user_id, columns.user_type, columns.gym_id]
            conflict_where = columns.gym_id.is_not(None)

        stmt = self._insert()(refresh_token_table).values(
            id=new_id(),
            user_id=record.user_id,
            user_type=record.user_type,
            gym_id=record.tenant_id,
            token=record.token,
            created_at=record.issued_at,
            expires_at=record.expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            index_where=conflict_where,
            set_={
                "token": stmt.excluded.token,
                "created_at": stmt.excluded.created_at,
                "expires_at": stmt.excluded.expires_at,
            },
        )

        async with self.db.session() as session:
            await session.execute(stmt)

        logger.debug(
            "Stored refresh token",
            extra={"user_id": record.user_id, "user_type": record.user_type, "tenant_id": record.tenant_id}
        )

    async def lookup(self, token: str) -> Optional[RefreshTokenRecord]:
        """Return the record for ``token`` if it exists and has not expired."""
        async with self.db.session() as session:
            result = await session.execute(
                select(RefreshToken).where(
                    RefreshToken.token == token,
                    RefreshToken.expires_at > utc_now(),
                )
            )
            row = result.scalar_one_or_none()

        if row is None:
            return None

        return RefreshTokenRecord(
            token=row.token,
            user_id=row.user_id,
            user_type=row.user_type,
            tenant_id=row.gym_id,
            issued_at=ensure_utc(row.created_at),
            expires_at=ensure_utc(row.expires_at),
        )

    async def revoke(self, token: str) -> None:
        """Delete the token; a missing row is not an error."""
        async with self.db.session() as session:
            await session.execute(delete(refresh_token_table).where(refresh_token_table.c.token == token))

    async def revoke_all(self, user_id: str, user_type: str) -> int:
        """Delete every token of an identity across all tenants.

        Returns:
            Number of deleted rows
        """
        async with self.db.session() as session:
            result = await session.execute(
                delete(refresh_token_table).where(
                    refresh_token_table.c.user_id == user_id,
                    refresh_token_table.c.user_type == user_type,
                )
            )
        logger.info(
            f"Revoked {result.rowcount} refresh token(s)",
            extra={"user_id": user_id, "user_type": user_type}
        )
        return result.rowcount

    async def sweep(self) -> int:
        """Delete every expired record. Idempotent and safe to run concurrently.

        Returns:
            Number of deleted rows
        """
        async with self.db.session() as session:
            result = await session.execute(
                delete(refresh_token_table).where(refresh_token_table.c.expires_at <= utc_now())
            )
        return result.rowcount
