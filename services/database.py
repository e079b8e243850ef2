"""
Database Service for the Identity Stores

Owns the async SQLAlchemy 2.0 engine and session factory shared by the
credential store, the refresh-token store, the login history and the tenant
provisioner. Every SQLAlchemy failure leaving this layer is re-raised as
``BackendUnavailableError``.

Example:
    >>> from services.database import DatabaseService
    >>> db = DatabaseService()
    >>> await db.init()
    >>> async with db.session() as session:
    ...     await session.execute(select(Gym))
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import settings
from models.identity import Base
from models.tenant_tables import for_tenant

logger = logging.getLogger(__name__)


class BackendUnavailableError(Exception):
    """Raised when a backing store cannot serve a request.

    Covers driver errors, lost connections and exceeded deadlines. Callers
    at the HTTP boundary render it as a 500.

    Example:
        >>> raise BackendUnavailableError("refresh-token lookup failed", operation="lookup")
    """

    def __init__(self, message: str, **context):
        self.message = message
        self.context = context
        super().__init__(message)


class DatabaseService:
    """Async engine and session management.

    Attributes:
        database_url: SQLAlchemy URL of the backing database
        engine: Async engine (available after ``init()``)

    Example:
        >>> db = DatabaseService("sqlite+aiosqlite:///:memory:")
        >>> await db.init()
        >>> await db.create_schema()
    """

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database service.

        Args:
            database_url: Database connection URL (defaults to settings)
        """
        self.database_url = database_url or settings.DATABASE_URL
        self.logger = logging.getLogger(__name__)
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise BackendUnavailableError("Database not initialized. Call init() first.")
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def init(self) -> None:
        """Initialize database engine and session factory.

        Should be called during application startup.

        Raises:
            BackendUnavailableError: If the engine cannot be created
        """
        engine_options = {
            "pool_pre_ping": True,
            "echo": settings.is_development and settings.LOG_LEVEL == "DEBUG",
        }
        # SQLite uses a static/singleton pool that rejects sizing arguments
        if not self.database_url.startswith("sqlite"):
            engine_options["pool_size"] = settings.DATABASE_POOL_SIZE
            engine_options["max_overflow"] = settings.DATABASE_MAX_OVERFLOW

        try:
            self._engine = create_async_engine(self.database_url, **engine_options)
            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False
            )
            self.logger.info(
                "Database service initialized",
                extra={"database": settings.get_database_url(hide_password=True)}
            )

        except (SQLAlchemyError, ImportError, ValueError) as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise BackendUnavailableError(f"Database initialization failed: {str(e)}") from e

    async def close(self) -> None:
        """Dispose of pooled connections. Should be called during shutdown."""
        if self._engine:
            await self._engine.dispose()
            self.logger.info("Database connections closed")

    async def create_schema(self) -> None:
        """Create the public relations directly from the models.

        Production deployments use the Alembic migration instead; this is
        for tests and local development.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Get async database session that commits on success.

        Yields:
            AsyncSession: Database session

        Raises:
            BackendUnavailableError: On any SQLAlchemy error inside the block

        Example:
            >>> async with db.session() as session:
            ...     result = await session.execute(select(Gym))
        """
        if not self._session_factory:
            raise BackendUnavailableError("Database not initialized. Call init() first.")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise BackendUnavailableError(f"Database operation failed: {str(e)}") from e
            except BaseException:
                await session.rollback()
                raise

    @asynccontextmanager
    async def tenant_connection(self, domain: str) -> AsyncIterator[AsyncConnection]:
        """Transactional connection whose tenant tables resolve to ``domain``.

        Args:
            domain: Validated tenant domain (schema name)

        Raises:
            BackendUnavailableError: On any SQLAlchemy error inside the block

        Example:
            >>> async with db.tenant_connection("iron-gym") as conn:
            ...     await conn.execute(select(tenant_user))
        """
        try:
            async with self.engine.begin() as conn:
                yield await for_tenant(conn, domain)
        except SQLAlchemyError as e:
            raise BackendUnavailableError(
                f"Tenant database operation failed: {str(e)}", domain=domain
            ) from e

    async def health_check(self) -> bool:
        """Check database connectivity.

        Returns:
            True if healthy, False otherwise
        """
        if not self._engine:
            return False

        try:
            async with self.session() as session:
                await session.execute(select(1))
            return True

        except (BackendUnavailableError, OSError) as e:
            self.logger.error(f"Database health check failed: {str(e)}")
            return False


# Global database service instance
_db_service: Optional[DatabaseService] = None


def get_database() -> DatabaseService:
    """Get global database service instance.

    Returns:
        DatabaseService singleton
    """
    global _db_service
    if _db_service is None:
        _db_service = DatabaseService()
    return _db_service
