"""
Turnstile - Authentication and Tenant Isolation for Gym Management

FastAPI application entry point. Authenticates platform administrators and
per-gym users, issues and refreshes JWTs, and keeps each gym's data in its
own database schema.

Storage Backends:
    postgres → PostgreSQL via async SQLAlchemy (production)
    memory   → in-process dictionaries (development and tests)

Example:
    Run the service with:

    $ uvicorn main:app --host 0.0.0.0 --port 8080 --reload

    Or in production:

    $ uvicorn main:app --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Dict
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)

from api.errors import register_exception_handlers
from api.routes import router as api_router
from auth.jwt_handler import TokenCodec
from auth.service import AuthService
from scheduler import RefreshTokenSweeper


async def _build_postgres_stores(app: FastAPI, correlation_id: str):
    """Connect to PostgreSQL, waiting for it to come up, and build the SQL stores.

    Raises:
        BackendUnavailableError: Database could not be initialized
        BackendNotReadyError: Database never became healthy
    """
    from services.credential_store import SQLCredentialStore
    from services.database import get_database
    from services.login_history import SQLLoginHistoryStore
    from services.refresh_token_store import SQLRefreshTokenStore
    from utils.retry import wait_for_backend

    logger.info("Initializing database...", extra={"correlation_id": correlation_id})
    db = get_database()
    await db.init()
    await wait_for_backend(db.health_check, name="database")
    app.state.db = db

    return SQLCredentialStore(db), SQLRefreshTokenStore(db), SQLLoginHistoryStore(db)


def _build_memory_stores(app: FastAPI):
    from services.memory_store import InMemoryStore

    store = InMemoryStore()
    app.state.memory_store = store
    return store, store, store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events.

    Builds the stores selected by STORAGE_BACKEND, the token codec and the
    auth service, and starts the refresh-token sweeper. A database that
    stays unreachable through the startup retries aborts startup.

    Args:
        app: FastAPI application instance

    Yields:
        None: Control is yielded during application runtime
    """
    correlation_id = str(uuid4())
    logger.info(
        "Starting Turnstile service",
        extra={
            "correlation_id": correlation_id,
            "version": settings.VERSION,
            "port": settings.PORT,
            "environment": settings.APP_ENV,
            "storage_backend": settings.STORAGE_BACKEND
        }
    )

    app.state.db = None
    app.state.sweeper = None

    try:
        if settings.STORAGE_BACKEND == "postgres":
            credentials, refresh_tokens, history = await _build_postgres_stores(app, correlation_id)
        else:
            credentials, refresh_tokens, history = _build_memory_stores(app)

        app.state.auth_service = AuthService(
            credentials=credentials,
            refresh_tokens=refresh_tokens,
            codec=TokenCodec.from_settings(),
            login_history=history,
            store_timeout=settings.STORE_TIMEOUT_SECONDS,
            demo_period=timedelta(days=settings.DEMO_PERIOD_DAYS),
        )

        if settings.SWEEP_ENABLED:
            sweeper = RefreshTokenSweeper(refresh_tokens, interval_seconds=settings.SWEEP_INTERVAL_SECONDS)
            sweeper.start()
            app.state.sweeper = sweeper

        logger.info("✅ Turnstile service started successfully", extra={"correlation_id": correlation_id})

    except Exception as e:
        logger.error(
            f"Failed to start Turnstile service: {str(e)}",
            extra={"correlation_id": correlation_id},
            exc_info=True
        )
        if app.state.db is not None:
            await app.state.db.close()
        raise

    try:
        yield
    finally:
        logger.info("Shutting down Turnstile service", extra={"correlation_id": correlation_id})

        if app.state.sweeper is not None:
            app.state.sweeper.shutdown()

        if app.state.db is not None:
            await app.state.db.close()
            logger.info("Database connections closed", extra={"correlation_id": correlation_id})

        logger.info("✅ Turnstile service shutdown complete", extra={"correlation_id": correlation_id})


# Create FastAPI application
app = FastAPI(
    title="Turnstile - Gym Authentication Service",
    description=(
        "Authentication and tenant isolation for the gym management platform. "
        "Issues and refreshes JWTs for platform admins and gym users."
    ),
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    """Add correlation ID to all requests for tracing.

    Args:
        request: Incoming HTTP request
        call_next: Next middleware or route handler

    Returns:
        Response with X-Correlation-ID header
    """
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid4())
    request.state.correlation_id = correlation_id

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id

    return response


@app.get("/health", tags=["Health"])
async def health_check(request: Request) -> Dict[str, Any]:
    """Health check endpoint for service monitoring.

    Returns:
        Dict containing:
            - status: "healthy" or "unhealthy"
            - version: Service version
            - timestamp: Current UTC timestamp
            - dependencies: Health status of the storage backend

    Example:
        >>> response = await client.get("/health")
        >>> print(response.json())
        {
            "status": "healthy",
            "service": "turnstile",
            "dependencies": {"storage": "memory"}
        }
    """
    dependencies = {}
    db = getattr(request.app.state, "db", None)

    if db is None:
        dependencies["storage"] = settings.STORAGE_BACKEND
        healthy = True
    else:
        healthy = await db.health_check()
        dependencies["database"] = "healthy" if healthy else "unhealthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "service": "turnstile",
        "version": settings.VERSION,
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.APP_ENV,
        "dependencies": dependencies
    }


@app.get("/", tags=["Root"])
async def root() -> Dict[str, str]:
    """Root endpoint with service information."""
    return {
        "service": "turnstile",
        "version": settings.VERSION,
        "description": "Authentication and tenant isolation for gym management"
    }


app.include_router(api_router)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
