"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from micropatrons.activity.router import router as activity_router
from micropatrons.config import get_settings
from micropatrons.database import close_db, create_schema, init_db
from micropatrons.dependencies import build_store, close_ledger, init_ledger
from micropatrons.health.router import router as health_router
from micropatrons.middleware import setup_middleware
from micropatrons.redis_client import close_redis, init_redis
from micropatrons.transfers.router import router as transfers_router
from micropatrons.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    if settings.ledger_backend == "sql":
        await init_db(settings.database_url, settings.db_busy_timeout_seconds)
        if settings.create_schema_on_startup:
            await create_schema()
    await init_redis(settings.redis_url)
    init_ledger(build_store(settings), settings)
    logger.info("ledger_ready", backend=settings.ledger_backend, redis=bool(settings.redis_url))

    yield

    close_ledger()
    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Micropatrons API",
        description="Ledger API for Micropatrons: transfers, leaderboard and activity feed",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router, prefix=settings.api_prefix)
    app.include_router(activity_router, prefix=settings.api_prefix)
    app.include_router(transfers_router, prefix=settings.api_prefix)

    return app


app = create_app()
