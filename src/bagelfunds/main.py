"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from bagelfunds.auth.router import router as auth_router
from bagelfunds.config import get_settings
from bagelfunds.cycles.router import router as cycles_router
from bagelfunds.database import close_db, init_db
from bagelfunds.health.router import router as health_router
from bagelfunds.invites.router import router as invites_router
from bagelfunds.middleware import setup_middleware
from bagelfunds.payouts.router import router as payouts_router
from bagelfunds.redis_client import close_redis, init_redis
from bagelfunds.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database and Redis pools on startup, dispose of them on shutdown."""
    settings = get_settings()
    await init_db(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    await init_redis(settings.redis_url)
    logger.info("app_started", environment=settings.environment, version=settings.app_version)

    yield

    await close_db()
    await close_redis()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Bagel Funds",
        description="Rotating savings circles: host a cycle, invite friends, pay in, draw winners",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(cycles_router)
    app.include_router(invites_router)
    app.include_router(payouts_router)

    return app


app = create_app()
