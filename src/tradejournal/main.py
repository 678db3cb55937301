"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tradejournal.config import get_settings
from tradejournal.database import close_db, init_db
from tradejournal.gamification.router import router as gamification_router
from tradejournal.health.router import router as health_router
from tradejournal.middleware import setup_middleware
from tradejournal.partners.router import router as partners_router
from tradejournal.redis_client import close_redis, init_redis


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url, create_tables=settings.environment == "development")
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Trade Journal Gamification API",
        description="Levels, streaks, challenges and accountability partners for the trading journal",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(partners_router)

    return app


app = create_app()
