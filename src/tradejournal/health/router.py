"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from tradejournal.config import get_settings
from tradejournal.database import get_session
from tradejournal.gamification.catalog import ALL_DAILY_CHALLENGES, ALL_WEEKLY_CHALLENGES
from tradejournal.redis_client import get_redis_or_none

router = APIRouter()


async def _check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


async def _check_redis() -> str:
    client = get_redis_or_none()
    if client is None:
        return "error: not connected"
    try:
        await client.ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe. Notifications still persist without Redis, so a missing
    Redis only degrades the service."""
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
    }
    status = "ready" if all(v == "ok" for v in checks.values()) else "degraded"
    return {
        "status": status,
        "checks": checks,
        "catalog": {"daily": len(ALL_DAILY_CHALLENGES), "weekly": len(ALL_WEEKLY_CHALLENGES)},
    }


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"version": settings.app_version, "environment": settings.environment}
