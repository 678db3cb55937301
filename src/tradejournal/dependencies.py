"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Header, HTTPException, status

from tradejournal.config import Settings, get_settings
from tradejournal.database import get_session as _get_session
from tradejournal.redis_client import get_redis_or_none

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client, or None when Redis is not running."""
    yield get_redis_or_none()


async def get_trader_id(x_trader_id: str | None = Header(default=None)) -> str:
    """Resolve the calling trader from the X-Trader-Id header."""
    if not x_trader_id or not x_trader_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Trader-Id header")
    return x_trader_id.strip()


def get_settings_dep() -> Settings:
    return get_settings()
