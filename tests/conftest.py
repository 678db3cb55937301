"""Shared test fixtures.

Integration tests run the full app against an in-memory SQLite database.
Redis is not started; notification pushes are skipped unless a test passes
its own mock client.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("TJ_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TJ_LOG_FORMAT", "console")

from tradejournal.config import get_settings  # noqa: E402
from tradejournal.database import close_db, get_session, init_db  # noqa: E402
from tradejournal.main import create_app  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database with every table created."""
    await init_db(TEST_DATABASE_URL, create_tables=True)
    async for session in get_session():
        yield session
        break
    await close_db()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client over a fresh in-memory database."""
    get_settings.cache_clear()
    app = create_app()
    await init_db(TEST_DATABASE_URL, create_tables=True)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await close_db()


@pytest.fixture
def mock_redis() -> MagicMock:
    """Stand-in Redis client recording publish calls."""
    redis = MagicMock()
    redis.publish = AsyncMock(return_value=1)
    return redis

