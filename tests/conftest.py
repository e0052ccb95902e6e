import json
import os
from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from coach_assignment.clients.auth_client import AuthClient
from coach_assignment.config import settings
from coach_assignment.core.redis_client import CacheManager, RateLimiter
from coach_assignment.database import get_db
from coach_assignment.dependencies import (
    get_auth_client,
    get_cache_manager,
    get_calendar_client,
    get_crm_client,
    get_rate_limiter,
)
from coach_assignment.main import app
from coach_assignment.models import metadata
from tests.fakes import InMemoryRedis

# Integration tests run only against an explicitly configured database
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

if TEST_DATABASE_URL and TEST_DATABASE_URL == settings.database_url:
    raise RuntimeError("TEST_DATABASE_URL must not point at the application database")

if TEST_DATABASE_URL and not TEST_DATABASE_URL.startswith("postgresql+asyncpg://"):
    TEST_DATABASE_URL = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

VALID_KEY_BODY = {
    "valid": True,
    "key_type": "production",
    "permissions": {"read": True, "write": True, "delete": False},
    "rate_limit": {"limit": 100, "remaining": 99, "reset": "2026-01-01T00:00:00Z"},
}


def _mock_http(handler: Callable[[httpx.Request], httpx.Response], base_url: str = "http://downstream"):
    """httpx client whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url)


@pytest.fixture
def cache_redis() -> InMemoryRedis:
    """Backing store for the cache manager."""
    return InMemoryRedis()


@pytest.fixture
def limiter_redis() -> MagicMock:
    """Redis double for the rate limiter; first request of the window by default."""
    redis = MagicMock()
    redis.get.return_value = None
    return redis


@pytest.fixture
def auth_handler() -> dict:
    """Mutable auth service behaviour: set ``response`` or ``error``."""
    return {"response": httpx.Response(200, json=VALID_KEY_BODY), "error": None, "calls": 0}


@pytest.fixture
def db_double() -> AsyncMock:
    """Session double for endpoint tests that must not reach the database."""
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def calendar_double() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def crm_double() -> AsyncMock:
    return AsyncMock()


@pytest_asyncio.fixture
async def client(
    cache_redis: InMemoryRedis,
    limiter_redis: MagicMock,
    auth_handler: dict,
    db_double: AsyncMock,
    calendar_double: AsyncMock,
    crm_double: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client with every backing service replaced."""

    def handle_auth(request: httpx.Request) -> httpx.Response:
        auth_handler["calls"] += 1
        if auth_handler["error"] is not None:
            raise auth_handler["error"]
        return auth_handler["response"]

    async def override_get_auth_client() -> AsyncGenerator[AuthClient, None]:
        async with _mock_http(handle_auth) as http:
            yield AuthClient(http)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_double

    app.dependency_overrides[get_auth_client] = override_get_auth_client
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: CacheManager(cache_redis)
    app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(limiter_redis)
    app.dependency_overrides[get_calendar_client] = lambda: calendar_double
    app.dependency_overrides[get_crm_client] = lambda: crm_double

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def api_headers() -> dict:
    return {"X-API-Key": "test-key"}


@pytest.fixture
def stored(cache_redis: InMemoryRedis) -> Callable[[str], dict | None]:
    """Read back a JSON value written through the cache manager."""

    def read(key: str) -> dict | None:
        raw = cache_redis.data.get(key)
        return json.loads(raw) if raw is not None else None

    return read


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a freshly created schema in the test database."""
    if not TEST_DATABASE_URL:
        pytest.skip("TEST_DATABASE_URL is not set")

    # NullPool avoids sharing connections across event loops
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session

