"""Shared pytest fixtures: settings, mocked collaborators, an API client and a SQLite store."""

import datetime
import uuid
from typing import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shortlink.cache import LinkCache
from shortlink.clicks import ClickRecorder
from shortlink.config import Settings
from shortlink.database import Base
from shortlink.dependencies import get_db
from shortlink.enums import HealthStatus
from shortlink.main import app
from shortlink.models import Account, ShortLink
from shortlink.repository import AccountRepository, LinkRepository

NOW = datetime.datetime(2024, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def settings() -> Settings:
    """Test settings: fast bcrypt, no background reconciliation."""
    return Settings(
        _env_file=None,
        BASE_URL="http://sho.rt",
        BCRYPT_ROUNDS=4,
        CLICK_RECONCILE_INTERVAL_SECONDS=0,
        JWT_SECRET="test-secret",
    )


@pytest.fixture
def mock_logger() -> MagicMock:
    """Mock logger."""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.debug = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    return logger


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Mock Redis client."""
    redis_client = AsyncMock(spec=redis.Redis)
    redis_client.get = AsyncMock(return_value=None)
    redis_client.set = AsyncMock(return_value=True)
    redis_client.mget = AsyncMock(return_value=[])
    redis_client.incr = AsyncMock(return_value=1)
    redis_client.expire = AsyncMock(return_value=True)
    redis_client.delete = AsyncMock(return_value=1)
    redis_client.ping = AsyncMock(return_value=True)
    return redis_client


@pytest.fixture
def mock_cache() -> AsyncMock:
    """Mock LinkCache with an empty cache and permissive rate limits."""
    cache = AsyncMock(spec=LinkCache)
    cache.get_url.return_value = None
    cache.reserve_url.return_value = True
    cache.get_clicks.return_value = 0
    cache.get_clicks_many.side_effect = lambda codes: [0] * len(codes)
    cache.hit_rate_limit.return_value = True
    cache.get_session.return_value = None
    cache.ping.return_value = True
    return cache


@pytest.fixture
def mock_links() -> AsyncMock:
    """Mock LinkRepository with an empty store."""
    links = AsyncMock(spec=LinkRepository)
    links.find_active_for_owner.return_value = None
    links.code_in_use.return_value = False
    links.insert.side_effect = lambda link: link
    links.find_resolvable.return_value = None
    links.get_owned.return_value = None
    links.list_owned.return_value = []
    links.count_owned.return_value = 0
    links.soft_delete.return_value = True
    return links


@pytest.fixture
def mock_accounts() -> AsyncMock:
    accounts = AsyncMock(spec=AccountRepository)
    accounts.exists.return_value = False
    accounts.insert.side_effect = lambda account: account
    accounts.find_by_email.return_value = None
    accounts.get.return_value = None
    return accounts


@pytest.fixture
def mock_clicks() -> MagicMock:
    return MagicMock(spec=ClickRecorder)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def make_link(owner_id) -> Callable[..., ShortLink]:
    """Factory for in-memory ShortLink rows."""

    def _make(short_code: str = "abc12345", long_url: str = "https://example.com", **overrides) -> ShortLink:
        fields = dict(
            id=uuid.uuid4(),
            long_url=long_url,
            short_code=short_code,
            custom_code=None,
            owner_id=owner_id,
            clicks=0,
            is_active=True,
            expires_at=None,
            created_at=NOW,
            updated_at=NOW,
        )
        fields.update(overrides)
        return ShortLink(**fields)

    return _make


@pytest.fixture
def account(owner_id) -> Account:
    return Account(
        id=owner_id,
        username="alice",
        email="alice@example.com",
        password_hash="$2b$04$invalidinvalidinvalidinvalidinvalidinvalidinvalidinva",
        is_active=True,
        created_at=NOW,
        updated_at=NOW,
    )


# ============================================================================
# API CLIENT
# ============================================================================


@pytest.fixture
def resources(settings, mock_cache, mock_clicks, mock_logger) -> MagicMock:
    """Stand-in for AppResources as stored on app.state."""
    fake = MagicMock()
    fake.settings = settings
    fake.cache = mock_cache
    fake.clicks = mock_clicks
    fake.logger = mock_logger
    fake.health = AsyncMock(return_value=(HealthStatus.HEALTHY, HealthStatus.HEALTHY))
    return fake


@pytest_asyncio.fixture(scope="function")
async def client(resources) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield AsyncMock(spec=AsyncSession)

    app.state.resources = resources
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# DATABASE
# ============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the full schema, rebuilt per test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def db_session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(db_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with db_session_factory() as session:
        yield session
