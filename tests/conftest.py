"""Shared test fixtures."""

import os
from collections.abc import AsyncIterator

from cryptography.fernet import Fernet

# Settings are read at import time; pin the ones tests depend on first
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ["DAILY_JOB_ENABLED"] = "false"
os.environ.pop("API_KEY", None)

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from axle_server.models import Base  # noqa: E402
from axle_server.providers import HealthSnapshot  # noqa: E402
from axle_server.services.environment import EnvironmentService  # noqa: E402
from tests.fixtures import TODAY  # noqa: E402


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Create async session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def offline_environment() -> EnvironmentService:
    """Environment service whose every request fails (no network in tests)."""
    import httpx

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    return EnvironmentService(transport=httpx.MockTransport(handler))


@pytest.fixture
def good_snapshot() -> HealthSnapshot:
    """A well-recovered day."""
    return HealthSnapshot(
        date=TODAY,
        hrv=55.0,
        resting_hr=52.0,
        sleep_score=88.0,
        sleep_hours=8.0,
        stress=2.0,
        steps=11000.0,
        calories=2400.0,
        recovery_score=90.0,
        wake_time="06:45",
    )
