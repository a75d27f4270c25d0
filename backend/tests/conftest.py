"""Shared fixtures.

Settings are read at import time, so the environment is prepared before
anything from ``homecare`` is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("USAGE_NOTIFICATIONS_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")

import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from homecare.core.database import Base, get_db
from homecare.modules.usage import models  # noqa: F401  (registers tables)
from homecare.modules.usage.notifications import UsageNotifier, UsageUpdateChannel


class FrozenClock:
    """Clock returning a fixed naive-UTC time until advanced."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class RecordingChannel(UsageUpdateChannel):
    """Keeps every published payload in memory."""

    def __init__(self):
        self.messages: list[tuple[uuid.UUID, dict]] = []

    async def publish(self, user_id: uuid.UUID, payload: dict) -> None:
        self.messages.append((user_id, payload))


class FailingChannel(UsageUpdateChannel):
    async def publish(self, user_id: uuid.UUID, payload: dict) -> None:
        raise ConnectionError("redis unavailable")


def make_engine():
    return create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


async def create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 14, 12, 0, 0))


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def notifier(channel: RecordingChannel) -> UsageNotifier:
    return UsageNotifier(channel)


@pytest_asyncio.fixture
async def engine():
    engine = make_engine()
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_maker, notifier):
    """HTTP client against the app with an in-memory database."""
    from homecare.main import app
    from homecare.modules.admin.service import usage_stats_cache
    from homecare.modules.usage.router import get_usage_notifier

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_usage_notifier] = lambda: notifier
    usage_stats_cache.invalidate()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    usage_stats_cache.invalidate()
