"""
Pytest configuration and fixtures for notifier tests.

Provides:
- Async test database with SQLite (one file per test, so concurrent
  sessions really are concurrent)
- A controllable clock
- Service fixtures wired to the test database
- Test client for API testing
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./notifier-test.db")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import NullPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import AppConfig, QueueConfig, Settings, get_config, get_settings
from app.core.database import create_session_factory, get_db
from app.core.errors import SinkDeliveryError
from app.dependencies import get_session_factory
from app.main import app
from app.models import Base
from app.models.user import User
from app.schemas.user import Location, UserCreate
from app.services.events import BirthdayEvent
from app.services.ledger import DeliveryLedger
from app.services.queue import SqlMessageQueue
from app.services.sink import DeliverySink
from app.services.user_store import UserStore


# Override settings for testing
class TestSettings(Settings):
    database_url: str = "sqlite+aiosqlite://"
    debug: bool = True
    scheduler_enabled: bool = False
    delivery_webhook_url: str = "https://hooks.example.com/deliveries"


class FakeClock:
    """Callable clock returning a settable aware UTC instant."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSink(DeliverySink):
    """Sink that records messages, optionally failing every send."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []
        self.attempts = 0

    async def send(self, message: str, event_type: str) -> None:
        self.attempts += 1
        if self.fail:
            raise SinkDeliveryError("Unexpected status code: 500", status_code=500)
        self.sent.append((message, event_type))


def utc(*args: int) -> datetime:
    """Aware UTC datetime shorthand."""
    return datetime(*args, tzinfo=UTC)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create async test database engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(utc(2024, 1, 15, 9, 0, 0))


@pytest.fixture
def test_config() -> AppConfig:
    return AppConfig(settings=TestSettings(), data={})


@pytest.fixture
def kind() -> BirthdayEvent:
    return BirthdayEvent()


@pytest.fixture
def store(session_factory) -> UserStore:
    return UserStore(session_factory)


@pytest.fixture
def ledger(session_factory) -> DeliveryLedger:
    return DeliveryLedger(session_factory)


@pytest.fixture
def queue(session_factory, clock) -> SqlMessageQueue:
    return SqlMessageQueue(session_factory, "test-deliveries", QueueConfig({}), clock=clock)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> RecordingSink:
    """Sink whose endpoint answers 500 to everything."""
    return RecordingSink(fail=True)


@pytest.fixture
def user_factory(store: UserStore):
    """Factory for creating test users."""

    async def _create_user(
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        birthday: str = "1990-01-15",
        timezone: str = "UTC",
    ) -> User:
        return await store.create(
            UserCreate(
                first_name=first_name,
                last_name=last_name,
                birthday=birthday,
                timezone=timezone,
                location=Location(city="London", province="England"),
            )
        )

    return _create_user


@pytest_asyncio.fixture
async def client(session_factory, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database override."""

    async def override_get_db():
        yield db_session

    def override_get_settings():
        return TestSettings()

    def override_get_config():
        return AppConfig(settings=TestSettings(), data={})

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = override_get_settings
    app.dependency_overrides[get_config] = override_get_config

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
