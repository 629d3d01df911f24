"""Pytest configuration and fixtures for fixdispatch tests."""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from fixdispatch.config import Settings, clear_settings_cache, get_settings
from fixdispatch.db.models import Base, DispatchItem
from fixdispatch.db.session import get_session
from fixdispatch.dispatch.worker import DispatchWorker
from fixdispatch.main import create_app

ENDPOINT_URL = "https://hooks.example.com/fix-queue/apply"
SIGNING_SECRET = "test-signing-secret"


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite database, fresh for each test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'fixdispatch.db'}"


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    """Create test settings with a configured, signed endpoint."""
    clear_settings_cache()
    return Settings(
        database_url=database_url,
        dispatch_endpoint_url=ENDPOINT_URL,
        dispatch_signing_secret=SIGNING_SECRET,
        instance_id="test-instance",
        scheduler_interval=0.05,
    )


@pytest_asyncio.fixture
async def test_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with fresh tables."""
    engine = create_async_engine(test_settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def test_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def worker(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[DispatchWorker, None]:
    """Dispatch worker wired to the test database."""
    dispatch_worker = DispatchWorker(test_settings, session_factory=session_factory)
    yield dispatch_worker
    await dispatch_worker.stop(timeout=1.0)


@pytest.fixture
def make_due(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable:
    """Move an item's next_attempt_at into the past, as if its backoff elapsed."""

    async def _make_due(item_id) -> None:
        async with session_factory() as session:
            await session.execute(
                update(DispatchItem)
                .where(DispatchItem.id == item_id)
                .values(next_attempt_at=datetime.now(UTC) - timedelta(seconds=1))
            )
            await session.commit()

    return _make_due


@pytest_asyncio.fixture
async def app(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    worker: DispatchWorker,
) -> AsyncGenerator[FastAPI, None]:
    """Create test FastAPI application."""
    application = create_app(test_settings, worker=worker)

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session
            await session.commit()

    application.dependency_overrides[get_session] = override_get_session
    application.dependency_overrides[get_settings] = lambda: test_settings

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
