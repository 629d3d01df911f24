"""Engine and session plumbing for the dispatch queue database.

The engine is built on first use from the current settings and shared by the
API, the dispatch worker and the CLI. Worker code opens short sessions with
``async_session()``; request handlers get a per-request session through
``get_session`` which commits on success.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fixdispatch.config import Settings, get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(settings: Settings) -> dict[str, Any]:
    """Keyword arguments for create_async_engine.

    Pool sizing only applies to server databases; SQLite engines reject it.
    """
    options: dict[str, Any] = {"echo": settings.database_echo}
    if not settings.database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_pool_max_overflow,
            pool_pre_ping=True,
        )
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(settings.database_url, **engine_options(settings))
    return _engine


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        # Items are read after commit when building worker results
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


def async_session() -> AsyncSession:
    """Open a standalone session, e.g. ``async with async_session() as session:``."""
    return get_async_session_factory()()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, rolled back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_engine() -> None:
    """Dispose the pool; the next get_engine() call builds a fresh engine."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
