"""
Async SQLAlchemy engine and session factory for the booking stores.

The engine is created lazily from DATABASE_URL (asyncpg on PostgreSQL,
aiosqlite for local runs). Sessions use expire_on_commit=False so records
returned by a store stay readable after its session closes.
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


class Base(DeclarativeBase):
    pass


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        from autobay.config import get_settings
        settings = get_settings()
        kwargs = {"echo": settings.app_env == "development"}
        # SQLite's async pool takes no sizing options
        if not settings.database_url.startswith("sqlite"):
            kwargs["pool_size"] = settings.database_pool_size
            kwargs["max_overflow"] = settings.database_max_overflow
        _engine = create_async_engine(settings.database_url, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide session factory, handed to the SQL store adapters."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            _get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _async_session_factory


def async_session_factory() -> AsyncSession:
    """Open a session for scripts that work on rows directly."""
    return get_session_factory()()


async def dispose_engine() -> None:
    """Close pooled connections. Safe to call when no engine was created."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_factory = None
