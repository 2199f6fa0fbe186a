"""Database session management."""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from lobbysync.lobby.errors import StoreUnavailable
from lobbysync.settings import get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    """Turn on foreign key enforcement for a new SQLite connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite connections get foreign key enforcement so that member rows
    cascade with their lobby like they do on PostgreSQL.
    """
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, echo=False, **kwargs)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(database_url, echo=False, pool_pre_ping=True, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the application session factory, creating the engine on first use.

    Raises:
        StoreUnavailable: If no database URL is configured
    """
    global _engine, _session_factory
    if _session_factory is None:
        settings = get_settings()
        if not settings.database_configured:
            raise StoreUnavailable("Database is not configured. Check DATABASE_URL.")
        _engine = create_engine(settings.database_url)
        _session_factory = create_session_factory(_engine)
    return _session_factory


def open_session() -> AsyncSession:
    """Open a session on the application engine.

    The engine is resolved on each call, so an unconfigured database only
    fails the operation that needs it.

    Raises:
        StoreUnavailable: If no database URL is configured
    """
    return get_session_factory()()


async def dispose_engine() -> None:
    """Dispose of the application engine and its connection pool."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
