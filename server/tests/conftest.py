"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

# Disable rate limiting and point the app at a throwaway SQLite database
os.environ["RATE_LIMITING_ENABLED"] = "false"
os.environ["CHANGE_FEED"] = "local"
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{Path(tempfile.mkdtemp()) / 'lobbysync.db'}"
)

# Clear the settings cache to pick up the new environment variables
from lobbysync.settings import get_settings

get_settings.cache_clear()

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import create_engine as create_sync_engine  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from lobbysync.db.models import Base  # noqa: E402
from lobbysync.db.session import create_engine, create_session_factory  # noqa: E402
from lobbysync.lobby.service import (  # noqa: E402
    LobbyService,
    init_lobby_service,
    reset_lobby_service,
)
from lobbysync.main import app  # noqa: E402
from lobbysync.realtime.notifier import LocalChangeNotifier  # noqa: E402


def make_database(directory: Path) -> str:
    """Create an SQLite database with all tables and return its async URL.

    Tables are created with the synchronous driver so no event loop is needed.
    """
    path = directory / "lobbysync.db"
    engine = create_sync_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """A fresh SQLite database for each test."""
    return make_database(tmp_path)


@pytest.fixture
def session_factory(database_url: str) -> async_sessionmaker[AsyncSession]:
    """Session factory for the test database.

    NullPool opens a new connection per session, so the factory can be used
    from any event loop (including the TestClient's).
    """
    engine = create_engine(database_url, poolclass=NullPool)
    return create_session_factory(engine)


@pytest.fixture
def notifier() -> LocalChangeNotifier:
    """In-process change notifier."""
    return LocalChangeNotifier()


@pytest.fixture
def lobby_service(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: LocalChangeNotifier,
) -> LobbyService:
    """Lobby service backed by the test database."""
    return LobbyService(session_factory=session_factory, notifier=notifier)


@pytest.fixture
def app_service(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: LocalChangeNotifier,
) -> Generator[LobbyService, None, None]:
    """Install a lobby service for the app, reset afterwards."""
    service = init_lobby_service(session_factory=session_factory, notifier=notifier)
    yield service
    reset_lobby_service()


@pytest.fixture
async def client(app_service: LobbyService) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
