"""Database layer."""

from lobbysync.db.models import Base, Lobby, LobbyPlayer
from lobbysync.db.repositories import LobbyRepository
from lobbysync.db.session import create_engine, create_session_factory, get_session_factory

__all__ = [
    "Base",
    "Lobby",
    "LobbyPlayer",
    "LobbyRepository",
    "create_engine",
    "create_session_factory",
    "get_session_factory",
]
