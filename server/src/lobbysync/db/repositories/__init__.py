"""Database repositories."""

from lobbysync.db.repositories.lobbies import LobbyRepository

__all__ = ["LobbyRepository"]
