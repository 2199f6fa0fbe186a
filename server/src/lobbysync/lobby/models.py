"""Domain models for lobbies and their members."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Member:
    """One user's membership in a lobby.

    Attributes:
        id: Unique identifier assigned by the store
        lobby_id: The lobby this membership belongs to
        user_id: Caller-supplied user identifier (wallet address or platform id)
        wallet_address: Optional wallet address for display
        joined_at: When the user first joined (not refreshed on re-join)
    """

    id: int
    lobby_id: int
    user_id: str
    wallet_address: str | None
    joined_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dict."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "walletAddress": self.wallet_address,
            "joinedAt": self.joined_at.isoformat(),
        }


@dataclass(frozen=True)
class Lobby:
    """A lobby identified by a short shareable code.

    Attributes:
        id: Unique identifier assigned by the store
        code: Canonical (upper-case) join code
        created_at: When the lobby was created
    """

    id: int
    code: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dict."""
        return {
            "id": self.id,
            "code": self.code,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class LobbySnapshot:
    """A lobby and its members as of one fetch, oldest member first."""

    lobby: Lobby
    members: tuple[Member, ...] = field(default_factory=tuple)

    @property
    def user_ids(self) -> list[str]:
        return [m.user_id for m in self.members]

    def has_member(self, user_id: str) -> bool:
        return any(m.user_id == user_id for m in self.members)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dict."""
        data = self.lobby.to_dict()
        data["members"] = [m.to_dict() for m in self.members]
        return data
