"""WebSocket protocol message types for lobby watchers."""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ServerMessageType(Enum):
    """Types of messages sent from server to client."""

    LOBBY_STATE = "lobby_state"
    PONG = "pong"
    ERROR = "error"


class ClientMessageType(Enum):
    """Types of messages sent from client to server."""

    PING = "ping"


# Server -> Client Messages


class LobbyStateMessage(BaseModel):
    """Full lobby snapshot, sent initially and after every membership change.

    Clients should replace their copy of the lobby with each message; a
    higher sequence always reflects a later read of the lobby.
    """

    type: str = ServerMessageType.LOBBY_STATE.value
    sequence: int
    lobby: dict[str, Any]


class PongMessage(BaseModel):
    """Response to ping."""

    type: str = ServerMessageType.PONG.value


class ErrorMessage(BaseModel):
    """Error message."""

    type: str = ServerMessageType.ERROR.value
    code: str
    message: str


# Client -> Server Messages


class PingMessage(BaseModel):
    """Keepalive ping."""

    type: str = ClientMessageType.PING.value


def parse_client_message(data: Any) -> PingMessage | None:
    """Parse a client message from JSON data.

    Args:
        data: Parsed JSON data

    Returns:
        Parsed message or None if invalid
    """
    if not isinstance(data, dict):
        return None

    if data.get("type") == ClientMessageType.PING.value:
        return PingMessage()

    return None
