"""Lobby system for lobbysync.

This package provides lobby codes, the lobby and member models, and the
errors raised by lobby operations. The service lives in
``lobbysync.lobby.service``.
"""

from lobbysync.lobby.codes import (
    LOBBY_CODE_ALPHABET,
    LOBBY_CODE_LENGTH,
    generate_lobby_code,
    normalize_code,
)
from lobbysync.lobby.errors import (
    AllocationExhausted,
    ConstraintViolation,
    InvalidRequest,
    LobbyNotFound,
    LobbyServiceError,
    StoreUnavailable,
)
from lobbysync.lobby.models import Lobby, LobbySnapshot, Member

__all__ = [
    "LOBBY_CODE_ALPHABET",
    "LOBBY_CODE_LENGTH",
    "AllocationExhausted",
    "ConstraintViolation",
    "InvalidRequest",
    "Lobby",
    "LobbyNotFound",
    "LobbyServiceError",
    "LobbySnapshot",
    "Member",
    "StoreUnavailable",
    "generate_lobby_code",
    "normalize_code",
]
