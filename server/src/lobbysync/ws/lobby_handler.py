"""WebSocket handler for watching a lobby's membership in real time."""

import asyncio
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from lobbysync.lobby.codes import normalize_code
from lobbysync.lobby.errors import LobbyNotFound, LobbyServiceError
from lobbysync.lobby.models import LobbySnapshot
from lobbysync.lobby.service import get_lobby_service
from lobbysync.realtime.watcher import WatcherSession
from lobbysync.ws.protocol import (
    ErrorMessage,
    LobbyStateMessage,
    PongMessage,
    parse_client_message,
)

logger = logging.getLogger(__name__)

# Close codes
CLOSE_LOBBY_NOT_FOUND = 4004
CLOSE_INTERNAL_ERROR = 1011


class LobbyWatcherConnection:
    """Streams one watcher session's snapshots over one WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self._send_lock = asyncio.Lock()

    async def send(self, message: BaseModel) -> None:
        """Send a protocol message (serialized under a lock)."""
        async with self._send_lock:
            await self.websocket.send_text(message.model_dump_json())

    async def send_snapshot(self, snapshot: LobbySnapshot, sequence: int) -> None:
        await self.send(LobbyStateMessage(sequence=sequence, lobby=snapshot.to_dict()))

    async def send_error(self, error: LobbyServiceError) -> None:
        await self.send(ErrorMessage(code=error.code, message=error.message))


async def handle_lobby_websocket(websocket: WebSocket, code: str) -> None:
    """Handle a WebSocket connection watching a lobby.

    Args:
        websocket: The WebSocket connection
        code: The lobby code, in any case
    """
    code = normalize_code(code)
    logger.info(f"Lobby WebSocket connection attempt: code={code}")

    try:
        service = get_lobby_service()
        lobby = await service.resolve_lobby(code)
    except LobbyNotFound:
        logger.warning(f"Lobby WebSocket rejected: lobby {code} not found")
        await websocket.close(code=CLOSE_LOBBY_NOT_FOUND, reason="Lobby not found")
        return
    except LobbyServiceError as e:
        logger.warning(f"Lobby WebSocket rejected for {code}: {e.message}")
        await websocket.close(code=CLOSE_INTERNAL_ERROR, reason=e.code)
        return

    await websocket.accept()
    connection = LobbyWatcherConnection(websocket)
    session = WatcherSession(
        service,
        service.notifier,
        code,
        on_snapshot=connection.send_snapshot,
        on_error=connection.send_error,
    )

    try:
        try:
            await session.open(lobby)
        except LobbyNotFound:
            await websocket.close(code=CLOSE_LOBBY_NOT_FOUND, reason="Lobby not found")
            return
        except LobbyServiceError as e:
            logger.warning(f"Lobby WebSocket for {code} failed to open: {e.message}")
            await websocket.close(code=CLOSE_INTERNAL_ERROR, reason=e.code)
            return

        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            try:
                msg_data = json.loads(data)
            except json.JSONDecodeError:
                await connection.send(ErrorMessage(code="invalid_json", message="Invalid JSON"))
                continue

            if parse_client_message(msg_data) is None:
                await connection.send(
                    ErrorMessage(code="unknown_message", message="Unknown message type")
                )
                continue

            await connection.send(PongMessage())

    except Exception as e:
        logger.exception(f"Error in lobby WebSocket handler for {code}: {e}")
    finally:
        await session.close()
        logger.info(f"Lobby WebSocket for {code} closed")
