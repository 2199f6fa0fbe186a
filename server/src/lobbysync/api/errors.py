"""Mapping of lobby errors to HTTP responses."""

import logging
from typing import TYPE_CHECKING

from fastapi import Request
from fastapi.responses import JSONResponse

from lobbysync.lobby.errors import LobbyServiceError

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


async def lobby_error_handler(request: Request, exc: LobbyServiceError) -> JSONResponse:
    """Return a lobby error as {"error": code, "message": message}."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
    )


def register_exception_handlers(app: "FastAPI") -> None:
    """Register the lobby error handler with a FastAPI app."""
    app.add_exception_handler(LobbyServiceError, lobby_error_handler)
