"""FastAPI application entry point."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from lobbysync.api.errors import register_exception_handlers
from lobbysync.api.rate_limit import limiter
from lobbysync.api.router import api_router
from lobbysync.db.session import dispose_engine
from lobbysync.lobby.service import get_lobby_service
from lobbysync.settings import get_settings
from lobbysync.ws.lobby_handler import handle_lobby_websocket

VERSION = "0.1.0"

# Third-party loggers and the level they are held at
QUIET_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
    "asyncpg": logging.WARNING,
}


def setup_logging(level: str = "INFO") -> None:
    """Send log records to stdout.

    Args:
        level: Level name for the lobbysync loggers
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    logging.getLogger("lobbysync").setLevel(level.upper())
    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


settings = get_settings()
setup_logging("DEBUG" if settings.dev_mode else settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the change feed on startup, release store connections on shutdown."""
    settings = get_settings()
    logger.info(
        f"Starting lobbysync {VERSION} (dev_mode={settings.dev_mode}, "
        f"change_feed={settings.change_feed})"
    )
    service = get_lobby_service()
    await service.notifier.start()

    yield

    logger.info("Shutting down lobbysync")
    await service.notifier.close()
    await dispose_engine()


app = FastAPI(
    title="lobbysync",
    description="Shareable lobby codes with live membership updates",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)

app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Service name and version."""
    return {"message": "lobbysync API", "version": VERSION}


@app.websocket("/ws/lobby/{code}")
async def lobby_websocket_endpoint(websocket: WebSocket, code: str) -> None:
    """Stream snapshots of one lobby's membership."""
    await handle_lobby_websocket(websocket, code)
