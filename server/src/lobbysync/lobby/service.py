"""Lobby service: create, join, leave and fetch lobbies.

The service composes code generation with the lobby repository, scopes each
operation to one transaction, translates store failures into lobby errors
and reports committed membership changes to the change notifier.

There is no application-level locking. Concurrent creates and joins are
kept consistent by the unique constraints on lobbies.code and
lobby_players(lobby_id, fid).
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError

from lobbysync.db.errors import DuplicateCodeError
from lobbysync.db.repositories.lobbies import LobbyRepository
from lobbysync.lobby.codes import generate_lobby_code, is_valid_code, normalize_code
from lobbysync.lobby.errors import (
    AllocationExhausted,
    ConstraintViolation,
    InvalidRequest,
    LobbyNotFound,
    LobbyServiceError,
    StoreUnavailable,
)
from lobbysync.lobby.models import Lobby, LobbySnapshot
from lobbysync.realtime.notifier import ChangeNotifier, LocalChangeNotifier, MembershipEvent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_CODE_ATTEMPTS = 5
MAX_USER_ID_LENGTH = 255


class LobbyService:
    """Creates lobbies and manages their membership."""

    def __init__(
        self,
        session_factory: Callable[[], "AsyncSession"],
        notifier: ChangeNotifier | None = None,
        code_attempts: int = DEFAULT_CODE_ATTEMPTS,
        code_generator: Callable[[], str] = generate_lobby_code,
    ) -> None:
        """Initialize the lobby service.

        Args:
            session_factory: Opens an async session on the store
            notifier: Change notifier told about membership mutations
            code_attempts: How many codes to try before giving up on create
            code_generator: Source of candidate lobby codes
        """
        self._session_factory = session_factory
        self.notifier = notifier if notifier is not None else LocalChangeNotifier()
        self.code_attempts = code_attempts
        self._generate_code = code_generator

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[LobbyRepository]:
        """Run a block in one transaction, translating store errors."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield LobbyRepository(session)
        except (LobbyServiceError, DuplicateCodeError):
            raise
        except IntegrityError as e:
            raise ConstraintViolation(str(e.orig)) from e
        except (OperationalError, InterfaceError, OSError) as e:
            raise StoreUnavailable(f"Lobby store is unavailable: {e}") from e
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Lobby store error: {e}") from e

    async def create_lobby(
        self,
        owner_user_id: str | None = None,
        owner_wallet: str | None = None,
    ) -> Lobby:
        """Create a lobby with a fresh unique code.

        Args:
            owner_user_id: If given, the owner is added as the first member
            owner_wallet: Optional wallet address for the owner

        Returns:
            The created Lobby

        Raises:
            AllocationExhausted: If every candidate code collided
        """
        if owner_user_id:
            owner_user_id = _check_user_id(owner_user_id)

        for attempt in range(1, self.code_attempts + 1):
            code = normalize_code(self._generate_code())
            try:
                async with self._transaction() as repository:
                    lobby = await repository.insert_lobby(code)
                    if owner_user_id:
                        await repository.upsert_member(lobby.id, owner_user_id, owner_wallet)
            except DuplicateCodeError:
                logger.debug(f"Lobby code {code} collided (attempt {attempt}/{self.code_attempts})")
                continue

            logger.info(f"Created lobby {lobby.code} (id={lobby.id})")
            if owner_user_id:
                self.notifier.publish(MembershipEvent(lobby_id=lobby.id, kind="insert"))
            return lobby

        logger.warning(f"Gave up allocating a lobby code after {self.code_attempts} attempts")
        raise AllocationExhausted(self.code_attempts)

    async def join_lobby(
        self,
        code: str,
        user_id: str,
        wallet_address: str | None = None,
    ) -> Lobby:
        """Join a lobby by code. Joining again only refreshes the wallet address.

        Args:
            code: Lobby code in any case, surrounding whitespace allowed
            user_id: The joining user's identifier
            wallet_address: Optional wallet address

        Returns:
            The joined Lobby (without members)

        Raises:
            LobbyNotFound: If no lobby has this code
        """
        user_id = _check_user_id(user_id)
        code = normalize_code(code)
        if not is_valid_code(code):
            raise LobbyNotFound(code)

        async with self._transaction() as repository:
            lobby = await repository.get_by_code(code)
            if lobby is None:
                raise LobbyNotFound(code)
            await repository.upsert_member(lobby.id, user_id, wallet_address)

        logger.info(f"User {user_id} joined lobby {lobby.code}")
        self.notifier.publish(MembershipEvent(lobby_id=lobby.id, kind="upsert"))
        return lobby

    async def leave_lobby(self, lobby_id: int, user_id: str) -> None:
        """Remove a user from a lobby. Leaving when not a member is not an error.

        Args:
            lobby_id: The lobby ID
            user_id: The leaving user's identifier
        """
        user_id = _check_user_id(user_id)

        async with self._transaction() as repository:
            removed = await repository.delete_member(lobby_id, user_id)

        if removed:
            logger.info(f"User {user_id} left lobby {lobby_id}")
            self.notifier.publish(MembershipEvent(lobby_id=lobby_id, kind="delete"))
        else:
            logger.debug(f"User {user_id} was not in lobby {lobby_id}, nothing to leave")

    async def fetch_lobby(self, code: str) -> LobbySnapshot:
        """Fetch a lobby and all of its current members.

        Args:
            code: Lobby code in any case, surrounding whitespace allowed

        Returns:
            LobbySnapshot with members ordered oldest first

        Raises:
            LobbyNotFound: If no lobby has this code
        """
        code = normalize_code(code)
        if not is_valid_code(code):
            raise LobbyNotFound(code)

        async with self._transaction() as repository:
            snapshot = await repository.get_snapshot(code)

        if snapshot is None:
            raise LobbyNotFound(code)
        return snapshot

    async def resolve_lobby(self, code: str) -> Lobby:
        """Look up a lobby by code without its members.

        Raises:
            LobbyNotFound: If no lobby has this code
        """
        code = normalize_code(code)
        if not is_valid_code(code):
            raise LobbyNotFound(code)

        async with self._transaction() as repository:
            lobby = await repository.get_by_code(code)

        if lobby is None:
            raise LobbyNotFound(code)
        return lobby


def _check_user_id(user_id: str) -> str:
    """Validate a caller-supplied user identifier."""
    if not user_id.strip():
        raise InvalidRequest("User id is required")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise InvalidRequest(f"User id must be at most {MAX_USER_ID_LENGTH} characters")
    return user_id


# Global singleton instance
_lobby_service: LobbyService | None = None


def get_lobby_service() -> LobbyService:
    """Get the global lobby service, building it from settings on first use.

    The store is not touched here. Without a database URL every store
    operation raises StoreUnavailable.
    """
    global _lobby_service
    if _lobby_service is None:
        from lobbysync.db.session import open_session
        from lobbysync.realtime.notifier import build_notifier
        from lobbysync.settings import get_settings

        settings = get_settings()
        _lobby_service = LobbyService(
            session_factory=open_session,
            notifier=build_notifier(settings),
            code_attempts=settings.lobby_code_attempts,
        )
    return _lobby_service


def init_lobby_service(
    session_factory: "async_sessionmaker[AsyncSession]",
    notifier: ChangeNotifier | None = None,
    code_attempts: int = DEFAULT_CODE_ATTEMPTS,
) -> LobbyService:
    """Initialize the global lobby service.

    Args:
        session_factory: SQLAlchemy async session factory for the store
        notifier: Change notifier (in-process if not provided)
        code_attempts: How many codes to try before giving up on create

    Returns:
        The initialized LobbyService instance.
    """
    global _lobby_service
    _lobby_service = LobbyService(
        session_factory=session_factory,
        notifier=notifier,
        code_attempts=code_attempts,
    )
    return _lobby_service


def reset_lobby_service() -> None:
    """Reset the global lobby service. Used for testing."""
    global _lobby_service
    _lobby_service = None
