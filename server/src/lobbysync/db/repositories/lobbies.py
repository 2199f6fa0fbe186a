"""Lobby repository for database operations."""

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from lobbysync.db.errors import DuplicateCodeError, is_unique_violation
from lobbysync.db.models import Lobby as LobbyModel
from lobbysync.db.models import LobbyPlayer as LobbyPlayerModel
from lobbysync.lobby.models import Lobby, LobbySnapshot, Member

logger = logging.getLogger(__name__)

# Dialects whose INSERT supports ON CONFLICT DO UPDATE
_UPSERT_INSERTS: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class LobbyRepository:
    """Repository for lobbies and their members.

    The repository never commits; callers own the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: The database session to use
        """
        self.session = session

    async def insert_lobby(self, code: str) -> Lobby:
        """Insert a new lobby with the given code.

        Args:
            code: Canonical lobby code

        Returns:
            The created Lobby

        Raises:
            DuplicateCodeError: If another lobby already has this code
        """
        insert = self._dialect_insert()
        stmt = (
            insert(LobbyModel)
            .values(code=code)
            .returning(LobbyModel.id, LobbyModel.code, LobbyModel.created_at)
        )
        try:
            result = await self.session.execute(stmt)
        except IntegrityError as e:
            if is_unique_violation(e):
                raise DuplicateCodeError(code) from e
            raise

        row = result.one()
        logger.debug(f"Inserted lobby {row.code} (id={row.id})")
        return Lobby(id=row.id, code=row.code, created_at=row.created_at)

    async def upsert_member(
        self,
        lobby_id: int,
        user_id: str,
        wallet_address: str | None,
    ) -> Member:
        """Insert a member, or refresh its wallet address if already present.

        On conflict with an existing (lobby_id, fid) row only wallet_address
        is updated; joined_at keeps the time of the first join.

        Args:
            lobby_id: The lobby ID
            user_id: The member's user identifier
            wallet_address: Optional wallet address

        Returns:
            The member as stored after the upsert
        """
        insert = self._dialect_insert()
        stmt = insert(LobbyPlayerModel).values(
            lobby_id=lobby_id,
            fid=user_id,
            wallet_address=wallet_address,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[LobbyPlayerModel.lobby_id, LobbyPlayerModel.fid],
            set_={"wallet_address": stmt.excluded.wallet_address},
        ).returning(
            LobbyPlayerModel.id,
            LobbyPlayerModel.lobby_id,
            LobbyPlayerModel.fid,
            LobbyPlayerModel.wallet_address,
            LobbyPlayerModel.joined_at,
        )

        result = await self.session.execute(stmt)
        row = result.one()
        return Member(
            id=row.id,
            lobby_id=row.lobby_id,
            user_id=row.fid,
            wallet_address=row.wallet_address,
            joined_at=row.joined_at,
        )

    async def delete_member(self, lobby_id: int, user_id: str) -> bool:
        """Delete a member row.

        Args:
            lobby_id: The lobby ID
            user_id: The member's user identifier

        Returns:
            True if a row was deleted, False if there was none
        """
        result = await self.session.execute(
            delete(LobbyPlayerModel)
            .where(LobbyPlayerModel.lobby_id == lobby_id)
            .where(LobbyPlayerModel.fid == user_id)
        )
        return result.rowcount > 0

    async def get_by_code(self, code: str) -> Lobby | None:
        """Get a lobby (without members) by code.

        Args:
            code: Canonical lobby code

        Returns:
            Lobby or None if not found
        """
        result = await self.session.execute(
            select(LobbyModel.id, LobbyModel.code, LobbyModel.created_at).where(
                LobbyModel.code == code
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return Lobby(id=row.id, code=row.code, created_at=row.created_at)

    async def get_snapshot(self, code: str) -> LobbySnapshot | None:
        """Get a lobby together with all of its current members.

        Args:
            code: Canonical lobby code

        Returns:
            LobbySnapshot with members oldest first, or None if not found
        """
        result = await self.session.execute(
            select(LobbyModel)
            .where(LobbyModel.code == code)
            .options(selectinload(LobbyModel.players))
        )
        record = result.scalar_one_or_none()

        if record is None:
            return None

        return self._model_to_snapshot(record)

    async def delete(self, lobby_id: int) -> bool:
        """Delete a lobby and, by cascade, its members.

        Args:
            lobby_id: The lobby ID

        Returns:
            True if deleted, False if not found
        """
        result = await self.session.execute(
            select(LobbyModel)
            .where(LobbyModel.id == lobby_id)
            .options(selectinload(LobbyModel.players))
        )
        record = result.scalar_one_or_none()

        if record is None:
            return False

        await self.session.delete(record)
        await self.session.flush()

        logger.info(f"Deleted lobby {record.code} from database")
        return True

    def _dialect_insert(self) -> Callable[..., Any]:
        """Get the INSERT construct for the session's dialect."""
        dialect = self.session.get_bind().dialect.name
        try:
            return _UPSERT_INSERTS[dialect]
        except KeyError:
            raise NotImplementedError(f"Upserts are not supported on {dialect}") from None

    def _model_to_snapshot(self, record: LobbyModel) -> LobbySnapshot:
        """Convert a database record to a LobbySnapshot.

        Args:
            record: The lobby record with players loaded

        Returns:
            LobbySnapshot domain object
        """
        players = sorted(record.players, key=lambda p: (p.joined_at, p.id))
        members = tuple(
            Member(
                id=p.id,
                lobby_id=p.lobby_id,
                user_id=p.fid,
                wallet_address=p.wallet_address,
                joined_at=p.joined_at,
            )
            for p in players
        )
        lobby = Lobby(id=record.id, code=record.code, created_at=record.created_at)
        return LobbySnapshot(lobby=lobby, members=members)
