"""Database models for lobbysync."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER PRIMARY KEY columns; tables also set
# sqlite_autoincrement so ids of deleted rows are never handed out again
_BigIntId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Lobby(Base):
    """Database model for lobbies.

    Attributes:
        id: Unique identifier
        code: Short join code (e.g., "AB2K9Z"), always stored upper-cased
        created_at: When the lobby was created
    """

    __tablename__ = "lobbies"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(_BigIntId, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(6), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    # Relationships
    players: Mapped[list["LobbyPlayer"]] = relationship(
        "LobbyPlayer",
        back_populates="lobby",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class LobbyPlayer(Base):
    """Database model for members of a lobby.

    Attributes:
        id: Unique identifier
        lobby_id: Foreign key to the lobby
        fid: Caller-supplied user identifier
        wallet_address: Optional wallet address, overwritten on re-join
        joined_at: When the user first joined
    """

    __tablename__ = "lobby_players"

    id: Mapped[int] = mapped_column(_BigIntId, primary_key=True, autoincrement=True)
    lobby_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("lobbies.id", ondelete="CASCADE"), nullable=False
    )
    fid: Mapped[str] = mapped_column(String(255), nullable=False)
    wallet_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    # Relationships
    lobby: Mapped["Lobby"] = relationship("Lobby", back_populates="players")

    # Constraints
    __table_args__ = (
        UniqueConstraint("lobby_id", "fid", name="uq_lobby_players_lobby_fid"),
        {"sqlite_autoincrement": True},
    )
