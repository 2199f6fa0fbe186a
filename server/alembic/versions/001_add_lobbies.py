"""Add lobbies and lobby_players tables.

Revision ID: 001_add_lobbies
Revises:
Create Date: 2026-10-18

Also installs the trigger that reports lobby_players changes with
pg_notify (see lobbysync.db.triggers).
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op
from lobbysync.db.triggers import INSTALL_STATEMENTS, UNINSTALL_STATEMENTS

# revision identifiers, used by Alembic.
revision: str = "001_add_lobbies"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create lobbies and lobby_players tables with the change trigger."""
    op.create_table(
        "lobbies",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=6), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_lobbies_code", "lobbies", ["code"], unique=True)

    op.create_table(
        "lobby_players",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("lobby_id", sa.BigInteger(), nullable=False),
        sa.Column("fid", sa.String(length=255), nullable=False),
        sa.Column("wallet_address", sa.String(length=255), nullable=True),
        sa.Column(
            "joined_at", sa.DateTime(), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(["lobby_id"], ["lobbies.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lobby_id", "fid", name="uq_lobby_players_lobby_fid"),
    )

    for statement in INSTALL_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    """Drop the change trigger and both tables."""
    for statement in UNINSTALL_STATEMENTS:
        op.execute(statement)
    op.drop_table("lobby_players")
    op.drop_index("ix_lobbies_code", "lobbies")
    op.drop_table("lobbies")
