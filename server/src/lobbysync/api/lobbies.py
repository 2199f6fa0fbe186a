"""Lobby API endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from lobbysync.api.rate_limit import create_lobby_rate_limit, join_lobby_rate_limit
from lobbysync.lobby.models import Lobby, LobbySnapshot
from lobbysync.lobby.service import get_lobby_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lobbies", tags=["lobbies"])


class CreateLobbyRequest(BaseModel):
    """Request body for creating a lobby."""

    owner_user_id: str | None = Field(default=None, alias="ownerUserId")
    owner_wallet: str | None = Field(default=None, alias="ownerWallet")

    model_config = {"populate_by_name": True}


class JoinLobbyRequest(BaseModel):
    """Request body for joining a lobby."""

    user_id: str = Field(alias="userId")
    wallet_address: str | None = Field(default=None, alias="walletAddress")

    model_config = {"populate_by_name": True}


class LeaveLobbyRequest(BaseModel):
    """Request body for leaving a lobby."""

    user_id: str = Field(alias="userId")

    model_config = {"populate_by_name": True}


class LobbyResponse(BaseModel):
    """A lobby without its members."""

    id: int
    code: str
    created_at: datetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_lobby(cls, lobby: Lobby) -> "LobbyResponse":
        return cls(id=lobby.id, code=lobby.code, created_at=lobby.created_at)


class MemberResponse(BaseModel):
    """One member of a lobby."""

    id: int
    user_id: str = Field(alias="userId")
    wallet_address: str | None = Field(alias="walletAddress")
    joined_at: datetime = Field(alias="joinedAt")

    model_config = {"populate_by_name": True}


class LobbySnapshotResponse(LobbyResponse):
    """A lobby with its members, oldest first."""

    members: list[MemberResponse]

    @classmethod
    def from_snapshot(cls, snapshot: LobbySnapshot) -> "LobbySnapshotResponse":
        return cls(
            id=snapshot.lobby.id,
            code=snapshot.lobby.code,
            created_at=snapshot.lobby.created_at,
            members=[
                MemberResponse(
                    id=m.id,
                    user_id=m.user_id,
                    wallet_address=m.wallet_address,
                    joined_at=m.joined_at,
                )
                for m in snapshot.members
            ],
        )


@router.post(
    "",
    response_model=LobbyResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(create_lobby_rate_limit)],
)
async def create_lobby(request: CreateLobbyRequest) -> LobbyResponse:
    """Create a new lobby.

    If an owner is given, they become the first member.
    """
    service = get_lobby_service()

    lobby = await service.create_lobby(
        owner_user_id=request.owner_user_id,
        owner_wallet=request.owner_wallet,
    )

    logger.info(f"Lobby {lobby.code} created via API")
    return LobbyResponse.from_lobby(lobby)


@router.get("/{code}", response_model=LobbySnapshotResponse)
async def get_lobby(code: str) -> LobbySnapshotResponse:
    """Get a lobby and its members by code."""
    service = get_lobby_service()

    snapshot = await service.fetch_lobby(code)
    return LobbySnapshotResponse.from_snapshot(snapshot)


@router.post(
    "/{code}/join",
    response_model=LobbyResponse,
    dependencies=[Depends(join_lobby_rate_limit)],
)
async def join_lobby(code: str, request: JoinLobbyRequest) -> LobbyResponse:
    """Join an existing lobby.

    Joining a lobby you are already in succeeds and updates your wallet address.
    """
    service = get_lobby_service()

    lobby = await service.join_lobby(
        code=code,
        user_id=request.user_id,
        wallet_address=request.wallet_address,
    )

    return LobbyResponse.from_lobby(lobby)


@router.post("/{lobby_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_lobby(lobby_id: int, request: LeaveLobbyRequest) -> Response:
    """Leave a lobby. Leaving a lobby you are not in also succeeds."""
    service = get_lobby_service()

    await service.leave_lobby(lobby_id=lobby_id, user_id=request.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
