"""Pydantic schemas for the admin API."""

from tcbot.schemas.requests import (
    DelayRequest,
    JoinRequest,
    KickRequest,
    KillRequest,
)
from tcbot.schemas.responses import (
    BotListResponse,
    BotStatusResponse,
    CommandResponse,
    ErrorDetail,
    ErrorResponse,
    JoinOutcomeResponse,
    JoinResponse,
    LobbyResponse,
    LobbyStatsResponse,
    RoomResponse,
)

__all__ = [
    "BotListResponse",
    "BotStatusResponse",
    "CommandResponse",
    "DelayRequest",
    "ErrorDetail",
    "ErrorResponse",
    "JoinOutcomeResponse",
    "JoinRequest",
    "JoinResponse",
    "KickRequest",
    "KillRequest",
    "LobbyResponse",
    "LobbyStatsResponse",
    "RoomResponse",
]
