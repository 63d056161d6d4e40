"""Lobby view API endpoints."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from tcbot.api.deps import Lobby, verify_api_key
from tcbot.lobby.formatting import format_lobby
from tcbot.lobby.registry import Room
from tcbot.schemas import ErrorResponse, LobbyResponse, LobbyStatsResponse, RoomResponse

router = APIRouter(
    prefix="/lobby",
    tags=["Lobby"],
    dependencies=[Depends(verify_api_key)],
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        503: {"model": ErrorResponse, "description": "Lobby observer not running"},
    },
)


def _room_response(room: Room) -> RoomResponse:
    return RoomResponse(
        id=room.id,
        title=room.title,
        started=room.is_started,
        round_index=room.round_index,
        round_count=room.round_count,
        has_password=room.has_password,
        players=[player.name if player else None for player in room.players],
        game_settings=room.game_settings,
    )


@router.get("", response_model=LobbyResponse)
async def get_lobby(lobby: Lobby):
    """Current rooms and population counters."""
    registry = lobby.registry
    stats = registry.stats
    return LobbyResponse(
        connected=lobby.socket.connected,
        stats=LobbyStatsResponse(
            idle=stats.idle,
            waiting=stats.waiting,
            playing=stats.playing,
            auto=stats.auto,
            tables_in_play=stats.tables_in_play,
        ),
        waiting=[_room_response(room) for room in registry.waiting_rooms()],
        playing=[_room_response(room) for room in registry.playing_rooms()],
    )


@router.get("/text", response_class=PlainTextResponse)
async def get_lobby_text(
    lobby: Lobby,
    pattern: str | None = Query(default=None, description="Substring filter on room titles"),
    wait: bool = Query(default=False, description="Show waiting rooms"),
    play: bool = Query(default=False, description="Show playing rooms"),
):
    """The lobby rendered as plain text; both sections unless one is chosen."""
    registry = lobby.registry
    return format_lobby(registry.rooms(), registry.stats, pattern, wait=wait, play=play)
