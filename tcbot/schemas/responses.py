"""API response schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Error detail structure."""

    code: str = Field(..., description="Error code (e.g., ROOM_NOT_FOUND)")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional error details")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    model_config = ConfigDict(populate_by_name=True)

    error: ErrorDetail
    trace_id: str = Field(..., alias="traceId", description="Request tracing ID")


# =============================================================================
# Bots
# =============================================================================


class BotStatusResponse(BaseModel):
    """Status of a single bot."""

    name: str
    username: str
    status: str
    state: str
    ready: bool
    killed: bool
    closed: bool
    delay: float
    room_id: int | None = None
    seat: int | None = None
    server: str
    agent: str
    pending_trace: int


class BotListResponse(BaseModel):
    """Orchestrator status."""

    running: bool
    total_count: int
    state_counts: dict[str, int]
    bots: list[BotStatusResponse]


class JoinOutcomeResponse(BaseModel):
    bot: str
    room_id: int
    room_title: str
    seat: int
    success: bool


class JoinResponse(BaseModel):
    success: bool
    outcomes: list[JoinOutcomeResponse]


class CommandResponse(BaseModel):
    """Generic result of a bot command."""

    success: bool = True
    bots: list[str] = Field(default_factory=list, description="Bots the command applied to")


# =============================================================================
# Lobby
# =============================================================================


class LobbyStatsResponse(BaseModel):
    idle: int
    waiting: int
    playing: int
    auto: int
    tables_in_play: float


class RoomResponse(BaseModel):
    id: int
    title: str
    started: bool
    round_index: int
    round_count: int
    has_password: bool
    players: list[str | None]
    game_settings: dict[str, Any] = Field(default_factory=dict)


class LobbyResponse(BaseModel):
    connected: bool
    stats: LobbyStatsResponse
    waiting: list[RoomResponse]
    playing: list[RoomResponse]
