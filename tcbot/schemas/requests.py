"""API request schemas."""

import re

from pydantic import BaseModel, Field, field_validator


class JoinRequest(BaseModel):
    """Seat bots in a waiting room."""

    room: str = Field(..., min_length=1, description="Regex matched against waiting room titles")
    bot: str | None = Field(default=None, description="Bot name; picks idle bots when omitted")
    password: str | None = Field(default=None, description="Room password")
    num: int = Field(default=1, ge=1, le=4, description="Number of bots to seat")
    delay: float | None = Field(default=None, ge=0, description="Pacing delay in seconds")

    @field_validator("room")
    @classmethod
    def validate_room(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid room pattern: {e}") from e
        return v


class KickRequest(BaseModel):
    """Make bots leave their rooms."""

    names: list[str] = Field(default_factory=list, description="Bot names; all bots when empty")
    force: bool = Field(default=False, description="Also kick bots that are playing")


class DelayRequest(BaseModel):
    """Change the pacing delay."""

    delay: float = Field(..., ge=0, description="Delay in seconds")
    bot: str | None = Field(default=None, description="Bot name; all bots when omitted")


class KillRequest(BaseModel):
    """Force-close bot connections."""

    names: list[str] = Field(default_factory=list, description="Bot names")
    all: bool = Field(default=False, description="Kill every bot")
