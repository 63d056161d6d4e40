"""Custom exception classes for bridge errors.

Transport failures never surface as exceptions: sockets recover through the
reconnect schedule and sessions expose failure as status flags. The classes
here cover the frame codec (malformed packets, caught by the socket dispatch
loop) and the admin surface: orchestrator commands and API key checks, both
mapped to HTTP errors by the application.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for bridge errors."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Protocol errors
    MALFORMED_PACKET = "MALFORMED_PACKET"

    # Command errors
    BOT_NOT_FOUND = "BOT_NOT_FOUND"
    NO_AVAILABLE_BOT = "NO_AVAILABLE_BOT"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    MULTIPLE_ROOMS_FOUND = "MULTIPLE_ROOMS_FOUND"
    NO_EMPTY_SEAT = "NO_EMPTY_SEAT"


class BotError(Exception):
    """Base exception for bridge errors.

    Attributes:
        code: Error code for programmatic handling
        message: Human readable error message
        details: Additional error details
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ProtocolError(BotError):
    """Raised when a frame cannot be decoded into a packet."""

    def __init__(self, message: str = "Malformed packet", details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.MALFORMED_PACKET,
            message=message,
            details=details,
        )


class BotNotFoundError(BotError):
    """Raised when a command names a bot that is not configured."""

    def __init__(self, names: list[str]):
        super().__init__(
            code=ErrorCode.BOT_NOT_FOUND,
            message=f"Bot not found: {', '.join(names)}",
            details={"names": names},
        )


class NoAvailableBotError(BotError):
    """Raised when fewer idle bots exist than a join command requested."""

    def __init__(self, requested: int, available: int):
        super().__init__(
            code=ErrorCode.NO_AVAILABLE_BOT,
            message=f"Not enough idle bots: requested {requested}, available {available}",
            details={"requested": requested, "available": available},
        )


class RoomNotFoundError(BotError):
    """Raised when no waiting room title matches a pattern."""

    def __init__(self, pattern: str):
        super().__init__(
            code=ErrorCode.ROOM_NOT_FOUND,
            message=f"No waiting room matches: {pattern}",
            details={"pattern": pattern},
        )


class MultipleRoomsFoundError(BotError):
    """Raised when a room pattern is ambiguous."""

    def __init__(self, pattern: str, room_ids: list[int]):
        super().__init__(
            code=ErrorCode.MULTIPLE_ROOMS_FOUND,
            message=f"Multiple waiting rooms match: {pattern}",
            details={"pattern": pattern, "roomIds": room_ids},
        )


class NoEmptySeatError(BotError):
    """Raised when the matched room has no free seat left."""

    def __init__(self, room_id: int):
        super().__init__(
            code=ErrorCode.NO_EMPTY_SEAT,
            message=f"Room has no empty seat: {room_id}",
            details={"roomId": room_id},
        )
