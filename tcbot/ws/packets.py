"""Packet model and frame codec for the game server and agent protocols.

Both protocols exchange JSON objects addressed by an integer method ``m`` and,
for lobby and gameplay methods, an integer route ``r``. Binary frames from the
game server are zlib-compressed JSON.

Incoming objects are classified into a small tagged union so that every
dispatch site handles heartbeats, lobby routes, gameplay routes and unknown
packets explicitly.
"""

from __future__ import annotations

import zlib
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Union

import orjson

from tcbot.utils.errors import ProtocolError
from tcbot.utils.json_utils import json_dumps, json_loads

# zlib or gzip header, auto-detected
_INFLATE_WBITS = zlib.MAX_WBITS | 32


class Method(IntEnum):
    """Top level protocol methods (``m``)."""

    LOBBY = 1
    GAME = 2
    HEARTBEAT = 5


class LobbyRoute(IntEnum):
    """Routes (``r``) of lobby packets (``m=1``)."""

    LOGIN_RESULT = 1
    ROOM_LIST = 2
    ROOM_REFRESH = 3
    JOIN = 4
    EXIT = 5
    READY = 6
    DISMISS = 7
    SEAT_STATUS = 8
    LOGIN = 9
    CHALLENGE = 10
    ROUND = 13


class GameRoute(IntEnum):
    """Gameplay routes (``r``) of ``m=2`` packets the bridge inspects.

    Other gameplay routes are relayed without interpretation.
    """

    ROUND_START = 1
    DISCARD = 2
    DRAW = 6
    DECLINE = 9
    SEAT_ASSIGNED = 14
    ROUND_RESULT = 17


@dataclass(frozen=True)
class HeartbeatPacket:
    """Heartbeat echo carrying the timestamp that was sent."""

    timestamp: int | None
    data: dict[str, Any]


@dataclass(frozen=True)
class LobbyPacket:
    route: LobbyRoute
    data: dict[str, Any]


@dataclass(frozen=True)
class GamePacket:
    route: int | None
    data: dict[str, Any]

    def is_route(self, route: GameRoute) -> bool:
        return self.route == route


@dataclass(frozen=True)
class UnknownPacket:
    data: dict[str, Any]


Packet = Union[HeartbeatPacket, LobbyPacket, GamePacket, UnknownPacket]


def decode_frame(frame: str | bytes | bytearray) -> dict[str, Any]:
    """Decode a WebSocket frame into a packet object.

    Text frames are parsed directly; binary frames are inflated first.

    Raises:
        ProtocolError: If the frame is not a compressed/plain JSON object
    """
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = zlib.decompress(bytes(frame), _INFLATE_WBITS)
        except zlib.error as e:
            raise ProtocolError("Failed to inflate binary frame", {"reason": str(e)}) from e

    try:
        packet = json_loads(frame)
    except orjson.JSONDecodeError as e:
        raise ProtocolError("Frame is not valid JSON", {"reason": str(e)}) from e

    if not isinstance(packet, dict):
        raise ProtocolError(
            "Packet must be a JSON object",
            {"type": type(packet).__name__},
        )
    return packet


def encode_packet(packet: dict[str, Any]) -> str:
    """Encode a packet as a text frame."""
    return json_dumps(packet)


def classify(packet: dict[str, Any]) -> Packet:
    """Classify a decoded packet by its ``(method, route)`` pair."""
    method = packet.get("m")
    route = packet.get("r")

    if method == Method.HEARTBEAT:
        return HeartbeatPacket(timestamp=packet.get("t"), data=packet)

    if method == Method.LOBBY:
        try:
            return LobbyPacket(route=LobbyRoute(route), data=packet)
        except ValueError:
            return UnknownPacket(data=packet)

    if method == Method.GAME:
        return GamePacket(route=route if isinstance(route, int) else None, data=packet)

    return UnknownPacket(data=packet)


# =============================================================================
# Packet builders
# =============================================================================


def heartbeat(timestamp: int) -> dict[str, Any]:
    return {"m": Method.HEARTBEAT.value, "t": timestamp}


def challenge_request() -> dict[str, Any]:
    return {"m": Method.LOBBY.value, "r": LobbyRoute.CHALLENGE.value}


def login(username: str, password: str, question: str, answer: str) -> dict[str, Any]:
    return {
        "m": Method.LOBBY.value,
        "p": password,
        "r": LobbyRoute.LOGIN.value,
        "s": answer,
        "u": username,
        "z": question,
    }


def room_list_request() -> dict[str, Any]:
    return {"m": Method.LOBBY.value, "r": LobbyRoute.ROOM_LIST.value}


def join_room(room_id: int, seat: int, password: str | None = None) -> dict[str, Any]:
    packet: dict[str, Any] = {
        "m": Method.LOBBY.value,
        "r": LobbyRoute.JOIN.value,
        "v": room_id,
        "s": seat,
    }
    if password:
        packet["p"] = password
    return packet


def exit_room() -> dict[str, Any]:
    return {"m": Method.LOBBY.value, "r": LobbyRoute.EXIT.value}


def ready() -> dict[str, Any]:
    return {"m": Method.LOBBY.value, "r": LobbyRoute.READY.value, "v": 1}


def discard(tile: int) -> dict[str, Any]:
    """Discard the given tile (low byte of a draw packet's ``t``)."""
    return {"m": Method.GAME.value, "r": GameRoute.DISCARD.value, "v": tile & 0xFF}


def decline() -> dict[str, Any]:
    """Decline whatever option the server offered."""
    return {"m": Method.GAME.value, "r": GameRoute.DECLINE.value, "v": 0}
