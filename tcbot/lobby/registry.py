"""Room registry: a best-effort mirror of the server's lobby.

The server publishes full room lists and a stream of incremental events
(join, exit, dismiss, start, round advance) with no ordering guarantee
relative to the snapshots. The registry applies them in arrival order and
silently ignores events that reference rooms it does not know, since such
races are expected.

The registry has exactly one producer (the lobby connection) and many
readers; readers only ever receive copies.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from tcbot.utils.async_utils import now_ms

logger = logging.getLogger(__name__)

SEAT_COUNT = 4


@dataclass(frozen=True)
class Player:
    """A seated player."""

    name: str
    vip: int = 0


@dataclass(frozen=True)
class Seat:
    """A (room, slot) reference carried by join/exit events."""

    room_id: int
    slot: int
    name: str | None = None
    vip: int = 0

    @classmethod
    def from_packet(cls, data: dict[str, Any]) -> "Seat":
        return cls(
            room_id=data["i"],
            slot=data["s"],
            name=data.get("n"),
            vip=data.get("v") or 0,
        )


@dataclass
class LobbyStats:
    """Lobby population counters, replaced wholesale from server packets."""

    idle: int = 0
    waiting: int = 0
    playing: int = 0
    auto: int = 0

    @classmethod
    def from_packet(cls, data: dict[str, Any]) -> "LobbyStats":
        return cls(
            idle=data.get("f", 0),
            waiting=data.get("w", 0),
            playing=data.get("p", 0),
            auto=data.get("o", 0),
        )

    @property
    def tables_in_play(self) -> float:
        return (self.playing + self.auto) / SEAT_COUNT


@dataclass
class Room:
    """A lobby room. ``players`` always has exactly four slots."""

    id: int
    title: str
    create_time: int | None = None
    finish_time: int | None = None
    round_index: int = 0
    round_count: int = 0
    players: list[Player | None] = field(default_factory=lambda: [None] * SEAT_COUNT)
    has_password: bool = False
    start_time: int | None = None
    game_settings: dict[str, Any] = field(default_factory=dict)

    @property
    def is_started(self) -> bool:
        return self.start_time is not None

    @property
    def is_full(self) -> bool:
        return all(player is not None for player in self.players)

    def first_empty_seat(self) -> int | None:
        for slot, player in enumerate(self.players):
            if player is None:
                return slot
        return None

    @classmethod
    def from_packet(cls, data: dict[str, Any]) -> "Room":
        """Build a room from the server's compact room record.

        ``n`` is the 1-based round number, ``0`` while the room is waiting.
        """
        settings = data.get("g") or {}
        players: list[Player | None] = []
        for entry in data.get("p") or []:
            if entry:
                players.append(Player(name=entry.get("n", ""), vip=entry.get("v") or 0))
            else:
                players.append(None)
        players = (players + [None] * SEAT_COUNT)[:SEAT_COUNT]

        round_number = data.get("n", 0)
        return cls(
            id=data["i"],
            title=settings.get("t", ""),
            create_time=data.get("t"),
            finish_time=data.get("e"),
            round_index=round_number - 1,
            round_count=settings.get("n", 0),
            players=players,
            has_password=bool(data.get("u")),
            start_time=None if round_number == 0 else now_ms(),
            game_settings=settings,
        )

    def snapshot(self) -> "Room":
        """A detached copy safe to hand to readers."""
        return replace(
            self,
            players=list(self.players),
            game_settings=copy.deepcopy(self.game_settings),
        )


class RoomRegistry:
    """Authoritative client-side map of room id to room state."""

    def __init__(self) -> None:
        self._rooms: dict[int, Room] = {}
        self.stats = LobbyStats()

    # =========================================================================
    # Reads
    # =========================================================================

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def get(self, room_id: int) -> Room | None:
        room = self._rooms.get(room_id)
        return room.snapshot() if room else None

    def rooms(self) -> list[Room]:
        return [room.snapshot() for room in self._rooms.values()]

    def waiting_rooms(self) -> list[Room]:
        return [room.snapshot() for room in self._rooms.values() if not room.is_started]

    def playing_rooms(self) -> list[Room]:
        return [room.snapshot() for room in self._rooms.values() if room.is_started]

    def find_player(self, name: str) -> tuple[int, int] | None:
        """Locate a player by name, returning ``(room_id, slot)``."""
        for room in self._rooms.values():
            for slot, player in enumerate(room.players):
                if player is not None and player.name == name:
                    return room.id, slot
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    def clear(self) -> None:
        self._rooms.clear()

    def update_stats(self, data: dict[str, Any]) -> None:
        self.stats = LobbyStats.from_packet(data)

    def apply_snapshot(self, rooms: Iterable[Room | dict[str, Any]]) -> None:
        """Create or wholesale replace rooms from a room list."""
        for entry in rooms:
            room = entry if isinstance(entry, Room) else Room.from_packet(entry)
            self._rooms[room.id] = room
            if room.is_started:
                logger.debug(f"[LOBBY] Play: {room.title}")
            else:
                names = ", ".join(p.name if p else "" for p in room.players)
                logger.debug(f"[LOBBY] Wait: {room.title} {names}")

    def apply_join(self, to_seat: Seat, from_seat: Seat | None = None) -> None:
        """Seat a player, clearing the seat they moved from if given."""
        if from_seat is not None:
            self.apply_exit(from_seat)

        room = self._rooms.get(to_seat.room_id)
        if room is not None and 0 <= to_seat.slot < SEAT_COUNT:
            room.players[to_seat.slot] = Player(name=to_seat.name or "", vip=to_seat.vip)

    def apply_exit(self, seat: Seat) -> None:
        room = self._rooms.get(seat.room_id)
        if room is not None and 0 <= seat.slot < SEAT_COUNT:
            room.players[seat.slot] = None

    def apply_dismiss(self, room_id: int) -> None:
        room = self._rooms.pop(room_id, None)
        if room is not None:
            logger.debug(f"[LOBBY] Dismiss: {room.title}")

    def apply_start(self, room_id: int) -> None:
        """Mark a room started, but only while all four seats are taken."""
        room = self._rooms.get(room_id)
        if room is None:
            return
        if not room.is_full:
            logger.debug(f"[LOBBY] Ignoring start of {room.title}: seats not full")
            return
        room.round_index = 0
        room.start_time = now_ms()
        logger.debug(f"[LOBBY] Start: {room.title}")

    def apply_round_advance(self, room_id: int, index: int) -> None:
        room = self._rooms.get(room_id)
        if room is not None:
            room.round_index = index
