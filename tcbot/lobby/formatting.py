"""Plain-text rendering of the lobby for status replies."""

from __future__ import annotations

from typing import Iterable

from tcbot.lobby.registry import LobbyStats, Room


def format_time_limits(room: Room, limits: bool = False) -> str:
    """Render a room's clock as ``base[/step]+extra[ (limit)]``.

    ``r0`` is the base thinking time, ``r1`` the per-step time, ``e`` the
    extra time and ``l`` the number of 5-second overtime units.
    """
    g = room.game_settings
    base, step, extra = g.get("r0", 0), g.get("r1", 0), g.get("e", 0)
    label = f"{base}"
    if base != step:
        label += f"/{step}"
    if extra or base == step:
        label += f"+{extra}"
    overtime = g.get("l", 0) if limits else 0
    if overtime:
        label += f" ({overtime * 5})"
    return label


def _player_names(room: Room) -> str:
    return ", ".join(player.name if player else "" for player in room.players)


def format_waiting_room(room: Room) -> str:
    lock = "🔒" if room.has_password else ""
    return f"{lock}[{format_time_limits(room)}] {room.title} ({_player_names(room)})"


def format_playing_room(room: Room) -> str:
    return f"[{room.round_index}/{room.round_count}] {room.title} ({_player_names(room)})"


def _matches(room: Room, pattern: str | None) -> bool:
    return not pattern or pattern in room.title


def format_waiting(rooms: Iterable[Room], stats: LobbyStats, pattern: str | None = None) -> str:
    lines = [f"- Waiting[{stats.idle}/{stats.waiting}]:"]
    lines += [format_waiting_room(room) for room in rooms if not room.is_started and _matches(room, pattern)]
    return "\n".join(lines)


def format_playing(rooms: Iterable[Room], stats: LobbyStats, pattern: str | None = None) -> str:
    lines = [f"- Playing[{stats.tables_in_play:g}]:"]
    lines += [format_playing_room(room) for room in rooms if room.is_started and _matches(room, pattern)]
    return "\n".join(lines)


def format_lobby(
    rooms: list[Room],
    stats: LobbyStats,
    pattern: str | None = None,
    *,
    wait: bool = True,
    play: bool = True,
) -> str:
    """Render waiting and/or playing rooms; both sections when neither is chosen."""
    if not wait and not play:
        wait = play = True
    sections = []
    if wait:
        sections.append(format_waiting(rooms, stats, pattern))
    if play:
        sections.append(format_playing(rooms, stats, pattern))
    return "\n".join(sections)
