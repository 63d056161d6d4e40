"""Bot Orchestrator - command surface over all configured bot sessions.

Owns one BotSession per enabled bot account and the shared RoomRegistry,
and implements the operator commands:
- join: seat idle bots in a waiting room matched by title
- kick: make bots leave their rooms
- delay / reset / kill / flush: per-bot pacing and recovery
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tcbot.bot.session import BotSession, BotStatus, DisplayStatus
from tcbot.config import Settings, get_settings
from tcbot.lobby.registry import Room, RoomRegistry
from tcbot.utils.errors import (
    BotError,
    BotNotFoundError,
    ErrorCode,
    MultipleRoomsFoundError,
    NoAvailableBotError,
    NoEmptySeatError,
    RoomNotFoundError,
)
from tcbot.ws.connection import Connector

logger = logging.getLogger(__name__)

# Singleton instance
_orchestrator: Optional["BotOrchestrator"] = None


@dataclass(frozen=True)
class JoinOutcome:
    """Result of one bot's join attempt."""

    bot: str
    room_id: int
    room_title: str
    seat: int
    success: bool


class BotOrchestrator:
    """Manages all bot sessions in the process.

    Features:
    - One session per enabled bot account
    - Room lookup against the shared lobby registry
    - Operator commands that never touch session internals directly
    """

    def __init__(
        self,
        settings: Settings | None = None,
        registry: RoomRegistry | None = None,
        *,
        connector: Connector | None = None,
        agent_connector: Connector | None = None,
    ):
        self._settings = settings or get_settings()
        self.registry = registry or RoomRegistry()
        self._sessions: dict[str, BotSession] = {
            bot.name: BotSession(
                bot,
                self._settings,
                registry=self.registry,
                connector=connector,
                agent_connector=agent_connector,
            )
            for bot in self._settings.bots
            if bot.enabled
        }
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def sessions(self) -> list[BotSession]:
        return list(self._sessions.values())

    def get_session(self, name: str) -> BotSession:
        session = self._sessions.get(name)
        if session is None:
            raise BotNotFoundError([name])
        return session

    def idle_sessions(self) -> list[BotSession]:
        return [s for s in self._sessions.values() if s.display_status == DisplayStatus.IDLE]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Connect every session.

        Should be called during application startup.
        """
        if self._running:
            logger.warning("[BOT_ORCH] Already running")
            return

        self._running = True
        Path(self._settings.trace_dir).mkdir(parents=True, exist_ok=True)
        for session in self._sessions.values():
            await session.start()

        logger.info(f"[BOT_ORCH] Started {len(self._sessions)} bots")

    async def stop(self) -> None:
        """Close every session, flushing their traces.

        Should be called during application shutdown.
        """
        if not self._running:
            return

        logger.info("[BOT_ORCH] Stopping...")
        self._running = False
        await asyncio.gather(
            *(session.close() for session in self._sessions.values()),
            return_exceptions=True,
        )
        logger.info("[BOT_ORCH] Stopped")

    def get_status(self) -> dict:
        """Get orchestrator status."""
        state_counts = {status.value: 0 for status in DisplayStatus}
        for session in self._sessions.values():
            state_counts[session.display_status.value] += 1

        return {
            "running": self._running,
            "total_count": len(self._sessions),
            "state_counts": state_counts,
            "bots": [s.get_status_dict() for s in self._sessions.values()],
        }

    # =========================================================================
    # Commands
    # =========================================================================

    def find_waiting_room(self, pattern: str) -> Room:
        """Find the single waiting room whose title matches ``pattern``."""
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise BotError(
                ErrorCode.INVALID_REQUEST,
                f"Invalid room pattern: {pattern}",
                {"reason": str(e)},
            ) from e

        candidates = [room for room in self.registry.waiting_rooms() if regex.search(room.title)]
        if not candidates:
            raise RoomNotFoundError(pattern)
        if len(candidates) > 1:
            raise MultipleRoomsFoundError(pattern, [room.id for room in candidates])
        return candidates[0]

    def _pick_bots(self, bot: str | None, num: int) -> list[BotSession]:
        if bot:
            return [self.get_session(bot)]

        idle = self.idle_sessions()
        if len(idle) < num:
            raise NoAvailableBotError(num, len(idle))
        if self._settings.random_pick:
            return random.sample(idle, num)
        return idle[:num]

    def _next_seat(self, room: Room, taken: set[int]) -> int | None:
        current = self.registry.get(room.id) or room
        for slot, player in enumerate(current.players):
            if player is None and slot not in taken:
                return slot
        return None

    async def join(
        self,
        room_pattern: str,
        *,
        bot: str | None = None,
        password: str | None = None,
        num: int = 1,
        delay: float | None = None,
    ) -> list[JoinOutcome]:
        """Seat bots in the waiting room matching ``room_pattern``.

        Stops at the first bot that fails to join.
        """
        bots = self._pick_bots(bot, num)
        room = self.find_waiting_room(room_pattern)

        outcomes: list[JoinOutcome] = []
        taken: set[int] = set()
        for session in bots:
            seat = self._next_seat(room, taken)
            if seat is None:
                if not outcomes:
                    raise NoEmptySeatError(room.id)
                break

            success = await session.join(room.id, seat, password)
            outcomes.append(
                JoinOutcome(
                    bot=session.name,
                    room_id=room.id,
                    room_title=room.title,
                    seat=seat,
                    success=success,
                )
            )
            if not success:
                break
            session.delay = delay
            taken.add(seat)
            logger.info(f"[BOT_ORCH] {session.name} joined {room.title} at seat {seat + 1}")

        return outcomes

    async def kick(self, names: list[str] | None = None, *, force: bool = False) -> list[str]:
        """Make bots leave their rooms. Playing bots are only kicked with ``force``."""
        targets = [
            session
            for session in self._sessions.values()
            if (not names or session.name in names)
            and (force or session.display_status != DisplayStatus.PLAYING)
        ]
        await asyncio.gather(*(session.exit() for session in targets))
        return [session.name for session in targets]

    def set_delay(self, delay: float, *, bot: str | None = None) -> list[str]:
        """Set the pacing delay of one bot, or of every bot."""
        targets = [self.get_session(bot)] if bot else self.sessions
        for session in targets:
            session.delay = delay
        return [session.name for session in targets]

    def reset(self) -> None:
        """Force every session back to idle and resume routing (operator recovery)."""
        for session in self._sessions.values():
            session.status = BotStatus.IDLE
            session.killed = False

    def kill(self, names: list[str] | None = None, *, all_bots: bool = False) -> list[str]:
        """Force-close the connections of the named bots (or all of them)."""
        if all_bots:
            targets = self.sessions
        else:
            targets = [s for s in self._sessions.values() if names and s.name in names]
            if not targets:
                raise BotNotFoundError(names or [])

        for session in targets:
            session.kill()
        return [session.name for session in targets]

    async def flush(self) -> None:
        """Write out every session's pending trace."""
        await asyncio.gather(*(session.flush() for session in self._sessions.values()))


def get_bot_orchestrator() -> BotOrchestrator:
    """Get or create the singleton orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = BotOrchestrator()
    return _orchestrator


async def init_bot_orchestrator(registry: RoomRegistry | None = None) -> BotOrchestrator:
    """Create and start the orchestrator.

    Should be called during application startup.
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = BotOrchestrator(registry=registry)
    await _orchestrator.start()
    return _orchestrator


async def shutdown_bot_orchestrator() -> None:
    """Shutdown the bot orchestrator.

    Should be called during application shutdown.
    """
    global _orchestrator
    if _orchestrator:
        await _orchestrator.stop()
        _orchestrator = None
