"""Bot session: one automated player bridging the game server and an agent.

Each session owns two ReconnectingSockets (server-facing and agent-facing)
and a small state machine:

IDLE → WAITING → PLAYING → IDLE
                    ↓
      killed (flag, orthogonal to the cycle)

CLOSED is terminal and only entered through ``close()``.

Gameplay packets from the server are relayed to the agent once the server
has assigned the bot its in-game seat and while the agent has reported no
error. Otherwise the session answers them itself with protocol-minimum
defaults. Agent decisions are paced by a configurable delay and relayed to
the server.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tcbot.bot.solver import format_answer, solve_waiting_tiles
from tcbot.bot.trace import Direction, TraceBuffer
from tcbot.config import BotConfig, Settings
from tcbot.lobby.registry import RoomRegistry
from tcbot.utils.async_utils import create_safe_task, now_ms
from tcbot.ws import packets
from tcbot.ws.connection import Connector, ReconnectingSocket
from tcbot.ws.packets import GamePacket, GameRoute, HeartbeatPacket, LobbyPacket, LobbyRoute

logger = logging.getLogger(__name__)

# Reference points for the ``_ts`` stamps added to relayed gameplay packets
TIME_ORIGIN_MS = now_ms()
_PERF_ORIGIN = time.perf_counter()


def elapsed_ms() -> float:
    """Milliseconds since the process time origin."""
    return round((time.perf_counter() - _PERF_ORIGIN) * 1000, 3)


class BotStatus(str, Enum):
    """Primary session states."""

    IDLE = "idle"
    WAITING = "wait"
    PLAYING = "play"


class DisplayStatus(str, Enum):
    """Externally visible status derived from the session's flags."""

    IDLE = "idle"
    WAITING = "wait"
    PLAYING = "play"
    CLOSED = "closed"
    KILLED = "killed"
    CONNECTING = "connecting"


def derive_display_status(
    *,
    status: BotStatus,
    closed: bool,
    killed: bool,
    ready: bool,
    server_connected: bool,
    agent_connected: bool,
) -> DisplayStatus:
    """Fold the session's independent flags into one display status.

    Pure and total: precedence is closed, killed (including playing without
    an initialised agent), connecting, then the raw status.
    """
    if closed:
        return DisplayStatus.CLOSED
    if killed:
        return DisplayStatus.KILLED
    if status == BotStatus.PLAYING and not ready:
        return DisplayStatus.KILLED
    if not server_connected or not agent_connected:
        return DisplayStatus.CONNECTING
    return DisplayStatus(status.value)


@dataclass
class SeatStatus:
    """The bot's own seat as last pushed by the server."""

    room_id: int | None = None
    seat: int | None = None
    name: str | None = None
    vip: int = 0
    game_seat: int | None = None

    @classmethod
    def from_packet(cls, data: dict[str, Any]) -> "SeatStatus":
        return cls(
            room_id=data.get("i"),
            seat=data.get("s"),
            name=data.get("n"),
            vip=data.get("v") or 0,
            game_seat=data.get("p"),
        )


class BotSession:
    """A single bot bridging the game server and its decision agent.

    Args:
        config: The bot account
        settings: Shared endpoints and timing
        registry: Lobby mirror used to confirm joins when no seat push arrived
        connector: Connection factory for the server socket (tests inject fakes)
        agent_connector: Connection factory for the agent socket
    """

    def __init__(
        self,
        config: BotConfig,
        settings: Settings,
        *,
        registry: RoomRegistry | None = None,
        connector: Connector | None = None,
        agent_connector: Connector | None = None,
    ):
        self.config = config
        self.settings = settings
        self.registry = registry

        self.delay: float | None = None
        self.closed = False
        self.killed = False
        # A bot whose agent (re)connected mid-round waits for the next seat assignment
        self.ready = False
        self.status = BotStatus.IDLE
        self.seat_status = SeatStatus()

        self.trace = TraceBuffer(config.name, settings.trace_dir)

        self._server = ReconnectingSocket(
            settings.server_endpoint,
            label=f"{config.name}:server",
            reconnect_intervals=settings.reconnect_intervals,
            on_message=self._on_server_message,
            on_open=self._on_server_open,
            on_close=self._on_server_close,
            heartbeat_interval=settings.heartbeat_interval,
            connector=connector,
        )
        self._agent = ReconnectingSocket(
            config.endpoint or settings.agent_endpoint,
            label=f"{config.name}:agent",
            reconnect_intervals=settings.reconnect_intervals,
            on_message=self._on_agent_message,
            on_open=self._on_agent_open,
            on_close=self._on_agent_close,
            connector=agent_connector or connector,
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def server(self) -> ReconnectingSocket:
        return self._server

    @property
    def agent(self) -> ReconnectingSocket:
        return self._agent

    @property
    def effective_delay(self) -> float:
        return self.settings.delay if self.delay is None else self.delay

    @property
    def display_status(self) -> DisplayStatus:
        return derive_display_status(
            status=self.status,
            closed=self.closed,
            killed=self.killed,
            ready=self.ready,
            server_connected=self._server.connected and not self._server.retries,
            agent_connected=self._agent.connected and not self._agent.retries,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Open both connections."""
        await self._server.connect()
        await self._agent.connect()

    async def close(self) -> None:
        """Tear the session down for good, flushing the trace."""
        self.closed = True
        await self._server.close()
        await self._agent.close()
        await self.flush()

    def kill(self) -> None:
        """Force both connections closed; they reconnect on their schedule."""
        self._server.drop()
        self._agent.drop()

    async def flush(self) -> None:
        await self.trace.flush()

    # =========================================================================
    # Commands
    # =========================================================================

    async def join(self, room_id: int, seat: int, password: str | None = None) -> bool:
        """Take ``seat`` in ``room_id`` and confirm readiness.

        The protocol has no reply to a join request, so the session pauses for
        the settle interval and then checks where the server says it sits.
        """
        if self.display_status != DisplayStatus.IDLE:
            return False

        self.status = BotStatus.WAITING
        self.seat_status = SeatStatus()
        logger.info(
            f"[BOT:{self.name}] Joining room {room_id} at seat {seat + 1}"
            f"{' with password' if password else ''}..."
        )
        await self._server.send(packets.join_room(room_id, seat, password))
        await asyncio.sleep(self.settings.response_interval)

        if not self.is_seated_in(room_id, seat):
            logger.info(f"[BOT:{self.name}] Failed to join room {room_id}")
            self.status = BotStatus.IDLE
            return False

        await self._server.send(packets.ready())
        return True

    async def exit(self) -> None:
        """Leave the current room."""
        await self._server.send(packets.exit_room())
        await asyncio.sleep(self.settings.response_interval)
        self.status = BotStatus.IDLE

    def is_seated_in(self, room_id: int, seat: int) -> bool:
        """Whether the bot currently occupies ``room_id``.

        The seat pushed by the server on this connection wins; without one the
        lobby registry is consulted for the requested seat.
        """
        if self.seat_status.room_id is not None:
            return self.seat_status.room_id == room_id

        if self.registry is None:
            return False
        room = self.registry.get(room_id)
        if room is None or not 0 <= seat < len(room.players):
            return False
        player = room.players[seat]
        return player is not None and player.name in (self.config.username, self.name)

    # =========================================================================
    # Server socket
    # =========================================================================

    async def _on_server_open(self) -> None:
        await self._server.send(packets.challenge_request())
        logger.info(f"[BOT:{self.name}] Connected to server")

    async def _on_server_close(self) -> None:
        self.status = BotStatus.IDLE

    async def _on_server_message(self, packet: dict[str, Any]) -> None:
        logger.debug(f"[BOT:{self.name}] Received packet: {packet}")
        kind = packets.classify(packet)

        if isinstance(kind, HeartbeatPacket):
            self._server.acknowledge_heartbeat(kind.timestamp)
        elif isinstance(kind, LobbyPacket):
            await self._on_lobby_packet(kind)
        elif isinstance(kind, GamePacket):
            await self._on_game_packet(kind)
        else:
            logger.debug(f"[BOT:{self.name}] Unrecognized packet: {packet}")

    async def _on_lobby_packet(self, lobby: LobbyPacket) -> None:
        data = lobby.data
        if lobby.route == LobbyRoute.LOGIN_RESULT:
            if data.get("e"):
                logger.warning(f"[BOT:{self.name}] Login rejected: {data.get('e')}")
                self.kill()
        elif lobby.route == LobbyRoute.SEAT_STATUS:
            if data.get("t"):
                self.seat_status = SeatStatus.from_packet(data["t"])
        elif lobby.route == LobbyRoute.CHALLENGE:
            create_safe_task(
                self._login(str(data.get("z") or "")),
                name=f"login:{self.name}",
            )

    async def _login(self, question: str) -> None:
        answer = format_answer(solve_waiting_tiles(question))
        logger.debug(f"[BOT:{self.name}] Answering login challenge {question!r} with {answer!r}")
        await self._server.send(
            packets.login(
                self.config.username,
                self.config.password.get_secret_value(),
                question,
                answer,
            )
        )
        await asyncio.sleep(self.settings.response_interval)
        await self._server.send(packets.room_list_request())

    async def _on_game_packet(self, game: GamePacket) -> None:
        packet = dict(game.data)

        if game.is_route(GameRoute.ROUND_START):
            packet["_ts"] = TIME_ORIGIN_MS
        if game.is_route(GameRoute.SEAT_ASSIGNED):
            packet["_ts"] = elapsed_ms()
            self.ready = True
            self.seat_status.game_seat = packet.get("v")
        elif game.is_route(GameRoute.DISCARD):
            packet["_ts"] = elapsed_ms()

        await self._relay_to_agent(game.route, packet)

        if game.is_route(GameRoute.ROUND_RESULT):
            self.status = BotStatus.IDLE
            await self.flush()

    async def _relay_to_agent(self, route: int | None, packet: dict[str, Any]) -> None:
        self.status = BotStatus.PLAYING

        if self.killed or not self.ready:
            # Never ask a failed or uninitialised agent to act: discard what
            # we drew and decline any option instead.
            tile = packet.get("t")
            if (
                route == GameRoute.DRAW
                and isinstance(tile, int)
                and packet.get("v") == self.seat_status.game_seat
            ):
                await self._server.send(packets.discard(tile))
            elif packet.get("tt"):
                await self._server.send(packets.decline())
            return

        logger.debug(f"[BOT:{self.name}] Send to agent: {packet}")
        self.trace.append(packet, Direction.RECEIVE)
        await self._agent.send(packet)

    # =========================================================================
    # Agent socket
    # =========================================================================

    async def _on_agent_open(self) -> None:
        logger.info(f"[BOT:{self.name}] Connected to agent")
        self.killed = False
        self.ready = False

    async def _on_agent_close(self) -> None:
        logger.info(f"[BOT:{self.name}] Agent disconnect")

    async def _on_agent_message(self, packet: dict[str, Any]) -> None:
        logger.debug(f"[BOT:{self.name}] Receive from agent: {packet}")
        meta = packet.get("_meta")
        if not isinstance(meta, dict):
            meta = {}

        if meta.get("t") == "error":
            self.killed = True
            logger.warning(f"[BOT:{self.name}] Agent error: {packet}")
            return
        if meta.get("t") == "fatal":
            self.killed = True
            logger.error(f"[BOT:{self.name}] Agent fatal error: {packet}")
            self.kill()
            return

        self.killed = False
        # Traced with its envelope; only the server copy is stripped
        self.trace.append(packet, Direction.SEND)
        if meta.get("d") is not False:
            await asyncio.sleep(self.effective_delay)

        decision = {key: value for key, value in packet.items() if key != "_meta"}
        if not await self._server.send(decision):
            self.killed = True

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_status_dict(self) -> dict[str, Any]:
        """Get bot status as dictionary."""
        return {
            "name": self.name,
            "username": self.config.username,
            "status": self.display_status.value,
            "state": self.status.value,
            "ready": self.ready,
            "killed": self.killed,
            "closed": self.closed,
            "delay": self.effective_delay,
            "room_id": self.seat_status.room_id,
            "seat": self.seat_status.seat,
            "server": self._server.state.value,
            "agent": self._agent.state.value,
            "pending_trace": len(self.trace),
        }
