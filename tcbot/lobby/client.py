"""Lobby observer connection.

Logs in to the game server as an observer and feeds every lobby event into
the RoomRegistry. It is the registry's only producer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from tcbot.bot.solver import format_answer, solve_waiting_tiles
from tcbot.config import Settings
from tcbot.lobby.registry import RoomRegistry, Seat
from tcbot.utils.async_utils import create_safe_task
from tcbot.ws import packets
from tcbot.ws.connection import Connector, ReconnectingSocket
from tcbot.ws.packets import HeartbeatPacket, LobbyPacket, LobbyRoute

logger = logging.getLogger(__name__)

# Routes that carry nothing the registry tracks
_ACKNOWLEDGED_ROUTES = frozenset([
    LobbyRoute.LOGIN_RESULT,
    LobbyRoute.READY,
    LobbyRoute.SEAT_STATUS,
    LobbyRoute.LOGIN,
])


class LobbyClient:
    """Keeps a RoomRegistry in sync with the server's lobby."""

    def __init__(
        self,
        settings: Settings,
        registry: RoomRegistry | None = None,
        *,
        connector: Connector | None = None,
    ):
        self.settings = settings
        self.registry = registry or RoomRegistry()
        self._socket = ReconnectingSocket(
            settings.resolved_lobby_endpoint,
            label="lobby",
            reconnect_intervals=settings.reconnect_intervals,
            on_message=self.handle_packet,
            on_open=self._on_open,
            heartbeat_interval=settings.heartbeat_interval,
            connector=connector,
        )

    @property
    def socket(self) -> ReconnectingSocket:
        return self._socket

    async def start(self) -> None:
        await self._socket.connect()

    async def close(self) -> None:
        await self._socket.close()

    async def _on_open(self) -> None:
        # Incremental events from before the reconnect are lost, start over
        self.registry.clear()
        await self._socket.send(packets.challenge_request())
        logger.info("[LOBBY] Connected to server")

    async def _login(self, question: str) -> None:
        password = self.settings.lobby_password
        await self._socket.send(
            packets.login(
                self.settings.lobby_username or "",
                password.get_secret_value() if password else "",
                question,
                format_answer(solve_waiting_tiles(question)),
            )
        )
        await asyncio.sleep(self.settings.response_interval)
        await self._socket.send(packets.room_list_request())

    async def handle_packet(self, packet: dict[str, Any]) -> None:
        """Apply one server packet to the registry."""
        stats = packet.get("s")
        if isinstance(stats, dict) and stats.get("f") is not None:
            self.registry.update_stats(stats)

        kind = packets.classify(packet)
        if isinstance(kind, HeartbeatPacket):
            self._socket.acknowledge_heartbeat(kind.timestamp)
            return
        if not isinstance(kind, LobbyPacket):
            logger.warning(f"[LOBBY] Unrecognized packet: {packet}")
            return

        try:
            self._apply(kind.route, packet)
        except (KeyError, TypeError) as e:
            logger.warning(f"[LOBBY] Dropping malformed packet ({e!r}): {packet}")

    def _apply(self, route: LobbyRoute, packet: dict[str, Any]) -> None:
        if route in (LobbyRoute.ROOM_LIST, LobbyRoute.ROOM_REFRESH):
            self.registry.apply_snapshot(packet.get("t") or [])
        elif route == LobbyRoute.JOIN:
            from_seat = Seat.from_packet(packet["f"]) if packet.get("f") else None
            self.registry.apply_join(Seat.from_packet(packet["t"]), from_seat)
        elif route == LobbyRoute.EXIT:
            self.registry.apply_exit(Seat.from_packet(packet["t"]))
        elif route == LobbyRoute.DISMISS:
            self.registry.apply_dismiss(packet["t"]["i"])
        elif route == LobbyRoute.ROUND:
            if packet.get("p") == 1:
                self.registry.apply_start(packet["i"])
            else:
                self.registry.apply_round_advance(packet["i"], packet.get("p", 0))
        elif route == LobbyRoute.CHALLENGE:
            create_safe_task(self._login(str(packet.get("z") or "")), name="login:lobby")
        elif route in _ACKNOWLEDGED_ROUTES:
            pass
        else:
            logger.warning(f"[LOBBY] Unrecognized packet: {packet}")
