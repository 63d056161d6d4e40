"""Reconnecting WebSocket client with heartbeat liveness detection.

Every socket the bridge opens (bot to game server, bot to agent, lobby
observer) is a ReconnectingSocket:

    DISCONNECTED → CONNECTING → CONNECTED → DISCONNECTED (retry) → ... → CLOSED

Frames are read by a single run loop per socket and handed to ``on_message``
one at a time, so packets from one socket are processed strictly in arrival
order. Whenever a connection ends (network failure, stalled heartbeat or a
local ``drop()``) the socket waits ``intervals[min(retries, len - 1)]`` and
reconnects, unless ``close()`` made it terminal.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

import websockets
from websockets.exceptions import ConnectionClosed, InvalidStatus

from tcbot.utils.async_utils import cancel_task_safe, create_safe_task, now_ms
from tcbot.utils.errors import ProtocolError
from tcbot.ws import packets

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]
EventHandler = Callable[[], Awaitable[None]]
Connector = Callable[[str], Awaitable[Any]]

# Substring of handshake rejections that are expected while a server restarts
BENIGN_HANDSHAKE_SIGNATURE = "invalid status code"

MAX_FRAME_SIZE = 2 ** 24


class ConnectionState(str, Enum):
    """Socket lifecycle states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def reconnect_interval(intervals: Sequence[float], retries: int) -> float:
    """Delay before the next reconnect attempt.

    The schedule is literal: retry ``k`` waits ``intervals[k]`` and every retry
    past the end of the list repeats the last entry.
    """
    return intervals[min(max(retries, 0), len(intervals) - 1)]


def is_benign_handshake_error(exc: BaseException) -> bool:
    """Whether a connect failure is an expected handshake rejection."""
    if isinstance(exc, InvalidStatus):
        return True
    return BENIGN_HANDSHAKE_SIGNATURE in str(exc).lower()


async def default_connector(url: str) -> Any:
    """Open a client connection with the websockets library.

    Protocol-level pings are disabled: liveness is tracked by the
    application heartbeat instead.
    """
    return await websockets.connect(url, ping_interval=None, max_size=MAX_FRAME_SIZE)


class HeartbeatMonitor:
    """Single-slot heartbeat liveness detector.

    Every ``interval`` seconds: if the previous heartbeat is still
    unacknowledged the connection is considered stalled and dropped,
    otherwise a new heartbeat stamped with the current time is sent. Only the
    latest heartbeat is tracked, so a late echo of an older one is ignored.
    """

    def __init__(self, socket: "ReconnectingSocket", interval: float):
        self.socket = socket
        self.interval = interval
        self.pending: int = 0
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = create_safe_task(
            self._heartbeat_loop(),
            name=f"heartbeat:{self.socket.label}",
        )

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        await cancel_task_safe(task)

    def reset(self) -> None:
        """Forget any outstanding heartbeat (called on every new connection)."""
        self.pending = 0

    def acknowledge(self, timestamp: Any) -> bool:
        """Clear the pending marker if the echo matches the outstanding heartbeat."""
        if self.pending and timestamp == self.pending:
            self.pending = 0
            return True
        return False

    async def tick(self) -> None:
        """Run one heartbeat check."""
        if self.socket.closed or not self.socket.connected:
            return

        if self.pending:
            logger.warning(
                f"[WS:{self.socket.label}] Heartbeat {self.pending} not acknowledged, "
                f"dropping stalled connection"
            )
            self.socket.drop()
            return

        self.pending = now_ms()
        await self.socket.send(packets.heartbeat(self.pending))

    async def _heartbeat_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            await self.tick()


class ReconnectingSocket:
    """A WebSocket client that keeps itself connected.

    Args:
        url: Endpoint to connect to
        label: Name used in log lines
        reconnect_intervals: Literal backoff schedule in seconds
        on_message: Called with each decoded packet, in arrival order
        on_open: Called after every successful connect
        on_close: Called after every connection end or failed attempt
        heartbeat_interval: Enables the heartbeat monitor when set
        connector: Coroutine opening the underlying connection
    """

    def __init__(
        self,
        url: str,
        *,
        label: str,
        reconnect_intervals: Sequence[float],
        on_message: MessageHandler,
        on_open: EventHandler | None = None,
        on_close: EventHandler | None = None,
        heartbeat_interval: float | None = None,
        connector: Connector | None = None,
    ):
        if not reconnect_intervals:
            raise ValueError("reconnect_intervals must not be empty")

        self.url = url
        self.label = label
        self.reconnect_intervals = list(reconnect_intervals)
        self.on_message = on_message
        self.on_open = on_open
        self.on_close = on_close
        self._connector = connector or default_connector

        self._ws: Any | None = None
        self._state = ConnectionState.DISCONNECTED
        self._retries = 0
        self._closed = False
        self._run_task: asyncio.Task | None = None

        self.heartbeat = (
            HeartbeatMonitor(self, heartbeat_interval) if heartbeat_interval else None
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def retries(self) -> int:
        return self._retries

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """Start (or restart) the connection loop.

        Any previous connection is closed first. Has no effect once the
        socket has been closed for good.
        """
        if self._closed:
            logger.warning(f"[WS:{self.label}] connect() called on a closed socket")
            return

        previous_ws, self._ws = self._ws, None
        if previous_ws is not None:
            await self._close_quietly(previous_ws)
        if self._run_task is not asyncio.current_task():
            await cancel_task_safe(self._run_task)

        self._run_task = create_safe_task(self._run(), name=f"ws:{self.label}")
        if self.heartbeat:
            self.heartbeat.start()

    async def close(self) -> None:
        """Close the socket for good and suppress further reconnection."""
        self._closed = True
        self._state = ConnectionState.CLOSED

        if self.heartbeat:
            await self.heartbeat.stop()

        ws, self._ws = self._ws, None
        if ws is not None:
            await self._close_quietly(ws)

        if self._run_task is not asyncio.current_task():
            await cancel_task_safe(self._run_task)
        self._run_task = None

    def drop(self) -> None:
        """Force-close the current connection without blocking.

        The run loop observes the closure and enters the reconnect path.
        """
        ws, self._ws = self._ws, None
        if ws is not None:
            create_safe_task(self._close_quietly(ws), name=f"ws-drop:{self.label}")

    async def send(self, payload: dict[str, Any]) -> bool:
        """Send a packet. Returns False if not connected or the send failed."""
        ws = self._ws
        if ws is None:
            logger.debug(f"[WS:{self.label}] Not connected, dropping outgoing packet")
            return False
        try:
            await ws.send(packets.encode_packet(payload))
            return True
        except Exception as e:
            logger.warning(f"[WS:{self.label}] Failed to send packet: {e}")
            return False

    def acknowledge_heartbeat(self, timestamp: Any) -> bool:
        if self.heartbeat is None:
            return False
        return self.heartbeat.acknowledge(timestamp)

    # =========================================================================
    # Run loop
    # =========================================================================

    async def _run(self) -> None:
        while not self._closed:
            self._state = ConnectionState.CONNECTING
            try:
                ws = await self._connector(self.url)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log_transport_error(e)
            else:
                await self._serve(ws)

            if self._closed:
                break

            self._state = ConnectionState.DISCONNECTED
            logger.info(f"[WS:{self.label}] Disconnect")
            await self._notify(self.on_close, "on_close")
            if self._closed:
                break

            interval = reconnect_interval(self.reconnect_intervals, self._retries)
            logger.info(
                f"[WS:{self.label}] Connection closed. "
                f"will reconnect after {interval}s ... ({self._retries})"
            )
            self._retries += 1
            await asyncio.sleep(interval)

        self._state = ConnectionState.CLOSED

    async def _serve(self, ws: Any) -> None:
        """Pump frames from one established connection until it ends."""
        self._ws = ws
        self._state = ConnectionState.CONNECTED
        self._retries = 0
        if self.heartbeat:
            self.heartbeat.reset()
        logger.info(f"[WS:{self.label}] Connected to {self.url}")

        try:
            await self._notify(self.on_open, "on_open")
            async for frame in ws:
                await self._dispatch(frame)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            logger.debug(f"[WS:{self.label}] Connection closed: {e}")
        except Exception as e:
            self._log_transport_error(e)
        finally:
            if self._ws is ws:
                self._ws = None
            await self._close_quietly(ws)

    async def _dispatch(self, frame: str | bytes) -> None:
        try:
            packet = packets.decode_frame(frame)
        except ProtocolError as e:
            logger.warning(f"[WS:{self.label}] Dropping malformed packet: {e.message} {e.details}")
            return

        try:
            await self.on_message(packet)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[WS:{self.label}] Message handler failed: {e}",
                exc_info=True,
            )

    async def _notify(self, handler: EventHandler | None, name: str) -> None:
        if handler is None:
            return
        try:
            await handler()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[WS:{self.label}] {name} handler failed: {e}", exc_info=True)

    def _log_transport_error(self, exc: BaseException) -> None:
        if is_benign_handshake_error(exc):
            logger.info(f"[WS:{self.label}] Handshake rejected: {exc}")
        else:
            logger.warning(f"[WS:{self.label}] Transport error: {exc!r}")

    async def _close_quietly(self, ws: Any) -> None:
        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"[WS:{self.label}] Error closing connection: {e}")
