"""Tests for ReconnectingSocket and HeartbeatMonitor."""

import asyncio
import logging
import zlib
from unittest.mock import AsyncMock

import pytest
from hypothesis import given
from hypothesis import strategies as st
from websockets.datastructures import Headers
from websockets.exceptions import InvalidStatus
from websockets.http11 import Response

from tcbot.ws.connection import (
    ConnectionState,
    ReconnectingSocket,
    is_benign_handshake_error,
    reconnect_interval,
)


def make_socket(connector, received=None, **kwargs) -> ReconnectingSocket:
    received = received if received is not None else []

    async def on_message(packet):
        received.append(packet)

    kwargs.setdefault("reconnect_intervals", [0.01])
    return ReconnectingSocket(
        "ws://server.test/ws",
        label="test",
        on_message=on_message,
        connector=connector,
        **kwargs,
    )


class TestReconnectInterval:
    """Literal backoff schedule."""

    def test_schedule_is_literal(self):
        intervals = [5, 10, 30, 60, 180, 300, 600]
        assert [reconnect_interval(intervals, k) for k in range(9)] == [
            5, 10, 30, 60, 180, 300, 600, 600, 600,
        ]

    @given(
        intervals=st.lists(st.floats(min_value=0, max_value=1000), min_size=1, max_size=10),
        retries=st.integers(min_value=0, max_value=10_000),
    )
    def test_last_entry_repeats(self, intervals, retries):
        expected = intervals[min(retries, len(intervals) - 1)]
        assert reconnect_interval(intervals, retries) == expected

    def test_empty_schedule_rejected(self, connector):
        with pytest.raises(ValueError):
            make_socket(connector, reconnect_intervals=[])


class TestHandshakeErrors:
    def test_invalid_status_message_is_benign(self):
        exc = Exception("server rejected WebSocket connection: Invalid status code 502")
        assert is_benign_handshake_error(exc)

    def test_invalid_status_exception_is_benign(self):
        assert is_benign_handshake_error(InvalidStatus(Response(503, "Unavailable", Headers(), b"")))

    def test_network_error_is_not_benign(self):
        assert not is_benign_handshake_error(OSError("Connection refused"))


class TestConnectionLifecycle:
    """Connect, reconnect and close."""

    @pytest.mark.asyncio
    async def test_connect_dispatches_packets_in_order(self, connector, wait):
        received = []
        socket = make_socket(connector, received)
        await socket.connect()
        await wait(lambda: socket.connected)
        assert socket.state == ConnectionState.CONNECTED

        for i in range(5):
            connector.latest.feed({"m": 2, "r": 6, "t": i})
        await wait(lambda: len(received) == 5)

        assert [p["t"] for p in received] == [0, 1, 2, 3, 4]
        await socket.close()

    @pytest.mark.asyncio
    async def test_slow_handler_keeps_order(self, connector, wait):
        """A packet is fully handled before the next one is dispatched."""
        handled = []

        async def on_message(packet):
            await asyncio.sleep(0.01 if packet["t"] == 0 else 0)
            handled.append(packet["t"])

        socket = ReconnectingSocket(
            "ws://server.test/ws",
            label="test",
            reconnect_intervals=[0.01],
            on_message=on_message,
            connector=connector,
        )
        await socket.connect()
        await wait(lambda: socket.connected)
        connector.latest.feed({"m": 2, "t": 0})
        connector.latest.feed({"m": 2, "t": 1})
        await wait(lambda: len(handled) == 2)

        assert handled == [0, 1]
        await socket.close()

    @pytest.mark.asyncio
    async def test_binary_frames_are_inflated(self, connector, wait):
        received = []
        socket = make_socket(connector, received)
        await socket.connect()
        await wait(lambda: socket.connected)

        connector.latest.feed(zlib.compress(b'{"m": 1, "r": 2, "t": []}'))
        await wait(lambda: len(received) == 1)

        assert received[0] == {"m": 1, "r": 2, "t": []}
        await socket.close()

    @pytest.mark.asyncio
    async def test_malformed_frame_is_dropped(self, connector, wait):
        received = []
        socket = make_socket(connector, received)
        await socket.connect()
        await wait(lambda: socket.connected)

        connector.latest.feed("not json")
        connector.latest.feed({"m": 5, "t": 1})
        await wait(lambda: len(received) == 1)

        assert received == [{"m": 5, "t": 1}]
        assert socket.connected
        await socket.close()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_loop(self, connector, wait):
        calls = []

        async def on_message(packet):
            calls.append(packet)
            if len(calls) == 1:
                raise RuntimeError("boom")

        socket = ReconnectingSocket(
            "ws://server.test/ws",
            label="test",
            reconnect_intervals=[0.01],
            on_message=on_message,
            connector=connector,
        )
        await socket.connect()
        await wait(lambda: socket.connected)
        connector.latest.feed({"m": 2})
        connector.latest.feed({"m": 2})
        await wait(lambda: len(calls) == 2)

        assert socket.connected
        await socket.close()

    @pytest.mark.asyncio
    async def test_reconnects_after_failures_and_resets_retries(self, make_connector, wait):
        connector = make_connector(failures=2)
        on_open = AsyncMock()
        on_close = AsyncMock()
        socket = make_socket(connector, on_open=on_open, on_close=on_close)

        await socket.connect()
        await wait(lambda: socket.connected)

        assert len(connector.urls) == 3
        assert socket.retries == 0
        assert on_close.await_count == 2
        on_open.assert_awaited_once()
        await socket.close()

    @pytest.mark.asyncio
    async def test_rejected_handshake_still_reconnects(self, make_connector, wait, caplog):
        """A server answering the upgrade with an HTTP error is retried quietly."""
        rejection = InvalidStatus(Response(502, "Bad Gateway", Headers(), b""))
        connector = make_connector(failures=2, error=rejection)
        caplog.set_level(logging.INFO, logger="tcbot.ws.connection")
        socket = make_socket(connector)

        await socket.connect()
        await wait(lambda: socket.connected)

        assert len(connector.urls) == 3
        assert socket.retries == 0
        rejected = [r for r in caplog.records if "Handshake rejected" in r.getMessage()]
        assert len(rejected) == 2
        assert all(r.levelno == logging.INFO for r in rejected)
        assert not any("Transport error" in r.getMessage() for r in caplog.records)
        await socket.close()

    @pytest.mark.asyncio
    async def test_reconnects_after_remote_close(self, connector, wait):
        on_open = AsyncMock()
        socket = make_socket(connector, on_open=on_open)
        await socket.connect()
        await wait(lambda: socket.connected)

        connector.latest.disconnect()
        await wait(lambda: len(connector.sockets) == 2 and socket.connected)

        assert on_open.await_count == 2
        assert connector.sockets[0].closed
        await socket.close()

    @pytest.mark.asyncio
    async def test_retries_grow_while_server_down(self, make_connector, wait):
        connector = make_connector(failures=1000)
        socket = make_socket(connector, reconnect_intervals=[0.001])
        await socket.connect()
        await wait(lambda: socket.retries >= 3)

        assert not socket.connected
        await socket.close()

    @pytest.mark.asyncio
    async def test_close_is_terminal(self, connector, wait):
        socket = make_socket(connector)
        await socket.connect()
        await wait(lambda: socket.connected)
        ws = connector.latest

        await socket.close()
        assert socket.state == ConnectionState.CLOSED
        assert ws.closed
        assert not socket.connected

        await socket.connect()
        await asyncio.sleep(0.05)
        assert len(connector.sockets) == 1

    @pytest.mark.asyncio
    async def test_send_when_disconnected_returns_false(self, connector):
        socket = make_socket(connector)
        assert await socket.send({"m": 1, "r": 2}) is False

    @pytest.mark.asyncio
    async def test_send_encodes_json(self, connector, wait):
        socket = make_socket(connector)
        await socket.connect()
        await wait(lambda: socket.connected)

        assert await socket.send({"m": 1, "r": 6, "v": 1}) is True
        assert connector.latest.sent_packets == [{"m": 1, "r": 6, "v": 1}]
        await socket.close()

    @pytest.mark.asyncio
    async def test_drop_triggers_reconnect(self, connector, wait):
        socket = make_socket(connector)
        await socket.connect()
        await wait(lambda: socket.connected)

        socket.drop()
        assert not socket.connected
        await wait(lambda: len(connector.sockets) == 2 and socket.connected)
        await socket.close()


class TestHeartbeat:
    """Single-slot heartbeat liveness detection."""

    @pytest.mark.asyncio
    async def test_tick_sends_heartbeat(self, connector, wait):
        socket = make_socket(connector, heartbeat_interval=60.0)
        await socket.connect()
        await wait(lambda: socket.connected)

        await socket.heartbeat.tick()

        sent = connector.latest.sent_packets
        assert len(sent) == 1
        assert sent[0]["m"] == 5
        assert sent[0]["t"] == socket.heartbeat.pending
        await socket.close()

    @pytest.mark.asyncio
    async def test_acknowledged_heartbeat_keeps_connection(self, connector, wait):
        socket = make_socket(connector, heartbeat_interval=60.0)
        await socket.connect()
        await wait(lambda: socket.connected)

        await socket.heartbeat.tick()
        pending = socket.heartbeat.pending
        assert socket.acknowledge_heartbeat(pending) is True
        assert socket.heartbeat.pending == 0

        await socket.heartbeat.tick()
        assert socket.connected
        assert len(connector.latest.sent_packets) == 2
        await socket.close()

    @pytest.mark.asyncio
    async def test_stale_echo_is_ignored(self, connector, wait):
        socket = make_socket(connector, heartbeat_interval=60.0)
        await socket.connect()
        await wait(lambda: socket.connected)

        await socket.heartbeat.tick()
        assert socket.acknowledge_heartbeat(socket.heartbeat.pending - 1) is False
        assert socket.heartbeat.pending != 0
        await socket.close()

    @pytest.mark.asyncio
    async def test_stall_drops_exactly_once(self, connector, wait):
        """An unanswered heartbeat drops the connection once, not per tick."""
        socket = make_socket(connector, heartbeat_interval=60.0, reconnect_intervals=[10.0])
        await socket.connect()
        await wait(lambda: socket.connected)
        ws = connector.latest

        await socket.heartbeat.tick()
        await socket.heartbeat.tick()
        await socket.heartbeat.tick()
        await wait(lambda: ws.closed)

        assert not socket.connected
        assert len(ws.sent_packets) == 1
        assert len(connector.sockets) == 1
        await socket.close()

    @pytest.mark.asyncio
    async def test_pending_cleared_on_reconnect(self, connector, wait):
        socket = make_socket(connector, heartbeat_interval=60.0)
        await socket.connect()
        await wait(lambda: socket.connected)

        await socket.heartbeat.tick()
        await socket.heartbeat.tick()
        await wait(lambda: len(connector.sockets) == 2 and socket.connected)

        assert socket.heartbeat.pending == 0
        await socket.close()

    @pytest.mark.asyncio
    async def test_heartbeat_stops_on_close(self, connector, wait):
        socket = make_socket(connector, heartbeat_interval=0.01)
        await socket.connect()
        assert socket.heartbeat.is_running

        await socket.close()
        assert not socket.heartbeat.is_running

    @pytest.mark.asyncio
    async def test_no_acknowledgement_without_heartbeat(self, connector):
        socket = make_socket(connector)
        assert socket.heartbeat is None
        assert socket.acknowledge_heartbeat(123) is False
