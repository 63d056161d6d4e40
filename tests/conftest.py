"""Shared test fixtures: in-memory WebSockets and test settings."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest

from tcbot.config import BotConfig, Settings

_CLOSE = object()


# =============================================================================
# Mock Classes
# =============================================================================


class MockWebSocket:
    """In-memory client connection.

    Iterating yields frames queued with ``feed``; ``close`` (from either side)
    ends the iteration like a real connection closing.
    """

    def __init__(self):
        self.closed = False
        self.sent: list[str] = []
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()

    def feed(self, frame: dict[str, Any] | str | bytes) -> None:
        """Queue an incoming frame (dicts are encoded as JSON text)."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._incoming.put_nowait(frame)

    def disconnect(self) -> None:
        """Simulate the remote end closing the connection."""
        self._incoming.put_nowait(_CLOSE)

    @property
    def sent_packets(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        frame = await self._incoming.get()
        if frame is _CLOSE:
            raise StopAsyncIteration
        return frame

    async def send(self, data: str) -> None:
        if self.closed:
            raise RuntimeError("WebSocket closed")
        self.sent.append(data)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSE)


class MockConnector:
    """Connection factory handing out MockWebSockets.

    ``failures`` connection attempts fail with ``error`` before any succeeds.
    """

    def __init__(self, failures: int = 0, error: Exception | None = None):
        self.failures = failures
        self.error = error or OSError("Connection refused")
        self.urls: list[str] = []
        self.sockets: list[MockWebSocket] = []

    async def __call__(self, url: str) -> MockWebSocket:
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise self.error
        ws = MockWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def latest(self) -> MockWebSocket:
        return self.sockets[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def connector() -> MockConnector:
    return MockConnector()


@pytest.fixture
def agent_connector() -> MockConnector:
    return MockConnector()


@pytest.fixture
def wait() -> Callable:
    return wait_until


@pytest.fixture
def bot_configs() -> list[BotConfig]:
    return [
        BotConfig(name="alpha", username="alpha_user", password="pw-a"),
        BotConfig(name="beta", username="beta_user", password="pw-b"),
        BotConfig(name="gamma", username="gamma_user", password="pw-c"),
    ]


@pytest.fixture
def settings(tmp_path, bot_configs) -> Settings:
    """Fast timings, temporary trace directory, three bots."""
    return Settings(
        _env_file=None,
        server_endpoint="ws://server.test/ws",
        agent_endpoint="ws://agent.test/",
        lobby_username="observer",
        lobby_password="observer-pw",
        reconnect_intervals=[0.01, 0.02],
        heartbeat_interval=60.0,
        response_interval=0.0,
        delay=0.0,
        bots=bot_configs,
        random_pick=False,
        trace_dir=str(tmp_path / "traces"),
    )


@pytest.fixture
def make_connector() -> Callable[..., MockConnector]:
    """Factory for connectors that fail a number of times first."""
    return MockConnector
