"""Test fixtures for admin API tests."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tcbot.api.deps import get_lobby, get_orchestrator
from tcbot.bot.orchestrator import BotOrchestrator
from tcbot.config import get_settings
from tcbot.lobby.client import LobbyClient
from tcbot.lobby.registry import RoomRegistry
from tcbot.main import app


@pytest.fixture
def mock_orchestrator() -> MagicMock:
    orchestrator = MagicMock(spec=BotOrchestrator)
    orchestrator.join = AsyncMock(return_value=[])
    orchestrator.kick = AsyncMock(return_value=[])
    orchestrator.flush = AsyncMock()
    orchestrator.sessions = []
    return orchestrator


@pytest.fixture
def lobby(settings, connector) -> LobbyClient:
    return LobbyClient(settings, RoomRegistry(), connector=connector)


@pytest.fixture
def api_settings(settings):
    return settings


@pytest_asyncio.fixture
async def test_client(api_settings, mock_orchestrator, lobby) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the orchestrator and lobby replaced."""
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_orchestrator] = lambda: mock_orchestrator
    app.dependency_overrides[get_lobby] = lambda: lobby

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
