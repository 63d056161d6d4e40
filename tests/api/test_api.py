"""Tests for the admin API endpoints."""

import pytest
from httpx import AsyncClient

from tcbot.bot.orchestrator import JoinOutcome
from tcbot.lobby.registry import Player, Room
from tcbot.utils.errors import BotNotFoundError, MultipleRoomsFoundError, RoomNotFoundError


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, test_client: AsyncClient):
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "X-Request-ID" in response.headers


class TestBots:
    @pytest.mark.asyncio
    async def test_list_bots(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.get_status.return_value = {
            "running": True,
            "total_count": 0,
            "state_counts": {"idle": 0},
            "bots": [],
        }

        response = await test_client.get("/bots")

        assert response.status_code == 200
        assert response.json()["running"] is True

    @pytest.mark.asyncio
    async def test_join(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.join.return_value = [
            JoinOutcome(bot="alpha", room_id=7, room_title="Friday", seat=1, success=True),
        ]

        response = await test_client.post("/bots/join", json={"room": "Fri", "num": 1, "delay": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["outcomes"][0]["seat"] == 1
        mock_orchestrator.join.assert_awaited_once_with(
            "Fri", bot=None, password=None, num=1, delay=2.0
        )

    @pytest.mark.asyncio
    async def test_join_partial_failure(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.join.return_value = [
            JoinOutcome(bot="alpha", room_id=7, room_title="Friday", seat=1, success=False),
        ]
        response = await test_client.post("/bots/join", json={"room": "Fri"})
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_join_room_not_found(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.join.side_effect = RoomNotFoundError("Monday")

        response = await test_client.post("/bots/join", json={"room": "Monday"})

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "ROOM_NOT_FOUND"
        assert error["details"] == {"pattern": "Monday"}

    @pytest.mark.asyncio
    async def test_join_ambiguous_room(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.join.side_effect = MultipleRoomsFoundError("Fri", [1, 2])
        response = await test_client.post("/bots/join", json={"room": "Fri"})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_join_invalid_pattern(self, test_client: AsyncClient):
        response = await test_client.post("/bots/join", json={"room": "("})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_kick(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.kick.return_value = ["alpha"]

        response = await test_client.post("/bots/kick", json={"names": ["alpha"], "force": True})

        assert response.json() == {"success": True, "bots": ["alpha"]}
        mock_orchestrator.kick.assert_awaited_once_with(["alpha"], force=True)

    @pytest.mark.asyncio
    async def test_delay(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.set_delay.return_value = ["beta"]

        response = await test_client.post("/bots/delay", json={"delay": 0.5, "bot": "beta"})

        assert response.json()["bots"] == ["beta"]
        mock_orchestrator.set_delay.assert_called_once_with(0.5, bot="beta")

    @pytest.mark.asyncio
    async def test_negative_delay_rejected(self, test_client: AsyncClient):
        response = await test_client.post("/bots/delay", json={"delay": -1})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_kill_unknown_bot(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.kill.side_effect = BotNotFoundError(["delta"])

        response = await test_client.post("/bots/kill", json={"names": ["delta"]})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "BOT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_reset_and_flush(self, test_client: AsyncClient, mock_orchestrator):
        assert (await test_client.post("/bots/reset")).status_code == 200
        mock_orchestrator.reset.assert_called_once()

        assert (await test_client.post("/bots/flush")).status_code == 200
        mock_orchestrator.flush.assert_awaited_once()


class TestApiKey:
    @pytest.fixture
    def api_settings(self, settings):
        return settings.model_copy(update={"admin_api_key": "secret"})

    @pytest.mark.asyncio
    async def test_missing_key_rejected(self, test_client: AsyncClient):
        response = await test_client.get("/bots")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"
        assert response.json()["traceId"]

    @pytest.mark.asyncio
    async def test_valid_key_accepted(self, test_client: AsyncClient, mock_orchestrator):
        mock_orchestrator.get_status.return_value = {
            "running": False,
            "total_count": 0,
            "state_counts": {},
            "bots": [],
        }
        response = await test_client.get("/bots", headers={"X-API-Key": "secret"})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_health_is_public(self, test_client: AsyncClient):
        assert (await test_client.get("/health")).status_code == 200


class TestLobby:
    @pytest.fixture(autouse=True)
    def rooms(self, lobby):
        lobby.registry.update_stats({"f": 5, "w": 2, "p": 4, "o": 0})
        lobby.registry.apply_snapshot([
            Room(id=1, title="Friday", players=[Player("ann"), None, None, None]),
            Room(id=2, title="Sunday", players=[Player(n) for n in "abcd"], start_time=1, round_count=8),
        ])

    @pytest.mark.asyncio
    async def test_structured_lobby(self, test_client: AsyncClient):
        response = await test_client.get("/lobby")

        assert response.status_code == 200
        data = response.json()
        assert data["connected"] is False
        assert data["stats"]["tables_in_play"] == 1.0
        assert [room["title"] for room in data["waiting"]] == ["Friday"]
        assert data["waiting"][0]["players"] == ["ann", None, None, None]
        assert [room["title"] for room in data["playing"]] == ["Sunday"]

    @pytest.mark.asyncio
    async def test_text_lobby(self, test_client: AsyncClient):
        response = await test_client.get("/lobby/text")

        assert response.status_code == 200
        assert response.text.splitlines()[0] == "- Waiting[5/2]:"
        assert "[0/8] Sunday (a, b, c, d)" in response.text

    @pytest.mark.asyncio
    async def test_text_lobby_filters(self, test_client: AsyncClient):
        response = await test_client.get("/lobby/text", params={"play": "true", "pattern": "Sun"})
        assert response.text.splitlines() == ["- Playing[1]:", "[0/8] Sunday (a, b, c, d)"]
