"""API dependencies for authentication and shared services."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from tcbot.bot.orchestrator import BotOrchestrator, get_bot_orchestrator
from tcbot.config import Settings, get_settings
from tcbot.lobby.client import LobbyClient
from tcbot.utils.errors import BotError, ErrorCode

logger = logging.getLogger(__name__)


def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """Check the X-API-Key header when an admin key is configured."""
    if not settings.admin_api_key:
        return

    if x_api_key != settings.admin_api_key:
        logger.warning("Rejected admin request with invalid API key")
        raise BotError(ErrorCode.UNAUTHORIZED, "Invalid API key")


def get_orchestrator(request: Request) -> BotOrchestrator:
    """The orchestrator started by the application lifespan."""
    orchestrator = getattr(request.app.state, "bot_orchestrator", None)
    return orchestrator or get_bot_orchestrator()


def get_lobby(request: Request) -> LobbyClient:
    lobby = getattr(request.app.state, "lobby", None)
    if lobby is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": {
                    "code": "LOBBY_UNAVAILABLE",
                    "message": "Lobby observer is not running",
                    "details": {},
                }
            },
        )
    return lobby


# Type aliases for dependency injection
Orchestrator = Annotated[BotOrchestrator, Depends(get_orchestrator)]
Lobby = Annotated[LobbyClient, Depends(get_lobby)]
