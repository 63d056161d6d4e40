"""API routers."""

from tcbot.api.bots import router as bots_router
from tcbot.api.lobby import router as lobby_router

__all__ = [
    "bots_router",
    "lobby_router",
]
