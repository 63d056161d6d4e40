"""Bot command API endpoints.

Protected by the X-API-Key header when ``admin_api_key`` is configured.
"""

import logging

from fastapi import APIRouter, Depends

from tcbot.api.deps import Orchestrator, verify_api_key
from tcbot.schemas import (
    BotListResponse,
    CommandResponse,
    DelayRequest,
    ErrorResponse,
    JoinOutcomeResponse,
    JoinRequest,
    JoinResponse,
    KickRequest,
    KillRequest,
)

router = APIRouter(
    prefix="/bots",
    tags=["Bots"],
    dependencies=[Depends(verify_api_key)],
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
)
logger = logging.getLogger(__name__)


@router.get("", response_model=BotListResponse)
async def list_bots(orchestrator: Orchestrator):
    """Status of every configured bot."""
    return orchestrator.get_status()


@router.post(
    "/join",
    response_model=JoinResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Room or bot not found"},
        409: {"model": ErrorResponse, "description": "Ambiguous room, no seat or no idle bot"},
    },
)
async def join_room(request: JoinRequest, orchestrator: Orchestrator):
    """Seat idle bots in the waiting room whose title matches ``room``.

    - Exactly one waiting room must match
    - Bots join one at a time and stop at the first failure
    """
    outcomes = await orchestrator.join(
        request.room,
        bot=request.bot,
        password=request.password,
        num=request.num,
        delay=request.delay,
    )
    return JoinResponse(
        success=bool(outcomes) and all(outcome.success for outcome in outcomes),
        outcomes=[
            JoinOutcomeResponse(
                bot=outcome.bot,
                room_id=outcome.room_id,
                room_title=outcome.room_title,
                seat=outcome.seat,
                success=outcome.success,
            )
            for outcome in outcomes
        ],
    )


@router.post("/kick", response_model=CommandResponse)
async def kick_bots(request: KickRequest, orchestrator: Orchestrator):
    """Make bots leave their rooms; playing bots only with ``force``."""
    kicked = await orchestrator.kick(request.names or None, force=request.force)
    return CommandResponse(success=bool(kicked), bots=kicked)


@router.post(
    "/delay",
    response_model=CommandResponse,
    responses={404: {"model": ErrorResponse, "description": "Bot not found"}},
)
async def set_delay(request: DelayRequest, orchestrator: Orchestrator):
    names = orchestrator.set_delay(request.delay, bot=request.bot)
    return CommandResponse(bots=names)


@router.post("/reset", response_model=CommandResponse)
async def reset_bots(orchestrator: Orchestrator):
    """Force every bot back to idle and resume routing to killed agents."""
    orchestrator.reset()
    logger.info("All bots reset to idle")
    return CommandResponse(bots=[session.name for session in orchestrator.sessions])


@router.post(
    "/kill",
    response_model=CommandResponse,
    responses={404: {"model": ErrorResponse, "description": "Bot not found"}},
)
async def kill_bots(request: KillRequest, orchestrator: Orchestrator):
    """Drop bot connections; they reconnect on their schedule."""
    killed = orchestrator.kill(request.names, all_bots=request.all)
    return CommandResponse(bots=killed)


@router.post("/flush", response_model=CommandResponse)
async def flush_traces(orchestrator: Orchestrator):
    """Write out every bot's pending packet trace."""
    await orchestrator.flush()
    return CommandResponse(bots=[session.name for session in orchestrator.sessions])
