"""FastAPI application entry point.

Runs the lobby observer and every configured bot in-process and exposes the
operator commands over a small admin API.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from starlette.middleware.base import BaseHTTPMiddleware

from tcbot.api import bots_router, lobby_router
from tcbot.bot.orchestrator import init_bot_orchestrator, shutdown_bot_orchestrator
from tcbot.config import get_settings
from tcbot.lobby.client import LobbyClient
from tcbot.lobby.registry import RoomRegistry
from tcbot.logging_config import bind_context, clear_context, configure_logging, get_logger
from tcbot.utils.errors import BotError, ErrorCode
from tcbot.utils.json_utils import ORJSONResponse

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.app_env == "production",
)
logger = get_logger(__name__)

VERSION = "1.0.0"


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting application...")

    registry = RoomRegistry()

    if settings.lobby_username:
        logger.info("Starting lobby observer...")
        lobby = LobbyClient(settings, registry)
        await lobby.start()
        _app.state.lobby = lobby
    else:
        logger.warning("LOBBY_USERNAME not configured - lobby observer disabled")

    logger.info("Starting bot orchestrator...")
    _app.state.bot_orchestrator = await init_bot_orchestrator(registry)
    logger.info(f"Application startup complete ({len(settings.bots)} bots configured)")

    yield

    logger.info("Shutting down application...")
    try:
        await shutdown_bot_orchestrator()
        lobby = getattr(_app.state, "lobby", None)
        if lobby is not None:
            await lobby.close()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Tziakcha Bot Bridge",
    version=VERSION,
    description="Bridges game server accounts to external decision agents",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add X-Request-ID to responses and bind it to the logging context."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_context(request_id=request_id)
        start_time = datetime.now(timezone.utc)

        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers["X-Request-ID"] = request_id
        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Duration: {duration:.3f}s"
        )
        return response


app.add_middleware(RequestIDMiddleware)


# =============================================================================
# Error Handlers
# =============================================================================


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


_BOT_ERROR_STATUS = {
    ErrorCode.INVALID_REQUEST.value: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNAUTHORIZED.value: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.BOT_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.ROOM_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.MULTIPLE_ROOMS_FOUND.value: status.HTTP_409_CONFLICT,
    ErrorCode.NO_EMPTY_SEAT.value: status.HTTP_409_CONFLICT,
    ErrorCode.NO_AVAILABLE_BOT.value: status.HTTP_409_CONFLICT,
}


@app.exception_handler(BotError)
async def bot_error_handler(request: Request, exc: BotError) -> ORJSONResponse:
    """Handle bot command errors."""
    trace_id = get_request_id(request)
    status_code = _BOT_ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.warning("bot_error", code=exc.code, message=exc.message, trace_id=trace_id)

    return ORJSONResponse(
        status_code=status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> ORJSONResponse:
    """Handle HTTP exceptions."""
    trace_id = get_request_id(request)

    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = dict(exc.detail)
        content["traceId"] = trace_id
    else:
        content = create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Handle unexpected exceptions."""
    trace_id = get_request_id(request)

    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        trace_id=trace_id,
        exc_info=True,
    )

    message = "Internal server error"
    if settings.app_env != "production":
        message = f"{type(exc).__name__}: {exc}"

    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code=ErrorCode.INTERNAL_ERROR.value,
            message=message,
            trace_id=trace_id,
        ),
    )


# =============================================================================
# Health Check
# =============================================================================


@app.get(
    "/health",
    tags=["Health"],
    summary="Health check endpoint",
    response_model=dict,
)
async def health_check(request: Request) -> dict[str, Any]:
    """Check application health status.

    Returns:
        Overall status plus lobby connectivity and per-status bot counts.
    """
    orchestrator = getattr(request.app.state, "bot_orchestrator", None)
    lobby = getattr(request.app.state, "lobby", None)

    health_status: dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "services": {
            "lobby": "disabled",
            "bots": {},
        },
    }

    if lobby is not None:
        health_status["services"]["lobby"] = "connected" if lobby.socket.connected else "connecting"
        if not lobby.socket.connected:
            health_status["status"] = "degraded"

    if orchestrator is not None:
        health_status["services"]["bots"] = orchestrator.get_status()["state_counts"]

    return health_status


app.include_router(bots_router)
app.include_router(lobby_router)


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "tcbot.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
