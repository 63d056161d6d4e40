"""Structured logging for the bridge, built on structlog.

Module code logs through the stdlib ``logging.getLogger(__name__)`` and the
ASGI layer through ``get_logger``; both end up in one stdout handler rendered
as JSON in production and as coloured console lines otherwise. The request id
bound by the HTTP middleware is merged into every record via contextvars.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

# Libraries that log every frame or request at INFO
_NOISY_LOGGERS = {
    "websockets": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def _processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    processors.append(
        structlog.processors.format_exc_info if json_logs else structlog.dev.set_exc_info
    )
    return processors


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Route structlog and stdlib records through a single stdout handler."""
    shared = _processors(json_logs)
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level.upper())

    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind values (e.g. ``request_id``) to every subsequent record in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
