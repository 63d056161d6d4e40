"""Async utilities for safe task management.

Every background job the bridge spawns (socket run loops, heartbeat ticks,
login sequences, non-blocking connection drops) goes through
``create_safe_task`` so failures are logged instead of vanishing with the task.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Coroutine, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# The event loop only keeps weak references to tasks
_background_tasks: set[asyncio.Task] = set()


def create_safe_task(coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
    """Create an asyncio task that stays referenced until done and logs its failure.

    Example:
        create_safe_task(session.login(question), name="login:alice")
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)

    def handle_done(t: asyncio.Task) -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.error(
                f"Task {name or 'unnamed'} failed with {type(exc).__name__}: {exc}",
                exc_info=exc,
            )

    task.add_done_callback(handle_done)
    return task


async def cancel_task_safe(task: asyncio.Task | None, timeout: float = 5.0) -> bool:
    """Cancel ``task`` and wait up to ``timeout`` seconds for it to finish.

    Returns False only when the task ignored the cancellation for too long.
    """
    if task is None or task.done():
        return True

    task.cancel()
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.CancelledError:
        return True
    except asyncio.TimeoutError:
        logger.warning(f"Task cancellation timed out after {timeout}s")
        return False
    except Exception as e:
        logger.debug(f"Task raised exception during cancellation: {e}")
        return True

    return task.done()


def now_ms() -> int:
    """Current Unix time in milliseconds (the wire protocol's timestamp unit)."""
    return int(time.time() * 1000)
