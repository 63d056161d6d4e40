"""Per-session packet trace.

Packets exchanged with the agent are buffered in memory and written out as a
JSON array, one file per flush, named ``<session>-<unix ms>.log``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from tcbot.utils.async_utils import now_ms
from tcbot.utils.json_utils import json_dumps_bytes

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    SEND = "send"
    RECEIVE = "receive"


@dataclass(frozen=True)
class TraceEntry:
    packet: dict[str, Any]
    direction: Direction
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {**self.packet, "type": self.direction.value}


class TraceBuffer:
    """Append-only buffer drained on flush."""

    def __init__(self, name: str, directory: str | Path):
        self.name = name
        self.directory = Path(directory)
        self._entries: list[TraceEntry] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, packet: dict[str, Any], direction: Direction) -> None:
        self._entries.append(TraceEntry(packet=dict(packet), direction=direction))

    def drain(self) -> list[TraceEntry]:
        entries, self._entries = self._entries, []
        return entries

    def path_for(self, timestamp: int) -> Path:
        return self.directory / f"{self.name}-{timestamp}.log"

    async def flush(self) -> Path | None:
        """Write buffered entries to a new file.

        Returns the written path, or None when there was nothing to write or
        the write failed. Entries drained before a failed write are lost.
        """
        async with self._lock:
            if not self._entries:
                return None

            entries = self.drain()
            path = self.path_for(now_ms())
            data = json_dumps_bytes([entry.to_dict() for entry in entries])
            try:
                await asyncio.to_thread(path.write_bytes, data)
            except OSError as e:
                logger.warning(f"[TRACE:{self.name}] Failed to write trace: {e}")
                return None

            logger.info(f"[TRACE:{self.name}] Trace written successfully ({len(entries)} packets)")
            return path
