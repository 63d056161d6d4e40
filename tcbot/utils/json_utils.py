"""JSON utilities using orjson.

Both wire protocols (game server and agent) are JSON, and trace files are
JSON arrays, so every encode/decode in the bridge goes through here.

Usage:
    from tcbot.utils.json_utils import json_dumps, json_loads, ORJSONResponse

    packet = json_loads('{"m": 1, "r": 2}')
    frame = json_dumps({"m": 5, "t": 1700000000000})
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

import orjson
from fastapi.responses import JSONResponse


def _default_serializer(obj: Any) -> Any:
    """Custom serializer for types not natively supported by orjson."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, bytes):
        return obj.decode("utf-8")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def json_dumps(data: Any) -> str:
    """Serialize data to a JSON string (the text frame format on both sockets)."""
    return json_dumps_bytes(data).decode("utf-8")


def json_dumps_bytes(data: Any) -> bytes:
    """Serialize data to JSON bytes using orjson.

    Args:
        data: Data to serialize

    Returns:
        JSON bytes (used for trace files)
    """
    return orjson.dumps(
        data,
        default=_default_serializer,
        option=orjson.OPT_UTC_Z | orjson.OPT_NON_STR_KEYS,
    )


def json_loads(data: str | bytes) -> Any:
    """Deserialize JSON string/bytes to Python object.

    Args:
        data: JSON string or bytes

    Returns:
        Deserialized Python object

    Raises:
        orjson.JSONDecodeError: If the data is not valid JSON
    """
    return orjson.loads(data)


class ORJSONResponse(JSONResponse):
    """FastAPI response class using orjson for serialization."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        """Render content to JSON bytes."""
        return json_dumps_bytes(content)
