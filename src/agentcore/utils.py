"""Small JSON helpers shared by the renderer and the tool dispatcher."""

from __future__ import annotations

import json
from typing import Any


def try_parse_json(value: Any) -> Any:
    """Parse a JSON string, returning the original value if parsing fails."""
    if not isinstance(value, (str, bytes, bytearray)):
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value


def to_json(value: Any) -> str:
    """Serialize to compact JSON, keeping non-ASCII characters as-is."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def ensure_string(value: Any) -> str:
    """Coerce a value to text: None becomes "", strings pass through."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return to_json(value)
