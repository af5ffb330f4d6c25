"""JSON helpers that never raise on odd payload values."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any


def _default(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    return str(value)


def safe_json_dumps(value: Any, **kwargs: Any) -> str:
    """Serialize ``value`` to JSON, stringifying anything json cannot encode."""
    kwargs.setdefault("default", _default)
    try:
        return json.dumps(value, **kwargs)
    except (TypeError, ValueError):
        return json.dumps(str(value))


def log_event(level: int, message: str, *, logger: logging.Logger | None = None, **fields: Any) -> None:
    """Emit one structured JSON log line: ``{"message": ..., **fields}``."""
    payload = {"message": message, **fields}
    target = logger or logging.getLogger()
    try:
        target.log(level, safe_json_dumps(payload, sort_keys=True))
    except Exception as exc:
        target.log(level, f"log_event_serialization_failed: {exc} message={message}")


def truncate(text: str | None, limit: int = 1200) -> str:
    value = text or ""
    if len(value) <= limit:
        return value
    return value[:limit] + "...(truncated)"
