"""Helpers for JSON text columns."""
from __future__ import annotations

import json
from typing import Any

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Decode *value*, falling back to *default* (``{}`` if omitted) on bad or empty input."""
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def json_object(value: str | None) -> dict[str, Any]:
    """Submission payloads must be objects; a list, scalar or bad text becomes ``{}``."""
    parsed = json_parse(value, {})
    return parsed if isinstance(parsed, dict) else {}
