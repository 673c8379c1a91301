"""Helpers for pulling typed values out of loosely shaped relay JSON."""

from __future__ import annotations

import json
from typing import Any

import httpx


def extract_error_body(response: httpx.Response) -> Any:
    """Return structured error details if available, else a trimmed text body."""

    try:
        return response.json()
    except ValueError:
        text = getattr(response, "text", None)
        if text:
            stripped = text.strip()
            if stripped:
                return stripped
        return None


def as_int(value: Any) -> int | None:
    """JSON integers only; booleans and floats do not count."""
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def id_string(value: Any) -> str | None:
    number = as_int(value)
    return str(number) if number is not None else None


def parse_embedded_json(value: Any) -> Any:
    """Decode a JSON document stored inside a string field; ``None`` when unreadable."""
    if not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except ValueError:
        return None


__all__ = [
    "as_bool",
    "as_int",
    "as_str",
    "extract_error_body",
    "id_string",
    "parse_embedded_json",
]
