"""Stored value (de)serialization.

The raw value column holds both plain strings and JSON-encoded composites.
They are told apart only by whether the text parses as JSON, so a plain
string that happens to be a JSON scalar ("123", "true") decodes to a number
or boolean. That ambiguity is kept for compatibility with existing rows.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel


def encode(value: Any) -> Any:
    """Encode a value for storage.

    Composites (dict, list, tuple, pydantic models) become JSON text, anything
    else is passed through unchanged.

    Examples:
        >>> encode({"a": 1})
        '{"a": 1}'
        >>> encode("Page Builder Pro")
        'Page Builder Pro'
    """
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, dict | list | tuple):
        return json.dumps(value, ensure_ascii=False)
    return value


def decode(raw: Any) -> Any:
    """Decode a stored value.

    Returns the parsed structure when ``raw`` is valid JSON, otherwise ``raw``
    verbatim.

    Examples:
        >>> decode('{"a": 1}')
        {'a': 1}
        >>> decode("hello")
        'hello'
        >>> decode("123")
        123
    """
    if not isinstance(raw, str | bytes | bytearray):
        return raw
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return raw


__all__ = ["encode", "decode"]
