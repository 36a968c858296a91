"""Dot-notation extraction over decoded payloads.

Used by the dynamic and external strategies to pick a single value out of a
query row or API response:

    apply_transform({"bpi": {"EUR": {"rate": "123.45"}}}, "bpi.EUR.rate")
    # -> "123.45"

This is a best-effort lookup: a missing segment yields None, never an error.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


def parse_transform_path(path: str) -> list[str]:
    """Split a dot-notation path into segments, dropping empty ones."""
    return [segment for segment in path.strip().split(".") if segment]


def apply_transform(data: Any, path: str) -> Any:
    """Walk ``data`` along ``path`` and return the value found, or None.

    Each segment descends into a mapping key, a sequence index (numeric
    segment) or an object attribute, in that order.
    """
    result = data
    for segment in parse_transform_path(path):
        if isinstance(result, Mapping):
            if segment not in result:
                return None
            result = result[segment]
        elif isinstance(result, Sequence) and not isinstance(result, str | bytes):
            if not segment.isdigit() or int(segment) >= len(result):
                return None
            result = result[int(segment)]
        elif result is not None and not isinstance(result, str | bytes | int | float):
            if segment.startswith("_") or not hasattr(result, segment):
                return None
            result = getattr(result, segment)
        else:
            return None
    return result


__all__ = ["apply_transform", "parse_transform_path"]
