"""Positional argument helpers."""

from __future__ import annotations

from typing import Sequence

from iothub_device.errors import InvalidUsageError


def args_to_map(tokens: Sequence[str]) -> dict[str, str]:
    """Pair ``KEY VALUE`` tokens into a mapping, preserving order."""
    if len(tokens) % 2 != 0:
        raise InvalidUsageError("arguments must be KEY VALUE pairs")
    result: dict[str, str] = {}
    for index in range(0, len(tokens), 2):
        key = tokens[index]
        if not key:
            raise InvalidUsageError("keys must not be empty")
        result[key] = tokens[index + 1]
    return result
