"""Structured record output."""

from __future__ import annotations

import json
from typing import IO, Any


def render_json(value: Any, *, compress: bool) -> str:
    if compress:
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return json.dumps(value, sort_keys=True, indent=2)


def output_json(value: Any, *, compress: bool, stdout: IO[str]) -> None:
    """Write one self-contained record and flush it."""
    print(render_json(value, compress=compress), file=stdout)
    stdout.flush()
