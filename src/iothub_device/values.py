"""Supported value kinds for method payloads."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Union

from iothub_device.errors import PayloadValueError

Value = Union[str, int, float, bool, None, Dict[str, "Value"]]
Payload = Dict[str, Value]

_SCALARS = (str, int, float, bool, type(None))


def _check(value: Any, path: str) -> None:
    if isinstance(value, _SCALARS):
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise PayloadValueError(f"{path}: keys must be strings, got {type(key).__name__}")
            _check(item, f"{path}.{key}")
        return
    raise PayloadValueError(f"{path}: unsupported value type {type(value).__name__}")


def check_payload(payload: Any) -> Payload:
    """Validate a payload is a string-keyed mapping of supported values."""
    if not isinstance(payload, Mapping):
        raise PayloadValueError(f"payload must be an object, got {type(payload).__name__}")
    _check(payload, "$")
    return dict(payload)
