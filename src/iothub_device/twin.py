"""Twin state encoding for command-line updates."""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence, Union

from iothub_device.args import args_to_map

NULL_TOKEN = "null"


class DeleteMarker:
    """Marks a reported property for removal; distinct from an absent key."""

    _instance: DeleteMarker | None = None

    def __new__(cls) -> DeleteMarker:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE"

    def __bool__(self) -> bool:
        return False


DELETE = DeleteMarker()

TwinUpdate = dict[str, Union[str, DeleteMarker]]


def encode_twin_update(tokens: Sequence[str]) -> TwinUpdate:
    pairs = args_to_map(tokens)
    return {key: DELETE if value == NULL_TOKEN else value for key, value in pairs.items()}


def to_patch(update: Mapping[str, Any]) -> dict[str, Any]:
    """Translate delete markers into the JSON nulls the hub expects."""
    return {key: None if value is DELETE else value for key, value in update.items()}


def render_twin_state(desired: Mapping[str, Any], reported: Mapping[str, Any]) -> str:
    return "\n".join(
        [
            "desired:  " + json.dumps(desired, sort_keys=True, separators=(",", ":")),
            "reported: " + json.dumps(reported, sort_keys=True, separators=(",", ":")),
        ]
    )
