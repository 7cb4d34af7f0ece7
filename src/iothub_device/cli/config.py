"""Configuration helpers for the iothub-device CLI."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from iothub_device.errors import ConfigurationError
from iothub_device.transport import DEFAULT_TRANSPORT

DEFAULT_CONFIG_PATH = Path.home() / ".iothub_device" / "config.toml"

_STRING_FIELDS = ("transport", "tls_cert", "tls_key", "device_id", "hostname")
_BOOL_FIELDS = ("debug", "compress")


@dataclass(frozen=True)
class CLIConfig:
    debug: bool = False
    compress: bool = False
    transport: str = DEFAULT_TRANSPORT
    tls_cert: str = ""
    tls_key: str = ""
    device_id: str = ""
    hostname: str = ""


class ConfigError(ConfigurationError):
    """Raised when CLI config is invalid."""


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {path}: {exc}") from exc


def _to_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    raise ConfigError(f"{field_name} must be a boolean")


def _file_settings(path: str | Path | None) -> dict[str, Any]:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        if path:
            raise ConfigError(f"config file not found: {config_path}")
        return {}

    parsed = _load_toml(config_path)
    section = parsed.get("device")
    if isinstance(section, dict):
        source = section
    elif section is None:
        source = parsed
    else:
        raise ConfigError("[device] must be a table")

    if "connection_string" in source:
        raise ConfigError("connection_string is only read from $DEVICE_CONNECTION_STRING")

    settings: dict[str, Any] = {}
    for name in _STRING_FIELDS:
        if name in source:
            value = source[name]
            if not isinstance(value, str):
                raise ConfigError(f"{name} must be a string")
            settings[name] = value.strip()
    for name in _BOOL_FIELDS:
        if name in source:
            settings[name] = _to_bool(source[name], name)
    return settings


def load_cli_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> CLIConfig:
    """Layer command-line overrides on the config file on built-in defaults.

    Overrides set to ``None`` (flag not given) leave the lower layer intact.
    """
    settings = _file_settings(path)
    for name, value in (overrides or {}).items():
        if value is None:
            continue
        if name not in _STRING_FIELDS and name not in _BOOL_FIELDS:
            raise ConfigError(f"unknown setting: {name}")
        settings[name] = value

    transport = str(settings.get("transport", DEFAULT_TRANSPORT)).strip()
    if not transport:
        raise ConfigError("transport must not be empty")
    settings["transport"] = transport
    return CLIConfig(**settings)
