from __future__ import annotations

import pytest

from iothub_device.cli.config import CLIConfig, ConfigError, load_cli_config


def test_defaults_when_default_file_missing(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr("iothub_device.cli.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.toml")
    assert load_cli_config() == CLIConfig()
    assert CLIConfig().transport == "mqtt"


def test_explicit_missing_file_is_an_error(tmp_path) -> None:
    with pytest.raises(ConfigError, match="config file not found"):
        load_cli_config(tmp_path / "missing.toml")


def test_file_values_used_when_flags_absent(tmp_path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        '[device]\nhostname = "hub.example.net"\ndevice_id = "device-1"\ncompress = "yes"\n',
        encoding="utf-8",
    )
    config = load_cli_config(config_path, overrides={"hostname": None, "compress": None})
    assert config.hostname == "hub.example.net"
    assert config.device_id == "device-1"
    assert config.compress is True


def test_flags_override_file_values(tmp_path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('transport = "amqp"\ndebug = false\n', encoding="utf-8")
    config = load_cli_config(config_path, overrides={"transport": "mqtt", "debug": True})
    assert config.transport == "mqtt"
    assert config.debug is True


def test_connection_string_never_read_from_file(tmp_path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('connection_string = "HostName=h;SharedAccessKey=k"\n', encoding="utf-8")
    with pytest.raises(ConfigError, match="DEVICE_CONNECTION_STRING"):
        load_cli_config(config_path)


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("debug = \"sometimes\"\n", "debug must be a boolean"),
        ("hostname = 42\n", "hostname must be a string"),
        ("transport = \"\"\n", "transport must not be empty"),
        ("device = 1\n", r"\[device\] must be a table"),
        ("not toml at all\n", "invalid TOML"),
    ],
)
def test_invalid_file_values_rejected(tmp_path, content: str, message: str) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_cli_config(config_path)


def test_unknown_override_rejected(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr("iothub_device.cli.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.toml")
    with pytest.raises(ConfigError, match="unknown setting"):
        load_cli_config(overrides={"qos": 1})
