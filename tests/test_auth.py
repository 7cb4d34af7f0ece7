from __future__ import annotations

import logging

import pytest

from iothub_device.auth import ConnectionStringAuth, X509Auth, load_x509_material, resolve_auth
from iothub_device.errors import ConfigurationError

CONNECTION_STRING = "HostName=hub.example.net;DeviceId=device-1;SharedAccessKey=c2VjcmV0"


def test_x509_selected_when_all_fields_present() -> None:
    auth = resolve_auth(
        cert_path="device.pem",
        key_path="device.key",
        device_id="device-1",
        hostname="hub.example.net",
        environ={"DEVICE_CONNECTION_STRING": CONNECTION_STRING},
    )
    assert auth == X509Auth(
        device_id="device-1",
        hostname="hub.example.net",
        cert_path="device.pem",
        key_path="device.key",
    )


def test_x509_requires_hostname() -> None:
    with pytest.raises(ConfigurationError, match="hostname is required"):
        resolve_auth(cert_path="device.pem", key_path="device.key", device_id="device-1")


def test_x509_requires_device_id() -> None:
    with pytest.raises(ConfigurationError, match="device-id is required"):
        resolve_auth(cert_path="device.pem", key_path="device.key", hostname="hub.example.net")


@pytest.mark.parametrize(
    ("cert_path", "key_path", "missing"),
    [("device.pem", "", "tls-key"), ("", "device.key", "tls-cert")],
)
def test_half_x509_input_never_falls_back(cert_path: str, key_path: str, missing: str) -> None:
    with pytest.raises(ConfigurationError, match=missing):
        resolve_auth(
            cert_path=cert_path,
            key_path=key_path,
            device_id="device-1",
            hostname="hub.example.net",
            environ={"DEVICE_CONNECTION_STRING": CONNECTION_STRING},
        )


def test_connection_string_read_from_environment() -> None:
    auth = resolve_auth(environ={"DEVICE_CONNECTION_STRING": f"  {CONNECTION_STRING}\n"})
    assert auth == ConnectionStringAuth(connection_string=CONNECTION_STRING)
    assert "c2VjcmV0" not in repr(auth)


@pytest.mark.parametrize("environ", [{}, {"DEVICE_CONNECTION_STRING": ""}, {"DEVICE_CONNECTION_STRING": "  "}])
def test_missing_connection_string_is_configuration_error(environ: dict[str, str]) -> None:
    with pytest.raises(ConfigurationError, match=r"\$DEVICE_CONNECTION_STRING is empty"):
        resolve_auth(environ=environ)


def test_process_environment_used_by_default(monkeypatch) -> None:
    monkeypatch.setenv("DEVICE_CONNECTION_STRING", CONNECTION_STRING)
    assert resolve_auth() == ConnectionStringAuth(connection_string=CONNECTION_STRING)


def test_load_x509_material_accepts_matching_pair(write_x509_pair, caplog) -> None:
    cert_path, key_path = write_x509_pair("device-1")
    auth = X509Auth("device-1", "hub.example.net", str(cert_path), str(key_path))
    with caplog.at_level(logging.WARNING, logger="iothub_device.auth"):
        certificate = load_x509_material(auth)
    assert certificate.serial_number > 0
    assert caplog.records == []


def test_load_x509_material_warns_on_common_name_mismatch(write_x509_pair, caplog) -> None:
    cert_path, key_path = write_x509_pair("other-device")
    auth = X509Auth("device-1", "hub.example.net", str(cert_path), str(key_path))
    with caplog.at_level(logging.WARNING, logger="iothub_device.auth"):
        load_x509_material(auth)
    assert "does not match device id" in caplog.text


def test_load_x509_material_rejects_expired_certificate(write_x509_pair) -> None:
    cert_path, key_path = write_x509_pair("device-1", valid_days=-1)
    auth = X509Auth("device-1", "hub.example.net", str(cert_path), str(key_path))
    with pytest.raises(ConfigurationError, match="expired"):
        load_x509_material(auth)


def test_load_x509_material_rejects_garbage(tmp_path, write_x509_pair) -> None:
    _, key_path = write_x509_pair("device-1")
    bogus = tmp_path / "bogus.pem"
    bogus.write_text("not a certificate\n", encoding="utf-8")
    auth = X509Auth("device-1", "hub.example.net", str(bogus), str(key_path))
    with pytest.raises(ConfigurationError, match="invalid x509 certificate"):
        load_x509_material(auth)


def test_load_x509_material_reports_missing_key(tmp_path, write_x509_pair) -> None:
    cert_path, _ = write_x509_pair("device-1")
    auth = X509Auth("device-1", "hub.example.net", str(cert_path), str(tmp_path / "missing.key"))
    with pytest.raises(ConfigurationError, match="unable to read tls-key file"):
        load_x509_material(auth)
