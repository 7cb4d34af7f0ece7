from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat
from cryptography.x509.oid import NameOID


class FakeDeviceClient:
    """Stands in for IoTHubDeviceClient; records every call."""

    def __init__(self) -> None:
        self.connected = False
        self.connect_error: Exception | None = None
        self.shutdown_calls = 0
        self.sent: list[Any] = []
        self.responses: list[Any] = []
        self.patches: list[dict] = []
        self.twin: dict[str, dict] = {
            "desired": {"interval": 30, "$version": 3},
            "reported": {"color": "red", "$version": 7},
        }
        self.on_message_received = None
        self.on_twin_desired_properties_patch_received = None
        self.on_method_request_received = None
        self.on_connection_state_change = None

    def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def shutdown(self) -> None:
        self.shutdown_calls += 1
        self.connected = False

    def send_message(self, message: Any) -> None:
        self.sent.append(message)

    def send_method_response(self, response: Any) -> None:
        self.responses.append(response)

    def get_twin(self) -> dict:
        return {key: dict(value) for key, value in self.twin.items()}

    def patch_twin_reported_properties(self, patch: dict) -> None:
        self.patches.append(patch)
        reported = self.twin["reported"]
        for key, value in patch.items():
            if value is None:
                reported.pop(key, None)
            else:
                reported[key] = value
        reported["$version"] += 1


@pytest.fixture
def fake_client() -> FakeDeviceClient:
    return FakeDeviceClient()


@pytest.fixture
def write_x509_pair(tmp_path: Path) -> Callable[..., tuple[Path, Path]]:
    def _write(common_name: str = "device-1", *, valid_days: int = 30) -> tuple[Path, Path]:
        key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        now = datetime.now(timezone.utc)
        certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=2))
            .not_valid_after(now + timedelta(days=valid_days))
            .sign(key, hashes.SHA256())
        )
        cert_path = tmp_path / f"{common_name}.cert.pem"
        key_path = tmp_path / f"{common_name}.key.pem"
        cert_path.write_bytes(certificate.public_bytes(Encoding.PEM))
        key_path.write_bytes(key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()))
        return cert_path, key_path

    return _write


def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        time.sleep(0.01)


@pytest.fixture
def wait_until() -> Callable[..., None]:
    return _wait_until
