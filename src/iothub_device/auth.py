"""Authentication mode resolution for the device session."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Union

from cryptography import x509
from cryptography.hazmat.primitives.serialization import load_pem_private_key
from cryptography.x509.oid import NameOID

from iothub_device.errors import ConfigurationError

CONNECTION_STRING_ENV_VAR = "DEVICE_CONNECTION_STRING"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionStringAuth:
    connection_string: str

    def __repr__(self) -> str:
        return "ConnectionStringAuth(connection_string=<redacted>)"


@dataclass(frozen=True)
class X509Auth:
    device_id: str
    hostname: str
    cert_path: str
    key_path: str


AuthMode = Union[ConnectionStringAuth, X509Auth]


def resolve_auth(
    *,
    cert_path: str | None = None,
    key_path: str | None = None,
    device_id: str | None = None,
    hostname: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AuthMode:
    """Pick the authentication mode from the available credential inputs.

    x509 wins when both the certificate and the key are given. Supplying only
    one of the two is an error rather than a silent fallback to the
    connection string, which is only ever read from the environment.
    """
    cert_path = (cert_path or "").strip()
    key_path = (key_path or "").strip()
    if cert_path and key_path:
        if not (hostname or "").strip():
            raise ConfigurationError("hostname is required for x509 authentication")
        if not (device_id or "").strip():
            raise ConfigurationError("device-id is required for x509 authentication")
        return X509Auth(
            device_id=device_id.strip(),
            hostname=hostname.strip(),
            cert_path=cert_path,
            key_path=key_path,
        )
    if cert_path:
        raise ConfigurationError("tls-key is required when tls-cert is set")
    if key_path:
        raise ConfigurationError("tls-cert is required when tls-key is set")

    source = os.environ if environ is None else environ
    connection_string = (source.get(CONNECTION_STRING_ENV_VAR) or "").strip()
    if not connection_string:
        raise ConfigurationError(f"${CONNECTION_STRING_ENV_VAR} is empty")
    return ConnectionStringAuth(connection_string=connection_string)


def _read_pem(path: str, label: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"unable to read {label} file: {path}") from exc


def load_x509_material(auth: X509Auth) -> x509.Certificate:
    """Parse the certificate and key so bad files fail before connecting."""
    cert_bytes = _read_pem(auth.cert_path, "tls-cert")
    try:
        certificate = x509.load_pem_x509_certificate(cert_bytes)
    except ValueError as exc:
        raise ConfigurationError(f"invalid x509 certificate: {auth.cert_path}") from exc

    key_bytes = _read_pem(auth.key_path, "tls-key")
    try:
        load_pem_private_key(key_bytes, password=None)
    except TypeError as exc:
        raise ConfigurationError(f"encrypted private keys are not supported: {auth.key_path}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"invalid private key: {auth.key_path}") from exc

    if certificate.not_valid_after_utc < datetime.now(timezone.utc):
        raise ConfigurationError(f"x509 certificate expired: {auth.cert_path}")

    common_names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if common_names and common_names[0].value != auth.device_id:
        logger.warning(
            "certificate CN %r does not match device id %r",
            common_names[0].value,
            auth.device_id,
        )
    return certificate
