"""Transport registry and selection."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable

from iothub_device.errors import TransportNotImplementedError, UnsupportedTransportError

DEFAULT_TRANSPORT = "mqtt"
DEFAULT_KEEP_ALIVE = 60


class TransportKind(str, enum.Enum):
    MQTT = "mqtt"
    AMQP = "amqp"
    HTTP = "http"


class Transport:
    """Capability handed to the session bootstrapper."""

    kind: TransportKind

    def client_options(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class MQTTTransport(Transport):
    websockets: bool = False
    keep_alive: int = DEFAULT_KEEP_ALIVE
    kind: TransportKind = TransportKind.MQTT

    def client_options(self) -> dict[str, Any]:
        return {"websockets": self.websockets, "keep_alive": self.keep_alive}


@dataclass(frozen=True)
class TransportEntry:
    kind: TransportKind
    factory: Callable[[], Transport] | None

    @property
    def implemented(self) -> bool:
        return self.factory is not None


TRANSPORTS: dict[str, TransportEntry] = {
    TransportKind.MQTT.value: TransportEntry(TransportKind.MQTT, MQTTTransport),
    TransportKind.AMQP.value: TransportEntry(TransportKind.AMQP, None),
    TransportKind.HTTP.value: TransportEntry(TransportKind.HTTP, None),
}


def transport_names() -> list[str]:
    return list(TRANSPORTS)


def select_transport(name: str) -> Transport:
    entry = TRANSPORTS.get(name)
    if entry is None:
        raise UnsupportedTransportError(name)
    if entry.factory is None:
        raise TransportNotImplementedError(name)
    return entry.factory()
