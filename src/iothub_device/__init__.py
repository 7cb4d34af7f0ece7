"""iothub-device public surface."""

from iothub_device.auth import (
    CONNECTION_STRING_ENV_VAR,
    AuthMode,
    ConnectionStringAuth,
    X509Auth,
    load_x509_material,
    resolve_auth,
)
from iothub_device.consumer import consume_subscription
from iothub_device.errors import (
    ConfigurationError,
    InvalidUsageError,
    InvocationError,
    IoTHubDeviceError,
    OperationCancelledError,
    PayloadValueError,
    SessionConnectionError,
    StreamError,
    TransportNotImplementedError,
    UnsupportedTransportError,
)
from iothub_device.methods import MethodResponderBridge
from iothub_device.session import DeviceSession, Event, bootstrap_session
from iothub_device.subscription import CancelToken, Subscription
from iothub_device.transport import MQTTTransport, Transport, TransportKind, select_transport
from iothub_device.twin import DELETE, encode_twin_update, render_twin_state, to_patch

__all__ = [
    "IoTHubDeviceError",
    "ConfigurationError",
    "UnsupportedTransportError",
    "TransportNotImplementedError",
    "SessionConnectionError",
    "StreamError",
    "InvocationError",
    "PayloadValueError",
    "InvalidUsageError",
    "OperationCancelledError",
    "CONNECTION_STRING_ENV_VAR",
    "AuthMode",
    "ConnectionStringAuth",
    "X509Auth",
    "resolve_auth",
    "load_x509_material",
    "Transport",
    "TransportKind",
    "MQTTTransport",
    "select_transport",
    "DeviceSession",
    "Event",
    "bootstrap_session",
    "Subscription",
    "CancelToken",
    "consume_subscription",
    "MethodResponderBridge",
    "DELETE",
    "encode_twin_update",
    "to_patch",
    "render_twin_state",
]
