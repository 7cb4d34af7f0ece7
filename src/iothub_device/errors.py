"""Device CLI error types."""

from __future__ import annotations


class IoTHubDeviceError(RuntimeError):
    """Base device CLI error."""


class ConfigurationError(IoTHubDeviceError):
    """Authentication or transport inputs are missing or invalid."""


class UnsupportedTransportError(ConfigurationError):
    """Transport name is not in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f'unknown transport "{name}"')
        self.name = name


class TransportNotImplementedError(ConfigurationError):
    """Transport name is recognized but has no implementation."""

    def __init__(self, name: str) -> None:
        super().__init__(f'transport "{name}" is not implemented')
        self.name = name


class SessionConnectionError(IoTHubDeviceError):
    """Device client could not be constructed or connected."""


class StreamError(IoTHubDeviceError):
    """A subscription ended with an error."""


class InvocationError(IoTHubDeviceError):
    """A direct method invocation could not be answered."""


class PayloadValueError(InvocationError, ValueError):
    """Payload holds a value outside the supported kinds."""


class InvalidUsageError(IoTHubDeviceError):
    """Command-line arguments do not match the command's usage."""


class OperationCancelledError(IoTHubDeviceError):
    """The governing cancel token fired while waiting."""

    def __init__(self, reason: str = "operation cancelled") -> None:
        super().__init__(reason)
        self.reason = reason
