"""Device session built on the Azure IoT Hub device client."""

from __future__ import annotations

import base64
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from azure.iot.device import IoTHubDeviceClient, Message, MethodResponse, X509
from azure.iot.device.exceptions import CredentialError

from iothub_device.auth import AuthMode, ConnectionStringAuth, X509Auth, load_x509_material
from iothub_device.errors import (
    InvocationError,
    IoTHubDeviceError,
    SessionConnectionError,
    StreamError,
)
from iothub_device.subscription import Subscription
from iothub_device.transport import Transport
from iothub_device.twin import to_patch
from iothub_device.values import Payload

DEFAULT_QOS = 1
METHOD_STATUS_OK = 200
METHOD_STATUS_NOT_FOUND = 404
METHOD_STATUS_ERROR = 500
ANSWER_DRAIN_TIMEOUT = 5.0

MethodHandler = Callable[[Payload], Payload]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    payload: bytes
    properties: dict[str, str] = field(default_factory=dict)
    message_id: str = ""
    correlation_id: str = ""
    qos: int = DEFAULT_QOS

    def __post_init__(self) -> None:
        if self.qos not in (0, 1):
            raise ValueError(f"qos must be 0 or 1, got {self.qos}")


def message_record(message: Any) -> dict[str, Any]:
    """Render a received cloud-to-device message as a JSON-ready record."""
    data = message.data
    record: dict[str, Any] = {
        "message_id": message.message_id or "",
        "correlation_id": message.correlation_id or "",
        "content_type": message.content_type or "",
        "content_encoding": message.content_encoding or "",
        "properties": dict(message.custom_properties or {}),
    }
    if isinstance(data, str):
        record["payload"] = data
    else:
        raw = bytes(data or b"")
        try:
            record["payload"] = raw.decode("utf-8")
        except UnicodeDecodeError:
            record["payload"] = base64.b64encode(raw).decode("ascii")
            record["payload_encoding"] = "base64"
    return record


class DeviceSession:
    """One connected device identity and the operations run against it."""

    def __init__(self, client: Any) -> None:
        self._client = client
        self._lock = threading.Lock()
        self._methods: dict[str, MethodHandler] = {}
        self._subscriptions: list[Subscription] = []
        self._shutting_down = False
        self._answers = threading.Condition()
        self._pending_answers = 0

    def connect(self) -> None:
        try:
            self._client.connect()
        except Exception as exc:
            raise SessionConnectionError(f"unable to connect: {exc}") from exc
        self._client.on_connection_state_change = self._on_connection_state_change
        self._client.on_background_exception = self._on_background_exception
        logger.debug("device client connected")

    def _on_connection_state_change(self) -> None:
        if self._shutting_down:
            return
        if self._client.connected:
            logger.info("connection restored")
        else:
            logger.warning("connection lost, waiting for the client to reconnect")

    def _on_background_exception(self, exc: Exception) -> None:
        if isinstance(exc, CredentialError):
            logger.error("credentials rejected: %s", exc)
            self._close_subscriptions(StreamError(f"credentials rejected: {exc}"))
            return
        logger.warning("background error: %s", exc)

    def _close_subscriptions(self, err: Exception | None = None) -> None:
        with self._lock:
            subscriptions, self._subscriptions = self._subscriptions, []
        for sub in subscriptions:
            sub.close(err)

    def send_event(self, event: Event) -> None:
        message = Message(event.payload)
        if event.message_id:
            message.message_id = event.message_id
        if event.correlation_id:
            message.correlation_id = event.correlation_id
        message.custom_properties.update(event.properties)
        if event.qos != DEFAULT_QOS:
            logger.warning("qos %d requested; the device client publishes telemetry at qos 1", event.qos)
        self._client.send_message(message)
        logger.debug("sent event of %d byte(s)", len(event.payload))

    def _track(self, sub: Subscription) -> Subscription:
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def subscribe_events(self) -> Subscription[dict[str, Any]]:
        sub: Subscription[dict[str, Any]] = self._track(Subscription("events"))
        self._client.on_message_received = lambda message: sub.publish(message_record(message))
        return sub

    def subscribe_twin_updates(self) -> Subscription[dict[str, Any]]:
        sub: Subscription[dict[str, Any]] = self._track(Subscription("twin updates"))
        self._client.on_twin_desired_properties_patch_received = sub.publish
        return sub

    def register_method(self, name: str, handler: MethodHandler) -> None:
        if not name:
            raise InvocationError("method name must not be empty")
        with self._lock:
            if name in self._methods:
                raise InvocationError(f'method "{name}" is already registered')
            self._methods[name] = handler
        try:
            self._client.on_method_request_received = self._dispatch_method
        except Exception:
            with self._lock:
                self._methods.pop(name, None)
            raise
        logger.debug("registered method %s", name)

    def _dispatch_method(self, request: Any) -> None:
        # The client delivers requests one at a time; answer each on its own
        # thread so overlapping calls reach the handler concurrently.
        with self._answers:
            self._pending_answers += 1
        worker = threading.Thread(
            target=self._answer_method,
            args=(request,),
            name=f"method-{request.request_id}",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError:
            with self._answers:
                self._pending_answers -= 1
                self._answers.notify_all()
            raise

    def _answer_method(self, request: Any) -> None:
        try:
            self._send_answer(request)
        finally:
            with self._answers:
                self._pending_answers -= 1
                self._answers.notify_all()

    def _send_answer(self, request: Any) -> None:
        with self._lock:
            handler = self._methods.get(request.name)
        if handler is None:
            status, payload = METHOD_STATUS_NOT_FOUND, {"message": f'method "{request.name}" not registered'}
        else:
            try:
                status, payload = METHOD_STATUS_OK, handler(
                    {} if request.payload is None else request.payload
                )
            except Exception as exc:
                status, payload = METHOD_STATUS_ERROR, {"message": str(exc)}
        response = MethodResponse.create_from_method_request(request, status, payload)
        try:
            self._client.send_method_response(response)
        except Exception:
            logger.exception("unable to answer method %s (request %s)", request.name, request.request_id)

    def retrieve_twin_state(self) -> tuple[dict[str, Any], dict[str, Any]]:
        twin = self._client.get_twin()
        return dict(twin.get("desired") or {}), dict(twin.get("reported") or {})

    def update_twin_state(self, update: dict[str, Any]) -> int:
        self._client.patch_twin_reported_properties(to_patch(update))
        _, reported = self.retrieve_twin_state()
        version = reported.get("$version")
        if not isinstance(version, int):
            raise IoTHubDeviceError("twin response carries no reported $version")
        return version

    def _drain_answers(self, timeout: float) -> None:
        with self._answers:
            drained = self._answers.wait_for(lambda: self._pending_answers == 0, timeout=timeout)
            if not drained:
                logger.warning("shutting down with %d method answer(s) still pending", self._pending_answers)

    def shutdown(self, *, timeout: float = ANSWER_DRAIN_TIMEOUT) -> None:
        """Close the session once every dispatched method request is answered."""
        self._shutting_down = True
        self._close_subscriptions()
        self._drain_answers(timeout)
        try:
            self._client.shutdown()
        except Exception:
            logger.debug("device client shutdown failed", exc_info=True)


def _build_client(auth: AuthMode, transport: Transport) -> Any:
    options = transport.client_options()
    if isinstance(auth, X509Auth):
        return IoTHubDeviceClient.create_from_x509_certificate(
            x509=X509(cert_file=auth.cert_path, key_file=auth.key_path),
            hostname=auth.hostname,
            device_id=auth.device_id,
            **options,
        )
    if isinstance(auth, ConnectionStringAuth):
        return IoTHubDeviceClient.create_from_connection_string(auth.connection_string, **options)
    raise TypeError(f"unsupported auth mode {type(auth).__name__}")


def bootstrap_session(auth: AuthMode, transport: Transport) -> DeviceSession:
    """Construct and connect the session; nothing half-connected escapes."""
    if isinstance(auth, X509Auth):
        load_x509_material(auth)
    try:
        client = _build_client(auth, transport)
    except (TypeError, ValueError) as exc:
        raise SessionConnectionError(f"unable to create device client: {exc}") from exc

    session = DeviceSession(client)
    try:
        session.connect()
    except SessionConnectionError:
        try:
            client.shutdown()
        except Exception:
            logger.debug("device client shutdown failed", exc_info=True)
        raise
    logger.info("session established via %s", transport.kind.value)
    return session
