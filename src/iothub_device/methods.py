"""Interactive responder for direct method invocations.

Invocations arrive from session threads, possibly overlapping, while the
answers come from a single operator typing into one input stream. The bridge
serializes each prompt/read/parse exchange behind a lock and turns the
callback protocol into a blocking :meth:`MethodResponderBridge.serve` call
that returns control only on the first fatal condition.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from typing import IO, Any, Protocol

from iothub_device.errors import InvocationError
from iothub_device.subscription import POLL_INTERVAL, CancelToken
from iothub_device.values import Payload, check_payload

PARSE_ERROR_MESSAGE = "unable to parse json input"

logger = logging.getLogger(__name__)


class MethodRegistrar(Protocol):
    def register_method(self, name: str, handler: Any) -> None:
        ...


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def encode_payload(payload: Any) -> str:
    return json.dumps(check_payload(payload), sort_keys=True, separators=(",", ":"), allow_nan=False)


def parse_response(line: str) -> Payload:
    return check_payload(json.loads(line, parse_constant=_reject_constant))


class MethodResponderBridge:
    def __init__(
        self,
        session: MethodRegistrar,
        name: str,
        *,
        stdin: IO[str],
        stdout: IO[str],
        quiet: bool = False,
        cancel: CancelToken | None = None,
    ) -> None:
        self.session = session
        self.name = name
        self.quiet = quiet
        self._stdin = stdin
        self._stdout = stdout
        self._cancel = cancel
        self._fatal: queue.Queue[BaseException] = queue.Queue(maxsize=1)
        self._lock = threading.Lock()

    def _terminate(self, err: BaseException) -> None:
        try:
            self._fatal.put_nowait(err)
        except queue.Full:
            logger.debug("dropping fatal error after the first one: %s", err)

    def _prompt(self, encoded: str) -> None:
        if self.quiet:
            print(encoded, file=self._stdout)
        else:
            print(f"Payload: {encoded}", file=self._stdout)
            print("Enter json response: ", end="", file=self._stdout)
        self._stdout.flush()

    def _read_line(self) -> str:
        line = self._stdin.readline()
        if not line:
            raise EOFError("unexpected end of input")
        return line.rstrip("\r\n")

    def handle(self, payload: Any) -> Payload:
        """Answer one invocation with the operator's response."""
        with self._lock:
            try:
                encoded = encode_payload(payload)
            except (TypeError, ValueError) as exc:
                self._terminate(exc)
                raise

            try:
                self._prompt(encoded)
            except (OSError, ValueError) as exc:
                self._terminate(exc)
                raise

            try:
                line = self._read_line()
            except (OSError, EOFError, ValueError) as exc:
                self._terminate(exc)
                raise

            try:
                return parse_response(line)
            except ValueError as exc:
                self._terminate(exc)
                raise InvocationError(PARSE_ERROR_MESSAGE) from exc

    def serve(self) -> None:
        """Register the handler, then block until a fatal error is posted."""
        self.session.register_method(self.name, self.handle)
        logger.debug("waiting for invocations of %s", self.name)
        while True:
            if self._cancel is not None:
                self._cancel.raise_if_cancelled()
            try:
                err = self._fatal.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            raise err
