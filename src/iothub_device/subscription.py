"""Ordered subscription handles and cancellation."""

from __future__ import annotations

import queue
import threading
from typing import Generic, Iterator, TypeVar

from iothub_device.errors import OperationCancelledError

T = TypeVar("T")

POLL_INTERVAL = 0.1

_CLOSED = object()


class CancelToken:
    """Set-once cancellation flag carrying a reason."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "operation cancelled"

    def cancel(self, reason: str = "operation cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self._reason)


class Subscription(Generic[T]):
    """Unbounded ordered sequence with a single terminal error slot.

    The session publishes from its handler threads; exactly one reader
    drains it with :meth:`iter`. Closing is idempotent and the first close
    decides the terminal error.
    """

    def __init__(self, name: str = "subscription") -> None:
        self.name = name
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._err: BaseException | None = None
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, item: T) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._queue.put(item)
            return True

    def close(self, err: BaseException | None = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._err = err
            self._queue.put(_CLOSED)

    def err(self) -> BaseException | None:
        return self._err

    def iter(self, cancel: CancelToken | None = None) -> Iterator[T]:
        if self._drained:
            raise RuntimeError(f"{self.name} has already been consumed")
        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                item = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            if item is _CLOSED:
                self._drained = True
                return
            yield item

    def __iter__(self) -> Iterator[T]:
        return self.iter()
