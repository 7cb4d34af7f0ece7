"""Drive a subscription to exhaustion."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from iothub_device.subscription import CancelToken, Subscription

T = TypeVar("T")

logger = logging.getLogger(__name__)


def consume_subscription(
    sub: Subscription[T],
    sink: Callable[[T], None],
    *,
    cancel: CancelToken | None = None,
) -> int:
    """Hand every item to ``sink`` in arrival order and return the count.

    A failing sink stops consumption and its exception propagates as is; the
    subscription's terminal error is only raised after a natural end.
    """
    delivered = 0
    for item in sub.iter(cancel):
        sink(item)
        delivered += 1

    err = sub.err()
    if err is not None:
        logger.debug("%s closed with error after %d item(s): %s", sub.name, delivered, err)
        raise err
    logger.debug("%s closed after %d item(s)", sub.name, delivered)
    return delivered
