"""Bounded-retry reads with an injectable clock.

Feature-report gets and interrupt-in reads can come back empty while the
device is still busy.  ``read_with_retry`` polls a fixed number of times
with a fixed delay and then gives up with ReadTimeoutError, so no caller
ever blocks indefinitely.  Tests pass a fake clock to avoid real sleeps.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from .errors import ReadTimeoutError

log = logging.getLogger(__name__)


class Clock(Protocol):
    """Time source used for delays and cadence."""

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock implementation backed by the ``time`` module."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


def read_with_retry(
    read: Callable[[], bytes],
    accept: Callable[[bytes], bool],
    attempts: int,
    delay_s: float,
    clock: Clock,
    what: str = "read",
) -> bytes:
    """Call ``read()`` until ``accept(response)`` holds, at most ``attempts`` times.

    Sleeps ``delay_s`` between attempts (not after the last one).
    Exceptions raised by ``read()`` (TransportError) propagate at once;
    only empty or rejected responses are retried.

    Raises:
        ReadTimeoutError: no acceptable response after ``attempts`` tries.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        resp = read()
        if resp and accept(resp):
            return resp
        log.warning(
            "%s attempt %d/%d: no usable response (len=%d, first bytes: %s)",
            what, attempt, attempts, len(resp),
            resp[:8].hex() if resp else "empty",
        )
        if attempt < attempts:
            clock.sleep(delay_s)

    raise ReadTimeoutError(what, attempts)
