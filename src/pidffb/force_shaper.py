"""
Force shaping - stream magnitudes to a playing effect at a fixed cadence.

A ForceShaper writes one magnitude per tick through a caller-supplied
``write`` callable (normally ``DeviceController.set_magnitude`` bound to a
handle), sleeping ``interval_s`` between ticks on an injectable clock.
The cancel event is checked before every write.  A cancelled stream sends
one final zero so the actuator is not left under load.

Usage::

    shaper = ForceShaper(lambda m: dev.set_magnitude(3, m),
                         alternating_magnitudes(1500, -1500, 100, 10))
    shaper.start()
    ...
    shaper.cancel()
    shaper.join()
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Iterator, Optional

from .constants import STREAM_INTERVAL_S
from .errors import PidFfbError, TransportError
from .retry import Clock, SystemClock

log = logging.getLogger(__name__)


def alternating_magnitudes(high: int, low: int, hold_ticks: int,
                           cycles: int) -> Iterator[int]:
    """Yield ``high`` for ``hold_ticks`` ticks, then ``low``, ``cycles`` times.

    ``alternating_magnitudes(1500, -1500, 100, 10)`` at 10 ms per tick
    pushes the wheel one way for a second and back for a second, ten times.
    """
    if hold_ticks < 0 or cycles < 0:
        raise ValueError("hold_ticks and cycles must be >= 0")
    for _ in range(cycles):
        for _ in range(hold_ticks):
            yield high
        for _ in range(hold_ticks):
            yield low


class ForceShaper:
    """Periodic magnitude writer with cancellation.

    Args:
        write: Called with each magnitude.  PidFfbError subclasses are
            handled here; anything else propagates out of run().
        magnitudes: Finite sequence of magnitudes, one per tick.
        interval_s: Delay between ticks.
        clock: Delay source (tests pass a fake).
        max_ticks: Optional hard cap on the number of writes.
        max_consecutive_errors: Transport errors tolerated in a row before
            the stream gives up.  0 stops on the first one.
        name: Thread name.
    """

    def __init__(self, write: Callable[[int], None], magnitudes: Iterable[int],
                 interval_s: float = STREAM_INTERVAL_S,
                 clock: Optional[Clock] = None,
                 max_ticks: Optional[int] = None,
                 max_consecutive_errors: int = 0,
                 name: str = "force-shaper"):
        if interval_s < 0:
            raise ValueError("interval_s must be >= 0")
        if max_consecutive_errors < 0:
            raise ValueError("max_consecutive_errors must be >= 0")
        self._write = write
        self._magnitudes = magnitudes
        self.interval_s = interval_s
        self._clock: Clock = clock or SystemClock()
        self.max_ticks = max_ticks
        self.max_consecutive_errors = max_consecutive_errors
        self.name = name
        self.ticks = 0
        self._error: Optional[PidFfbError] = None
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Status ───────────────────────────────────────────────────────

    @property
    def error(self) -> Optional[PidFfbError]:
        """Error that ended the stream early, if any."""
        return self._error

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    @property
    def thread(self) -> Optional[threading.Thread]:
        return self._thread

    # ── Control ──────────────────────────────────────────────────────

    def start(self) -> ForceShaper:
        """Run the stream on a daemon thread."""
        if self._thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self._thread = threading.Thread(target=self.run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        """Ask the stream to stop before its next write."""
        self._cancel.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the stream thread.  Returns True once it has finished."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self._done.is_set()

    def run(self) -> None:
        """Stream every magnitude (synchronously on the calling thread)."""
        consecutive_errors = 0
        try:
            for magnitude in self._magnitudes:
                if self._cancel.is_set():
                    break
                if self.max_ticks is not None and self.ticks >= self.max_ticks:
                    break
                try:
                    self._write(magnitude)
                    consecutive_errors = 0
                except TransportError as e:
                    consecutive_errors += 1
                    log.warning("%s: write %d failed (%d/%d): %s", self.name,
                                self.ticks, consecutive_errors,
                                self.max_consecutive_errors + 1, e)
                    if consecutive_errors > self.max_consecutive_errors:
                        self._error = e
                        return
                except PidFfbError as e:
                    log.warning("%s: stopped: %s", self.name, e)
                    self._error = e
                    return
                self.ticks += 1
                self._clock.sleep(self.interval_s)

            if self._cancel.is_set():
                self._send_final_zero()
        finally:
            self._done.set()
            log.debug("%s: finished after %d ticks", self.name, self.ticks)

    def _send_final_zero(self) -> None:
        try:
            self._write(0)
        except PidFfbError as e:
            log.warning("%s: final zero write failed: %s", self.name, e)
            self._error = e
