"""
Device controller - one open PID force-feedback device.

Owns the transport, the report link, the effect pool and one EffectSession
per allocated handle.  Every device-facing method runs under a single
re-entrant lock, so the CreateNewEffect → BlockLoad round trip and every
other write-then-read sequence sees no interleaved traffic.

Usage::

    from pidffb import DeviceController, EffectParams, ConstantForceParams

    with DeviceController.open(0x346E, 0x0002) as dev:
        dev.initialize()
        handle = dev.create_constant_force_effect(
            EffectParams(direction_x=90.0), ConstantForceParams(1500))
        dev.play(handle, loop_count=0)
        dev.set_magnitude(handle, -1500)
        dev.stop(handle)
        dev.free_effect(handle)
"""
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, Optional

from .constants import (
    DEFAULT_TIMEOUT_MS,
    FULL_GAIN,
    READ_MAX_ATTEMPTS,
    READ_RETRY_DELAY_S,
    STREAM_INTERVAL_S,
)
from .core.models import (
    ConstantForceParams,
    DeviceControlFlags,
    DevicePoolInfo,
    EffectHandle,
    EffectParams,
    EffectType,
    EnvelopeParams,
    FreeResult,
    InputReportId,
    PidState,
    SessionState,
)
from .device_factory import create_transport
from .effect_pool import EffectPool
from .effect_session import FREEABLE_STATES, EffectSession
from .errors import (
    AllocationUncertainError,
    EffectNotFoundError,
    InvalidStateError,
    PidFfbError,
    ReadTimeoutError,
    TransportError,
)
from .force_shaper import ForceShaper
from .hid_transport import HidTransport
from .report_codec import build_device_control, build_device_gain, decode_pid_state
from .report_link import ReportLink
from .retry import Clock, SystemClock

if TYPE_CHECKING:
    from .conf import Settings

log = logging.getLogger(__name__)


class DeviceController:
    """Effect lifecycle operations for one device.

    Args:
        transport: Open HID transport.  The controller closes it in close().
        clock: Delay source for bounded reads and force streams.
        read_attempts: Attempts per feature get / input read.
        read_delay_s: Delay between read attempts.
        device_gain: Gain sent by initialize() (0-255, 255 = 100 %).
        stream_interval_s: Default cadence for stream_magnitudes().
    """

    def __init__(self, transport: HidTransport, clock: Optional[Clock] = None,
                 read_attempts: int = READ_MAX_ATTEMPTS,
                 read_delay_s: float = READ_RETRY_DELAY_S,
                 device_gain: int = FULL_GAIN,
                 stream_interval_s: float = STREAM_INTERVAL_S):
        self.transport = transport
        self.clock: Clock = clock or SystemClock()
        self._link = ReportLink(transport, self.clock, read_attempts, read_delay_s)
        self.pool = EffectPool(self._link)
        self.device_gain = device_gain
        self.stream_interval_s = stream_interval_s
        self._sessions: Dict[EffectHandle, EffectSession] = {}
        self._streams: Dict[EffectHandle, ForceShaper] = {}
        self._lock = threading.RLock()
        self._shut_down = False
        self._closed = False

    # ── Construction ─────────────────────────────────────────────────

    @classmethod
    def open(cls, vendor_id: int, product_id: int, serial: Optional[str] = None,
             backend: str = "auto", **kwargs) -> DeviceController:
        """Create and open a transport, then wrap it in a controller."""
        transport = create_transport(vendor_id, product_id, serial, backend)
        transport.open()
        log.info("Opened PID device %04x:%04x via %s", vendor_id, product_id,
                 type(transport).__name__)
        return cls(transport, **kwargs)

    @classmethod
    def from_settings(cls, settings: Settings,
                      clock: Optional[Clock] = None) -> DeviceController:
        return cls.open(
            settings.vendor_id, settings.product_id, settings.serial, settings.backend,
            clock=clock,
            read_attempts=settings.read_attempts,
            read_delay_s=settings.read_retry_delay_s,
            device_gain=settings.device_gain,
            stream_interval_s=settings.stream_interval_s,
        )

    def __enter__(self) -> DeviceController:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── Lookup ───────────────────────────────────────────────────────

    @property
    def handles(self) -> FrozenSet[EffectHandle]:
        with self._lock:
            return frozenset(self._sessions)

    def _session(self, handle: EffectHandle) -> EffectSession:
        session = self._sessions.get(handle)
        if session is None:
            raise EffectNotFoundError(handle)
        return session

    def session_state(self, handle: EffectHandle) -> SessionState:
        with self._lock:
            return self._session(handle).state

    def _require_state(self, handle: EffectHandle, operation: str,
                       *allowed: SessionState) -> None:
        state = self._session(handle).state
        if state not in allowed:
            raise InvalidStateError(operation, state)

    # ── Device level ─────────────────────────────────────────────────

    def initialize(self) -> DevicePoolInfo:
        """Reset the device, set full gain and read the PID Pool report.

        Every handle from before the reset is gone afterwards.
        """
        self._finish_streams()
        with self._lock:
            self._link.send(build_device_control(DeviceControlFlags.DEVICE_RESET))
            self._drop_sessions()
            self._link.send(build_device_gain(self.device_gain))
            info = self.pool.query_info()
            self._shut_down = False
            log.info("Device initialized (gain=%d, max simultaneous effects %d)",
                     self.device_gain, info.simultaneous_effects_max)
            return info

    def _drop_sessions(self) -> None:
        self.pool.reset()
        for session in self._sessions.values():
            session.invalidate()
        self._sessions.clear()

    def _device_control(self, flags: DeviceControlFlags) -> None:
        with self._lock:
            self._link.send(build_device_control(flags))

    def set_gain(self, gain: int) -> None:
        """Set the overall device gain (0-255)."""
        with self._lock:
            self._link.send(build_device_gain(gain))
            self.device_gain = gain

    def pause(self) -> None:
        self._device_control(DeviceControlFlags.DEVICE_PAUSE)

    def resume(self) -> None:
        self._device_control(DeviceControlFlags.DEVICE_CONTINUE)

    def enable_actuators(self) -> None:
        self._device_control(DeviceControlFlags.ENABLE_ACTUATORS)

    def disable_actuators(self) -> None:
        self._device_control(DeviceControlFlags.DISABLE_ACTUATORS)

    def stop_all(self) -> None:
        """Stop All Effects.  Playing sessions become STOPPED."""
        self._finish_streams()
        with self._lock:
            self._link.send(build_device_control(DeviceControlFlags.STOP_ALL_EFFECTS))
            for session in self._sessions.values():
                session.mark_stopped()

    def poll_state(self, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> PidState:
        """Read the next PID State input report."""
        with self._lock:
            return decode_pid_state(
                self._link.read_input(InputReportId.PID_STATE, timeout_ms))

    # ── Effects ──────────────────────────────────────────────────────

    def create_constant_force_effect(self, params: EffectParams,
                                     constant_force: ConstantForceParams,
                                     envelope: Optional[EnvelopeParams] = None,
                                     ) -> EffectHandle:
        return self.create_effect(EffectType.CONSTANT_FORCE, params,
                                  constant_force, envelope)

    def create_effect(self, effect_type: EffectType, params: EffectParams,
                      type_specific, envelope: Optional[EnvelopeParams] = None,
                      ) -> EffectHandle:
        """Allocate and configure a new effect, returning its handle.

        Parameters are range-checked before anything is sent.

        Raises:
            AllocationUncertainError: the transport failed, or no Block
                Load response arrived, during the CreateNewEffect/BlockLoad
                pair.  The device may hold a block nobody knows about;
                retrying can leak another one.
            PoolExhaustedError / DeviceRejectedError: the device refused.
        """
        with self._lock:
            session = EffectSession(self.pool, self._link, effect_type)
            session.validate(params, type_specific, envelope)

            try:
                handle = session.allocate()
            except (TransportError, ReadTimeoutError) as e:
                raise AllocationUncertainError(
                    f"no usable answer while allocating a {session.effect_type.name} "
                    f"effect; the device may have allocated a block (not retried)"
                ) from e
            self._sessions[handle] = session

            try:
                session.configure(params, type_specific, envelope)
            except PidFfbError:
                self._discard(session)
                raise
            return handle

    def _discard(self, session: EffectSession) -> None:
        # Give back a block whose configuration failed half way.
        try:
            session.free()
        except TransportError as e:
            log.warning("Could not free handle %d after failed configure: %s",
                        session.handle, e)
            return
        del self._sessions[session.handle]

    def configure(self, handle: EffectHandle, params: EffectParams,
                  type_specific=None, envelope: Optional[EnvelopeParams] = None) -> None:
        """Re-send the parameters of an existing effect."""
        with self._lock:
            self._session(handle).configure(params, type_specific, envelope)

    def play(self, handle: EffectHandle, loop_count: int = 1, solo: bool = False) -> None:
        with self._lock:
            session = self._session(handle)
            session.start(loop_count, solo)
            if solo:
                for other in self._sessions.values():
                    if other is not session:
                        other.mark_stopped()
            self._shut_down = False

    def set_magnitude(self, handle: EffectHandle, value: int) -> None:
        with self._lock:
            self._session(handle).update_live_magnitude(value)

    def stop(self, handle: EffectHandle) -> None:
        self._finish_stream(handle)
        with self._lock:
            self._session(handle).stop()

    def free_effect(self, handle: EffectHandle) -> FreeResult:
        with self._lock:
            self._require_state(handle, "free", *FREEABLE_STATES)
        self._finish_stream(handle)
        with self._lock:
            session = self._session(handle)
            result = session.free()
            del self._sessions[handle]
            return result

    # ── Force streams ────────────────────────────────────────────────

    def stream_magnitudes(self, handle: EffectHandle, magnitudes: Iterable[int],
                          interval_s: Optional[float] = None,
                          max_ticks: Optional[int] = None,
                          max_consecutive_errors: int = 0,
                          start: bool = True) -> ForceShaper:
        """Stream ``magnitudes`` into a playing effect at a fixed cadence.

        Replaces any stream already running on ``handle``.  Pass
        ``start=False`` to get the ForceShaper without a thread (call
        ``run()`` yourself).
        """
        with self._lock:
            self._require_state(handle, "stream magnitudes to", SessionState.PLAYING)
        self._finish_stream(handle)
        with self._lock:
            self._require_state(handle, "stream magnitudes to", SessionState.PLAYING)
            shaper = ForceShaper(
                lambda value: self.set_magnitude(handle, value),
                magnitudes,
                interval_s=self.stream_interval_s if interval_s is None else interval_s,
                clock=self.clock,
                max_ticks=max_ticks,
                max_consecutive_errors=max_consecutive_errors,
                name=f"force-shaper-{handle}",
            )
            self._streams[handle] = shaper
        if start:
            shaper.start()
        return shaper

    def _finish_stream(self, handle: EffectHandle) -> None:
        # Must not hold the lock: the stream thread needs it for its final write.
        with self._lock:
            shaper = self._streams.pop(handle, None)
        if shaper is None:
            return
        shaper.cancel()
        if shaper.thread is not None and shaper.thread is not threading.current_thread():
            shaper.join()

    def _finish_streams(self) -> None:
        with self._lock:
            handles = list(self._streams)
        for handle in handles:
            self._finish_stream(handle)

    # ── Teardown ─────────────────────────────────────────────────────

    def shutdown(self) -> None:
        """Stop every playing effect and send Stop All Effects.

        Handles stay allocated; free them or reset the device if needed.
        """
        self._finish_streams()
        with self._lock:
            for handle in sorted(self._sessions):
                session = self._sessions[handle]
                if session.state == SessionState.PLAYING:
                    session.stop()
            self._link.send(build_device_control(DeviceControlFlags.STOP_ALL_EFFECTS))
            self._shut_down = True
            log.info("Device shut down (%d effects still allocated)", len(self.pool))

    def close(self) -> None:
        """Shut down (if still needed) and close the transport."""
        if self._closed:
            return
        try:
            if not self._shut_down and self.transport.is_open:
                self.shutdown()
        finally:
            with self._lock:
                self._drop_sessions()
                self.transport.close()
                self._closed = True
            log.info("Device closed")
