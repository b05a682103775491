"""Exception taxonomy for pidffb.

Every error raised by the engine derives from ``PidFfbError`` so callers can
catch the whole family at once, or pick the specific failure they care about.
"""
from __future__ import annotations

from typing import Optional


class PidFfbError(RuntimeError):
    """Base error for the PID force-feedback engine."""


class TransportError(PidFfbError):
    """The HID transport reported an I/O failure.

    The backend exception (OSError, usb.core.USBError, ...) is chained as
    ``__cause__``.
    """


class AllocationUncertainError(TransportError):
    """Transport failed between CreateNewEffect and BlockLoad.

    The device may or may not have allocated an effect block.  Retrying the
    allocation can leak a block on the device, so the caller decides.
    """


class RangeError(PidFfbError, ValueError):
    """A report field is outside its declared logical range.

    Raised before any byte is packed, so nothing reaches the device.
    """

    def __init__(self, report: str, field: str, value: object,
                 minimum: Optional[int] = None, maximum: Optional[int] = None):
        self.report = report
        self.field = field
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        if minimum is None and maximum is None:
            msg = f"{report}.{field}: {value!r} is not a valid field value"
        else:
            msg = f"{report}.{field}={value!r} outside [{minimum}, {maximum}]"
        super().__init__(msg)


class DecodeError(PidFfbError, ValueError):
    """A response from the device does not match the expected layout."""


class PoolExhaustedError(PidFfbError):
    """The device answered BlockLoad with status Full."""


class DeviceRejectedError(PidFfbError):
    """The device answered BlockLoad with status Error (or an unusable Success)."""


class InvalidStateError(PidFfbError):
    """An effect session was asked for a transition its state does not allow."""

    def __init__(self, operation: str, state: object, detail: Optional[str] = None):
        self.operation = operation
        self.state = state
        if detail:
            super().__init__(f"cannot {operation}: {detail}")
        else:
            name = getattr(state, 'name', state)
            super().__init__(f"cannot {operation} an effect in state {name}")


class ReadTimeoutError(PidFfbError):
    """A bounded read loop ran out of attempts without a usable response."""

    def __init__(self, what: str, attempts: int):
        self.what = what
        self.attempts = attempts
        super().__init__(f"{what}: no response after {attempts} attempts")


class EffectNotFoundError(PidFfbError):
    """No allocated effect owns the given handle."""

    def __init__(self, handle: int):
        self.handle = handle
        super().__init__(f"no effect registered for handle {handle}")
