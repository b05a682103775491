"""
pidffb models - pure data classes and enums for the PID protocol.

Values follow the Device Class Definition for Physical Interface Devices
(PID 1.0).  Time and angle fields are kept in natural units (seconds,
degrees); ``report_codec`` converts them to raw integers on the wire.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum, IntFlag, auto
from typing import Optional, Tuple

from ..constants import UNALLOCATED_HANDLE

# Device-assigned effect block index.  0 means "unallocated".
EffectHandle = int


# =============================================================================
# Report identifiers
# =============================================================================


class ReportId(IntEnum):
    """Output and feature report ids, as declared by the device descriptor."""
    SET_EFFECT = 0x01
    SET_ENVELOPE = 0x02
    SET_CONDITION = 0x03
    SET_PERIODIC = 0x04
    SET_CONSTANT_FORCE = 0x05
    SET_RAMP_FORCE = 0x06
    EFFECT_OPERATION = 0x0A
    BLOCK_FREE = 0x0B
    DEVICE_CONTROL = 0x0C
    DEVICE_GAIN = 0x0D
    CREATE_NEW_EFFECT = 0x11   # feature, SET_REPORT
    BLOCK_LOAD = 0x12          # feature, GET_REPORT
    PID_POOL = 0x13            # feature, GET_REPORT

    @property
    def is_feature(self) -> bool:
        return self in _FEATURE_REPORTS


_FEATURE_REPORTS = frozenset({
    ReportId.CREATE_NEW_EFFECT,
    ReportId.BLOCK_LOAD,
    ReportId.PID_POOL,
})


class InputReportId(IntEnum):
    """Interrupt-in report ids (separate namespace from output reports)."""
    PID_STATE = 0x02


# =============================================================================
# Effects
# =============================================================================


class EffectType(IntEnum):
    """ET usages from the PID usage page, in descriptor order (1-based)."""
    CONSTANT_FORCE = 1
    RAMP = 2
    SQUARE = 3
    SINE = 4
    TRIANGLE = 5
    SAWTOOTH_UP = 6
    SAWTOOTH_DOWN = 7
    SPRING = 8
    DAMPER = 9
    INERTIA = 10
    FRICTION = 11

    @property
    def is_periodic(self) -> bool:
        return EffectType.SQUARE <= self <= EffectType.SAWTOOTH_DOWN

    @property
    def is_condition(self) -> bool:
        return self >= EffectType.SPRING


@dataclass
class EffectParams:
    """Common parameters of the Set Effect report.

    Times are in seconds (``duration=None`` = infinite), directions in
    degrees.  ``gain`` is the logical 0-255 value (255 = 100 %).
    ``trigger_button=None`` sends the null value (no trigger).
    """
    duration: Optional[float] = None
    trigger_repeat_interval: float = 0.0
    sample_period: float = 0.0
    start_delay: float = 0.0
    gain: int = 0xFF
    trigger_button: Optional[int] = None
    axis_x_enabled: bool = False
    axis_y_enabled: bool = False
    direction_enabled: bool = True
    direction_x: float = 0.0
    direction_y: float = 0.0
    type_specific_block_offsets: Tuple[int, int] = (0, 0)


@dataclass
class ConstantForceParams:
    magnitude: int = 0   # logical -32768..32767 (physical -10000..10000)


@dataclass
class EnvelopeParams:
    attack_level: int = 0    # 0..32767
    fade_level: int = 0      # 0..32767
    attack_time: float = 0.0  # seconds
    fade_time: float = 0.0    # seconds


@dataclass
class ConditionParams:
    """Set Condition block for one axis (parameter_block_offset 0=X, 1=Y)."""
    parameter_block_offset: int = 0
    center_point_offset: int = 0
    positive_coefficient: int = 0
    negative_coefficient: int = 0
    positive_saturation: int = 0
    negative_saturation: int = 0
    dead_band: int = 0


@dataclass
class PeriodicParams:
    magnitude: int = 0     # 0..32767
    offset: int = 0        # -32768..32767
    phase: float = 0.0     # degrees
    period: float = 0.0    # seconds


@dataclass
class RampForceParams:
    ramp_start: int = 0
    ramp_end: int = 0


# =============================================================================
# Device pool / block load
# =============================================================================


@dataclass(frozen=True)
class DevicePoolInfo:
    """Decoded PID Pool feature report."""
    ram_pool_size: int
    simultaneous_effects_max: int
    device_managed_pool: bool = False
    shared_parameter_blocks: bool = False


class BlockLoadStatus(IntEnum):
    SUCCESS = 1
    FULL = 2
    ERROR = 3


@dataclass(frozen=True)
class BlockLoadResult:
    """Decoded PID Block Load feature report.

    ``handle`` is only meaningful on SUCCESS; it is forced to 0 otherwise.
    """
    handle: EffectHandle
    status: BlockLoadStatus
    ram_available: int
    raw_response: bytes = field(default=b"", repr=False, compare=False)

    def __post_init__(self):
        if self.status != BlockLoadStatus.SUCCESS and self.handle != UNALLOCATED_HANDLE:
            object.__setattr__(self, 'handle', UNALLOCATED_HANDLE)


# =============================================================================
# Control
# =============================================================================


class DeviceControlFlags(IntFlag):
    ENABLE_ACTUATORS = 0x01
    DISABLE_ACTUATORS = 0x02
    STOP_ALL_EFFECTS = 0x04
    DEVICE_RESET = 0x08
    DEVICE_PAUSE = 0x10
    DEVICE_CONTINUE = 0x20


class EffectOperation(IntEnum):
    """Op selector of the Effect Operation report (not a bitmask)."""
    START = 1
    START_SOLO = 2
    STOP = 3


@dataclass(frozen=True)
class PidState:
    """Decoded PID State input report."""
    device_paused: bool = False
    actuators_enabled: bool = False
    safety_switch: bool = False
    actuator_override_switch: bool = False
    actuator_power: bool = False
    effect_playing: bool = False
    effect_handle: EffectHandle = UNALLOCATED_HANDLE


# =============================================================================
# Session lifecycle
# =============================================================================


class SessionState(Enum):
    UNALLOCATED = auto()
    ALLOCATED = auto()
    CONFIGURED = auto()
    PLAYING = auto()
    STOPPED = auto()
    FREED = auto()


class FreeResult(Enum):
    FREED = auto()
    NOT_FOUND = auto()
