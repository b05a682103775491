#!/usr/bin/env python3
"""
PID report codec - fixed binary layouts for the force-feedback reports.

Every report is described once, as data, in ``LAYOUTS``.  ``encode()`` and
``decode()`` walk that table; there is no per-report packing code.

Byte 0 of every report is the report id.  Multi-byte fields are
little-endian.  Layout of Set Effect (0x01), for reference::

    [0]     report id
    [1]     effect block index (handle)
    [2]     effect type (1-11)
    [3:5]   duration            u16, 0.01 s   (0xFFFF = infinite)
    [5:7]   trigger repeat      u16, 0.01 s
    [7:9]   sample period       u16, 0.01 s
    [9:11]  start delay         u16, 0.01 s
    [11]    gain                u8,  0-255 -> 0-100 %
    [12]    trigger button      u8,  1-8   (0xFF = none)
    [13]    bit0 axis X enable, bit1 axis Y enable, bit2 direction enable,
            bits 3-7 reserved (zero)
    [14:16] direction X         u16, 0.01 deg
    [16:18] direction Y         u16, 0.01 deg
    [18:20] type specific block offset 1
    [20:22] type specific block offset 2

Fields declared with a HID unit exponent are passed and returned in natural
units (seconds, degrees).  ``raw = round(value * 10 ** -exponent)``.
So direction raw 0x2328 (9000) is 90.00 degrees.
"""

import math
import struct
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from .constants import INFINITE_DURATION_RAW, NULL_TRIGGER_BUTTON_RAW
from .core.models import (
    BlockLoadResult,
    BlockLoadStatus,
    ConditionParams,
    DeviceControlFlags,
    DevicePoolInfo,
    EffectOperation,
    EffectParams,
    EffectType,
    EnvelopeParams,
    InputReportId,
    PeriodicParams,
    PidState,
    RampForceParams,
    ReportId,
)
from .errors import DecodeError, RangeError

_MISSING = object()

_STRUCT_FORMATS = {
    (1, False): 'B', (1, True): 'b',
    (2, False): '<H', (2, True): '<h',
    (4, False): '<I', (4, True): '<i',
}


# =========================================================================
# Layout description
# =========================================================================

@dataclass(frozen=True)
class FieldSpec:
    """One byte-aligned integer field of a report.

    ``minimum``/``maximum`` are logical (raw) bounds.  ``exponent`` is the
    HID unit exponent: natural value = raw * 10**exponent.  ``null`` is the
    raw value sent when the caller passes None.  ``physical`` is the
    declared (physical minimum, physical maximum) range for scaling.
    """
    name: str
    offset: int
    width: int
    signed: bool = False
    minimum: int = 0
    maximum: int = 0xFF
    exponent: int = 0
    null: Optional[int] = None
    physical: Optional[Tuple[int, int]] = None

    @property
    def fmt(self) -> str:
        return _STRUCT_FORMATS[(self.width, self.signed)]

    def to_raw(self, report: str, value: Any) -> int:
        """Convert a caller value to the raw integer, range-checked."""
        if value is None:
            if self.null is None:
                raise RangeError(report, self.name, value)
            return self.null
        if isinstance(value, bool):
            value = int(value)
        if not isinstance(value, (int, float)):
            raise RangeError(report, self.name, value)
        if isinstance(value, float) and not math.isfinite(value):
            raise RangeError(report, self.name, value, self.minimum, self.maximum)

        if self.exponent:
            raw = round(value * 10 ** -self.exponent)
        elif isinstance(value, float):
            if not value.is_integer():
                raise RangeError(report, self.name, value)
            raw = int(value)
        else:
            raw = int(value)

        if not self.minimum <= raw <= self.maximum:
            raise RangeError(report, self.name, value, self.minimum, self.maximum)
        return raw

    def to_natural(self, raw: int) -> Union[int, float, None]:
        """Convert a raw integer back to the caller-facing value."""
        if self.null is not None and raw == self.null:
            return None
        if self.exponent:
            return raw / 10 ** -self.exponent
        return raw


@dataclass(frozen=True)
class BitSpec:
    """A bit-packed field: ``bits`` wide, starting ``shift`` bits into ``offset``."""
    name: str
    offset: int
    shift: int
    bits: int = 1

    @property
    def mask(self) -> int:
        return (1 << self.bits) - 1


@dataclass(frozen=True)
class ReportLayout:
    report_id: int
    name: str
    fields: Tuple[FieldSpec, ...] = ()
    bit_fields: Tuple[BitSpec, ...] = ()

    @property
    def length(self) -> int:
        ends = [1]
        ends += [f.offset + f.width for f in self.fields]
        ends += [b.offset + 1 for b in self.bit_fields]
        return max(ends)

    @property
    def names(self) -> frozenset:
        return frozenset(f.name for f in self.fields) | frozenset(b.name for b in self.bit_fields)

    def field(self, name: str) -> FieldSpec:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(f"{self.name} has no field {name!r}")


def _handle(offset: int = 1) -> FieldSpec:
    return FieldSpec('handle', offset, 1, minimum=1, maximum=0xFF)


def _i16(name: str, offset: int, physical: Optional[Tuple[int, int]] = None) -> FieldSpec:
    return FieldSpec(name, offset, 2, signed=True, minimum=-0x8000, maximum=0x7FFF,
                     physical=physical)


def _level(name: str, offset: int) -> FieldSpec:
    return FieldSpec(name, offset, 2, minimum=0, maximum=0x7FFF, physical=(0, 10000))


def _centiseconds(name: str, offset: int, null: Optional[int] = None) -> FieldSpec:
    maximum = 0xFFFE if null == 0xFFFF else 0xFFFF
    return FieldSpec(name, offset, 2, minimum=0, maximum=maximum, exponent=-2, null=null)


def _time_e4(name: str, offset: int) -> FieldSpec:
    return FieldSpec(name, offset, 4, minimum=0, maximum=0xFFFFFFFF, exponent=-4)


def _centidegrees(name: str, offset: int, maximum: int = 35999) -> FieldSpec:
    return FieldSpec(name, offset, 2, minimum=0, maximum=maximum, exponent=-2)


_MAGNITUDE_PHYSICAL = (-10000, 10000)


# =========================================================================
# Layout table (PID usage tables, report ids as declared by the device)
# =========================================================================

LAYOUTS: Dict[ReportId, ReportLayout] = {
    ReportId.SET_EFFECT: ReportLayout(ReportId.SET_EFFECT, 'SetEffect', fields=(
        _handle(),
        FieldSpec('effect_type', 2, 1, minimum=EffectType.CONSTANT_FORCE,
                  maximum=EffectType.FRICTION),
        _centiseconds('duration', 3, null=INFINITE_DURATION_RAW),
        _centiseconds('trigger_repeat_interval', 5),
        _centiseconds('sample_period', 7),
        _centiseconds('start_delay', 9),
        FieldSpec('gain', 11, 1, minimum=0, maximum=0xFF, physical=(0, 10000)),
        FieldSpec('trigger_button', 12, 1, minimum=1, maximum=8,
                  null=NULL_TRIGGER_BUTTON_RAW),
        _centidegrees('direction_x', 14),
        _centidegrees('direction_y', 16),
        FieldSpec('type_specific_block_offset_1', 18, 2, maximum=0xFFFF),
        FieldSpec('type_specific_block_offset_2', 20, 2, maximum=0xFFFF),
    ), bit_fields=(
        BitSpec('axis_x_enabled', 13, 0),
        BitSpec('axis_y_enabled', 13, 1),
        BitSpec('direction_enabled', 13, 2),
    )),
    ReportId.SET_ENVELOPE: ReportLayout(ReportId.SET_ENVELOPE, 'SetEnvelope', fields=(
        _handle(),
        _level('attack_level', 2),
        _level('fade_level', 4),
        _time_e4('attack_time', 6),
        _time_e4('fade_time', 10),
    )),
    ReportId.SET_CONDITION: ReportLayout(ReportId.SET_CONDITION, 'SetCondition', fields=(
        _handle(),
        FieldSpec('parameter_block_offset', 2, 1, minimum=0, maximum=1),
        _i16('center_point_offset', 3, _MAGNITUDE_PHYSICAL),
        _i16('positive_coefficient', 5, _MAGNITUDE_PHYSICAL),
        _i16('negative_coefficient', 7, _MAGNITUDE_PHYSICAL),
        _level('positive_saturation', 9),
        _level('negative_saturation', 11),
        _level('dead_band', 13),
    )),
    ReportId.SET_PERIODIC: ReportLayout(ReportId.SET_PERIODIC, 'SetPeriodic', fields=(
        _handle(),
        _level('magnitude', 2),
        _i16('offset', 4, _MAGNITUDE_PHYSICAL),
        _centidegrees('phase', 6, maximum=35998),
        _time_e4('period', 8),
    )),
    ReportId.SET_CONSTANT_FORCE: ReportLayout(
        ReportId.SET_CONSTANT_FORCE, 'SetConstantForce', fields=(
            _handle(),
            _i16('magnitude', 2, _MAGNITUDE_PHYSICAL),
        )),
    ReportId.SET_RAMP_FORCE: ReportLayout(ReportId.SET_RAMP_FORCE, 'SetRampForce', fields=(
        _handle(),
        _i16('ramp_start', 2, _MAGNITUDE_PHYSICAL),
        _i16('ramp_end', 4, _MAGNITUDE_PHYSICAL),
    )),
    ReportId.EFFECT_OPERATION: ReportLayout(
        ReportId.EFFECT_OPERATION, 'EffectOperation', fields=(
            _handle(),
            FieldSpec('operation', 2, 1, minimum=EffectOperation.START,
                      maximum=EffectOperation.STOP),
            FieldSpec('loop_count', 3, 1, minimum=0, maximum=0xFF),
        )),
    ReportId.BLOCK_FREE: ReportLayout(ReportId.BLOCK_FREE, 'BlockFree', fields=(
        _handle(),
    )),
    ReportId.DEVICE_CONTROL: ReportLayout(ReportId.DEVICE_CONTROL, 'DeviceControl', fields=(
        FieldSpec('flags', 1, 1, minimum=0, maximum=int(
            DeviceControlFlags.ENABLE_ACTUATORS | DeviceControlFlags.DISABLE_ACTUATORS
            | DeviceControlFlags.STOP_ALL_EFFECTS | DeviceControlFlags.DEVICE_RESET
            | DeviceControlFlags.DEVICE_PAUSE | DeviceControlFlags.DEVICE_CONTINUE)),
    )),
    ReportId.DEVICE_GAIN: ReportLayout(ReportId.DEVICE_GAIN, 'DeviceGain', fields=(
        FieldSpec('gain', 1, 1, minimum=0, maximum=0xFF, physical=(0, 10000)),
    )),
    ReportId.CREATE_NEW_EFFECT: ReportLayout(
        ReportId.CREATE_NEW_EFFECT, 'CreateNewEffect', fields=(
            FieldSpec('effect_type', 1, 1, minimum=EffectType.CONSTANT_FORCE,
                      maximum=EffectType.FRICTION),
            FieldSpec('byte_count', 2, 2, maximum=0xFFFF),
        )),
    ReportId.BLOCK_LOAD: ReportLayout(ReportId.BLOCK_LOAD, 'BlockLoad', fields=(
        FieldSpec('handle', 1, 1, minimum=0, maximum=0xFF),
        FieldSpec('status', 2, 1, minimum=BlockLoadStatus.SUCCESS,
                  maximum=BlockLoadStatus.ERROR),
        FieldSpec('ram_available', 3, 2, maximum=0xFFFF),
    )),
    ReportId.PID_POOL: ReportLayout(ReportId.PID_POOL, 'PIDPool', fields=(
        FieldSpec('ram_pool_size', 1, 2, maximum=0xFFFF),
        FieldSpec('simultaneous_effects_max', 3, 1, maximum=0xFF),
    ), bit_fields=(
        BitSpec('device_managed_pool', 4, 0),
        BitSpec('shared_parameter_blocks', 4, 1),
    )),
}

INPUT_LAYOUTS: Dict[InputReportId, ReportLayout] = {
    InputReportId.PID_STATE: ReportLayout(InputReportId.PID_STATE, 'PIDState', bit_fields=(
        BitSpec('device_paused', 1, 0),
        BitSpec('actuators_enabled', 1, 1),
        BitSpec('safety_switch', 1, 2),
        BitSpec('actuator_override_switch', 1, 3),
        BitSpec('actuator_power', 1, 4),
        BitSpec('effect_playing', 2, 0),
        BitSpec('effect_handle', 2, 1, bits=7),
    )),
}

ReportKey = Union[ReportId, InputReportId]


def get_layout(report_id: ReportKey) -> ReportLayout:
    """Look up the layout for an output/feature or input report id.

    Input ids share numeric values with output ids (PID State and Set
    Envelope are both 0x02), so the enum type selects the table.
    """
    if isinstance(report_id, InputReportId):
        return INPUT_LAYOUTS[report_id]
    return LAYOUTS[ReportId(report_id)]


def report_length(report_id: ReportKey) -> int:
    """Wire length of a report, including the report id byte."""
    return get_layout(report_id).length


# =========================================================================
# Encode / decode
# =========================================================================

def encode(report_id: ReportKey, **fields: Any) -> bytes:
    """Pack ``fields`` into the fixed layout of ``report_id``.

    Every field is validated before the buffer is built, so a RangeError
    never leaves a partial report behind.  Omitted fields are zero.

    Raises:
        RangeError: unknown field name, or a value outside its bounds.
    """
    layout = get_layout(report_id)
    for name in fields:
        if name not in layout.names:
            raise RangeError(layout.name, name, fields[name])

    raw_values = []
    for spec in layout.fields:
        value = fields.get(spec.name, _MISSING)
        raw = 0 if value is _MISSING else spec.to_raw(layout.name, value)
        raw_values.append((spec, raw))

    bit_values = []
    for bit in layout.bit_fields:
        value = fields.get(bit.name, 0)
        if not isinstance(value, int):
            raise RangeError(layout.name, bit.name, value, 0, bit.mask)
        value = int(value)
        if not 0 <= value <= bit.mask:
            raise RangeError(layout.name, bit.name, value, 0, bit.mask)
        bit_values.append((bit, value))

    buf = bytearray(layout.length)
    buf[0] = int(layout.report_id)
    for spec, raw in raw_values:
        struct.pack_into(spec.fmt, buf, spec.offset, raw)
    for bit, value in bit_values:
        buf[bit.offset] |= (value & bit.mask) << bit.shift
    return bytes(buf)


def decode(report_id: ReportKey, data: bytes) -> Dict[str, Any]:
    """Unpack a report into a dict of natural-unit values.

    Bytes past the layout (device padding) are ignored.

    Raises:
        DecodeError: response shorter than the layout, or a different
            report id echoed in byte 0.
    """
    layout = get_layout(report_id)
    data = bytes(data)
    if len(data) < layout.length:
        raise DecodeError(
            f"{layout.name}: expected {layout.length} bytes, got {len(data)}"
        )
    if data[0] != int(layout.report_id):
        raise DecodeError(
            f"{layout.name}: expected report id 0x{int(layout.report_id):02x}, "
            f"got 0x{data[0]:02x}"
        )

    result: Dict[str, Any] = {}
    for spec in layout.fields:
        (raw,) = struct.unpack_from(spec.fmt, data, spec.offset)
        result[spec.name] = spec.to_natural(raw)
    for bit in layout.bit_fields:
        value = (data[bit.offset] >> bit.shift) & bit.mask
        result[bit.name] = bool(value) if bit.bits == 1 else value
    return result


# =========================================================================
# Physical scaling (HID logical -> physical linear map)
# =========================================================================

def to_physical(report_id: ReportKey, field: str, raw: int) -> float:
    """Map a logical value onto the field's declared physical range.

    ``to_physical(ReportId.DEVICE_GAIN, 'gain', 0xFF) == 10000.0``
    (10000 = 100.00 % in 0.01 % units).
    """
    spec = get_layout(report_id).field(field)
    if spec.physical is None:
        raise ValueError(f"{field} has no declared physical range")
    pmin, pmax = spec.physical
    return pmin + (raw - spec.minimum) * (pmax - pmin) / (spec.maximum - spec.minimum)


def to_logical(report_id: ReportKey, field: str, physical: float) -> int:
    """Inverse of to_physical(), rounded and range-checked."""
    layout = get_layout(report_id)
    spec = layout.field(field)
    if spec.physical is None:
        raise ValueError(f"{field} has no declared physical range")
    pmin, pmax = spec.physical
    if not pmin <= physical <= pmax:
        raise RangeError(layout.name, field, physical, pmin, pmax)
    raw = spec.minimum + (physical - pmin) * (spec.maximum - spec.minimum) / (pmax - pmin)
    return int(round(raw))


# =========================================================================
# Response decoders
# =========================================================================

def decode_block_load(data: bytes) -> BlockLoadResult:
    """Decode a PID Block Load feature response.

    The handle is reported as 0 unless status is SUCCESS, whatever the
    device put on the wire.
    """
    fields = decode(ReportId.BLOCK_LOAD, data)
    try:
        status = BlockLoadStatus(fields['status'])
    except ValueError:
        raise DecodeError(f"BlockLoad: unknown load status {fields['status']}") from None
    return BlockLoadResult(
        handle=fields['handle'],
        status=status,
        ram_available=fields['ram_available'],
        raw_response=bytes(data),
    )


def decode_pid_pool(data: bytes) -> DevicePoolInfo:
    """Decode a PID Pool feature response."""
    fields = decode(ReportId.PID_POOL, data)
    return DevicePoolInfo(
        ram_pool_size=fields['ram_pool_size'],
        simultaneous_effects_max=fields['simultaneous_effects_max'],
        device_managed_pool=fields['device_managed_pool'],
        shared_parameter_blocks=fields['shared_parameter_blocks'],
    )


def decode_pid_state(data: bytes) -> PidState:
    """Decode a PID State input report."""
    return PidState(**decode(InputReportId.PID_STATE, data))


# =========================================================================
# Typed builders
# =========================================================================

def build_device_control(flags: DeviceControlFlags) -> bytes:
    return encode(ReportId.DEVICE_CONTROL, flags=int(flags))


def build_device_gain(gain: int) -> bytes:
    return encode(ReportId.DEVICE_GAIN, gain=gain)


def build_create_new_effect(effect_type: EffectType, byte_count: int = 0) -> bytes:
    return encode(ReportId.CREATE_NEW_EFFECT, effect_type=int(effect_type),
                  byte_count=byte_count)


def build_block_free(handle: int) -> bytes:
    return encode(ReportId.BLOCK_FREE, handle=handle)


def build_effect_operation(handle: int, operation: EffectOperation,
                           loop_count: int = 1) -> bytes:
    return encode(ReportId.EFFECT_OPERATION, handle=handle,
                  operation=int(operation), loop_count=loop_count)


def build_constant_force(handle: int, magnitude: int) -> bytes:
    return encode(ReportId.SET_CONSTANT_FORCE, handle=handle, magnitude=magnitude)


def build_ramp_force(handle: int, ramp: RampForceParams) -> bytes:
    return encode(ReportId.SET_RAMP_FORCE, handle=handle,
                  ramp_start=ramp.ramp_start, ramp_end=ramp.ramp_end)


def build_envelope(handle: int, envelope: EnvelopeParams) -> bytes:
    return encode(
        ReportId.SET_ENVELOPE,
        handle=handle,
        attack_level=envelope.attack_level,
        fade_level=envelope.fade_level,
        attack_time=envelope.attack_time,
        fade_time=envelope.fade_time,
    )


def build_condition(handle: int, condition: ConditionParams) -> bytes:
    return encode(
        ReportId.SET_CONDITION,
        handle=handle,
        parameter_block_offset=condition.parameter_block_offset,
        center_point_offset=condition.center_point_offset,
        positive_coefficient=condition.positive_coefficient,
        negative_coefficient=condition.negative_coefficient,
        positive_saturation=condition.positive_saturation,
        negative_saturation=condition.negative_saturation,
        dead_band=condition.dead_band,
    )


def build_periodic(handle: int, periodic: PeriodicParams) -> bytes:
    return encode(
        ReportId.SET_PERIODIC,
        handle=handle,
        magnitude=periodic.magnitude,
        offset=periodic.offset,
        phase=periodic.phase,
        period=periodic.period,
    )


def build_set_effect(handle: int, effect_type: EffectType, params: EffectParams) -> bytes:
    offset_1, offset_2 = params.type_specific_block_offsets
    return encode(
        ReportId.SET_EFFECT,
        handle=handle,
        effect_type=int(effect_type),
        duration=params.duration,
        trigger_repeat_interval=params.trigger_repeat_interval,
        sample_period=params.sample_period,
        start_delay=params.start_delay,
        gain=params.gain,
        trigger_button=params.trigger_button,
        axis_x_enabled=params.axis_x_enabled,
        axis_y_enabled=params.axis_y_enabled,
        direction_enabled=params.direction_enabled,
        direction_x=params.direction_x,
        direction_y=params.direction_y,
        type_specific_block_offset_1=offset_1,
        type_specific_block_offset_2=offset_2,
    )
