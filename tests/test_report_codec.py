"""Tests for the table-driven PID report codec."""

import pytest

from pidffb.core.models import (
    BlockLoadStatus,
    ConditionParams,
    DeviceControlFlags,
    EffectOperation,
    EffectParams,
    EffectType,
    EnvelopeParams,
    InputReportId,
    PeriodicParams,
    RampForceParams,
    ReportId,
)
from pidffb.errors import DecodeError, RangeError
from pidffb.report_codec import (
    LAYOUTS,
    build_block_free,
    build_condition,
    build_constant_force,
    build_create_new_effect,
    build_device_control,
    build_device_gain,
    build_effect_operation,
    build_envelope,
    build_periodic,
    build_ramp_force,
    build_set_effect,
    decode,
    decode_block_load,
    decode_pid_pool,
    decode_pid_state,
    encode,
    get_layout,
    report_length,
    to_logical,
    to_physical,
)


def _set_effect_bytes(direction_x_raw: int = 0) -> bytes:
    buf = bytearray(22)
    buf[0] = ReportId.SET_EFFECT
    buf[1] = 3
    buf[2] = EffectType.CONSTANT_FORCE
    buf[14:16] = direction_x_raw.to_bytes(2, 'little')
    return bytes(buf)


# =========================================================================
# Layout table
# =========================================================================

class TestLayouts:

    @pytest.mark.parametrize("report_id,length", [
        (ReportId.SET_EFFECT, 22),
        (ReportId.SET_ENVELOPE, 14),
        (ReportId.SET_CONDITION, 15),
        (ReportId.SET_PERIODIC, 12),
        (ReportId.SET_CONSTANT_FORCE, 4),
        (ReportId.SET_RAMP_FORCE, 6),
        (ReportId.EFFECT_OPERATION, 4),
        (ReportId.BLOCK_FREE, 2),
        (ReportId.DEVICE_CONTROL, 2),
        (ReportId.DEVICE_GAIN, 2),
        (ReportId.CREATE_NEW_EFFECT, 4),
        (ReportId.BLOCK_LOAD, 5),
        (ReportId.PID_POOL, 5),
    ])
    def test_report_lengths(self, report_id, length):
        assert report_length(report_id) == length

    def test_every_report_id_has_a_layout(self):
        assert set(LAYOUTS) == set(ReportId)

    def test_input_ids_use_their_own_table(self):
        # PID State and Set Envelope share 0x02
        assert get_layout(InputReportId.PID_STATE).name == 'PIDState'
        assert get_layout(ReportId.SET_ENVELOPE).name == 'SetEnvelope'

    def test_fields_do_not_overlap(self):
        for layout in LAYOUTS.values():
            used = set()
            for f in layout.fields:
                span = set(range(f.offset, f.offset + f.width))
                assert not span & used, f"{layout.name}.{f.name} overlaps"
                used |= span
            assert 0 not in used


# =========================================================================
# Set Constant Force
# =========================================================================

class TestConstantForce:

    def test_exact_bytes(self):
        assert build_constant_force(3, 1500) == bytes([0x05, 0x03, 0xDC, 0x05])

    def test_negative_magnitude_is_twos_complement(self):
        assert build_constant_force(3, -1500) == bytes([0x05, 0x03, 0x24, 0xFA])

    def test_round_trip_physical_range(self):
        for m in range(-10000, 10001):
            data = encode(ReportId.SET_CONSTANT_FORCE, handle=1, magnitude=m)
            assert decode(ReportId.SET_CONSTANT_FORCE, data)['magnitude'] == m

    def test_logical_extremes(self):
        assert decode(ReportId.SET_CONSTANT_FORCE,
                      build_constant_force(1, -32768))['magnitude'] == -32768
        assert decode(ReportId.SET_CONSTANT_FORCE,
                      build_constant_force(1, 32767))['magnitude'] == 32767

    @pytest.mark.parametrize("magnitude", [40000, 32768, -32769])
    def test_out_of_range_magnitude(self, magnitude):
        with pytest.raises(RangeError) as exc:
            encode(ReportId.SET_CONSTANT_FORCE, handle=3, magnitude=magnitude)
        assert exc.value.field == 'magnitude'
        assert exc.value.minimum == -32768
        assert exc.value.maximum == 32767

    def test_range_error_is_value_error(self):
        with pytest.raises(ValueError):
            build_constant_force(3, 40000)

    def test_fractional_magnitude_rejected(self):
        with pytest.raises(RangeError):
            build_constant_force(3, 1.5)

    def test_handle_zero_rejected(self):
        with pytest.raises(RangeError):
            build_constant_force(0, 100)


# =========================================================================
# Set Effect
# =========================================================================

class TestSetEffect:

    def test_defaults(self):
        data = build_set_effect(3, EffectType.CONSTANT_FORCE, EffectParams())
        assert len(data) == 22
        assert data[0:3] == bytes([0x01, 0x03, 0x01])
        assert data[3:5] == b'\xff\xff'       # infinite duration
        assert data[11] == 0xFF               # full gain
        assert data[12] == 0xFF               # no trigger button
        assert data[13] == 0b100              # direction enable only

    def test_axis_and_direction_bits(self):
        params = EffectParams(axis_x_enabled=True, axis_y_enabled=True,
                              direction_enabled=False)
        data = build_set_effect(1, EffectType.SINE, params)
        assert data[13] == 0b011

    def test_reserved_bits_zero(self):
        params = EffectParams(axis_x_enabled=True, axis_y_enabled=True,
                              direction_enabled=True)
        data = build_set_effect(1, EffectType.SINE, params)
        assert data[13] & 0xF8 == 0

    def test_time_fields_in_centiseconds(self):
        params = EffectParams(duration=2.5, trigger_repeat_interval=0.1,
                              sample_period=0.01, start_delay=1.0)
        data = build_set_effect(1, EffectType.CONSTANT_FORCE, params)
        assert data[3:5] == (250).to_bytes(2, 'little')
        assert data[5:7] == (10).to_bytes(2, 'little')
        assert data[7:9] == (1).to_bytes(2, 'little')
        assert data[9:11] == (100).to_bytes(2, 'little')

    def test_direction_encodes_centidegrees(self):
        data = build_set_effect(1, EffectType.CONSTANT_FORCE, EffectParams(direction_x=90.0))
        assert data[14:16] == bytes([0x28, 0x23])

    def test_direction_0x2328_decodes_to_90_degrees(self):
        fields = decode(ReportId.SET_EFFECT, _set_effect_bytes(0x2328))
        assert fields['direction_x'] == 90.0
        assert fields['direction_x'] != 900.0

    @pytest.mark.parametrize("direction", [360.0, -0.01, 400.0])
    def test_direction_out_of_range(self, direction):
        with pytest.raises(RangeError):
            build_set_effect(1, EffectType.CONSTANT_FORCE, EffectParams(direction_x=direction))

    def test_max_direction(self):
        data = build_set_effect(1, EffectType.CONSTANT_FORCE, EffectParams(direction_y=359.99))
        assert data[16:18] == (35999).to_bytes(2, 'little')

    def test_trigger_button_range(self):
        data = build_set_effect(1, EffectType.CONSTANT_FORCE, EffectParams(trigger_button=8))
        assert data[12] == 8
        with pytest.raises(RangeError):
            build_set_effect(1, EffectType.CONSTANT_FORCE, EffectParams(trigger_button=9))

    def test_duration_null_round_trip(self):
        data = build_set_effect(1, EffectType.CONSTANT_FORCE, EffectParams(duration=None))
        assert decode(ReportId.SET_EFFECT, data)['duration'] is None

    def test_gain_out_of_range(self):
        with pytest.raises(RangeError):
            build_set_effect(1, EffectType.CONSTANT_FORCE, EffectParams(gain=256))

    def test_block_offsets(self):
        params = EffectParams(type_specific_block_offsets=(0x1234, 0x00FF))
        data = build_set_effect(1, EffectType.SPRING, params)
        assert data[18:22] == bytes([0x34, 0x12, 0xFF, 0x00])


# =========================================================================
# Other output reports
# =========================================================================

class TestOutputReports:

    def test_envelope(self):
        env = EnvelopeParams(attack_level=0x7FFF, fade_level=100,
                             attack_time=0.5, fade_time=0.0001)
        data = build_envelope(3, env)
        assert data[0:2] == bytes([0x02, 0x03])
        assert data[2:4] == bytes([0xFF, 0x7F])
        assert data[4:6] == (100).to_bytes(2, 'little')
        assert data[6:10] == (5000).to_bytes(4, 'little')
        assert data[10:14] == (1).to_bytes(4, 'little')

    def test_envelope_all_zero(self):
        assert build_envelope(3, EnvelopeParams()) == bytes([0x02, 0x03]) + b'\x00' * 12

    def test_envelope_level_out_of_range(self):
        with pytest.raises(RangeError):
            build_envelope(3, EnvelopeParams(attack_level=0x8000))

    def test_envelope_time_decodes_to_seconds(self):
        fields = decode(ReportId.SET_ENVELOPE, build_envelope(3, EnvelopeParams(fade_time=1.25)))
        assert fields['fade_time'] == 1.25

    def test_condition(self):
        cond = ConditionParams(parameter_block_offset=1, center_point_offset=-100,
                               positive_coefficient=2000, negative_coefficient=-2000,
                               positive_saturation=10000, negative_saturation=10000,
                               dead_band=50)
        data = build_condition(2, cond)
        assert len(data) == 15
        assert data[0:3] == bytes([0x03, 0x02, 0x01])
        assert decode(ReportId.SET_CONDITION, data)['negative_coefficient'] == -2000

    def test_condition_axis_out_of_range(self):
        with pytest.raises(RangeError):
            build_condition(2, ConditionParams(parameter_block_offset=2))

    def test_periodic(self):
        data = build_periodic(4, PeriodicParams(magnitude=5000, offset=-10,
                                                phase=180.0, period=0.1))
        fields = decode(ReportId.SET_PERIODIC, data)
        assert fields == {'handle': 4, 'magnitude': 5000, 'offset': -10,
                          'phase': 180.0, 'period': 0.1}

    def test_periodic_phase_limit(self):
        build_periodic(4, PeriodicParams(phase=359.98))
        with pytest.raises(RangeError):
            build_periodic(4, PeriodicParams(phase=359.99))

    def test_ramp(self):
        data = build_ramp_force(5, RampForceParams(ramp_start=-1000, ramp_end=1000))
        assert data == bytes([0x06, 0x05]) + (-1000).to_bytes(2, 'little', signed=True) \
            + (1000).to_bytes(2, 'little')

    def test_effect_operation(self):
        assert build_effect_operation(3, EffectOperation.START, 0) == bytes([0x0A, 3, 1, 0])
        assert build_effect_operation(3, EffectOperation.START_SOLO, 0xFF) == \
            bytes([0x0A, 3, 2, 0xFF])
        assert build_effect_operation(3, EffectOperation.STOP) == bytes([0x0A, 3, 3, 1])

    def test_block_free(self):
        assert build_block_free(7) == bytes([0x0B, 0x07])

    def test_device_control(self):
        assert build_device_control(DeviceControlFlags.DEVICE_RESET) == bytes([0x0C, 0x08])
        assert build_device_control(DeviceControlFlags.STOP_ALL_EFFECTS) == bytes([0x0C, 0x04])

    def test_device_control_combined_flags(self):
        flags = DeviceControlFlags.ENABLE_ACTUATORS | DeviceControlFlags.DEVICE_CONTINUE
        assert build_device_control(flags) == bytes([0x0C, 0x21])

    def test_device_gain(self):
        assert build_device_gain(0xFF) == bytes([0x0D, 0xFF])
        with pytest.raises(RangeError):
            build_device_gain(256)

    def test_create_new_effect(self):
        assert build_create_new_effect(EffectType.CONSTANT_FORCE) == bytes([0x11, 1, 0, 0])
        assert build_create_new_effect(EffectType.FRICTION, byte_count=0x0102) == \
            bytes([0x11, 11, 0x02, 0x01])


# =========================================================================
# encode() / decode() edge cases
# =========================================================================

class TestEncodeDecode:

    def test_unknown_field(self):
        with pytest.raises(RangeError) as exc:
            encode(ReportId.BLOCK_FREE, handle=1, colour=3)
        assert exc.value.field == 'colour'

    def test_missing_fields_are_zero(self):
        assert encode(ReportId.DEVICE_GAIN) == bytes([0x0D, 0x00])

    def test_bit_field_must_be_int(self):
        with pytest.raises(RangeError):
            encode(ReportId.SET_EFFECT, handle=1, effect_type=1, axis_x_enabled=None)

    def test_bit_field_too_wide(self):
        with pytest.raises(RangeError):
            encode(ReportId.SET_EFFECT, handle=1, effect_type=1, axis_x_enabled=2)

    def test_nan_rejected(self):
        with pytest.raises(RangeError):
            encode(ReportId.SET_ENVELOPE, handle=1, attack_time=float('nan'))

    def test_short_buffer(self):
        with pytest.raises(DecodeError):
            decode(ReportId.BLOCK_LOAD, bytes([0x12, 0x01]))

    def test_wrong_report_id(self):
        with pytest.raises(DecodeError):
            decode(ReportId.BLOCK_LOAD, bytes([0x13, 1, 1, 0, 0]))

    def test_trailing_padding_ignored(self):
        data = bytes([0x12, 3, 1, 0xE8, 0x03]) + b'\x00' * 59
        assert decode(ReportId.BLOCK_LOAD, data)['ram_available'] == 1000


# =========================================================================
# Feature / input decoders
# =========================================================================

class TestResponseDecoders:

    def test_block_load_success(self):
        result = decode_block_load(bytes([0x12, 0x03, 0x01, 0xE8, 0x03]))
        assert result.handle == 3
        assert result.status == BlockLoadStatus.SUCCESS
        assert result.ram_available == 1000

    @pytest.mark.parametrize("status", [BlockLoadStatus.FULL, BlockLoadStatus.ERROR])
    def test_block_load_failure_zeroes_handle(self, status):
        result = decode_block_load(bytes([0x12, 0x05, status, 0x00, 0x00]))
        assert result.status == status
        assert result.handle == 0

    def test_block_load_unknown_status(self):
        with pytest.raises(DecodeError):
            decode_block_load(bytes([0x12, 0x01, 0x07, 0x00, 0x00]))

    def test_block_load_keeps_raw_response(self):
        raw = bytes([0x12, 0x03, 0x01, 0xE8, 0x03, 0x00])
        assert decode_block_load(raw).raw_response == raw

    def test_pid_pool(self):
        info = decode_pid_pool(bytes([0x13, 0xFF, 0xFF, 0x0A, 0x01]))
        assert info.ram_pool_size == 0xFFFF
        assert info.simultaneous_effects_max == 10
        assert info.device_managed_pool is True
        assert info.shared_parameter_blocks is False

    def test_pid_pool_shared_blocks(self):
        info = decode_pid_pool(bytes([0x13, 0x00, 0x10, 0x04, 0x02]))
        assert info.ram_pool_size == 0x1000
        assert info.device_managed_pool is False
        assert info.shared_parameter_blocks is True

    def test_pid_state(self):
        state = decode_pid_state(bytes([0x02, 0b00010010, (3 << 1) | 1]))
        assert state.actuators_enabled is True
        assert state.actuator_power is True
        assert state.device_paused is False
        assert state.effect_playing is True
        assert state.effect_handle == 3


# =========================================================================
# Physical scaling
# =========================================================================

class TestScaling:

    def test_full_gain_is_100_percent(self):
        assert to_physical(ReportId.DEVICE_GAIN, 'gain', 0xFF) == 10000

    def test_zero_gain(self):
        assert to_physical(ReportId.DEVICE_GAIN, 'gain', 0) == 0

    def test_set_effect_gain_scale(self):
        assert to_physical(ReportId.SET_EFFECT, 'gain', 0xFF) == 10000

    def test_magnitude_extremes(self):
        assert to_physical(ReportId.SET_CONSTANT_FORCE, 'magnitude', 32767) == 10000
        assert to_physical(ReportId.SET_CONSTANT_FORCE, 'magnitude', -32768) == -10000

    def test_to_logical_inverse(self):
        assert to_logical(ReportId.DEVICE_GAIN, 'gain', 10000) == 0xFF
        assert to_logical(ReportId.SET_CONSTANT_FORCE, 'magnitude', 10000) == 32767
        assert to_logical(ReportId.SET_CONSTANT_FORCE, 'magnitude', -10000) == -32768

    def test_to_logical_out_of_range(self):
        with pytest.raises(RangeError):
            to_logical(ReportId.DEVICE_GAIN, 'gain', 10001)

    def test_field_without_physical_range(self):
        with pytest.raises(ValueError):
            to_physical(ReportId.BLOCK_FREE, 'handle', 1)
