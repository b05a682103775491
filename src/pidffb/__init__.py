"""
pidffb - USB HID PID force-feedback protocol engine

Turns haptic effect requests into the fixed-layout HID reports a
force-feedback device (wheel base, joystick) expects, tracks the device's
effect memory, and decodes its feature and status reports.

Usage:
    from pidffb import DeviceController, EffectParams, ConstantForceParams

    with DeviceController.open(0x346E, 0x0002) as dev:
        dev.initialize()
        handle = dev.create_constant_force_effect(
            EffectParams(), ConstantForceParams(magnitude=1500))
        dev.play(handle, loop_count=0)
        shaper = dev.stream_magnitudes(
            handle, alternating_magnitudes(1500, -1500, 100, 10))
        shaper.join()
"""

from pidffb.__version__ import __version__

from pidffb.core.models import (
    BlockLoadResult,
    BlockLoadStatus,
    ConditionParams,
    ConstantForceParams,
    DeviceControlFlags,
    DevicePoolInfo,
    EffectHandle,
    EffectOperation,
    EffectParams,
    EffectType,
    EnvelopeParams,
    FreeResult,
    InputReportId,
    PeriodicParams,
    PidState,
    RampForceParams,
    ReportId,
    SessionState,
)
from pidffb.errors import (
    AllocationUncertainError,
    DecodeError,
    DeviceRejectedError,
    EffectNotFoundError,
    InvalidStateError,
    PidFfbError,
    PoolExhaustedError,
    RangeError,
    ReadTimeoutError,
    TransportError,
)
from pidffb.report_codec import decode, encode
from pidffb.effect_pool import EffectPool
from pidffb.effect_session import EffectSession
from pidffb.device_controller import DeviceController
from pidffb.force_shaper import ForceShaper, alternating_magnitudes
from pidffb.device_factory import create_transport, get_backend_availability
from pidffb.conf import Settings, load_settings

__all__ = [
    '__version__',
    # Models
    'BlockLoadResult', 'BlockLoadStatus', 'ConditionParams', 'ConstantForceParams',
    'DeviceControlFlags', 'DevicePoolInfo', 'EffectHandle', 'EffectOperation',
    'EffectParams', 'EffectType', 'EnvelopeParams', 'FreeResult', 'InputReportId',
    'PeriodicParams', 'PidState', 'RampForceParams', 'ReportId', 'SessionState',
    # Errors
    'AllocationUncertainError', 'DecodeError', 'DeviceRejectedError',
    'EffectNotFoundError', 'InvalidStateError', 'PidFfbError', 'PoolExhaustedError',
    'RangeError', 'ReadTimeoutError', 'TransportError',
    # Engine
    'encode', 'decode', 'EffectPool', 'EffectSession', 'DeviceController',
    'ForceShaper', 'alternating_magnitudes',
    'create_transport', 'get_backend_availability',
    'Settings', 'load_settings',
]
