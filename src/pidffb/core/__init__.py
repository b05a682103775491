"""
pidffb core - protocol data model.

Models: enums and dataclasses only (ReportId, EffectType, EffectParams, ...).
The codec, pool, session and controller live one level up and import from
here, never the other way around.
"""

from .models import (
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

__all__ = [
    'BlockLoadResult',
    'BlockLoadStatus',
    'ConditionParams',
    'ConstantForceParams',
    'DeviceControlFlags',
    'DevicePoolInfo',
    'EffectHandle',
    'EffectOperation',
    'EffectParams',
    'EffectType',
    'EnvelopeParams',
    'FreeResult',
    'InputReportId',
    'PeriodicParams',
    'PidState',
    'RampForceParams',
    'ReportId',
    'SessionState',
]
