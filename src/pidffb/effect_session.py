"""
Effect session - lifecycle of one effect block.

    UNALLOCATED → ALLOCATED → CONFIGURED → PLAYING ⇄ STOPPED → FREED

ALLOCATED, CONFIGURED and STOPPED may go straight to FREED.  FREED is
terminal.  Every method builds all of its reports before the first byte
is written, so a RangeError or TypeError leaves both the device and the
session untouched.  A TransportError leaves the session in its previous
state.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple, Union

from .constants import UNALLOCATED_HANDLE
from .core.models import (
    ConditionParams,
    ConstantForceParams,
    EffectHandle,
    EffectOperation,
    EffectParams,
    EffectType,
    EnvelopeParams,
    FreeResult,
    PeriodicParams,
    RampForceParams,
    SessionState,
)
from .effect_pool import EffectPool
from .errors import InvalidStateError
from .report_codec import (
    build_condition,
    build_constant_force,
    build_effect_operation,
    build_envelope,
    build_periodic,
    build_ramp_force,
    build_set_effect,
)
from .report_link import ReportLink

log = logging.getLogger(__name__)

TypeSpecific = Union[
    ConstantForceParams,
    RampForceParams,
    PeriodicParams,
    ConditionParams,
    Sequence[ConditionParams],
]

# Any in-range handle will do for a dry-run encode.
_PROBE_HANDLE = 1

FREEABLE_STATES = frozenset({
    SessionState.ALLOCATED,
    SessionState.CONFIGURED,
    SessionState.STOPPED,
})


def _normalize_type_specific(effect_type: EffectType, type_specific, envelope):
    """Check that ``type_specific`` fits ``effect_type``.

    Condition effects take one ConditionParams per axis (a single block or
    a sequence of up to two) and no envelope.
    """
    if effect_type == EffectType.CONSTANT_FORCE:
        expected: type = ConstantForceParams
    elif effect_type == EffectType.RAMP:
        expected = RampForceParams
    elif effect_type.is_periodic:
        expected = PeriodicParams
    else:
        if envelope is not None:
            raise TypeError(f"{effect_type.name} effects take no envelope")
        blocks = ((type_specific,) if isinstance(type_specific, ConditionParams)
                  else tuple(type_specific or ()))
        if not 1 <= len(blocks) <= 2 or not all(
                isinstance(b, ConditionParams) for b in blocks):
            raise TypeError(
                f"{effect_type.name} needs one or two ConditionParams, got {type_specific!r}"
            )
        return blocks

    if not isinstance(type_specific, expected):
        raise TypeError(
            f"{effect_type.name} needs {expected.__name__}, got {type(type_specific).__name__}"
        )
    if envelope is not None and not isinstance(envelope, EnvelopeParams):
        raise TypeError(f"envelope must be EnvelopeParams, got {type(envelope).__name__}")
    return type_specific


def configuration_reports(handle: EffectHandle, effect_type: EffectType,
                          params: EffectParams, type_specific: TypeSpecific,
                          envelope: Optional[EnvelopeParams] = None) -> List[bytes]:
    """Encode the report sequence that configures one effect.

    Type-specific block(s) first, then the optional envelope, then Set
    Effect.  Raises RangeError/TypeError before anything is returned.
    """
    effect_type = EffectType(effect_type)
    type_specific = _normalize_type_specific(effect_type, type_specific, envelope)

    reports: List[bytes] = []
    if effect_type == EffectType.CONSTANT_FORCE:
        reports.append(build_constant_force(handle, type_specific.magnitude))
    elif effect_type == EffectType.RAMP:
        reports.append(build_ramp_force(handle, type_specific))
    elif effect_type.is_periodic:
        reports.append(build_periodic(handle, type_specific))
    else:
        reports.extend(build_condition(handle, block) for block in type_specific)

    if envelope is not None:
        reports.append(build_envelope(handle, envelope))
    reports.append(build_set_effect(handle, effect_type, params))
    return reports


class EffectSession:
    """State machine for a single effect on one device.

    Args:
        pool: Pool the handle is allocated from and returned to.
        link: Report link of the same device.
        effect_type: Effect type requested at allocation.
    """

    def __init__(self, pool: EffectPool, link: ReportLink, effect_type: EffectType):
        self._pool = pool
        self._link = link
        self.effect_type = EffectType(effect_type)
        self._handle: EffectHandle = UNALLOCATED_HANDLE
        self._state = SessionState.UNALLOCATED
        self.params: Optional[EffectParams] = None
        self.type_specific = None
        self.envelope: Optional[EnvelopeParams] = None

    def __repr__(self) -> str:
        return (f"EffectSession({self.effect_type.name}, handle={self._handle}, "
                f"state={self._state.name})")

    @property
    def handle(self) -> EffectHandle:
        return self._handle

    @property
    def state(self) -> SessionState:
        return self._state

    def _require(self, operation: str, *allowed: SessionState) -> None:
        if self._state not in allowed:
            raise InvalidStateError(operation, self._state)

    # ── Transitions ──────────────────────────────────────────────────

    def allocate(self) -> EffectHandle:
        self._require("allocate", SessionState.UNALLOCATED)
        self._handle = self._pool.allocate(self.effect_type)
        self._state = SessionState.ALLOCATED
        return self._handle

    def validate(self, params: EffectParams, type_specific: Optional[TypeSpecific] = None,
                 envelope: Optional[EnvelopeParams] = None) -> None:
        """Dry-run encode of a configuration, without a handle or any I/O."""
        configuration_reports(_PROBE_HANDLE, self.effect_type, params,
                              type_specific, envelope)

    def configure(self, params: EffectParams,
                  type_specific: Optional[TypeSpecific] = None,
                  envelope: Optional[EnvelopeParams] = None) -> None:
        """Send the type-specific report(s) and Set Effect.

        From ALLOCATED or CONFIGURED the session becomes CONFIGURED.  From
        PLAYING or STOPPED the parameters are re-sent and the state is kept.
        ``type_specific=None`` re-sends the last type-specific block.
        """
        self._require("configure", SessionState.ALLOCATED, SessionState.CONFIGURED,
                      SessionState.PLAYING, SessionState.STOPPED)
        if type_specific is None:
            type_specific = self.type_specific
        reports = configuration_reports(self._handle, self.effect_type, params,
                                        type_specific, envelope)
        for report in reports:
            self._link.send(report)

        self.params = params
        self.type_specific = type_specific
        self.envelope = envelope
        if self._state in (SessionState.ALLOCATED, SessionState.CONFIGURED):
            self._state = SessionState.CONFIGURED
        log.debug("Configured %r (%d reports)", self, len(reports))

    def start(self, loop_count: int = 1, solo: bool = False) -> None:
        self._require("start", SessionState.CONFIGURED, SessionState.STOPPED)
        op = EffectOperation.START_SOLO if solo else EffectOperation.START
        self._link.send(build_effect_operation(self._handle, op, loop_count))
        self._state = SessionState.PLAYING
        log.debug("Started handle=%d (%s, loops=%d)", self._handle, op.name, loop_count)

    def update_live_magnitude(self, value: int) -> None:
        """Re-send only the magnitude-bearing block of a playing effect.

        Constant force: Set Constant Force.  Periodic: Set Periodic with the
        new magnitude.  Condition: Set Condition per axis with both
        coefficients set to ``value``.  Ramp effects have no single
        magnitude and are refused.
        """
        self._require("update the magnitude of", SessionState.PLAYING)
        reports, updated = self._magnitude_reports(value)
        for report in reports:
            self._link.send(report)
        self.type_specific = updated

    def _magnitude_reports(self, value: int) -> Tuple[List[bytes], object]:
        if self.effect_type == EffectType.CONSTANT_FORCE:
            return [build_constant_force(self._handle, value)], ConstantForceParams(value)
        if self.effect_type == EffectType.RAMP:
            raise InvalidStateError("update the magnitude of", self._state,
                                    "ramp effects have no single magnitude")
        if self.effect_type.is_periodic:
            periodic = replace(self.type_specific, magnitude=value)
            return [build_periodic(self._handle, periodic)], periodic
        blocks = tuple(
            replace(block, positive_coefficient=value, negative_coefficient=value)
            for block in _normalize_type_specific(self.effect_type, self.type_specific, None)
        )
        return [build_condition(self._handle, block) for block in blocks], blocks

    def stop(self) -> None:
        self._require("stop", SessionState.PLAYING)
        self._link.send(build_effect_operation(self._handle, EffectOperation.STOP, 0))
        self._state = SessionState.STOPPED
        log.debug("Stopped handle=%d", self._handle)

    def mark_stopped(self) -> None:
        """Record that the device stopped this effect (Stop All Effects)."""
        if self._state == SessionState.PLAYING:
            self._state = SessionState.STOPPED

    def free(self) -> FreeResult:
        """Return the handle to the pool.  FREED is terminal."""
        self._require("free", *FREEABLE_STATES)
        result = self._pool.free(self._handle)
        if result == FreeResult.NOT_FOUND:
            log.warning("Handle %d was already gone from the pool", self._handle)
        self._state = SessionState.FREED
        return result

    def invalidate(self) -> None:
        """Mark the session FREED without I/O (the device was reset)."""
        if self._state != SessionState.FREED:
            log.debug("Invalidating %r", self)
        self._state = SessionState.FREED
