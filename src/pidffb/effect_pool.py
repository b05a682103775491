"""
Effect pool - the device's effect-block memory as seen from the host.

Tracks the PID Pool feature report and the set of effect blocks the
device has handed out.  A handle exists here iff the device answered a
Block Load request with status Success for it and the handle was usable.
An unusable Success is handed straight back with Block Free.

Allocation is the CreateNewEffect (SET_REPORT) → BlockLoad (GET_REPORT)
round trip.  The two reports are not atomic on the wire; callers must
serialize device access (DeviceController holds a lock around it).
"""
from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Optional

from .constants import MAX_EFFECT_BLOCKS, UNALLOCATED_HANDLE
from .core.models import (
    BlockLoadResult,
    BlockLoadStatus,
    DevicePoolInfo,
    EffectHandle,
    EffectType,
    FreeResult,
    ReportId,
)
from .errors import DeviceRejectedError, PoolExhaustedError, TransportError
from .report_codec import (
    build_block_free,
    build_create_new_effect,
    decode_block_load,
    decode_pid_pool,
)
from .report_link import ReportLink

log = logging.getLogger(__name__)


class EffectPool:
    """Registry of allocated effect blocks for one open device."""

    def __init__(self, link: ReportLink):
        self._link = link
        self._effects: Dict[EffectHandle, EffectType] = {}
        self.info: Optional[DevicePoolInfo] = None
        self.ram_available: Optional[int] = None
        self.last_block_load: Optional[BlockLoadResult] = None

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def handles(self) -> FrozenSet[EffectHandle]:
        return frozenset(self._effects)

    def effect_type(self, handle: EffectHandle) -> Optional[EffectType]:
        return self._effects.get(handle)

    def __contains__(self, handle: object) -> bool:
        return handle in self._effects

    def __len__(self) -> int:
        return len(self._effects)

    def query_info(self) -> DevicePoolInfo:
        """Read the PID Pool feature report and remember it."""
        self.info = decode_pid_pool(self._link.get_feature(ReportId.PID_POOL))
        log.info(
            "PID pool: ram=%d max_effects=%d device_managed=%s shared_blocks=%s",
            self.info.ram_pool_size, self.info.simultaneous_effects_max,
            self.info.device_managed_pool, self.info.shared_parameter_blocks,
        )
        return self.info

    # ── Allocation ───────────────────────────────────────────────────

    def allocate(self, effect_type: EffectType) -> EffectHandle:
        """Ask the device for a new effect block of ``effect_type``.

        Raises:
            PoolExhaustedError: device answered Full.
            DeviceRejectedError: device answered Error, or Success with a
                handle that is zero, above MAX_EFFECT_BLOCKS or already in
                use.  Unusable non-zero handles are freed on the device.
            ReadTimeoutError / TransportError: from the link.
        """
        effect_type = EffectType(effect_type)
        self._link.send_feature(build_create_new_effect(effect_type))
        result = decode_block_load(self._link.get_feature(ReportId.BLOCK_LOAD))
        self.last_block_load = result
        self.ram_available = result.ram_available

        if result.status == BlockLoadStatus.FULL:
            raise PoolExhaustedError(
                f"device effect memory full ({len(self._effects)} allocated, "
                f"ram available {result.ram_available})"
            )
        if result.status == BlockLoadStatus.ERROR:
            raise DeviceRejectedError(f"device rejected {effect_type.name} allocation")

        handle = result.handle
        if handle == UNALLOCATED_HANDLE:
            raise DeviceRejectedError("block load returned Success without a handle")
        if handle > MAX_EFFECT_BLOCKS:
            self._release_rejected(handle)
            raise DeviceRejectedError(
                f"block load returned handle {handle} outside 1..{MAX_EFFECT_BLOCKS}"
            )
        if handle in self._effects:
            self._release_rejected(handle)
            raise DeviceRejectedError(f"block load returned handle {handle} already in use")

        self._effects[handle] = effect_type
        log.info("Allocated %s effect, handle=%d (ram available %d)",
                 effect_type.name, handle, result.ram_available)
        return handle

    def _release_rejected(self, handle: EffectHandle) -> None:
        # The device reported Success, so it holds this block until told otherwise.
        log.warning("Rejecting block load handle=%d, sending Block Free", handle)
        try:
            self._link.send(build_block_free(handle))
        except TransportError as e:
            log.warning("Block Free for rejected handle %d failed: %s", handle, e)

    def free(self, handle: EffectHandle) -> FreeResult:
        """Release an effect block.

        Unknown handles are a local no-op: nothing is transmitted and the
        pool is unchanged, so double frees are harmless.
        """
        if handle not in self._effects:
            log.debug("free(%d): handle not registered", handle)
            return FreeResult.NOT_FOUND
        self._link.send(build_block_free(handle))
        del self._effects[handle]
        log.info("Freed effect handle=%d", handle)
        return FreeResult.FREED

    def reset(self) -> None:
        """Forget every handle (the device dropped them on Device Reset)."""
        if self._effects:
            log.debug("Pool reset: dropping handles %s", sorted(self._effects))
        self._effects.clear()
