"""Shared fixtures: a scripted PID device and a fake clock.

No real USB hardware required. FakePidDevice implements HidTransport and
answers CreateNewEffect/BlockLoad/PIDPool the way a wheel base does,
unless a test scripts the responses.
"""
from collections import deque
from typing import List, Optional, Tuple

import pytest

from pidffb.core.models import BlockLoadStatus, ReportId
from pidffb.errors import TransportError
from pidffb.hid_transport import HidTransport


def block_load_response(handle: int, status: int = BlockLoadStatus.SUCCESS,
                        ram_available: int = 1000) -> bytes:
    """Raw BlockLoad feature response."""
    return bytes([ReportId.BLOCK_LOAD, handle, int(status)]) + ram_available.to_bytes(2, 'little')


def pid_pool_response(ram_pool_size: int = 0xFFFF, max_effects: int = 10,
                      device_managed: bool = True, shared: bool = False) -> bytes:
    """Raw PIDPool feature response."""
    flags = (1 if device_managed else 0) | (2 if shared else 0)
    return (bytes([ReportId.PID_POOL]) + ram_pool_size.to_bytes(2, 'little')
            + bytes([max_effects, flags]))


class FakeClock:
    """Clock that advances only when slept on."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePidDevice(HidTransport):
    """In-memory PID device.

    ``traffic`` records every report in order as ('out' | 'feature', bytes).
    ``block_loads`` / ``input_reports`` hold scripted responses; when
    ``block_loads`` is empty the device allocates the lowest free handle.
    Set ``fail_writes`` / ``fail_features`` to make the next N calls raise.
    """

    def __init__(self, max_effects: int = 10, ram_available: int = 1000):
        self.max_effects = max_effects
        self.ram_available = ram_available
        self.allocated: set = set()
        self.traffic: List[Tuple[str, bytes]] = []
        self.block_loads: deque = deque()
        self.feature_responses: dict = {}
        self.input_reports: deque = deque()
        self.fail_writes = 0
        self.fail_features = 0
        self.fail_get_features = 0
        self.opened = True
        self.closed = False
        self.last_type: Optional[int] = None

    # HidTransport

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.opened = False
        self.closed = True

    @property
    def is_open(self) -> bool:
        return self.opened

    def write(self, data: bytes) -> int:
        if self.fail_writes:
            self.fail_writes -= 1
            raise TransportError("write failed: [Errno 5] Input/output error")
        data = bytes(data)
        self.traffic.append(('out', data))
        if data[0] == ReportId.BLOCK_FREE:
            self.allocated.discard(data[1])
        elif data[0] == ReportId.DEVICE_CONTROL and data[1] & 0x08:
            self.allocated.clear()
        return len(data)

    def read(self, length: int, timeout: int = 100) -> bytes:
        if self.input_reports:
            return self.input_reports.popleft()
        return b''

    def send_feature_report(self, data: bytes) -> int:
        if self.fail_features:
            self.fail_features -= 1
            raise TransportError("send_feature_report failed")
        data = bytes(data)
        self.traffic.append(('feature', data))
        if data[0] == ReportId.CREATE_NEW_EFFECT:
            self.last_type = data[1]
        return len(data)

    def get_feature_report(self, report_id: int, length: int) -> bytes:
        if self.fail_get_features:
            self.fail_get_features -= 1
            raise TransportError(f"get_feature_report(0x{report_id:02x}) failed")
        if report_id == ReportId.BLOCK_LOAD:
            if self.block_loads:
                resp = self.block_loads.popleft()
                if resp and resp[2] == BlockLoadStatus.SUCCESS:
                    self.allocated.add(resp[1])
                return resp
            return self._auto_block_load()
        if report_id in self.feature_responses:
            return self.feature_responses[report_id]
        if report_id == ReportId.PID_POOL:
            return pid_pool_response(max_effects=self.max_effects)
        return b''

    def _auto_block_load(self) -> bytes:
        for handle in range(1, self.max_effects + 1):
            if handle not in self.allocated:
                self.allocated.add(handle)
                return block_load_response(handle, BlockLoadStatus.SUCCESS,
                                           self.ram_available)
        return block_load_response(0, BlockLoadStatus.FULL, 0)

    # Test helpers

    @property
    def outputs(self) -> List[bytes]:
        return [data for kind, data in self.traffic if kind == 'out']

    def report_ids(self) -> List[int]:
        return [data[0] for _, data in self.traffic]

    def clear(self) -> None:
        self.traffic.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def device():
    return FakePidDevice()
