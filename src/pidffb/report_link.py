"""
Report link - sends encoded PID reports over a HidTransport and reads
responses back with bounded retry.

The link owns no protocol state; EffectPool, EffectSession and
DeviceController share one link per open device.
"""
from __future__ import annotations

import logging
from typing import Optional

from .constants import (
    DEFAULT_TIMEOUT_MS,
    FEATURE_REPORT_BUFFER,
    INPUT_REPORT_BUFFER,
    READ_MAX_ATTEMPTS,
    READ_RETRY_DELAY_S,
)
from .core.models import InputReportId, ReportId
from .errors import TransportError
from .hid_transport import HidTransport
from .report_codec import get_layout, report_length
from .retry import Clock, SystemClock, read_with_retry

log = logging.getLogger(__name__)


def _report_name(data: bytes) -> str:
    try:
        return get_layout(ReportId(data[0])).name
    except (ValueError, KeyError, IndexError):
        return "report"


class ReportLink:
    """Thin request/response layer over a transport.

    Args:
        transport: Open HID transport.
        clock: Delay source for the bounded read loops.
        read_attempts: Attempts per feature get / input read.
        read_delay_s: Delay between attempts.
    """

    def __init__(self, transport: HidTransport, clock: Optional[Clock] = None,
                 read_attempts: int = READ_MAX_ATTEMPTS,
                 read_delay_s: float = READ_RETRY_DELAY_S):
        self.transport = transport
        self.clock: Clock = clock or SystemClock()
        self.read_attempts = read_attempts
        self.read_delay_s = read_delay_s

    # ── Output ───────────────────────────────────────────────────────

    def send(self, data: bytes) -> int:
        """Write one output report (interrupt OUT)."""
        log.debug("TX %s: %s", _report_name(data), data.hex())
        written = self.transport.write(data)
        if written <= 0:
            raise TransportError(f"{_report_name(data)}: device accepted no bytes")
        return written

    def send_feature(self, data: bytes) -> int:
        """Send one feature report (SET_REPORT)."""
        log.debug("TX feature %s: %s", _report_name(data), data.hex())
        written = self.transport.send_feature_report(data)
        if written <= 0:
            raise TransportError(f"{_report_name(data)}: device accepted no bytes")
        return written

    # ── Input ────────────────────────────────────────────────────────

    def get_feature(self, report_id: ReportId) -> bytes:
        """GET_REPORT a feature report, retrying empty or short answers.

        Raises:
            ReadTimeoutError: no complete response within the allowed attempts.
            TransportError: the transport failed.
        """
        length = report_length(report_id)
        name = get_layout(report_id).name

        def _accept(resp: bytes) -> bool:
            return len(resp) >= length and resp[0] == int(report_id)

        resp = read_with_retry(
            lambda: self.transport.get_feature_report(int(report_id), FEATURE_REPORT_BUFFER),
            _accept, self.read_attempts, self.read_delay_s, self.clock, what=name,
        )
        log.debug("RX feature %s: %s", name, resp.hex())
        return resp

    def read_input(self, report_id: InputReportId,
                   timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        """Read interrupt-in reports until one with ``report_id`` arrives.

        Other input reports (axes, buttons) count as failed attempts.
        """
        length = report_length(report_id)
        name = get_layout(report_id).name

        def _accept(resp: bytes) -> bool:
            return len(resp) >= length and resp[0] == int(report_id)

        resp = read_with_retry(
            lambda: self.transport.read(INPUT_REPORT_BUFFER, timeout),
            _accept, self.read_attempts, self.read_delay_s, self.clock, what=name,
        )
        log.debug("RX %s: %s", name, resp.hex())
        return resp
