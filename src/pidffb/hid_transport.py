#!/usr/bin/env python3
"""
HID transport layer for PID force-feedback devices.

The ``HidTransport`` ABC abstracts the raw report I/O so that:
  • Tests can inject a mock transport (no real hardware needed).
  • ``HidApiTransport`` talks to the OS HID driver via HIDAPI.
  • ``PyUsbTransport`` drives the interface directly via pyusb (libusb),
    using interrupt endpoints for output/input reports and HID class
    GET_REPORT / SET_REPORT control transfers for feature reports.

Every backend failure is re-raised as ``TransportError``.  A read that
simply times out is not an error: it returns ``b''`` and the caller's
bounded retry loop decides what to do.

Linux dependencies (install one):
  • hidapi: ``pip install hidapi`` (needs libhidapi - ``apt install libhidapi-dev``)
  • pyusb:  ``pip install pyusb``  (needs libusb1 - ``apt install libusb-1.0-0``)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import usb.core
import usb.util

from .constants import (
    DEFAULT_TIMEOUT_MS,
    HID_GET_REPORT,
    HID_REPORT_TYPE_FEATURE,
    HID_REPORT_TYPE_OUTPUT,
    HID_SET_REPORT,
    USB_INTERFACE,
)
from .errors import TransportError

# hidapi is optional ([hid] extra)
try:
    import hid as hidapi
    HIDAPI_AVAILABLE = True
except ImportError:
    HIDAPI_AVAILABLE = False

log = logging.getLogger(__name__)

# pyusb is a hard dep - always True, exported for device_factory
PYUSB_AVAILABLE = True

# USB interface class code for HID
USB_CLASS_HID = 0x03


# =========================================================================
# Abstract HID transport
# =========================================================================

class HidTransport(ABC):
    """Abstract HID report transport - mockable for testing."""

    @abstractmethod
    def open(self) -> None:
        """Open the device."""

    @abstractmethod
    def close(self) -> None:
        """Close the device and release the interface."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Send an output report (byte 0 = report id).  Returns bytes written."""

    @abstractmethod
    def read(self, length: int, timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        """Read one input report.  Returns ``b''`` on timeout."""

    @abstractmethod
    def get_feature_report(self, report_id: int, length: int) -> bytes:
        """GET_REPORT (feature).  Returned data starts with the report id."""

    @abstractmethod
    def send_feature_report(self, data: bytes) -> int:
        """SET_REPORT (feature), byte 0 = report id.  Returns bytes written."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the device is currently open."""

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


# =========================================================================
# Real transport: HIDAPI
# =========================================================================

class HidApiTransport(HidTransport):
    """HID transport using HIDAPI (cython-hidapi ``hid`` module).

    HIDAPI goes through the OS HID driver, so the wheel keeps working as a
    game controller while we talk to its PID reports, and no root access
    or kernel-driver detach is needed.

    Requires: ``pip install hidapi`` + ``apt install libhidapi-dev``
    """

    def __init__(self, vid: int, pid: int, serial: Optional[str] = None):
        if not HIDAPI_AVAILABLE:
            raise ImportError(
                "hidapi is not installed. Install with: pip install hidapi\n"
                "Also need libhidapi: apt install libhidapi-dev (Debian/Ubuntu) "
                "or dnf install hidapi-devel (Fedora)"
            )
        self._vid = vid
        self._pid = pid
        self._serial = serial
        self._device: Any = None
        self._is_open = False

    def open(self) -> None:
        """Open HID device by VID/PID (and serial, when given)."""
        device = hidapi.device()
        try:
            device.open(self._vid, self._pid, self._serial)
        except (OSError, ValueError) as e:
            raise TransportError(
                f"HID device not found: VID={self._vid:#06x} PID={self._pid:#06x}: {e}"
            ) from e
        device.set_nonblocking(0)
        self._device = device
        self._is_open = True
        log.debug("Opened HID device %04x:%04x via hidapi", self._vid, self._pid)

    def close(self) -> None:
        """Close HID device."""
        if self._device is not None:
            try:
                self._device.close()
            except OSError as e:
                log.debug("hidapi close: %s", e)
            self._device = None
        self._is_open = False

    def _require_open(self) -> Any:
        if not self._is_open or self._device is None:
            raise TransportError("Transport not open")
        return self._device

    def _check_result(self, what: str, result: int) -> int:
        if result < 0:
            raise TransportError(f"{what} failed: {self._device.error()}")
        return result

    def write(self, data: bytes) -> int:
        device = self._require_open()
        try:
            result = device.write(bytes(data))
        except (OSError, ValueError) as e:
            raise TransportError(f"write failed: {e}") from e
        return self._check_result("write", result)

    def read(self, length: int, timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        device = self._require_open()
        try:
            data = device.read(length, timeout)
        except (OSError, ValueError) as e:
            raise TransportError(f"read failed: {e}") from e
        return bytes(data) if data else b''

    def get_feature_report(self, report_id: int, length: int) -> bytes:
        device = self._require_open()
        try:
            data = device.get_feature_report(report_id, length)
        except (OSError, ValueError) as e:
            raise TransportError(f"get_feature_report(0x{report_id:02x}) failed: {e}") from e
        return bytes(data) if data else b''

    def send_feature_report(self, data: bytes) -> int:
        device = self._require_open()
        try:
            result = device.send_feature_report(bytes(data))
        except (OSError, ValueError) as e:
            raise TransportError(f"send_feature_report failed: {e}") from e
        return self._check_result("send_feature_report", result)

    @property
    def is_open(self) -> bool:
        return self._is_open

    def __repr__(self) -> str:
        return f"HidApiTransport(vid=0x{self._vid:04x}, pid=0x{self._pid:04x})"


# =========================================================================
# Real transport: PyUSB  (libusb backend)
# =========================================================================

class PyUsbTransport(HidTransport):
    """HID transport using pyusb (libusb backend).

    1. Find device by VID/PID (and serial)
    2. Detach the kernel HID driver from the interface, claim it
    3. Output reports -> interrupt OUT endpoint (SET_REPORT output when
       the interface has none), input reports <- interrupt IN endpoint
    4. Feature reports -> GET_REPORT / SET_REPORT class control transfers

    On close the kernel driver is re-attached if we detached it.

    Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``
    """

    def __init__(self, vid: int, pid: int, serial: Optional[str] = None,
                 interface: int = USB_INTERFACE, timeout: int = DEFAULT_TIMEOUT_MS):
        self._vid = vid
        self._pid = pid
        self._serial = serial
        self._interface = interface
        self._timeout = timeout
        self._device: Any = None
        self._is_open = False
        self._detached = False
        # Auto-detected endpoints (populated on open)
        self._ep_out: Optional[int] = None
        self._ep_in: Optional[int] = None

    def open(self) -> None:
        """Find USB device, claim the HID interface, detect endpoints."""
        kwargs: dict[str, Any] = {'idVendor': self._vid, 'idProduct': self._pid}
        if self._serial:
            kwargs['serial_number'] = self._serial

        try:
            self._device = usb.core.find(**kwargs)
        except usb.core.USBError as e:
            raise TransportError(f"USB enumeration failed: {e}") from e
        if self._device is None:
            raise TransportError(
                f"USB device not found: VID={self._vid:#06x} PID={self._pid:#06x}"
            )

        try:
            if self._device.is_kernel_driver_active(self._interface):
                self._device.detach_kernel_driver(self._interface)
                self._detached = True
                log.debug("Detached kernel driver from interface %d", self._interface)
        except (usb.core.USBError, NotImplementedError) as e:
            log.debug("Kernel driver detach: %s", e)

        try:
            usb.util.claim_interface(self._device, self._interface)
        except usb.core.USBError as e:
            raise TransportError(f"claim interface {self._interface} failed: {e}") from e
        self._is_open = True

        self._detect_endpoints()

    def close(self) -> None:
        """Release interface, re-attach the kernel driver, dispose."""
        if self._device is not None:
            try:
                usb.util.release_interface(self._device, self._interface)
            except usb.core.USBError as e:
                log.debug("release_interface: %s", e)
            if self._detached:
                try:
                    self._device.attach_kernel_driver(self._interface)
                except (usb.core.USBError, NotImplementedError) as e:
                    log.debug("attach_kernel_driver: %s", e)
                self._detached = False
            usb.util.dispose_resources(self._device)
            self._device = None
        self._is_open = False

    def _detect_endpoints(self) -> None:
        """Find the interrupt IN/OUT endpoints of the HID interface."""
        try:
            cfg = self._device.get_active_configuration()
            intf = cfg[(self._interface, 0)]
            for ep in intf:
                direction = usb.util.endpoint_direction(ep.bEndpointAddress)
                if direction == usb.util.ENDPOINT_OUT and self._ep_out is None:
                    self._ep_out = ep.bEndpointAddress
                elif direction == usb.util.ENDPOINT_IN and self._ep_in is None:
                    self._ep_in = ep.bEndpointAddress
            log.debug(
                "Auto-detected endpoints: OUT=0x%02x IN=0x%02x",
                self._ep_out or 0, self._ep_in or 0,
            )
        except (usb.core.USBError, KeyError, IndexError) as e:
            log.debug("Endpoint auto-detection failed: %s", e)

    def _require_open(self) -> Any:
        if not self._is_open or self._device is None:
            raise TransportError("Transport not open")
        return self._device

    def _set_report(self, report_type: int, data: bytes) -> int:
        device = self._require_open()
        request_type = (usb.util.CTRL_OUT | usb.util.CTRL_TYPE_CLASS
                        | usb.util.CTRL_RECIPIENT_INTERFACE)
        w_value = (report_type << 8) | data[0]
        try:
            return device.ctrl_transfer(request_type, HID_SET_REPORT, w_value,
                                        self._interface, data, self._timeout)
        except usb.core.USBError as e:
            raise TransportError(f"SET_REPORT 0x{data[0]:02x} failed: {e}") from e

    def write(self, data: bytes) -> int:
        """Interrupt OUT write, or SET_REPORT(output) if there is no OUT endpoint."""
        device = self._require_open()
        data = bytes(data)
        if self._ep_out is None:
            return self._set_report(HID_REPORT_TYPE_OUTPUT, data)
        try:
            return device.write(self._ep_out, data, timeout=self._timeout)
        except usb.core.USBError as e:
            raise TransportError(f"interrupt write failed: {e}") from e

    def read(self, length: int, timeout: int = DEFAULT_TIMEOUT_MS) -> bytes:
        device = self._require_open()
        if self._ep_in is None:
            raise TransportError("no interrupt IN endpoint")
        try:
            data = device.read(self._ep_in, length, timeout=timeout)
        except usb.core.USBTimeoutError:
            return b''
        except usb.core.USBError as e:
            raise TransportError(f"interrupt read failed: {e}") from e
        return bytes(data)

    def get_feature_report(self, report_id: int, length: int) -> bytes:
        device = self._require_open()
        request_type = (usb.util.CTRL_IN | usb.util.CTRL_TYPE_CLASS
                        | usb.util.CTRL_RECIPIENT_INTERFACE)
        w_value = (HID_REPORT_TYPE_FEATURE << 8) | report_id
        try:
            data = device.ctrl_transfer(request_type, HID_GET_REPORT, w_value,
                                        self._interface, length, self._timeout)
        except usb.core.USBError as e:
            raise TransportError(f"GET_REPORT 0x{report_id:02x} failed: {e}") from e
        return bytes(data)

    def send_feature_report(self, data: bytes) -> int:
        return self._set_report(HID_REPORT_TYPE_FEATURE, bytes(data))

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def ep_out(self) -> Optional[int]:
        """Auto-detected interrupt OUT endpoint address, or None."""
        return self._ep_out

    @property
    def ep_in(self) -> Optional[int]:
        """Auto-detected interrupt IN endpoint address, or None."""
        return self._ep_in

    def __repr__(self) -> str:
        return f"PyUsbTransport(vid=0x{self._vid:04x}, pid=0x{self._pid:04x})"


# =========================================================================
# Device discovery helper
# =========================================================================

def _has_hid_interface(dev: Any) -> bool:
    for cfg in dev:
        for intf in cfg:
            if intf.bInterfaceClass == USB_CLASS_HID:
                return True
    return False


def find_pid_devices(vendor_id: int = 0, product_id: int = 0) -> list:
    """Scan for HID devices, optionally filtered by VID/PID (0 = any).

    Uses hidapi enumeration when available, pyusb otherwise.

    Returns:
        List of dicts with keys: vid, pid, serial, product, path,
        usage_page, backend
    """
    devices = []

    if HIDAPI_AVAILABLE:
        for info in hidapi.enumerate(vendor_id, product_id):
            devices.append({
                'vid': info.get('vendor_id', 0),
                'pid': info.get('product_id', 0),
                'serial': info.get('serial_number') or "",
                'product': info.get('product_string') or "",
                'path': info.get('path', b''),
                'usage_page': info.get('usage_page', 0),
                'backend': 'hidapi',
            })
        return devices

    kwargs: dict[str, Any] = {'find_all': True, 'custom_match': _has_hid_interface}
    if vendor_id:
        kwargs['idVendor'] = vendor_id
    if product_id:
        kwargs['idProduct'] = product_id
    for dev in usb.core.find(**kwargs) or []:
        serial_idx = getattr(dev, 'iSerialNumber', 0)
        try:
            serial = usb.util.get_string(dev, serial_idx) if serial_idx else ""
        except (usb.core.USBError, ValueError):
            serial = ""
        devices.append({
            'vid': dev.idVendor,
            'pid': dev.idProduct,
            'serial': serial or "",
            'product': "",
            'path': f"{dev.bus}:{dev.address}",
            'usage_page': 0,
            'backend': 'pyusb',
        })
    return devices
