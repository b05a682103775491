"""
Transport factory - picks the HID backend for a PID device.

Usage::

    from pidffb.device_factory import create_transport

    transport = create_transport(0x346E, 0x0002)       # best available
    transport = create_transport(0x346E, 0x0002, backend="pyusb")
    transport.open()
"""

import logging
from typing import Dict, Optional

from .hid_transport import HidTransport

log = logging.getLogger(__name__)

BACKENDS = ("auto", "hidapi", "pyusb")


def get_backend_availability() -> Dict[str, bool]:
    """Check which HID backends are installed.

    Returns dict with keys: hidapi, pyusb - each True/False.
    """
    from .hid_transport import HIDAPI_AVAILABLE, PYUSB_AVAILABLE
    return {"hidapi": HIDAPI_AVAILABLE, "pyusb": PYUSB_AVAILABLE}


def select_backend(backend: str = "auto") -> str:
    """Resolve ``backend`` to a concrete, installed backend name.

    "auto" prefers hidapi: the OS HID driver keeps the interface, so the
    wheel stays usable as a game controller.  pyusb is the fallback.
    """
    if backend not in BACKENDS:
        raise ValueError(f"Unknown HID backend {backend!r} (choose from {', '.join(BACKENDS)})")
    available = get_backend_availability()
    if backend != "auto":
        if not available[backend]:
            raise ImportError(f"HID backend {backend!r} is not installed")
        return backend
    if available["hidapi"]:
        return "hidapi"
    if available["pyusb"]:
        return "pyusb"
    raise ImportError(
        "No HID backend available. Install hidapi or pyusb:\n"
        "  pip install hidapi  (+ apt install libhidapi-dev)\n"
        "  pip install pyusb   (+ apt install libusb-1.0-0)"
    )


def create_transport(vendor_id: int, product_id: int,
                     serial: Optional[str] = None,
                     backend: str = "auto") -> HidTransport:
    """Create (but do not open) the transport for one device."""
    name = select_backend(backend)
    log.debug("Creating %s transport for %04x:%04x", name, vendor_id, product_id)
    if name == "hidapi":
        from .hid_transport import HidApiTransport
        return HidApiTransport(vendor_id, product_id, serial)
    from .hid_transport import PyUsbTransport
    return PyUsbTransport(vendor_id, product_id, serial)
