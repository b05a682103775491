"""Mock tests for the HID transports.

No real USB hardware required - hidapi and pyusb calls are patched.
"""

from unittest.mock import MagicMock, patch

import pytest
import usb.core

from pidffb import hid_transport
from pidffb.errors import TransportError
from pidffb.hid_transport import HidApiTransport, PyUsbTransport, find_pid_devices

VID, PID = 0x346E, 0x0002


# =========================================================================
# Helpers
# =========================================================================

def _make_usb_device(with_endpoints: bool = True) -> MagicMock:
    """pyusb Device mock with one HID interface (OUT 0x01, IN 0x81)."""
    dev = MagicMock()
    dev.is_kernel_driver_active.return_value = True
    ep_out = MagicMock(bEndpointAddress=0x01)
    ep_in = MagicMock(bEndpointAddress=0x81)
    cfg = MagicMock()
    cfg.__getitem__.return_value = [ep_out, ep_in] if with_endpoints else []
    dev.get_active_configuration.return_value = cfg
    return dev


@pytest.fixture
def usb_dev():
    dev = _make_usb_device()
    with patch('usb.core.find', return_value=dev), \
            patch('usb.util.claim_interface'), \
            patch('usb.util.release_interface'), \
            patch('usb.util.dispose_resources'):
        yield dev


@pytest.fixture
def hid_module():
    module = MagicMock()
    with patch.object(hid_transport, 'hidapi', module, create=True), \
            patch.object(hid_transport, 'HIDAPI_AVAILABLE', True):
        yield module


# =========================================================================
# PyUsbTransport
# =========================================================================

class TestPyUsbOpen:

    def test_open_detaches_and_claims(self, usb_dev):
        t = PyUsbTransport(VID, PID)
        t.open()
        assert t.is_open
        usb_dev.detach_kernel_driver.assert_called_once_with(0)
        assert t.ep_out == 0x01
        assert t.ep_in == 0x81

    def test_open_with_serial(self, usb_dev):
        with patch('usb.core.find', return_value=usb_dev) as find:
            PyUsbTransport(VID, PID, serial="ABC").open()
        find.assert_called_once_with(idVendor=VID, idProduct=PID, serial_number="ABC")

    def test_device_not_found(self):
        with patch('usb.core.find', return_value=None):
            with pytest.raises(TransportError, match="not found"):
                PyUsbTransport(VID, PID).open()

    def test_claim_failure(self, usb_dev):
        with patch('usb.util.claim_interface', side_effect=usb.core.USBError("busy")):
            with pytest.raises(TransportError):
                PyUsbTransport(VID, PID).open()

    def test_close_reattaches_driver(self, usb_dev):
        t = PyUsbTransport(VID, PID)
        t.open()
        t.close()
        usb_dev.attach_kernel_driver.assert_called_once_with(0)
        assert not t.is_open

    def test_close_without_detach(self, usb_dev):
        usb_dev.is_kernel_driver_active.return_value = False
        t = PyUsbTransport(VID, PID)
        t.open()
        t.close()
        usb_dev.attach_kernel_driver.assert_not_called()


class TestPyUsbIo:

    def _open(self, usb_dev) -> PyUsbTransport:
        t = PyUsbTransport(VID, PID)
        t.open()
        return t

    def test_write_uses_interrupt_out(self, usb_dev):
        usb_dev.write.return_value = 4
        t = self._open(usb_dev)
        assert t.write(b'\x05\x03\xdc\x05') == 4
        usb_dev.write.assert_called_once_with(0x01, b'\x05\x03\xdc\x05', timeout=100)

    def test_write_without_out_endpoint_uses_set_report(self):
        dev = _make_usb_device(with_endpoints=False)
        dev.ctrl_transfer.return_value = 2
        with patch('usb.core.find', return_value=dev), patch('usb.util.claim_interface'):
            t = PyUsbTransport(VID, PID)
            t.open()
            t.write(b'\x0c\x08')
        dev.ctrl_transfer.assert_called_once_with(0x21, 0x09, 0x020C, 0, b'\x0c\x08', 100)

    def test_write_error(self, usb_dev):
        usb_dev.write.side_effect = usb.core.USBError("pipe")
        t = self._open(usb_dev)
        with pytest.raises(TransportError) as exc:
            t.write(b'\x0b\x01')
        assert isinstance(exc.value.__cause__, usb.core.USBError)

    def test_read_timeout_is_empty(self, usb_dev):
        usb_dev.read.side_effect = usb.core.USBTimeoutError("timeout")
        assert self._open(usb_dev).read(64, 10) == b''

    def test_read(self, usb_dev):
        usb_dev.read.return_value = [0x02, 0x02, 0x07]
        assert self._open(usb_dev).read(64) == b'\x02\x02\x07'
        usb_dev.read.assert_called_once_with(0x81, 64, timeout=100)

    def test_get_feature_report(self, usb_dev):
        usb_dev.ctrl_transfer.return_value = [0x12, 0x03, 0x01, 0xE8, 0x03]
        data = self._open(usb_dev).get_feature_report(0x12, 64)
        assert data == bytes([0x12, 0x03, 0x01, 0xE8, 0x03])
        usb_dev.ctrl_transfer.assert_called_once_with(0xA1, 0x01, 0x0312, 0, 64, 100)

    def test_send_feature_report(self, usb_dev):
        usb_dev.ctrl_transfer.return_value = 4
        self._open(usb_dev).send_feature_report(b'\x11\x01\x00\x00')
        usb_dev.ctrl_transfer.assert_called_once_with(
            0x21, 0x09, 0x0311, 0, b'\x11\x01\x00\x00', 100)

    def test_not_open(self):
        with pytest.raises(TransportError, match="not open"):
            PyUsbTransport(VID, PID).write(b'\x0b\x01')


# =========================================================================
# HidApiTransport
# =========================================================================

class TestHidApiTransport:

    def test_requires_hidapi(self):
        with patch.object(hid_transport, 'HIDAPI_AVAILABLE', False):
            with pytest.raises(ImportError, match="hidapi"):
                HidApiTransport(VID, PID)

    def test_open(self, hid_module):
        t = HidApiTransport(VID, PID, "SN1")
        t.open()
        device = hid_module.device.return_value
        device.open.assert_called_once_with(VID, PID, "SN1")
        device.set_nonblocking.assert_called_once_with(0)
        assert t.is_open

    def test_open_failure(self, hid_module):
        hid_module.device.return_value.open.side_effect = OSError("open failed")
        with pytest.raises(TransportError, match="not found"):
            HidApiTransport(VID, PID).open()

    def test_write(self, hid_module):
        device = hid_module.device.return_value
        device.write.return_value = 2
        t = HidApiTransport(VID, PID)
        t.open()
        assert t.write(b'\x0d\xff') == 2

    def test_negative_result_is_error(self, hid_module):
        device = hid_module.device.return_value
        device.send_feature_report.return_value = -1
        device.error.return_value = "broken pipe"
        t = HidApiTransport(VID, PID)
        t.open()
        with pytest.raises(TransportError, match="broken pipe"):
            t.send_feature_report(b'\x11\x01\x00\x00')

    def test_get_feature_report(self, hid_module):
        device = hid_module.device.return_value
        device.get_feature_report.return_value = [0x13, 0xFF, 0xFF, 0x0A, 0x01]
        t = HidApiTransport(VID, PID)
        t.open()
        assert t.get_feature_report(0x13, 64) == bytes([0x13, 0xFF, 0xFF, 0x0A, 0x01])
        device.get_feature_report.assert_called_once_with(0x13, 64)

    def test_read_timeout_is_empty(self, hid_module):
        hid_module.device.return_value.read.return_value = []
        t = HidApiTransport(VID, PID)
        t.open()
        assert t.read(64, 10) == b''

    def test_read_error(self, hid_module):
        hid_module.device.return_value.read.side_effect = OSError("read error")
        t = HidApiTransport(VID, PID)
        t.open()
        with pytest.raises(TransportError):
            t.read(64)

    def test_context_manager(self, hid_module):
        with HidApiTransport(VID, PID) as t:
            assert t.is_open
        hid_module.device.return_value.close.assert_called_once()
        assert not t.is_open


# =========================================================================
# find_pid_devices
# =========================================================================

class TestFindPidDevices:

    def test_hidapi_enumeration(self, hid_module):
        hid_module.enumerate.return_value = [{
            'vendor_id': VID, 'product_id': PID, 'serial_number': 'X',
            'product_string': 'R9', 'path': b'/dev/hidraw3', 'usage_page': 0x01,
        }]
        devices = find_pid_devices(VID, PID)
        hid_module.enumerate.assert_called_once_with(VID, PID)
        assert devices[0]['product'] == 'R9'
        assert devices[0]['backend'] == 'hidapi'

    def test_pyusb_fallback(self):
        dev = MagicMock(idVendor=VID, idProduct=PID, iSerialNumber=0)
        with patch.object(hid_transport, 'HIDAPI_AVAILABLE', False), \
                patch('usb.core.find', return_value=[dev]) as find:
            devices = find_pid_devices(VID)
        assert find.call_args.kwargs['idVendor'] == VID
        assert 'idProduct' not in find.call_args.kwargs
        assert devices[0]['vid'] == VID
        assert devices[0]['backend'] == 'pyusb'
