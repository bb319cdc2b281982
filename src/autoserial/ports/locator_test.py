import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, none
from serial.tools.list_ports_common import ListPortInfo

from autoserial.model import IdentifierType, SerialConnectionConfig
from autoserial.ports.locator import SerialPortLocator, parse_vid_pid


def port(device, vid=None, pid=None, hwid='n/a'):
    info = ListPortInfo(device)
    info.vid = vid
    info.pid = pid
    info.hwid = hwid
    return info


ports = [
    port('/dev/ttyUSB0', 0x0403, 0x6001, 'USB VID:PID=0403:6001 SER=A10KD2N3 LOCATION=1-1.2'),
    port('/dev/ttyACM0', 0x2341, 0x0043, 'USB VID:PID=2341:0043 SER=75833353035351D02'),
    port('/dev/ttyACM1', 0x2341, 0x0043, 'USB VID:PID=2341:0043 SER=11111111111111111'),
    port('/dev/ttyS0'),
]


def connection(kind, value):
    return SerialConnectionConfig(identifier_type=kind, identifier_value=value)


class ParseVidPidTest(unittest.TestCase):

    def test_formats(self):
        expected = (0x0403, 0x6001)
        assert_that(parse_vid_pid('0403:6001'), is_(expected))
        assert_that(parse_vid_pid('VID_0403&PID_6001'), is_(expected))
        assert_that(parse_vid_pid('vid:pid=0403:6001'), is_(expected))

    def test_invalid(self):
        assert_that(parse_vid_pid('COM3'), is_(none()))
        assert_that(parse_vid_pid(None), is_(none()))


class SerialPortLocatorTest(unittest.TestCase):

    def setUp(self):
        self.path_exists = Mock(return_value=True)
        self.sut = SerialPortLocator(lambda: ports, self.path_exists)

    def test_port_name(self):
        assert_that(self.sut.resolve_port_name(connection('PortName', 'COM3')), is_('COM3'))
        assert_that(self.sut.resolve_port_name(connection('portname', ' ')), is_(none()))

    def test_by_id_path(self):
        path = '/dev/serial/by-id/usb-FTDI_FT232R-if00-port0'
        assert_that(self.sut.resolve_port_name(connection(IdentifierType.BY_ID_PATH, path)), is_(path))
        self.path_exists.return_value = False
        assert_that(self.sut.resolve_port_name(connection(IdentifierType.BY_ID_PATH, path)), is_(none()))

    def test_vid_pid(self):
        assert_that(self.sut.resolve_port_name(connection(IdentifierType.USB_VID_PID, 'VID_0403&PID_6001')),
                    is_('/dev/ttyUSB0'))
        assert_that(self.sut.resolve_port_name(connection(IdentifierType.USB_VID_PID, '1234:5678')), is_(none()))
        assert_that(self.sut.resolve_port_name(connection(IdentifierType.USB_VID_PID, 'junk')), is_(none()))

    def test_vid_pid_matching_several_ports(self):
        assert_that(self.sut.resolve_port_name(connection(IdentifierType.USB_VID_PID, '2341:0043')), is_(none()))

    def test_pnp_device_id(self):
        assert_that(self.sut.resolve_port_name(connection(IdentifierType.PNP_DEVICE_ID, 'ser=75833353035351d02')),
                    is_('/dev/ttyACM0'))
        assert_that(self.sut.resolve_port_name(connection(IdentifierType.PNP_DEVICE_ID, 'SER=NOPE')), is_(none()))

    def test_unknown_type_uses_value(self):
        assert_that(self.sut.resolve_port_name(connection('Telepathy', 'COM9')), is_('COM9'))
