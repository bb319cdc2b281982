"""
Resolves the identity of a device's port to a port name present on this machine.

Device names such as COM3 or /dev/ttyUSB0 can change when a device is unplugged and plugged in
again. A profile can instead identify its port by a stable path, USB vendor/product id or
plug-and-play hardware id, which is resolved to the current port name on each connection attempt.
"""
import logging
import os
import re

from serial.tools import list_ports

from autoserial.model import IdentifierType, SerialConnectionConfig

logger = logging.getLogger(__name__)

_VID_PID = re.compile(r'([0-9A-F]{4})(?::|&PID_)([0-9A-F]{4})', re.IGNORECASE)


def parse_vid_pid(value):
    """
    Reads a USB vendor and product id given as VVVV:PPPP, VID_VVVV&PID_PPPP or VID:PID=VVVV:PPPP.
    >>> parse_vid_pid('VID_0403&PID_6001')
    (1027, 24577)
    >>> parse_vid_pid('0403:6001') == parse_vid_pid('USB VID:PID=0403:6001 SER=A1')
    True
    >>> parse_vid_pid('ttyUSB0') is None
    True
    """
    match = _VID_PID.search(value or '')
    if not match:
        return None
    return int(match.group(1), 16), int(match.group(2), 16)


def serial_port_info():
    """
    :return: a tuple of the serial ports present.
    """
    return tuple(list_ports.comports())


class SerialPortLocator:
    """ Finds the serial port for a connection using the ports listed by pyserial. """

    def __init__(self, ports=serial_port_info, path_exists=os.path.exists):
        self.ports = ports
        self.path_exists = path_exists

    def resolve_port_name(self, connection: SerialConnectionConfig):
        """
        :return: the name of the port to open, or None if the port is not present.
        """
        kind = connection.identifier_type
        value = (connection.identifier_value or '').strip()
        if not value:
            return None
        if IdentifierType.matches(kind, IdentifierType.PORT_NAME):
            return value
        if IdentifierType.matches(kind, IdentifierType.BY_ID_PATH):
            return value if self.path_exists(value) else None
        if IdentifierType.matches(kind, IdentifierType.USB_VID_PID):
            vid_pid = parse_vid_pid(value)
            if vid_pid is None:
                logger.warning("invalid USB vid:pid '%s'", value)
                return None
            return self._single(value, [p for p in self.ports() if (p.vid, p.pid) == vid_pid])
        if IdentifierType.matches(kind, IdentifierType.PNP_DEVICE_ID):
            return self._single(value, [p for p in self.ports() if value.lower() in (p.hwid or '').lower()])
        return value

    def _single(self, value, matches):
        if len(matches) > 1:
            logger.warning("'%s' matches several ports (%s), not connecting", value,
                           ", ".join(p.device for p in matches))
            return None
        return matches[0].device if matches else None
