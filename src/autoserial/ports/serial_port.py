"""
Implements the port used by a device runner over a pyserial port.
"""

import logging

import serial

from autoserial.model import AutoSerialError, SerialConnectionConfig

logger = logging.getLogger(__name__)


class PortError(AutoSerialError):
    """ Raised when a serial port cannot be opened or configured. """


PARITIES = {
    'none': serial.PARITY_NONE,
    'odd': serial.PARITY_ODD,
    'even': serial.PARITY_EVEN,
    'mark': serial.PARITY_MARK,
    'space': serial.PARITY_SPACE,
}

STOP_BITS = {
    'one': serial.STOPBITS_ONE,
    'onepointfive': serial.STOPBITS_ONE_POINT_FIVE,
    'two': serial.STOPBITS_TWO,
}

DATA_BITS = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}


class SerialConduit:
    """
    An open serial port, as used by the device runner.
    """

    def __init__(self, ser: serial.Serial):
        self.ser = ser
        # patch flushing since this causes a lockup if the serial is disconnected during
        # the flush.
        ser.flush = self._no_flush

    def _no_flush(self, *args, **kwargs):
        pass

    @property
    def name(self):
        return self.ser.port

    @property
    def bytes_waiting(self) -> int:
        return self.ser.in_waiting

    def read(self, size) -> bytes:
        return self.ser.read(size)

    def write(self, data):
        return self.ser.write(data)

    @property
    def is_open(self) -> bool:
        return self.ser.is_open

    def close(self):
        self.ser.close()


def line_settings(connection: SerialConnectionConfig):
    """
    Converts the line settings of a connection to pyserial arguments.
    Raises PortError for settings pyserial does not support.
    """
    def lookup(table, key, what):
        value = table.get(key)
        if value is None:
            raise PortError("unsupported %s: %s" % (what, key))
        return value

    return dict(
        baudrate=connection.baud_rate,
        parity=lookup(PARITIES, (connection.parity or 'none').lower(), 'parity'),
        bytesize=lookup(DATA_BITS, connection.data_bits, 'data bits'),
        stopbits=lookup(STOP_BITS, (connection.stop_bits or 'one').lower(), 'stop bits'),
    )


def open_serial_port(port_name, connection: SerialConnectionConfig, timeout=0.1, write_timeout=2.0):
    """
    Opens a serial port with the line settings of a connection.
    :param timeout: the read timeout in seconds.
    :param write_timeout: the write timeout in seconds.
    :return: the SerialConduit for the open port.
    """
    settings = line_settings(connection)
    try:
        ser = serial.Serial(port_name, timeout=timeout, write_timeout=write_timeout, **settings)
    except (serial.SerialException, ValueError) as e:
        raise PortError("unable to open %s: %s" % (port_name, e)) from e
    logger.debug("opened %s %s", port_name, settings)
    return SerialConduit(ser)
