"""
The data model shared by the pipeline: device profiles and their configuration parts,
parsed messages, status and operation results.
"""
import time
from enum import Enum

from autoserial.support.mixins import ValueObject


class AutoSerialError(Exception):
    """ Base error for autoserial. """


class ConfigurationError(AutoSerialError):
    """ Raised when a configuration cannot be applied. """


class IdentifierType:
    """ How a device's serial port is identified. """
    PORT_NAME = 'PortName'
    BY_ID_PATH = 'ByIdPath'
    USB_VID_PID = 'UsbVidPid'
    PNP_DEVICE_ID = 'PnpDeviceId'

    ALL = (PORT_NAME, BY_ID_PATH, USB_VID_PID, PNP_DEVICE_ID)

    @staticmethod
    def matches(value, identifier_type):
        return (value or '').lower() == identifier_type.lower()


def _same_text(a, b):
    return (a or '').lower() == (b or '').lower()


class SerialConnectionConfig(ValueObject):
    """
    The serial side of a device profile: how to find the port, the line settings, and whether the
    device starts automatically.
    """

    def __init__(self, device_id=0, display_name='Device', identifier_type=IdentifierType.PORT_NAME,
                 identifier_value='', baud_rate=9600, parity='None', data_bits=8, stop_bits='One',
                 enabled=True):
        self.device_id = device_id      # 0 means not yet persisted
        self.display_name = display_name
        self.identifier_type = identifier_type
        self.identifier_value = identifier_value
        self.baud_rate = baud_rate
        self.parity = parity
        self.data_bits = data_bits
        self.stop_bits = stop_bits
        self.enabled = enabled

    def line_settings_equal(self, other) -> bool:
        return self.baud_rate == other.baud_rate \
            and _same_text(self.parity, other.parity) \
            and self.data_bits == other.data_bits \
            and _same_text(self.stop_bits, other.stop_bits)

    def identity_equal(self, other) -> bool:
        return _same_text(self.identifier_type, other.identifier_type) \
            and _same_text(self.identifier_value, other.identifier_value)


class ParserConfig(ValueObject):
    def __init__(self, parser_type='LineParser', parameters=None):
        self.parser_type = parser_type
        self.parameters = parameters


class FrameDecoderConfig(ValueObject):
    def __init__(self, decoder_type='DelimiterFrameDecoder', parameters=None):
        self.decoder_type = decoder_type
        self.parameters = parameters


class ForwarderConfig(ValueObject):
    def __init__(self, forwarder_type='TcpForwarder', enabled=False, parameters=None):
        self.forwarder_type = forwarder_type
        self.enabled = enabled
        self.parameters = parameters


class DeviceProfile(ValueObject):
    """ The full configuration bundle for one device. """

    def __init__(self, connection: SerialConnectionConfig = None, parser: ParserConfig = None,
                 frame_decoder: FrameDecoderConfig = None, forwarders=()):
        self.connection = connection if connection is not None else SerialConnectionConfig()
        self.parser = parser if parser is not None else ParserConfig()
        self.frame_decoder = frame_decoder if frame_decoder is not None else FrameDecoderConfig()
        self.forwarders = tuple(forwarders)

    @property
    def device_id(self):
        return self.connection.device_id


class ParsedMessage(ValueObject):
    """ One structured message produced by a parser. """

    def __init__(self, text, raw=None, timestamp=None):
        self.text = text
        self.raw = raw
        self.timestamp = timestamp if timestamp is not None else time.time()


class RawDataEvent(ValueObject):
    """ A batch of bytes read from a device, before decoding. """

    def __init__(self, device_id, data, timestamp=None):
        self.device_id = device_id
        self.data = data
        self.timestamp = timestamp if timestamp is not None else time.time()


class ConnectionState(Enum):
    DISCONNECTED = 'Disconnected'
    CONNECTING = 'Connecting'
    CONNECTED = 'Connected'
    RECONNECTING = 'Reconnecting'


class DeviceStatus(ValueObject):
    """ A snapshot of one device runner, derived from its live fields. """

    def __init__(self, device_id=0, display_name='', port_name=None,
                 connection_state=ConnectionState.DISCONNECTED, running=False, parser_name='',
                 active_forwarders=(), total_messages=0, messages_per_second=0.0, last_error=None):
        self.device_id = device_id
        self.display_name = display_name
        self.port_name = port_name
        self.connection_state = connection_state
        self.running = running
        self.parser_name = parser_name
        self.active_forwarders = tuple(active_forwarders)
        self.total_messages = total_messages
        self.messages_per_second = messages_per_second
        self.last_error = last_error


class StatusSnapshot(ValueObject):
    """ The status of all devices, with aggregated totals. """

    def __init__(self, device_statuses=(), connection_state=ConnectionState.DISCONNECTED, parser_name='',
                 active_forwarders=(), total_messages=0, messages_per_second=0.0, last_error=None):
        self.device_statuses = tuple(device_statuses)
        self.connection_state = connection_state
        self.parser_name = parser_name
        self.active_forwarders = tuple(active_forwarders)
        self.total_messages = total_messages
        self.messages_per_second = messages_per_second
        self.last_error = last_error


class OperationResult(ValueObject):
    """ The outcome of an operation that reports failure instead of raising. """

    def __init__(self, success, error=None):
        self.success = success
        self.error = error

    @classmethod
    def ok(cls):
        return cls(True)

    @classmethod
    def fail(cls, error):
        return cls(False, error)

    def __bool__(self):
        return self.success


class SendResult(OperationResult):
    """ The outcome of sending data to a device. """


class PortDescriptor(ValueObject):
    """ Describes a serial port available on this machine. """

    def __init__(self, port_name, display_name=None, pnp_id=None, vid_pid=None, by_id_path=None):
        self.port_name = port_name
        self.display_name = display_name or port_name
        self.pnp_id = pnp_id
        self.vid_pid = vid_pid
        self.by_id_path = by_id_path
