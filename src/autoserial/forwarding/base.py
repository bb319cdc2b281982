"""
Forwarders deliver parsed messages to an output channel.

Each forwarder has its own lifecycle, independent of the serial port. `forward` is called from
the device's decode loop, so delivery failures are logged and never raised.
"""
import errno
import logging

from autoserial.model import AutoSerialError, ParsedMessage
from autoserial.support.throttle import ThrottledLogger

logger = logging.getLogger(__name__)

# the minimum interval between error lines logged by a forwarder
ERROR_LOG_INTERVAL = 10.0


class ForwarderError(AutoSerialError):
    """ Raised when a forwarder cannot start. """

    def __init__(self, message, address_in_use=False):
        super().__init__(message)
        self.address_in_use = address_in_use


def describe_error(e):
    """
    Describes why a forwarder failed to start, for the device status.
    """
    if getattr(e, 'address_in_use', False) or (isinstance(e, OSError) and e.errno == errno.EADDRINUSE):
        return "port already in use"
    return str(e) or type(e).__name__


class Forwarder:
    """
    Receives each parsed message from a device. `start` and `stop` do nothing unless a forwarder
    holds resources such as a connection.
    """
    name = ''

    def __init__(self, enabled=True, log=logger):
        self.enabled = enabled
        self.errors = ThrottledLogger(log, ERROR_LOG_INTERVAL)

    def start(self):
        """ Acquires the resources needed to forward. Calling start when started does nothing. """

    def stop(self):
        """ Releases the resources acquired by start. """

    def forward(self, message: ParsedMessage):
        raise NotImplementedError
