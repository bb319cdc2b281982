import logging
import time

from autoserial.forwarding.base import Forwarder
from autoserial.forwarding.platform import PynputTyping, TypingService
from autoserial.support.options import Options

logger = logging.getLogger(__name__)


class TypingForwarderOptions(Options):
    defaults = {
        'delay_ms': 0,
    }


class TypingForwarder(Forwarder):
    """
    Types each message into the focused window, as if entered on the keyboard. This lets a
    scanner or scale feed applications that only accept keyboard input.
    """
    name = 'Typing'

    def __init__(self, typing: TypingService = None, options: TypingForwarderOptions = None, enabled=True,
                 sleep=time.sleep):
        super().__init__(enabled, logger)
        self.typing = typing or PynputTyping()
        self.options = options or TypingForwarderOptions()
        self.sleep = sleep

    def forward(self, message):
        if not self.enabled:
            return
        if not self.typing.is_available:
            self.errors.warning("%s", self.typing.unavailable_reason or "Typing service not available")
            return
        try:
            if self.options.delay_ms > 0:
                # gives the target application time to keep up
                self.sleep(self.options.delay_ms / 1000.0)
            if not self.typing.try_type(message.text):
                self.errors.warning("Typing forwarder failed to type text")
        except Exception as e:
            self.errors.error("Typing forwarder failed: %s", e)
