import logging

from autoserial.forwarding.base import Forwarder
from autoserial.forwarding.platform import ClipboardService, PyperclipClipboard
from autoserial.support.options import Options

logger = logging.getLogger(__name__)


class ClipboardForwarderOptions(Options):
    defaults = {
        'append_newline': False,
    }


class ClipboardForwarder(Forwarder):
    """ Copies each message to the clipboard, replacing what was there. """
    name = 'Clipboard'

    def __init__(self, clipboard: ClipboardService = None, options: ClipboardForwarderOptions = None, enabled=True):
        super().__init__(enabled, logger)
        self.clipboard = clipboard or PyperclipClipboard()
        self.options = options or ClipboardForwarderOptions()

    def forward(self, message):
        if not self.enabled:
            return
        text = message.text + "\n" if self.options.append_newline else message.text
        try:
            self.clipboard.set_text(text)
        except Exception as e:
            self.errors.error("Clipboard forwarder failed: %s", e)
