"""
Desktop services used by the clipboard and typing forwarders.
"""
import logging

import pyperclip

logger = logging.getLogger(__name__)


class ClipboardService:
    def set_text(self, text):
        raise NotImplementedError


class PyperclipClipboard(ClipboardService):
    """ Places text on the system clipboard. Raises pyperclip.PyperclipException when there is no clipboard. """

    def set_text(self, text):
        pyperclip.copy(text)


class TypingService:
    """ Simulates keystrokes into the focused window. """

    @property
    def is_available(self):
        return False

    @property
    def unavailable_reason(self):
        return "Typing service not available"

    def try_type(self, text) -> bool:
        """
        :return: True when the text was typed.
        """
        return False


class PynputTyping(TypingService):
    """
    Types text with a pynput keyboard controller. pynput is an optional dependency; when it is not
    installed, or cannot find a keyboard backend (such as on a headless machine), the service is
    unavailable and reports why.
    """

    def __init__(self):
        self.keyboard = None
        self.reason = None
        try:
            from pynput.keyboard import Controller
            self.keyboard = Controller()
        except ImportError as e:
            self.reason = "Typing service not available: %s" % e

    @property
    def is_available(self):
        return self.keyboard is not None

    @property
    def unavailable_reason(self):
        return self.reason

    def try_type(self, text):
        if self.keyboard is None:
            return False
        try:
            self.keyboard.type(text)
            return True
        except self.keyboard.InvalidCharacterException as e:
            logger.debug("unable to type character: %s", e)
            return False
