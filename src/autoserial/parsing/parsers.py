"""
Parsers turn the frames produced by a frame decoder into messages for the forwarders.
"""
import json
import logging
import re

from autoserial.framing.decoders import DEFAULT_ENCODING, encode_pattern, resolve_encoding
from autoserial.model import ParsedMessage
from autoserial.support.options import Options

logger = logging.getLogger(__name__)

# a bareword object key following { or , such as {value: 1}
_BARE_KEY = re.compile(r'([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)')


class Parser:
    """ Converts a frame to zero or more ParsedMessage instances. """
    name = ''

    def parse(self, frame) -> list:
        raise NotImplementedError


class SeparatedParser(Parser):
    """
    Buffers frames and splits the accumulated bytes on a separator, so a parser can be used with
    the pass-through decoder as well as with one that already delivers whole lines.
    """

    def __init__(self, encoding, separator):
        self.encoding = resolve_encoding(encoding)
        self.separator = encode_pattern(separator, self.encoding)
        self.buffer = bytearray()

    def parse(self, frame):
        messages = []
        if not frame or not self.separator:
            return messages
        self.buffer.extend(frame)
        while True:
            index = self.buffer.find(self.separator)
            if index < 0:
                break
            chunk = bytes(self.buffer[:index])
            del self.buffer[:index + len(self.separator)]
            message = self._message(chunk)
            if message is not None:
                messages.append(message)
        return messages

    def _decode(self, raw):
        return raw.decode(self.encoding, errors='replace')

    def _message(self, chunk):
        """ builds the message for one separated chunk, or returns None to skip it. """
        return ParsedMessage(self._decode(chunk), chunk)


class LineParserOptions(Options):
    defaults = {
        'encoding': DEFAULT_ENCODING,
        'separator': '\n',
    }


class LineParser(SeparatedParser):
    """ One message per line of text. """
    name = 'Line'

    def __init__(self, options: LineParserOptions = None):
        options = options or LineParserOptions()
        super().__init__(options.encoding, options.separator)


class JsonFieldParserOptions(Options):
    defaults = {
        'encoding': DEFAULT_ENCODING,
        'separator': '\n',
        'field_path': 'data',
        'allow_loose_json': True,
    }


def normalize_json(text):
    """
    Repairs common hand-written JSON: single quotes and unquoted keys.
    >>> normalize_json("{a: 'b', c_1 :2}")
    '{"a": "b", "c_1" :2}'
    """
    text = text.strip()
    if not text:
        return text
    return _BARE_KEY.sub(r'\1"\2"\3', text.replace("'", '"'))


def split_path(path):
    return [part.strip() for part in (path or '').split('.') if part.strip()]


class JsonFieldParser(SeparatedParser):
    """
    Extracts one field from each JSON document. The field is given as a dotted path through nested
    objects, such as `data.weight`. String values are forwarded as is, other values as compact JSON.
    Documents that cannot be parsed, or that do not contain the field, produce no message.
    """
    name = 'JSON field'

    def __init__(self, options: JsonFieldParserOptions = None):
        options = options or JsonFieldParserOptions()
        super().__init__(options.encoding, options.separator)
        self.path = split_path(options.field_path)
        self.allow_loose_json = options.allow_loose_json

    def _message(self, chunk):
        text = self._decode(chunk)
        if not text.strip():
            return None
        value = self.extract(text)
        return ParsedMessage(value, chunk) if value is not None else None

    def extract(self, text):
        """
        :return: the text of the configured field, or None if it is not present.
        """
        if self.allow_loose_json:
            text = normalize_json(text)
        try:
            value = json.loads(text)
        except ValueError as e:
            logger.debug("ignoring invalid JSON '%s': %s", text, e)
            return None
        for part in self.path:
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value if isinstance(value, str) else json.dumps(value, separators=(',', ':'), ensure_ascii=False)


class WholeFrameParserOptions(Options):
    defaults = {
        'encoding': DEFAULT_ENCODING,
        'trim_whitespace': True,
    }


class ScaleParserOptions(WholeFrameParserOptions):
    pass


class BarcodeParserOptions(WholeFrameParserOptions):
    pass


class WholeFrameParser(Parser):
    """ Emits each frame as one message. Blank frames are skipped. """

    def __init__(self, options: WholeFrameParserOptions):
        self.encoding = resolve_encoding(options.encoding)
        self.trim_whitespace = options.trim_whitespace

    def parse(self, frame):
        if not frame:
            return []
        raw = bytes(frame)
        text = raw.decode(self.encoding, errors='replace')
        if self.trim_whitespace:
            text = text.strip()
        if not text.strip():
            return []
        return [ParsedMessage(text, raw)]


class ScaleParser(WholeFrameParser):
    """ Readings from a weighing scale, one per frame. """
    name = 'Scale'

    def __init__(self, options: ScaleParserOptions = None):
        super().__init__(options or ScaleParserOptions())


class BarcodeParser(WholeFrameParser):
    """ Codes from a barcode scanner, one per frame. """
    name = 'Barcode'

    def __init__(self, options: BarcodeParserOptions = None):
        super().__init__(options or BarcodeParserOptions())
