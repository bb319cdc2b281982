"""
Frame decoders segment the byte stream read from a serial port into frames.

Serial reads return whatever bytes happen to have arrived, so one read may hold several frames, a
part of a frame, or the end of one frame and the start of the next. Each decoder buffers what it
has not yet emitted, so the frames produced do not depend on where the reads were split.
"""
import codecs
import logging

from autoserial.support.options import Options, unescape

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = 'utf-8'
DEFAULT_MAX_BUFFER_LENGTH = 65536


def resolve_encoding(name):
    """
    Finds the codec name for an encoding, falling back to UTF-8 when the name is blank or unknown.
    >>> resolve_encoding('LATIN-1')
    'iso8859-1'
    >>> resolve_encoding('no-such-encoding')
    'utf-8'
    """
    if not name or not name.strip():
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(name.strip()).name
    except LookupError:
        logger.warning("unknown encoding '%s', using %s", name, DEFAULT_ENCODING)
        return DEFAULT_ENCODING


def encode_pattern(text, encoding):
    """
    Converts a configured byte pattern (delimiter, header, footer) to bytes, expanding escapes.
    >>> encode_pattern('\\\\r\\\\n', 'utf-8')
    b'\\r\\n'
    """
    return unescape(text or '').encode(encoding, errors='replace')


def trim_buffer(buffer: bytearray, max_length, keep_tail=0):
    """
    Bounds the size of a decode buffer. When the buffer is longer than max_length, only the last
    keep_tail bytes are kept. A max_length of 0 or less means the buffer is unbounded.
    :return: the number of bytes discarded
    """
    if max_length <= 0 or len(buffer) <= max_length:
        return 0
    keep = max(0, min(keep_tail, max_length))
    discard = len(buffer) - keep
    del buffer[:discard]
    return discard


class FrameDecoder:
    """ Segments a byte stream into frames. """
    name = ''

    def decode(self, data) -> list:
        """
        Appends the data to the stream and extracts the frames now complete.
        :param data: the bytes just read
        :return: a list of frames, each a bytes instance. The list is empty when no frame is complete.
        """
        raise NotImplementedError

    def reset(self):
        """ discards any buffered partial frame. """


class BufferedFrameDecoder(FrameDecoder):
    """ A decoder that keeps the incomplete tail of the stream between calls. """

    def __init__(self, max_buffer_length):
        self.max_buffer_length = max_buffer_length
        self.buffer = bytearray()

    def decode(self, data):
        if not data:
            return []
        self.buffer.extend(data)
        frames = self._extract()
        self._trim()
        return frames

    def _extract(self):
        """ removes and returns the complete frames at the start of the buffer. """
        return []

    def _trim(self):
        """ bounds the buffered residue once the frames have been taken. """
        discarded = trim_buffer(self.buffer, self.max_buffer_length)
        self._log_discarded(discarded)

    def _log_discarded(self, discarded):
        if discarded:
            logger.debug("%s buffer overflow, discarded %d bytes", self.name, discarded)

    def reset(self):
        self.buffer.clear()


class DelimiterFrameDecoderOptions(Options):
    defaults = {
        'encoding': DEFAULT_ENCODING,
        'delimiter': '\n',
        'include_delimiter': True,
        'max_buffer_length': DEFAULT_MAX_BUFFER_LENGTH,
    }


class DelimiterFrameDecoder(BufferedFrameDecoder):
    """
    Splits the stream at a delimiter sequence, such as a line ending.
    With an empty delimiter, no frames are produced.
    """
    name = 'Delimiter'

    def __init__(self, options: DelimiterFrameDecoderOptions = None):
        options = options or DelimiterFrameDecoderOptions()
        super().__init__(options.max_buffer_length)
        self.options = options
        self.delimiter = encode_pattern(options.delimiter, resolve_encoding(options.encoding))

    def _extract(self):
        delimiter = self.delimiter
        frames = []
        if not delimiter:
            return frames
        while True:
            index = self.buffer.find(delimiter)
            if index < 0:
                break
            end = index + len(delimiter)
            frames.append(bytes(self.buffer[:end if self.options.include_delimiter else index]))
            del self.buffer[:end]
        return frames

    def _trim(self):
        # a partial delimiter may be at the end of the buffer
        self._log_discarded(trim_buffer(self.buffer, self.max_buffer_length, 2 * len(self.delimiter)))


class HeaderFooterFrameDecoderOptions(Options):
    defaults = {
        'encoding': DEFAULT_ENCODING,
        'header': '',
        'footer': '',
        'include_header_footer': False,
        'max_buffer_length': DEFAULT_MAX_BUFFER_LENGTH,
    }


class HeaderFooterFrameDecoder(BufferedFrameDecoder):
    """
    Extracts frames that start with a header sequence and end with a footer sequence.

    Bytes before a header are discarded, so the decoder resynchronizes after noise on the line.
    When there is no header in the buffer, only enough bytes are kept to complete a header split
    across two reads. When the buffer overflows while waiting for a footer, the most recent header
    is kept, since an earlier header without a footer is most likely a truncated frame.
    """
    name = 'Header/Footer'

    def __init__(self, options: HeaderFooterFrameDecoderOptions = None):
        options = options or HeaderFooterFrameDecoderOptions()
        super().__init__(options.max_buffer_length)
        self.options = options
        encoding = resolve_encoding(options.encoding)
        self.header = encode_pattern(options.header, encoding)
        self.footer = encode_pattern(options.footer, encoding)

    def _extract(self):
        header, footer, buffer = self.header, self.footer, self.buffer
        frames = []
        if not header or not footer:
            return frames
        include = self.options.include_header_footer
        while True:
            start = buffer.find(header)
            if start < 0:
                self._keep_header_prefix()
                break
            if start > 0:
                del buffer[:start]
            end = buffer.find(footer, len(header))
            if end < 0:
                break
            consumed = end + len(footer)
            frames.append(bytes(buffer[:consumed] if include else buffer[len(header):end]))
            del buffer[:consumed]
        return frames

    def _keep_header_prefix(self):
        """ keeps only the bytes that may be the start of a header. """
        keep = len(self.header) - 1
        if len(self.buffer) > keep:
            del self.buffer[:len(self.buffer) - keep]

    def _trim(self):
        buffer = self.buffer
        if self.max_buffer_length <= 0 or len(buffer) <= self.max_buffer_length:
            return
        if not self.header or not self.footer:
            self._log_discarded(trim_buffer(buffer, self.max_buffer_length, len(self.header) + len(self.footer)))
            return
        # the buffer starts with a header that has no footer yet
        last = buffer.rfind(self.header, 1)
        if last > 0:
            self._log_discarded(last)
            del buffer[:last]
        self._log_discarded(trim_buffer(buffer, self.max_buffer_length, len(self.header) - 1))


class FixedLengthFrameDecoderOptions(Options):
    defaults = {
        'frame_length': 16,
        'max_buffer_length': DEFAULT_MAX_BUFFER_LENGTH,
    }


class FixedLengthFrameDecoder(BufferedFrameDecoder):
    """ Splits the stream into frames of a fixed number of bytes. """
    name = 'Fixed length'

    def __init__(self, options: FixedLengthFrameDecoderOptions = None):
        options = options or FixedLengthFrameDecoderOptions()
        super().__init__(options.max_buffer_length)
        self.frame_length = options.frame_length

    def _extract(self):
        n = self.frame_length
        frames = []
        if n <= 0:
            return frames
        count = len(self.buffer) // n
        frames = [bytes(self.buffer[i * n:(i + 1) * n]) for i in range(count)]
        del self.buffer[:count * n]
        return frames

    def _trim(self):
        self._log_discarded(trim_buffer(self.buffer, self.max_buffer_length, max(self.frame_length, 0)))


class NoFrameDecoder(FrameDecoder):
    """ Passes each read through as one frame, without buffering. """
    name = 'Pass-through'

    def decode(self, data):
        return [bytes(data)] if data else []
