"""
Typed options for parsers, frame decoders and forwarders.

Options are stored in configuration as free-form parameters: either a mapping (such as a configobj
section, where every value is text) or a JSON document. Each Options subclass declares its
defaults; parameters are coerced to the type of the default.
"""
import json
import logging
import re
from collections.abc import Mapping

from autoserial.support.mixins import ValueObject

logger = logging.getLogger(__name__)

_TRUE = ('true', 'yes', 'on', '1')
_FALSE = ('false', 'no', 'off', '0')

_ESCAPE = re.compile(r'\\(x[0-9A-Fa-f]{2}|[nrt0\\])')
_ESCAPES = {'n': '\n', 'r': '\r', 't': '\t', '0': '\0', '\\': '\\'}


def key_name(name):
    """
    Normalizes a parameter key so snake_case and camelCase spellings compare equal.
    >>> key_name('maxBufferLength') == key_name('max_buffer_length')
    True
    >>> key_name('QoS')
    'qos'
    """
    return str(name).replace('_', '').lower()


def unescape(text):
    r"""
    Expands the escapes understood in byte pattern options.
    >>> unescape('\\r\\n') == '\r\n'
    True
    >>> unescape('\\x02') == '\x02'
    True
    """
    def expand(match):
        code = match.group(1)
        if code.startswith('x'):
            return chr(int(code[1:], 16))
        return _ESCAPES[code]
    return _ESCAPE.sub(expand, text)


def coerce(value, default):
    """
    Converts a parameter value to the type of the default value.
    Raises ValueError when the value cannot be converted.
    """
    if default is None or value is None:
        return value
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError("not a boolean: %r" % (value,))
    if isinstance(default, int):
        if isinstance(value, bool):
            raise ValueError("not an integer: %r" % (value,))
        return int(str(value).strip()) if not isinstance(value, int) else value
    if isinstance(default, float):
        return float(value)
    return str(value)


class Options(ValueObject):
    """
    Base class for component options. Subclasses list their settings and default values in `defaults`.
    """
    defaults = {}

    def __init__(self, **kwargs):
        for key, default in self.defaults.items():
            setattr(self, key, coerce(kwargs.get(key, default), default))

    @classmethod
    def from_parameters(cls, parameters):
        """
        Builds options from configuration parameters. Never raises: bad values are logged and the
        default is used instead.
        :param parameters: None, a mapping, or a JSON object text. Keys may be snake_case or camelCase.
        """
        if parameters is None:
            return cls()
        if isinstance(parameters, (str, bytes)):
            if not parameters.strip():
                return cls()
            try:
                parameters = json.loads(parameters)
            except ValueError as e:
                logger.warning("ignoring invalid %s parameters: %s", cls.__name__, e)
                return cls()
        if not isinstance(parameters, Mapping):
            logger.warning("ignoring %s parameters of type %s", cls.__name__, type(parameters).__name__)
            return cls()

        names = {key_name(name): name for name in cls.defaults}
        values = {}
        for key, value in parameters.items():
            name = names.get(key_name(key))
            if name is None:
                continue
            try:
                values[name] = coerce(value, cls.defaults[name])
            except (TypeError, ValueError) as e:
                logger.warning("invalid value for %s.%s, using default %r: %s",
                               cls.__name__, name, cls.defaults[name], e)
        return cls(**values)
