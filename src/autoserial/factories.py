"""
Builds frame decoders, parsers and forwarders from the type names and parameters in a device profile.
"""
import logging

from autoserial.forwarding.clipboard import ClipboardForwarder, ClipboardForwarderOptions
from autoserial.forwarding.keystrokes import TypingForwarder, TypingForwarderOptions
from autoserial.forwarding.mqtt import MqttForwarder, MqttForwarderOptions
from autoserial.forwarding.tcp import TcpForwarder, TcpForwarderOptions
from autoserial.framing.decoders import DelimiterFrameDecoder, DelimiterFrameDecoderOptions, \
    FixedLengthFrameDecoder, FixedLengthFrameDecoderOptions, HeaderFooterFrameDecoder, \
    HeaderFooterFrameDecoderOptions, NoFrameDecoder
from autoserial.model import ForwarderConfig, FrameDecoderConfig, ParserConfig
from autoserial.parsing.parsers import BarcodeParser, BarcodeParserOptions, JsonFieldParser, \
    JsonFieldParserOptions, LineParser, LineParserOptions, ScaleParser, ScaleParserOptions
from autoserial.support.options import Options

logger = logging.getLogger(__name__)


class Provider:
    """ Creates one type of component from its configuration parameters. """

    def __init__(self, type_name, factory, options_type=Options):
        self.type_name = type_name
        self.factory = factory
        self.options_type = options_type

    def create(self, parameters=None):
        return self.factory(self.options_type.from_parameters(parameters))


class Registry:
    """
    Looks up providers by type name, ignoring case. Unknown names resolve to the fallback provider.
    """

    def __init__(self, kind, providers, fallback):
        self.kind = kind
        self.providers = {p.type_name.lower(): p for p in providers}
        self.fallback = self.providers[fallback.lower()]

    @property
    def type_names(self):
        return [p.type_name for p in self.providers.values()]

    def create(self, type_name, parameters):
        provider = self.providers.get((type_name or '').strip().lower())
        if provider is None:
            logger.warning("Unknown %s type: %s (known types: %s), falling back to %s", self.kind, type_name,
                           ", ".join(self.type_names), self.fallback.type_name)
            return self.fallback.create()
        return provider.create(parameters)


frame_decoders = Registry('frame decoder', [
    Provider('DelimiterFrameDecoder', DelimiterFrameDecoder, DelimiterFrameDecoderOptions),
    Provider('HeaderFooterFrameDecoder', HeaderFooterFrameDecoder, HeaderFooterFrameDecoderOptions),
    Provider('FixedLengthFrameDecoder', FixedLengthFrameDecoder, FixedLengthFrameDecoderOptions),
    Provider('NoFrameDecoder', lambda options: NoFrameDecoder()),
], fallback='DelimiterFrameDecoder')

parsers = Registry('parser', [
    Provider('LineParser', LineParser, LineParserOptions),
    Provider('JsonFieldParser', JsonFieldParser, JsonFieldParserOptions),
    Provider('ScaleParser', ScaleParser, ScaleParserOptions),
    Provider('BarcodeParser', BarcodeParser, BarcodeParserOptions),
], fallback='LineParser')


def create_frame_decoder(config: FrameDecoderConfig):
    return frame_decoders.create(config.decoder_type, config.parameters)


def create_parser(config: ParserConfig):
    return parsers.create(config.parser_type, config.parameters)


class ForwarderFactory:
    """
    Creates forwarders from their configuration. The clipboard and typing services are shared by
    the forwarders created; when not given, the platform services are used.
    """

    def __init__(self, clipboard=None, typing=None):
        self.clipboard = clipboard
        self.typing = typing

    def create(self, config: ForwarderConfig):
        """
        :return: the forwarder, or None if the forwarder type is not known.
        """
        kind = (config.forwarder_type or '').strip().lower()
        enabled = config.enabled
        if kind == 'tcpforwarder':
            return TcpForwarder(TcpForwarderOptions.from_parameters(config.parameters), enabled)
        if kind == 'mqttforwarder':
            return MqttForwarder(MqttForwarderOptions.from_parameters(config.parameters), enabled)
        if kind == 'clipboardforwarder':
            return ClipboardForwarder(self.clipboard, ClipboardForwarderOptions.from_parameters(config.parameters),
                                      enabled)
        if kind == 'typingforwarder':
            return TypingForwarder(self.typing, TypingForwarderOptions.from_parameters(config.parameters), enabled)
        logger.warning("Unknown forwarder type: %s", config.forwarder_type)
        return None

    def create_all(self, configs):
        """ creates the forwarders for the given configurations, in order, skipping unknown types. """
        forwarders = []
        for config in configs:
            forwarder = self.create(config)
            if forwarder is not None:
                forwarders.append(forwarder)
        return forwarders
