"""
Loads device profiles from configobj files.

Each top-level section describes one device:

    [scale]
    device_id = 1
    display_name = Bench scale
    identifier_type = UsbVidPid
    identifier_value = 0403:6001
    baud_rate = 9600
        [[frame_decoder]]
        type = DelimiterFrameDecoder
        delimiter = \\r\\n
        [[parser]]
        type = ScaleParser
        [[forwarders]]
            [[[tcp]]]
            type = TcpForwarder
            enabled = True
            port = 9000

Keys other than `type` (and `enabled` for forwarders) are passed to the component as its parameters.
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

from autoserial.model import DeviceProfile, ForwarderConfig, FrameDecoderConfig, ParserConfig, \
    SerialConnectionConfig

# The default extension for configuration files
config_extension = '.cfg'

# The default name of the profiles configuration
default_config_name = 'autoserial'

device_spec = """
[__many__]
device_id = integer(min=0, default=0)
display_name = string(default=None)
identifier_type = string(default='PortName')
identifier_value = string(default='')
baud_rate = integer(min=1, default=9600)
parity = string(default=None)
data_bits = integer(min=5, max=8, default=8)
stop_bits = string(default=None)
enabled = boolean(default=True)
    [[parser]]
    type = string(default='LineParser')
    [[frame_decoder]]
    type = string(default='DelimiterFrameDecoder')
    [[forwarders]]
        [[[__many__]]]
        type = string(default='TcpForwarder')
        enabled = boolean(default=False)
""".splitlines()


def config_flavor(name, flavor=None):
    configname = name if not flavor else name + '.' + flavor
    return configname


def config_filename(name, directory=None):
    """
    Determines the location of a config file in the given directory.
    """
    return os.path.join(directory or '', name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation=False, file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name.
    :param name:    The name of the base configuration
    :param subpart: The name of the specialization.
    :return: The ConfigObj for the configuration file.
    """
    configname = config_flavor(name, subpart)
    file = config_filename(configname, directory)
    return load_config_file_base(file, False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def load_config(name, directory, user_directory='~'):
    """
        Loads all the configuration files that relate to the given name.
        Configurations are loaded in this order:
        - the default specialization
        - the platform specialization
        - the user override, from the user's home directory
        - the base configuration
        The configurations are merged into a single configuration, and then validated
        against the device profile schema, which also fills in default values.
    :param directory: the location of the configuration files
    :return: the validated ConfigObj
    """
    local_config = config_flavor_file(name, directory)
    default_config = config_flavor_file(name, directory, 'default')
    platform_config = config_flavor_file(name, directory, os_name())
    user_config = load_config_file_base(
        config_filename(name, os.path.expanduser(user_directory)), must_exist=False)
    config = ConfigObj(configspec=device_spec, interpolation=False)
    config.merge(default_config)
    config.merge(platform_config)
    config.merge(user_config)
    config.merge(local_config)

    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        problems = []
        for sections, key, error in flatten_errors(config, result):
            where = '/'.join(sections + ([key] if key else []))
            problems.append("%s: %s" % (where, error or 'missing'))
        raise ConfigObjError("the config file %s failed validation: %s" % (name, '; '.join(problems)))
    return config


def parameters(section: Section, reserved=('type',)):
    """
    Collects the component parameters from a section. List values, which configobj reads from
    comma separated text, are joined again.
    """
    return {k: ','.join(v) if isinstance(v, (list, tuple)) else v
            for k, v in section.items() if k not in reserved and k not in section.sections}


def profile_from_section(name, section: Section, device_id=None) -> DeviceProfile:
    connection = SerialConnectionConfig(
        device_id=device_id if device_id is not None else section['device_id'],
        display_name=section['display_name'] or name,
        identifier_type=section['identifier_type'],
        identifier_value=section['identifier_value'],
        baud_rate=section['baud_rate'],
        parity=section['parity'] or 'None',
        data_bits=section['data_bits'],
        stop_bits=section['stop_bits'] or 'One',
        enabled=section['enabled'])
    parser = section['parser']
    decoder = section['frame_decoder']
    forwarders = section['forwarders']
    return DeviceProfile(
        connection,
        ParserConfig(parser['type'], parameters(parser)),
        FrameDecoderConfig(decoder['type'], parameters(decoder)),
        [ForwarderConfig(f['type'], f['enabled'], parameters(f, ('type', 'enabled')))
         for f in (forwarders[n] for n in forwarders.sections)])


def profiles_from_config(config: ConfigObj):
    """
    Builds a device profile from each top-level section of a validated configuration.
    Sections without a device_id are numbered after the highest device_id given.
    :return: the profiles, sorted by device id
    """
    next_id = max([config[name]['device_id'] for name in config.sections] + [0]) + 1
    profiles = []
    for name in config.sections:
        section = config[name]
        device_id = section['device_id']
        if not device_id:
            device_id, next_id = next_id, next_id + 1
        profiles.append(profile_from_section(name, section, device_id))
    return sorted(profiles, key=lambda p: p.device_id)


class ConfigProfileStore:
    """ Reads device profiles from the configuration files in a directory. """

    def __init__(self, directory, name=default_config_name, user_directory='~'):
        self.directory = directory
        self.name = name
        self.user_directory = user_directory

    def load_profiles(self, name=None):
        """ :param name: the base name of the config files, when not the store's default. """
        return profiles_from_config(load_config(name or self.name, self.directory, self.user_directory))
