"""
Layered configuration files.

A configuration named N in directory D is assembled from these files, each overriding the last:

- D/N.default.cfg
- D/N.<os>.cfg, where <os> is 'linux', 'windows', 'osx' etc.
- ~/N.cfg
- D/N.cfg

The result is validated against D/N.schema.cfg, which also supplies defaults and converts values
to their declared types.
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('blelink', 'default')
    'blelink.default'
    >>> config_flavor('blelink')
    'blelink'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, flavor=None) -> ConfigObj:
    """
    Loads a specialization of a config file, named after the base followed by a period and the
    specialization. A missing file gives an empty configuration.
    """
    file = config_filename(config_flavor(name, flavor), directory)
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


def user_config_file(name):
    return os.path.expanduser(os.path.join('~', name + config_extension))


def load_config(name, directory, user_file=None):
    """
    Loads and merges all the configuration files for the given name, then validates the result
    against the schema.
    :param directory:   the location of the configuration files
    :param user_file:   the per-user override. Defaults to ~/<name>.cfg
    :return: the validated ConfigObj
    """
    schema = config_filename(config_flavor(name, 'schema'), directory)
    config = ConfigObj(configspec=schema if os.path.exists(schema) else None)
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(load_config_file_base(user_file or user_config_file(name), must_exist=False))
    config.merge(config_flavor_file(name, directory))

    if config.configspec is not None:
        result = config.validate(Validator())
        if result is not True:
            raise ConfigObjError("the config file %s failed validation %s" % (name, result))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:    The root configuration
    :param path:    An iterable of the section names leading to the section
    :return: The section identified by the path, or None
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return None
    return conf


def apply_conf(conf: Section, target):
    """
    Sets each attribute of the target that has the same name as a value in the configuration.
    Nested sections are not applied.
    """
    for k, v in conf.items():
        if not isinstance(v, Section) and hasattr(target, k):
            setattr(target, k, v)


def apply_conf_path(conf: Section, name_parts, target):
    conf = fetch_conf_path(conf, name_parts)
    if conf:
        apply_conf(conf, target)


def configure_module(module, config_name, directory=None, user_file=None):
    """
    Applies configuration to the attributes of a module. The values are taken from the section
    whose path matches the module's fully qualified name, e.g. [blelink] [[settings]] for
    blelink.settings.
    :param config_name: the name of the configuration files to load.
    :param directory:   where the configuration files are. Defaults to the module's directory.
    :return: the loaded configuration
    """
    if not module.__package__:
        raise ConfigObjError('module %s has no package defined' % module.__name__)
    directory = directory or os.path.dirname(module.__file__)
    conf = load_config(config_name, directory, user_file)
    apply_conf_path(conf, module.__name__.split('.'), module)
    return conf
