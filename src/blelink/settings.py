"""
Settings for the device manager. The values here are the built-in defaults; load() replaces them
with values from the blelink configuration files.
"""
import logging
import sys

from blelink.config.config import configure_module

logger = logging.getLogger(__name__)

config_name = 'blelink'

# advertised names admitted to the registry
scan_names = ['U1SMARTLIGHT', 'UNIT1 AURA', 'UNIT1 FARO']
scan_duration = 3.0
connect_timeout = 10.0
disconnect_timeout = 5.0
service_timeout = 5.0
max_service_recoveries = 3
workers = 8
log_level = 'INFO'


def load(directory=None, user_file=None):
    """ applies the configuration files to this module """
    module = sys.modules[__name__]
    configure_module(module, config_name, directory, user_file)
    logger.debug("settings loaded: names=%s duration=%s", scan_names, scan_duration)
    return module
