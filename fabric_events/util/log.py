# SPDX-License-Identifier: Apache-2.0

import json
import logging
import os

LOGGING_ENV = 'HFE_LOGGING'
DEFAULT_FORMAT = '%(asctime)s %(levelname)s %(name)s - %(message)s'

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


def configure_logging(setting=None, logger_name='fabric_events'):
    """Attach handlers to the package logger from a JSON level map.

    The map has the shape ``{"debug": "./debug.log", "error": "console"}``:
    each level is sent either to the console or to the named file.
    When ``setting`` is None the HFE_LOGGING environment variable is used.

    :param setting: JSON string or dict, or None
    :param logger_name: logger to configure
    :return: the configured logger
    """
    if setting is None:
        setting = os.environ.get(LOGGING_ENV)

    logger = logging.getLogger(logger_name)
    if not setting:
        return logger

    if isinstance(setting, str):
        try:
            setting = json.loads(setting)
        except ValueError:
            raise ValueError('{} must be a JSON object, got {!r}'
                             .format(LOGGING_ENV, setting))

    formatter = logging.Formatter(DEFAULT_FORMAT)
    lowest = logging.CRITICAL
    for name, target in setting.items():
        level = _LEVELS.get(name.lower())
        if level is None:
            raise ValueError('unknown logging level {}'.format(name))

        if target == 'console':
            handler = logging.StreamHandler()
        else:
            handler = logging.FileHandler(target)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        lowest = min(lowest, level)

    logger.setLevel(lowest)
    return logger
