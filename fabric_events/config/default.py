# SPDX-License-Identifier: Apache-2.0

import os

from fabric_events.util.consts import DEFAULT_COMMIT_TIMEOUT

ENV_PREFIX = 'HFE_'

DEFAULT = {
    'CHANNEL_NAME': 'mychannel',
    'CHAINCODE_NAME': 'events',
    'ORG_MSPID': 'Org1MSP',
    'USER_ID': 'appUser1',
    'COMMIT_TIMEOUT': DEFAULT_COMMIT_TIMEOUT,
    'USE_COMMIT_EVENTS': True,
}


def _coerce(default, raw):
    if isinstance(default, bool):
        return raw.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def load_config(environ=None):
    """Return DEFAULT with every key overridden by its HFE_<KEY> environment
    variable when present.

    :param environ: mapping to read instead of os.environ
    :return: a new settings dict
    """
    if environ is None:
        environ = os.environ

    config = dict(DEFAULT)
    for key, default in DEFAULT.items():
        raw = environ.get(ENV_PREFIX + key)
        if raw is not None:
            config[key] = _coerce(default, raw)
    return config
