# SPDX-License-Identifier: Apache-2.0

import copy
import logging

from fabric_events.errors import SetupError
from fabric_events.fabric_network.network import Network
from fabric_events.util.consts import DEFAULT_COMMIT_TIMEOUT

consoleHandler = logging.StreamHandler()
_logger = logging.getLogger(__name__)

_logger.setLevel(logging.DEBUG)
_logger.addHandler(consoleHandler)

DEFAULT_OPTIONS = {
    'use_commit_events': True,
    'event_handler_options': {
        'commit_timeout': DEFAULT_COMMIT_TIMEOUT,
    },
}


class Gateway(object):
    """The gateway provides the connection point for an application to
    access the ledger network through a LedgerClient.

    Whether submissions wait for their commit event is the
    `use_commit_events` option of connect().
    """

    def __init__(self):
        """ Construct Gateway. """
        self.client = None
        self.connection = None
        self.current_identity = None
        self.networks = dict()
        self.options = copy.deepcopy(DEFAULT_OPTIONS)

    def merge_options(self, current_options, additional_options):
        """Merge additional options to current options

        :param current_options: current options
        :param additional_options: additional options to be merged
        :return: result
        """
        result = current_options
        for prop in additional_options:
            if prop in result and isinstance(result[prop], dict) \
                    and isinstance(additional_options[prop], dict):
                self.merge_options(result[prop], additional_options[prop])
            else:
                result[prop] = additional_options[prop]
        return result

    async def connect(self, client, net_profile, options):
        """
        Connect to the Gateway with a ledger client, a connection profile
        and connection options.

        :param client: LedgerClient instance
        :param net_profile: connection profile handed to the client
        :param options: identity, use_commit_events, event_handler_options
        :raises SetupError: when no identity is given or the client cannot
            connect
        :return:
        """
        if not options or 'identity' not in options:
            _logger.error("An identity must be assigned to a gateway instance")
            raise SetupError('An identity must be assigned to a gateway '
                             'instance')

        self.options = self.merge_options(copy.deepcopy(DEFAULT_OPTIONS),
                                          options)
        self.client = client
        try:
            self.connection = await client.connect(net_profile,
                                                   options['identity'])
        except Exception as e:
            _logger.error('Error in connecting to gateway: %s', e)
            raise SetupError('Error in connecting to gateway: {}'
                             .format(e)) from e

        self.current_identity = self.connection.identity
        _logger.debug('connected as %s, commit events %s',
                      self.current_identity, self.use_commit_events)

    @property
    def use_commit_events(self):
        return bool(self.options.get('use_commit_events'))

    @property
    def commit_timeout(self):
        return self.options['event_handler_options'].get(
            'commit_timeout', DEFAULT_COMMIT_TIMEOUT)

    def get_current_identity(self):
        """:return: The current identity being used in the gateway."""
        return self.current_identity

    def get_client(self):
        """:return: LedgerClient instance."""
        return self.client

    def get_connection(self):
        if self.connection is None:
            raise SetupError('the gateway is not connected')
        return self.connection

    def get_options(self):
        """:return: the options being used."""
        _logger.debug('in get_options')
        return self.options

    def disconnect(self):
        """Clean up and disconnect this Gateway connection"""
        _logger.debug('in disconnect')
        for network in self.networks.values():
            network.close()
        self.networks.clear()
        if self.connection is not None:
            self.connection.close()
            self.connection = None

    async def get_network(self, network_name):
        """
        Returns an object representing a network

        :param network_name: Name of the channel
        :return: Network instance
        """
        method = 'get_network'

        existing_network = self.networks.get(network_name)
        if existing_network:
            _logger.debug('%s - returning existing network:%s', method,
                          network_name)
            return existing_network

        new_network = Network(self, network_name)
        await new_network._initialize()
        self.networks[network_name] = new_network
        return new_network
