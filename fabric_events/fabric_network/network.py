# SPDX-License-Identifier: Apache-2.0

import logging

from fabric_events.errors import SetupError
from fabric_events.event.commit import CommitWaiter
from fabric_events.event.manager import EventSubscriptionManager
from fabric_events.fabric_network.contract import Contract

consoleHandler = logging.StreamHandler()
_logger = logging.getLogger(__name__)

_logger.setLevel(logging.DEBUG)
_logger.addHandler(consoleHandler)


class Network(object):
    """A Network represents a channel reached through a gateway.
    Applications should get a Network instance using the
    gateway's get_network method.
    """

    def __init__(self, gateway, channel):
        """ Construct Network. """
        self.gateway = gateway
        self.channel = channel
        self.contracts = dict()
        self.initialized = False
        self.listeners = dict()
        self.event_manager = None

    async def _initialize(self):
        """
        Initialize this network instance
        :return:
        """
        if self.initialized:
            return
        connection = self.gateway.get_connection()
        self.event_manager = EventSubscriptionManager(connection)
        self.initialized = True

    def get_contract(self, chaincode_id):
        if not self.initialized:
            _logger.error("Unable to get contract as network has failed to initialize")
            raise SetupError('network {} is not initialized'
                             .format(self.channel))

        if chaincode_id not in self.contracts:
            contract = Contract(self, chaincode_id, self.gateway)
            self.contracts[chaincode_id] = contract

        return self.contracts[chaincode_id]

    async def add_block_listener(self, callback, include_private_data=False,
                                 on_error=None):
        """Listen to the blocks committed on this channel.

        :param callback: receives BlockEvent(block, is_tip)
        :param include_private_data: also deliver private read/write sets;
            only ask for it from an organization entitled to the collection
        :param on_error: receives FeedDisconnected
        :return: ListenerRegistration
        """
        registration = await self.event_manager.subscribe_block_events(
            callback, include_private_data=include_private_data,
            on_error=on_error)
        self.listeners[registration.uuid] = registration
        return registration

    def remove_block_listener(self, registration):
        self.listeners.pop(registration.uuid, None)
        self.event_manager.unsubscribe(registration)

    async def new_commit_waiter(self, tx_id, timeout=None):
        """A started CommitWaiter for the transaction.

        :param tx_id: transaction id
        :param timeout: seconds, the gateway commit timeout by default
        """
        if timeout is None:
            timeout = self.gateway.commit_timeout
        return await CommitWaiter(self.event_manager, tx_id,
                                  timeout=timeout).start()

    def close(self):
        self.listeners.clear()
        if self.event_manager is not None:
            self.event_manager.close()
