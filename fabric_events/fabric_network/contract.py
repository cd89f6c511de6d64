# SPDX-License-Identifier: Apache-2.0

import logging

from fabric_events.fabric_network.transaction import Transaction

consoleHandler = logging.StreamHandler()
_logger = logging.getLogger(__name__)

_logger.setLevel(logging.DEBUG)
_logger.addHandler(consoleHandler)


class Contract(object):
    """Represents a smart contract (chaincode) instance in a network.
    Applications should get a Contract instance using the
    networks's get_contract method.
    :return: an instance of Contract
    """

    def __init__(self, network, cc_name, gateway):
        self.network = network
        self.channel = network.channel
        self.cc_name = cc_name
        self.gateway = gateway

    def get_network(self):
        return self.network

    def get_cc_name(self):
        return self.cc_name

    def get_options(self):
        return self.gateway.get_options()

    async def add_contract_listener(self, callback, event_name=None,
                                    on_error=None):
        """Listen to the events this chaincode emits from now on.

        :param callback: receives each ContractEvent
        :param event_name: optional regular expression on the event name
        :param on_error: receives FeedDisconnected
        :return: ListenerRegistration
        """
        registration = await self.network.event_manager \
            .subscribe_contract_events(self.cc_name, callback,
                                       event_name=event_name,
                                       on_error=on_error)
        self.network.listeners[registration.uuid] = registration
        return registration

    def remove_contract_listener(self, registration):
        self.network.listeners.pop(registration.uuid, None)
        self.network.event_manager.unsubscribe(registration)

    def create_transaction(self, name):
        """Create a transaction that can carry transient data and a
        restricted set of endorsing organizations.

        :param name: chaincode function
        :return: Transaction
        """
        return Transaction(self, name)

    async def submit_transaction(self, name, *args):
        """
        Submit a transaction to the ledger. The transaction function will be
        endorsed and then submitted to the ordering service for committing
        to the ledger.

        :return: CommitResult
        """
        return await self.create_transaction(name).submit(*args)

    async def evaluate_transaction(self, name, *args):
        """
        Evaluate a transaction function and return its results.
        The transaction function will be evaluated on a peer but the
        response will not be sent to the ordering service and hence will
        not be committed to the ledger.
        This is used for querying the world state.
        """
        return await self.create_transaction(name).evaluate(*args)
