# SPDX-License-Identifier: Apache-2.0

from abc import ABCMeta, abstractmethod


class LedgerClient(object, metaclass=ABCMeta):
    """The network client a Gateway connects through.

    Identity enrollment, discovery, endorsement and ordering all happen
    behind this interface.
    """

    @abstractmethod
    async def connect(self, net_profile, identity):
        """Open a connection for an enrolled identity.

        :param net_profile: connection profile, client specific
        :param identity: identity context of the user
        :return: Connection
        """


class Connection(object, metaclass=ABCMeta):
    """A live connection to the peers of a channel."""

    @property
    @abstractmethod
    def identity(self):
        """Identity(mspid, id_bytes) of the connected user."""

    @abstractmethod
    def get_contract_events(self, chaincode_name):
        """Open the event feed used for a chaincode's events.

        :return: async iterator of decoded blocks, starting with the block
            at the top of the ledger
        """

    @abstractmethod
    def get_block_events(self, include_private_data=False):
        """Open the block event feed.

        :param include_private_data: ask for the private read/write sets
            of the collections the user's organization may read
        :return: async iterator of decoded blocks, starting with the block
            at the top of the ledger
        """

    @abstractmethod
    async def submit_transaction(self, name, args, options):
        """Endorse and order a transaction.

        :param name: chaincode function
        :param args: list of str arguments
        :param options: {'chaincode_name', 'tx_id', 'nonce', 'transient',
            'endorsing_orgs'}
        :return: the chaincode response payload (bytes)
        """

    @abstractmethod
    async def evaluate_transaction(self, name, args, options=None):
        """Run a query on a peer without ordering it.

        :return: the chaincode response payload (bytes)
        """

    @abstractmethod
    def close(self):
        """Release the connection and its feeds."""
