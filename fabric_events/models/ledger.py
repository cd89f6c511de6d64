# SPDX-License-Identifier: Apache-2.0

import binascii
import json
import logging
from collections import namedtuple

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.x509.oid import NameOID

from fabric_events.util.consts import TX_VALID

_logger = logging.getLogger(__name__)

KVRead = namedtuple('KVRead', ['key', 'value'])
KVWrite = namedtuple('KVWrite', ['key', 'value', 'is_delete'])
CollectionRwSet = namedtuple('CollectionRwSet', ['name', 'reads', 'writes'])


class Identity(namedtuple('Identity', ['mspid', 'id_bytes'])):
    """Serialized identity of a creator or endorser."""

    __slots__ = ()

    @property
    def common_name(self):
        """Subject CN of the certificate in id_bytes, or None."""
        try:
            cert = x509.load_pem_x509_certificate(self.id_bytes,
                                                  default_backend())
        except (ValueError, TypeError):
            return None
        names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if not names:
            return None
        return names[0].value

    def hex(self):
        return binascii.hexlify(self.id_bytes).decode()

    def __str__(self):
        return '{}-{}'.format(self.mspid, self.common_name or self.hex())


class PrivateDataRecord(object):
    """Private read/write set of one chaincode namespace."""

    def __init__(self, namespace, collections):
        self._namespace = namespace
        self._collections = tuple(collections)

    @property
    def namespace(self):
        return self._namespace

    @property
    def collections(self):
        return self._collections

    def collection(self, name):
        for collection in self._collections:
            if collection.name == name:
                return collection
        return None

    def writes_for(self, key):
        """All writes of the key, in collection order."""
        return [write for collection in self._collections
                for write in collection.writes if write.key == key]

    def __repr__(self):
        return 'PrivateDataRecord(namespace={!r}, collections={!r})'.format(
            self._namespace, [c.name for c in self._collections])


class TransactionRecord(object):
    """A transaction as seen from an event notification.

    The record is a read only view; `block` is filled in once by the
    resolver that built it.
    """

    def __init__(self, tx_id, status, creator, endorsements, chaincode_name,
                 function, args, private_data=None):
        self._tx_id = tx_id
        self._status = status
        self._creator = creator
        self._endorsements = tuple(endorsements)
        self._chaincode_name = chaincode_name
        self._function = function
        self._args = tuple(args)
        self._private_data = tuple(private_data) \
            if private_data is not None else None
        self._block = None
        self._events = ()
        # raw notification the record was resolved from
        self._context = None

    @property
    def tx_id(self):
        return self._tx_id

    @property
    def status(self):
        return self._status

    @property
    def is_valid(self):
        return self._status == TX_VALID

    @property
    def creator(self):
        return self._creator

    @property
    def endorsements(self):
        return self._endorsements

    @property
    def chaincode_name(self):
        return self._chaincode_name

    @property
    def function(self):
        return self._function

    @property
    def args(self):
        return self._args

    @property
    def private_data(self):
        return self._private_data

    @property
    def block(self):
        return self._block

    @property
    def block_number(self):
        if self._block is None:
            return None
        return self._block.number

    @property
    def events(self):
        """ContractEvents emitted by this transaction."""
        return self._events

    def _set_events(self, events):
        self._events = tuple(events)

    def _set_block(self, block):
        if self._block is not None and self._block is not block:
            raise ValueError('transaction {} already belongs to block {}'
                             .format(self._tx_id, self._block.number))
        self._block = block

    def __repr__(self):
        return ('TransactionRecord(tx_id={!r}, status={!r}, chaincode={!r},'
                ' function={!r})').format(self._tx_id, self._status,
                                          self._chaincode_name,
                                          self._function)


class BlockRecord(object):
    """A committed block and the transactions it carries."""

    def __init__(self, number, transactions):
        if number is None or int(number) < 0:
            raise ValueError('block number must be a non negative integer')
        self._number = int(number)
        self._transactions = tuple(transactions)

    @property
    def number(self):
        return self._number

    @property
    def transactions(self):
        return self._transactions

    def transaction(self, tx_id):
        for transaction in self._transactions:
            if transaction.tx_id == tx_id:
                return transaction
        return None

    def __repr__(self):
        return 'BlockRecord(number={}, transactions={})'.format(
            self._number, len(self._transactions))


class ContractEvent(object):
    """A chaincode event and the transaction that emitted it."""

    def __init__(self, chaincode_name, event_name, payload, transaction):
        self._chaincode_name = chaincode_name
        self._event_name = event_name
        self._payload = bytes(payload or b'')
        self._transaction = transaction

    @property
    def chaincode_name(self):
        return self._chaincode_name

    @property
    def event_name(self):
        return self._event_name

    @property
    def payload(self):
        return self._payload

    @property
    def transaction(self):
        return self._transaction

    @property
    def block(self):
        return self._transaction.block

    def json(self):
        return json.loads(self._payload.decode('utf-8'))

    def __repr__(self):
        return 'ContractEvent(event_name={!r}, tx_id={!r})'.format(
            self._event_name, self._transaction.tx_id)


class BlockEvent(namedtuple('BlockEvent', ['block', 'is_tip'])):
    """What a block listener receives.

    is_tip is True for the first block delivered to a registration: that
    block was already the top of the ledger, every later one is new.
    """

    __slots__ = ()

    @property
    def number(self):
        return self.block.number

    @property
    def transactions(self):
        return self.block.transactions
