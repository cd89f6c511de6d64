# SPDX-License-Identifier: Apache-2.0

import logging
import re

from fabric_events.errors import BlockNotAvailable, MalformedEventData
from fabric_events.models.ledger import BlockRecord, CollectionRwSet, \
    ContractEvent, Identity, KVRead, KVWrite, PrivateDataRecord, \
    TransactionRecord
from fabric_events.util.consts import BLOCK_METADATA_TRANSACTIONS_FILTER, \
    HEADER_TYPE_ENDORSER_TRANSACTION, TX_VALIDATION_CODES

_logger = logging.getLogger(__name__)

NOT_VALIDATED = 254


def _field(container, *path):
    """Walk a decoded notification, failing on the first missing step."""
    value = container
    for name in path:
        if isinstance(name, int):
            ok = isinstance(value, (list, tuple)) and -len(value) <= name \
                < len(value)
        else:
            ok = isinstance(value, dict) and name in value
        if not ok:
            raise MalformedEventData('missing field {} in event data'
                                     .format('.'.join(str(p) for p in path)))
        value = value[name]
        if value is None:
            raise MalformedEventData('empty field {} in event data'
                                     .format('.'.join(str(p) for p in path)))
    return value


def _lookup(container, *path):
    """Like _field, but None when a step is missing or of the wrong type."""
    try:
        return _field(container, *path)
    except MalformedEventData:
        return None


def _text(value):
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode('utf-8')
        except UnicodeDecodeError:
            raise MalformedEventData('chaincode argument is not utf-8')
    if isinstance(value, str):
        return value
    raise MalformedEventData('chaincode argument of type {}'
                             .format(type(value).__name__))


def _bytes(value, what):
    if value is None:
        return b''
    if isinstance(value, str):
        return value.encode()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise MalformedEventData('{} of type {}'.format(what,
                                                    type(value).__name__))


def _identity(raw):
    if not isinstance(raw, dict) or not isinstance(raw.get('mspid'), str):
        raise MalformedEventData('identity without mspid')
    return Identity(raw['mspid'], _bytes(raw.get('id_bytes'), 'id_bytes'))


def validation_status(code):
    """Map a TxValidationCode number (or name) to its name."""
    if code is None:
        code = NOT_VALIDATED
    if isinstance(code, str):
        return code
    if not isinstance(code, int):
        raise MalformedEventData('validation code of type {}'
                                 .format(type(code).__name__))
    return TX_VALIDATION_CODES.get(code, 'INVALID_OTHER_REASON')


def decode_private_data(tx_pvt_rwset):
    """Build PrivateDataRecords from a decoded TxPvtReadWriteSet.

    :param tx_pvt_rwset: {'ns_pvt_rwset': [{'namespace',
        'collection_pvt_rwset': [{'collection_name', 'rwset'}]}]}
    :return: list of PrivateDataRecord
    """
    records = []
    for ns in tx_pvt_rwset.get('ns_pvt_rwset') or []:
        collections = []
        for coll in ns.get('collection_pvt_rwset') or []:
            rwset = coll.get('rwset') or {}
            reads = [KVRead(r['key'], r.get('value', b''))
                     for r in rwset.get('reads') or []]
            writes = [KVWrite(w['key'], w.get('value', b''),
                              bool(w.get('is_delete', False)))
                      for w in rwset.get('writes') or []]
            collections.append(
                CollectionRwSet(coll['collection_name'], tuple(reads),
                                tuple(writes)))
        records.append(PrivateDataRecord(ns['namespace'], collections))
    return records


class EventResolver(object):
    """Rebuilds transaction and block records from raw notifications.

    Raw notifications use the decoded block layout: a block is
    {'header': {'number'}, 'data': {'data': [envelope]},
    'metadata': {'metadata': [..., tx_filter]}, 'private_data_map'?}.
    """

    def resolve_transaction(self, raw_event):
        """Build the TransactionRecord of one processed transaction.

        :param raw_event: {'transaction_envelope', 'validation_code',
            'block' (optional), 'private_data' (optional)}
        :return: TransactionRecord
        :raises MalformedEventData: when creator, endorsements or the
            chaincode invocation spec are absent or invalid
        """
        if not isinstance(raw_event, dict):
            raise MalformedEventData('event data must be a mapping')

        payload = _field(raw_event, 'transaction_envelope', 'payload')
        tx_id = _field(payload, 'header', 'channel_header', 'tx_id')
        if not isinstance(tx_id, str):
            raise MalformedEventData('transaction id of type {}'
                                     .format(type(tx_id).__name__))
        action = _field(payload, 'data', 'actions', 0)

        creator = _lookup(action, 'header', 'creator')
        if creator is None:
            creator = _lookup(payload, 'header', 'signature_header',
                              'creator')
        if creator is None:
            raise MalformedEventData('transaction {} has no creator'
                                     .format(tx_id))
        creator = _identity(creator)

        endorsements = _field(action, 'payload', 'action', 'endorsements')
        if not isinstance(endorsements, (list, tuple)):
            raise MalformedEventData('endorsements of {} are not a list'
                                     .format(tx_id))
        endorsers = [_identity(_field(e, 'endorser')) for e in endorsements]

        spec = _field(action, 'payload', 'chaincode_proposal_payload',
                      'input', 'chaincode_spec')
        chaincode_name = _field(spec, 'chaincode_id', 'name')
        args = _field(spec, 'input', 'args')
        if not isinstance(args, (list, tuple)) or not args:
            raise MalformedEventData('transaction {} invokes no function'
                                     .format(tx_id))
        args = [_text(arg) for arg in args]

        private_data = raw_event.get('private_data')
        if private_data is not None:
            try:
                private_data = decode_private_data(private_data)
            except (KeyError, TypeError, AttributeError) as e:
                raise MalformedEventData('bad private data in {}: {}'
                                         .format(tx_id, e))

        transaction = TransactionRecord(
            tx_id, validation_status(raw_event.get('validation_code')),
            creator, endorsers, chaincode_name, args[0], args[1:],
            private_data=private_data)
        transaction._set_events(
            self._chaincode_events(action, transaction))
        transaction._context = raw_event
        return transaction

    def _chaincode_events(self, action, transaction):
        raw = _lookup(action, 'payload', 'action',
                      'proposal_response_payload', 'extension', 'events')
        if not isinstance(raw, dict) or not raw.get('event_name'):
            return []
        return [ContractEvent(raw.get('chaincode_id')
                              or transaction.chaincode_name,
                              _text(raw['event_name']),
                              _bytes(raw.get('payload'), 'event payload'),
                              transaction)]

    def resolve_block(self, transaction):
        """Return the BlockRecord that committed the transaction.

        :param transaction: a TransactionRecord built by this resolver
        :raises BlockNotAvailable: when the notification the transaction
            came from does not carry its block
        """
        if transaction.block is not None:
            return transaction.block

        context = transaction._context or {}
        raw_block = context.get('block')
        if raw_block is None:
            raise BlockNotAvailable('no block in the notification of {}'
                                    .format(transaction.tx_id))
        try:
            block = self._build_block(
                raw_block,
                context.get('include_private_data', 'private_data' in context),
                known={transaction.tx_id: transaction})
        except MalformedEventData as e:
            raise BlockNotAvailable('block of {} is truncated: {}'
                                    .format(transaction.tx_id, e))

        if block.transaction(transaction.tx_id) is not transaction:
            raise BlockNotAvailable('transaction {} is not in block {}'
                                    .format(transaction.tx_id, block.number))
        return block

    def resolve_block_notification(self, raw_block,
                                   include_private_data=False):
        """Build the full record graph of a block feed notification.

        Non endorser envelopes are skipped, so are malformed ones.

        :param raw_block: decoded block
        :param include_private_data: attach the private_data_map entries
        :return: BlockRecord
        :raises MalformedEventData: when the block header or data is unusable
        """
        return self._build_block(raw_block, include_private_data)

    def _build_block(self, raw_block, include_private_data, known=None):
        number = _field(raw_block, 'header', 'number')
        if isinstance(number, bool) or not isinstance(number, int) \
                or number < 0:
            raise MalformedEventData('bad block number {!r}'.format(number))
        envelopes = _field(raw_block, 'data', 'data')
        if not isinstance(envelopes, (list, tuple)):
            raise MalformedEventData('block {} data is not a list'
                                     .format(number))
        tx_filter = _lookup(raw_block, 'metadata', 'metadata',
                            BLOCK_METADATA_TRANSACTIONS_FILTER)
        if not isinstance(tx_filter, (list, tuple, bytes)):
            tx_filter = []
        private_map = raw_block.get('private_data_map') \
            if include_private_data else None
        if not isinstance(private_map, dict):
            private_map = {}
        known = known or {}

        transactions = []
        for index, envelope in enumerate(envelopes):
            channel_header = _lookup(envelope, 'payload', 'header',
                                     'channel_header')
            if channel_header is None:
                _logger.warning('block %s: envelope %d has no channel header',
                                number, index)
                continue
            header_type = channel_header.get('type')
            if header_type != HEADER_TYPE_ENDORSER_TRANSACTION:
                _logger.debug('block %s: skip envelope %d of type %s',
                              number, index, header_type)
                continue

            tx_id = channel_header.get('tx_id')
            if isinstance(tx_id, str) and tx_id in known:
                transactions.append(known[tx_id])
                continue

            raw_event = {
                'transaction_envelope': envelope,
                'validation_code': tx_filter[index]
                if index < len(tx_filter) else None,
                'block': raw_block,
                'include_private_data': include_private_data,
            }
            private_data = private_map.get(index, private_map.get(str(index)))
            if private_data:
                raw_event['private_data'] = private_data

            try:
                transaction = self.resolve_transaction(raw_event)
            except MalformedEventData as e:
                _logger.warning('block %s: skip transaction %s: %s',
                                number, tx_id, e)
                continue
            transactions.append(transaction)

        block = BlockRecord(number, transactions)
        for transaction in transactions:
            transaction._set_block(block)
        return block

    @staticmethod
    def chaincode_events(block, chaincode_name, pattern=None):
        """ContractEvents of a resolved block emitted by one chaincode.

        :param block: BlockRecord
        :param chaincode_name: chaincode id to match
        :param pattern: optional regular expression on the event name
        :return: list of ContractEvent in block order
        """
        events = []
        for transaction in block.transactions:
            for event in transaction.events:
                if event.chaincode_name != chaincode_name:
                    continue
                if pattern is not None \
                        and not re.match(pattern, event.event_name):
                    continue
                events.append(event)
        return events
