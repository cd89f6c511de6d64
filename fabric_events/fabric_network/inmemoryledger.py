# SPDX-License-Identifier: Apache-2.0

import asyncio
import binascii
import datetime
import json
import logging
from hashlib import sha256

import grpc

from fabric_events.fabric_network.client import Connection, LedgerClient
from fabric_events.models.ledger import Identity
from fabric_events.util.consts import BLOCK_METADATA_TRANSACTIONS_FILTER, \
    CC_CREATE_ASSET, CC_DELETE_ASSET, CC_READ_ASSET, CC_TRANSFER_ASSET, \
    CC_UPDATE_ASSET, HEADER_TYPE_CONFIG, HEADER_TYPE_ENDORSER_TRANSACTION, \
    IMPLICIT_COLLECTION_PREFIX, TRANSIENT_ASSET_PROPERTIES

_logger = logging.getLogger(__name__)

VALID = 0
ENDORSEMENT_POLICY_FAILURE = 10

_END = object()


class InMemoryRpcError(grpc.RpcError):
    """Error raised by the in-memory ledger, shaped like a gRPC call
    error."""

    def __init__(self, code, details):
        super(InMemoryRpcError, self).__init__(details)
        self._code = code
        self._details = details

    def code(self):
        return self._code

    def details(self):
        return self._details

    def __str__(self):
        return '<{}: {}>'.format(self._code.name, self._details)


def implicit_collection(mspid):
    return IMPLICIT_COLLECTION_PREFIX + mspid


def _timestamp():
    return datetime.datetime.now(datetime.timezone.utc) \
        .strftime('%Y-%m-%d %H:%M:%S')


def _peer_identity(mspid):
    name = 'peer0.{}.example.com'.format(mspid.replace('MSP', '').lower())
    return {'mspid': mspid, 'id_bytes': name.encode()}


class _Stub(object):
    """What the events chaincode sees of the ledger while it runs."""

    def __init__(self, ledger, creator, transient):
        self.ledger = ledger
        self.creator = creator
        self.transient = transient or {}
        self.writes = {}
        self.private_reads = {}
        self.private_writes = {}
        self.event = None

    @property
    def collection(self):
        return implicit_collection(self.creator.mspid)

    def get_state(self, key):
        if key in self.writes:
            return self.writes[key]
        return self.ledger.world_state.get(key)

    def put_state(self, key, value):
        self.writes[key] = value

    def del_state(self, key):
        self.writes[key] = None

    def get_private_data(self, key):
        value = self.ledger.private_state.get(self.collection, {}).get(key)
        self.private_reads[key] = value
        return value

    def put_private_data(self, key, value):
        self.private_writes[key] = value

    def del_private_data(self, key):
        self.private_writes[key] = None

    def set_event(self, name, payload):
        self.event = (name, payload)


class EventsChaincode(object):
    """The asset-transfer events chaincode.

    Every submit function emits an event named after itself whose payload
    is the public asset JSON. Transient `asset_properties` go to the
    caller's implicit private collection.
    """

    def invoke(self, stub, function, args):
        handler = {
            CC_CREATE_ASSET: self.create_asset,
            CC_READ_ASSET: self.read_asset,
            CC_UPDATE_ASSET: self.update_asset,
            CC_TRANSFER_ASSET: self.transfer_asset,
            CC_DELETE_ASSET: self.delete_asset,
        }.get(function)
        if handler is None:
            raise InMemoryRpcError(grpc.StatusCode.UNIMPLEMENTED,
                                   'function {} not found'.format(function))
        return handler(stub, *args)

    def _read(self, stub, asset_id):
        raw = stub.get_state(asset_id)
        if raw is None:
            raise InMemoryRpcError(grpc.StatusCode.NOT_FOUND,
                                   'the asset {} does not exist'
                                   .format(asset_id))
        return json.loads(raw)

    def _save_properties(self, stub, asset_id):
        raw = stub.transient.get(TRANSIENT_ASSET_PROPERTIES)
        if raw is None:
            return
        properties = json.loads(raw)
        if properties.get('asset_id') != asset_id:
            raise InMemoryRpcError(grpc.StatusCode.INVALID_ARGUMENT,
                                   'asset properties are for {}'
                                   .format(properties.get('asset_id')))
        stub.put_private_data(asset_id, json.dumps(properties).encode())

    def _save(self, stub, function, asset):
        payload = json.dumps(asset).encode()
        stub.put_state(asset['ID'], payload)
        stub.set_event(function, payload)
        return payload

    def create_asset(self, stub, asset_id, color, size, owner,
                     appraised_value):
        if stub.get_state(asset_id) is not None:
            raise InMemoryRpcError(grpc.StatusCode.ALREADY_EXISTS,
                                   'the asset {} already exists'
                                   .format(asset_id))
        asset = {'ID': asset_id, 'Color': color, 'Size': int(size),
                 'Owner': owner, 'AppraisedValue': int(appraised_value)}
        self._save_properties(stub, asset_id)
        return self._save(stub, CC_CREATE_ASSET, asset)

    def read_asset(self, stub, asset_id):
        asset = self._read(stub, asset_id)
        properties = stub.get_private_data(asset_id)
        if properties is not None:
            asset['asset_properties'] = json.loads(properties)
        return json.dumps(asset).encode()

    def update_asset(self, stub, asset_id, color, size, owner,
                     appraised_value):
        asset = self._read(stub, asset_id)
        asset.update({'Color': color, 'Size': int(size), 'Owner': owner,
                      'AppraisedValue': int(appraised_value)})
        if stub.transient:
            stub.get_private_data(asset_id)
            self._save_properties(stub, asset_id)
        return self._save(stub, CC_UPDATE_ASSET, asset)

    def transfer_asset(self, stub, asset_id, new_owner):
        asset = self._read(stub, asset_id)
        asset['Owner'] = new_owner
        if stub.transient:
            stub.get_private_data(asset_id)
            self._save_properties(stub, asset_id)
        return self._save(stub, CC_TRANSFER_ASSET, asset)

    def delete_asset(self, stub, asset_id):
        asset = self._read(stub, asset_id)
        if stub.get_private_data(asset_id) is not None:
            stub.del_private_data(asset_id)
        stub.del_state(asset_id)
        payload = json.dumps(asset).encode()
        stub.set_event(CC_DELETE_ASSET, payload)
        return payload


class InMemoryLedger(object):
    """A single-channel ledger kept in memory.

    Transactions are committed one per block on the event loop after the
    submission returns. Set `hold_commits` to keep them pending.
    """

    def __init__(self, channel_name='mychannel', chaincode_name='events',
                 orgs=('Org1MSP', 'Org2MSP'), commit_delay=0):
        self.channel_name = channel_name
        self.chaincode_name = chaincode_name
        self.orgs = tuple(orgs)
        self.commit_delay = commit_delay
        self.hold_commits = False
        self.private_event_orgs = set(orgs)
        self.chaincode = EventsChaincode()
        self.world_state = {}
        self.private_state = {}
        self.blocks = []
        self._feeds = []
        self._pending = []
        self._commit_tasks = set()
        self._append_block([self._config_envelope()], [VALID], {})

    @property
    def height(self):
        return len(self.blocks)

    def _config_envelope(self):
        return {
            'signature': b'',
            'payload': {
                'header': {
                    'channel_header': {
                        'type': HEADER_TYPE_CONFIG,
                        'version': 1,
                        'timestamp': _timestamp(),
                        'channel_id': self.channel_name,
                        'tx_id': '',
                        'epoch': 0,
                        'extension': b'',
                    },
                    'signature_header': {'creator': {}, 'nonce': b''},
                },
                'data': {'config': {}},
            },
        }

    def _append_block(self, envelopes, codes, private_data_map):
        previous = self.blocks[-1]['header']['data_hash'] \
            if self.blocks else b''
        number = len(self.blocks)
        data_hash = binascii.hexlify(sha256(
            '{}:{}'.format(number, previous).encode()).digest())
        block = {
            'header': {'number': number, 'previous_hash': previous,
                       'data_hash': data_hash},
            'data': {'data': envelopes},
            'metadata': {'metadata': [[], [], [], []]},
        }
        block['metadata']['metadata'][BLOCK_METADATA_TRANSACTIONS_FILTER] = \
            list(codes)
        self.blocks.append(block)
        for feed in list(self._feeds):
            feed.publish(block, private_data_map)
        return block

    def endorse(self, name, args, creator, options):
        """Run the chaincode and build the endorsed envelope.

        :return: (envelope, private rwset, validation code, response)
        """
        options = options or {}
        transient = options.get('transient') or {}
        endorsing_orgs = options.get('endorsing_orgs') or list(self.orgs)
        unknown = set(endorsing_orgs) - set(self.orgs)
        if unknown:
            raise InMemoryRpcError(grpc.StatusCode.INVALID_ARGUMENT,
                                   'unknown organizations {}'
                                   .format(sorted(unknown)))

        stub = _Stub(self, creator, transient)
        response = self.chaincode.invoke(stub, name, list(args))

        code = VALID
        # peers outside the implicit collection cannot endorse its writes
        if stub.transient and stub.private_writes \
                and any(org != creator.mspid for org in endorsing_orgs):
            code = ENDORSEMENT_POLICY_FAILURE

        creator_dict = {'mspid': creator.mspid, 'id_bytes': creator.id_bytes}
        nonce = options.get('nonce') or b''
        event = {'chaincode_id': '', 'tx_id': '', 'event_name': '',
                 'payload': b''}
        if stub.event is not None:
            event = {'chaincode_id': self.chaincode_name,
                     'tx_id': options.get('tx_id'),
                     'event_name': stub.event[0],
                     'payload': stub.event[1]}

        envelope = {
            'signature': b'',
            'payload': {
                'header': {
                    'channel_header': {
                        'type': HEADER_TYPE_ENDORSER_TRANSACTION,
                        'version': 1,
                        'timestamp': _timestamp(),
                        'channel_id': self.channel_name,
                        'tx_id': options.get('tx_id'),
                        'epoch': 0,
                        'extension': b'',
                    },
                    'signature_header': {'creator': creator_dict,
                                         'nonce': nonce},
                },
                'data': {'actions': [{
                    'header': {'creator': creator_dict, 'nonce': nonce},
                    'payload': {
                        'chaincode_proposal_payload': {'input': {
                            'chaincode_spec': {
                                'type': 'GOLANG',
                                'chaincode_id': {
                                    'name': self.chaincode_name},
                                'input': {'args': [name.encode()] + [
                                    str(a).encode() for a in args]},
                            }}},
                        'action': {
                            'proposal_response_payload': {
                                'proposal_hash': b'',
                                'extension': {
                                    'results': {'ns_rwset': [{
                                        'namespace': self.chaincode_name,
                                        'rwset': {'writes': [
                                            {'key': k,
                                             'is_delete': v is None,
                                             'value': v or b''}
                                            for k, v in stub.writes.items()
                                        ]}}]},
                                    'events': event,
                                    'response': {'status': 200,
                                                 'message': '',
                                                 'payload': response},
                                    'chaincode_id': {
                                        'name': self.chaincode_name},
                                },
                            },
                            'endorsements': [
                                {'endorser': _peer_identity(org),
                                 'signature': b''}
                                for org in endorsing_orgs],
                        },
                    },
                }]},
            },
        }
        return envelope, stub, code, response

    def evaluate(self, name, args, creator):
        stub = _Stub(self, creator, None)
        return self.chaincode.invoke(stub, name, list(args))

    def order(self, envelope, stub, code):
        """Queue the endorsed transaction for commit."""
        self._pending.append((envelope, stub, code))
        if not self.hold_commits:
            task = asyncio.ensure_future(self._commit_later())
            self._commit_tasks.add(task)
            task.add_done_callback(self._commit_done)

    async def _commit_later(self):
        if self.commit_delay:
            await asyncio.sleep(self.commit_delay)
        self.release_commits()

    def _commit_done(self, task):
        self._commit_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            _logger.error('commit failed: %s', error, exc_info=error)

    def release_commits(self):
        """Commit every pending transaction, one block each."""
        while self._pending:
            envelope, stub, code = self._pending.pop(0)
            self._commit(envelope, stub, code)

    def _commit(self, envelope, stub, code):
        private_map = {}
        if code == VALID:
            for key, value in stub.writes.items():
                if value is None:
                    self.world_state.pop(key, None)
                else:
                    self.world_state[key] = value
            collection = self.private_state.setdefault(stub.collection, {})
            for key, value in stub.private_writes.items():
                if value is None:
                    collection.pop(key, None)
                else:
                    collection[key] = value

        if stub.private_writes or stub.private_reads:
            private_map[0] = {
                'collection': stub.collection,
                'ns_pvt_rwset': [{
                    'namespace': self.chaincode_name,
                    'collection_pvt_rwset': [{
                        'collection_name': stub.collection,
                        'rwset': {
                            'reads': [{'key': k, 'value': v or b''}
                                      for k, v in stub.private_reads.items()],
                            'writes': [{'key': k, 'is_delete': v is None,
                                        'value': v or b''}
                                       for k, v in
                                       stub.private_writes.items()],
                        },
                    }],
                }],
            }
        block = self._append_block([envelope], [code], private_map)
        _logger.debug('committed %s in block %d',
                      envelope['payload']['header']['channel_header']
                      ['tx_id'], block['header']['number'])

    def open_feed(self, mspid, include_private_data):
        feed = _Feed(self, mspid, include_private_data)
        self._feeds.append(feed)
        # deliver from the current top of the ledger
        feed.publish(self.blocks[-1], {})
        return feed

    def close_feed(self, feed):
        if feed in self._feeds:
            self._feeds.remove(feed)

    def drop_feeds(self, error=None):
        """Break every open feed, with an error or a clean end."""
        for feed in list(self._feeds):
            feed.drop(error)
        self._feeds = []

    def close(self):
        """Cancel the scheduled commits and end every feed.

        Transactions whose commit was cancelled stay pending.
        """
        for task in list(self._commit_tasks):
            task.cancel()
        self._commit_tasks.clear()
        self.drop_feeds()


class _Feed(object):

    def __init__(self, ledger, mspid, include_private_data):
        self._ledger = ledger
        self._mspid = mspid
        self._include_private_data = include_private_data
        self._queue = asyncio.Queue()

    def publish(self, block, private_data_map):
        block = dict(block)
        if self._include_private_data:
            visible = {}
            for index, rwset in private_data_map.items():
                if rwset['collection'] == implicit_collection(self._mspid):
                    visible[index] = {'ns_pvt_rwset': rwset['ns_pvt_rwset']}
            block['private_data_map'] = visible
        self._queue.put_nowait(block)

    def drop(self, error=None):
        self._queue.put_nowait(error if error is not None else _END)

    async def stream(self):
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self._ledger.close_feed(self)


class InMemoryConnection(Connection):

    def __init__(self, ledger, identity):
        self._ledger = ledger
        self._identity = identity
        self._feeds = []
        self._closed = False

    @property
    def identity(self):
        return self._identity

    def _check(self):
        if self._closed:
            raise InMemoryRpcError(grpc.StatusCode.UNAVAILABLE,
                                   'connection is closed')

    def _open(self, include_private_data):
        self._check()
        if include_private_data \
                and self._identity.mspid not in self._ledger.private_event_orgs:
            raise InMemoryRpcError(grpc.StatusCode.PERMISSION_DENIED,
                                   '{} may not read private data events'
                                   .format(self._identity.mspid))
        feed = self._ledger.open_feed(self._identity.mspid,
                                      include_private_data)
        self._feeds.append(feed)
        return feed.stream()

    def get_contract_events(self, chaincode_name):
        if chaincode_name != self._ledger.chaincode_name:
            raise InMemoryRpcError(grpc.StatusCode.NOT_FOUND,
                                   'chaincode {} is not installed'
                                   .format(chaincode_name))
        return self._open(False)

    def get_block_events(self, include_private_data=False):
        return self._open(include_private_data)

    async def submit_transaction(self, name, args, options):
        self._check()
        envelope, stub, code, response = self._ledger.endorse(
            name, args, self._identity, options)
        self._ledger.order(envelope, stub, code)
        return response

    async def evaluate_transaction(self, name, args, options=None):
        self._check()
        return self._ledger.evaluate(name, args, self._identity)

    def close(self):
        self._closed = True
        for feed in self._feeds:
            feed.drop()
        self._feeds = []


class InMemoryLedgerClient(LedgerClient):
    """LedgerClient backed by an InMemoryLedger, for tests and demos."""

    def __init__(self, ledger=None):
        self.ledger = ledger or InMemoryLedger()

    async def connect(self, net_profile, identity):
        """
        :param net_profile: ignored
        :param identity: Identity or {'mspid', 'id_bytes'}
        """
        if isinstance(identity, dict):
            identity = Identity(identity.get('mspid'),
                                identity.get('id_bytes', b''))
        if not isinstance(identity, Identity) \
                or identity.mspid not in self.ledger.orgs:
            raise InMemoryRpcError(grpc.StatusCode.UNAUTHENTICATED,
                                   'identity {} is not enrolled'
                                   .format(identity))
        return InMemoryConnection(self.ledger, identity)

    def close(self):
        self.ledger.close()
