# SPDX-License-Identifier: Apache-2.0

import asyncio
import datetime
import unittest

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from fabric_events.fabric_network.inmemoryledger import InMemoryLedger, \
    InMemoryLedgerClient
from fabric_events.models.ledger import Identity
from fabric_events.util.consts import HEADER_TYPE_CONFIG, \
    HEADER_TYPE_ENDORSER_TRANSACTION

_END = object()


def make_certificate(common_name, organization='org1.example.com'):
    """A self-signed PEM certificate, as found in serialized identities."""
    key = ec.generate_private_key(ec.SECP256R1(), default_backend())
    name = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    now = datetime.datetime.utcnow()
    cert = x509.CertificateBuilder() \
        .subject_name(name) \
        .issuer_name(name) \
        .public_key(key.public_key()) \
        .serial_number(x509.random_serial_number()) \
        .not_valid_before(now - datetime.timedelta(days=1)) \
        .not_valid_after(now + datetime.timedelta(days=1)) \
        .sign(key, hashes.SHA256(), default_backend())
    return cert.public_bytes(serialization.Encoding.PEM)


def make_identity(mspid='Org1MSP', common_name='appUser1'):
    return Identity(mspid, make_certificate(common_name))


def make_envelope(tx_id, function='CreateAsset', args=('item-1',),
                  creator=None, endorsers=('Org1MSP', 'Org2MSP'),
                  chaincode_name='events', event_name=None,
                  event_payload=b''):
    """Decoded endorser transaction envelope."""
    creator = creator or {'mspid': 'Org1MSP', 'id_bytes': b'appUser1'}
    event = {'chaincode_id': '', 'tx_id': '', 'event_name': '',
             'payload': b''}
    if event_name:
        event = {'chaincode_id': chaincode_name, 'tx_id': tx_id,
                 'event_name': event_name, 'payload': event_payload}
    return {
        'signature': b'',
        'payload': {
            'header': {
                'channel_header': {
                    'type': HEADER_TYPE_ENDORSER_TRANSACTION,
                    'tx_id': tx_id,
                    'channel_id': 'mychannel',
                },
                'signature_header': {'creator': creator, 'nonce': b''},
            },
            'data': {'actions': [{
                'header': {'creator': creator, 'nonce': b''},
                'payload': {
                    'chaincode_proposal_payload': {'input': {
                        'chaincode_spec': {
                            'chaincode_id': {'name': chaincode_name},
                            'input': {'args': [function.encode()] + [
                                a.encode() for a in args]},
                        }}},
                    'action': {
                        'proposal_response_payload': {
                            'extension': {'events': event},
                        },
                        'endorsements': [
                            {'endorser': {'mspid': org,
                                          'id_bytes': b'peer0'}}
                            for org in endorsers],
                    },
                },
            }]},
        },
    }


def make_config_envelope():
    return {'payload': {
        'header': {'channel_header': {'type': HEADER_TYPE_CONFIG,
                                      'tx_id': ''}},
        'data': {'config': {}},
    }}


def make_block(number, envelopes=(), codes=None, private_data_map=None):
    """Decoded block carrying the envelopes."""
    envelopes = list(envelopes)
    if codes is None:
        codes = [0] * len(envelopes)
    block = {
        'header': {'number': number},
        'data': {'data': envelopes},
        'metadata': {'metadata': [[], [], list(codes), []]},
    }
    if private_data_map is not None:
        block['private_data_map'] = private_data_map
    return block


class QueueFeed(object):
    """An event feed the test pushes raw blocks into."""

    def __init__(self):
        self._queue = asyncio.Queue()
        self.closed = False

    def put(self, block):
        self._queue.put_nowait(block)

    def fail(self, error):
        self._queue.put_nowait(error)

    def end(self):
        self._queue.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self):
        self.closed = True


class QueueConnection(object):
    """Connection whose feeds are QueueFeeds kept by the test."""

    def __init__(self, fail_with=None):
        self.feeds = []
        self.fail_with = fail_with

    def _open(self):
        if self.fail_with is not None:
            raise self.fail_with
        feed = QueueFeed()
        self.feeds.append(feed)
        return feed

    def get_contract_events(self, chaincode_name):
        return self._open()

    def get_block_events(self, include_private_data=False):
        return self._open()


class AsyncTestCase(unittest.TestCase):
    """Runs coroutines on a fresh event loop per test."""

    def setUp(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

    def tearDown(self):
        # let cancelled workers and pumps finish
        self.loop.run_until_complete(asyncio.sleep(0.01))
        self.loop.close()
        asyncio.set_event_loop(None)

    def run_async(self, coro):
        return self.loop.run_until_complete(coro)


async def wait_until(predicate, timeout=2.0):
    """Poll predicate until it holds or the timeout expires."""
    deadline = asyncio.get_event_loop().time() + timeout
    while not predicate():
        if asyncio.get_event_loop().time() > deadline:
            raise AssertionError('condition not met after {}s'
                                 .format(timeout))
        await asyncio.sleep(0.005)


def in_memory_client(**kwargs):
    return InMemoryLedgerClient(InMemoryLedger(**kwargs))
