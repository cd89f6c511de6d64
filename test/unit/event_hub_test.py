# SPDX-License-Identifier: Apache-2.0

import asyncio
import unittest

import grpc

from fabric_events.errors import EventSetupError, FeedDisconnected
from fabric_events.event.manager import EventSubscriptionManager
from fabric_events.fabric_network.inmemoryledger import InMemoryRpcError
from test.unit.util import AsyncTestCase, QueueConnection, make_block, \
    make_envelope, wait_until


class EventSubscriptionManagerTest(AsyncTestCase):

    def setUp(self):
        super(EventSubscriptionManagerTest, self).setUp()
        self.connection = QueueConnection()
        self.manager = EventSubscriptionManager(self.connection)

    def tearDown(self):
        self.manager.close()
        super(EventSubscriptionManagerTest, self).tearDown()

    def test_first_block_is_tip(self):
        events = []

        async def scenario():
            await self.manager.subscribe_block_events(events.append)
            feed = self.connection.feeds[0]
            feed.put(make_block(7))
            feed.put(make_block(8, [make_envelope('tx1')]))
            feed.put(make_block(9))
            await wait_until(lambda: len(events) == 3)

        self.run_async(scenario())
        self.assertEqual([(e.number, e.is_tip) for e in events],
                         [(7, True), (8, False), (9, False)])
        self.assertEqual(events[1].transactions[0].tx_id, 'tx1')

    def test_late_listener_gets_tip(self):
        first, late = [], []

        async def scenario():
            await self.manager.subscribe_block_events(first.append)
            feed = self.connection.feeds[0]
            feed.put(make_block(7))
            feed.put(make_block(8))
            await wait_until(lambda: len(first) == 2)

            await self.manager.subscribe_block_events(late.append)
            feed.put(make_block(9))
            await wait_until(lambda: len(late) == 2 and len(first) == 3)

        self.run_async(scenario())
        # the feed is shared
        self.assertEqual(len(self.connection.feeds), 1)
        self.assertEqual([(e.number, e.is_tip) for e in late],
                         [(8, True), (9, False)])
        self.assertEqual([e.is_tip for e in first], [True, False, False])

    def test_contract_listener_skips_tip_block(self):
        events = []

        async def scenario():
            await self.manager.subscribe_contract_events('events',
                                                         events.append)
            feed = self.connection.feeds[0]
            feed.put(make_block(3, [make_envelope(
                'old', event_name='CreateAsset', event_payload=b'{}')]))
            feed.put(make_block(4, [make_envelope(
                'new', event_name='UpdateAsset', event_payload=b'{}')]))
            await wait_until(lambda: len(events) == 1)
            await asyncio.sleep(0.01)

        self.run_async(scenario())
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].transaction.tx_id, 'new')
        self.assertEqual(events[0].block.number, 4)

    def test_contract_listener_event_name(self):
        events = []

        async def scenario():
            await self.manager.subscribe_contract_events(
                'events', events.append, event_name='Transfer')
            feed = self.connection.feeds[0]
            feed.put(make_block(3))
            feed.put(make_block(4, [
                make_envelope('tx1', event_name='CreateAsset'),
                make_envelope('tx2', event_name='TransferAsset'),
            ]))
            await wait_until(lambda: len(events) == 1)

        self.run_async(scenario())
        self.assertEqual(events[0].event_name, 'TransferAsset')

    def test_coroutine_callbacks(self):
        events = []

        async def on_block(event):
            await asyncio.sleep(0)
            events.append(event.number)

        async def scenario():
            await self.manager.subscribe_block_events(on_block)
            self.connection.feeds[0].put(make_block(1))
            await wait_until(lambda: events == [1])

        self.run_async(scenario())

    def test_slow_listener_does_not_block_others(self):
        fast, slow = [], []
        gate = asyncio.Event()

        async def slow_callback(event):
            await gate.wait()
            slow.append(event.number)

        async def scenario():
            await self.manager.subscribe_block_events(slow_callback)
            await self.manager.subscribe_block_events(fast.append)
            feed = self.connection.feeds[0]
            for number in range(1, 4):
                feed.put(make_block(number))
            await wait_until(lambda: len(fast) == 3)
            self.assertEqual(slow, [])
            gate.set()
            await wait_until(lambda: len(slow) == 3)

        self.run_async(scenario())
        self.assertEqual(slow, [1, 2, 3])

    def test_failing_callback_keeps_registration(self):
        seen = []

        def callback(event):
            seen.append(event.number)
            if event.is_tip:
                raise RuntimeError('boom')

        async def scenario():
            registration = await self.manager.subscribe_block_events(
                callback)
            feed = self.connection.feeds[0]
            feed.put(make_block(1))
            feed.put(make_block(2))
            await wait_until(lambda: len(seen) == 2)
            return registration

        registration = self.run_async(scenario())
        self.assertTrue(registration.active)

    def test_unsubscribe_inside_callback(self):
        seen = []
        registrations = []

        def callback(event):
            seen.append(event.number)
            self.manager.unsubscribe(registrations[0])

        async def scenario():
            registrations.append(
                await self.manager.subscribe_block_events(callback))
            feed = self.connection.feeds[0]
            for number in range(1, 4):
                feed.put(make_block(number))
            await registrations[0].wait_closed()
            await asyncio.sleep(0.01)

        self.run_async(scenario())
        self.assertEqual(seen, [1])
        self.assertFalse(registrations[0].active)
        # last listener gone: the feed is closed
        self.assertTrue(self.connection.feeds[0].closed)

    def test_unsubscribe_is_idempotent(self):
        async def scenario():
            registration = await self.manager.subscribe_block_events(
                lambda event: None)
            self.manager.unsubscribe(registration)
            self.manager.unsubscribe(registration)
            self.manager.unsubscribe(None)
            await registration.wait_closed()
            return registration

        registration = self.run_async(scenario())
        self.assertFalse(registration.active)
        self.assertIsNone(registration.error)

    def test_feed_disconnected(self):
        blocks, contract_errors, block_errors = [], [], []
        error = InMemoryRpcError(grpc.StatusCode.UNAVAILABLE, 'peer down')

        async def scenario():
            block_reg = await self.manager.subscribe_block_events(
                blocks.append, on_error=block_errors.append)
            other_reg = await self.manager.subscribe_block_events(
                lambda event: None, on_error=block_errors.append)
            contract_reg = await self.manager.subscribe_contract_events(
                'events', lambda event: None,
                on_error=contract_errors.append)
            block_feed, contract_feed = self.connection.feeds
            block_feed.put(make_block(1))
            block_feed.put(make_block(2))
            block_feed.fail(error)
            contract_feed.end()
            for registration in (block_reg, other_reg, contract_reg):
                await registration.wait_closed()
            return block_reg, contract_reg

        block_reg, contract_reg = self.run_async(scenario())
        # queued blocks are delivered before the error
        self.assertEqual([b.number for b in blocks], [1, 2])
        self.assertEqual(len(block_errors), 2)
        self.assertIsInstance(block_errors[0], FeedDisconnected)
        self.assertIs(block_errors[0].cause, error)
        self.assertIs(block_reg.error, block_errors[0])
        self.assertFalse(block_reg.active)

        self.assertEqual(len(contract_errors), 1)
        self.assertIsNone(contract_errors[0].cause)
        self.assertFalse(contract_reg.active)
        # no automatic resubscription
        self.assertEqual(len(self.connection.feeds), 2)

    def test_malformed_data_keeps_feed(self):
        blocks, errors = [], []
        bad = make_envelope('bad')
        bad['payload']['data']['actions'][0]['header'] = None
        bad['payload']['header']['signature_header'] = None
        broken_block = make_block(3)
        broken_block['header'] = None

        async def scenario():
            registration = await self.manager.subscribe_block_events(
                blocks.append, on_error=errors.append)
            feed = self.connection.feeds[0]
            feed.put(make_block(1))
            feed.put(make_block(2, [bad, make_envelope('good')]))
            feed.put(broken_block)
            feed.put(make_block(4))
            await wait_until(lambda: len(blocks) == 3)
            await asyncio.sleep(0.01)
            return registration

        registration = self.run_async(scenario())
        self.assertEqual([b.number for b in blocks], [1, 2, 4])
        self.assertEqual([t.tx_id for t in blocks[1].transactions],
                         ['good'])
        self.assertEqual(errors, [])
        self.assertTrue(registration.active)
        self.assertFalse(self.connection.feeds[0].closed)

    def test_new_feed_after_disconnect(self):
        async def scenario():
            registration = await self.manager.subscribe_block_events(
                lambda event: None)
            self.connection.feeds[0].end()
            await registration.wait_closed()
            await self.manager.subscribe_block_events(lambda event: None)

        self.run_async(scenario())
        self.assertEqual(len(self.connection.feeds), 2)

    def test_setup_error(self):
        self.connection.fail_with = InMemoryRpcError(
            grpc.StatusCode.PERMISSION_DENIED, 'no access')

        with self.assertRaises(EventSetupError):
            self.run_async(self.manager.subscribe_block_events(
                lambda event: None, include_private_data=True))
        with self.assertRaises(EventSetupError):
            self.run_async(self.manager.subscribe_contract_events(
                'events', lambda event: None))

    def test_chaincode_name_required(self):
        with self.assertRaises(EventSetupError):
            self.run_async(self.manager.subscribe_contract_events(
                '', lambda event: None))


if __name__ == '__main__':
    unittest.main()
