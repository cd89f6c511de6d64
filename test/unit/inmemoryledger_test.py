# SPDX-License-Identifier: Apache-2.0

import asyncio
import unittest

from fabric_events.fabric_network.inmemoryledger import InMemoryLedger, \
    InMemoryLedgerClient
from fabric_events.models.asset import AssetRecord
from fabric_events.util.consts import CC_CREATE_ASSET
from test.unit.util import AsyncTestCase, make_identity, wait_until


class FailingLedger(InMemoryLedger):

    def release_commits(self):
        raise RuntimeError('disk full')


class InMemoryLedgerTest(AsyncTestCase):

    def setUp(self):
        super(InMemoryLedgerTest, self).setUp()
        self.asset = AssetRecord('item-42', 'blue', 10, 'Sam', 100)

    def submit(self, client):
        async def scenario():
            connection = await client.connect({}, make_identity())
            await connection.submit_transaction(
                CC_CREATE_ASSET, self.asset.args(), {})
        self.run_async(scenario())

    def test_commit(self):
        client = InMemoryLedgerClient()
        self.submit(client)
        self.run_async(wait_until(lambda: client.ledger.height == 2))
        self.assertEqual(client.ledger._commit_tasks, set())
        self.assertIn('item-42', client.ledger.world_state)

    def test_close_cancels_commits(self):
        client = InMemoryLedgerClient(InMemoryLedger(commit_delay=1))
        self.submit(client)
        self.assertEqual(len(client.ledger._commit_tasks), 1)

        client.ledger.close()
        self.run_async(asyncio.sleep(0.01))
        self.assertEqual(client.ledger._commit_tasks, set())
        self.assertEqual(len(client.ledger._pending), 1)
        self.assertEqual(client.ledger.height, 1)

    def test_failed_commit_is_logged(self):
        client = InMemoryLedgerClient(FailingLedger())
        with self.assertLogs('fabric_events.fabric_network.inmemoryledger',
                             'ERROR') as logs:
            self.submit(client)
            self.run_async(wait_until(
                lambda: not client.ledger._commit_tasks))
        self.assertIn('disk full', logs.output[0])
        self.assertEqual(client.ledger.height, 1)

    def test_client_close_ends_feeds(self):
        client = InMemoryLedgerClient()
        feed = client.ledger.open_feed('Org1MSP', False)
        blocks = []

        async def scenario():
            async for block in feed.stream():
                blocks.append(block['header']['number'])

        client.close()
        self.run_async(asyncio.wait_for(scenario(), 1))
        # the top block is delivered before the end
        self.assertEqual(blocks, [0])
        self.assertEqual(client.ledger._feeds, [])


if __name__ == '__main__':
    unittest.main()
