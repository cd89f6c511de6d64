# SPDX-License-Identifier: Apache-2.0

import unittest

from fabric_events.driver import ACTIVE, NON_EXISTENT, AssetOperationDriver
from fabric_events.errors import AssetNotFound, ChaincodeExecutionError
from fabric_events.fabric_network.gateway import Gateway
from fabric_events.models.asset import AssetProperties, AssetRecord
from fabric_events.reconciler import ReconciliationResult
from test.unit.util import AsyncTestCase, in_memory_client, make_identity


class AssetOperationDriverTest(AsyncTestCase):

    def setUp(self):
        super(AssetOperationDriverTest, self).setUp()
        self.client = in_memory_client()
        self.gateway = Gateway()
        self.run_async(self.gateway.connect(self.client, {}, {
            'identity': make_identity(),
            'event_handler_options': {'commit_timeout': 2},
        }))
        network = self.run_async(self.gateway.get_network('mychannel'))
        self.driver = AssetOperationDriver(network.get_contract('events'))
        self.asset = AssetRecord('item-42', 'blue', 10, 'Sam', 100)

    def tearDown(self):
        self.gateway.disconnect()
        super(AssetOperationDriverTest, self).tearDown()

    def test_create_then_read(self):
        result = self.run_async(self.driver.create(self.asset))
        self.assertTrue(result.committed)
        self.assertEqual(self.driver.state('item-42'), ACTIVE)

        asset = self.run_async(self.driver.read_asset('item-42'))
        self.assertEqual(asset, self.asset)

    def test_update_changes_one_field(self):
        self.run_async(self.driver.create(self.asset))
        updated = self.asset.replace(appraised_value=200)
        self.run_async(self.driver.update(updated))

        asset = self.run_async(self.driver.read_asset('item-42'))
        self.assertEqual(asset.appraised_value, 200)
        self.assertEqual((asset.color, asset.size, asset.owner),
                         ('blue', 10, 'Sam'))

    def test_transfer(self):
        self.run_async(self.driver.create(self.asset))
        self.run_async(self.driver.transfer('item-42', 'Mary'))
        result = self.run_async(self.driver.verify_asset(
            'item-42', self.asset.replace(owner='Mary')))
        self.assertTrue(result.ok)

    def test_delete_then_read(self):
        self.run_async(self.driver.create(self.asset))
        self.run_async(self.driver.delete('item-42'))
        self.assertEqual(self.driver.state('item-42'), NON_EXISTENT)

        with self.assertRaises(AssetNotFound):
            self.run_async(self.driver.read_asset('item-42'))

    def test_local_transitions(self):
        self.run_async(self.driver.create(self.asset))
        with self.assertRaises(ChaincodeExecutionError):
            self.run_async(self.driver.create(self.asset))

        self.run_async(self.driver.delete('item-42'))
        height = self.client.ledger.height
        for operation in (self.driver.transfer('item-42', 'Mary'),
                          self.driver.update(self.asset),
                          self.driver.delete('item-42'),
                          self.driver.read_asset('item-42')):
            with self.assertRaises(AssetNotFound) as context:
                self.run_async(operation)
            self.assertEqual(context.exception.asset_id, 'item-42')
        # rejected before reaching the ledger
        self.assertEqual(self.client.ledger.height, height)

        # a deleted key can be created again
        self.run_async(self.driver.create(self.asset))
        self.assertEqual(self.driver.state('item-42'), ACTIVE)

    def test_unknown_key_left_to_ledger(self):
        with self.assertRaises(ChaincodeExecutionError):
            self.run_async(self.driver.transfer('item-404', 'Mary'))
        self.assertIsNone(self.driver.state('item-404'))

    def test_private_submission_requires_endorsing_orgs(self):
        properties = AssetProperties('item-42', '90')
        with self.assertRaises(ValueError):
            self.run_async(self.driver.create(
                self.asset, transient_payload=properties))
        with self.assertRaises(ValueError):
            self.run_async(self.driver.create(
                self.asset, transient_payload=properties,
                endorsing_orgs=['Org1MSP', 'Org2MSP']))

    def test_private_submission(self):
        properties = AssetProperties('item-42', '90')
        self.run_async(self.driver.create(
            self.asset, transient_payload=properties,
            endorsing_orgs=['Org1MSP']))

        result = self.run_async(self.driver.verify_asset(
            'item-42', self.asset, '90'))
        self.assertTrue(result.ok)
        result = self.run_async(self.driver.verify_asset(
            'item-42', self.asset, '180'))
        self.assertEqual(result.fields(), ['Price'])

    def test_not_a_submit_operation(self):
        with self.assertRaises(ValueError):
            self.run_async(self.driver.submit('ReadAsset', ['item-42']))

    def test_run_stage(self):
        result = self.run_async(self.driver.run_stage(
            'create', self.driver.create(self.asset)))
        self.assertTrue(result.ok)

        result = self.run_async(self.driver.run_stage(
            'create again', self.driver.create(self.asset)))
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, ChaincodeExecutionError)

        result = self.run_async(self.driver.run_stage(
            'read missing', self.driver.read_asset('item-404'),
            expect_failure=AssetNotFound))
        self.assertTrue(result.ok)
        self.assertTrue(result.expected_failure)

        result = self.run_async(self.driver.run_stage(
            'read present', self.driver.read_asset('item-42'),
            expect_failure=AssetNotFound))
        self.assertFalse(result.ok)

        result = self.run_async(self.driver.run_stage(
            'verify', self.driver.verify_asset(
                'item-42', self.asset.replace(owner='Mary'))))
        self.assertFalse(result.ok)
        self.assertIsInstance(result.value, ReconciliationResult)

        self.assertEqual([r.ok for r in self.driver.results],
                         [True, False, True, False, False])


if __name__ == '__main__':
    unittest.main()
