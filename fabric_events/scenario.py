# SPDX-License-Identifier: Apache-2.0

"""The events sample: asset lifecycle observed through chaincode events,
then through block events carrying private data."""

import logging
import random

from fabric_events.config.default import load_config
from fabric_events.driver import AssetOperationDriver, OperationResult
from fabric_events.errors import AssetNotFound, EventSetupError
from fabric_events.fabric_network.gateway import Gateway
from fabric_events.models.asset import AssetProperties, AssetRecord

_logger = logging.getLogger(__name__)


def random_asset_key():
    # a random key so that the sample can run several times
    return 'item-{}'.format(random.randint(1, 1000))


def describe_transaction(transaction):
    """Plain data view of a TransactionRecord."""
    return {
        'tx_id': transaction.tx_id,
        'status': transaction.status,
        'block_number': transaction.block_number,
        'submitted_by': str(transaction.creator),
        'endorsed_by': [str(e) for e in transaction.endorsements],
        'chaincode': transaction.chaincode_name,
        'function': transaction.function,
        'args': list(transaction.args),
    }


class ScenarioReport(object):

    def __init__(self):
        self.results = []
        self.contract_events = []
        self.block_events = []
        self.private_data = {}

    @property
    def ok(self):
        return all(result.ok for result in self.results)

    def failures(self):
        return [result for result in self.results if not result.ok]

    def on_contract_event(self, event):
        record = describe_transaction(event.transaction)
        record['event_name'] = event.event_name
        record['asset'] = event.json()
        _logger.info('<-- Contract Event Received: %s - %s',
                     event.event_name, record['asset'])
        self.contract_events.append(record)

    def on_block_event(self, event):
        if event.is_tip:
            _logger.info('<-- Block Event Received - block number: %d '
                         '(current top block of the ledger)', event.number)
        else:
            _logger.info('<-- Block Event Received - block number: %d',
                         event.number)
        self.block_events.append({
            'block_number': event.number,
            'is_tip': event.is_tip,
            'transactions': [describe_transaction(t)
                             for t in event.transactions],
        })
        for transaction in event.transactions:
            if transaction.private_data:
                self.private_data[transaction.tx_id] = transaction.private_data

    def private_data_for(self, tx_id):
        return self.private_data.get(tx_id)


async def _lifecycle(driver, report, key, prices=None, endorsing_orgs=None):
    """create -> read -> update -> read -> transfer -> read -> delete ->
    read, each step recorded."""

    def private(price):
        if prices is None:
            return {}
        return {'transient_payload': AssetProperties(key, price),
                'endorsing_orgs': endorsing_orgs}

    def private_data(result):
        if prices is None or not result.ok or result.value is None:
            return None
        return report.private_data_for(result.value.tx_id)

    price = (lambda i: prices[i]) if prices else (lambda i: None)
    asset = AssetRecord(key, 'blue', 10, 'Sam', 100)

    result = await driver.run_stage(
        'CreateAsset {}'.format(key), driver.create(asset, **private(price(0))))
    await driver.run_stage(
        'ReadAsset {} owned by Sam'.format(key),
        driver.verify_asset(key, asset, price(0), private_data(result)))

    asset = asset.replace(appraised_value=200)
    result = await driver.run_stage(
        'UpdateAsset {} appraised value 200'.format(key),
        driver.update(asset, **private(price(1))))
    await driver.run_stage(
        'ReadAsset {} appraised value 200'.format(key),
        driver.verify_asset(key, asset, price(1), private_data(result)))

    asset = asset.replace(owner='Mary')
    result = await driver.run_stage(
        'TransferAsset {} to Mary'.format(key),
        driver.transfer(key, 'Mary', **private(price(2))))
    await driver.run_stage(
        'ReadAsset {} owned by Mary'.format(key),
        driver.verify_asset(key, asset, price(2), private_data(result)))

    await driver.run_stage('DeleteAsset {}'.format(key), driver.delete(key))
    await driver.run_stage('ReadAsset {} deleted'.format(key),
                           driver.read_asset(key),
                           expect_failure=AssetNotFound)


async def run_events_sample(client, net_profile, identity, config=None,
                            asset_key=None, private_asset_key=None):
    """Run both parts of the sample.

    :param client: LedgerClient
    :param net_profile: connection profile for the client
    :param identity: identity context of the user
    :param config: settings, load_config() by default
    :return: ScenarioReport
    :raises SetupError: when a gateway cannot connect
    """
    config = config or load_config()
    report = ScenarioReport()
    timeout = {'commit_timeout': config['COMMIT_TIMEOUT']}

    gateway1 = Gateway()
    await gateway1.connect(client, net_profile, {
        'identity': identity,
        'use_commit_events': True,
        'event_handler_options': timeout,
    })
    gateway2 = Gateway()
    await gateway2.connect(client, net_profile, {
        'identity': identity,
        'use_commit_events': False,
        'event_handler_options': timeout,
    })

    try:
        # chaincode events
        network1 = await gateway1.get_network(config['CHANNEL_NAME'])
        contract1 = network1.get_contract(config['CHAINCODE_NAME'])
        driver1 = AssetOperationDriver(contract1)
        listener = None
        try:
            listener = await contract1.add_contract_listener(
                report.on_contract_event)
        except EventSetupError as e:
            _logger.warning('<-- Failed: Setup contract events - %s', e)
            driver1.results.append(_setup_failure('contract listener', e))

        await _lifecycle(driver1, report, asset_key or random_asset_key())
        if listener is not None:
            contract1.remove_contract_listener(listener)
        report.results.extend(driver1.results)

        # block events with private data
        network2 = await gateway2.get_network(config['CHANNEL_NAME'])
        contract2 = network2.get_contract(config['CHAINCODE_NAME'])
        # no commit events on this gateway: confirm each commit explicitly
        driver2 = AssetOperationDriver(contract2, confirm_commits=True)
        listener = None
        try:
            listener = await network2.add_block_listener(
                report.on_block_event, include_private_data=True)
        except EventSetupError as e:
            _logger.warning('<-- Failed: Setup block events - %s', e)
            driver2.results.append(_setup_failure('block listener', e))

        own_org = gateway2.get_current_identity().mspid
        await _lifecycle(driver2, report,
                         private_asset_key or random_asset_key(),
                         prices=('90', '90', '180'),
                         endorsing_orgs=[own_org])
        if listener is not None:
            network2.remove_block_listener(listener)
        report.results.extend(driver2.results)
    finally:
        gateway1.disconnect()
        gateway2.disconnect()

    return report


def _setup_failure(stage, error):
    return OperationResult(stage, False, None, error, False)
