# SPDX-License-Identifier: Apache-2.0

import logging
from collections import namedtuple

from fabric_events.errors import AssetNotFound, ChaincodeExecutionError, \
    FabricEventsError, SetupError
from fabric_events.models.asset import AssetProperties, AssetRecord
from fabric_events.reconciler import PrivateDataReconciler, \
    ReconciliationResult
from fabric_events.util.consts import CC_CREATE_ASSET, CC_DELETE_ASSET, \
    CC_READ_ASSET, CC_TRANSFER_ASSET, CC_UPDATE_ASSET

_logger = logging.getLogger(__name__)

NON_EXISTENT = 'NonExistent'
ACTIVE = 'Active'

SUBMIT_OPERATIONS = (CC_CREATE_ASSET, CC_UPDATE_ASSET, CC_TRANSFER_ASSET,
                     CC_DELETE_ASSET)

OperationResult = namedtuple('OperationResult', ['stage', 'ok', 'value',
                                                 'error', 'expected_failure'])


class AssetOperationDriver(object):
    """Runs the asset lifecycle against one contract.

    The driver keeps the lifecycle state of every key it has seen:
    NonExistent -> create -> Active -> (update | transfer)* -> delete ->
    NonExistent. Keys it has not seen are left to the ledger to judge.
    """

    def __init__(self, contract, collection_orgs=None, confirm_commits=None,
                 reconciler=None):
        """
        :param contract: Contract to drive
        :param collection_orgs: organizations entitled to the private
            collection; the caller's own organization by default
        :param confirm_commits: wait for the commit of each submission;
            None follows the gateway option
        """
        self._contract = contract
        if collection_orgs is None:
            identity = contract.gateway.get_current_identity()
            collection_orgs = [identity.mspid]
        self._collection_orgs = set(collection_orgs)
        self._confirm_commits = confirm_commits
        self._reconciler = reconciler or PrivateDataReconciler()
        self._states = {}
        self.results = []

    def state(self, key):
        return self._states.get(key)

    def _check_transition(self, operation, key):
        state = self._states.get(key)
        if operation == CC_CREATE_ASSET and state == ACTIVE:
            raise ChaincodeExecutionError(
                'the asset {} already exists'.format(key))
        if operation != CC_CREATE_ASSET and state == NON_EXISTENT:
            raise AssetNotFound(key)

    def _check_private(self, transient_payload, endorsing_orgs):
        if transient_payload is None:
            return
        if not endorsing_orgs:
            raise ValueError('private data must only be endorsed by the '
                             'organizations of its collection: set '
                             'endorsing_orgs')
        outsiders = set(endorsing_orgs) - self._collection_orgs
        if outsiders:
            raise ValueError('{} may not receive the private data'
                             .format(', '.join(sorted(outsiders))))

    async def submit(self, operation, args, transient_payload=None,
                     endorsing_orgs=None, wait_for_commit=None):
        """Submit one lifecycle operation.

        :param operation: one of SUBMIT_OPERATIONS
        :param args: chaincode arguments, asset key first
        :param transient_payload: AssetProperties or a transient map
        :param endorsing_orgs: organizations allowed to endorse
        :param wait_for_commit: overrides the driver setting
        :return: CommitResult
        :raises ValueError: unknown operation or unsafe private submission
        :raises AssetNotFound: the key is known to be deleted
        :raises EndorsementPolicyFailure, SubmitTimeout,
            ChaincodeExecutionError:
        """
        if operation not in SUBMIT_OPERATIONS:
            raise ValueError('{} is not a submit operation'.format(operation))
        if not args:
            raise ValueError('the asset key is required')
        key = args[0]
        self._check_private(transient_payload, endorsing_orgs)
        self._check_transition(operation, key)

        transaction = self._contract.create_transaction(operation)
        if transient_payload is not None:
            if isinstance(transient_payload, AssetProperties):
                transient_payload = transient_payload.to_transient()
            transaction.set_transient(transient_payload)
        if endorsing_orgs:
            transaction.set_endorsing_organizations(*endorsing_orgs)

        if wait_for_commit is None:
            wait_for_commit = self._confirm_commits
        result = await transaction.submit(*args,
                                          wait_for_commit=wait_for_commit)

        self._states[key] = NON_EXISTENT \
            if operation == CC_DELETE_ASSET else ACTIVE
        _logger.info('%s %s: tx %s committed=%s block=%s', operation, key,
                     result.tx_id, result.committed, result.block_number)
        return result

    async def create(self, asset, **kwargs):
        return await self.submit(CC_CREATE_ASSET, asset.args(), **kwargs)

    async def update(self, asset, **kwargs):
        return await self.submit(CC_UPDATE_ASSET, asset.args(), **kwargs)

    async def transfer(self, key, new_owner, **kwargs):
        return await self.submit(CC_TRANSFER_ASSET, [key, new_owner],
                                 **kwargs)

    async def delete(self, key, **kwargs):
        return await self.submit(CC_DELETE_ASSET, [key], **kwargs)

    async def evaluate(self, operation, args):
        """Evaluate-only call, never ordered.

        :return: response payload bytes
        """
        return await self._contract.evaluate_transaction(operation, *args)

    async def read_asset(self, key):
        """
        :return: AssetRecord
        :raises AssetNotFound: the key does not exist on the ledger, or
            is known to be deleted
        """
        self._check_transition(CC_READ_ASSET, key)
        try:
            raw = await self.evaluate(CC_READ_ASSET, [key])
        except AssetNotFound:
            self._states[key] = NON_EXISTENT
            raise
        if not raw:
            self._states[key] = NON_EXISTENT
            raise AssetNotFound(key)
        self._states[key] = ACTIVE
        return AssetRecord.from_json(raw)

    async def verify_asset(self, key, expected, expected_price=None,
                           private_data=None):
        """Read an asset and reconcile it with the expected values.

        :return: ReconciliationResult
        """
        asset = await self.read_asset(key)
        return self._reconciler.reconcile(asset, private_data, expected,
                                          expected_price)

    async def run_stage(self, stage, coro, expect_failure=None):
        """Run one step and record its outcome.

        Failures are recorded, never raised, except setup failures.

        :param stage: label of the step
        :param coro: awaitable doing the step
        :param expect_failure: exception class whose occurrence is the
            success of the step (e.g. AssetNotFound after a delete)
        :return: OperationResult
        """
        try:
            value = await coro
        except SetupError:
            raise
        except FabricEventsError as e:
            expected = expect_failure is not None \
                and isinstance(e, expect_failure)
            result = OperationResult(stage, expected, None, e, expected)
        else:
            if expect_failure is not None:
                result = OperationResult(
                    stage, False, value,
                    '{} should have failed with {}'.format(
                        stage, expect_failure.__name__), False)
            elif isinstance(value, ReconciliationResult) and not value.ok:
                result = OperationResult(stage, False, value,
                                         value.mismatches, False)
            else:
                result = OperationResult(stage, True, value, None, False)

        if result.ok:
            _logger.info('<-- %s: success', stage)
        else:
            _logger.warning('<-- %s: failed - %s', stage, result.error)
            hint = getattr(result.error, 'hint', None)
            if hint:
                _logger.warning('%s', hint)
        self.results.append(result)
        return result
