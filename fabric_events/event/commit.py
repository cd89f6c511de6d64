# SPDX-License-Identifier: Apache-2.0

import asyncio
import logging

from fabric_events.errors import EndorsementPolicyFailure, SubmitError, \
    SubmitTimeout
from fabric_events.util.consts import DEFAULT_COMMIT_TIMEOUT, \
    TX_ENDORSEMENT_POLICY_FAILURE

_logger = logging.getLogger(__name__)


class CommitWaiter(object):
    """Waits for the block that commits one transaction.

    start() must be awaited before the transaction is sent so the commit
    cannot be missed.
    """

    def __init__(self, manager, tx_id, timeout=DEFAULT_COMMIT_TIMEOUT):
        self._manager = manager
        self._tx_id = tx_id
        self._timeout = timeout
        self._future = None
        self._registration = None

    @property
    def tx_id(self):
        return self._tx_id

    async def start(self):
        self._future = asyncio.get_event_loop().create_future()
        self._registration = await self._manager.subscribe_block_events(
            self._on_block, on_error=self._on_error)
        return self

    def _on_block(self, event):
        transaction = event.block.transaction(self._tx_id)
        if transaction is not None and not self._future.done():
            _logger.debug('transaction %s committed in block %d with %s',
                          self._tx_id, event.block.number,
                          transaction.status)
            self._future.set_result(transaction)
            self._manager.unsubscribe(self._registration)

    def _on_error(self, error):
        if not self._future.done():
            self._future.set_exception(SubmitError(
                'lost the commit feed of {}: {}'.format(self._tx_id, error),
                tx_id=self._tx_id))

    async def wait(self):
        """Return the committed TransactionRecord.

        :raises SubmitTimeout: no commit before the deadline
        :raises EndorsementPolicyFailure: committed as invalid because of
            the endorsement policy
        :raises SubmitError: committed with any other invalid status, or
            the feed was lost
        """
        if self._future is None:
            raise SubmitError('commit waiter for {} was not started'
                              .format(self._tx_id), tx_id=self._tx_id)
        try:
            transaction = await asyncio.wait_for(self._future,
                                                 timeout=self._timeout)
        except asyncio.TimeoutError:
            raise SubmitTimeout('no commit event for {} after {}s'
                                .format(self._tx_id, self._timeout),
                                tx_id=self._tx_id)
        finally:
            self.cancel()

        if transaction.status == TX_ENDORSEMENT_POLICY_FAILURE:
            raise EndorsementPolicyFailure(
                'transaction {} failed the endorsement policy'
                .format(self._tx_id), tx_id=self._tx_id)
        if not transaction.is_valid:
            raise SubmitError('transaction {} committed with status {}'
                              .format(self._tx_id, transaction.status),
                              tx_id=self._tx_id)
        return transaction

    def cancel(self):
        self._manager.unsubscribe(self._registration)
