# SPDX-License-Identifier: Apache-2.0

import asyncio
import logging
import os
from collections import namedtuple
from hashlib import sha256

import grpc

from fabric_events.errors import AssetNotFound, ChaincodeExecutionError, \
    EndorsementPolicyFailure, EvaluateError, SubmitError, SubmitTimeout
from fabric_events.util.consts import NONCE_SIZE, \
    TX_ENDORSEMENT_POLICY_FAILURE

_logger = logging.getLogger(__name__)

CommitResult = namedtuple('CommitResult', ['tx_id', 'payload', 'status',
                                           'block_number', 'committed'])


def _status_code(error):
    code = getattr(error, 'code', None)
    if not callable(code):
        return None
    try:
        return code()
    except TypeError:
        return None


def translate_submit_error(error, tx_id=None):
    """Map a client error raised during submission to a SubmitError."""
    if isinstance(error, SubmitError):
        return error
    message = str(error)
    if TX_ENDORSEMENT_POLICY_FAILURE in message:
        return EndorsementPolicyFailure(message, tx_id=tx_id)
    if isinstance(error, asyncio.TimeoutError) \
            or _status_code(error) == grpc.StatusCode.DEADLINE_EXCEEDED:
        return SubmitTimeout(message or 'submit timed out', tx_id=tx_id)
    return ChaincodeExecutionError(message, tx_id=tx_id)


def translate_evaluate_error(error, args=()):
    """Map a client error raised during evaluation to an EvaluateError."""
    if isinstance(error, EvaluateError):
        return error
    message = str(error)
    if _status_code(error) == grpc.StatusCode.NOT_FOUND \
            or 'does not exist' in message:
        return AssetNotFound(args[0] if args else None, message)
    return EvaluateError(message)


class Transaction(object):
    """A single invocation of a chaincode function.

    The transaction id is computed up front from a random nonce and the
    creator identity, so a commit listener can be in place before the
    proposal leaves.
    """

    def __init__(self, contract, name):
        self._contract = contract
        self._name = name
        self._transient = None
        self._endorsing_orgs = None

        identity = contract.gateway.get_connection().identity
        self._nonce = os.urandom(NONCE_SIZE)
        creator = identity.mspid.encode() + identity.id_bytes
        self._tx_id = sha256(self._nonce + creator).hexdigest()

    def get_name(self):
        return self._name

    @property
    def tx_id(self):
        return self._tx_id

    @property
    def nonce(self):
        return self._nonce

    def set_transient(self, transient_map):
        """Attach data that is sent to the endorsers but not written to
        the public ledger.

        :param transient_map: dict of str to bytes
        :return: self
        """
        self._transient = dict(transient_map) if transient_map else None
        return self

    def set_endorsing_organizations(self, *mspids):
        """Restrict endorsement to the peers of these organizations.

        :return: self
        """
        self._endorsing_orgs = list(mspids) if mspids else None
        return self

    def _options(self):
        return {
            'chaincode_name': self._contract.cc_name,
            'tx_id': self._tx_id,
            'nonce': self._nonce,
            'transient': self._transient,
            'endorsing_orgs': self._endorsing_orgs,
        }

    async def submit(self, *args, wait_for_commit=None):
        """Endorse, order and optionally wait for the commit.

        :param args: str arguments of the function
        :param wait_for_commit: wait for the commit event; defaults to the
            gateway's use_commit_events option
        :return: CommitResult
        :raises EndorsementPolicyFailure, SubmitTimeout,
            ChaincodeExecutionError:
        """
        gateway = self._contract.gateway
        if wait_for_commit is None:
            wait_for_commit = gateway.use_commit_events
        args = [str(arg) for arg in args]

        waiter = None
        if wait_for_commit:
            waiter = await self._contract.network.new_commit_waiter(
                self._tx_id)

        _logger.debug('submit %s%s as %s', self._name, args, self._tx_id)
        try:
            payload = await gateway.get_connection().submit_transaction(
                self._name, args, self._options())
        except Exception as e:
            if waiter is not None:
                waiter.cancel()
            _logger.error('submit %s failed: %s', self._name, e)
            raise translate_submit_error(e, self._tx_id) from e

        if waiter is None:
            return CommitResult(self._tx_id, payload, None, None, False)

        transaction = await waiter.wait()
        return CommitResult(self._tx_id, payload, transaction.status,
                            transaction.block_number, True)

    async def evaluate(self, *args):
        """Query the world state.

        :return: response payload bytes
        :raises AssetNotFound: when the queried key does not exist
        :raises EvaluateError: on any other failure
        """
        args = [str(arg) for arg in args]
        try:
            return await self._contract.gateway.get_connection() \
                .evaluate_transaction(self._name, args, self._options())
        except Exception as e:
            _logger.debug('evaluate %s%s failed: %s', self._name, args, e)
            raise translate_evaluate_error(e, args) from e
