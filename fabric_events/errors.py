# SPDX-License-Identifier: Apache-2.0

ENDORSEMENT_POLICY_HINT = ('Be sure that chaincode was deployed with the '
                           'endorsement policy '
                           '"OR(\'Org1MSP.peer\',\'Org2MSP.peer\')"')


class FabricEventsError(Exception):
    """Base class of every error raised by this package."""


class SetupError(FabricEventsError):
    """Identity or connection bootstrap failed. Fatal for a run."""


class SubmitError(FabricEventsError):
    """A transaction could not be endorsed or committed."""

    def __init__(self, message, tx_id=None):
        super(SubmitError, self).__init__(message)
        self.tx_id = tx_id


class EndorsementPolicyFailure(SubmitError):
    """The endorsements collected do not satisfy the chaincode policy."""

    hint = ENDORSEMENT_POLICY_HINT


class SubmitTimeout(SubmitError):
    """No commit acknowledgment arrived before the deadline."""


class ChaincodeExecutionError(SubmitError):
    """The chaincode rejected the proposal."""


class EvaluateError(FabricEventsError):
    """A query against the ledger failed."""


class AssetNotFound(EvaluateError):
    """The queried asset key does not exist."""

    def __init__(self, asset_id, message=None):
        super(AssetNotFound, self).__init__(
            message or 'the asset {} does not exist'.format(asset_id))
        self.asset_id = asset_id


class EventSetupError(FabricEventsError):
    """A listener could not be registered."""


class FeedDisconnected(FabricEventsError):
    """The event feed behind a registration went away."""

    def __init__(self, feed, cause=None):
        super(FeedDisconnected, self).__init__(
            '{} feed disconnected: {}'.format(feed, cause or 'end of stream'))
        self.feed = feed
        self.cause = cause


class MalformedEventData(FabricEventsError):
    """A notification lacks required envelope fields."""


class BlockNotAvailable(FabricEventsError):
    """The block owning a transaction is not in the notification."""
