# SPDX-License-Identifier: Apache-2.0

# chaincode functions of the asset-transfer events contract
CC_CREATE_ASSET = "CreateAsset"
CC_READ_ASSET = "ReadAsset"
CC_UPDATE_ASSET = "UpdateAsset"
CC_TRANSFER_ASSET = "TransferAsset"
CC_DELETE_ASSET = "DeleteAsset"

TRANSIENT_ASSET_PROPERTIES = "asset_properties"
IMPLICIT_COLLECTION_PREFIX = "_implicit_org_"

# common.HeaderType
HEADER_TYPE_CONFIG = 1
HEADER_TYPE_ENDORSER_TRANSACTION = 3

# common.BlockMetadataIndex
BLOCK_METADATA_SIGNATURES = 0
BLOCK_METADATA_LAST_CONFIG = 1
BLOCK_METADATA_TRANSACTIONS_FILTER = 2

# peer.TxValidationCode
TX_VALIDATION_CODES = {
    0: 'VALID',
    1: 'NIL_ENVELOPE',
    2: 'BAD_PAYLOAD',
    3: 'BAD_COMMON_HEADER',
    4: 'BAD_CREATOR_SIGNATURE',
    5: 'INVALID_ENDORSER_TRANSACTION',
    6: 'INVALID_CONFIG_TRANSACTION',
    7: 'UNSUPPORTED_TX_PAYLOAD',
    8: 'BAD_PROPOSAL_TXID',
    9: 'DUPLICATE_TXID',
    10: 'ENDORSEMENT_POLICY_FAILURE',
    11: 'MVCC_READ_CONFLICT',
    12: 'PHANTOM_READ_CONFLICT',
    13: 'UNKNOWN_TX_TYPE',
    14: 'TARGET_CHAIN_NOT_FOUND',
    15: 'MARSHAL_TX_ERROR',
    16: 'NIL_TXACTION',
    17: 'EXPIRED_CHAINCODE',
    18: 'CHAINCODE_VERSION_CONFLICT',
    19: 'BAD_HEADER_EXTENSION',
    20: 'BAD_CHANNEL_HEADER',
    21: 'BAD_RESPONSE_PAYLOAD',
    22: 'BAD_RWSET',
    23: 'ILLEGAL_WRITESET',
    24: 'INVALID_WRITESET',
    25: 'INVALID_CHAINCODE',
    254: 'NOT_VALIDATED',
    255: 'INVALID_OTHER_REASON',
}
TX_VALID = 'VALID'
TX_ENDORSEMENT_POLICY_FAILURE = 'ENDORSEMENT_POLICY_FAILURE'

# feed kinds
FEED_CONTRACT = 'contract'
FEED_BLOCK = 'block'
FEED_PRIVATE_BLOCK = 'private'

DEFAULT_COMMIT_TIMEOUT = 30  # s
NONCE_SIZE = 24
