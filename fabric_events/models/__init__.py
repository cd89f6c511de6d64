# SPDX-License-Identifier: Apache-2.0

from fabric_events.models.asset import AssetProperties, AssetRecord
from fabric_events.models.ledger import BlockEvent, BlockRecord, \
    CollectionRwSet, ContractEvent, Identity, KVRead, KVWrite, \
    PrivateDataRecord, TransactionRecord

__all__ = ['AssetProperties', 'AssetRecord', 'BlockEvent', 'BlockRecord',
           'CollectionRwSet', 'ContractEvent', 'Identity', 'KVRead',
           'KVWrite', 'PrivateDataRecord', 'TransactionRecord']
