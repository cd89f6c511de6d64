# SPDX-License-Identifier: Apache-2.0

from fabric_events.fabric_network.gateway import Gateway
from fabric_events.fabric_network.network import Network
from fabric_events.fabric_network.contract import Contract
from fabric_events.fabric_network.transaction import CommitResult, \
    Transaction

__all__ = ['Gateway', 'Network', 'Contract', 'Transaction', 'CommitResult']
