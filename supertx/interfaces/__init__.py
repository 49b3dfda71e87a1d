"""Interfaces to external collaborators.

Protocols only - implementations live in planning, execution and mongodb.
"""

from supertx.interfaces.balances import BalanceService
from supertx.interfaces.dispatch import (
    BridgeProvider,
    BridgeTransfer,
    ChainDispatcher,
    SettlementStatus,
    TransactionReceipt,
    TransactionStatus,
)
from supertx.interfaces.run_storage import RunStorageBackend
from supertx.interfaces.signing import SignatureVerifier

__all__ = [
    "BalanceService",
    "BridgeProvider",
    "BridgeTransfer",
    "ChainDispatcher",
    "RunStorageBackend",
    "SettlementStatus",
    "SignatureVerifier",
    "TransactionReceipt",
    "TransactionStatus",
]
