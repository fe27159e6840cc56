"""
Data models for the sync layer.
"""

from .burn import BPS_DENOMINATOR, BurnedNft, BurnLifecycle, BurnRecord, BurnSplit
from .common import AccountContext, CachedValue, CacheEntry, ReadModel, ReadRequest, ReadResult
from .graveyard import GateSnapshot, GateState, GraveyardWindow
from .nft import NFTState
from .transaction import (
    ActionStep,
    ApprovalStep,
    NftApprovalStep,
    PendingTransaction,
    TransactionKind,
    TxStatus,
)

__all__ = [
    "AccountContext",
    "ActionStep",
    "ApprovalStep",
    "BPS_DENOMINATOR",
    "BurnedNft",
    "BurnLifecycle",
    "BurnRecord",
    "BurnSplit",
    "CachedValue",
    "CacheEntry",
    "GateSnapshot",
    "GateState",
    "GraveyardWindow",
    "NftApprovalStep",
    "NFTState",
    "PendingTransaction",
    "ReadModel",
    "ReadRequest",
    "ReadResult",
    "TransactionKind",
    "TxStatus",
]
