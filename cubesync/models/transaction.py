"""
Transaction steps and the pending transaction owned by one orchestrator call.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple

from cubesync.chain.abi import ContractFunction


class TransactionKind(str, Enum):
    PING = "ping"
    BURN = "burn"
    CLAIM = "claim"
    BREED = "breed"
    APPROVE = "approve"


class TxStatus(str, Enum):
    PREPARING = "preparing"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class ApprovalStep:
    """ERC-20 allowance that must cover `amount` before the action runs."""
    token: str
    spender: str
    amount: int


@dataclass(frozen=True)
class NftApprovalStep:
    """ERC-721 approval of one token for an operator."""
    nft: str
    operator: str
    token_id: int


@dataclass(frozen=True)
class ActionStep:
    """The primary write of an invocation."""
    kind: TransactionKind
    contract: str
    function: ContractFunction
    args: Tuple[Any, ...] = ()
    value: int = 0
    gas: Optional[int] = None
    invalidates: Tuple[str, ...] = ()


@dataclass
class PendingTransaction:
    """Ephemeral record of one user action."""
    kind: TransactionKind
    hash: Optional[str] = None
    status: TxStatus = TxStatus.PREPARING
    error: Optional[Exception] = None
    approvals_sent: int = 0
    reported: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
