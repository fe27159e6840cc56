"""
Burn records, reward splits and the per-NFT burn/claim lifecycle.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


BPS_DENOMINATOR = 10_000


class BurnLifecycle(str, Enum):
    """Per-NFT lifecycle. CLAIMED is terminal."""
    ALIVE = "alive"
    BURN_SCHEDULED = "burn_scheduled"
    CLAIM_READY = "claim_ready"
    CLAIMED = "claimed"


@dataclass(frozen=True)
class BurnSplit:
    """Reward split (basis points) for one wait period."""
    player_bps: int
    pool_bps: int
    burn_bps: int

    def share(self, total: int, bps: int) -> int:
        return total * bps // BPS_DENOMINATOR

    def to_dict(self) -> Dict[str, int]:
        return {
            "player_bps": self.player_bps,
            "pool_bps": self.pool_bps,
            "burn_bps": self.burn_bps,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BurnSplit":
        return cls(
            player_bps=int(raw["player_bps"]),
            pool_bps=int(raw["pool_bps"]),
            burn_bps=int(raw["burn_bps"]),
        )


@dataclass(frozen=True)
class BurnRecord:
    """On-chain burn record as returned by getBurnInfo."""
    token_id: int
    owner: str
    total_amount: int
    claim_available_time: int
    graveyard_release_time: int
    claimed: bool
    wait_period_minutes: int

    @classmethod
    def from_chain(cls, token_id: int, info: Dict[str, Any]) -> "BurnRecord":
        return cls(
            token_id=int(token_id),
            owner=str(info["owner"]),
            total_amount=int(info["totalAmount"]),
            claim_available_time=int(info["claimAt"]),
            graveyard_release_time=int(info["graveReleaseAt"]),
            claimed=bool(info["claimed"]),
            wait_period_minutes=int(info["waitMinutes"]),
        )

    def lifecycle(self, now: int) -> BurnLifecycle:
        if self.claimed:
            return BurnLifecycle.CLAIMED
        if self.total_amount == 0 and self.claim_available_time == 0:
            return BurnLifecycle.ALIVE
        if now >= self.claim_available_time:
            return BurnLifecycle.CLAIM_READY
        return BurnLifecycle.BURN_SCHEDULED

    def is_owned_by(self, address: str) -> bool:
        return self.owner.lower() == address.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": str(self.token_id),
            "owner": self.owner,
            "total_amount": str(self.total_amount),
            "claim_available_time": self.claim_available_time,
            "graveyard_release_time": self.graveyard_release_time,
            "claimed": self.claimed,
            "wait_period_minutes": self.wait_period_minutes,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BurnRecord":
        return cls(
            token_id=int(raw["token_id"]),
            owner=raw["owner"],
            total_amount=int(raw["total_amount"]),
            claim_available_time=int(raw["claim_available_time"]),
            graveyard_release_time=int(raw["graveyard_release_time"]),
            claimed=bool(raw["claimed"]),
            wait_period_minutes=int(raw["wait_period_minutes"]),
        )


@dataclass(frozen=True)
class BurnedNft:
    """A burn record enriched with its split and computed shares."""
    record: BurnRecord
    split: Optional[BurnSplit]
    player_share: int
    pool_share: int
    burned_share: int
    is_ready_to_claim: bool
    lifecycle: BurnLifecycle

    @property
    def token_id(self) -> int:
        return self.record.token_id

    @classmethod
    def build(cls, record: BurnRecord, split: Optional[BurnSplit], now: int) -> "BurnedNft":
        lifecycle = record.lifecycle(now)
        if split is not None:
            player = split.share(record.total_amount, split.player_bps)
            pool = split.share(record.total_amount, split.pool_bps)
            burned = split.share(record.total_amount, split.burn_bps)
        else:
            player = pool = burned = 0
        return cls(
            record=record,
            split=split,
            player_share=player,
            pool_share=pool,
            burned_share=burned,
            is_ready_to_claim=lifecycle == BurnLifecycle.CLAIM_READY,
            lifecycle=lifecycle,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "split": self.split.to_dict() if self.split else None,
            "player_share": str(self.player_share),
            "pool_share": str(self.pool_share),
            "burned_share": str(self.burned_share),
            "is_ready_to_claim": self.is_ready_to_claim,
            "lifecycle": self.lifecycle.value,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BurnedNft":
        split = raw.get("split")
        return cls(
            record=BurnRecord.from_dict(raw["record"]),
            split=BurnSplit.from_dict(split) if split else None,
            player_share=int(raw["player_share"]),
            pool_share=int(raw["pool_share"]),
            burned_share=int(raw["burned_share"]),
            is_ready_to_claim=bool(raw["is_ready_to_claim"]),
            lifecycle=BurnLifecycle(raw["lifecycle"]),
        )
