"""
NFT game state snapshot.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

import structlog


logger = structlog.get_logger(__name__)

VALID_GENDERS = (1, 2)


@dataclass(frozen=True)
class NFTState:
    """Read-through snapshot of one NFT's on-chain game state."""
    token_id: int
    rarity: int
    initial_stars: int
    current_stars: int
    bonus_stars: int
    gender: int
    is_activated: bool
    locked_value: int
    last_ping_time: int
    last_breed_time: int
    is_in_graveyard: bool
    dyn_bonus_bps: int = 0
    spec_bps: int = 0

    @classmethod
    def from_chain(cls, token_id: int, summary: Dict[str, Any], meta: Dict[str, Any]) -> "NFTState":
        """Build a snapshot from decoded getNFTSummary and meta results."""
        gender = int(meta["gender"])
        state = cls(
            token_id=int(token_id),
            rarity=int(meta["rarity"]),
            initial_stars=int(meta["initialStars"]),
            current_stars=int(summary["currentStars"]),
            bonus_stars=int(summary["bonusStars"]),
            gender=gender if gender in VALID_GENDERS else 1,
            is_activated=bool(meta["isActivated"]),
            locked_value=int(summary["lockedOcta"]),
            last_ping_time=int(summary["lastPingTime"]),
            last_breed_time=int(summary["lastBreedTime"]),
            is_in_graveyard=bool(summary["isInGraveyard"]),
            dyn_bonus_bps=int(summary.get("dynBonusBps") or 0),
            spec_bps=int(summary.get("specBps") or 0),
        )
        return state.normalized()

    def normalized(self) -> "NFTState":
        """Clamp current stars into [0, initial + bonus]."""
        capacity = max(0, self.initial_stars) + max(0, self.bonus_stars)
        current = min(max(0, self.current_stars), capacity)
        if current != self.current_stars:
            logger.warning(
                "Clamped star count",
                token_id=self.token_id,
                reported=self.current_stars,
                capacity=capacity
            )
            return replace(self, current_stars=current)
        return self

    def merge_previous(self, previous: Optional["NFTState"]) -> "NFTState":
        """Keep the previous star fields once the NFT sits in the graveyard."""
        if previous is None or not previous.is_in_graveyard or not self.is_in_graveyard:
            return self
        return replace(
            self,
            initial_stars=previous.initial_stars,
            current_stars=previous.current_stars,
            bonus_stars=previous.bonus_stars,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": str(self.token_id),
            "rarity": self.rarity,
            "initial_stars": self.initial_stars,
            "current_stars": self.current_stars,
            "bonus_stars": self.bonus_stars,
            "gender": self.gender,
            "is_activated": self.is_activated,
            "locked_value": str(self.locked_value),
            "last_ping_time": self.last_ping_time,
            "last_breed_time": self.last_breed_time,
            "is_in_graveyard": self.is_in_graveyard,
            "dyn_bonus_bps": self.dyn_bonus_bps,
            "spec_bps": self.spec_bps,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "NFTState":
        return cls(
            token_id=int(raw["token_id"]),
            rarity=int(raw["rarity"]),
            initial_stars=int(raw["initial_stars"]),
            current_stars=int(raw["current_stars"]),
            bonus_stars=int(raw["bonus_stars"]),
            gender=int(raw["gender"]),
            is_activated=bool(raw["is_activated"]),
            locked_value=int(raw["locked_value"]),
            last_ping_time=int(raw["last_ping_time"]),
            last_breed_time=int(raw["last_breed_time"]),
            is_in_graveyard=bool(raw["is_in_graveyard"]),
            dyn_bonus_bps=int(raw.get("dyn_bonus_bps", 0)),
            spec_bps=int(raw.get("spec_bps", 0)),
        ).normalized()
