"""
Graveyard window and readiness state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class GateState(str, Enum):
    UNKNOWN = "unknown"
    LOADING = "loading"
    READY = "ready"
    NOT_READY = "not_ready"
    ERROR = "error"


@dataclass(frozen=True)
class GraveyardWindow:
    """Tokens read from the graveyard ring buffer, plus the remote total."""
    token_ids: List[int] = field(default_factory=list)
    total_count: int = 0

    @property
    def ready(self) -> bool:
        return len(self.token_ids) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_ids": [str(t) for t in self.token_ids],
            "total_count": str(self.total_count),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "GraveyardWindow":
        return cls(
            token_ids=[int(t) for t in raw.get("token_ids", [])],
            total_count=int(raw.get("total_count", 0)),
        )


@dataclass
class GateSnapshot:
    """Current view of the readiness gate."""
    state: GateState = GateState.UNKNOWN
    window: Optional[GraveyardWindow] = None
    error: Optional[str] = None
    is_stale: bool = False
    updated_at: Optional[float] = None

    @property
    def ready(self) -> bool:
        return self.window is not None and self.window.ready
