"""
Shared value types: account identity, read requests/results, cache entries
and the per-feature read model handed to the UI layer.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, Tuple, TypeVar

from cubesync.chain.abi import ContractFunction


T = TypeVar("T")


@dataclass(frozen=True)
class AccountContext:
    """Identity that partitions every cache entry."""
    address: str
    chain_id: int

    @property
    def cache_address(self) -> str:
        return self.address.lower()


@dataclass(frozen=True)
class ReadRequest:
    """One contract read: target, function fragment and arguments."""
    contract: str
    function: ContractFunction
    args: Tuple[Any, ...] = ()

    @property
    def label(self) -> str:
        return f"{self.function.name}@{self.contract[:10]}"

    def encode(self) -> str:
        return self.function.encode_call(self.args)


@dataclass
class ReadResult(Generic[T]):
    """Outcome of a single item in a batch: a value or an error."""
    ok: bool
    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: T) -> "ReadResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: Exception) -> "ReadResult[T]":
        return cls(ok=False, error=error)


@dataclass
class CacheEntry:
    """Cached payload plus the time (epoch seconds) it was written."""
    data: Any
    timestamp: float

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.timestamp

    def is_fresh(self, ttl: Optional[float], now: Optional[float] = None) -> bool:
        if ttl is None:
            return True
        return self.age(now) < ttl

    def to_dict(self) -> dict:
        return {"data": self.data, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, raw: dict) -> "CacheEntry":
        return cls(data=raw["data"], timestamp=float(raw["timestamp"]))


@dataclass
class CachedValue(Generic[T]):
    """Result of a read-through: data plus provenance flags."""
    data: T
    is_stale: bool = False
    from_cache: bool = False
    error: Optional[Exception] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ReadModel(Generic[T]):
    """What the UI layer sees for a feature."""
    data: Optional[T] = None
    is_loading: bool = False
    error: Optional[str] = None
    is_stale: bool = False
    updated_at: Optional[float] = None
