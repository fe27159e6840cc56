"""
Cache key building.

Every entry is partitioned by feature, account and chain:
``{prefix}{feature}:{address}:{chain_id}`` with the address lower-cased.
"""

from dataclasses import dataclass
from typing import Optional

from cubesync.core.config import ChainConfig, settings
from cubesync.models.common import AccountContext


class Feature:
    NFT_STATE = "nft_state"
    GRAVEYARD = "graveyard"
    PENDING_REWARDS = "pending_rewards"
    BURNED_NFTS = "burned_nfts"
    BURN_SPLIT = "burn_split"
    CLAIM_LOCK = "claim_lock"

    ALL = (NFT_STATE, GRAVEYARD, PENDING_REWARDS, BURNED_NFTS, BURN_SPLIT, CLAIM_LOCK)


# Graveyard and burn splits are global; they are stored under this owner
GLOBAL_ACCOUNT = "global"


@dataclass(frozen=True)
class CacheKey:
    feature: str
    address: str
    chain_id: int
    suffix: Optional[str] = None

    def __str__(self) -> str:
        key = f"{self.feature}:{self.address.lower()}:{self.chain_id}"
        if self.suffix is not None:
            key = f"{key}:{self.suffix}"
        return key


class CacheKeyBuilder:
    """Utility for building consistent cache keys."""

    def __init__(self, prefix: str = "cubesync:"):
        self.prefix = prefix

    def full(self, key: CacheKey) -> str:
        return f"{self.prefix}{key}"

    def for_account(self, feature: str, account: AccountContext, suffix: Optional[str] = None) -> CacheKey:
        return CacheKey(feature, account.cache_address, account.chain_id, suffix)

    def for_chain(self, feature: str, chain_id: int, suffix: Optional[str] = None) -> CacheKey:
        return CacheKey(feature, GLOBAL_ACCOUNT, chain_id, suffix)

    def account_pattern(self, feature: str, account: AccountContext) -> str:
        """Pattern matching the suffixed keys of a feature for one account."""
        return f"{self.prefix}{feature}:{account.cache_address}:{account.chain_id}:*"

    @staticmethod
    def ttl_for(feature: str) -> Optional[int]:
        return ChainConfig.FEATURE_TTLS.get(feature)


_cache_key_builder: Optional[CacheKeyBuilder] = None


def get_cache_key_builder() -> CacheKeyBuilder:
    """Get global cache key builder instance."""
    global _cache_key_builder

    if _cache_key_builder is None:
        _cache_key_builder = CacheKeyBuilder(prefix=settings.redis_prefix)

    return _cache_key_builder
