"""
Local state cache backed by Redis.
"""

from .cache_keys import CacheKey, CacheKeyBuilder, Feature, get_cache_key_builder
from .cache_service import LocalStateCache
from .invalidation import INVALIDATION_PATTERNS, features_for
from .redis_client import RedisClient

__all__ = [
    "CacheKey",
    "CacheKeyBuilder",
    "Feature",
    "INVALIDATION_PATTERNS",
    "LocalStateCache",
    "RedisClient",
    "features_for",
    "get_cache_key_builder",
]
