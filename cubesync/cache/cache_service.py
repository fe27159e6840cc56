"""
Local state cache with timestamped entries and stale fallback.

Entries are stored as JSON text ``{"data": ..., "timestamp": ...}``. Callers
hand in JSON-ready data (large integers already encoded as decimal strings).
Freshness is judged against the feature TTL; stale entries are kept in the
store so they can back a failed live read.
"""

import json
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, TypeVar

import structlog

from cubesync.core.exceptions import RemoteError
from cubesync.models.common import AccountContext, CachedValue, CacheEntry
from .cache_keys import CacheKey, CacheKeyBuilder, Feature
from .redis_client import RedisClient


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Stale entries are kept this long as fallback data
RETENTION_SECONDS = 7 * 24 * 3600

_USE_FEATURE_TTL = object()


class LocalStateCache:
    """Feature/account/chain partitioned cache backed by Redis."""

    def __init__(
        self,
        redis_client: RedisClient,
        key_builder: CacheKeyBuilder,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis_client
        self.keys = key_builder
        self.clock = clock

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the stored entry regardless of age, or None."""
        full_key = self.keys.full(key)
        raw = await self.redis.get(full_key)
        if not raw:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Dropping unreadable cache entry", key=full_key, error=str(e))
            await self.redis.delete(full_key)
            return None

    async def put(self, key: CacheKey, data: Any, retention: Optional[int] = RETENTION_SECONDS) -> CacheEntry:
        """Overwrite the entry for `key` with `data` stamped now."""
        entry = CacheEntry(data=data, timestamp=self.clock())
        full_key = self.keys.full(key)
        ttl = self.keys.ttl_for(key.feature)
        ex = retention if ttl is not None else None
        try:
            payload = json.dumps(entry.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("Cache serialization failed", key=full_key, error=str(e))
            return entry

        if await self.redis.set(full_key, payload, ex=ex):
            logger.debug("Cache set", key=full_key, size=len(payload))
        return entry

    async def invalidate(self, key: CacheKey) -> int:
        deleted = await self.redis.delete(self.keys.full(key))
        logger.debug("Cache invalidated", key=str(key), deleted=deleted)
        return deleted

    async def invalidate_account(self, account: AccountContext, features: Iterable[str] = Feature.ALL) -> int:
        """Clear the given features (and their suffixed keys) for one account."""
        total = 0
        for feature in features:
            keys = [self.keys.full(self.keys.for_account(feature, account))]
            keys.extend(await self.redis.keys(self.keys.account_pattern(feature, account)))
            total += await self.redis.delete(*keys)

        logger.info(
            "Account cache invalidated",
            address=account.cache_address,
            chain_id=account.chain_id,
            keys_deleted=total
        )
        return total

    async def read_through(
        self,
        key: CacheKey,
        fetch: Callable[[], Awaitable[T]],
        encode: Callable[[T], Any] = lambda value: value,
        decode: Callable[[Any], T] = lambda data: data,
        ttl: Any = _USE_FEATURE_TTL,
        force: bool = False,
    ) -> CachedValue[T]:
        """
        Serve `key` from cache or a live fetch.

        A fresh entry short-circuits the fetch unless `force` is set. A
        successful fetch overwrites the entry. A failed fetch falls back to
        the last good entry flagged stale with the error attached; without
        any entry the error propagates.
        """
        if ttl is _USE_FEATURE_TTL:
            ttl = self.keys.ttl_for(key.feature)

        entry = await self.get(key)
        now = self.clock()
        if entry is not None and not force and entry.is_fresh(ttl, now):
            return CachedValue(data=decode(entry.data), from_cache=True, timestamp=entry.timestamp)

        try:
            value = await fetch()
        except RemoteError as e:
            if entry is None:
                raise
            logger.warning(
                "Live read failed, serving cached entry",
                key=str(key),
                age=round(entry.age(now), 1),
                error=e.message
            )
            return CachedValue(
                data=decode(entry.data),
                is_stale=True,
                from_cache=True,
                error=e,
                timestamp=entry.timestamp,
            )

        stored = await self.put(key, encode(value))
        return CachedValue(data=value, timestamp=stored.timestamp)

    async def describe(self, account: AccountContext) -> Dict[str, Dict[str, Any]]:
        """Age and freshness of every feature entry for an account."""
        summary: Dict[str, Dict[str, Any]] = {}
        now = self.clock()
        for feature in Feature.ALL:
            entry = await self.get(self.keys.for_account(feature, account))
            if entry is None:
                continue
            ttl = self.keys.ttl_for(feature)
            summary[feature] = {
                "age": round(entry.age(now), 1),
                "ttl": ttl,
                "fresh": entry.is_fresh(ttl, now),
            }
        return summary
