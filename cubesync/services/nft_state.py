"""
NFT state reader: batched getNFTSummary + meta reads into NFTState snapshots.
"""

import time
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from cubesync.cache.cache_keys import Feature
from cubesync.cache.cache_service import LocalStateCache
from cubesync.chain.contracts import CoreABI, ReaderABI
from cubesync.models.common import AccountContext, ReadModel, ReadRequest
from cubesync.models.nft import NFTState
from cubesync.utils.validation import EvmValidator
from .batch_reader import BatchAggregator


logger = structlog.get_logger(__name__)


class NFTStateReader:
    """Per-token read-through snapshots, refreshed in one batch."""

    def __init__(
        self,
        aggregator: BatchAggregator,
        cache: LocalStateCache,
        core_address: str,
        reader_address: str,
        clock: Callable[[], float] = time.time,
    ):
        self.logger = logger.bind(service="nft_state")
        self.aggregator = aggregator
        self.cache = cache
        self.core_address = core_address
        self.reader_address = reader_address
        self.clock = clock
        self._snapshots: Dict[int, NFTState] = {}

    def snapshot(self, token_id: int) -> Optional[NFTState]:
        return self._snapshots.get(token_id)

    def clear(self) -> None:
        self._snapshots.clear()

    async def get_states(
        self,
        account: AccountContext,
        token_ids: Sequence[int],
        force: bool = False,
    ) -> ReadModel[List[NFTState]]:
        """
        Return snapshots for `token_ids` in the given order.

        Fresh cache entries are used as-is unless `force` is set; the rest are
        read in one batch. A token whose read fails falls back to its last
        cached snapshot (marked stale) or is left out with the error reported.
        """
        ids = [EvmValidator.parse_token_id(t) for t in token_ids]
        ttl = self.cache.keys.ttl_for(Feature.NFT_STATE)
        now = self.clock()

        states: Dict[int, NFTState] = {}
        cached: Dict[int, NFTState] = {}
        cached_at: Dict[int, float] = {}
        to_fetch: List[int] = []

        for token_id in ids:
            entry = await self.cache.get(self._key(account, token_id))
            if entry is not None:
                cached[token_id] = NFTState.from_dict(entry.data)
                cached_at[token_id] = entry.timestamp
                if not force and entry.is_fresh(ttl, now):
                    states[token_id] = cached[token_id]
                    continue
            to_fetch.append(token_id)

        errors: List[str] = []
        stale = False
        if to_fetch:
            requests: List[ReadRequest] = []
            for token_id in to_fetch:
                requests.append(ReadRequest(self.reader_address, ReaderABI.GET_NFT_SUMMARY, (token_id,)))
                requests.append(ReadRequest(self.core_address, CoreABI.META, (token_id,)))
            results = await self.aggregator.batch_read(requests)

            for index, token_id in enumerate(to_fetch):
                summary, meta = results[2 * index], results[2 * index + 1]
                if summary.ok and meta.ok:
                    previous = self._snapshots.get(token_id) or cached.get(token_id)
                    state = NFTState.from_chain(token_id, summary.value, meta.value).merge_previous(previous)
                    states[token_id] = state
                    await self.cache.put(self._key(account, token_id), state.to_dict())
                    continue

                error = summary.error if not summary.ok else meta.error
                errors.append(f"{token_id}: {error}")
                if token_id in cached:
                    states[token_id] = cached[token_id]
                    stale = True
                self.logger.warning("NFT state read failed", token_id=token_id, error=str(error))

        self._snapshots.update(states)
        ordered = [states[t] for t in ids if t in states]
        return ReadModel(
            data=ordered,
            error="; ".join(errors) if errors else None,
            is_stale=stale,
            updated_at=min(
                (cached_at.get(t, now) for t in ids if t in states),
                default=now,
            ) if stale else now,
        )

    def _key(self, account: AccountContext, token_id: int):
        return self.cache.keys.for_account(Feature.NFT_STATE, account, suffix=str(token_id))
