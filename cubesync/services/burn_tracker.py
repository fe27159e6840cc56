"""
Burn/claim lifecycle tracker.

Reconstructs an account's burned NFTs from BurnScheduled logs plus live
getBurnInfo reads, attaches reward splits and drives claims.
"""

import math
import time
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Set, Tuple

import structlog

from cubesync.cache.cache_keys import CacheKey, Feature
from cubesync.cache.cache_service import LocalStateCache
from cubesync.cache.invalidation import features_for
from cubesync.chain.contracts import CoreABI, ReaderABI
from cubesync.core.exceptions import ClaimLockedError, NotReadyError, PermanentRemoteError, RemoteError
from cubesync.models.burn import BurnedNft, BurnLifecycle, BurnRecord, BurnSplit
from cubesync.models.common import AccountContext, CachedValue, ReadModel, ReadRequest
from cubesync.models.transaction import ActionStep, PendingTransaction, TransactionKind, TxStatus
from cubesync.utils.validation import EvmValidator
from .batch_reader import BatchAggregator
from .remote_reader import ResilientReader
from .transaction_orchestrator import TransactionOrchestrator


logger = structlog.get_logger(__name__)


def ready_total(burned: Iterable[BurnedNft]) -> int:
    return sum(b.player_share for b in burned if b.is_ready_to_claim)


class BurnTracker:
    """Burned NFTs, reward shares and claims for one chain."""

    def __init__(
        self,
        reader: ResilientReader,
        aggregator: BatchAggregator,
        cache: LocalStateCache,
        core_address: str,
        reader_address: str,
        chain_id: int,
        lookback_blocks: int = 100_000,
        claim_lock_seconds: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.logger = logger.bind(service="burn_tracker")
        self.reader = reader
        self.aggregator = aggregator
        self.cache = cache
        self.core_address = EvmValidator.normalize_address(core_address)
        self.reader_address = EvmValidator.normalize_address(reader_address)
        self.chain_id = chain_id
        self.lookback_blocks = lookback_blocks
        self.claim_lock_seconds = claim_lock_seconds
        self.clock = clock

        self._splits: Dict[int, BurnSplit] = {}
        self._claimed: Dict[str, Set[int]] = {}

    # Chain time

    async def chain_now(self) -> Tuple[int, int]:
        """Latest block number and timestamp."""
        block = await self.reader.get_block("latest")
        return int(block["number"], 16), int(block["timestamp"], 16)

    # Reconstruction

    async def burned_token_ids(self, account: AccountContext, latest_block: int) -> List[int]:
        """Token ids from BurnScheduled logs for the owner, newest first, deduplicated."""
        owner = EvmValidator.normalize_address(account.address)
        from_block = max(0, latest_block - self.lookback_blocks)
        logs = await self.reader.get_logs({
            "address": self.core_address,
            "fromBlock": hex(from_block),
            "toBlock": hex(latest_block),
            "topics": CoreABI.BURN_SCHEDULED.encode_topic_filter(owner=owner),
        })

        def position(log) -> Tuple[int, int]:
            return (
                int(str(log.get("blockNumber") or "0x0"), 16),
                int(str(log.get("logIndex") or "0x0"), 16),
            )

        seen: Set[int] = set()
        token_ids: List[int] = []
        for log in sorted(logs, key=position, reverse=True):
            try:
                token_id = int(CoreABI.BURN_SCHEDULED.decode_log(log)["tokenId"])
            except PermanentRemoteError as e:
                self.logger.warning("Skipping undecodable burn log", error=e.message)
                continue
            if token_id not in seen:
                seen.add(token_id)
                token_ids.append(token_id)
        return token_ids

    async def get_burn_splits(self, wait_periods: Iterable[int]) -> Dict[int, BurnSplit]:
        """Splits for each wait period; each distinct value is fetched once, ever."""
        wanted = sorted(set(int(w) for w in wait_periods))
        missing: List[int] = []

        for wait in wanted:
            if wait in self._splits:
                continue
            entry = await self.cache.get(self._split_key(wait))
            if entry is not None:
                self._splits[wait] = BurnSplit.from_dict(entry.data)
            else:
                missing.append(wait)

        if missing:
            results = await self.aggregator.batch_read(
                [ReadRequest(self.core_address, CoreABI.BURN_SPLITS, (wait,)) for wait in missing]
            )
            for wait, result in zip(missing, results):
                if not result.ok:
                    self.logger.warning("Burn split read failed", wait_minutes=wait, error=str(result.error))
                    continue
                split = BurnSplit(
                    player_bps=int(result.value["playerBps"]),
                    pool_bps=int(result.value["poolBps"]),
                    burn_bps=int(result.value["burnBps"]),
                )
                self._splits[wait] = split
                await self.cache.put(self._split_key(wait), split.to_dict())

        return {wait: self._splits[wait] for wait in wanted if wait in self._splits}

    async def reconstruct(self, account: AccountContext) -> List[BurnedNft]:
        """Rebuild the account's burned NFTs from logs and live records."""
        latest_block, now = await self.chain_now()
        token_ids = await self.burned_token_ids(account, latest_block)
        if not token_ids:
            return []

        results = await self.aggregator.batch_read(
            [ReadRequest(self.reader_address, ReaderABI.GET_BURN_INFO, (t,)) for t in token_ids]
        )

        records: List[BurnRecord] = []
        for token_id, result in zip(token_ids, results):
            if not result.ok:
                self.logger.warning("Burn info read failed", token_id=token_id, error=str(result.error))
                continue
            record = BurnRecord.from_chain(token_id, result.value)
            if not record.is_owned_by(account.address):
                self.logger.debug("Dropping burn record of another owner", token_id=token_id)
                continue
            if token_id in self._claimed.get(account.cache_address, ()):
                record = replace(record, claimed=True)
            records.append(record)

        splits = await self.get_burn_splits(r.wait_period_minutes for r in records)
        burned = [BurnedNft.build(r, splits.get(r.wait_period_minutes), now) for r in records]
        burned.sort(key=lambda b: (not b.is_ready_to_claim, b.record.claim_available_time, b.token_id))

        self.logger.info(
            "Burned NFTs reconstructed",
            address=account.cache_address,
            logs=len(token_ids),
            records=len(burned),
            ready=sum(1 for b in burned if b.is_ready_to_claim)
        )
        return burned

    async def _read_burned(self, account: AccountContext, force: bool = False) -> CachedValue[List[BurnedNft]]:
        return await self.cache.read_through(
            self.cache.keys.for_account(Feature.BURNED_NFTS, account),
            lambda: self.reconstruct(account),
            encode=lambda items: [b.to_dict() for b in items],
            decode=lambda raw: [BurnedNft.from_dict(b) for b in raw],
            force=force,
        )

    async def burned_nfts(self, account: AccountContext, force: bool = False) -> ReadModel[List[BurnedNft]]:
        cached = await self._read_burned(account, force=force)
        return ReadModel(
            data=cached.data,
            error=str(cached.error) if cached.error else None,
            is_stale=cached.is_stale,
            updated_at=cached.timestamp,
        )

    async def pending_rewards(self, account: AccountContext, force: bool = False) -> ReadModel[int]:
        """
        Sum of player shares that can be claimed now.

        A total derived from stale burned NFTs is never stored as fresh. The
        last good total is served instead, or the stale derivation when no
        total was stored yet. Both come back flagged stale.
        """
        fallback: List[CachedValue[List[BurnedNft]]] = []

        async def fetch() -> int:
            burned = await self._read_burned(account, force=force)
            if burned.is_stale and burned.error is not None:
                fallback.append(burned)
                raise burned.error
            return ready_total(burned.data)

        try:
            cached = await self.cache.read_through(
                self.cache.keys.for_account(Feature.PENDING_REWARDS, account),
                fetch,
                encode=str,
                decode=int,
                force=force,
            )
        except RemoteError:
            if not fallback:
                raise
            burned = fallback[0]
            return ReadModel(
                data=ready_total(burned.data),
                error=str(burned.error),
                is_stale=True,
                updated_at=burned.timestamp,
            )
        return ReadModel(
            data=cached.data,
            error=str(cached.error) if cached.error else None,
            is_stale=cached.is_stale,
            updated_at=cached.timestamp,
        )

    # Claims

    async def claim_lock_remaining(self, account: AccountContext) -> int:
        entry = await self.cache.get(self.cache.keys.for_account(Feature.CLAIM_LOCK, account))
        if entry is None:
            return 0
        return max(0, math.ceil(self.claim_lock_seconds - entry.age(self.clock())))

    async def ensure_claimable(self, account: AccountContext, token_id: int) -> BurnRecord:
        """
        Check claim eligibility against the live record.

        Raises:
            ClaimLockedError: a claim confirmed less than the lock period ago
            NotReadyError: not the owner, already claimed or too early
        """
        remaining = await self.claim_lock_remaining(account)
        if remaining > 0:
            raise ClaimLockedError(remaining)

        if token_id in self._claimed.get(account.cache_address, ()):
            raise NotReadyError("Rewards already claimed", {"token_id": str(token_id), "reason": "already_claimed"})

        info = await self.reader.call(ReadRequest(self.reader_address, ReaderABI.GET_BURN_INFO, (token_id,)))
        record = BurnRecord.from_chain(token_id, info)
        _, now = await self.chain_now()

        if not record.is_owned_by(account.address):
            raise NotReadyError("Burn record belongs to another owner", {"token_id": str(token_id), "reason": "not_owner"})
        lifecycle = record.lifecycle(now)
        if lifecycle == BurnLifecycle.CLAIMED:
            raise NotReadyError("Rewards already claimed", {"token_id": str(token_id), "reason": "already_claimed"})
        if lifecycle != BurnLifecycle.CLAIM_READY:
            raise NotReadyError(
                "Claim not available yet",
                {
                    "token_id": str(token_id),
                    "reason": "too_early",
                    "seconds_left": max(0, record.claim_available_time - now),
                }
            )
        return record

    def mark_claimed(self, account: AccountContext, token_id: int) -> bool:
        """Record a confirmed claim. Returns False if it was already recorded."""
        claimed = self._claimed.setdefault(account.cache_address, set())
        if token_id in claimed:
            return False
        claimed.add(token_id)
        return True

    def is_claimed(self, account: AccountContext, token_id: int) -> bool:
        return token_id in self._claimed.get(account.cache_address, ())

    async def claim(
        self,
        account: AccountContext,
        token_id: int,
        orchestrator: TransactionOrchestrator,
    ) -> PendingTransaction:
        token_id = EvmValidator.parse_token_id(token_id)
        await orchestrator.preflight((self.core_address,))
        await self.ensure_claimable(account, token_id)

        pending = await orchestrator.execute([
            ActionStep(
                kind=TransactionKind.CLAIM,
                contract=self.core_address,
                function=CoreABI.CLAIM_BURN_REWARDS,
                args=(token_id,),
                invalidates=features_for(TransactionKind.CLAIM),
            )
        ])

        if pending.status == TxStatus.CONFIRMED:
            self.mark_claimed(account, token_id)
            await self.cache.put(
                self.cache.keys.for_account(Feature.CLAIM_LOCK, account),
                {"token_id": str(token_id)},
                retention=self.claim_lock_seconds,
            )
            self.logger.info("Claim confirmed", token_id=token_id, tx_hash=pending.hash)
        return pending

    def clear(self) -> None:
        self._claimed.clear()

    def _split_key(self, wait: int) -> CacheKey:
        return self.cache.keys.for_chain(Feature.BURN_SPLIT, self.chain_id, suffix=str(wait))
