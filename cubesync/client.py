"""
Client facade wiring every sync component from settings.
"""

from typing import List, Optional, Sequence

import structlog

from cubesync.cache.cache_keys import get_cache_key_builder
from cubesync.cache.cache_service import LocalStateCache
from cubesync.cache.redis_client import RedisClient
from cubesync.core.config import ChainConfig, Settings, settings as default_settings
from cubesync.core.exceptions import ConfigurationError, SecurityValidationError
from cubesync.events.refresh_bus import RefreshBus, get_refresh_bus
from cubesync.models.burn import BurnedNft
from cubesync.models.common import AccountContext, ReadModel
from cubesync.models.nft import NFTState
from cubesync.services.batch_reader import BatchAggregator
from cubesync.services.burn_tracker import BurnTracker
from cubesync.services.evm_client import EvmRpcClient
from cubesync.services.game_actions import GameActions
from cubesync.services.graveyard_gate import GraveyardGate
from cubesync.services.nft_state import NFTStateReader
from cubesync.services.remote_reader import ResilientReader, RpcTransport
from cubesync.services.transaction_orchestrator import TransactionOrchestrator, WalletProvider
from cubesync.utils.validation import EvmValidator, SecurityGuard


logger = structlog.get_logger(__name__)


class GameSyncClient:
    """
    Owns the active account and every component bound to it.

    Usage:
        async with GameSyncClient(wallet=wallet) as client:
            ready = client.gate.ready
            tx_hash = await client.actions.ping(42)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        wallet: Optional[WalletProvider] = None,
        redis_client: Optional[RedisClient] = None,
        transport: Optional[RpcTransport] = None,
        bus: Optional[RefreshBus] = None,
        poll: bool = True,
    ):
        self.settings = config or default_settings
        self.chain = ChainConfig(self.settings)
        self.logger = logger.bind(service="game_sync_client")
        self.wallet = wallet
        self.poll = poll

        self._owns_redis = redis_client is None
        self.redis = redis_client or RedisClient(self.settings.redis_url)
        rpc = self.chain.get_rpc_config()
        self.reader = ResilientReader(
            transport=transport or EvmRpcClient(timeout=rpc["timeout"]),
            endpoints=rpc["endpoints"],
            max_attempts=rpc["max_attempts"],
            base_delay=rpc["base_delay"],
        )
        self.aggregator = BatchAggregator(
            self.reader,
            multicall_address=self.settings.multicall3_address,
            multicall_chunk_size=self.settings.batch_size_multicall,
            individual_chunk_size=self.settings.batch_size_individual,
            concurrency=self.settings.batch_concurrency,
        )
        self.cache = LocalStateCache(self.redis, get_cache_key_builder())
        self.bus = bus or get_refresh_bus()
        self.guard = SecurityGuard(self.chain.chain_id, self.chain.allowed_contracts)

        self.account: Optional[AccountContext] = None
        self.gate: Optional[GraveyardGate] = None
        self.nft_state = NFTStateReader(
            self.aggregator,
            self.cache,
            core_address=self.settings.core_address,
            reader_address=self.settings.reader_address,
        )
        self.tracker = BurnTracker(
            self.reader,
            self.aggregator,
            self.cache,
            core_address=self.settings.core_address,
            reader_address=self.settings.reader_address,
            chain_id=self.chain.chain_id,
            lookback_blocks=self.settings.burn_log_lookback_blocks,
            claim_lock_seconds=self.settings.claim_lock_seconds,
        )
        self.orchestrator: Optional[TransactionOrchestrator] = None
        self.actions: Optional[GameActions] = None
        self._started = False

    def _build_gate(self) -> GraveyardGate:
        s = self.settings
        return GraveyardGate(
            self.reader,
            self.cache,
            self.bus,
            reader_address=s.reader_address,
            chain_id=self.chain.chain_id,
            account=self.account,
            page_size=s.graveyard_page_size,
            max_tokens=s.graveyard_max_tokens,
            base_interval=s.graveyard_base_interval,
            jitter=s.graveyard_jitter,
            backoff_start=s.graveyard_backoff_start,
            backoff_max=s.graveyard_backoff_max,
            min_interval=s.graveyard_min_interval,
        )

    def _build_actions(self) -> None:
        if self.wallet is None:
            self.orchestrator = None
            self.actions = None
            return
        s = self.settings
        self.orchestrator = TransactionOrchestrator(
            self.wallet,
            self.reader,
            self.cache,
            self.bus,
            self.guard,
            auto_switch_chain=s.auto_switch_chain,
            approval_buffer_percent=s.approval_buffer_percent,
            receipt_poll_interval=s.receipt_poll_interval,
            receipt_timeout=s.receipt_timeout,
        )
        self.actions = GameActions(
            self.orchestrator,
            self.reader,
            self.gate,
            self.tracker,
            core_address=s.core_address,
            reader_address=s.reader_address,
            nft_address=s.nft_address,
            octa_address=s.octa_token_address,
            octaa_address=s.octaa_token_address,
        )

    async def start(self) -> None:
        """Connect storage and start the polling features."""
        if self._started:
            return
        if self._owns_redis:
            await self.redis.connect()

        if self.wallet is not None and getattr(self.wallet, "address", None):
            self.account = AccountContext(
                EvmValidator.normalize_address(self.wallet.address), self.chain.chain_id
            )
        self.gate = self._build_gate()
        self._build_actions()
        if self.poll:
            self.gate.start()

        self._started = True
        self.logger.info(
            "Sync client started",
            chain_id=self.chain.chain_id,
            account=self.account.cache_address if self.account else None,
            endpoints=len(self.settings.rpc_urls)
        )

    async def switch_account(self, wallet: Optional[WalletProvider]) -> None:
        """
        Rebind to a different wallet (or none).

        In-memory snapshots of the previous account are dropped and the
        account-scoped polling restarts.
        """
        if self.gate is not None:
            await self.gate.stop()
        self.nft_state.clear()
        self.tracker.clear()

        self.wallet = wallet
        address = getattr(wallet, "address", None) if wallet is not None else None
        self.account = (
            AccountContext(EvmValidator.normalize_address(address), self.chain.chain_id)
            if address else None
        )
        self.gate = self._build_gate()
        self._build_actions()
        if self.poll and self._started:
            self.gate.start()
        self.logger.info("Account switched", account=self.account.cache_address if self.account else None)

    def _require_account(self, address: Optional[str] = None) -> AccountContext:
        if address is not None:
            return AccountContext(EvmValidator.normalize_address(address), self.chain.chain_id)
        if self.account is None:
            raise SecurityValidationError("No account connected")
        return self.account

    # Read models

    def graveyard(self) -> ReadModel:
        if self.gate is None:
            raise ConfigurationError("Client not started")
        return self.gate.read_model()

    async def refresh_graveyard(self) -> ReadModel:
        if self.gate is None:
            raise ConfigurationError("Client not started")
        await self.gate.refresh()
        return self.gate.read_model()

    async def burned_nfts(self, address: Optional[str] = None, force: bool = False) -> ReadModel[List[BurnedNft]]:
        return await self.tracker.burned_nfts(self._require_account(address), force=force)

    async def pending_rewards(self, address: Optional[str] = None, force: bool = False) -> ReadModel[int]:
        return await self.tracker.pending_rewards(self._require_account(address), force=force)

    async def nft_states(
        self,
        token_ids: Sequence[int],
        address: Optional[str] = None,
        force: bool = False,
    ) -> ReadModel[List[NFTState]]:
        return await self.nft_state.get_states(self._require_account(address), token_ids, force=force)

    async def close(self) -> None:
        """Stop polling and release connections."""
        if self.gate is not None:
            await self.gate.stop()
        await self.reader.close()
        if self._owns_redis:
            await self.redis.disconnect()
        self._started = False
        self.logger.info("Sync client closed")

    async def __aenter__(self) -> "GameSyncClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
