"""
Graveyard readiness gate.

Derives "can breed/revive now" from the graveyard window exposed by the
reader contract. Readiness is window non-emptiness only; per-token cooldown
is not checked client-side.
"""

import time
from typing import Any, Callable, Dict, List, Optional

import structlog

from cubesync.cache.cache_keys import CacheKey, Feature
from cubesync.cache.cache_service import LocalStateCache
from cubesync.chain.contracts import ReaderABI
from cubesync.core.exceptions import NotReadyError, RemoteError
from cubesync.events.refresh_bus import RefreshBus, RefreshEvent, Subscription
from cubesync.models.common import AccountContext, ReadModel, ReadRequest
from cubesync.models.graveyard import GateSnapshot, GateState, GraveyardWindow
from .polling import PollingLoop
from .remote_reader import ResilientReader


logger = structlog.get_logger(__name__)


class GraveyardGate:
    """Polls the graveyard window and exposes a ready/not-ready signal."""

    def __init__(
        self,
        reader: ResilientReader,
        cache: LocalStateCache,
        bus: RefreshBus,
        reader_address: str,
        chain_id: int,
        account: Optional[AccountContext] = None,
        page_size: int = 50,
        max_tokens: int = 200,
        base_interval: float = 45.0,
        jitter: float = 2.0,
        backoff_start: float = 5.0,
        backoff_max: float = 120.0,
        min_interval: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self.logger = logger.bind(service="graveyard_gate")
        self.reader = reader
        self.cache = cache
        self.bus = bus
        self.reader_address = reader_address
        self.chain_id = chain_id
        self.account = account
        self.page_size = page_size
        self.max_tokens = max_tokens
        self.clock = clock

        self.snapshot = GateSnapshot()
        self.active = False
        self._generation = 0
        self._subscription: Optional[Subscription] = None
        self.loop = PollingLoop(
            "graveyard",
            self._poll,
            base_interval=base_interval,
            jitter=jitter,
            backoff_start=backoff_start,
            backoff_max=backoff_max,
            min_interval=min_interval,
        )

    @property
    def cache_key(self) -> CacheKey:
        if self.account is not None:
            return self.cache.keys.for_account(Feature.GRAVEYARD, self.account)
        return self.cache.keys.for_chain(Feature.GRAVEYARD, self.chain_id)

    @property
    def ready(self) -> bool:
        return self.snapshot.ready

    @property
    def state(self) -> GateState:
        return self.snapshot.state

    async def fetch_window(self) -> GraveyardWindow:
        """
        Page through the graveyard from offset 0.

        Stops once min(total, max_tokens) tokens are collected or a page
        comes back empty.
        """
        tokens: List[int] = []
        total = 0
        offset = 0

        while True:
            page = await self.reader.call(
                ReadRequest(self.reader_address, ReaderABI.VIEW_GRAVE_WINDOW, (offset, self.page_size))
            )
            ids = [int(t) for t in page["tokenIds"]]
            total = int(page["total"])
            tokens.extend(ids)

            if not ids or len(tokens) >= min(total, self.max_tokens):
                break
            offset += len(ids)

        return GraveyardWindow(token_ids=tokens[:self.max_tokens], total_count=total)

    async def refresh(self) -> GateSnapshot:
        """Poll once. Read failures are reported on the snapshot, not raised."""
        try:
            await self._refresh()
        except RemoteError as e:
            self.logger.debug("Serving degraded graveyard snapshot", error=e.message)
        return self.snapshot

    async def _poll(self) -> None:
        await self._refresh()

    async def _refresh(self) -> None:
        generation = self._generation
        if self.snapshot.state == GateState.UNKNOWN:
            self.snapshot.state = GateState.LOADING

        try:
            window = await self.fetch_window()
        except RemoteError as e:
            if generation != self._generation:
                self.logger.debug("Discarding failed poll after stop")
                raise
            await self._apply_failure(e)
            raise

        if generation != self._generation:
            self.logger.debug("Discarding poll result after stop")
            return

        await self.cache.put(self.cache_key, window.to_dict())
        self.snapshot = GateSnapshot(
            state=GateState.READY if window.ready else GateState.NOT_READY,
            window=window,
            updated_at=self.clock(),
        )
        self.logger.debug(
            "Graveyard refreshed",
            ready=window.ready,
            tokens=len(window.token_ids),
            total=window.total_count
        )

    async def _apply_failure(self, error: RemoteError) -> None:
        window = self.snapshot.window
        updated_at = self.snapshot.updated_at

        if window is None:
            entry = await self.cache.get(self.cache_key)
            if entry is not None:
                window = GraveyardWindow.from_dict(entry.data)
                updated_at = entry.timestamp

        if window is None:
            self.snapshot = GateSnapshot(state=GateState.ERROR, error=error.message)
            self.logger.warning("Graveyard read failed with no prior result", error=error.message)
            return

        self.snapshot = GateSnapshot(
            state=GateState.READY if window.ready else GateState.NOT_READY,
            window=window,
            error=error.message,
            is_stale=True,
            updated_at=updated_at,
        )
        self.logger.warning("Graveyard read failed, keeping prior result", error=error.message)

    def _on_refresh(self, event: RefreshEvent) -> None:
        self.logger.debug("Refresh event received", reason=event.reason)
        self.loop.trigger_now()

    def start(self) -> None:
        """Begin polling and listening for refresh events."""
        if self.active:
            return
        self.active = True
        self._subscription = self.bus.subscribe(self._on_refresh)
        self.loop.start()
        self.logger.info("Graveyard gate started")

    async def stop(self) -> None:
        """Stop polling; results still in flight are discarded."""
        if not self.active:
            return
        self.active = False
        self._generation += 1
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        await self.loop.stop()
        self.logger.info("Graveyard gate stopped")

    def require_ready(self) -> None:
        if not self.ready:
            raise NotReadyError(
                "Graveyard is not ready",
                {"state": self.snapshot.state.value}
            )

    def read_model(self) -> ReadModel[Dict[str, Any]]:
        window = self.snapshot.window
        return ReadModel(
            data={
                "ready": self.ready,
                "state": self.snapshot.state.value,
                "token_ids": list(window.token_ids) if window else [],
                "total_count": window.total_count if window else 0,
            },
            is_loading=self.snapshot.state == GateState.LOADING,
            error=self.snapshot.error,
            is_stale=self.snapshot.is_stale,
            updated_at=self.snapshot.updated_at,
        )
