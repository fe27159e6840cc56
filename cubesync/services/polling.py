"""
Timer-driven polling loop.

Each loop owns one "next wake" time computed as base + jitter + backoff.
Backoff grows on failure (start, then doubling up to a cap) and resets on
success. trigger_now() cancels the pending wait and polls immediately.
"""

import asyncio
import random
from datetime import datetime
from typing import Awaitable, Callable, Optional

import structlog


logger = structlog.get_logger(__name__)


class CancelHandle:
    """Disposable handle captured when a loop starts."""

    def __init__(self, loop: "PollingLoop", generation: int):
        self._loop = loop
        self._generation = generation

    def cancel(self) -> None:
        if self._loop.generation == self._generation:
            self._loop.cancel()


class PollingLoop:
    """Runs `func` on start and then on a jittered, backed-off timer."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[None]],
        base_interval: float,
        jitter: float = 0.0,
        backoff_start: float = 5.0,
        backoff_max: float = 120.0,
        min_interval: float = 5.0,
        rng: Optional[random.Random] = None,
    ):
        self.name = name
        self.func = func
        self.base_interval = base_interval
        self.jitter = jitter
        self.backoff_start = backoff_start
        self.backoff_max = backoff_max
        self.min_interval = min_interval
        self.rng = rng or random.Random()
        self.logger = logger.bind(service="polling_loop", loop=name)

        self.backoff = 0.0
        self.active = False
        self.generation = 0
        self.run_count = 0
        self.error_count = 0
        self.last_error: Optional[str] = None
        self.last_run: Optional[datetime] = None
        self.next_delay: Optional[float] = None

        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None

    def compute_delay(self) -> float:
        """Delay until the next poll given the current backoff."""
        jitter = self.rng.uniform(-self.jitter, self.jitter) if self.jitter else 0.0
        return max(self.min_interval, self.base_interval + jitter + self.backoff)

    def record_success(self) -> None:
        self.backoff = 0.0

    def record_failure(self, error: BaseException) -> None:
        self.error_count += 1
        self.last_error = str(error)
        if self.backoff <= 0:
            self.backoff = self.backoff_start
        else:
            self.backoff = min(self.backoff * 2, self.backoff_max)

    async def run_once(self) -> bool:
        """Run `func` once and update the backoff. Returns success."""
        self.last_run = datetime.utcnow()
        self.run_count += 1
        try:
            await self.func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.record_failure(e)
            self.logger.warning(
                "Poll failed",
                error=str(e),
                error_count=self.error_count,
                backoff=self.backoff
            )
            return False
        self.record_success()
        return True

    def start(self) -> CancelHandle:
        """Start the loop task; polling begins immediately."""
        if self.active and self._task is not None and not self._task.done():
            return CancelHandle(self, self.generation)

        self.generation += 1
        self.active = True
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"poll:{self.name}")
        self.logger.debug("Polling loop started", generation=self.generation)
        return CancelHandle(self, self.generation)

    async def _run(self) -> None:
        while self.active:
            # Cleared before the poll so a trigger during the poll is kept
            self._wake.clear()
            await self.run_once()
            if not self.active:
                break

            self.next_delay = self.compute_delay()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.next_delay)
                self.logger.debug("Poll triggered early")
            except asyncio.TimeoutError:
                pass

    def trigger_now(self) -> None:
        """Cancel the pending timer and poll immediately."""
        if self.active and self._wake is not None:
            self._wake.set()

    def cancel(self) -> None:
        """Clear the active flag and cancel the loop task without waiting."""
        self.active = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self.logger.debug("Polling loop stopped")
