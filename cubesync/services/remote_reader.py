"""
Resilient remote reader with retry, exponential backoff and endpoint failover.

This service provides:
- Priority-ordered endpoint pool, rotated between attempts
- Retry of transient failures only (network, timeout, rate limit)
- Immediate surfacing of permanent failures (revert, malformed call)
- Per-endpoint statistics
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import structlog

from cubesync.core.exceptions import ConfigurationError, RemoteError, TransientRemoteError
from cubesync.models.common import ReadRequest
from cubesync.utils.validation import EvmValidator


logger = structlog.get_logger(__name__)


class RpcTransport(Protocol):
    async def request(self, url: str, method: str, params: Optional[List[Any]] = None) -> Any: ...

    async def close(self) -> None: ...


@dataclass
class RpcEndpoint:
    """A single RPC endpoint."""
    url: str
    priority: int  # lower = higher priority
    error_count: int = 0
    success_count: int = 0
    last_error_time: Optional[datetime] = None


@dataclass
class RpcStats:
    """Request statistics for one endpoint."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_response_time: float = 0.0
    errors_by_type: Dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    @property
    def average_response_time(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_response_time / self.successful_requests


class ResilientReader:
    """
    Executes contract reads and raw JSON-RPC calls with bounded retries.

    Each attempt goes to exactly one endpoint. After a transient failure the
    next attempt moves to the next endpoint in priority order; the endpoint
    of the last success is tried first next time.
    """

    def __init__(
        self,
        transport: RpcTransport,
        endpoints: List[str],
        max_attempts: int = 3,
        base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not endpoints:
            raise ConfigurationError("No RPC endpoints configured")
        if max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")

        self.logger = logger.bind(service="remote_reader")
        self.transport = transport
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

        self.endpoints: List[RpcEndpoint] = [
            RpcEndpoint(url=url, priority=i + 1) for i, url in enumerate(endpoints)
        ]
        self.endpoints.sort(key=lambda ep: ep.priority)
        self.stats_by_endpoint: Dict[str, RpcStats] = {
            ep.url: RpcStats() for ep in self.endpoints
        }
        self._healthy_index = 0

    def _endpoint_for_attempt(self, attempt: int) -> RpcEndpoint:
        return self.endpoints[(self._healthy_index + attempt - 1) % len(self.endpoints)]

    def _record(self, endpoint: RpcEndpoint, success: bool, elapsed: float, error_type: str = None):
        stats = self.stats_by_endpoint[endpoint.url]
        stats.total_requests += 1
        if success:
            stats.successful_requests += 1
            stats.total_response_time += elapsed
            endpoint.success_count += 1
            if endpoint.error_count > 0:
                endpoint.error_count = max(0, endpoint.error_count - 1)
        else:
            stats.failed_requests += 1
            endpoint.error_count += 1
            endpoint.last_error_time = datetime.utcnow()
            if error_type:
                stats.errors_by_type[error_type] = stats.errors_by_type.get(error_type, 0) + 1

    def retry_delay(self, attempt: int) -> float:
        """Delay before attempt `attempt + 1`."""
        return self.base_delay * (2 ** (attempt - 1))

    async def rpc(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Make a resilient JSON-RPC request.

        Raises:
            TransientRemoteError: after the attempt budget is exhausted
            PermanentRemoteError: on the first permanent failure
        """
        last_error: Optional[RemoteError] = None

        for attempt in range(1, self.max_attempts + 1):
            endpoint = self._endpoint_for_attempt(attempt)
            start = time.monotonic()
            try:
                result = await self.transport.request(endpoint.url, method, params)
            except RemoteError as e:
                self._record(endpoint, False, time.monotonic() - start, type(e).__name__)
                if not e.transient:
                    self.logger.debug(
                        "Permanent RPC failure",
                        method=method,
                        endpoint=endpoint.url,
                        error=e.message
                    )
                    raise
                last_error = e
                self.logger.warning(
                    "Transient RPC failure",
                    method=method,
                    endpoint=endpoint.url,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=e.message
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.retry_delay(attempt))
                continue

            self._record(endpoint, True, time.monotonic() - start)
            self._healthy_index = self.endpoints.index(endpoint)
            if attempt > 1:
                self.logger.info(
                    "Request succeeded after retries",
                    method=method,
                    endpoint=endpoint.url,
                    attempt=attempt
                )
            return result

        raise TransientRemoteError(
            f"{method} failed after {self.max_attempts} attempts: {last_error.message}",
            {"method": method, "attempts": self.max_attempts}
        )

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        """Raw eth_call returning hex data."""
        target = EvmValidator.normalize_address(to)
        return await self.rpc("eth_call", [{"to": target, "data": data}, block])

    async def call(self, request: ReadRequest, block: str = "latest") -> Any:
        """Execute one contract read and decode its result."""
        raw = await self.eth_call(request.contract, request.encode(), block)
        return request.function.decode_output(raw)

    async def block_number(self) -> int:
        return int(await self.rpc("eth_blockNumber"), 16)

    async def get_block(self, tag: str = "latest") -> Dict[str, Any]:
        block = await self.rpc("eth_getBlockByNumber", [tag, False])
        if not block:
            raise TransientRemoteError(f"Block {tag} not available yet", {"block": tag})
        return block

    async def get_logs(self, log_filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self.rpc("eth_getLogs", [log_filter]) or []

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.rpc("eth_getTransactionReceipt", [tx_hash])

    def get_stats(self) -> Dict[str, Any]:
        return {
            "healthy_endpoint": self.endpoints[self._healthy_index].url,
            "endpoints": [
                {
                    "url": ep.url,
                    "priority": ep.priority,
                    "error_count": ep.error_count,
                    "success_rate": round(self.stats_by_endpoint[ep.url].success_rate, 3),
                    "avg_response_time": round(self.stats_by_endpoint[ep.url].average_response_time, 3),
                    "errors_by_type": dict(self.stats_by_endpoint[ep.url].errors_by_type),
                }
                for ep in self.endpoints
            ],
        }

    async def close(self):
        try:
            await self.transport.close()
        except Exception as e:
            self.logger.warning("Error closing RPC transport", error=str(e))
        self.logger.info("Remote reader closed")
