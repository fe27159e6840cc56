"""
Batch aggregator: groups independent contract reads into Multicall3
round trips, falling back to bounded-concurrency individual reads.
"""

import asyncio
from typing import Any, List, Optional, Sequence, Tuple

import structlog
from eth_utils import decode_hex

from cubesync.chain.contracts import Multicall3ABI
from cubesync.core.exceptions import CubeSyncException, PermanentRemoteError, RemoteError
from cubesync.models.common import ReadRequest, ReadResult
from cubesync.utils.validation import EvmValidator
from .remote_reader import ResilientReader


logger = structlog.get_logger(__name__)


class BatchAggregator:
    """Order-preserving batched reads with per-item failures."""

    def __init__(
        self,
        reader: ResilientReader,
        multicall_address: Optional[str] = None,
        multicall_chunk_size: int = 32,
        individual_chunk_size: int = 16,
        concurrency: int = 4,
    ):
        self.logger = logger.bind(service="batch_aggregator")
        self.reader = reader
        self.multicall_address = (
            EvmValidator.normalize_address(multicall_address) if multicall_address else None
        )
        self.multicall_chunk_size = multicall_chunk_size
        self.individual_chunk_size = individual_chunk_size
        self.concurrency = max(1, concurrency)

    @property
    def chunk_size(self) -> int:
        return self.multicall_chunk_size if self.multicall_address else self.individual_chunk_size

    async def batch_read(self, requests: Sequence[ReadRequest]) -> List[ReadResult]:
        """
        Read every request and return results in the same order.

        Never raises for a failing item; the item's result carries the error.
        Chunks run one after another.
        """
        results: List[ReadResult] = []
        size = self.chunk_size

        for start in range(0, len(requests), size):
            chunk = list(requests[start:start + size])
            if self.multicall_address:
                try:
                    results.extend(await self._read_multicall(chunk))
                    continue
                except RemoteError as e:
                    self.logger.warning(
                        "Multicall failed, falling back to individual reads",
                        chunk_start=start,
                        chunk_size=len(chunk),
                        error=e.message
                    )
            results.extend(await self._read_individual(chunk))

        return results

    async def _read_multicall(self, chunk: List[ReadRequest]) -> List[ReadResult]:
        results: List[Optional[ReadResult]] = [None] * len(chunk)
        calls: List[Tuple[str, bool, bytes]] = []
        positions: List[int] = []

        for index, request in enumerate(chunk):
            try:
                target = EvmValidator.normalize_address(request.contract)
                calldata = decode_hex(request.encode())
            except CubeSyncException as e:
                results[index] = ReadResult.failure(e)
                continue
            calls.append((target, True, calldata))
            positions.append(index)

        if calls:
            data = Multicall3ABI.AGGREGATE3.encode_call([calls])
            raw = await self.reader.eth_call(self.multicall_address, data)
            returned = Multicall3ABI.AGGREGATE3.decode_output(raw)

            if len(returned) != len(calls):
                raise PermanentRemoteError(
                    f"Multicall returned {len(returned)} results for {len(calls)} calls"
                )

            for index, (success, return_data) in zip(positions, returned):
                results[index] = self._decode_item(chunk[index], success, return_data)

        return results

    @staticmethod
    def _decode_item(request: ReadRequest, success: bool, return_data: bytes) -> ReadResult:
        if not success:
            return ReadResult.failure(
                PermanentRemoteError("execution reverted", {"call": request.label})
            )
        try:
            return ReadResult.success(request.function.decode_output(return_data))
        except PermanentRemoteError as e:
            return ReadResult.failure(e)

    async def _read_individual(self, chunk: List[ReadRequest]) -> List[ReadResult]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def read_one(request: ReadRequest) -> ReadResult:
            async with semaphore:
                try:
                    return ReadResult.success(await self.reader.call(request))
                except CubeSyncException as e:
                    return ReadResult.failure(e)

        return list(await asyncio.gather(*(read_one(r) for r in chunk)))

    async def read_values(self, requests: Sequence[ReadRequest]) -> List[Any]:
        """Like batch_read but with None in place of failed items."""
        return [r.value if r.ok else None for r in await self.batch_read(requests)]
