"""
Test batched reads: multicall packing, order, partial failure and fallback.
"""

import pytest

from cubesync.chain.contracts import ReaderABI
from cubesync.core.exceptions import PermanentRemoteError, TransientRemoteError
from cubesync.models.common import ReadRequest
from cubesync.services.batch_reader import BatchAggregator

from conftest import READER, USER, Revert


def summary(token_id):
    if token_id == 3:
        raise Revert("nonexistent token")
    return (USER, True, True, 2, 3, 1, False, 100, 200, 10 ** 20, 0, 0)


def summary_requests(count):
    return [ReadRequest(READER, ReaderABI.GET_NFT_SUMMARY, (i,)) for i in range(1, count + 1)]


@pytest.fixture(autouse=True)
def register_summary(chain):
    chain.register(READER, ReaderABI.GET_NFT_SUMMARY, summary)


def assert_item_three_failed(results):
    assert len(results) == 5
    assert [r.ok for r in results] == [True, True, False, True, True]
    assert isinstance(results[2].error, PermanentRemoteError)
    assert results[0].value["currentStars"] == 3
    assert results[4].value["lockedOcta"] == 10 ** 20


@pytest.mark.asyncio
async def test_multicall_partial_failure_keeps_order(aggregator, transport):
    results = await aggregator.batch_read(summary_requests(5))

    assert_item_three_failed(results)
    assert transport.count("eth_call") == 1


@pytest.mark.asyncio
async def test_individual_reads_partial_failure_keeps_order(reader, transport):
    aggregator = BatchAggregator(reader, multicall_address=None)

    results = await aggregator.batch_read(summary_requests(5))

    assert_item_three_failed(results)
    assert transport.count("eth_call") == 5


@pytest.mark.asyncio
async def test_multicall_failure_falls_back_to_individual_reads(aggregator, transport):
    transport.failures = [TransientRemoteError("HTTP 503")] * 3

    results = await aggregator.batch_read(summary_requests(5))

    assert_item_three_failed(results)
    # 3 failed multicall attempts, then one read per item
    assert transport.count("eth_call") == 3 + 5


@pytest.mark.asyncio
async def test_multicall_chunks_of_32(aggregator, transport):
    results = await aggregator.batch_read(summary_requests(40))

    assert len(results) == 40
    assert transport.count("eth_call") == 2


def test_individual_chunk_size_without_multicall(reader):
    aggregator = BatchAggregator(reader)
    assert aggregator.chunk_size == 16
    assert BatchAggregator(reader, multicall_address="0xcA11bde05977b3631167028862bE2a173976CA11").chunk_size == 32


@pytest.mark.asyncio
async def test_bad_arguments_fail_only_that_item(aggregator):
    requests = summary_requests(2) + [ReadRequest(READER, ReaderABI.GET_NFT_SUMMARY, (-1,))]

    results = await aggregator.batch_read(requests)

    assert [r.ok for r in results] == [True, True, False]


@pytest.mark.asyncio
async def test_read_values_replaces_failures_with_none(aggregator):
    values = await aggregator.read_values(summary_requests(4))

    assert values[2] is None
    assert values[3]["owner"].lower() == USER
