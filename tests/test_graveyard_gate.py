"""
Test the graveyard readiness gate.
"""

import asyncio

import pytest

from cubesync.chain.contracts import ReaderABI
from cubesync.core.exceptions import NotReadyError, TransientRemoteError
from cubesync.models.graveyard import GateState, GraveyardWindow
from cubesync.services.graveyard_gate import GraveyardGate

from conftest import CHAIN_ID, READER


class Graveyard:
    """Fake ring buffer behind viewGraveWindow."""

    def __init__(self, tokens):
        self.tokens = list(tokens)
        self.requests = []

    def __call__(self, offset, limit):
        self.requests.append((offset, limit))
        return self.tokens[offset:offset + limit], len(self.tokens)


@pytest.fixture
def make_gate(reader, cache, bus, clock):
    def factory(**kwargs):
        return GraveyardGate(reader, cache, bus, READER, CHAIN_ID, clock=clock, **kwargs)
    return factory


@pytest.mark.asyncio
async def test_empty_graveyard_is_not_ready(chain, make_gate, transport):
    graveyard = Graveyard([])
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, graveyard)
    gate = make_gate()

    snapshot = await gate.refresh()

    assert snapshot.state == GateState.NOT_READY
    assert gate.ready is False
    # One window read and nothing else
    assert graveyard.requests == [(0, 50)]
    assert transport.count("eth_call") == 1


@pytest.mark.asyncio
async def test_single_token_makes_gate_ready(chain, make_gate):
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, Graveyard([42]))
    gate = make_gate()

    await gate.refresh()

    assert gate.ready
    assert gate.snapshot.window.token_ids == [42]


@pytest.mark.asyncio
async def test_pages_until_cap(chain, make_gate):
    graveyard = Graveyard(range(1, 301))
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, graveyard)
    gate = make_gate()

    await gate.refresh()

    window = gate.snapshot.window
    assert len(window.token_ids) == 200
    assert window.total_count == 300
    assert [offset for offset, _ in graveyard.requests] == [0, 50, 100, 150]


@pytest.mark.asyncio
async def test_pages_until_remote_set_exhausted(chain, make_gate):
    graveyard = Graveyard(range(1, 71))
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, graveyard)
    gate = make_gate()

    await gate.refresh()

    assert len(gate.snapshot.window.token_ids) == 70
    assert len(graveyard.requests) == 2


@pytest.mark.asyncio
async def test_stops_on_empty_page(chain, make_gate):
    def shrinking(offset, limit):
        # total claims more tokens than the buffer actually returns
        return ([1, 2] if offset == 0 else []), 10

    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, shrinking)
    gate = make_gate()

    await gate.refresh()

    assert gate.snapshot.window.token_ids == [1, 2]


@pytest.mark.asyncio
async def test_two_immediate_refreshes_agree(chain, make_gate):
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, Graveyard([5, 6]))
    gate = make_gate()

    first = (await gate.refresh()).ready
    second = (await gate.refresh()).ready

    assert first == second is True


@pytest.mark.asyncio
async def test_failure_keeps_prior_result(chain, make_gate, transport):
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, Graveyard([9]))
    gate = make_gate()
    await gate.refresh()

    transport.fail_methods["eth_call"] = TransientRemoteError("HTTP 502")
    snapshot = await gate.refresh()

    assert snapshot.ready
    assert snapshot.is_stale
    assert snapshot.state == GateState.READY
    assert "502" in snapshot.error


@pytest.mark.asyncio
async def test_failure_falls_back_to_persisted_entry(make_gate, transport, cache):
    gate = make_gate()
    await cache.put(gate.cache_key, GraveyardWindow([3, 4], 2).to_dict())

    transport.fail_methods["eth_call"] = TransientRemoteError("timeout")
    snapshot = await gate.refresh()

    assert snapshot.ready
    assert snapshot.is_stale
    assert snapshot.window.token_ids == [3, 4]


@pytest.mark.asyncio
async def test_failure_without_prior_result_is_error(make_gate, transport):
    transport.fail_methods["eth_call"] = TransientRemoteError("timeout")
    gate = make_gate()

    snapshot = await gate.refresh()

    assert snapshot.state == GateState.ERROR
    assert snapshot.ready is False
    with pytest.raises(NotReadyError):
        gate.require_ready()


@pytest.mark.asyncio
async def test_bus_event_forces_repoll(chain, make_gate, bus):
    graveyard = Graveyard([])
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, graveyard)
    gate = make_gate()
    gate.start()
    await asyncio.sleep(0.01)
    assert gate.ready is False

    graveyard.tokens = [77]
    bus.publish("burn")
    await asyncio.sleep(0.01)

    assert gate.ready is True
    await gate.stop()
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_bus_event_during_poll_forces_another_poll(chain, make_gate, bus):
    graveyard = Graveyard([])
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, graveyard)
    gate = make_gate()
    started = asyncio.Event()
    release = asyncio.Event()
    original = gate.fetch_window
    fetches = []

    async def held_fetch():
        fetches.append(1)
        if len(fetches) == 1:
            started.set()
            await release.wait()
        return await original()

    gate.fetch_window = held_fetch
    gate.start()
    await started.wait()

    # a write confirms while the first poll is still in flight
    graveyard.tokens = [12]
    bus.publish("burn")
    release.set()
    await asyncio.sleep(0.01)

    assert len(fetches) == 2
    assert gate.ready is True
    await gate.stop()


@pytest.mark.asyncio
async def test_result_arriving_after_stop_is_discarded(chain, make_gate):
    started = asyncio.Event()
    release = asyncio.Event()
    gate = make_gate()
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, lambda offset, limit: ([1], 1))

    original = gate.fetch_window

    async def slow_fetch():
        started.set()
        await release.wait()
        return await original()

    gate.fetch_window = slow_fetch
    gate.start()
    await started.wait()
    refresh = asyncio.create_task(gate.refresh())
    await asyncio.sleep(0)

    await gate.stop()
    release.set()
    await refresh

    assert gate.snapshot.window is None
    assert gate.ready is False


@pytest.mark.asyncio
async def test_read_model(chain, make_gate):
    chain.register(READER, ReaderABI.VIEW_GRAVE_WINDOW, Graveyard([1, 2, 3]))
    gate = make_gate()
    await gate.refresh()

    model = gate.read_model()

    assert model.data["ready"] is True
    assert model.data["total_count"] == 3
    assert model.is_loading is False
    assert model.error is None
