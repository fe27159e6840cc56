"""
Test the polling loop timing and control.
"""

import asyncio
import random

import pytest

from cubesync.services.polling import PollingLoop


async def noop():
    return None


def make_loop(func=noop, **kwargs):
    params = dict(base_interval=45.0, jitter=2.0, backoff_start=5.0, backoff_max=120.0, min_interval=5.0)
    params.update(kwargs)
    return PollingLoop("test", func, rng=random.Random(7), **params)


def test_delay_is_base_plus_jitter():
    loop = make_loop()
    for _ in range(50):
        assert 43.0 <= loop.compute_delay() <= 47.0


def test_backoff_doubles_caps_and_resets():
    loop = make_loop(jitter=0.0)
    steps = []
    for _ in range(7):
        loop.record_failure(RuntimeError("x"))
        steps.append(loop.backoff)

    assert steps == [5.0, 10.0, 20.0, 40.0, 80.0, 120.0, 120.0]
    assert loop.compute_delay() == 165.0

    loop.record_success()
    assert loop.compute_delay() == 45.0


def test_minimum_delay():
    loop = make_loop(base_interval=1.0, jitter=0.0)
    assert loop.compute_delay() == 5.0


@pytest.mark.asyncio
async def test_run_once_records_failure():
    async def failing():
        raise RuntimeError("rpc down")

    loop = make_loop(failing)

    assert await loop.run_once() is False
    assert loop.error_count == 1
    assert loop.backoff == 5.0
    assert loop.last_error == "rpc down"


@pytest.mark.asyncio
async def test_trigger_now_polls_immediately():
    runs = []

    async def poll():
        runs.append(1)

    loop = make_loop(poll)
    loop.start()
    await asyncio.sleep(0.01)
    assert len(runs) == 1

    loop.trigger_now()
    await asyncio.sleep(0.01)
    assert len(runs) == 2

    await loop.stop()
    assert not loop.active


@pytest.mark.asyncio
async def test_trigger_during_poll_is_not_lost():
    started = asyncio.Event()
    release = asyncio.Event()
    runs = []

    async def poll():
        runs.append(1)
        if len(runs) == 1:
            started.set()
            await release.wait()

    loop = make_loop(poll)
    loop.start()
    await started.wait()

    loop.trigger_now()
    release.set()
    await asyncio.sleep(0.01)

    assert len(runs) == 2
    await loop.stop()


@pytest.mark.asyncio
async def test_cancel_handle_stops_loop():
    loop = make_loop()
    handle = loop.start()
    await asyncio.sleep(0)

    handle.cancel()
    await asyncio.sleep(0.01)

    assert not loop.active
    loop.trigger_now()
    await loop.stop()


@pytest.mark.asyncio
async def test_stale_handle_does_not_cancel_new_run():
    loop = make_loop()
    old = loop.start()
    await loop.stop()
    loop.start()

    old.cancel()

    assert loop.active
    await loop.stop()
