"""
Test the game actions built on the orchestrator.
"""

import pytest
from eth_abi import decode
from eth_utils import decode_hex

from cubesync.chain.contracts import CoreABI, ERC20ABI, ERC721ABI, ReaderABI
from cubesync.core.exceptions import NotReadyError, SecurityValidationError
from cubesync.services.burn_tracker import BurnTracker
from cubesync.services.game_actions import BREED_GAS_LIMIT, GameActions
from cubesync.services.graveyard_gate import GraveyardGate
from cubesync.services.transaction_orchestrator import TransactionOrchestrator

from conftest import CHAIN_ID, CORE, NFT, OCTA, OCTAA, READER, USER, selector_hex


@pytest.fixture
def graveyard(chain):
    state = {"tokens": []}
    chain.register(
        READER,
        ReaderABI.VIEW_GRAVE_WINDOW,
        lambda offset, limit: (state["tokens"][offset:offset + limit], len(state["tokens"])),
    )
    return state


@pytest.fixture
def quote(chain):
    costs = {"octa": 1000, "octaa": 0}
    chain.register(
        READER,
        ReaderABI.GET_BREED_QUOTE,
        lambda: (costs["octa"], costs["octaa"], 0, 0, 0),
    )
    return costs


@pytest.fixture
def gate(reader, cache, bus, clock, graveyard):
    return GraveyardGate(reader, cache, bus, READER, CHAIN_ID, clock=clock)


@pytest.fixture
def actions(wallet, reader, aggregator, cache, bus, guard, sleeper, gate, clock):
    orchestrator = TransactionOrchestrator(wallet, reader, cache, bus, guard, sleep=sleeper)
    tracker = BurnTracker(reader, aggregator, cache, CORE, READER, CHAIN_ID, clock=clock)
    return GameActions(orchestrator, reader, gate, tracker, CORE, READER, NFT, OCTA, OCTAA)


def sent_functions(wallet):
    return [tx["data"][:10] for tx in wallet.sent]


@pytest.mark.asyncio
async def test_ping_returns_hash(actions, wallet):
    tx_hash = await actions.ping("42")

    assert tx_hash.startswith("0x")
    assert sent_functions(wallet) == [selector_hex(CoreABI.PING)]


@pytest.mark.asyncio
async def test_burn_approves_nft_first(actions, wallet, chain):
    await actions.burn(7, 120)

    assert sent_functions(wallet) == [selector_hex(ERC721ABI.APPROVE), selector_hex(CoreABI.BURN_NFT)]
    assert chain.nft_approvals[7].lower() == CORE


@pytest.mark.asyncio
async def test_burn_rejects_unknown_wait_period(actions, wallet):
    with pytest.raises(SecurityValidationError):
        await actions.burn(7, 60)

    assert wallet.sent == []


@pytest.mark.asyncio
async def test_breed_requires_ready_graveyard(actions, gate, quote, wallet):
    await gate.refresh()

    with pytest.raises(NotReadyError):
        await actions.breed(1, 2)

    assert wallet.sent == []


@pytest.mark.asyncio
async def test_breed_rejects_same_parent(actions, gate, graveyard):
    graveyard["tokens"] = [9]
    await gate.refresh()

    with pytest.raises(SecurityValidationError):
        await actions.breed(3, 3)


@pytest.mark.asyncio
async def test_breed_approves_quoted_costs(actions, gate, graveyard, quote, wallet, chain):
    graveyard["tokens"] = [9]
    quote["octaa"] = 200
    await gate.refresh()

    await actions.breed(1, 2)

    assert sent_functions(wallet) == [
        selector_hex(ERC20ABI.APPROVE),
        selector_hex(ERC20ABI.APPROVE),
        selector_hex(CoreABI.REQUEST_BREED),
    ]
    assert chain.allowances[(OCTA.lower(), USER, CORE)] == 1100
    assert chain.allowances[(OCTAA.lower(), USER, CORE)] == 220

    breed_tx = wallet.sent[-1]
    assert int(breed_tx["gas"], 16) == BREED_GAS_LIMIT
    parent1, parent2, _seed = decode(["uint256", "uint256", "uint256"], decode_hex(breed_tx["data"])[4:])
    assert (parent1, parent2) == (1, 2)


@pytest.mark.asyncio
async def test_breed_skips_zero_cost_approval(actions, gate, graveyard, quote, wallet):
    graveyard["tokens"] = [9]
    await gate.refresh()

    await actions.breed(1, 2)

    assert sent_functions(wallet).count(selector_hex(ERC20ABI.APPROVE)) == 1


@pytest.mark.asyncio
async def test_breed_on_wrong_chain_makes_no_reads(actions, gate, graveyard, quote, wallet, transport):
    graveyard["tokens"] = [9]
    await gate.refresh()
    transport.calls.clear()
    wallet.chain_id = 1
    wallet.accept_switch = False

    with pytest.raises(SecurityValidationError):
        await actions.breed(1, 2)

    assert transport.calls == []
    assert wallet.sent == []
