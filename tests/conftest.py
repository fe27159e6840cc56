"""
Shared fixtures: an in-memory Redis, a fake chain behind a JSON-RPC
transport, and a fake wallet.
"""

import fnmatch
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from eth_abi import decode, encode
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, keccak

from cubesync.cache.cache_keys import CacheKeyBuilder
from cubesync.cache.cache_service import LocalStateCache
from cubesync.chain.abi import ContractFunction
from cubesync.chain.contracts import CoreABI, ERC20ABI, ERC721ABI, Multicall3ABI
from cubesync.core.errors import classify_rpc_error
from cubesync.events.refresh_bus import RefreshBus
from cubesync.services.batch_reader import BatchAggregator
from cubesync.services.remote_reader import ResilientReader
from cubesync.utils.validation import SecurityGuard


CHAIN_ID = 10143
CORE = "0x1111111111111111111111111111111111111111"
READER = "0x2222222222222222222222222222222222222222"
NFT = "0x3333333333333333333333333333333333333333"
OCTA = "0x4444444444444444444444444444444444444444"
OCTAA = "0x5555555555555555555555555555555555555555"
MULTICALL = "0xcA11bde05977b3631167028862bE2a173976CA11"
USER = "0x" + "aa" * 20
OTHER = "0x" + "bb" * 20
ENDPOINTS = ["http://rpc-primary", "http://rpc-backup"]


class Revert(Exception):
    """Raised by fake contract handlers to simulate a revert."""


class UserRejectedRequestError(Exception):
    """Same class name wallets use for a declined signature."""


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedisClient:
    """Dict-backed stand-in for RedisClient."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[int]] = {}
        self.fail = False

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    async def health_check(self):
        return {"status": "healthy", "ping_ms": 0.1}

    async def get(self, key: str) -> Optional[str]:
        if self.fail:
            return None
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False) -> bool:
        if self.fail:
            return False
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def keys(self, pattern: str = "*") -> List[str]:
        return [k for k in self.store if fnmatch.fnmatchcase(k, pattern)]


def selector_hex(function: ContractFunction) -> str:
    return encode_hex(function_signature_to_4byte_selector(function.signature))


class FakeChain:
    """Contract handlers, logs and receipts answering JSON-RPC methods."""

    def __init__(self):
        self.handlers: Dict[Tuple[str, str], Tuple[ContractFunction, Callable]] = {}
        self.tx_hooks: Dict[Tuple[str, str], Tuple[ContractFunction, Callable]] = {}
        self.logs: List[Dict[str, Any]] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.block_number = 1_000_000
        self.timestamp = 1_700_000_000
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.nft_approvals: Dict[int, str] = {}

        self.register(MULTICALL, Multicall3ABI.AGGREGATE3, self._aggregate3)
        for token in (OCTA, OCTAA):
            self.register(token, ERC20ABI.ALLOWANCE, self._allowance_of(token))
            self.on_tx(token, ERC20ABI.APPROVE, self._approve_of(token))
        self.register(NFT, ERC721ABI.GET_APPROVED, lambda token_id: self.nft_approvals.get(token_id, "0x" + "00" * 20))
        self.register(NFT, ERC721ABI.IS_APPROVED_FOR_ALL, lambda owner, operator: False)
        self.on_tx(NFT, ERC721ABI.APPROVE, lambda operator, token_id: self.nft_approvals.__setitem__(token_id, operator))

    def register(self, address: str, function: ContractFunction, handler: Callable) -> None:
        self.handlers[(address.lower(), selector_hex(function))] = (function, handler)

    def on_tx(self, address: str, function: ContractFunction, hook: Callable) -> None:
        self.tx_hooks[(address.lower(), selector_hex(function))] = (function, hook)

    def set_allowance(self, token: str, owner: str, spender: str, amount: int) -> None:
        self.allowances[(token.lower(), owner.lower(), spender.lower())] = amount

    def _allowance_of(self, token: str):
        def handler(owner, spender):
            return self.allowances.get((token.lower(), owner.lower(), spender.lower()), 0)
        return handler

    def _approve_of(self, token: str):
        def hook(spender, amount, sender=None):
            self.set_allowance(token, sender, spender, amount)
        return hook

    def _dispatch(self, to: str, data: str) -> bytes:
        key = (to.lower(), data[:10].lower())
        if key not in self.handlers:
            raise Revert(f"no handler for {key}")
        function, handler = self.handlers[key]
        args = decode(list(function.inputs), decode_hex(data)[4:]) if function.inputs else ()
        result = handler(*args)
        values = [result] if len(function.outputs) == 1 else list(result)
        return encode(list(function.outputs), values)

    def _aggregate3(self, calls):
        results = []
        for target, _allow_failure, call_data in calls:
            try:
                results.append((True, self._dispatch(target, encode_hex(call_data))))
            except Revert:
                results.append((False, b""))
        return results

    def eth_call(self, to: str, data: str) -> str:
        try:
            return encode_hex(self._dispatch(to, data))
        except Revert as e:
            raise classify_rpc_error(3, f"execution reverted: {e}")

    def apply_transaction(self, tx: Dict[str, Any]) -> None:
        key = (tx["to"].lower(), tx["data"][:10].lower())
        if key not in self.tx_hooks:
            return
        function, hook = self.tx_hooks[key]
        args = decode(list(function.inputs), decode_hex(tx["data"])[4:]) if function.inputs else ()
        if function is ERC20ABI.APPROVE:
            hook(*args, sender=tx["from"])
        else:
            hook(*args)

    def add_burn_log(self, token_id: int, owner: str, amount: int, claim_at: int, wait: int,
                     block: int, index: int = 0) -> None:
        event = CoreABI.BURN_SCHEDULED
        self.logs.append({
            "address": CORE,
            "topics": [
                event.topic,
                encode_hex(encode(["uint256"], [token_id])),
                encode_hex(encode(["address"], [owner])),
            ],
            "data": encode_hex(encode(["uint256", "uint256", "uint32"], [amount, claim_at, wait])),
            "blockNumber": hex(block),
            "logIndex": hex(index),
        })

    def handle(self, method: str, params: List[Any]) -> Any:
        if method == "eth_call":
            return self.eth_call(params[0]["to"], params[0]["data"])
        if method == "eth_blockNumber":
            return hex(self.block_number)
        if method == "eth_getBlockByNumber":
            return {"number": hex(self.block_number), "timestamp": hex(self.timestamp)}
        if method == "eth_getLogs":
            return self._filter_logs(params[0])
        if method == "eth_getTransactionReceipt":
            return self.receipts.get(params[0])
        raise classify_rpc_error(-32601, f"method {method} not supported")

    def _filter_logs(self, log_filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        from_block = int(log_filter.get("fromBlock", "0x0"), 16)
        to_block = int(log_filter.get("toBlock", hex(self.block_number)), 16)
        topics = log_filter.get("topics") or []
        matched = []
        for log in self.logs:
            block = int(log["blockNumber"], 16)
            if not from_block <= block <= to_block:
                continue
            if log["address"].lower() != str(log_filter.get("address", log["address"])).lower():
                continue
            if all(t is None or log["topics"][i].lower() == t.lower() for i, t in enumerate(topics)):
                matched.append(log)
        return matched


class FakeTransport:
    """JSON-RPC transport backed by a FakeChain, with injectable failures."""

    def __init__(self, chain: FakeChain):
        self.chain = chain
        self.calls: List[Tuple[str, str, List[Any]]] = []
        self.failures: List[Exception] = []
        self.fail_methods: Dict[str, Exception] = {}
        self.closed = False

    async def request(self, url: str, method: str, params: Optional[List[Any]] = None) -> Any:
        params = params or []
        self.calls.append((url, method, params))
        if self.failures:
            raise self.failures.pop(0)
        if method in self.fail_methods:
            raise self.fail_methods[method]
        return self.chain.handle(method, params)

    async def close(self) -> None:
        self.closed = True

    def count(self, method: str) -> int:
        return sum(1 for _, m, _ in self.calls if m == method)


class FakeWallet:
    """Signer that mines every transaction immediately on the fake chain."""

    def __init__(self, chain: FakeChain, address: Optional[str] = USER, chain_id: int = CHAIN_ID):
        self.chain = chain
        self.address = address
        self.chain_id = chain_id
        self.sent: List[Dict[str, Any]] = []
        self.switch_requests: List[int] = []
        self.accept_switch = True
        self.reject = False
        self.revert_reasons: Dict[str, str] = {}

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def switch_chain(self, chain_id: int) -> None:
        self.switch_requests.append(chain_id)
        if self.accept_switch:
            self.chain_id = chain_id

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        if self.reject:
            raise UserRejectedRequestError("User rejected the request.")
        self.sent.append(tx)
        tx_hash = encode_hex(keccak(text=f"tx-{len(self.sent)}"))
        reason = self.revert_reasons.get(tx["data"][:10].lower())
        if reason is None:
            self.chain.apply_transaction(tx)
            self.chain.receipts[tx_hash] = {"status": "0x1", "blockNumber": hex(self.chain.block_number)}
        else:
            self.chain.receipts[tx_hash] = {
                "status": "0x0",
                "blockNumber": hex(self.chain.block_number),
                "revertReason": reason,
            }
        return tx_hash

    def revert(self, function: ContractFunction, reason: str) -> None:
        self.revert_reasons[selector_hex(function)] = reason


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def transport(chain):
    return FakeTransport(chain)


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def reader(transport, sleeper):
    return ResilientReader(transport, ENDPOINTS, max_attempts=3, base_delay=2.0, sleep=sleeper)


@pytest.fixture
def aggregator(reader):
    return BatchAggregator(reader, multicall_address=MULTICALL)


@pytest.fixture
def redis_client():
    return FakeRedisClient()


@pytest.fixture
def cache(redis_client, clock):
    return LocalStateCache(redis_client, CacheKeyBuilder(prefix="test:"), clock=clock)


@pytest.fixture
def bus():
    return RefreshBus()


@pytest.fixture
def wallet(chain):
    return FakeWallet(chain)


@pytest.fixture
def guard():
    return SecurityGuard(CHAIN_ID, [CORE, READER, NFT, OCTA, OCTAA])
