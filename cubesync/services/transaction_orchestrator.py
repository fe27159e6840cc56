"""
Transaction orchestrator for approval -> approval -> action sequences.

Steps run strictly in order for one invocation:
1. Local guards (wallet, chain, allow-list, numeric inputs), no network
2. Each approval: read the allowance, approve required + buffer if short,
   wait for the receipt
3. The primary action, then its receipt
4. Invalidate the action's cache features, publish a refresh event

Any rejection or revert aborts the remaining steps. Confirmed steps are not
rolled back. Writes are never retried here.
"""

import asyncio
import math
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Union

import structlog

from cubesync.cache.cache_service import LocalStateCache
from cubesync.chain.contracts import ERC20ABI, ERC721ABI
from cubesync.core.errors import categorize_revert, classify_write_error
from cubesync.core.exceptions import (
    ConfirmationTimeoutError,
    RemoteError,
    SecurityValidationError,
    TransactionRevertedError,
    TransientRemoteError,
)
from cubesync.events.refresh_bus import RefreshBus
from cubesync.models.common import AccountContext, ReadRequest
from cubesync.models.transaction import (
    ActionStep,
    ApprovalStep,
    NftApprovalStep,
    PendingTransaction,
    TxStatus,
)
from cubesync.utils.validation import EvmValidator, SecurityGuard
from .remote_reader import ResilientReader


logger = structlog.get_logger(__name__)

Step = Union[ApprovalStep, NftApprovalStep, ActionStep]


class WalletProvider(Protocol):
    """Externally supplied signer."""

    address: Optional[str]

    async def get_chain_id(self) -> int: ...

    async def switch_chain(self, chain_id: int) -> None: ...

    async def send_transaction(self, tx: Dict[str, Any]) -> str: ...


class TransactionOrchestrator:
    """Sequences writes for one user action at a time."""

    def __init__(
        self,
        wallet: WalletProvider,
        reader: ResilientReader,
        cache: LocalStateCache,
        bus: RefreshBus,
        guard: SecurityGuard,
        auto_switch_chain: bool = True,
        approval_buffer_percent: int = 10,
        receipt_poll_interval: float = 2.0,
        receipt_timeout: float = 120.0,
        on_report: Optional[Callable[[PendingTransaction], None]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.logger = logger.bind(service="transaction_orchestrator")
        self.wallet = wallet
        self.reader = reader
        self.cache = cache
        self.bus = bus
        self.guard = guard
        self.auto_switch_chain = auto_switch_chain
        self.approval_buffer_percent = approval_buffer_percent
        self.receipt_poll_interval = receipt_poll_interval
        self.receipt_timeout = receipt_timeout
        self.on_report = on_report
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.history: List[PendingTransaction] = []

    @property
    def chain_id(self) -> int:
        return self.guard.chain_id

    def approval_amount(self, required: int) -> int:
        """Required amount plus the rounding buffer. Never unlimited."""
        return required * (100 + self.approval_buffer_percent) // 100

    async def execute(self, steps: Sequence[Step]) -> PendingTransaction:
        """
        Run `steps` and return the confirmed pending transaction.

        Raises the classified error on failure after marking the pending
        transaction failed and reporting it once.
        """
        action = self._validate_structure(steps)
        pending = PendingTransaction(kind=action.kind)
        self.history.append(pending)

        async with self._lock:
            try:
                owner = await self._check_guards(steps)
                for step in steps[:-1]:
                    if isinstance(step, ApprovalStep):
                        await self._ensure_allowance(step, owner, pending)
                    else:
                        await self._ensure_nft_approval(step, owner, pending)

                tx = self._build_tx(
                    owner,
                    action.contract,
                    action.function.encode_call(action.args),
                    action.value,
                    action.gas,
                )
                pending.hash = await self._send(tx)
                pending.status = TxStatus.SUBMITTED
                self.logger.info("Action submitted", kind=action.kind.value, tx_hash=pending.hash)

                await self.wait_for_receipt(pending.hash)
            except Exception as e:
                error = e if isinstance(e, RemoteError) else classify_write_error(e, pending.hash)
                pending.status = TxStatus.FAILED
                pending.error = error
                self._report(pending)
                if error is e:
                    raise
                raise error from e

            pending.status = TxStatus.CONFIRMED
            await self._after_confirmation(action, AccountContext(owner, self.chain_id))
            self._report(pending)
            return pending

    def _validate_structure(self, steps: Sequence[Step]) -> ActionStep:
        if not steps:
            raise SecurityValidationError("No transaction steps given")
        actions = [s for s in steps if isinstance(s, ActionStep)]
        if len(actions) != 1 or not isinstance(steps[-1], ActionStep):
            raise SecurityValidationError(
                "Exactly one primary action is allowed and it must be last",
                {"actions": len(actions)}
            )
        for step in steps[:-1]:
            if not isinstance(step, (ApprovalStep, NftApprovalStep)):
                raise SecurityValidationError(f"Unsupported step: {type(step).__name__}")
        return actions[0]

    async def preflight(self, contracts: Iterable[str] = ()) -> str:
        """
        Wallet, chain and allow-list checks. Makes no remote reads.

        Actions that read chain state before building their steps call this
        first. Returns the checksummed owner.
        """
        address = getattr(self.wallet, "address", None)
        if not address:
            raise SecurityValidationError("Wallet not connected")
        owner = EvmValidator.normalize_address(address)

        chain_id = await self.wallet.get_chain_id()
        if chain_id != self.chain_id and self.auto_switch_chain:
            self.logger.info("Requesting chain switch", current=chain_id, target=self.chain_id)
            await self.wallet.switch_chain(self.chain_id)
            chain_id = await self.wallet.get_chain_id()
        self.guard.ensure_chain(chain_id)

        for contract in contracts:
            self.guard.ensure_allowed(contract)
        return owner

    async def _check_guards(self, steps: Sequence[Step]) -> str:
        """Local checks before any network call. Returns the checksummed owner."""
        owner = await self.preflight()

        for step in steps:
            if isinstance(step, ApprovalStep):
                self.guard.ensure_allowed(step.token)
                self.guard.ensure_allowed(step.spender)
                EvmValidator.parse_uint(step.amount, "amount")
            elif isinstance(step, NftApprovalStep):
                self.guard.ensure_allowed(step.nft)
                self.guard.ensure_allowed(step.operator)
                EvmValidator.parse_token_id(step.token_id)
            else:
                self.guard.ensure_allowed(step.contract)
                EvmValidator.parse_uint(step.value, "value")
                for arg in step.args:
                    if isinstance(arg, (int, str)) and not isinstance(arg, bool) and not EvmValidator.is_valid_address(arg):
                        EvmValidator.parse_uint(arg, "argument")
        return owner

    async def _ensure_allowance(self, step: ApprovalStep, owner: str, pending: PendingTransaction) -> None:
        token = EvmValidator.normalize_address(step.token)
        spender = EvmValidator.normalize_address(step.spender)
        current = await self.reader.call(ReadRequest(token, ERC20ABI.ALLOWANCE, (owner, spender)))

        if current >= step.amount:
            self.logger.debug(
                "Allowance sufficient, skipping approval",
                token=token,
                allowance=str(current),
                required=str(step.amount)
            )
            return

        amount = self.approval_amount(step.amount)
        tx_hash = await self._send(
            self._build_tx(owner, token, ERC20ABI.APPROVE.encode_call((spender, amount)))
        )
        pending.approvals_sent += 1
        self.logger.info("Approval submitted", token=token, amount=str(amount), tx_hash=tx_hash)
        await self.wait_for_receipt(tx_hash)

    async def _ensure_nft_approval(self, step: NftApprovalStep, owner: str, pending: PendingTransaction) -> None:
        nft = EvmValidator.normalize_address(step.nft)
        operator = EvmValidator.normalize_address(step.operator)

        approved = await self.reader.call(ReadRequest(nft, ERC721ABI.GET_APPROVED, (step.token_id,)))
        if str(approved).lower() == operator.lower():
            return
        if await self.reader.call(ReadRequest(nft, ERC721ABI.IS_APPROVED_FOR_ALL, (owner, operator))):
            return

        tx_hash = await self._send(
            self._build_tx(owner, nft, ERC721ABI.APPROVE.encode_call((operator, step.token_id)))
        )
        pending.approvals_sent += 1
        self.logger.info("NFT approval submitted", token_id=step.token_id, tx_hash=tx_hash)
        await self.wait_for_receipt(tx_hash)

    @staticmethod
    def _build_tx(owner: str, to: str, data: str, value: int = 0, gas: Optional[int] = None) -> Dict[str, Any]:
        tx = {
            "from": owner,
            "to": EvmValidator.normalize_address(to),
            "data": data,
            "value": hex(value),
        }
        if gas is not None:
            tx["gas"] = hex(gas)
        return tx

    async def _send(self, tx: Dict[str, Any]) -> str:
        tx_hash = await self.wallet.send_transaction(tx)
        if not isinstance(tx_hash, str) or not tx_hash.startswith("0x"):
            raise TransactionRevertedError(f"Wallet returned an invalid transaction hash: {tx_hash!r}")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """
        Poll for the receipt until mined or the timeout elapses.

        Raises:
            TransactionRevertedError: receipt status is 0
            ConfirmationTimeoutError: not mined in time
        """
        polls = max(1, math.ceil(self.receipt_timeout / self.receipt_poll_interval))

        for _ in range(polls):
            try:
                receipt = await self.reader.get_transaction_receipt(tx_hash)
            except TransientRemoteError as e:
                self.logger.warning("Receipt poll failed", tx_hash=tx_hash, error=e.message)
                receipt = None

            if receipt:
                if int(str(receipt.get("status", "0x0")), 16) == 1:
                    return receipt
                reason = receipt.get("revertReason") or "Transaction reverted on-chain"
                raise TransactionRevertedError(
                    reason=reason,
                    category=categorize_revert(reason),
                    tx_hash=tx_hash,
                    details={"block": receipt.get("blockNumber")}
                )
            await self._sleep(self.receipt_poll_interval)

        raise ConfirmationTimeoutError(tx_hash, self.receipt_timeout)

    async def _after_confirmation(self, action: ActionStep, account: AccountContext) -> None:
        if action.invalidates:
            await self.cache.invalidate_account(account, action.invalidates)
        self.bus.publish(action.kind.value, address=account.address)

    def _report(self, pending: PendingTransaction) -> None:
        """Report a terminal state once; later calls are no-ops."""
        if pending.reported:
            return
        pending.reported = True

        if pending.status == TxStatus.CONFIRMED:
            self.logger.info(
                "Transaction confirmed",
                kind=pending.kind.value,
                tx_hash=pending.hash,
                approvals=pending.approvals_sent
            )
        else:
            self.logger.error(
                "Transaction failed",
                kind=pending.kind.value,
                tx_hash=pending.hash,
                error=str(pending.error),
                code=getattr(pending.error, "code", None)
            )

        if self.on_report is not None:
            try:
                self.on_report(pending)
            except Exception as e:
                self.logger.error("Report callback failed", error=str(e))
