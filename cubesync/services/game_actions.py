"""
Imperative game actions exposed to the UI layer.

Every action goes through the orchestrator and returns the transaction hash
or raises a classified error.
"""

import secrets
from typing import List

import structlog

from cubesync.cache.invalidation import features_for
from cubesync.chain.contracts import CoreABI, ReaderABI
from cubesync.core.config import ChainConfig
from cubesync.core.exceptions import SecurityValidationError
from cubesync.models.common import AccountContext, ReadRequest
from cubesync.models.transaction import ActionStep, ApprovalStep, NftApprovalStep, TransactionKind
from cubesync.utils.validation import EvmValidator
from .burn_tracker import BurnTracker
from .graveyard_gate import GraveyardGate
from .remote_reader import ResilientReader
from .transaction_orchestrator import Step, TransactionOrchestrator


logger = structlog.get_logger(__name__)

BREED_GAS_LIMIT = 800_000


class GameActions:
    """ping / burn / claim / breed."""

    def __init__(
        self,
        orchestrator: TransactionOrchestrator,
        reader: ResilientReader,
        gate: GraveyardGate,
        tracker: BurnTracker,
        core_address: str,
        reader_address: str,
        nft_address: str,
        octa_address: str,
        octaa_address: str,
    ):
        self.logger = logger.bind(service="game_actions")
        self.orchestrator = orchestrator
        self.reader = reader
        self.gate = gate
        self.tracker = tracker
        self.core_address = core_address
        self.reader_address = reader_address
        self.nft_address = nft_address
        self.octa_address = octa_address
        self.octaa_address = octaa_address

    def _account(self) -> AccountContext:
        address = getattr(self.orchestrator.wallet, "address", None)
        if not address:
            raise SecurityValidationError("Wallet not connected")
        return AccountContext(EvmValidator.normalize_address(address), self.orchestrator.chain_id)

    async def ping(self, token_id) -> str:
        token_id = EvmValidator.parse_token_id(token_id)
        pending = await self.orchestrator.execute([
            ActionStep(
                kind=TransactionKind.PING,
                contract=self.core_address,
                function=CoreABI.PING,
                args=(token_id,),
                invalidates=features_for(TransactionKind.PING),
            )
        ])
        return pending.hash

    async def burn(self, token_id, wait_minutes: int) -> str:
        """Approve the NFT for the game contract if needed, then burn it."""
        token_id = EvmValidator.parse_token_id(token_id)
        if wait_minutes not in ChainConfig.BURN_WAIT_MINUTES:
            raise SecurityValidationError(
                f"Unsupported wait period: {wait_minutes}",
                {"allowed": list(ChainConfig.BURN_WAIT_MINUTES)}
            )

        pending = await self.orchestrator.execute([
            NftApprovalStep(nft=self.nft_address, operator=self.core_address, token_id=token_id),
            ActionStep(
                kind=TransactionKind.BURN,
                contract=self.core_address,
                function=CoreABI.BURN_NFT,
                args=(token_id, wait_minutes),
                invalidates=features_for(TransactionKind.BURN),
            ),
        ])
        return pending.hash

    async def claim(self, token_id) -> str:
        pending = await self.tracker.claim(self._account(), token_id, self.orchestrator)
        return pending.hash

    async def breed(self, parent1, parent2) -> str:
        """Breed two NFTs; requires a ready graveyard and covers the quoted costs."""
        parent1 = EvmValidator.parse_token_id(parent1)
        parent2 = EvmValidator.parse_token_id(parent2)
        if parent1 == parent2:
            raise SecurityValidationError("Parents must be different tokens", {"token_id": str(parent1)})
        await self.orchestrator.preflight((self.core_address, self.octa_address, self.octaa_address))
        self.gate.require_ready()

        quote = await self.reader.call(ReadRequest(self.reader_address, ReaderABI.GET_BREED_QUOTE))
        steps: List[Step] = []
        if quote["octaCost"] > 0:
            steps.append(ApprovalStep(self.octa_address, self.core_address, int(quote["octaCost"])))
        if quote["octaaCost"] > 0:
            steps.append(ApprovalStep(self.octaa_address, self.core_address, int(quote["octaaCost"])))
        steps.append(
            ActionStep(
                kind=TransactionKind.BREED,
                contract=self.core_address,
                function=CoreABI.REQUEST_BREED,
                args=(parent1, parent2, secrets.randbits(256)),
                gas=BREED_GAS_LIMIT,
                invalidates=features_for(TransactionKind.BREED),
            )
        )

        self.logger.info(
            "Breeding",
            parent1=parent1,
            parent2=parent2,
            octa_cost=str(quote["octaCost"]),
            octaa_cost=str(quote["octaaCost"])
        )
        pending = await self.orchestrator.execute(steps)
        return pending.hash
