"""
Remote reads, polling features and transaction orchestration.
"""

from .batch_reader import BatchAggregator
from .burn_tracker import BurnTracker
from .evm_client import EvmRpcClient
from .game_actions import GameActions
from .graveyard_gate import GraveyardGate
from .nft_state import NFTStateReader
from .polling import PollingLoop
from .remote_reader import ResilientReader
from .transaction_orchestrator import TransactionOrchestrator, WalletProvider

__all__ = [
    "BatchAggregator",
    "BurnTracker",
    "EvmRpcClient",
    "GameActions",
    "GraveyardGate",
    "NFTStateReader",
    "PollingLoop",
    "ResilientReader",
    "TransactionOrchestrator",
    "WalletProvider",
]
