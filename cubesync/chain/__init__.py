"""
Contract fragments and ABI encoding.
"""

from .abi import ContractEvent, ContractFunction, EventInput
from .contracts import CoreABI, ERC20ABI, ERC721ABI, Multicall3ABI, ReaderABI

__all__ = [
    "ContractEvent",
    "ContractFunction",
    "CoreABI",
    "ERC20ABI",
    "ERC721ABI",
    "EventInput",
    "Multicall3ABI",
    "ReaderABI",
]
