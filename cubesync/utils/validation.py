"""
Chain data validation utilities.
Local guards that run before any network call is made.
"""

import re
from typing import Any, Iterable

from eth_utils import to_checksum_address

import structlog
from cubesync.core.exceptions import SecurityValidationError


logger = structlog.get_logger(__name__)

UINT256_MAX = 2 ** 256 - 1

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_DECIMAL_RE = re.compile(r"^\d+$")


class EvmValidator:
    """Validator for EVM addresses and numeric inputs."""

    @staticmethod
    def is_valid_address(address: Any) -> bool:
        """Check if a value is a 0x-prefixed 20-byte hex address."""
        return isinstance(address, str) and bool(_ADDRESS_RE.match(address))

    @staticmethod
    def normalize_address(address: Any) -> str:
        """
        Validate and checksum an address.

        Raises:
            SecurityValidationError: if the address is malformed
        """
        if not EvmValidator.is_valid_address(address):
            raise SecurityValidationError(
                f"Malformed address: {address!r}",
                {"address": address}
            )
        return to_checksum_address(address)

    @staticmethod
    def parse_uint(value: Any, field: str = "value") -> int:
        """
        Parse a non-negative integer that fits in uint256.

        Accepts ints and decimal strings. Booleans, floats, negative numbers
        and hex or garbage strings are rejected.
        """
        if isinstance(value, bool):
            raise SecurityValidationError(f"Invalid {field}: {value!r}", {field: value})

        if isinstance(value, int):
            number = value
        elif isinstance(value, str) and _DECIMAL_RE.match(value.strip()):
            number = int(value.strip())
        else:
            raise SecurityValidationError(f"Invalid {field}: {value!r}", {field: value})

        if number < 0 or number > UINT256_MAX:
            raise SecurityValidationError(f"{field} out of range: {number}", {field: str(number)})
        return number

    @staticmethod
    def parse_token_id(value: Any) -> int:
        return EvmValidator.parse_uint(value, "token_id")


class SecurityGuard:
    """Allow-list and chain checks applied to every write."""

    def __init__(self, chain_id: int, allowed_contracts: Iterable[str]):
        self.chain_id = chain_id
        self.allowed_contracts = frozenset(a.lower() for a in allowed_contracts)

    def ensure_chain(self, chain_id: Any) -> None:
        if chain_id != self.chain_id:
            logger.warning(
                "Wrong chain for write",
                expected=self.chain_id,
                actual=chain_id
            )
            raise SecurityValidationError(
                f"Wrong network: expected chain {self.chain_id}, got {chain_id}",
                {"expected": self.chain_id, "actual": chain_id}
            )

    def ensure_allowed(self, address: Any) -> str:
        checksummed = EvmValidator.normalize_address(address)
        if checksummed.lower() not in self.allowed_contracts:
            logger.warning("Blocked write to unknown contract", address=checksummed)
            raise SecurityValidationError(
                f"Contract not in allow-list: {checksummed}",
                {"address": checksummed}
            )
        return checksummed
