"""
Test local guards.
"""

import pytest

from cubesync.core.exceptions import SecurityValidationError
from cubesync.utils.validation import UINT256_MAX, EvmValidator, SecurityGuard

from conftest import CHAIN_ID, CORE, USER


MULTICALL_LOWER = "0xca11bde05977b3631167028862be2a173976ca11"


def test_address_validation():
    assert EvmValidator.is_valid_address(USER)
    assert not EvmValidator.is_valid_address("0x1234")
    assert not EvmValidator.is_valid_address(None)
    assert EvmValidator.normalize_address(MULTICALL_LOWER) == "0xcA11bde05977b3631167028862bE2a173976CA11"


@pytest.mark.parametrize("value", [True, -1, 1.5, "0x10", "abc", UINT256_MAX + 1])
def test_parse_uint_rejects(value):
    with pytest.raises(SecurityValidationError):
        EvmValidator.parse_uint(value)


def test_parse_uint_accepts_decimal_strings():
    assert EvmValidator.parse_uint(" 42 ") == 42
    assert EvmValidator.parse_token_id(UINT256_MAX) == UINT256_MAX


def test_guard_chain_and_allow_list():
    guard = SecurityGuard(CHAIN_ID, [CORE])

    guard.ensure_chain(CHAIN_ID)
    with pytest.raises(SecurityValidationError):
        guard.ensure_chain(1)

    assert guard.ensure_allowed(CORE.upper().replace("0X", "0x")).lower() == CORE
    with pytest.raises(SecurityValidationError):
        guard.ensure_allowed(USER)
