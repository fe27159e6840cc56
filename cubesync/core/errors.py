"""
Error classification for JSON-RPC responses and wallet failures.
"""

from typing import Any, Optional, Tuple

from .exceptions import (
    CubeSyncException,
    PermanentRemoteError,
    RemoteError,
    TransactionRevertedError,
    TransientRemoteError,
    UserRejectedError,
)


# JSON-RPC error codes that indicate a retryable condition
TRANSIENT_RPC_CODES = {-32005, -32603, 429}

# Substrings in RPC error messages that indicate a retryable condition
TRANSIENT_MARKERS = (
    "rate limit",
    "too many requests",
    "429",
    "timeout",
    "timed out",
    "header not found",
    "temporarily unavailable",
    "service unavailable",
    "bad gateway",
    "failed to fetch",
    "network",
    "connection",
)

USER_REJECTED_MARKERS = (
    "user rejected",
    "rejected the request",
    "denied the request",
    "user denied",
    "user cancelled",
    "user canceled",
)

# Ordered: first match wins
REVERT_CATEGORIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("circuit_breaker", ("circuit breaker", "circuitbreaker", "breaker")),
    ("cap_exceeded", ("cap exceeded", "capexceeded", "exceeds cap", "max cap")),
    ("below_minimum", ("below minimum", "belowminimum", "too small", "min amount")),
    ("paused", ("paused",)),
    ("insufficient_allowance", ("insufficient allowance", "allowance")),
    ("insufficient_balance", ("insufficient balance", "insufficient funds", "exceeds balance", "insufficient")),
    ("already_claimed", ("already claimed", "alreadyclaimed")),
    ("too_early", ("too early", "tooearly", "not ready", "not available yet")),
    ("not_owner", ("not owner", "notowner", "not the owner", "not token owner")),
)


def classify_rpc_error(code: Optional[int], message: str, data: Any = None) -> RemoteError:
    """Map a JSON-RPC error object to a transient or permanent remote error."""
    lowered = (message or "").lower()
    details = {"rpc_code": code, "data": data}

    if "execution reverted" in lowered or "revert" in lowered or code == 3:
        return PermanentRemoteError(message or "execution reverted", details)

    if code in TRANSIENT_RPC_CODES or any(m in lowered for m in TRANSIENT_MARKERS):
        return TransientRemoteError(message or "transient RPC error", details)

    return PermanentRemoteError(message or "RPC request rejected", details)


def classify_http_status(status: int, body: str = "") -> RemoteError:
    """Map a non-200 HTTP status from an RPC endpoint."""
    details = {"http_status": status}
    if status == 429 or status >= 500:
        return TransientRemoteError(f"HTTP {status}", details)
    # Other 4xx responses are not retried
    return PermanentRemoteError(f"HTTP {status}: {body[:200]}", details)


def categorize_revert(reason: str) -> str:
    """Return the revert category for a reason string ("unknown" if none matches)."""
    lowered = (reason or "").lower()
    for category, markers in REVERT_CATEGORIES:
        if any(marker in lowered for marker in markers):
            return category
    return "unknown"


def is_user_rejection(error: BaseException) -> bool:
    """Check whether a wallet error means the signer declined."""
    if isinstance(error, UserRejectedError):
        return True
    if getattr(error, "code", None) == 4001:
        return True
    name = type(error).__name__
    if name == "UserRejectedRequestError":
        return True
    lowered = str(error).lower()
    return any(marker in lowered for marker in USER_REJECTED_MARKERS)


def classify_write_error(error: BaseException, tx_hash: Optional[str] = None) -> CubeSyncException:
    """
    Convert any failure raised while submitting or confirming a write into
    a classified exception.

    Already-classified errors (security guards, rejections, reverts) pass
    through unchanged. Unmatched revert reasons are kept verbatim.
    """
    if isinstance(error, (UserRejectedError, TransactionRevertedError)):
        return error
    if is_user_rejection(error):
        return UserRejectedError(details={"error": str(error)})
    if isinstance(error, CubeSyncException) and not isinstance(error, RemoteError):
        return error

    reason = error.message if isinstance(error, CubeSyncException) else str(error)
    return TransactionRevertedError(
        reason=reason,
        category=categorize_revert(reason),
        tx_hash=tx_hash,
    )
