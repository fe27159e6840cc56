"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class CubeSyncException(Exception):
    """Base exception class for the sync layer."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(CubeSyncException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


# Read side

class RemoteError(CubeSyncException):
    """Raised when a remote read fails."""

    transient = False


class TransientRemoteError(RemoteError):
    """Network failure, timeout or rate limit. Safe to retry."""

    transient = True

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TRANSIENT_REMOTE_ERROR", details)


class PermanentRemoteError(RemoteError):
    """Malformed request or read-time revert. Never retried."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PERMANENT_REMOTE_ERROR", details)


# Write side

class UserRejectedError(CubeSyncException):
    """Raised when the signer declines a request."""

    def __init__(self, message: str = "User rejected the request", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "USER_REJECTED", details)


class TransactionRevertedError(CubeSyncException):
    """Raised when a transaction reverts or an on-chain precondition fails."""

    def __init__(
        self,
        reason: str,
        category: str = "unknown",
        tx_hash: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        self.category = category
        self.tx_hash = tx_hash
        merged = {"category": category, "tx_hash": tx_hash}
        merged.update(details or {})
        super().__init__(reason, "TRANSACTION_REVERTED", merged)


class SecurityValidationError(CubeSyncException):
    """Raised when a local guard rejects an action before any network call."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "SECURITY_VALIDATION_ERROR", details)


# Game rules enforced client-side

class NotReadyError(CubeSyncException):
    """Raised when an action's client-side precondition is not met yet."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_READY", details)


class ClaimLockedError(NotReadyError):
    """Raised while the post-claim lock is active."""

    def __init__(self, seconds_left: int):
        super().__init__(
            f"Claims are locked for another {seconds_left}s",
            {"seconds_left": seconds_left}
        )
        self.code = "CLAIM_LOCKED"
        self.seconds_left = seconds_left


class ConfirmationTimeoutError(CubeSyncException):
    """Raised when a submitted transaction is not mined in time."""

    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(
            f"Transaction {tx_hash} not confirmed within {timeout:.0f}s",
            "CONFIRMATION_TIMEOUT",
            {"tx_hash": tx_hash, "timeout": timeout}
        )
        self.tx_hash = tx_hash
