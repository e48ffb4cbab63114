"""
Exception hierarchy for the token vesting ledger.

Every error is terminal for the operation that raised it: the ledger rolls
back all writes made by that operation before the exception leaves the
entry point. None of them are retried internally.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all vesting-ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether resubmitting the same request may later succeed
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable

    recoverable = False


# ==================== Configuration Errors ====================


class ConfigurationError(VestingError):
    """Raised when ledger configuration is missing or invalid.

    Examples: zero authority signer, zero token address, malformed root.
    """
    pass


class TokenAlreadySetError(ConfigurationError):
    """Raised when the write-once token address is set a second time."""
    pass


# ==================== Validation Errors ====================


class ValidationError(VestingError):
    """Raised when caller-supplied data is malformed."""
    pass


class InvalidProofError(ValidationError):
    """Raised when allocation data does not verify against the commitment root."""
    pass


class InvalidScheduleError(ValidationError):
    """Raised when vesting terms are out of range or degenerate."""
    pass


class InvalidAddressError(ValidationError):
    """Raised when an account address is malformed or the null address."""
    pass


class InvalidIdentityError(ValidationError):
    """Raised when an identity is not a 32-byte value."""
    pass


# ==================== Authorization Errors ====================


class AuthorizationError(VestingError):
    """Raised when the caller is not entitled to perform an operation."""
    pass


class UnauthorizedDelegationError(AuthorizationError):
    """Raised when a delegation signature does not recover to the authority."""
    pass


class MissingRecipientError(AuthorizationError):
    """Raised when no recipient is named and the caller cannot self-claim."""
    pass


class UnauthorizedCallerError(AuthorizationError):
    """Raised when a privileged or recipient-only operation is called by someone else."""
    pass


class ReentrancyError(AuthorizationError):
    """Raised when a mutating entry point is re-entered while one is active."""
    pass


# ==================== Ledger State Errors ====================


class NoAllocationError(VestingError):
    """Raised when a recipient holds no seeded schedule."""
    pass


class SlotConflictError(VestingError):
    """Raised when an activation or migration collides with existing state."""
    pass


class RecipientAlreadyAllocatedError(SlotConflictError):
    """Raised when the target recipient already holds a schedule."""
    pass


class IdentityAlreadyBoundError(SlotConflictError):
    """Raised when the identity has already been activated."""
    pass


class LedgerStateError(VestingError):
    """Raised when a write would break a ledger invariant."""
    pass


# ==================== External Call Errors ====================


class TransferFailedError(VestingError):
    """Raised when the token transfer primitive reports failure.

    Recoverable: the same release can be resubmitted once the ledger's
    token balance has been topped up.
    """
    recoverable = True

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.reason = reason


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if resubmitting the request may succeed later
    """
    if isinstance(exc, VestingError):
        return exc.recoverable
    return isinstance(exc, (ConnectionError, TimeoutError))


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, VestingError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, TransferFailedError) and exc.reason:
        context["transfer_reason"] = exc.reason

    return context
