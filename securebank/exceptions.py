"""
Error Taxonomy

Every failure raised by the ledger core derives from BankingError. Each kind
carries a stable ``code`` for the presentation layer and a ``retryable`` flag
telling the caller whether the same request may simply be sent again.
"""

from typing import Any, Dict, Optional


class BankingError(Exception):
    """Base class for all ledger core errors"""

    code = "banking_error"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
        }


class ValidationError(BankingError, ValueError):
    """Malformed or out-of-range input (non-positive amount, bad email, ...)"""
    code = "validation_error"


class InvalidAccount(BankingError):
    """Unknown, inactive, foreign or self-referential target account"""
    code = "invalid_account"


class InsufficientFunds(BankingError):
    """Locked balance does not cover the requested debit"""
    code = "insufficient_funds"


class LoanNotPending(BankingError):
    """Loan has already left the Pending state (or does not exist)"""
    code = "loan_not_pending"


class NoReceivingAccount(BankingError):
    """Borrower has no active account to receive a disbursement"""
    code = "no_receiving_account"


class PermissionDenied(BankingError):
    """Caller role may not perform the operation"""
    code = "permission_denied"


class ConflictError(BankingError):
    """Transient concurrency conflict; the request may be retried verbatim"""
    code = "conflict"
    retryable = True


class AllocationConflict(ConflictError):
    """Identifier allocation exhausted its attempts or lost a serialization race"""
    code = "allocation_conflict"


class LockTimeout(ConflictError):
    """A row or named lock could not be acquired within the store timeout"""
    code = "lock_timeout"


class StoreUnavailable(BankingError):
    """Backing store is unreachable"""
    code = "store_unavailable"
    retryable = True
