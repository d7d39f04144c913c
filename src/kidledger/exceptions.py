"""Custom exception hierarchy for the kidledger package."""

from __future__ import annotations


class KidLedgerError(Exception):
    """Base class for all kidledger specific errors."""

    code = "error"


class ValidationError(KidLedgerError, ValueError):
    """Raised when an amount, term or rate is rejected by the ledger."""

    code = "invalid_amount"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class InsufficientFundsError(ValidationError):
    """Raised when a spend or deposit would take the balance below zero."""

    code = "insufficient_funds"


class NotFoundError(KidLedgerError, LookupError):
    """Raised when an operation references an unknown entity."""

    code = "not_found"


class DepositNotFoundError(NotFoundError):
    """Raised when a fixed deposit lookup fails."""

    code = "deposit_not_found"


class PersistenceError(KidLedgerError):
    """Raised when stored ledger state cannot be read or written."""

    code = "persistence_failed"
