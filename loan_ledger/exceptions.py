"""Exception hierarchy for the loan ledger."""

from typing import Optional


class LoanLedgerError(Exception):
    """Base exception for all loan ledger errors."""


class ValidationError(LoanLedgerError, ValueError):
    """Raised when input is rejected before any write takes place."""


class LoanValidationError(ValidationError):
    """Raised when loan terms or borrower details are invalid."""


class PaymentValidationError(ValidationError):
    """Raised when a tendered payment is invalid."""


class EntityNotFoundError(LoanLedgerError):
    """Raised when a referenced record does not exist."""


class LenderProfileMissingError(EntityNotFoundError):
    """Raised when a loan references a lender without a profile record."""

    def __init__(self, lender_id: str):
        super().__init__(f"Lender profile {lender_id} does not exist")
        self.lender_id = lender_id


class PersistenceError(LoanLedgerError):
    """Raised when the backing store fails a read or write."""


class PaymentAbortedError(LoanLedgerError):
    """Raised when the first write of a payment fails; nothing was committed."""

    def __init__(self, message: str, loan_id: str, entry_id: str):
        super().__init__(message)
        self.loan_id = loan_id
        self.entry_id = entry_id


class ReconciliationRequiredError(LoanLedgerError):
    """
    Raised when the schedule entry was written but the loan aggregate was not.

    The persisted state is temporarily inconsistent; a full re-read repairs
    the view because aggregates are recomputed from entries on every read.
    """

    def __init__(self, message: str, loan_id: str, entry_id: str,
                 failed_step: str, update: Optional[object] = None):
        super().__init__(message)
        self.loan_id = loan_id
        self.entry_id = entry_id
        self.failed_step = failed_step
        self.update = update


class ConfigurationError(LoanLedgerError):
    """Raised when configuration is invalid."""
