"""
Repayment Ledger Module

Applies a recorded payment to a loan's schedule and derives everything that
follows from it: the entry's status, the loan's aggregate amount repaid and
the loan's status. Nothing here touches storage; every function returns new
objects and leaves its inputs unchanged.

The aggregate is always recomputed from all entries rather than adjusted by
a delta, so a loan whose stored aggregate drifted heals on the next payment
or read.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass, replace
from typing import Iterable, Optional
import uuid

from .currency import Money, Currency
from .exceptions import EntityNotFoundError, PaymentValidationError
from .models import Loan, ScheduleEntry, LoanStatus, EntryStatus, OVERDUE_LABEL


# A loan counts as completed once repaid within this margin of its total.
COMPLETION_TOLERANCE = Decimal('0.50')


@dataclass(frozen=True)
class LedgerContext:
    """Identity on whose behalf a ledger operation runs"""
    lender_id: str
    recorded_by: Optional[str] = None
    display_name: Optional[str] = None
    phone: Optional[str] = None
    correlation_id: Optional[str] = None

    @property
    def actor(self) -> str:
        """Who gets written into the repayment log"""
        return self.recorded_by or self.lender_id

    @classmethod
    def for_lender(cls, lender_id: str, **kwargs) -> 'LedgerContext':
        kwargs.setdefault('correlation_id', str(uuid.uuid4()))
        return cls(lender_id=lender_id, **kwargs)


@dataclass(frozen=True)
class LedgerUpdate:
    """Result of applying one payment: the new entry and the new loan"""
    loan: Loan
    entry: ScheduleEntry


def validate_tendered_amount(loan: Loan, amount: Money) -> None:
    """
    Reject a payment before anything is written.

    Raises:
        PaymentValidationError: If the amount is negative or in the wrong currency
    """
    if not isinstance(amount, Money):
        raise PaymentValidationError("Payment amount must be a Money value")
    if amount.currency != loan.currency:
        raise PaymentValidationError(
            f"Payment currency {amount.currency.code} does not match loan currency {loan.currency.code}"
        )
    if amount.is_negative():
        raise PaymentValidationError("Payment amount cannot be negative")


def derive_entry_status(tendered: Money, expected: Money) -> EntryStatus:
    """Paid when the tendered amount covers the expected one, otherwise Partial"""
    if tendered >= expected:
        return EntryStatus.PAID
    return EntryStatus.PARTIAL


def recompute_amount_repaid(entries: Iterable[ScheduleEntry], currency: Currency) -> Money:
    """Sum of actual amounts over all entries; unrecorded entries count as zero"""
    total = Money.zero(currency)
    for entry in entries:
        total = total + entry.paid_amount
    return total


def derive_loan_status(current: LoanStatus, amount_repaid: Money, total_repayment: Money,
                       tolerance: Decimal = COMPLETION_TOLERANCE) -> LoanStatus:
    """
    Project the loan status from its aggregate.

    Rejected and Pending loans are outside the repayment flow and keep their
    status. Everything else is Completed or Active depending only on the
    amounts, so a correction that lowers the aggregate reopens the loan.
    """
    if current in (LoanStatus.REJECTED, LoanStatus.PENDING):
        return current
    if amount_repaid.amount >= total_repayment.amount - tolerance:
        return LoanStatus.COMPLETED
    return LoanStatus.ACTIVE


def project_loan(loan: Loan, tolerance: Decimal = COMPLETION_TOLERANCE) -> Loan:
    """Loan with aggregate and status recomputed from its entries"""
    entries = sorted(loan.schedule, key=lambda e: (e.due_date, e.sequence))
    amount_repaid = recompute_amount_repaid(entries, loan.currency)
    status = derive_loan_status(loan.status, amount_repaid, loan.total_repayment, tolerance)
    return replace(loan, schedule=entries, amount_repaid=amount_repaid, status=status)


def apply_payment(loan: Loan, entry_id: str, tendered: Money, note: Optional[str],
                  paid_at: datetime, tolerance: Decimal = COMPLETION_TOLERANCE) -> LedgerUpdate:
    """
    Record a payment against one schedule entry.

    The entry's actual amount is replaced, not accumulated, so recording the
    same amount twice leaves the entry unchanged and a smaller later amount
    can move a Paid entry back to Partial.

    Args:
        loan: Loan including its full schedule
        entry_id: Schedule entry the payment is for
        tendered: Amount paid, in the loan's currency
        note: Optional free-text note
        paid_at: Timestamp stored on the entry
        tolerance: Completion tolerance for the loan status

    Returns:
        LedgerUpdate with the updated entry and the re-derived loan

    Raises:
        PaymentValidationError: If the amount is rejected
        EntityNotFoundError: If the entry is not part of the loan
    """
    validate_tendered_amount(loan, tendered)

    entry = loan.find_entry(entry_id)
    if entry is None:
        raise EntityNotFoundError(f"Schedule entry {entry_id} not found on loan {loan.id}")

    updated_entry = replace(
        entry,
        status=derive_entry_status(tendered, entry.expected_amount),
        actual_amount=tendered,
        paid_at=paid_at,
        note=note,
        updated_at=paid_at,
    )
    schedule = [updated_entry if e.id == entry_id else e for e in loan.schedule]
    updated_loan = project_loan(replace(loan, schedule=schedule, updated_at=paid_at), tolerance)

    return LedgerUpdate(loan=updated_loan, entry=updated_entry)


def is_overdue(entry: ScheduleEntry, today: date) -> bool:
    return entry.status == EntryStatus.PENDING and entry.due_date < today


def display_status(entry: ScheduleEntry, today: date) -> str:
    """Status label for display; Overdue is never stored"""
    if is_overdue(entry, today):
        return OVERDUE_LABEL
    return entry.status.value
