"""
Recovery Module

The client side of payment recording. A lender session keeps a projection of
the lender's loans that is updated optimistically the moment a payment is
entered, while the store stays the source of truth. When a write fails
after the schedule entry was committed, the session does not retry the
missing step: it discards the projection and re-reads everything.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .currency import Money
from .exceptions import LoanLedgerError, ReconciliationRequiredError
from .ledger import LedgerContext, apply_payment, validate_tendered_amount
from .logging_config import get_logger, log_action
from .loans import LoanApplication, LoanService
from .models import Loan

logger = get_logger("loan_ledger.recovery")


class ProjectionCache:
    """Read-mostly copy of a lender's loans; may be ahead of or behind the store"""

    def __init__(self):
        self._loans: Dict[str, Loan] = {}
        self._order: List[str] = []

    def replace_all(self, loans: List[Loan]) -> None:
        """Drop everything and take the given loans in the given order"""
        self._loans = {loan.id: loan for loan in loans}
        self._order = [loan.id for loan in loans]

    def apply(self, loan: Loan) -> None:
        if loan.id not in self._loans:
            self._order.insert(0, loan.id)
        self._loans[loan.id] = loan

    def get(self, loan_id: str) -> Optional[Loan]:
        return self._loans.get(loan_id)

    def loans(self) -> List[Loan]:
        return [self._loans[loan_id] for loan_id in self._order]

    def snapshot(self) -> Dict[str, Loan]:
        return dict(self._loans)

    def restore(self, snapshot: Dict[str, Loan]) -> None:
        self._loans = dict(snapshot)
        self._order = [loan_id for loan_id in self._order if loan_id in self._loans]


class PaymentOutcomeStatus(Enum):
    COMMITTED = "committed"      # Both writes succeeded
    RECONCILED = "reconciled"    # Aggregate write failed; projection re-read from the store
    STALE = "stale"              # Aggregate write and the re-read both failed


@dataclass
class PaymentOutcome:
    status: PaymentOutcomeStatus
    loan: Optional[Loan]
    error: Optional[Exception] = None
    resync_error: Optional[Exception] = None

    @property
    def message(self) -> Optional[str]:
        """Human-readable message for anything but a clean commit"""
        if self.status == PaymentOutcomeStatus.RECONCILED:
            return "Payment saved, loan totals were refreshed from the server."
        if self.status == PaymentOutcomeStatus.STALE:
            return "Failed to save payment. Please try again."
        return None


class LenderSession:
    """
    One lender's working view of their portfolio
    """

    def __init__(self, service: LoanService, context: LedgerContext):
        self.service = service
        self.context = context
        self.cache = ProjectionCache()

    @property
    def loans(self) -> List[Loan]:
        return self.cache.loans()

    def refresh(self) -> List[Loan]:
        """Replace the projection with a full read from the store"""
        loans = self.service.list_loans(self.context)
        self.cache.replace_all(loans)
        return loans

    def create_loan(self, application: LoanApplication) -> Loan:
        loan = self.service.create_loan(self.context, application)
        self.refresh()
        return self.cache.get(loan.id) or loan

    def record_payment(self, loan_id: str, entry_id: str, amount: Money,
                       note: Optional[str] = None) -> PaymentOutcome:
        """
        Record a payment, showing it immediately and reconciling on failure.

        Raises:
            PaymentValidationError: Amount rejected; the projection is untouched
            EntityNotFoundError: Loan or entry is not in the projection
            PaymentAbortedError: Nothing was committed; the projection was rolled back
            LoanLedgerError: Any other rejection by the service; the projection
                was rolled back
        """
        loan = self.cache.get(loan_id)
        if loan is None:
            loan = self.service.get_loan(self.context, loan_id)
        validate_tendered_amount(loan, amount)

        snapshot = self.cache.snapshot()
        optimistic = apply_payment(loan, entry_id, amount, note,
                                   paid_at=datetime.now(timezone.utc),
                                   tolerance=self.service.tolerance)
        self.cache.apply(optimistic.loan)

        try:
            update = self.service.record_payment(self.context, loan_id, entry_id, amount, note)
        except ReconciliationRequiredError as e:
            return self._reconcile(loan_id, e)
        except LoanLedgerError:
            # Aborted or rejected; nothing was committed
            self.cache.restore(snapshot)
            raise

        self.cache.apply(update.loan)
        return PaymentOutcome(PaymentOutcomeStatus.COMMITTED, update.loan)

    def _reconcile(self, loan_id: str, error: ReconciliationRequiredError) -> PaymentOutcome:
        """Compensation for a partially applied payment: re-read everything"""
        log_action(
            logger, "warning", f"Reconciling loan {loan_id} after partial write",
            lender_id=self.context.lender_id, action="reconcile", resource=f"loan:{loan_id}",
            correlation_id=self.context.correlation_id,
            extra={"failed_step": error.failed_step}
        )
        try:
            self.refresh()
        except LoanLedgerError as resync_error:
            log_action(
                logger, "error", f"Re-read after partial write failed: {resync_error}",
                lender_id=self.context.lender_id, action="reconcile", resource=f"loan:{loan_id}",
                correlation_id=self.context.correlation_id
            )
            return PaymentOutcome(PaymentOutcomeStatus.STALE, self.cache.get(loan_id),
                                  error=error, resync_error=resync_error)

        return PaymentOutcome(PaymentOutcomeStatus.RECONCILED, self.cache.get(loan_id), error=error)
