"""
Loan Module

Loan creation, reads and payment recording for a lender's portfolio.
Creation runs the schedule generator and stores the loan with its entries;
payment recording runs the ledger and persists the result through the
repayment saga.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional
import uuid

from .currency import Money, Currency
from .exceptions import (
    EntityNotFoundError, LenderProfileMissingError, LoanValidationError,
    PaymentAbortedError, PersistenceError, ReconciliationRequiredError
)
from .ledger import (
    LedgerContext, LedgerUpdate, COMPLETION_TOLERANCE,
    apply_payment, project_loan
)
from .lenders import LenderManager
from .logging_config import get_logger, log_action
from .models import Loan, ScheduleEntry, LoanStatus, EntryStatus
from .saga import build_repayment_saga, STEP_UPDATE_ENTRY
from .schedule import (
    DurationUnit, RepaymentFrequency, LoanTerms, RepaymentPlan,
    generate_schedule, validate_terms
)
from .store import LoanStore

logger = get_logger("loan_ledger.loans")


@dataclass
class LoanApplication:
    """Everything a lender enters to create a loan"""
    borrower_name: str
    principal: Money
    interest_rate: Decimal
    duration_value: int
    duration_unit: DurationUnit
    frequency: RepaymentFrequency
    start_date: date
    borrower_phone: Optional[str] = None
    borrower_address: Optional[str] = None
    purpose: str = ""
    notes: str = ""

    @property
    def terms(self) -> LoanTerms:
        return LoanTerms(
            principal=self.principal,
            interest_rate=self.interest_rate,
            duration_value=self.duration_value,
            duration_unit=self.duration_unit,
            frequency=self.frequency,
            start_date=self.start_date,
        )

    def validate(self) -> None:
        if not self.borrower_name or not self.borrower_name.strip():
            raise LoanValidationError("Borrower name is required")
        validate_terms(self.terms)


@dataclass
class PortfolioSummary:
    """Dashboard figures for the loans of one currency"""
    currency: Currency
    total_lent: Money
    active_loans: int
    total_repaid: Money
    expected_interest: Money


class LoanService:
    """
    Creates loans and records payments for lenders
    """

    def __init__(
        self,
        store: LoanStore,
        lender_manager: LenderManager,
        tolerance: Decimal = COMPLETION_TOLERANCE,
        auto_provision_profiles: bool = True,
        write_repayment_log: bool = True
    ):
        self.store = store
        self.lender_manager = lender_manager
        self.tolerance = tolerance
        self.auto_provision_profiles = auto_provision_profiles
        self.write_repayment_log = write_repayment_log

    def create_loan(self, context: LedgerContext, application: LoanApplication) -> Loan:
        """
        Create a loan and its repayment schedule.

        If the lender has no profile, a minimal one is provisioned and the
        write is retried once; a second failure propagates.

        Args:
            context: Lender creating the loan
            application: Borrower details and loan terms

        Returns:
            The stored Loan with its schedule
        """
        application.validate()
        plan = generate_schedule(application.terms)
        loan = self._build_loan(context, application, plan)

        try:
            self.store.create_loan(loan, loan.schedule)
        except LenderProfileMissingError:
            if not self.auto_provision_profiles:
                raise
            self.lender_manager.provision_minimal_profile(context)
            self.store.create_loan(loan, loan.schedule)

        log_action(
            logger, "info", f"Loan created for {loan.borrower_name}",
            lender_id=context.lender_id, action="create_loan", resource=f"loan:{loan.id}",
            correlation_id=context.correlation_id,
            extra={
                "principal": str(loan.principal.amount),
                "currency": loan.currency.code,
                "total_repayment": str(loan.total_repayment.amount),
                "entries": len(loan.schedule),
            }
        )
        return loan

    def list_loans(self, context: LedgerContext, search: Optional[str] = None) -> List[Loan]:
        """Lender's loans, newest first, with aggregates recomputed from entries"""
        loans = [project_loan(loan, self.tolerance) for loan in self.store.list_loans(context.lender_id)]
        if search:
            needle = search.strip().lower()
            loans = [loan for loan in loans if needle in loan.borrower_name.lower()]
        return loans

    def get_loan(self, context: LedgerContext, loan_id: str) -> Loan:
        loan = self.store.get_loan(loan_id)
        if loan.lender_id != context.lender_id:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        return project_loan(loan, self.tolerance)

    def record_payment(self, context: LedgerContext, loan_id: str, entry_id: str,
                       amount: Money, note: Optional[str] = None) -> LedgerUpdate:
        """
        Record a payment against a schedule entry and persist it.

        Args:
            context: Lender recording the payment
            loan_id: Loan the entry belongs to
            entry_id: Schedule entry being paid
            amount: Amount tendered
            note: Optional note stored on the entry

        Returns:
            LedgerUpdate with the persisted entry and loan

        Raises:
            PaymentValidationError: Amount rejected; nothing was written
            PaymentAbortedError: The entry write failed; nothing was committed
            ReconciliationRequiredError: The entry was written but the loan
                aggregate was not
        """
        try:
            loan = self.get_loan(context, loan_id)
        except PersistenceError as e:
            raise PaymentAbortedError(f"Could not read loan {loan_id}: {e}", loan_id, entry_id) from e

        update = apply_payment(loan, entry_id, amount, note,
                               paid_at=datetime.now(timezone.utc), tolerance=self.tolerance)

        saga = build_repayment_saga(self.store, update, context, write_log=self.write_repayment_log)
        result = saga.execute()

        if result.failed_step == STEP_UPDATE_ENTRY:
            raise PaymentAbortedError(
                f"Failed to save payment: {result.error}", loan_id, entry_id
            ) from result.error
        if not result.succeeded:
            raise ReconciliationRequiredError(
                f"Payment saved but loan totals were not updated: {result.error}",
                loan_id, entry_id, result.failed_step, update
            ) from result.error

        log_action(
            logger, "info", "Payment recorded",
            lender_id=context.lender_id, action="record_payment", resource=f"loan:{loan_id}",
            correlation_id=context.correlation_id,
            extra={
                "entry_id": entry_id,
                "amount": str(amount.amount),
                "entry_status": update.entry.status.value,
                "amount_repaid": str(update.loan.amount_repaid.amount),
                "loan_status": update.loan.status.value,
                "warnings": result.warnings,
            }
        )
        return update

    def _build_loan(self, context: LedgerContext, application: LoanApplication,
                    plan: RepaymentPlan) -> Loan:
        now = datetime.now(timezone.utc)
        loan_id = str(uuid.uuid4())
        entries = [
            ScheduleEntry(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan_id,
                sequence=installment.sequence,
                due_date=installment.due_date,
                expected_amount=installment.amount,
                status=EntryStatus.PENDING,
            )
            for installment in plan.installments
        ]
        return Loan(
            id=loan_id,
            created_at=now,
            updated_at=now,
            lender_id=context.lender_id,
            borrower_name=application.borrower_name.strip(),
            borrower_phone=application.borrower_phone,
            borrower_address=application.borrower_address,
            purpose=application.purpose,
            notes=application.notes,
            principal=application.principal,
            interest_rate=application.interest_rate,
            duration_value=application.duration_value,
            duration_unit=application.duration_unit,
            frequency=application.frequency,
            start_date=application.start_date,
            end_date=plan.end_date,
            total_repayment=plan.total_repayment,
            amount_repaid=Money.zero(application.principal.currency),
            status=LoanStatus.ACTIVE,
            schedule=entries,
        )


def summarize_portfolio(loans: List[Loan]) -> Dict[Currency, PortfolioSummary]:
    """
    Dashboard totals, one summary per currency.

    Total lent counts Active and Completed loans; expected interest counts
    every loan that was not Rejected.
    """
    summaries: Dict[Currency, PortfolioSummary] = {}
    for loan in loans:
        currency = loan.currency
        if currency not in summaries:
            zero = Money.zero(currency)
            summaries[currency] = PortfolioSummary(
                currency=currency, total_lent=zero, active_loans=0,
                total_repaid=zero, expected_interest=zero
            )
        summary = summaries[currency]

        if loan.status in (LoanStatus.ACTIVE, LoanStatus.COMPLETED):
            summary.total_lent = summary.total_lent + loan.principal
        if loan.status == LoanStatus.ACTIVE:
            summary.active_loans += 1
        summary.total_repaid = summary.total_repaid + loan.amount_repaid
        if loan.status != LoanStatus.REJECTED:
            summary.expected_interest = summary.expected_interest + loan.expected_interest

    return summaries
