"""
Loan endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import LedgerSystem, get_ledger_system, lender_context
from .errors import to_http_error
from .schemas import CreateLoanRequest, RecordPaymentRequest, loan_to_response
from ..exceptions import LoanLedgerError, ReconciliationRequiredError
from ..ledger import LedgerContext
from ..logging_config import get_logger, log_action

logger = get_logger("loan_ledger.api")

router = APIRouter()


@router.get("")
async def list_loans(
    search: Optional[str] = None,
    context: LedgerContext = Depends(lender_context),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List the lender's loans, newest first"""
    try:
        loans = system.loan_service.list_loans(context, search=search)
    except LoanLedgerError as e:
        raise to_http_error(e)

    today = date.today()
    return {"loans": [loan_to_response(loan, today) for loan in loans]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    context: LedgerContext = Depends(lender_context),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create a loan and its repayment schedule"""
    try:
        loan = system.loan_service.create_loan(context, request.to_application(system.config.currency))
    except LoanLedgerError as e:
        raise to_http_error(e)

    return {
        "loan": loan_to_response(loan, date.today()),
        "message": "Loan created successfully"
    }


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    context: LedgerContext = Depends(lender_context),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get loan details with its schedule"""
    try:
        loan = system.loan_service.get_loan(context, loan_id)
    except LoanLedgerError as e:
        raise to_http_error(e)

    return loan_to_response(loan, date.today())


@router.post("/{loan_id}/repayments/{entry_id}")
async def record_payment(
    loan_id: str,
    entry_id: str,
    request: RecordPaymentRequest,
    context: LedgerContext = Depends(lender_context),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """
    Record a payment against a schedule entry.

    When the loan totals fail to save after the entry was saved, the loan is
    read back (totals are recomputed from entries on read) and returned with
    ``reconciled`` set.
    """
    service = system.loan_service
    try:
        loan = service.get_loan(context, loan_id)
        amount = request.to_money(loan.currency)
        update = service.record_payment(context, loan_id, entry_id, amount, request.note)
    except ReconciliationRequiredError as e:
        log_action(
            logger, "warning", f"Returning re-read loan after partial write: {e}",
            lender_id=context.lender_id, action="record_payment", resource=f"loan:{loan_id}",
            correlation_id=context.correlation_id
        )
        try:
            loan = service.get_loan(context, loan_id)
        except LoanLedgerError as resync_error:
            raise to_http_error(resync_error)
        return {
            "loan": loan_to_response(loan, date.today()),
            "entry_id": entry_id,
            "reconciled": True,
            "message": "Payment saved, loan totals were refreshed"
        }
    except LoanLedgerError as e:
        raise to_http_error(e)

    return {
        "loan": loan_to_response(update.loan, date.today()),
        "entry_id": entry_id,
        "reconciled": False,
        "message": "Payment recorded successfully"
    }
