"""
Schedule preview endpoint
"""

from fastapi import APIRouter, Depends

from .dependencies import LedgerSystem, get_ledger_system
from .errors import to_http_error
from .schemas import LoanTermsModel, plan_to_response
from ..exceptions import LoanLedgerError
from ..schedule import generate_schedule


router = APIRouter()


@router.post("/preview")
async def preview_schedule(
    terms: LoanTermsModel,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Totals and installments for a set of terms, without storing anything"""
    try:
        plan = generate_schedule(terms.to_loan_terms(system.config.currency))
    except LoanLedgerError as e:
        raise to_http_error(e)

    return plan_to_response(plan)
