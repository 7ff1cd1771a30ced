"""
Lender profile and portfolio endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .dependencies import LedgerSystem, get_ledger_system, lender_context
from .errors import to_http_error
from .schemas import ProfileRequest, summary_to_response
from ..exceptions import LoanLedgerError
from ..ledger import LedgerContext
from ..loans import summarize_portfolio


router = APIRouter()


@router.get("/profile")
async def get_profile(
    lender_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get a lender profile"""
    try:
        profile = system.lender_manager.get_profile(lender_id)
    except LoanLedgerError as e:
        raise to_http_error(e)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")

    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "phone": profile.phone,
        "role": profile.role,
        "created_at": profile.created_at.isoformat()
    }


@router.put("/profile")
async def upsert_profile(
    lender_id: str,
    request: ProfileRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create or update a lender profile"""
    try:
        profile = system.lender_manager.upsert_profile(
            lender_id, full_name=request.full_name, phone=request.phone, role=request.role
        )
    except LoanLedgerError as e:
        raise to_http_error(e)
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "phone": profile.phone,
        "role": profile.role,
        "message": "Profile saved"
    }


@router.get("/summary")
async def get_portfolio_summary(
    context: LedgerContext = Depends(lender_context),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Portfolio totals, one entry per currency"""
    try:
        loans = system.loan_service.list_loans(context)
    except LoanLedgerError as e:
        raise to_http_error(e)

    return {"summaries": summary_to_response(summarize_portfolio(loans))}
