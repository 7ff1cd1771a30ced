"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal, InvalidOperation
from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency, parse_amount
from ..exceptions import LoanValidationError, PaymentValidationError
from ..ledger import display_status
from ..loans import LoanApplication, PortfolioSummary
from ..models import Loan, ScheduleEntry
from ..schedule import DurationUnit, RepaymentFrequency, LoanTerms, RepaymentPlan


def _currency(code: str, error_type=LoanValidationError) -> Currency:
    try:
        return Currency[code.upper()]
    except KeyError:
        raise error_type(f"Unsupported currency: {code}")


def _decimal(value: str, label: str, error_type=LoanValidationError) -> Decimal:
    try:
        return parse_amount(value)
    except (ValueError, InvalidOperation):
        raise error_type(f"Invalid {label}: {value}")


def _money(value: str, label: str, currency: Currency, error_type=LoanValidationError) -> Money:
    amount = _decimal(value, label, error_type)
    try:
        return Money(amount, currency)
    except ValueError:
        raise error_type(f"Invalid {label}: {value} is out of range")


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (USD, KHR)")

    @classmethod
    def from_money(cls, money: Optional[Money]) -> Optional['MoneyModel']:
        if money is None:
            return None
        return cls(amount=str(money.amount), currency=money.currency.code)


class LoanTermsModel(BaseModel):
    principal_amount: str  # Decimal as string
    currency: Optional[str] = None  # Configured default currency when omitted
    interest_rate: str = "0"  # Percent, decimal as string
    duration_value: int
    duration_unit: str = "Days"
    frequency: str = "Monthly"
    start_date: str  # ISO date string

    def to_loan_terms(self, default_currency: Currency = Currency.USD) -> LoanTerms:
        try:
            duration_unit = DurationUnit(self.duration_unit)
            frequency = RepaymentFrequency(self.frequency)
            start_date = date.fromisoformat(self.start_date)
        except ValueError as e:
            raise LoanValidationError(str(e))
        currency = _currency(self.currency) if self.currency else default_currency
        return LoanTerms(
            principal=_money(self.principal_amount, "principal", currency),
            interest_rate=_decimal(self.interest_rate, "interest rate"),
            duration_value=self.duration_value,
            duration_unit=duration_unit,
            frequency=frequency,
            start_date=start_date,
        )


class CreateLoanRequest(BaseModel):
    borrower_name: str
    borrower_phone: Optional[str] = None
    borrower_address: Optional[str] = None
    purpose: str = ""
    notes: str = ""
    terms: LoanTermsModel

    def to_application(self, default_currency: Currency = Currency.USD) -> LoanApplication:
        terms = self.terms.to_loan_terms(default_currency)
        return LoanApplication(
            borrower_name=self.borrower_name,
            borrower_phone=self.borrower_phone,
            borrower_address=self.borrower_address,
            purpose=self.purpose,
            notes=self.notes,
            principal=terms.principal,
            interest_rate=terms.interest_rate,
            duration_value=terms.duration_value,
            duration_unit=terms.duration_unit,
            frequency=terms.frequency,
            start_date=terms.start_date,
        )


class RecordPaymentRequest(BaseModel):
    amount: str  # Decimal as string
    note: Optional[str] = None

    def to_money(self, currency: Currency) -> Money:
        return _money(self.amount, "amount", currency, PaymentValidationError)


class ProfileRequest(BaseModel):
    full_name: str
    phone: str = ""
    role: str = "lender"


def entry_to_response(entry: ScheduleEntry, today: date) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "sequence": entry.sequence,
        "due_date": entry.due_date.isoformat(),
        "expected_amount": MoneyModel.from_money(entry.expected_amount).dict(),
        "status": entry.status.value,
        "display_status": display_status(entry, today),
        "actual_amount": MoneyModel.from_money(entry.actual_amount).dict() if entry.actual_amount else None,
        "paid_at": entry.paid_at.isoformat() if entry.paid_at else None,
        "note": entry.note,
    }


def loan_to_response(loan: Loan, today: date, include_schedule: bool = True) -> Dict[str, Any]:
    result = {
        "id": loan.id,
        "lender_id": loan.lender_id,
        "borrower_name": loan.borrower_name,
        "borrower_phone": loan.borrower_phone,
        "borrower_address": loan.borrower_address,
        "purpose": loan.purpose,
        "notes": loan.notes,
        "principal": MoneyModel.from_money(loan.principal).dict(),
        "interest_rate": str(loan.interest_rate),
        "duration_value": loan.duration_value,
        "duration_unit": loan.duration_unit.value,
        "frequency": loan.frequency.value,
        "start_date": loan.start_date.isoformat(),
        "end_date": loan.end_date.isoformat(),
        "total_repayment": MoneyModel.from_money(loan.total_repayment).dict(),
        "amount_repaid": MoneyModel.from_money(loan.amount_repaid).dict(),
        "remaining": MoneyModel.from_money(loan.remaining).dict(),
        "progress_percent": str(loan.progress_percent),
        "status": loan.status.value,
        "created_at": loan.created_at.isoformat(),
    }
    if include_schedule:
        result["schedule"] = [entry_to_response(entry, today) for entry in loan.schedule]
    return result


def plan_to_response(plan: RepaymentPlan) -> Dict[str, Any]:
    return {
        "total_repayment": MoneyModel.from_money(plan.total_repayment).dict(),
        "end_date": plan.end_date.isoformat(),
        "period_count": plan.period_count,
        "installment_amount": MoneyModel.from_money(plan.installment_amount).dict(),
        "installments": [
            {
                "sequence": installment.sequence,
                "due_date": installment.due_date.isoformat(),
                "amount": MoneyModel.from_money(installment.amount).dict(),
            }
            for installment in plan.installments
        ],
    }


def summary_to_response(summaries: Dict[Currency, PortfolioSummary]) -> List[Dict[str, Any]]:
    return [
        {
            "currency": summary.currency.code,
            "total_lent": str(summary.total_lent.amount),
            "active_loans": summary.active_loans,
            "total_repaid": str(summary.total_repaid.amount),
            "expected_interest": str(summary.expected_interest.amount),
        }
        for summary in summaries.values()
    ]
