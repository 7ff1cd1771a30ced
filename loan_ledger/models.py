"""
Loan and schedule entry records

Dataclasses persisted through the record store, with their dict
serialization. Money is stored as a decimal string next to the loan's
currency code; dates and timestamps as ISO strings.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum

from .currency import Money, Currency
from .schedule import DurationUnit, RepaymentFrequency
from .storage import StorageRecord


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "Active"
    COMPLETED = "Completed"
    REJECTED = "Rejected"
    PENDING = "Pending"


class EntryStatus(Enum):
    """Persisted states of a schedule entry"""
    PENDING = "Pending"
    PARTIAL = "Partial"
    PAID = "Paid"


# Display-only label for a pending entry past its due date
OVERDUE_LABEL = "Overdue"


def _money_or_none(value: Optional[str], currency: Currency) -> Optional[Money]:
    if value is None:
        return None
    return Money(Decimal(value), currency)


@dataclass
class ScheduleEntry(StorageRecord):
    """One scheduled installment of a loan and the payment recorded against it"""
    loan_id: str
    sequence: int
    due_date: date
    expected_amount: Money
    status: EntryStatus = EntryStatus.PENDING
    actual_amount: Optional[Money] = None
    paid_at: Optional[datetime] = None
    note: Optional[str] = None

    @property
    def paid_amount(self) -> Money:
        """Actual amount, treating an unrecorded payment as zero"""
        if self.actual_amount is None:
            return Money.zero(self.expected_amount.currency)
        return self.actual_amount

    def to_dict(self) -> Dict[str, Any]:
        result = self._base_dict()
        result.update({
            'loan_id': self.loan_id,
            'sequence': self.sequence,
            'due_date': self.due_date.isoformat(),
            'currency_code': self.expected_amount.currency.code,
            'expected_amount': str(self.expected_amount.amount),
            'actual_paid_amount': str(self.actual_amount.amount) if self.actual_amount is not None else None,
            'status': self.status.value,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'note': self.note,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduleEntry':
        currency = Currency[data['currency_code']]
        return cls(
            id=data['id'],
            created_at=cls._parse_timestamp(data['created_at']),
            updated_at=cls._parse_timestamp(data['updated_at']),
            loan_id=data['loan_id'],
            sequence=data['sequence'],
            due_date=date.fromisoformat(data['due_date']),
            expected_amount=Money(Decimal(data['expected_amount']), currency),
            status=EntryStatus(data['status']),
            actual_amount=_money_or_none(data.get('actual_paid_amount'), currency),
            paid_at=cls._parse_timestamp(data['paid_at']) if data.get('paid_at') else None,
            note=data.get('note'),
        )


@dataclass
class Loan(StorageRecord):
    """A loan from one lender to one borrower, with its repayment schedule"""
    lender_id: str
    borrower_name: str
    principal: Money
    interest_rate: Decimal
    duration_value: int
    duration_unit: DurationUnit
    frequency: RepaymentFrequency
    start_date: date
    end_date: date
    total_repayment: Money
    amount_repaid: Money = None
    status: LoanStatus = LoanStatus.ACTIVE
    borrower_phone: Optional[str] = None
    borrower_address: Optional[str] = None
    purpose: str = ""
    notes: str = ""
    schedule: List[ScheduleEntry] = field(default_factory=list)

    def __post_init__(self):
        if self.amount_repaid is None:
            self.amount_repaid = Money.zero(self.principal.currency)
        if self.total_repayment.currency != self.principal.currency:
            raise ValueError("Total repayment currency must match principal currency")

    @property
    def currency(self) -> Currency:
        return self.principal.currency

    @property
    def remaining(self) -> Money:
        return self.total_repayment - self.amount_repaid

    @property
    def expected_interest(self) -> Money:
        return self.total_repayment - self.principal

    @property
    def progress_percent(self) -> Decimal:
        """Share of the total repaid, capped at 100"""
        if not self.total_repayment.is_positive():
            return Decimal('100')
        percent = self.amount_repaid.amount / self.total_repayment.amount * Decimal('100')
        return min(Decimal('100'), percent).quantize(Decimal('0.01'))

    def find_entry(self, entry_id: str) -> Optional[ScheduleEntry]:
        for entry in self.schedule:
            if entry.id == entry_id:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Loan row without its schedule; entries are stored separately"""
        result = self._base_dict()
        result.update({
            'lender_id': self.lender_id,
            'borrower_name': self.borrower_name,
            'borrower_phone': self.borrower_phone,
            'borrower_address': self.borrower_address,
            'purpose': self.purpose,
            'borrower_note': self.notes,
            'currency_code': self.currency.code,
            'principal_amount': str(self.principal.amount),
            'interest_rate': str(self.interest_rate),
            'interest_type': 'Simple',
            'duration_value': self.duration_value,
            'duration_unit': self.duration_unit.value,
            'repayment_frequency': self.frequency.value,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'total_repayment_amount': str(self.total_repayment.amount),
            'amount_repaid': str(self.amount_repaid.amount),
            'status': self.status.value,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any], schedule: Optional[List[ScheduleEntry]] = None) -> 'Loan':
        currency = Currency[data['currency_code']]
        return cls(
            id=data['id'],
            created_at=cls._parse_timestamp(data['created_at']),
            updated_at=cls._parse_timestamp(data['updated_at']),
            lender_id=data['lender_id'],
            borrower_name=data['borrower_name'],
            borrower_phone=data.get('borrower_phone'),
            borrower_address=data.get('borrower_address'),
            purpose=data.get('purpose') or "",
            notes=data.get('borrower_note') or "",
            principal=Money(Decimal(data['principal_amount']), currency),
            interest_rate=Decimal(data['interest_rate']),
            duration_value=data['duration_value'],
            duration_unit=DurationUnit(data['duration_unit']),
            frequency=RepaymentFrequency(data.get('repayment_frequency') or RepaymentFrequency.MONTHLY.value),
            start_date=date.fromisoformat(data['start_date']),
            end_date=date.fromisoformat(data['end_date']),
            total_repayment=Money(Decimal(data['total_repayment_amount']), currency),
            amount_repaid=Money(Decimal(data.get('amount_repaid') or '0'), currency),
            status=LoanStatus(data['status']),
            schedule=list(schedule or []),
        )
