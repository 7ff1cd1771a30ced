"""
Shared fixtures for the loan ledger test suite
"""

import uuid
import pytest
from decimal import Decimal
from datetime import datetime, timezone, date

from loan_ledger.currency import Money, Currency
from loan_ledger.models import Loan, ScheduleEntry, LoanStatus, EntryStatus
from loan_ledger.schedule import DurationUnit, RepaymentFrequency, LoanTerms, generate_schedule
from loan_ledger.storage import InMemoryStorage


class FlakyStorage(InMemoryStorage):
    """In-memory storage that fails writes to chosen tables, and optionally all reads"""

    def __init__(self):
        super().__init__()
        self.failing_tables = set()
        self.fail_reads = False

    def save(self, table, record_id, data):
        if table in self.failing_tables:
            raise RuntimeError(f"simulated outage writing {table}")
        super().save(table, record_id, data)

    def load(self, table, record_id):
        if self.fail_reads:
            raise RuntimeError(f"simulated outage reading {table}")
        return super().load(table, record_id)

    def find(self, table, filters):
        if self.fail_reads:
            raise RuntimeError(f"simulated outage reading {table}")
        return super().find(table, filters)


def build_loan(principal='100', rate='5', duration=30, unit=DurationUnit.DAYS,
               frequency=RepaymentFrequency.DAILY, start=date(2024, 1, 1),
               currency=Currency.USD, lender_id='lender-1', borrower_name='Alice',
               status=LoanStatus.ACTIVE, created_at=None):
    """Loan with a freshly generated schedule and nothing paid"""
    terms = LoanTerms(
        principal=Money(Decimal(principal), currency),
        interest_rate=Decimal(rate),
        duration_value=duration,
        duration_unit=unit,
        frequency=frequency,
        start_date=start,
    )
    plan = generate_schedule(terms)
    now = created_at or datetime.now(timezone.utc)
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
        lender_id=lender_id,
        borrower_name=borrower_name,
        principal=terms.principal,
        interest_rate=terms.interest_rate,
        duration_value=duration,
        duration_unit=unit,
        frequency=frequency,
        start_date=start,
        end_date=plan.end_date,
        total_repayment=plan.total_repayment,
        status=status,
        schedule=entries,
    )


@pytest.fixture
def make_loan():
    return build_loan


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def flaky_storage():
    return FlakyStorage()
