"""
Loan Store Module

The store adapter the ledger writes through. It maps loans, schedule entries
and repayment log records onto a generic record store and exposes the small
set of reads and writes the loan service and recovery policy need.
"""

from datetime import datetime, timezone
from dataclasses import replace
from typing import List, Optional, Sequence

from .audit import RepaymentLog, LedgerLogRecord
from .currency import Money
from .exceptions import EntityNotFoundError, LenderProfileMissingError
from .lenders import PROFILES_TABLE
from .models import Loan, ScheduleEntry, LoanStatus, EntryStatus
from .storage import StorageInterface, storage_errors


class LoanStore:
    """
    Persists loans and their schedules
    """

    def __init__(self, storage: StorageInterface, repayment_log: Optional[RepaymentLog] = None):
        self.storage = storage
        self.repayment_log = repayment_log or RepaymentLog(storage)

        self.loans_table = "loans"
        self.schedule_table = "repayment_schedule"

    def list_loans(self, lender_id: str) -> List[Loan]:
        """
        All loans of a lender with their schedules.

        Loans are ordered newest first, entries by due date ascending.
        """
        with storage_errors("list_loans"):
            loans_data = self.storage.find(self.loans_table, {'lender_id': lender_id})
            loans = [Loan.from_dict(data, self._load_schedule(data['id'])) for data in loans_data]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    def get_loan(self, loan_id: str) -> Loan:
        """Single loan with its schedule"""
        with storage_errors("get_loan"):
            data = self.storage.load(self.loans_table, loan_id)
            if not data:
                raise EntityNotFoundError(f"Loan {loan_id} not found")
            return Loan.from_dict(data, self._load_schedule(loan_id))

    def get_entry(self, entry_id: str) -> ScheduleEntry:
        with storage_errors("get_entry"):
            data = self.storage.load(self.schedule_table, entry_id)
            if not data:
                raise EntityNotFoundError(f"Schedule entry {entry_id} not found")
            return ScheduleEntry.from_dict(data)

    def create_loan(self, loan: Loan, entries: Sequence[ScheduleEntry]) -> str:
        """
        Store a new loan together with all of its schedule entries.

        Raises:
            LenderProfileMissingError: If the lender has no profile record
            PersistenceError: If the write fails; nothing is stored then
        """
        with storage_errors("create_loan"):
            if not self.storage.exists(PROFILES_TABLE, loan.lender_id):
                raise LenderProfileMissingError(loan.lender_id)

            with self.storage.atomic():
                self.storage.save(self.loans_table, loan.id, loan.to_dict())
                for entry in entries:
                    entry = replace(entry, loan_id=loan.id)
                    self.storage.save(self.schedule_table, entry.id, entry.to_dict())
        return loan.id

    def update_schedule_entry(self, entry_id: str, actual_amount: Money, paid_at: datetime,
                              status: EntryStatus, note: Optional[str]) -> ScheduleEntry:
        """Overwrite the payment fields of one entry"""
        with storage_errors("update_schedule_entry"):
            entry = self.get_entry(entry_id)
            updated = replace(
                entry,
                actual_amount=actual_amount,
                paid_at=paid_at,
                status=status,
                note=note,
                updated_at=datetime.now(timezone.utc),
            )
            self.storage.save(self.schedule_table, entry_id, updated.to_dict())
            return updated

    def append_ledger_log(self, loan_id: str, entry_id: str, amount: Money,
                          recorded_by: str) -> LedgerLogRecord:
        with storage_errors("append_ledger_log"):
            return self.repayment_log.append(loan_id, entry_id, amount, recorded_by)

    def update_loan_aggregate(self, loan_id: str, amount_repaid: Money, status: LoanStatus) -> None:
        """Overwrite the stored aggregate and status of a loan"""
        with storage_errors("update_loan_aggregate"):
            data = self.storage.load(self.loans_table, loan_id)
            if not data:
                raise EntityNotFoundError(f"Loan {loan_id} not found")
            data['amount_repaid'] = str(amount_repaid.amount)
            data['status'] = status.value
            data['updated_at'] = datetime.now(timezone.utc).isoformat()
            self.storage.save(self.loans_table, loan_id, data)

    def _load_schedule(self, loan_id: str) -> List[ScheduleEntry]:
        entries = [
            ScheduleEntry.from_dict(data)
            for data in self.storage.find(self.schedule_table, {'loan_id': loan_id})
        ]
        entries.sort(key=lambda e: (e.due_date, e.sequence))
        return entries
