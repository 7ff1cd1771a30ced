"""
Repayment Log Module

Append-only log of every payment recording. Records are written once and
never updated; the schedule entry only keeps the latest payment, so this log
is the only place earlier recordings survive.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Any
import threading
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord


@dataclass
class LedgerLogRecord(StorageRecord):
    """One payment recording"""
    loan_id: str
    schedule_id: str
    amount: Money
    recorded_by: str

    def to_dict(self) -> Dict[str, Any]:
        result = self._base_dict()
        result.update({
            'loan_id': self.loan_id,
            'schedule_id': self.schedule_id,
            'amount': str(self.amount.amount),
            'currency_code': self.amount.currency.code,
            'recorded_by': self.recorded_by,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerLogRecord':
        return cls(
            id=data['id'],
            created_at=cls._parse_timestamp(data['created_at']),
            updated_at=cls._parse_timestamp(data['updated_at']),
            loan_id=data['loan_id'],
            schedule_id=data['schedule_id'],
            amount=Money(Decimal(data['amount']), Currency[data['currency_code']]),
            recorded_by=data['recorded_by'],
        )


class RepaymentLog:
    """
    Append-only repayment log
    """

    def __init__(self, storage: StorageInterface, table_name: str = "repayment_logs"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()

    def append(self, loan_id: str, schedule_id: str, amount: Money, recorded_by: str) -> LedgerLogRecord:
        """
        Append one record. Calling twice with identical arguments writes two records.

        Args:
            loan_id: Loan the payment belongs to
            schedule_id: Schedule entry the payment was recorded against
            amount: Amount recorded
            recorded_by: Identity that recorded the payment

        Returns:
            The stored LedgerLogRecord
        """
        with self._lock:
            now = datetime.now(timezone.utc)
            record = LedgerLogRecord(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan_id,
                schedule_id=schedule_id,
                amount=amount,
                recorded_by=recorded_by,
            )
            self.storage.save(self.table_name, record.id, record.to_dict())
            return record

    def entries_for_loan(self, loan_id: str) -> List[LedgerLogRecord]:
        """All records for a loan, oldest first"""
        records = [
            LedgerLogRecord.from_dict(data)
            for data in self.storage.find(self.table_name, {'loan_id': loan_id})
        ]
        records.sort(key=lambda r: r.created_at)
        return records

    def count(self) -> int:
        return self.storage.count(self.table_name)
