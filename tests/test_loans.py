"""
Test suite for the loan service

Tests loan creation with profile provisioning, portfolio reads and payment
recording through the repayment saga.
"""

import pytest
from decimal import Decimal
from datetime import date

from loan_ledger.audit import RepaymentLog
from loan_ledger.currency import Money, Currency
from loan_ledger.exceptions import (
    EntityNotFoundError, LenderProfileMissingError, LoanValidationError,
    PaymentAbortedError, PaymentValidationError, PersistenceError,
    ReconciliationRequiredError
)
from loan_ledger.ledger import LedgerContext
from loan_ledger.lenders import LenderManager
from loan_ledger.loans import LoanApplication, LoanService, summarize_portfolio
from loan_ledger.models import LoanStatus, EntryStatus
from loan_ledger.schedule import DurationUnit, RepaymentFrequency
from loan_ledger.storage import InMemoryStorage
from loan_ledger.store import LoanStore


def usd(amount):
    return Money(Decimal(amount), Currency.USD)


def application(borrower_name="Alice", principal='100', rate='5', duration=30,
                unit=DurationUnit.DAYS, frequency=RepaymentFrequency.DAILY,
                currency=Currency.USD):
    return LoanApplication(
        borrower_name=borrower_name,
        principal=Money(Decimal(principal), currency),
        interest_rate=Decimal(rate),
        duration_value=duration,
        duration_unit=unit,
        frequency=frequency,
        start_date=date(2024, 1, 1),
    )


def build_service(storage, **kwargs):
    log = RepaymentLog(storage)
    return LoanService(LoanStore(storage, log), LenderManager(storage), **kwargs)


class TestCreateLoan:
    """Test loan creation"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.service = build_service(self.storage)
        self.context = LedgerContext.for_lender("lender-1", display_name="Dara")
        self.service.lender_manager.upsert_profile("lender-1", "Dara")

    def test_create_loan(self):
        loan = self.service.create_loan(self.context, application())

        assert loan.lender_id == "lender-1"
        assert loan.total_repayment == usd('105.00')
        assert loan.end_date == date(2024, 1, 31)
        assert loan.status == LoanStatus.ACTIVE
        assert loan.amount_repaid == usd('0')
        assert len(loan.schedule) == 30
        assert all(e.loan_id == loan.id for e in loan.schedule)
        assert self.storage.count("repayment_schedule") == 30

    def test_borrower_name_is_trimmed(self):
        loan = self.service.create_loan(self.context, application(borrower_name="  Alice  "))
        assert loan.borrower_name == "Alice"

    def test_invalid_application_writes_nothing(self):
        with pytest.raises(LoanValidationError):
            self.service.create_loan(self.context, application(borrower_name=" "))
        with pytest.raises(LoanValidationError):
            self.service.create_loan(self.context, application(principal='0'))
        with pytest.raises(LoanValidationError):
            self.service.create_loan(self.context, application(duration=0))

        assert self.storage.count("loans") == 0

    def test_missing_profile_is_provisioned(self):
        context = LedgerContext.for_lender("newcomer", display_name="Sok", phone="099")
        loan = self.service.create_loan(context, application())

        profile = self.service.lender_manager.get_profile("newcomer")
        assert profile.full_name == "Sok"
        assert profile.phone == "099"
        assert self.service.get_loan(context, loan.id).id == loan.id

    def test_provisioned_profile_uses_default_name(self):
        context = LedgerContext.for_lender("anonymous")
        self.service.create_loan(context, application())

        assert self.service.lender_manager.get_profile("anonymous").full_name == "Lender"

    def test_provisioning_disabled(self):
        service = build_service(self.storage, auto_provision_profiles=False)
        with pytest.raises(LenderProfileMissingError):
            service.create_loan(LedgerContext.for_lender("newcomer"), application())

    def test_profile_write_failure_is_persistence_error(self, flaky_storage):
        """A backend failure while provisioning surfaces as a ledger error"""
        flaky_storage.failing_tables = {"profiles"}
        service = build_service(flaky_storage)

        with pytest.raises(PersistenceError):
            service.create_loan(LedgerContext.for_lender("newcomer"), application())
        assert flaky_storage.count("loans") == 0

    def test_second_failure_is_fatal(self, monkeypatch):
        """The write is retried once after provisioning, not more"""
        calls = []
        monkeypatch.setattr(self.service.lender_manager, "provision_minimal_profile",
                            lambda context: calls.append(context))

        with pytest.raises(LenderProfileMissingError):
            self.service.create_loan(LedgerContext.for_lender("newcomer"), application())
        assert len(calls) == 1
        assert self.storage.count("loans") == 0


class TestReads:
    """Test portfolio reads"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.service = build_service(self.storage)
        self.context = LedgerContext.for_lender("lender-1")
        self.other = LedgerContext.for_lender("lender-2")

    def test_list_only_own_loans(self):
        self.service.create_loan(self.context, application("Alice"))
        self.service.create_loan(self.other, application("Bopha"))

        assert [loan.borrower_name for loan in self.service.list_loans(self.context)] == ["Alice"]

    def test_search_by_borrower_name(self):
        self.service.create_loan(self.context, application("Alice Chan"))
        self.service.create_loan(self.context, application("Bopha"))

        found = self.service.list_loans(self.context, search="  alice ")
        assert [loan.borrower_name for loan in found] == ["Alice Chan"]
        assert len(self.service.list_loans(self.context, search="")) == 2

    def test_get_loan_of_other_lender(self):
        loan = self.service.create_loan(self.other, application())
        with pytest.raises(EntityNotFoundError):
            self.service.get_loan(self.context, loan.id)

    def test_reads_recompute_aggregate(self):
        loan = self.service.create_loan(self.context, application())
        self.service.store.update_loan_aggregate(loan.id, usd('99.00'), LoanStatus.COMPLETED)

        read = self.service.get_loan(self.context, loan.id)
        assert read.amount_repaid == usd('0')
        assert read.status == LoanStatus.ACTIVE


class TestRecordPayment:
    """Test payment recording and its failure modes"""

    @pytest.fixture(autouse=True)
    def _service(self, flaky_storage):
        self.storage = flaky_storage
        self.service = build_service(self.storage)
        self.context = LedgerContext.for_lender("lender-1", recorded_by="clerk")
        self.loan = self.service.create_loan(self.context, application())
        self.entry_id = self.loan.schedule[0].id

    def test_record_payment(self):
        update = self.service.record_payment(self.context, self.loan.id, self.entry_id,
                                             usd('3.50'), "cash")

        assert update.entry.status == EntryStatus.PAID
        assert update.loan.amount_repaid == usd('3.50')
        assert update.loan.status == LoanStatus.ACTIVE

        stored = self.service.store.get_loan(self.loan.id)
        assert stored.amount_repaid == usd('3.50')
        assert stored.schedule[0].status == EntryStatus.PAID
        assert stored.schedule[0].note == "cash"

        records = self.service.store.repayment_log.entries_for_loan(self.loan.id)
        assert len(records) == 1
        assert records[0].amount == usd('3.50')
        assert records[0].recorded_by == "clerk"

    def test_completing_the_loan(self):
        for entry in self.loan.schedule:
            update = self.service.record_payment(self.context, self.loan.id, entry.id, usd('3.50'))

        assert update.loan.status == LoanStatus.COMPLETED
        assert self.service.store.get_loan(self.loan.id).status == LoanStatus.COMPLETED
        assert self.service.store.repayment_log.count() == 30

    def test_each_recording_is_logged(self):
        self.service.record_payment(self.context, self.loan.id, self.entry_id, usd('3.50'))
        self.service.record_payment(self.context, self.loan.id, self.entry_id, usd('3.50'))

        assert self.service.store.repayment_log.count() == 2
        assert self.service.get_loan(self.context, self.loan.id).amount_repaid == usd('3.50')

    def test_repayment_log_disabled(self):
        service = build_service(self.storage, write_repayment_log=False)
        service.record_payment(self.context, self.loan.id, self.entry_id, usd('3.50'))
        assert service.store.repayment_log.count() == 0

    def test_invalid_amount_writes_nothing(self):
        with pytest.raises(PaymentValidationError):
            self.service.record_payment(self.context, self.loan.id, self.entry_id, usd('-1'))

        assert self.service.store.get_entry(self.entry_id).status == EntryStatus.PENDING
        assert self.service.store.repayment_log.count() == 0

    def test_unknown_entry(self):
        with pytest.raises(EntityNotFoundError):
            self.service.record_payment(self.context, self.loan.id, "missing", usd('3.50'))

    def test_other_lenders_loan(self):
        with pytest.raises(EntityNotFoundError):
            self.service.record_payment(LedgerContext.for_lender("lender-2"), self.loan.id,
                                        self.entry_id, usd('3.50'))

    def test_read_failure_aborts(self):
        self.storage.fail_reads = True
        with pytest.raises(PaymentAbortedError) as exc_info:
            self.service.record_payment(self.context, self.loan.id, self.entry_id, usd('3.50'))

        assert exc_info.value.loan_id == self.loan.id
        assert exc_info.value.entry_id == self.entry_id

    def test_entry_write_failure_aborts(self):
        self.storage.failing_tables = {"repayment_schedule"}
        with pytest.raises(PaymentAbortedError):
            self.service.record_payment(self.context, self.loan.id, self.entry_id, usd('3.50'))

        self.storage.failing_tables = set()
        assert self.service.store.get_entry(self.entry_id).status == EntryStatus.PENDING
        assert self.service.store.repayment_log.count() == 0

    def test_log_failure_is_not_fatal(self):
        self.storage.failing_tables = {"repayment_logs"}
        update = self.service.record_payment(self.context, self.loan.id, self.entry_id, usd('3.50'))

        assert update.loan.amount_repaid == usd('3.50')
        assert self.service.store.get_loan(self.loan.id).amount_repaid == usd('3.50')

    def test_aggregate_failure_requires_reconciliation(self):
        self.storage.failing_tables = {"loans"}
        with pytest.raises(ReconciliationRequiredError) as exc_info:
            self.service.record_payment(self.context, self.loan.id, self.entry_id, usd('3.50'))

        error = exc_info.value
        assert error.failed_step == "update_loan_aggregate"
        assert error.update.loan.amount_repaid == usd('3.50')

        # Persisted entry is ahead of the persisted aggregate
        assert self.storage.load("loans", self.loan.id)["amount_repaid"] == "0.00"
        assert self.service.store.get_entry(self.entry_id).status == EntryStatus.PAID

        # A re-read recomputes the aggregate from the entries
        reread = self.service.get_loan(self.context, self.loan.id)
        assert reread.amount_repaid == usd('3.50')
        assert reread.schedule[0].status == EntryStatus.PAID


class TestPortfolioSummary:
    """Test dashboard totals"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.service = build_service(self.storage)
        self.context = LedgerContext.for_lender("lender-1")

    def test_summary_per_currency(self):
        first = self.service.create_loan(self.context, application("Alice"))
        self.service.create_loan(self.context, application("Bopha", principal='200', rate='10'))
        self.service.create_loan(self.context, application("Chan", principal='40000',
                                                           currency=Currency.KHR))
        self.service.record_payment(self.context, first.id, first.schedule[0].id, usd('3.50'))

        summaries = summarize_portfolio(self.service.list_loans(self.context))

        usd_summary = summaries[Currency.USD]
        assert usd_summary.total_lent == usd('300.00')
        assert usd_summary.active_loans == 2
        assert usd_summary.total_repaid == usd('3.50')
        assert usd_summary.expected_interest == usd('25.00')

        khr_summary = summaries[Currency.KHR]
        assert khr_summary.total_lent == Money(Decimal('40000'), Currency.KHR)
        assert khr_summary.expected_interest == Money(Decimal('2000'), Currency.KHR)

    def test_rejected_and_completed_loans(self, make_loan):
        completed = make_loan(status=LoanStatus.COMPLETED)
        rejected = make_loan(principal='50', status=LoanStatus.REJECTED)
        pending = make_loan(principal='20', status=LoanStatus.PENDING)

        summary = summarize_portfolio([completed, rejected, pending])[Currency.USD]
        assert summary.total_lent == usd('100.00')
        assert summary.active_loans == 0
        assert summary.expected_interest == usd('6.00')

    def test_empty_portfolio(self):
        assert summarize_portfolio([]) == {}
