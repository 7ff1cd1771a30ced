"""
Repayment Schedule Module

Derives the fixed repayment schedule of a loan from its terms: simple-interest
total, end date, period count and dated installments. Everything here is a
pure function of the terms.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass
from typing import Tuple
from enum import Enum
import calendar

from .currency import Money
from .exceptions import LoanValidationError


class DurationUnit(Enum):
    """Unit of the loan duration"""
    DAYS = "Days"
    MONTHS = "Months"


class RepaymentFrequency(Enum):
    """How often an installment falls due"""
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


# Days per month used when converting durations to a period count. This is an
# approximation; due dates themselves use real calendar months.
APPROX_DAYS_PER_MONTH = 30

PERIOD_LENGTH_DAYS = {
    RepaymentFrequency.DAILY: 1,
    RepaymentFrequency.WEEKLY: 7,
    RepaymentFrequency.MONTHLY: 30,
}

# Longest accepted term, about a hundred years
MAX_DURATION_DAYS = 36500


@dataclass(frozen=True)
class LoanTerms:
    """Terms a schedule is derived from"""
    principal: Money
    interest_rate: Decimal             # Percentage, e.g. Decimal('5') for 5%
    duration_value: int
    duration_unit: DurationUnit
    frequency: RepaymentFrequency
    start_date: date


@dataclass(frozen=True)
class ScheduledInstallment:
    """One dated installment of a generated schedule"""
    sequence: int
    due_date: date
    amount: Money


@dataclass(frozen=True)
class RepaymentPlan:
    """Output of the schedule generator"""
    total_repayment: Money
    end_date: date
    period_count: int
    installment_amount: Money          # Uniform per-period amount
    installments: Tuple[ScheduledInstallment, ...]

    @property
    def scheduled_total(self) -> Money:
        total = Money.zero(self.total_repayment.currency)
        for installment in self.installments:
            total = total + installment.amount
        return total


def validate_terms(terms: LoanTerms) -> None:
    """
    Reject terms the generator should never be called with.

    Besides the basic ranges, the term must end within the supported
    calendar and every installment must be worth at least one minor unit.

    Raises:
        LoanValidationError: If principal, duration or rate is out of range
    """
    if not terms.principal.is_positive():
        raise LoanValidationError("Principal must be greater than zero")
    if isinstance(terms.duration_value, bool) or not isinstance(terms.duration_value, int):
        raise LoanValidationError("Duration must be a whole number")
    if terms.duration_value <= 0:
        raise LoanValidationError("Duration must be greater than zero")
    if terms.interest_rate < 0:
        raise LoanValidationError("Interest rate cannot be negative")

    if terms.duration_unit == DurationUnit.MONTHS:
        duration_days = terms.duration_value * APPROX_DAYS_PER_MONTH
    else:
        duration_days = terms.duration_value
    if duration_days > MAX_DURATION_DAYS:
        raise LoanValidationError(f"Duration cannot exceed {MAX_DURATION_DAYS} days")

    period_count = calculate_period_count(terms.duration_value, terms.duration_unit, terms.frequency)
    try:
        calculate_end_date(terms.start_date, terms.duration_value, terms.duration_unit)
        due_date_for(terms.start_date, terms.frequency, period_count)
    except (ValueError, OverflowError):
        raise LoanValidationError("Loan term runs past the last supported date")

    try:
        total_repayment = calculate_total_repayment(terms.principal, terms.interest_rate)
    except ValueError as e:
        raise LoanValidationError(f"Total repayment out of range: {e}")
    if total_repayment.minor_units < period_count:
        raise LoanValidationError(
            f"Total repayment {total_repayment.amount} is too small to split into {period_count} installments"
        )


def calculate_total_repayment(principal: Money, interest_rate: Decimal) -> Money:
    """Simple interest for the whole term: principal + principal * rate / 100"""
    if not isinstance(interest_rate, Decimal):
        interest_rate = Decimal(str(interest_rate))
    return Money(principal.amount + principal.amount * interest_rate / Decimal('100'),
                 principal.currency)


def add_months(start_date: date, months: int) -> date:
    """Add calendar months, clamping to the last day of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calculate_end_date(start_date: date, duration_value: int, duration_unit: DurationUnit) -> date:
    if duration_unit == DurationUnit.MONTHS:
        return add_months(start_date, duration_value)
    return start_date + timedelta(days=duration_value)


def calculate_period_count(duration_value: int, duration_unit: DurationUnit,
                           frequency: RepaymentFrequency) -> int:
    """
    Number of installments for a duration and frequency.

    The duration is converted to approximate days (months count as 30 days),
    divided by the period length and floored. Never less than 1.
    """
    if duration_unit == DurationUnit.MONTHS:
        duration_days = duration_value * APPROX_DAYS_PER_MONTH
    else:
        duration_days = duration_value
    return max(1, duration_days // PERIOD_LENGTH_DAYS[frequency])


def due_date_for(start_date: date, frequency: RepaymentFrequency, sequence: int) -> date:
    """Due date of the installment with the given 1-based sequence number"""
    if frequency == RepaymentFrequency.MONTHLY:
        # Measured from the start so a 31st does not drift to the 28th
        return add_months(start_date, sequence)
    return start_date + timedelta(days=PERIOD_LENGTH_DAYS[frequency] * sequence)


def generate_schedule(terms: LoanTerms) -> RepaymentPlan:
    """
    Generate the repayment schedule for a set of loan terms.

    The total is split in integer minor units: every installment receives
    ``total // period_count`` and the final one also takes the remainder, so
    the installments always add up to the total exactly.

    Args:
        terms: Loan terms

    Returns:
        RepaymentPlan with totals and installments ordered by due date

    Raises:
        LoanValidationError: If the terms are rejected by validate_terms
    """
    validate_terms(terms)

    currency = terms.principal.currency
    total_repayment = calculate_total_repayment(terms.principal, terms.interest_rate)
    end_date = calculate_end_date(terms.start_date, terms.duration_value, terms.duration_unit)
    period_count = calculate_period_count(terms.duration_value, terms.duration_unit, terms.frequency)

    total_units = total_repayment.minor_units
    base_units = total_units // period_count
    remainder_units = total_units - base_units * period_count

    installments = []
    for sequence in range(1, period_count + 1):
        units = base_units
        if sequence == period_count:
            units += remainder_units
        installments.append(ScheduledInstallment(
            sequence=sequence,
            due_date=due_date_for(terms.start_date, terms.frequency, sequence),
            amount=Money.from_minor_units(units, currency)
        ))

    return RepaymentPlan(
        total_repayment=total_repayment,
        end_date=end_date,
        period_count=period_count,
        installment_amount=Money.from_minor_units(base_units, currency),
        installments=tuple(installments)
    )
