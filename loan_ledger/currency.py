"""
Currency Module

Fixed-point money for loan amounts. Every Money value is quantized to its
currency's minor unit, so sums and splits are exact. Amounts in different
currencies are never combined.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union
import re

getcontext().prec = 28


class Currency(Enum):
    """Supported loan currencies with minor-unit precision and display symbol"""
    USD = ("USD", 2, "$")   # US Dollar
    KHR = ("KHR", 2, "៛")   # Cambodian Riel

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount (one minor unit)"""
        return Decimal('0.1') ** self.precision


@dataclass(frozen=True)
class Money:
    """
    Immutable money value with currency.
    The amount is always rounded to the currency's minor unit.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        if not self.amount.is_finite():
            raise ValueError(f"Amount must be a finite number, got {self.amount}")
        try:
            rounded = self.amount.quantize(self.currency.quantum, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValueError(f"Amount {self.amount} is outside the supported range")
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency) -> 'Money':
        return cls(Decimal('0'), currency)

    @classmethod
    def from_minor_units(cls, units: int, currency: Currency) -> 'Money':
        """Build from an integer count of minor units (cents)"""
        return cls(Decimal(units).scaleb(-currency.precision), currency)

    @property
    def minor_units(self) -> int:
        """Amount as an integer count of minor units"""
        return int(self.amount.scaleb(self.currency.precision))

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __truediv__(self, divisor: Decimal) -> 'Money':
        if not isinstance(divisor, Decimal):
            divisor = Decimal(str(divisor))
        return Money(self.amount / divisor, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display"""
        return f"{self.currency.symbol}{self.amount:,.{self.currency.precision}f}"


_AMOUNT_CHARS = re.compile(r'^[+-]?[\d.,]+$')


def parse_amount(value: Union[str, int, Decimal]) -> Decimal:
    """
    Convert user input to Decimal, tolerating currency symbols, spaces and
    thousands separators. Anything else, letters included, is rejected.

    Args:
        value: Amount as typed by the user, or an existing number

    Returns:
        Decimal value

    Raises:
        ValueError: If the value cannot be read as a number
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if not value or not isinstance(value, str):
        raise ValueError("Amount must be a non-empty string")

    clean_value = value.strip()
    for currency in Currency:
        clean_value = clean_value.replace(currency.symbol, '')
    clean_value = re.sub(r'\s', '', clean_value)
    if not _AMOUNT_CHARS.match(clean_value):
        raise ValueError(f"Cannot convert '{value}' to an amount")

    if ',' in clean_value and '.' in clean_value:
        clean_value = clean_value.replace(',', '')
    elif clean_value.count(',') == 1:
        whole, fraction = clean_value.split(',')
        if len(fraction) <= 2:
            clean_value = f"{whole}.{fraction}"
        else:
            clean_value = whole + fraction

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to an amount")
