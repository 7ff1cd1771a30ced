"""
Loan Ledger

Repayment schedules and a repayment ledger for informal peer-to-peer loans,
using Decimal fixed-point money and an explicit recovery policy for
partially failed writes.
"""

__version__ = "1.0.0"
