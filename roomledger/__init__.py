"""
RoomLedger - Shared Expense Ledger

Tracks shared costs and settlement payments between two roommates and
answers "who owes whom how much".

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Bad records are skipped, bad wiring fails fast
3. Money is Decimal end to end
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "RoomLedger Team"
