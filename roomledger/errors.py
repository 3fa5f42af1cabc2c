"""
Domain Exceptions for RoomLedger

DESIGN DECISION: Bad data and bad wiring are different failures.

- A record that cannot be attributed to the current pair is NOT an
  error. The ledger skips it.
- Calling the ledger with something that is not a record list, or
  without both party identifiers, IS an error. It means the caller is
  wired wrong, so it fails fast.

Storage exceptions live with the storage interface.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for RoomLedger."""
    pass


class LedgerInputError(LedgerError, ValueError):
    """The ledger was called with arguments that indicate a wiring bug."""
    pass


class ExpenseValidationError(LedgerError):
    """User input failed validation. The message is safe to show."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ExportError(LedgerError):
    """Export could not be produced."""
    pass

