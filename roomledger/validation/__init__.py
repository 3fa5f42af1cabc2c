"""Input validation package."""

from roomledger.validation.amount_expression import calculate_amount
from roomledger.validation.validator import (
    EXPENSE_EDITABLE_FIELDS,
    PAYMENT_EDITABLE_FIELDS,
    ExpenseValidator,
)

__all__ = [
    "EXPENSE_EDITABLE_FIELDS",
    "PAYMENT_EDITABLE_FIELDS",
    "ExpenseValidator",
    "calculate_amount",
]
