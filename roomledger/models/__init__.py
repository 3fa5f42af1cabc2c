"""
Data Models Package

This package contains all Pydantic models used by RoomLedger.
Every record the balance engine folds conforms to these schemas.
"""

from roomledger.models.expense import (
    BalanceDirection,
    CategoryShare,
    Contribution,
    ExpenseCategory,
    ExpenseRecord,
    LedgerEntry,
    MonthlyAggregate,
    MonthSummary,
    NetBalance,
    PairTotals,
    RecurringConfirmation,
    RecurringExpenseType,
    RecurringItemStatus,
    RecurringSummary,
    RecurringTemplate,
    SplitType,
)
from roomledger.models.validation import (
    ExpenseInput,
    PaymentInput,
    RecurringConfirmInput,
    RecurringTemplateInput,
    ValidationIssue,
    ValidationResult,
)
from roomledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "BalanceDirection",
    "CategoryShare",
    "Contribution",
    "ExpenseCategory",
    "ExpenseRecord",
    "LedgerEntry",
    "MonthlyAggregate",
    "MonthSummary",
    "NetBalance",
    "PairTotals",
    "RecurringConfirmation",
    "RecurringExpenseType",
    "RecurringItemStatus",
    "RecurringSummary",
    "RecurringTemplate",
    "SplitType",
    # Validation models
    "ExpenseInput",
    "PaymentInput",
    "RecurringConfirmInput",
    "RecurringTemplateInput",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
