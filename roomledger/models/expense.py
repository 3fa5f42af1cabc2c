"""
Core Data Models for RoomLedger

These models define the shapes of everything the balance engine reads
and returns. They are designed to:
1. Normalize loose data from the record store at the boundary
2. Stay immutable so a snapshot cannot change under a computation
3. Be serializable for storage, export and logging

DESIGN DECISION: Money is always Decimal. Halving an amount for a
fifty/fifty split must not leave float residue in the ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, NamedTuple, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class SplitType(str, Enum):
    """
    How much of an expense the non-payer owes.

    fifty_fifty  - half of the amount
    custom       - exactly custom_split_amount
    one_owes_all - the whole amount
    """
    FIFTY_FIFTY = "fifty_fifty"
    CUSTOM = "custom"
    ONE_OWES_ALL = "one_owes_all"


class ExpenseCategory(str, Enum):
    """
    Analytics tag for an expense.

    Irrelevant to balance math; used only by the period aggregator.
    """
    RENT = "rent"
    UTILITIES = "utilities"
    GROCERIES = "groceries"
    HOUSEHOLD_SUPPLIES = "household_supplies"
    SHARED_MEALS = "shared_meals"
    PURCHASES = "purchases"
    OTHER = "other"


class BalanceDirection(str, Enum):
    """Who owes whom, relative to the (party_a, party_b) pair."""
    A_OWES_B = "A_owes_B"
    B_OWES_A = "B_owes_A"
    SETTLED = "settled"


class RecurringExpenseType(str, Enum):
    """Shared templates move the balance; personal ones only track spending."""
    SHARED = "shared"
    PERSONAL = "personal"


def _new_id() -> str:
    return str(uuid4())


def _coerce_category(v: Any) -> ExpenseCategory:
    """Unknown or missing categories fall back to OTHER."""
    if isinstance(v, ExpenseCategory):
        return v
    try:
        return ExpenseCategory(v)
    except ValueError:
        return ExpenseCategory.OTHER


# =============================================================================
# EXPENSE RECORD
# =============================================================================

class ExpenseRecord(BaseModel):
    """
    One financial event: a shared cost or a settlement payment.

    CRITICAL: is_payment is normalized so that only the boolean True
    marks a payment. Strings like "true", the integer 1 or None all
    become False. The contribution resolver relies on this.

    Records are frozen. Edits go through model_copy(update=...) after
    the validator has approved the change.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id, min_length=1)
    description: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., gt=0)
    is_payment: bool = False

    paid_by: str = Field(..., min_length=1)
    owes_user_id: Optional[str] = None

    split_type: SplitType = SplitType.FIFTY_FIFTY
    custom_split_amount: Optional[Decimal] = Field(default=None, allow_inf_nan=True)

    category: ExpenseCategory = ExpenseCategory.OTHER
    expense_date: date
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    notes: Optional[str] = Field(default=None, max_length=1000)
    group_id: Optional[str] = None

    # Denormalized display names attached by the store layer
    paid_by_name: Optional[str] = None
    owes_user_name: Optional[str] = None

    @field_validator("is_payment", mode="before")
    @classmethod
    def normalize_is_payment(cls, v: Any) -> bool:
        return v is True

    @field_validator("category", mode="before")
    @classmethod
    def default_unknown_category(cls, v: Any) -> ExpenseCategory:
        return _coerce_category(v)

    @field_validator("owes_user_id", mode="before")
    @classmethod
    def blank_counterparty_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_custom_split(self) -> "ExpenseRecord":
        """A custom split can never exceed what was paid."""
        custom = self.custom_split_amount
        if (
            self.split_type == SplitType.CUSTOM
            and custom is not None
            and not custom.is_nan()
        ):
            if custom < 0:
                raise ValueError("Custom split amount cannot be negative")
            if custom > self.amount:
                raise ValueError("Custom split amount cannot exceed the total amount")
        return self

    @property
    def month_key(self) -> str:
        return self.expense_date.strftime("%Y-%m")


# =============================================================================
# COMPUTATION RESULTS
# =============================================================================

class Contribution(NamedTuple):
    """
    Per-record deltas for one pair of parties.

    Values are signed: a payment shows up as a negative delta on the
    side of the party who paid it.
    """
    a_owes_b: Decimal
    b_owes_a: Decimal

    @property
    def net(self) -> Decimal:
        """Signed effect on the balance (positive = B owes A)."""
        return self.b_owes_a - self.a_owes_b


class PairTotals(NamedTuple):
    """Both sides of the fold, kept apart until the final netting."""
    total_a_owes_b: Decimal
    total_b_owes_a: Decimal
    included: int
    excluded: int

    @property
    def net(self) -> Decimal:
        return self.total_b_owes_a - self.total_a_owes_b


class NetBalance(BaseModel):
    """Headline answer to "who owes whom how much"."""
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., ge=0)
    direction: BalanceDirection

    @property
    def is_settled(self) -> bool:
        return self.direction == BalanceDirection.SETTLED

    @property
    def signed(self) -> Decimal:
        """Amount with the system-wide sign convention (positive = B owes A)."""
        if self.direction == BalanceDirection.A_OWES_B:
            return -self.amount
        return self.amount


class LedgerEntry(BaseModel):
    """One row of the audited ledger view."""
    model_config = ConfigDict(frozen=True)

    record: ExpenseRecord
    contribution: Optional[Contribution] = None
    running_balance: Decimal

    @property
    def is_excluded(self) -> bool:
        return self.contribution is None


class CategoryShare(BaseModel):
    """A category's slice of a month's spending."""
    model_config = ConfigDict(frozen=True)

    category: ExpenseCategory
    amount: Decimal
    percentage: Decimal


class MonthlyAggregate(BaseModel):
    """Spending totals for one month (payments excluded)."""
    model_config = ConfigDict(frozen=True)

    total_spent: Decimal = Decimal("0")
    per_category_total: dict[ExpenseCategory, Decimal] = Field(default_factory=dict)
    per_payer_total: dict[str, Decimal] = Field(default_factory=dict)

    def category_percentage(self, category: ExpenseCategory) -> Decimal:
        """Share of total_spent for a category; 0 for an empty month."""
        if self.total_spent == 0:
            return Decimal("0")
        amount = self.per_category_total.get(category, Decimal("0"))
        return amount / self.total_spent * 100

    def category_breakdown(self) -> list[CategoryShare]:
        """Categories sorted by amount, largest first."""
        shares = [
            CategoryShare(
                category=category,
                amount=amount,
                percentage=self.category_percentage(category),
            )
            for category, amount in self.per_category_total.items()
        ]
        shares.sort(key=lambda s: s.amount, reverse=True)
        return shares


class MonthSummary(BaseModel):
    """Month header card: spending, payments and the month's own net."""
    model_config = ConfigDict(frozen=True)

    total_spent: Decimal
    total_payments: Decimal
    spent_by_a: Decimal
    spent_by_b: Decimal
    net: Decimal = Field(
        ...,
        description="Signed net for the month only (positive = B owes A)",
    )


# =============================================================================
# RECURRING EXPENSES
# =============================================================================

class RecurringTemplate(BaseModel):
    """
    A fixed monthly cost (rent, internet) that is confirmed each month.

    Confirming a template creates a real ExpenseRecord.
    Templates are soft-deleted by clearing is_active.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    description: str = Field(..., min_length=1, max_length=200)
    default_amount: Decimal = Field(..., gt=0)
    category: ExpenseCategory = ExpenseCategory.OTHER
    expense_type: RecurringExpenseType = RecurringExpenseType.SHARED
    split_type: SplitType = SplitType.FIFTY_FIFTY
    custom_split_amount: Optional[Decimal] = None
    typically_paid_by: str = Field(..., min_length=1)
    owes_user_id: Optional[str] = None
    created_by: str = Field(..., min_length=1)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("category", mode="before")
    @classmethod
    def default_unknown_category(cls, v: Any) -> ExpenseCategory:
        return _coerce_category(v)


class RecurringConfirmation(BaseModel):
    """Proof that a template was paid for a given month."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    recurring_expense_id: str
    month_key: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    confirmed_amount: Decimal = Field(..., gt=0)
    confirmed_by: str
    expense_id: str
    confirmed_at: datetime = Field(default_factory=datetime.utcnow)


class RecurringItemStatus(BaseModel):
    """A template paired with this month's confirmation, if any."""
    model_config = ConfigDict(frozen=True)

    template: RecurringTemplate
    confirmation: Optional[RecurringConfirmation] = None

    @property
    def is_pending(self) -> bool:
        return self.confirmation is None


class RecurringSummary(BaseModel):
    """Fixed-cost progress for the month."""
    model_config = ConfigDict(frozen=True)

    total_fixed: Decimal
    paid_so_far: Decimal
    remaining: Decimal
