"""
Validation Models

Input schemas for everything a user can type into the ledger, plus the
result types of the two-stage validator.

The input schemas are stage 1: they check types, presence and length.
Cross-field and range checks that depend on settings (maximum amount,
accepted date window) are stage 2 and live in the validator.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from roomledger.models.expense import (
    ExpenseCategory,
    RecurringExpenseType,
    SplitType,
)


# =============================================================================
# INPUT SCHEMAS (stage 1)
# =============================================================================

class ExpenseInput(BaseModel):
    """A new or edited shared expense, as entered by a user."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    paid_by: str = Field(..., min_length=1)
    owes_user_id: Optional[str] = Field(default=None, min_length=1)
    split_type: SplitType = SplitType.FIFTY_FIFTY
    custom_split_amount: Optional[Decimal] = Field(default=None, ge=0)
    category: ExpenseCategory = ExpenseCategory.OTHER
    expense_date: date
    notes: Optional[str] = Field(default=None, max_length=1000)
    group_id: Optional[str] = Field(default=None, min_length=1)


class PaymentInput(BaseModel):
    """A settlement transfer from paid_by to owes_user_id."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    amount: Decimal = Field(..., gt=0)
    paid_by: str = Field(..., min_length=1)
    owes_user_id: str = Field(..., min_length=1)
    expense_date: date
    notes: Optional[str] = Field(default=None, max_length=1000)
    group_id: Optional[str] = Field(default=None, min_length=1)


class RecurringTemplateInput(BaseModel):
    """A fixed monthly cost, as entered by a user."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    description: str = Field(..., min_length=1, max_length=200)
    default_amount: Decimal = Field(..., gt=0)
    expense_type: RecurringExpenseType = RecurringExpenseType.SHARED
    category: ExpenseCategory = ExpenseCategory.OTHER
    split_type: SplitType = SplitType.FIFTY_FIFTY
    custom_split_amount: Optional[Decimal] = Field(default=None, ge=0)
    typically_paid_by: str = Field(..., min_length=1)
    owes_user_id: Optional[str] = Field(default=None, min_length=1)


class RecurringConfirmInput(BaseModel):
    """The amount actually paid this month for a template."""
    model_config = ConfigDict(extra="ignore")

    amount: Decimal = Field(..., gt=0)


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Semantic validation (ranges, cross-field checks)

    cleaned holds the normalized values when validation passed. It is
    ready to be merged into an ExpenseRecord or RecurringTemplate.
    """

    kind: str = Field(
        ...,
        description="What was validated (expense, payment, recurring, confirmation, edit)"
    )
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    # Stage results
    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    # Warnings don't block but should be shown
    warnings: list[str] = Field(default_factory=list)

    cleaned: Optional[dict[str, Any]] = None

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def first_error(self) -> Optional[str]:
        """Message of the first error, the one shown to the user."""
        for issue in self.issues:
            if issue.severity == "error":
                return issue.message
        return None
