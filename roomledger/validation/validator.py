"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- Length limits
- This catches malformed form input

STAGE 2 - SEMANTIC VALIDATION:
- Amount ceiling
- Custom split bounded by the amount
- Expense date inside the accepted window
- Payer and payee must differ for payments
- This catches logically impossible data

Stage 2 only runs when stage 1 passes.

IMPORTANT: The validator never writes anything. The service layer
builds records from ValidationResult.cleaned and only when is_valid.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from roomledger.config import LedgerSettings, get_settings
from roomledger.models.expense import ExpenseCategory, ExpenseRecord, SplitType
from roomledger.models.validation import (
    ExpenseInput,
    PaymentInput,
    RecurringConfirmInput,
    RecurringTemplateInput,
    ValidationIssue,
    ValidationResult,
)


# Fields a user may change on an existing record
EXPENSE_EDITABLE_FIELDS = frozenset({
    "description",
    "amount",
    "category",
    "split_type",
    "custom_split_amount",
    "expense_date",
    "notes",
})
PAYMENT_EDITABLE_FIELDS = frozenset({"amount", "expense_date"})

PAYMENT_DESCRIPTION = "Payment"

# User-facing messages per field and pydantic error type. "*" is the
# fallback for any other error type on that field.
_FRIENDLY_MESSAGES: dict[str, dict[str, str]] = {
    "description": {
        "missing": "Description is required",
        "string_too_short": "Description is required",
        "string_too_long": "Description must be less than 200 characters",
    },
    "amount": {
        "missing": "Amount is required",
        "greater_than": "Amount must be greater than 0",
        "*": "Amount must be a number",
    },
    "default_amount": {
        "missing": "Amount is required",
        "greater_than": "Amount must be greater than 0",
        "*": "Amount must be a number",
    },
    "paid_by": {"*": "Invalid payer"},
    "typically_paid_by": {"*": "Payer is required"},
    "owes_user_id": {
        "missing": "Select who is being paid",
        "*": "Invalid counterparty",
    },
    "split_type": {"*": "Invalid split type"},
    "category": {"*": "Invalid category"},
    "expense_type": {"*": "Invalid expense type"},
    "custom_split_amount": {
        "greater_than_equal": "Custom split amount cannot be negative",
        "*": "Custom split amount must be a number",
    },
    "expense_date": {
        "missing": "Date is required",
        "*": "Invalid date format",
    },
    "notes": {"*": "Notes must be less than 1000 characters"},
    "group_id": {"*": "Invalid group"},
}


def _issues_from_error(exc: ValidationError) -> list[ValidationIssue]:
    """Translate pydantic errors into user-facing validation issues."""
    issues = []
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "input"
        messages = _FRIENDLY_MESSAGES.get(field, {})
        message = messages.get(error["type"]) or messages.get("*") or error["msg"]
        issues.append(ValidationIssue(
            field=field,
            issue_type="missing" if error["type"] == "missing" else "invalid_value",
            message=message,
            severity="error",
        ))
    return issues


def _build_result(
    kind: str,
    schema_valid: bool,
    issues: list[ValidationIssue],
    cleaned: Optional[dict[str, Any]] = None,
) -> ValidationResult:
    semantic_valid = schema_valid and not any(i.severity == "error" for i in issues)
    return ValidationResult(
        kind=kind,
        schema_valid=schema_valid,
        semantic_valid=semantic_valid,
        is_valid=semantic_valid,
        issues=issues,
        warnings=[i.message for i in issues if i.severity == "warning"],
        cleaned=cleaned if semantic_valid else None,
    )


class ExpenseValidator:
    """
    Validates user input for expenses, payments and recurring items.

    Stage 1: Schema validation through the input models
    Stage 2: Semantic validation against LedgerSettings limits
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Stage 1
    # -------------------------------------------------------------------------

    def _parse(
        self,
        schema: type[BaseModel],
        data: Any,
    ) -> tuple[Optional[BaseModel], list[ValidationIssue]]:
        try:
            return schema.model_validate(data), []
        except ValidationError as e:
            return None, _issues_from_error(e)

    # -------------------------------------------------------------------------
    # Stage 2 checks
    # -------------------------------------------------------------------------

    def _check_amount(self, amount: Decimal, field: str = "amount") -> list[ValidationIssue]:
        max_amount = self._settings.max_amount
        if amount > max_amount:
            return [ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"Amount cannot exceed {self._settings.currency_code} {max_amount:,}",
                severity="error",
                suggested_fix="Split very large amounts into several entries",
            )]
        return []

    def _check_date(self, expense_date: date) -> list[ValidationIssue]:
        min_date = self._settings.min_expense_date
        max_date = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
        if expense_date < min_date or expense_date > max_date:
            return [ValidationIssue(
                field="expense_date",
                issue_type="out_of_range",
                message=f"Date must be between {min_date.isoformat()} and {max_date.isoformat()}",
                severity="error",
            )]
        return []

    def _check_custom_split(
        self,
        split_type: SplitType,
        custom: Optional[Decimal],
        amount: Decimal,
        amount_label: str = "total amount",
    ) -> list[ValidationIssue]:
        if split_type != SplitType.CUSTOM:
            return []
        if custom is None:
            return [ValidationIssue(
                field="custom_split_amount",
                issue_type="missing",
                message="Enter how much the other person owes",
                severity="error",
            )]
        if custom > amount:
            return [ValidationIssue(
                field="custom_split_amount",
                issue_type="inconsistent",
                message=f"Custom split amount cannot exceed the {amount_label}",
                severity="error",
            )]
        return []

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def validate_expense(self, data: dict[str, Any]) -> ValidationResult:
        """
        Validate a shared expense.

        Returns:
            ValidationResult whose cleaned dict holds ExpenseRecord fields
        """
        parsed, issues = self._parse(ExpenseInput, data)
        if parsed is None:
            return _build_result("expense", False, issues)

        issues.extend(self._check_amount(parsed.amount))
        issues.extend(self._check_custom_split(
            parsed.split_type,
            parsed.custom_split_amount,
            parsed.amount,
        ))
        issues.extend(self._check_date(parsed.expense_date))

        cleaned = parsed.model_dump()
        if parsed.split_type != SplitType.CUSTOM:
            cleaned["custom_split_amount"] = None
        cleaned["notes"] = parsed.notes or None
        cleaned["is_payment"] = False

        return _build_result("expense", True, issues, cleaned)

    def validate_payment(self, data: dict[str, Any]) -> ValidationResult:
        """
        Validate a settlement payment.

        Description, split and category are fixed for payments; whatever
        the caller supplied for them is ignored.
        """
        parsed, issues = self._parse(PaymentInput, data)
        if parsed is None:
            return _build_result("payment", False, issues)

        issues.extend(self._check_amount(parsed.amount))
        issues.extend(self._check_date(parsed.expense_date))
        if parsed.owes_user_id == parsed.paid_by:
            issues.append(ValidationIssue(
                field="owes_user_id",
                issue_type="inconsistent",
                message="You cannot record a payment to yourself",
                severity="error",
            ))

        cleaned = {
            "description": PAYMENT_DESCRIPTION,
            "amount": parsed.amount,
            "paid_by": parsed.paid_by,
            "owes_user_id": parsed.owes_user_id,
            "split_type": SplitType.ONE_OWES_ALL,
            "custom_split_amount": None,
            "category": ExpenseCategory.OTHER,
            "expense_date": parsed.expense_date,
            "notes": parsed.notes or None,
            "group_id": parsed.group_id,
            "is_payment": True,
        }
        return _build_result("payment", True, issues, cleaned)

    def validate_recurring_template(self, data: dict[str, Any]) -> ValidationResult:
        """Validate a recurring expense template."""
        parsed, issues = self._parse(RecurringTemplateInput, data)
        if parsed is None:
            return _build_result("recurring", False, issues)

        issues.extend(self._check_amount(parsed.default_amount, field="default_amount"))
        issues.extend(self._check_custom_split(
            parsed.split_type,
            parsed.custom_split_amount,
            parsed.default_amount,
            amount_label="default amount",
        ))

        cleaned = parsed.model_dump()
        if parsed.split_type != SplitType.CUSTOM:
            cleaned["custom_split_amount"] = None
        return _build_result("recurring", True, issues, cleaned)

    def validate_recurring_confirm(self, data: dict[str, Any]) -> ValidationResult:
        """Validate the amount entered when confirming a template."""
        parsed, issues = self._parse(RecurringConfirmInput, data)
        if parsed is None:
            return _build_result("confirmation", False, issues)

        issues.extend(self._check_amount(parsed.amount))
        return _build_result("confirmation", True, issues, parsed.model_dump())

    def validate_edit(
        self,
        record: ExpenseRecord,
        changes: dict[str, Any],
    ) -> ValidationResult:
        """
        Validate changes to an existing record.

        CRITICAL: Payments may only change amount and expense_date.
        Everything else about a payment (who paid whom) is fixed once
        recorded.

        Returns:
            ValidationResult whose cleaned dict holds only the fields to
            update on the record
        """
        allowed = PAYMENT_EDITABLE_FIELDS if record.is_payment else EXPENSE_EDITABLE_FIELDS
        rejected = sorted(set(changes) - allowed)
        if rejected:
            message = (
                "Only the amount and date of a payment can be changed"
                if record.is_payment
                else "This field cannot be edited"
            )
            issues = [
                ValidationIssue(
                    field=field,
                    issue_type="not_editable",
                    message=message,
                    severity="error",
                )
                for field in rejected
            ]
            return _build_result("edit", False, issues)

        merged = {
            "description": record.description,
            "amount": record.amount,
            "paid_by": record.paid_by,
            "owes_user_id": record.owes_user_id,
            "split_type": record.split_type,
            "custom_split_amount": record.custom_split_amount,
            "category": record.category,
            "expense_date": record.expense_date,
            "notes": record.notes,
            "group_id": record.group_id,
        }
        merged.update(changes)

        if record.is_payment:
            result = self.validate_payment(merged)
        else:
            result = self.validate_expense(merged)

        cleaned = None
        if result.cleaned is not None:
            cleaned = {k: v for k, v in result.cleaned.items() if k in allowed}
        return result.model_copy(update={"kind": "edit", "cleaned": cleaned})
