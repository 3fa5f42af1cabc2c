"""
Recurring Expenses

Fixed monthly costs (rent, internet, a gym membership) are kept as
templates. Each month a user confirms the amount actually paid, which
creates a real ExpenseRecord plus a confirmation linking the two.

DESIGN DECISION: Personal templates track spending only. Their
expenses are written with a custom split of zero and no counterparty,
so they show up in monthly totals but never move the pairwise balance.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

import structlog

from roomledger.audit import AuditLogger, create_correlation_id
from roomledger.errors import ExpenseValidationError
from roomledger.ledger.periods import month_key as month_key_for
from roomledger.models.audit import AuditEventBuilder
from roomledger.models.expense import (
    ExpenseRecord,
    RecurringConfirmation,
    RecurringExpenseType,
    RecurringItemStatus,
    RecurringSummary,
    RecurringTemplate,
    SplitType,
)
from roomledger.models.validation import ValidationResult
from roomledger.services.storage import ExpenseStoreInterface, NotFoundError
from roomledger.validation import ExpenseValidator


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


# =============================================================================
# PURE HELPERS
# =============================================================================

def recurring_status(
    templates: Sequence[RecurringTemplate],
    confirmations: Sequence[RecurringConfirmation],
) -> list[RecurringItemStatus]:
    """Pair each template with its confirmation for the month, if any."""
    by_template: dict[str, RecurringConfirmation] = {}
    for confirmation in confirmations:
        by_template.setdefault(confirmation.recurring_expense_id, confirmation)

    return [
        RecurringItemStatus(template=t, confirmation=by_template.get(t.id))
        for t in templates
    ]


def recurring_summary(statuses: Iterable[RecurringItemStatus]) -> RecurringSummary:
    """Fixed-cost total, how much is confirmed and what is left."""
    total_fixed = ZERO
    paid_so_far = ZERO
    for status in statuses:
        total_fixed += status.template.default_amount
        if status.confirmation is not None:
            paid_so_far += status.confirmation.confirmed_amount

    return RecurringSummary(
        total_fixed=total_fixed,
        paid_so_far=paid_so_far,
        remaining=total_fixed - paid_so_far,
    )


def expense_from_template(
    template: RecurringTemplate,
    amount: Decimal,
    expense_date: date,
) -> ExpenseRecord:
    """
    Build the expense a confirmation creates.

    A shared template's custom split is capped at the confirmed amount,
    which may be lower than the template's default.
    """
    if template.expense_type == RecurringExpenseType.PERSONAL:
        split_type = SplitType.CUSTOM
        custom = ZERO
        owes_user_id = None
    else:
        split_type = template.split_type
        custom = template.custom_split_amount
        if split_type == SplitType.CUSTOM and custom is not None:
            custom = min(custom, amount)
        owes_user_id = template.owes_user_id

    return ExpenseRecord(
        description=template.description,
        amount=amount,
        is_payment=False,
        paid_by=template.typically_paid_by,
        owes_user_id=owes_user_id,
        split_type=split_type,
        custom_split_amount=custom,
        category=template.category,
        expense_date=expense_date,
        notes=f"Recurring: {template.description}",
    )


# =============================================================================
# SERVICE
# =============================================================================

class RecurringService:
    """
    Manages recurring templates and their monthly confirmations.

    Every mutation is validated first and audited after it succeeds.
    """

    def __init__(
        self,
        store: ExpenseStoreInterface,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._validator = validator or ExpenseValidator()
        self._audit = audit_logger or AuditLogger()

    async def _require_valid(
        self,
        result: ValidationResult,
        actor_id: Optional[str],
    ) -> dict[str, Any]:
        if not result.is_valid:
            await self._audit.log_validation_failed(
                kind=result.kind,
                issues=[i.model_dump() for i in result.issues],
                actor_id=actor_id,
            )
            first = next(i for i in result.issues if i.severity == "error")
            raise ExpenseValidationError(first.message, field=first.field)
        return result.cleaned or {}

    async def _get_template(self, template_id: str) -> RecurringTemplate:
        template = await self._store.get_template(template_id)
        if template is None:
            raise NotFoundError(f"Recurring expense not found: {template_id}")
        return template

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    async def add_template(
        self,
        data: dict[str, Any],
        actor_id: str,
    ) -> RecurringTemplate:
        """
        Create a recurring template.

        Raises:
            ExpenseValidationError: If the input is invalid
        """
        cleaned = await self._require_valid(
            self._validator.validate_recurring_template(data),
            actor_id,
        )
        template = RecurringTemplate(created_by=actor_id, **cleaned)
        await self._store.add_template(template)

        await self._audit.log(AuditEventBuilder.recurring_template_created(
            template_id=template.id,
            description=template.description,
            actor_id=actor_id,
        ))
        return template

    async def update_template(
        self,
        template_id: str,
        changes: dict[str, Any],
        actor_id: str,
    ) -> RecurringTemplate:
        """Apply changes to a template after re-validating the whole of it."""
        current = await self._get_template(template_id)
        merged = current.model_dump(include={
            "description",
            "default_amount",
            "expense_type",
            "category",
            "split_type",
            "custom_split_amount",
            "typically_paid_by",
            "owes_user_id",
        })
        merged.update(changes)

        cleaned = await self._require_valid(
            self._validator.validate_recurring_template(merged),
            actor_id,
        )
        updated = current.model_copy(update={**cleaned, "updated_at": datetime.utcnow()})
        return await self._store.update_template(updated)

    async def deactivate_template(self, template_id: str, actor_id: str) -> RecurringTemplate:
        """Soft-delete a template. Past confirmations and expenses stay."""
        current = await self._get_template(template_id)
        updated = await self._store.update_template(
            current.model_copy(update={"is_active": False, "updated_at": datetime.utcnow()})
        )
        await self._audit.log(AuditEventBuilder.recurring_template_deactivated(
            template_id=template_id,
            actor_id=actor_id,
        ))
        return updated

    # -------------------------------------------------------------------------
    # Monthly status
    # -------------------------------------------------------------------------

    async def status(self, month_key: str) -> list[RecurringItemStatus]:
        """Active templates with their confirmation for month_key."""
        templates = await self._store.list_templates(active_only=True)
        confirmations = await self._store.list_confirmations(month_key)
        return recurring_status(templates, confirmations)

    async def summary(self, month_key: str) -> RecurringSummary:
        return recurring_summary(await self.status(month_key))

    # -------------------------------------------------------------------------
    # Confirmation
    # -------------------------------------------------------------------------

    async def _confirm_one(
        self,
        template: RecurringTemplate,
        amount: Decimal,
        actor_id: str,
        today: date,
        correlation_id=None,
    ) -> RecurringConfirmation:
        expense = expense_from_template(template, amount, today)
        await self._store.add_expense(expense)

        confirmation = RecurringConfirmation(
            recurring_expense_id=template.id,
            month_key=month_key_for(today),
            confirmed_amount=amount,
            confirmed_by=actor_id,
            expense_id=expense.id,
        )
        try:
            await self._store.add_confirmation(confirmation)
        except Exception:
            # No transactions: drop the expense so the month stays pending
            await self._store.delete_expense(expense.id)
            raise

        await self._audit.log(AuditEventBuilder.recurring_confirmed(
            confirmation_id=confirmation.id,
            template_id=template.id,
            expense_id=expense.id,
            month_key=confirmation.month_key,
            amount=str(amount),
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))
        return confirmation

    async def _is_confirmed(self, template_id: str, month_key: str) -> bool:
        confirmations = await self._store.list_confirmations(month_key)
        return any(c.recurring_expense_id == template_id for c in confirmations)

    async def confirm(
        self,
        template_id: str,
        amount: Any,
        actor_id: str,
        today: Optional[date] = None,
    ) -> RecurringConfirmation:
        """
        Confirm a template for the current month.

        Creates the expense dated today and the confirmation linking it.

        Raises:
            ExpenseValidationError: If the amount is invalid or the
                template was already confirmed this month
            NotFoundError: If the template doesn't exist or is inactive
        """
        today = today or date.today()
        cleaned = await self._require_valid(
            self._validator.validate_recurring_confirm({"amount": amount}),
            actor_id,
        )
        template = await self._get_template(template_id)
        if not template.is_active:
            raise NotFoundError(f"Recurring expense not found: {template_id}")

        if await self._is_confirmed(template_id, month_key_for(today)):
            raise ExpenseValidationError(
                f"{template.description} is already confirmed for this month",
                field="recurring_expense_id",
            )

        return await self._confirm_one(template, cleaned["amount"], actor_id, today)

    async def bulk_confirm(
        self,
        items: Iterable[tuple[str, Any]],
        actor_id: str,
        today: Optional[date] = None,
    ) -> list[RecurringConfirmation]:
        """
        Confirm several templates at once.

        Unknown, inactive and already confirmed templates are skipped.
        All amounts are validated before anything is written.
        """
        today = today or date.today()
        items = list(items)

        amounts = []
        for _, amount in items:
            cleaned = await self._require_valid(
                self._validator.validate_recurring_confirm({"amount": amount}),
                actor_id,
            )
            amounts.append(cleaned["amount"])

        templates = {t.id: t for t in await self._store.list_templates(active_only=True)}
        already = {
            c.recurring_expense_id
            for c in await self._store.list_confirmations(month_key_for(today))
        }

        correlation_id = create_correlation_id()
        confirmations = []
        for (template_id, _), amount in zip(items, amounts):
            template = templates.get(template_id)
            if template is None or template_id in already:
                logger.info("bulk_confirm_skipped", template_id=template_id)
                continue
            confirmations.append(await self._confirm_one(
                template,
                amount,
                actor_id,
                today,
                correlation_id=correlation_id,
            ))
            already.add(template_id)

        return confirmations

    async def undo_confirmation(self, confirmation_id: str, actor_id: str) -> None:
        """
        Remove a confirmation and the expense it created.

        Raises:
            NotFoundError: If the confirmation doesn't exist
        """
        confirmation = await self._store.get_confirmation(confirmation_id)
        if confirmation is None:
            raise NotFoundError(f"Confirmation not found: {confirmation_id}")

        await self._store.delete_confirmation(confirmation_id)
        try:
            await self._store.delete_expense(confirmation.expense_id)
        except Exception:
            await self._store.add_confirmation(confirmation)
            raise

        await self._audit.log(AuditEventBuilder.recurring_undone(
            confirmation_id=confirmation_id,
            expense_id=confirmation.expense_id,
            actor_id=actor_id,
        ))
