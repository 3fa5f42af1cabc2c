"""
Main Orchestrator for RoomLedger

This module ties together all the components and defines the
end-to-end flows for:
1. Recording (input → validate → save → audit)
2. Reading (snapshot → balance, ledger, month summary, categories)
3. Exporting a month to CSV

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the store without passing the validator
- Balances are always recomputed from a full snapshot, never patched
- Every change is audited

The balance engine in roomledger.ledger stays pure; this is the only
layer that knows about storage, settings and audit at the same time.
"""

from datetime import date, datetime
from typing import Any, NamedTuple, Optional, TextIO
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict

from roomledger.audit import AuditLogger, configure_logging, create_correlation_id
from roomledger.config import LedgerSettings, get_settings
from roomledger.errors import ExpenseValidationError, ExportError
from roomledger.ledger import (
    SETTLED_EPSILON,
    build_ledger,
    in_month,
    month_key,
    month_summary,
    monthly_aggregate,
    net_balance,
    parse_month_key,
    sort_chronologically,
    sort_for_display,
)
from roomledger.ledger.contribution import check_parties
from roomledger.models.audit import AuditEventBuilder
from roomledger.models.expense import (
    BalanceDirection,
    CategoryShare,
    ExpenseRecord,
    LedgerEntry,
    MonthSummary,
    NetBalance,
)
from roomledger.models.validation import ValidationResult
from roomledger.services.export import export_expenses_csv, export_filename
from roomledger.services.recurring import RecurringService
from roomledger.services.smart_defaults import SmartDefaults
from roomledger.services.storage import (
    ConnectionError,
    DuplicateError,
    ExpenseStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStore,
    InMemoryExpenseStore,
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    NotFoundError,
    StorageError,
)
from roomledger.validation import ExpenseValidator


logger = structlog.get_logger(__name__)


# =============================================================================
# USER-FACING ERRORS
# =============================================================================

GENERIC_ERROR_MESSAGE = "An error occurred. Please try again."

# Checked in order against the lowercased exception message
_MESSAGE_PATTERNS: list[tuple[tuple[str, ...], str]] = [
    (("constraint", "violates"), "Invalid input. Please check your data and try again."),
    (("permission", "forbidden", "policy"), "You don't have permission to perform this action."),
    (("token", "expired", "credentials"), "Session expired. Please sign in again."),
    (("rate limit", "too many requests", "quota"), "Too many attempts. Please wait and try again."),
    (("network", "fetch", "timed out", "timeout"), "Network error. Please check your connection and try again."),
]


def safe_error_message(error: BaseException) -> str:
    """
    Map any exception to a message that is safe to show a user.

    Validation and export errors are written for users already. Storage
    and unexpected errors never leak their internals.
    """
    if isinstance(error, (ExpenseValidationError, ExportError)):
        return str(error)
    if isinstance(error, NotFoundError):
        return "This item no longer exists. It may have been deleted."
    if isinstance(error, DuplicateError):
        return "This item already exists."
    if isinstance(error, ConnectionError):
        return "Network error. Please check your connection and try again."

    message = str(error).lower()
    for needles, friendly in _MESSAGE_PATTERNS:
        if any(needle in message for needle in needles):
            return friendly

    if isinstance(error, StorageError):
        return "Could not save your changes. Please try again."

    logger.debug("unmapped_error", error_type=type(error).__name__, error=str(error))
    return GENERIC_ERROR_MESSAGE


# =============================================================================
# SNAPSHOT
# =============================================================================

class LedgerSnapshot(BaseModel):
    """Everything the dashboard shows, computed from one record snapshot."""
    model_config = ConfigDict(frozen=True)

    month_key: str
    balance: NetBalance
    ledger: list[LedgerEntry]
    month_summary: MonthSummary
    category_breakdown: list[CategoryShare]
    month_expenses: list[ExpenseRecord]


def _month_predicate(key: str):
    year, month = parse_month_key(key)
    return in_month(year, month)


class LedgerService:
    """
    Records expenses and payments between two parties and reports on them.

    Flow for every write:
    1. Validate → two-stage validation, audit on failure
    2. Save → store publishes a fresh snapshot to subscribers
    3. Audit → event with the acting party
    """

    def __init__(
        self,
        store: ExpenseStoreInterface,
        party_a: str,
        party_b: str,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        check_parties(party_a, party_b)
        self._store = store
        self.party_a = party_a
        self.party_b = party_b
        self._settings = settings or get_settings().ledger
        self._validator = validator or ExpenseValidator(self._settings)
        self._audit = audit_logger or AuditLogger()

    async def _require_valid(
        self,
        result: ValidationResult,
        actor_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> dict[str, Any]:
        if not result.is_valid:
            await self._audit.log_validation_failed(
                kind=result.kind,
                issues=[i.model_dump() for i in result.issues],
                actor_id=actor_id,
                correlation_id=correlation_id,
            )
            first = next(i for i in result.issues if i.severity == "error")
            raise ExpenseValidationError(first.message, field=first.field)
        return result.cleaned or {}

    async def _save(self, operation: str, coro, correlation_id: UUID):
        try:
            return await coro
        except StorageError as e:
            await self._audit.log_storage_error(
                operation=operation,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._audit.log(AuditEventBuilder.system_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"operation": operation},
                correlation_id=correlation_id,
            ))
            raise

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def add_expense(self, data: dict[str, Any], actor_id: str) -> ExpenseRecord:
        """
        Record a shared expense.

        Raises:
            ExpenseValidationError: If the input is invalid
            StorageError: If the store rejects the write
        """
        correlation_id = create_correlation_id()
        cleaned = await self._require_valid(
            self._validator.validate_expense(data),
            actor_id,
            correlation_id,
        )
        record = ExpenseRecord(**cleaned)
        await self._save("add_expense", self._store.add_expense(record), correlation_id)

        await self._audit.log(AuditEventBuilder.expense_created(
            expense_id=record.id,
            amount=str(record.amount),
            paid_by=record.paid_by,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))
        return record

    async def add_payment(self, data: dict[str, Any], actor_id: str) -> ExpenseRecord:
        """
        Record a settlement from data["paid_by"] to data["owes_user_id"].

        Raises:
            ExpenseValidationError: If the input is invalid
            StorageError: If the store rejects the write
        """
        correlation_id = create_correlation_id()
        cleaned = await self._require_valid(
            self._validator.validate_payment(data),
            actor_id,
            correlation_id,
        )
        record = ExpenseRecord(**cleaned)
        await self._save("add_payment", self._store.add_expense(record), correlation_id)

        await self._audit.log(AuditEventBuilder.payment_recorded(
            expense_id=record.id,
            amount=str(record.amount),
            paid_by=record.paid_by,
            paid_to=record.owes_user_id or "",
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))
        return record

    async def edit_expense(
        self,
        expense_id: str,
        changes: dict[str, Any],
        actor_id: str,
    ) -> ExpenseRecord:
        """
        Change an existing record.

        Payments accept only amount and expense_date changes.

        Raises:
            NotFoundError: If the record doesn't exist
            ExpenseValidationError: If the changes are invalid
        """
        correlation_id = create_correlation_id()
        record = await self._store.get_expense(expense_id)
        if record is None:
            raise NotFoundError(f"Expense not found: {expense_id}")

        cleaned = await self._require_valid(
            self._validator.validate_edit(record, changes),
            actor_id,
            correlation_id,
        )
        changed_fields = sorted(k for k, v in cleaned.items() if getattr(record, k) != v)

        updated = ExpenseRecord.model_validate({
            **record.model_dump(),
            **cleaned,
            "updated_at": datetime.utcnow(),
        })
        await self._save("edit_expense", self._store.update_expense(updated), correlation_id)

        await self._audit.log(AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            changed_fields=changed_fields,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))
        return updated

    async def delete_expense(self, expense_id: str, actor_id: str) -> bool:
        """
        Delete a record. Deleting simply drops it from every future fold.

        Returns:
            True if a record was deleted
        """
        correlation_id = create_correlation_id()
        deleted = await self._save(
            "delete_expense",
            self._store.delete_expense(expense_id),
            correlation_id,
        )
        if deleted:
            await self._audit.log(AuditEventBuilder.expense_deleted(
                expense_id=expense_id,
                actor_id=actor_id,
                correlation_id=correlation_id,
            ))
        return deleted

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def balance(self) -> NetBalance:
        """Current net balance over all records."""
        records = await self._store.list_expenses()
        return net_balance(
            list(records),
            self.party_a,
            self.party_b,
            epsilon=self._settings.settled_epsilon,
        )

    async def snapshot(self, month: Optional[str] = None) -> LedgerSnapshot:
        """
        Compute the dashboard for a month (default: the current one).

        The balance and the ledger cover all time; the summary,
        category breakdown and expense list cover the month only.
        """
        key = month or month_key(date.today())
        predicate = _month_predicate(key)

        records = sort_chronologically(await self._store.list_expenses())
        aggregate = monthly_aggregate(records, predicate)

        return LedgerSnapshot(
            month_key=key,
            balance=net_balance(
                records,
                self.party_a,
                self.party_b,
                epsilon=self._settings.settled_epsilon,
            ),
            ledger=build_ledger(records, self.party_a, self.party_b),
            month_summary=month_summary(records, self.party_a, self.party_b, predicate),
            category_breakdown=aggregate.category_breakdown(),
            month_expenses=sort_for_display(r for r in records if predicate(r.expense_date)),
        )

    async def export_month(
        self,
        month: str,
        stream: TextIO,
        display_names: Optional[dict[str, str]] = None,
        actor_id: Optional[str] = None,
    ) -> str:
        """
        Write a month's records as CSV, newest first.

        Returns:
            Suggested filename, e.g. expenses-march-2024.csv

        Raises:
            ExportError: If the month has no records
        """
        predicate = _month_predicate(month)
        records = sort_for_display(
            r for r in await self._store.list_expenses() if predicate(r.expense_date)
        )
        count = export_expenses_csv(records, display_names, stream)

        year, month_number = parse_month_key(month)
        filename = export_filename(date(year, month_number, 1).strftime("%B %Y"))
        await self._audit.log(AuditEventBuilder.export_generated(
            record_count=count,
            filename=filename,
            actor_id=actor_id,
        ))
        return filename


# =============================================================================
# LIVE VIEW
# =============================================================================

class LedgerView:
    """
    Balance and ledger kept current from store notifications.

    Each notification carries the full record list; the view recomputes
    from it and replaces its previous result wholesale.
    """

    def __init__(
        self,
        store: ExpenseStoreInterface,
        party_a: str,
        party_b: str,
        epsilon=SETTLED_EPSILON,
    ):
        check_parties(party_a, party_b)
        self._store = store
        self._party_a = party_a
        self._party_b = party_b
        self._epsilon = epsilon

        self.balance = NetBalance(amount=0, direction=BalanceDirection.SETTLED)
        self.ledger: list[LedgerEntry] = []
        self.version = 0

        self._unsubscribe = store.subscribe(self._on_snapshot)

    def _on_snapshot(self, records: list[ExpenseRecord]) -> None:
        ordered = sort_chronologically(records)
        self.balance = net_balance(ordered, self._party_a, self._party_b, epsilon=self._epsilon)
        self.ledger = build_ledger(ordered, self._party_a, self._party_b)
        self.version += 1

    async def refresh(self) -> None:
        """Load the initial state; later updates arrive by notification."""
        self._on_snapshot(await self._store.list_expenses())

    def close(self) -> None:
        self._unsubscribe()


# =============================================================================
# FACTORY
# =============================================================================

class AppComponents(NamedTuple):
    ledger: LedgerService
    recurring: RecurringService
    smart_defaults: SmartDefaults
    store: ExpenseStoreInterface


def create_ledger_service(
    party_a: str,
    party_b: str,
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        party_a: First tracked party identifier
        party_b: Second tracked party identifier
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for testing without storage.
    """
    configure_logging(get_settings().app.log_level)
    settings = get_settings().ledger
    store: Optional[ExpenseStoreInterface] = None
    audit_logger = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsExpenseStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            store = None

    if store is None:
        store = InMemoryExpenseStore()
        audit_logger = AuditLogger()  # Local-only logging

    if settings.preferences_path:
        preferences = JsonFilePreferenceStore(settings.preferences_path)
    else:
        preferences = InMemoryPreferenceStore()

    validator = ExpenseValidator(settings)
    return AppComponents(
        ledger=LedgerService(
            store,
            party_a,
            party_b,
            validator=validator,
            audit_logger=audit_logger,
            settings=settings,
        ),
        recurring=RecurringService(store, validator=validator, audit_logger=audit_logger),
        smart_defaults=SmartDefaults(preferences, settings=settings),
        store=store,
    )
