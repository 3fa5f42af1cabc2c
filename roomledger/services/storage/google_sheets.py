"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the shared backend because:
1. Both roommates can open the raw data directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (a household ledger is small)
- No transactions (a recurring confirmation writes two rows in sequence)
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing business logic.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from roomledger.config import GoogleSheetsSettings, get_settings
from roomledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from roomledger.models.expense import (
    ExpenseRecord,
    RecurringConfirmation,
    RecurringTemplate,
)
from roomledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStoreInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Column mappings for the Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "description",
    "amount",
    "is_payment",
    "paid_by",
    "paid_by_name",
    "owes_user_id",
    "owes_user_name",
    "split_type",
    "custom_split_amount",
    "category",
    "expense_date",
    "created_at",
    "updated_at",
    "notes",
    "group_id",
]

RECURRING_COLUMNS = [
    "id",
    "description",
    "default_amount",
    "category",
    "expense_type",
    "split_type",
    "custom_split_amount",
    "typically_paid_by",
    "owes_user_id",
    "created_by",
    "is_active",
    "created_at",
    "updated_at",
]

CONFIRMATION_COLUMNS = [
    "id",
    "recurring_expense_id",
    "month_key",
    "confirmed_amount",
    "confirmed_by",
    "expense_id",
    "confirmed_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "actor_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Rows that fail to parse are skipped, never fatal
ROW_ERRORS = (ValueError, InvalidOperation, IndexError)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows and empty cells."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _optional_decimal(value: str) -> Optional[Decimal]:
    return Decimal(value) if value else None


def _parse_datetime(value: str) -> datetime:
    """Timestamps are kept as naive UTC; hand-entered offsets are converted."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _is_true(value: str) -> bool:
    return value.strip().upper() == "TRUE"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS)

    def get_recurring_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(self._settings.recurring_sheet_name, RECURRING_COLUMNS)

    def get_confirmations_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.confirmations_sheet_name,
            CONFIRMATION_COLUMNS,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


def _find_row(sheet: gspread.Worksheet, row_id: str) -> tuple[Optional[int], list[list]]:
    """1-based sheet row index of the row whose first cell is row_id."""
    all_rows = sheet.get_all_values()
    for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
        if row and row[0] == row_id:
            return idx, all_rows
    return None, all_rows


def _replace_row(sheet: gspread.Worksheet, idx: int, values: list) -> None:
    for col_idx, value in enumerate(values, start=1):
        sheet.update_cell(idx, col_idx, value)


class GoogleSheetsExpenseStore(ExpenseStoreInterface):
    """
    Google Sheets implementation of the expense store.

    Expenses, recurring templates and confirmations each live in their
    own worksheet, one entity per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        super().__init__()
        self._client = client or GoogleSheetsClient()

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _expense_to_row(self, record: ExpenseRecord) -> list:
        return [
            record.id,
            record.description,
            str(record.amount),
            "TRUE" if record.is_payment else "FALSE",
            record.paid_by,
            record.paid_by_name or "",
            record.owes_user_id or "",
            record.owes_user_name or "",
            record.split_type.value,
            str(record.custom_split_amount) if record.custom_split_amount is not None else "",
            record.category.value,
            record.expense_date.isoformat(),
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
            record.notes or "",
            record.group_id or "",
        ]

    def _row_to_expense(self, row: list) -> ExpenseRecord:
        return ExpenseRecord(
            id=_cell(row, 0),
            description=_cell(row, 1),
            amount=Decimal(_cell(row, 2)),
            is_payment=_is_true(_cell(row, 3)),
            paid_by=_cell(row, 4),
            paid_by_name=_cell(row, 5) or None,
            owes_user_id=_cell(row, 6) or None,
            owes_user_name=_cell(row, 7) or None,
            split_type=_cell(row, 8, "fifty_fifty"),
            custom_split_amount=_optional_decimal(_cell(row, 9)),
            category=_cell(row, 10, "other"),
            expense_date=date.fromisoformat(_cell(row, 11)),
            created_at=_parse_datetime(_cell(row, 12)),
            updated_at=_parse_datetime(_cell(row, 13, _cell(row, 12))),
            notes=_cell(row, 14) or None,
            group_id=_cell(row, 15) or None,
        )

    def _template_to_row(self, template: RecurringTemplate) -> list:
        return [
            template.id,
            template.description,
            str(template.default_amount),
            template.category.value,
            template.expense_type.value,
            template.split_type.value,
            str(template.custom_split_amount) if template.custom_split_amount is not None else "",
            template.typically_paid_by,
            template.owes_user_id or "",
            template.created_by,
            "TRUE" if template.is_active else "FALSE",
            template.created_at.isoformat(),
            template.updated_at.isoformat(),
        ]

    def _row_to_template(self, row: list) -> RecurringTemplate:
        return RecurringTemplate(
            id=_cell(row, 0),
            description=_cell(row, 1),
            default_amount=Decimal(_cell(row, 2)),
            category=_cell(row, 3, "other"),
            expense_type=_cell(row, 4, "shared"),
            split_type=_cell(row, 5, "fifty_fifty"),
            custom_split_amount=_optional_decimal(_cell(row, 6)),
            typically_paid_by=_cell(row, 7),
            owes_user_id=_cell(row, 8) or None,
            created_by=_cell(row, 9),
            is_active=_is_true(_cell(row, 10, "TRUE")),
            created_at=_parse_datetime(_cell(row, 11)),
            updated_at=_parse_datetime(_cell(row, 12, _cell(row, 11))),
        )

    def _confirmation_to_row(self, confirmation: RecurringConfirmation) -> list:
        return [
            confirmation.id,
            confirmation.recurring_expense_id,
            confirmation.month_key,
            str(confirmation.confirmed_amount),
            confirmation.confirmed_by,
            confirmation.expense_id,
            confirmation.confirmed_at.isoformat(),
        ]

    def _row_to_confirmation(self, row: list) -> RecurringConfirmation:
        return RecurringConfirmation(
            id=_cell(row, 0),
            recurring_expense_id=_cell(row, 1),
            month_key=_cell(row, 2),
            confirmed_amount=Decimal(_cell(row, 3)),
            confirmed_by=_cell(row, 4),
            expense_id=_cell(row, 5),
            confirmed_at=_parse_datetime(_cell(row, 6)),
        )

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _append_expense_row(self, record: ExpenseRecord) -> None:
        try:
            sheet = self._client.get_expenses_sheet()
            sheet.append_row(self._expense_to_row(record), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def add_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        if await self.get_expense(record.id) is not None:
            raise DuplicateError(f"Expense already exists: {record.id}")
        await self._append_expense_row(record)
        await self.publish()
        return record

    async def get_expense(self, expense_id: str) -> Optional[ExpenseRecord]:
        try:
            sheet = self._client.get_expenses_sheet()
            idx, all_rows = _find_row(sheet, expense_id)
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")
        if idx is None:
            return None
        return self._row_to_expense(all_rows[idx - 1])

    async def update_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        try:
            sheet = self._client.get_expenses_sheet()
            idx, _ = _find_row(sheet, record.id)
            if idx is None:
                raise NotFoundError(f"Expense not found: {record.id}")
            _replace_row(sheet, idx, self._expense_to_row(record))
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")
        await self.publish()
        return record

    async def delete_expense(self, expense_id: str) -> bool:
        try:
            sheet = self._client.get_expenses_sheet()
            idx, _ = _find_row(sheet, expense_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")
        await self.publish()
        return True

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        group_id: Optional[str] = None,
    ) -> list[ExpenseRecord]:
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                record = self._row_to_expense(row)
            except ROW_ERRORS as e:
                logger.warning("expense_row_skipped", row_id=row[0], error=str(e))
                continue

            if date_from and record.expense_date < date_from:
                continue
            if date_to and record.expense_date > date_to:
                continue
            if group_id and record.group_id != group_id:
                continue
            records.append(record)

        return records

    # -------------------------------------------------------------------------
    # Recurring templates
    # -------------------------------------------------------------------------

    async def add_template(self, template: RecurringTemplate) -> RecurringTemplate:
        try:
            sheet = self._client.get_recurring_sheet()
            sheet.append_row(self._template_to_row(template), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save recurring expense: {e}")
        return template

    async def get_template(self, template_id: str) -> Optional[RecurringTemplate]:
        try:
            sheet = self._client.get_recurring_sheet()
            idx, all_rows = _find_row(sheet, template_id)
        except Exception as e:
            raise StorageError(f"Failed to get recurring expense: {e}")
        if idx is None:
            return None
        return self._row_to_template(all_rows[idx - 1])

    async def update_template(self, template: RecurringTemplate) -> RecurringTemplate:
        try:
            sheet = self._client.get_recurring_sheet()
            idx, _ = _find_row(sheet, template.id)
            if idx is None:
                raise NotFoundError(f"Recurring expense not found: {template.id}")
            _replace_row(sheet, idx, self._template_to_row(template))
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update recurring expense: {e}")
        return template

    async def list_templates(self, active_only: bool = True) -> list[RecurringTemplate]:
        try:
            sheet = self._client.get_recurring_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list recurring expenses: {e}")

        templates = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                template = self._row_to_template(row)
            except ROW_ERRORS as e:
                logger.warning("recurring_row_skipped", row_id=row[0], error=str(e))
                continue
            if active_only and not template.is_active:
                continue
            templates.append(template)

        templates.sort(key=lambda t: t.description.lower())
        return templates

    # -------------------------------------------------------------------------
    # Confirmations
    # -------------------------------------------------------------------------

    async def add_confirmation(
        self,
        confirmation: RecurringConfirmation,
    ) -> RecurringConfirmation:
        try:
            sheet = self._client.get_confirmations_sheet()
            sheet.append_row(self._confirmation_to_row(confirmation), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save confirmation: {e}")
        return confirmation

    async def get_confirmation(
        self,
        confirmation_id: str,
    ) -> Optional[RecurringConfirmation]:
        try:
            sheet = self._client.get_confirmations_sheet()
            idx, all_rows = _find_row(sheet, confirmation_id)
        except Exception as e:
            raise StorageError(f"Failed to get confirmation: {e}")
        if idx is None:
            return None
        return self._row_to_confirmation(all_rows[idx - 1])

    async def delete_confirmation(self, confirmation_id: str) -> bool:
        try:
            sheet = self._client.get_confirmations_sheet()
            idx, _ = _find_row(sheet, confirmation_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete confirmation: {e}")

    async def list_confirmations(self, month_key: str) -> list[RecurringConfirmation]:
        try:
            sheet = self._client.get_confirmations_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list confirmations: {e}")

        confirmations = []
        for row in all_rows:
            if not row or _cell(row, 2) != month_key:
                continue
            try:
                confirmations.append(self._row_to_confirmation(row))
            except ROW_ERRORS as e:
                logger.warning("confirmation_row_skipped", row_id=row[0], error=str(e))
        return confirmations


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=_parse_datetime(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_cell(row, 5) or None,
            actor_id=_cell(row, 6) or None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_cell(row, 11).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ROW_ERRORS:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
