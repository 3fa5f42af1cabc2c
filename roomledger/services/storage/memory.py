"""
In-Memory Storage Implementations

Used by tests and as the fallback when Google Sheets is not configured.
Behaves like the real stores: same exceptions, same notifications.
"""

import json
from datetime import date
from pathlib import Path
from typing import Optional
from uuid import UUID

import structlog

from roomledger.models.audit import AuditEvent
from roomledger.models.expense import (
    ExpenseRecord,
    RecurringConfirmation,
    RecurringTemplate,
)
from roomledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseStoreInterface,
    NotFoundError,
    PreferenceStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class InMemoryExpenseStore(ExpenseStoreInterface):
    """Dict-backed expense store."""

    def __init__(self, records: Optional[list[ExpenseRecord]] = None):
        super().__init__()
        self._expenses: dict[str, ExpenseRecord] = {r.id: r for r in records or []}
        self._templates: dict[str, RecurringTemplate] = {}
        self._confirmations: dict[str, RecurringConfirmation] = {}

    async def add_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        if record.id in self._expenses:
            raise DuplicateError(f"Expense already exists: {record.id}")
        self._expenses[record.id] = record
        await self.publish()
        return record

    async def get_expense(self, expense_id: str) -> Optional[ExpenseRecord]:
        return self._expenses.get(expense_id)

    async def update_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        if record.id not in self._expenses:
            raise NotFoundError(f"Expense not found: {record.id}")
        self._expenses[record.id] = record
        await self.publish()
        return record

    async def delete_expense(self, expense_id: str) -> bool:
        if self._expenses.pop(expense_id, None) is None:
            return False
        await self.publish()
        return True

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        group_id: Optional[str] = None,
    ) -> list[ExpenseRecord]:
        records = []
        for record in self._expenses.values():
            if date_from and record.expense_date < date_from:
                continue
            if date_to and record.expense_date > date_to:
                continue
            if group_id and record.group_id != group_id:
                continue
            records.append(record)
        return records

    async def add_template(self, template: RecurringTemplate) -> RecurringTemplate:
        if template.id in self._templates:
            raise DuplicateError(f"Recurring expense already exists: {template.id}")
        self._templates[template.id] = template
        return template

    async def get_template(self, template_id: str) -> Optional[RecurringTemplate]:
        return self._templates.get(template_id)

    async def update_template(self, template: RecurringTemplate) -> RecurringTemplate:
        if template.id not in self._templates:
            raise NotFoundError(f"Recurring expense not found: {template.id}")
        self._templates[template.id] = template
        return template

    async def list_templates(self, active_only: bool = True) -> list[RecurringTemplate]:
        templates = [
            t for t in self._templates.values()
            if t.is_active or not active_only
        ]
        templates.sort(key=lambda t: t.description.lower())
        return templates

    async def add_confirmation(
        self,
        confirmation: RecurringConfirmation,
    ) -> RecurringConfirmation:
        if confirmation.id in self._confirmations:
            raise DuplicateError(f"Confirmation already exists: {confirmation.id}")
        self._confirmations[confirmation.id] = confirmation
        return confirmation

    async def get_confirmation(
        self,
        confirmation_id: str,
    ) -> Optional[RecurringConfirmation]:
        return self._confirmations.get(confirmation_id)

    async def delete_confirmation(self, confirmation_id: str) -> bool:
        return self._confirmations.pop(confirmation_id, None) is not None

    async def list_confirmations(self, month_key: str) -> list[RecurringConfirmation]:
        return [c for c in self._confirmations.values() if c.month_key == month_key]


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit storage."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]


class InMemoryPreferenceStore(PreferenceStoreInterface):
    """Preferences that last for the process lifetime."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFilePreferenceStore(PreferenceStoreInterface):
    """
    Preferences persisted to a single JSON file.

    The file is re-read on every get so two processes sharing it see
    each other's writes. A missing file is an empty store.
    """

    def __init__(self, path: str):
        self._path = Path(path)

    def _load(self) -> dict[str, str]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning("preferences_file_corrupt", path=str(self._path), error=str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, values: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(values, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise StorageError(f"Failed to write preferences: {e}")

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._load()
        values[key] = value
        self._save(values)

    def delete(self, key: str) -> None:
        values = self._load()
        if values.pop(key, None) is not None:
            self._save(values)
