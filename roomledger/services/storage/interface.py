"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the balance engine decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.

Change notification: every store keeps a list of snapshot listeners.
After each mutation the store materializes the full expense list and
hands it to every listener. Consumers recompute balances from that
snapshot; they never patch a previous result.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from roomledger.models.audit import AuditEvent
from roomledger.models.expense import (
    ExpenseRecord,
    RecurringConfirmation,
    RecurringTemplate,
)


SnapshotListener = Callable[[list[ExpenseRecord]], None]

logger = structlog.get_logger(__name__)


class ExpenseStoreInterface(ABC):
    """
    Abstract interface for expense record storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement the abstract methods.
    """

    def __init__(self):
        self._listeners: list[SnapshotListener] = []

    # -------------------------------------------------------------------------
    # Change notification
    # -------------------------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """
        Register a snapshot listener.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self) -> None:
        """Deliver a fresh snapshot to every listener."""
        if not self._listeners:
            return
        snapshot = await self.list_expenses()
        for listener in list(self._listeners):
            try:
                listener(list(snapshot))
            except Exception as e:
                # One broken view must not stop the others from updating
                logger.error("snapshot_listener_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        """
        Save a new expense or payment record.

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: str) -> Optional[ExpenseRecord]:
        """Retrieve a record by id, or None."""
        pass

    @abstractmethod
    async def update_expense(self, record: ExpenseRecord) -> ExpenseRecord:
        """
        Replace an existing record.

        Raises:
            NotFoundError: If record doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> bool:
        """
        Delete a record by id.

        Returns:
            True if a record was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        group_id: Optional[str] = None,
    ) -> list[ExpenseRecord]:
        """
        List records with optional filters.

        Order is unspecified; callers sort for their own purpose.
        """
        pass

    # -------------------------------------------------------------------------
    # Recurring templates and confirmations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_template(self, template: RecurringTemplate) -> RecurringTemplate:
        pass

    @abstractmethod
    async def get_template(self, template_id: str) -> Optional[RecurringTemplate]:
        pass

    @abstractmethod
    async def update_template(self, template: RecurringTemplate) -> RecurringTemplate:
        """
        Raises:
            NotFoundError: If template doesn't exist
        """
        pass

    @abstractmethod
    async def list_templates(self, active_only: bool = True) -> list[RecurringTemplate]:
        pass

    @abstractmethod
    async def add_confirmation(
        self,
        confirmation: RecurringConfirmation,
    ) -> RecurringConfirmation:
        pass

    @abstractmethod
    async def get_confirmation(
        self,
        confirmation_id: str,
    ) -> Optional[RecurringConfirmation]:
        pass

    @abstractmethod
    async def delete_confirmation(self, confirmation_id: str) -> bool:
        pass

    @abstractmethod
    async def list_confirmations(self, month_key: str) -> list[RecurringConfirmation]:
        """All confirmations recorded for a YYYY-MM month."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation id, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events about one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class PreferenceStoreInterface(ABC):
    """
    Key-value store for per-device preferences (smart defaults).

    Synchronous on purpose: it stands in for browser-local storage and
    is consumed by the input layer only. The balance engine never
    touches it.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
