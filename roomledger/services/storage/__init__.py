"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the shared backend; the in-memory stores back tests and
unconfigured local runs.
"""

from roomledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStoreInterface,
    NotFoundError,
    PreferenceStoreInterface,
    SnapshotListener,
    StorageError,
)
from roomledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryExpenseStore,
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
)
from roomledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ExpenseStoreInterface",
    "PreferenceStoreInterface",
    "SnapshotListener",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryExpenseStore",
    "InMemoryPreferenceStore",
    "JsonFilePreferenceStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsExpenseStore",
]
