"""
Audit Logger

Every write to the shared ledger leaves a trail: who added, edited or
deleted what, which input was rejected and which storage call failed.
When two people disagree about a balance, the trail is how you find
the record that caused it.

Events always go to the structured local log. If an audit store is
configured they are persisted there as well. A failing audit store is
reported in the local log and never interrupts the ledger operation
that produced the event.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from roomledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from roomledger.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """JSON lines on stderr for every roomledger logger."""
    stdlib_logger = logging.getLogger("roomledger")
    stdlib_logger.setLevel(log_level)
    if not stdlib_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        stdlib_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()

_LEVELS = {
    AuditSeverity.DEBUG: logging.DEBUG,
    AuditSeverity.INFO: logging.INFO,
    AuditSeverity.WARNING: logging.WARNING,
    AuditSeverity.ERROR: logging.ERROR,
    AuditSeverity.CRITICAL: logging.CRITICAL,
}


class AuditLogger:
    """
    Writes AuditEvents locally and, optionally, to an audit store.

    Usage:
        audit = AuditLogger(GoogleSheetsAuditStorage(client))
        await audit.log(AuditEventBuilder.expense_deleted(expense_id, actor_id))
    """

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger("roomledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns:
            False if the audit store rejected the event, True otherwise
        """
        self._logger.log(_LEVELS[event.severity], "audit_event", **event.to_log_dict())

        if self._storage is None:
            return True

        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                event_id=str(event.event_id),
                event_type=event.event_type.value,
                error=str(e),
            )
            return False

    async def log_validation_failed(
        self,
        kind: str,
        issues: list[dict],
        actor_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            kind=kind,
            issues=issues,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """One id shared by every event a single user action produces."""
    return uuid4()
