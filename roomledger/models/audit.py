"""
Audit Models for RoomLedger

Every change to the shared ledger is logged. Two people share one
balance, so "who changed what, when" has to be answerable:
1. Traceability of every add, edit and delete
2. Debugging when a balance looks wrong
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    PAYMENT_RECORDED = "payment_recorded"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Recurring expenses
    RECURRING_TEMPLATE_CREATED = "recurring_template_created"
    RECURRING_TEMPLATE_DEACTIVATED = "recurring_template_deactivated"
    RECURRING_CONFIRMED = "recurring_confirmed"
    RECURRING_UNDONE = "recurring_undone"

    # Export
    EXPORT_GENERATED = "export_generated"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'recurring', 'confirmation')"
    )
    entity_id: Optional[str] = None

    # Who did it
    actor_id: Optional[str] = Field(
        default=None,
        description="Party identifier of the user who triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         actor_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.actor_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_created(record, actor_id)
        event = AuditEventBuilder.expense_deleted(expense_id, actor_id)
    """

    @staticmethod
    def expense_created(
        expense_id: str,
        amount: str,
        paid_by: str,
        actor_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Expense added: {amount} paid by {paid_by}",
            details={"amount": amount, "paid_by": paid_by},
            is_user_action=True,
        )

    @staticmethod
    def payment_recorded(
        expense_id: str,
        amount: str,
        paid_by: str,
        paid_to: str,
        actor_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Payment recorded: {paid_by} paid {paid_to} {amount}",
            details={"amount": amount, "paid_by": paid_by, "paid_to": paid_to},
            is_user_action=True,
        )

    @staticmethod
    def expense_updated(
        expense_id: str,
        changed_fields: list[str],
        actor_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Expense updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(
        expense_id: str,
        actor_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        kind: str,
        issues: list[dict],
        actor_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=kind,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def recurring_template_created(
        template_id: str,
        description: str,
        actor_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_TEMPLATE_CREATED,
            entity_type="recurring",
            entity_id=template_id,
            actor_id=actor_id,
            description=f"Recurring expense added: {description}",
            is_user_action=True,
        )

    @staticmethod
    def recurring_template_deactivated(
        template_id: str,
        actor_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_TEMPLATE_DEACTIVATED,
            entity_type="recurring",
            entity_id=template_id,
            actor_id=actor_id,
            description="Recurring expense removed",
            is_user_action=True,
        )

    @staticmethod
    def recurring_confirmed(
        confirmation_id: str,
        template_id: str,
        expense_id: str,
        month_key: str,
        amount: str,
        actor_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_CONFIRMED,
            entity_type="confirmation",
            entity_id=confirmation_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Recurring expense confirmed for {month_key}: {amount}",
            details={
                "recurring_expense_id": template_id,
                "expense_id": expense_id,
                "month_key": month_key,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def recurring_undone(
        confirmation_id: str,
        expense_id: str,
        actor_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_UNDONE,
            entity_type="confirmation",
            entity_id=confirmation_id,
            actor_id=actor_id,
            description="Recurring confirmation undone",
            details={"expense_id": expense_id},
            is_user_action=True,
        )

    @staticmethod
    def export_generated(
        record_count: int,
        filename: str,
        actor_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_GENERATED,
            entity_type="export",
            actor_id=actor_id,
            description=f"Exported {record_count} expenses to {filename}",
            details={"record_count": record_count, "filename": filename},
            is_user_action=True,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
