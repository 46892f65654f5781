"""
Audit Models for Expense Tracker

Significant actions in the sync core are recorded as audit events:
1. Traceability of user submissions (expense added, receipt uploaded)
2. Debugging information for the remote collaborators (fetch/subscribe failures)
3. Ability to reconstruct what a view saw and when

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Expense submission
    EXPENSE_ADDED = "expense_added"
    EXPENSE_ADD_FAILED = "expense_add_failed"
    RECEIPT_UPLOADED = "receipt_uploaded"

    # Query/filter engine
    FETCH_FAILED = "fetch_failed"

    # Live sync
    SYNC_SUBSCRIBED = "sync_subscribed"
    SYNC_SUBSCRIPTION_FAILED = "sync_subscription_failed"
    SYNC_UNSUBSCRIBED = "sync_unsubscribed"
    SYNC_CHANGE_RECEIVED = "sync_change_received"

    # Attachments
    ATTACHMENT_RESOLUTION_FAILED = "attachment_resolution_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


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

    Every significant action creates one of these.
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

    # Context - which user and entity is this about?
    owner: Optional[str] = Field(
        default=None,
        description="User the event concerns"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'receipt', 'view')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner": self.owner,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id, owner, "food", "12.50 USD")
        event = AuditEventBuilder.fetch_failed("paid-expenses-changes", owner, str(exc))
    """

    @staticmethod
    def expense_added(
        expense_id: str,
        owner: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            owner=owner,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense added: {category} - {amount}",
            details={
                "category": category,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_add_failed(
        owner: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADD_FAILED,
            severity=AuditSeverity.ERROR,
            owner=owner,
            entity_type="expense",
            correlation_id=correlation_id,
            description="Failed to add expense",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def receipt_uploaded(
        owner: str,
        path: str,
        size_bytes: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_UPLOADED,
            owner=owner,
            entity_type="receipt",
            entity_id=path,
            correlation_id=correlation_id,
            description=f"Receipt uploaded: {path}",
            details={
                "file_size_bytes": size_bytes,
            },
            is_user_action=True,
        )

    @staticmethod
    def fetch_failed(
        view: str,
        owner: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FETCH_FAILED,
            severity=AuditSeverity.WARNING,
            owner=owner,
            entity_type="view",
            entity_id=view,
            description=f"Fetch failed for view {view}; previous results kept",
            error_message=error_message,
        )

    @staticmethod
    def sync_subscribed(channel: str, owner: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_SUBSCRIBED,
            owner=owner,
            entity_type="channel",
            entity_id=channel,
            description=f"Live updates enabled on {channel}",
        )

    @staticmethod
    def sync_subscription_failed(
        channel: str,
        owner: str,
        attempts: int,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_SUBSCRIPTION_FAILED,
            severity=AuditSeverity.WARNING,
            owner=owner,
            entity_type="channel",
            entity_id=channel,
            description=f"Live updates unavailable on {channel} after {attempts} attempts",
            details={
                "attempts": attempts,
            },
            error_message=error_message,
        )

    @staticmethod
    def sync_unsubscribed(channel: str, owner: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_UNSUBSCRIBED,
            owner=owner,
            entity_type="channel",
            entity_id=channel,
            description=f"Live updates closed on {channel}",
        )

    @staticmethod
    def sync_change_received(
        channel: str,
        owner: str,
        event_type: str,
        record_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_CHANGE_RECEIVED,
            severity=AuditSeverity.DEBUG,
            owner=owner,
            entity_type="channel",
            entity_id=channel,
            description=f"{event_type} received on {channel}",
            details={
                "change": event_type,
                "record_id": record_id,
            },
        )

    @staticmethod
    def attachment_resolution_failed(
        receipt_ref: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENT_RESOLUTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            entity_id=receipt_ref,
            description="Could not sign receipt URL; falling back to stored reference",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
