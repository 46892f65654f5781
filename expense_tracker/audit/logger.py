"""
Audit Logger

DESIGN DECISION: Every significant action in the sync core is logged.
This provides:
1. Traceability of what each view fetched, dropped and subscribed to
2. Debugging capability for the remote collaborators
3. A record of user submissions

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder
from expense_tracker.services.storage import AuditStorageInterface, NotifierInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_added(
        self,
        expense_id: str,
        owner: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a successful expense submission."""
        await self.log(AuditEventBuilder.expense_added(
            expense_id=expense_id,
            owner=owner,
            category=category,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_expense_add_failed(
        self,
        owner: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_add_failed(
            owner=owner,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_receipt_uploaded(
        self,
        owner: str,
        path: str,
        size_bytes: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_uploaded(
            owner=owner,
            path=path,
            size_bytes=size_bytes,
            correlation_id=correlation_id,
        ))

    async def log_fetch_failed(self, view: str, owner: str, error_message: str) -> None:
        """Log a fetch that failed and left the cache untouched."""
        await self.log(AuditEventBuilder.fetch_failed(
            view=view,
            owner=owner,
            error_message=error_message,
        ))

    async def log_sync_subscribed(self, channel: str, owner: str) -> None:
        await self.log(AuditEventBuilder.sync_subscribed(channel=channel, owner=owner))

    async def log_sync_subscription_failed(
        self,
        channel: str,
        owner: str,
        attempts: int,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.sync_subscription_failed(
            channel=channel,
            owner=owner,
            attempts=attempts,
            error_message=error_message,
        ))

    async def log_sync_unsubscribed(self, channel: str, owner: Optional[str]) -> None:
        await self.log(AuditEventBuilder.sync_unsubscribed(channel=channel, owner=owner))

    async def log_sync_change_received(
        self,
        channel: str,
        owner: str,
        event_type: str,
        record_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.sync_change_received(
            channel=channel,
            owner=owner,
            event_type=event_type,
            record_id=record_id,
        ))

    async def log_attachment_resolution_failed(
        self,
        receipt_ref: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.attachment_resolution_failed(
            receipt_ref=receipt_ref,
            error_message=error_message,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


class LoggingNotifier(NotifierInterface):
    """
    Notifier for headless use: user-facing messages go to the structured log.

    A UI layer supplies its own NotifierInterface (e.g. toasts).
    """

    def __init__(self):
        self._logger = structlog.get_logger("expense_tracker.notifications")

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        if variant == "destructive":
            self._logger.warning("user_notification", title=title, description=description)
        else:
            self._logger.info("user_notification", title=title, description=description)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., adding an expense)
    and pass it through all subsequent operations.
    """
    return uuid4()
