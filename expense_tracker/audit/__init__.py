"""Audit logging package."""

from expense_tracker.audit.logger import AuditLogger, LoggingNotifier, create_correlation_id

__all__ = ["AuditLogger", "LoggingNotifier", "create_correlation_id"]
