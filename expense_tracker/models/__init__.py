"""
Data Models Package

This package contains all Pydantic models used by the expense tracker core.
"""

from expense_tracker.models.expense import (
    BreakdownEntry,
    ChangeEvent,
    ChangeEventType,
    ExpenseCategory,
    ExpenseDraft,
    ExpenseFilter,
    ExpenseRecord,
    ExpenseSummary,
    FetchResult,
    FetchStatus,
    NewExpense,
    ReceiptFile,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "BreakdownEntry",
    "ChangeEvent",
    "ChangeEventType",
    "ExpenseCategory",
    "ExpenseDraft",
    "ExpenseFilter",
    "ExpenseRecord",
    "ExpenseSummary",
    "FetchResult",
    "FetchStatus",
    "NewExpense",
    "ReceiptFile",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
