"""Record cache and query/filter engine package."""

from expense_tracker.queries.cache import RecordCache
from expense_tracker.queries.engine import ExpenseQueryEngine, order_by_date_desc

__all__ = ["ExpenseQueryEngine", "RecordCache", "order_by_date_desc"]
