"""Currency normalization and aggregation package."""

from expense_tracker.aggregation.currency import CurrencyNormalizer
from expense_tracker.aggregation.engine import AggregationEngine, aggregate, display_category

__all__ = ["AggregationEngine", "CurrencyNormalizer", "aggregate", "display_category"]
