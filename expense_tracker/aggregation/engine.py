"""
Aggregation Engine

DESIGN DECISION: Aggregates are recomputed from scratch from one cache
snapshot every time the snapshot changes. There is no running total to
drift out of sync with the records on screen.
"""

from decimal import Decimal
from typing import Iterable

from expense_tracker.aggregation.currency import CurrencyNormalizer
from expense_tracker.models.expense import BreakdownEntry, ExpenseRecord, ExpenseSummary


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def display_category(category: str) -> str:
    """Capitalize the first letter; leave the rest as entered."""
    return category[:1].upper() + category[1:]


def aggregate(
    records: Iterable[ExpenseRecord],
    normalizer: CurrencyNormalizer,
) -> ExpenseSummary:
    """
    Compute the normalized total and per-category breakdown.

    Categories are grouped by their display label, so "food" and "Food"
    share one entry. Entries are sorted by sum, largest first; equal sums
    keep the order in which their category was first seen.
    """
    sums: dict[str, Decimal] = {}
    total = ZERO
    count = 0

    for record in records:
        normalized = normalizer.normalize(record.amount, record.currency)
        label = display_category(record.category)
        sums[label] = sums.get(label, ZERO) + normalized
        total += normalized
        count += 1

    entries = [
        BreakdownEntry(
            category=label,
            normalized_sum=amount,
            percentage_of_total=(amount / total * HUNDRED) if total else ZERO,
        )
        for label, amount in sums.items()
    ]
    # sorted() is stable, which gives the first-seen tie-break
    entries = sorted(entries, key=lambda e: e.normalized_sum, reverse=True)

    return ExpenseSummary(
        total=total,
        breakdown=entries,
        record_count=count,
        currency=normalizer.reference,
    )


class AggregationEngine:
    """Binds a normalizer so views can summarize snapshots directly."""

    def __init__(self, normalizer: CurrencyNormalizer):
        self._normalizer = normalizer

    @property
    def normalizer(self) -> CurrencyNormalizer:
        return self._normalizer

    def summarize(self, records: Iterable[ExpenseRecord]) -> ExpenseSummary:
        return aggregate(records, self._normalizer)

    def total(self, records: Iterable[ExpenseRecord]) -> Decimal:
        """Normalized total only, as shown under the paid-claims table."""
        return self.summarize(records).total
