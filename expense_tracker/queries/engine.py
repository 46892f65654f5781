"""
Query/Filter Engine

DESIGN DECISION: Every fetch replaces the whole cache, and fetches are
applied in ISSUE order, not completion order.

Fetches can overlap: a date-range change and two realtime notifications may
all be in flight at once. Each fetch takes a sequence number when it is
issued. When a result arrives it is applied only if its sequence is newer
than the last one applied; an older result that finishes late is dropped.

GUARANTEES:
- The cache only ever holds one complete fetch result
- A transport failure leaves the previous snapshot on screen
- Failures are reported to the user, never raised to the caller
"""

from typing import Optional

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.models.expense import (
    ExpenseFilter,
    ExpenseRecord,
    FetchResult,
    FetchStatus,
)
from expense_tracker.queries.cache import RecordCache
from expense_tracker.services.storage import (
    ExpenseDatasetInterface,
    NotifierInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


def order_by_date_desc(records: list[ExpenseRecord]) -> list[ExpenseRecord]:
    """Newest date first; same-date records keep the store's order."""
    return sorted(records, key=lambda r: r.date, reverse=True)


class ExpenseQueryEngine:
    """
    Issues filtered fetches for one view and applies them to its cache.
    """

    def __init__(
        self,
        dataset: ExpenseDatasetInterface,
        cache: RecordCache,
        notifier: Optional[NotifierInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        view_name: str = "expenses",
        failure_message: str = "Failed to fetch expenses",
    ):
        self._dataset = dataset
        self._cache = cache
        self._notifier = notifier
        self._audit_logger = audit_logger
        self._view_name = view_name
        self._failure_message = failure_message
        self._issued = 0
        self._applied = 0

    @property
    def cache(self) -> RecordCache:
        return self._cache

    @property
    def issued_sequence(self) -> int:
        return self._issued

    @property
    def applied_sequence(self) -> int:
        return self._applied

    def invalidate(self) -> None:
        """
        Make every fetch issued so far stale.

        Used when the owner changes: results for the previous user that are
        still in flight must never reach the cache.
        """
        self._applied = self._issued

    async def fetch(self, expense_filter: ExpenseFilter) -> FetchResult:
        """
        Fetch records for `expense_filter` and replace the cache with them.

        Returns:
            FetchResult describing whether the result was applied,
            discarded as stale, or failed
        """
        if not expense_filter.owner:
            raise ValueError("A fetch requires the signed-in owner")

        self._issued += 1
        sequence = self._issued

        try:
            records = await self._dataset.query(expense_filter)
        except StorageError as e:
            logger.warning(
                "fetch_failed",
                view=self._view_name,
                sequence=sequence,
                error=str(e),
            )
            if self._notifier:
                self._notifier.notify("Error", self._failure_message, "destructive")
            if self._audit_logger:
                await self._audit_logger.log_fetch_failed(
                    view=self._view_name,
                    owner=expense_filter.owner,
                    error_message=str(e),
                )
            return FetchResult(
                sequence=sequence,
                status=FetchStatus.FAILED,
                error_message=str(e),
            )

        if sequence <= self._applied:
            logger.debug(
                "fetch_discarded_stale",
                view=self._view_name,
                sequence=sequence,
                applied=self._applied,
            )
            return FetchResult(
                sequence=sequence,
                status=FetchStatus.STALE,
                record_count=len(records),
            )

        ordered = order_by_date_desc(records)
        self._applied = sequence
        self._cache.replace(ordered)
        logger.debug(
            "fetch_applied",
            view=self._view_name,
            sequence=sequence,
            record_count=len(ordered),
        )
        return FetchResult(
            sequence=sequence,
            status=FetchStatus.APPLIED,
            record_count=len(ordered),
        )
