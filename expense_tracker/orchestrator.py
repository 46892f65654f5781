"""
Main Orchestrator for the Expense Tracker

This module ties the sync core together for the three expense screens:
1. Ledger (all of the user's expenses in the selected date range)
2. Paid claims (reimbursed expenses only, with a running total)
3. Breakdown (per-category share of the normalized total)

Each screen is an ExpenseView: its own cache, query engine and live
subscription. ExpenseManager owns the shared date range and the
add-expense flow.

DESIGN DECISION: Views never patch their caches from change payloads.
A change event only triggers a re-fetch; the latest issued fetch wins.
"""

import asyncio
import calendar
from datetime import date
from enum import Enum
from typing import Optional

import structlog

from expense_tracker.aggregation import AggregationEngine, CurrencyNormalizer
from expense_tracker.audit import AuditLogger, LoggingNotifier, create_correlation_id
from expense_tracker.config import AppSettings, Settings, get_settings
from expense_tracker.models import (
    ExpenseDraft,
    ExpenseFilter,
    ExpenseRecord,
    ExpenseSummary,
    FetchResult,
    ReceiptFile,
)
from expense_tracker.queries import ExpenseQueryEngine, RecordCache
from expense_tracker.services.receipts import (
    AttachmentResolver,
    CloudinaryReceiptStorage,
    ReceiptError,
    ReceiptUploader,
)
from expense_tracker.services.storage import (
    ChangeNotificationInterface,
    ExpenseDatasetInterface,
    IdentityProviderInterface,
    NotifierInterface,
    ObjectStorageInterface,
    StorageError,
)
from expense_tracker.sync import LiveSyncController, SyncState


logger = structlog.get_logger(__name__)


class ExpenseViewKind(str, Enum):
    """The three screens backed by the sync core."""
    LEDGER = "ledger"
    PAID_CLAIMS = "paid_claims"
    BREAKDOWN = "breakdown"


VIEW_CHANNELS = {
    ExpenseViewKind.LEDGER: "expense-ledger-changes",
    ExpenseViewKind.PAID_CLAIMS: "paid-expenses-changes",
    ExpenseViewKind.BREAKDOWN: "expense-breakdown-changes",
}

VIEW_FAILURE_MESSAGES = {
    ExpenseViewKind.LEDGER: "Failed to fetch expenses",
    ExpenseViewKind.PAID_CLAIMS: "Failed to fetch paid expenses",
    ExpenseViewKind.BREAKDOWN: "Failed to fetch expense breakdown",
}


class ExpenseSubmissionError(Exception):
    """Adding an expense failed; nothing was inserted."""
    pass


def months_before(day: date, months: int) -> date:
    """Same day `months` earlier, clamped to the end of shorter months."""
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def default_date_range(months: int = 1, today: Optional[date] = None) -> tuple[date, date]:
    """(months ago, today) - the range screens open with."""
    today = today or date.today()
    return months_before(today, months), today


def check_date_range(date_from: Optional[date], date_to: Optional[date]) -> None:
    if date_from and date_to and date_from > date_to:
        raise ValueError("Start date must be on or before end date")


class ExpenseView:
    """
    One mounted screen: cache + query engine + live subscription.

    Lifecycle:
    1. mount()   → listen for identity changes; if signed in, subscribe and fetch
    2. changes   → every matching change event re-fetches with the current filter
    3. sign-out  → unsubscribe, discard in-flight fetches, clear the cache
    4. unmount() → unsubscribe exactly once, stop listening
    """

    def __init__(
        self,
        kind: ExpenseViewKind,
        dataset: ExpenseDatasetInterface,
        notifications: ChangeNotificationInterface,
        identity: IdentityProviderInterface,
        normalizer: Optional[CurrencyNormalizer] = None,
        notifier: Optional[NotifierInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        table: str = "expenses",
        sync_attempts: int = 3,
        retry_wait=None,
    ):
        self._kind = kind
        self._identity = identity
        self._cache = RecordCache()
        self._engine = ExpenseQueryEngine(
            dataset,
            self._cache,
            notifier=notifier,
            audit_logger=audit_logger,
            view_name=kind.value,
            failure_message=VIEW_FAILURE_MESSAGES[kind],
        )
        self._sync = LiveSyncController(
            notifications,
            self.refresh,
            channel_name=VIEW_CHANNELS[kind],
            table=table,
            notifier=notifier,
            audit_logger=audit_logger,
            max_attempts=sync_attempts,
            retry_wait=retry_wait,
        )
        self._aggregation = AggregationEngine(normalizer or CurrencyNormalizer())
        self._summary = self._aggregation.summarize([])
        self._cache.add_listener(self._on_snapshot)

        self._owner: Optional[str] = None
        self._date_from: Optional[date] = None
        self._date_to: Optional[date] = None
        self._mounted = False
        self._remove_identity_listener = None

    @property
    def kind(self) -> ExpenseViewKind:
        return self._kind

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    @property
    def records(self) -> tuple[ExpenseRecord, ...]:
        return self._cache.snapshot

    @property
    def summary(self) -> ExpenseSummary:
        """Aggregates of the current snapshot, recomputed on every replace."""
        return self._summary

    @property
    def sync(self) -> LiveSyncController:
        return self._sync

    @property
    def sync_state(self) -> SyncState:
        return self._sync.state

    @property
    def query_engine(self) -> ExpenseQueryEngine:
        return self._engine

    @property
    def expense_filter(self) -> Optional[ExpenseFilter]:
        """The current filter, or None while nobody is signed in."""
        if not self._owner:
            return None
        return ExpenseFilter(
            owner=self._owner,
            date_from=self._date_from,
            date_to=self._date_to,
            paid_only=self._kind == ExpenseViewKind.PAID_CLAIMS,
        )

    def _on_snapshot(self, records: tuple[ExpenseRecord, ...]) -> None:
        self._summary = self._aggregation.summarize(records)

    async def mount(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> None:
        if self._mounted:
            raise RuntimeError(f"View {self._kind.value} is already mounted")
        check_date_range(date_from, date_to)

        self._mounted = True
        self._date_from = date_from
        self._date_to = date_to
        self._remove_identity_listener = self._identity.on_change(self._on_identity_change)

        owner = await self._identity.current_user()
        if owner and self._mounted:
            await self._activate(owner)

    async def set_date_range(
        self,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> Optional[FetchResult]:
        """
        Change the filter and re-fetch.

        The old snapshot stays visible until the new result arrives.
        """
        check_date_range(date_from, date_to)
        self._date_from = date_from
        self._date_to = date_to
        if not self._mounted:
            return None
        return await self.refresh()

    async def refresh(self) -> Optional[FetchResult]:
        """Re-fetch with the current filter; no-op while signed out."""
        expense_filter = self.expense_filter
        if expense_filter is None:
            return None
        return await self._engine.fetch(expense_filter)

    async def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        try:
            if self._remove_identity_listener is not None:
                self._remove_identity_listener()
                self._remove_identity_listener = None
        finally:
            await self._sync.stop()
            self._discard(reason="unmounted")

    async def _on_identity_change(self, user_id: Optional[str]) -> None:
        if not self._mounted or user_id == self._owner:
            return

        if user_id is None:
            await self._sync.stop()
            self._discard(reason="signed_out")
            return

        if self._owner is not None:
            # Never show one user's rows to another
            self._discard(reason="user_switched")
        await self._activate(user_id)

    async def _activate(self, owner: str) -> None:
        self._owner = owner
        await self._sync.start(owner)
        if self._owner == owner:
            await self.refresh()

    def _discard(self, reason: str) -> None:
        """Forget the owner, drop in-flight fetches and empty the cache."""
        self._owner = None
        self._engine.invalidate()
        self._cache.clear()
        logger.info("view_cleared", view=self._kind.value, reason=reason)


class ExpenseManager:
    """
    Coordinates the three views and the add-expense flow.

    Flow for add_expense:
    1. Upload → Validate and store the receipt (optional)
    2. Insert → Create the row for the signed-in user
    3. Notify → "Expense added successfully"
    4. Refresh → Re-fetch the ledger right away
    """

    def __init__(
        self,
        dataset: ExpenseDatasetInterface,
        notifications: ChangeNotificationInterface,
        identity: IdentityProviderInterface,
        storage: ObjectStorageInterface,
        normalizer: Optional[CurrencyNormalizer] = None,
        notifier: Optional[NotifierInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        table: str = "expenses",
        bucket: str = "receipts",
        today: Optional[date] = None,
        retry_wait=None,
    ):
        self._settings = settings or get_settings().app
        self._dataset = dataset
        self._identity = identity
        self._notifier = notifier or LoggingNotifier()
        self._audit_logger = audit_logger or AuditLogger()
        self._normalizer = normalizer or CurrencyNormalizer.from_settings(self._settings)

        self._views = {
            kind: ExpenseView(
                kind,
                dataset,
                notifications,
                identity,
                normalizer=self._normalizer,
                notifier=self._notifier,
                audit_logger=self._audit_logger,
                table=table,
                sync_attempts=self._settings.sync_subscribe_attempts,
                retry_wait=retry_wait,
            )
            for kind in ExpenseViewKind
        }
        self._uploader = ReceiptUploader(storage, self._settings)
        self._resolver = AttachmentResolver(
            storage,
            bucket=bucket,
            ttl_seconds=self._settings.signed_url_ttl_seconds,
            audit_logger=self._audit_logger,
        )
        self._date_from, self._date_to = default_date_range(
            self._settings.default_range_months, today
        )

    @property
    def ledger(self) -> ExpenseView:
        return self._views[ExpenseViewKind.LEDGER]

    @property
    def paid_claims(self) -> ExpenseView:
        return self._views[ExpenseViewKind.PAID_CLAIMS]

    @property
    def breakdown(self) -> ExpenseView:
        return self._views[ExpenseViewKind.BREAKDOWN]

    @property
    def views(self) -> list[ExpenseView]:
        return list(self._views.values())

    @property
    def date_range(self) -> tuple[date, date]:
        return self._date_from, self._date_to

    @property
    def normalizer(self) -> CurrencyNormalizer:
        return self._normalizer

    async def open(self) -> None:
        """Mount every view with the shared date range."""
        try:
            for view in self.views:
                await view.mount(self._date_from, self._date_to)
        except Exception:
            await self.close()
            raise

    async def close(self) -> None:
        for view in self.views:
            await view.unmount()

    async def __aenter__(self) -> "ExpenseManager":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def set_date_range(
        self,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> list[Optional[FetchResult]]:
        """
        Apply one date range to all views; they re-fetch concurrently.

        Either bound may be None to leave that side open.
        """
        check_date_range(date_from, date_to)
        self._date_from, self._date_to = date_from, date_to
        return list(await asyncio.gather(
            *(view.set_date_range(date_from, date_to) for view in self.views)
        ))

    async def add_expense(
        self,
        draft: ExpenseDraft,
        receipt: Optional[ReceiptFile] = None,
    ) -> ExpenseRecord:
        """
        Submit a new expense for the signed-in user.

        Raises:
            ExpenseSubmissionError: If nobody is signed in, the receipt is
                rejected, or the insert fails
        """
        owner = await self._identity.current_user()
        if not owner:
            raise ExpenseSubmissionError("Sign in to add expenses")

        correlation_id = create_correlation_id()
        try:
            receipt_ref = None
            if receipt is not None:
                receipt_ref = await self._uploader.upload(owner, receipt.filename, receipt.data)
                await self._audit_logger.log_receipt_uploaded(
                    owner=owner,
                    path=receipt_ref,
                    size_bytes=receipt.size_bytes,
                    correlation_id=correlation_id,
                )
            record = await self._dataset.insert(draft.for_owner(owner, receipt_ref))
        except (ReceiptError, StorageError) as e:
            logger.warning("expense_add_failed", owner=owner, error=str(e))
            self._notifier.notify("Error", "Failed to add expense", "destructive")
            await self._audit_logger.log_expense_add_failed(
                owner=owner,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise ExpenseSubmissionError(str(e)) from e

        self._notifier.notify("Success", "Expense added successfully")
        await self._audit_logger.log_expense_added(
            expense_id=record.id,
            owner=owner,
            category=record.category,
            amount=str(record.amount),
            correlation_id=correlation_id,
        )
        await self.ledger.refresh()
        return record

    async def receipt_link(self, record: ExpenseRecord) -> Optional[str]:
        """URL to show for a record's receipt, or None if it has none."""
        if not record.receipt_ref:
            return None
        return await self._resolver.resolve_for_display(record.receipt_ref)


async def create_expense_manager(
    settings: Optional[Settings] = None,
) -> ExpenseManager:
    """
    Factory function to wire the manager to Supabase.

    Receipts go to Supabase Storage or Cloudinary depending on
    RECEIPT_BACKEND.
    """
    from expense_tracker.services.storage.supabase_backend import (
        SupabaseChangeNotifications,
        SupabaseClient,
        SupabaseExpenseDataset,
        SupabaseIdentityProvider,
        SupabaseReceiptStorage,
    )

    settings = settings or get_settings()
    supabase_settings = settings.supabase

    audit_logger = AuditLogger()
    client = SupabaseClient(supabase_settings.url, supabase_settings.key, audit_logger=audit_logger)
    await client.connect()

    if settings.app.receipt_backend == "cloudinary":
        storage: ObjectStorageInterface = CloudinaryReceiptStorage(
            folder=supabase_settings.receipts_bucket,
            settings=settings.cloudinary,
            audit_logger=audit_logger,
        )
    else:
        storage = SupabaseReceiptStorage(client, supabase_settings.receipts_bucket)

    return ExpenseManager(
        dataset=SupabaseExpenseDataset(client, supabase_settings.expenses_table),
        notifications=SupabaseChangeNotifications(client, supabase_settings.schema_name),
        identity=SupabaseIdentityProvider(client),
        storage=storage,
        audit_logger=audit_logger,
        settings=settings.app,
        table=supabase_settings.expenses_table,
        bucket=supabase_settings.receipts_bucket,
    )
