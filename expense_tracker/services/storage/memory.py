"""
In-Memory Collaborators

Dictionary-backed implementations of every collaborator interface, used for
local development and tests. They behave like the hosted backend where the
core depends on it:
- queries filter on owner/paid/date and return newest date first
- every insert/update/delete is fanned out to subscribers of that owner
- failures can be injected to exercise the error paths
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.expense import (
    ChangeEvent,
    ChangeEventType,
    ExpenseFilter,
    ExpenseRecord,
    NewExpense,
)
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ChangeHandler,
    ChangeNotificationInterface,
    ExpenseDatasetInterface,
    FetchError,
    IdentityCallback,
    IdentityProviderInterface,
    InsertError,
    NotifierInterface,
    ObjectStorageError,
    ObjectStorageInterface,
    SubscriptionError,
    SubscriptionHandle,
)


class InMemoryExpenseStore(ExpenseDatasetInterface, ChangeNotificationInterface):
    """
    Expenses table plus its realtime channel.

    Set `fail_next_queries` / `fail_next_subscribes` to make the next N
    calls raise. `query_gate` lets a test hold a query open until released.
    """

    def __init__(self, table: str = "expenses"):
        self.table = table
        self._rows: dict[str, ExpenseRecord] = {}
        self._subscriptions: dict[int, tuple[SubscriptionHandle, ChangeHandler]] = {}
        self._next_token = 1
        self.fail_next_queries = 0
        self.fail_next_inserts = 0
        self.fail_next_subscribes = 0
        self.query_count = 0
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0
        self.query_gate: Optional[Callable[[ExpenseFilter], Awaitable[None]]] = None

    # -- dataset ------------------------------------------------------------

    async def query(self, expense_filter: ExpenseFilter) -> list[ExpenseRecord]:
        self.query_count += 1
        if self.fail_next_queries > 0:
            self.fail_next_queries -= 1
            raise FetchError("Simulated query failure")

        # Snapshot before suspending so the result reflects issue time
        rows = [row for row in self._rows.values() if expense_filter.matches(row)]
        if self.query_gate is not None:
            await self.query_gate(expense_filter)
        else:
            await asyncio.sleep(0)

        rows.sort(key=lambda r: r.date, reverse=True)
        return rows

    async def insert(self, new_expense: NewExpense) -> ExpenseRecord:
        if self.fail_next_inserts > 0:
            self.fail_next_inserts -= 1
            raise InsertError("Simulated insert failure")

        record = ExpenseRecord(
            id=str(uuid4()),
            owner=new_expense.owner,
            category=new_expense.category,
            date=new_expense.date,
            amount=new_expense.amount,
            currency=new_expense.currency,
            description=new_expense.description,
            receipt_ref=new_expense.receipt_ref,
            created_at=datetime.now(timezone.utc),
        )
        self._rows[record.id] = record
        await self._publish(ChangeEventType.INSERT, record)
        return record

    async def update(self, record: ExpenseRecord) -> None:
        """Replace an existing row, e.g. to mark a claim as paid."""
        if record.id not in self._rows:
            raise KeyError(record.id)
        self._rows[record.id] = record
        await self._publish(ChangeEventType.UPDATE, record)

    async def delete(self, record_id: str) -> None:
        record = self._rows.pop(record_id)
        await self._publish(ChangeEventType.DELETE, record)

    def seed(self, records: list[ExpenseRecord]) -> None:
        """Load rows without emitting change events."""
        for record in records:
            self._rows[record.id] = record

    # -- change notifications -----------------------------------------------

    async def subscribe(
        self,
        channel_name: str,
        table: str,
        owner: str,
        handler: ChangeHandler,
    ) -> SubscriptionHandle:
        self.subscribe_calls += 1
        if self.fail_next_subscribes > 0:
            self.fail_next_subscribes -= 1
            raise SubscriptionError(f"Simulated failure opening {channel_name}")

        token = self._next_token
        self._next_token += 1
        handle = SubscriptionHandle(channel_name, table, owner, token=token)
        self._subscriptions[token] = (handle, handler)
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self.unsubscribe_calls += 1
        if self._subscriptions.pop(handle.token, None) is None:
            raise SubscriptionError(f"Channel {handle.channel_name} is not open")

    @property
    def open_channels(self) -> list[SubscriptionHandle]:
        return [handle for handle, _ in self._subscriptions.values()]

    async def emit(self, event: ChangeEvent) -> None:
        """Deliver an event to every subscriber whose filter matches it."""
        for handle, handler in list(self._subscriptions.values()):
            if handle.table == event.table and handle.owner == event.owner:
                await handler(event)

    async def _publish(self, event_type: ChangeEventType, record: ExpenseRecord) -> None:
        await self.emit(ChangeEvent(
            event_type=event_type,
            table=self.table,
            owner=record.owner,
            record_id=record.id,
        ))


class InMemoryObjectStorage(ObjectStorageInterface):
    """Bucket of files keyed by path, with fake public and signed URLs."""

    def __init__(self, base_url: str = "https://storage.local", bucket: str = "receipts"):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.files: dict[str, bytes] = {}
        self.fail_signing = False
        self.signed_requests: list[tuple[str, int]] = []

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        if path in self.files:
            raise ObjectStorageError(f"File already exists: {path}")
        self.files[path] = data

    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        self.signed_requests.append((path, ttl_seconds))
        if self.fail_signing:
            raise ObjectStorageError("Simulated signing failure")
        if path not in self.files:
            raise ObjectStorageError(f"Object not found: {path}")
        return f"{self.base_url}/sign/{self.bucket}/{path}?expires_in={ttl_seconds}"

    async def public_url(self, path: str) -> str:
        return f"{self.base_url}/public/{self.bucket}/{path}"


class InMemoryIdentityProvider(IdentityProviderInterface):
    """Identity that tests can sign in and out explicitly."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id
        self._callbacks: list[IdentityCallback] = []

    async def current_user(self) -> Optional[str]:
        return self._user_id

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    async def sign_in(self, user_id: str) -> None:
        self._user_id = user_id
        await self._broadcast()

    async def sign_out(self) -> None:
        self._user_id = None
        await self._broadcast()

    async def _broadcast(self) -> None:
        for callback in list(self._callbacks):
            await callback(self._user_id)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]


class RecordingNotifier(NotifierInterface):
    """Keeps every notification so callers can display or assert on them."""

    def __init__(self):
        self.messages: list[tuple[str, str, str]] = []

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        self.messages.append((title, description, variant))

    @property
    def descriptions(self) -> list[str]:
        return [description for _, description, _ in self.messages]
