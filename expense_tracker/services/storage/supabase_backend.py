"""
Supabase Backend Implementation

DESIGN DECISION: Supabase is the hosted backend because it provides, in one
project, everything the sync core consumes:
1. Postgres with row-level security (owner-scoped expenses table)
2. Realtime postgres_changes channels filtered by owner
3. Storage buckets with signed URLs for receipts
4. Auth sessions with sign-in/sign-out callbacks

TRADEOFFS:
- Realtime delivers "something changed", not a consistent diff; the core
  therefore re-fetches on every event instead of patching.
- The SDK is async; every adapter method here is async too.

All classes follow the abstract interfaces, so business logic never imports
the supabase package.
"""

import asyncio
from typing import Any, Callable, Optional

import structlog
from realtime import RealtimeSubscribeStates
from supabase import AsyncClient, acreate_client
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_tracker.audit import AuditLogger
from expense_tracker.config import get_settings
from expense_tracker.models.expense import (
    ChangeEvent,
    ChangeEventType,
    ExpenseFilter,
    ExpenseRecord,
    NewExpense,
)
from expense_tracker.services.storage.interface import (
    ChangeHandler,
    ChangeNotificationInterface,
    ConnectionError,
    ExpenseDatasetInterface,
    FetchError,
    IdentityCallback,
    IdentityProviderInterface,
    InsertError,
    ObjectStorageError,
    ObjectStorageInterface,
    SubscriptionError,
    SubscriptionHandle,
)


logger = structlog.get_logger(__name__)


class SupabaseClient:
    """
    Lazy wrapper around the async Supabase client.

    One client is shared by all adapters; channels are still
    opened per subscription.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if url is None or key is None:
            settings = get_settings().supabase
            url = url or settings.url
            key = key or settings.key
        self._url = url
        self._key = key
        self._audit_logger = audit_logger
        self._client: Optional[AsyncClient] = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> AsyncClient:
        """The client created by connect(); fails if not connected yet."""
        if self._client is None:
            raise ConnectionError("Supabase client is not connected")
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def connect(self) -> AsyncClient:
        """Create the client on first use."""
        async with self._lock:
            if self._client is None:
                try:
                    self._client = await acreate_client(self._url, self._key)
                except Exception as e:
                    if self._audit_logger:
                        await self._audit_logger.log_external_service_error("supabase", str(e))
                    raise ConnectionError(f"Failed to connect to Supabase: {e}")
        return self._client


class SupabaseExpenseDataset(ExpenseDatasetInterface):
    """
    Expenses table access through PostgREST.

    Row-level security on the table limits rows to the signed-in user;
    the explicit owner filter keeps queries correct for service keys too.
    """

    def __init__(self, client: SupabaseClient, table: Optional[str] = None):
        self._client = client
        self._table = table or get_settings().supabase.expenses_table

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def query(self, expense_filter: ExpenseFilter) -> list[ExpenseRecord]:
        """Fetch records matching the filter, newest date first."""
        try:
            client = await self._client.connect()
            request = (
                client.table(self._table)
                .select("*")
                .eq("user_id", expense_filter.owner)
            )
            if expense_filter.paid_only:
                request = request.eq("claim_paid", True)
            if expense_filter.date_from:
                request = request.gte("date", expense_filter.date_from.isoformat())
            if expense_filter.date_to:
                request = request.lte("date", expense_filter.date_to.isoformat())

            response = await request.order("date", desc=True).execute()
        except Exception as e:
            raise FetchError(f"Failed to fetch expenses: {e}")

        records = []
        for row in response.data or []:
            try:
                records.append(ExpenseRecord.from_row(row))
            except Exception as e:
                logger.warning("malformed_expense_row", row_id=row.get("id"), error=str(e))
        return records

    async def insert(self, new_expense: NewExpense) -> ExpenseRecord:
        """Insert one expense and return the stored row."""
        try:
            client = await self._client.connect()
            response = await client.table(self._table).insert([new_expense.to_row()]).execute()
        except Exception as e:
            raise InsertError(f"Failed to insert expense: {e}")

        if not response.data:
            raise InsertError("Insert returned no rows")
        return ExpenseRecord.from_row(response.data[0])


def parse_change_payload(table: str, payload: dict[str, Any]) -> ChangeEvent:
    """
    Convert a realtime postgres_changes payload to a ChangeEvent.

    Accepts both the nested {"data": {...}} envelope and the flat
    {"eventType", "new", "old"} shape.
    """
    data = payload.get("data", payload)
    raw_type = data.get("type") or data.get("eventType") or ""
    new_row = data.get("record") or data.get("new") or {}
    old_row = data.get("old_record") or data.get("old") or {}

    row = new_row or old_row
    owner = row.get("user_id")
    record_id = row.get("id")
    return ChangeEvent(
        event_type=ChangeEventType(str(raw_type).upper()),
        table=data.get("table") or table,
        owner=str(owner) if owner is not None else None,
        record_id=str(record_id) if record_id is not None else None,
    )


class SupabaseChangeNotifications(ChangeNotificationInterface):
    """
    One realtime channel per subscription, filtered by user_id.

    Realtime invokes callbacks synchronously; each event is handed to the
    async handler as a task on the running loop.

    A rejected or timed-out join is only reported through the subscribe
    status callback, so subscribe() waits for that status before returning.
    """

    def __init__(
        self,
        client: SupabaseClient,
        schema: Optional[str] = None,
        join_timeout: float = 10.0,
    ):
        self._client = client
        self._schema = schema or get_settings().supabase.schema_name
        self._join_timeout = join_timeout
        self._tasks: set[asyncio.Task] = set()

    async def subscribe(
        self,
        channel_name: str,
        table: str,
        owner: str,
        handler: ChangeHandler,
    ) -> SubscriptionHandle:
        client = await self._client.connect()
        loop = asyncio.get_running_loop()
        joined: asyncio.Future = loop.create_future()

        def on_change(payload: dict[str, Any]) -> None:
            try:
                event = parse_change_payload(table, payload)
            except Exception as e:
                logger.warning("realtime_payload_unparsed", channel=channel_name, error=str(e))
                return
            task = loop.create_task(handler(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        def on_status(status: RealtimeSubscribeStates, error: Optional[Exception] = None) -> None:
            # Only the first status settles the join
            if not joined.done():
                joined.set_result((status, error))

        channel = client.channel(channel_name)
        try:
            channel.on_postgres_changes(
                "*",
                schema=self._schema,
                table=table,
                filter=f"user_id=eq.{owner}",
                callback=on_change,
            )
            await channel.subscribe(on_status)
            status, error = await asyncio.wait_for(joined, self._join_timeout)
            if status != RealtimeSubscribeStates.SUBSCRIBED:
                reason = getattr(status, "name", status)
                raise SubscriptionError(
                    f"Channel {channel_name} was not joined ({reason}): {error}"
                )
        except Exception as e:
            await self._discard_channel(client, channel, channel_name)
            if isinstance(e, SubscriptionError):
                raise
            if isinstance(e, asyncio.TimeoutError):
                raise SubscriptionError(f"Timed out joining channel {channel_name}")
            raise SubscriptionError(f"Failed to open channel {channel_name}: {e}")

        return SubscriptionHandle(channel_name, table, owner, token=channel)

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        client = await self._client.connect()
        try:
            await client.remove_channel(handle.token)
        except Exception as e:
            raise SubscriptionError(f"Failed to close channel {handle.channel_name}: {e}")

    async def _discard_channel(self, client: AsyncClient, channel: Any, channel_name: str) -> None:
        try:
            await client.remove_channel(channel)
        except Exception as cleanup_error:
            logger.warning(
                "realtime_channel_cleanup_failed",
                channel=channel_name,
                error=str(cleanup_error),
            )


class SupabaseReceiptStorage(ObjectStorageInterface):
    """Receipt files in a Supabase Storage bucket."""

    def __init__(self, client: SupabaseClient, bucket: Optional[str] = None):
        self._client = client
        self._bucket = bucket or get_settings().supabase.receipts_bucket

    async def _bucket_api(self):
        client = await self._client.connect()
        return client.storage.from_(self._bucket)

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        options = {"content-type": content_type} if content_type else None
        try:
            bucket = await self._bucket_api()
            await bucket.upload(path, data, options)
        except Exception as e:
            raise ObjectStorageError(f"Failed to upload {path}: {e}")

    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        try:
            bucket = await self._bucket_api()
            result = await bucket.create_signed_url(path, ttl_seconds)
        except Exception as e:
            raise ObjectStorageError(f"Failed to sign {path}: {e}")

        url = result.get("signedUrl") or result.get("signedURL")
        if not url:
            raise ObjectStorageError(f"No signed URL returned for {path}")
        return url

    async def public_url(self, path: str) -> str:
        bucket = await self._bucket_api()
        return await bucket.get_public_url(path)


class SupabaseIdentityProvider(IdentityProviderInterface):
    """Current user and auth transitions from the Supabase auth session."""

    def __init__(self, client: SupabaseClient):
        self._client = client
        self._tasks: set[asyncio.Task] = set()

    async def current_user(self) -> Optional[str]:
        client = await self._client.connect()
        session = await client.auth.get_session()
        if session is None or session.user is None:
            return None
        return str(session.user.id)

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        client = self._client.connected
        loop = asyncio.get_running_loop()

        def on_auth_state(event: str, session: Any) -> None:
            user = getattr(session, "user", None) if session else None
            user_id = str(user.id) if user is not None else None
            task = loop.create_task(callback(user_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        subscription = client.auth.on_auth_state_change(on_auth_state)
        return subscription.unsubscribe
