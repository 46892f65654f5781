"""
Live Sync Controller

Keeps one view's cache in step with the remote table.

State machine (one controller per mounted view):

    UNSUBSCRIBED --start(owner)--> SUBSCRIBING --ok--> SUBSCRIBED
                                        |
                                        +--retries exhausted--> DEGRADED
    any state --stop() / sign-out--> UNSUBSCRIBED

DESIGN DECISION: A change notification never touches the cache. It only
triggers a full re-fetch through the query engine, which re-applies the
view's date/paid filter and drops stale results. The channel itself is
scoped by owner only.
"""

from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_tracker.audit import AuditLogger
from expense_tracker.models.expense import ChangeEvent
from expense_tracker.services.storage import (
    ChangeNotificationInterface,
    NotifierInterface,
    StorageError,
    SubscriptionHandle,
)


logger = structlog.get_logger(__name__)


class SyncState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    DEGRADED = "degraded"  # No live updates; manual refresh still works


class LiveSyncController:
    """
    Owns one change-notification subscription and its teardown.

    `on_change` is awaited once per matching event; it is expected to
    re-fetch through the query engine.
    """

    def __init__(
        self,
        notifications: ChangeNotificationInterface,
        on_change: Callable[[], Awaitable[Any]],
        channel_name: str,
        table: str = "expenses",
        notifier: Optional[NotifierInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_attempts: int = 3,
        retry_wait=None,
    ):
        self._notifications = notifications
        self._on_change = on_change
        self._channel_name = channel_name
        self._table = table
        self._notifier = notifier
        self._audit_logger = audit_logger
        self._max_attempts = max_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, max=5)

        self._state = SyncState.UNSUBSCRIBED
        self._owner: Optional[str] = None
        self._handle: Optional[SubscriptionHandle] = None
        # Bumped by every start/stop so a subscribe that finishes late can
        # tell it has been superseded
        self._generation = 0
        self.subscribe_count = 0
        self.close_count = 0

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @property
    def channel_name(self) -> str:
        return self._channel_name

    async def start(self, owner: str) -> SyncState:
        """
        Open the owner-scoped channel.

        Restarting for a different owner closes the current channel first.
        Returns the resulting state (SUBSCRIBED, DEGRADED, or UNSUBSCRIBED if
        stop() was called while subscribing).
        """
        if not owner:
            raise ValueError("Live sync requires a signed-in owner")
        if owner == self._owner and self._state in (SyncState.SUBSCRIBING, SyncState.SUBSCRIBED):
            return self._state

        await self.stop()

        self._generation += 1
        generation = self._generation
        self._owner = owner
        self._state = SyncState.SUBSCRIBING

        try:
            handle = await self._open(owner)
        except StorageError as e:
            if generation != self._generation:
                return self._state
            self._state = SyncState.DEGRADED
            logger.warning(
                "sync_subscription_failed",
                channel=self._channel_name,
                attempts=self._max_attempts,
                error=str(e),
            )
            if self._notifier:
                self._notifier.notify(
                    "Live updates unavailable",
                    "Changes from other sessions will appear after a refresh",
                    "destructive",
                )
            if self._audit_logger:
                await self._audit_logger.log_sync_subscription_failed(
                    channel=self._channel_name,
                    owner=owner,
                    attempts=self._max_attempts,
                    error_message=str(e),
                )
            return self._state

        self.subscribe_count += 1
        if generation != self._generation:
            # stop() or a restart happened while we were subscribing
            await self._close(handle)
            return self._state

        self._handle = handle
        self._state = SyncState.SUBSCRIBED
        logger.info("sync_subscribed", channel=self._channel_name, owner=owner)
        if self._audit_logger:
            await self._audit_logger.log_sync_subscribed(self._channel_name, owner)
        return self._state

    async def stop(self) -> None:
        """
        Close the channel if one is open. Idempotent.
        """
        self._generation += 1
        handle, self._handle = self._handle, None
        self._owner = None
        self._state = SyncState.UNSUBSCRIBED
        if handle is not None:
            await self._close(handle)

    async def handle_change(self, event: ChangeEvent) -> bool:
        """
        React to one change notification.

        Returns True if a re-fetch was triggered.
        """
        if self._state != SyncState.SUBSCRIBED or event.owner != self._owner:
            logger.debug(
                "sync_change_ignored",
                channel=self._channel_name,
                event_owner=event.owner,
                state=self._state.value,
            )
            return False

        if self._audit_logger:
            await self._audit_logger.log_sync_change_received(
                channel=self._channel_name,
                owner=self._owner,
                event_type=event.event_type.value,
                record_id=event.record_id,
            )
        try:
            await self._on_change()
        except Exception as e:
            logger.exception("sync_refresh_failed", channel=self._channel_name)
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="sync_refresh_failed",
                    error_message=str(e),
                    details={"channel": self._channel_name},
                )
            return False
        return True

    @asynccontextmanager
    async def session(self, owner: str) -> AsyncIterator["LiveSyncController"]:
        """Subscribe for the duration of a block; always closes on exit."""
        await self.start(owner)
        try:
            yield self
        finally:
            await self.stop()

    async def _open(self, owner: str) -> SubscriptionHandle:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(StorageError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._notifications.subscribe(
                    self._channel_name,
                    self._table,
                    owner,
                    self.handle_change,
                )

    async def _close(self, handle: SubscriptionHandle) -> None:
        self.close_count += 1
        try:
            await self._notifications.unsubscribe(handle)
        except Exception as e:
            # The handle is dropped either way; a second close is never attempted
            logger.warning("sync_unsubscribe_failed", channel=handle.channel_name, error=str(e))
        else:
            logger.info("sync_unsubscribed", channel=handle.channel_name, owner=handle.owner)
        if self._audit_logger:
            await self._audit_logger.log_sync_unsubscribed(handle.channel_name, handle.owner)
