"""
Abstract Collaborator Interfaces

DESIGN DECISION: The sync core never talks to a backend SDK directly.
Identity, the expenses dataset, the change-notification channel, object
storage and user notifications are all abstract interfaces. This allows us to:
1. Run against Supabase in production
2. Use in-memory implementations for testing and local development
3. Swap the receipt store (Supabase Storage, Cloudinary) by configuration

The interfaces are intentionally small - only the capabilities the core uses.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.expense import (
    ChangeEvent,
    ExpenseFilter,
    ExpenseRecord,
    NewExpense,
)


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
IdentityCallback = Callable[[Optional[str]], Awaitable[None]]


class SubscriptionHandle:
    """
    Opaque handle for one open change-notification subscription.

    The core owns the handle and its teardown; `token` is whatever the
    backend needs to close the channel.
    """

    def __init__(self, channel_name: str, table: str, owner: str, token: Any = None):
        self.channel_name = channel_name
        self.table = table
        self.owner = owner
        self.token = token

    def __repr__(self) -> str:
        return f"SubscriptionHandle(channel={self.channel_name!r}, owner={self.owner!r})"


class IdentityProviderInterface(ABC):
    """Yields the signed-in user and reports sign-in/sign-out transitions."""

    @abstractmethod
    async def current_user(self) -> Optional[str]:
        """
        Get the signed-in user's identifier.

        Returns:
            The user id, or None when nobody is signed in
        """
        pass

    @abstractmethod
    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """
        Register a callback for identity transitions.

        The callback receives the new user id (None on sign-out).

        Returns:
            A function that removes the callback
        """
        pass


class ExpenseDatasetInterface(ABC):
    """
    Abstract interface for the remote expenses dataset.
    """

    @abstractmethod
    async def query(self, expense_filter: ExpenseFilter) -> list[ExpenseRecord]:
        """
        Fetch records matching an owner-scoped filter.

        Args:
            expense_filter: Owner equality, optional paid flag and
                inclusive date bounds

        Returns:
            Matching records, newest date first

        Raises:
            FetchError: If the query or transport fails
        """
        pass

    @abstractmethod
    async def insert(self, new_expense: NewExpense) -> ExpenseRecord:
        """
        Insert a new expense.

        Returns:
            The created record, with server-assigned id and created_at

        Raises:
            InsertError: If the insert fails
        """
        pass


class ChangeNotificationInterface(ABC):
    """
    Abstract interface for row-change notifications on a table.
    """

    @abstractmethod
    async def subscribe(
        self,
        channel_name: str,
        table: str,
        owner: str,
        handler: ChangeHandler,
    ) -> SubscriptionHandle:
        """
        Open a channel delivering every insert/update/delete whose
        owner equals `owner`.

        Raises:
            SubscriptionError: If the channel cannot be opened
        """
        pass

    @abstractmethod
    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Close a channel previously opened by subscribe."""
        pass


class ObjectStorageInterface(ABC):
    """
    Abstract interface for receipt file storage.
    """

    @abstractmethod
    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> None:
        """
        Store a file under `path`.

        Raises:
            ObjectStorageError: If the upload fails
        """
        pass

    @abstractmethod
    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        """
        Create a time-limited direct access URL for a stored file.

        Raises:
            ObjectStorageError: If the URL cannot be created
        """
        pass

    @abstractmethod
    async def public_url(self, path: str) -> str:
        """Get the public (unsigned) URL of a stored file."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class NotifierInterface(ABC):
    """User-facing, non-blocking notifications (toasts)."""

    @abstractmethod
    def notify(self, title: str, description: str, variant: str = "default") -> None:
        """
        Show a notification.

        Args:
            title: Short heading, e.g. "Error"
            description: One-line message
            variant: "default" or "destructive"
        """
        pass


class StorageError(Exception):
    """Base exception for collaborator operations."""
    pass


class FetchError(StorageError):
    """Query or transport failure while fetching records."""
    pass


class InsertError(StorageError):
    """The store rejected or failed an insert."""
    pass


class SubscriptionError(StorageError):
    """A change-notification channel could not be opened."""
    pass


class ObjectStorageError(StorageError):
    """Upload or URL signing failed."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
