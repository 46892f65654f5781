"""
Storage Services Package

Provides abstract collaborator interfaces and their implementations.
Supabase is the hosted backend; the in-memory implementations back tests
and local development.
"""

from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ChangeHandler,
    ChangeNotificationInterface,
    ConnectionError,
    ExpenseDatasetInterface,
    FetchError,
    IdentityProviderInterface,
    InsertError,
    NotifierInterface,
    ObjectStorageError,
    ObjectStorageInterface,
    StorageError,
    SubscriptionError,
    SubscriptionHandle,
)
from expense_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryExpenseStore,
    InMemoryIdentityProvider,
    InMemoryObjectStorage,
    RecordingNotifier,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ChangeHandler",
    "ChangeNotificationInterface",
    "ExpenseDatasetInterface",
    "IdentityProviderInterface",
    "NotifierInterface",
    "ObjectStorageInterface",
    "SubscriptionHandle",
    # Exceptions
    "ConnectionError",
    "FetchError",
    "InsertError",
    "ObjectStorageError",
    "StorageError",
    "SubscriptionError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryExpenseStore",
    "InMemoryIdentityProvider",
    "InMemoryObjectStorage",
    "RecordingNotifier",
]
