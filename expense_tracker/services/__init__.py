"""
Services package.

Receipt services live in expense_tracker.services.receipts and are imported
from there; they depend on the audit logger, which depends on storage.
"""

from expense_tracker.services.storage import (
    AuditStorageInterface,
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
)

__all__ = [
    # Collaborator interfaces
    "AuditStorageInterface",
    "ChangeNotificationInterface",
    "ExpenseDatasetInterface",
    "IdentityProviderInterface",
    "NotifierInterface",
    "ObjectStorageInterface",
    # Storage exceptions
    "ConnectionError",
    "FetchError",
    "InsertError",
    "ObjectStorageError",
    "StorageError",
    "SubscriptionError",
]
