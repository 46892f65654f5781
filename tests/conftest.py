"""
Shared fixtures.

All collaborators are the in-memory implementations; no test talks to
Supabase or Cloudinary.
"""

from datetime import date
from decimal import Decimal
from io import BytesIO
from itertools import count

import pytest
from PIL import Image

from expense_tracker.audit import AuditLogger
from expense_tracker.config import AppSettings
from expense_tracker.models import ExpenseRecord
from expense_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryExpenseStore,
    InMemoryIdentityProvider,
    InMemoryObjectStorage,
    RecordingNotifier,
)


_ids = count(1)


def make_record(
    owner: str = "user-1",
    day: date = date(2024, 1, 10),
    amount: str = "50",
    currency: str = "USD",
    category: str = "food",
    paid: bool = False,
    receipt_ref=None,
) -> ExpenseRecord:
    return ExpenseRecord(
        id=f"exp-{next(_ids)}",
        owner=owner,
        category=category,
        date=day,
        amount=Decimal(amount),
        currency=currency,
        paid=paid,
        receipt_ref=receipt_ref,
    )


def png_bytes() -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (4, 4), color=(200, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def store():
    return InMemoryExpenseStore()


@pytest.fixture
def identity():
    return InMemoryIdentityProvider("user-1")


@pytest.fixture
def object_storage():
    return InMemoryObjectStorage()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def app_settings():
    return AppSettings(
        max_upload_size_mb=1,
        supported_receipt_formats="pdf,png,jpg,jpeg",
    )
