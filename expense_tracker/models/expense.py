"""
Core Data Models for Expense Tracker

These models define the schemas for all data flowing through the sync core.
They are designed to:
1. Enforce type safety at runtime
2. Map cleanly to and from the expenses table's column names
3. Be immutable once mirrored into a local cache

DESIGN DECISION: ExpenseRecord is frozen. The remote store owns the data;
the client only ever holds full snapshots of it, never patched copies.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Recommended expense categories.

    The category column is free text; these are the values the entry form
    offers. Unknown categories are still valid records.
    """
    FOOD = "food"
    TRANSPORTATION = "transportation"
    ACCOMMODATION = "accommodation"
    ENTERTAINMENT = "entertainment"
    BUSINESS = "business"
    OTHER = "other"


class ChangeEventType(str, Enum):
    """Row-level change kinds delivered by the change-notification channel."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class FetchStatus(str, Enum):
    """Outcome of one fetch issued by the query engine."""
    APPLIED = "applied"   # Result replaced the cache
    STALE = "stale"       # A later-issued fetch already applied; dropped
    FAILED = "failed"     # Transport/query error; cache untouched


# =============================================================================
# EXPENSE RECORDS
# =============================================================================

class ExpenseRecord(BaseModel):
    """
    One expense row as mirrored from the remote store.

    Field names are Pythonic; `from_row` translates the table's column names
    (user_id, expense_type, claim_paid, receipt_url).
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque unique identifier"
    )
    owner: str = Field(
        ...,
        min_length=1,
        description="User who created the record"
    )
    category: str = Field(
        ...,
        description="Expense type, free text"
    )
    date: date
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount in the record's own currency"
    )
    currency: str = Field(
        default="USD",
        description="ISO-like currency code"
    )
    description: Optional[str] = None
    claim_note: Optional[str] = Field(
        default=None,
        description="Note attached when the reimbursement claim was settled"
    )
    paid: bool = Field(
        default=False,
        description="Has the reimbursement claim been paid?"
    )
    receipt_ref: Optional[str] = Field(
        default=None,
        description="Reference (URL) of the stored receipt"
    )
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ExpenseRecord":
        """Build a record from a row of the expenses table."""
        return cls(
            id=str(row["id"]),
            owner=str(row["user_id"]),
            category=row.get("expense_type") or "",
            date=row["date"],
            amount=Decimal(str(row["amount"])),
            currency=row.get("currency") or "USD",
            description=row.get("description"),
            claim_note=row.get("claim_note"),
            paid=bool(row.get("claim_paid", False)),
            receipt_ref=row.get("receipt_url"),
            created_at=row.get("created_at"),
        )


class ExpenseDraft(BaseModel):
    """
    What the user enters on the expense form.

    The owner and receipt reference are filled in at submission time.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Expense type is required"
    )
    date: date
    amount: Decimal = Field(
        ...,
        ge=Decimal("0.01"),
        description="Amount must be greater than 0"
    )
    currency: str = Field(
        default="USD",
        min_length=1,
        max_length=10,
    )
    description: Optional[str] = Field(
        default=None,
        max_length=1000,
    )

    def for_owner(self, owner: str, receipt_ref: Optional[str] = None) -> "NewExpense":
        """Attach the signed-in owner (and uploaded receipt) for insertion."""
        return NewExpense(
            owner=owner,
            receipt_ref=receipt_ref,
            **self.model_dump(),
        )


class NewExpense(ExpenseDraft):
    """
    Payload for inserting a new expense.

    The id, paid flag and created_at are assigned by the store.
    """

    owner: str = Field(
        ...,
        min_length=1,
        description="Signed-in user creating the record"
    )
    receipt_ref: Optional[str] = None

    def to_row(self) -> dict[str, Any]:
        """Convert to a row for the expenses table."""
        return {
            "user_id": self.owner,
            "expense_type": self.category,
            "date": self.date.isoformat(),
            "amount": float(self.amount),
            "currency": self.currency,
            "description": self.description,
            "receipt_url": self.receipt_ref,
        }


class ReceiptFile(BaseModel):
    """A receipt chosen on the form, before upload."""

    filename: str = Field(..., min_length=1, max_length=255)
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class ExpenseFilter(BaseModel):
    """
    Scope of one cached view.

    Bounds are inclusive and compare against the record date only,
    never against created_at.
    """
    model_config = ConfigDict(frozen=True)

    owner: str = Field(
        ...,
        min_length=1,
        description="Records must belong to this user"
    )
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    paid_only: bool = False

    @model_validator(mode='after')
    def validate_range(self) -> 'ExpenseFilter':
        """Validate date relationships."""
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("Start date must be on or before end date")
        return self

    def matches(self, record: ExpenseRecord) -> bool:
        """Check whether a record falls inside this filter."""
        if record.owner != self.owner:
            return False
        if self.paid_only and not record.paid:
            return False
        if self.date_from and record.date < self.date_from:
            return False
        if self.date_to and record.date > self.date_to:
            return False
        return True


# =============================================================================
# DERIVED MODELS
# =============================================================================

class BreakdownEntry(BaseModel):
    """One category's share of the normalized total."""
    model_config = ConfigDict(frozen=True)

    category: str
    normalized_sum: Decimal
    percentage_of_total: Decimal


class ExpenseSummary(BaseModel):
    """Aggregates derived from one cache snapshot."""
    model_config = ConfigDict(frozen=True)

    total: Decimal = Decimal("0")
    breakdown: list[BreakdownEntry] = Field(default_factory=list)
    record_count: int = Field(default=0, ge=0)
    currency: str = "USD"


class FetchResult(BaseModel):
    """What happened to one fetch."""

    sequence: int = Field(ge=1)
    status: FetchStatus
    record_count: int = Field(default=0, ge=0)
    error_message: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == FetchStatus.APPLIED


class ChangeEvent(BaseModel):
    """
    A row change reported by the change-notification channel.

    owner comes from the new row, or the old row for deletes; it may be
    missing when the store does not send full old rows.
    """

    event_type: ChangeEventType
    table: str
    owner: Optional[str] = None
    record_id: Optional[str] = None
