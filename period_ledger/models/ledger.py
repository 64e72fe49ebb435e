"""
Core Data Models for Period Ledger

These models define the strict schemas for everything the ledger engine
reads and produces. They are designed to:
1. Keep money as non-negative integer minor units (no floats, ever)
2. Make the period string "YYYY-MM-DD" the only external period form
3. Be serializable for storage and logging
4. Carry their own arithmetic invariants (MonthSummary validates itself)

DESIGN DECISION: Amounts use strict integer validation.
A float or bool sneaking into an amount is a bug upstream, so we reject it
instead of silently rounding.
"""

import calendar
import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_serializer,
    model_validator,
)


MIN_PERIOD_YEAR = 2000
MAX_PERIOD_YEAR = 2100

_PERIOD_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

# Integer minor units (cents). Never negative, never a float.
Amount = Annotated[int, Field(ge=0, strict=True)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvalidPeriodError(ValueError):
    """A period string is malformed or out of range."""
    pass


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class BucketType(str, Enum):
    """
    Kind of spending bucket.

    Credit card buckets may carry a payment day; cash buckets never do.
    """
    CASH = "cash"
    CREDIT_CARD = "credit_card"


class SavingsSource(str, Enum):
    """How a savings contribution was added."""
    MANUAL = "manual"
    RECURRING = "recurring"


class SyncAction(str, Enum):
    """What the carry-over sync did for one bucket."""
    CREATED = "created"
    # The upsert landed on a row a concurrent sync had just created
    MERGED = "merged"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED_ZERO = "skipped_zero"
    SKIPPED_MISSING_BUCKET = "skipped_missing_bucket"


class OverdueKind(str, Enum):
    FIXED_PAYMENT = "fixed_payment"
    BUCKET_PAYMENT = "bucket_payment"


# =============================================================================
# PERIOD
# =============================================================================

class Period(BaseModel):
    """
    A billing period, identified by its first day.

    `day` is the configured start day clamped to the month's length, so a
    start day of 31 gives 2024-02-29 in February 2024.

    Accepts "YYYY-MM-DD" strings and dates wherever a Period is expected,
    and serializes back to the same string.
    """
    model_config = ConfigDict(frozen=True)

    year: int = Field(..., ge=MIN_PERIOD_YEAR, le=MAX_PERIOD_YEAR)
    month: int = Field(..., ge=1, le=12)
    day: int = Field(..., ge=1, le=31)

    @classmethod
    def parse(cls, value: str) -> "Period":
        """
        Parse a period string strictly.

        Raises:
            InvalidPeriodError: If the string is not a valid period
        """
        return cls(**cls._split(value))

    @staticmethod
    def _split(value: str) -> dict[str, int]:
        if not isinstance(value, str) or not _PERIOD_PATTERN.fullmatch(value):
            raise InvalidPeriodError(
                f"Invalid period {value!r}: expected YYYY-MM-DD"
            )
        year, month, day = (int(part) for part in value.split("-"))
        if not MIN_PERIOD_YEAR <= year <= MAX_PERIOD_YEAR:
            raise InvalidPeriodError(
                f"Invalid period {value!r}: year must be between "
                f"{MIN_PERIOD_YEAR} and {MAX_PERIOD_YEAR}"
            )
        if not 1 <= month <= 12:
            raise InvalidPeriodError(f"Invalid period {value!r}: month out of range")
        if not 1 <= day <= calendar.monthrange(year, month)[1]:
            raise InvalidPeriodError(
                f"Invalid period {value!r}: day out of range for the month"
            )
        return {"year": year, "month": month, "day": day}

    @model_validator(mode='before')
    @classmethod
    def coerce_input(cls, data: Any) -> Any:
        if isinstance(data, str):
            return cls._split(data)
        if isinstance(data, datetime):
            data = data.date()
        if isinstance(data, date):
            return {"year": data.year, "month": data.month, "day": data.day}
        return data

    @model_validator(mode='after')
    def validate_calendar_day(self) -> 'Period':
        """Day must exist in the month - we clamp, we never roll over."""
        if self.day > calendar.monthrange(self.year, self.month)[1]:
            raise ValueError(
                f"Day {self.day} does not exist in {self.year}-{self.month:02d}"
            )
        return self

    @model_serializer
    def serialize(self) -> str:
        return str(self)

    @property
    def start(self) -> date:
        return date(self.year, self.month, self.day)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================

class AccountSettings(BaseModel):
    """Per-account configuration read by the period calculator."""

    period_start_day: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Day of month (1-31) when a period starts"
    )


class BucketConfig(BaseModel):
    """
    A named spending bucket (cash or credit card).

    The id is immutable once expenses reference it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name, e.g. 'Visa' or 'Wallet'"
    )
    type: BucketType = Field(
        default=BucketType.CASH,
        description="Bucket kind"
    )
    payment_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Credit card payment day of month"
    )
    order: int = Field(
        default=0,
        ge=0,
        description="Display order"
    )

    @model_validator(mode='after')
    def validate_payment_day(self) -> 'BucketConfig':
        if self.type == BucketType.CASH and self.payment_day is not None:
            raise ValueError("Payment day is only valid for credit card buckets")
        return self


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Expense(BaseModel):
    """A single expense recorded within exactly one period."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    period: Period
    bucket_id: UUID
    category_id: UUID
    amount: Amount
    name: str = Field(..., min_length=1, max_length=200)


class FixedPayment(BaseModel):
    """
    A recurring bill.

    Not period-scoped itself; whether it is paid in a period lives in
    MonthData.paid_fixed_payment_ids.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    amount: Amount
    due_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month the bill is due, placed in each period's month"
    )
    due_date: Optional[date] = Field(
        default=None,
        description="Fixed due date, used when no due day is set"
    )
    category_id: Optional[UUID] = None


class BucketPayment(BaseModel):
    """
    Amount owed at the start of `period` for spending in the previous period.

    CRITICAL: At most one per (account, period, bucket_id). Storage
    enforces this; the synchronizer relies on it.
    """

    id: UUID = Field(default_factory=uuid4)
    period: Period
    bucket_id: UUID
    amount: Amount
    paid: bool = False
    due_date: Optional[date] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SavingsContribution(BaseModel):
    """Money put towards a savings goal. Reduces money left, is not an expense."""

    id: UUID = Field(default_factory=uuid4)
    goal_id: UUID
    amount: Amount
    contribution_date: date
    period: Period
    source: SavingsSource = SavingsSource.MANUAL


class MonthData(BaseModel):
    """Per-period figures entered by the user."""

    period: Period
    salary: Amount = 0
    monthly_limit: Amount = 0
    paid_fixed_payment_ids: set[UUID] = Field(default_factory=set)


class PeriodEntities(BaseModel):
    """Everything storage holds for one account and one period."""

    period: Period
    expenses: list[Expense] = Field(default_factory=list)
    fixed_payments: list[FixedPayment] = Field(default_factory=list)
    paid_fixed_payment_ids: set[UUID] = Field(default_factory=set)
    bucket_payments: list[BucketPayment] = Field(default_factory=list)
    savings_contributions: list[SavingsContribution] = Field(default_factory=list)
    salary: Amount = 0
    monthly_limit: Amount = 0


# =============================================================================
# DERIVED MODELS
# =============================================================================

class MonthSummary(BaseModel):
    """
    Financial summary of one period. Derived, never persisted.

    Only realized cash outflows count towards grand_total: unpaid bills
    and unpaid carried-over balances have not left the account yet.
    """

    salary: int = Field(ge=0)
    monthly_limit: int = Field(ge=0)
    expenses_by_bucket: dict[UUID, int] = Field(default_factory=dict)
    expenses_total: int = Field(ge=0)
    planned_recurring_total: int = Field(ge=0)
    paid_recurring_total: int = Field(ge=0)
    remaining_recurring_total: int = Field(ge=0)
    paid_from_previous_period: int = Field(ge=0)
    unpaid_from_previous_period: int = Field(ge=0)
    grand_total: int = Field(ge=0)
    total_savings: int = Field(ge=0)
    remaining_from_salary: int
    remaining_from_limit: int

    @model_validator(mode='after')
    def validate_identities(self) -> 'MonthSummary':
        """The accounting identities hold exactly, or the summary is rejected."""
        if self.paid_recurring_total > self.planned_recurring_total:
            raise ValueError("Paid recurring total cannot exceed planned total")
        if self.remaining_recurring_total != (
            self.planned_recurring_total - self.paid_recurring_total
        ):
            raise ValueError("Remaining recurring total must equal planned minus paid")
        if self.expenses_total != sum(self.expenses_by_bucket.values()):
            raise ValueError("Expenses total must equal the sum of bucket totals")
        if self.grand_total != (
            self.expenses_total
            + self.paid_recurring_total
            + self.paid_from_previous_period
        ):
            raise ValueError("Grand total must equal expenses plus paid outflows")
        if self.remaining_from_salary != (
            self.salary - self.grand_total - self.total_savings
        ):
            raise ValueError("Remaining from salary is inconsistent")
        if self.remaining_from_limit != self.monthly_limit - self.grand_total:
            raise ValueError("Remaining from limit is inconsistent")
        return self

    @property
    def is_over_limit(self) -> bool:
        """True when a limit is set and spending went past it."""
        return self.monthly_limit > 0 and self.remaining_from_limit < 0


class CategorySpending(BaseModel):
    """Spending share of one category within a period."""

    category_id: UUID
    total: int = Field(ge=0)
    percent: float = Field(ge=0.0, le=100.0)


class OverdueItem(BaseModel):
    """An unpaid bill or carried-over balance whose due date has passed."""

    kind: OverdueKind
    id: UUID
    amount: int = Field(ge=0)
    due_date: date
    days_overdue: int = Field(ge=1)
    name: Optional[str] = None
    bucket_id: Optional[UUID] = None


class OverdueReport(BaseModel):
    period: Period
    as_of: date
    items: list[OverdueItem] = Field(default_factory=list)

    @property
    def total_amount(self) -> int:
        return sum(item.amount for item in self.items)

    @property
    def fixed_payment_ids(self) -> set[UUID]:
        return {i.id for i in self.items if i.kind == OverdueKind.FIXED_PAYMENT}

    @property
    def bucket_payment_ids(self) -> set[UUID]:
        return {i.id for i in self.items if i.kind == OverdueKind.BUCKET_PAYMENT}


# =============================================================================
# SYNC / MAINTENANCE RESULTS
# =============================================================================

class BucketSyncResult(BaseModel):
    """Outcome of the carry-over sync for a single bucket."""

    bucket_id: UUID
    action: SyncAction
    amount: int = Field(ge=0)
    previous_amount: Optional[int] = None
    payment_id: Optional[UUID] = None


class SyncReport(BaseModel):
    """
    Result of one CarryoverSynchronizer.sync call.

    `writes` is zero on a repeated call with unchanged inputs.
    """

    account_id: str
    period: Period
    synced_at: datetime = Field(default_factory=utcnow)
    results: list[BucketSyncResult] = Field(default_factory=list)

    @property
    def writes(self) -> int:
        return sum(
            1 for r in self.results
            if r.action in (SyncAction.CREATED, SyncAction.UPDATED)
        )

    @property
    def created(self) -> list[BucketSyncResult]:
        return [r for r in self.results if r.action == SyncAction.CREATED]

    @property
    def updated(self) -> list[BucketSyncResult]:
        return [r for r in self.results if r.action == SyncAction.UPDATED]

    @property
    def skipped_bucket_ids(self) -> list[UUID]:
        return [
            r.bucket_id for r in self.results
            if r.action == SyncAction.SKIPPED_MISSING_BUCKET
        ]


class CleanupReport(BaseModel):
    """Result of the duplicate bucket payment cleanup."""

    account_id: str
    removed: int = Field(ge=0)
    kept: int = Field(ge=0)
    removed_ids: list[UUID] = Field(default_factory=list)

    @property
    def message(self) -> str:
        if self.removed:
            return f"Removed {self.removed} duplicate bucket payment(s)."
        return "No duplicate bucket payments found."
