"""
Abstract Storage Interface

DESIGN DECISION: The ledger engine never talks to a database directly.
It depends on this interface, which lets us:
1. Use SQLite locally and swap in a server database later
2. Use in-memory storage for testing
3. Keep the carry-over logic decoupled from storage details

CRITICAL: Implementations must enforce that at most one bucket payment
exists per (account, period, bucket), and upsert_bucket_payment must be
atomic. The carry-over synchronizer relies on this instead of a
find-then-create sequence, which races.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, Union
from uuid import UUID

from period_ledger.models.audit import AuditEvent
from period_ledger.models.ledger import (
    AccountSettings,
    BucketConfig,
    BucketPayment,
    Expense,
    FixedPayment,
    MonthData,
    Period,
    PeriodEntities,
    SavingsContribution,
)


class _Unset:
    """Marker for 'leave this field alone' where None is a meaningful value."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (SQLite, PostgreSQL, in-memory)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Reads used by the engine
    # -------------------------------------------------------------------------

    @abstractmethod
    async def sum_expenses_by_bucket(
        self,
        account_id: str,
        period: Period,
    ) -> dict[UUID, int]:
        """
        Sum expense amounts per bucket for one period.

        Returns:
            Mapping of bucket id to total; buckets without expenses are absent
        """
        pass

    @abstractmethod
    async def get_bucket_payment(
        self,
        account_id: str,
        period: Period,
        bucket_id: UUID,
    ) -> Optional[BucketPayment]:
        """
        Get the bucket payment for (account, period, bucket).

        Returns:
            The payment if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_entities_for_period(
        self,
        account_id: str,
        period: Period,
    ) -> PeriodEntities:
        """
        Load everything needed to summarise one period.

        Fixed payments are account-wide; everything else is filtered to
        the period. Missing month data yields zero salary and limit.
        """
        pass

    @abstractmethod
    async def list_bucket_configs(self, account_id: str) -> list[BucketConfig]:
        """List bucket configs in display order."""
        pass

    @abstractmethod
    async def list_bucket_payments(self, account_id: str) -> list[BucketPayment]:
        """List all bucket payments of an account, oldest first."""
        pass

    @abstractmethod
    async def get_account_settings(self, account_id: str) -> Optional[AccountSettings]:
        """
        Get account settings.

        Returns:
            The settings if the account configured any, None otherwise
        """
        pass

    # -------------------------------------------------------------------------
    # Bucket payment writes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_bucket_payment(
        self,
        account_id: str,
        period: Period,
        bucket_id: UUID,
        amount: int,
        due_date: Optional[date],
        payment_id: Optional[UUID] = None,
    ) -> BucketPayment:
        """
        Atomically insert a bucket payment, or update the amount of the
        existing one for (account, period, bucket).

        A new row starts unpaid with the given due date. On conflict only
        the amount changes; paid and due_date are left as they are.

        A new row gets `payment_id` (a fresh id when omitted), so callers
        can tell their own insert from a merge into an existing row.

        Raises:
            DuplicateError: If a concurrent writer could not be merged
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_bucket_payment_amount(
        self,
        payment_id: UUID,
        amount: int,
    ) -> BucketPayment:
        """
        Update only the amount of a bucket payment.

        Raises:
            NotFoundError: If the payment doesn't exist
        """
        pass

    @abstractmethod
    async def set_bucket_payment_status(
        self,
        payment_id: UUID,
        paid: Optional[bool] = None,
        due_date: Union[date, None, _Unset] = UNSET,
    ) -> BucketPayment:
        """
        Apply a user's manual edit to a bucket payment.

        Args:
            paid: New paid flag, None to leave unchanged
            due_date: New due date, None to clear, UNSET to leave unchanged

        Raises:
            NotFoundError: If the payment doesn't exist
        """
        pass

    @abstractmethod
    async def delete_bucket_payments(self, payment_ids: list[UUID]) -> int:
        """
        Delete bucket payments by id.

        Returns:
            Number of rows deleted
        """
        pass

    # -------------------------------------------------------------------------
    # Other writes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_bucket_config(self, account_id: str, config: BucketConfig) -> BucketConfig:
        """Create or replace a bucket config."""
        pass

    @abstractmethod
    async def delete_bucket_config(self, account_id: str, bucket_id: UUID) -> bool:
        """
        Delete a bucket config.

        Returns:
            True if deleted, False if it didn't exist

        Raises:
            ReferencedEntityError: If any expense still uses the bucket
        """
        pass

    @abstractmethod
    async def save_expense(self, account_id: str, expense: Expense) -> Expense:
        """
        Create or replace an expense.

        Raises:
            NotFoundError: If the expense's bucket is not configured
        """
        pass

    @abstractmethod
    async def save_fixed_payment(self, account_id: str, payment: FixedPayment) -> FixedPayment:
        """Create or replace a recurring bill."""
        pass

    @abstractmethod
    async def save_month_data(self, account_id: str, month_data: MonthData) -> MonthData:
        """Create or replace the per-period salary, limit and paid bills."""
        pass

    @abstractmethod
    async def save_savings_contribution(
        self,
        account_id: str,
        contribution: SavingsContribution,
    ) -> SavingsContribution:
        """Record a savings contribution."""
        pass

    @abstractmethod
    async def save_account_settings(
        self,
        account_id: str,
        settings: AccountSettings,
    ) -> AccountSettings:
        """Create or replace account settings."""
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
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one sync run).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """A uniqueness constraint rejected the write."""
    pass


class StorageConnectionError(StorageError):
    """Storage backend is unreachable or busy."""
    pass


class ReferencedEntityError(StorageError):
    """Entity is still referenced and cannot be deleted."""
    pass
