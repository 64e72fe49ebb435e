"""
Carry-over Synchronizer

Moves what was spent through each bucket in the previous period into
the current period as a bucket payment the user still has to settle.

DESIGN DECISION: Sync is an explicit, idempotent operation.
- Calling it twice with the same totals performs zero writes the second time
- An existing payment only ever gets its amount updated; the user's paid
  flag and due date are never touched
- New payments go through the storage's atomic upsert, never a
  find-then-create pair, so two sessions opening the same period cannot
  produce two rows for one bucket

A total that names a bucket the account no longer has is skipped and
reported rather than failing the whole batch.
"""

from datetime import date
from typing import Mapping, Optional, Sequence
from uuid import UUID, uuid4

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from period_ledger.audit import AuditLogger
from period_ledger.config import LedgerSettings, get_settings
from period_ledger.models.ledger import (
    BucketConfig,
    BucketPayment,
    BucketSyncResult,
    BucketType,
    Period,
    SyncAction,
    SyncReport,
)
from period_ledger.periods import clamp_day, parse_period, previous_period
from period_ledger.services.storage import DuplicateError, LedgerStorageInterface, StorageError


def carryover_due_date(config: BucketConfig, period: Period) -> Optional[date]:
    """
    Due date of a new carry-over payment.

    Credit cards are due on their payment day inside the period's month,
    clamped to the month length. Cash buckets have no due date.
    """
    if config.type != BucketType.CREDIT_CARD or config.payment_day is None:
        return None
    return clamp_day(period.year, period.month, config.payment_day)


def _check_total(bucket_id: UUID, total: int) -> int:
    if isinstance(total, bool) or not isinstance(total, int):
        raise ValueError(f"Total for bucket {bucket_id} must be an integer, got {total!r}")
    if total < 0:
        raise ValueError(f"Total for bucket {bucket_id} cannot be negative, got {total}")
    return total


class CarryoverSynchronizer:
    """
    Reconciles bucket payments of one period with the previous period's
    bucket spending.

    Usage:
        synchronizer = CarryoverSynchronizer(storage, audit_logger)
        report = await synchronizer.sync(account_id, period, configs, totals)
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        settings = settings or get_settings().ledger
        self._storage = storage
        self._audit = audit_logger
        self._retry_attempts = settings.sync_retry_attempts
        self._retry_wait = settings.sync_retry_wait_seconds

    async def sync(
        self,
        account_id: str,
        period: Period,
        bucket_configs: Sequence[BucketConfig],
        previous_period_totals: Mapping[UUID, int],
        correlation_id: Optional[UUID] = None,
    ) -> SyncReport:
        """
        Bring the period's bucket payments in line with the given totals.

        Args:
            account_id: Owner of the buckets and payments
            period: Period receiving the carry-over
            bucket_configs: The account's current buckets
            previous_period_totals: Spending per bucket in the previous period.
                A configured bucket without an entry counts as 0.
            correlation_id: Ties the audit events of this run together

        Returns:
            SyncReport with one result per configured bucket, plus one per
            total whose bucket is not configured

        Raises:
            StorageError: If storage fails for a reason other than a
                resolvable upsert conflict
        """
        period = parse_period(period)
        totals = {
            bucket_id: _check_total(bucket_id, total)
            for bucket_id, total in previous_period_totals.items()
        }
        configured = {config.id for config in bucket_configs}
        report = SyncReport(account_id=account_id, period=period)

        if self._audit:
            await self._audit.log_sync_started(
                account_id=account_id,
                period=str(period),
                bucket_count=len(configured),
                correlation_id=correlation_id,
            )

        try:
            for config in bucket_configs:
                result = await self._sync_bucket(
                    account_id,
                    period,
                    config,
                    totals.get(config.id, 0),
                    correlation_id,
                )
                report.results.append(result)

            for bucket_id, total in totals.items():
                if bucket_id in configured:
                    continue
                report.results.append(BucketSyncResult(
                    bucket_id=bucket_id,
                    action=SyncAction.SKIPPED_MISSING_BUCKET,
                    amount=total,
                ))
                if self._audit:
                    await self._audit.log_bucket_missing(
                        account_id=account_id,
                        bucket_id=bucket_id,
                        period=str(period),
                        amount=total,
                        correlation_id=correlation_id,
                    )
        except StorageError as e:
            if self._audit:
                await self._audit.log_sync_failed(
                    account_id=account_id,
                    period=str(period),
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit:
            await self._audit.log_sync_completed(
                account_id=account_id,
                period=str(period),
                writes=report.writes,
                bucket_count=len(configured),
                correlation_id=correlation_id,
            )
        return report

    async def sync_from_previous_period(
        self,
        account_id: str,
        period: Period,
        start_day: int,
        correlation_id: Optional[UUID] = None,
    ) -> SyncReport:
        """
        Load the account's buckets and the previous period's spending from
        storage, then sync.
        """
        period = parse_period(period)
        previous = previous_period(period, start_day)
        bucket_configs = await self._storage.list_bucket_configs(account_id)
        totals = await self._storage.sum_expenses_by_bucket(account_id, previous)
        return await self.sync(
            account_id,
            period,
            bucket_configs,
            totals,
            correlation_id=correlation_id,
        )

    async def _sync_bucket(
        self,
        account_id: str,
        period: Period,
        config: BucketConfig,
        total: int,
        correlation_id: Optional[UUID],
    ) -> BucketSyncResult:
        existing = await self._storage.get_bucket_payment(account_id, period, config.id)

        if existing is not None:
            if existing.amount == total:
                return BucketSyncResult(
                    bucket_id=config.id,
                    action=SyncAction.UNCHANGED,
                    amount=total,
                    payment_id=existing.id,
                )
            # An existing payment follows the spending even down to 0
            updated = await self._storage.update_bucket_payment_amount(existing.id, total)
            if self._audit:
                await self._audit.log_bucket_payment_updated(
                    account_id=account_id,
                    payment_id=updated.id,
                    bucket_id=config.id,
                    period=str(period),
                    previous_amount=existing.amount,
                    amount=total,
                    correlation_id=correlation_id,
                )
            return BucketSyncResult(
                bucket_id=config.id,
                action=SyncAction.UPDATED,
                amount=total,
                previous_amount=existing.amount,
                payment_id=updated.id,
            )

        if total == 0:
            return BucketSyncResult(
                bucket_id=config.id,
                action=SyncAction.SKIPPED_ZERO,
                amount=0,
            )

        payment, created = await self._upsert(account_id, period, config, total, correlation_id)
        if not created:
            return BucketSyncResult(
                bucket_id=config.id,
                action=SyncAction.MERGED,
                amount=payment.amount,
                payment_id=payment.id,
            )

        if self._audit:
            await self._audit.log_bucket_payment_created(
                account_id=account_id,
                payment_id=payment.id,
                bucket_id=config.id,
                period=str(period),
                amount=payment.amount,
                correlation_id=correlation_id,
            )
        return BucketSyncResult(
            bucket_id=config.id,
            action=SyncAction.CREATED,
            amount=payment.amount,
            payment_id=payment.id,
        )

    async def _upsert(
        self,
        account_id: str,
        period: Period,
        config: BucketConfig,
        total: int,
        correlation_id: Optional[UUID],
    ) -> tuple[BucketPayment, bool]:
        """
        Upsert with retries on uniqueness conflicts.

        Returns the payment and whether this call created it: a new row
        carries the id this call proposed, a merged one keeps its own.
        """
        candidate_id = uuid4()
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(DuplicateError),
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=self._retry_wait, max=30),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        payment = await self._storage.upsert_bucket_payment(
                            account_id,
                            period,
                            config.id,
                            total,
                            carryover_due_date(config, period),
                            payment_id=candidate_id,
                        )
                        return payment, payment.id == candidate_id
                    except DuplicateError:
                        if self._audit:
                            await self._audit.log_upsert_conflict(
                                account_id=account_id,
                                bucket_id=config.id,
                                period=str(period),
                                attempt=attempt.retry_state.attempt_number,
                                correlation_id=correlation_id,
                            )
                        raise
        except DuplicateError:
            winner = await self._storage.get_bucket_payment(account_id, period, config.id)
            if winner is None:
                raise
            return winner, winner.id == candidate_id
