"""
Tests for the carry-over synchronizer.

Async code is driven with asyncio.run so the suite needs no async plugin.
"""

import asyncio
from datetime import date
from uuid import uuid4

import pytest

from period_ledger.audit import AuditLogger
from period_ledger.carryover import CarryoverSynchronizer, carryover_due_date
from period_ledger.config import LedgerSettings
from period_ledger.models.audit import AuditEventType
from period_ledger.models.ledger import (
    BucketConfig,
    BucketType,
    Expense,
    Period,
    SyncAction,
)
from period_ledger.services.storage import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageConnectionError,
)


ACCOUNT = "account-1"
PERIOD = Period.parse("2026-01-15")


class CountingStorage(InMemoryLedgerStorage):
    """Counts bucket payment writes."""

    def __init__(self):
        super().__init__()
        self.upserts = 0
        self.amount_updates = 0

    async def upsert_bucket_payment(self, *args, **kwargs):
        self.upserts += 1
        return await super().upsert_bucket_payment(*args, **kwargs)

    async def update_bucket_payment_amount(self, *args, **kwargs):
        self.amount_updates += 1
        return await super().update_bucket_payment_amount(*args, **kwargs)


class InterleavingStorage(InMemoryLedgerStorage):
    """Yields to the event loop after every lookup, like a real database."""

    async def get_bucket_payment(self, *args, **kwargs):
        found = await super().get_bucket_payment(*args, **kwargs)
        await asyncio.sleep(0)
        return found


class ConflictingStorage(InMemoryLedgerStorage):
    """Rejects the first `conflicts` upserts with a uniqueness error."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts
        self.upserts = 0

    async def upsert_bucket_payment(self, *args, **kwargs):
        self.upserts += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            raise DuplicateError("UNIQUE constraint failed")
        return await super().upsert_bucket_payment(*args, **kwargs)


class LosingStorage(InMemoryLedgerStorage):
    """Another writer always gets there first."""

    async def upsert_bucket_payment(self, *args, **kwargs):
        await super().upsert_bucket_payment(*args, **kwargs)
        raise DuplicateError("UNIQUE constraint failed")


class BrokenStorage(InMemoryLedgerStorage):
    async def get_bucket_payment(self, *args, **kwargs):
        raise StorageConnectionError("database is locked")


@pytest.fixture
def settings():
    return LedgerSettings(sync_retry_attempts=3, sync_retry_wait_seconds=0)


@pytest.fixture
def card():
    return BucketConfig(name="Card", type=BucketType.CREDIT_CARD, payment_day=10)


@pytest.fixture
def wallet():
    return BucketConfig(name="Wallet", type=BucketType.CASH)


def sync(storage, settings, configs, totals, audit_logger=None, period=PERIOD):
    synchronizer = CarryoverSynchronizer(storage, audit_logger=audit_logger, settings=settings)
    return asyncio.run(synchronizer.sync(ACCOUNT, period, configs, totals))


class TestCarryoverSync:
    """Tests for the create / update / no-op rules."""

    def test_creates_unpaid_payment(self, settings, card):
        """Test that 12,000 spent last period becomes an unpaid payment."""
        storage = InMemoryLedgerStorage()
        report = sync(storage, settings, [card], {card.id: 12000})

        payment = asyncio.run(storage.get_bucket_payment(ACCOUNT, PERIOD, card.id))
        assert payment.amount == 12000
        assert payment.paid is False
        assert payment.due_date == date(2026, 1, 10)
        assert report.writes == 1
        assert report.results[0].action == SyncAction.CREATED
        assert report.results[0].payment_id == payment.id

    def test_rerun_performs_no_writes(self, settings, card):
        """Test that sync is idempotent."""
        storage = CountingStorage()
        sync(storage, settings, [card], {card.id: 12000})
        before = asyncio.run(storage.list_bucket_payments(ACCOUNT))

        report = sync(storage, settings, [card], {card.id: 12000})
        after = asyncio.run(storage.list_bucket_payments(ACCOUNT))

        assert report.writes == 0
        assert report.results[0].action == SyncAction.UNCHANGED
        assert storage.upserts == 1
        assert storage.amount_updates == 0
        assert after == before

    def test_changed_total_updates_amount_only(self, settings, card):
        """Test that a recomputed total keeps the user's paid flag and due date."""
        storage = InMemoryLedgerStorage()
        sync(storage, settings, [card], {card.id: 12000})
        payment = asyncio.run(storage.get_bucket_payment(ACCOUNT, PERIOD, card.id))
        asyncio.run(storage.set_bucket_payment_status(
            payment.id,
            paid=True,
            due_date=date(2026, 1, 20),
        ))

        report = sync(storage, settings, [card], {card.id: 15000})
        updated = asyncio.run(storage.get_bucket_payment(ACCOUNT, PERIOD, card.id))

        assert updated.id == payment.id
        assert updated.amount == 15000
        assert updated.paid is True
        assert updated.due_date == date(2026, 1, 20)
        assert report.results[0].action == SyncAction.UPDATED
        assert report.results[0].previous_amount == 12000

    def test_zero_total_creates_nothing(self, settings, card):
        """Test that a zero total never creates a zero-amount payment."""
        storage = InMemoryLedgerStorage()
        report = sync(storage, settings, [card], {card.id: 0})

        assert asyncio.run(storage.list_bucket_payments(ACCOUNT)) == []
        assert report.results[0].action == SyncAction.SKIPPED_ZERO
        assert report.writes == 0

    def test_missing_total_counts_as_zero(self, settings, card, wallet):
        storage = InMemoryLedgerStorage()
        report = sync(storage, settings, [card, wallet], {card.id: 500})

        actions = {r.bucket_id: r.action for r in report.results}
        assert actions == {card.id: SyncAction.CREATED, wallet.id: SyncAction.SKIPPED_ZERO}
        assert len(asyncio.run(storage.list_bucket_payments(ACCOUNT))) == 1

    def test_existing_payment_follows_total_down_to_zero(self, settings, card):
        """Test that deleting last period's expenses zeroes the payment."""
        storage = InMemoryLedgerStorage()
        sync(storage, settings, [card], {card.id: 12000})
        report = sync(storage, settings, [card], {})

        payment = asyncio.run(storage.get_bucket_payment(ACCOUNT, PERIOD, card.id))
        assert payment.amount == 0
        assert report.results[0].action == SyncAction.UPDATED

    def test_missing_bucket_is_skipped_not_fatal(self, settings, card):
        """Test that totals for deleted buckets are reported and skipped."""
        storage = InMemoryLedgerStorage()
        deleted_bucket = uuid4()
        report = sync(storage, settings, [card], {card.id: 100, deleted_bucket: 700})

        assert report.skipped_bucket_ids == [deleted_bucket]
        assert report.writes == 1
        payments = asyncio.run(storage.list_bucket_payments(ACCOUNT))
        assert [p.bucket_id for p in payments] == [card.id]

    def test_cash_bucket_has_no_due_date(self, settings, wallet):
        storage = InMemoryLedgerStorage()
        sync(storage, settings, [wallet], {wallet.id: 2500})

        payment = asyncio.run(storage.get_bucket_payment(ACCOUNT, PERIOD, wallet.id))
        assert payment.due_date is None

    def test_rejects_negative_total(self, settings, card):
        with pytest.raises(ValueError):
            sync(InMemoryLedgerStorage(), settings, [card], {card.id: -1})

    def test_rejects_float_total(self, settings, card):
        with pytest.raises(ValueError):
            sync(InMemoryLedgerStorage(), settings, [card], {card.id: 10.5})

    def test_accepts_period_string(self, settings, card):
        storage = InMemoryLedgerStorage()
        report = sync(storage, settings, [card], {card.id: 100}, period="2026-01-15")
        assert report.period == PERIOD


class TestCarryoverDueDate:
    """Tests for the due date of new carry-over payments."""

    def test_payment_day_in_period_month(self, card):
        assert carryover_due_date(card, PERIOD) == date(2026, 1, 10)

    def test_payment_day_clamped(self):
        card = BucketConfig(name="Amex", type=BucketType.CREDIT_CARD, payment_day=31)
        assert carryover_due_date(card, Period.parse("2024-02-29")) == date(2024, 2, 29)

    def test_cash_has_none(self, wallet):
        assert carryover_due_date(wallet, PERIOD) is None

    def test_card_without_payment_day_has_none(self):
        card = BucketConfig(name="Debit", type=BucketType.CREDIT_CARD)
        assert carryover_due_date(card, PERIOD) is None


class TestConcurrency:
    """Tests for racing syncs and upsert conflicts."""

    def test_concurrent_syncs_create_one_payment(self, settings, card):
        """Test that two sessions opening the same period make one row."""
        storage = InterleavingStorage()
        synchronizer = CarryoverSynchronizer(storage, settings=settings)

        async def race():
            return await asyncio.gather(
                synchronizer.sync(ACCOUNT, PERIOD, [card], {card.id: 12000}),
                synchronizer.sync(ACCOUNT, PERIOD, [card], {card.id: 12000}),
            )

        first, second = asyncio.run(race())
        payments = asyncio.run(storage.list_bucket_payments(ACCOUNT))

        assert len(payments) == 1
        assert payments[0].amount == 12000
        assert first.results[0].payment_id == second.results[0].payment_id

    def test_losing_session_reports_merge_not_creation(self, settings, card):
        """Test that only the session whose insert won reports and audits a creation."""
        storage = InterleavingStorage()
        audit_storage = InMemoryAuditStorage()
        synchronizer = CarryoverSynchronizer(
            storage, audit_logger=AuditLogger(audit_storage), settings=settings,
        )

        async def race():
            return await asyncio.gather(
                synchronizer.sync(ACCOUNT, PERIOD, [card], {card.id: 12000}),
                synchronizer.sync(ACCOUNT, PERIOD, [card], {card.id: 12000}),
            )

        reports = asyncio.run(race())

        actions = sorted(r.results[0].action.value for r in reports)
        assert actions == [SyncAction.CREATED.value, SyncAction.MERGED.value]
        assert sum(r.writes for r in reports) == 1
        created_events = [
            e for e in audit_storage.events
            if e.event_type == AuditEventType.BUCKET_PAYMENT_CREATED
        ]
        assert len(created_events) == 1

    def test_conflict_is_retried(self, settings, card):
        """Test that a transient uniqueness conflict is retried."""
        storage = ConflictingStorage(conflicts=1)
        audit_storage = InMemoryAuditStorage()
        report = sync(storage, settings, [card], {card.id: 12000}, AuditLogger(audit_storage))

        assert storage.upserts == 2
        assert report.results[0].action == SyncAction.CREATED
        conflicts = [
            e for e in audit_storage.events
            if e.event_type == AuditEventType.UPSERT_CONFLICT
        ]
        assert len(conflicts) == 1
        assert conflicts[0].details["attempt"] == 1

    def test_conflicting_writer_result_is_accepted(self, settings, card):
        """Test that the row another writer created is used after retries."""
        storage = LosingStorage()
        report = sync(storage, settings, [card], {card.id: 12000})

        payments = asyncio.run(storage.list_bucket_payments(ACCOUNT))
        assert len(payments) == 1
        assert report.results[0].payment_id == payments[0].id

    def test_unresolvable_conflict_propagates(self, settings, card):
        storage = ConflictingStorage(conflicts=10)
        audit_storage = InMemoryAuditStorage()

        with pytest.raises(DuplicateError):
            sync(storage, settings, [card], {card.id: 12000}, AuditLogger(audit_storage))

        assert storage.upserts == settings.sync_retry_attempts
        event_types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.SYNC_FAILED in event_types

    def test_storage_failure_propagates(self, settings, card):
        """Test that genuine storage failures reach the caller."""
        with pytest.raises(StorageConnectionError):
            sync(BrokenStorage(), settings, [card], {card.id: 12000})


class TestSyncAudit:
    """Tests for the audit trail of a sync run."""

    def test_events_share_correlation_id(self, settings, card):
        audit_storage = InMemoryAuditStorage()
        synchronizer = CarryoverSynchronizer(
            InMemoryLedgerStorage(),
            audit_logger=AuditLogger(audit_storage),
            settings=settings,
        )
        correlation_id = uuid4()
        asyncio.run(synchronizer.sync(
            ACCOUNT, PERIOD, [card], {card.id: 12000}, correlation_id=correlation_id,
        ))

        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_type for e in events] == [
            AuditEventType.SYNC_STARTED,
            AuditEventType.BUCKET_PAYMENT_CREATED,
            AuditEventType.SYNC_COMPLETED,
        ]
        assert events[-1].details["writes"] == 1

    def test_missing_bucket_is_audited(self, settings, card):
        audit_storage = InMemoryAuditStorage()
        sync(
            InMemoryLedgerStorage(), settings, [card], {uuid4(): 300},
            AuditLogger(audit_storage),
        )
        event_types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.BUCKET_MISSING in event_types


class TestSyncFromPreviousPeriod:
    """Tests for loading last period's spending from storage."""

    def test_sums_previous_period_expenses(self, settings, card, wallet):
        storage = InMemoryLedgerStorage()
        category = uuid4()

        async def seed():
            await storage.save_bucket_config(ACCOUNT, card)
            await storage.save_bucket_config(ACCOUNT, wallet)
            for amount, period in ((5000, "2025-12-15"), (7000, "2025-12-15"), (900, "2026-01-15")):
                await storage.save_expense(ACCOUNT, Expense(
                    period=period,
                    bucket_id=card.id,
                    category_id=category,
                    amount=amount,
                    name="Shopping",
                ))

        asyncio.run(seed())
        synchronizer = CarryoverSynchronizer(storage, settings=settings)
        report = asyncio.run(synchronizer.sync_from_previous_period(ACCOUNT, "2026-01-15", 15))

        payment = asyncio.run(storage.get_bucket_payment(ACCOUNT, PERIOD, card.id))
        assert payment.amount == 12000
        assert asyncio.run(storage.get_bucket_payment(ACCOUNT, PERIOD, wallet.id)) is None
        assert report.writes == 1
