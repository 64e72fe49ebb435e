"""
In-Memory Storage Implementation

Keeps everything in dictionaries. Used by the test-suite and for embedding
the engine where persistence is handled elsewhere.

The (account, period, bucket) uniqueness of bucket payments is enforced
with a key index guarded by a lock, so concurrent upserts merge into one
row exactly like the SQLite implementation's ON CONFLICT clause.
"""

import threading
from collections import defaultdict
from datetime import date
from typing import Optional, Union
from uuid import UUID, uuid4

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
    utcnow,
)
from period_ledger.services.storage.interface import (
    UNSET,
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    ReferencedEntityError,
    _Unset,
)


BucketPaymentKey = tuple[str, Period, UUID]


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Dictionary-backed ledger storage.

    Returned models are copies; mutating them never changes stored state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._settings: dict[str, AccountSettings] = {}
        self._bucket_configs: dict[str, dict[UUID, BucketConfig]] = defaultdict(dict)
        self._expenses: dict[str, dict[UUID, Expense]] = defaultdict(dict)
        self._fixed_payments: dict[str, dict[UUID, FixedPayment]] = defaultdict(dict)
        self._month_data: dict[tuple[str, Period], MonthData] = {}
        self._savings: dict[str, dict[UUID, SavingsContribution]] = defaultdict(dict)
        self._bucket_payments: dict[UUID, BucketPayment] = {}
        self._bucket_payment_keys: dict[BucketPaymentKey, UUID] = {}
        self._bucket_payment_accounts: dict[UUID, str] = {}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def sum_expenses_by_bucket(
        self,
        account_id: str,
        period: Period,
    ) -> dict[UUID, int]:
        totals: dict[UUID, int] = defaultdict(int)
        for expense in self._expenses[account_id].values():
            if expense.period == period:
                totals[expense.bucket_id] += expense.amount
        return dict(totals)

    async def get_bucket_payment(
        self,
        account_id: str,
        period: Period,
        bucket_id: UUID,
    ) -> Optional[BucketPayment]:
        payment_id = self._bucket_payment_keys.get((account_id, period, bucket_id))
        if payment_id is None:
            return None
        return self._bucket_payments[payment_id].model_copy()

    async def list_entities_for_period(
        self,
        account_id: str,
        period: Period,
    ) -> PeriodEntities:
        month_data = self._month_data.get((account_id, period)) or MonthData(period=period)
        return PeriodEntities(
            period=period,
            expenses=[
                e.model_copy() for e in self._expenses[account_id].values()
                if e.period == period
            ],
            fixed_payments=[p.model_copy() for p in self._fixed_payments[account_id].values()],
            paid_fixed_payment_ids=set(month_data.paid_fixed_payment_ids),
            bucket_payments=[
                p for p in await self.list_bucket_payments(account_id)
                if p.period == period
            ],
            savings_contributions=[
                s.model_copy() for s in self._savings[account_id].values()
                if s.period == period
            ],
            salary=month_data.salary,
            monthly_limit=month_data.monthly_limit,
        )

    async def list_bucket_configs(self, account_id: str) -> list[BucketConfig]:
        configs = sorted(self._bucket_configs[account_id].values(), key=lambda c: c.order)
        return [c.model_copy() for c in configs]

    async def list_bucket_payments(self, account_id: str) -> list[BucketPayment]:
        payments = [
            p.model_copy() for pid, p in self._bucket_payments.items()
            if self._bucket_payment_accounts[pid] == account_id
        ]
        payments.sort(key=lambda p: p.created_at)
        return payments

    async def get_account_settings(self, account_id: str) -> Optional[AccountSettings]:
        settings = self._settings.get(account_id)
        return settings.model_copy() if settings else None

    # -------------------------------------------------------------------------
    # Bucket payment writes
    # -------------------------------------------------------------------------

    async def upsert_bucket_payment(
        self,
        account_id: str,
        period: Period,
        bucket_id: UUID,
        amount: int,
        due_date: Optional[date],
        payment_id: Optional[UUID] = None,
    ) -> BucketPayment:
        key = (account_id, period, bucket_id)
        with self._lock:
            existing_id = self._bucket_payment_keys.get(key)
            if existing_id is not None:
                existing = self._bucket_payments[existing_id]
                if existing.amount != amount:
                    existing.amount = amount
                    existing.updated_at = utcnow()
                return existing.model_copy()

            payment = BucketPayment(
                id=payment_id or uuid4(),
                period=period,
                bucket_id=bucket_id,
                amount=amount,
                paid=False,
                due_date=due_date,
            )
            self._bucket_payments[payment.id] = payment
            self._bucket_payment_keys[key] = payment.id
            self._bucket_payment_accounts[payment.id] = account_id
            return payment.model_copy()

    def _get_payment(self, payment_id: UUID) -> BucketPayment:
        try:
            return self._bucket_payments[payment_id]
        except KeyError:
            raise NotFoundError(f"Bucket payment not found: {payment_id}") from None

    async def update_bucket_payment_amount(
        self,
        payment_id: UUID,
        amount: int,
    ) -> BucketPayment:
        with self._lock:
            payment = self._get_payment(payment_id)
            payment.amount = amount
            payment.updated_at = utcnow()
            return payment.model_copy()

    async def set_bucket_payment_status(
        self,
        payment_id: UUID,
        paid: Optional[bool] = None,
        due_date: Union[date, None, _Unset] = UNSET,
    ) -> BucketPayment:
        with self._lock:
            payment = self._get_payment(payment_id)
            if paid is not None:
                payment.paid = paid
            if not isinstance(due_date, _Unset):
                payment.due_date = due_date
            payment.updated_at = utcnow()
            return payment.model_copy()

    async def delete_bucket_payments(self, payment_ids: list[UUID]) -> int:
        removed = 0
        with self._lock:
            for payment_id in payment_ids:
                payment = self._bucket_payments.pop(payment_id, None)
                if payment is None:
                    continue
                account_id = self._bucket_payment_accounts.pop(payment_id)
                key = (account_id, payment.period, payment.bucket_id)
                if self._bucket_payment_keys.get(key) == payment_id:
                    del self._bucket_payment_keys[key]
                removed += 1
        return removed

    # -------------------------------------------------------------------------
    # Other writes
    # -------------------------------------------------------------------------

    async def save_bucket_config(self, account_id: str, config: BucketConfig) -> BucketConfig:
        self._bucket_configs[account_id][config.id] = config.model_copy()
        return config

    async def delete_bucket_config(self, account_id: str, bucket_id: UUID) -> bool:
        if any(e.bucket_id == bucket_id for e in self._expenses[account_id].values()):
            raise ReferencedEntityError(
                f"Bucket {bucket_id} is still used by expenses"
            )
        return self._bucket_configs[account_id].pop(bucket_id, None) is not None

    async def save_expense(self, account_id: str, expense: Expense) -> Expense:
        if expense.bucket_id not in self._bucket_configs[account_id]:
            raise NotFoundError(f"Bucket not found: {expense.bucket_id}")
        self._expenses[account_id][expense.id] = expense.model_copy()
        return expense

    async def save_fixed_payment(self, account_id: str, payment: FixedPayment) -> FixedPayment:
        self._fixed_payments[account_id][payment.id] = payment.model_copy()
        return payment

    async def save_month_data(self, account_id: str, month_data: MonthData) -> MonthData:
        self._month_data[(account_id, month_data.period)] = month_data.model_copy(deep=True)
        return month_data

    async def save_savings_contribution(
        self,
        account_id: str,
        contribution: SavingsContribution,
    ) -> SavingsContribution:
        self._savings[account_id][contribution.id] = contribution.model_copy()
        return contribution

    async def save_account_settings(
        self,
        account_id: str,
        settings: AccountSettings,
    ) -> AccountSettings:
        self._settings[account_id] = settings.model_copy()
        return settings


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
