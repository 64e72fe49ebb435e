"""
Main Orchestrator for Period Ledger

This module ties the components together and defines the end-to-end
flow for opening a period:

    resolve period → refresh carry-over → load entities → summarise

DESIGN DECISION: The orchestrator enforces the boundaries:
- The start day comes from account settings, never from the calculator
- "Today" comes from the configured timezone, in one place
- A failed carry-over refresh never prevents the user from seeing
  their period; the view reports it instead
- Every step is audited
"""

from datetime import date, datetime
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from period_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from period_ledger.carryover import CarryoverSynchronizer
from period_ledger.config import LedgerSettings, Settings, get_settings
from period_ledger.maintenance import remove_duplicate_bucket_payments
from period_ledger.models.ledger import (
    CleanupReport,
    MonthSummary,
    OverdueReport,
    Period,
    PeriodEntities,
    SyncReport,
)
from period_ledger.periods import (
    current_period,
    format_display,
    local_today,
    parse_period,
    period_dates,
)
from period_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    SqliteAuditStorage,
    SqliteDatabase,
    SqliteLedgerStorage,
    StorageError,
)
from period_ledger.summary import find_overdue, summarize_entities


class PeriodView(BaseModel):
    """Everything a client needs to render one period."""

    account_id: str
    period: Period
    start_day: int = Field(ge=1, le=31)
    start: date
    end: date
    display: str
    entities: PeriodEntities
    summary: MonthSummary
    overdue: OverdueReport
    sync_report: Optional[SyncReport] = None
    carryover_refreshed: bool = False
    correlation_id: UUID


class PeriodViewFlow:
    """
    Orchestrates opening a period.

    Flow:
    1. Resolve → account start day, requested or current period
    2. Refresh → carry previous-period bucket spending over (idempotent)
    3. Load → all entities of the period
    4. Summarise → month summary and overdue items
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        synchronizer: Optional[CarryoverSynchronizer] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._storage = storage
        self._audit_logger = audit_logger
        self._synchronizer = synchronizer or CarryoverSynchronizer(
            storage,
            audit_logger=audit_logger,
            settings=self._settings,
        )

    async def start_day_for(self, account_id: str) -> int:
        """The account's period start day, or the configured default."""
        account_settings = await self._storage.get_account_settings(account_id)
        if account_settings is None:
            return self._settings.default_period_start_day
        return account_settings.period_start_day

    async def load(
        self,
        account_id: str,
        period: Optional[Union[Period, str]] = None,
        now: Optional[Union[date, datetime]] = None,
    ) -> PeriodView:
        """
        Open a period for an account.

        Args:
            account_id: Authenticated account
            period: Period to open; the current one when omitted
            now: Override for "today" (defaults to the configured timezone)

        Raises:
            InvalidPeriodError: If `period` is not a valid period string
        """
        correlation_id = create_correlation_id()
        if isinstance(now, datetime):
            now = now.date()
        today = now or local_today(self._settings.timezone)

        start_day = await self.start_day_for(account_id)
        period = parse_period(period) if period is not None else current_period(start_day, today)

        # Refresh carry-over; a failure here must not hide the period
        sync_report = None
        try:
            sync_report = await self._synchronizer.sync_from_previous_period(
                account_id,
                period,
                start_day,
                correlation_id=correlation_id,
            )
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="carryover_refresh_failed",
                    error_message=str(e),
                    details={"account_id": account_id, "period": str(period)},
                    correlation_id=correlation_id,
                )

        entities = await self._storage.list_entities_for_period(account_id, period)
        bucket_configs = await self._storage.list_bucket_configs(account_id)
        summary = summarize_entities(entities, bucket_ids=[c.id for c in bucket_configs])
        overdue = find_overdue(
            entities.fixed_payments,
            entities.paid_fixed_payment_ids,
            entities.bucket_payments,
            period,
            today,
        )
        start, end = period_dates(period, start_day)

        if self._audit_logger:
            await self._audit_logger.log_period_view_loaded(
                account_id=account_id,
                period=str(period),
                carryover_refreshed=sync_report is not None,
                correlation_id=correlation_id,
            )

        return PeriodView(
            account_id=account_id,
            period=period,
            start_day=start_day,
            start=start,
            end=end,
            display=format_display(period, start_day),
            entities=entities,
            summary=summary,
            overdue=overdue,
            sync_report=sync_report,
            carryover_refreshed=sync_report is not None,
            correlation_id=correlation_id,
        )

    async def cleanup_duplicates(self, account_id: str) -> CleanupReport:
        """Remove duplicate bucket payments left by older versions."""
        return await remove_duplicate_bucket_payments(
            self._storage,
            account_id,
            audit_logger=self._audit_logger,
        )


def create_app_components(
    settings: Optional[Settings] = None,
    use_storage: bool = True,
) -> tuple[PeriodViewFlow, LedgerStorageInterface]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use; the cached ones when omitted
        use_storage: Whether to open the SQLite database.
                    Set to False for in-memory storage.

    Returns:
        (period_view_flow, ledger_storage)
    """
    settings = settings or get_settings()
    configure_logging(debug=settings.app.debug_mode)

    if use_storage:
        storage_settings = settings.storage
        database = SqliteDatabase(
            storage_settings.path,
            busy_timeout_seconds=storage_settings.busy_timeout_seconds,
        )
        database.init_db()
        ledger_storage = SqliteLedgerStorage(database)
        audit_logger = AuditLogger(SqliteAuditStorage(database))
    else:
        ledger_storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    flow = PeriodViewFlow(
        ledger_storage,
        audit_logger=audit_logger,
        settings=settings.ledger,
    )
    return flow, ledger_storage
