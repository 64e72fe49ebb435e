"""
Data Models Package

This package contains all Pydantic models used by the Period Ledger engine.
All data flowing through the system must conform to these schemas.
"""

from period_ledger.models.ledger import (
    AccountSettings,
    Amount,
    BucketConfig,
    BucketPayment,
    BucketSyncResult,
    BucketType,
    CategorySpending,
    CleanupReport,
    Expense,
    FixedPayment,
    InvalidPeriodError,
    MonthData,
    MonthSummary,
    OverdueItem,
    OverdueKind,
    OverdueReport,
    Period,
    PeriodEntities,
    SavingsContribution,
    SavingsSource,
    SyncAction,
    SyncReport,
)
from period_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "AccountSettings",
    "Amount",
    "BucketConfig",
    "BucketPayment",
    "BucketSyncResult",
    "BucketType",
    "CategorySpending",
    "CleanupReport",
    "Expense",
    "FixedPayment",
    "InvalidPeriodError",
    "MonthData",
    "MonthSummary",
    "OverdueItem",
    "OverdueKind",
    "OverdueReport",
    "Period",
    "PeriodEntities",
    "SavingsContribution",
    "SavingsSource",
    "SyncAction",
    "SyncReport",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
