"""
Audit Models for Period Ledger

Every write the ledger engine performs on shared state is logged.
This provides:
1. Traceability of every carry-over amount the user sees
2. Debugging information when a sync misbehaves
3. Evidence for the duplicate cleanup safety net

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from period_ledger.models.ledger import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Carry-over sync
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    BUCKET_PAYMENT_CREATED = "bucket_payment_created"
    BUCKET_PAYMENT_UPDATED = "bucket_payment_updated"
    BUCKET_MISSING = "bucket_missing"
    UPSERT_CONFLICT = "upsert_conflict"

    # Maintenance
    DUPLICATES_REMOVED = "duplicates_removed"

    # Period view
    PERIOD_VIEW_LOADED = "period_view_loaded"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which account, what entity
    account_id: Optional[str] = Field(
        default=None,
        description="Account the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'bucket_payment', 'period')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one sync)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "account_id": self.account_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_row(self) -> tuple:
        """
        Convert to a flat row for table storage.

        Columns: event_id, timestamp, event_type, severity, account_id,
        entity_type, entity_id, correlation_id, description, details_json,
        error_message
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.account_id,
            self.entity_type,
            str(self.entity_id) if self.entity_id else None,
            str(self.correlation_id) if self.correlation_id else None,
            self.description,
            json.dumps(self.details, default=str) if self.details else None,
            self.error_message,
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.bucket_payment_created(...)
        event = AuditEventBuilder.sync_failed(...)
    """

    @staticmethod
    def sync_started(
        account_id: str,
        period: str,
        bucket_count: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            severity=AuditSeverity.DEBUG,
            account_id=account_id,
            entity_type="period",
            correlation_id=correlation_id,
            description=f"Carry-over sync for {period} started",
            details={
                "period": period,
                "bucket_count": bucket_count,
            },
        )

    @staticmethod
    def sync_completed(
        account_id: str,
        period: str,
        writes: int,
        bucket_count: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            account_id=account_id,
            entity_type="period",
            correlation_id=correlation_id,
            description=f"Carry-over sync for {period}: {writes} write(s) across {bucket_count} bucket(s)",
            details={
                "period": period,
                "writes": writes,
                "bucket_count": bucket_count,
            },
        )

    @staticmethod
    def sync_failed(
        account_id: str,
        period: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            account_id=account_id,
            entity_type="period",
            correlation_id=correlation_id,
            description=f"Could not refresh carry-over balances for {period}",
            details={"period": period},
            error_message=error_message,
        )

    @staticmethod
    def bucket_payment_created(
        account_id: str,
        payment_id: UUID,
        bucket_id: UUID,
        period: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUCKET_PAYMENT_CREATED,
            account_id=account_id,
            entity_type="bucket_payment",
            entity_id=payment_id,
            correlation_id=correlation_id,
            description=f"Carried {amount} into {period}",
            details={
                "bucket_id": str(bucket_id),
                "period": period,
                "amount": amount,
            },
        )

    @staticmethod
    def bucket_payment_updated(
        account_id: str,
        payment_id: UUID,
        bucket_id: UUID,
        period: str,
        previous_amount: int,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUCKET_PAYMENT_UPDATED,
            account_id=account_id,
            entity_type="bucket_payment",
            entity_id=payment_id,
            correlation_id=correlation_id,
            description=f"Carry-over for {period} changed from {previous_amount} to {amount}",
            details={
                "bucket_id": str(bucket_id),
                "period": period,
                "previous_amount": previous_amount,
                "amount": amount,
            },
        )

    @staticmethod
    def bucket_missing(
        account_id: str,
        bucket_id: UUID,
        period: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUCKET_MISSING,
            severity=AuditSeverity.WARNING,
            account_id=account_id,
            entity_type="bucket",
            entity_id=bucket_id,
            correlation_id=correlation_id,
            description="Skipped carry-over for a bucket that no longer exists",
            details={
                "period": period,
                "amount": amount,
            },
        )

    @staticmethod
    def upsert_conflict(
        account_id: str,
        bucket_id: UUID,
        period: str,
        attempt: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UPSERT_CONFLICT,
            severity=AuditSeverity.WARNING,
            account_id=account_id,
            entity_type="bucket",
            entity_id=bucket_id,
            correlation_id=correlation_id,
            description=f"Bucket payment upsert conflicted (attempt {attempt})",
            details={
                "period": period,
                "attempt": attempt,
            },
        )

    @staticmethod
    def duplicates_removed(
        account_id: str,
        removed_ids: list[UUID],
        kept: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATES_REMOVED,
            severity=AuditSeverity.WARNING if removed_ids else AuditSeverity.INFO,
            account_id=account_id,
            entity_type="bucket_payment",
            description=f"Removed {len(removed_ids)} duplicate bucket payment(s)",
            details={
                "removed_ids": [str(i) for i in removed_ids],
                "kept": kept,
            },
        )

    @staticmethod
    def period_view_loaded(
        account_id: str,
        period: str,
        carryover_refreshed: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_VIEW_LOADED,
            account_id=account_id,
            entity_type="period",
            correlation_id=correlation_id,
            description=f"Period {period} loaded",
            details={
                "period": period,
                "carryover_refreshed": carryover_refreshed,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
