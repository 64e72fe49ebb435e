"""
Audit Logger

DESIGN DECISION: Every write the engine makes to shared state is logged.
This provides:
1. Traceability of every carry-over amount
2. Debugging capability when two sessions race
3. A record of what the duplicate cleanup removed

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash a sync if logging fails)
- Supports correlation IDs to trace all events of one sync run
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from period_ledger.models.audit import AuditEvent, AuditEventBuilder
from period_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """
    Set the level the structured log is filtered at.

    DEBUG lets per-sync events (sync_started) through; INFO is the default.
    """
    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    root.setLevel(logging.DEBUG if debug else logging.INFO)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_sync_started(
        self,
        account_id: str,
        period: str,
        bucket_count: int,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log the start of a carry-over sync."""
        event = AuditEventBuilder.sync_started(
            account_id=account_id,
            period=period,
            bucket_count=bucket_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_sync_completed(
        self,
        account_id: str,
        period: str,
        writes: int,
        bucket_count: int,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a finished carry-over sync."""
        event = AuditEventBuilder.sync_completed(
            account_id=account_id,
            period=period,
            writes=writes,
            bucket_count=bucket_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_sync_failed(
        self,
        account_id: str,
        period: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a carry-over sync that raised."""
        event = AuditEventBuilder.sync_failed(
            account_id=account_id,
            period=period,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bucket_payment_created(
        self,
        account_id: str,
        payment_id: UUID,
        bucket_id: UUID,
        period: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> None:
        event = AuditEventBuilder.bucket_payment_created(
            account_id=account_id,
            payment_id=payment_id,
            bucket_id=bucket_id,
            period=period,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bucket_payment_updated(
        self,
        account_id: str,
        payment_id: UUID,
        bucket_id: UUID,
        period: str,
        previous_amount: int,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> None:
        event = AuditEventBuilder.bucket_payment_updated(
            account_id=account_id,
            payment_id=payment_id,
            bucket_id=bucket_id,
            period=period,
            previous_amount=previous_amount,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bucket_missing(
        self,
        account_id: str,
        bucket_id: UUID,
        period: str,
        amount: int,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a total that names a bucket the account no longer has."""
        event = AuditEventBuilder.bucket_missing(
            account_id=account_id,
            bucket_id=bucket_id,
            period=period,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_upsert_conflict(
        self,
        account_id: str,
        bucket_id: UUID,
        period: str,
        attempt: int,
        correlation_id: Optional[UUID],
    ) -> None:
        event = AuditEventBuilder.upsert_conflict(
            account_id=account_id,
            bucket_id=bucket_id,
            period=period,
            attempt=attempt,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_duplicates_removed(
        self,
        account_id: str,
        removed_ids: list[UUID],
        kept: int,
    ) -> None:
        """Log a duplicate cleanup run."""
        event = AuditEventBuilder.duplicates_removed(
            account_id=account_id,
            removed_ids=removed_ids,
            kept=kept,
        )
        await self.log(event)

    async def log_period_view_loaded(
        self,
        account_id: str,
        period: str,
        carryover_refreshed: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        event = AuditEventBuilder.period_view_loaded(
            account_id=account_id,
            period=period,
            carryover_refreshed=carryover_refreshed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., opening a period).
    Pass it through all subsequent operations.
    """
    return uuid4()
