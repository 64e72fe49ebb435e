"""
Duplicate Bucket Payment Cleanup

Safety net for data written before bucket payments were unique per
(account, period, bucket). Current storage cannot produce duplicates, so
on a healthy database this is a no-op.

Rule: within each (period, bucket) group the earliest created payment is
kept and every other one is deleted. The kept row is the one the user has
most likely already marked paid or re-dated.
"""

from typing import TYPE_CHECKING, Iterable, Optional
from uuid import UUID

from period_ledger.models.ledger import BucketPayment, CleanupReport

if TYPE_CHECKING:
    # The storage package imports this module for its own migration
    from period_ledger.audit import AuditLogger
    from period_ledger.services.storage import LedgerStorageInterface


def plan_duplicate_removal(payments: Iterable[BucketPayment]) -> list[UUID]:
    """
    Ids of the payments to delete, keeping the earliest per (period, bucket).

    Ties on created_at keep the payment that comes first in `payments`.
    """
    earliest: dict[tuple, BucketPayment] = {}
    doomed: list[UUID] = []

    for payment in payments:
        key = (payment.period, payment.bucket_id)
        kept = earliest.get(key)
        if kept is None:
            earliest[key] = payment
        elif payment.created_at < kept.created_at:
            doomed.append(kept.id)
            earliest[key] = payment
        else:
            doomed.append(payment.id)

    return doomed


async def remove_duplicate_bucket_payments(
    storage: "LedgerStorageInterface",
    account_id: str,
    audit_logger: Optional["AuditLogger"] = None,
) -> CleanupReport:
    """
    Delete duplicate bucket payments of one account.

    Idempotent: a second run finds nothing to remove. The report lists
    the rows that are gone afterwards, which can be fewer than planned
    when storage leaves some in place.

    Args:
        storage: Storage to clean
        account_id: Account whose payments are checked
        audit_logger: Records what was removed
    """
    payments = await storage.list_bucket_payments(account_id)
    doomed = plan_duplicate_removal(payments)
    removed_ids: list[UUID] = []
    if doomed:
        await storage.delete_bucket_payments(doomed)
        remaining = {p.id for p in await storage.list_bucket_payments(account_id)}
        removed_ids = [payment_id for payment_id in doomed if payment_id not in remaining]

    report = CleanupReport(
        account_id=account_id,
        removed=len(removed_ids),
        kept=len(payments) - len(removed_ids),
        removed_ids=removed_ids,
    )

    if audit_logger:
        await audit_logger.log_duplicates_removed(
            account_id=account_id,
            removed_ids=removed_ids,
            kept=report.kept,
        )
    return report
