"""Data maintenance tasks."""

from period_ledger.maintenance.dedup import (
    plan_duplicate_removal,
    remove_duplicate_bucket_payments,
)

__all__ = ["plan_duplicate_removal", "remove_duplicate_bucket_payments"]
