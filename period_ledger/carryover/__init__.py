"""Carry-over of previous-period bucket spending."""

from period_ledger.carryover.synchronizer import CarryoverSynchronizer, carryover_due_date

__all__ = ["CarryoverSynchronizer", "carryover_due_date"]
