"""Period summaries and insights."""

from period_ledger.summary.aggregator import (
    aggregate_summary,
    find_overdue,
    fixed_payment_due_date,
    spending_by_category,
    summarize_entities,
)

__all__ = [
    "aggregate_summary",
    "find_overdue",
    "fixed_payment_due_date",
    "spending_by_category",
    "summarize_entities",
]
