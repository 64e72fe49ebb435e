"""
Summary Aggregator

DESIGN DECISION: Aggregation is DETERMINISTIC and pure.
It receives already-loaded entities and returns numbers; it never reads
storage, settings or the clock. All arithmetic is on integer minor units,
so the identities in MonthSummary hold exactly.

Money counted as spent in a period:
- expenses recorded in the period
- recurring bills marked paid in the period
- carried-over bucket balances marked paid

Unpaid bills and unpaid carry-over balances are obligations, not spending.
"""

from collections import defaultdict
from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from period_ledger.models.ledger import (
    BucketPayment,
    CategorySpending,
    Expense,
    FixedPayment,
    MonthSummary,
    OverdueItem,
    OverdueKind,
    OverdueReport,
    Period,
    PeriodEntities,
    SavingsContribution,
)
from period_ledger.periods import clamp_day, parse_period


def aggregate_summary(
    expenses: Optional[Iterable[Expense]],
    fixed_payments: Optional[Iterable[FixedPayment]],
    paid_fixed_payment_ids: Optional[Iterable[UUID]],
    bucket_payments: Optional[Iterable[BucketPayment]],
    savings_contributions: Optional[Iterable[SavingsContribution]],
    salary: int,
    monthly_limit: int,
    period: Optional[Period] = None,
    bucket_ids: Optional[Iterable[UUID]] = None,
) -> MonthSummary:
    """
    Build the month summary for one period.

    Args:
        expenses: Expenses of the period
        fixed_payments: All recurring bills (planned every period)
        paid_fixed_payment_ids: Bills marked paid in this period
        bucket_payments: Carry-over payments of the period
        savings_contributions: Savings; filtered to `period` when given
        salary: Income for the period
        monthly_limit: Spending cap, 0 for none
        period: Restricts savings to this period
        bucket_ids: Buckets to report even when nothing was spent through them

    Returns:
        MonthSummary satisfying all accounting identities
    """
    paid_ids = set(paid_fixed_payment_ids or ())
    period = parse_period(period) if period is not None else None

    expenses_by_bucket: dict[UUID, int] = {b: 0 for b in bucket_ids or ()}
    for expense in expenses or ():
        expenses_by_bucket[expense.bucket_id] = (
            expenses_by_bucket.get(expense.bucket_id, 0) + expense.amount
        )
    expenses_total = sum(expenses_by_bucket.values())

    planned_recurring_total = 0
    paid_recurring_total = 0
    for payment in fixed_payments or ():
        planned_recurring_total += payment.amount
        if payment.id in paid_ids:
            paid_recurring_total += payment.amount

    paid_from_previous_period = 0
    unpaid_from_previous_period = 0
    for payment in bucket_payments or ():
        if payment.amount <= 0:
            continue
        if payment.paid:
            paid_from_previous_period += payment.amount
        else:
            unpaid_from_previous_period += payment.amount

    total_savings = sum(
        s.amount for s in savings_contributions or ()
        if period is None or s.period == period
    )

    grand_total = expenses_total + paid_recurring_total + paid_from_previous_period

    return MonthSummary(
        salary=salary,
        monthly_limit=monthly_limit,
        expenses_by_bucket=expenses_by_bucket,
        expenses_total=expenses_total,
        planned_recurring_total=planned_recurring_total,
        paid_recurring_total=paid_recurring_total,
        remaining_recurring_total=planned_recurring_total - paid_recurring_total,
        paid_from_previous_period=paid_from_previous_period,
        unpaid_from_previous_period=unpaid_from_previous_period,
        grand_total=grand_total,
        total_savings=total_savings,
        remaining_from_salary=salary - grand_total - total_savings,
        remaining_from_limit=monthly_limit - grand_total,
    )


def summarize_entities(
    entities: PeriodEntities,
    bucket_ids: Optional[Iterable[UUID]] = None,
) -> MonthSummary:
    """Aggregate everything storage loaded for one period."""
    return aggregate_summary(
        expenses=entities.expenses,
        fixed_payments=entities.fixed_payments,
        paid_fixed_payment_ids=entities.paid_fixed_payment_ids,
        bucket_payments=entities.bucket_payments,
        savings_contributions=entities.savings_contributions,
        salary=entities.salary,
        monthly_limit=entities.monthly_limit,
        period=entities.period,
        bucket_ids=bucket_ids,
    )


def fixed_payment_due_date(payment: FixedPayment, period: Period) -> Optional[date]:
    """
    Due date of a recurring bill within a period.

    A due day is placed in the period's start month (clamped); otherwise
    the bill's explicit due date is used.
    """
    period = parse_period(period)
    if payment.due_day is not None:
        return clamp_day(period.year, period.month, payment.due_day)
    return payment.due_date


def find_overdue(
    fixed_payments: Optional[Iterable[FixedPayment]],
    paid_fixed_payment_ids: Optional[Iterable[UUID]],
    bucket_payments: Optional[Iterable[BucketPayment]],
    period: Period,
    today: date,
) -> OverdueReport:
    """
    Unpaid bills and carry-over balances whose due date is before `today`.

    Items without a due date are never overdue.
    """
    period = parse_period(period)
    paid_ids = set(paid_fixed_payment_ids or ())
    items: list[OverdueItem] = []

    for payment in fixed_payments or ():
        if payment.id in paid_ids:
            continue
        due = fixed_payment_due_date(payment, period)
        if due is None or due >= today:
            continue
        items.append(OverdueItem(
            kind=OverdueKind.FIXED_PAYMENT,
            id=payment.id,
            amount=payment.amount,
            due_date=due,
            days_overdue=(today - due).days,
            name=payment.name,
        ))

    for payment in bucket_payments or ():
        if payment.paid or payment.amount <= 0:
            continue
        if payment.due_date is None or payment.due_date >= today:
            continue
        items.append(OverdueItem(
            kind=OverdueKind.BUCKET_PAYMENT,
            id=payment.id,
            amount=payment.amount,
            due_date=payment.due_date,
            days_overdue=(today - payment.due_date).days,
            bucket_id=payment.bucket_id,
        ))

    items.sort(key=lambda item: item.due_date)
    return OverdueReport(period=period, as_of=today, items=items)


def spending_by_category(
    expenses: Optional[Iterable[Expense]],
    bucket_id: Optional[UUID] = None,
) -> list[CategorySpending]:
    """
    Spending per category with its share of the total, largest first.

    Returns an empty list when nothing was spent.
    """
    totals: dict[UUID, int] = defaultdict(int)
    for expense in expenses or ():
        if bucket_id is not None and expense.bucket_id != bucket_id:
            continue
        totals[expense.category_id] += expense.amount

    grand_total = sum(totals.values())
    if grand_total == 0:
        return []

    result = [
        CategorySpending(
            category_id=category_id,
            total=total,
            percent=total / grand_total * 100,
        )
        for category_id, total in totals.items()
    ]
    result.sort(key=lambda item: item.total, reverse=True)
    return result
