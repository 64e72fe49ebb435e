"""Period boundary arithmetic."""

from period_ledger.periods.calculator import (
    anchor_day,
    clamp_day,
    current_period,
    days_in_month,
    format_display,
    is_date_in_period,
    is_valid,
    local_today,
    migrate_month_to_period,
    next_period,
    parse_period,
    period_dates,
    period_for_month,
    previous_period,
)

__all__ = [
    "anchor_day",
    "clamp_day",
    "current_period",
    "days_in_month",
    "format_display",
    "is_date_in_period",
    "is_valid",
    "local_today",
    "migrate_month_to_period",
    "next_period",
    "parse_period",
    "period_dates",
    "period_for_month",
    "previous_period",
]
