"""
Period Calculator

All period-boundary arithmetic lives here. Every function is pure:
the start day is always passed in explicitly, nothing reads settings
or the clock (except local_today, the single timezone hook).

CLAMPING RULE: a start day that does not exist in the target month is
clamped to the month's last day. We never roll over into the next month,
so a start day of 31 gives 2024-02-29, never 2024-03-02.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from period_ledger.models.ledger import MAX_PERIOD_YEAR, MIN_PERIOD_YEAR, InvalidPeriodError, Period


PeriodLike = Union[Period, str]

_MONTH_ABBR = (
    "", "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Place `day` in the given month, clamped to its last day."""
    return date(year, month, min(day, days_in_month(year, month)))


def _validate_start_day(start_day: int) -> int:
    if isinstance(start_day, bool) or not isinstance(start_day, int):
        raise ValueError(f"Start day must be an integer, got {start_day!r}")
    if not 1 <= start_day <= 31:
        raise ValueError(f"Start day must be between 1 and 31, got {start_day}")
    return start_day


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def parse_period(value: PeriodLike) -> Period:
    """
    Turn a period string into a Period.

    Raises:
        InvalidPeriodError: If the string is not a valid YYYY-MM-DD period.
            We never clamp or default a bad period.
    """
    if isinstance(value, Period):
        return value
    return Period.parse(value)


def is_valid(period_string: str) -> bool:
    """
    Strict check: YYYY-MM-DD, year 2000-2100, real month and day.
    """
    try:
        Period.parse(period_string)
    except InvalidPeriodError:
        return False
    return True


def period_for_month(year: int, month: int, start_day: int) -> Period:
    """
    The period that starts in the given calendar month.

    Raises:
        InvalidPeriodError: If the period falls outside the supported years
    """
    _validate_start_day(start_day)
    if not MIN_PERIOD_YEAR <= year <= MAX_PERIOD_YEAR:
        raise InvalidPeriodError(
            f"No period in {year}-{month:02d}: year must be between "
            f"{MIN_PERIOD_YEAR} and {MAX_PERIOD_YEAR}"
        )
    start = clamp_day(year, month, start_day)
    return Period(year=start.year, month=start.month, day=start.day)


def current_period(start_day: int, now: Union[date, datetime]) -> Period:
    """
    The period active on `now`.

    If today is before this month's (clamped) start day, the period began
    in the previous calendar month. With start day 31, 2024-02-29 opens
    the February period itself.
    """
    _validate_start_day(start_day)
    if isinstance(now, datetime):
        now = now.date()

    year, month = now.year, now.month
    if now < clamp_day(year, month, start_day):
        year, month = _shift_month(year, month, -1)
    return period_for_month(year, month, start_day)


def _step_start(period: PeriodLike, start_day: Optional[int], delta: int) -> tuple[int, int, int]:
    period = parse_period(period)
    # Without an explicit start day, continue the sequence the period itself
    # was built with (2026-01-15 keeps stepping by the 15th). With one, a
    # period that does not match it keeps its own day as well.
    day = period.day if start_day is None else anchor_day(period, start_day)
    year, month = _shift_month(period.year, period.month, delta)
    return year, month, day


def _step(period: PeriodLike, start_day: Optional[int], delta: int) -> Period:
    return period_for_month(*_step_start(period, start_day, delta))


def previous_period(period: PeriodLike, start_day: Optional[int] = None) -> Period:
    return _step(period, start_day, -1)


def next_period(period: PeriodLike, start_day: Optional[int] = None) -> Period:
    return _step(period, start_day, 1)


def anchor_day(period: PeriodLike, start_day: int) -> int:
    """
    The start day to step `period` with, given the account's start day.

    A period that matches the configured start day (including one clamped
    to a short month, like 2024-02-29 for day 31) steps with the configured
    day. Any other period was created under different settings and keeps
    its own day, so history stays continuous after a settings change.
    """
    period = parse_period(period)
    _validate_start_day(start_day)
    if period.start == clamp_day(period.year, period.month, start_day):
        return start_day
    return period.day


def period_dates(period: PeriodLike, start_day: Optional[int] = None) -> tuple[date, date]:
    """
    (start, end) of a period, both inclusive.

    The end is exactly one day before the next period starts.
    """
    period = parse_period(period)
    # Built as a date so the last supported period still has an end
    following = clamp_day(*_step_start(period, start_day, 1))
    return period.start, following - timedelta(days=1)


def is_date_in_period(
    day: Union[date, datetime],
    period: PeriodLike,
    start_day: Optional[int] = None,
) -> bool:
    if isinstance(day, datetime):
        day = day.date()
    start, end = period_dates(period, start_day)
    return start <= day <= end


def format_display(period: PeriodLike, start_day: Optional[int] = None) -> str:
    """
    Human label for a period.

    "Dec 15 - Jan 14, 2026" across two months, "Feb 1 - 29, 2024" within
    one. The year printed is that of the period's last day.
    """
    start, end = period_dates(period, start_day)
    start_label = f"{_MONTH_ABBR[start.month]} {start.day}"
    if (start.year, start.month) == (end.year, end.month):
        return f"{start_label} - {end.day}, {end.year}"
    return f"{start_label} - {_MONTH_ABBR[end.month]} {end.day}, {end.year}"


def migrate_month_to_period(month_key: str, start_day: int) -> Period:
    """
    Convert a legacy calendar month key ("YYYY-MM") to a period.

    Raises:
        InvalidPeriodError: If the key is not a valid YYYY-MM month
    """
    try:
        year_str, month_str = month_key.split("-")
        year, month = int(year_str), int(month_str)
    except (AttributeError, ValueError):
        raise InvalidPeriodError(
            f"Invalid month key {month_key!r}: expected YYYY-MM"
        ) from None
    if len(year_str) != 4 or len(month_str) != 2 or not 1 <= month <= 12:
        raise InvalidPeriodError(f"Invalid month key {month_key!r}: expected YYYY-MM")
    return period_for_month(year, month, start_day)


def local_today(timezone_name: str) -> date:
    """
    Today's calendar date in the configured timezone.

    Every "now" the ledger uses goes through here, so period boundaries
    and overdue checks agree on what day it is.
    """
    return datetime.now(ZoneInfo(timezone_name)).date()
