"""
Tests for the period calculator.

Every function is pure, so these tests need no storage and no clock.
"""

from datetime import date, datetime, timedelta

import pytest

from period_ledger.models.ledger import InvalidPeriodError, Period
from period_ledger.periods import (
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


class TestCurrentPeriod:
    """Tests for resolving the active period."""

    def test_before_start_day_uses_previous_month(self):
        """Test the 15th-to-14th scenario across a year boundary."""
        assert str(current_period(15, date(2026, 1, 10))) == "2025-12-15"

    def test_on_start_day_uses_current_month(self):
        assert str(current_period(15, date(2026, 1, 15))) == "2026-01-15"

    def test_accepts_datetime(self):
        assert str(current_period(15, datetime(2026, 1, 20, 23, 59))) == "2026-01-15"

    def test_start_day_one(self):
        assert str(current_period(1, date(2026, 3, 1))) == "2026-03-01"
        assert str(current_period(1, date(2026, 3, 31))) == "2026-03-01"

    def test_clamps_in_february_never_rolls_over(self):
        """Test that start day 31 gives the last day of February."""
        assert str(current_period(31, date(2024, 3, 15))) == "2024-02-29"
        assert str(current_period(31, date(2023, 3, 15))) == "2023-02-28"

    def test_clamped_start_day_opens_its_own_period(self):
        """Test that 2024-02-29 belongs to the period starting that day."""
        assert str(current_period(31, date(2024, 2, 29))) == "2024-02-29"
        assert str(current_period(31, date(2024, 2, 20))) == "2024-01-31"

    def test_date_before_supported_years_rejected(self):
        with pytest.raises(InvalidPeriodError):
            current_period(15, date(1999, 12, 20))
        with pytest.raises(InvalidPeriodError):
            current_period(15, date(2000, 1, 10))

    @pytest.mark.parametrize("start_day", [0, 32, -1, True, "15"])
    def test_invalid_start_day_rejected(self, start_day):
        with pytest.raises(ValueError):
            current_period(start_day, date(2026, 1, 10))


class TestStepping:
    """Tests for previous/next period."""

    def test_previous_period_scenario(self):
        assert str(previous_period("2026-01-15", 15)) == "2025-12-15"

    def test_next_period_across_year(self):
        assert str(next_period("2025-12-15", 15)) == "2026-01-15"

    def test_start_day_derived_from_period(self):
        """Test that 15-to-14 stays 15-to-14 without settings."""
        assert str(previous_period("2026-01-15")) == "2025-12-15"
        assert str(next_period("2026-01-15")) == "2026-02-15"

    def test_clamped_sequence_with_start_day(self):
        """Test that start day 31 survives a short month."""
        assert str(next_period("2024-01-31", 31)) == "2024-02-29"
        assert str(next_period("2024-02-29", 31)) == "2024-03-31"
        assert str(previous_period("2024-03-31", 31)) == "2024-02-29"

    def test_clamped_period_without_start_day_keeps_its_day(self):
        assert str(next_period("2024-02-29")) == "2024-03-29"

    def test_period_from_other_settings_keeps_its_day(self):
        """Test that history created under another start day stays continuous."""
        assert str(previous_period("2026-01-10", 15)) == "2025-12-10"

    def test_accepts_period_instances(self):
        period = Period.parse("2026-01-15")
        assert next_period(period, 15) == Period.parse("2026-02-15")

    @pytest.mark.parametrize("start_day", range(1, 32))
    def test_stepping_is_a_group_action(self, start_day):
        """Test previous(next(p)) == p and next(previous(p)) == p."""
        for year in (2023, 2024):
            for month in range(1, 13):
                period = period_for_month(year, month, start_day)
                assert previous_period(next_period(period, start_day), start_day) == period
                assert next_period(previous_period(period, start_day), start_day) == period

    def test_invalid_period_string_rejected(self):
        with pytest.raises(InvalidPeriodError):
            next_period("2026-02-30", 15)

    def test_stepping_past_supported_years_rejected(self):
        """Test that stepping never yields a period is_valid would reject."""
        with pytest.raises(InvalidPeriodError):
            next_period("2100-12-15", 15)
        with pytest.raises(InvalidPeriodError):
            previous_period("2000-01-15", 15)


class TestPeriodDates:
    """Tests for period boundaries."""

    def test_cross_month_period(self):
        assert period_dates("2025-12-15") == (date(2025, 12, 15), date(2026, 1, 14))

    def test_calendar_month_period(self):
        assert period_dates("2024-02-01") == (date(2024, 2, 1), date(2024, 2, 29))

    def test_clamped_period_uses_start_day(self):
        assert period_dates("2024-02-29", 31) == (date(2024, 2, 29), date(2024, 3, 30))

    @pytest.mark.parametrize("start_day", [1, 15, 28, 29, 30, 31])
    def test_periods_partition_the_calendar(self, start_day):
        """Test contiguity and that every day maps back to its own period."""
        period = period_for_month(2023, 1, start_day)
        for _ in range(24):
            start, end = period_dates(period, start_day)
            following = next_period(period, start_day)
            assert end + timedelta(days=1) == following.start

            day = start
            while day <= end:
                assert current_period(start_day, day) == period
                day += timedelta(days=1)
            period = following

    def test_last_supported_period_has_an_end(self):
        assert period_dates("2100-12-15") == (date(2100, 12, 15), date(2101, 1, 14))
        assert format_display("2100-12-15") == "Dec 15 - Jan 14, 2101"

    def test_is_date_in_period(self):
        assert is_date_in_period(date(2026, 1, 14), "2025-12-15")
        assert is_date_in_period(datetime(2025, 12, 15, 8, 0), "2025-12-15")
        assert not is_date_in_period(date(2026, 1, 15), "2025-12-15")
        assert not is_date_in_period(date(2025, 12, 14), "2025-12-15")


class TestFormatDisplay:
    """Tests for human-readable period labels."""

    def test_cross_year_label(self):
        assert format_display("2025-12-15") == "Dec 15 - Jan 14, 2026"

    def test_cross_month_label(self):
        assert format_display("2026-01-15") == "Jan 15 - Feb 14, 2026"

    def test_same_month_label(self):
        assert format_display("2024-02-01") == "Feb 1 - 29, 2024"
        assert format_display("2023-02-01") == "Feb 1 - 28, 2023"

    def test_clamped_label_with_start_day(self):
        assert format_display("2024-01-31", 31) == "Jan 31 - Feb 28, 2024"


class TestValidation:
    """Tests for strict period string validation."""

    @pytest.mark.parametrize("value", [
        "2026-01-15",
        "2024-02-29",
        "2000-01-01",
        "2100-12-31",
    ])
    def test_valid_periods(self, value):
        assert is_valid(value)

    @pytest.mark.parametrize("value", [
        "2023-02-29",
        "2026-04-31",
        "1999-12-15",
        "2101-01-01",
        "2026-13-01",
        "2026-00-10",
        "2026-01-00",
        "2026-1-15",
        "2026-01-15 ",
        "20260115",
        "abcd-ef-gh",
        "",
    ])
    def test_invalid_periods(self, value):
        assert not is_valid(value)

    def test_parse_period_never_clamps(self):
        """Test that a bad period is rejected, not turned into a default."""
        with pytest.raises(InvalidPeriodError):
            parse_period("2026-02-31")

    def test_parse_period_passes_period_through(self):
        period = Period.parse("2026-01-15")
        assert parse_period(period) is period


class TestHelpers:
    """Tests for small calendar helpers."""

    def test_days_in_month(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(2023, 2) == 28
        assert days_in_month(2026, 4) == 30

    def test_clamp_day(self):
        assert clamp_day(2024, 2, 31) == date(2024, 2, 29)
        assert clamp_day(2026, 4, 31) == date(2026, 4, 30)
        assert clamp_day(2026, 5, 10) == date(2026, 5, 10)

    def test_period_for_month_clamps(self):
        assert str(period_for_month(2023, 2, 31)) == "2023-02-28"

    def test_anchor_day(self):
        assert anchor_day("2026-01-15", 15) == 15
        assert anchor_day("2024-02-29", 31) == 31
        assert anchor_day("2026-01-10", 15) == 10

    def test_migrate_month_to_period(self):
        assert str(migrate_month_to_period("2026-01", 15)) == "2026-01-15"
        assert str(migrate_month_to_period("2024-02", 31)) == "2024-02-29"


    def test_migrate_month_outside_supported_years_rejected(self):
        with pytest.raises(InvalidPeriodError):
            migrate_month_to_period("1999-12", 1)
    @pytest.mark.parametrize("value", ["2026-13", "2026/01", "26-01", "2026-01-15"])
    def test_migrate_month_rejects_bad_keys(self, value):
        with pytest.raises(InvalidPeriodError):
            migrate_month_to_period(value, 1)

    def test_local_today_returns_date(self):
        today = local_today("UTC")
        assert isinstance(today, date)
        assert not isinstance(today, datetime)
