"""Calendar arithmetic: week numbering, period stepping and ordinal weekdays."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from rrulekit import Frequency, Weekday
from rrulekit._civil import (
    add_months,
    add_period,
    days_in_month,
    days_in_year,
    is_leap_year,
    nth_weekday_of_period,
    ordinal_day_in_year,
    truncate_to_period,
    week_of_year,
    weekday_of,
    weeks_in_year,
)


class TestLeapYears:
    @pytest.mark.parametrize(
        "year,expected",
        [(1996, True), (1997, False), (1900, False), (2000, True), (2100, False), (2400, True)],
    )
    def test_is_leap_year(self, year: int, expected: bool) -> None:
        assert is_leap_year(year) is expected

    def test_days_in_month(self) -> None:
        assert days_in_month(1997, 2) == 28
        assert days_in_month(2000, 2) == 29
        assert days_in_month(1997, 9) == 30
        assert days_in_month(1997, 12) == 31

    def test_days_in_year(self) -> None:
        assert days_in_year(1997) == 365
        assert days_in_year(2000) == 366


class TestDays:
    def test_weekday_of(self) -> None:
        assert weekday_of(date(1997, 9, 2)) is Weekday.TU

    def test_ordinal_day_in_year(self) -> None:
        assert ordinal_day_in_year(date(1997, 1, 1)) == 1
        assert ordinal_day_in_year(date(1998, 4, 10)) == 100
        assert ordinal_day_in_year(date(2000, 12, 31)) == 366


class TestWeekNumbering:
    def test_monday_start_matches_iso_calendar(self) -> None:
        d = date(1996, 12, 1)
        while d < date(2011, 2, 1):
            iso = d.isocalendar()
            assert week_of_year(d, Weekday.MO) == (iso[0], iso[1]), d
            d += timedelta(days=1)

    def test_weeks_in_year(self) -> None:
        assert weeks_in_year(1997, Weekday.MO) == 52
        assert weeks_in_year(1998, Weekday.MO) == 53
        assert weeks_in_year(2004, Weekday.MO) == 53
        assert weeks_in_year(2020, Weekday.MO) == 53

    def test_first_week_belongs_to_next_year(self) -> None:
        assert week_of_year(date(1997, 12, 29), Weekday.MO) == (1998, 1)

    def test_early_january_belongs_to_previous_year(self) -> None:
        assert week_of_year(date(2021, 1, 1), Weekday.MO) == (2020, 53)

    def test_sunday_week_start(self) -> None:
        # 1998-01-04 is a Sunday, so week 1 with a Sunday start begins there.
        assert week_of_year(date(1998, 1, 4), Weekday.SU) == (1998, 1)
        assert week_of_year(date(1998, 1, 3), Weekday.SU) == (1997, 53)

    def test_last_year_of_the_calendar(self) -> None:
        assert weeks_in_year(9999, Weekday.MO) == 52
        assert weeks_in_year(9998, Weekday.MO) == 53
        assert week_of_year(date(9999, 12, 31), Weekday.MO) == (9999, 52)
        assert week_of_year(date(9999, 12, 31), Weekday.SU) == (9999, 52)
        assert week_of_year(date(9999, 1, 1), Weekday.MO) == (9998, 53)


class TestPeriods:
    def test_add_months_wraps_years(self) -> None:
        assert add_months(1997, 11, 3) == (1998, 2)
        assert add_months(1997, 1, -1) == (1996, 12)

    def test_monthly_step_clamps_day(self) -> None:
        assert add_period(datetime(1997, 1, 31), Frequency.MONTHLY, 1) == datetime(1997, 2, 28)
        assert add_period(datetime(2000, 1, 31), Frequency.MONTHLY, 1) == datetime(2000, 2, 29)

    def test_yearly_step_clamps_leap_day(self) -> None:
        assert add_period(datetime(2000, 2, 29), Frequency.YEARLY, 1) == datetime(2001, 2, 28)

    @pytest.mark.parametrize(
        "freq,expected",
        [
            (Frequency.WEEKLY, datetime(1997, 9, 16, 9, 0)),
            (Frequency.DAILY, datetime(1997, 9, 4, 9, 0)),
            (Frequency.HOURLY, datetime(1997, 9, 2, 11, 0)),
            (Frequency.MINUTELY, datetime(1997, 9, 2, 9, 2)),
            (Frequency.SECONDLY, datetime(1997, 9, 2, 9, 0, 2)),
        ],
    )
    def test_fixed_length_steps(self, freq: Frequency, expected: datetime) -> None:
        assert add_period(datetime(1997, 9, 2, 9, 0), freq, 2) == expected

    def test_add_period_past_year_9999_raises(self) -> None:
        with pytest.raises(ValueError):
            add_period(datetime(9999, 6, 1), Frequency.YEARLY, 1)

    @pytest.mark.parametrize(
        "freq,week_start,expected",
        [
            (Frequency.YEARLY, Weekday.MO, datetime(1997, 1, 1)),
            (Frequency.MONTHLY, Weekday.MO, datetime(1997, 9, 1)),
            (Frequency.WEEKLY, Weekday.MO, datetime(1997, 9, 1)),
            (Frequency.WEEKLY, Weekday.SU, datetime(1997, 8, 31)),
            (Frequency.DAILY, Weekday.MO, datetime(1997, 9, 4)),
            (Frequency.HOURLY, Weekday.MO, datetime(1997, 9, 4, 10)),
            (Frequency.MINUTELY, Weekday.MO, datetime(1997, 9, 4, 10, 30)),
            (Frequency.SECONDLY, Weekday.MO, datetime(1997, 9, 4, 10, 30, 15)),
        ],
    )
    def test_truncate_to_period(
        self, freq: Frequency, week_start: Weekday, expected: datetime
    ) -> None:
        assert truncate_to_period(datetime(1997, 9, 4, 10, 30, 15), freq, week_start) == expected


class TestOrdinalWeekdays:
    _SEPT = (date(1997, 9, 1), date(1997, 9, 30))

    def test_first_and_last(self) -> None:
        assert nth_weekday_of_period(*self._SEPT, Weekday.TU, 1) == date(1997, 9, 2)
        assert nth_weekday_of_period(*self._SEPT, Weekday.TH, -1) == date(1997, 9, 25)

    def test_fifth_weekday(self) -> None:
        assert nth_weekday_of_period(*self._SEPT, Weekday.MO, 5) == date(1997, 9, 29)
        assert nth_weekday_of_period(*self._SEPT, Weekday.TU, 5) == date(1997, 9, 30)
        assert nth_weekday_of_period(*self._SEPT, Weekday.WE, 5) is None

    def test_within_a_year(self) -> None:
        year = (date(1997, 1, 1), date(1997, 12, 31))
        assert nth_weekday_of_period(*year, Weekday.TH, -1) == date(1997, 12, 25)
        assert nth_weekday_of_period(*year, Weekday.WE, 53) == date(1997, 12, 31)
        assert nth_weekday_of_period(*year, Weekday.TH, 53) is None
        assert nth_weekday_of_period(*year, Weekday.WE, 1) == date(1997, 1, 1)

    def test_last_year_of_the_calendar(self) -> None:
        year = (date(9999, 1, 1), date.max)
        assert nth_weekday_of_period(*year, Weekday.FR, 53) == date(9999, 12, 31)
        assert nth_weekday_of_period(*year, Weekday.SA, 53) is None
        assert nth_weekday_of_period(*year, Weekday.MO, -1) == date(9999, 12, 27)
