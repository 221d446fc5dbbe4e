from __future__ import annotations

from datetime import date, datetime, time, timedelta

from ._ast import Frequency, NWeekday, RRule, Weekday
from ._civil import (
    add_period,
    days_in_month,
    days_in_year,
    nth_weekday_of_period,
    ordinal_day_in_year,
    week_of_year,
    weeks_in_year,
)

# =============================================================================
# Per-period candidate generation
# =============================================================================
# A period is one frequency step: a year, a month, a week beginning on WKST,
# a day, an hour, a minute or a second. For each period:
#
# 1. Collect the days of the period that pass every date-level filter
#    (BYMONTH, BYWEEKNO, BYYEARDAY, BYMONTHDAY, BYDAY). Filters are ANDed.
# 2. Cross them with the hour/minute/second sets.
# 3. Sort, then apply BYSETPOS to the full sorted list.
# 4. Drop anything before DTSTART. Set positions are chosen before this
#    cut so "the first weekday of the month" never slides to a later day.
#
# Unspecified fields follow RFC 5545: with no day-level filter YEARLY uses
# DTSTART's month and day, MONTHLY its day of month, WEEKLY its weekday.
# Time fields finer than the frequency default to DTSTART's value; fields at
# or above the frequency's own unit take the period's value.
# =============================================================================


class CandidateGenerator:
    """Expands one rule into the sorted wall-clock candidates of a single period."""

    def __init__(self, rule: RRule, dtstart: datetime) -> None:
        self.rule = rule
        self.dtstart = dtstart
        freq = rule.freq

        by_month = rule.by_month
        by_month_day = rule.by_month_day
        by_day = rule.by_day
        if not rule.has_date_filter:
            match freq:
                case Frequency.YEARLY:
                    by_month = by_month or (dtstart.month,)
                    by_month_day = (dtstart.day,)
                case Frequency.MONTHLY:
                    by_month_day = (dtstart.day,)
                case Frequency.WEEKLY:
                    by_day = (NWeekday(Weekday.from_number(dtstart.weekday())),)

        self._by_month = frozenset(by_month)
        self._by_month_day = frozenset(by_month_day)
        self._by_year_day = frozenset(rule.by_year_day)
        self._by_week_no = frozenset(rule.by_week_no)
        self._plain_weekdays = frozenset(nwd.weekday.number for nwd in by_day if nwd.n is None)
        self._ordinal_weekdays = tuple((nwd.weekday, nwd.n) for nwd in by_day if nwd.n is not None)
        self._has_by_day = bool(by_day)

        self._hours = _time_field(rule.by_hour, dtstart.hour, freq, Frequency.HOURLY)
        self._minutes = _time_field(rule.by_minute, dtstart.minute, freq, Frequency.MINUTELY)
        self._seconds = _time_field(rule.by_second, dtstart.second, freq, Frequency.SECONDLY)

    # --- Period bounds ---

    def period_end(self, period_start: datetime) -> datetime:
        return add_period(period_start, self.rule.freq, 1)

    # --- Date-level filtering ---

    def period_days(self, period_start: datetime) -> list[date]:
        """Days of the period surviving every date-level filter, in order."""
        start = period_start.date()
        match self.rule.freq:
            case Frequency.YEARLY:
                if self._by_month:
                    days: list[date] = []
                    for month in sorted(self._by_month):
                        first = date(start.year, month, 1)
                        days.extend(_day_range(first, days_in_month(start.year, month)))
                else:
                    days = _day_range(start, days_in_year(start.year))
            case Frequency.MONTHLY:
                days = _day_range(start, days_in_month(start.year, start.month))
            case Frequency.WEEKLY:
                days = _day_range(start, 7)
            case _:
                days = [start]
        return [d for d in days if self.matches_date(d)]

    def matches_date(self, d: date) -> bool:
        if self._by_month and d.month not in self._by_month:
            return False
        if self._by_week_no and not self._matches_week_no(d):
            return False
        if self._by_year_day:
            yday = ordinal_day_in_year(d)
            negative = yday - days_in_year(d.year) - 1
            if yday not in self._by_year_day and negative not in self._by_year_day:
                return False
        if self._by_month_day:
            negative = d.day - days_in_month(d.year, d.month) - 1
            if d.day not in self._by_month_day and negative not in self._by_month_day:
                return False
        if self._has_by_day and not self._matches_by_day(d):
            return False
        return True

    def _matches_week_no(self, d: date) -> bool:
        wkst = self.rule.week_start
        week_year, week_no = week_of_year(d, wkst)
        negative = week_no - weeks_in_year(week_year, wkst) - 1
        return week_no in self._by_week_no or negative in self._by_week_no

    def _matches_by_day(self, d: date) -> bool:
        if d.weekday() in self._plain_weekdays:
            return True
        if not self._ordinal_weekdays:
            return False
        first, last = self._ordinal_range(d)
        for weekday, n in self._ordinal_weekdays:
            if weekday.number != d.weekday():
                continue
            if nth_weekday_of_period(first, last, weekday, n) == d:
                return True
        return False

    def _ordinal_range(self, d: date) -> tuple[date, date]:
        """First and last day an ordinal BYDAY counts within: the month for MONTHLY
        rules and for YEARLY rules with BYMONTH, otherwise the year."""
        if self.rule.freq == Frequency.MONTHLY or (
            self.rule.freq == Frequency.YEARLY and self._by_month
        ):
            return date(d.year, d.month, 1), date(d.year, d.month, days_in_month(d.year, d.month))
        return date(d.year, 1, 1), date(d.year, 12, 31)

    # --- Time-level filtering ---

    def times_for(self, period_start: datetime) -> list[time]:
        hours = self._hours if self._hours is not None else (period_start.hour,)
        minutes = self._minutes if self._minutes is not None else (period_start.minute,)
        seconds = self._seconds if self._seconds is not None else (period_start.second,)
        freq = self.rule.freq
        if not freq.is_coarser_than(Frequency.HOURLY) and self.rule.by_hour:
            hours = tuple(h for h in hours if h in self.rule.by_hour)
        if not freq.is_coarser_than(Frequency.MINUTELY) and self.rule.by_minute:
            minutes = tuple(m for m in minutes if m in self.rule.by_minute)
        if freq == Frequency.SECONDLY and self.rule.by_second:
            seconds = tuple(s for s in seconds if s in self.rule.by_second)
        return [time(h, m, s) for h in hours for m in minutes for s in seconds]

    # --- Generation ---

    def generate(self, period_start: datetime) -> list[datetime]:
        """Sorted candidates within [period_start, period_end), none before DTSTART."""
        times = self.times_for(period_start)
        if not times:
            return []
        days = self.period_days(period_start)
        candidates = [datetime.combine(d, t) for d in days for t in times]
        if self.rule.by_set_pos:
            candidates = _select_positions(candidates, self.rule.by_set_pos)
        return [c for c in candidates if c >= self.dtstart]

    def coarse_mismatch(self, period_start: datetime) -> datetime | None:
        """For sub-daily rules, the next day/hour/minute boundary worth visiting
        when a coarser field already rules out the whole day/hour/minute."""
        freq = self.rule.freq
        if freq.is_coarser_than(Frequency.HOURLY):
            return None
        if not self.matches_date(period_start.date()):
            next_day = period_start.date() + timedelta(days=1)
            return datetime(next_day.year, next_day.month, next_day.day)
        if freq != Frequency.HOURLY and self.rule.by_hour:
            if period_start.hour not in self.rule.by_hour:
                return period_start.replace(minute=0, second=0) + timedelta(hours=1)
        if freq == Frequency.SECONDLY and self.rule.by_minute:
            if period_start.minute not in self.rule.by_minute:
                return period_start.replace(second=0) + timedelta(minutes=1)
        return None


def _time_field(
    values: tuple[int, ...],
    dtstart_value: int,
    freq: Frequency,
    unit: Frequency,
) -> tuple[int, ...] | None:
    """Values for one time field, or None when the period supplies it."""
    if not freq.is_coarser_than(unit):
        return None
    return tuple(sorted(set(values))) if values else (dtstart_value,)


def _day_range(first: date, n: int) -> list[date]:
    n = min(n, (date.max - first).days + 1)
    return [first + timedelta(days=i) for i in range(n)]


def _select_positions(candidates: list[datetime], positions: tuple[int, ...]) -> list[datetime]:
    total = len(candidates)
    selected: set[datetime] = set()
    for pos in positions:
        index = pos - 1 if pos > 0 else total + pos
        if 0 <= index < total:
            selected.add(candidates[index])
    return sorted(selected)
