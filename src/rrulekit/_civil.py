"""Proleptic Gregorian calendar arithmetic over naive dates and date-times.

Nothing here knows about time zones; every value is a civil (wall-clock) value.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta

from ._ast import Frequency, Weekday

# =============================================================================
# Week numbering
# =============================================================================
# Week 1 of a year is the first week holding at least four days of that year,
# with weeks beginning on the configured week-start day. A week holds four days
# of the year exactly when it contains January 4th, so week 1 starts on the
# last week-start day on or before January 4th. With a Monday week start this
# is ISO 8601 numbering.
# =============================================================================


def is_leap_year(year: int) -> bool:
    return calendar.isleap(year)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def days_in_year(year: int) -> int:
    return 366 if is_leap_year(year) else 365


def weekday_of(d: date) -> Weekday:
    return Weekday.from_number(d.weekday())


def ordinal_day_in_year(d: date) -> int:
    """1-based day of the year."""
    return d.timetuple().tm_yday


def week_start_of(d: date, week_start: Weekday) -> date:
    return d - timedelta(days=(d.weekday() - week_start.number) % 7)


def _first_week_start(year: int, week_start: Weekday) -> date:
    return week_start_of(date(year, 1, 4), week_start)


def _last_week_start(year: int, week_start: Weekday) -> date:
    # December 28th always falls in the last week of its year.
    return week_start_of(date(year, 12, 28), week_start)


def weeks_in_year(year: int, week_start: Weekday) -> int:
    span = _last_week_start(year, week_start) - _first_week_start(year, week_start)
    return span.days // 7 + 1


def week_of_year(d: date, week_start: Weekday) -> tuple[int, int]:
    """Return (week_year, week_number); early January and late December days
    may belong to a week of the neighbouring year."""
    week_year = d.year
    if d.month == 12 and (d - _last_week_start(d.year, week_start)).days >= 7:
        week_year += 1
    elif d.month == 1 and d < _first_week_start(d.year, week_start):
        week_year -= 1
    first = _first_week_start(week_year, week_start)
    return week_year, (d - first).days // 7 + 1


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + months
    return total // 12, total % 12 + 1


def add_period(civil: datetime, freq: Frequency, interval: int) -> datetime:
    """Advance by `interval` whole periods of `freq`.

    Month and year steps clamp the day to the target month's last valid day
    (January 31st plus one month is February 28th or 29th).
    """
    match freq:
        case Frequency.YEARLY | Frequency.MONTHLY:
            months = interval * 12 if freq == Frequency.YEARLY else interval
            year, month = add_months(civil.year, civil.month, months)
            day = min(civil.day, days_in_month(year, month))
            return civil.replace(year=year, month=month, day=day)
        case Frequency.WEEKLY:
            return civil + timedelta(weeks=interval)
        case Frequency.DAILY:
            return civil + timedelta(days=interval)
        case Frequency.HOURLY:
            return civil + timedelta(hours=interval)
        case Frequency.MINUTELY:
            return civil + timedelta(minutes=interval)
        case Frequency.SECONDLY:
            return civil + timedelta(seconds=interval)
    raise ValueError(f"unknown frequency: {freq}")  # pragma: no cover


def truncate_to_period(civil: datetime, freq: Frequency, week_start: Weekday) -> datetime:
    """Start of the `freq` period containing `civil`."""
    match freq:
        case Frequency.YEARLY:
            return datetime(civil.year, 1, 1)
        case Frequency.MONTHLY:
            return datetime(civil.year, civil.month, 1)
        case Frequency.WEEKLY:
            start = week_start_of(civil.date(), week_start)
            return datetime(start.year, start.month, start.day)
        case Frequency.DAILY:
            return datetime(civil.year, civil.month, civil.day)
        case Frequency.HOURLY:
            return civil.replace(minute=0, second=0, microsecond=0)
        case Frequency.MINUTELY:
            return civil.replace(second=0, microsecond=0)
        case Frequency.SECONDLY:
            return civil.replace(microsecond=0)
    raise ValueError(f"unknown frequency: {freq}")  # pragma: no cover


def nth_weekday_of_period(
    period_start: date, period_last: date, weekday: Weekday, ordinal: int
) -> date | None:
    """The `ordinal`-th `weekday` in [period_start, period_last].

    Positive ordinals count from the start ("2nd Monday"), negative ones from
    the end ("last Friday" is -1). Returns None when the period is too short.
    """
    span = (period_last - period_start).days
    if ordinal > 0:
        offset = (weekday.number - period_start.weekday()) % 7 + (ordinal - 1) * 7
        return period_start + timedelta(days=offset) if offset <= span else None
    offset = (period_last.weekday() - weekday.number) % 7 + (-ordinal - 1) * 7
    return period_last - timedelta(days=offset) if offset <= span else None
