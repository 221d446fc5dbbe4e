from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Frequency(Enum):
    SECONDLY = "SECONDLY"
    MINUTELY = "MINUTELY"
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @property
    def rank(self) -> int:
        """Period length rank: SECONDLY=0 ... YEARLY=6."""
        return _FREQUENCY_RANK[self]

    def is_coarser_than(self, other: Frequency) -> bool:
        return self.rank > other.rank

    @classmethod
    def try_parse(cls, s: str) -> Frequency | None:
        return _FREQUENCY_PARSE.get(s.upper())

    def __str__(self) -> str:
        return self.value


_FREQUENCY_RANK = {freq: rank for rank, freq in enumerate(Frequency)}
_FREQUENCY_PARSE = {freq.value: freq for freq in Frequency}


class Weekday(Enum):
    MO = "MO"
    TU = "TU"
    WE = "WE"
    TH = "TH"
    FR = "FR"
    SA = "SA"
    SU = "SU"

    @property
    def number(self) -> int:
        """Python weekday number: Monday=0, Sunday=6."""
        return _WEEKDAY_NUMBERS[self]

    @classmethod
    def from_number(cls, n: int) -> Weekday:
        return _NUMBER_TO_WEEKDAY[n % 7]

    @classmethod
    def try_parse(cls, s: str) -> Weekday | None:
        return _WEEKDAY_PARSE.get(s.upper())

    def __str__(self) -> str:
        return self.value


_WEEKDAY_NUMBERS = {wd: n for n, wd in enumerate(Weekday)}
_NUMBER_TO_WEEKDAY = {n: wd for wd, n in _WEEKDAY_NUMBERS.items()}
_WEEKDAY_PARSE = {wd.value: wd for wd in Weekday}


@dataclass(frozen=True, slots=True)
class NWeekday:
    """A BYDAY entry: every `weekday`, or the `n`-th one (negative counts from the end)."""

    weekday: Weekday
    n: int | None = None

    def __str__(self) -> str:
        if self.n is None:
            return str(self.weekday)
        return f"{self.n}{self.weekday}"


@dataclass(frozen=True, slots=True)
class RRule:
    freq: Frequency
    interval: int = 1
    count: int | None = None
    until: datetime | None = None
    week_start: Weekday = Weekday.MO
    by_set_pos: tuple[int, ...] = ()
    by_month: tuple[int, ...] = ()
    by_month_day: tuple[int, ...] = ()
    by_year_day: tuple[int, ...] = ()
    by_week_no: tuple[int, ...] = ()
    by_day: tuple[NWeekday, ...] = ()
    by_hour: tuple[int, ...] = ()
    by_minute: tuple[int, ...] = ()
    by_second: tuple[int, ...] = ()

    @property
    def has_date_filter(self) -> bool:
        return bool(self.by_week_no or self.by_year_day or self.by_month_day or self.by_day)

    @property
    def has_by_filter(self) -> bool:
        return bool(
            self.by_month
            or self.has_date_filter
            or self.by_hour
            or self.by_minute
            or self.by_second
        )


@dataclass(frozen=True, slots=True)
class ExplicitDate:
    """An RDATE/EXDATE value. `tz` is None when the value is floating."""

    civil: datetime
    tz: str | None = None


@dataclass(frozen=True, slots=True)
class RRuleSetData:
    dtstart: datetime
    tz: str | None = None
    rrules: tuple[RRule, ...] = ()
    exrules: tuple[RRule, ...] = ()
    rdates: tuple[ExplicitDate, ...] = ()
    exdates: tuple[ExplicitDate, ...] = ()

    @property
    def is_floating(self) -> bool:
        return self.tz is None

