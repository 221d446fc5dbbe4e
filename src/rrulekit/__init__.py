from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
from datetime import datetime

from ._ast import ExplicitDate, Frequency, NWeekday, RRule, RRuleSetData, Weekday
from ._display import display, display_rule, format_instant
from ._error import AmbiguousTimeError, InvalidTimeError, ParseError, RRuleError, Span
from ._iter import MAX_EMPTY_PERIODS, IterState, RuleIterator
from ._parser import (
    check_dtstart,
    parse,
    parse_instant,
    parse_rule,
    validate_rule,
    zone_of,
)
from ._set import between as _between
from ._set import just_after as _just_after
from ._set import just_before as _just_before
from ._set import occurrences as _occurrences
from ._set import take as _take
from ._zone import (
    DEFAULT_POLICY,
    AmbiguityPolicy,
    Fold,
    FoldPolicy,
    Gap,
    GapPolicy,
    Unique,
    offsets_for,
)


class RRuleSet:
    """A DTSTART with inclusion/exclusion rules and dates, plus the policy
    used to turn its wall-clock candidates into instants.

    Instances are immutable; the builder methods return new sets.
    """

    _data: RRuleSetData
    _policy: AmbiguityPolicy

    def __init__(self, data: RRuleSetData, policy: AmbiguityPolicy = DEFAULT_POLICY) -> None:
        self._data = data
        self._policy = policy

    @classmethod
    def parse(cls, input_text: str, policy: AmbiguityPolicy = DEFAULT_POLICY) -> RRuleSet:
        return cls(parse(input_text, policy), policy)

    @classmethod
    def validate(cls, input_text: str, policy: AmbiguityPolicy = DEFAULT_POLICY) -> bool:
        try:
            parse(input_text, policy)
            return True
        except RRuleError:
            return False

    @classmethod
    def starting(cls, dtstart: datetime, policy: AmbiguityPolicy = DEFAULT_POLICY) -> RRuleSet:
        """An empty set anchored at `dtstart` (naive for floating, or zoneinfo-aware)."""
        data = RRuleSetData(dtstart=dtstart.replace(tzinfo=None, fold=0), tz=zone_of(dtstart))
        check_dtstart(data, policy)
        return cls(data, policy)

    # --- Builders ---

    def with_policy(self, policy: AmbiguityPolicy) -> RRuleSet:
        check_dtstart(self._data, policy)
        return RRuleSet(self._data, policy)

    def rrule(self, rule: RRule) -> RRuleSet:
        validate_rule(rule, self._data)
        return RRuleSet(replace(self._data, rrules=(*self._data.rrules, rule)), self._policy)

    def exrule(self, rule: RRule) -> RRuleSet:
        validate_rule(rule, self._data)
        return RRuleSet(replace(self._data, exrules=(*self._data.exrules, rule)), self._policy)

    def rdate(self, dt: datetime) -> RRuleSet:
        explicit = self._explicit(dt)
        return RRuleSet(replace(self._data, rdates=(*self._data.rdates, explicit)), self._policy)

    def exdate(self, dt: datetime) -> RRuleSet:
        explicit = self._explicit(dt)
        return RRuleSet(replace(self._data, exdates=(*self._data.exdates, explicit)), self._policy)

    def _explicit(self, dt: datetime) -> ExplicitDate:
        tz = zone_of(dt)
        if tz is not None and self._data.is_floating:
            raise ParseError(f"{dt.isoformat()} has a zone but DTSTART is floating")
        return ExplicitDate(dt.replace(tzinfo=None, fold=0), tz)

    # --- Queries ---

    def __iter__(self) -> Iterator[datetime]:
        return _occurrences(self._data, self._policy)

    def all(self, limit: int) -> list[datetime]:
        """The first `limit` occurrences, even when the rules are unbounded."""
        return _take(self._data, limit, self._policy)

    def all_unchecked(self) -> list[datetime]:
        """Every occurrence.

        Terminates only if every inclusion rule has COUNT or UNTIL (or can never
        match); an unbounded rule makes this loop forever. Use `all(limit)` or
        iterate lazily otherwise.
        """
        return list(_occurrences(self._data, self._policy))

    def between(
        self,
        start: datetime,
        end: datetime,
        *,
        include_start: bool = False,
        include_end: bool = False,
    ) -> Iterator[datetime]:
        """Returns a lazy iterator of occurrences where `start < occurrence < end`.

        Either bound becomes inclusive with `include_start` / `include_end`.
        """
        return _between(
            self._data,
            start,
            end,
            self._policy,
            include_start=include_start,
            include_end=include_end,
        )

    def just_before(self, dt: datetime, inclusive: bool = False) -> datetime | None:
        return _just_before(self._data, dt, self._policy, inclusive)

    def just_after(self, dt: datetime, inclusive: bool = False) -> datetime | None:
        return _just_after(self._data, dt, self._policy, inclusive)

    # --- Accessors ---

    @property
    def data(self) -> RRuleSetData:
        return self._data

    @property
    def policy(self) -> AmbiguityPolicy:
        return self._policy

    @property
    def dtstart(self) -> datetime:
        return self._data.dtstart

    @property
    def timezone(self) -> str | None:
        return self._data.tz

    @property
    def rrules(self) -> tuple[RRule, ...]:
        return self._data.rrules

    @property
    def exrules(self) -> tuple[RRule, ...]:
        return self._data.exrules

    def __str__(self) -> str:
        return display(self._data)

    def __repr__(self) -> str:
        return f"RRuleSet({display(self._data)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RRuleSet):
            return NotImplemented
        return self._data == other._data and self._policy == other._policy

    def __hash__(self) -> int:
        return hash((self._data, self._policy))


__all__ = [
    "RRuleSet",
    "RRuleSetData",
    "RRule",
    "NWeekday",
    "Weekday",
    "Frequency",
    "ExplicitDate",
    "AmbiguityPolicy",
    "FoldPolicy",
    "GapPolicy",
    "Unique",
    "Gap",
    "Fold",
    "offsets_for",
    "RuleIterator",
    "IterState",
    "MAX_EMPTY_PERIODS",
    "RRuleError",
    "ParseError",
    "AmbiguousTimeError",
    "InvalidTimeError",
    "Span",
    "parse_rule",
    "parse_instant",
    "format_instant",
    "display_rule",
]
