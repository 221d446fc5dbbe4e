from __future__ import annotations

import heapq
import itertools
import logging
from collections.abc import Iterable, Iterator
from datetime import datetime

from ._ast import ExplicitDate, RRuleSetData
from ._error import RRuleError
from ._iter import RuleIterator
from ._zone import DEFAULT_POLICY, AmbiguityPolicy, earliest_instant, instant_key, resolve

logger = logging.getLogger(__name__)


# --- Stream construction ---


def _explicit_stream(
    dates: tuple[ExplicitDate, ...],
    data: RRuleSetData,
    policy: AmbiguityPolicy,
    horizon: datetime | None = None,
) -> Iterator[datetime]:
    """Resolve explicit dates to instants, in chronological order.

    Floating values are read in DTSTART's zone. Dates past `horizon` are
    dropped unresolved.
    """
    instants: list[datetime] = []
    for explicit in dates:
        zone = explicit.tz if explicit.tz is not None else data.tz
        if horizon is not None and earliest_instant(zone, explicit.civil) > horizon:
            continue
        instant = resolve(zone, explicit.civil, policy)
        if instant is not None:
            instants.append(instant)
    yield from sorted(instants, key=instant_key)


def _dedup(stream: Iterable[datetime]) -> Iterator[datetime]:
    last: datetime | None = None
    for dt in stream:
        key = instant_key(dt)
        if last is not None and key == last:
            continue
        last = key
        yield dt


def _merge(streams: list[Iterator[datetime]]) -> Iterator[datetime]:
    return _dedup(heapq.merge(*streams, key=instant_key))


def _subtract(
    included: Iterator[datetime], excluded: Iterator[datetime]
) -> Iterator[datetime]:
    """Drop instants of `included` that also appear in `excluded`.

    Both inputs are sorted and de-duplicated; the exclusion cursor is only
    advanced as far as the current inclusion needs.
    """
    pending: datetime | None = None
    for dt in included:
        key = instant_key(dt)
        while pending is None or pending < key:
            nxt = next(excluded, None)
            if nxt is None:
                yield dt
                yield from included
                return
            pending = instant_key(nxt)
        if pending == key:
            continue
        yield dt


def occurrences(
    data: RRuleSetData,
    policy: AmbiguityPolicy = DEFAULT_POLICY,
    horizon: datetime | None = None,
) -> Iterator[datetime]:
    """Lazy, chronological, de-duplicated occurrences of a rule set.

    Unbounded when any inclusion rule has neither COUNT nor UNTIL, unless an
    instant key `horizon` caps the search.
    """
    logger.debug(
        "evaluating rule set: %d rrules, %d exrules, %d rdates, %d exdates, policy=%s",
        len(data.rrules),
        len(data.exrules),
        len(data.rdates),
        len(data.exdates),
        ",".join(policy.options),
    )
    inclusions: list[Iterator[datetime]] = [
        RuleIterator(rule, data.dtstart, data.tz, policy, horizon=horizon) for rule in data.rrules
    ]
    inclusions.append(_explicit_stream(data.rdates, data, policy, horizon))

    exclusions: list[Iterator[datetime]] = [
        RuleIterator(rule, data.dtstart, data.tz, policy, horizon=horizon)
        for rule in data.exrules
    ]
    exclusions.append(_explicit_stream(data.exdates, data, policy, horizon))

    merged = _merge(inclusions)
    if not data.exrules and not data.exdates:
        return merged
    return _subtract(merged, _merge(exclusions))


# --- Queries ---


def _bound_key(data: RRuleSetData, dt: datetime) -> datetime:
    if data.is_floating and dt.tzinfo is not None:
        raise RRuleError.query("query bound must be naive for a floating rule set")
    if not data.is_floating and dt.tzinfo is None:
        raise RRuleError.query("query bound must be timezone-aware for a zoned rule set")
    return instant_key(dt)


def take(
    data: RRuleSetData, limit: int, policy: AmbiguityPolicy = DEFAULT_POLICY
) -> list[datetime]:
    if limit < 0:
        raise RRuleError.query(f"limit must not be negative, got {limit}")
    return list(itertools.islice(occurrences(data, policy), limit))


def between(
    data: RRuleSetData,
    start: datetime,
    end: datetime,
    policy: AmbiguityPolicy = DEFAULT_POLICY,
    *,
    include_start: bool = False,
    include_end: bool = False,
) -> Iterator[datetime]:
    """Occurrences between `start` and `end`, exclusive unless flagged otherwise.

    Stops pulling from the rules as soon as `end` is passed.
    """
    start_key = _bound_key(data, start)
    end_key = _bound_key(data, end)
    for dt in occurrences(data, policy, end_key):
        key = instant_key(dt)
        if key > end_key or (key == end_key and not include_end):
            return
        if key > start_key or (key == start_key and include_start):
            yield dt


def just_after(
    data: RRuleSetData,
    dt: datetime,
    policy: AmbiguityPolicy = DEFAULT_POLICY,
    inclusive: bool = False,
) -> datetime | None:
    bound = _bound_key(data, dt)
    for occurrence in occurrences(data, policy):
        key = instant_key(occurrence)
        if key > bound or (inclusive and key == bound):
            return occurrence
    return None


def just_before(
    data: RRuleSetData,
    dt: datetime,
    policy: AmbiguityPolicy = DEFAULT_POLICY,
    inclusive: bool = False,
) -> datetime | None:
    bound = _bound_key(data, dt)
    best: datetime | None = None
    for occurrence in occurrences(data, policy, bound):
        key = instant_key(occurrence)
        if key > bound or (not inclusive and key == bound):
            break
        best = occurrence
    return best
