from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator
from datetime import datetime
from enum import Enum

from ._ast import RRule
from ._civil import add_period, truncate_to_period
from ._error import RRuleError
from ._generate import CandidateGenerator
from ._zone import DEFAULT_POLICY, AmbiguityPolicy, earliest_instant, instant_key, resolve

logger = logging.getLogger(__name__)

# =============================================================================
# Iteration Safety Limit
# =============================================================================
# MAX_EMPTY_PERIODS (10_000): consecutive periods that may produce nothing
# before the iterator gives up. A rule such as "February 30th" can never
# match; without a ceiling it would search forever.
#
# The ceiling must still reach the sparsest legitimate rules. February 29th
# recurs at most eight years apart (1896 -> 1904), i.e. ~2,900 empty days for
# a DAILY rule, ~96 empty months for MONTHLY. Sub-daily rules jump over whole
# rejected days, so each rejected day costs one period there too.
# =============================================================================

MAX_EMPTY_PERIODS = 10_000


class IterState(Enum):
    SEEKING = "seeking"
    YIELDING = "yielding"
    EXHAUSTED = "exhausted"
    GUARDED_EMPTY = "guarded-empty"


class RuleIterator:
    """Lazy, ordered, de-duplicated occurrences of one rule anchored at DTSTART.

    Yields aware datetimes for zoned rules and naive ones for floating rules.
    The iterator is single-use; re-create it to start again from DTSTART.

    `horizon` is an instant key past which the caller needs nothing more. It
    ends iteration like UNTIL does, so a gap or fold candidate beyond either
    bound never raises under the error policies.
    """

    def __init__(
        self,
        rule: RRule,
        dtstart: datetime,
        tz: str | None = None,
        policy: AmbiguityPolicy = DEFAULT_POLICY,
        max_empty_periods: int = MAX_EMPTY_PERIODS,
        horizon: datetime | None = None,
    ) -> None:
        self.rule = rule
        self.dtstart = dtstart
        self.tz = tz
        self.policy = policy
        self.max_empty_periods = max_empty_periods
        self.state = IterState.SEEKING
        self.yielded = 0

        self._generator = CandidateGenerator(rule, dtstart)
        self._period: datetime | None = truncate_to_period(dtstart, rule.freq, rule.week_start)
        self._buffer: deque[datetime] = deque()
        self._last_key: datetime | None = None
        bounds = [instant_key(rule.until)] if rule.until is not None else []
        if horizon is not None:
            bounds.append(horizon)
        self._stop_key = min(bounds) if bounds else None
        self._bound_reached = False
        self._pending_error: RRuleError | None = None

    def __iter__(self) -> Iterator[datetime]:
        return self

    def __next__(self) -> datetime:
        while True:
            if self._buffer:
                return self._emit(self._buffer.popleft())
            if self._pending_error is not None:
                error, self._pending_error = self._pending_error, None
                self._finish(IterState.EXHAUSTED)
                raise error
            if self.state in (IterState.EXHAUSTED, IterState.GUARDED_EMPTY):
                raise StopIteration
            self.state = IterState.SEEKING
            self._fill()

    def _emit(self, instant: datetime) -> datetime:
        key = instant_key(instant)
        if self._stop_key is not None and key > self._stop_key:
            self._finish(IterState.EXHAUSTED)
            raise StopIteration
        self._last_key = key
        self.yielded += 1
        if self.rule.count is not None and self.yielded >= self.rule.count:
            self._finish(IterState.EXHAUSTED)
        return instant

    def _finish(self, state: IterState) -> None:
        self.state = state
        self._buffer.clear()
        self._pending_error = None

    def _fill(self) -> None:
        """Advance period by period until one yields a resolved candidate."""
        empty = 0
        while self._period is not None:
            if empty > self.max_empty_periods:
                logger.debug(
                    "no %s occurrence within %d periods, giving up",
                    self.rule.freq,
                    self.max_empty_periods,
                )
                self.state = IterState.GUARDED_EMPTY
                return

            period = self._period
            try:
                skip_to = self._generator.coarse_mismatch(period)
            except OverflowError:
                break
            if skip_to is not None:
                self._period = self._advance_past(period, skip_to)
                empty += 1
                continue

            try:
                resolved = self._resolve_all(self._generator.generate(period))
            except OverflowError:
                break
            if self._bound_reached:
                logger.debug("%s rule passed its bound", self.rule.freq)
                self._buffer.extend(resolved)
                self.state = IterState.EXHAUSTED
                return
            self._period = self._advance(period)
            if resolved or self._pending_error is not None:
                self._buffer.extend(resolved)
                self.state = IterState.YIELDING
                return
            empty += 1

        logger.debug("calendar end reached for %s rule", self.rule.freq)
        self.state = IterState.EXHAUSTED

    def _resolve_all(self, candidates: list[datetime]) -> list[datetime]:
        """Resolve a period's candidates to instants, sorted and de-duplicated.

        A resolution error is held back until the instants before it are out.
        Candidates past the stop key end the rule before they are resolved.
        """
        instants: dict[datetime, datetime] = {}
        for civil in candidates:
            if self._stop_key is not None and earliest_instant(self.tz, civil) > self._stop_key:
                self._bound_reached = True
                break
            try:
                instant = resolve(self.tz, civil, self.policy)
            except RRuleError as exc:
                self._pending_error = exc
                break
            if instant is None:
                continue
            key = instant_key(instant)
            if self._last_key is not None and key <= self._last_key:
                continue
            instants.setdefault(key, instant)
        return [instants[key] for key in sorted(instants)]

    def _advance(self, period: datetime) -> datetime | None:
        try:
            return add_period(period, self.rule.freq, self.rule.interval)
        except (OverflowError, ValueError):
            return None

    def _advance_past(self, period: datetime, boundary: datetime) -> datetime | None:
        """First interval-aligned period at or after `boundary`."""
        try:
            step = add_period(period, self.rule.freq, 1) - period
            steps = -(-(boundary - period) // (step * self.rule.interval))
            return period + steps * self.rule.interval * step
        except OverflowError:
            return None
