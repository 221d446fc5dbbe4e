from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ._error import AmbiguousTimeError, InvalidTimeError, ParseError

logger = logging.getLogger(__name__)

UTC_ZONE = "UTC"

# IANA names for UTC itself. All of them are stored and displayed as "UTC".
_UTC_ALIASES = frozenset(
    {"UTC", "ETC/UTC", "UCT", "ETC/UCT", "UNIVERSAL", "ETC/UNIVERSAL", "ZULU", "ETC/ZULU"}
)

# =============================================================================
# Wall-clock to instant resolution
# =============================================================================
# zoneinfo follows PEP 495: a naive time attached to a zone with fold=0 takes
# the offset in force before a transition, fold=1 the offset after it.
#
# 1. Both folds give the same offset: the time is Unique.
# 2. They differ and fold=0 round-trips through UTC back to the same wall
#    clock: the time occurs twice (Fold), earliest occurrence at fold=0.
# 3. They differ and it does not round-trip: the time was skipped (Gap).
#    Mapping it with the pre-transition offset lands after the gap, shifted
#    forward by the gap's length (02:30 -> 03:30 for a one-hour gap).
# =============================================================================


class FoldPolicy(Enum):
    ERROR = "error-on-fold"
    EARLIER = "pick-earlier-on-fold"
    LATER = "pick-later-on-fold"


class GapPolicy(Enum):
    ERROR = "error-on-gap"
    SKIP = "skip-on-gap"
    SHIFT_FORWARD = "shift-forward-on-gap"


@dataclass(frozen=True, slots=True)
class AmbiguityPolicy:
    """How ambiguous (fold) and non-existent (gap) wall-clock times resolve.

    Applies to a whole evaluation. The default refuses to guess in either case.
    """

    fold: FoldPolicy = FoldPolicy.ERROR
    gap: GapPolicy = GapPolicy.ERROR

    @classmethod
    def from_options(cls, *options: str) -> AmbiguityPolicy:
        """Build a policy from option tokens such as ``"pick-earlier-on-fold"``."""
        fold: FoldPolicy | None = None
        gap: GapPolicy | None = None
        for option in options:
            token = option.strip().lower()
            if token in _FOLD_OPTIONS:
                if fold is not None and fold != _FOLD_OPTIONS[token]:
                    raise ParseError(f"conflicting fold options: {fold.value}, {token}")
                fold = _FOLD_OPTIONS[token]
            elif token in _GAP_OPTIONS:
                if gap is not None and gap != _GAP_OPTIONS[token]:
                    raise ParseError(f"conflicting gap options: {gap.value}, {token}")
                gap = _GAP_OPTIONS[token]
            else:
                raise ParseError(f"unknown ambiguity option '{option}'")
        return cls(fold=fold or FoldPolicy.ERROR, gap=gap or GapPolicy.ERROR)

    @property
    def options(self) -> tuple[str, str]:
        return (self.fold.value, self.gap.value)


_FOLD_OPTIONS = {p.value: p for p in FoldPolicy}
_GAP_OPTIONS = {p.value: p for p in GapPolicy}

DEFAULT_POLICY = AmbiguityPolicy()


# --- Classification ---


@dataclass(frozen=True, slots=True)
class Unique:
    offset: timedelta


@dataclass(frozen=True, slots=True)
class Gap:
    before: timedelta
    after: timedelta


@dataclass(frozen=True, slots=True)
class Fold:
    early: timedelta
    late: timedelta


LocalTimeKind = Unique | Gap | Fold


@lru_cache(maxsize=None)
def get_zone(zone_id: str) -> ZoneInfo:
    try:
        return ZoneInfo(zone_id)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ParseError(f"unknown time zone '{zone_id}'", field="TZID") from exc


def canonical_zone(zone_id: str) -> str:
    return UTC_ZONE if zone_id.upper() in _UTC_ALIASES else zone_id


def utc_offset(aware: datetime) -> timedelta:
    """Offset of an aware datetime from UTC, honouring `fold`."""
    return aware.replace(tzinfo=None) - aware.astimezone(timezone.utc).replace(tzinfo=None)


def classify(zone: ZoneInfo, civil: datetime) -> LocalTimeKind:
    first = civil.replace(tzinfo=zone, fold=0)
    early = utc_offset(first)
    late = utc_offset(civil.replace(tzinfo=zone, fold=1))
    if early == late:
        return Unique(early)
    round_trip = first.astimezone(timezone.utc).astimezone(zone).replace(tzinfo=None)
    if round_trip == civil:
        return Fold(early, late)
    return Gap(early, late)


def offsets_for(zone_id: str, civil: datetime) -> LocalTimeKind:
    """Lookup-service surface: classify `civil` in the named zone."""
    if canonical_zone(zone_id) == UTC_ZONE:
        return Unique(timedelta(0))
    return classify(get_zone(zone_id), civil)


def resolve(
    zone_id: str | None,
    civil: datetime,
    policy: AmbiguityPolicy = DEFAULT_POLICY,
) -> datetime | None:
    """Map a wall-clock time to an instant in `zone_id`.

    Floating values (no zone) stay naive. Returns None when the policy drops
    a gap time. Raises AmbiguousTimeError / InvalidTimeError under the
    error policies.
    """
    if zone_id is None:
        return civil
    zone = get_zone(zone_id)
    if canonical_zone(zone_id) == UTC_ZONE:
        return civil.replace(tzinfo=zone)

    match classify(zone, civil):
        case Unique():
            return civil.replace(tzinfo=zone, fold=0)
        case Fold(early=early, late=late):
            match policy.fold:
                case FoldPolicy.ERROR:
                    raise AmbiguousTimeError(civil, zone_id, early, late)
                case FoldPolicy.EARLIER:
                    logger.debug("picking earlier offset for %s in %s", civil, zone_id)
                    return civil.replace(tzinfo=zone, fold=0)
                case FoldPolicy.LATER:
                    logger.debug("picking later offset for %s in %s", civil, zone_id)
                    return civil.replace(tzinfo=zone, fold=1)
        case Gap(before=before, after=after):
            match policy.gap:
                case GapPolicy.ERROR:
                    raise InvalidTimeError(civil, zone_id, before, after)
                case GapPolicy.SKIP:
                    logger.debug("skipping non-existent time %s in %s", civil, zone_id)
                    return None
                case GapPolicy.SHIFT_FORWARD:
                    shifted = civil.replace(tzinfo=zone, fold=0).astimezone(timezone.utc)
                    logger.debug("shifting non-existent time %s in %s forward", civil, zone_id)
                    return shifted.astimezone(zone)
    return None  # pragma: no cover


def earliest_instant(zone_id: str | None, civil: datetime) -> datetime:
    """Earliest instant key any policy could resolve `civil` to.

    Never raises for gap or fold times, so a candidate can be checked
    against UNTIL or a query bound before it is resolved. Gap times only
    ever map forward with the pre-transition offset.
    """
    if zone_id is None:
        return civil
    if canonical_zone(zone_id) == UTC_ZONE:
        return civil.replace(tzinfo=timezone.utc)
    match classify(get_zone(zone_id), civil):
        case Unique(offset=offset):
            pass
        case Fold(early=early, late=late):
            offset = max(early, late)
        case Gap(before=before):
            offset = before
    return (civil - offset).replace(tzinfo=timezone.utc)


def instant_key(dt: datetime) -> datetime:
    """Total-order key for instants: UTC for aware values, the value itself when floating.

    Aware datetimes sharing a tzinfo compare by wall clock and ignore `fold`,
    so ordering and equality always go through this key.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc)
