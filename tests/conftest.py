from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from rrulekit import AmbiguityPolicy, RRuleSet, format_instant

CONFORMANCE_PATH = Path(__file__).parent / "conformance.json"


def load_conformance() -> dict:  # type: ignore[type-arg]
    with open(CONFORMANCE_PATH) as f:
        return json.load(f)


def formatted(results: list[datetime]) -> list[str]:
    return [format_instant(dt) for dt in results]


def zoned(tz_name: str, *fields: int, fold: int = 0) -> datetime:
    """Build an aware datetime from wall-clock fields in the named zone."""
    return datetime(*fields, tzinfo=ZoneInfo(tz_name), fold=fold)  # type: ignore[misc]


@pytest.fixture(scope="session")
def conformance() -> dict:  # type: ignore[type-arg]
    return load_conformance()


@pytest.fixture
def daily_set() -> RRuleSet:
    return RRuleSet.parse("DTSTART:19970902T090000\nRRULE:FREQ=DAILY;COUNT=10")


@pytest.fixture
def lenient() -> AmbiguityPolicy:
    return AmbiguityPolicy.from_options("pick-earlier-on-fold", "shift-forward-on-gap")
