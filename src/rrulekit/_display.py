from __future__ import annotations

import itertools
from datetime import datetime, timezone

from ._ast import ExplicitDate, RRule, RRuleSetData, Weekday
from ._zone import UTC_ZONE, canonical_zone, utc_offset


def display(data: RRuleSetData) -> str:
    lines = [_display_dtstart(data)]
    lines.extend(f"RRULE:{display_rule(rule)}" for rule in data.rrules)
    lines.extend(f"EXRULE:{display_rule(rule)}" for rule in data.exrules)
    lines.extend(_display_dates("RDATE", data.rdates))
    lines.extend(_display_dates("EXDATE", data.exdates))
    return "\n".join(lines)


def display_rule(rule: RRule) -> str:
    parts = [f"FREQ={rule.freq}"]
    if rule.interval != 1:
        parts.append(f"INTERVAL={rule.interval}")
    if rule.count is not None:
        parts.append(f"COUNT={rule.count}")
    if rule.until is not None:
        parts.append(f"UNTIL={_format_value(rule.until)}")
    if rule.week_start != Weekday.MO:
        parts.append(f"WKST={rule.week_start}")
    if rule.by_set_pos:
        parts.append(f"BYSETPOS={_join(rule.by_set_pos)}")
    if rule.by_month:
        parts.append(f"BYMONTH={_join(rule.by_month)}")
    if rule.by_month_day:
        parts.append(f"BYMONTHDAY={_join(rule.by_month_day)}")
    if rule.by_year_day:
        parts.append(f"BYYEARDAY={_join(rule.by_year_day)}")
    if rule.by_week_no:
        parts.append(f"BYWEEKNO={_join(rule.by_week_no)}")
    if rule.by_day:
        parts.append(f"BYDAY={_join(rule.by_day)}")
    if rule.by_hour:
        parts.append(f"BYHOUR={_join(rule.by_hour)}")
    if rule.by_minute:
        parts.append(f"BYMINUTE={_join(rule.by_minute)}")
    if rule.by_second:
        parts.append(f"BYSECOND={_join(rule.by_second)}")
    return ";".join(parts)


def format_instant(dt: datetime) -> str:
    """`YYYY-MM-DDTHH:MM:SS±HH:MM`, `Z` for UTC, no suffix when floating."""
    base = (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
    )
    if dt.tzinfo is None:
        return base
    if dt.tzinfo is timezone.utc or canonical_zone(getattr(dt.tzinfo, "key", "")) == UTC_ZONE:
        return base + "Z"
    total = int(utc_offset(dt).total_seconds())
    sign = "-" if total < 0 else "+"
    hours, rem = divmod(abs(total), 3600)
    return f"{base}{sign}{hours:02d}:{rem // 60:02d}"


def _display_dtstart(data: RRuleSetData) -> str:
    if data.tz is None:
        return f"DTSTART:{_format_civil(data.dtstart)}"
    if data.tz == UTC_ZONE:
        return f"DTSTART:{_format_civil(data.dtstart)}Z"
    return f"DTSTART;TZID={data.tz}:{_format_civil(data.dtstart)}"


def _display_dates(name: str, dates: tuple[ExplicitDate, ...]) -> list[str]:
    # One line per run of same-zone dates, in order.
    lines: list[str] = []
    for tz, group in itertools.groupby(dates, key=lambda d: d.tz):
        suffix = "Z" if tz == UTC_ZONE else ""
        values = ",".join(_format_civil(d.civil) + suffix for d in group)
        if tz is None or tz == UTC_ZONE:
            lines.append(f"{name}:{values}")
        else:
            lines.append(f"{name};TZID={tz}:{values}")
    return lines


def _format_civil(dt: datetime) -> str:
    return f"{dt.year:04d}{dt.month:02d}{dt.day:02d}T{dt.hour:02d}{dt.minute:02d}{dt.second:02d}"


def _format_value(dt: datetime) -> str:
    if dt.tzinfo is None:
        return _format_civil(dt)
    return _format_civil(dt.astimezone(timezone.utc).replace(tzinfo=None)) + "Z"


def _join(values: tuple[object, ...]) -> str:
    return ",".join(str(v) for v in values)
