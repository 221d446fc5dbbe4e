from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from ._ast import ExplicitDate, Frequency, NWeekday, RRule, RRuleSetData, Weekday
from ._error import ParseError, Span
from ._lexer import ContentLine, Param, RulePart, split_list, split_rule, tokenize
from ._zone import (
    DEFAULT_POLICY,
    UTC_ZONE,
    AmbiguityPolicy,
    FoldPolicy,
    GapPolicy,
    canonical_zone,
    get_zone,
    instant_key,
    resolve,
)

# Bounds are read inclusively: both occurrences of a folded UNTIL count.
_BOUND_POLICY = AmbiguityPolicy(fold=FoldPolicy.LATER, gap=GapPolicy.SHIFT_FORWARD)

_INT_PARTS: dict[str, tuple[int, int, bool]] = {
    # part: (low, high, signed)
    "BYSECOND": (0, 59, False),
    "BYMINUTE": (0, 59, False),
    "BYHOUR": (0, 23, False),
    "BYMONTH": (1, 12, False),
    "BYMONTHDAY": (1, 31, True),
    "BYYEARDAY": (1, 366, True),
    "BYWEEKNO": (1, 53, True),
    "BYSETPOS": (1, 366, True),
}

_PART_FIELDS = {
    "BYSECOND": "by_second",
    "BYMINUTE": "by_minute",
    "BYHOUR": "by_hour",
    "BYMONTH": "by_month",
    "BYMONTHDAY": "by_month_day",
    "BYYEARDAY": "by_year_day",
    "BYWEEKNO": "by_week_no",
    "BYSETPOS": "by_set_pos",
}

_KNOWN_PARTS = frozenset(
    {"FREQ", "INTERVAL", "COUNT", "UNTIL", "WKST", "BYDAY", "BYWEEKDAY", *_INT_PARTS}
)


# --- Values ---


def parse_datetime_value(text: str) -> tuple[datetime, bool, bool]:
    """Parse `YYYYMMDD[THHMMSS[Z]]` into (civil, is_utc, is_date).

    Raises ValueError on malformed or out-of-range values.
    """
    value = text.strip().upper()
    is_utc = value.endswith("Z")
    if is_utc:
        value = value[:-1]
    date_part, sep, time_part = value.partition("T")
    if len(date_part) != 8 or not date_part.isdigit():
        raise ValueError(f"expected YYYYMMDD date, got '{text}'")
    year, month, day = int(date_part[:4]), int(date_part[4:6]), int(date_part[6:])
    if not sep:
        if is_utc:
            raise ValueError(f"'Z' needs a time part, got '{text}'")
        return datetime(year, month, day), False, True
    if len(time_part) != 6 or not time_part.isdigit():
        raise ValueError(f"expected HHMMSS time, got '{text}'")
    hour, minute, second = int(time_part[:2]), int(time_part[2:4]), int(time_part[4:])
    return datetime(year, month, day, hour, minute, second), is_utc, False


def parse_instant(text: str, zone: str | None = None) -> datetime:
    """Read back a `YYYY-MM-DDTHH:MM:SS±HH:MM` (or `Z`) instant.

    With a zone the result is expressed in that zone, keeping the instant;
    without one, an offset-less value is returned floating.
    """
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ParseError(f"invalid instant '{text}'") from exc
    if dt.tzinfo is None:
        if zone is not None:
            raise ParseError(f"instant '{text}' has no UTC offset")
        return dt
    if zone is None:
        return dt
    return dt.astimezone(get_zone(zone))


def zone_of(dt: datetime) -> str | None:
    """Zone identifier for a datetime's tzinfo: None when naive."""
    tz: tzinfo | None = dt.tzinfo
    if tz is None:
        return None
    if tz is timezone.utc:
        return UTC_ZONE
    if isinstance(tz, ZoneInfo) and tz.key:
        return canonical_zone(tz.key)
    raise ParseError(f"unsupported tzinfo {tz!r}: use zoneinfo.ZoneInfo or timezone.utc")


# --- Validation ---


def validate_rule(rule: RRule, data: RRuleSetData) -> None:
    """Check a rule against RFC 5545 constraints and its rule set's DTSTART."""
    freq = rule.freq
    if rule.interval < 1:
        raise ParseError(f"INTERVAL must be at least 1, got {rule.interval}", field="INTERVAL")
    if rule.count is not None and rule.until is not None:
        raise ParseError("COUNT and UNTIL are mutually exclusive", field="UNTIL")
    if rule.count is not None and rule.count < 1:
        raise ParseError(f"COUNT must be at least 1, got {rule.count}", field="COUNT")

    for part, (low, high, signed) in _INT_PARTS.items():
        for value in getattr(rule, _PART_FIELDS[part]):
            magnitude = abs(value) if signed else value
            if value == 0 and signed or not low <= magnitude <= high:
                bounds = f"±{low}..{high}" if signed else f"{low}..{high}"
                raise ParseError(f"{part} value {value} out of range {bounds}", field=part)

    max_ordinal = 5 if freq == Frequency.MONTHLY else 53
    for nwd in rule.by_day:
        if nwd.n is None:
            continue
        if freq not in (Frequency.MONTHLY, Frequency.YEARLY):
            raise ParseError(
                f"BYDAY ordinal '{nwd}' is only allowed with MONTHLY or YEARLY", field="BYDAY"
            )
        if rule.by_week_no:
            raise ParseError(
                f"BYDAY ordinal '{nwd}' cannot be combined with BYWEEKNO", field="BYDAY"
            )
        if nwd.n == 0 or abs(nwd.n) > max_ordinal:
            raise ParseError(
                f"BYDAY ordinal '{nwd}' out of range ±1..{max_ordinal}", field="BYDAY"
            )

    if rule.by_week_no and freq != Frequency.YEARLY:
        raise ParseError("BYWEEKNO is only allowed with YEARLY", field="BYWEEKNO")
    if rule.by_year_day and freq in (Frequency.DAILY, Frequency.WEEKLY, Frequency.MONTHLY):
        raise ParseError(f"BYYEARDAY is not allowed with {freq}", field="BYYEARDAY")
    if rule.by_month_day and freq == Frequency.WEEKLY:
        raise ParseError("BYMONTHDAY is not allowed with WEEKLY", field="BYMONTHDAY")
    if rule.by_set_pos and not rule.has_by_filter:
        raise ParseError("BYSETPOS needs another BYxxx part", field="BYSETPOS")

    if rule.until is not None:
        if data.is_floating and rule.until.tzinfo is not None:
            raise ParseError("UNTIL must be floating when DTSTART is floating", field="UNTIL")
        if not data.is_floating and rule.until.tzinfo is None:
            raise ParseError("UNTIL must be in UTC when DTSTART has a zone", field="UNTIL")
        start = resolve(data.tz, data.dtstart, _BOUND_POLICY)
        if start is not None and instant_key(rule.until) < instant_key(start):
            raise ParseError(
                f"UNTIL {rule.until.isoformat()} is before DTSTART {start.isoformat()}",
                field="UNTIL",
            )


def check_dtstart(data: RRuleSetData, policy: AmbiguityPolicy) -> None:
    """Resolve DTSTART once so an ambiguous or skipped start fails up front."""
    if data.tz is not None:
        get_zone(data.tz)
        resolve(data.tz, data.dtstart, policy)


# --- Parser ---


class _Parser:
    def __init__(self, lines: list[ContentLine], input_text: str) -> None:
        self._lines = lines
        self._input = input_text

    def _error(self, message: str, span: Span, field: str | None = None) -> ParseError:
        return ParseError(message, span, self._input, field)

    def _zone(self, zone_id: str, span: Span) -> str:
        try:
            get_zone(zone_id)
        except ParseError as exc:
            raise self._error(str(exc), span, "TZID") from exc
        return canonical_zone(zone_id)

    def _param(self, line: ContentLine, name: str) -> Param | None:
        found = [p for p in line.params if p.name == name]
        if len(found) > 1:
            raise self._error(f"duplicate {name} parameter", found[1].span, name)
        return found[0] if found else None

    def _check_params(self, line: ContentLine, allowed: tuple[str, ...]) -> None:
        for param in line.params:
            if param.name not in allowed:
                raise self._error(
                    f"unsupported parameter '{param.name}' on {line.name}", param.span, param.name
                )

    def _datetime(self, text: str, span: Span, field: str) -> tuple[datetime, bool, bool]:
        try:
            return parse_datetime_value(text)
        except ValueError as exc:
            raise self._error(f"invalid {field} value: {exc}", span, field) from exc

    # --- Grammar productions ---

    def parse_set(self) -> RRuleSetData:
        dtstart_line: ContentLine | None = None
        rule_lines: list[ContentLine] = []
        exrule_lines: list[ContentLine] = []
        rdate_lines: list[ContentLine] = []
        exdate_lines: list[ContentLine] = []

        for line in self._lines:
            match line.name:
                case "DTSTART":
                    if dtstart_line is not None:
                        raise self._error("DTSTART may only appear once", line.span, "DTSTART")
                    dtstart_line = line
                case "RRULE":
                    rule_lines.append(line)
                case "EXRULE":
                    exrule_lines.append(line)
                case "RDATE":
                    rdate_lines.append(line)
                case "EXDATE":
                    exdate_lines.append(line)
                case _:
                    raise self._error(f"unknown property '{line.name}'", line.span, line.name)

        if dtstart_line is None:
            end = len(self._input)
            raise self._error("missing DTSTART", Span(end, end), "DTSTART")

        data = self._parse_dtstart(dtstart_line)
        return replace(
            data,
            rrules=tuple(self._parse_rule(line, data) for line in rule_lines),
            exrules=tuple(self._parse_rule(line, data) for line in exrule_lines),
            rdates=tuple(d for line in rdate_lines for d in self._parse_dates(line, data)),
            exdates=tuple(d for line in exdate_lines for d in self._parse_dates(line, data)),
        )

    def _parse_dtstart(self, line: ContentLine) -> RRuleSetData:
        self._check_params(line, ("TZID", "VALUE"))
        self._check_value_type(line)
        civil, is_utc, _ = self._datetime(line.value, line.value_span, "DTSTART")
        tzid = self._param(line, "TZID")
        if tzid is not None and is_utc:
            raise self._error("DTSTART cannot have both TZID and a 'Z' suffix", tzid.span, "TZID")
        tz: str | None = None
        if tzid is not None:
            tz = self._zone(tzid.value, tzid.span)
        elif is_utc:
            tz = UTC_ZONE
        return RRuleSetData(dtstart=civil, tz=tz)

    def _check_value_type(self, line: ContentLine) -> None:
        value_type = self._param(line, "VALUE")
        if value_type is not None and value_type.value.upper() not in ("DATE", "DATE-TIME"):
            raise self._error(
                f"unsupported VALUE type '{value_type.value}'", value_type.span, "VALUE"
            )

    def _parse_dates(self, line: ContentLine, data: RRuleSetData) -> list[ExplicitDate]:
        self._check_params(line, ("TZID", "VALUE"))
        self._check_value_type(line)
        tzid = self._param(line, "TZID")
        zone = self._zone(tzid.value, tzid.span) if tzid is not None else None
        dates: list[ExplicitDate] = []
        for item in split_list(line.value, line.value_span):
            civil, is_utc, _ = self._datetime(item.text, item.span, line.name)
            tz = UTC_ZONE if is_utc else zone
            if tz is not None and data.is_floating:
                raise self._error(
                    f"{line.name} '{item.text}' has a zone but DTSTART is floating",
                    item.span,
                    line.name,
                )
            dates.append(ExplicitDate(civil, tz))
        return dates

    def _parse_rule(self, line: ContentLine, data: RRuleSetData) -> RRule:
        if line.params:
            raise self._error(f"{line.name} takes no parameters", line.params[0].span, line.name)
        parts: dict[str, RulePart] = {}
        for part in split_rule(line, self._input):
            key = "BYDAY" if part.key == "BYWEEKDAY" else part.key
            if key not in _KNOWN_PARTS:
                raise self._error(f"unknown rule part '{part.key}'", part.span, part.key)
            if key in parts:
                raise self._error(f"duplicate rule part '{part.key}'", part.span, key)
            parts[key] = part

        if "FREQ" not in parts:
            raise self._error(f"{line.name} is missing FREQ", line.span, "FREQ")
        freq_part = parts["FREQ"]
        freq = Frequency.try_parse(freq_part.value)
        if freq is None:
            raise self._error(
                f"unknown frequency '{freq_part.value}'", freq_part.value_span, "FREQ"
            )

        fields: dict[str, object] = {}
        if "INTERVAL" in parts:
            fields["interval"] = self._int(parts["INTERVAL"])
        if "COUNT" in parts:
            fields["count"] = self._int(parts["COUNT"])
        if "UNTIL" in parts:
            fields["until"] = self._until(parts["UNTIL"], data)
        if "WKST" in parts:
            fields["week_start"] = self._weekday(parts["WKST"])
        if "BYDAY" in parts:
            fields["by_day"] = self._by_day(parts["BYDAY"])
        for key, field in _PART_FIELDS.items():
            if key in parts:
                fields[field] = self._int_list(parts[key])

        rule = RRule(freq, **fields)  # type: ignore[arg-type]
        try:
            validate_rule(rule, data)
        except ParseError as exc:
            if exc.span is not None:
                raise
            target = parts.get(exc.field or "")
            span = target.span if target is not None else line.span
            raise self._error(str(exc), span, exc.field) from None
        return rule

    def _int(self, part: RulePart) -> int:
        try:
            return int(part.value)
        except ValueError:
            raise self._error(
                f"{part.key} expects an integer, got '{part.value}'", part.value_span, part.key
            ) from None

    def _int_list(self, part: RulePart) -> tuple[int, ...]:
        values: list[int] = []
        for item in split_list(part.value, part.value_span):
            try:
                values.append(int(item.text))
            except ValueError:
                raise self._error(
                    f"{part.key} expects integers, got '{item.text}'", item.span, part.key
                ) from None
        return tuple(values)

    def _weekday(self, part: RulePart) -> Weekday:
        wd = Weekday.try_parse(part.value)
        if wd is None:
            raise self._error(f"unknown weekday '{part.value}'", part.value_span, part.key)
        return wd

    def _by_day(self, part: RulePart) -> tuple[NWeekday, ...]:
        days: list[NWeekday] = []
        for item in split_list(part.value, part.value_span):
            text = item.text
            wd = Weekday.try_parse(text[-2:])
            prefix = text[:-2]
            n: int | None = None
            if prefix:
                try:
                    n = int(prefix)
                except ValueError:
                    wd = None
            if wd is None:
                raise self._error(f"invalid BYDAY value '{text}'", item.span, "BYDAY")
            days.append(NWeekday(wd, n))
        return tuple(days)

    def _until(self, part: RulePart, data: RRuleSetData) -> datetime:
        civil, is_utc, is_date = self._datetime(part.value, part.value_span, "UNTIL")
        if is_date:
            civil += timedelta(days=1, seconds=-1)
        if data.is_floating:
            if is_utc:
                raise self._error(
                    "UNTIL must be floating when DTSTART is floating", part.span, "UNTIL"
                )
            return civil
        if is_utc:
            return civil.replace(tzinfo=timezone.utc)
        until = resolve(data.tz, civil, _BOUND_POLICY)
        if until is None:
            raise self._error(f"UNTIL {civil} does not exist in {data.tz}", part.span, "UNTIL")
        return until.astimezone(timezone.utc)


def parse(input_text: str, policy: AmbiguityPolicy = DEFAULT_POLICY) -> RRuleSetData:
    data = _Parser(tokenize(input_text), input_text).parse_set()
    check_dtstart(data, policy)
    return data


def parse_rule(input_text: str, dtstart: datetime) -> RRule:
    """Parse a single `RRULE:` (or bare `FREQ=...`) line against `dtstart`."""
    lines = tokenize(input_text)
    if len(lines) != 1 or lines[0].name not in ("RRULE", "EXRULE"):
        raise ParseError("expected a single RRULE line", Span(0, len(input_text)), input_text)
    data = RRuleSetData(dtstart=dtstart.replace(tzinfo=None), tz=zone_of(dtstart))
    return _Parser(lines, input_text)._parse_rule(lines[0], data)
