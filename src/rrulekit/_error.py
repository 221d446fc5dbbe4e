from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal


@dataclass(frozen=True, slots=True)
class Span:
    start: int
    end: int


RRuleErrorKind = Literal["lex", "parse", "ambiguous", "invalid", "query"]


class RRuleError(Exception):
    kind: RRuleErrorKind
    span: Span | None
    input_text: str | None
    field: str | None

    def __init__(
        self,
        kind: RRuleErrorKind,
        message: str,
        span: Span | None = None,
        input_text: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.span = span
        self.input_text = input_text
        self.field = field

    @classmethod
    def query(cls, message: str) -> RRuleError:
        return cls("query", message)

    def display_rich(self) -> str:
        if self.span and self.input_text:
            line_start = self.input_text.rfind("\n", 0, self.span.start) + 1
            line_end = self.input_text.find("\n", self.span.start)
            if line_end == -1:
                line_end = len(self.input_text)
            out = f"error: {self}\n"
            out += f"  {self.input_text[line_start:line_end]}\n"
            padding = " " * (self.span.start - line_start + 2)
            underline = "^" * max(min(self.span.end, line_end) - self.span.start, 1)
            return out + padding + underline
        return f"error: {self}"


class ParseError(RRuleError):
    """Malformed or contradictory rule text."""

    def __init__(
        self,
        message: str,
        span: Span | None = None,
        input_text: str | None = None,
        field: str | None = None,
        kind: RRuleErrorKind = "parse",
    ) -> None:
        super().__init__(kind, message, span, input_text, field)

    @classmethod
    def lex(cls, message: str, span: Span, input_text: str) -> ParseError:
        return cls(message, span, input_text, kind="lex")


class AmbiguousTimeError(RRuleError):
    """A wall-clock time occurs twice in its zone and the policy refuses to pick."""

    civil: datetime
    zone: str
    offsets: tuple[timedelta, timedelta]

    def __init__(self, civil: datetime, zone: str, early: timedelta, late: timedelta) -> None:
        super().__init__(
            "ambiguous",
            f"ambiguous local time {civil.isoformat()} in {zone}: "
            f"offsets {_format_offset(early)} and {_format_offset(late)} both apply",
        )
        self.civil = civil
        self.zone = zone
        self.offsets = (early, late)


class InvalidTimeError(RRuleError):
    """A wall-clock time was skipped by a forward transition in its zone."""

    civil: datetime
    zone: str

    def __init__(self, civil: datetime, zone: str, before: timedelta, after: timedelta) -> None:
        super().__init__(
            "invalid",
            f"invalid local time {civil.isoformat()} in {zone}: skipped when the offset "
            f"changed from {_format_offset(before)} to {_format_offset(after)}",
        )
        self.civil = civil
        self.zone = zone


def _format_offset(offset: timedelta) -> str:
    total = int(offset.total_seconds())
    sign = "-" if total < 0 else "+"
    hours, rem = divmod(abs(total), 3600)
    return f"{sign}{hours:02d}:{rem // 60:02d}"
