from __future__ import annotations

from dataclasses import dataclass

from ._error import ParseError, Span

# --- Tokens ---


@dataclass(frozen=True, slots=True)
class Param:
    name: str
    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class ContentLine:
    """One unfolded `NAME;PARAM=VALUE:value` line."""

    name: str
    params: tuple[Param, ...]
    value: str
    span: Span
    value_span: Span


@dataclass(frozen=True, slots=True)
class RulePart:
    """One `KEY=VALUE` pair of a recurrence rule."""

    key: str
    value: str
    span: Span
    value_span: Span


@dataclass(frozen=True, slots=True)
class ListItem:
    """One comma-separated element of a property or rule-part value."""

    text: str
    span: Span


class _Lexer:
    def __init__(self, input_text: str) -> None:
        self._input = input_text

    def tokenize(self) -> list[ContentLine]:
        lines: list[ContentLine] = []
        for chars, positions in self._logical_lines():
            if not "".join(chars).strip():
                continue
            lines.append(self._lex_line("".join(chars), positions))
        return lines

    def _logical_lines(self) -> list[tuple[list[str], list[int]]]:
        """Split on line breaks and unfold RFC 5545 continuation lines,
        keeping each character's offset in the original input."""
        logical: list[tuple[list[str], list[int]]] = []
        chars: list[str] = []
        positions: list[int] = []
        pos = 0
        text = self._input
        while pos < len(text):
            ch = text[pos]
            if ch in "\r\n":
                nxt = pos + 1
                if ch == "\r" and nxt < len(text) and text[nxt] == "\n":
                    nxt += 1
                if nxt < len(text) and text[nxt] in " \t" and chars:
                    pos = nxt + 1
                    continue
                logical.append((chars, positions))
                chars, positions = [], []
                pos = nxt
                continue
            chars.append(ch)
            positions.append(pos)
            pos += 1
        logical.append((chars, positions))
        return logical

    def _span(self, positions: list[int], start: int, end: int) -> Span:
        if start >= len(positions):
            end_pos = positions[-1] + 1 if positions else 0
            return Span(end_pos, end_pos)
        last = max(end - 1, start)
        last = min(last, len(positions) - 1)
        return Span(positions[start], positions[last] + 1)

    def _lex_line(self, line: str, positions: list[int]) -> ContentLine:
        stripped_start = len(line) - len(line.lstrip())
        stripped_end = len(line.rstrip())
        line_span = self._span(positions, stripped_start, stripped_end)

        colon = _find_unquoted(line, ":")
        if colon == -1:
            head = line[stripped_start:stripped_end]
            if "=" in head.split(";", 1)[0]:
                value_span = self._span(positions, stripped_start, stripped_end)
                return ContentLine("RRULE", (), head, line_span, value_span)
            raise ParseError.lex("expected ':' after property name", line_span, self._input)

        segments = _split_unquoted(line[:colon], ";")
        name = segments[0][1].strip()
        name_start = segments[0][0]
        if not name or not all(ch.isalnum() or ch == "-" for ch in name):
            raise ParseError.lex(
                f"invalid property name '{name}'",
                self._span(positions, name_start, colon),
                self._input,
            )

        params: list[Param] = []
        for offset, segment in segments[1:]:
            span = self._span(positions, offset, offset + len(segment))
            key, sep, value = segment.partition("=")
            if not sep or not key.strip():
                raise ParseError.lex(f"malformed parameter '{segment}'", span, self._input)
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]
            params.append(Param(key.strip().upper(), value, span))

        value_start = colon + 1
        while value_start < stripped_end and line[value_start] in " \t":
            value_start += 1
        return ContentLine(
            name.upper(),
            tuple(params),
            line[value_start:stripped_end],
            line_span,
            self._span(positions, value_start, stripped_end),
        )


def _find_unquoted(s: str, ch: str) -> int:
    quoted = False
    for i, c in enumerate(s):
        if c == '"':
            quoted = not quoted
        elif c == ch and not quoted:
            return i
    return -1


def _split_unquoted(s: str, sep: str) -> list[tuple[int, str]]:
    """Split on `sep` outside double quotes, keeping each piece's offset."""
    pieces: list[tuple[int, str]] = []
    start = 0
    while True:
        idx = _find_unquoted(s[start:], sep)
        if idx == -1:
            pieces.append((start, s[start:]))
            return pieces
        pieces.append((start, s[start : start + idx]))
        start += idx + 1


def tokenize(input_text: str) -> list[ContentLine]:
    return _Lexer(input_text).tokenize()


def split_rule(line: ContentLine, input_text: str) -> list[RulePart]:
    """Split an RRULE/EXRULE value into its `KEY=VALUE` parts."""
    parts: list[RulePart] = []
    base = line.value_span.start
    for offset, segment in _split_unquoted(line.value, ";"):
        if not segment.strip():
            continue
        span = Span(base + offset, base + offset + len(segment))
        key, sep, value = segment.partition("=")
        if not sep:
            raise ParseError(f"expected KEY=VALUE, got '{segment.strip()}'", span, input_text)
        value_offset = base + offset + len(key) + 1
        parts.append(
            RulePart(
                key.strip().upper(),
                value.strip(),
                span,
                Span(value_offset, value_offset + len(value)),
            )
        )
    return parts


def split_list(value: str, value_span: Span) -> list[ListItem]:
    items: list[ListItem] = []
    for offset, piece in _split_unquoted(value, ","):
        start = value_span.start + offset
        items.append(ListItem(piece.strip(), Span(start, start + len(piece))))
    return items

