"""Render numeric cell values through Excel number format codes.

Covers the formats spreadsheets use day to day: General, fixed decimals,
thousands separators, percent, scientific, literal text, sign sections and
date/time codes. Fractions, locale tags and fill characters are not rendered;
colors and conditions are ignored.
"""

from __future__ import annotations

import datetime
import math
import re
from decimal import ROUND_HALF_UP, Decimal

from openpyxl.styles.numbers import is_date_format
from openpyxl.utils.datetime import from_excel

from cellxl._cell import is_numeric

_MONTH_NAMES = [
    "", "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
_DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

_DATE_TOKEN_RE = re.compile(
    r'"[^"]*"|\\.|\[h+\]|\[m+\]|\[s+\]|\[[^\]]*\]|AM/PM|A/P|'
    r"y+|m+|d+|h+|s+|\.0+|.",
    re.IGNORECASE,
)
_PLACEHOLDERS = "0#?"


def render(value: str, code: str | None) -> str:
    """Format the raw cell text *value* with the number format *code*."""
    if not code or code.lower() == "general":
        return value
    numeric, _ = is_numeric(value)
    if not numeric:
        return value
    number = float(value)
    section, signed = _pick_section(_split_sections(code), number)
    if section.strip() == "@" or section.lower() == "general":
        return value
    if is_date_format(section):
        # Dates before the epoch have no calendar rendering.
        return _render_date(number, section) if number >= 0 else value
    return _render_number(number, section, signed)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _split_sections(code: str) -> list[str]:
    sections: list[str] = []
    current: list[str] = []
    in_quotes = False
    escaped = False
    for ch in code:
        if escaped:
            current.append(ch)
            escaped = False
            continue
        if ch == "\\":
            escaped = True
        elif ch == '"':
            in_quotes = not in_quotes
        elif ch == ";" and not in_quotes:
            sections.append("".join(current))
            current = []
            continue
        current.append(ch)
    sections.append("".join(current))
    return sections


def _pick_section(sections: list[str], number: float) -> tuple[str, bool]:
    """Section for *number* and whether it still has to print the minus sign."""
    if len(sections) == 1 or (number > 0) or (number == 0 and len(sections) == 2):
        return sections[0], True
    if number < 0:
        return sections[1], False
    return sections[2], True


def _units(section: str) -> list[tuple[str, bool]]:
    """Split a section into ``(char, is_literal)`` units."""
    units: list[tuple[str, bool]] = []
    i = 0
    while i < len(section):
        ch = section[i]
        if ch == '"':
            end = section.find('"', i + 1)
            end = len(section) if end < 0 else end
            units.extend((c, True) for c in section[i + 1:end])
            i = end + 1
            continue
        if ch == "\\" and i + 1 < len(section):
            units.append((section[i + 1], True))
            i += 2
            continue
        if ch == "_" and i + 1 < len(section):
            units.append((" ", True))
            i += 2
            continue
        if ch == "*" and i + 1 < len(section):
            i += 2
            continue
        if ch == "[":
            end = section.find("]", i)
            i = len(section) if end < 0 else end + 1
            continue
        units.append((ch, False))
        i += 1
    return units


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def _render_number(number: float, section: str, signed: bool) -> str:
    units = _units(section)
    positions = [i for i, (ch, lit) in enumerate(units) if not lit and ch in _PLACEHOLDERS]
    text_of = lambda part: "".join(ch for ch, _ in part)  # noqa: E731
    if not positions:
        return text_of(units)
    first, last = positions[0], positions[-1]
    prefix, pattern, suffix = units[:first], text_of(units[first:last + 1]), units[last + 1:]
    # A trailing group separator directly after the digits scales by 1000.
    while suffix and suffix[0] == (",", False):
        number /= 1000
        suffix = suffix[1:]
    for ch, lit in units:
        if ch == "%" and not lit:
            number *= 100
    negative = number < 0 and signed
    if "E" in pattern.upper():
        body = _render_scientific(abs(number), pattern)
    else:
        body = _render_fixed(abs(number), pattern)
    sign = "-" if negative and body.strip("0.,") else ""
    return sign + text_of(prefix) + body + text_of(suffix)


def _render_fixed(number: float, pattern: str) -> str:
    int_pattern, _, frac_pattern = pattern.partition(".")
    grouping = "," in int_pattern
    decimals = sum(1 for ch in frac_pattern if ch in _PLACEHOLDERS)
    required = frac_pattern.count("0")
    min_int = int_pattern.count("0")

    text = _round_half_up(number, decimals)
    int_text, _, frac_text = text.partition(".")
    if int_text == "0" and min_int == 0:
        int_text = ""
    int_text = int_text.rjust(min_int, "0")
    if grouping and int_text:
        int_text = f"{int(int_text):,}".rjust(min_int, "0")
    optional = decimals - required
    while optional > 0 and frac_text.endswith("0"):
        frac_text = frac_text[:-1]
        optional -= 1
    if frac_text or pattern.endswith("."):
        return f"{int_text}.{frac_text}"
    return int_text


def _round_half_up(number: float, decimals: int) -> str:
    quantum = Decimal(1).scaleb(-decimals)
    return format(Decimal(repr(number)).quantize(quantum, rounding=ROUND_HALF_UP), "f")


def _render_scientific(number: float, pattern: str) -> str:
    m = re.match(r"([^Ee]*)[Ee]([+-])(.*)", pattern)
    if m is None:
        return _render_fixed(number, pattern)
    mantissa_pattern, sign_mode, exp_pattern = m.groups()
    _, _, frac_pattern = mantissa_pattern.partition(".")
    decimals = sum(1 for ch in frac_pattern if ch in _PLACEHOLDERS)
    exponent = 0 if number == 0 else math.floor(math.log10(number))
    mantissa = number / 10 ** exponent if number else 0.0
    if round(mantissa, decimals) >= 10:
        exponent += 1
        mantissa /= 10
    body = _render_fixed(mantissa, mantissa_pattern)
    exp_sign = "-" if exponent < 0 else ("+" if sign_mode == "+" else "")
    digits = str(abs(exponent)).rjust(exp_pattern.count("0"), "0")
    return f"{body}E{exp_sign}{digits}"


# ---------------------------------------------------------------------------
# Dates and times
# ---------------------------------------------------------------------------


def _render_date(serial: float, section: str) -> str:
    moment = from_excel(serial)
    if isinstance(moment, datetime.time):
        moment = datetime.datetime.combine(datetime.date(1899, 12, 30), moment)
    tokens = _DATE_TOKEN_RE.findall(section)
    twelve_hour = any(t.upper() in ("AM/PM", "A/P") for t in tokens)
    kinds = [_date_kind(t) for t in tokens]

    out: list[str] = []
    for i, token in enumerate(tokens):
        kind = kinds[i]
        lower = token.lower()
        if kind == "m" and (_prev_kind(kinds, i) == "h" or _next_kind(kinds, i) == "s"):
            kind = "minute"
        if token.startswith('"'):
            out.append(token[1:-1])
        elif token.startswith("\\"):
            out.append(token[1:])
        elif lower.startswith("[h"):
            out.append(str(int(serial * 24)).rjust(len(token) - 2, "0"))
        elif lower.startswith("[m"):
            out.append(str(int(serial * 1440)).rjust(len(token) - 2, "0"))
        elif lower.startswith("[s"):
            out.append(str(int(round(serial * 86400))).rjust(len(token) - 2, "0"))
        elif token.startswith("["):
            continue
        elif lower == "am/pm":
            out.append("AM" if moment.hour < 12 else "PM")
        elif lower == "a/p":
            out.append("A" if moment.hour < 12 else "P")
        elif kind == "y":
            out.append(f"{moment.year % 100:02d}" if len(token) <= 2 else f"{moment.year:04d}")
        elif kind == "minute":
            out.append(f"{moment.minute:02d}" if len(token) >= 2 else str(moment.minute))
        elif kind == "m":
            out.append(_month(moment.month, len(token)))
        elif kind == "d":
            out.append(_day(moment, len(token)))
        elif kind == "h":
            hour = (moment.hour % 12 or 12) if twelve_hour else moment.hour
            out.append(f"{hour:02d}" if len(token) >= 2 else str(hour))
        elif kind == "s":
            out.append(f"{moment.second:02d}" if len(token) >= 2 else str(moment.second))
        elif token.startswith(".0"):
            digits = len(token) - 1
            fraction = moment.microsecond / 1_000_000
            out.append(f"{fraction:.{digits}f}"[1:])
        else:
            out.append(token)
    return "".join(out)


def _date_kind(token: str) -> str:
    if token[:1] == "[" and token[1:2].lower() in ("h", "m", "s"):
        return token[1].lower()
    first = token[:1].lower()
    if first in "ymdhs" and token.isalpha():
        return first
    return ""


def _prev_kind(kinds: list[str], i: int) -> str:
    for kind in reversed(kinds[:i]):
        if kind:
            return kind
    return ""


def _next_kind(kinds: list[str], i: int) -> str:
    for kind in kinds[i + 1:]:
        if kind:
            return kind
    return ""


def _month(month: int, width: int) -> str:
    if width == 1:
        return str(month)
    if width == 2:
        return f"{month:02d}"
    if width == 3:
        return _MONTH_NAMES[month][:3]
    if width == 5:
        return _MONTH_NAMES[month][0]
    return _MONTH_NAMES[month]


def _day(moment: datetime.datetime, width: int) -> str:
    if width == 1:
        return str(moment.day)
    if width == 2:
        return f"{moment.day:02d}"
    name = _DAY_NAMES[moment.weekday()]
    return name[:3] if width == 3 else name
