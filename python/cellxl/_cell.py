"""Cell records and the value encoders used by the typed setters."""

from __future__ import annotations

import datetime
import enum
import re
from dataclasses import dataclass
from decimal import Decimal

from openpyxl.utils.datetime import to_excel

# Formula kinds (the ``t`` attribute of ``<f>``).
FORMULA_NORMAL = "normal"
FORMULA_SHARED = "shared"
FORMULA_ARRAY = "array"
FORMULA_DATA_TABLE = "dataTable"

FORMULA_TYPES = frozenset({FORMULA_NORMAL, FORMULA_SHARED, FORMULA_ARRAY, FORMULA_DATA_TABLE})

# Builtin number formats applied when a time value lands in an unstyled cell.
DURATION_NUMBER_FORMAT = 21
DATETIME_NUMBER_FORMAT = 22

# Significant digits kept when formatting numeric cell values.
NUMERIC_PRECISION = 15

_NUMERIC_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


class CellType(enum.IntEnum):
    UNSET = 0
    BOOL = 1
    DATE = 2
    ERROR = 3
    NUMBER = 4
    STRING = 5


_TYPE_TAGS: dict[str, CellType] = {
    "b": CellType.BOOL,
    "d": CellType.DATE,
    "n": CellType.NUMBER,
    "e": CellType.ERROR,
    "s": CellType.STRING,
    "str": CellType.STRING,
    "inlineStr": CellType.STRING,
}


def cell_type_from_tag(tag: str) -> CellType:
    return _TYPE_TAGS.get(tag, CellType.UNSET)


@dataclass
class Formula:
    """The ``<f>`` element of a cell.

    Shared formulas store their text only on the master cell, which also
    carries ``ref``; every member of the group carries the same ``si``.
    """

    content: str = ""
    kind: str = FORMULA_NORMAL
    ref: str = ""
    si: int | None = None

    @property
    def is_shared(self) -> bool:
        return self.kind == FORMULA_SHARED


@dataclass
class Cell:
    """One ``<c>`` element. ``value`` is always the raw stored text."""

    ref: str
    style: int = 0
    type: str = ""
    value: str = ""
    inline_string: str | None = None
    formula: Formula | None = None

    def assign(self, type_: str, value: str) -> None:
        """Replace type tag and value together. Caller holds the sheet lock."""
        self.type, self.value = type_, value
        self.inline_string = None

    @property
    def is_blank(self) -> bool:
        return (
            not self.value
            and not self.type
            and self.style == 0
            and self.formula is None
            and self.inline_string is None
        )


@dataclass
class RichTextFont:
    """Run properties (``<rPr>``). Empty or zero fields are left out."""

    bold: bool = False
    italic: bool = False
    strike: bool = False
    underline: str = ""
    family: str = ""
    size: float = 0.0
    # RGB hex without the alpha byte, e.g. "2354E8".
    color: str = ""


@dataclass
class RichTextRun:
    text: str
    font: RichTextFont | None = None


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def is_numeric(text: str) -> tuple[bool, int]:
    """Return ``(numeric, significant_digits)`` for a decimal string."""
    if not _NUMERIC_RE.match(text):
        return False, 0
    mantissa = re.split("[eE]", text)[0].lstrip("+-").replace(".", "")
    digits = mantissa.lstrip("0")
    return True, len(digits)


def format_float(value: float, precision: int = -1) -> str:
    """Positional decimal text for *value*.

    ``precision=-1`` gives the shortest text that round-trips; otherwise the
    number of digits after the decimal point.
    """
    if precision >= 0:
        return f"{value:.{precision}f}"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def round_precision(text: str, digits: int = NUMERIC_PRECISION) -> str:
    """Round a numeric string to *digits* significant digits."""
    return format_float(float(f"{float(text):.{digits}g}"))


# ---------------------------------------------------------------------------
# Value encoders: Python value -> (type tag, raw text)
# ---------------------------------------------------------------------------


def encode_int(value: int) -> tuple[str, str]:
    return "", str(value)


def encode_bool(value: bool) -> tuple[str, str]:
    return "b", "1" if value else "0"


def encode_float(value: float, precision: int = -1) -> tuple[str, str]:
    return "", format_float(value, precision)


def encode_default(value: str) -> tuple[str, str]:
    """Numeric text stays a number, anything else is stored as a formula string."""
    numeric, _ = is_numeric(value)
    if numeric or value == "":
        return "", value
    return "str", value


def encode_duration(value: datetime.timedelta) -> tuple[str, str]:
    return "", format_float(float(to_excel(value)))


def encode_time(
    value: datetime.datetime | datetime.date | datetime.time,
) -> tuple[str, str, bool]:
    """Return ``(type, text, is_serial)`` for a date or time value.

    Values that have no positive Excel serial (before the 1900 epoch) are
    stored as ISO 8601 strings instead.
    """
    if isinstance(value, datetime.datetime) and value.tzinfo is not None:
        value = value.replace(tzinfo=None)
    serial = to_excel(value)
    if serial is None or serial <= 0:
        return "str", value.isoformat(), False
    return "", format_float(float(serial)), True
