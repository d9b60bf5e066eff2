"""A1-style coordinate helpers shared by the cell model and the calc engine."""

from __future__ import annotations

import re

from cellxl._errors import (
    InvalidAreaError,
    InvalidCellNameError,
    InvalidColumnNameError,
    InvalidColumnNumberError,
)

MAX_COLUMNS = 16384
MAX_ROWS = 1048576
TOTAL_CELL_CHARS = 32767
TOTAL_SHEET_HYPERLINKS = 65530
MAX_ROW_HEIGHT = 409
MAX_COLUMN_NAME_LENGTH = 3

_CELL_NAME_RE = re.compile(r"^\$?([A-Za-z]+)\$?(\d+)$")


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------


def column_name_to_number(name: str) -> int:
    """``"A"`` -> 1, ``"AK"`` -> 37, ``"XFD"`` -> 16384."""
    if not name or len(name) > MAX_COLUMN_NAME_LENGTH:
        raise InvalidColumnNameError(name)
    col = 0
    for ch in name.upper():
        if not "A" <= ch <= "Z":
            raise InvalidColumnNameError(name)
        col = col * 26 + (ord(ch) - ord("A") + 1)
    if col > MAX_COLUMNS:
        raise InvalidColumnNameError(name)
    return col


def column_number_to_name(num: int) -> str:
    """1 -> ``"A"``, 37 -> ``"AK"``."""
    if num < 1 or num > MAX_COLUMNS:
        raise InvalidColumnNumberError(num)
    letters: list[str] = []
    while num > 0:
        num, rem = divmod(num - 1, 26)
        letters.append(chr(ord("A") + rem))
    return "".join(reversed(letters))


# ---------------------------------------------------------------------------
# Cells
# ---------------------------------------------------------------------------


def split_cell_name(cell: str) -> tuple[str, int]:
    """Split ``"AK74"`` into ``("AK", 74)``. ``$`` anchors are dropped."""
    m = _CELL_NAME_RE.match(cell)
    if not m:
        raise InvalidCellNameError(cell)
    row = int(m.group(2))
    if row < 1:
        raise InvalidCellNameError(cell)
    return m.group(1).upper(), row


def cell_name_to_coordinates(cell: str) -> tuple[int, int]:
    """``"Z3"`` -> ``(26, 3)`` as ``(col, row)``, both 1-based."""
    col_name, row = split_cell_name(cell)
    if len(col_name) > MAX_COLUMN_NAME_LENGTH or row > MAX_ROWS:
        raise InvalidCellNameError(cell)
    try:
        col = column_name_to_number(col_name)
    except InvalidColumnNameError as exc:
        raise InvalidCellNameError(cell) from exc
    return col, row


def coordinates_to_cell_name(col: int, row: int, absolute: bool = False) -> str:
    """``(26, 3)`` -> ``"Z3"``; with *absolute* -> ``"$Z$3"``."""
    if row < 1 or row > MAX_ROWS:
        raise InvalidCellNameError(f"({col}, {row})")
    name = column_number_to_name(col)
    if absolute:
        return f"${name}${row}"
    return f"{name}{row}"


# ---------------------------------------------------------------------------
# Areas
# ---------------------------------------------------------------------------


def sort_coordinates(coordinates: list[int]) -> None:
    """Normalize ``[x1, y1, x2, y2]`` in place so x1 <= x2 and y1 <= y2."""
    if len(coordinates) != 4:
        raise ValueError("coordinates length must be 4")
    if coordinates[2] < coordinates[0]:
        coordinates[0], coordinates[2] = coordinates[2], coordinates[0]
    if coordinates[3] < coordinates[1]:
        coordinates[1], coordinates[3] = coordinates[3], coordinates[1]


def area_ref_to_coordinates(ref: str) -> list[int]:
    """``"A1:B3"`` -> ``[1, 1, 2, 3]`` in the order written (not sorted)."""
    parts = ref.split(":")
    if len(parts) != 2:
        raise InvalidAreaError(ref)
    first = cell_name_to_coordinates(parts[0])
    last = cell_name_to_coordinates(parts[1])
    return [first[0], first[1], last[0], last[1]]


def coordinates_to_area_ref(coordinates: list[int]) -> str:
    if len(coordinates) != 4:
        raise ValueError("coordinates length must be 4")
    first = coordinates_to_cell_name(coordinates[0], coordinates[1])
    last = coordinates_to_cell_name(coordinates[2], coordinates[3])
    return f"{first}:{last}"


def cell_in_ref(cell: tuple[int, int], ref: list[int]) -> bool:
    """True if the ``(col, row)`` pair lies inside ``[x1, y1, x2, y2]``."""
    return ref[0] <= cell[0] <= ref[2] and ref[1] <= cell[1] <= ref[3]


def check_cell_in_area(cell: str, area: str) -> bool:
    """True if *cell* lies inside *area*.

    The area is taken corner-to-corner as written: ``"D6:A1"`` spans nothing,
    so callers that accept user input should sort the area first.
    """
    coordinates = cell_name_to_coordinates(cell)
    parts = area.split(":")
    if len(parts) == 1:
        parts.append(parts[0])
    if len(parts) != 2:
        raise InvalidAreaError(area)
    return cell_in_ref(coordinates, area_ref_to_coordinates(f"{parts[0]}:{parts[1]}"))


def is_overlap(rect1: list[int], rect2: list[int]) -> bool:
    """True if two sorted ``[x1, y1, x2, y2]`` rectangles share any cell."""
    return (
        rect1[0] <= rect2[2]
        and rect2[0] <= rect1[2]
        and rect1[1] <= rect2[3]
        and rect2[1] <= rect1[3]
    )
