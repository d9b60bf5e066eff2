"""Row records, the ``<row>`` codec and grid densification.

A worksheet decoded from XML may skip rows and cells, list cells without an
``r`` attribute, or repeat a row element. :func:`check_sheet` and
:func:`check_row` turn that into a dense grid: ``rows[i].r == i + 1`` and
``rows[i].cells[j]`` is column ``j + 1``. Every setter relies on that shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from xml.etree import ElementTree as ET

from cellxl._cell import Cell
from cellxl._utils import cell_name_to_coordinates, coordinates_to_cell_name
from cellxl._xml import as_bool, decode_cell, encode_cell, q


# Attributes modelled on Row; everything else is carried in ``Row.extra``.
# ``spans`` is dropped since it goes stale after any column edit.
_KNOWN_ATTRS = frozenset(
    {"r", "s", "customFormat", "ht", "customHeight", "hidden", "outlineLevel", "collapsed", "spans"}
)


@dataclass
class Row:
    r: int
    cells: list[Cell] = field(default_factory=list)
    style: int = 0
    custom_format: bool = False
    height: float | None = None
    custom_height: bool = False
    hidden: bool = False
    outline_level: int = 0
    collapsed: bool = False
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def has_attributes(self) -> bool:
        return bool(
            self.style
            or self.custom_format
            or self.height is not None
            or self.custom_height
            or self.hidden
            or self.outline_level
            or self.collapsed
            or self.extra
        )

    def copy(self, r: int) -> Row:
        """Deep copy renumbered to *r*; cell references follow the new row."""
        cells = []
        for cell in self.cells:
            col, _ = cell_name_to_coordinates(cell.ref)
            formula = replace(cell.formula) if cell.formula is not None else None
            cells.append(replace(cell, ref=coordinates_to_cell_name(col, r), formula=formula))
        return Row(
            r=r,
            cells=cells,
            style=self.style,
            custom_format=self.custom_format,
            height=self.height,
            custom_height=self.custom_height,
            hidden=self.hidden,
            outline_level=self.outline_level,
            collapsed=self.collapsed,
            extra=dict(self.extra),
        )


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


def decode_row(row_el: ET.Element) -> Row:
    ht = row_el.get("ht")
    return Row(
        r=int(row_el.get("r", "0")),
        cells=[decode_cell(c_el) for c_el in row_el.findall(q("c"))],
        style=int(row_el.get("s", "0")),
        custom_format=as_bool(row_el.get("customFormat")),
        height=float(ht) if ht is not None else None,
        custom_height=as_bool(row_el.get("customHeight")),
        hidden=as_bool(row_el.get("hidden")),
        outline_level=int(row_el.get("outlineLevel", "0")),
        collapsed=as_bool(row_el.get("collapsed")),
        extra={k: v for k, v in row_el.attrib.items() if k not in _KNOWN_ATTRS},
    )


def encode_row(row: Row) -> ET.Element | None:
    """The ``<row>`` element, or None for a row with nothing worth writing."""
    cells = [cell for cell in row.cells if not cell.is_blank]
    if not cells and not row.has_attributes:
        return None
    row_el = ET.Element(q("row"), {"r": str(row.r)})
    if row.style:
        row_el.set("s", str(row.style))
    if row.custom_format:
        row_el.set("customFormat", "1")
    if row.height is not None:
        row_el.set("ht", _format_height(row.height))
    if row.hidden:
        row_el.set("hidden", "1")
    if row.custom_height:
        row_el.set("customHeight", "1")
    if row.outline_level:
        row_el.set("outlineLevel", str(row.outline_level))
    if row.collapsed:
        row_el.set("collapsed", "1")
    for key, value in row.extra.items():
        row_el.set(key, value)
    row_el.extend(encode_cell(cell) for cell in cells)
    return row_el


def _format_height(height: float) -> str:
    return str(int(height)) if float(height).is_integer() else repr(float(height))


# ---------------------------------------------------------------------------
# Densification
# ---------------------------------------------------------------------------


def check_sheet(rows: list[Row]) -> list[Row]:
    """Return rows ``1..last`` without gaps.

    Row elements without ``r`` follow the previous row; a repeated row number
    merges its cells into the first element; cells whose reference names a
    different row move to that row.
    """
    by_number: dict[int, Row] = {}
    current = 0
    for row in rows:
        current = current + 1 if row.r <= 0 else row.r
        existing = by_number.get(current)
        if existing is not None:
            existing.cells.extend(row.cells)
            continue
        row.r = current
        by_number[current] = row

    for number, row in list(by_number.items()):
        kept: list[Cell] = []
        for cell in row.cells:
            if not cell.ref:
                kept.append(cell)
                continue
            _, cell_row = cell_name_to_coordinates(cell.ref)
            if cell_row == number:
                kept.append(cell)
                continue
            target = by_number.get(cell_row)
            if target is None:
                target = by_number[cell_row] = Row(r=cell_row)
            target.cells.append(cell)
        row.cells = kept

    last = max(by_number, default=0)
    return [by_number.get(r) or Row(r=r) for r in range(1, last + 1)]


def check_row(rows: list[Row]) -> None:
    """Give every cell a reference and lay each row out column by column."""
    for row in rows:
        if not row.cells:
            continue
        col = 0
        columns: list[int] = []
        for cell in row.cells:
            col += 1
            if cell.ref:
                cell_col, _ = cell_name_to_coordinates(cell.ref)
                col = max(col, cell_col)
                columns.append(cell_col)
                continue
            cell.ref = coordinates_to_cell_name(col, row.r)
            columns.append(col)
        if columns == list(range(1, len(columns) + 1)):
            continue
        dense = [Cell(coordinates_to_cell_name(c, row.r)) for c in range(1, max(columns) + 1)]
        for cell, cell_col in zip(row.cells, columns):
            dense[cell_col - 1] = cell
        row.cells = dense


def prepare_sheet(
    rows: list[Row],
    col: int,
    row: int,
    default_height: float | None = None,
) -> None:
    """Grow the grid so the cell at ``(col, row)`` exists.

    *default_height* is applied to new rows when the sheet declares a custom
    default row height.
    """
    for r in range(len(rows) + 1, row + 1):
        rows.append(
            Row(r=r, height=default_height, custom_height=default_height is not None)
        )
    fill_columns(rows[row - 1], col)


def fill_columns(row: Row, col: int) -> None:
    for c in range(len(row.cells) + 1, col + 1):
        row.cells.append(Cell(coordinates_to_cell_name(c, row.r)))


def renumber(rows: list[Row]) -> None:
    """Reset row numbers and cell references after rows moved."""
    for index, row in enumerate(rows, start=1):
        if row.r == index:
            continue
        row.r = index
        for col, cell in enumerate(row.cells, start=1):
            cell.ref = coordinates_to_cell_name(col, index)
