"""Worksheet: the densified cell grid of one sheet and every cell operation.

A :class:`Worksheet` is created by :class:`~cellxl.Workbook` the first time a
sheet is accessed and cached for the workbook's lifetime. Every mutation holds
the worksheet lock from grid growth through the final assignment.
"""

from __future__ import annotations

import datetime
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any
from xml.etree import ElementTree as ET

from openpyxl.utils.datetime import to_excel

from cellxl._adjust import (
    COLUMNS,
    REF_ERROR,
    ROWS,
    adjust_formula,
    adjust_merge_cells,
    adjust_reference,
    shift_span,
)
from cellxl._cell import (
    DATETIME_NUMBER_FORMAT,
    DURATION_NUMBER_FORMAT,
    FORMULA_SHARED,
    FORMULA_TYPES,
    NUMERIC_PRECISION,
    Cell,
    CellType,
    Formula,
    RichTextRun,
    cell_type_from_tag,
    encode_bool,
    encode_default,
    encode_duration,
    encode_float,
    encode_int,
    encode_time,
    format_float,
    is_numeric,
    round_precision,
)
from cellxl._errors import CellCharsLimitError, HyperlinkLimitError, InvalidRowNumberError
from cellxl._merge import (
    MergeCell,
    add_merge,
    decode_merge_cells,
    encode_merge_cells,
    merge_cells_parser,
    remove_merges,
)
from cellxl._numfmt import render
from cellxl._package import REL_HYPERLINK, Relationships, rels_path_for
from cellxl._rows import (
    Row,
    check_row,
    check_sheet,
    decode_row,
    encode_row,
    fill_columns,
    prepare_sheet,
    renumber,
)
from cellxl._utils import (
    MAX_COLUMNS,
    MAX_ROW_HEIGHT,
    MAX_ROWS,
    TOTAL_CELL_CHARS,
    TOTAL_SHEET_HYPERLINKS,
    area_ref_to_coordinates,
    cell_name_to_coordinates,
    check_cell_in_area,
    column_name_to_number,
    coordinates_to_area_ref,
    coordinates_to_cell_name,
    sort_coordinates,
)
from cellxl._xml import (
    R_NS,
    as_bool,
    decode_rich_runs,
    encode_rich_runs,
    parse_part,
    q,
    root_start_tag,
    serialize_part,
    set_child,
)
from cellxl.calc._parser import translate_shared_formula

if TYPE_CHECKING:
    from cellxl._workbook import Workbook

logger = logging.getLogger(__name__)

DEFAULT_ROW_HEIGHT = 15.0
MAX_OUTLINE_LEVEL = 7

LINK_EXTERNAL = "External"
LINK_LOCATION = "Location"


# ---------------------------------------------------------------------------
# Column metadata and hyperlinks
# ---------------------------------------------------------------------------


@dataclass
class ColumnInfo:
    """One ``<col>`` element covering columns ``min..max``."""

    min: int
    max: int
    width: float | None = None
    style: int = 0
    hidden: bool = False
    custom_width: bool = False
    outline_level: int = 0
    extra: dict[str, str] = field(default_factory=dict)

    def same_format(self, other: ColumnInfo) -> bool:
        return replace(self, min=0, max=0) == replace(other, min=0, max=0)


_COL_ATTRS = frozenset({"min", "max", "width", "style", "hidden", "customWidth", "outlineLevel"})


def decode_cols(element: ET.Element | None) -> list[ColumnInfo]:
    if element is None:
        return []
    cols = []
    for el in element.findall(q("col")):
        width = el.get("width")
        cols.append(
            ColumnInfo(
                min=int(el.get("min", "1")),
                max=int(el.get("max", el.get("min", "1"))),
                width=float(width) if width is not None else None,
                style=int(el.get("style", "0")),
                hidden=as_bool(el.get("hidden")),
                custom_width=as_bool(el.get("customWidth")),
                outline_level=int(el.get("outlineLevel", "0")),
                extra={k: v for k, v in el.attrib.items() if k not in _COL_ATTRS},
            )
        )
    return cols


def encode_cols(cols: list[ColumnInfo]) -> ET.Element | None:
    if not cols:
        return None
    root = ET.Element(q("cols"))
    for col in cols:
        el = ET.SubElement(root, q("col"), {"min": str(col.min), "max": str(col.max)})
        if col.width is not None:
            el.set("width", format_float(col.width))
        if col.style:
            el.set("style", str(col.style))
        if col.hidden:
            el.set("hidden", "1")
        if col.custom_width:
            el.set("customWidth", "1")
        if col.outline_level:
            el.set("outlineLevel", str(col.outline_level))
        for key, value in col.extra.items():
            el.set(key, value)
    return root


@dataclass
class Hyperlink:
    ref: str
    rid: str = ""
    location: str = ""
    display: str = ""
    tooltip: str = ""


def decode_hyperlinks(element: ET.Element | None) -> list[Hyperlink]:
    if element is None:
        return []
    return [
        Hyperlink(
            ref=el.get("ref", ""),
            rid=el.get(q("id", R_NS), ""),
            location=el.get("location", ""),
            display=el.get("display", ""),
            tooltip=el.get("tooltip", ""),
        )
        for el in element.findall(q("hyperlink"))
    ]


def encode_hyperlinks(links: list[Hyperlink]) -> ET.Element | None:
    if not links:
        return None
    root = ET.Element(q("hyperlinks"))
    for link in links:
        el = ET.SubElement(root, q("hyperlink"), {"ref": link.ref})
        if link.rid:
            el.set(q("id", R_NS), link.rid)
        if link.location:
            el.set("location", link.location)
        if link.tooltip:
            el.set("tooltip", link.tooltip)
        if link.display:
            el.set("display", link.display)
    return root


# ---------------------------------------------------------------------------
# Worksheet
# ---------------------------------------------------------------------------


class Worksheet:
    """One sheet of a :class:`~cellxl.Workbook`.

    Obtain it with ``wb["Sheet1"]``; ``ws["A1"]`` returns the cell record and
    ``ws["A1"] = value`` is shorthand for :meth:`set_cell_value`.
    """

    __slots__ = (
        "_workbook", "_title", "_path", "_sheet_id", "_lock", "_root", "_start_tag",
        "_rows", "_cols", "_merges", "_hyperlinks", "_rels", "_default_height",
        "checked",
    )

    def __init__(
        self,
        workbook: Workbook,
        title: str,
        path: str,
        sheet_id: int,
        data: bytes,
    ) -> None:
        self._workbook = workbook
        self._title = title
        self._path = path
        self._sheet_id = sheet_id
        self._lock = threading.RLock()
        self._rels: Relationships | None = None
        self.checked = False

        root = parse_part(path, data)
        self._root = root
        self._start_tag = root_start_tag(data)
        sheet_data = root.find(q("sheetData"))
        self._rows: list[Row] = []
        if sheet_data is not None:
            self._rows = [decode_row(row_el) for row_el in sheet_data.findall(q("row"))]
            sheet_data.clear()
        self._cols = decode_cols(root.find(q("cols")))
        self._merges = decode_merge_cells(root.find(q("mergeCells")))
        self._hyperlinks = decode_hyperlinks(root.find(q("hyperlinks")))

        # A custom default height is given to rows created by grid growth.
        self._default_height: float | None = None
        fmt = root.find(q("sheetFormatPr"))
        if fmt is not None and as_bool(fmt.get("customHeight")):
            self._default_height = float(fmt.get("defaultRowHeight", DEFAULT_ROW_HEIGHT))

    def _check(self) -> None:
        """Densify the grid once."""
        if self.checked:
            return
        with self._lock:
            if self.checked:
                return
            self._rows = check_sheet(self._rows)
            check_row(self._rows)
            self.checked = True
            logger.debug("Densified sheet %r: %d rows", self._title, len(self._rows))

    @property
    def title(self) -> str:
        return self._title

    @property
    def max_row(self) -> int:
        with self._lock:
            return len(self._rows)

    @property
    def max_column(self) -> int:
        with self._lock:
            return max((len(row.cells) for row in self._rows), default=0)

    def __repr__(self) -> str:
        return f"<Worksheet {self._title!r}>"

    # ------------------------------------------------------------------
    # Cell access
    # ------------------------------------------------------------------

    def __getitem__(self, key: str) -> Cell:
        """``ws['A1']`` -> Cell, created (with the grid around it) if absent."""
        with self._lock:
            cell, _, _ = self._prepare_cell(key)
            return cell

    def __setitem__(self, key: str, value: Any) -> None:
        self.set_cell_value(key, value)

    def _prepare_cell(self, cell: str) -> tuple[Cell, int, int]:
        """Resolve merge redirection and grow the grid. Caller holds the lock."""
        cell = merge_cells_parser(self._merges, cell)
        col, row = cell_name_to_coordinates(cell)
        prepare_sheet(self._rows, col, row, self._default_height)
        return self._rows[row - 1].cells[col - 1], col, row

    def _cell_at(self, col: int, row: int) -> Cell | None:
        """The cell at ``(col, row)`` without growing the grid."""
        if row > len(self._rows):
            return None
        cells = self._rows[row - 1].cells
        if col > len(cells):
            return None
        return cells[col - 1]

    def _lookup(self, cell: str) -> Cell | None:
        cell = merge_cells_parser(self._merges, cell)
        col, row = cell_name_to_coordinates(cell)
        return self._cell_at(col, row)

    def _prepare_cell_style(self, col: int, row: int, style: int) -> int:
        """Explicit cell style, else column style, else row style, else 0."""
        if style:
            return style
        column_style = self._column_style(col)
        if column_style:
            return column_style
        if row <= len(self._rows):
            return self._rows[row - 1].style
        return 0

    def _column_style(self, col: int) -> int:
        for info in self._cols:
            if info.min <= col <= info.max and info.style:
                return info.style
        return 0

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_cell_value(self, cell: str, value: Any) -> None:
        """Write *value* with the setter matching its type.

        Supported: ``bool``, ``int``, ``float``, ``str``, ``bytes``,
        ``datetime.timedelta``, ``datetime.datetime``/``date``/``time`` and
        ``None``. Anything else is stored as ``str(value)``.
        """
        if isinstance(value, bool):
            self.set_cell_bool(cell, value)
        elif isinstance(value, int):
            self.set_cell_int(cell, value)
        elif isinstance(value, float):
            self.set_cell_float(cell, value)
        elif isinstance(value, str):
            self.set_cell_str(cell, value)
        elif isinstance(value, (bytes, bytearray)):
            self.set_cell_str(cell, bytes(value).decode("utf-8"))
        elif isinstance(value, datetime.timedelta):
            self._set(cell, *encode_duration(value), default_format=DURATION_NUMBER_FORMAT)
        elif isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
            type_, text, is_serial = encode_time(value)
            fmt = DATETIME_NUMBER_FORMAT if is_serial else None
            self._set(cell, type_, text, default_format=fmt)
        elif value is None:
            self.set_cell_default(cell, "")
        else:
            self.set_cell_str(cell, str(value))

    def set_cell_int(self, cell: str, value: int) -> None:
        self._set(cell, *encode_int(value))

    def set_cell_bool(self, cell: str, value: bool) -> None:
        self._set(cell, *encode_bool(value))

    def set_cell_float(self, cell: str, value: float, precision: int = -1) -> None:
        """Store *value*; *precision* digits after the point, -1 for shortest."""
        self._set(cell, *encode_float(value, precision))

    def set_cell_str(self, cell: str, value: str) -> None:
        """Store text through the shared string table (max 32767 characters)."""
        if len(value) > TOTAL_CELL_CHARS:
            value = value[:TOTAL_CELL_CHARS]
        with self._lock:
            self._prepare_cell(cell)
            index = self._workbook._shared_strings().intern(value)  # noqa: SLF001
            self._set(cell, "s", str(index))

    def set_cell_default(self, cell: str, value: str) -> None:
        """Store *value* as-is: numeric text as a number, other text inline."""
        self._set(cell, *encode_default(value))

    def set_cell_rich_text(self, cell: str, runs: Iterable[RichTextRun]) -> None:
        """Store formatted text *runs* as one shared string item."""
        runs = list(runs)
        text = "".join(run.text for run in runs)
        if len(text) > TOTAL_CELL_CHARS:
            raise CellCharsLimitError(f"rich text exceeds {TOTAL_CELL_CHARS} characters")
        with self._lock:
            c, col, row = self._prepare_cell(cell)
            table = self._workbook._shared_strings()  # noqa: SLF001
            index = table.intern_rich(encode_rich_runs("si", runs), text)
            c.style = self._prepare_cell_style(col, row, c.style)
            c.assign("s", str(index))
            self._remove_formula(c)

    def _set(self, cell: str, type_: str, value: str, default_format: int | None = None) -> None:
        with self._lock:
            c, col, row = self._prepare_cell(cell)
            c.style = self._prepare_cell_style(col, row, c.style)
            if default_format is not None and c.style == 0:
                c.style = self._workbook.new_style(default_format)
            c.assign(type_, value)
            self._remove_formula(c)

    def set_sheet_row(self, cell: str, values: Iterable[Any]) -> None:
        """Write *values* across the row starting at *cell*."""
        col, row = cell_name_to_coordinates(cell)
        with self._lock:
            for offset, value in enumerate(values):
                self.set_cell_value(coordinates_to_cell_name(col + offset, row), value)

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def get_cell_value(self, cell: str, raw: bool | None = None) -> str:
        """Display text of *cell*, or its stored text when *raw*.

        *raw* defaults to ``Options.raw_cell_value``. Missing cells read as "".
        """
        if raw is None:
            raw = self._workbook.options.raw_cell_value
        with self._lock:
            c = self._lookup(cell)
            if c is None:
                return ""
            return self._value_of(c, raw)

    def _value_of(self, c: Cell, raw: bool) -> str:
        if c.type == "s":
            text = c.value.strip()
            if text.isdigit():
                table = self._workbook._shared_strings()  # noqa: SLF001
                index = int(text)
                if index < len(table):
                    return table.string_at(index)
            return c.value
        if c.type == "inlineStr":
            return c.inline_string if c.inline_string is not None else c.value
        if c.type == "b":
            if not raw and c.value in ("0", "1"):
                return "TRUE" if c.value == "1" else "FALSE"
            return c.value
        if c.type in ("str", "e"):
            return c.value
        if c.type == "d":
            return c.value if raw else self._format_date(c)
        if raw:
            return c.value
        numeric, digits = is_numeric(c.value)
        if not numeric:
            return c.value
        value = round_precision(c.value) if digits > NUMERIC_PRECISION else format_float(float(c.value))
        return render(value, self._number_format(c.style))

    def _format_date(self, c: Cell) -> str:
        try:
            moment = datetime.datetime.fromisoformat(c.value.rstrip("Z"))
        except ValueError:
            return c.value
        return render(format_float(float(to_excel(moment))), self._number_format(c.style))

    def _number_format(self, style: int) -> str | None:
        if not style:
            return None
        return self._workbook._style_sheet().number_format_code(style)  # noqa: SLF001

    def get_cell_type(self, cell: str) -> CellType:
        with self._lock:
            c = self._lookup(cell)
            return cell_type_from_tag(c.type) if c is not None else CellType.UNSET

    def get_cell_rich_text(self, cell: str) -> list[RichTextRun]:
        """Runs of a string cell. Plain strings come back as one run without a font.

        Cells that hold no string read as an empty list.
        """
        with self._lock:
            c = self._lookup(cell)
            if c is None:
                return []
            if c.type == "inlineStr":
                text = c.inline_string if c.inline_string is not None else c.value
                return [RichTextRun(text)] if text else []
            if c.type != "s" or not c.value.strip().isdigit():
                return []
            table = self._workbook._shared_strings()  # noqa: SLF001
            index = int(c.value.strip())
            if index >= len(table):
                return []
            return decode_rich_runs(table.element_at(index))

    def get_rows(self, raw: bool | None = None) -> list[list[str]]:
        """All cell values row by row; trailing empty cells and rows are trimmed."""
        if raw is None:
            raw = self._workbook.options.raw_cell_value
        with self._lock:
            results: list[list[str]] = []
            for row in self._rows:
                values = [self._value_of(c, raw) for c in row.cells]
                while values and values[-1] == "":
                    values.pop()
                results.append(values)
            while results and not results[-1]:
                results.pop()
            return results

    # ------------------------------------------------------------------
    # Formulas
    # ------------------------------------------------------------------

    def get_cell_formula(self, cell: str) -> str:
        """Formula text of *cell*; shared formulas are translated from their master."""
        with self._lock:
            c = self._lookup(cell)
            if c is None or c.formula is None:
                return ""
            return self._formula_text(c)

    def _formula_text(self, c: Cell) -> str:
        formula = c.formula
        if formula is None:
            return ""
        if formula.is_shared and formula.si is not None:
            return self._shared_formula(formula.si, c.ref)
        return formula.content

    def _shared_formula(self, si: int, ref: str) -> str:
        for row in self._rows:
            for c in row.cells:
                f = c.formula
                if f is not None and f.is_shared and f.ref and f.si == si:
                    return translate_shared_formula(f.content, c.ref, ref)
        return ""

    def set_cell_formula(
        self,
        cell: str,
        formula: str,
        formula_type: str | None = None,
        ref: str | None = None,
    ) -> None:
        """Set the formula of *cell*. An empty *formula* removes it.

        *formula_type* is ``"normal"``, ``"shared"``, ``"array"`` or
        ``"dataTable"``; shared and array formulas need *ref*.
        """
        if formula_type is not None and formula_type not in FORMULA_TYPES:
            raise ValueError(f"invalid formula type {formula_type!r}")
        if formula_type == FORMULA_SHARED and not ref:
            raise ValueError("shared formula requires a ref")
        with self._lock:
            c, _, _ = self._prepare_cell(cell)
            if not formula:
                self._delete_shared_formula(c)
                c.formula = None
                self._workbook._delete_calc_chain(self._sheet_id, c.ref)  # noqa: SLF001
                return
            if c.formula is None:
                c.formula = Formula(content=formula)
            else:
                c.formula.content = formula
            if formula_type is not None:
                c.formula.kind = formula_type
            if formula_type == FORMULA_SHARED:
                self._set_shared_formula(ref)
            if ref is not None:
                c.formula.ref = ref
            # Drop the cached result of any previous content.
            c.assign("", "")

    def _set_shared_formula(self, ref: str) -> None:
        rect = area_ref_to_coordinates(ref)
        sort_coordinates(rect)
        si = self._next_shared_index()
        for col in range(rect[0], rect[2] + 1):
            for row in range(rect[1], rect[3] + 1):
                prepare_sheet(self._rows, col, row, self._default_height)
                c = self._rows[row - 1].cells[col - 1]
                if c.formula is None:
                    c.formula = Formula()
                c.formula.kind = FORMULA_SHARED
                c.formula.si = si

    def _next_shared_index(self) -> int:
        indices = [
            c.formula.si
            for row in self._rows
            for c in row.cells
            if c.formula is not None and c.formula.si is not None
        ]
        return max(indices, default=-1) + 1

    def _delete_shared_formula(self, c: Cell) -> None:
        """Drop the members of the shared group mastered by *c*."""
        f = c.formula
        if f is None or f.si is None or not f.ref:
            return
        for row in self._rows:
            for other in row.cells:
                g = other.formula
                if other is not c and g is not None and g.si == f.si and not g.ref:
                    other.formula = None

    def _remove_formula(self, c: Cell) -> None:
        """Called when a value overwrites a formula cell."""
        if c.formula is None:
            return
        workbook = self._workbook
        workbook._delete_calc_chain(self._sheet_id, c.ref)  # noqa: SLF001
        f = c.formula
        if f.is_shared and f.ref and f.si is not None:
            for row in self._rows:
                for other in row.cells:
                    if other.formula is not None and other.formula.si == f.si:
                        other.formula = None
                        workbook._delete_calc_chain(self._sheet_id, other.ref)  # noqa: SLF001
        c.formula = None

    def _formula_cells(self) -> list[Cell]:
        with self._lock:
            return [c for row in self._rows for c in row.cells if c.formula is not None]

    # ------------------------------------------------------------------
    # Styles
    # ------------------------------------------------------------------

    def _check_style(self, style: int) -> None:
        if style < 0 or style >= len(self._workbook._style_sheet()):  # noqa: SLF001
            raise ValueError(f"invalid style ID {style}")

    def set_cell_style(self, hcell: str, vcell: str, style: int) -> None:
        """Apply cell format *style* to the area ``hcell:vcell``."""
        h_col, h_row = cell_name_to_coordinates(hcell)
        v_col, v_row = cell_name_to_coordinates(vcell)
        h_col, v_col = min(h_col, v_col), max(h_col, v_col)
        h_row, v_row = min(h_row, v_row), max(h_row, v_row)
        self._check_style(style)
        with self._lock:
            prepare_sheet(self._rows, v_col, v_row, self._default_height)
            for row in range(h_row, v_row + 1):
                fill_columns(self._rows[row - 1], v_col)
                for col in range(h_col, v_col + 1):
                    self._rows[row - 1].cells[col - 1].style = style

    def get_cell_style(self, cell: str) -> int:
        with self._lock:
            c, col, row = self._prepare_cell(cell)
            return self._prepare_cell_style(col, row, c.style)

    def set_col_style(self, columns: str, style: int) -> None:
        """Set the style of a column (``"B"``) or column range (``"B:D"``)."""
        first, last = self._column_range(columns)
        self._check_style(style)
        with self._lock:
            self._update_cols(first, last, style=style)
            for row in self._rows:
                for col in range(first, min(last, len(row.cells)) + 1):
                    row.cells[col - 1].style = style

    def set_row_style(self, row: int, style: int) -> None:
        if row < 1 or row > MAX_ROWS:
            raise InvalidRowNumberError(row)
        self._check_style(style)
        with self._lock:
            prepare_sheet(self._rows, 0, row, self._default_height)
            record = self._rows[row - 1]
            record.style = style
            record.custom_format = True
            for c in record.cells:
                c.style = style

    @staticmethod
    def _column_range(columns: str) -> tuple[int, int]:
        parts = columns.split(":")
        if len(parts) > 2:
            raise ValueError(f"invalid column range {columns!r}")
        numbers = sorted(column_name_to_number(part.upper()) for part in parts)
        return numbers[0], numbers[-1]

    def _update_cols(self, first: int, last: int, **changes: Any) -> None:
        """Apply *changes* to columns ``first..last``, splitting ``<col>`` spans."""
        flat: dict[int, ColumnInfo] = {}
        for info in self._cols:
            for col in range(info.min, info.max + 1):
                flat[col] = replace(info, min=col, max=col, extra=dict(info.extra))
        for col in range(first, last + 1):
            flat[col] = replace(flat.get(col) or ColumnInfo(col, col), **changes)
        merged: list[ColumnInfo] = []
        for col in sorted(flat):
            info = flat[col]
            prev = merged[-1] if merged else None
            if prev is not None and prev.max == col - 1 and prev.same_format(info):
                prev.max = col
            else:
                merged.append(info)
        self._cols = merged

    # ------------------------------------------------------------------
    # Hyperlinks
    # ------------------------------------------------------------------

    def _relationships(self) -> Relationships:
        if self._rels is None:
            self._rels = Relationships.from_package(
                self._workbook._package, rels_path_for(self._path)  # noqa: SLF001
            )
        return self._rels

    def set_cell_hyperlink(
        self,
        cell: str,
        link: str,
        link_type: str,
        display: str | None = None,
        tooltip: str | None = None,
    ) -> None:
        """Link *cell* to a URL (``"External"``) or a place in the workbook (``"Location"``)."""
        with self._lock:
            cell = merge_cells_parser(self._merges, cell)
            index = next((i for i, h in enumerate(self._hyperlinks) if h.ref == cell), -1)
            if index == -1 and len(self._hyperlinks) >= TOTAL_SHEET_HYPERLINKS:
                raise HyperlinkLimitError(
                    f"over maximum limit hyperlinks in a worksheet ({TOTAL_SHEET_HYPERLINKS})"
                )
            existing = self._hyperlinks[index] if index != -1 else None
            if link_type == LINK_EXTERNAL:
                rels = self._relationships()
                if existing is not None and existing.rid:
                    rels.remove_by_id(existing.rid)
                data = Hyperlink(ref=cell, rid=rels.add(REL_HYPERLINK, link, "External"))
            elif link_type == LINK_LOCATION:
                if existing is not None and existing.rid:
                    self._relationships().remove_by_id(existing.rid)
                data = Hyperlink(ref=cell, location=link)
            else:
                raise ValueError(f'invalid link type "{link_type}"')
            if display is not None:
                data.display = display
            if tooltip is not None:
                data.tooltip = tooltip
            if existing is None:
                self._hyperlinks.append(data)
            else:
                self._hyperlinks[index] = data

    def get_cell_hyperlink(self, cell: str) -> tuple[bool, str]:
        """``(True, target)`` when *cell* lies in a hyperlink, else ``(False, "")``."""
        with self._lock:
            cell = merge_cells_parser(self._merges, cell)
            for link in self._hyperlinks:
                if check_cell_in_area(cell, link.ref):
                    if link.rid:
                        return True, self._relationships().target_by_id(link.rid) or ""
                    return True, link.location
            return False, ""

    # ------------------------------------------------------------------
    # Merged cells
    # ------------------------------------------------------------------

    def merge_cell(self, hcell: str, vcell: str) -> None:
        """Merge ``hcell:vcell``; merges it overlaps are removed.

        The anchor's style is applied to the whole area.
        """
        rect = area_ref_to_coordinates(f"{hcell}:{vcell}")
        sort_coordinates(rect)
        with self._lock:
            add_merge(self._merges, rect)
            anchor = coordinates_to_cell_name(rect[0], rect[1])
            style = self.get_cell_style(anchor)
            if style:
                self.set_cell_style(anchor, coordinates_to_cell_name(rect[2], rect[3]), style)

    def unmerge_cell(self, hcell: str, vcell: str) -> None:
        """Remove every merge overlapping ``hcell:vcell``."""
        rect = area_ref_to_coordinates(f"{hcell}:{vcell}")
        sort_coordinates(rect)
        with self._lock:
            remove_merges(self._merges, rect)

    def get_merge_cells(self) -> list[MergeCell]:
        with self._lock:
            return [
                MergeCell(m.ref, value=self.get_cell_value(m.start_axis), rect=list(m.rect))
                for m in self._merges
            ]

    # ------------------------------------------------------------------
    # Row metadata
    # ------------------------------------------------------------------

    @staticmethod
    def _check_row(row: int) -> None:
        if row < 1 or row > MAX_ROWS:
            raise InvalidRowNumberError(row)

    def set_row_height(self, row: int, height: float) -> None:
        self._check_row(row)
        if height > MAX_ROW_HEIGHT:
            raise ValueError(f"the height of the row must be less than or equal to {MAX_ROW_HEIGHT} points")
        if height < 0:
            raise ValueError(f"invalid row height {height}")
        with self._lock:
            prepare_sheet(self._rows, 0, row, self._default_height)
            record = self._rows[row - 1]
            record.height = float(height)
            record.custom_height = True

    def get_row_height(self, row: int) -> float:
        self._check_row(row)
        with self._lock:
            default = self._default_height if self._default_height is not None else DEFAULT_ROW_HEIGHT
            if row > len(self._rows):
                return default
            height = self._rows[row - 1].height
            return height if height is not None else default

    def set_row_visible(self, row: int, visible: bool) -> None:
        self._check_row(row)
        with self._lock:
            prepare_sheet(self._rows, 0, row, self._default_height)
            self._rows[row - 1].hidden = not visible

    def get_row_visible(self, row: int) -> bool:
        self._check_row(row)
        with self._lock:
            if row > len(self._rows):
                return True
            return not self._rows[row - 1].hidden

    def set_row_outline_level(self, row: int, level: int) -> None:
        self._check_row(row)
        if not 1 <= level <= MAX_OUTLINE_LEVEL:
            raise ValueError(f"invalid outline level {level}, must be 1-{MAX_OUTLINE_LEVEL}")
        with self._lock:
            prepare_sheet(self._rows, 0, row, self._default_height)
            self._rows[row - 1].outline_level = level

    def get_row_outline_level(self, row: int) -> int:
        self._check_row(row)
        with self._lock:
            if row > len(self._rows):
                return 0
            return self._rows[row - 1].outline_level

    # ------------------------------------------------------------------
    # Structure edits
    # ------------------------------------------------------------------

    def remove_row(self, row: int) -> None:
        """Delete *row*; rows below move up and references follow."""
        self._check_row(row)
        with self._workbook._structure_lock, self._lock:  # noqa: SLF001
            if row <= len(self._rows):
                del self._rows[row - 1]
                renumber(self._rows)
            self._adjust_helper(ROWS, row, -1)

    def insert_rows(self, row: int, amount: int = 1) -> None:
        """Insert *amount* blank rows before *row*."""
        self._check_row(row)
        if amount < 1:
            raise ValueError(f"invalid number of rows {amount}")
        with self._workbook._structure_lock, self._lock:  # noqa: SLF001
            if max(len(self._rows), row - 1) + amount > MAX_ROWS:
                raise InvalidRowNumberError(max(len(self._rows), row - 1) + amount)
            if row <= len(self._rows):
                self._rows[row - 1:row - 1] = [Row(r=0) for _ in range(amount)]
                renumber(self._rows)
            self._adjust_helper(ROWS, row, amount)

    def duplicate_row(self, row: int) -> None:
        self.duplicate_row_to(row, row + 1)

    def duplicate_row_to(self, row: int, row2: int) -> None:
        """Insert a copy of *row* before *row2*."""
        self._check_row(row)
        if row2 < 1 or row == row2:
            return
        with self._workbook._structure_lock, self._lock:  # noqa: SLF001
            exists = row <= len(self._rows)
            self.insert_rows(row2, 1)
            if not exists:
                return
            source = row + 1 if row2 <= row else row
            original = self._rows[source - 1]
            copy = original.copy(row2)
            for src, dst in zip(original.cells, copy.cells):
                if src.formula is None:
                    continue
                text = self._formula_text(src)
                dst.formula = Formula(content=translate_shared_formula(text, src.ref, dst.ref))
            prepare_sheet(self._rows, 0, row2, self._default_height)
            self._rows[row2 - 1] = copy
            self._duplicate_merge_cells(source, row2)

    def _duplicate_merge_cells(self, row: int, row2: int) -> None:
        for merge in list(self._merges):
            x1, y1, x2, y2 = merge.rect
            if y1 == y2 == row:
                add_merge(self._merges, [x1, row2, x2, row2])

    def insert_cols(self, col: str, amount: int = 1) -> None:
        """Insert *amount* blank columns before column *col* (``"C"``)."""
        num = column_name_to_number(col.upper())
        if amount < 1:
            raise ValueError(f"invalid number of columns {amount}")
        with self._workbook._structure_lock, self._lock:  # noqa: SLF001
            if self.max_column + amount > MAX_COLUMNS:
                raise ValueError(f"the column number must be less than or equal to {MAX_COLUMNS}")
            for row in self._rows:
                if num <= len(row.cells):
                    row.cells[num - 1:num - 1] = [Cell("") for _ in range(amount)]
                    self._reref(row)
            self._adjust_helper(COLUMNS, num, amount)

    def remove_col(self, col: str) -> None:
        """Delete column *col* (``"C"``); columns to the right move left."""
        num = column_name_to_number(col.upper())
        with self._workbook._structure_lock, self._lock:  # noqa: SLF001
            for row in self._rows:
                if num <= len(row.cells):
                    del row.cells[num - 1]
                    self._reref(row)
            self._adjust_helper(COLUMNS, num, -1)

    @staticmethod
    def _reref(row: Row) -> None:
        for col, c in enumerate(row.cells, start=1):
            c.ref = coordinates_to_cell_name(col, row.r)

    def _adjust_helper(self, axis: str, num: int, offset: int) -> None:
        """Rewrite everything that refers to moved cells.

        Caller holds this sheet's lock and the workbook structure lock.
        """
        workbook = self._workbook
        for name in workbook.sheetnames:
            ws = workbook[name]
            with ws._lock:  # noqa: SLF001
                for c in ws._formula_cells():  # noqa: SLF001
                    f = c.formula
                    f.content = adjust_formula(f.content, ws.title, self._title, axis, num, offset)
                    if ws is self and f.ref:
                        new_ref = adjust_reference(f.ref, axis, num, offset)
                        f.ref = c.ref if new_ref == REF_ERROR else new_ref
        self._merges = adjust_merge_cells(self._merges, axis, num, offset)
        self._adjust_hyperlinks(axis, num, offset)
        if axis == COLUMNS:
            self._adjust_cols(num, offset)
        workbook._adjust_calc_chain(self._sheet_id, axis, num, offset)  # noqa: SLF001

    def _adjust_hyperlinks(self, axis: str, num: int, offset: int) -> None:
        kept: list[Hyperlink] = []
        for link in self._hyperlinks:
            new_ref = adjust_reference(link.ref, axis, num, offset)
            if new_ref == REF_ERROR:
                if link.rid:
                    self._relationships().remove_by_id(link.rid)
                continue
            link.ref = new_ref
            kept.append(link)
        self._hyperlinks = kept

    def _adjust_cols(self, num: int, offset: int) -> None:
        kept: list[ColumnInfo] = []
        for info in self._cols:
            span = shift_span(info.min, info.max, num, offset)
            if span is None or span[0] > MAX_COLUMNS:
                continue
            info.min, info.max = span[0], min(span[1], MAX_COLUMNS)
            kept.append(info)
        self._cols = kept

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _dimension(self) -> str:
        first_col = first_row = last_col = last_row = 0
        for row in self._rows:
            for col, c in enumerate(row.cells, start=1):
                if c.is_blank:
                    continue
                if not first_row:
                    first_row = row.r
                first_col = col if not first_col else min(first_col, col)
                last_col = max(last_col, col)
                last_row = row.r
        if not first_row:
            return "A1"
        if (first_col, first_row) == (last_col, last_row):
            return coordinates_to_cell_name(first_col, first_row)
        return coordinates_to_area_ref([first_col, first_row, last_col, last_row])

    def _to_xml(self) -> bytes:
        with self._lock:
            root = self._root
            sheet_data = ET.Element(q("sheetData"))
            for row in self._rows:
                row_el = encode_row(row)
                if row_el is not None:
                    sheet_data.append(row_el)
            set_child(root, "dimension", ET.Element(q("dimension"), {"ref": self._dimension()}))
            set_child(root, "cols", encode_cols(self._cols))
            set_child(root, "sheetData", sheet_data)
            set_child(root, "mergeCells", encode_merge_cells(self._merges))
            set_child(root, "hyperlinks", encode_hyperlinks(self._hyperlinks))
            data = serialize_part(root, self._start_tag)
            set_child(root, "sheetData", ET.Element(q("sheetData")))
            return data

    def _save_relationships(self) -> None:
        if self._rels is not None:
            self._rels.save(self._workbook._package)  # noqa: SLF001
