"""Workbook: the package, its shared parts and the lazily loaded worksheets.

``Workbook()`` starts a new file holding one empty ``Sheet1``.
``Workbook.open_reader(stream)`` (or :func:`cellxl.load_workbook`) reads an
existing package. Worksheets, the shared string table, the style sheet and
the calc chain are each decoded on first use and kept until the workbook is
closed.
"""

from __future__ import annotations

import io
import logging
import os
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, BinaryIO, NamedTuple
from xml.etree import ElementTree as ET

from cellxl._adjust import REF_ERROR, adjust_reference
from cellxl._errors import MissingPartError, SheetNotExistError
from cellxl._package import (
    CT_SHARED_STRINGS,
    CT_STYLES,
    CT_WORKSHEET,
    PACKAGE_RELS_PART,
    REL_CALC_CHAIN,
    REL_OFFICE_DOCUMENT,
    REL_SHARED_STRINGS,
    REL_STYLES,
    REL_WORKSHEET,
    ContentTypes,
    Package,
    Relationships,
    relative_target,
    rels_path_for,
    resolve_target,
)
from cellxl._sst import SharedStringTable
from cellxl._styles import StyleSheet
from cellxl._templates import SHARED_STRINGS, STYLES, WORKSHEET, default_parts
from cellxl._worksheet import Worksheet
from cellxl._xml import (
    R_NS,
    decode_calc_chain,
    decode_workbook_sheets,
    encode_calc_chain,
    parse_part,
    q,
    root_start_tag,
    serialize_part,
)
from cellxl.calc._evaluator import FormulaEvaluator

logger = logging.getLogger(__name__)

# Default ceiling on the total uncompressed size of a package (16 GiB).
UNZIP_SIZE_LIMIT = 16 << 30

MAX_SHEET_NAME_LENGTH = 31
_INVALID_SHEET_NAME_CHARS = frozenset(':\\/?*[]')


@dataclass(frozen=True)
class Options:
    """Workbook-wide settings.

    ``raw_cell_value`` is the default for ``Worksheet.get_cell_value(raw=...)``;
    ``unzip_size_limit`` caps the uncompressed package size accepted on open.
    """

    raw_cell_value: bool = False
    unzip_size_limit: int = UNZIP_SIZE_LIMIT


class _SheetEntry(NamedTuple):
    name: str
    sheet_id: int
    path: str


def check_sheet_name(name: str) -> None:
    if not name:
        raise ValueError("the sheet name can not be blank")
    if len(name) > MAX_SHEET_NAME_LENGTH:
        raise ValueError(f"the sheet name length exceeds the {MAX_SHEET_NAME_LENGTH} characters limit")
    if _INVALID_SHEET_NAME_CHARS.intersection(name):
        raise ValueError(f"the sheet name can not contain any of the characters :\\/?*[] ({name!r})")
    if name.startswith("'") or name.endswith("'"):
        raise ValueError(f"the sheet name can not start or end with a single quote ({name!r})")


class Workbook:
    """An OOXML spreadsheet package held in memory."""

    def __init__(self, options: Options | None = None) -> None:
        """Create a new workbook with one empty sheet named ``Sheet1``."""
        self._setup(Package(default_parts()), options)

    @classmethod
    def open_reader(cls, stream: BinaryIO, options: Options | None = None) -> Workbook:
        """Read a workbook from a binary stream."""
        options = options or Options()
        package = Package.from_stream(stream, options.unzip_size_limit)
        wb = object.__new__(cls)
        wb._setup(package, options)
        return wb

    def _setup(self, package: Package, options: Options | None) -> None:
        self.options = options or Options()
        self.path: str | None = None
        self._package = package
        # Guards sheet loading and the lazy shared parts.
        self._lock = threading.RLock()
        self._calc_lock = threading.Lock()
        # Row and column edits lock every sheet; one runs at a time.
        self._structure_lock = threading.RLock()
        self._content_types = ContentTypes.from_package(package)

        package_rels = Relationships.from_package(package, PACKAGE_RELS_PART)
        target = package_rels.target_by_type(REL_OFFICE_DOCUMENT)
        self._workbook_part = resolve_target("", target) if target else "xl/workbook.xml"
        data = package.load(self._workbook_part)
        if data is None:
            raise MissingPartError(self._workbook_part)
        self._workbook_root = parse_part(self._workbook_part, data)
        self._workbook_start = root_start_tag(data)
        self._workbook_modified = False
        self._workbook_rels = Relationships.from_package(package, rels_path_for(self._workbook_part))

        self._sheet_entries: list[_SheetEntry] = []
        for name, sheet_id, rid in decode_workbook_sheets(self._workbook_root):
            sheet_target = self._workbook_rels.target_by_id(rid)
            if sheet_target is None:
                logger.debug("Sheet %r has no relationship %s, skipped", name, rid)
                continue
            path = resolve_target(self._workbook_part, sheet_target)
            self._sheet_entries.append(_SheetEntry(name, sheet_id, path))

        self._sheets: dict[str, Worksheet] = {}
        self._sst: SharedStringTable | None = None
        self._sst_path = ""
        self._styles: StyleSheet | None = None
        self._styles_path = ""
        self._styles_start: bytes | None = None
        self._calc_chain: list[tuple[int, str]] | None = None
        self._calc_chain_path = ""
        self._calc_chain_modified = False

    # ------------------------------------------------------------------
    # Sheet access
    # ------------------------------------------------------------------

    @property
    def sheetnames(self) -> list[str]:
        with self._lock:
            return [entry.name for entry in self._sheet_entries]

    def _find_entry(self, name: str) -> _SheetEntry | None:
        wanted = name.casefold()
        for entry in self._sheet_entries:
            if entry.name.casefold() == wanted:
                return entry
        return None

    def __getitem__(self, name: str) -> Worksheet:
        """The worksheet *name* (case-insensitive), decoded and densified once."""
        ws = self._sheets.get(name)
        if ws is not None:
            return ws
        with self._lock:
            entry = self._find_entry(name)
            if entry is None:
                raise SheetNotExistError(name)
            ws = self._sheets.get(entry.name)
            if ws is not None:
                return ws
            data = self._package.load(entry.path)
            if data is None:
                raise MissingPartError(entry.path)
            ws = Worksheet(self, entry.name, entry.path, entry.sheet_id, data)
            ws._check()  # noqa: SLF001
            self._sheets[entry.name] = ws
            logger.debug("Loaded sheet %r from %s", entry.name, entry.path)
            return ws

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return self._find_entry(name) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self.sheetnames)

    def new_sheet(self, name: str) -> Worksheet:
        """Add an empty worksheet; an existing sheet of that name is returned as-is."""
        check_sheet_name(name)
        with self._lock:
            if self._find_entry(name) is not None:
                return self[name]
            sheet_id = max((entry.sheet_id for entry in self._sheet_entries), default=0) + 1
            number = 1
            while f"xl/worksheets/sheet{number}.xml" in self._package:
                number += 1
            path = f"xl/worksheets/sheet{number}.xml"
            self._package.store(path, WORKSHEET.encode())
            self._content_types.add_override(path, CT_WORKSHEET)
            rid = self._workbook_rels.add(REL_WORKSHEET, relative_target(self._workbook_part, path))
            sheets_el = self._workbook_root.find(q("sheets"))
            if sheets_el is None:
                sheets_el = ET.SubElement(self._workbook_root, q("sheets"))
            ET.SubElement(
                sheets_el, q("sheet"), {"name": name, "sheetId": str(sheet_id), q("id", R_NS): rid}
            )
            self._workbook_modified = True
            self._sheet_entries.append(_SheetEntry(name, sheet_id, path))
            logger.debug("Created sheet %r at %s", name, path)
            return self[name]

    # ------------------------------------------------------------------
    # Shared parts
    # ------------------------------------------------------------------

    def _shared_part(self, rel_type: str, default_path: str) -> tuple[str, bytes | None]:
        target = self._workbook_rels.target_by_type(rel_type)
        if target is None:
            return default_path, None
        path = resolve_target(self._workbook_part, target)
        return path, self._package.load(path)

    def _register_part(self, path: str, rel_type: str, content_type: str) -> None:
        if self._workbook_rels.target_by_type(rel_type) is None:
            self._workbook_rels.add(rel_type, relative_target(self._workbook_part, path))
        self._content_types.add_override(path, content_type)

    def _shared_strings(self) -> SharedStringTable:
        sst = self._sst
        if sst is not None:
            return sst
        with self._lock:
            if self._sst is None:
                path, data = self._shared_part(REL_SHARED_STRINGS, "xl/sharedStrings.xml")
                if data is None:
                    self._register_part(path, REL_SHARED_STRINGS, CT_SHARED_STRINGS)
                    table = SharedStringTable.from_xml(parse_part(path, SHARED_STRINGS.encode()))
                    table.modified = True
                else:
                    table = SharedStringTable.from_xml(parse_part(path, data))
                self._sst_path = path
                self._sst = table
            return self._sst

    def _style_sheet(self) -> StyleSheet:
        styles = self._styles
        if styles is not None:
            return styles
        with self._lock:
            if self._styles is None:
                path, data = self._shared_part(REL_STYLES, "xl/styles.xml")
                created = data is None
                if created:
                    self._register_part(path, REL_STYLES, CT_STYLES)
                    data = STYLES.encode()
                styles = StyleSheet(parse_part(path, data))
                styles.modified = created
                self._styles_path = path
                self._styles_start = root_start_tag(data)
                self._styles = styles
            return self._styles

    def new_style(self, number_format: int | str = 0) -> int:
        """Cell format index for a builtin format id or custom format code."""
        return self._style_sheet().new_style(number_format)

    # ------------------------------------------------------------------
    # Calc chain
    # ------------------------------------------------------------------

    def _calc_chain_entries(self) -> list[tuple[int, str]]:
        """Caller holds ``_calc_lock``."""
        if self._calc_chain is None:
            path, data = self._shared_part(REL_CALC_CHAIN, "xl/calcChain.xml")
            self._calc_chain_path = path
            self._calc_chain = decode_calc_chain(parse_part(path, data)) if data else []
        return self._calc_chain

    def _delete_calc_chain(self, sheet_id: int, ref: str) -> None:
        """Drop the chain entry of one cell, or of the whole sheet when *ref* is ""."""
        with self._calc_lock:
            entries = self._calc_chain_entries()
            kept = [e for e in entries if not (e[0] == sheet_id and (not ref or e[1] == ref))]
            if len(kept) != len(entries):
                self._calc_chain = kept
                self._calc_chain_modified = True

    def _adjust_calc_chain(self, sheet_id: int, axis: str, num: int, offset: int) -> None:
        with self._calc_lock:
            entries = self._calc_chain_entries()
            adjusted: list[tuple[int, str]] = []
            for entry_sheet, ref in entries:
                if entry_sheet == sheet_id:
                    ref = adjust_reference(ref, axis, num, offset)
                    if ref == REF_ERROR:
                        continue
                adjusted.append((entry_sheet, ref))
            if adjusted != entries:
                self._calc_chain = adjusted
                self._calc_chain_modified = True

    # ------------------------------------------------------------------
    # Formulas
    # ------------------------------------------------------------------

    def calc_cell_value(self, sheet: str, cell: str) -> str:
        """Evaluate the formula of *cell*; raises FormulaError for error results."""
        return FormulaEvaluator(self).calc_cell_value(sheet, cell)

    def calculate(self, write_back: bool = True) -> dict[str, str]:
        """Evaluate every formula in dependency order; see FormulaEvaluator.calculate."""
        return FormulaEvaluator(self).calculate(write_back=write_back)

    def update_linked_value(self) -> None:
        """Drop the cached value of every formula cell so applications recalculate."""
        for name in self.sheetnames:
            ws = self[name]
            with ws._lock:  # noqa: SLF001
                for c in ws._formula_cells():  # noqa: SLF001
                    if c.value:
                        c.assign("", "")
        with self._lock:
            calc_pr = self._workbook_root.find(q("calcPr"))
            if calc_pr is not None:
                self._workbook_root.remove(calc_pr)
                self._workbook_modified = True

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def _flush(self) -> None:
        with self._lock:
            sheets = list(self._sheets.values())
        for ws in sheets:
            self._package.store(ws._path, ws._to_xml())  # noqa: SLF001
            ws._save_relationships()  # noqa: SLF001
        with self._lock:
            if self._sst is not None and self._sst.modified:
                self._package.store(self._sst_path, serialize_part(self._sst.to_xml()))
                self._sst.modified = False
            if self._styles is not None and self._styles.modified:
                self._package.store(
                    self._styles_path, serialize_part(self._styles.to_xml(), self._styles_start)
                )
                self._styles.modified = False
            self._flush_calc_chain()
            if self._workbook_modified:
                self._package.store(
                    self._workbook_part, serialize_part(self._workbook_root, self._workbook_start)
                )
                self._workbook_modified = False
            self._workbook_rels.save(self._package)
            self._content_types.save(self._package)

    def _flush_calc_chain(self) -> None:
        with self._calc_lock:
            if not self._calc_chain_modified:
                return
            path = self._calc_chain_path
            if self._calc_chain:
                self._package.store(path, serialize_part(encode_calc_chain(self._calc_chain)))
            else:
                self._package.delete(path)
                self._content_types.remove_override(path)
                self._workbook_rels.remove_by_type(REL_CALC_CHAIN)
            self._calc_chain_modified = False

    def write_to(self, stream: BinaryIO) -> None:
        """Write the package as a ZIP archive to *stream*."""
        self._flush()
        self._package.write(stream)

    def write_to_buffer(self) -> io.BytesIO:
        buf = io.BytesIO()
        self.write_to(buf)
        buf.seek(0)
        return buf

    def save(self, filename: str | os.PathLike[str] | None = None) -> None:
        """Save to *filename*, or back to the file the workbook was opened from."""
        target = filename if filename is not None else self.path
        if target is None:
            raise ValueError("no file name given and the workbook was not opened from a file")
        with open(target, "wb") as fh:
            self.write_to(fh)
        self.path = os.fspath(target)

    # ------------------------------------------------------------------
    # Context manager + cleanup
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the decoded sheets and shared parts."""
        with self._lock:
            self._sheets.clear()
            self._sst = None
            self._styles = None
        with self._calc_lock:
            self._calc_chain = None
            self._calc_chain_modified = False

    def __enter__(self) -> Workbook:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Workbook path={self.path!r} sheets={self.sheetnames}>"

    def __getstate__(self) -> Any:
        raise TypeError("Workbook objects cannot be pickled")
