"""Cell formats from ``xl/styles.xml``.

Only the number-format side of ``cellXfs`` is modelled; fonts, fills and
borders are carried through untouched.
"""

from __future__ import annotations

import threading
from xml.etree import ElementTree as ET

from openpyxl.styles.numbers import BUILTIN_FORMATS

from cellxl._xml import q

# First id available for custom number formats.
CUSTOM_NUMBER_FORMAT_START = 164


class StyleSheet:
    __slots__ = ("_root", "_lock", "modified")

    def __init__(self, root: ET.Element) -> None:
        self._root = root
        self._lock = threading.RLock()
        self.modified = False

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _xfs(self) -> list[ET.Element]:
        cell_xfs = self._root.find(q("cellXfs"))
        if cell_xfs is None:
            return []
        return cell_xfs.findall(q("xf"))

    def _custom_formats(self) -> dict[int, str]:
        num_fmts = self._root.find(q("numFmts"))
        if num_fmts is None:
            return {}
        return {
            int(el.get("numFmtId", "0")): el.get("formatCode", "")
            for el in num_fmts.findall(q("numFmt"))
        }

    def __len__(self) -> int:
        return len(self._xfs())

    def number_format_id(self, style: int) -> int:
        xfs = self._xfs()
        if style < 0 or style >= len(xfs):
            return 0
        return int(xfs[style].get("numFmtId", "0"))

    def number_format_code(self, style: int) -> str | None:
        """Format code of the cell format *style*, or None when unknown."""
        with self._lock:
            fmt_id = self.number_format_id(style)
            custom = self._custom_formats()
            if fmt_id in custom:
                return custom[fmt_id]
            return BUILTIN_FORMATS.get(fmt_id)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def new_style(self, number_format: int | str = 0) -> int:
        """Index of a cell format using *number_format*, created if needed.

        *number_format* is a builtin format id or a custom format code.
        """
        with self._lock:
            if isinstance(number_format, str):
                fmt_id = self._number_format_id_for(number_format)
            else:
                fmt_id = number_format
            for index, xf in enumerate(self._xfs()):
                if (
                    int(xf.get("numFmtId", "0")) == fmt_id
                    and xf.get("fontId", "0") == "0"
                    and xf.get("fillId", "0") == "0"
                    and xf.get("borderId", "0") == "0"
                ):
                    return index
            cell_xfs = self._root.find(q("cellXfs"))
            if cell_xfs is None:
                cell_xfs = ET.SubElement(self._root, q("cellXfs"))
            attrs = {"numFmtId": str(fmt_id), "fontId": "0", "fillId": "0", "borderId": "0", "xfId": "0"}
            if fmt_id:
                attrs["applyNumberFormat"] = "1"
            ET.SubElement(cell_xfs, q("xf"), attrs)
            cell_xfs.set("count", str(len(cell_xfs)))
            self.modified = True
            return len(cell_xfs) - 1

    def _number_format_id_for(self, code: str) -> int:
        for fmt_id, builtin in BUILTIN_FORMATS.items():
            if builtin == code:
                return fmt_id
        custom = self._custom_formats()
        for fmt_id, existing in custom.items():
            if existing == code:
                return fmt_id
        num_fmts = self._root.find(q("numFmts"))
        if num_fmts is None:
            num_fmts = ET.Element(q("numFmts"))
            self._root.insert(0, num_fmts)
        fmt_id = max([CUSTOM_NUMBER_FORMAT_START - 1, *custom]) + 1
        ET.SubElement(num_fmts, q("numFmt"), {"numFmtId": str(fmt_id), "formatCode": code})
        num_fmts.set("count", str(len(num_fmts)))
        return fmt_id

    def to_xml(self) -> ET.Element:
        return self._root
