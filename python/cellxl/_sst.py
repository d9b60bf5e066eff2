"""Shared string table (``xl/sharedStrings.xml``)."""

from __future__ import annotations

import threading
from xml.etree import ElementTree as ET

from cellxl._errors import SharedStringIndexError
from cellxl._xml import decode_shared_strings, encode_shared_strings, text_element


class SharedStringTable:
    """Append-only, deduplicated string table.

    Indices never change once handed out. Plain items deduplicate on their
    text, rich-text items on their serialized markup.
    """

    __slots__ = ("_lock", "_strings", "_elements", "_index", "_rich_index", "count", "modified")

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._strings: list[str] = []
        self._elements: list[ET.Element] = []
        self._index: dict[str, int] = {}
        self._rich_index: dict[bytes, int] = {}
        # Number of cell references to the table, written as ``count``.
        self.count = 0
        self.modified = False

    @classmethod
    def from_xml(cls, root: ET.Element) -> SharedStringTable:
        table = cls()
        for text, element, plain in decode_shared_strings(root):
            if plain:
                table._index.setdefault(text, len(table._strings))
            else:
                table._rich_index.setdefault(ET.tostring(element), len(table._strings))
            table._strings.append(text)
            table._elements.append(element)
        table.count = int(root.get("count", str(len(table._strings))))
        return table

    def __len__(self) -> int:
        with self._lock:
            return len(self._strings)

    def intern(self, value: str) -> int:
        """Index of *value*, appending it when it is not in the table yet."""
        with self._lock:
            self.count += 1
            self.modified = True
            index = self._index.get(value)
            if index is not None:
                return index
            index = len(self._strings)
            self._strings.append(value)
            self._elements.append(text_element("si", value))
            self._index[value] = index
            return index

    def intern_rich(self, element: ET.Element, text: str) -> int:
        """Index of the ``<si>`` *element* whose plain text is *text*."""
        key = ET.tostring(element)
        with self._lock:
            self.count += 1
            self.modified = True
            index = self._rich_index.get(key)
            if index is not None:
                return index
            index = len(self._strings)
            self._strings.append(text)
            self._elements.append(element)
            self._rich_index[key] = index
            return index

    def string_at(self, index: int) -> str:
        with self._lock:
            if index < 0 or index >= len(self._strings):
                raise SharedStringIndexError(index, len(self._strings))
            return self._strings[index]

    def element_at(self, index: int) -> ET.Element:
        with self._lock:
            if index < 0 or index >= len(self._elements):
                raise SharedStringIndexError(index, len(self._elements))
            return self._elements[index]

    def to_xml(self) -> ET.Element:
        with self._lock:
            return encode_shared_strings(list(self._elements), self.count)
