"""ZIP package store plus the ``[Content_Types].xml`` and ``.rels`` models."""

from __future__ import annotations

import io
import posixpath
import zipfile
from typing import BinaryIO
from xml.etree import ElementTree as ET

from cellxl._errors import FileSizeLimitError
from cellxl._xml import NS, parse_part, serialize_default_namespace

CONTENT_TYPES_PART = "[Content_Types].xml"
PACKAGE_RELS_PART = "_rels/.rels"

REL_OFFICE_DOCUMENT = f"{NS['r']}/officeDocument"
REL_WORKSHEET = f"{NS['r']}/worksheet"
REL_SHARED_STRINGS = f"{NS['r']}/sharedStrings"
REL_STYLES = f"{NS['r']}/styles"
REL_CALC_CHAIN = f"{NS['r']}/calcChain"
REL_HYPERLINK = f"{NS['r']}/hyperlink"

CT_WORKSHEET = "application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"
CT_SHARED_STRINGS = "application/vnd.openxmlformats-officedocument.spreadsheetml.sharedStrings+xml"
CT_CALC_CHAIN = "application/vnd.openxmlformats-officedocument.spreadsheetml.calcChain+xml"
CT_STYLES = "application/vnd.openxmlformats-officedocument.spreadsheetml.styles+xml"

_CT = NS["ct"]
_REL = NS["rel"]


class Package:
    """In-memory map of package part names to their bytes."""

    __slots__ = ("_parts",)

    def __init__(self, parts: dict[str, bytes] | None = None) -> None:
        self._parts: dict[str, bytes] = dict(parts or {})

    @classmethod
    def from_stream(cls, stream: BinaryIO, size_limit: int) -> Package:
        parts: dict[str, bytes] = {}
        with zipfile.ZipFile(stream) as zf:
            total = sum(info.file_size for info in zf.infolist())
            if total > size_limit:
                raise FileSizeLimitError(
                    f"unzipped size {total} exceeds the limit of {size_limit} bytes"
                )
            for info in zf.infolist():
                if info.is_dir():
                    continue
                parts[info.filename.lstrip("/")] = zf.read(info)
        return cls(parts)

    def load(self, name: str) -> bytes | None:
        return self._parts.get(name)

    def store(self, name: str, data: bytes) -> None:
        self._parts[name] = data

    def delete(self, name: str) -> None:
        self._parts.pop(name, None)

    def __contains__(self, name: str) -> bool:
        return name in self._parts

    def write(self, stream: BinaryIO) -> None:
        """Write a ZIP archive; the content types part goes first."""
        names = sorted(self._parts, key=lambda n: (n != CONTENT_TYPES_PART, n))
        with zipfile.ZipFile(stream, "w", zipfile.ZIP_DEFLATED) as zf:
            for name in names:
                zf.writestr(name, self._parts[name])

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.write(buf)
        return buf.getvalue()


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def rels_path_for(part: str) -> str:
    """``xl/workbook.xml`` -> ``xl/_rels/workbook.xml.rels``."""
    folder, name = posixpath.split(part)
    return posixpath.join(folder, "_rels", f"{name}.rels")


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship target relative to the part that owns it."""
    if target.startswith("/"):
        return target[1:]
    return posixpath.normpath(posixpath.join(posixpath.dirname(source_part), target))


def relative_target(source_part: str, part: str) -> str:
    return posixpath.relpath(part, posixpath.dirname(source_part) or ".")


# ---------------------------------------------------------------------------
# Content types
# ---------------------------------------------------------------------------


class ContentTypes:
    """``[Content_Types].xml``: extension defaults and per-part overrides."""

    def __init__(self, root: ET.Element) -> None:
        self._root = root

    @classmethod
    def from_package(cls, package: Package) -> ContentTypes:
        data = package.load(CONTENT_TYPES_PART)
        if data is None:
            return cls(ET.Element(f"{{{_CT}}}Types"))
        return cls(parse_part(CONTENT_TYPES_PART, data))

    def has_override(self, part: str) -> bool:
        return self._find(part) is not None

    def add_override(self, part: str, content_type: str) -> None:
        if self.has_override(part):
            return
        ET.SubElement(
            self._root,
            f"{{{_CT}}}Override",
            {"PartName": f"/{part}", "ContentType": content_type},
        )

    def remove_override(self, part: str) -> None:
        el = self._find(part)
        if el is not None:
            self._root.remove(el)

    def save(self, package: Package) -> None:
        package.store(CONTENT_TYPES_PART, serialize_default_namespace(self._root, _CT))

    def _find(self, part: str) -> ET.Element | None:
        for el in self._root.findall(f"{{{_CT}}}Override"):
            if el.get("PartName", "").lstrip("/") == part:
                return el
        return None


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


class Relationships:
    """One ``.rels`` part."""

    def __init__(self, path: str, root: ET.Element) -> None:
        self.path = path
        self._root = root

    @classmethod
    def from_package(cls, package: Package, path: str) -> Relationships:
        data = package.load(path)
        if data is None:
            return cls(path, ET.Element(f"{{{_REL}}}Relationships"))
        return cls(path, parse_part(path, data))

    def _items(self) -> list[ET.Element]:
        return self._root.findall(f"{{{_REL}}}Relationship")

    def __len__(self) -> int:
        return len(self._items())

    def target_by_id(self, rid: str) -> str | None:
        for el in self._items():
            if el.get("Id") == rid:
                return el.get("Target")
        return None

    def target_by_type(self, rel_type: str) -> str | None:
        for el in self._items():
            if el.get("Type") == rel_type:
                return el.get("Target")
        return None

    def add(self, rel_type: str, target: str, target_mode: str = "") -> str:
        """Append a relationship and return its new ``rIdN`` identifier."""
        used = {el.get("Id") for el in self._items()}
        n = len(used) + 1
        while f"rId{n}" in used:
            n += 1
        rid = f"rId{n}"
        attrs = {"Id": rid, "Type": rel_type, "Target": target}
        if target_mode:
            attrs["TargetMode"] = target_mode
        ET.SubElement(self._root, f"{{{_REL}}}Relationship", attrs)
        return rid

    def remove_by_type(self, rel_type: str) -> None:
        for el in self._items():
            if el.get("Type") == rel_type:
                self._root.remove(el)

    def remove_by_id(self, rid: str) -> None:
        for el in self._items():
            if el.get("Id") == rid:
                self._root.remove(el)

    def save(self, package: Package) -> None:
        if not len(self):
            package.delete(self.path)
            return
        package.store(self.path, serialize_default_namespace(self._root, _REL))
