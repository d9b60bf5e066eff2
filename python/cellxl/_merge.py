"""Merged cell areas (``<mergeCells>``)."""

from __future__ import annotations

from dataclasses import dataclass, field
from xml.etree import ElementTree as ET

from cellxl._utils import (
    area_ref_to_coordinates,
    cell_in_ref,
    cell_name_to_coordinates,
    coordinates_to_area_ref,
    is_overlap,
    sort_coordinates,
)
from cellxl._xml import q


@dataclass
class MergeCell:
    """A merged area. ``value`` is the anchor's value when read through
    :meth:`Worksheet.get_merge_cells`."""

    ref: str
    value: str = ""
    rect: list[int] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.rect:
            self.rect = merge_rect(self.ref)

    @property
    def start_axis(self) -> str:
        return self.ref.split(":")[0]

    @property
    def end_axis(self) -> str:
        return self.ref.split(":")[-1]


def merge_rect(ref: str) -> list[int]:
    """Sorted ``[x1, y1, x2, y2]`` of a merge reference; ``"A1"`` means ``"A1:A1"``."""
    if ref.count(":") != 1:
        ref = f"{ref}:{ref}"
    rect = area_ref_to_coordinates(ref)
    sort_coordinates(rect)
    return rect


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


def decode_merge_cells(element: ET.Element | None) -> list[MergeCell]:
    if element is None:
        return []
    return [
        MergeCell(el.get("ref", ""))
        for el in element.findall(q("mergeCell"))
        if el.get("ref")
    ]


def encode_merge_cells(merges: list[MergeCell]) -> ET.Element | None:
    if not merges:
        return None
    root = ET.Element(q("mergeCells"), {"count": str(len(merges))})
    for merge in merges:
        ET.SubElement(root, q("mergeCell"), {"ref": merge.ref})
    return root


# ---------------------------------------------------------------------------
# Lookup and edits
# ---------------------------------------------------------------------------


def merge_cells_parser(merges: list[MergeCell], cell: str) -> str:
    """The anchor of the merged area holding *cell*, or *cell* itself."""
    cell = cell.upper()
    coordinates = cell_name_to_coordinates(cell)
    for merge in merges:
        if cell_in_ref(coordinates, merge.rect):
            return merge.start_axis
    return cell


def add_merge(merges: list[MergeCell], rect: list[int]) -> MergeCell:
    """Merge *rect*, dropping existing areas it overlaps."""
    merges[:] = [m for m in merges if not is_overlap(m.rect, rect)]
    merge = MergeCell(coordinates_to_area_ref(rect), rect=list(rect))
    merges.append(merge)
    return merge


def remove_merges(merges: list[MergeCell], rect: list[int]) -> None:
    merges[:] = [m for m in merges if not is_overlap(m.rect, rect)]
