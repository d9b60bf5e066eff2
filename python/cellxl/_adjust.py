"""Reference rewriting after rows or columns are inserted or removed.

An edit is described by ``(axis, num, offset)``: ``offset`` rows (or columns)
were inserted before ``num`` when positive, or ``-offset`` of them starting at
``num`` were deleted when negative. A reference whose cells are all deleted
becomes ``#REF!``.
"""

from __future__ import annotations

import re

from openpyxl.formula.tokenizer import Token, Tokenizer

from cellxl._merge import MergeCell
from cellxl._utils import (
    MAX_COLUMNS,
    MAX_ROWS,
    column_name_to_number,
    column_number_to_name,
    coordinates_to_area_ref,
)

ROWS = "rows"
COLUMNS = "columns"

REF_ERROR = "#REF!"

_REF_PART_RE = re.compile(r"^(\$?)([A-Za-z]{1,3})?(\$?)(\d+)?$")


def shift_span(lo: int, hi: int, num: int, offset: int) -> tuple[int, int] | None:
    """Move the closed interval ``lo..hi``; None when all of it was deleted."""
    if offset >= 0:
        return (lo + offset if lo >= num else lo, hi + offset if hi >= num else hi)
    end = num - offset
    new_lo = lo if lo < num else (num if lo < end else lo + offset)
    new_hi = hi if hi < num else (num - 1 if hi < end else hi + offset)
    if new_hi < new_lo:
        return None
    return new_lo, new_hi


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


def _parse_part(text: str) -> list | None:
    """``[col_anchor, col, row_anchor, row]`` with col or row None for
    whole-row and whole-column parts; None when *text* is not a reference."""
    m = _REF_PART_RE.match(text)
    if m is None or (m.group(2) is None and m.group(4) is None):
        return None
    col = None
    if m.group(2) is not None:
        try:
            col = column_name_to_number(m.group(2))
        except ValueError:
            return None
    row = int(m.group(4)) if m.group(4) is not None else None
    if row is not None and not 1 <= row <= MAX_ROWS:
        return None
    return [m.group(1), col, m.group(3), row]


def _render_part(part: list) -> str:
    col_anchor, col, row_anchor, row = part
    col_text = column_number_to_name(col) if col is not None else ""
    row_text = str(row) if row is not None else ""
    return f"{col_anchor}{col_text}{row_anchor}{row_text}"


def adjust_reference(ref: str, axis: str, num: int, offset: int) -> str:
    """Rewrite one A1 reference (``A1``, ``A1:B2``, ``A:B`` or ``1:2``)."""
    texts = ref.split(":")
    if len(texts) > 2:
        return ref
    parts = [_parse_part(text) for text in texts]
    if any(part is None for part in parts):
        return ref
    if len(parts) == 1 and (parts[0][1] is None or parts[0][3] is None):
        return ref
    if len(parts) == 2 and (
        (parts[0][1] is None) != (parts[1][1] is None)
        or (parts[0][3] is None) != (parts[1][3] is None)
    ):
        return ref

    index, limit = (3, MAX_ROWS) if axis == ROWS else (1, MAX_COLUMNS)
    lo, hi = parts[0][index], parts[-1][index]
    if lo is None or hi is None:
        return ref
    first, last = (0, -1) if lo <= hi else (-1, 0)
    lo, hi = min(lo, hi), max(lo, hi)
    span = shift_span(lo, hi, num, offset)
    if span is None or span[0] > limit:
        return REF_ERROR
    if span == (lo, hi):
        return ref
    parts[first][index] = span[0]
    parts[last][index] = min(span[1], limit)
    return ":".join(_render_part(part) for part in parts)


def adjust_formula(
    content: str,
    formula_sheet: str,
    sheet: str,
    axis: str,
    num: int,
    offset: int,
) -> str:
    """Rewrite the references to *sheet* inside a formula stored on *formula_sheet*."""
    if not content:
        return content
    tokenizer = Tokenizer(content if content.startswith("=") else f"={content}")
    changed = False
    for token in tokenizer.items:
        if token.type != Token.OPERAND or token.subtype != Token.RANGE:
            continue
        prefix, bang, ref = token.value.rpartition("!")
        if prefix.startswith("["):
            continue
        ref_sheet = prefix.strip("'").replace("''", "'") if bang else formula_sheet
        if ref_sheet.casefold() != sheet.casefold():
            continue
        new_ref = adjust_reference(ref, axis, num, offset)
        if new_ref == ref:
            continue
        token.value = new_ref if new_ref == REF_ERROR or not bang else f"{prefix}!{new_ref}"
        changed = True
    if not changed:
        return content
    rendered = tokenizer.render()
    return rendered if content.startswith("=") else rendered[1:]


# ---------------------------------------------------------------------------
# Merged areas
# ---------------------------------------------------------------------------


def adjust_merge_cells(
    merges: list[MergeCell], axis: str, num: int, offset: int
) -> list[MergeCell]:
    """Shifted merges; areas that vanish or shrink to one cell are dropped."""
    kept: list[MergeCell] = []
    for merge in merges:
        x1, y1, x2, y2 = merge.rect
        if axis == ROWS:
            span = shift_span(y1, y2, num, offset)
            if span is None:
                continue
            y1, y2 = span
        else:
            span = shift_span(x1, x2, num, offset)
            if span is None:
                continue
            x1, x2 = span
        if x1 == x2 and y1 == y2:
            continue
        if y2 > MAX_ROWS or x2 > MAX_COLUMNS:
            continue
        rect = [x1, y1, x2, y2]
        kept.append(MergeCell(coordinates_to_area_ref(rect), rect=rect))
    return kept
