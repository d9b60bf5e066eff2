"""ElementTree codec for the package parts the library edits.

Parts are decoded with :func:`parse_part` and written back with
:func:`serialize_part`, which keeps the original root start tag so namespace
declarations that ElementTree would drop (``mc:Ignorable`` prefixes) survive.
"""

from __future__ import annotations

import re
import threading
from xml.etree import ElementTree as ET

from cellxl._cell import FORMULA_NORMAL, Cell, Formula, RichTextFont, RichTextRun
from cellxl._errors import XMLDecodeError

# =============================================================================
# NAMESPACES
# =============================================================================

NS = {
    "main": "http://schemas.openxmlformats.org/spreadsheetml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "rel": "http://schemas.openxmlformats.org/package/2006/relationships",
    "ct": "http://schemas.openxmlformats.org/package/2006/content-types",
    "mc": "http://schemas.openxmlformats.org/markup-compatibility/2006",
    "x14ac": "http://schemas.microsoft.com/office/spreadsheetml/2009/9/ac",
    "xr": "http://schemas.microsoft.com/office/spreadsheetml/2014/revision",
    "xr2": "http://schemas.microsoft.com/office/spreadsheetml/2015/revision2",
    "xr3": "http://schemas.microsoft.com/office/spreadsheetml/2016/revision3",
    "x14": "http://schemas.microsoft.com/office/spreadsheetml/2009/9/main",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
}

MAIN = NS["main"]
R_NS = NS["r"]

for _prefix, _uri in NS.items():
    if _prefix not in ("main", "rel", "ct"):
        ET.register_namespace(_prefix, _uri)
ET.register_namespace("", MAIN)

_STRICT_NAMESPACES = (
    (b"http://purl.oclc.org/ooxml/spreadsheetml/main", MAIN.encode()),
    (b"http://purl.oclc.org/ooxml/officeDocument/relationships", R_NS.encode()),
    (b"http://purl.oclc.org/ooxml/drawingml/main", NS["a"].encode()),
    (
        b"http://purl.oclc.org/ooxml/drawingml/spreadsheetDrawing",
        b"http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing",
    ),
)

_XML_DECLARATION = b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
_SERIALIZE_LOCK = threading.Lock()
_ROOT_OPEN_RE = re.compile(rb"<(?![?!])[^>]*?>", re.DOTALL)
_BSTR_RE = re.compile(r"_x([0-9A-Fa-f]{4})_")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]|_(?=x[0-9A-Fa-f]{4}_)")

# Child order of <worksheet> (CT_Worksheet).
WORKSHEET_CHILD_ORDER = (
    "sheetPr", "dimension", "sheetViews", "sheetFormatPr", "cols", "sheetData",
    "sheetCalcPr", "sheetProtection", "protectedRanges", "scenarios", "autoFilter",
    "sortState", "dataConsolidate", "customSheetViews", "mergeCells", "phoneticPr",
    "conditionalFormatting", "dataValidations", "hyperlinks", "printOptions",
    "pageMargins", "pageSetup", "headerFooter", "rowBreaks", "colBreaks",
    "customProperties", "cellWatches", "ignoredErrors", "smartTags", "drawing",
    "legacyDrawing", "legacyDrawingHF", "drawingHF", "picture", "oleObjects",
    "controls", "webPublishItems", "tableParts", "extLst",
)


def q(tag: str, ns: str = MAIN) -> str:
    """Qualified ElementTree tag name."""
    return f"{{{ns}}}{tag}"


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def as_bool(value: str | None) -> bool:
    return value in ("1", "true")


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------


def namespace_strict_to_transitional(data: bytes) -> bytes:
    """Rewrite ISO strict namespace URIs to their transitional equivalents."""
    for strict, transitional in _STRICT_NAMESPACES:
        if strict in data:
            data = data.replace(strict, transitional)
    return data


def parse_part(name: str, data: bytes) -> ET.Element:
    try:
        return ET.fromstring(namespace_strict_to_transitional(data))
    except ET.ParseError as exc:
        raise XMLDecodeError(name, str(exc)) from exc


def root_start_tag(data: bytes) -> bytes | None:
    """The literal start tag of the root element, or None for self-closing roots."""
    data = namespace_strict_to_transitional(data)
    for m in _ROOT_OPEN_RE.finditer(data):
        tag = m.group(0)
        if tag.endswith(b"/>"):
            return None
        return tag
    return None


def serialize_part(root: ET.Element, start_tag: bytes | None = None) -> bytes:
    """Serialize *root*; reuse *start_tag* verbatim when the source had one.

    The start tag is only reused when it declares the spreadsheet namespace as
    the default namespace, since children are written unprefixed.
    """
    with _SERIALIZE_LOCK:
        if start_tag is None or f'xmlns="{MAIN}"'.encode() not in start_tag:
            return _XML_DECLARATION + ET.tostring(root, encoding="utf-8", xml_declaration=False)
        inner = b"".join(_serialize_child(child) for child in root)
    return _XML_DECLARATION + start_tag + inner + f"</{local_name(root.tag)}>".encode()


def serialize_default_namespace(root: ET.Element, uri: str) -> bytes:
    """Serialize a package part (content types, relationships) whose default namespace is *uri*."""
    with _SERIALIZE_LOCK:
        ET.register_namespace("", uri)
        try:
            return _XML_DECLARATION + ET.tostring(root, encoding="utf-8", xml_declaration=False)
        finally:
            ET.register_namespace("", MAIN)


def _serialize_child(child: ET.Element) -> bytes:
    text = ET.tostring(child, encoding="unicode")
    return text.replace(f' xmlns="{MAIN}"', "").encode("utf-8")


def set_child(root: ET.Element, tag: str, element: ET.Element | None) -> None:
    """Replace, insert (in schema order) or remove the direct child *tag*."""
    existing = root.find(q(tag))
    if existing is not None:
        index = list(root).index(existing)
        root.remove(existing)
        if element is not None:
            root.insert(index, element)
        return
    if element is None:
        return
    rank = WORKSHEET_CHILD_ORDER.index(tag)
    for index, child in enumerate(root):
        name = local_name(child.tag)
        if name in WORKSHEET_CHILD_ORDER and WORKSHEET_CHILD_ORDER.index(name) > rank:
            root.insert(index, element)
            return
    root.append(element)


# ---------------------------------------------------------------------------
# Text escaping (ST_Xstring)
# ---------------------------------------------------------------------------


def decode_bstr(text: str) -> str:
    """Expand ``_xHHHH_`` escapes."""
    if "_x" not in text:
        return text
    return _BSTR_RE.sub(lambda m: chr(int(m.group(1), 16)), text)


def encode_bstr(text: str) -> str:
    """Escape control characters and literal ``_xHHHH_`` sequences."""
    return _CONTROL_RE.sub(lambda m: f"_x{ord(m.group(0)):04X}_", text)


def rich_text(element: ET.Element) -> str:
    """Plain text of an ``<si>`` or ``<is>`` item (runs concatenated, no phonetics)."""
    t_el = element.find(q("t"))
    if t_el is not None:
        return decode_bstr(t_el.text or "")
    return "".join(
        decode_bstr(t.text or "")
        for r in element.findall(q("r"))
        for t in r.findall(q("t"))
    )


def text_element(tag: str, text: str) -> ET.Element:
    el = ET.Element(q(tag))
    _append_text(el, text)
    return el


def _append_text(parent: ET.Element, text: str) -> None:
    t_el = ET.SubElement(parent, q("t"))
    t_el.text = encode_bstr(text)
    if text != text.strip():
        t_el.set("{http://www.w3.org/XML/1998/namespace}space", "preserve")


def decode_rich_runs(element: ET.Element) -> list[RichTextRun]:
    """Runs of an ``<si>`` or ``<is>`` item; a plain item is one unformatted run."""
    t_el = element.find(q("t"))
    if t_el is not None:
        return [RichTextRun(decode_bstr(t_el.text or ""))]
    runs: list[RichTextRun] = []
    for r_el in element.findall(q("r")):
        text = "".join(decode_bstr(t.text or "") for t in r_el.findall(q("t")))
        rpr = r_el.find(q("rPr"))
        runs.append(RichTextRun(text, _decode_rpr(rpr) if rpr is not None else None))
    return runs


def _decode_rpr(rpr: ET.Element) -> RichTextFont:
    font = RichTextFont(
        bold=rpr.find(q("b")) is not None,
        italic=rpr.find(q("i")) is not None,
        strike=rpr.find(q("strike")) is not None,
    )
    u_el = rpr.find(q("u"))
    if u_el is not None:
        font.underline = u_el.get("val", "single")
    r_font = rpr.find(q("rFont"))
    if r_font is not None:
        font.family = r_font.get("val", "")
    sz = rpr.find(q("sz"))
    if sz is not None and sz.get("val"):
        font.size = float(sz.get("val", "0"))
    color = rpr.find(q("color"))
    if color is not None:
        rgb = color.get("rgb", "")
        font.color = rgb[2:] if len(rgb) == 8 and rgb[:2].upper() == "FF" else rgb
    return font


def encode_rich_runs(tag: str, runs: list[RichTextRun]) -> ET.Element:
    """An ``<si>``/``<is>`` item with one ``<r>`` per run."""
    el = ET.Element(q(tag))
    for run in runs:
        r_el = ET.SubElement(el, q("r"))
        if run.font is not None:
            r_el.append(_encode_rpr(run.font))
        _append_text(r_el, run.text)
    return el


def _encode_rpr(font: RichTextFont) -> ET.Element:
    rpr = ET.Element(q("rPr"))
    if font.family:
        ET.SubElement(rpr, q("rFont"), {"val": font.family})
    for flag, tag in ((font.bold, "b"), (font.italic, "i"), (font.strike, "strike")):
        if flag:
            ET.SubElement(rpr, q(tag))
    if font.color:
        rgb = font.color.lstrip("#").upper()
        ET.SubElement(rpr, q("color"), {"rgb": "FF" + rgb if len(rgb) == 6 else rgb})
    if font.size > 0:
        ET.SubElement(rpr, q("sz"), {"val": format(font.size, "g")})
    if font.underline:
        ET.SubElement(rpr, q("u"), {"val": font.underline})
    return rpr


# ---------------------------------------------------------------------------
# Worksheet: cells
# ---------------------------------------------------------------------------


def decode_cell(c_el: ET.Element) -> Cell:
    cell = Cell(
        ref=c_el.get("r", ""),
        style=int(c_el.get("s", "0")),
        type=c_el.get("t", ""),
    )
    v_el = c_el.find(q("v"))
    if v_el is not None:
        cell.value = v_el.text or ""
    f_el = c_el.find(q("f"))
    if f_el is not None:
        si = f_el.get("si")
        cell.formula = Formula(
            content=f_el.text or "",
            kind=f_el.get("t", FORMULA_NORMAL),
            ref=f_el.get("ref", ""),
            si=int(si) if si is not None else None,
        )
    is_el = c_el.find(q("is"))
    if is_el is not None:
        cell.inline_string = rich_text(is_el)
    return cell


def encode_cell(cell: Cell) -> ET.Element:
    c_el = ET.Element(q("c"), {"r": cell.ref})
    if cell.style:
        c_el.set("s", str(cell.style))
    if cell.type:
        c_el.set("t", cell.type)
    formula = cell.formula
    if formula is not None:
        f_el = ET.SubElement(c_el, q("f"))
        if formula.kind != FORMULA_NORMAL:
            f_el.set("t", formula.kind)
        if formula.ref:
            f_el.set("ref", formula.ref)
        if formula.si is not None:
            f_el.set("si", str(formula.si))
        content = formula.content[1:] if formula.content.startswith("=") else formula.content
        if content:
            f_el.text = content
    if cell.inline_string is not None:
        c_el.append(text_element("is", cell.inline_string))
    elif cell.value != "":
        v_el = ET.SubElement(c_el, q("v"))
        v_el.text = cell.value
    return c_el


# ---------------------------------------------------------------------------
# Shared strings
# ---------------------------------------------------------------------------


def decode_shared_strings(root: ET.Element) -> list[tuple[str, ET.Element, bool]]:
    """``(text, <si> element, is_plain)`` per shared string item."""
    items: list[tuple[str, ET.Element, bool]] = []
    for si in root.findall(q("si")):
        plain = si.find(q("t")) is not None and si.find(q("r")) is None
        items.append((rich_text(si), si, plain))
    return items


def encode_shared_strings(elements: list[ET.Element], count: int) -> ET.Element:
    root = ET.Element(q("sst"), {"count": str(count), "uniqueCount": str(len(elements))})
    root.extend(elements)
    return root


# ---------------------------------------------------------------------------
# Workbook and calc chain
# ---------------------------------------------------------------------------


def decode_workbook_sheets(root: ET.Element) -> list[tuple[str, int, str]]:
    """``(name, sheetId, relationship id)`` for every ``<sheet>`` in order."""
    sheets_el = root.find(q("sheets"))
    if sheets_el is None:
        return []
    return [
        (el.get("name", ""), int(el.get("sheetId", "0")), el.get(q("id", R_NS), ""))
        for el in sheets_el.findall(q("sheet"))
    ]


def decode_calc_chain(root: ET.Element) -> list[tuple[int, str]]:
    """``(sheet id, cell)`` entries; an omitted ``i`` repeats the previous sheet id."""
    entries: list[tuple[int, str]] = []
    sheet_id = 0
    for c_el in root.findall(q("c")):
        if c_el.get("i") is not None:
            sheet_id = int(c_el.get("i", "0"))
        entries.append((sheet_id, c_el.get("r", "")))
    return entries


def encode_calc_chain(entries: list[tuple[int, str]]) -> ET.Element:
    root = ET.Element(q("calcChain"))
    for sheet_id, ref in entries:
        ET.SubElement(root, q("c"), {"r": ref, "i": str(sheet_id)})
    return root
