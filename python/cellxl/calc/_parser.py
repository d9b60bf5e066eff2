"""Formula tokens and cell reference parsing.

Lexing is done by :class:`openpyxl.formula.tokenizer.Tokenizer`; this module
adapts its output for the evaluator and turns range operands into
:class:`CellRef` / :class:`CellRange` values.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import NamedTuple

from openpyxl.formula.tokenizer import Token, Tokenizer
from openpyxl.formula.translate import Translator

from cellxl._errors import FormulaError, InvalidCellNameError
from cellxl._utils import cell_name_to_coordinates, coordinates_to_cell_name, sort_coordinates

# Subtype of operand tokens whose value was read from a cell rather than
# written in the formula.
CELL = "CELL"

REF_ERROR = "#REF!"


def tokenize(formula: str) -> list[Token]:
    """Token list of *formula* with whitespace removed; "" gives []."""
    formula = formula.strip()
    if not formula or formula == "=":
        return []
    if not formula.startswith("="):
        formula = f"={formula}"
    return [token for token in Tokenizer(formula).items if token.type != Token.WSPACE]


def is_function_start(token: Token) -> bool:
    return token.type == Token.FUNC and token.subtype == Token.OPEN


def is_function_stop(token: Token) -> bool:
    return token.type == Token.FUNC and token.subtype == Token.CLOSE


def is_range(token: Token) -> bool:
    return token.type == Token.OPERAND and token.subtype == Token.RANGE


def is_separator(token: Token) -> bool:
    return token.type == Token.SEP and token.subtype == Token.ARG


def operand(value: str, subtype: str = Token.NUMBER) -> Token:
    return Token(value, Token.OPERAND, subtype)


def unquote_text(value: str) -> str:
    """Strip the quotes of a text literal token and undo ``""`` escapes."""
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1].replace('""', '"')
    return value


def translate_shared_formula(content: str, origin: str, dest: str) -> str:
    """Formula text of a shared group's master moved from *origin* to *dest*.

    Relative references shift by the row and column delta; ``$`` anchored
    parts stay put. A leading "=" is kept only when *content* has one.
    """
    if not content or origin == dest:
        return content
    has_equals = content.startswith("=")
    translated = Translator(content if has_equals else f"={content}", origin).translate_formula(dest)
    return translated if has_equals else translated[1:]


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class CellRef(NamedTuple):
    sheet: str
    col: int
    row: int

    @property
    def coordinate(self) -> str:
        return coordinates_to_cell_name(self.col, self.row)


class CellRange(NamedTuple):
    start: CellRef
    end: CellRef

    def cells(self) -> Iterator[CellRef]:
        """Cells of the range row by row."""
        if self.start.sheet.casefold() != self.end.sheet.casefold():
            raise FormulaError("#VALUE!")
        rect = [self.start.col, self.start.row, self.end.col, self.end.row]
        sort_coordinates(rect)
        for row in range(rect[1], rect[3] + 1):
            for col in range(rect[0], rect[2] + 1):
                yield CellRef(self.start.sheet, col, row)


def _sheet_name(prefix: str) -> str:
    if len(prefix) >= 2 and prefix[0] == prefix[-1] == "'":
        return prefix[1:-1].replace("''", "'")
    return prefix


def parse_reference(default_sheet: str, text: str) -> tuple[list[CellRef], list[CellRange]]:
    """Split a range operand into single references and ranges.

    Parts are separated by ``:``. A part closes a range when a reference is
    pending: an unqualified end takes the sheet of the start, a qualified one
    keeps its own, so ``Sheet1!A1:Sheet2!B2`` is a cross-sheet range that
    resolves to ``#VALUE!``. With nothing pending the part becomes the pending
    reference, on *default_sheet* when unqualified. ``A1:A2:A2:B3``
    therefore yields ``A1:A2`` and ``A2:B3`` and never the cells between them.

    Raises :class:`InvalidCellNameError` for malformed parts and
    :class:`FormulaError` ``#REF!`` for deleted references.
    """
    text = text.replace("$", "")
    if REF_ERROR in text:
        raise FormulaError(REF_ERROR)
    refs: list[CellRef] = []
    ranges: list[CellRange] = []
    pending: CellRef | None = None
    for part in text.split(":"):
        prefix, bang, cell = part.rpartition("!")
        if not cell:
            raise InvalidCellNameError(part)
        col, row = cell_name_to_coordinates(cell)
        if pending is None:
            pending = CellRef(_sheet_name(prefix) if bang else default_sheet, col, row)
            continue
        sheet = _sheet_name(prefix) if bang else pending.sheet
        ranges.append(CellRange(pending, CellRef(sheet, col, row)))
        pending = None
    if pending is not None:
        refs.append(pending)
    return refs, ranges


def all_references(formula: str, current_sheet: str) -> list[str]:
    """Every cell a formula reads, as ``"Sheet!A1"`` strings, ranges expanded.

    Operands that are not cell references (names, whole rows or columns,
    deleted references) are skipped.
    """
    refs: list[str] = []
    seen: set[str] = set()
    for token in tokenize(formula):
        if not is_range(token):
            continue
        try:
            singles, ranges = parse_reference(current_sheet, token.value)
            cells = list(singles)
            for cell_range in ranges:
                cells.extend(cell_range.cells())
        except (InvalidCellNameError, FormulaError):
            continue
        for cell in cells:
            canonical = f"{cell.sheet}!{cell.coordinate}"
            if canonical not in seen:
                refs.append(canonical)
                seen.add(canonical)
    return refs
