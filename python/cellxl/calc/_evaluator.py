"""FormulaEvaluator: operator-precedence evaluation over formula tokens.

A formula is evaluated in a single pass over its token list with explicit
stacks instead of recursion::

    opd  - operands outside any function call
    opt  - operators outside any function call
    opf  - open function calls, one frame each

and per frame::

    opfd - operands inside the call
    opft - operators inside the call
    args - finished argument values

Range operands inside a call are resolved as soon as they are seen: as a
single cell when an operator is pending, otherwise expanded into ``args``
when the next token ends the argument.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from openpyxl.formula.tokenizer import Token, TokenizerError

from cellxl._cell import FORMULA_DATA_TABLE, is_numeric
from cellxl._errors import (
    CircularReferenceError,
    FormulaError,
    FunctionArgumentError,
    InvalidCellNameError,
    OperandParseError,
    SheetNotExistError,
    UnsupportedFunctionError,
    UnsupportedOperatorError,
)
from cellxl._utils import cell_name_to_coordinates
from cellxl.calc._functions import (
    ExcelError,
    FunctionRegistry,
    first_error,
    format_number,
    is_error,
    to_number,
)
from cellxl.calc._graph import DependencyGraph
from cellxl.calc._parser import (
    CELL,
    CellRange,
    CellRef,
    is_function_start,
    is_function_stop,
    is_range,
    is_separator,
    operand,
    parse_reference,
    tokenize,
    unquote_text,
)

if TYPE_CHECKING:
    from cellxl._workbook import Workbook

logger = logging.getLogger(__name__)

_INFIX_OPERATORS = frozenset({"+", "-", "*", "/"})


def _priority(token: Token) -> int:
    if token.type == Token.PAREN:
        return 0
    if token.type == Token.OP_PRE:
        return 3
    if token.value in ("*", "/"):
        return 2
    return 1


def _is_open_paren(token: Token) -> bool:
    return token.type == Token.PAREN and token.subtype == Token.OPEN


def _error_token(code: str) -> Token:
    return operand(code, Token.ERROR)


def _result_token(value: str) -> Token:
    if is_error(value):
        return _error_token(value.upper())
    if is_numeric(value)[0]:
        return operand(value)
    return operand(value, Token.TEXT)


class _Frame:
    """One open function call."""

    __slots__ = ("function", "opfd", "opft", "args")

    def __init__(self, function: Token) -> None:
        self.function = function
        self.opfd: list[Token] = []
        self.opft: list[Token] = []
        self.args: list[Token] = []


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def _calculate(operands: list[Token], operator: Token) -> None:
    """Apply *operator* to the top of *operands*; errors propagate as values."""
    if _is_open_paren(operator):
        return
    if operator.type == Token.OP_PRE:
        if not operands:
            raise OperandParseError(operator.value)
        value = operands.pop()
        if is_error(value.value):
            operands.append(value)
            return
        operands.append(operand(format_number(-to_number(value.value))))
        return
    if len(operands) < 2:
        raise OperandParseError(operator.value)
    right = operands.pop()
    left = operands.pop()
    error = first_error([left, right])
    if error is not None:
        operands.append(_error_token(error))
        return
    lhs = to_number(left.value)
    rhs = to_number(right.value)
    if operator.value == "+":
        result = lhs + rhs
    elif operator.value == "-":
        result = lhs - rhs
    elif operator.value == "*":
        result = lhs * rhs
    else:
        if rhs == 0:
            operands.append(_error_token(ExcelError.DIV0.code))
            return
        result = lhs / rhs
    operands.append(_result_token(format_number(result)))


def _drain(operands: list[Token], operators: list[Token]) -> None:
    while operators:
        _calculate(operands, operators.pop())


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class FormulaEvaluator:
    """Evaluates cell formulas of a :class:`~cellxl.Workbook`.

    Usage::

        evaluator = FormulaEvaluator(workbook)
        evaluator.calc_cell_value("Sheet1", "C1")
        results = evaluator.calculate()

    Values computed by one evaluator are memoized, so create a new one after
    the workbook changes.
    """

    def __init__(self, workbook: Workbook, functions: FunctionRegistry | None = None) -> None:
        self._workbook = workbook
        self._functions = functions or FunctionRegistry()
        # (sheet title, cell) -> result text
        self._computed: dict[tuple[str, str], str] = {}
        self._visiting: set[tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def calc_cell_value(self, sheet: str, cell: str) -> str:
        """Evaluate the formula of *cell*.

        Returns "" for a cell without a formula and the cached value of a
        data-table formula. Raises :class:`FormulaError` when the result is
        an error value.
        """
        ws = self._workbook[sheet]
        with ws._lock:  # noqa: SLF001
            c = ws._lookup(cell)  # noqa: SLF001
            if c is None or c.formula is None:
                return ""
            if c.formula.kind == FORMULA_DATA_TABLE:
                return c.value
            formula = ws._formula_text(c)  # noqa: SLF001
            ref = c.ref
        result = self._evaluate(ws.title, ref, formula)
        if is_error(result):
            raise FormulaError(result.upper())
        return result

    def evaluate(self, sheet: str, formula: str) -> str:
        """Evaluate formula text as if it were entered on *sheet*."""
        return self.eval_infix(self._workbook[sheet].title, tokenize(formula)).value

    def calculate(self, write_back: bool = True) -> dict[str, str]:
        """Evaluate every formula cell in dependency order.

        Returns ``{"Sheet!A1": result}``. With *write_back* each result is
        stored as the cell's cached value (error results with type ``e``).
        Cells that fail validation are logged and left untouched. Raises
        :class:`CircularReferenceError` for formulas that depend on each
        other in a cycle.
        """
        graph = DependencyGraph.from_workbook(self._workbook)
        results: dict[str, str] = {}
        for cell_ref in graph.topological_order():
            sheet, _, ref = cell_ref.rpartition("!")
            try:
                value = self._evaluate(sheet, ref, graph.formulas[cell_ref])
            except UnsupportedFunctionError as exc:
                logger.debug("Skipping %s: %s", cell_ref, exc)
                continue
            except (
                FunctionArgumentError,
                OperandParseError,
                UnsupportedOperatorError,
                CircularReferenceError,
                TokenizerError,
            ) as exc:
                logger.warning("Cannot calculate %s: %s", cell_ref, exc)
                continue
            results[cell_ref] = value
            if write_back:
                self._store(sheet, ref, value)
        return results

    # ------------------------------------------------------------------
    # Infix evaluation
    # ------------------------------------------------------------------

    def eval_infix(self, sheet: str, tokens: list[Token]) -> Token:
        """Reduce *tokens* to a single result token."""
        opd: list[Token] = []
        opt: list[Token] = []
        opf: list[_Frame] = []
        for i, token in enumerate(tokens):
            if is_function_start(token):
                opf.append(_Frame(token))
                continue

            if not opf:
                self._parse_token(sheet, token, opd, opt)
                continue

            frame = opf[-1]
            next_token = tokens[i + 1] if i + 1 < len(tokens) else None

            if is_range(token):
                if frame.opft:
                    frame.opfd.append(self._resolve_scalar(sheet, token))
                    continue
                if next_token is not None and (
                    is_separator(next_token) or next_token.type == Token.FUNC
                ):
                    frame.args.extend(self._resolve(sheet, token))
                    continue

            if is_separator(token):
                _drain(frame.opfd, frame.opft)
                if frame.opfd:
                    frame.args.append(frame.opfd.pop())
                continue

            if is_function_stop(token):
                _drain(frame.opfd, frame.opft)
                if frame.opfd:
                    frame.args.append(frame.opfd.pop())
                result = self._call(frame)
                opf.pop()
                (opf[-1].opfd if opf else opd).append(result)
                continue

            self._parse_token(sheet, token, frame.opfd, frame.opft)

        _drain(opd, opt)
        return opd[-1] if opd else operand("", Token.TEXT)

    def _parse_token(
        self, sheet: str, token: Token, operands: list[Token], operators: list[Token]
    ) -> None:
        if is_range(token):
            operands.append(self._resolve_scalar(sheet, token))
            return
        if token.type == Token.OPERAND:
            if token.subtype == Token.TEXT:
                operands.append(operand(unquote_text(token.value), Token.TEXT))
            else:
                operands.append(token)
            return
        if token.type == Token.OP_PRE:
            if token.value == "+":
                return
            if token.value != "-":
                raise UnsupportedOperatorError(token.value)
            operators.append(token)
            return
        if token.type == Token.OP_IN:
            if token.value not in _INFIX_OPERATORS:
                raise UnsupportedOperatorError(token.value)
            priority = _priority(token)
            while operators and _priority(operators[-1]) >= priority:
                _calculate(operands, operators.pop())
            operators.append(token)
            return
        if token.type == Token.OP_POST:
            raise UnsupportedOperatorError(token.value)
        if token.type == Token.PAREN:
            if token.subtype == Token.OPEN:
                operators.append(token)
                return
            while operators and not _is_open_paren(operators[-1]):
                _calculate(operands, operators.pop())
            if operators:
                operators.pop()

    def _call(self, frame: _Frame) -> Token:
        func = self._functions.get(frame.function.value)
        error = first_error(frame.args)
        if error is not None:
            return _error_token(error)
        try:
            return _result_token(func(frame.args))
        except OverflowError:
            # Infinite operands reaching int conversions.
            return _error_token(ExcelError.NUM.code)

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _resolve(self, sheet: str, token: Token) -> list[Token]:
        """Values of a range operand; resolution failures become one error token."""
        try:
            values = self.parse_reference(sheet, token.value)
        except FormulaError as exc:
            return [_error_token(exc.code)]
        if not values:
            return [_error_token(ExcelError.VALUE.code)]
        return [operand(value, CELL) for value in values]

    def _resolve_scalar(self, sheet: str, token: Token) -> Token:
        values = self._resolve(sheet, token)
        if len(values) != 1:
            return _error_token(ExcelError.VALUE.code)
        return values[0]

    def parse_reference(self, sheet: str, reference: str) -> list[str]:
        """Cell values a reference operand covers.

        Raises FormulaError ``#NAME?`` for malformed references, ``#REF!``
        for unknown sheets and ``#VALUE!`` for ranges spanning two sheets.
        """
        try:
            cell_refs, cell_ranges = parse_reference(sheet, reference)
        except InvalidCellNameError:
            raise FormulaError(ExcelError.NAME.code) from None
        return self.range_resolver(cell_refs, cell_ranges)

    def range_resolver(self, cell_refs: list[CellRef], cell_ranges: list[CellRange]) -> list[str]:
        """Values of the ranges and then the single references, each cell once.

        Cells are ordered by sheet (first appearance), then row, then column.
        """
        sheet_order: dict[str, int] = {}
        cells: dict[tuple[str, int, int], CellRef] = {}

        def visit(ref: CellRef) -> None:
            key = ref.sheet.casefold()
            sheet_order.setdefault(key, len(sheet_order))
            cells.setdefault((key, ref.col, ref.row), ref)

        for cell_range in cell_ranges:
            for ref in cell_range.cells():
                visit(ref)
        for ref in cell_refs:
            visit(ref)

        ordered = sorted(cells.items(), key=lambda item: (sheet_order[item[0][0]], item[0][2], item[0][1]))
        return [self._cell_value(ref) for _, ref in ordered]

    def _cell_value(self, ref: CellRef) -> str:
        """Stored value of a cell; formula cells without a cached value are
        evaluated first. Number formats are not applied."""
        try:
            ws = self._workbook[ref.sheet]
        except SheetNotExistError:
            raise FormulaError(ExcelError.REF.code) from None
        coordinate = ref.coordinate
        key = (ws.title, coordinate)
        if key in self._computed:
            return self._computed[key]
        with ws._lock:  # noqa: SLF001
            c = ws._lookup(coordinate)  # noqa: SLF001
            if c is None:
                return ""
            formula = ""
            if c.formula is not None and not c.value and c.formula.kind != FORMULA_DATA_TABLE:
                formula = ws._formula_text(c)  # noqa: SLF001
            if not formula:
                # Booleans read as TRUE/FALSE so aggregates skip them.
                return ws._value_of(c, raw=c.type != "b")  # noqa: SLF001
            target = c.ref
        return self._evaluate(ws.title, target, formula)

    # ------------------------------------------------------------------
    # Cell evaluation
    # ------------------------------------------------------------------

    def _evaluate(self, sheet: str, ref: str, formula: str) -> str:
        key = (sheet, ref)
        if key in self._computed:
            return self._computed[key]
        if key in self._visiting:
            raise CircularReferenceError(f"circular reference at {sheet}!{ref}")
        self._visiting.add(key)
        try:
            result = self.eval_infix(sheet, tokenize(formula)).value
        finally:
            self._visiting.discard(key)
        self._computed[key] = result
        return result

    def _store(self, sheet: str, ref: str, value: str) -> None:
        ws = self._workbook[sheet]
        col, row = cell_name_to_coordinates(ref)
        with ws._lock:  # noqa: SLF001
            c = ws._cell_at(col, row)  # noqa: SLF001
            if c is None or c.formula is None:
                return
            if is_error(value):
                c.assign("e", value.upper())
            elif value and is_numeric(value)[0]:
                c.assign("", value)
            else:
                c.assign("str", value)
