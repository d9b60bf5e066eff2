"""Tests for cellxl.calc FormulaEvaluator."""

from __future__ import annotations

import logging
import math

import pytest

from cellxl import (
    CircularReferenceError,
    FormulaError,
    OperandParseError,
    UnsupportedFunctionError,
    UnsupportedOperatorError,
    Workbook,
)
from cellxl.calc import FormulaEvaluator, FunctionRegistry
from cellxl.calc._functions import format_number, to_number


def _make_sum_chain_workbook() -> Workbook:
    """Sheet1: A1=10, A2=20, A3=SUM(A1:A2), A4=A3*2."""
    wb = Workbook()
    ws = wb["Sheet1"]
    ws["A1"] = 10
    ws["A2"] = 20
    ws.set_cell_formula("A3", "=SUM(A1:A2)")
    ws.set_cell_formula("A4", "=A3*2")
    return wb


def _evaluate(formula: str, wb: Workbook | None = None) -> str:
    return FormulaEvaluator(wb or Workbook()).evaluate("Sheet1", formula)


class TestArithmetic:
    @pytest.mark.parametrize(
        "formula,expected",
        [
            ("=1+2*3", "7"),
            ("=(1+2)*3", "9"),
            ("=10-2-3", "5"),
            ("=2*3/4", "1.5"),
            ("=-2+3", "1"),
            ("=2*-3", "-6"),
            ("=-(1+2)", "-3"),
            ("=+5", "5"),
            ("= 1 + 2 ", "3"),
            ("=0.1+0.2", "0.3"),
            ("=TRUE+1", "2"),
            ("=1/3", "0.333333333333333"),
            ("=2*(3+(4-1))", "12"),
        ],
    )
    def test_evaluate(self, formula: str, expected: str) -> None:
        assert _evaluate(formula) == expected

    def test_division_by_zero(self) -> None:
        assert _evaluate("=1/0") == "#DIV/0!"
        assert _evaluate("=1/0+5") == "#DIV/0!"

    def test_error_literal_propagates(self) -> None:
        assert _evaluate("=#N/A*2") == "#N/A"

    def test_text_operand(self) -> None:
        with pytest.raises(OperandParseError):
            _evaluate('="abc"+1')

    @pytest.mark.parametrize("formula,operator", [("=1&2", "&"), ("=2^3", "^"), ("=1=1", "="), ("=50%", "%")])
    def test_unsupported_operators(self, formula: str, operator: str) -> None:
        with pytest.raises(UnsupportedOperatorError) as exc:
            _evaluate(formula)
        assert exc.value.operator == operator

    def test_empty_formula(self) -> None:
        assert _evaluate("") == ""


class TestReferences:
    def test_cell_values(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws["A1"] = 1
        ws["B1"] = 2
        ws.set_cell_formula("C1", "=SUM(A1,B1)")
        ws.set_cell_formula("D1", "A1*10+B1")
        assert wb.calc_cell_value("Sheet1", "C1") == "3"
        assert wb.calc_cell_value("Sheet1", "D1") == "12"

    def test_blank_is_zero(self) -> None:
        assert _evaluate("=A5+1") == "1"

    def test_bool_cell(self) -> None:
        wb = Workbook()
        wb["Sheet1"]["A1"] = True
        assert _evaluate("=A1+1", wb) == "2"

    def test_other_sheet(self) -> None:
        wb = Workbook()
        wb.new_sheet("My Data")["A1"] = 5
        assert _evaluate("='My Data'!A1*2", wb) == "10"
        assert _evaluate("=SUM('My Data'!A1:A3)", wb) == "5"

    def test_cross_sheet_range(self) -> None:
        wb = Workbook()
        wb["Sheet1"]["A1"] = 1
        wb.new_sheet("Sheet2")["B2"] = 2
        assert _evaluate("=SUM(Sheet1!A1:Sheet2!B2)", wb) == "#VALUE!"
        assert _evaluate("=SUM(Sheet1!A1:sheet1!A2)", wb) == "1"

    def test_missing_sheet(self) -> None:
        assert _evaluate("=Nope!A1+1") == "#REF!"

    def test_range_in_scalar_position(self) -> None:
        assert _evaluate("=A1:A2+1") == "#VALUE!"

    def test_deleted_reference(self) -> None:
        assert _evaluate("=#REF!+1") == "#REF!"

    def test_malformed_reference(self) -> None:
        assert _evaluate("=SUM(A:A)") == "#NAME?"

    def test_parse_reference_orders_cells(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_sheet_row("A1", [1, 2])
        ws.set_sheet_row("A2", [3, 4])
        ev = FormulaEvaluator(wb)
        assert ev.parse_reference("Sheet1", "A1:B2") == ["1", "2", "3", "4"]
        assert ev.parse_reference("Sheet1", "B2:A1") == ["1", "2", "3", "4"]
        assert ev.parse_reference("Sheet1", "A1:A2:A2:B2") == ["1", "3", "4"]

    def test_parse_reference_errors(self) -> None:
        ev = FormulaEvaluator(Workbook())
        with pytest.raises(FormulaError) as exc:
            ev.parse_reference("Sheet1", "NotACell")
        assert exc.value.code == "#NAME?"

    def test_formula_cells_are_evaluated_on_demand(self) -> None:
        wb = _make_sum_chain_workbook()
        assert wb.calc_cell_value("Sheet1", "A4") == "60"

    def test_cached_value_is_used(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "1+1")
        ws["A1"].value = "5"
        ws.set_cell_formula("B1", "A1*2")
        assert wb.calc_cell_value("Sheet1", "B1") == "10"


class TestCalcCellValue:
    def test_no_formula(self) -> None:
        wb = Workbook()
        wb["Sheet1"]["A1"] = 3
        assert wb.calc_cell_value("Sheet1", "A1") == ""
        assert wb.calc_cell_value("Sheet1", "Z9") == ""

    def test_error_result_raises(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "=SQRT(-1)")
        ws.set_cell_formula("A2", "=1/0")
        ws.set_cell_formula("A3", "=A2+1")
        with pytest.raises(FormulaError) as exc:
            wb.calc_cell_value("Sheet1", "A1")
        assert exc.value.code == "#NUM!"
        with pytest.raises(FormulaError) as exc:
            wb.calc_cell_value("Sheet1", "A2")
        assert exc.value.code == "#DIV/0!"
        with pytest.raises(FormulaError) as exc:
            wb.calc_cell_value("Sheet1", "A3")
        assert exc.value.code == "#DIV/0!"

    def test_shared_formula(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        for row in range(1, 6):
            ws[f"A{row}"] = row
            ws[f"B{row}"] = row * 10
        ws.set_cell_formula("C1", "=A1+B1", formula_type="shared", ref="C1:C5")
        assert wb.calc_cell_value("Sheet1", "C3") == "33"
        assert wb.calc_cell_value("Sheet1", "C5") == "55"

    def test_unsupported_function(self) -> None:
        wb = Workbook()
        wb["Sheet1"].set_cell_formula("A1", "FOO(1)")
        with pytest.raises(UnsupportedFunctionError) as exc:
            wb.calc_cell_value("Sheet1", "A1")
        assert exc.value.name == "FOO"

    def test_circular_reference(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "B1+1")
        ws.set_cell_formula("B1", "A1+1")
        with pytest.raises(CircularReferenceError):
            wb.calc_cell_value("Sheet1", "A1")

    def test_self_reference(self) -> None:
        wb = Workbook()
        wb["Sheet1"].set_cell_formula("A1", "A1+1")
        with pytest.raises(CircularReferenceError):
            wb.calc_cell_value("Sheet1", "A1")

    def test_data_table_returns_cached_value(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "TABLE(B1,C1)", formula_type="dataTable")
        ws["A1"].value = "42"
        assert wb.calc_cell_value("Sheet1", "A1") == "42"

    def test_case_insensitive_sheet(self) -> None:
        wb = Workbook()
        wb["Sheet1"].set_cell_formula("A1", "2+2")
        assert wb.calc_cell_value("SHEET1", "a1") == "4"


class TestCalculate:
    def test_sum_chain(self) -> None:
        wb = _make_sum_chain_workbook()
        results = wb.calculate()
        assert results == {"Sheet1!A3": "30", "Sheet1!A4": "60"}
        ws = wb["Sheet1"]
        assert ws.get_cell_value("A4") == "60"
        assert ws["A4"].type == ""
        assert ws.get_cell_formula("A4") == "=A3*2"

    def test_without_write_back(self) -> None:
        wb = _make_sum_chain_workbook()
        wb.calculate(write_back=False)
        assert wb["Sheet1"]["A4"].value == ""

    def test_result_types(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", '=UPPER("ab")')
        ws.set_cell_formula("A2", "=1/0")
        wb.calculate()
        assert (ws["A1"].type, ws["A1"].value) == ("str", "AB")
        assert (ws["A2"].type, ws["A2"].value) == ("e", "#DIV/0!")

    def test_cross_sheet_order(self) -> None:
        wb = Workbook()
        other = wb.new_sheet("Other")
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "Other!A1+1")
        other.set_cell_formula("A1", "2*3")
        assert wb.calculate() == {"Other!A1": "6", "Sheet1!A1": "7"}

    def test_skips_failing_cells(self, caplog: pytest.LogCaptureFixture) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "FOO(1)")
        ws.set_cell_formula("A2", "1&2")
        ws.set_cell_formula("A3", "ABS(1,2)")
        ws.set_cell_formula("A4", "1+1")
        with caplog.at_level(logging.DEBUG, logger="cellxl.calc._evaluator"):
            results = wb.calculate()
        assert results == {"Sheet1!A4": "2"}
        assert ws["A1"].value == ""
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2

    def test_overflow_does_not_stop_calculation(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "=1+1")
        ws.set_cell_formula("A2", "=SUM(1E308,1E308)")
        assert wb.calculate() == {"Sheet1!A1": "2", "Sheet1!A2": "#NUM!"}
        assert (ws["A2"].type, ws["A2"].value) == ("e", "#NUM!")

    def test_cycle_raises(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "B1")
        ws.set_cell_formula("B1", "A1")
        with pytest.raises(CircularReferenceError):
            wb.calculate()

    def test_data_table_is_skipped(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "TABLE(B1,C1)", formula_type="dataTable")
        ws["A1"].value = "42"
        assert wb.calculate() == {}
        assert ws["A1"].value == "42"

    def test_update_linked_value(self) -> None:
        wb = _make_sum_chain_workbook()
        wb.calculate()
        wb.update_linked_value()
        ws = wb["Sheet1"]
        assert ws["A3"].value == ""
        assert ws.get_cell_formula("A3") == "=SUM(A1:A2)"
        assert wb._workbook_root.find(
            "{http://schemas.openxmlformats.org/spreadsheetml/2006/main}calcPr"
        ) is None


class TestCustomFunctions:
    def test_register(self) -> None:
        registry = FunctionRegistry()
        registry.register("double", lambda args: format_number(to_number(args[0].value) * 2))
        ev = FormulaEvaluator(Workbook(), registry)
        assert ev.evaluate("Sheet1", "=DOUBLE(4)+1") == "9"

    def test_overflow_in_function_is_num_error(self) -> None:
        registry = FunctionRegistry()
        registry.register("WHOLE", lambda args: format_number(math.trunc(to_number(args[0].value))))
        ev = FormulaEvaluator(Workbook(), registry)
        assert ev.evaluate("Sheet1", "=WHOLE(2.5)") == "2"
        assert ev.evaluate("Sheet1", "=WHOLE(1E999)+1") == "#NUM!"

    def test_nested_calls(self) -> None:
        assert _evaluate("=SUM(1,MAX(2,3))*2") == "8"
        assert _evaluate("=ROUND(SUM(1.25,1.25)/2,1)") == "1.3"

    def test_error_argument_short_circuits(self) -> None:
        assert _evaluate("=SUM(1/0,1)") == "#DIV/0!"
        assert _evaluate("=ABS(Nope!A1)") == "#REF!"
