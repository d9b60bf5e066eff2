"""Tests for row/column insertion, removal and duplication."""

from __future__ import annotations

import pytest

from cellxl import InvalidRowNumberError, Workbook
from cellxl._adjust import COLUMNS, ROWS, adjust_formula, adjust_reference, shift_span


def _column_sheet() -> Workbook:
    """Sheet1: A1..A3 = 1..3, B1 = SUM(A1:A3), C1 = A2*2."""
    wb = Workbook()
    ws = wb["Sheet1"]
    for n in (1, 2, 3):
        ws[f"A{n}"] = n
    ws.set_cell_formula("B1", "SUM(A1:A3)")
    ws.set_cell_formula("C1", "A2*2")
    return wb


class TestShiftSpan:
    def test_insert(self) -> None:
        assert shift_span(2, 4, 3, 2) == (2, 6)
        assert shift_span(5, 6, 3, 2) == (7, 8)
        assert shift_span(1, 2, 3, 2) == (1, 2)

    def test_delete(self) -> None:
        assert shift_span(1, 3, 2, -1) == (1, 2)
        assert shift_span(4, 5, 2, -1) == (3, 4)
        assert shift_span(2, 2, 2, -1) is None
        assert shift_span(2, 5, 1, -2) == (1, 3)


class TestAdjustReference:
    def test_cells_and_areas(self) -> None:
        assert adjust_reference("A5", ROWS, 2, 1) == "A6"
        assert adjust_reference("$A$5", ROWS, 2, 1) == "$A$6"
        assert adjust_reference("A1:C5", COLUMNS, 2, 1) == "A1:D5"
        assert adjust_reference("A2", ROWS, 2, -1) == "#REF!"

    def test_whole_rows_and_columns(self) -> None:
        assert adjust_reference("B:C", COLUMNS, 1, 1) == "C:D"
        assert adjust_reference("3:4", ROWS, 1, -1) == "2:3"
        assert adjust_reference("B:C", ROWS, 1, 5) == "B:C"

    def test_not_a_reference(self) -> None:
        assert adjust_reference("Total", ROWS, 1, 1) == "Total"

    def test_formula_on_other_sheet(self) -> None:
        assert adjust_formula("Sheet1!A3+A3", "Sheet2", "Sheet1", ROWS, 1, -1) == "Sheet1!A2+A3"
        assert adjust_formula("='My Data'!B2", "Sheet1", "My Data", ROWS, 1, 1) == "='My Data'!B3"
        assert adjust_formula("\"A1\"&A1", "Sheet1", "Sheet1", ROWS, 1, 1) == "\"A1\"&A2"


class TestRemoveRow:
    def test_shifts_values_and_formulas(self) -> None:
        wb = _column_sheet()
        ws = wb["Sheet1"]
        ws.remove_row(2)
        assert ws.get_cell_value("A2") == "3"
        assert ws.get_cell_formula("B1") == "SUM(A1:A2)"
        assert ws.get_cell_formula("C1") == "#REF!*2"
        assert ws.max_row == 2

    def test_beyond_grid_still_adjusts(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        ws.set_cell_formula("A1", "B10")
        ws.remove_row(5)
        assert ws.get_cell_formula("A1") == "B9"

    def test_other_sheets_follow(self) -> None:
        wb = _column_sheet()
        other = wb.new_sheet("Other")
        other.set_cell_formula("A1", "Sheet1!A3+A3")
        wb["Sheet1"].remove_row(1)
        assert other.get_cell_formula("A1") == "Sheet1!A2+A3"

    def test_invalid_row(self) -> None:
        ws = Workbook()["Sheet1"]
        with pytest.raises(InvalidRowNumberError):
            ws.remove_row(0)


class TestInsertRows:
    def test_shifts_down(self) -> None:
        wb = _column_sheet()
        ws = wb["Sheet1"]
        ws.insert_rows(1, 2)
        assert ws.get_cell_value("A3") == "1"
        assert ws.get_cell_value("A1") == ""
        assert ws.get_cell_formula("B3") == "SUM(A3:A5)"
        assert ws.get_cell_formula("C3") == "A4*2"
        assert ws["B3"].ref == "B3"

    def test_merges_and_hyperlinks_move(self) -> None:
        ws = Workbook()["Sheet1"]
        ws.merge_cell("A2", "B3")
        ws.set_cell_hyperlink("C2", "Sheet1!A1", "Location")
        ws.insert_rows(2)
        assert [m.ref for m in ws.get_merge_cells()] == ["A3:B4"]
        assert ws.get_cell_hyperlink("C3") == (True, "Sheet1!A1")
        assert ws.get_cell_hyperlink("C2") == (False, "")

    def test_invalid_amount(self) -> None:
        ws = Workbook()["Sheet1"]
        with pytest.raises(ValueError):
            ws.insert_rows(1, 0)


class TestDuplicateRow:
    def test_copy_below(self) -> None:
        ws = Workbook()["Sheet1"]
        ws["A1"] = 1
        ws.set_cell_formula("B1", "A1*2")
        ws.duplicate_row(1)
        assert ws.get_cell_value("A2") == "1"
        assert ws.get_cell_formula("B2") == "A2*2"
        assert ws.get_cell_formula("B1") == "A1*2"

    def test_copy_above(self) -> None:
        ws = Workbook()["Sheet1"]
        ws["A1"] = "head"
        ws["A2"] = "body"
        ws.duplicate_row_to(2, 1)
        assert ws.get_rows() == [["body"], ["head"], ["body"]]

    def test_single_row_merges_are_copied(self) -> None:
        ws = Workbook()["Sheet1"]
        ws["A1"] = "x"
        ws.merge_cell("A1", "C1")
        ws.duplicate_row_to(1, 3)
        assert [m.ref for m in ws.get_merge_cells()] == ["A1:C1", "A3:C3"]


class TestColumns:
    def test_insert_cols(self) -> None:
        wb = _column_sheet()
        ws = wb["Sheet1"]
        ws.insert_cols("A")
        assert ws.get_cell_value("B2") == "2"
        assert ws.get_cell_value("A2") == ""
        assert ws.get_cell_formula("C1") == "SUM(B1:B3)"
        assert ws.get_cell_formula("D1") == "B2*2"

    def test_remove_col(self) -> None:
        wb = _column_sheet()
        ws = wb["Sheet1"]
        ws.remove_col("A")
        assert ws.get_cell_formula("A1") == "SUM(#REF!)"
        assert ws.get_cell_formula("B1") == "#REF!*2"
        assert ws["A1"].ref == "A1"

    def test_column_styles_follow(self) -> None:
        wb = Workbook()
        ws = wb["Sheet1"]
        style = wb.new_style(2)
        ws.set_col_style("C", style)
        ws.insert_cols("B", 2)
        assert [(c.min, c.max) for c in ws._cols] == [(5, 5)]
        ws.remove_col("E")
        assert ws._cols == []
