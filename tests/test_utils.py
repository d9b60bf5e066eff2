"""Tests for the A1 coordinate helpers."""

from __future__ import annotations

import pytest

from cellxl import (
    InvalidAreaError,
    InvalidCellNameError,
    InvalidColumnNameError,
    InvalidColumnNumberError,
    cell_name_to_coordinates,
    column_name_to_number,
    column_number_to_name,
    coordinates_to_cell_name,
    split_cell_name,
)
from cellxl._utils import (
    MAX_COLUMNS,
    MAX_ROWS,
    area_ref_to_coordinates,
    check_cell_in_area,
    coordinates_to_area_ref,
    is_overlap,
    sort_coordinates,
)


class TestColumns:
    def test_name_to_number(self) -> None:
        assert column_name_to_number("A") == 1
        assert column_name_to_number("z") == 26
        assert column_name_to_number("AK") == 37
        assert column_name_to_number("XFD") == MAX_COLUMNS

    def test_number_to_name(self) -> None:
        assert column_number_to_name(1) == "A"
        assert column_number_to_name(27) == "AA"
        assert column_number_to_name(702) == "ZZ"
        assert column_number_to_name(MAX_COLUMNS) == "XFD"

    @pytest.mark.parametrize("name", ["", "XFE", "AAAA", "A1", "-"])
    def test_bad_names(self, name: str) -> None:
        with pytest.raises(InvalidColumnNameError):
            column_name_to_number(name)

    @pytest.mark.parametrize("num", [0, -1, MAX_COLUMNS + 1])
    def test_bad_numbers(self, num: int) -> None:
        with pytest.raises(InvalidColumnNumberError):
            column_number_to_name(num)


class TestCells:
    def test_split(self) -> None:
        assert split_cell_name("AK74") == ("AK", 74)
        assert split_cell_name("$b$2") == ("B", 2)

    def test_coordinates(self) -> None:
        assert cell_name_to_coordinates("Z3") == (26, 3)
        assert coordinates_to_cell_name(26, 3) == "Z3"
        assert coordinates_to_cell_name(26, 3, absolute=True) == "$Z$3"

    @pytest.mark.parametrize("name", ["", "A", "1", "A0", "XFE1", f"A{MAX_ROWS + 1}", "A1B"])
    def test_bad_cell_names(self, name: str) -> None:
        with pytest.raises(InvalidCellNameError):
            cell_name_to_coordinates(name)

    def test_bad_coordinates(self) -> None:
        with pytest.raises(InvalidCellNameError):
            coordinates_to_cell_name(1, 0)
        with pytest.raises(InvalidColumnNumberError):
            coordinates_to_cell_name(0, 1)

    def test_errors_are_value_errors(self) -> None:
        with pytest.raises(ValueError):
            cell_name_to_coordinates("nope")


class TestAreas:
    def test_area_keeps_written_order(self) -> None:
        assert area_ref_to_coordinates("C4:A1") == [3, 4, 1, 1]

    def test_sort(self) -> None:
        rect = [3, 4, 1, 1]
        sort_coordinates(rect)
        assert rect == [1, 1, 3, 4]
        with pytest.raises(ValueError):
            sort_coordinates([1, 2, 3])

    def test_sort_from_corners(self) -> None:
        rect = [*cell_name_to_coordinates("C1"), *cell_name_to_coordinates("B3")]
        sort_coordinates(rect)
        assert coordinates_to_area_ref(rect) == "B1:C3"

    def test_round_trip(self) -> None:
        for col in (1, 26, 27, 702, 703, MAX_COLUMNS):
            for row in (1, 99, MAX_ROWS):
                name = coordinates_to_cell_name(col, row)
                assert cell_name_to_coordinates(name) == (col, row)

    def test_area_ref(self) -> None:
        assert coordinates_to_area_ref([1, 1, 2, 3]) == "A1:B3"

    def test_bad_area(self) -> None:
        with pytest.raises(InvalidAreaError):
            area_ref_to_coordinates("A1")
        with pytest.raises(InvalidAreaError):
            check_cell_in_area("A1", "A1:B2:C3")

    def test_cell_in_area(self) -> None:
        assert check_cell_in_area("B9", "A1:B9")
        assert check_cell_in_area("B2", "A1:C3")
        assert not check_cell_in_area("D2", "A1:C3")
        assert not check_cell_in_area("C4", "D6:A1")
        assert check_cell_in_area("A1", "A1")

    def test_unsorted_area_is_not_normalized(self) -> None:
        assert not check_cell_in_area("B2", "C3:A1")

    def test_overlap(self) -> None:
        assert is_overlap([1, 1, 3, 3], [3, 3, 4, 4])
        assert not is_overlap([1, 1, 2, 2], [3, 3, 4, 4])
