"""Tests for number format rendering."""

from __future__ import annotations

import pytest

from cellxl._numfmt import render


class TestGeneral:
    def test_passthrough(self) -> None:
        assert render("12.5", None) == "12.5"
        assert render("12.5", "General") == "12.5"
        assert render("abc", "0.00") == "abc"
        assert render("12", "@") == "12"


class TestNumbers:
    @pytest.mark.parametrize(
        "value,code,expected",
        [
            ("3.14159", "0.00", "3.14"),
            ("2.5", "0", "3"),
            ("-2.5", "0", "-3"),
            ("1234567.891", "#,##0.00", "1,234,567.89"),
            ("0.5", "0%", "50%"),
            ("0.1234", "0.0%", "12.3%"),
            ("5", "000", "005"),
            ("0.5", "#.##", ".5"),
            ("1.5", "0.0#", "1.5"),
            ("1.555", "0.0#", "1.56"),
            ("1234567", "#,##0,", "1,235"),
            ("12345", "0.00E+00", "1.23E+04"),
            ("0.00012", "0.0E+0", "1.2E-4"),
            ("42", '"Total: "0', "Total: 42"),
            ("7", "0\\x", "7x"),
        ],
    )
    def test_render(self, value: str, code: str, expected: str) -> None:
        assert render(value, code) == expected

    def test_sections(self) -> None:
        code = "0.00;(0.00);\"zero\""
        assert render("1.5", code) == "1.50"
        assert render("-1.5", code) == "(1.50)"
        assert render("0", code) == "zero"

    def test_colors_are_ignored(self) -> None:
        assert render("-3", "0;[Red]-0") == "-3"


class TestDates:
    @pytest.mark.parametrize(
        "value,code,expected",
        [
            ("43831", "yyyy-mm-dd", "2020-01-01"),
            ("43831", "d-mmm-yy", "1-Jan-20"),
            ("43831", "dddd, mmmm d", "Wednesday, January 1"),
            ("43831.75", "h:mm AM/PM", "6:00 PM"),
            ("43831.5", "hh:mm:ss", "12:00:00"),
            ("1.5", "[h]:mm", "36:00"),
            ("0.25", "h:mm", "6:00"),
        ],
    )
    def test_render(self, value: str, code: str, expected: str) -> None:
        assert render(value, code) == expected

    def test_negative_serial_is_left_alone(self) -> None:
        assert render("-1", "yyyy-mm-dd") == "-1"
