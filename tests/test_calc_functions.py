"""Tests for the builtin function library."""

from __future__ import annotations

import pytest

from cellxl import FunctionArgumentError, OperandParseError, UnsupportedFunctionError, Workbook
from cellxl.calc import ExcelError, FormulaEvaluator, FunctionRegistry
from cellxl.calc._functions import is_error, normalize_function_name


@pytest.fixture
def ev() -> FormulaEvaluator:
    """Evaluator over Sheet1 holding A1=2, A2=4, A3="text", A4 blank, A5=TRUE."""
    wb = Workbook()
    ws = wb["Sheet1"]
    ws["A1"] = 2
    ws["A2"] = 4
    ws["A3"] = "text"
    ws["A5"] = True
    return FormulaEvaluator(wb)


def _check(ev: FormulaEvaluator, formula: str, expected: str) -> None:
    assert ev.evaluate("Sheet1", formula) == expected


class TestExcelError:
    def test_cached_instances(self) -> None:
        assert ExcelError.of("#num!") is ExcelError.NUM
        assert ExcelError.NUM == "#NUM!"
        assert str(ExcelError.DIV0) == "#DIV/0!"

    def test_is_error(self) -> None:
        assert is_error("#N/A")
        assert is_error("#value!")
        assert not is_error("#HASHTAG")


class TestRegistry:
    def test_normalize(self) -> None:
        assert normalize_function_name("_xlfn.CEILING.MATH(") == "CEILINGMATH"
        assert normalize_function_name("sum(") == "SUM"

    def test_lookup(self) -> None:
        registry = FunctionRegistry()
        assert registry.has("Sum")
        assert "ARABIC" in registry.supported_functions
        with pytest.raises(UnsupportedFunctionError):
            registry.get("VLOOKUP(")


class TestMath:
    @pytest.mark.parametrize(
        "formula,expected",
        [
            ("=ABS(-3)", "3"),
            ("=ACOS(1)", "0"),
            ("=ACOS(2)", "#NUM!"),
            ("=ACOSH(1)", "0"),
            ("=ACOSH(0.5)", "#NUM!"),
            ("=ACOT(1)", "0.785398163397448"),
            ("=ACOTH(1)", "#NUM!"),
            ("=ASIN(1)", "1.5707963267949"),
            ("=ASINH(0)", "0"),
            ("=ATAN(0)", "0"),
            ("=ATANH(1)", "#NUM!"),
            ("=ATAN2(1,1)", "0.785398163397448"),
            ("=ATAN2(0,0)", "#DIV/0!"),
            ("=INT(-1.5)", "-2"),
            ("=MOD(-3,2)", "1"),
            ("=MOD(3,-2)", "-1"),
            ("=MOD(1,0)", "#DIV/0!"),
            ("=PI()", "3.14159265358979"),
            ("=PRODUCT(2,3,4)", "24"),
            ("=PRODUCT(A1:A4)", "8"),
            ("=QUOTIENT(-10,3)", "-3"),
            ("=QUOTIENT(1,0)", "#DIV/0!"),
            ("=SIGN(-4)", "-1"),
            ("=SIGN(0)", "0"),
            ("=SQRT(16)", "4"),
            ("=SQRT(-1)", "#NUM!"),
            ("=SUM(A1:A5)", "6"),
            ("=SUM(A1,10,TRUE)", "13"),
        ],
    )
    def test_values(self, ev: FormulaEvaluator, formula: str, expected: str) -> None:
        _check(ev, formula, expected)

    @pytest.mark.parametrize(
        "formula,expected",
        [
            ("=POWER(2,10)", "1024"),
            ("=POWER(4,0.5)", "2"),
            ("=POWER(0,0)", "#NUM!"),
            ("=POWER(0,-1)", "#DIV/0!"),
            ("=POWER(-8,0.5)", "#NUM!"),
            ("=POWER(-2,3)", "-8"),
        ],
    )
    def test_power(self, ev: FormulaEvaluator, formula: str, expected: str) -> None:
        _check(ev, formula, expected)

    @pytest.mark.parametrize(
        "formula,expected",
        [
            ("=ROUND(2.5,0)", "3"),
            ("=ROUND(-2.5)", "-3"),
            ("=ROUND(1234.567,-2)", "1200"),
            ("=ROUND(2.345,2)", "2.35"),
            ("=ROUNDUP(3.141,2)", "3.15"),
            ("=ROUNDUP(-3.141,0)", "-4"),
            ("=ROUNDDOWN(-3.149,2)", "-3.14"),
        ],
    )
    def test_rounding(self, ev: FormulaEvaluator, formula: str, expected: str) -> None:
        _check(ev, formula, expected)

    @pytest.mark.parametrize(
        "formula,expected",
        [
            ("=CEILING(2.5)", "3"),
            ("=CEILING(2.5,1)", "3"),
            ("=CEILING(-2.5,2)", "-2"),
            ("=CEILING(2,-1)", "#NUM!"),
            ("=CEILING(5,0)", "0"),
            ("=CEILING.MATH(24.3,5)", "25"),
            ("=CEILING.MATH(-5.5,2)", "-4"),
            ("=CEILING.MATH(-5.5,2,1)", "-6"),
            ("=_xlfn.CEILING.MATH(6.7)", "7"),
        ],
    )
    def test_ceiling(self, ev: FormulaEvaluator, formula: str, expected: str) -> None:
        _check(ev, formula, expected)


class TestArabic:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("IV", "4"),
            ("XIV", "14"),
            ("MCMXCIV", "1994"),
            ("MMMM", "4000"),
            ("mmxxiv", "2024"),
            ("-X", "-10"),
            ("", "0"),
            ("IIII", "#VALUE!"),
            ("VV", "#VALUE!"),
            ("VX", "#VALUE!"),
            ("LC", "#VALUE!"),
            ("ABC", "#VALUE!"),
        ],
    )
    def test_arabic(self, ev: FormulaEvaluator, text: str, expected: str) -> None:
        _check(ev, f'=ARABIC("{text}")', expected)


class TestBase:
    @pytest.mark.parametrize(
        "formula,expected",
        [
            ("=BASE(7,2)", "111"),
            ("=BASE(255,16,4)", "00FF"),
            ("=BASE(0,2)", "0"),
            ("=BASE(35,36)", "Z"),
            ("=BASE(-1,2)", "#NUM!"),
        ],
    )
    def test_base(self, ev: FormulaEvaluator, formula: str, expected: str) -> None:
        _check(ev, formula, expected)

    @pytest.mark.parametrize("radix", ["1", "37"])
    def test_bad_radix(self, ev: FormulaEvaluator, radix: str) -> None:
        with pytest.raises(FunctionArgumentError):
            ev.evaluate("Sheet1", f"=BASE(7,{radix})")


class TestGcdLcm:
    def test_values(self, ev: FormulaEvaluator) -> None:
        _check(ev, "=GCD(12,18)", "6")
        _check(ev, "=GCD(12.7,18)", "6")
        _check(ev, "=GCD(0,5)", "5")
        _check(ev, "=LCM(4,6)", "12")
        _check(ev, "=LCM(A1:A2)", "4")

    @pytest.mark.parametrize("formula", ["=GCD(-1,2)", "=LCM(3,-2)"])
    def test_negative_is_rejected(self, ev: FormulaEvaluator, formula: str) -> None:
        with pytest.raises(FunctionArgumentError):
            ev.evaluate("Sheet1", formula)


class TestOverflow:
    @pytest.mark.parametrize(
        "formula",
        [
            "=SUM(1E308,1E308)",
            "=AVERAGE(1E308,1E308)",
            "=QUOTIENT(1E308,1E-308)",
            "=MOD(1E308,1E-308)",
            "=CEILING(1E308,1E-308)",
            "=CEILING.MATH(1E308,1E-308)",
            "=PRODUCT(1E308,10)",
        ],
    )
    def test_out_of_range_result(self, ev: FormulaEvaluator, formula: str) -> None:
        _check(ev, formula, "#NUM!")

    @pytest.mark.parametrize(
        "formula",
        [
            "=INT(1E999)",
            "=BASE(1E999,2)",
            "=ROUND(1E999,1)",
            "=ROUNDUP(1E999,0)",
            "=GCD(1E999)",
            "=LCM(4,1E999)",
            "=CEILING(1E999,1)",
            "=CEILING.MATH(1E999)",
        ],
    )
    def test_infinite_operand(self, ev: FormulaEvaluator, formula: str) -> None:
        _check(ev, formula, "#NUM!")

    def test_round_keeps_large_values(self, ev: FormulaEvaluator) -> None:
        _check(ev, "=ROUND(1E300,2)", "1e+300")
        _check(ev, "=ROUND(2.5,1E10)", "2.5")
        _check(ev, "=ROUND(2.5,-1E10)", "0")

    def test_base_length_limit(self, ev: FormulaEvaluator) -> None:
        _check(ev, "=BASE(1,2,255)", "1".rjust(255, "0"))
        _check(ev, "=BASE(1,2,256)", "#NUM!")
        _check(ev, "=BASE(1,2,1E18)", "#NUM!")


class TestStatistical:
    def test_aggregates(self, ev: FormulaEvaluator) -> None:
        _check(ev, "=AVERAGE(A1:A4)", "3")
        _check(ev, "=AVERAGE(A3:A4)", "#DIV/0!")
        _check(ev, "=COUNT(A1:A5)", "2")
        _check(ev, "=COUNT(1,\"x\",3)", "2")
        _check(ev, "=MAX(A1:A4,-1)", "4")
        _check(ev, "=MIN(A1:A4)", "2")
        _check(ev, "=MIN(A3:A4)", "0")


class TestText:
    def test_text_functions(self, ev: FormulaEvaluator) -> None:
        _check(ev, '=CONCATENATE("a","b",A1)', "ab2")
        _check(ev, '=LEN("hello")', "5")
        _check(ev, "=LEN(A3)", "4")
        _check(ev, '=LOWER("MiXeD")', "mixed")
        _check(ev, '=UPPER(A3)', "TEXT")


class TestArguments:
    @pytest.mark.parametrize(
        "formula",
        ["=ABS(1,2)", "=ABS()", "=PI(1)", "=MOD(1)", "=BASE(1)", "=AVERAGE()", "=ROUND(1,2,3)"],
    )
    def test_arity(self, ev: FormulaEvaluator, formula: str) -> None:
        with pytest.raises(FunctionArgumentError):
            ev.evaluate("Sheet1", formula)

    def test_non_numeric_literal(self, ev: FormulaEvaluator) -> None:
        with pytest.raises(OperandParseError):
            ev.evaluate("Sheet1", '=SQRT("x")')
        with pytest.raises(OperandParseError):
            ev.evaluate("Sheet1", '=SUM("x",1)')
