"""Builtin spreadsheet functions and the registry the evaluator dispatches to.

Every builtin takes the argument tokens of one call and returns the result
text. Wrong argument counts and invalid arguments raise
:class:`FunctionArgumentError`; domain errors are returned as error values
(``"#NUM!"``, ``"#DIV/0!"``, ...) so they can be stored in a cell.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from decimal import ROUND_DOWN, ROUND_HALF_UP, ROUND_UP, Context, Decimal
from typing import Any

from openpyxl.formula.tokenizer import Token

from cellxl._cell import is_numeric
from cellxl._errors import FunctionArgumentError, OperandParseError, UnsupportedFunctionError
from cellxl.calc._parser import CELL

Builtin = Callable[[list[Token]], str]


# ---------------------------------------------------------------------------
# ExcelError: error values that propagate through formula chains
# ---------------------------------------------------------------------------


class ExcelError:
    """Spreadsheet error value.

    ``ExcelError.of(code)`` returns a cached instance per code. Errors compare
    equal to their code string, so ``ExcelError.NUM == "#NUM!"``.
    """

    __slots__ = ("code",)
    _cache: dict[str, ExcelError] = {}

    DIV0: ExcelError
    NAME: ExcelError
    NA: ExcelError
    NUM: ExcelError
    VALUE: ExcelError
    REF: ExcelError
    NULL: ExcelError
    SPILL: ExcelError
    CALC: ExcelError
    GETTING_DATA: ExcelError

    def __init__(self, code: str) -> None:
        self.code = code

    @classmethod
    def of(cls, code: str) -> ExcelError:
        canon = code.upper()
        if canon not in cls._cache:
            cls._cache[canon] = cls(canon)
        return cls._cache[canon]

    def __repr__(self) -> str:
        return self.code

    def __str__(self) -> str:
        return self.code

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExcelError):
            return self.code == other.code
        if isinstance(other, str):
            return self.code == other.upper()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.code)


ExcelError.DIV0 = ExcelError.of("#DIV/0!")
ExcelError.NAME = ExcelError.of("#NAME?")
ExcelError.NA = ExcelError.of("#N/A")
ExcelError.NUM = ExcelError.of("#NUM!")
ExcelError.VALUE = ExcelError.of("#VALUE!")
ExcelError.REF = ExcelError.of("#REF!")
ExcelError.NULL = ExcelError.of("#NULL!")
ExcelError.SPILL = ExcelError.of("#SPILL!")
ExcelError.CALC = ExcelError.of("#CALC!")
ExcelError.GETTING_DATA = ExcelError.of("#GETTING_DATA")

ERROR_CODES = frozenset(ExcelError._cache)  # noqa: SLF001


def is_error(value: str) -> bool:
    """True if *value* is one of the spreadsheet error codes."""
    return value.upper() in ERROR_CODES


def first_error(tokens: list[Token]) -> str | None:
    """The first error code among *tokens*, or None."""
    for token in tokens:
        if is_error(token.value):
            return token.value.upper()
    return None


# ---------------------------------------------------------------------------
# Operand conversion
# ---------------------------------------------------------------------------


def to_number(text: str) -> float:
    """Numeric value of operand text: blank is 0, TRUE/FALSE are 1/0."""
    text = text.strip()
    if not text:
        return 0.0
    upper = text.upper()
    if upper == "TRUE":
        return 1.0
    if upper == "FALSE":
        return 0.0
    if not is_numeric(text)[0]:
        raise OperandParseError(text)
    return float(text)


def format_number(value: float) -> str:
    """Result text of a number; NaN and infinities become ``#NUM!``."""
    if math.isnan(value) or math.isinf(value):
        return ExcelError.NUM.code
    text = f"{value:.15g}"
    return "0" if text == "-0" else text


def _total(numbers: list[float]) -> float:
    """Exact sum; plain addition when the exact one overflows."""
    try:
        return math.fsum(numbers)
    except (OverflowError, ValueError):
        return sum(numbers)


def _check_arity(name: str, args: list[Token], low: int, high: int | None = -1) -> None:
    """*high* of -1 means exactly *low*; None means no upper bound."""
    count = len(args)
    if high == -1:
        if count != low:
            plural = "argument" if low == 1 else "arguments"
            raise FunctionArgumentError(f"{name} requires {low} {plural}")
        return
    if count < low:
        raise FunctionArgumentError(f"{name} requires at least {low} argument{'s' if low > 1 else ''}")
    if high is not None and count > high:
        raise FunctionArgumentError(f"{name} allows at most {high} arguments")


def _numbers(args: list[Token]) -> list[float]:
    """Numeric arguments of an aggregate.

    Blank and non-numeric values read from cells are skipped; literal text
    that is not a number raises :class:`OperandParseError`.
    """
    result: list[float] = []
    for token in args:
        text = token.value.strip()
        if token.subtype == CELL:
            if text and is_numeric(text)[0]:
                result.append(float(text))
            continue
        if not text:
            continue
        result.append(to_number(text))
    return result


def _math(name: str, fn: Callable[[float], float]) -> Builtin:
    """Single-argument builtin; domain and overflow errors give ``#NUM!``."""

    def builtin(args: list[Token]) -> str:
        _check_arity(name, args, 1)
        try:
            return format_number(fn(to_number(args[0].value)))
        except (ValueError, OverflowError, ZeroDivisionError):
            return ExcelError.NUM.code

    builtin.__name__ = f"_builtin_{name.lower()}"
    return builtin


# ---------------------------------------------------------------------------
# Math and trigonometry
# ---------------------------------------------------------------------------


def _acot(x: float) -> float:
    return math.pi / 2 - math.atan(x)


def _acoth(x: float) -> float:
    return math.atanh(1 / x)


_ROMAN_DIGITS = {"I": 1, "V": 5, "X": 10, "L": 50, "C": 100, "D": 500, "M": 1000}


def _builtin_arabic(args: list[Token]) -> str:
    """ARABIC(text): Roman numeral to number.

    ``#VALUE!`` for a V/L/D following itself, a digit worth exactly twice the
    previous one (``VX``), more than three I/X/C in a row, or any character
    that is not a Roman digit.
    """
    _check_arity("ARABIC", args, 1)
    text = args[0].value.strip().upper()
    sign = 1.0
    if text.startswith("-"):
        sign, text = -1.0, text[1:]
    value, last, run = 0, 0, 0
    for char in text:
        digit = _ROMAN_DIGITS.get(char)
        if digit is None:
            return ExcelError.VALUE.code
        if last == digit and digit in (5, 50, 500):
            return ExcelError.VALUE.code
        if 2 * last == digit:
            return ExcelError.VALUE.code
        run = run + 1 if digit == last else 1
        if run > 3 and digit in (1, 10, 100):
            return ExcelError.VALUE.code
        value += digit
        if last < digit:
            value -= 2 * last
        last = digit
    return format_number(sign * value)


def _builtin_atan2(args: list[Token]) -> str:
    """ATAN2(x_num, y_num): angle of the point ``(x_num, y_num)``."""
    _check_arity("ATAN2", args, 2)
    x = to_number(args[0].value)
    y = to_number(args[1].value)
    if x == 0 and y == 0:
        return ExcelError.DIV0.code
    return format_number(math.atan2(y, x))


_BASE_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_MAX_BASE_LENGTH = 255


def _builtin_base(args: list[Token]) -> str:
    """BASE(number, radix, [min_length])"""
    _check_arity("BASE", args, 2, 3)
    value = to_number(args[0].value)
    radix_value = to_number(args[1].value)
    if not 2 <= radix_value < 37:
        raise FunctionArgumentError("radix must be an integer >= 2 and <= 36")
    length = to_number(args[2].value) if len(args) > 2 else 0.0
    if not math.isfinite(value) or value < 0 or not 0 <= length <= _MAX_BASE_LENGTH:
        return ExcelError.NUM.code
    number, radix, min_length = math.trunc(value), math.trunc(radix_value), math.trunc(length)
    digits = []
    while number:
        number, remainder = divmod(number, radix)
        digits.append(_BASE_DIGITS[remainder])
    result = "".join(reversed(digits)) or "0"
    return result.rjust(min_length, "0")


def _builtin_ceiling(args: list[Token]) -> str:
    """CEILING(number, [significance]): round away from zero to a multiple."""
    _check_arity("CEILING", args, 1, 2)
    number = to_number(args[0].value)
    if not math.isfinite(number):
        return ExcelError.NUM.code
    if len(args) == 1:
        return format_number(math.ceil(number))
    significance = to_number(args[1].value)
    if significance < 0 < number:
        return ExcelError.NUM.code
    if significance == 0:
        return "0"
    quotient = number / significance
    if not math.isfinite(quotient):
        return ExcelError.NUM.code
    whole = math.trunc(quotient)
    if quotient - whole > 0:
        whole += 1
    return format_number(whole * significance)


def _builtin_ceilingmath(args: list[Token]) -> str:
    """CEILING.MATH(number, [significance], [mode])

    Negative numbers round toward zero unless *mode* is non-zero.
    """
    _check_arity("CEILING.MATH", args, 1, 3)
    number = to_number(args[0].value)
    if not math.isfinite(number):
        return ExcelError.NUM.code
    if len(args) == 1:
        return format_number(math.ceil(number))
    significance = abs(to_number(args[1].value))
    mode = to_number(args[2].value) if len(args) > 2 else 0.0
    if significance == 0:
        return "0"
    quotient = number / significance
    if not math.isfinite(quotient):
        return ExcelError.NUM.code
    whole = math.trunc(quotient)
    if quotient != whole:
        if number > 0:
            whole += 1
        elif mode != 0:
            whole -= 1
    return format_number(whole * significance)


def _integers(name: str, args: list[Token]) -> list[int] | None:
    """Truncated non-negative arguments; None when one is not finite."""
    _check_arity(name, args, 1, None)
    values = []
    for token in args:
        if not token.value.strip():
            continue
        value = to_number(token.value)
        if value < 0:
            raise FunctionArgumentError(f"{name} only accepts positive arguments")
        if math.isinf(value):
            return None
        values.append(math.trunc(value))
    return values


def _builtin_gcd(args: list[Token]) -> str:
    """GCD(number1, [number2], ...)"""
    values = _integers("GCD", args)
    if values is None:
        return ExcelError.NUM.code
    return format_number(math.gcd(*values))


def _builtin_lcm(args: list[Token]) -> str:
    """LCM(number1, [number2], ...)"""
    values = _integers("LCM", args)
    if values is None:
        return ExcelError.NUM.code
    if not values:
        return "0"
    try:
        return format_number(float(math.lcm(*values)))
    except OverflowError:
        return ExcelError.NUM.code


def _builtin_int(args: list[Token]) -> str:
    _check_arity("INT", args, 1)
    number = to_number(args[0].value)
    if not math.isfinite(number):
        return ExcelError.NUM.code
    return format_number(math.floor(number))


def _builtin_mod(args: list[Token]) -> str:
    """MOD(number, divisor): the result takes the sign of the divisor."""
    _check_arity("MOD", args, 2)
    number = to_number(args[0].value)
    divisor = to_number(args[1].value)
    if divisor == 0:
        return ExcelError.DIV0.code
    quotient = number / divisor
    if not math.isfinite(quotient):
        return ExcelError.NUM.code
    return format_number(number - divisor * math.floor(quotient))


def _builtin_pi(args: list[Token]) -> str:
    _check_arity("PI", args, 0)
    return format_number(math.pi)


def _builtin_power(args: list[Token]) -> str:
    """POWER(number, power)"""
    _check_arity("POWER", args, 2)
    x = to_number(args[0].value)
    y = to_number(args[1].value)
    if x == 0 and y == 0:
        return ExcelError.NUM.code
    if x == 0 and y < 0:
        return ExcelError.DIV0.code
    if x < 0 and not y.is_integer():
        return ExcelError.NUM.code
    try:
        return format_number(math.pow(x, y))
    except (OverflowError, ValueError):
        return ExcelError.NUM.code


def _builtin_product(args: list[Token]) -> str:
    numbers = _numbers(args)
    if not numbers:
        return "0"
    return format_number(math.prod(numbers))


def _builtin_quotient(args: list[Token]) -> str:
    """QUOTIENT(numerator, denominator): integer part of the division."""
    _check_arity("QUOTIENT", args, 2)
    x = to_number(args[0].value)
    y = to_number(args[1].value)
    if y == 0:
        return ExcelError.DIV0.code
    quotient = x / y
    if not math.isfinite(quotient):
        return ExcelError.NUM.code
    return format_number(math.trunc(quotient))


# Wide enough for any double at any clamped number of digits.
_MAX_ROUND_DIGITS = 340
_ROUND_CONTEXT = Context(prec=2 * _MAX_ROUND_DIGITS)


def _round(name: str, args: list[Token], rounding: str) -> str:
    _check_arity(name, args, 1, 2)
    number = to_number(args[0].value)
    places = to_number(args[1].value) if len(args) > 1 else 0.0
    if not math.isfinite(number):
        return ExcelError.NUM.code
    digits = math.trunc(max(-_MAX_ROUND_DIGITS, min(places, _MAX_ROUND_DIGITS)))
    exponent = Decimal(1).scaleb(-digits)
    value = Decimal(repr(number)).quantize(exponent, rounding=rounding, context=_ROUND_CONTEXT)
    return format_number(float(value))


def _builtin_round(args: list[Token]) -> str:
    return _round("ROUND", args, ROUND_HALF_UP)


def _builtin_roundup(args: list[Token]) -> str:
    return _round("ROUNDUP", args, ROUND_UP)


def _builtin_rounddown(args: list[Token]) -> str:
    return _round("ROUNDDOWN", args, ROUND_DOWN)


def _builtin_sign(args: list[Token]) -> str:
    _check_arity("SIGN", args, 1)
    value = to_number(args[0].value)
    if value < 0:
        return "-1"
    if value > 0:
        return "1"
    return "0"


def _builtin_sqrt(args: list[Token]) -> str:
    _check_arity("SQRT", args, 1)
    value = to_number(args[0].value)
    if value < 0:
        return ExcelError.NUM.code
    return format_number(math.sqrt(value))


def _builtin_sum(args: list[Token]) -> str:
    return format_number(_total(_numbers(args)))


# ---------------------------------------------------------------------------
# Statistical
# ---------------------------------------------------------------------------


def _builtin_average(args: list[Token]) -> str:
    _check_arity("AVERAGE", args, 1, None)
    numbers = _numbers(args)
    if not numbers:
        return ExcelError.DIV0.code
    return format_number(_total(numbers) / len(numbers))


def _builtin_count(args: list[Token]) -> str:
    """COUNT: numeric values only; text and blanks are not counted."""
    count = 0
    for token in args:
        text = token.value.strip()
        if text and is_numeric(text)[0]:
            count += 1
    return str(count)


def _builtin_max(args: list[Token]) -> str:
    numbers = _numbers(args)
    return format_number(max(numbers)) if numbers else "0"


def _builtin_min(args: list[Token]) -> str:
    numbers = _numbers(args)
    return format_number(min(numbers)) if numbers else "0"


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def _builtin_concatenate(args: list[Token]) -> str:
    _check_arity("CONCATENATE", args, 1, None)
    return "".join(token.value for token in args)


def _builtin_len(args: list[Token]) -> str:
    _check_arity("LEN", args, 1)
    return str(len(args[0].value))


def _builtin_lower(args: list[Token]) -> str:
    _check_arity("LOWER", args, 1)
    return args[0].value.lower()


def _builtin_upper(args: list[Token]) -> str:
    _check_arity("UPPER", args, 1)
    return args[0].value.upper()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_BUILTINS: dict[str, Builtin] = {
    # Math and trigonometry
    "ABS": _math("ABS", abs),
    "ACOS": _math("ACOS", math.acos),
    "ACOSH": _math("ACOSH", math.acosh),
    "ACOT": _math("ACOT", _acot),
    "ACOTH": _math("ACOTH", _acoth),
    "ARABIC": _builtin_arabic,
    "ASIN": _math("ASIN", math.asin),
    "ASINH": _math("ASINH", math.asinh),
    "ATAN": _math("ATAN", math.atan),
    "ATANH": _math("ATANH", math.atanh),
    "ATAN2": _builtin_atan2,
    "BASE": _builtin_base,
    "CEILING": _builtin_ceiling,
    "CEILINGMATH": _builtin_ceilingmath,
    "GCD": _builtin_gcd,
    "INT": _builtin_int,
    "LCM": _builtin_lcm,
    "MOD": _builtin_mod,
    "PI": _builtin_pi,
    "POWER": _builtin_power,
    "PRODUCT": _builtin_product,
    "QUOTIENT": _builtin_quotient,
    "ROUND": _builtin_round,
    "ROUNDDOWN": _builtin_rounddown,
    "ROUNDUP": _builtin_roundup,
    "SIGN": _builtin_sign,
    "SQRT": _builtin_sqrt,
    "SUM": _builtin_sum,
    # Statistical
    "AVERAGE": _builtin_average,
    "COUNT": _builtin_count,
    "MAX": _builtin_max,
    "MIN": _builtin_min,
    # Text
    "CONCATENATE": _builtin_concatenate,
    "LEN": _builtin_len,
    "LOWER": _builtin_lower,
    "UPPER": _builtin_upper,
}


def normalize_function_name(name: str) -> str:
    """``"_xlfn.CEILING.MATH("`` -> ``"CEILINGMATH"``."""
    return name.rstrip("(").upper().replace("_XLFN", "").replace(".", "")


class FunctionRegistry:
    """Name -> builtin map the evaluator dispatches to.

    Starts with the builtins and can be extended with custom functions that
    follow the same ``(list[Token]) -> str`` contract.
    """

    def __init__(self) -> None:
        self._functions: dict[str, Builtin] = dict(_BUILTINS)

    def register(self, name: str, func: Callable[[list[Token]], Any]) -> None:
        self._functions[normalize_function_name(name)] = func

    def get(self, name: str) -> Builtin:
        key = normalize_function_name(name)
        func = self._functions.get(key)
        if func is None:
            raise UnsupportedFunctionError(key)
        return func

    def has(self, name: str) -> bool:
        return normalize_function_name(name) in self._functions

    @property
    def supported_functions(self) -> frozenset[str]:
        return frozenset(self._functions)
