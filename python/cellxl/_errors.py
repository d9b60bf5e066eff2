"""Exception types raised by cellxl.

Every exception derives from :class:`CellxlError` and from the builtin that
matches its meaning, so ``except ValueError`` keeps working for callers that
do not care about the library hierarchy.
"""

from __future__ import annotations


class CellxlError(Exception):
    """Base class for all library errors."""


# ---------------------------------------------------------------------------
# Coordinates and structure
# ---------------------------------------------------------------------------


class InvalidCellNameError(CellxlError, ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f'invalid cell name "{name}"')
        self.name = name


class InvalidColumnNameError(CellxlError, ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f'invalid column name "{name}"')
        self.name = name


class InvalidColumnNumberError(CellxlError, ValueError):
    def __init__(self, number: int) -> None:
        super().__init__(f"invalid column number {number}")
        self.number = number


class InvalidRowNumberError(CellxlError, ValueError):
    def __init__(self, number: int) -> None:
        super().__init__(f"invalid row number {number}")
        self.number = number


class InvalidAreaError(CellxlError, ValueError):
    def __init__(self, area: str) -> None:
        super().__init__(f'invalid area "{area}"')
        self.area = area


class SheetNotExistError(CellxlError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"sheet {self.name} does not exist"


class SharedStringIndexError(CellxlError, IndexError):
    def __init__(self, index: int, size: int) -> None:
        super().__init__(f"shared string index {index} out of range (table size {size})")
        self.index = index


class HyperlinkLimitError(CellxlError, ValueError):
    """Raised when a worksheet would exceed the hyperlink limit."""


class CellCharsLimitError(CellxlError, ValueError):
    """Raised when rich text runs exceed the 32767 character cell limit."""


class XMLDecodeError(CellxlError, ValueError):
    def __init__(self, part: str, reason: str) -> None:
        super().__init__(f"cannot decode {part}: {reason}")
        self.part = part


class MissingPartError(CellxlError, KeyError):
    def __init__(self, part: str) -> None:
        super().__init__(part)
        self.part = part

    def __str__(self) -> str:
        return f"package part {self.part} is missing"


class FileSizeLimitError(CellxlError, ValueError):
    """Raised when an archive unpacks beyond ``Options.unzip_size_limit``."""


# ---------------------------------------------------------------------------
# Formula evaluation
# ---------------------------------------------------------------------------


class FormulaError(CellxlError):
    """A formula evaluated to a spreadsheet error value.

    ``code`` is the error value itself (``"#DIV/0!"``, ``"#NUM!"``, ...), which
    is also what a spreadsheet application would display in the cell.
    """

    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


class FunctionArgumentError(CellxlError, ValueError):
    """Wrong argument count or an argument that fails validation."""


class UnsupportedFunctionError(CellxlError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"not support {name} function")
        self.name = name


class UnsupportedOperatorError(CellxlError, ValueError):
    def __init__(self, operator: str) -> None:
        super().__init__(f"not support {operator} operator")
        self.operator = operator


class OperandParseError(CellxlError, ValueError):
    def __init__(self, text: str) -> None:
        super().__init__(f'cannot parse "{text}" as a number')
        self.text = text


class CircularReferenceError(CellxlError, ValueError):
    """Raised when on-demand evaluation revisits a cell it is computing."""
