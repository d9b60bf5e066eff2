"""cellxl - OOXML spreadsheet cell model with a formula evaluation engine.

Usage::

    from cellxl import load_workbook, Workbook

    # Read
    wb = load_workbook("data.xlsx")
    ws = wb["Sheet1"]
    print(ws.get_cell_value("A1"), ws.get_cell_formula("B1"))
    print(wb.calc_cell_value("Sheet1", "B1"))

    # Write
    wb = Workbook()
    ws = wb["Sheet1"]
    ws.set_cell_value("A1", 42)
    ws.set_cell_formula("B1", "A1*2")
    wb.save("out.xlsx")
"""

import os

from cellxl._cell import Cell, CellType, Formula, RichTextFont, RichTextRun
from cellxl._errors import (
    CellCharsLimitError,
    CellxlError,
    CircularReferenceError,
    FileSizeLimitError,
    FormulaError,
    FunctionArgumentError,
    HyperlinkLimitError,
    InvalidAreaError,
    InvalidCellNameError,
    InvalidColumnNameError,
    InvalidColumnNumberError,
    InvalidRowNumberError,
    MissingPartError,
    OperandParseError,
    SharedStringIndexError,
    SheetNotExistError,
    UnsupportedFunctionError,
    UnsupportedOperatorError,
    XMLDecodeError,
)
from cellxl._merge import MergeCell
from cellxl._utils import (
    cell_name_to_coordinates,
    column_name_to_number,
    column_number_to_name,
    coordinates_to_cell_name,
    split_cell_name,
)
from cellxl._workbook import Options, Workbook
from cellxl._worksheet import Worksheet

__version__ = "0.3.0"

__all__ = [
    "__version__",
    "Cell",
    "CellCharsLimitError",
    "CellType",
    "CellxlError",
    "CircularReferenceError",
    "FileSizeLimitError",
    "Formula",
    "FormulaError",
    "FunctionArgumentError",
    "HyperlinkLimitError",
    "InvalidAreaError",
    "InvalidCellNameError",
    "InvalidColumnNameError",
    "InvalidColumnNumberError",
    "InvalidRowNumberError",
    "MergeCell",
    "MissingPartError",
    "OperandParseError",
    "Options",
    "RichTextFont",
    "RichTextRun",
    "SharedStringIndexError",
    "SheetNotExistError",
    "UnsupportedFunctionError",
    "UnsupportedOperatorError",
    "Workbook",
    "Worksheet",
    "XMLDecodeError",
    "cell_name_to_coordinates",
    "column_name_to_number",
    "column_number_to_name",
    "coordinates_to_cell_name",
    "load_workbook",
    "split_cell_name",
]


def load_workbook(
    filename: str | os.PathLike[str],
    options: Options | None = None,
) -> Workbook:
    """Open an .xlsx/.xlsm/.xltx/.xlam file.

    Parts are decoded lazily; ``wb.save()`` without a name writes back to
    *filename*.
    """
    with open(filename, "rb") as fh:
        wb = Workbook.open_reader(fh, options)
    wb.path = os.fspath(filename)
    return wb
