"""cellxl.calc - Formula evaluation engine for cellxl workbooks."""

from cellxl.calc._evaluator import FormulaEvaluator
from cellxl.calc._functions import ExcelError, FunctionRegistry
from cellxl.calc._graph import DependencyGraph
from cellxl.calc._parser import (
    CellRange,
    CellRef,
    all_references,
    parse_reference,
    tokenize,
    translate_shared_formula,
)

__all__ = [
    "CellRange",
    "CellRef",
    "DependencyGraph",
    "ExcelError",
    "FormulaEvaluator",
    "FunctionRegistry",
    "all_references",
    "parse_reference",
    "tokenize",
    "translate_shared_formula",
]
