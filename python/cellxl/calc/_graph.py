"""Dependency graph for formula cells with topological ordering."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from cellxl._cell import FORMULA_DATA_TABLE
from cellxl._errors import CircularReferenceError
from cellxl.calc._parser import all_references

if TYPE_CHECKING:
    from cellxl._workbook import Workbook

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Tracks formula cell dependencies for evaluation ordering.

    All cell references use canonical "SheetName!A1" format.
    """

    __slots__ = ("dependencies", "dependents", "formulas", "_sheet_names")

    def __init__(self, sheet_names: list[str] | None = None) -> None:
        # cell -> set of cells it reads from
        self.dependencies: dict[str, set[str]] = {}
        # cell -> set of cells that read from it
        self.dependents: dict[str, set[str]] = {}
        # cell -> formula string
        self.formulas: dict[str, str] = {}
        self._sheet_names = {name.casefold(): name for name in sheet_names or ()}

    def _canonical(self, ref: str) -> str:
        sheet, _, cell = ref.rpartition("!")
        return f"{self._sheet_names.get(sheet.casefold(), sheet)}!{cell}"

    def add_formula(self, cell_ref: str, formula: str, current_sheet: str) -> None:
        """Register a formula cell and its dependencies."""
        self.formulas[cell_ref] = formula
        refs = {self._canonical(ref) for ref in all_references(formula, current_sheet)}
        self.dependencies[cell_ref] = refs
        for ref in refs:
            self.dependents.setdefault(ref, set()).add(cell_ref)

    def topological_order(self) -> list[str]:
        """Formula cells in evaluation order (Kahn's algorithm).

        Raises CircularReferenceError if formulas depend on each other in a
        cycle.
        """
        formula_cells = set(self.formulas)
        if not formula_cells:
            return []

        in_degree = {
            cell: len(self.dependencies.get(cell, set()) & formula_cells)
            for cell in formula_cells
        }
        # Registration order keeps the result deterministic.
        queue: deque[str] = deque(cell for cell in self.formulas if in_degree[cell] == 0)

        order: list[str] = []
        while queue:
            cell = queue.popleft()
            order.append(cell)
            for dep in sorted(self.dependents.get(cell, ())):
                if dep in formula_cells:
                    in_degree[dep] -= 1
                    if in_degree[dep] == 0:
                        queue.append(dep)

        if len(order) != len(formula_cells):
            missing = sorted(formula_cells - set(order))
            raise CircularReferenceError(f"circular reference detected involving: {missing}")
        return order

    def affected_cells(self, changed_cells: set[str]) -> list[str]:
        """Formula cells reachable from *changed_cells*, in evaluation order."""
        affected: set[str] = set()
        queue: deque[str] = deque(changed_cells)
        visited: set[str] = set(changed_cells)

        while queue:
            cell = queue.popleft()
            for dep in self.dependents.get(cell, set()):
                if dep not in visited:
                    visited.add(dep)
                    queue.append(dep)
                    if dep in self.formulas:
                        affected.add(dep)

        return [c for c in self.topological_order() if c in affected]

    @classmethod
    def from_workbook(cls, workbook: Workbook) -> DependencyGraph:
        """Scan every sheet for formula cells; data-table formulas are skipped."""
        graph = cls(workbook.sheetnames)
        for sheet_name in workbook.sheetnames:
            ws = workbook[sheet_name]
            with ws._lock:  # noqa: SLF001
                for c in ws._formula_cells():  # noqa: SLF001
                    if c.formula is not None and c.formula.kind == FORMULA_DATA_TABLE:
                        logger.debug("Skipping data table formula at %s!%s", ws.title, c.ref)
                        continue
                    formula = ws._formula_text(c)  # noqa: SLF001
                    if formula:
                        graph.add_formula(f"{ws.title}!{c.ref}", formula, ws.title)
        return graph
