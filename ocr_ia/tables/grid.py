"""
Grid Reconstruction

Turns a table candidate into a cell grid.

Some gazette tables leave interior row rules unprinted. When a row gap is
roughly a whole multiple of the table's regular row height, the missing
rules are inferred at the regular spacing before cells are cut. Rules that
stop short of the grid produce spanning cells.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..errors import GeometryDetectionFailure
from ..layout.box import BoundingBox
from ..layout.lines import DetectedLine
from .table_detector import TableCandidate, TableDetectionConfig

logger = logging.getLogger(__name__)

NUMERIC_CELL = re.compile(r'^[\d\s.,%/\-]+$')


@dataclass
class TableCell:
    """One cell, addressed by its top-left grid slot."""
    row: int
    column: int
    box: BoundingBox
    text: str = ''
    confidence: float = 0.0
    rowspan: int = 1
    colspan: int = 1
    language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'row': self.row,
            'column': self.column,
            'bbox': self.box.to_dict(),
            'text': self.text,
            'confidence': round(self.confidence, 3),
            'rowspan': self.rowspan,
            'colspan': self.colspan,
            'language': self.language,
        }


@dataclass
class TableRegion:
    """
    A reconstructed table.

    ``cells[r][c]`` holds the cell whose top-left slot is (r, c), or None
    when that slot is covered by a spanning cell.
    """
    box: BoundingBox
    confidence: float
    row_positions: List[float]
    column_positions: List[float]
    cells: List[List[Optional[TableCell]]] = field(default_factory=list)
    header_row: Optional[List[str]] = None
    implicit_rows_applied: bool = False
    page_number: int = 1

    @property
    def rows(self) -> int:
        return len(self.row_positions) - 1

    @property
    def columns(self) -> int:
        return len(self.column_positions) - 1

    def iter_cells(self) -> Iterator[TableCell]:
        for row in self.cells:
            for cell in row:
                if cell is not None:
                    yield cell

    @property
    def cell_count(self) -> int:
        return sum(1 for _ in self.iter_cells())

    def cell(self, row: int, column: int) -> Optional[TableCell]:
        return self.cells[row][column]

    def detect_header(self) -> Optional[List[str]]:
        """First row is a header when every cell has non-numeric text."""
        if not self.cells:
            return None
        first = [c for c in self.cells[0] if c is not None]
        if first and all(c.text and not NUMERIC_CELL.match(c.text) for c in first):
            self.header_row = [c.text for c in first]
        else:
            self.header_row = None
        return self.header_row

    def to_rows(self) -> List[List[str]]:
        """Plain text grid, spanning cells repeated over their slots."""
        grid = [['' for _ in range(self.columns)] for _ in range(self.rows)]
        for cell in self.iter_cells():
            for r in range(cell.row, cell.row + cell.rowspan):
                for c in range(cell.column, cell.column + cell.colspan):
                    grid[r][c] = cell.text
        return grid

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page_number': self.page_number,
            'bbox': self.box.to_dict(),
            'confidence': round(self.confidence, 3),
            'rows': self.rows,
            'columns': self.columns,
            'cells': [cell.to_dict() for cell in self.iter_cells()],
            'header_row': self.header_row,
            'implicit_rows_applied': self.implicit_rows_applied,
        }


def infer_implicit_rows(
    positions: Sequence[float],
    min_row_height: float,
    tolerance: float = 0.2,
) -> Tuple[List[float], List[float]]:
    """
    Fill unprinted row rules.

    The regular row height is the smallest gap. A gap that is close (within
    ``tolerance`` of the row height) to k times it, k >= 2, is split into k
    rows, provided the resulting rows are at least ``min_row_height`` tall.

    Returns:
        (all positions, inferred positions)
    """
    if len(positions) < 2:
        return list(positions), []

    gaps = [b - a for a, b in zip(positions, positions[1:])]
    unit = min(gaps)
    if unit <= 0 or unit < min_row_height:
        return list(positions), []

    result = [positions[0]]
    inferred = []
    for start, gap in zip(positions, gaps):
        k = int(round(gap / unit))
        if k >= 2 and abs(gap - k * unit) <= tolerance * unit and gap / k >= min_row_height:
            step = gap / k
            for i in range(1, k):
                value = start + step * i
                result.append(value)
                inferred.append(value)
        result.append(start + gap)
    return result, inferred


def _covered(lines: Sequence[DetectedLine], position: float, low: float, high: float, tol: float) -> bool:
    """True if some line at ``position`` runs across the [low, high] span."""
    middle = (low + high) / 2
    return any(
        abs(line.position - position) <= tol and line.start - tol <= middle <= line.end + tol
        for line in lines
    )


class GridBuilder:
    """
    Builds the cell grid of a detected table.

    Usage:
        builder = GridBuilder()
        table = builder.build(candidate, page_number=1)
    """

    def __init__(self, config: Optional[TableDetectionConfig] = None, infer_rows: bool = True):
        self.config = config or TableDetectionConfig()
        self.infer_rows = infer_rows

    def build(self, candidate: TableCandidate, page_number: int = 1) -> TableRegion:
        """
        Raises:
            GeometryDetectionFailure: If the candidate has fewer than two row or column rules
        """
        rows = list(candidate.row_positions)
        cols = list(candidate.column_positions)
        if len(rows) < 2 or len(cols) < 2:
            raise GeometryDetectionFailure(
                f"Table candidate on page {page_number} has {len(rows)} row and {len(cols)} column rules"
            )
        inferred: List[float] = []

        if self.infer_rows:
            rows, inferred = infer_implicit_rows(rows, self.config.min_cell_height)
            if inferred:
                logger.info(f"Inferred {len(inferred)} missing row rules on page {page_number}")

        table = TableRegion(
            box=BoundingBox(cols[0], rows[0], cols[-1], rows[-1]),
            confidence=candidate.confidence,
            row_positions=rows,
            column_positions=cols,
            implicit_rows_applied=bool(inferred),
            page_number=page_number,
        )
        table.cells = self._cut_cells(candidate, rows, cols, set(inferred))
        return table

    def _cut_cells(
        self,
        candidate: TableCandidate,
        rows: List[float],
        cols: List[float],
        inferred: set,
    ) -> List[List[Optional[TableCell]]]:
        tol = self.config.intersection_tolerance
        n_rows = len(rows) - 1
        n_cols = len(cols) - 1
        occupied = [[False] * n_cols for _ in range(n_rows)]
        cells: List[List[Optional[TableCell]]] = [[None] * n_cols for _ in range(n_rows)]

        for r in range(n_rows):
            for c in range(n_cols):
                if occupied[r][c]:
                    continue

                colspan = 1
                while (c + colspan < n_cols and
                       not occupied[r][c + colspan] and
                       not _covered(candidate.vertical, cols[c + colspan], rows[r], rows[r + 1], tol)):
                    colspan += 1

                rowspan = 1
                while r + rowspan < n_rows:
                    boundary = rows[r + rowspan]
                    if boundary in inferred:
                        break
                    if any(occupied[r + rowspan][c + k] for k in range(colspan)):
                        break
                    if any(
                        _covered(candidate.horizontal, boundary, cols[c + k], cols[c + k + 1], tol)
                        for k in range(colspan)
                    ):
                        break
                    rowspan += 1

                for rr in range(r, r + rowspan):
                    for cc in range(c, c + colspan):
                        occupied[rr][cc] = True

                cells[r][c] = TableCell(
                    row=r,
                    column=c,
                    box=BoundingBox(cols[c], rows[r], cols[c + colspan], rows[r + rowspan]),
                    rowspan=rowspan,
                    colspan=colspan,
                )

        return cells
