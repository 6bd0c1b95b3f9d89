"""
Table reconstruction module for document reconstruction.

Provides:
- Table cell data model as returned by the OCR service
- Densification of sparse (row, col, text) cell lists into a rectangular grid
- Markdown preview of a reconstructed grid
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Dict, Any, Iterable

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class TableCell:
    """A single table cell."""
    text: str
    row: int
    col: int
    row_span: int = 1
    col_span: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "row": self.row,
            "col": self.col,
            "row_span": self.row_span,
            "col_span": self.col_span
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TableCell':
        return cls(
            text=str(data.get("text") or ""),
            row=int(data["row"]),
            col=int(data["col"]),
            row_span=int(data.get("row_span", data.get("rowSpan", 1)) or 1),
            col_span=int(data.get("col_span", data.get("colSpan", 1)) or 1)
        )


@dataclass
class TableGrid:
    """Dense, row-major table grid."""
    rows: List[List[TableCell]]
    num_rows: int
    num_cols: int
    synthesized_cells: int = 0

    @property
    def column_width_pct(self) -> float:
        """Declared width of every column, as a percentage of table width."""
        return 100.0 / self.num_cols

    @property
    def text_rows(self) -> List[List[str]]:
        return [[cell.text for cell in row] for row in self.rows]

    def to_markdown(self) -> str:
        """Build Markdown table representation."""
        grid = [
            [text.replace("|", "\\|").replace("\n", " ") for text in row]
            for row in self.text_rows
        ]
        lines = []

        # Header row
        lines.append("| " + " | ".join(grid[0]) + " |")

        # Separator
        lines.append("| " + " | ".join("---" for _ in range(self.num_cols)) + " |")

        # Data rows
        for row in grid[1:]:
            lines.append("| " + " | ".join(row) + " |")

        return "\n".join(lines)


# ============================================================================
# Reconstruction
# ============================================================================

def reconstruct_table(cells: Iterable[TableCell]) -> Optional[TableGrid]:
    """
    Densify a sparse list of table cells into a rectangular grid.

    The grid spans (max_row + 1) x (max_col + 1). Positions with no cell
    get an empty-text cell. When several cells share a position the last
    one wins.

    Args:
        cells: Table cells in any order, 0-indexed

    Returns:
        TableGrid, or None if there are no cells
    """
    by_position: Dict[Tuple[int, int], TableCell] = {}
    for cell in cells:
        if cell.row < 0 or cell.col < 0:
            logger.warning(f"Ignoring table cell with negative index ({cell.row}, {cell.col})")
            continue
        by_position[(cell.row, cell.col)] = cell

    if not by_position:
        return None

    max_row = max(row for row, _ in by_position)
    max_col = max(col for _, col in by_position)

    rows = []
    synthesized = 0
    for r in range(max_row + 1):
        row_cells = []
        for c in range(max_col + 1):
            cell = by_position.get((r, c))
            if cell is None:
                cell = TableCell(text="", row=r, col=c)
                synthesized += 1
            row_cells.append(cell)
        rows.append(row_cells)

    if synthesized:
        logger.debug(f"Filled {synthesized} missing cells in {max_row + 1}x{max_col + 1} table")

    return TableGrid(
        rows=rows,
        num_rows=max_row + 1,
        num_cols=max_col + 1,
        synthesized_cells=synthesized
    )
