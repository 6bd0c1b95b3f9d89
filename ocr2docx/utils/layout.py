"""
Layout module for document reconstruction.

Provides:
- Block data model (types, normalized bounding boxes)
- Geometry tests on normalized boxes (containment, line banding)
- Reading order resolution

All boxes live in a fixed 0-1000 coordinate space where (0, 0) is the
top-left corner of the page and 1000 spans the full height or width.
"""

import logging
import functools
import uuid
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple, Dict, Any, Sequence
from enum import Enum

from .tables import TableCell

logger = logging.getLogger(__name__)

COORDINATE_SPACE = 1000
LINE_TOLERANCE = 20


# ============================================================================
# Data Classes and Enums
# ============================================================================

class BlockType(Enum):
    """Types of document blocks."""
    PARAGRAPH = "paragraph"
    HEADER = "header"
    TABLE = "table"
    LIST = "list"
    IMAGE_PLACEHOLDER = "image_placeholder"


@dataclass(frozen=True)
class BoundingBox:
    """Normalized bounding box, (ymin, xmin, ymax, xmax) in 0-1000."""
    ymin: int
    xmin: int
    ymax: int
    xmax: int

    def __post_init__(self):
        for name in ("ymin", "xmin", "ymax", "xmax"):
            value = getattr(self, name)
            if not 0 <= value <= COORDINATE_SPACE:
                raise ValueError(f"{name}={value} outside 0-{COORDINATE_SPACE}")
        if self.ymin > self.ymax or self.xmin > self.xmax:
            raise ValueError(f"Inverted box: {self.to_list()}")

    @property
    def width(self) -> int:
        return self.xmax - self.xmin

    @property
    def height(self) -> int:
        return self.ymax - self.ymin

    def to_list(self) -> List[int]:
        return [self.ymin, self.xmin, self.ymax, self.xmax]

    @classmethod
    def from_list(cls, values: Sequence[float]) -> 'BoundingBox':
        """
        Build a box from raw [ymin, xmin, ymax, xmax] values.

        Values are rounded, clamped into the coordinate space and each
        axis pair is put in ascending order.

        Raises:
            ValueError: If there are not exactly four numeric values
        """
        if isinstance(values, (str, bytes)) or len(values) != 4:
            raise ValueError(f"Expected [ymin, xmin, ymax, xmax], got {values!r}")

        try:
            ymin, xmin, ymax, xmax = (
                min(max(int(round(float(v))), 0), COORDINATE_SPACE) for v in values
            )
        except (TypeError, ValueError, OverflowError):
            raise ValueError(f"Non-numeric box coordinates: {values!r}")

        return cls(
            ymin=min(ymin, ymax),
            xmin=min(xmin, xmax),
            ymax=max(ymin, ymax),
            xmax=max(xmin, xmax)
        )


@dataclass(frozen=True)
class Block:
    """A detected content block on a page."""
    bbox: BoundingBox
    block_type: BlockType
    lines: Tuple[str, ...] = ()
    block_id: str = ""
    confidence: Optional[float] = None
    table_cells: Tuple[TableCell, ...] = ()
    is_bold: bool = False
    font_size: Optional[float] = None
    is_selected: bool = True

    def __post_init__(self):
        if not self.block_id:
            object.__setattr__(self, "block_id", new_block_id())

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def with_selection(self, selected: bool) -> 'Block':
        if selected == self.is_selected:
            return self
        return replace(self, is_selected=selected)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.block_id,
            "type": self.block_type.value,
            "text": self.text,
            "box_2d": self.bbox.to_list(),
            "confidence": self.confidence,
            "isBold": self.is_bold,
            "isSelected": self.is_selected
        }
        if self.font_size is not None:
            result["fontSize"] = self.font_size
        if self.table_cells:
            result["tableData"] = [c.to_dict() for c in self.table_cells]
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any], keep_selection: bool = False) -> 'Block':
        """
        Build a block from a service record or a saved document.

        Args:
            data: Record with required 'type', 'text' and 'box_2d' keys
            keep_selection: Honor a stored 'isSelected' flag instead of
                starting selected

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field has the wrong shape
        """
        for key in ("type", "text", "box_2d"):
            if key not in data:
                raise KeyError(f"Block record missing '{key}'")

        try:
            block_type = BlockType(str(data["type"]).lower())
        except ValueError:
            logger.warning(f"Unknown block type {data['type']!r}, treating as paragraph")
            block_type = BlockType.PARAGRAPH

        text = data["text"] if data["text"] is not None else ""
        if isinstance(text, (list, tuple)):
            text = "\n".join(str(t) for t in text)

        cells = data.get("tableData") or []
        if not isinstance(cells, list):
            raise ValueError(f"tableData must be a list, got {type(cells).__name__}")

        confidence = data.get("confidence")
        font_size = data.get("fontSize")

        return cls(
            bbox=BoundingBox.from_list(data["box_2d"]),
            block_type=block_type,
            lines=tuple(str(text).split("\n")),
            block_id=str(data.get("id") or ""),
            confidence=float(confidence) if confidence is not None else None,
            table_cells=tuple(TableCell.from_dict(c) for c in cells),
            is_bold=bool(data.get("isBold", False)),
            font_size=float(font_size) if font_size is not None else None,
            is_selected=bool(data.get("isSelected", True)) if keep_selection else True
        )


def new_block_id() -> str:
    """Generate a short opaque block identifier."""
    return uuid.uuid4().hex[:9]


# ============================================================================
# Geometry
# ============================================================================

def contains(inner: BoundingBox, outer: BoundingBox) -> bool:
    """True if `inner` lies entirely within `outer` (edges may touch)."""
    return (
        inner.xmin >= outer.xmin and inner.xmax <= outer.xmax and
        inner.ymin >= outer.ymin and inner.ymax <= outer.ymax
    )


def same_line(a: BoundingBox, b: BoundingBox, tolerance: int = LINE_TOLERANCE) -> bool:
    """True if the top edges of two boxes fall in the same visual line band."""
    return abs(a.ymin - b.ymin) < tolerance


# ============================================================================
# Reading Order
# ============================================================================

def order_blocks(blocks: Sequence[Block], tolerance: int = LINE_TOLERANCE) -> List[Block]:
    """
    Sort blocks into reading order.

    Blocks whose top edges are within `tolerance` of each other are on the
    same line and read left to right; otherwise blocks read top to bottom.
    The sort is stable, so remaining ties keep their input order.

    Args:
        blocks: Blocks of a single page, in any order
        tolerance: Line band height in normalized units

    Returns:
        New list of the same blocks in reading order
    """
    def compare(a: Block, b: Block) -> int:
        if same_line(a.bbox, b.bbox, tolerance):
            return a.bbox.xmin - b.bbox.xmin
        return a.bbox.ymin - b.bbox.ymin

    return sorted(blocks, key=functools.cmp_to_key(compare))
