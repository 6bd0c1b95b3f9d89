"""
Document assembler module for document reconstruction.

Provides:
- Document data model (Document, Page)
- Document element model (text, table, image, spacer)
- Assembly of selected blocks into an ordered, styled element flow
"""

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple, Union

import numpy as np

from .layout import Block, BlockType, BoundingBox, order_blocks, LINE_TOLERANCE
from .tables import TableGrid, reconstruct_table
from .images import CroppedImage, crop_region
from ..config import ExportConfig

logger = logging.getLogger(__name__)

# Control characters that are not allowed in XML 1.0 text (tab, LF, CR are)
_XML_ILLEGAL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class Page:
    """A recognized page: its source bitmap and detected blocks."""
    page_number: int
    blocks: Tuple[Block, ...] = ()
    width: int = 0  # Nominal size, 0 if unknown
    height: int = 0
    bitmap: Optional[np.ndarray] = field(default=None, compare=False, repr=False)
    image_path: Optional[str] = None

    @property
    def selected_blocks(self) -> List[Block]:
        return [b for b in self.blocks if b.is_selected]

    def load_bitmap(self) -> np.ndarray:
        """Return the page bitmap, reading it from `image_path` if needed."""
        if self.bitmap is not None:
            return self.bitmap
        if not self.image_path:
            raise ValueError(f"Page {self.page_number} has no bitmap")
        from .io import load_image
        return load_image(self.image_path)

    def with_blocks(self, blocks: List[Block]) -> 'Page':
        return replace(self, blocks=tuple(blocks))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page_number": self.page_number,
            "width": self.width,
            "height": self.height,
            "image_path": self.image_path,
            "blocks": [b.to_dict() for b in self.blocks]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Page':
        """Rebuild a saved page; stored selection flags are kept."""
        return cls(
            page_number=int(data["page_number"]),
            blocks=tuple(
                Block.from_dict(b, keep_selection=True) for b in data.get("blocks", [])
            ),
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
            image_path=data.get("image_path")
        )


@dataclass(frozen=True)
class Document:
    """A processed run: a file name and its pages in page-number order."""
    file_name: str
    pages: Tuple[Page, ...] = ()

    def with_page(self, index: int, page: Page) -> 'Document':
        pages = list(self.pages)
        pages[index] = page
        return replace(self, pages=tuple(pages))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "pages": [p.to_dict() for p in self.pages]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Document':
        pages = sorted(
            (Page.from_dict(p) for p in data.get("pages", [])),
            key=lambda p: p.page_number
        )
        return cls(file_name=data.get("file_name", ""), pages=tuple(pages))


# ============================================================================
# Document Elements
# ============================================================================

class Alignment(Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


@dataclass(frozen=True)
class TextElement:
    """One line of text, rendered as its own paragraph."""
    text: str
    font_size: float
    bold: bool = False
    alignment: Alignment = Alignment.LEFT
    space_after_twips: int = 0
    line_spacing_twips: int = 240


@dataclass(frozen=True)
class TableElement:
    """A bordered table grid."""
    grid: TableGrid


@dataclass(frozen=True)
class ImageElement:
    """A centered picture sized from its normalized footprint."""
    image: CroppedImage
    width_px: float
    height_px: float
    space_twips: int = 0


@dataclass(frozen=True)
class SpacerElement:
    """An empty paragraph used for vertical separation."""
    space_before_twips: int = 0
    space_after_twips: int = 0


Element = Union[TextElement, TableElement, ImageElement, SpacerElement]


@dataclass
class AssembledPage:
    page_number: int
    elements: List[Element] = field(default_factory=list)


@dataclass
class AssembledDocument:
    """Pages of elements, meant to be written as one continuous flow."""
    file_name: str
    pages: List[AssembledPage] = field(default_factory=list)

    @property
    def elements(self) -> List[Element]:
        return [e for page in self.pages for e in page.elements]


# ============================================================================
# Document Assembler
# ============================================================================

class DocumentAssembler:
    """
    Turns recognized pages into an ordered list of document elements.

    For every page, eligible blocks are put in reading order and dispatched
    by type:
    - image placeholders are cropped from the page bitmap
    - tables are densified into a bordered grid followed by a spacer
    - everything else becomes one text element per line

    The assembler is stateless and never modifies the pages it reads.
    """

    def __init__(
        self,
        export_config: Optional[ExportConfig] = None,
        line_tolerance: int = LINE_TOLERANCE
    ):
        self.config = export_config or ExportConfig()
        self.line_tolerance = line_tolerance

    def assemble(
        self,
        document: Document,
        export_all: bool = False
    ) -> Optional[AssembledDocument]:
        """
        Assemble a document for export.

        Args:
            document: Recognized document
            export_all: If True export every block, otherwise only
                selected blocks

        Returns:
            AssembledDocument, or None when no page contributes anything
        """
        result = AssembledDocument(file_name=document.file_name)

        for page in sorted(document.pages, key=lambda p: p.page_number):
            assembled = self.assemble_page(page, export_all=export_all)
            if assembled is not None:
                result.pages.append(assembled)

        if not result.pages:
            logger.info("Nothing to export: no page has eligible content")
            return None

        logger.info(
            f"Assembled {len(result.elements)} elements from "
            f"{len(result.pages)}/{len(document.pages)} pages"
        )
        return result

    def assemble_page(
        self,
        page: Page,
        export_all: bool = False
    ) -> Optional[AssembledPage]:
        """Assemble a single page; None if it has no eligible content."""
        eligible = list(page.blocks) if export_all else page.selected_blocks
        if not eligible:
            return None

        elements: List[Element] = []
        bitmap = None

        for block in order_blocks(eligible, self.line_tolerance):
            if block.block_type == BlockType.IMAGE_PLACEHOLDER:
                try:
                    if bitmap is None:
                        bitmap = page.load_bitmap()
                    elements.append(self._image_element(block, page, bitmap))
                except Exception as e:
                    logger.warning(
                        f"Skipping image block {block.block_id} on page "
                        f"{page.page_number}: {e}"
                    )

            elif block.block_type == BlockType.TABLE:
                elements.extend(self._table_elements(block))

            else:
                elements.extend(self._text_elements(block))

        if not elements:
            return None

        return AssembledPage(page_number=page.page_number, elements=elements)

    def _image_element(
        self,
        block: Block,
        page: Page,
        bitmap: np.ndarray
    ) -> ImageElement:
        """Crop an image block out of the page bitmap."""
        cropped = crop_region(bitmap, block.bbox, source_size=(page.width, page.height))
        scale = self.config.image_scale
        return ImageElement(
            image=cropped,
            width_px=block.bbox.width * scale,
            height_px=block.bbox.height * scale,
            space_twips=self.config.image_space_twips
        )

    def _table_elements(self, block: Block) -> List[Element]:
        """Reconstruct a table block; empty tables contribute nothing."""
        grid = reconstruct_table(
            replace(cell, text=xml_safe(cell.text)) for cell in block.table_cells
        )
        if grid is None:
            logger.debug(f"Table block {block.block_id} has no cells")
            return []
        spacer = SpacerElement(
            space_before_twips=self.config.block_space_after_twips,
            space_after_twips=self.config.block_space_after_twips
        )
        return [TableElement(grid=grid), spacer]

    def _text_elements(self, block: Block) -> List[Element]:
        """Emit one text element per line of a text block."""
        is_header = block.block_type == BlockType.HEADER
        font_size = self.config.header_font_size if is_header else self.config.body_font_size
        indent = leading_indent(block.bbox)
        alignment = guess_alignment(block.bbox)

        elements = []
        last = len(block.lines) - 1
        for index, line in enumerate(block.lines):
            elements.append(TextElement(
                text=indent + xml_safe(line).replace("\t", "    "),
                font_size=font_size,
                bold=is_header or block.is_bold,
                alignment=alignment,
                space_after_twips=(
                    self.config.block_space_after_twips if index == last
                    else self.config.line_space_after_twips
                ),
                line_spacing_twips=self.config.line_spacing_twips
            ))
        return elements


# ============================================================================
# Placement Heuristics
# ============================================================================

def xml_safe(text: str) -> str:
    """Drop control characters that python-docx refuses to write."""
    return _XML_ILLEGAL.sub("", text)


def leading_indent(bbox: BoundingBox) -> str:
    """Approximate horizontal offset with leading tabs."""
    if bbox.xmin > 400:
        return "\t\t"
    if bbox.xmin > 200:
        return "\t"
    return ""


def guess_alignment(bbox: BoundingBox) -> Alignment:
    """Guess paragraph alignment from where the block sits on the page."""
    if bbox.xmin > 600:
        return Alignment.RIGHT
    if bbox.xmin > 300 and bbox.xmax < 700:
        return Alignment.CENTER
    return Alignment.LEFT
