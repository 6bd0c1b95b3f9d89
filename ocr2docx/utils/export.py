"""
Export module for document reconstruction.

Provides:
- DOCX rendering of assembled document elements (using python-docx)
- Export artifacts with generated file names
"""

import io
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from .assembler import (
    Alignment,
    AssembledDocument,
    Document,
    DocumentAssembler,
    ImageElement,
    SpacerElement,
    TableElement,
    TextElement,
)
from .tables import TableGrid
from ..config import ExportConfig

logger = logging.getLogger(__name__)

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
EMU_PER_PIXEL = 9525  # At 96 dpi
TWIPS_PER_LINE = 240
PCT_FULL_WIDTH = 5000  # OOXML percentages are in fiftieths of a percent


# ============================================================================
# Export Artifact
# ============================================================================

@dataclass(frozen=True)
class ExportArtifact:
    """A generated document, ready to be offered as a download."""
    file_name: str
    data: bytes
    mime_type: str = DOCX_MIME_TYPE

    def save(self, output_dir: Union[str, Path]) -> Path:
        """Write the artifact into a directory and return its path."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / self.file_name
        path.write_bytes(self.data)
        logger.info(f"Exported DOCX to: {path}")
        return path


# ============================================================================
# DOCX Exporter
# ============================================================================

class DocxExporter:
    """Render assembled elements to DOCX using python-docx."""

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()

    def to_bytes(self, assembled: AssembledDocument) -> bytes:
        """
        Render an assembled document to DOCX bytes.

        All pages go into a single section, one after another, with no
        page breaks between source pages.

        Args:
            assembled: Output of DocumentAssembler.assemble

        Returns:
            DOCX file contents
        """
        try:
            from docx import Document as DocxDocument
        except ImportError:
            raise ImportError(
                "python-docx is required for DOCX export. "
                "Install with: pip install python-docx"
            )

        doc = DocxDocument()
        self._setup_document(doc)

        for element in assembled.elements:
            if isinstance(element, TextElement):
                self._add_text(doc, element)
            elif isinstance(element, TableElement):
                self._add_table(doc, element.grid)
            elif isinstance(element, ImageElement):
                self._add_image(doc, element)
            elif isinstance(element, SpacerElement):
                self._add_spacer(doc, element)
            else:
                raise TypeError(f"Unsupported element: {type(element).__name__}")

        buffer = io.BytesIO()
        doc.save(buffer)
        return buffer.getvalue()

    def _setup_document(self, doc: Any):
        """Apply page margins, default font and metadata."""
        from docx.shared import Pt, Twips

        margin = Twips(self.config.page_margin_twips)
        for section in doc.sections:
            section.top_margin = margin
            section.bottom_margin = margin
            section.left_margin = margin
            section.right_margin = margin

        normal = doc.styles["Normal"]
        normal.font.name = self.config.font_name
        normal.font.size = Pt(self.config.body_font_size)
        self._set_complex_script_font(normal.element)
        normal.paragraph_format.line_spacing = 1.0

        doc.core_properties.title = self.config.title
        doc.core_properties.author = self.config.creator

    def _set_complex_script_font(self, element: Any):
        """Use the configured font for Devanagari and East Asian runs too."""
        from docx.oxml.ns import qn

        rfonts = element.get_or_add_rPr().get_or_add_rFonts()
        rfonts.set(qn("w:cs"), self.config.font_name)
        rfonts.set(qn("w:eastAsia"), self.config.font_name)

    def _style_run(self, run: Any, size_pt: float, bold: bool = False):
        from docx.shared import Pt

        run.font.name = self.config.font_name
        run.font.size = Pt(size_pt)
        run.font.bold = bold
        self._set_complex_script_font(run._element)

    def _add_text(self, doc: Any, element: TextElement):
        from docx.shared import Twips
        from docx.enum.text import WD_ALIGN_PARAGRAPH

        alignments = {
            Alignment.LEFT: WD_ALIGN_PARAGRAPH.LEFT,
            Alignment.CENTER: WD_ALIGN_PARAGRAPH.CENTER,
            Alignment.RIGHT: WD_ALIGN_PARAGRAPH.RIGHT,
        }

        p = doc.add_paragraph()
        self._style_run(p.add_run(element.text), element.font_size, element.bold)
        p.alignment = alignments[element.alignment]
        p.paragraph_format.space_after = Twips(element.space_after_twips)
        p.paragraph_format.line_spacing = element.line_spacing_twips / TWIPS_PER_LINE

    def _add_table(self, doc: Any, grid: TableGrid):
        """Add a fully bordered table with equal percentage columns."""
        from docx.enum.text import WD_ALIGN_PARAGRAPH
        from docx.oxml import OxmlElement
        from docx.oxml.ns import qn

        table = doc.add_table(rows=grid.num_rows, cols=grid.num_cols)
        table.style = "Table Grid"

        tbl_pr = table._tbl.tblPr
        tbl_w = tbl_pr.find(qn("w:tblW"))
        if tbl_w is None:
            tbl_w = OxmlElement("w:tblW")
            tbl_pr.append(tbl_w)
        tbl_w.set(qn("w:type"), "pct")
        tbl_w.set(qn("w:w"), str(PCT_FULL_WIDTH))

        borders = OxmlElement("w:tblBorders")
        for edge in ("top", "left", "bottom", "right", "insideH", "insideV"):
            border = OxmlElement(f"w:{edge}")
            border.set(qn("w:val"), "single")
            border.set(qn("w:sz"), "4")
            border.set(qn("w:space"), "0")
            border.set(qn("w:color"), "000000")
            borders.append(border)
        tbl_look = tbl_pr.find(qn("w:tblLook"))
        if tbl_look is not None:
            tbl_look.addprevious(borders)
        else:
            tbl_pr.append(borders)

        col_width = str(int(PCT_FULL_WIDTH * grid.column_width_pct / 100))

        for i, row_cells in enumerate(grid.rows):
            row = table.rows[i]
            for j, cell_data in enumerate(row_cells):
                cell = row.cells[j]
                tc_w = cell._tc.get_or_add_tcPr().get_or_add_tcW()
                tc_w.set(qn("w:type"), "pct")
                tc_w.set(qn("w:w"), col_width)

                p = cell.paragraphs[0]
                self._style_run(p.add_run(cell_data.text), self.config.table_font_size)
                p.alignment = WD_ALIGN_PARAGRAPH.LEFT

    def _add_image(self, doc: Any, element: ImageElement):
        from docx.shared import Emu, Twips
        from docx.enum.text import WD_ALIGN_PARAGRAPH

        p = doc.add_paragraph()
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        p.paragraph_format.space_before = Twips(element.space_twips)
        p.paragraph_format.space_after = Twips(element.space_twips)
        p.add_run().add_picture(
            io.BytesIO(element.image.data),
            width=Emu(int(element.width_px * EMU_PER_PIXEL)),
            height=Emu(int(element.height_px * EMU_PER_PIXEL))
        )

    def _add_spacer(self, doc: Any, element: SpacerElement):
        from docx.shared import Twips

        p = doc.add_paragraph()
        p.paragraph_format.space_before = Twips(element.space_before_twips)
        p.paragraph_format.space_after = Twips(element.space_after_twips)


# ============================================================================
# Convenience
# ============================================================================

def export_file_name(document: Document, config: Optional[ExportConfig] = None) -> str:
    """Generate '<stem>_export_<epoch millis>.docx' for a document."""
    config = config or ExportConfig()
    stem = Path(document.file_name).stem if document.file_name else ""
    return f"{stem or config.file_prefix}_export_{int(time.time() * 1000)}.docx"


def export_docx(
    document: Document,
    export_all: bool = False,
    config: Optional[ExportConfig] = None,
    line_tolerance: Optional[int] = None
) -> Optional[ExportArtifact]:
    """
    Assemble and render a document to a DOCX artifact.

    Args:
        document: Recognized document with current selection state
        export_all: Export every block instead of only selected ones
        config: Export configuration
        line_tolerance: Reading-order line band, defaults to the assembler's

    Returns:
        ExportArtifact, or None when there is nothing to export
    """
    config = config or ExportConfig()
    assembler = (
        DocumentAssembler(config, line_tolerance) if line_tolerance is not None
        else DocumentAssembler(config)
    )

    assembled = assembler.assemble(document, export_all=export_all)
    if assembled is None:
        return None

    data = DocxExporter(config).to_bytes(assembled)
    return ExportArtifact(file_name=export_file_name(document, config), data=data)
