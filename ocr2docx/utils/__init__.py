"""
Utility modules for the OCR-to-DOCX pipeline.
"""

from .tables import TableCell, TableGrid, reconstruct_table
from .layout import Block, BlockType, BoundingBox, contains, same_line, order_blocks
from .images import CroppedImage, ImageCropError, crop_region
from .assembler import DocumentAssembler, AssembledDocument, Document, Page
from .selection import SelectionState
from .export import DocxExporter, ExportArtifact, export_docx
from .io import load_image, save_json, ensure_dir, save_document, load_document
from .ocr_client import GeminiLayoutClient, OCRServiceError
from .pipeline import CancellationToken, ProcessingRunner, RunOutcome

__all__ = [
    # Tables
    "TableCell", "TableGrid", "reconstruct_table",
    # Layout
    "Block", "BlockType", "BoundingBox", "contains", "same_line", "order_blocks",
    # Images
    "CroppedImage", "ImageCropError", "crop_region",
    # Assembly
    "DocumentAssembler", "AssembledDocument", "Document", "Page",
    # Selection
    "SelectionState",
    # Export
    "DocxExporter", "ExportArtifact", "export_docx",
    # IO
    "load_image", "save_json", "ensure_dir", "save_document", "load_document",
    # OCR
    "GeminiLayoutClient", "OCRServiceError",
    # Processing
    "CancellationToken", "ProcessingRunner", "RunOutcome",
]
