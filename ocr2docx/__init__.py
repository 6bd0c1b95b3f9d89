"""
OCR to DOCX
===========

Layout-aware OCR of scanned PDFs and images, rebuilt as editable Word
documents.

Main components:
- Batched, cancellable page OCR through a remote layout model
- Reading order reconstruction from normalized block boxes
- Table densification and image cropping
- Per-block selection for partial export
- DOCX export
"""

__version__ = "1.0.0"
__author__ = "OCR to DOCX Team"
