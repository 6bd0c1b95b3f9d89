"""
I/O utilities for the OCR-to-DOCX pipeline.

Handles:
- PDF page rendering to images
- Image loading and validation
- JSON serialization and document persistence
- Input type detection
"""

import json
import logging
import mimetypes
from pathlib import Path
from typing import List, Union, Any

import numpy as np

from .assembler import Document

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp', '.webp')
PDF_POINTS_PER_INCH = 72


# ============================================================================
# PDF to Image Conversion
# ============================================================================

def get_pdf_page_count(pdf_path: Union[str, Path]) -> int:
    """
    Get the number of pages in a PDF file.

    Raises:
        FileNotFoundError: If PDF file doesn't exist
        RuntimeError: If the PDF cannot be read
    """
    pdf_path = Path(pdf_path)
    if not pdf_path.exists():
        raise FileNotFoundError(f"PDF file not found: {pdf_path}")

    from pdf2image import pdfinfo_from_path
    from pdf2image.exceptions import PDFPageCountError, PDFSyntaxError, PDFInfoNotInstalledError

    try:
        info = pdfinfo_from_path(str(pdf_path))
    except PDFInfoNotInstalledError:
        raise RuntimeError(
            "Poppler is not installed. Install with:\n"
            "  macOS: brew install poppler\n"
            "  Linux: sudo apt-get install poppler-utils"
        )
    except (PDFPageCountError, PDFSyntaxError) as e:
        raise RuntimeError(f"Failed to parse PDF: {e}")

    return int(info.get('Pages', 0))


def render_pdf_page(
    pdf_path: Union[str, Path],
    page_number: int,
    scale: float = 2.0
) -> np.ndarray:
    """
    Render a single PDF page to an image using pdf2image (poppler backend).

    Args:
        pdf_path: Path to the PDF file
        page_number: Page to render (1-indexed)
        scale: Pixels per PDF point (dpi = 72 * scale)

    Returns:
        Numpy array (BGR format) of the rendered page

    Raises:
        RuntimeError: If the page cannot be rendered
    """
    from pdf2image import convert_from_path
    from pdf2image.exceptions import PDFPageCountError, PDFSyntaxError

    dpi = int(round(PDF_POINTS_PER_INCH * scale))
    try:
        pil_images = convert_from_path(
            str(pdf_path),
            dpi=dpi,
            first_page=page_number,
            last_page=page_number,
            fmt='png'
        )
    except (PDFPageCountError, PDFSyntaxError) as e:
        raise RuntimeError(f"Failed to parse PDF: {e}")

    if not pil_images:
        raise RuntimeError(f"Page {page_number} of {pdf_path} rendered no image")

    img_array = np.array(pil_images[0].convert('RGB'))
    # RGB -> BGR for OpenCV compatibility
    return img_array[:, :, ::-1].copy()


# ============================================================================
# Image Loading
# ============================================================================

def load_image(image_path: Union[str, Path]) -> np.ndarray:
    """
    Load an image from file.

    Args:
        image_path: Path to the image file

    Returns:
        Numpy array representing the image (BGR format)

    Raises:
        FileNotFoundError: If image file doesn't exist
        ValueError: If image cannot be decoded
    """
    image_path = Path(image_path)
    if not image_path.exists():
        raise FileNotFoundError(f"Image file not found: {image_path}")

    img = decode_image_bytes(image_path.read_bytes())
    logger.debug(f"Loaded image: {image_path}, shape: {img.shape}")
    return img


def decode_image_bytes(data: bytes) -> np.ndarray:
    """
    Decode an encoded image (PNG, JPEG, ...) to a BGR array.

    Raises:
        ValueError: If the bytes are not a decodable image
    """
    import cv2

    img = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError("Could not decode image data")
    return img


def save_image(image: np.ndarray, output_path: Union[str, Path]) -> Path:
    """Save an image to file (format from the extension)."""
    import cv2

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(output_path), image):
        raise ValueError(f"Could not write image: {output_path}")
    logger.debug(f"Saved image: {output_path}")
    return output_path


def guess_mime_type(path: Union[str, Path]) -> str:
    """Guess a MIME type for an input file."""
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or "application/octet-stream"


# ============================================================================
# JSON Serialization
# ============================================================================

def _to_builtin(obj):
    """json.dump fallback for numpy scalars and paths."""
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, Path):
        return obj.as_posix()
    raise TypeError(f"Cannot serialize {type(obj).__name__}")


def save_json(data: Any, output_path: Union[str, Path]) -> Path:
    """Write UTF-8 JSON (non-ASCII kept as-is) and return the path."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(data, indent=2, ensure_ascii=False, default=_to_builtin),
        encoding="utf-8"
    )
    logger.debug(f"Wrote {output_path}")
    return output_path


def load_json(json_path: Union[str, Path]) -> Any:
    """
    Read a JSON file.

    Raises:
        FileNotFoundError: If the file is missing
    """
    json_path = Path(json_path)
    if not json_path.is_file():
        raise FileNotFoundError(f"No JSON file at {json_path}")
    return json.loads(json_path.read_text(encoding="utf-8"))


# ============================================================================
# Document Persistence
# ============================================================================

def save_document(
    document: Document,
    output_dir: Union[str, Path],
    json_name: str = "document.json"
) -> Path:
    """
    Save a recognized document so it can be exported again later.

    Page bitmaps are written as pages/page_NNNN.png next to the JSON file
    and referenced by relative path.

    Returns:
        Path to the JSON file
    """
    output_dir = ensure_dir(output_dir)
    data = document.to_dict()

    for page, page_data in zip(document.pages, data["pages"]):
        if page.bitmap is not None:
            rel_path = Path("pages") / f"page_{page.page_number:04d}.png"
            save_image(page.bitmap, output_dir / rel_path)
            page_data["image_path"] = rel_path.as_posix()

    path = save_json(data, output_dir / json_name)
    logger.info(f"Saved document with {len(document.pages)} pages: {path}")
    return path


def load_document(json_path: Union[str, Path]) -> Document:
    """
    Load a document written by save_document.

    Relative image paths are resolved against the JSON file's directory.
    Bitmaps are read lazily when an export needs them.
    """
    json_path = Path(json_path)
    data = load_json(json_path)

    for page_data in data.get("pages", []):
        image_path = page_data.get("image_path")
        if image_path and not Path(image_path).is_absolute():
            page_data["image_path"] = str(json_path.parent / image_path)

    data.setdefault("file_name", json_path.stem)
    document = Document.from_dict(data)
    logger.info(f"Loaded document with {len(document.pages)} pages: {json_path}")
    return document


# ============================================================================
# Directory Management and File Type Detection
# ============================================================================

def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def detect_input_type(input_path: Union[str, Path]) -> str:
    """
    Detect the type of an input file.

    Returns:
        One of: 'pdf', 'image', 'unknown'
    """
    input_path = Path(input_path)

    if not input_path.is_file():
        return 'unknown'

    suffix = input_path.suffix.lower()
    if suffix == '.pdf':
        return 'pdf'
    elif suffix in IMAGE_EXTENSIONS:
        return 'image'

    return 'unknown'


def expand_inputs(paths: List[Union[str, Path]]) -> List[Path]:
    """Expand folders into their PDF and image files, sorted by name."""
    expanded = []
    for p in paths:
        p = Path(p)
        if p.is_dir():
            files = sorted(f for f in p.iterdir() if detect_input_type(f) != 'unknown')
            logger.info(f"Found {len(files)} input files in {p}")
            expanded.extend(files)
        else:
            expanded.append(p)
    return expanded
