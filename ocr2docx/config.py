"""
Configuration and constants for the OCR-to-DOCX pipeline.

This module provides:
- Global configuration settings
- OCR service configuration (endpoint, model, credentials)
- Processing and export parameters
"""

import os
from dataclasses import dataclass, field
import logging

# ============================================================================
# Logging Configuration
# ============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("ocr2docx")


# ============================================================================
# OCR Service Configuration
# ============================================================================

DEFAULT_SYSTEM_INSTRUCTION = """You are a high-speed Layout-Aware OCR Engine.
Detect language automatically (specializing in Nepali, Hindi, English).
Extract structure: headers, paragraphs, lists, tables and images.
For tables, provide row/col mapping in 'tableData'.
For pictures, figures and logos, emit an 'image_placeholder' block with its box.
Output: JSON array of blocks with box_2d as [ymin, xmin, ymax, xmax] normalized to 0-1000.
Devanagari: Ensure one space before full stop (।).
Be fast and precise."""


@dataclass
class OCRServiceConfig:
    """Remote vision-language OCR service configuration."""
    api_key: str = ""
    model: str = "gemini-3-flash-preview"
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: int = 120
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    prompt: str = "OCR this. Structured JSON only."


@dataclass
class ProcessingConfig:
    """Page rendering and OCR dispatch configuration."""
    render_scale: float = 2.0  # PDF points to pixels, dpi = 72 * scale
    jpeg_quality: int = 85
    batch_size: int = 3  # Concurrent OCR requests per batch


@dataclass
class LayoutConfig:
    """Reading order configuration."""
    line_tolerance: int = 20  # Normalized units


@dataclass
class ExportConfig:
    """DOCX export configuration."""
    font_name: str = "Nirmala UI"
    body_font_size: float = 11.0
    header_font_size: float = 14.0
    table_font_size: float = 10.0
    page_margin_twips: int = 1000
    line_spacing_twips: int = 320
    line_space_after_twips: int = 50
    block_space_after_twips: int = 200
    image_space_twips: int = 200
    image_scale: float = 0.5  # Display pixels per normalized unit
    file_prefix: str = "OmniLex"
    title: str = "OmniLex Digitation"
    creator: str = "ocr2docx"


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    ocr: OCRServiceConfig = field(default_factory=OCRServiceConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    debug_mode: bool = False


# ============================================================================
# Default Configuration Instance
# ============================================================================

def get_config() -> PipelineConfig:
    """Get the default pipeline configuration with environment overrides."""
    config = PipelineConfig()

    # API credentials from environment
    config.ocr.api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY", "")

    if os.environ.get("OCR2DOCX_MODEL"):
        config.ocr.model = os.environ["OCR2DOCX_MODEL"]

    if os.environ.get("OCR2DOCX_ENDPOINT"):
        config.ocr.endpoint = os.environ["OCR2DOCX_ENDPOINT"]

    batch_size = os.environ.get("OCR2DOCX_BATCH_SIZE")
    if batch_size:
        try:
            config.processing.batch_size = max(1, int(batch_size))
        except ValueError:
            logger.warning(f"Ignoring invalid OCR2DOCX_BATCH_SIZE={batch_size!r}")

    if os.environ.get("OCR2DOCX_DEBUG", "").lower() == "true":
        config.debug_mode = True

    return config
