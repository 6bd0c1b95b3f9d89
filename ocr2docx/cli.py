#!/usr/bin/env python
"""
Command-line interface for the OCR-to-DOCX pipeline.

Usage:
    ocr2docx --input <pdf_or_image> [...] --output <output_dir> [options]

Examples:
    # OCR a PDF and export every block
    ocr2docx --input scan.pdf --output ./output --mode all

    # Keep the recognized run, then re-export part of page 2 later
    ocr2docx --input scan.pdf --output ./output --format all
    ocr2docx --from-json ./output/document.json --output ./output \\
        --clear-selection --select-area 2:0,0,500,1000
"""

import sys
from pathlib import Path

# Add the project root to path for imports when running as script
_root_dir = Path(__file__).resolve().parent.parent
if str(_root_dir) not in sys.path:
    sys.path.insert(0, str(_root_dir))

import argparse
import logging
import time
from typing import List, Tuple

from ocr2docx import __version__

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("ocr2docx")


# ============================================================================
# Argument Parsing
# ============================================================================

def parse_area(value: str) -> Tuple[int, List[float]]:
    """Parse 'PAGE:YMIN,XMIN,YMAX,XMAX' into a page number and box values."""
    try:
        page, coords = value.split(":", 1)
        box = [float(v) for v in coords.split(",")]
        page_number = int(page)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Expected PAGE:YMIN,XMIN,YMAX,XMAX, got {value!r}"
        )
    if len(box) != 4:
        raise argparse.ArgumentTypeError(f"Area needs four coordinates, got {value!r}")
    return page_number, box


def parse_block_ref(value: str) -> Tuple[int, str]:
    """Parse 'PAGE:BLOCK_ID'."""
    page, sep, block_id = value.partition(":")
    if not sep or not block_id:
        raise argparse.ArgumentTypeError(f"Expected PAGE:BLOCK_ID, got {value!r}")
    try:
        return int(page), block_id
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid page number in {value!r}")


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="OCR to DOCX - Rebuild scanned documents as editable Word files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  OCR a PDF and export every block:
    ocr2docx --input scan.pdf --output ./output --mode all

  OCR several scans into one document, keeping the run for later:
    ocr2docx --input p1.jpg p2.jpg p3.jpg --output ./output --format all

  Re-export only the top half of page 2 from a saved run:
    ocr2docx --from-json ./output/document.json --output ./output \\
        --clear-selection --select-area 2:0,0,500,1000

Environment:
  GEMINI_API_KEY         API key for the OCR service
  OCR2DOCX_MODEL         Model name override
  OCR2DOCX_BATCH_SIZE    Concurrent OCR requests per batch
        """
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--input", "-i",
        nargs="+",
        help="Input PDF/image files or folders, in page order"
    )
    source.add_argument(
        "--from-json",
        help="Reuse a run saved with --format json instead of calling the OCR service"
    )

    parser.add_argument(
        "--output", "-o",
        required=True,
        help="Output directory for generated files"
    )

    parser.add_argument(
        "--format", "-f",
        default="docx",
        choices=["docx", "json", "all"],
        help="What to write: the DOCX export, the recognized run, or both (default: docx)"
    )

    parser.add_argument(
        "--mode",
        default="selected",
        choices=["selected", "all"],
        help="Export only selected blocks or every block (default: selected)"
    )

    parser.add_argument(
        "--clear-selection",
        action="store_true",
        help="Deselect every block before applying --select-area/--toggle"
    )

    parser.add_argument(
        "--select-area",
        type=parse_area,
        action="append",
        default=[],
        metavar="PAGE:YMIN,XMIN,YMAX,XMAX",
        help="Select blocks fully inside a 0-1000 rectangle (repeatable)"
    )

    parser.add_argument(
        "--toggle",
        type=parse_block_ref,
        action="append",
        default=[],
        metavar="PAGE:BLOCK_ID",
        help="Flip the selection of one block (repeatable)"
    )

    parser.add_argument(
        "--scale",
        type=float,
        default=None,
        help="PDF render scale, dpi = 72 * scale (default: 2.0)"
    )

    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Concurrent OCR requests per batch (default: 3)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def check_dependencies(need_ocr: bool = True) -> bool:
    """Check if required dependencies are available."""
    missing = []
    optional_missing = []

    try:
        import cv2
    except ImportError:
        missing.append("opencv-python")

    try:
        import docx
    except ImportError:
        missing.append("python-docx")

    if need_ocr:
        try:
            import requests
        except ImportError:
            missing.append("requests")

        try:
            import pdf2image
        except ImportError:
            optional_missing.append("pdf2image (for PDF support)")

    if missing:
        logger.error("Missing required dependencies:")
        for dep in missing:
            logger.error(f"  - {dep}")
        logger.error("\nInstall with: pip install -e .")
        return False

    if optional_missing:
        logger.warning("Missing optional dependencies (some features may be limited):")
        for dep in optional_missing:
            logger.warning(f"  - {dep}")

    return True


# ============================================================================
# Pipeline
# ============================================================================

def apply_selection(state, args):
    """Apply --clear-selection, --select-area and --toggle in that order."""
    from ocr2docx.utils.layout import BoundingBox

    def activate(page_number: int):
        for index, page in enumerate(state.document.pages):
            if page.page_number == page_number:
                state.set_active_page(index)
                return
        raise ValueError(f"Document has no page {page_number}")

    if args.clear_selection:
        for index in range(len(state.document.pages)):
            state.set_active_page(index)
            state.set_all(False)

    for page_number, box in args.select_area:
        activate(page_number)
        state.select_by_area(BoundingBox.from_list(box))
        logger.info(f"Page {page_number}: {state.selected_count()} blocks selected after area {box}")

    for page_number, block_id in args.toggle:
        activate(page_number)
        state.toggle(block_id)

    return state.document


def run_pipeline(args) -> int:
    """Run OCR (or load a saved run), apply selection and export."""
    from ocr2docx.config import get_config
    from ocr2docx.utils.export import export_docx
    from ocr2docx.utils.io import ensure_dir, expand_inputs, load_document, save_document
    from ocr2docx.utils.selection import SelectionState

    start_time = time.time()
    config = get_config()
    if config.debug_mode and not args.quiet:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.scale is not None:
        config.processing.render_scale = args.scale
    if args.batch_size is not None:
        config.processing.batch_size = max(1, args.batch_size)

    output_dir = ensure_dir(args.output)

    if args.from_json:
        document = load_document(args.from_json)
    else:
        from ocr2docx.utils.ocr_client import GeminiLayoutClient
        from ocr2docx.utils.pipeline import ProcessingRunner

        inputs = expand_inputs(args.input)
        if not inputs:
            logger.error("No input files to process")
            return 1

        runner = ProcessingRunner(
            GeminiLayoutClient(config.ocr),
            config.processing,
            progress_callback=logger.info
        )
        try:
            outcome = runner.run(inputs)
        except KeyboardInterrupt:
            runner.cancel()
            logger.info("Interrupted by user, run cancelled")
            return 130

        if outcome.cancelled:
            logger.info("Run cancelled, nothing written")
            return 130
        document = outcome.document

    if not document.pages:
        logger.error("No pages were recognized")
        return 1

    document = apply_selection(SelectionState(document), args)

    written = []
    if args.format in ("json", "all"):
        written.append(save_document(document, output_dir))

    if args.format in ("docx", "all"):
        artifact = export_docx(
            document,
            export_all=args.mode == "all",
            config=config.export,
            line_tolerance=config.layout.line_tolerance
        )
        if artifact is None:
            logger.warning("Nothing to export: no blocks are selected")
        else:
            written.append(artifact.save(output_dir))

    elapsed = time.time() - start_time
    blocks_total = sum(len(p.blocks) for p in document.pages)
    blocks_selected = sum(len(p.selected_blocks) for p in document.pages)

    if not args.quiet:
        print("\n" + "=" * 60)
        print("OCR TO DOCX COMPLETE")
        print("=" * 60)
        print(f"Source: {args.from_json or ', '.join(args.input)}")
        print(f"Output: {output_dir}")
        print(f"Pages: {len(document.pages)}")
        print(f"Blocks: {blocks_total} (selected: {blocks_selected})")
        print(f"Export mode: {args.mode}")
        print(f"Processing time: {elapsed:.2f}s")
        for path in written:
            print(f"  Wrote {path}")
        print("=" * 60)

    return 0


def main():
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    if not check_dependencies(need_ocr=not args.from_json):
        sys.exit(1)

    try:
        exit_code = run_pipeline(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Failed: {e}")
        if args.verbose:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
