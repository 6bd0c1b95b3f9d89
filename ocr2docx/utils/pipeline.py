"""
Processing pipeline: input files to a recognized Document.

Pages from every input file are numbered up front, then rendered and sent
to the OCR service in small concurrent batches. A run can be cancelled
cooperatively between items; results that arrive after cancellation are
dropped. Pages are always returned in ascending page-number order,
whatever order the requests finished in.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .assembler import Document, Page
from .images import encode_image
from .io import (
    decode_image_bytes,
    detect_input_type,
    get_pdf_page_count,
    guess_mime_type,
    render_pdf_page,
)
from ..config import ProcessingConfig

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class PageSource:
    """Where one output page comes from."""
    page_number: int
    path: Path
    kind: str  # 'pdf' or 'image'
    index_in_file: int = 1


@dataclass
class RunOutcome:
    """Result of a processing run that was not aborted by an error."""
    status: str  # 'completed' or 'cancelled'
    document: Optional[Document] = None
    pages_processed: int = 0
    processing_time_seconds: float = 0.0

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"


class CancellationToken:
    """Run-scoped cancellation flag, safe to set from another thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ============================================================================
# Processing Runner
# ============================================================================

class ProcessingRunner:
    """
    Runs OCR over a set of input files.

    The OCR client is any object with an
    `analyze(image_bytes, mime_type) -> List[Block]` method.
    """

    def __init__(
        self,
        client,
        config: Optional[ProcessingConfig] = None,
        progress_callback: Optional[ProgressCallback] = None
    ):
        self.client = client
        self.config = config or ProcessingConfig()
        self.progress_callback = progress_callback
        self.token = CancellationToken()

    def cancel(self):
        """
        Ask the run to stop after the in-flight batch.

        May be called before run() starts, in which case no page is processed.
        """
        logger.info("Cancellation requested")
        self.token.cancel()

    def reset(self):
        """Clear a previous cancellation so the runner can be used again."""
        self.token = CancellationToken()

    def plan(self, paths: Sequence[Union[str, Path]]) -> List[PageSource]:
        """Number every page of every input file, in file then page order."""
        sources = []
        for path in paths:
            path = Path(path)
            kind = detect_input_type(path)

            if kind == "pdf":
                count = get_pdf_page_count(path)
                logger.info(f"{path.name}: {count} pages")
                for i in range(1, count + 1):
                    sources.append(PageSource(len(sources) + 1, path, kind, i))
            elif kind == "image":
                sources.append(PageSource(len(sources) + 1, path, kind))
            else:
                logger.warning(f"Skipping unsupported input: {path}")

        return sources

    def process_page(self, source: PageSource) -> Page:
        """Render one page and run OCR on it."""
        if source.kind == "pdf":
            bitmap = render_pdf_page(source.path, source.index_in_file, self.config.render_scale)
            payload = encode_image(bitmap, ".jpg", self.config.jpeg_quality)
            mime_type = "image/jpeg"
            height, width = bitmap.shape[:2]
        else:
            payload = source.path.read_bytes()
            bitmap = decode_image_bytes(payload)
            mime_type = guess_mime_type(source.path)
            width = height = 0  # Cropping falls back to the bitmap size

        blocks = self.client.analyze(payload, mime_type)
        logger.info(f"Page {source.page_number}: {len(blocks)} blocks")

        return Page(
            page_number=source.page_number,
            blocks=tuple(blocks),
            width=width,
            height=height,
            bitmap=bitmap
        )

    def run(
        self,
        paths: Sequence[Union[str, Path]],
        file_name: Optional[str] = None
    ) -> RunOutcome:
        """
        Process input files into a Document.

        Args:
            paths: PDFs and images, in the order their pages should appear
            file_name: Document name, defaults to the first input's name

        Returns:
            RunOutcome with status 'completed' or 'cancelled'

        Raises:
            OCRServiceError: If any page's OCR call fails (aborts the run)
        """
        start_time = time.time()
        token = self.token

        paths = [Path(p) for p in paths]
        sources = self.plan(paths)
        batch_size = max(1, self.config.batch_size)
        logger.info(f"Processing {len(sources)} pages in batches of {batch_size}")

        results: List[Page] = []

        with ThreadPoolExecutor(max_workers=batch_size) as executor:
            for start in range(0, len(sources), batch_size):
                if token.cancelled:
                    break

                batch = sources[start:start + batch_size]
                self._report(
                    f"Scanning pages {batch[0].page_number}-{batch[-1].page_number} "
                    f"of {len(sources)}..."
                )

                futures = [executor.submit(self._process_unless_cancelled, s, token) for s in batch]
                batch_pages = []
                try:
                    for future in as_completed(futures):
                        page = future.result()
                        if page is not None:
                            batch_pages.append(page)
                except Exception:
                    for future in futures:
                        future.cancel()
                    logger.error(f"OCR failed in batch starting at page {batch[0].page_number}")
                    raise

                if token.cancelled:
                    logger.info(f"Discarding {len(batch_pages)} pages finished after cancellation")
                    break

                results.extend(batch_pages)

        elapsed = time.time() - start_time

        if token.cancelled:
            self._report("Operation cancelled.")
            return RunOutcome(status="cancelled", processing_time_seconds=elapsed)

        pages = sorted(results, key=lambda p: p.page_number)
        if file_name is None:
            file_name = paths[0].name if paths else "document"

        logger.info(f"Processed {len(pages)} pages in {elapsed:.2f}s")
        return RunOutcome(
            status="completed",
            document=Document(file_name=file_name, pages=tuple(pages)),
            pages_processed=len(pages),
            processing_time_seconds=elapsed
        )

    def _process_unless_cancelled(
        self,
        source: PageSource,
        token: CancellationToken
    ) -> Optional[Page]:
        if token.cancelled:
            return None
        return self.process_page(source)

    def _report(self, message: str):
        logger.debug(message)
        if self.progress_callback is not None:
            self.progress_callback(message)
