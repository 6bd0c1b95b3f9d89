"""
Tests for the batched processing pipeline.
"""

import threading
import time

import pytest
import numpy as np
import cv2
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ocr2docx.config import ProcessingConfig
from ocr2docx.utils import pipeline
from ocr2docx.utils.layout import Block, BlockType, BoundingBox
from ocr2docx.utils.ocr_client import OCRServiceError
from ocr2docx.utils.pipeline import CancellationToken, ProcessingRunner


class FakeClient:
    """
    In-process stand-in for the OCR service.

    Each page image is identified by its bytes; `behaviour` maps those bytes
    to (delay_seconds, result) where result is a block id or an exception.
    """

    def __init__(self, behaviour, on_call=None):
        self.behaviour = behaviour
        self.on_call = on_call
        self.calls = []
        self.completed = []
        self._lock = threading.Lock()

    def analyze(self, image_bytes, mime_type):
        delay, result = self.behaviour[image_bytes]
        with self._lock:
            self.calls.append((result, mime_type))
        if self.on_call is not None:
            self.on_call(result)
        time.sleep(delay)
        if isinstance(result, Exception):
            raise result
        with self._lock:
            self.completed.append(result)
        return [Block(
            bbox=BoundingBox(0, 0, 100, 100),
            block_type=BlockType.PARAGRAPH,
            lines=(result,),
            block_id=result
        )]


@pytest.fixture
def page_files(tmp_path):
    """Three distinct PNG page images."""
    paths = []
    for i in range(3):
        img = np.full((40 + i * 10, 60, 3), 255, dtype=np.uint8)
        path = tmp_path / f"page_{i + 1}.png"
        cv2.imwrite(str(path), img)
        paths.append(path)
    return paths


def behaviour_for(paths, outcomes):
    return {path.read_bytes(): outcome for path, outcome in zip(paths, outcomes)}


class TestPlan:
    """Tests for page numbering."""

    def test_images_are_one_page_each(self, page_files):
        runner = ProcessingRunner(FakeClient({}))
        sources = runner.plan(page_files)
        assert [s.page_number for s in sources] == [1, 2, 3]
        assert all(s.kind == "image" for s in sources)

    def test_pdf_pages_numbered_in_file_order(self, tmp_path, page_files, monkeypatch):
        pdf = tmp_path / "doc.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        monkeypatch.setattr(pipeline, "get_pdf_page_count", lambda path: 2)

        sources = ProcessingRunner(FakeClient({})).plan([page_files[0], pdf, page_files[1]])

        assert [(s.page_number, s.kind, s.index_in_file) for s in sources] == [
            (1, "image", 1),
            (2, "pdf", 1),
            (3, "pdf", 2),
            (4, "image", 1),
        ]

    def test_unsupported_inputs_skipped(self, tmp_path, page_files):
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        sources = ProcessingRunner(FakeClient({})).plan([notes, page_files[0]])
        assert [s.path for s in sources] == [page_files[0]]


class TestRun:
    """Tests for ProcessingRunner.run."""

    def test_pages_sorted_after_out_of_order_completion(self, page_files):
        """Page 3 finishes first but the document is still in page order."""
        client = FakeClient(behaviour_for(page_files, [(0.3, "p1"), (0.15, "p2"), (0.0, "p3")]))
        runner = ProcessingRunner(client, ProcessingConfig(batch_size=3))

        outcome = runner.run(page_files)

        assert outcome.status == "completed"
        assert client.completed[0] == "p3"
        pages = outcome.document.pages
        assert [p.page_number for p in pages] == [1, 2, 3]
        assert [p.blocks[0].block_id for p in pages] == ["p1", "p2", "p3"]

    def test_small_batches(self, page_files):
        client = FakeClient(behaviour_for(page_files, [(0.0, "p1"), (0.0, "p2"), (0.0, "p3")]))
        outcome = ProcessingRunner(client, ProcessingConfig(batch_size=2)).run(page_files)
        assert [p.page_number for p in outcome.document.pages] == [1, 2, 3]
        assert outcome.pages_processed == 3

    def test_image_pages(self, page_files):
        client = FakeClient(behaviour_for(page_files, [(0.0, "p1"), (0.0, "p2"), (0.0, "p3")]))
        outcome = ProcessingRunner(client).run(page_files)

        page = outcome.document.pages[1]
        assert (page.width, page.height) == (0, 0)
        assert page.bitmap.shape == (50, 60, 3)
        assert client.calls[0][1] == "image/png"
        assert outcome.document.file_name == "page_1.png"

    def test_pdf_pages_are_rendered(self, tmp_path, monkeypatch):
        pdf = tmp_path / "doc.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        bitmaps = {
            1: np.full((200, 100, 3), 255, dtype=np.uint8),
            2: np.full((300, 100, 3), 255, dtype=np.uint8),
        }
        monkeypatch.setattr(pipeline, "get_pdf_page_count", lambda path: 2)
        monkeypatch.setattr(pipeline, "render_pdf_page", lambda path, n, scale: bitmaps[n])

        behaviour = {
            pipeline.encode_image(bitmaps[1], ".jpg", 85): (0.0, "p1"),
            pipeline.encode_image(bitmaps[2], ".jpg", 85): (0.0, "p2"),
        }
        client = FakeClient(behaviour)
        outcome = ProcessingRunner(client).run([pdf])

        assert [(p.width, p.height) for p in outcome.document.pages] == [(100, 200), (100, 300)]
        assert {mime for _, mime in client.calls} == {"image/jpeg"}

    def test_no_inputs(self):
        outcome = ProcessingRunner(FakeClient({})).run([])
        assert outcome.status == "completed"
        assert outcome.document.pages == ()

    def test_failure_aborts_run(self, page_files):
        client = FakeClient(behaviour_for(page_files, [
            (0.0, "p1"),
            (0.0, OCRServiceError("quota exceeded")),
            (0.0, "p3"),
        ]))
        runner = ProcessingRunner(client, ProcessingConfig(batch_size=1))

        with pytest.raises(OCRServiceError):
            runner.run(page_files)
        # The batch after the failure never starts
        assert [r for r, _ in client.calls if isinstance(r, str)] == ["p1"]

    def test_progress_callback(self, page_files):
        messages = []
        client = FakeClient(behaviour_for(page_files, [(0.0, "p1"), (0.0, "p2"), (0.0, "p3")]))
        ProcessingRunner(client, ProcessingConfig(batch_size=2), progress_callback=messages.append).run(page_files)
        assert messages == ["Scanning pages 1-2 of 3...", "Scanning pages 3-3 of 3..."]


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_token(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled

    def test_cancel_discards_results_and_stops(self, page_files):
        runner = None

        def cancel_on_first(result):
            runner.cancel()

        client = FakeClient(
            behaviour_for(page_files, [(0.0, "p1"), (0.0, "p2"), (0.0, "p3")]),
            on_call=cancel_on_first
        )
        runner = ProcessingRunner(client, ProcessingConfig(batch_size=1))

        outcome = runner.run(page_files)

        assert outcome.status == "cancelled"
        assert outcome.cancelled
        assert outcome.document is None
        # In-flight work finished, but nothing after it started
        assert [r for r, _ in client.calls] == ["p1"]

    def test_cancel_from_another_thread(self, page_files):
        client = FakeClient(behaviour_for(page_files, [(0.3, "p1"), (0.3, "p2"), (0.3, "p3")]))
        runner = ProcessingRunner(client, ProcessingConfig(batch_size=1))

        timer = threading.Timer(0.1, runner.cancel)
        timer.start()
        try:
            outcome = runner.run(page_files)
        finally:
            timer.cancel()

        assert outcome.cancelled
        assert len(client.calls) == 1

    def test_cancel_before_run_starts(self, page_files):
        """A cancel issued before the worker thread reaches run() still counts."""
        client = FakeClient(behaviour_for(page_files, [(0.0, "p1"), (0.0, "p2"), (0.0, "p3")]))
        runner = ProcessingRunner(client)
        runner.cancel()

        outcome = runner.run(page_files)

        assert outcome.cancelled
        assert client.calls == []

    def test_reset_allows_another_run(self, page_files):
        client = FakeClient(behaviour_for(page_files, [(0.0, "p1"), (0.0, "p2"), (0.0, "p3")]))
        runner = ProcessingRunner(client)
        runner.cancel()
        runner.reset()

        outcome = runner.run(page_files)
        assert outcome.status == "completed"
