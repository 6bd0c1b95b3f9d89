"""
Tests for block selection state.
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ocr2docx.utils.assembler import Document, Page
from ocr2docx.utils.layout import Block, BlockType, BoundingBox
from ocr2docx.utils.selection import SelectionState


def make_block(block_id, box, selected=True):
    return Block(
        bbox=BoundingBox(*box),
        block_type=BlockType.PARAGRAPH,
        lines=(block_id,),
        block_id=block_id,
        is_selected=selected
    )


@pytest.fixture
def document():
    page1 = Page(page_number=1, blocks=(
        make_block("inside", (100, 100, 200, 200), selected=False),
        make_block("straddle", (150, 150, 600, 600), selected=False),
        make_block("already", (800, 800, 900, 900), selected=True),
    ))
    page2 = Page(page_number=2, blocks=(
        make_block("other", (0, 0, 10, 10)),
    ))
    return Document(file_name="scan.pdf", pages=(page1, page2))


def selection_map(page):
    return {b.block_id: b.is_selected for b in page.blocks}


class TestToggle:
    """Tests for single-block toggling."""

    def test_toggle_flips(self, document):
        state = SelectionState(document)
        state.toggle("inside")
        assert selection_map(state.active_page)["inside"] is True

    def test_double_toggle_restores(self, document):
        state = SelectionState(document)
        state.toggle("already")
        state.toggle("already")
        assert selection_map(state.active_page) == selection_map(document.pages[0])

    def test_unknown_block_is_noop(self, document):
        state = SelectionState(document)
        result = state.toggle("missing")
        assert result is document

    def test_previous_snapshot_untouched(self, document):
        state = SelectionState(document)
        new_document = state.toggle("inside")
        assert new_document is not document
        assert selection_map(document.pages[0])["inside"] is False

    def test_only_active_page_changes(self, document):
        state = SelectionState(document)
        new_document = state.toggle("inside")
        assert new_document.pages[1] is document.pages[1]


class TestSetAll:
    """Tests for select all / clear."""

    def test_select_all(self, document):
        state = SelectionState(document)
        state.set_all(True)
        assert all(selection_map(state.active_page).values())

    def test_clear(self, document):
        state = SelectionState(document)
        state.set_all(False)
        assert not any(selection_map(state.active_page).values())
        assert state.selected_count() == 0

    def test_idempotent(self, document):
        state = SelectionState(document)
        once = state.set_all(True)
        twice = state.set_all(True)
        assert once == twice


class TestSelectByArea:
    """Tests for rectangle selection."""

    def test_adds_only_fully_contained(self, document):
        state = SelectionState(document)
        state.select_by_area(BoundingBox(50, 50, 500, 500))
        selected = selection_map(state.active_page)

        assert selected["inside"] is True
        assert selected["straddle"] is False

    def test_never_deselects(self, document):
        """Blocks outside the rectangle keep their state."""
        state = SelectionState(document)
        state.select_by_area(BoundingBox(50, 50, 500, 500))
        assert selection_map(state.active_page)["already"] is True

    def test_idempotent(self, document):
        state = SelectionState(document)
        rect = BoundingBox(0, 0, 1000, 1000)
        once = state.select_by_area(rect)
        twice = state.select_by_area(rect)
        assert once == twice
        assert all(selection_map(state.active_page).values())


class TestActivePage:
    """Tests for page switching."""

    def test_operations_follow_active_page(self, document):
        state = SelectionState(document)
        state.set_active_page(1)
        state.set_all(False)

        assert state.document.pages[1].selected_blocks == []
        assert selection_map(state.document.pages[0]) == selection_map(document.pages[0])

    def test_out_of_range(self, document):
        state = SelectionState(document)
        with pytest.raises(IndexError):
            state.set_active_page(5)

    def test_has_selection_spans_pages(self, document):
        state = SelectionState(document)
        state.set_all(False)
        assert state.has_selection()  # Page 2 still selected
        state.set_active_page(1)
        state.set_all(False)
        assert not state.has_selection()

    def test_empty_document(self):
        state = SelectionState(Document(file_name="empty"))
        assert state.active_page is None
        assert state.toggle("x") is state.document
        assert state.selected_count() == 0
