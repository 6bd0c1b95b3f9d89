"""
Block selection state for the review workspace.

Every operation works on the active page and swaps in a new Document
snapshot; earlier snapshots are never modified.
"""

import logging
from typing import Optional

from .assembler import Document, Page
from .layout import BoundingBox, contains

logger = logging.getLogger(__name__)


class SelectionState:
    """Tracks which blocks of the active page are included in the export."""

    def __init__(self, document: Document, active_page_index: int = 0):
        self.document = document
        self.active_page_index = 0
        if document.pages:
            self.set_active_page(active_page_index)

    @property
    def active_page(self) -> Optional[Page]:
        if not self.document.pages:
            return None
        return self.document.pages[self.active_page_index]

    def set_active_page(self, index: int):
        if not 0 <= index < len(self.document.pages):
            raise IndexError(f"Page index {index} out of range (0-{len(self.document.pages) - 1})")
        self.active_page_index = index

    def toggle(self, block_id: str) -> Document:
        """Flip the selection of one block on the active page."""
        page = self.active_page
        if page is None:
            return self.document

        found = False
        blocks = []
        for block in page.blocks:
            if block.block_id == block_id:
                block = block.with_selection(not block.is_selected)
                found = True
            blocks.append(block)

        if not found:
            logger.debug(f"toggle: no block {block_id} on page {page.page_number}")
            return self.document

        return self._commit(page.with_blocks(blocks))

    def set_all(self, selected: bool) -> Document:
        """Select or clear every block on the active page."""
        page = self.active_page
        if page is None:
            return self.document
        return self._commit(page.with_blocks([b.with_selection(selected) for b in page.blocks]))

    def select_by_area(self, rect: BoundingBox) -> Document:
        """
        Add every block fully inside `rect` to the selection.

        Blocks outside the rectangle keep their current state.
        """
        page = self.active_page
        if page is None:
            return self.document

        blocks = [
            b.with_selection(True) if contains(b.bbox, rect) else b
            for b in page.blocks
        ]
        return self._commit(page.with_blocks(blocks))

    def selected_count(self) -> int:
        page = self.active_page
        return len(page.selected_blocks) if page is not None else 0

    def has_selection(self) -> bool:
        return any(page.selected_blocks for page in self.document.pages)

    def _commit(self, page: Page) -> Document:
        self.document = self.document.with_page(self.active_page_index, page)
        return self.document
