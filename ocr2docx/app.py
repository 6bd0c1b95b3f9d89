#!/usr/bin/env python
"""
Streamlit Web UI for the OCR-to-DOCX pipeline.

Run with:
    streamlit run ocr2docx/app.py

Features:
- Upload PDFs and images (PNG, JPG, TIFF, BMP, WEBP)
- Background processing with progress and a cancel button
- Per-block selection: checkboxes, select all/clear, rectangle selection
- DOCX download of selected or all blocks
"""

import sys
import shutil
import threading
import tempfile
import time
from pathlib import Path

# Add the project root to path for imports when running as script
_root_dir = Path(__file__).resolve().parent.parent
if str(_root_dir) not in sys.path:
    sys.path.insert(0, str(_root_dir))

import numpy as np
import streamlit as st

import logging

from ocr2docx.config import get_config
from ocr2docx.utils.layout import BlockType, BoundingBox, order_blocks
from ocr2docx.utils.selection import SelectionState
from ocr2docx.utils.tables import reconstruct_table

logger = logging.getLogger("ocr2docx.app")

UPLOAD_TYPES = ["pdf", "png", "jpg", "jpeg", "tiff", "tif", "bmp", "webp"]

# Page config must be first Streamlit command
st.set_page_config(
    page_title="OCR to DOCX",
    page_icon="📄",
    layout="wide",
    initial_sidebar_state="expanded"
)


def init_session_state():
    """Initialize session state variables."""
    if "selection" not in st.session_state:
        st.session_state.selection = None
    if "job" not in st.session_state:
        st.session_state.job = None
    if "error" not in st.session_state:
        st.session_state.error = None
    if "widget_version" not in st.session_state:
        st.session_state.widget_version = 0


def render_sidebar() -> dict:
    """Render sidebar settings and return them."""
    config = get_config()

    st.sidebar.header("⚙️ Settings")

    st.sidebar.subheader("OCR Service")
    api_key = st.sidebar.text_input(
        "API key",
        value=config.ocr.api_key,
        type="password",
        help="Defaults to GEMINI_API_KEY from the environment"
    )
    model = st.sidebar.text_input("Model", value=config.ocr.model)

    st.sidebar.subheader("Processing")
    render_scale = st.sidebar.slider(
        "PDF render scale",
        min_value=1.0,
        max_value=4.0,
        value=config.processing.render_scale,
        step=0.5,
        help="dpi = 72 * scale"
    )
    batch_size = st.sidebar.number_input(
        "Concurrent requests",
        min_value=1,
        max_value=10,
        value=config.processing.batch_size
    )

    config.ocr.api_key = api_key
    config.ocr.model = model
    config.processing.render_scale = render_scale
    config.processing.batch_size = int(batch_size)
    return {"config": config}


# ============================================================================
# Background Processing
# ============================================================================

def _run_job(job: dict):
    """Worker thread body; never touches Streamlit APIs."""
    try:
        job["outcome"] = job["runner"].run(job["paths"], file_name=job["file_name"])
    except Exception as e:
        logger.error(f"Processing failed: {e}")
        job["error"] = str(e)
    finally:
        shutil.rmtree(job["temp_dir"], ignore_errors=True)
        job["done"] = True


def start_processing(uploaded_files, settings: dict):
    """Save uploads to a temp dir and start a processing run in the background."""
    from ocr2docx.utils.ocr_client import GeminiLayoutClient
    from ocr2docx.utils.pipeline import ProcessingRunner

    config = settings["config"]
    temp_dir = Path(tempfile.mkdtemp(prefix="ocr2docx_"))

    paths = []
    for i, uploaded in enumerate(uploaded_files):
        path = temp_dir / f"{i:03d}_{uploaded.name}"
        path.write_bytes(uploaded.getbuffer())
        paths.append(path)

    job = {
        "messages": [],
        "outcome": None,
        "error": None,
        "done": False,
        "temp_dir": temp_dir,
        "paths": paths,
        "file_name": uploaded_files[0].name,
    }
    job["runner"] = ProcessingRunner(
        GeminiLayoutClient(config.ocr),
        config.processing,
        progress_callback=job["messages"].append
    )

    st.session_state.job = job
    st.session_state.error = None
    st.session_state.selection = None
    threading.Thread(target=_run_job, args=(job,), daemon=True).start()


def render_job(job: dict):
    """Show progress of a running job, or collect its result."""
    if not job["done"]:
        col1, col2 = st.columns([4, 1])
        with col1:
            message = job["messages"][-1] if job["messages"] else "Starting..."
            st.info(f"⏳ {message}")
        with col2:
            if st.button("✖ Cancel", width="stretch"):
                job["runner"].cancel()
                job["messages"].append("Cancelling after the current batch...")
        time.sleep(0.5)
        st.rerun()
        return

    st.session_state.job = None
    if job["error"]:
        st.session_state.error = job["error"]
    elif job["outcome"] is not None and job["outcome"].cancelled:
        st.warning("Processing cancelled.")
    elif job["outcome"] is not None:
        document = job["outcome"].document
        if document.pages:
            st.session_state.selection = SelectionState(document)
            st.session_state.widget_version += 1
            st.success(
                f"✅ Processed {len(document.pages)} page(s) in "
                f"{job['outcome'].processing_time_seconds:.1f}s"
            )
        else:
            st.warning("No pages were recognized.")


# ============================================================================
# Selection Workspace
# ============================================================================

def _reset_widgets():
    st.session_state.widget_version += 1


def on_toggle(block_id: str):
    st.session_state.selection.toggle(block_id)


def draw_blocks(page) -> np.ndarray:
    """Overlay block boxes on the page bitmap (green selected, gray not)."""
    import cv2

    image = page.load_bitmap().copy()
    height, width = image.shape[:2]

    for block in page.blocks:
        x1 = int(block.bbox.xmin / 1000 * width)
        y1 = int(block.bbox.ymin / 1000 * height)
        x2 = int(block.bbox.xmax / 1000 * width)
        y2 = int(block.bbox.ymax / 1000 * height)
        color = (0, 180, 0) if block.is_selected else (160, 160, 160)
        cv2.rectangle(image, (x1, y1), (x2, y2), color, 2)

    return image


def render_block_list(state: SelectionState):
    """Render one checkbox per block of the active page, in reading order."""
    page = state.active_page
    version = st.session_state.widget_version

    if not page.blocks:
        st.info("No blocks detected on this page.")
        return

    for block in order_blocks(page.blocks):
        preview = block.text.replace("\n", " ")
        grid = None
        if block.block_type == BlockType.TABLE:
            grid = reconstruct_table(block.table_cells)
            preview = f"{grid.num_rows}x{grid.num_cols} table" if grid else "empty table"
        elif block.block_type == BlockType.IMAGE_PLACEHOLDER:
            preview = "image"
        if len(preview) > 80:
            preview = preview[:77] + "..."

        st.checkbox(
            f"**{block.block_type.value}** · {preview}",
            value=block.is_selected,
            key=f"block_{page.page_number}_{block.block_id}_{version}",
            on_change=on_toggle,
            args=(block.block_id,)
        )
        if grid is not None:
            with st.expander("Table preview"):
                st.markdown(grid.to_markdown())


def render_area_form(state: SelectionState):
    """Numeric rectangle form for adding blocks inside an area."""
    with st.form("area_selection"):
        st.caption("Select blocks fully inside a rectangle (0-1000 coordinates)")
        cols = st.columns(4)
        ymin = cols[0].number_input("Top", 0, 1000, 0)
        xmin = cols[1].number_input("Left", 0, 1000, 0)
        ymax = cols[2].number_input("Bottom", 0, 1000, 1000)
        xmax = cols[3].number_input("Right", 0, 1000, 1000)

        if st.form_submit_button("Add area to selection"):
            before = state.selected_count()
            state.select_by_area(BoundingBox.from_list([ymin, xmin, ymax, xmax]))
            _reset_widgets()
            st.toast(f"Selected {state.selected_count() - before} more block(s)")
            st.rerun()


def render_workspace(state: SelectionState):
    """Page picker, preview and selection controls."""
    document = state.document

    if len(document.pages) > 1:
        index = st.selectbox(
            "Select page",
            range(len(document.pages)),
            index=state.active_page_index,
            format_func=lambda i: f"Page {document.pages[i].page_number}"
        )
        if index != state.active_page_index:
            state.set_active_page(index)
            _reset_widgets()

    page = state.active_page
    col1, col2 = st.columns([3, 2])

    with col1:
        try:
            st.image(draw_blocks(page), channels="BGR", width="stretch")
        except ValueError as e:
            st.warning(f"Page preview unavailable: {e}")

    with col2:
        st.markdown(f"**{state.selected_count()} / {len(page.blocks)} blocks selected**")
        c1, c2 = st.columns(2)
        if c1.button("Select all", width="stretch"):
            state.set_all(True)
            _reset_widgets()
            st.rerun()
        if c2.button("Clear", width="stretch"):
            state.set_all(False)
            _reset_widgets()
            st.rerun()

        render_block_list(state)
        render_area_form(state)


def render_export(state: SelectionState, settings: dict):
    """Export mode radio and DOCX download."""
    from ocr2docx.utils.export import export_docx

    st.subheader("📥 Export")
    mode = st.radio(
        "Export",
        ["Selected blocks", "All blocks"],
        horizontal=True
    )
    export_all = mode == "All blocks"

    if not export_all and not state.has_selection():
        st.info("Nothing selected to export.")
        return

    config = settings["config"]
    artifact = export_docx(
        state.document,
        export_all=export_all,
        config=config.export,
        line_tolerance=config.layout.line_tolerance
    )
    if artifact is None:
        st.info("Nothing to export.")
        return

    st.download_button(
        "📄 Download DOCX",
        data=artifact.data,
        file_name=artifact.file_name,
        mime=artifact.mime_type,
        width="stretch"
    )


def main():
    """Main Streamlit app."""
    init_session_state()

    st.title("📄 OCR to DOCX")
    st.caption("Layout-aware OCR of scans, rebuilt as editable Word documents")

    settings = render_sidebar()
    st.markdown("---")

    uploaded_files = st.file_uploader(
        "Upload PDFs or page images",
        type=UPLOAD_TYPES,
        accept_multiple_files=True,
        help="Pages are numbered in upload order"
    )

    job = st.session_state.job
    if uploaded_files and job is None:
        if st.button("🚀 Process", type="primary"):
            start_processing(uploaded_files, settings)
            st.rerun()

    if job is not None:
        render_job(job)

    if st.session_state.error:
        st.error(f"Processing error: {st.session_state.error}")

    state = st.session_state.selection
    if state is not None and st.session_state.job is None:
        st.markdown("---")
        render_workspace(state)
        st.markdown("---")
        render_export(state, settings)


if __name__ == "__main__":
    main()
