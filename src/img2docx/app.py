#!/usr/bin/env python
"""
Streamlit Web UI for the image-to-document converter.

Run with:
    streamlit run src/img2docx/app.py

Features:
- Upload several images (PNG, JPG, TIFF, BMP, WEBP) in display order
- Text extraction with Gemini or Tesseract
- Preview of the assembled document, failed images flagged
- Download as DOCX or Markdown
"""

import html
import sys
import uuid
from pathlib import Path

# Add src directory to path for imports when running as script
_src_dir = Path(__file__).parent.parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import logging

import streamlit as st

from img2docx.config import get_config, get_health_status, setup_logging
from img2docx.utils.assembler import Error, Header, LabelValue
from img2docx.utils.export import (
    DOCX_MIME_TYPE, MarkdownExporter, default_docx_filename, escape_markdown,
)
from img2docx.utils.io import UploadStaging
from img2docx.utils.pipeline import ImageToDocxPipeline

logger = logging.getLogger("img2docx.app")


# Page config must be first Streamlit command
st.set_page_config(
    page_title="Image to Word",
    page_icon="📄",
    layout="wide",
    initial_sidebar_state="expanded"
)


def load_css():
    """Load custom CSS styles."""
    st.markdown("""
    <style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        color: #2E74B5;
        text-align: center;
        margin-bottom: 1rem;
    }
    .sub-header {
        font-size: 1.2rem;
        color: #888;
        text-align: center;
        margin-bottom: 2rem;
    }
    .error-block {
        border-left: 4px solid #FF0000;
        background-color: rgba(255, 0, 0, 0.08);
        padding: 0.5rem 1rem;
        margin: 0.5rem 0;
    }
    </style>
    """, unsafe_allow_html=True)


def init_session_state():
    """Initialize session state variables."""
    if "result" not in st.session_state:
        st.session_state.result = None
    if "batch_id" not in st.session_state:
        st.session_state.batch_id = None


@st.cache_data(ttl=300)  # Cache for 5 minutes
def check_health():
    """Dependency and environment status."""
    return get_health_status(check_deps=True)


def render_sidebar(config) -> dict:
    """Render settings sidebar and return the chosen settings."""
    st.sidebar.header("⚙️ Settings")

    engines = ["gemini", "tesseract"]
    engine = st.sidebar.selectbox(
        "OCR engine",
        engines,
        index=engines.index(config.ocr.engine) if config.ocr.engine in engines else 0
    )

    include_headers = st.sidebar.checkbox(
        "Page headers",
        value=config.assembly.include_headers,
        help="Add a 'Page N: <file>' line before each image's text"
    )

    split_any_colon = st.sidebar.checkbox(
        "Split on any colon",
        value=config.assembly.label_threshold is None,
        help="Treat every line containing a colon as 'Label: value'"
    )
    label_threshold = None
    if not split_any_colon:
        label_threshold = st.sidebar.number_input(
            "Max label length",
            min_value=1,
            max_value=500,
            value=config.assembly.label_threshold or 50
        )

    accent = st.sidebar.color_picker(
        "Header color",
        value=f"#{config.assembly.header_accent_color}"
    )

    workers = st.sidebar.slider("Parallel OCR requests", 1, 8, config.ocr.max_workers)

    st.sidebar.markdown("---")
    st.sidebar.subheader("🩺 Status")
    health = check_health()
    for name, status in health.get("dependencies", {}).items():
        icon = "✅" if status.startswith("available") else "❌"
        st.sidebar.caption(f"{icon} **{name}**: {status}")
    key_status = health.get("environment", {}).get("GOOGLE_API_KEY")
    st.sidebar.caption(f"{'✅' if key_status == 'set' else '❌'} **GOOGLE_API_KEY**: {key_status}")

    return {
        "engine": engine,
        "include_headers": include_headers,
        "label_threshold": int(label_threshold) if label_threshold is not None else None,
        "accent_color": accent.lstrip("#"),
        "workers": workers,
    }


def process_uploads(uploaded_files, settings, config):
    """Stage the uploads and convert them as one batch."""
    config.ocr.engine = settings["engine"]
    config.ocr.max_workers = settings["workers"]
    config.assembly.include_headers = settings["include_headers"]
    config.assembly.label_threshold = settings["label_threshold"]
    config.assembly.header_accent_color = settings["accent_color"]

    staging = UploadStaging(
        config.staging.upload_dir,
        max_upload_bytes=config.staging.max_upload_bytes
    )
    batch_id = uuid.uuid4().hex

    try:
        for uploaded_file in uploaded_files:
            staging.stage(
                batch_id,
                uploaded_file.name,
                uploaded_file.getvalue(),
                mime_type=uploaded_file.type
            )

        pipeline = ImageToDocxPipeline.from_config(config)
        try:
            result = pipeline.process_batch(staging, batch_id)
        finally:
            pipeline.ocr.close()
    except (ValueError, ImportError, FileNotFoundError) as e:
        logger.error(f"Batch {batch_id} failed: {e}")
        if config.debug_mode:
            raise
        st.error(f"❌ {e}")
        return None
    finally:
        staging.cleanup(config.staging.cleanup_after_seconds)

    st.session_state.batch_id = batch_id
    return result


def render_blocks(blocks):
    """Preview the assembled document."""
    for block in blocks:
        if block.is_spacer:
            continue
        if isinstance(block, Header):
            st.markdown(f"#### {escape_markdown(block.text)}")
        elif isinstance(block, Error):
            st.markdown(f'<div class="error-block">{html.escape(block.text)}</div>', unsafe_allow_html=True)
        elif isinstance(block, LabelValue):
            st.markdown(f"**{escape_markdown(block.key)}:** {escape_markdown(block.value)}")
        else:
            st.text(block.text)


def render_downloads(result):
    """Render download buttons."""
    st.subheader("📥 Downloads")

    cols = st.columns(2)

    with cols[0]:
        st.download_button(
            "📋 DOCX",
            result.docx_bytes,
            file_name=default_docx_filename(st.session_state.batch_id),
            mime=DOCX_MIME_TYPE,
            use_container_width=True
        )

    with cols[1]:
        st.download_button(
            "📝 Markdown",
            MarkdownExporter().to_string(result.blocks),
            file_name="extracted_document.md",
            mime="text/markdown",
            use_container_width=True
        )


def main():
    """Main application."""
    load_css()
    init_session_state()
    config = get_config()
    setup_logging(logging.DEBUG if config.debug_mode else logging.INFO)

    st.markdown('<h1 class="main-header">📄 Image to Word</h1>', unsafe_allow_html=True)
    st.markdown(
        '<p class="sub-header">Extract text from images into a formatted Word document</p>',
        unsafe_allow_html=True
    )

    settings = render_sidebar(config)

    st.markdown("---")

    uploaded_files = st.file_uploader(
        "Upload images",
        type=["png", "jpg", "jpeg", "tiff", "tif", "bmp", "webp"],
        accept_multiple_files=True,
        help="Images appear in the document in upload order"
    )

    if uploaded_files:
        col1, col2 = st.columns([2, 1])

        with col1:
            total_kb = sum(f.size for f in uploaded_files) / 1024
            st.info(f"📁 **{len(uploaded_files)} image(s)** ({total_kb:.1f} KB)")

        with col2:
            process_btn = st.button(
                "🚀 Extract Text",
                use_container_width=True,
                type="primary"
            )

        if process_btn:
            with st.spinner("Extracting text..."):
                result = process_uploads(uploaded_files, settings, config)
                if result:
                    st.session_state.result = result
                    if result.failed:
                        st.warning(f"⚠️ Failed: {', '.join(result.failed)}")
                    else:
                        st.success("✅ Document created successfully!")

    if st.session_state.result:
        result = st.session_state.result

        st.markdown("---")
        st.subheader("📖 Preview")
        render_blocks(result.blocks)

        st.markdown("---")
        render_downloads(result)


if __name__ == "__main__":
    main()
