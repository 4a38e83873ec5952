"""
Image to Word Document Converter
================================

Uploads images, extracts their text with a hosted OCR/vision API, and
assembles the text into a downloadable Word document.

Main components:
- OCR (Gemini vision API, or local Tesseract)
- Line classification ("Label: value" pairs vs. free text)
- Document assembly (page headers, spacing, error paragraphs)
- DOCX and Markdown export
- Upload staging, CLI, and Streamlit web UI
"""

__version__ = "1.0.0"
__author__ = "img2docx Team"
