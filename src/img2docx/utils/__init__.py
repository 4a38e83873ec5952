"""
Utility modules for the image-to-document pipeline.
"""

from .ocr_text import (
    TextOCR, GeminiEngine, TesseractEngine, OcrResult, SourceImage, OCRError,
    ERROR_MIME_TYPE,
)
from .io import (
    load_source_image, load_source_images_from_folder, detect_mime_type,
    UploadStaging, save_json, ensure_dir,
)
from .assembler import (
    DocumentAssembler, AssemblyResult, StyledBlock, StyleRun,
    Header, Spacer, LabelValue, Plain, Error, assemble, classify_line,
    iter_content_lines,
)
from .export import (
    DocxExporter, MarkdownExporter, DOCX_MIME_TYPE, escape_markdown, xml_safe_text,
)
from .pipeline import ImageToDocxPipeline, PipelineResult

__all__ = [
    # OCR
    "TextOCR", "GeminiEngine", "TesseractEngine", "OcrResult", "SourceImage",
    "OCRError", "ERROR_MIME_TYPE",
    # IO
    "load_source_image", "load_source_images_from_folder", "detect_mime_type",
    "UploadStaging", "save_json", "ensure_dir",
    # Assembly
    "DocumentAssembler", "AssemblyResult", "StyledBlock", "StyleRun",
    "Header", "Spacer", "LabelValue", "Plain", "Error", "assemble",
    "classify_line", "iter_content_lines",
    # Export
    "DocxExporter", "MarkdownExporter", "DOCX_MIME_TYPE", "escape_markdown",
    "xml_safe_text",
    # Pipeline
    "ImageToDocxPipeline", "PipelineResult",
]
