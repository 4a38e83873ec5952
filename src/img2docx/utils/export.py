"""
Export module for image-to-document conversion.

Provides:
- DOCX export (using python-docx)
- Markdown export
"""

import io
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .assembler import Error, Header, StyledBlock

logger = logging.getLogger(__name__)


DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


# Characters outside the XML 1.0 Char production
_XML_INVALID_CHARS = re.compile(
    "[^\u0009\u000A\u000D\u0020-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]"
)

_MD_INLINE = re.compile(r"([\\`*_\[\]<>|~])")
_MD_BLOCK_MARKER = re.compile(r"^(\s*)([#+\-=])")
_MD_ORDERED_MARKER = re.compile(r"^(\s*\d+)([.)])")


def xml_safe_text(text: str) -> str:
    """Drop characters that cannot appear in a DOCX part."""
    return _XML_INVALID_CHARS.sub("", text)


def escape_markdown(text: str) -> str:
    """Escape OCR text so it renders literally in Markdown."""
    text = _MD_INLINE.sub(r"\\\1", text)
    text = _MD_BLOCK_MARKER.sub(r"\1\\\2", text)
    return _MD_ORDERED_MARKER.sub(r"\1\\\2", text)


def default_docx_filename(batch_id: Optional[str] = None) -> str:
    """File name offered for download."""
    if batch_id:
        return f"extracted_document_{batch_id}.docx"
    return "extracted_document.docx"


# ============================================================================
# DOCX Exporter
# ============================================================================

class DocxExporter:
    """Export styled blocks to DOCX format using python-docx."""

    def __init__(
        self,
        template_path: Optional[str] = None,
        margin_inches: float = 1.0,
        header_font_size: int = 14,
        header_space_after: int = 10,
        paragraph_space_after: int = 6
    ):
        self.template_path = template_path
        self.margin_inches = margin_inches
        self.header_font_size = header_font_size
        self.header_space_after = header_space_after
        self.paragraph_space_after = paragraph_space_after

    def build(self, blocks: Iterable[StyledBlock]):
        """
        Build a python-docx Document from blocks, in order.

        Args:
            blocks: Styled blocks (an AssemblyResult works too)

        Returns:
            docx.document.Document
        """
        try:
            from docx import Document as DocxDocument
            from docx.shared import Inches
        except ImportError:
            raise ImportError(
                "python-docx is required for DOCX export. "
                "Install with: pip install python-docx"
            )

        # Create document from template or blank
        if self.template_path and Path(self.template_path).exists():
            doc = DocxDocument(self.template_path)
        else:
            doc = DocxDocument()

        for section in doc.sections:
            section.top_margin = Inches(self.margin_inches)
            section.right_margin = Inches(self.margin_inches)
            section.bottom_margin = Inches(self.margin_inches)
            section.left_margin = Inches(self.margin_inches)

        count = 0
        for block in blocks:
            self._add_block_to_docx(doc, block)
            count += 1

        logger.debug(f"Built DOCX with {count} paragraphs")
        return doc

    def _add_block_to_docx(self, doc, block: StyledBlock):
        """Add one block as a paragraph."""
        from docx.shared import Pt, RGBColor

        p = doc.add_paragraph()
        if block.is_spacer:
            return

        for run_style in block.runs:
            run = p.add_run(xml_safe_text(run_style.text))
            if run_style.bold:
                run.bold = True
            if run_style.color_hint:
                run.font.color.rgb = RGBColor.from_string(run_style.color_hint)
            if isinstance(block, Header):
                run.font.size = Pt(self.header_font_size)

        if isinstance(block, Header):
            p.paragraph_format.space_after = Pt(self.header_space_after)
        elif not isinstance(block, Error):
            p.paragraph_format.space_after = Pt(self.paragraph_space_after)

    def to_bytes(self, blocks: Iterable[StyledBlock]) -> bytes:
        """Build the document and return the encoded DOCX file."""
        file_stream = io.BytesIO()
        self.build(blocks).save(file_stream)
        return file_stream.getvalue()

    def export(
        self,
        blocks: Iterable[StyledBlock],
        output_path: Union[str, Path]
    ) -> Path:
        """
        Export blocks to a DOCX file.

        Args:
            blocks: Styled blocks
            output_path: Output file path

        Returns:
            Path to the generated DOCX file
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        self.build(blocks).save(str(output_path))
        logger.info(f"Exported DOCX to: {output_path}")

        return output_path


# ============================================================================
# Markdown Exporter
# ============================================================================

class MarkdownExporter:
    """Export styled blocks to Markdown."""

    def __init__(self, header_level: int = 3):
        self.header_level = header_level

    def to_string(self, blocks: Iterable[StyledBlock]) -> str:
        lines: List[str] = []

        for block in blocks:
            if block.is_spacer:
                # Runs of spacers collapse to one blank line
                if lines and lines[-1] != "":
                    lines.append("")
                continue

            if isinstance(block, Header):
                lines.append(f"{'#' * self.header_level} {escape_markdown(block.text)}")
            elif isinstance(block, Error):
                lines.append(f"> **{escape_markdown(block.text)}**")
            else:
                lines.append(self._runs_to_markdown(block))
            # Consecutive paragraphs need a blank line between them
            lines.append("")

        while lines and lines[-1] == "":
            lines.pop()

        return "\n".join(lines) + "\n" if lines else ""

    def _runs_to_markdown(self, block: StyledBlock) -> str:
        parts = []
        for run in block.runs:
            if run.bold and run.text.strip():
                parts.append(f"**{escape_markdown(run.text)}**")
            else:
                parts.append(escape_markdown(run.text))
        return "".join(parts)

    def export(
        self,
        blocks: Iterable[StyledBlock],
        output_path: Union[str, Path]
    ) -> Path:
        """Export blocks to a Markdown file."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(self.to_string(blocks))

        logger.info(f"Exported Markdown to: {output_path}")
        return output_path
