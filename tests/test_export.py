"""
Tests for the DOCX and Markdown exporters.
"""

import io

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from img2docx.utils.assembler import DocumentAssembler, Error, Header, LabelValue, Plain, Spacer
from img2docx.utils.export import (
    DocxExporter, MarkdownExporter, default_docx_filename, escape_markdown, xml_safe_text,
)
from img2docx.utils.ocr_text import OcrResult


@pytest.fixture
def blocks():
    return [
        Header(page_number=1, source_id="p1.png"),
        Spacer(),
        LabelValue(key="Name", value="Alice"),
        Plain(text="Free text line"),
        Spacer(),
        Spacer(),
        Error(page_number=2, source_id="p2.png", message="timeout"),
        Spacer(),
    ]


def reopen(data):
    from docx import Document
    return Document(io.BytesIO(data))


class TestDocxExporter:
    """Tests for DocxExporter."""

    def test_one_paragraph_per_block(self, blocks):
        """Every block, spacers included, is one paragraph."""
        doc = reopen(DocxExporter().to_bytes(blocks))
        assert len(doc.paragraphs) == len(blocks)

    def test_paragraph_text_in_order(self, blocks):
        """Paragraph text follows block order."""
        doc = reopen(DocxExporter().to_bytes(blocks))
        assert [p.text for p in doc.paragraphs] == [b.text for b in blocks]

    def test_header_style(self, blocks):
        """Header run is bold, accent-colored, 14pt."""
        from docx.shared import Pt, RGBColor

        header = reopen(DocxExporter().to_bytes(blocks)).paragraphs[0]
        run = header.runs[0]

        assert run.bold is True
        assert run.font.color.rgb == RGBColor(0x2E, 0x74, 0xB5)
        assert run.font.size == Pt(14)
        assert header.paragraph_format.space_after == Pt(10)

    def test_label_value_runs(self, blocks):
        """Label/value paragraph has a bold key run and a plain value run."""
        from docx.shared import Pt

        paragraph = reopen(DocxExporter().to_bytes(blocks)).paragraphs[2]

        assert [r.text for r in paragraph.runs] == ["Name:", " Alice"]
        assert paragraph.runs[0].bold is True
        assert not paragraph.runs[1].bold
        assert paragraph.paragraph_format.space_after == Pt(6)

    def test_spacer_is_empty(self, blocks):
        """Spacers become empty paragraphs."""
        paragraph = reopen(DocxExporter().to_bytes(blocks)).paragraphs[1]
        assert paragraph.text == ""
        assert paragraph.runs == []

    def test_error_is_red(self, blocks):
        """Error paragraphs are red."""
        from docx.shared import RGBColor

        paragraph = reopen(DocxExporter().to_bytes(blocks)).paragraphs[6]
        assert paragraph.text == "Error processing p2.png: timeout"
        assert paragraph.runs[0].font.color.rgb == RGBColor(0xFF, 0x00, 0x00)

    def test_margins(self, blocks):
        """Sections get one-inch margins."""
        from docx.shared import Inches

        section = reopen(DocxExporter().to_bytes(blocks)).sections[0]
        assert section.left_margin == Inches(1)
        assert section.top_margin == Inches(1)

    def test_empty_document(self):
        """No blocks still gives a valid document."""
        data = DocxExporter().to_bytes([])
        assert data[:2] == b"PK"
        assert reopen(data).paragraphs == []

    def test_export_to_file(self, blocks, tmp_path):
        """Export writes a .docx file."""
        path = DocxExporter().export(blocks, tmp_path / "out" / "doc.docx")
        assert path.exists()
        assert len(reopen(path.read_bytes()).paragraphs) == len(blocks)

    def test_accepts_assembly_result(self):
        """An AssemblyResult can be exported directly."""
        assembly = DocumentAssembler().assemble([OcrResult("p1", "a: b", "image/png")])
        doc = reopen(DocxExporter().to_bytes(assembly))
        assert doc.paragraphs[0].text == "Page 1: p1"

    def test_control_characters_are_dropped(self):
        """Characters XML cannot hold are removed instead of failing the build."""
        blocks = [LabelValue(key="Na\x00me", value="A\x01lice"), Plain(text="bad\x0bchar\ufffe")]

        doc = reopen(DocxExporter().to_bytes(blocks))

        assert [p.text for p in doc.paragraphs] == ["Name: Alice", "badchar"]

    def test_xml_safe_text_keeps_valid_text(self):
        """Tabs, newlines and non-BMP characters survive."""
        text = "a\tb\nc \u00e9 \U0001F600"
        assert xml_safe_text(text) == text
        assert xml_safe_text("\x01\x1f\ud800") == ""

    def test_default_filename(self):
        """Download names include the batch id when known."""
        assert default_docx_filename("abc") == "extracted_document_abc.docx"
        assert default_docx_filename() == "extracted_document.docx"


class TestMarkdownExporter:
    """Tests for MarkdownExporter."""

    def test_markdown(self, blocks):
        """Blocks render as Markdown with collapsed spacing."""
        markdown = MarkdownExporter().to_string(blocks)

        assert markdown == (
            "### Page 1: p1.png\n"
            "\n"
            "**Name:** Alice\n"
            "\n"
            "Free text line\n"
            "\n"
            "> **Error processing p2.png: timeout**\n"
        )

    def test_empty(self):
        """No blocks, empty string."""
        assert MarkdownExporter().to_string([]) == ""
        assert MarkdownExporter().to_string([Spacer(), Spacer()]) == ""

    def test_export_to_file(self, blocks, tmp_path):
        """Export writes UTF-8 text."""
        path = MarkdownExporter().export(blocks, tmp_path / "doc.md")
        assert path.read_text(encoding="utf-8").startswith("### Page 1")

    def test_markup_in_text_is_escaped(self):
        """OCR text that looks like Markdown renders literally."""
        blocks = [
            Plain(text="# not a heading"),
            Plain(text="- not a bullet"),
            Plain(text="1. not a list"),
            LabelValue(key="**Key**", value="snake_case *x*"),
        ]

        markdown = MarkdownExporter().to_string(blocks)

        assert markdown == (
            "\\# not a heading\n"
            "\n"
            "\\- not a bullet\n"
            "\n"
            "1\\. not a list\n"
            "\n"
            "**\\*\\*Key\\*\\*:** snake\\_case \\*x\\*\n"
        )

    def test_escape_markdown(self):
        """Special characters get a backslash, ordinary text is unchanged."""
        assert escape_markdown("Total: $12.50") == "Total: $12.50"
        assert escape_markdown("a\\b") == "a\\\\b"
        assert escape_markdown("  + item") == "  \\+ item"
