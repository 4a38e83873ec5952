"""
End-to-end integration tests for the image-to-document pipeline.
"""

import io
import json

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class FakeEngine:
    """OCR engine keyed on the image bytes."""

    name = "fake"

    def __init__(self, texts):
        self.texts = texts
        self.closed = False

    def recognize(self, data, mime_type):
        key = data.decode("utf-8")
        if key not in self.texts:
            raise RuntimeError("Gemini API timeout")
        return self.texts[key]

    def close(self):
        self.closed = True


PAGE_TEXTS = {
    "invoice": "Invoice Number: 1042\nCustomer: Jane Doe\n\nThank you for your business",
    "receipt": "Total: $12.50\nPaid in full",
}


def make_image(name, key):
    from img2docx.utils.ocr_text import SourceImage
    return SourceImage(source_id=name, data=key.encode("utf-8"), mime_type="image/png")


def paragraphs(docx_bytes):
    from docx import Document
    return [p.text for p in Document(io.BytesIO(docx_bytes)).paragraphs]


class TestEndToEnd:
    """End-to-end integration tests."""

    @pytest.fixture
    def ocr(self):
        from img2docx.utils.ocr_text import TextOCR
        return TextOCR(engine=FakeEngine(PAGE_TEXTS))

    def test_full_pipeline(self, ocr):
        """Images become a document with headers, labels and text."""
        from img2docx.utils.pipeline import ImageToDocxPipeline

        images = [make_image("invoice.png", "invoice"), make_image("receipt.jpg", "receipt")]
        result = ImageToDocxPipeline(ocr).run(images)

        assert result.failed == []
        assert paragraphs(result.docx_bytes) == [
            "Page 1: invoice.png",
            "",
            "Invoice Number: 1042",
            "Customer: Jane Doe",
            "Thank you for your business",
            "",
            "",
            "Page 2: receipt.jpg",
            "",
            "Total: $12.50",
            "Paid in full",
            "",
            "",
        ]

    def test_failed_image_in_the_middle(self, ocr):
        """A failing image becomes an error block, others are unaffected."""
        from img2docx.utils.assembler import Error
        from img2docx.utils.pipeline import ImageToDocxPipeline

        images = [
            make_image("a.png", "invoice"),
            make_image("b.png", "unreadable"),
            make_image("c.png", "receipt"),
        ]
        result = ImageToDocxPipeline(ocr).run(images)

        assert result.failed == ["b.png"]
        errors = result.assembly.error_blocks
        assert len(errors) == 1
        assert isinstance(errors[0], Error)
        assert errors[0].text == "Error processing b.png: Gemini API timeout"

        texts = paragraphs(result.docx_bytes)
        assert "Page 3: c.png" in texts
        assert "Page 2: b.png" not in texts

    def test_control_character_in_one_source(self):
        """Text XML cannot hold is dropped, and every source still renders."""
        from img2docx.utils.ocr_text import TextOCR
        from img2docx.utils.pipeline import ImageToDocxPipeline

        ocr = TextOCR(engine=FakeEngine({"good": "Name: ok", "bad": "bad\x01char\nKey\x00: v"}))
        images = [make_image("a.png", "good"), make_image("b.png", "bad")]

        result = ImageToDocxPipeline(ocr).run(images)

        texts = paragraphs(result.docx_bytes)
        assert "Name: ok" in texts
        assert "badchar" in texts
        assert "Key: v" in texts
        assert result.failed == []

    def test_parallel_workers(self, ocr):
        """Concurrent OCR produces the same document."""
        from img2docx.utils.pipeline import ImageToDocxPipeline

        images = [make_image("a.png", "invoice"), make_image("b.png", "receipt")]

        serial = ImageToDocxPipeline(ocr).run(images)
        parallel = ImageToDocxPipeline(ocr, max_workers=2).run(images)

        assert paragraphs(parallel.docx_bytes) == paragraphs(serial.docx_bytes)

    def test_empty_input(self, ocr):
        """No images still gives a valid, empty document."""
        from img2docx.utils.pipeline import ImageToDocxPipeline

        result = ImageToDocxPipeline(ocr).run([])

        assert result.blocks == []
        assert paragraphs(result.docx_bytes) == []

    def test_convert_returns_bytes(self, ocr):
        """convert() returns only the DOCX payload."""
        from img2docx.utils.pipeline import ImageToDocxPipeline

        data = ImageToDocxPipeline(ocr).convert([make_image("a.png", "receipt")])
        assert data[:2] == b"PK"

    def test_json_output_format(self, ocr):
        """Pipeline result serializes to JSON."""
        from img2docx.utils.pipeline import ImageToDocxPipeline

        result = ImageToDocxPipeline(ocr).run([make_image("a.png", "receipt")])
        data = json.loads(json.dumps(result.to_dict()))

        assert data["failed"] == []
        assert data["sources"][0]["source_id"] == "a.png"
        assert data["document"]["source_count"] == 1
        assert data["docx_size"] == len(result.docx_bytes)

    def test_from_config(self):
        """Assembly options flow from the config into the pipeline."""
        from img2docx.config import get_config
        from img2docx.utils.ocr_text import TextOCR
        from img2docx.utils.pipeline import ImageToDocxPipeline

        config = get_config({"IMG2DOCX_INCLUDE_HEADERS": "false"})
        pipeline = ImageToDocxPipeline.from_config(config, ocr=TextOCR(engine=FakeEngine(PAGE_TEXTS)))

        result = pipeline.run([make_image("a.png", "receipt")])

        assert paragraphs(result.docx_bytes) == ["", "Total: $12.50", "Paid in full", "", ""]


    def test_from_config_validates_before_opening_ocr(self, monkeypatch):
        """A bad accent color fails before any OCR client is created."""
        from img2docx.config import get_config
        from img2docx.utils import pipeline

        created = []
        monkeypatch.setattr(pipeline, "TextOCR", lambda **kwargs: created.append(kwargs))

        config = get_config({"IMG2DOCX_ACCENT_COLOR": "blue"})
        with pytest.raises(ValueError):
            pipeline.ImageToDocxPipeline.from_config(config)
        assert created == []


class TestBatchProcessing:
    """Tests for staged upload batches."""

    def test_process_batch(self, tmp_path):
        """A staged batch is converted in upload order and marked processed."""
        from img2docx.utils.io import UploadStaging
        from img2docx.utils.ocr_text import TextOCR
        from img2docx.utils.pipeline import ImageToDocxPipeline

        staging = UploadStaging(tmp_path)
        staging.stage("batch", "second.png", b"receipt")
        staging.stage("batch", "first.png", b"invoice")

        pipeline = ImageToDocxPipeline(TextOCR(engine=FakeEngine(PAGE_TEXTS)))
        result = pipeline.process_batch(staging, "batch")

        texts = paragraphs(result.docx_bytes)
        assert texts[0] == "Page 1: second.png"
        assert "Page 2: first.png" in texts
        assert staging.is_processed("batch")

        with pytest.raises(ValueError):
            pipeline.process_batch(staging, "batch")

    def test_missing_batch(self, tmp_path):
        """Unknown batches fail without being marked."""
        from img2docx.utils.io import UploadStaging
        from img2docx.utils.ocr_text import TextOCR
        from img2docx.utils.pipeline import ImageToDocxPipeline

        staging = UploadStaging(tmp_path)
        pipeline = ImageToDocxPipeline(TextOCR(engine=FakeEngine(PAGE_TEXTS)))

        with pytest.raises(FileNotFoundError):
            pipeline.process_batch(staging, "missing")
        assert not staging.is_processed("missing")


class TestCLI:
    """Tests for the command-line interface."""

    @pytest.fixture
    def scans(self, tmp_path):
        folder = tmp_path / "scans"
        folder.mkdir()
        (folder / "01.png").write_bytes(b"invoice")
        (folder / "02.png").write_bytes(b"receipt")
        return folder

    @pytest.fixture
    def fake_ocr(self, monkeypatch):
        """Route the CLI's OCR construction to a fake engine."""
        from img2docx.utils import pipeline
        from img2docx.utils.ocr_text import TextOCR

        engine = FakeEngine(PAGE_TEXTS)
        monkeypatch.setattr(pipeline, "TextOCR", lambda **kwargs: TextOCR(engine=engine))
        return engine

    def test_convert_folder(self, scans, tmp_path, fake_ocr):
        """Folder input writes all requested formats."""
        from img2docx.cli import main

        out = tmp_path / "out"
        with pytest.raises(SystemExit) as exc:
            main(["-i", str(scans), "-o", str(out), "--format", "all", "-q"])

        assert exc.value.code == 0
        assert paragraphs((out / "extracted_document.docx").read_bytes())[0] == "Page 1: 01.png"
        assert (out / "extracted_document.md").read_text(encoding="utf-8").startswith("### Page 1")
        data = json.loads((out / "extracted_document.json").read_text(encoding="utf-8"))
        assert [s["source_id"] for s in data["sources"]] == ["01.png", "02.png"]
        assert fake_ocr.closed is True

    def test_options(self, scans, tmp_path, fake_ocr):
        """Assembly flags are applied."""
        from img2docx.cli import main

        out = tmp_path / "out"
        with pytest.raises(SystemExit):
            main(["-i", str(scans / "02.png"), "-o", str(out), "--name", "receipt",
                  "--no-headers", "--label-threshold", "3", "-q"])

        # "Total" is five characters, over the threshold of three
        from docx import Document
        doc = Document(str(out / "receipt.docx"))
        first = doc.paragraphs[1]
        assert first.text == "Total: $12.50"
        assert len(first.runs) == 1

    def test_unsupported_input(self, tmp_path, fake_ocr):
        """Unsupported input exits with status 1."""
        from img2docx.cli import main

        bad = tmp_path / "doc.pdf"
        bad.write_bytes(b"%PDF")

        with pytest.raises(SystemExit) as exc:
            main(["-i", str(bad), "-o", str(tmp_path / "out"), "-q"])
        assert exc.value.code == 1

    def test_missing_arguments(self):
        """--input and --output are required unless --check."""
        from img2docx.cli import main

        with pytest.raises(SystemExit) as exc:
            main(["-i", "x.png"])
        assert exc.value.code == 2

    def test_invalid_threshold(self):
        """Non-positive thresholds are rejected by the parser."""
        from img2docx.cli import setup_argparser

        with pytest.raises(SystemExit):
            setup_argparser().parse_args(["--label-threshold", "0"])

    def test_check(self, capsys):
        """--check prints health status as JSON."""
        from img2docx.cli import main

        with pytest.raises(SystemExit) as exc:
            main(["--check"])

        assert exc.value.code == 0
        status = json.loads(capsys.readouterr().out)
        assert status["status"] == "Active"
        assert "python-docx" in status["dependencies"]

    def test_debug_env_enables_debug_logging(self, scans, tmp_path, fake_ocr, monkeypatch):
        """IMG2DOCX_DEBUG switches the root logger to DEBUG."""
        import logging
        from img2docx.cli import main

        monkeypatch.setenv("IMG2DOCX_DEBUG", "true")
        root = logging.getLogger()
        previous = root.level
        try:
            with pytest.raises(SystemExit) as exc:
                main(["-i", str(scans), "-o", str(tmp_path / "out")])
            assert exc.value.code == 0
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)

    def test_debug_env_reraises(self, tmp_path, fake_ocr, monkeypatch):
        """Under IMG2DOCX_DEBUG failures propagate instead of exiting with 1."""
        import logging
        from img2docx.cli import main

        empty = tmp_path / "empty.png"
        empty.write_bytes(b"")
        monkeypatch.setenv("IMG2DOCX_DEBUG", "1")
        previous = logging.getLogger().level
        try:
            with pytest.raises(ValueError, match="empty"):
                main(["-i", str(empty), "-o", str(tmp_path / "out"), "-q"])
        finally:
            logging.getLogger().setLevel(previous)

    def test_invalid_env_threshold(self, monkeypatch):
        """A bad IMG2DOCX_LABEL_THRESHOLD is a usage error."""
        from img2docx.cli import main

        monkeypatch.setenv("IMG2DOCX_LABEL_THRESHOLD", "-1")
        with pytest.raises(SystemExit) as exc:
            main(["--check"])
        assert exc.value.code == 2
