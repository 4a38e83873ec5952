"""
Pipeline orchestration: OCR -> assembly -> DOCX.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .assembler import AssemblyResult, DocumentAssembler
from .export import DocxExporter
from .io import UploadStaging
from .ocr_text import OcrResult, SourceImage, TextOCR

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything produced by one conversion."""
    ocr_results: List[OcrResult] = field(default_factory=list)
    assembly: AssemblyResult = field(default_factory=AssemblyResult)
    docx_bytes: bytes = b""
    processing_time_seconds: float = 0.0

    @property
    def blocks(self):
        return self.assembly.blocks

    @property
    def failed(self) -> List[str]:
        return [r.source_id for r in self.ocr_results if r.is_error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": [r.to_dict() for r in self.ocr_results],
            "failed": self.failed,
            "document": self.assembly.to_dict(),
            "docx_size": len(self.docx_bytes),
            "processing_time_seconds": round(self.processing_time_seconds, 2)
        }


class ImageToDocxPipeline:
    """
    Converts an ordered list of images into one DOCX document.

    The OCR handle is passed in and owned by the caller.
    """

    def __init__(
        self,
        ocr: TextOCR,
        assembler: Optional[DocumentAssembler] = None,
        exporter: Optional[DocxExporter] = None,
        max_workers: int = 1
    ):
        self.ocr = ocr
        self.assembler = assembler or DocumentAssembler()
        self.exporter = exporter or DocxExporter()
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, config, ocr: Optional[TextOCR] = None) -> "ImageToDocxPipeline":
        """
        Build a pipeline from a config.PipelineConfig.

        A TextOCR is created from config.ocr unless one is given.
        """
        # Options are validated before an HTTP session is opened
        assembler = DocumentAssembler(
            include_headers=config.assembly.include_headers,
            label_threshold=config.assembly.label_threshold,
            header_accent_color=config.assembly.header_accent_color
        )
        exporter = DocxExporter(
            template_path=config.export.docx_template,
            margin_inches=config.export.margin_inches,
            header_font_size=config.export.header_font_size
        )
        if ocr is None:
            ocr = TextOCR(
                engine=config.ocr.engine,
                api_key=config.ocr.api_key,
                model=config.ocr.model,
                language=config.ocr.tesseract_lang,
                timeout=config.ocr.timeout
            )
        return cls(ocr, assembler=assembler, exporter=exporter,
                   max_workers=config.ocr.max_workers)

    def run(self, images: Sequence[SourceImage]) -> PipelineResult:
        start_time = time.time()

        ocr_results = self.ocr.extract_all(images, max_workers=self.max_workers)
        assembly = self.assembler.assemble(ocr_results)

        logger.info(f"Creating Word document from {len(assembly)} blocks")
        docx_bytes = self.exporter.to_bytes(assembly)
        logger.info(f"Document buffer created, size: {len(docx_bytes)} bytes")

        return PipelineResult(
            ocr_results=ocr_results,
            assembly=assembly,
            docx_bytes=docx_bytes,
            processing_time_seconds=time.time() - start_time
        )

    def convert(self, images: Sequence[SourceImage]) -> bytes:
        """Shortcut returning only the DOCX bytes."""
        return self.run(images).docx_bytes

    def process_batch(self, staging: UploadStaging, batch_id: str) -> PipelineResult:
        """
        Convert a staged batch and mark it processed.

        The batch is marked only after the document was built.
        """
        images = staging.load_batch(batch_id)
        logger.info(f"Processing batch {batch_id} ({len(images)} images)")

        result = self.run(images)
        staging.mark_processed(batch_id)
        return result
