"""
Document assembler module for image-to-document conversion.

Provides:
- Styled block types (Header, Spacer, LabelValue, Plain, Error)
- Line classification (label: value pairs vs. free text)
- Assembly of per-image OCR results into an ordered block sequence
"""

import logging
import re
from collections.abc import Iterable, Mapping, Set
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

from .ocr_text import OcrResult

logger = logging.getLogger(__name__)


DEFAULT_LABEL_THRESHOLD = 50
DEFAULT_ACCENT_COLOR = "2E74B5"
ERROR_COLOR = "FF0000"

_HEX_COLOR = re.compile(r"[0-9A-Fa-f]{6}")


# ============================================================================
# Block Types
# ============================================================================

@dataclass(frozen=True)
class StyleRun:
    """A span of text sharing one style inside a block."""
    text: str
    bold: bool = False
    color_hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "bold": self.bold,
            "color_hint": self.color_hint
        }


class StyledBlock:
    """
    Base for the block variants consumed by the exporters.

    Every variant exposes the flat view (text, bold, color_hint, is_spacer)
    and the list of style runs an encoder should write for it.
    """
    kind = "block"
    bold = False
    is_spacer = False
    color_hint: Optional[str] = None

    @property
    def runs(self) -> List[StyleRun]:
        if self.is_spacer:
            return []
        return [StyleRun(self.text, bold=self.bold, color_hint=self.color_hint)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "text": self.text,
            "bold": self.bold,
            "color_hint": self.color_hint,
            "is_spacer": self.is_spacer,
            "runs": [run.to_dict() for run in self.runs]
        }


@dataclass(frozen=True)
class Header(StyledBlock):
    """Bold title line introducing one source image."""
    page_number: int
    source_id: str
    color_hint: Optional[str] = DEFAULT_ACCENT_COLOR

    kind = "header"
    bold = True

    @property
    def text(self) -> str:
        return f"Page {self.page_number}: {self.source_id}"


@dataclass(frozen=True)
class Spacer(StyledBlock):
    """Blank paragraph."""
    kind = "spacer"
    is_spacer = True
    text = ""


@dataclass(frozen=True)
class LabelValue(StyledBlock):
    """A "key: value" line; the key run is bold, the value run is not."""
    key: str
    value: str

    kind = "label_value"

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.runs)

    @property
    def runs(self) -> List[StyleRun]:
        return [
            StyleRun(f"{self.key}:", bold=True),
            StyleRun(f" {self.value}")
        ]

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["key"] = self.key
        result["value"] = self.value
        return result


@dataclass(frozen=True)
class Plain(StyledBlock):
    """Free text line."""
    text: str

    kind = "plain"


@dataclass(frozen=True)
class Error(StyledBlock):
    """Visible marker for a source whose text could not be extracted."""
    page_number: int
    source_id: str
    message: str
    color_hint: Optional[str] = ERROR_COLOR

    kind = "error"

    @property
    def text(self) -> str:
        return f"Error processing {self.source_id}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["source_id"] = self.source_id
        result["message"] = self.message
        return result


ContentBlock = Union[LabelValue, Plain]


@dataclass
class AssemblyResult:
    """Ordered block sequence for one document."""
    blocks: List[StyledBlock] = field(default_factory=list)
    source_count: int = 0
    error_count: int = 0

    def __iter__(self) -> Iterator[StyledBlock]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    def __getitem__(self, index):
        return self.blocks[index]

    @property
    def content_blocks(self) -> List[StyledBlock]:
        return [b for b in self.blocks if isinstance(b, (LabelValue, Plain))]

    @property
    def error_blocks(self) -> List[Error]:
        return [b for b in self.blocks if isinstance(b, Error)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_count": self.source_count,
            "error_count": self.error_count,
            "blocks": [b.to_dict() for b in self.blocks]
        }


# ============================================================================
# Line Classification
# ============================================================================

def iter_content_lines(raw_text: Optional[str]) -> Iterator[str]:
    """
    Yield the non-empty lines of OCR text, stripped, in their original order.

    Lines are split on "\\n" only. ``str.strip`` removes all Unicode
    whitespace, so a trailing "\\r" or a line of non-breaking spaces counts
    as blank.
    """
    for line in (raw_text or "").split("\n"):
        line = line.strip()
        if line:
            yield line


def classify_line(
    line: str,
    label_threshold: Optional[int] = DEFAULT_LABEL_THRESHOLD
) -> ContentBlock:
    """
    Classify a stripped line as a label/value pair or plain text.

    A line is a label/value pair when it contains a colon and the text
    before the first colon is shorter than ``label_threshold`` characters.
    ``None`` disables the length check. Only the first colon splits.
    """
    key, colon, value = line.partition(":")
    if colon and (label_threshold is None or len(key) < label_threshold):
        return LabelValue(key=key.strip(), value=value.strip())
    return Plain(text=line)


# ============================================================================
# Document Assembler
# ============================================================================

class DocumentAssembler:
    """
    Turns per-image OCR results into styled document blocks.

    For each source, in input order:
    - header "Page N: <source id>" (unless include_headers is False)
    - one spacer
    - one block per non-empty line (LabelValue or Plain)
    - two spacers

    A result flagged as an error becomes a single Error block followed by
    one spacer. The assembler keeps no state between calls.
    """

    def __init__(
        self,
        include_headers: bool = True,
        label_threshold: Optional[int] = DEFAULT_LABEL_THRESHOLD,
        header_accent_color: Optional[str] = DEFAULT_ACCENT_COLOR,
        error_color: str = ERROR_COLOR
    ):
        if label_threshold is not None and (
            isinstance(label_threshold, bool)
            or not isinstance(label_threshold, int)
            or label_threshold <= 0
        ):
            raise ValueError(
                f"label_threshold must be a positive integer or None, got {label_threshold!r}"
            )

        self.include_headers = include_headers
        self.label_threshold = label_threshold
        self.header_accent_color = _normalize_color(header_accent_color, allow_none=True)
        self.error_color = _normalize_color(error_color)

    def assemble(self, results: Iterable[OcrResult]) -> AssemblyResult:
        """
        Assemble OCR results into an ordered block sequence.

        Args:
            results: Ordered OCR results, one per source image

        Returns:
            AssemblyResult with the blocks for all sources

        Raises:
            TypeError: If results is not an ordered iterable of OcrResult
        """
        results = _validate_results(results)

        assembly = AssemblyResult(source_count=len(results))
        for page_number, result in enumerate(results, 1):
            if result.is_error:
                assembly.error_count += 1
                logger.warning(f"Source {result.source_id} failed OCR: {result.raw_text}")
            assembly.blocks.extend(self._assemble_source(page_number, result))

        logger.debug(
            f"Assembled {len(assembly)} blocks from {assembly.source_count} source(s), "
            f"{assembly.error_count} failed"
        )
        return assembly

    def _assemble_source(self, page_number: int, result: OcrResult) -> List[StyledBlock]:
        """Build the blocks for one source."""
        if result.is_error:
            return [
                Error(
                    page_number=page_number,
                    source_id=result.source_id,
                    message=result.raw_text,
                    color_hint=self.error_color
                ),
                Spacer()
            ]

        blocks: List[StyledBlock] = []
        if self.include_headers:
            blocks.append(Header(
                page_number=page_number,
                source_id=result.source_id,
                color_hint=self.header_accent_color
            ))
        blocks.append(Spacer())

        for line in iter_content_lines(result.raw_text):
            blocks.append(classify_line(line, self.label_threshold))

        blocks.append(Spacer())
        blocks.append(Spacer())
        return blocks


def assemble(results: Iterable[OcrResult], **options) -> AssemblyResult:
    """Assemble with a throwaway DocumentAssembler built from keyword options."""
    return DocumentAssembler(**options).assemble(results)


def _validate_results(results: Any) -> List[OcrResult]:
    if results is None:
        raise TypeError("results must be an ordered sequence of OcrResult, got None")
    if isinstance(results, (str, bytes, Mapping, Set)) or not isinstance(results, Iterable):
        raise TypeError(
            f"results must be an ordered sequence of OcrResult, got {type(results).__name__}"
        )

    results = list(results)
    for index, result in enumerate(results):
        if not isinstance(result, OcrResult):
            raise TypeError(
                f"results[{index}] must be an OcrResult, got {type(result).__name__}"
            )
    return results


def _normalize_color(color: Optional[str], allow_none: bool = False) -> Optional[str]:
    if color is None and allow_none:
        return None
    if not isinstance(color, str) or not _HEX_COLOR.fullmatch(color.lstrip("#")):
        raise ValueError(f"Color must be a 6-digit hex string like '2E74B5', got {color!r}")
    return color.lstrip("#").upper()
