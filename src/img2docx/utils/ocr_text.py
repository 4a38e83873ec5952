"""
Text OCR module for image-to-document conversion.

Provides:
- OCR result and source image data classes
- Hosted OCR through the Gemini vision API
- Local OCR through Tesseract
- Ordered batch extraction with per-image failure placeholders
"""

import base64
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import requests

logger = logging.getLogger(__name__)


ERROR_MIME_TYPE = "error"
DEFAULT_MIME_TYPE = "image/jpeg"

EXTRACTION_PROMPT = (
    "Extract text from this image and keep formatting/line breaks. "
    "Convert any handwritten text to typed text."
)


class OCRError(RuntimeError):
    """Raised when an OCR engine returns no usable text."""


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class SourceImage:
    """An uploaded image waiting for OCR."""
    source_id: str
    data: bytes = field(repr=False)
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class OcrResult:
    """Extracted text for one source image."""
    source_id: str
    raw_text: str
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def is_error(self) -> bool:
        return self.mime_type == ERROR_MIME_TYPE

    @classmethod
    def failed(cls, source_id: str, error: Union[str, BaseException]) -> "OcrResult":
        """Placeholder result describing why a source has no text."""
        if isinstance(error, BaseException):
            message = str(error) or error.__class__.__name__
        else:
            message = error
        return cls(source_id=source_id, raw_text=message, mime_type=ERROR_MIME_TYPE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "raw_text": self.raw_text,
            "mime_type": self.mime_type,
            "is_error": self.is_error
        }


# ============================================================================
# Text OCR
# ============================================================================

class TextOCR:
    """
    Main text OCR interface.

    Wraps one engine, either by name ("gemini", "tesseract") or any object
    with a ``recognize(data, mime_type) -> str`` method.
    """

    def __init__(
        self,
        engine: Union[str, Any] = "gemini",
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        language: str = "eng",
        timeout: float = 60.0
    ):
        if isinstance(engine, str):
            self.engine_name = engine
            self.engine = self._create_engine(engine, api_key, model, language, timeout)
        else:
            self.engine_name = getattr(engine, "name", engine.__class__.__name__)
            self.engine = engine
        logger.info(f"Initialized OCR engine: {self.engine_name}")

    def _create_engine(
        self,
        engine_name: str,
        api_key: Optional[str],
        model: Optional[str],
        language: str,
        timeout: float
    ):
        """Create an OCR engine instance."""
        if engine_name == "gemini":
            kwargs = {"timeout": timeout}
            if model:
                kwargs["model"] = model
            return GeminiEngine(api_key, **kwargs)
        elif engine_name == "tesseract":
            return TesseractEngine(language=language)
        else:
            raise ValueError(f"Unknown OCR engine: {engine_name}")

    def recognize(self, image: SourceImage) -> OcrResult:
        """
        Recognize the text in one image.

        Raises whatever the engine raises; use extract_all for batches.
        """
        mime_type = image.mime_type or DEFAULT_MIME_TYPE
        text = self.engine.recognize(image.data, mime_type)
        logger.info(f"OCR extracted {len(text)} characters from {image.source_id}")
        return OcrResult(source_id=image.source_id, raw_text=text, mime_type=mime_type)

    def extract_all(
        self,
        images: Sequence[SourceImage],
        max_workers: int = 1
    ) -> List[OcrResult]:
        """
        Recognize a batch of images.

        Args:
            images: Images in display order
            max_workers: Number of images processed concurrently

        Returns:
            One OcrResult per image, in the same order as ``images``.
            Failed images get a placeholder from OcrResult.failed.
        """
        images = list(images)
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")

        if max_workers == 1 or len(images) <= 1:
            results = [self._recognize_or_placeholder(i, img, len(images))
                       for i, img in enumerate(images, 1)]
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                results = list(pool.map(
                    lambda args: self._recognize_or_placeholder(*args, len(images)),
                    enumerate(images, 1)
                ))

        failed = sum(1 for r in results if r.is_error)
        logger.info(f"OCR completed: {len(results) - failed}/{len(results)} successful")
        return results

    def _recognize_or_placeholder(self, index: int, image: SourceImage, total: int) -> OcrResult:
        logger.info(f"Processing image {index}/{total}: {image.source_id}")
        try:
            return self.recognize(image)
        except Exception as e:
            logger.error(f"Failed to process image {image.source_id}: {e}")
            return OcrResult.failed(image.source_id, e)

    def close(self):
        close = getattr(self.engine, "close", None)
        if close is not None:
            close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


# ============================================================================
# Gemini Engine
# ============================================================================

class GeminiEngine:
    """
    OCR using the Gemini vision API.

    The engine owns one requests.Session for its whole lifetime. Create it
    once, reuse it for every image, and release it with close() or a
    ``with`` block. A session passed in by the caller is never closed here.
    """

    name = "gemini"
    API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash",
        timeout: float = 60.0,
        prompt: str = EXTRACTION_PROMPT,
        session: Optional[requests.Session] = None
    ):
        if not api_key:
            raise ValueError(
                "Gemini API key is missing. Set GOOGLE_API_KEY or pass api_key."
            )

        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.prompt = prompt
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()

    @property
    def url(self) -> str:
        return self.API_URL.format(model=self.model)

    def recognize(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
        """Recognize text in encoded image bytes."""
        if not data:
            raise ValueError("Image data is empty")

        payload = {
            "contents": [{
                "parts": [
                    {
                        "inline_data": {
                            "mime_type": mime_type or DEFAULT_MIME_TYPE,
                            "data": base64.b64encode(data).decode("utf-8")
                        }
                    },
                    {"text": self.prompt}
                ]
            }]
        }
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json"
        }

        response = self.session.post(
            self.url,
            headers=headers,
            json=payload,
            timeout=self.timeout
        )
        response.raise_for_status()

        return self._parse_response(response.json())

    def _parse_response(self, result: Dict[str, Any]) -> str:
        """Join the text parts of the first candidate."""
        candidates = result.get("candidates") or []
        if not candidates:
            reason = result.get("promptFeedback", {}).get("blockReason")
            if reason:
                raise OCRError(f"Gemini blocked the request: {reason}")
            raise OCRError("Gemini returned no candidates")

        parts = candidates[0].get("content", {}).get("parts") or []
        texts = [part["text"] for part in parts if "text" in part]
        if not texts:
            finish = candidates[0].get("finishReason", "unknown")
            raise OCRError(f"Gemini returned no text (finish reason: {finish})")

        return "".join(texts)

    def close(self):
        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


# ============================================================================
# Tesseract Engine
# ============================================================================

class TesseractEngine:
    """OCR using a local Tesseract install."""

    name = "tesseract"

    def __init__(
        self,
        language: str = "eng",
        config: str = "--oem 3 --psm 6"
    ):
        try:
            import pytesseract
            self.pytesseract = pytesseract

            # Test that tesseract is installed
            pytesseract.get_tesseract_version()

        except Exception as e:
            raise ImportError(
                f"Tesseract not available: {e}\n"
                "Install with: pip install pytesseract\n"
                "Also install Tesseract: https://github.com/tesseract-ocr/tesseract"
            )

        self.language = language
        self.config = config

    def _decode(self, data: bytes) -> np.ndarray:
        """Decode image bytes to a grayscale array."""
        import cv2

        buffer = np.frombuffer(data, dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise ValueError("Could not decode image data")

        # Small scans read better upscaled
        h, w = image.shape
        if h < 30:
            scale = 30.0 / h
            image = cv2.resize(image, None, fx=scale, fy=scale, interpolation=cv2.INTER_CUBIC)

        return image

    def recognize(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
        """Recognize text using Tesseract, keeping line breaks."""
        image = self._decode(data)
        text = self.pytesseract.image_to_string(
            image,
            lang=self.language,
            config=self.config
        )
        return text.strip("\n")
