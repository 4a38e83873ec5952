"""
I/O utilities for image-to-document conversion.

Handles:
- Image loading and MIME type detection
- Upload staging (ordered batches on the local filesystem)
- JSON serialization
- Directory management
"""

import json
import logging
import mimetypes
import re
import shutil
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .ocr_text import DEFAULT_MIME_TYPE, SourceImage

logger = logging.getLogger(__name__)


IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp', '.webp', '.gif', '.heic')
DEFAULT_UPLOAD_DIR = "/tmp/uploads"
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


# ============================================================================
# Image Loading
# ============================================================================

def detect_mime_type(path: Union[str, Path]) -> str:
    """Guess an image MIME type from the file name, defaulting to JPEG."""
    mime_type, _ = mimetypes.guess_type(str(path))
    if mime_type and mime_type.startswith("image/"):
        return mime_type
    return DEFAULT_MIME_TYPE


def load_source_image(
    image_path: Union[str, Path],
    source_id: Optional[str] = None,
    mime_type: Optional[str] = None
) -> SourceImage:
    """
    Load an image file for OCR.

    Args:
        image_path: Path to the image file
        source_id: Name shown in the document (default: file name)
        mime_type: Known MIME type (default: guessed from the extension)

    Returns:
        SourceImage with the raw file bytes

    Raises:
        FileNotFoundError: If image file doesn't exist
        ValueError: If the file is empty
    """
    image_path = Path(image_path)
    if not image_path.is_file():
        raise FileNotFoundError(f"Image file not found: {image_path}")

    data = image_path.read_bytes()
    if not data:
        raise ValueError(f"Image file is empty: {image_path}")

    logger.debug(f"Loaded image: {image_path} ({len(data)} bytes)")
    return SourceImage(
        source_id=source_id or image_path.name,
        data=data,
        mime_type=mime_type or detect_mime_type(image_path)
    )


def list_image_files(
    folder_path: Union[str, Path],
    extensions: tuple = IMAGE_EXTENSIONS
) -> List[Path]:
    """Image files in a folder, sorted by name."""
    folder_path = Path(folder_path)
    if not folder_path.is_dir():
        raise NotADirectoryError(f"Not a directory: {folder_path}")

    return sorted(
        f for f in folder_path.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


def load_source_images_from_folder(
    folder_path: Union[str, Path],
    extensions: tuple = IMAGE_EXTENSIONS
) -> List[SourceImage]:
    """
    Load all images from a folder, sorted by file name.

    Unreadable files are skipped with a warning.
    """
    image_files = list_image_files(folder_path, extensions)
    logger.info(f"Found {len(image_files)} images in {folder_path}")

    images = []
    for img_path in image_files:
        try:
            images.append(load_source_image(img_path))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load {img_path}: {e}")

    return images


def detect_input_type(input_path: Union[str, Path]) -> str:
    """
    Detect the type of input file or directory.

    Returns:
        One of: 'image', 'image_folder', 'unknown'
    """
    input_path = Path(input_path)

    if input_path.is_dir():
        has_images = any(
            f.suffix.lower() in IMAGE_EXTENSIONS
            for f in input_path.iterdir()
        )
        return 'image_folder' if has_images else 'unknown'

    if input_path.is_file() and input_path.suffix.lower() in IMAGE_EXTENSIONS:
        return 'image'

    return 'unknown'


# ============================================================================
# Upload Staging
# ============================================================================

class UploadStaging:
    """
    Uploaded images staged on the local filesystem, grouped by batch.

    Layout::

        <root>/<batch_id>/0001_<filename>
        <root>/<batch_id>/.processed      (written by mark_processed)

    The numeric prefix keeps images in upload order.
    """

    PROCESSED_MARKER = ".processed"
    MIME_TYPES_FILE = ".mimetypes.json"
    _BATCH_ID = re.compile(r"[A-Za-z0-9_-]{1,64}")

    def __init__(
        self,
        root: Union[str, Path] = DEFAULT_UPLOAD_DIR,
        max_upload_bytes: int = MAX_UPLOAD_BYTES
    ):
        self.root = Path(root)
        self.max_upload_bytes = max_upload_bytes

    def batch_dir(self, batch_id: str) -> Path:
        if not isinstance(batch_id, str) or not self._BATCH_ID.fullmatch(batch_id):
            raise ValueError(f"Invalid batch id: {batch_id!r}")
        return self.root / batch_id

    def stage(
        self,
        batch_id: str,
        filename: str,
        data: bytes,
        mime_type: Optional[str] = None
    ) -> SourceImage:
        """
        Store one uploaded image at the end of a batch.

        Raises:
            ValueError: If the upload is empty, too large, or the batch
                was already processed
        """
        batch_dir = self.batch_dir(batch_id)
        if not data:
            raise ValueError("No file uploaded")
        if len(data) > self.max_upload_bytes:
            raise ValueError(
                f"File too large: {len(data)} bytes (limit {self.max_upload_bytes})"
            )
        if self.is_processed(batch_id):
            raise ValueError(f"Batch {batch_id} has already been processed")

        batch_dir.mkdir(parents=True, exist_ok=True)
        name = Path(filename).name or "upload"
        order = len(self._staged_files(batch_dir)) + 1
        path = batch_dir / f"{order:04d}_{name}"
        path.write_bytes(data)

        mime_type = mime_type or detect_mime_type(name)
        mime_types = self._read_mime_types(batch_dir)
        mime_types[path.name] = mime_type
        (batch_dir / self.MIME_TYPES_FILE).write_text(json.dumps(mime_types), encoding="utf-8")

        logger.info(f"Staged upload {name} as #{order} in batch {batch_id}")
        return SourceImage(source_id=name, data=data, mime_type=mime_type)

    def load_batch(self, batch_id: str) -> List[SourceImage]:
        """
        Load the staged images of a batch in upload order.

        Raises:
            FileNotFoundError: If no images were staged for the batch
            ValueError: If the batch was already processed
        """
        batch_dir = self.batch_dir(batch_id)
        files = self._staged_files(batch_dir) if batch_dir.is_dir() else []

        if not files:
            raise FileNotFoundError(f"No images found for batch {batch_id}")
        if self.is_processed(batch_id):
            raise ValueError(f"All images in batch {batch_id} have already been processed")

        mime_types = self._read_mime_types(batch_dir)
        images = []
        for path in files:
            # Strip the "0001_" ordering prefix
            name = path.name.split("_", 1)[1]
            images.append(load_source_image(
                path, source_id=name, mime_type=mime_types.get(path.name)
            ))

        logger.info(f"Loaded {len(images)} staged image(s) for batch {batch_id}")
        return images

    def is_processed(self, batch_id: str) -> bool:
        return (self.batch_dir(batch_id) / self.PROCESSED_MARKER).exists()

    def mark_processed(self, batch_id: str) -> None:
        batch_dir = self.batch_dir(batch_id)
        if not batch_dir.is_dir():
            raise FileNotFoundError(f"No images found for batch {batch_id}")
        (batch_dir / self.PROCESSED_MARKER).write_text(str(time.time()), encoding="utf-8")
        logger.info(f"Marked batch {batch_id} as processed")

    def cleanup(self, max_age_seconds: float = 3600, now: Optional[float] = None) -> int:
        """
        Delete processed batches older than max_age_seconds.

        Returns:
            Number of batches removed
        """
        if not self.root.is_dir():
            return 0

        now = time.time() if now is None else now
        removed = 0
        for batch_dir in self.root.iterdir():
            marker = batch_dir / self.PROCESSED_MARKER
            if not marker.is_file():
                continue
            try:
                processed_at = float(marker.read_text(encoding="utf-8").strip())
            except ValueError:
                processed_at = marker.stat().st_mtime
            if now - processed_at >= max_age_seconds:
                shutil.rmtree(batch_dir)
                removed += 1

        if removed:
            logger.info(f"Deleted {removed} old processed batch(es)")
        return removed

    def _read_mime_types(self, batch_dir: Path) -> Dict[str, str]:
        """MIME types reported at upload, keyed by staged file name."""
        path = batch_dir / self.MIME_TYPES_FILE
        if not path.is_file():
            return {}
        return json.loads(path.read_text(encoding="utf-8"))

    def _staged_files(self, batch_dir: Path) -> List[Path]:
        return sorted(
            f for f in batch_dir.iterdir()
            if f.is_file() and re.match(r"\d{4}_", f.name)
        )


# ============================================================================
# JSON Serialization
# ============================================================================

class EnhancedJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles blocks, dataclasses and paths."""

    def default(self, obj):
        if hasattr(obj, 'to_dict'):
            return obj.to_dict()
        if hasattr(obj, '__dataclass_fields__'):
            return asdict(obj)
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, bytes):
            return f"<{len(obj)} bytes>"
        return super().default(obj)


def save_json(
    data: Any,
    output_path: Union[str, Path],
    indent: int = 2,
    ensure_ascii: bool = False
) -> Path:
    """
    Save data to a JSON file.

    Args:
        data: Data to serialize (dict, list, dataclass, block, etc.)
        output_path: Path to save the JSON file
        indent: Indentation level for pretty printing
        ensure_ascii: If True, escape non-ASCII characters

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii, cls=EnhancedJSONEncoder)

    logger.debug(f"Saved JSON: {output_path}")
    return output_path


# ============================================================================
# Directory Management
# ============================================================================

def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
