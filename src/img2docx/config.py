"""
Configuration and constants for the image-to-document pipeline.

This module provides:
- Processing configuration (assembly, OCR, export, staging)
- Environment overrides
- Dependency and environment health checks
"""

import logging
import os
import platform
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .utils.assembler import DEFAULT_ACCENT_COLOR, DEFAULT_LABEL_THRESHOLD
from .utils.io import DEFAULT_UPLOAD_DIR, MAX_UPLOAD_BYTES

logger = logging.getLogger("img2docx")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int = logging.INFO):
    """Configure root logging for the entry points."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


# ============================================================================
# Processing Configuration
# ============================================================================

@dataclass
class AssemblyConfig:
    """Document assembly configuration."""
    include_headers: bool = True
    # None = split on any colon
    label_threshold: Optional[int] = DEFAULT_LABEL_THRESHOLD
    header_accent_color: str = DEFAULT_ACCENT_COLOR


@dataclass
class OCRConfig:
    """OCR configuration."""
    engine: str = "gemini"  # gemini, tesseract
    api_key: Optional[str] = None
    model: str = "gemini-2.0-flash"
    timeout: float = 60.0
    tesseract_lang: str = "eng"
    max_workers: int = 1


@dataclass
class ExportConfig:
    """Export configuration."""
    docx_template: Optional[str] = None
    margin_inches: float = 1.0
    header_font_size: int = 14


@dataclass
class StagingConfig:
    """Upload staging configuration."""
    upload_dir: str = DEFAULT_UPLOAD_DIR
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    cleanup_after_seconds: float = 3600


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    assembly: AssemblyConfig = field(default_factory=AssemblyConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    staging: StagingConfig = field(default_factory=StagingConfig)

    debug_mode: bool = False


# ============================================================================
# Default Configuration Instance
# ============================================================================

def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_label_threshold(value: str) -> Optional[int]:
    """Parse a threshold option; "none" disables the length check."""
    if value.strip().lower() in ("none", "off", ""):
        return None
    threshold = int(value)
    if threshold <= 0:
        raise ValueError(f"Label threshold must be positive, got {threshold}")
    return threshold


def get_config(environ: Optional[Dict[str, str]] = None) -> PipelineConfig:
    """Get the default pipeline configuration with environment overrides."""
    env = os.environ if environ is None else environ
    config = PipelineConfig()

    # Gemini API credentials from environment
    config.ocr.api_key = env.get("GOOGLE_API_KEY") or env.get("GEMINI_API_KEY")
    if env.get("GEMINI_MODEL"):
        config.ocr.model = env["GEMINI_MODEL"]
    if env.get("IMG2DOCX_OCR_ENGINE"):
        config.ocr.engine = env["IMG2DOCX_OCR_ENGINE"].strip().lower()

    if "IMG2DOCX_INCLUDE_HEADERS" in env:
        config.assembly.include_headers = _env_flag(env["IMG2DOCX_INCLUDE_HEADERS"])
    if "IMG2DOCX_LABEL_THRESHOLD" in env:
        config.assembly.label_threshold = parse_label_threshold(env["IMG2DOCX_LABEL_THRESHOLD"])
    if env.get("IMG2DOCX_ACCENT_COLOR"):
        config.assembly.header_accent_color = env["IMG2DOCX_ACCENT_COLOR"]

    if env.get("IMG2DOCX_UPLOAD_DIR"):
        config.staging.upload_dir = env["IMG2DOCX_UPLOAD_DIR"]

    if _env_flag(env.get("IMG2DOCX_DEBUG", "")):
        config.debug_mode = True

    return config


# ============================================================================
# Health Check
# ============================================================================

def check_dependencies() -> Dict[str, str]:
    """Report which libraries and external tools are importable."""
    dependencies = {}

    try:
        import docx  # noqa: F401
        dependencies["python-docx"] = "available"
    except ImportError as e:
        dependencies["python-docx"] = f"missing: {e}"

    try:
        import requests
        dependencies["requests"] = f"available ({requests.__version__})"
    except ImportError as e:
        dependencies["requests"] = f"missing: {e}"

    try:
        import pytesseract
        try:
            version = pytesseract.get_tesseract_version()
            dependencies["tesseract"] = f"available ({version})"
        except Exception:
            dependencies["tesseract"] = "missing: tesseract-ocr (system package)"
    except ImportError as e:
        dependencies["tesseract"] = f"missing: {e}"

    return dependencies


def get_health_status(
    config: Optional[PipelineConfig] = None,
    check_deps: bool = False
) -> Dict[str, Any]:
    """Service status, optionally with dependency and environment checks."""
    config = config or get_config()

    status = {
        "message": "img2docx is running",
        "status": "Active",
        "timestamp": datetime.now().isoformat(),
        "python_version": platform.python_version(),
        "platform": platform.system(),
    }

    if check_deps:
        status["dependencies"] = check_dependencies()
        status["environment"] = {
            "GOOGLE_API_KEY": "set" if config.ocr.api_key else "missing",
            "ocr_engine": config.ocr.engine,
            "upload_dir": config.staging.upload_dir,
        }

    return status
