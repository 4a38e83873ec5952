#!/usr/bin/env python
"""
Command-line interface for the image-to-document converter.

Usage:
    img2docx --input <image_or_folder> --output <output_dir> [options]

Examples:
    # Convert a folder of scans with Gemini (GOOGLE_API_KEY must be set)
    img2docx --input ./scans --output ./output

    # Local OCR, no page headers, Markdown as well as DOCX
    img2docx --input ./scans --output ./output --engine tesseract --no-headers --format docx markdown

    # Check dependencies and environment
    img2docx --check
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from .config import get_config, get_health_status, parse_label_threshold, setup_logging

logger = logging.getLogger("img2docx")


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Image to Word converter - extract text from images into a formatted document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Convert a folder of images:
    img2docx --input ./scans --output ./output

  Use Tesseract instead of Gemini:
    img2docx --input page.png --output ./output --engine tesseract

  Split on every colon, regardless of label length:
    img2docx --input ./scans --output ./output --label-threshold none
        """
    )

    parser.add_argument(
        "--input", "-i",
        help="Input image file or folder of images"
    )

    parser.add_argument(
        "--output", "-o",
        help="Output directory for generated files"
    )

    parser.add_argument(
        "--format", "-f",
        nargs="+",
        default=["docx"],
        choices=["docx", "markdown", "json", "all"],
        help="Output format(s) (default: docx)"
    )

    parser.add_argument(
        "--name",
        default=None,
        help="Base name for output files (default: extracted_document)"
    )

    parser.add_argument(
        "--engine",
        choices=["gemini", "tesseract"],
        default=None,
        help="OCR engine (default: gemini, or IMG2DOCX_OCR_ENGINE)"
    )

    parser.add_argument(
        "--model",
        default=None,
        help="Gemini model name (default: gemini-2.0-flash, or GEMINI_MODEL)"
    )

    parser.add_argument(
        "--no-headers",
        action="store_true",
        help="Do not add a 'Page N: <file>' header before each image"
    )

    parser.add_argument(
        "--label-threshold",
        type=parse_label_threshold,
        default=argparse.SUPPRESS,
        help="Max label length before a colon for 'Label: value' lines, or 'none' (default: 50)"
    )

    parser.add_argument(
        "--accent-color",
        default=None,
        help="Header color as 6-digit hex (default: 2E74B5)"
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of images sent to OCR concurrently (default: 1)"
    )

    parser.add_argument(
        "--check",
        action="store_true",
        help="Print dependency and environment status, then exit"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Debug logging, and re-raise errors with full tracebacks (or IMG2DOCX_DEBUG)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def build_config(args):
    """Environment config with command-line overrides applied."""
    config = get_config()

    if args.engine:
        config.ocr.engine = args.engine
    if args.model:
        config.ocr.model = args.model
    config.ocr.max_workers = args.workers

    if args.no_headers:
        config.assembly.include_headers = False
    if hasattr(args, "label_threshold"):
        config.assembly.label_threshold = args.label_threshold
    if args.accent_color:
        config.assembly.header_accent_color = args.accent_color

    if args.debug:
        config.debug_mode = True

    return config


def run_pipeline(args, config=None) -> int:
    """Run the image-to-document conversion."""
    from .utils.export import MarkdownExporter
    from .utils.io import detect_input_type, ensure_dir, load_source_image
    from .utils.io import load_source_images_from_folder, save_json
    from .utils.pipeline import ImageToDocxPipeline

    config = config or build_config(args)
    start_time = time.time()

    output_dir = ensure_dir(args.output)
    base_name = args.name or "extracted_document"

    # Detect input type and load images
    input_path = Path(args.input)
    input_type = detect_input_type(input_path)
    logger.info(f"Input type detected: {input_type}")

    if input_type == "image":
        images = [load_source_image(input_path)]
    elif input_type == "image_folder":
        images = load_source_images_from_folder(input_path)
    else:
        logger.error(f"Unsupported input: {input_path}")
        return 1

    if not images:
        logger.error("No images to process")
        return 1

    logger.info(f"Loaded {len(images)} image(s)")

    pipeline = ImageToDocxPipeline.from_config(config)
    try:
        result = pipeline.run(images)
    finally:
        pipeline.ocr.close()

    formats = args.format
    if "all" in formats:
        formats = ["docx", "markdown", "json"]

    if "docx" in formats:
        docx_path = output_dir / f"{base_name}.docx"
        docx_path.write_bytes(result.docx_bytes)
        logger.info(f"Exported docx: {docx_path}")

    if "markdown" in formats:
        md_path = MarkdownExporter().export(result.blocks, output_dir / f"{base_name}.md")
        logger.info(f"Exported markdown: {md_path}")

    if "json" in formats:
        json_path = save_json(result.to_dict(), output_dir / f"{base_name}.json")
        logger.info(f"Exported json: {json_path}")

    elapsed = time.time() - start_time

    if not args.quiet:
        print("\n" + "=" * 60)
        print("CONVERSION COMPLETE")
        print("=" * 60)
        print(f"Source: {input_path}")
        print(f"Output: {output_dir}")
        print(f"Images processed: {len(result.ocr_results)}")
        print(f"Blocks: {len(result.blocks)} "
              f"(content: {len(result.assembly.content_blocks)})")
        if result.failed:
            print(f"Failed: {', '.join(result.failed)}")
        print(f"Processing time: {elapsed:.2f}s")
        print("=" * 60)

    return 0


def main(argv=None):
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    # Configure logging level
    if args.verbose or config.debug_mode:
        setup_logging(logging.DEBUG)
    elif args.quiet:
        setup_logging(logging.ERROR)
    else:
        setup_logging(logging.INFO)

    if args.check:
        print(json.dumps(get_health_status(config, check_deps=True), indent=2))
        sys.exit(0)

    if not args.input or not args.output:
        parser.error("--input and --output are required")

    try:
        exit_code = run_pipeline(args, config)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Conversion failed: {e}")
        if config.debug_mode:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
