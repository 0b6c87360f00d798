"""Command-line interface for document text extraction.

Provides subcommands for checking system dependencies, extracting a
single document to JSON, and batch-processing a folder into a CSV
summary.
"""

import argparse
import asyncio
import csv
import json
import sys
import time
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from finocr.ocr.document_processor import DocumentProcessor
from finocr.ocr.progress import ProgressEvent
from finocr.utils.config import AppConfig, OcrFallback, load_config, resolve_options
from finocr.utils.errors import ExtractionError, MissingDependencyError
from finocr.utils.logger import get_logger, setup_logging
from finocr.utils.system_check import SystemDependencyChecker

logger = get_logger(__name__)

_CSV_COLUMNS = [
    "filename",
    "status",
    "num_pages",
    "pages_ocrd",
    "digital_pages",
    "scanned_pages",
    "page_errors",
    "processing_time_s",
    "error",
]


def _find_documents(input_dir: Path, extensions: tuple[str, ...]) -> list[Path]:
    """Find all supported document files in a directory.

    Args:
        input_dir: Directory to scan for documents.
        extensions: Accepted file suffixes, lower case with leading dot.

    Returns:
        Sorted list of document file paths.
    """
    return sorted(
        p for p in input_dir.iterdir() if p.is_file() and p.suffix.lower() in extensions
    )


def _collect_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Build extraction option overrides from the flags the user set."""
    overrides: dict[str, Any] = {}
    simple = {
        "lang": "languages",
        "concurrency": "concurrency",
        "dpi": "dpi",
        "threshold": "digital_text_threshold",
        "fallback": "ocr_fallback",
        "timeout_ms": "timeout_ms",
        "retries": "retries",
        "document_timeout_ms": "document_timeout_ms",
        "psm": "psm",
    }
    for arg_name, option_name in simple.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            overrides[option_name] = value
    if getattr(args, "debug", False):
        overrides["debug"] = True

    preprocess: dict[str, Any] = {}
    if getattr(args, "enlarge", None) is not None:
        preprocess["enlarge_factor"] = args.enlarge
    if getattr(args, "deskew", False):
        preprocess["deskew"] = True
    if getattr(args, "binarize", False):
        preprocess["binarize"] = True
    if preprocess:
        overrides["preprocess"] = preprocess
    return overrides


def _print_progress(event: ProgressEvent) -> None:
    print(
        f"  page {event.page}/{event.total_pages}: {event.step} ({event.percent}%)",
        file=sys.stderr,
    )


def extract_single(
    file_path: Path,
    config: AppConfig,
    overrides: dict[str, Any] | None = None,
    verbose: bool = False,
) -> dict[str, Any]:
    """Extract one document and return the result as a plain dict.

    Args:
        file_path: Path to the document file.
        config: Application configuration.
        overrides: Extraction option overrides.
        verbose: Whether to print per-page progress to stderr.

    Returns:
        Serialized ``ExtractResult`` plus the source filename.
    """
    overrides = dict(overrides or {})
    if verbose:
        overrides["progress_callback"] = _print_progress

    processor = DocumentProcessor(config)
    try:
        result = processor.process(file_path, overrides)
    finally:
        processor.temp_files.shutdown()

    data = {"filename": file_path.name}
    data.update(result.to_dict())
    return data


async def _extract_folder(
    processor: DocumentProcessor,
    files: list[Path],
    overrides: dict[str, Any],
    verbose: bool,
) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            result = await processor.extract_from_file(file_path, overrides)
        except ExtractionError as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc)
            rows.append(
                {
                    "filename": file_path.name,
                    "status": "failed",
                    "processing_time_s": round(time.time() - start_time, 2),
                    "error": str(exc),
                }
            )
            continue

        rows.append(
            {
                "filename": file_path.name,
                "status": "partial" if result.errors else "success",
                "num_pages": result.num_pages,
                "pages_ocrd": result.stats.pages_ocrd,
                "digital_pages": result.stats.digital_pages,
                "scanned_pages": result.stats.scanned_pages,
                "page_errors": len(result.errors),
                "processing_time_s": round(time.time() - start_time, 2),
                "error": "; ".join(
                    f"page {e.page}: {e.message}" for e in result.errors
                )
                or None,
            }
        )
    return rows


def process_folder(
    input_dir: Path,
    output_csv: Path,
    config: AppConfig,
    overrides: dict[str, Any] | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Extract every document in a folder and write a CSV summary.

    Documents are processed one after another; pages within each document
    run concurrently.

    Args:
        input_dir: Directory containing document files.
        output_csv: Path for the output CSV file.
        config: Application configuration.
        overrides: Extraction option overrides.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    files = _find_documents(input_dir, config.input.supported_extensions)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d documents to process", len(files))
    processor = DocumentProcessor(config)
    try:
        rows = asyncio.run(_extract_folder(processor, files, overrides or {}, verbose))
    finally:
        processor.temp_files.shutdown()

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    failed = sum(1 for r in rows if r["status"] == "failed")
    summary = {"total": len(files), "successful": len(files) - failed, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(rows: list[dict[str, object]], output_path: Path) -> None:
    """Write per-document rows to a CSV file.

    Args:
        rows: One dict per document.
        output_path: Path for the output CSV file.
    """
    if not rows:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout.

    Args:
        summary: Counts of total, successful, and failed documents.
        output_csv: Path to the output CSV.
    """
    print(f"\n{'=' * 50}")
    print("Batch Processing Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def _add_extract_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-l",
        "--lang",
        action="append",
        help="OCR language code, repeatable (default: eng)",
    )
    parser.add_argument("-c", "--concurrency", type=int, help="Pages processed at once")
    parser.add_argument("--dpi", type=int, help="Rasterization resolution")
    parser.add_argument(
        "--threshold", type=int, help="Characters needed to trust digital text"
    )
    parser.add_argument(
        "--fallback",
        choices=[f.value for f in OcrFallback],
        help="When to OCR pages that have digital text",
    )
    parser.add_argument("--psm", type=int, help="Tesseract page segmentation mode")
    parser.add_argument("--enlarge", type=float, help="Enlarge images before OCR")
    parser.add_argument("--deskew", action="store_true", help="Deskew images")
    parser.add_argument("--binarize", action="store_true", help="Otsu binarization")
    parser.add_argument("--timeout-ms", type=int, help="Per-attempt OCR timeout")
    parser.add_argument("--retries", type=int, help="OCR retries per page")
    parser.add_argument(
        "--document-timeout-ms", type=int, help="Deadline for the whole document"
    )
    parser.add_argument("--debug", action="store_true", help="Keep temporary files")
    parser.add_argument(
        "--skip-checks", action="store_true", help="Skip the dependency check"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        prog="finocr",
        description="Financial document text extraction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="YAML configuration file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("check", help="Verify poppler and tesseract are installed")

    single_parser = subparsers.add_parser("extract", help="Extract a single document")
    single_parser.add_argument("file", type=Path, help="Document file to process")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")
    _add_extract_options(single_parser)

    batch_parser = subparsers.add_parser("batch", help="Extract a folder of documents")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with documents"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    _add_extract_options(batch_parser)

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    checker = SystemDependencyChecker(tesseract_cmd=config.ocr.tesseract_cmd)
    if args.command == "check" or not args.skip_checks:
        try:
            checker.check_dependencies()
        except MissingDependencyError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(2)
        if args.command == "check":
            print("All required system dependencies are present.")
            return

    overrides = _collect_overrides(args)
    try:
        resolve_options(overrides, config.extract)
    except ValidationError as exc:
        print(f"Error: invalid extraction options: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(args.input_dir, args.output, config, overrides, args.verbose)
    elif args.command == "extract":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = extract_single(args.file, config, overrides, args.verbose)
        except ExtractionError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        output_str = json.dumps(result, indent=2)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str)
            print(f"Output written to {args.output}")
        else:
            print(output_str)


if __name__ == "__main__":
    main()
