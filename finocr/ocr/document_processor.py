"""Hybrid digital-text / OCR extraction for whole documents.

Counts a document's pages, runs one job per page under a concurrency
limit, and merges the page results. Each job reads the page's text layer
and, when the fallback policy asks for it, rasterizes, preprocesses, and
OCRs the page. A failing page is recorded and replaced by an empty
result; only document-level failures reach the caller. The job's
temporary directory is removed on every exit path, after every worker
thread writing into it has returned, including when the document
deadline cancels the page jobs.
"""

import asyncio
import time
import traceback
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from finocr.preprocessing.pipeline import ImagePreprocessor
from finocr.utils.config import AppConfig, ExtractOptions, resolve_options
from finocr.utils.errors import DocumentTimeoutError, FileValidationError
from finocr.utils.logger import get_logger
from finocr.utils.temp_files import TempFileManager
from finocr.utils.threads import run_blocking

from .adapters import OcrAdapter, TesseractAdapter
from .pdf_rasterizer import PdfRasterizer
from .pdf_text import PageText, PdfTextExtractor
from .policy import choose_text, needs_ocr
from .progress import ProgressReporter
from .results import ExtractError, ExtractResult, ExtractStats, PageResult
from .retry import recognize_with_retry

logger = get_logger(__name__)

_IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".tif", ".tiff"})


@dataclass
class _PageOutcome:
    result: PageResult
    error: ExtractError | None = None


class DocumentProcessor:
    """End-to-end text extraction for PDFs and single page images.

    Collaborators default to the production implementations and can be
    replaced, e.g. with deterministic test doubles.

    Args:
        config: Application configuration. Its ``extract`` section provides
            the defaults that per-call options are merged over.
        ocr_adapter: OCR engine. Defaults to ``TesseractAdapter``.
        text_extractor: Text-layer reader.
        rasterizer: Page renderer.
        preprocessor: Image preprocessor.
        temp_files: Temporary storage manager. Started on construction.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        ocr_adapter: OcrAdapter | None = None,
        text_extractor: PdfTextExtractor | None = None,
        rasterizer: PdfRasterizer | None = None,
        preprocessor: ImagePreprocessor | None = None,
        temp_files: TempFileManager | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.ocr_adapter = ocr_adapter or TesseractAdapter(
            tesseract_cmd=self.config.ocr.tesseract_cmd
        )
        self.text_extractor = text_extractor or PdfTextExtractor()
        self.rasterizer = rasterizer or PdfRasterizer()
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.temp_files = temp_files or TempFileManager(self.config.temp.base_dir)
        self.temp_files.start()

    def process(
        self,
        file_path: Path | str,
        options: ExtractOptions | Mapping[str, Any] | None = None,
    ) -> ExtractResult:
        """Blocking wrapper around ``extract_from_file``."""
        return asyncio.run(self.extract_from_file(file_path, options))

    async def extract_from_file(
        self,
        file_path: Path | str,
        options: ExtractOptions | Mapping[str, Any] | None = None,
    ) -> ExtractResult:
        """Extract text from every page of a document.

        Args:
            file_path: Local path to a PDF or a single image.
            options: Per-call overrides merged over the configured defaults.

        Returns:
            Pages in ascending order, joined text, page errors, and stats.

        Raises:
            FileValidationError: If the file is missing, too large, or of an
                unsupported type.
            DocumentError: If the document cannot be opened or counted, or
                the optional document deadline passes.
        """
        opts = resolve_options(options, self.config.extract)
        path = Path(file_path)
        started = time.perf_counter()
        logger.info(
            "Extracting %s (concurrency=%d, fallback=%s)",
            path.name,
            opts.concurrency,
            opts.ocr_fallback.value,
        )

        job_dir = self.temp_files.create_job_temp_dir()
        reporter: ProgressReporter | None = None
        try:
            self.validate_file(path)
            is_image = path.suffix.lower() in _IMAGE_SUFFIXES
            if is_image:
                num_pages = 1
            else:
                num_pages = await run_blocking(
                    self.text_extractor.get_num_pages, path
                )

            reporter = ProgressReporter(opts.progress_callback, num_pages)
            reporter.start()
            semaphore = asyncio.Semaphore(opts.concurrency)
            jobs = asyncio.gather(
                *(
                    self._run_page(
                        path, n, opts, job_dir, semaphore, reporter, is_image
                    )
                    for n in range(1, num_pages + 1)
                )
            )
            if opts.document_timeout_ms is None:
                outcomes = await jobs
            else:
                try:
                    outcomes = await asyncio.wait_for(
                        jobs, timeout=opts.document_timeout_ms / 1000
                    )
                except asyncio.TimeoutError as exc:
                    raise DocumentTimeoutError(
                        f"{path.name} not finished within "
                        f"{opts.document_timeout_ms} ms"
                    ) from exc

            result = self._merge(outcomes, num_pages, opts, started)
        except Exception as exc:
            logger.error("Extraction of %s failed: %s", path.name, exc)
            raise
        finally:
            if reporter is not None:
                await reporter.aclose()
            await self._cleanup(job_dir, opts)

        logger.info(
            "Extracted %d pages from %s in %d ms (%d OCR'd, %d errors)",
            result.num_pages,
            path.name,
            result.stats.time_ms,
            result.stats.pages_ocrd,
            len(result.errors),
        )
        return result

    def validate_file(self, path: Path) -> None:
        """Reject missing, oversized, or unsupported input files.

        Raises:
            FileValidationError: If the file fails a check.
        """
        limits = self.config.input
        if not path.exists():
            raise FileValidationError(f"File not found: {path}")
        if not path.is_file():
            raise FileValidationError(f"Not a regular file: {path}")
        if path.suffix.lower() not in limits.supported_extensions:
            raise FileValidationError(
                f"Unsupported file type '{path.suffix}'. "
                f"Supported: {', '.join(limits.supported_extensions)}"
            )
        size_mb = path.stat().st_size / (1024 * 1024)
        if size_mb > limits.max_file_size_mb:
            raise FileValidationError(
                f"File size {size_mb:.1f} MB exceeds maximum of "
                f"{limits.max_file_size_mb:g} MB"
            )

    async def _run_page(
        self,
        path: Path,
        page_number: int,
        opts: ExtractOptions,
        job_dir: Path,
        semaphore: asyncio.Semaphore,
        reporter: ProgressReporter,
        is_image: bool,
    ) -> _PageOutcome:
        async with semaphore:
            reporter.emit(page_number, "start")
            intermediates: list[Path] = []
            try:
                result = await self._process_page(
                    path, page_number, opts, job_dir, reporter, is_image, intermediates
                )
            except Exception as exc:
                logger.warning("Page %d of %s failed: %s", page_number, path.name, exc)
                reporter.emit(page_number, "failed")
                return _PageOutcome(
                    result=PageResult.failed(page_number),
                    error=ExtractError(
                        message=str(exc),
                        page=page_number,
                        stack=traceback.format_exc(),
                    ),
                )
            finally:
                if not opts.debug:
                    _remove_files(intermediates)

            reporter.emit(page_number, "done")
            return _PageOutcome(result=result)

    async def _process_page(
        self,
        path: Path,
        page_number: int,
        opts: ExtractOptions,
        job_dir: Path,
        reporter: ProgressReporter,
        is_image: bool,
        intermediates: list[Path],
    ) -> PageResult:
        if is_image:
            digital = PageText(
                text="", is_digital=False, char_count=0, fragment_count=0
            )
        else:
            digital = await run_blocking(
                self.text_extractor.extract_page_text,
                path,
                page_number,
                opts.digital_text_threshold,
                opts.min_fragments,
                opts.min_avg_fragment_length,
            )
        reporter.emit(page_number, "digital")

        if not needs_ocr(digital.is_digital, opts.ocr_fallback):
            return PageResult(
                page_number=page_number,
                is_digital=True,
                ocr_used=False,
                text=digital.text,
                confidence="high",
            )

        if is_image:
            source_image, source_dpi = path, None
        else:
            source_image = await run_blocking(
                self.rasterizer.rasterize_page_to_image,
                path,
                page_number,
                job_dir,
                opts.dpi,
            )
            intermediates.append(Path(source_image))
            source_dpi = opts.dpi
            reporter.emit(page_number, "rasterized")

        processed_path = self.temp_files.create_temp_file_path(
            job_dir, f"page-{page_number}-processed", ".png"
        )
        intermediates.append(Path(processed_path))
        processed = await run_blocking(
            self.preprocessor.preprocess_image,
            source_image,
            processed_path,
            opts.preprocess,
            opts.dpi,
            source_dpi,
        )
        reporter.emit(page_number, "preprocessed")

        ocr = await recognize_with_retry(
            self.ocr_adapter,
            processed,
            opts.languages,
            config=f"--psm {opts.psm} {opts.tesseract_config}".strip(),
            timeout_ms=opts.timeout_ms,
            retries=opts.retries,
            backoff_ms=opts.retry_backoff_ms,
            page_number=page_number,
        )
        reporter.emit(page_number, "ocr")

        choice = choose_text(
            digital.text,
            ocr.text.strip(),
            opts.ocr_fallback,
            opts.digital_text_threshold,
            opts.prefer_longer_ratio,
        )
        logger.debug(
            "Page %d: is_digital=%s, chose %s text (%d chars)",
            page_number,
            digital.is_digital,
            choice.source,
            len(choice.text),
        )
        return PageResult(
            page_number=page_number,
            is_digital=digital.is_digital,
            ocr_used=True,
            text=choice.text,
            ocr_confidence=ocr.confidence,
            confidence=choice.confidence,
        )

    def _merge(
        self,
        outcomes: list[_PageOutcome],
        num_pages: int,
        opts: ExtractOptions,
        started: float,
    ) -> ExtractResult:
        outcomes = sorted(outcomes, key=lambda o: o.result.page_number)
        pages = [o.result for o in outcomes]
        digital_pages = sum(1 for p in pages if p.counts_as_digital)
        stats = ExtractStats(
            time_ms=int((time.perf_counter() - started) * 1000),
            pages_ocrd=sum(1 for p in pages if p.ocr_used),
            concurrency=min(opts.concurrency, num_pages),
            digital_pages=digital_pages,
            scanned_pages=num_pages - digital_pages,
        )
        return ExtractResult(
            num_pages=num_pages,
            pages=pages,
            full_text="\n\n".join(p.text for p in pages),
            errors=[o.error for o in outcomes if o.error is not None],
            stats=stats,
        )

    async def _cleanup(self, job_dir: Path, opts: ExtractOptions) -> None:
        if opts.debug:
            logger.info("Debug mode: keeping temporary files in %s", job_dir)
        else:
            try:
                await run_blocking(self.temp_files.cleanup_job_temp_dir, job_dir)
            except Exception as exc:
                logger.error("Failed to remove %s: %s", job_dir, exc)
        try:
            await self.ocr_adapter.close()
        except Exception as exc:
            logger.error("Failed to release OCR engine: %s", exc)


def _remove_files(paths: list[Path]) -> None:
    for file_path in paths:
        try:
            file_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove %s: %s", file_path, exc)
