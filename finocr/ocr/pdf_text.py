"""Embedded text-layer extraction and digital/scanned page classification.

Reads a PDF page's text layer with pdfplumber and decides whether it is
reliable enough to skip OCR.
"""

import re
from dataclasses import dataclass
from pathlib import Path

import pdfplumber

from finocr.utils.errors import DocumentError, PageError
from finocr.utils.logger import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


@dataclass
class PageText:
    """Digital text read from one page's text layer."""

    text: str
    is_digital: bool
    char_count: int
    fragment_count: int


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace to single spaces and strip the ends."""
    return _WHITESPACE.sub(" ", text).strip()


def classify_digital(
    char_count: int,
    fragment_count: int,
    threshold: int,
    min_fragments: int = 4,
    min_avg_fragment_length: float = 3.0,
) -> bool:
    """Decide whether a page's text layer can be trusted.

    A page is digital when it carries at least ``threshold`` characters,
    or when it has more than ``min_fragments`` fragments whose average
    length exceeds ``min_avg_fragment_length``. The second rule keeps short
    but real pages while rejecting a handful of stray noise tokens.

    Args:
        char_count: Total characters across all text fragments.
        fragment_count: Number of text fragments on the page.
        threshold: Minimum character count to trust the text outright.
        min_fragments: Fragment count that must be exceeded.
        min_avg_fragment_length: Average fragment length that must be exceeded.

    Returns:
        True if the page should be treated as digital.
    """
    if char_count >= threshold:
        return True
    if fragment_count > min_fragments:
        return char_count / fragment_count > min_avg_fragment_length
    return False


class PdfTextExtractor:
    """Reads page counts and per-page text layers from PDF files.

    Args:
        min_fragments: Fragment-count rule for ``classify_digital``.
        min_avg_fragment_length: Average-length rule for ``classify_digital``.
    """

    def __init__(
        self, min_fragments: int = 4, min_avg_fragment_length: float = 3.0
    ) -> None:
        self.min_fragments = min_fragments
        self.min_avg_fragment_length = min_avg_fragment_length

    def get_num_pages(self, pdf_path: Path) -> int:
        """Get the number of pages in a PDF.

        Args:
            pdf_path: Path to the PDF file.

        Returns:
            Number of pages, always at least one.

        Raises:
            DocumentError: If the file cannot be parsed or has no pages.
        """
        try:
            with pdfplumber.open(str(pdf_path)) as pdf:
                count = len(pdf.pages)
        except Exception as exc:
            raise DocumentError(f"Cannot open PDF {pdf_path}: {exc}") from exc

        if count < 1:
            raise DocumentError(f"PDF {pdf_path} has no pages")
        logger.debug("PDF %s has %d pages", pdf_path, count)
        return count

    def extract_page_text(
        self,
        pdf_path: Path,
        page_number: int,
        threshold: int,
        min_fragments: int | None = None,
        min_avg_fragment_length: float | None = None,
    ) -> PageText:
        """Extract and classify the text layer of one page.

        Args:
            pdf_path: Path to the PDF file.
            page_number: 1-based page number.
            threshold: Minimum character count to consider the page digital.
            min_fragments: Overrides the instance fragment-count rule.
            min_avg_fragment_length: Overrides the instance average-length rule.

        Returns:
            Whitespace-collapsed page text with its classification.

        Raises:
            PageError: If the page does not exist or cannot be parsed.
        """
        try:
            with pdfplumber.open(str(pdf_path)) as pdf:
                if not 1 <= page_number <= len(pdf.pages):
                    raise PageError(
                        f"Page {page_number} out of range (1-{len(pdf.pages)})",
                        page_number,
                    )
                words = pdf.pages[page_number - 1].extract_words()
        except PageError:
            raise
        except Exception as exc:
            raise PageError(
                f"Cannot read text layer of page {page_number}: {exc}", page_number
            ) from exc

        fragments = [w["text"] for w in words if w.get("text")]
        char_count = sum(len(f) for f in fragments)
        is_digital = classify_digital(
            char_count,
            len(fragments),
            threshold,
            self.min_fragments if min_fragments is None else min_fragments,
            (
                self.min_avg_fragment_length
                if min_avg_fragment_length is None
                else min_avg_fragment_length
            ),
        )

        logger.debug(
            "Page %d: %d fragments, %d chars, is_digital=%s",
            page_number,
            len(fragments),
            char_count,
            is_digital,
        )
        return PageText(
            text=collapse_whitespace(" ".join(fragments)),
            is_digital=is_digital,
            char_count=char_count,
            fragment_count=len(fragments),
        )
