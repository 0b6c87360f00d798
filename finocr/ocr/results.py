"""Result types produced by the extraction core."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class PageResult:
    """Extraction outcome for a single page."""

    page_number: int
    is_digital: bool
    ocr_used: bool
    text: str
    ocr_confidence: float | None = None
    confidence: str = "low"

    def __post_init__(self) -> None:
        if not self.ocr_used:
            self.ocr_confidence = None

    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def counts_as_digital(self) -> bool:
        """True if the page's text came from the text layer without OCR."""
        return self.is_digital and not self.ocr_used

    @classmethod
    def failed(cls, page_number: int) -> "PageResult":
        """Placeholder for a page whose processing raised."""
        return cls(
            page_number=page_number,
            is_digital=False,
            ocr_used=False,
            text="",
            confidence="low",
        )


@dataclass
class ExtractError:
    """A recorded failure. ``page`` is ``None`` for document-level errors."""

    message: str
    page: int | None = None
    stack: str | None = None


@dataclass
class ExtractStats:
    """Timing and page classification counts for one extraction."""

    time_ms: int
    pages_ocrd: int
    concurrency: int
    digital_pages: int
    scanned_pages: int


@dataclass
class ExtractResult:
    """Complete extraction output for a document."""

    num_pages: int
    pages: list[PageResult]
    full_text: str
    errors: list[ExtractError] = field(default_factory=list)
    stats: ExtractStats | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain JSON-compatible types."""
        data = asdict(self)
        for page, raw in zip(self.pages, data["pages"]):
            raw["char_count"] = page.char_count
        return data
