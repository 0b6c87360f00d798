"""Exception hierarchy for the extraction core.

Document-level errors are fatal and reach the caller. Page-level errors
are caught at the page-job boundary and recorded on the result.
"""


class ExtractionError(Exception):
    """Base exception for extraction errors."""


class MissingDependencyError(ExtractionError):
    """Raised when required system binaries are missing."""


class FileValidationError(ExtractionError):
    """Raised when an input file is missing, too large, or unsupported."""


class DocumentError(ExtractionError):
    """Raised when a document cannot be opened or its pages counted."""


class DocumentTimeoutError(DocumentError):
    """Raised when a document exceeds its configured deadline."""


class PageError(ExtractionError):
    """Raised when a single page cannot be processed."""

    def __init__(self, message: str, page_number: int | None = None) -> None:
        super().__init__(message)
        self.page_number = page_number


class RasterizationError(PageError):
    """Raised when a page cannot be rendered to an image."""


class PreprocessingError(PageError):
    """Raised when image preprocessing fails."""


class OcrError(PageError):
    """Raised when the OCR engine fails to recognize an image."""


class OcrTimeoutError(OcrError):
    """Raised when an OCR attempt exceeds its deadline."""
