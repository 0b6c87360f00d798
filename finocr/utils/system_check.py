"""Startup verification of the external binaries the pipeline shells out to."""

import shutil
from dataclasses import dataclass

import pytesseract

from finocr.utils.errors import MissingDependencyError
from finocr.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Dependency:
    """An external binary and how to install it."""

    binary: str
    name: str
    install_hint: str


DEFAULT_DEPENDENCIES: tuple[Dependency, ...] = (
    Dependency("pdftoppm", "Poppler (pdftoppm)", "apt-get install poppler-utils"),
    Dependency("pdfinfo", "Poppler (pdfinfo)", "apt-get install poppler-utils"),
    Dependency("tesseract", "Tesseract OCR", "apt-get install tesseract-ocr"),
)


class SystemDependencyChecker:
    """Fails fast when the rasterizer or OCR engine is not installed.

    Args:
        dependencies: Binaries to look up on PATH.
        tesseract_cmd: Explicit Tesseract executable, overriding PATH lookup.
    """

    def __init__(
        self,
        dependencies: tuple[Dependency, ...] = DEFAULT_DEPENDENCIES,
        tesseract_cmd: str | None = None,
    ) -> None:
        self.dependencies = dependencies
        self.tesseract_cmd = tesseract_cmd
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def find_missing(self) -> list[Dependency]:
        """Return the dependencies that are not available."""
        missing: list[Dependency] = []
        for dep in self.dependencies:
            binary = dep.binary
            if binary == "tesseract" and self.tesseract_cmd:
                binary = self.tesseract_cmd
            if shutil.which(binary) is None:
                missing.append(dep)
            else:
                logger.debug("Dependency '%s' found", dep.name)
        return missing

    def check_dependencies(self) -> None:
        """Verify every required binary and the Tesseract install.

        Raises:
            MissingDependencyError: If any dependency is missing or Tesseract
                does not report a version.
        """
        logger.info("Checking system dependencies...")
        missing = self.find_missing()
        if missing:
            details = "; ".join(
                f"{dep.name} (install: {dep.install_hint})" for dep in missing
            )
            logger.error("Missing system dependencies: %s", details)
            raise MissingDependencyError(f"Missing system dependencies: {details}")

        if any(dep.binary == "tesseract" for dep in self.dependencies):
            try:
                version = pytesseract.get_tesseract_version()
            except pytesseract.TesseractNotFoundError as exc:
                raise MissingDependencyError(
                    f"Tesseract OCR is not working: {exc}"
                ) from exc
            logger.info("Tesseract version %s", version)

        logger.info("All required system dependencies are present")
