"""Single-page PDF rendering for OCR.

Renders one PDF page at a time to a PNG file with poppler via pdf2image,
so large documents never hold every page image in memory at once.
"""

from pathlib import Path

from pdf2image import convert_from_path

from finocr.utils.errors import RasterizationError
from finocr.utils.logger import get_logger

logger = get_logger(__name__)


class PdfRasterizer:
    """Renders individual PDF pages to image files.

    Args:
        poppler_path: Directory holding the poppler binaries.
            If ``None``, uses PATH.
    """

    def __init__(self, poppler_path: str | None = None) -> None:
        self.poppler_path = poppler_path

    def rasterize_page_to_image(
        self,
        pdf_path: Path,
        page_number: int,
        output_dir: Path,
        dpi: int = 300,
    ) -> Path:
        """Render one page of a PDF to a PNG file.

        Args:
            pdf_path: Path to the PDF file.
            page_number: 1-based page number to render.
            output_dir: Directory that receives the image.
            dpi: Rendering resolution.

        Returns:
            Path of the rendered PNG file.

        Raises:
            RasterizationError: If rendering fails or produces no file.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        stem = f"page-{page_number}"
        image_path = output_dir / f"{stem}.png"

        try:
            convert_from_path(
                str(pdf_path),
                dpi=dpi,
                first_page=page_number,
                last_page=page_number,
                output_folder=str(output_dir),
                output_file=stem,
                fmt="png",
                single_file=True,
                paths_only=True,
                poppler_path=self.poppler_path,
            )
        except Exception as exc:
            raise RasterizationError(
                f"Rendering page {page_number} of {pdf_path} failed: {exc}",
                page_number,
            ) from exc

        # pdftoppm can exit cleanly without writing anything.
        if not image_path.exists():
            raise RasterizationError(
                f"Rasterization failed: image file not found at {image_path}",
                page_number,
            )

        logger.debug("Rasterized page %d at %d DPI to %s", page_number, dpi, image_path)
        return image_path
