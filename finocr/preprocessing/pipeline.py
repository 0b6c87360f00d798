"""OCR-oriented image preprocessing pipeline.

Applies a fixed sequence of transforms to a page image file: resolution
upscaling, enlargement, greyscale, optional deskew, contrast
normalization, and optional binarization, then writes the result as PNG.
"""

from collections.abc import Callable
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from finocr.utils.config import PreprocessingConfig
from finocr.utils.errors import PreprocessingError
from finocr.utils.logger import get_logger

from .binarize import binarize_otsu, normalize_contrast, to_gray
from .deskew import deskew

logger = get_logger(__name__)

# Density assumed for images that record none, as image viewers do.
DEFAULT_SOURCE_DPI = 72.0


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Contrast score (higher means more contrast).
    """
    return float(to_gray(image).std())


def read_density(image: Image.Image) -> float | None:
    """Return the horizontal DPI recorded in an image, if any."""
    dpi = image.info.get("dpi")
    if not dpi:
        return None
    density = float(dpi[0])
    return density if density > 0 else None


def _resize(image: np.ndarray, factor: float) -> np.ndarray:
    h, w = image.shape[:2]
    size = (max(1, round(w * factor)), max(1, round(h * factor)))
    return cv2.resize(image, size, interpolation=cv2.INTER_LANCZOS4)


class ImagePreprocessor:
    """Prepares page images for OCR.

    Args:
        deskew_fn: Deskew implementation, called with the greyscale page
            and the configured minimum and maximum angles. When ``None``,
            a requested deskew is skipped with a warning.
    """

    def __init__(
        self,
        deskew_fn: Callable[[np.ndarray, float, float], np.ndarray] | None = deskew,
    ) -> None:
        self.deskew_fn = deskew_fn

    @property
    def deskew_available(self) -> bool:
        return self.deskew_fn is not None

    def preprocess_image(
        self,
        input_path: Path,
        output_path: Path,
        options: PreprocessingConfig | None = None,
        target_dpi: int | None = None,
        source_dpi: float | None = None,
    ) -> Path:
        """Run the preprocessing pipeline on an image file.

        Args:
            input_path: Source image.
            output_path: Destination PNG path.
            options: Enlargement, deskew, and binarization settings.
            target_dpi: Upscale images whose density is below this value.
            source_dpi: Known density of the source, overriding the value
                recorded in the file. Without either, the image is taken
                to be ``DEFAULT_SOURCE_DPI``.

        Returns:
            ``output_path``.

        Raises:
            PreprocessingError: If the image cannot be read, transformed,
                or written.
        """
        options = options or PreprocessingConfig()
        try:
            with Image.open(input_path) as pil_image:
                density = (
                    source_dpi or read_density(pil_image) or DEFAULT_SOURCE_DPI
                )
                image = np.array(pil_image.convert("RGB"))
        except OSError as exc:
            raise PreprocessingError(f"Cannot read image {input_path}: {exc}") from exc

        contrast_before = calculate_contrast(image)
        try:
            result, density = self._apply(image, options, target_dpi, density)
            save_kwargs = {"dpi": (round(density), round(density))} if density else {}
            Image.fromarray(result).save(output_path, format="PNG", **save_kwargs)
        except (cv2.error, OSError, ValueError) as exc:
            raise PreprocessingError(
                f"Preprocessing {input_path} failed: {exc}"
            ) from exc

        logger.debug(
            "Preprocessed %s -> %s: contrast %.1f->%.1f",
            input_path,
            output_path,
            contrast_before,
            calculate_contrast(result),
        )
        return Path(output_path)

    def _apply(
        self,
        image: np.ndarray,
        options: PreprocessingConfig,
        target_dpi: int | None,
        density: float | None,
    ) -> tuple[np.ndarray, float | None]:
        result = image

        if target_dpi and density and density < target_dpi:
            logger.debug("Resampling image from %.0f to %d DPI", density, target_dpi)
            result = _resize(result, target_dpi / density)
            density = float(target_dpi)

        if options.enlarge_factor > 1:
            logger.debug("Enlarging image by factor %.2f", options.enlarge_factor)
            result = _resize(result, options.enlarge_factor)
            if density:
                density *= options.enlarge_factor

        result = to_gray(result)

        if options.deskew:
            if self.deskew_fn is None:
                logger.warning(
                    "Deskew requested but no deskew step is configured; skipping"
                )
            else:
                result = self.deskew_fn(
                    result, options.deskew_min_angle, options.deskew_max_angle
                )

        result = normalize_contrast(result)

        if options.binarize:
            result = binarize_otsu(result)

        return result, density
