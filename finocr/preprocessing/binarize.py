"""Greyscale, contrast normalization, and binarization for page images.

Grayscale conversion and a min-max contrast stretch run on every OCR
image; Otsu thresholding is optional.
"""

import cv2
import numpy as np

from finocr.utils.logger import get_logger

logger = get_logger(__name__)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an image to grayscale if it has color channels.

    Args:
        image: Input image (RGB, RGBA, or grayscale).

    Returns:
        Grayscale image.
    """
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    return image


def normalize_contrast(image: np.ndarray) -> np.ndarray:
    """Stretch pixel intensities to span the full 0-255 range.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Contrast-normalized grayscale image. A flat image is returned as is.
    """
    gray = to_gray(image)
    if gray.min() == gray.max():
        return gray
    result = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)
    logger.debug("Normalized contrast from [%d, %d]", gray.min(), gray.max())
    return result.astype(np.uint8)


def binarize_otsu(image: np.ndarray) -> np.ndarray:
    """Binarize an image using Otsu's automatic global threshold.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Binary image with pixel values 0 or 255.
    """
    gray = to_gray(image)
    threshold, binary = cv2.threshold(
        gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU
    )
    logger.debug("Applied Otsu binarization (threshold=%.0f)", threshold)
    return binary
