"""Deskew correction for scanned page images.

Detects rotational skew from near-horizontal Hough lines and rotates the
page back so text lines are level for OCR.
"""

import cv2
import numpy as np

from finocr.utils.logger import get_logger

from .binarize import to_gray

logger = get_logger(__name__)


def detect_skew_angle(image: np.ndarray, max_angle: float = 45.0) -> float:
    """Detect the skew angle of a page image.

    Only lines within ``max_angle`` degrees of horizontal are considered,
    so table borders and vertical rules do not dominate the estimate.

    Args:
        image: Input image (RGB or grayscale).
        max_angle: Largest absolute line angle, in degrees, to consider.

    Returns:
        Median skew angle in degrees, or 0.0 when no usable lines exist.
    """
    gray = to_gray(image)
    edges = cv2.Canny(gray, 50, 150, apertureSize=3)
    lines = cv2.HoughLinesP(
        edges, 1, np.pi / 180, 100, minLineLength=100, maxLineGap=10
    )

    if lines is None:
        logger.debug("No lines detected for skew estimation")
        return 0.0

    angles = [
        np.degrees(np.arctan2(y2 - y1, x2 - x1)) for x1, y1, x2, y2 in lines[:, 0]
    ]
    angles = [a for a in angles if abs(a) <= max_angle]
    if not angles:
        return 0.0

    median_angle = float(np.median(angles))
    logger.debug("Detected skew angle: %.2f degrees", median_angle)
    return median_angle


def deskew(
    gray: np.ndarray, min_angle: float = 0.5, max_angle: float = 45.0
) -> np.ndarray:
    """Level the text lines of a greyscale page.

    Runs after the greyscale step of the preprocessing pipeline, so only
    single-channel input is accepted. Corners uncovered by the rotation
    are filled with white, which OCR reads as blank paper.

    Args:
        gray: Single-channel page image.
        min_angle: Skew, in degrees, below which the page is returned
            unchanged.
        max_angle: Passed to ``detect_skew_angle``.

    Returns:
        The rotated page, same shape and dtype as ``gray``.

    Raises:
        ValueError: If ``gray`` has more than one channel.
    """
    if gray.ndim != 2:
        raise ValueError(f"deskew expects a greyscale image, got shape {gray.shape}")

    angle = detect_skew_angle(gray, max_angle)
    if abs(angle) < min_angle:
        return gray

    h, w = gray.shape
    matrix = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), angle, 1.0)
    logger.debug("Rotating page by %.2f degrees", angle)
    return cv2.warpAffine(
        gray,
        matrix,
        (w, h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=255,
    )
