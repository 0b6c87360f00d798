"""Digital-versus-OCR decisions for a single page."""

from dataclasses import dataclass

from finocr.utils.config import OcrFallback

from .pdf_text import collapse_whitespace


@dataclass
class TextChoice:
    """Text selected for a page and the confidence label that goes with it."""

    text: str
    source: str
    confidence: str


def needs_ocr(is_digital: bool, fallback: OcrFallback | str) -> bool:
    """Decide whether a page must be OCR'd.

    Pages without trustworthy digital text are always OCR'd. Digital pages
    are OCR'd only when the fallback policy is ``always`` or
    ``prefer-longer``.
    """
    if not is_digital:
        return True
    return OcrFallback(fallback) is not OcrFallback.WHEN_EMPTY


def choose_text(
    digital_text: str,
    ocr_text: str,
    fallback: OcrFallback | str,
    threshold: int,
    ratio: float = 0.8,
) -> TextChoice:
    """Pick between digital and OCR text once OCR has run.

    Under ``prefer-longer`` the digital text wins when its collapsed
    length exceeds ``ratio`` of the collapsed OCR length and also exceeds
    ``threshold``. Every other policy keeps the OCR text.

    Args:
        digital_text: Text from the PDF text layer.
        ocr_text: Text recognized by OCR.
        fallback: Fallback policy in effect.
        threshold: Digital-text character threshold.
        ratio: Fraction of the OCR length the digital text must exceed.

    Returns:
        The chosen text, its source, and a ``high``/``ocr`` label.
    """
    if OcrFallback(fallback) is OcrFallback.PREFER_LONGER:
        digital_len = len(collapse_whitespace(digital_text))
        ocr_len = len(collapse_whitespace(ocr_text))
        if digital_len > ocr_len * ratio and digital_len > threshold:
            return TextChoice(text=digital_text, source="digital", confidence="high")
    return TextChoice(text=ocr_text, source="ocr", confidence="ocr")
