"""OCR engine adapters.

The extraction pipeline depends only on ``OcrAdapter``; any engine that
implements ``recognize`` and ``close`` can be swapped in, including
deterministic test doubles.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import pytesseract
from PIL import Image

from finocr.utils.errors import OcrError, OcrTimeoutError
from finocr.utils.logger import get_logger
from finocr.utils.threads import run_blocking

logger = get_logger(__name__)


@dataclass
class OcrOutput:
    """Recognized text and the engine's confidence (0-100) if it reports one."""

    text: str
    confidence: float | None


class OcrAdapter(ABC):
    """Capability interface for OCR engines.

    Implementations must be safe to call concurrently up to the
    configured page concurrency; engines that are not must serialize
    access internally.
    """

    @abstractmethod
    async def recognize(
        self,
        image_path: Path,
        languages: Sequence[str],
        config: str = "",
        timeout: float | None = None,
    ) -> OcrOutput:
        """Recognize text in an image file.

        Args:
            image_path: Page image to read.
            languages: Engine language codes.
            config: Extra engine arguments.
            timeout: Seconds the engine may spend on this call. Engines
                that run out of process must stop their work when it
                passes, not merely stop waiting for it.

        Raises:
            OcrError: If the engine fails.
            OcrTimeoutError: If the engine gives up after ``timeout``.
        """

    async def close(self) -> None:
        """Release engine resources. Stateless engines need not override."""


class TesseractAdapter(OcrAdapter):
    """Tesseract OCR via pytesseract.

    Each call spawns its own ``tesseract`` process, so concurrent calls
    share no state. A per-call ``timeout`` is handed to pytesseract, which
    kills the process when it expires; ``recognize`` does not return
    before that process has exited.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        process_timeout: Seconds before pytesseract kills a stuck
            process when the caller passes no ``timeout``. ``0`` disables
            the limit.
    """

    def __init__(
        self, tesseract_cmd: str | None = None, process_timeout: float = 0
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.process_timeout = process_timeout

    async def recognize(
        self,
        image_path: Path,
        languages: Sequence[str],
        config: str = "",
        timeout: float | None = None,
    ) -> OcrOutput:
        return await run_blocking(
            self.recognize_sync, image_path, languages, config, timeout
        )

    def recognize_sync(
        self,
        image_path: Path,
        languages: Sequence[str],
        config: str = "",
        timeout: float | None = None,
    ) -> OcrOutput:
        """Blocking recognition used by ``recognize`` on a worker thread."""
        lang = "+".join(languages)
        limit = timeout if timeout else self.process_timeout
        try:
            with Image.open(image_path) as image:
                data = pytesseract.image_to_data(
                    image,
                    lang=lang,
                    config=config,
                    output_type=pytesseract.Output.DICT,
                    timeout=limit,
                )
        except (pytesseract.TesseractError, OSError) as exc:
            raise OcrError(f"Tesseract failed on {image_path}: {exc}") from exc
        except RuntimeError as exc:
            # pytesseract reports a killed process as a plain RuntimeError.
            if "timeout" in str(exc).lower():
                raise OcrTimeoutError(
                    f"Tesseract killed on {image_path} after {limit:g} s"
                ) from exc
            raise OcrError(f"Tesseract failed on {image_path}: {exc}") from exc

        text, confidence = _assemble(data)
        logger.debug(
            "Tesseract (%s) read %d chars from %s, confidence %s",
            lang,
            len(text),
            image_path,
            "n/a" if confidence is None else f"{confidence:.1f}",
        )
        return OcrOutput(text=text, confidence=confidence)


def _assemble(data: dict) -> tuple[str, float | None]:
    """Rebuild line-structured text and mean word confidence from image_to_data."""
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []

    texts = data.get("text", [])
    par_nums = data.get("par_num") or [0] * len(texts)

    for i, raw_text in enumerate(texts):
        word = str(raw_text).strip()
        if not word:
            continue
        key = (
            int(data["block_num"][i]),
            int(par_nums[i]),
            int(data["line_num"][i]),
        )
        lines.setdefault(key, []).append(word)
        conf = float(data["conf"][i])
        if conf >= 0:
            confidences.append(conf)

    text = "\n".join(" ".join(words) for words in lines.values())
    confidence = sum(confidences) / len(confidences) if confidences else None
    return text, confidence
