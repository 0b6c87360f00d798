"""Retry and timeout wrapper around an OCR adapter call."""

import asyncio
from collections.abc import Sequence
from pathlib import Path

from finocr.utils.errors import OcrError, OcrTimeoutError
from finocr.utils.logger import get_logger

from .adapters import OcrAdapter, OcrOutput

logger = get_logger(__name__)


async def recognize_with_retry(
    adapter: OcrAdapter,
    image_path: Path,
    languages: Sequence[str],
    config: str = "",
    timeout_ms: int = 120_000,
    retries: int = 2,
    backoff_ms: int = 1000,
    page_number: int | None = None,
) -> OcrOutput:
    """Run OCR with a per-attempt deadline and linear backoff.

    Makes up to ``retries + 1`` attempts. A timeout counts as a failed
    attempt. Before attempt ``n`` (1-based, n > 1) it waits
    ``backoff_ms * (n - 1)`` milliseconds.

    The deadline is passed to the adapter as well, so the engine stops
    its own work; an attempt only ends once the adapter call has.

    Returns:
        The first successful recognition.

    Raises:
        OcrError: The last failure once every attempt is exhausted.
    """
    attempts = retries + 1
    last_error: OcrError | None = None

    for attempt in range(1, attempts + 1):
        if attempt > 1 and backoff_ms:
            await asyncio.sleep(backoff_ms * (attempt - 1) / 1000)
        try:
            return await asyncio.wait_for(
                adapter.recognize(
                    image_path, languages, config, timeout=timeout_ms / 1000
                ),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            last_error = OcrTimeoutError(
                f"OCR timed out after {timeout_ms} ms", page_number
            )
        except OcrError as exc:
            last_error = exc
        except Exception as exc:
            last_error = OcrError(f"OCR engine error: {exc}", page_number)
            last_error.__cause__ = exc

        logger.warning(
            "OCR attempt %d/%d failed for page %s: %s",
            attempt,
            attempts,
            page_number,
            last_error,
        )

    raise last_error
