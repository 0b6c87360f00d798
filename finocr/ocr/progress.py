"""Progress reporting over a queue drained by a dedicated task.

Page jobs only enqueue events; a single consumer task delivers them to the
caller's sink. A slow or failing sink therefore never stalls or breaks
page processing.
"""

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from finocr.utils.logger import get_logger

logger = get_logger(__name__)

# Page-local completion at each checkpoint.
STEP_PERCENT: dict[str, int] = {
    "start": 0,
    "digital": 20,
    "rasterized": 40,
    "preprocessed": 60,
    "ocr": 90,
    "done": 100,
    "failed": 100,
}


@dataclass(frozen=True)
class ProgressEvent:
    """One checkpoint in a page's lifecycle."""

    page: int
    step: str
    percent: int
    total_pages: int


class ProgressReporter:
    """Queues progress events and delivers them to a sink in order.

    Without a sink, ``emit`` is a no-op and no task is started.

    Args:
        sink: Callable (or coroutine function) receiving ``ProgressEvent``.
        total_pages: Number of pages in the document.
    """

    def __init__(self, sink: Callable[[ProgressEvent], Any] | None, total_pages: int):
        self.sink = sink
        self.total_pages = total_pages
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self.sink is not None and self._task is None:
            self._task = asyncio.create_task(self._deliver())

    def emit(self, page: int, step: str) -> None:
        """Enqueue a checkpoint event without waiting for delivery."""
        if self._task is None:
            return
        self._queue.put_nowait(
            ProgressEvent(
                page=page,
                step=step,
                percent=STEP_PERCENT[step],
                total_pages=self.total_pages,
            )
        )

    async def aclose(self) -> None:
        """Deliver everything queued so far, then stop the consumer."""
        if self._task is None:
            return
        self._queue.put_nowait(None)
        try:
            await self._task
        finally:
            self._task = None

    async def _deliver(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            try:
                outcome = self.sink(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                logger.warning(
                    "Progress callback failed for page %d (%s): %s",
                    event.page,
                    event.step,
                    exc,
                )
