"""Running blocking calls on worker threads."""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from finocr.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run ``func`` on a worker thread and wait for it even when cancelled.

    A thread started by ``asyncio.to_thread`` cannot be stopped. If the
    awaiting task is cancelled (a per-attempt or document deadline), the
    cancellation is only propagated once the call has returned, so callers
    holding a concurrency slot or a temporary directory never release it
    while work is still running against it. Blocking calls must therefore
    carry their own time limit where one matters.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait([task])
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Cancelled worker call ended with: %s", task.exception())
        raise
