"""Scoped temporary storage for extraction jobs.

A process-wide base directory holds one uniquely named directory per
extraction call. The base directory is created by ``start()`` and removed
by ``shutdown()``, which is also registered as an exit hook, on SIGINT and
SIGTERM, and on uncaught exceptions. Those hooks are a last-resort safety
net; each job still removes its own directory when it finishes.
"""

import atexit
import os
import shutil
import signal
import sys
import tempfile
import threading
import uuid
from pathlib import Path
from types import FrameType, TracebackType

from finocr.utils.logger import get_logger

logger = get_logger(__name__)

_HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class TempFileManager:
    """Owns the base temp directory and hands out per-job directories.

    Args:
        base_dir: Base directory to use. A fresh ``finocr-*`` directory
            under the system temp location is created when ``None``.
        register_hooks: Install exit, signal, and excepthook handlers
            on ``start()``.
    """

    def __init__(
        self, base_dir: Path | str | None = None, register_hooks: bool = True
    ) -> None:
        self._configured_dir = Path(base_dir) if base_dir else None
        self.register_hooks = register_hooks
        self.base_dir: Path | None = None
        self._lock = threading.RLock()
        self._hooks_installed = False
        self._previous_handlers: dict[int, object] = {}
        self._previous_excepthook = None

    @property
    def started(self) -> bool:
        return self.base_dir is not None

    def start(self) -> "TempFileManager":
        """Create the base directory and register shutdown hooks.

        Calling ``start()`` on a started manager is a no-op.
        """
        with self._lock:
            if self.base_dir is not None:
                return self
            if self._configured_dir is not None:
                self._configured_dir.mkdir(parents=True, exist_ok=True)
                self.base_dir = self._configured_dir
            else:
                self.base_dir = Path(tempfile.mkdtemp(prefix="finocr-"))
            if self.register_hooks:
                self._install_hooks()
        logger.debug("Temporary base directory: %s", self.base_dir)
        return self

    def create_job_temp_dir(self) -> Path:
        """Create a fresh, uniquely named directory for one extraction job.

        Returns:
            Path of the created directory.

        Raises:
            RuntimeError: If the manager has not been started.
        """
        if self.base_dir is None:
            raise RuntimeError("TempFileManager.start() must be called first")
        job_dir = self.base_dir / uuid.uuid4().hex
        job_dir.mkdir(parents=True)
        logger.debug("Created job temporary directory: %s", job_dir)
        return job_dir

    def create_temp_file_path(
        self, job_dir: Path, prefix: str = "temp", extension: str = ""
    ) -> Path:
        """Generate a collision-free file path inside ``job_dir``.

        The file itself is not created.

        Args:
            job_dir: Job directory returned by ``create_job_temp_dir``.
            prefix: Filename prefix.
            extension: File extension, with or without the leading dot.

        Returns:
            Path to a file that does not exist yet.
        """
        if extension and not extension.startswith("."):
            extension = f".{extension}"
        return Path(job_dir) / f"{prefix}-{uuid.uuid4().hex}{extension}"

    def cleanup_job_temp_dir(self, job_dir: Path) -> None:
        """Remove a job directory recursively.

        Idempotent. Removal errors are logged and never raised.
        """
        job_dir = Path(job_dir)
        try:
            if job_dir.exists():
                shutil.rmtree(job_dir)
                logger.debug("Cleaned up job temporary directory: %s", job_dir)
        except OSError as exc:
            logger.error(
                "Error cleaning up job temporary directory %s: %s", job_dir, exc
            )

    def shutdown(self) -> None:
        """Remove the base directory and unregister hooks. Idempotent."""
        with self._lock:
            base_dir, self.base_dir = self.base_dir, None
            self._remove_hooks()
        if base_dir is None:
            return
        try:
            if base_dir.exists():
                shutil.rmtree(base_dir)
                logger.debug("Cleaned up base temporary directory: %s", base_dir)
        except OSError as exc:
            logger.error(
                "Error cleaning up base temporary directory %s: %s", base_dir, exc
            )

    def __enter__(self) -> "TempFileManager":
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()

    def _install_hooks(self) -> None:
        atexit.register(self.shutdown)
        # signal.signal() is only allowed from the main thread.
        if threading.current_thread() is threading.main_thread():
            for signum in _HANDLED_SIGNALS:
                self._previous_handlers[signum] = signal.getsignal(signum)
                signal.signal(signum, self._handle_signal)
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._handle_uncaught
        self._hooks_installed = True

    def _remove_hooks(self) -> None:
        if not self._hooks_installed:
            return
        atexit.unregister(self.shutdown)
        if threading.current_thread() is threading.main_thread():
            for signum, previous in self._previous_handlers.items():
                if signal.getsignal(signum) == self._handle_signal:
                    signal.signal(
                        signum, previous if previous is not None else signal.SIG_DFL
                    )
        self._previous_handlers = {}
        if sys.excepthook == self._handle_uncaught:
            sys.excepthook = self._previous_excepthook or sys.__excepthook__
        self._previous_excepthook = None
        self._hooks_installed = False

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.warning("Received signal %d, removing temporary files", signum)
        previous = self._previous_handlers.get(signum)
        self.shutdown()
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)

    def _handle_uncaught(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        previous = self._previous_excepthook or sys.__excepthook__
        logger.error("Uncaught exception, removing temporary files")
        self.shutdown()
        previous(exc_type, exc, tb)
