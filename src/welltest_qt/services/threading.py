"""Helpers for running QObject workers in dedicated threads."""

# =============================================================================
# IMPORTS
# =============================================================================

import logging
from typing import Callable

from PySide6.QtCore import QObject, QThread

logger = logging.getLogger(__name__)


# =============================================================================
# WORKER HANDLE
# =============================================================================


class WorkerHandle:
    """Handle for managing a worker running inside a QThread."""

    # ------------------------------------------------------------------------
    # INITIALIZATION
    # ------------------------------------------------------------------------
    def __init__(self, thread: QThread, worker: QObject) -> None:
        self._thread = thread
        self._worker = worker

    # ------------------------------------------------------------------------
    # PROPERTIES
    # ------------------------------------------------------------------------
    @property
    def thread(self) -> QThread:
        """Access to the managed thread."""
        return self._thread

    @property
    def worker(self) -> QObject:
        """Access to the managed worker."""
        return self._worker

    # ------------------------------------------------------------------------
    # WORKER CONTROL
    # ------------------------------------------------------------------------
    def cancel(self) -> None:
        """Ask the worker to stop at its next checkpoint; does not block."""
        cancel = getattr(self._worker, "cancel", None)
        if cancel is not None:
            cancel()

    def wait(self, timeout_ms: int | None = None) -> bool:
        """Block until the thread has finished; False on timeout."""
        try:
            if not self._thread.isRunning():
                return True
            if timeout_ms is None:
                return self._thread.wait()
            return self._thread.wait(timeout_ms)
        except RuntimeError:
            # Underlying QThread already deleted after finishing
            return True

    def stop(self, timeout_ms: int = 5000) -> bool:
        """Cancel the worker and wait for its thread to finish."""
        self.cancel()
        finished = self.wait(timeout_ms)
        if not finished:
            logger.warning("Worker thread did not finish within %d ms", timeout_ms)
        return finished


# =============================================================================
# WORKER MANAGEMENT FUNCTIONS
# =============================================================================


def start_worker(
    worker: QObject,
    start_method: str = "process",
    finished_callback: Callable[[], None] | None = None,
) -> WorkerHandle:
    """Move ``worker`` to a new ``QThread`` and start ``start_method``.

    ``finished_callback`` should be a slot of an object living in the
    caller's thread so that it runs there once the worker thread has ended.
    """
    # Validate start method exists
    if not hasattr(worker, start_method):
        raise AttributeError(f"Worker {worker!r} has no method '{start_method}'")

    thread = QThread()
    thread.setParent(None)
    worker.setParent(None)
    worker.moveToThread(thread)

    # Connect thread started signal to worker method
    thread.started.connect(getattr(worker, start_method))  # type: ignore[arg-type]

    # Connect worker finished signal to thread quit
    if hasattr(worker, "finished"):
        worker.finished.connect(thread.quit)  # type: ignore[attr-defined]

    if finished_callback is not None:
        thread.finished.connect(finished_callback)

    # Set up cleanup connections
    thread.finished.connect(worker.deleteLater)
    thread.finished.connect(thread.deleteLater)

    thread.start()
    return WorkerHandle(thread, worker)
