"""Controller running well-test fits on a QThread and relaying their progress."""

import logging
import threading
from collections.abc import MutableSequence
from dataclasses import replace
from itertools import count

from PySide6.QtCore import QObject, Signal

from welltest_core import config
from welltest_core.analysis.models import ModelRegistry, get_model
from welltest_core.analysis.optimizer import (
    LevenbergMarquardt,
    LMOptions,
    ensure_derivative,
    validate_fit_request,
)
from welltest_core.types.analysis import (
    FitParam,
    FitResult,
    IterationEvent,
    ModelIdentifier,
    ObservedDataset,
)

from welltest_qt.services import WorkerHandle, start_worker

logger = logging.getLogger(__name__)


class _FitWorker(QObject):
    """Background worker executing one Levenberg-Marquardt fit."""

    iteration_updated = Signal(object)
    finished = Signal()

    def __init__(
        self,
        *,
        run: "_Run",
        model: ModelIdentifier,
        dataset: ObservedDataset,
        params: list[FitParam],
        weight: float,
        registry: ModelRegistry | None,
        options: LMOptions,
    ) -> None:
        super().__init__()
        self._run = run
        self._model = model
        self._dataset = dataset
        self._params = params
        self._weight = weight
        self._registry = registry
        self._options = options
        self._cancel_event = threading.Event()

    @property
    def run_id(self) -> int:
        return self._run.run_id

    def cancel(self) -> None:
        self._cancel_event.set()

    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def process(self) -> None:
        try:
            optimizer = LevenbergMarquardt(self._registry, self._options)
            result = optimizer.fit(
                self._model,
                self._dataset,
                self._params,
                self._weight,
                cancel_event=self._cancel_event,
                on_iteration=self.iteration_updated.emit,
                run_id=self._run.run_id,
            )
            self._run.result = result
        except Exception as exc:
            logger.exception("Unexpected fit worker failure")
            self._run.error = str(exc)
        finally:
            self.finished.emit()


class _Run:
    """Bookkeeping for one worker run; the worker fills in result or error before it finishes."""

    def __init__(self, run_id: int, target: MutableSequence[FitParam]) -> None:
        self.run_id = run_id
        self.target = target
        self.handle: WorkerHandle | None = None
        self.result: FitResult | None = None
        self.error: str | None = None
        self.cancelled = False
        self.finalized = False


class FittingController(QObject):
    """Runs at most one fit at a time and writes results back when it ends.

    Parameter values in the caller's list are updated only after the
    worker thread has finished, on the thread that owns this controller.
    """

    iteration_updated = Signal(object)
    fit_completed = Signal(object)
    fit_failed = Signal(str)
    running_changed = Signal(bool)

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        options: LMOptions | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._registry = registry
        self._options = options if options is not None else config.lm_options_from_config()
        self._runs: dict[int, _Run] = {}
        self._active: _Run | None = None
        self._run_ids = count(1)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def options(self) -> LMOptions:
        return self._options

    def is_running(self) -> bool:
        return self._active is not None and not self._active.finalized

    def start_fit(
        self,
        model: ModelIdentifier | str,
        dataset: ObservedDataset,
        params: MutableSequence[FitParam],
        weight: float = 1.0,
    ) -> int:
        """Validate and start a fit; returns its run id.

        Raises:
            InvalidInputError: If the request is invalid
        """
        identifier = get_model(model, self._registry).identifier
        validate_fit_request(identifier, dataset, params, weight, self._registry)
        dataset = ensure_derivative(dataset, self._options)

        if self.is_running():
            previous = self._active
            logger.info("Cancelling fit run %d before starting a new one", previous.run_id)
            self.cancel_fit()
            if previous.handle is not None:
                previous.handle.wait()
            self._finalize(previous)

        run = _Run(next(self._run_ids), params)
        worker = _FitWorker(
            run=run,
            model=identifier,
            dataset=dataset,
            params=[replace(param) for param in params],
            weight=float(weight),
            registry=self._registry,
            options=self._options,
        )
        worker.iteration_updated.connect(self._on_worker_iteration)

        self._runs[run.run_id] = run
        self._active = run

        run.handle = start_worker(
            worker,
            start_method="process",
            finished_callback=self._on_thread_finished,
        )
        logger.info("Started fit run %d: model=%s", run.run_id, identifier.value)
        self.running_changed.emit(True)
        return run.run_id

    def cancel_fit(self) -> None:
        run = self._active
        if run is None or run.finalized or run.cancelled:
            return
        run.cancelled = True
        if run.handle is not None:
            run.handle.cancel()
        logger.info("Cancellation requested for fit run %d", run.run_id)

    def wait(self, timeout_ms: int | None = None) -> bool:
        """Block until the active worker thread ends and finalize its run."""
        run = self._active
        if run is None or run.finalized:
            return True
        finished = run.handle.wait(timeout_ms) if run.handle is not None else True
        if finished:
            self._finalize(run)
        return finished

    # ------------------------------------------------------------------
    # Worker callbacks
    # ------------------------------------------------------------------
    def _on_worker_iteration(self, event: IterationEvent) -> None:
        run = self._runs.get(event.run_id)
        if run is None or run.cancelled or run.finalized:
            return
        self.iteration_updated.emit(event)

    def _on_thread_finished(self) -> None:
        for run in list(self._runs.values()):
            if run.handle is not None and run.handle.wait(0):
                self._finalize(run)

    def _finalize(self, run: _Run) -> None:
        if run.finalized:
            return
        if run.result is None and run.error is None:
            # Thread ended but its queued outcome has not arrived yet
            return
        run.finalized = True
        self._runs.pop(run.run_id, None)

        if run.result is not None:
            for param in run.target:
                if param.fit and param.name in run.result.parameters:
                    param.value = run.result.parameters[param.name]
            logger.info(
                "Fit run %d completed: %s after %d iterations",
                run.run_id,
                run.result.stopped_reason.value,
                run.result.iteration_count,
            )
            self.fit_completed.emit(run.result)
        else:
            self.fit_failed.emit(run.error or "Fit failed")

        if run is self._active:
            self.running_changed.emit(False)
