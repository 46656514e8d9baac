"""
Background fitting controller: runs the optimizer on a worker thread and
delivers its events in order to the interactive thread.
"""

import logging
import queue
import threading
from collections.abc import Callable, MutableSequence
from dataclasses import dataclass, field, replace
from itertools import count

from welltest_core import config
from welltest_core.analysis.evaluator import evaluate_model
from welltest_core.analysis.models import ModelRegistry, get_model
from welltest_core.analysis.optimizer import (
    LevenbergMarquardt,
    LMOptions,
    ensure_derivative,
    validate_fit_request,
)
from welltest_core.analysis.residuals import residuals_from_curve, sum_squared_error
from welltest_core.errors import InvalidInputError
from welltest_core.types.analysis import (
    FitCompletedEvent,
    FitParam,
    FitResult,
    IterationEvent,
    ModelIdentifier,
    ObservedDataset,
    StopReason,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class FitHandle:
    """Handle of one background fit run."""

    run_id: int
    model: ModelIdentifier
    target: MutableSequence[FitParam]
    cancel_event: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None
    done: bool = False
    result: FitResult | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class FittingController:
    """Owns at most one background fit at a time.

    Events produced on the worker thread go through a FIFO queue and are
    dispatched by :meth:`process_events`, which the interactive thread
    calls from its own loop (or a timer).
    """

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        options: LMOptions | None = None,
    ) -> None:
        self._registry = registry
        self._options = options if options is not None else config.lm_options_from_config()
        self._events: queue.Queue = queue.Queue()
        self._iteration_callbacks: list[Callable[[IterationEvent], None]] = []
        self._completed_callbacks: list[Callable[[FitResult], None]] = []
        self._handles: dict[int, FitHandle] = {}
        self._active: FitHandle | None = None
        self._run_ids = count(1)

    # ------------------------------------------------------------------------
    # CALLBACK REGISTRATION
    # ------------------------------------------------------------------------
    def on_iteration(self, callback: Callable[[IterationEvent], None]) -> None:
        self._iteration_callbacks.append(callback)

    def on_completed(self, callback: Callable[[FitResult], None]) -> None:
        self._completed_callbacks.append(callback)

    # ------------------------------------------------------------------------
    # PROPERTIES
    # ------------------------------------------------------------------------
    @property
    def registry(self) -> ModelRegistry | None:
        return self._registry

    @property
    def options(self) -> LMOptions:
        return self._options

    @property
    def active(self) -> FitHandle | None:
        return self._active

    def is_running(self) -> bool:
        return self._active is not None and not self._active.done

    # ------------------------------------------------------------------------
    # RUN CONTROL
    # ------------------------------------------------------------------------
    def _check_initial_point(
        self,
        model: ModelIdentifier,
        dataset: ObservedDataset,
        params: MutableSequence[FitParam],
        weight: float,
    ) -> None:
        values = {param.name: float(param.value) for param in params}
        pressure, derivative = evaluate_model(
            model,
            values,
            dataset.time,
            registry=self._registry,
            spacing=self._options.spacing,
        )
        residuals = residuals_from_curve(
            pressure, derivative, dataset, weight, scale=self._options.residual_scale
        )
        if sum_squared_error(residuals) == float("inf"):
            raise InvalidInputError(
                f"Model '{model.value}' cannot be evaluated at the initial parameters"
            )

    def start_fit(
        self,
        model: ModelIdentifier | str,
        dataset: ObservedDataset,
        params: MutableSequence[FitParam],
        weight: float = 1.0,
    ) -> FitHandle:
        """Validate the request and start a fit on a background thread.

        Any fit that is still running is cancelled and joined first. The
        worker receives a snapshot of ``params``; fitted values are written
        back into ``params`` when the completion event is processed.

        Raises:
            InvalidInputError: If the request is invalid; no thread is started
        """
        identifier = get_model(model, self._registry).identifier
        validate_fit_request(identifier, dataset, params, weight, self._registry)
        dataset = ensure_derivative(dataset, self._options)
        self._check_initial_point(identifier, dataset, params, weight)

        if self._active is not None and not self._active.done:
            logger.info("Cancelling fit run %d before starting a new one", self._active.run_id)
            self.cancel_fit(self._active)
            if self._active.thread is not None:
                self._active.thread.join()
            # Deliver the cancelled run's completion before the new run starts
            self.process_events()

        handle = FitHandle(run_id=next(self._run_ids), model=identifier, target=params)
        snapshot = [replace(param) for param in params]
        thread = threading.Thread(
            target=self._run,
            args=(handle, dataset, snapshot, float(weight)),
            name=f"welltest-fit-{handle.run_id}",
            daemon=True,
        )
        handle.thread = thread
        self._handles[handle.run_id] = handle
        self._active = handle

        logger.info(
            "Starting fit run %d: model=%s, weight=%g", handle.run_id, identifier.value, weight
        )
        thread.start()
        return handle

    def cancel_fit(self, handle: FitHandle | None = None) -> None:
        """Request cancellation of ``handle`` (default: the active run)."""
        handle = handle or self._active
        if handle is None or handle.done:
            return
        logger.info("Cancellation requested for fit run %d", handle.run_id)
        handle.cancel_event.set()

    def _run(
        self,
        handle: FitHandle,
        dataset: ObservedDataset,
        params: list[FitParam],
        weight: float,
    ) -> None:
        optimizer = LevenbergMarquardt(self._registry, self._options)
        try:
            result = optimizer.fit(
                handle.model,
                dataset,
                params,
                weight,
                cancel_event=handle.cancel_event,
                on_iteration=self._events.put,
                run_id=handle.run_id,
            )
        except Exception as exc:
            logger.exception("Fit run %d failed", handle.run_id)
            result = FitResult(
                model=handle.model,
                parameters={param.name: float(param.value) for param in params},
                sum_squared_error=float("inf"),
                iteration_count=0,
                converged=False,
                stopped_reason=StopReason.FAILED,
                error=str(exc),
            )
        self._events.put(FitCompletedEvent(run_id=handle.run_id, result=result))

    # ------------------------------------------------------------------------
    # EVENT DISPATCH
    # ------------------------------------------------------------------------
    def process_events(self, timeout: float = 0.0) -> int:
        """Dispatch queued events in production order.

        Args:
            timeout: Seconds to wait for the first event when the queue is empty

        Returns:
            Number of events handed to callbacks
        """
        delivered = 0
        block = timeout > 0
        while True:
            try:
                event = self._events.get(block=block, timeout=timeout if block else None)
            except queue.Empty:
                return delivered
            block = False

            handle = self._handles.get(event.run_id)
            if isinstance(event, IterationEvent):
                if handle is None or handle.cancelled:
                    continue
                for callback in self._iteration_callbacks:
                    callback(event)
                delivered += 1
            elif isinstance(event, FitCompletedEvent):
                self._complete(handle, event.result)
                for callback in self._completed_callbacks:
                    callback(event.result)
                delivered += 1

    def _complete(self, handle: FitHandle | None, result: FitResult) -> None:
        if handle is None:
            return
        if handle.thread is not None:
            handle.thread.join()
        handle.result = result
        handle.done = True
        self._handles.pop(handle.run_id, None)

        if result.error is None:
            for param in handle.target:
                if param.fit and param.name in result.parameters:
                    param.value = result.parameters[param.name]

        logger.info(
            "Fit run %d completed: %s after %d iterations (SSE=%.6g)",
            handle.run_id,
            result.stopped_reason.value,
            result.iteration_count,
            result.sum_squared_error,
        )

    def wait(self, handle: FitHandle | None = None, timeout: float | None = None) -> FitResult | None:
        """Process events until ``handle`` completes or ``timeout`` elapses."""
        handle = handle or self._active
        if handle is None:
            return None
        if handle.thread is not None:
            handle.thread.join(timeout)
        # Thread has exited, so the completion event is already queued
        while not handle.done:
            if handle.thread is not None and handle.thread.is_alive():
                break
            if self.process_events() == 0 and self._events.empty():
                break
        return handle.result
