"""
Levenberg-Marquardt fitting of well-test models to observed pressure data.

Uses damped least squares with a diagonal (Marquardt) damping term, hard
clamping to parameter bounds, and a bounded retry loop for rejected steps.
"""

import logging
import math
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, fields, replace
from typing import Any

import numpy as np

from welltest_core import config
from welltest_core.analysis.evaluator import evaluate_model, resolve_parameters
from welltest_core.analysis.linalg import PIVOT_TOLERANCE, solve_linear_system
from welltest_core.analysis.models import ModelRegistry, get_model
from welltest_core.analysis.residuals import (
    compute_jacobian,
    residuals_from_curve,
    sum_squared_error,
)
from welltest_core.errors import InvalidInputError, SingularMatrixError
from welltest_core.types.analysis import (
    FitParam,
    FitResult,
    IterationEvent,
    ModelIdentifier,
    ObservedDataset,
    OptimizerState,
    ResidualScale,
    StopReason,
)

logger = logging.getLogger(__name__)

# Denominator floor of the relative parameter step tested against xtol
_STEP_FLOOR = 1e-8


@dataclass(frozen=True)
class LMOptions:
    """Tuning knobs for the Levenberg-Marquardt loop.

    Attributes:
        max_iterations: Cap on accepted iterations
        max_retries: Cap on rejected attempts within one iteration
        initial_damping: Starting damping factor (lambda)
        damping_factor: Multiplier applied on rejection, divisor on acceptance
        min_damping, max_damping: Clamp range for lambda
        ftol: Relative SSE improvement below which the fit has converged
        xtol: Relative parameter step below which the fit has converged
        fd_rel_step: Relative finite-difference step for the Jacobian
        fd_min_scale: Absolute magnitude floor for the finite-difference step
        stall_ratio: When no attempted step improves the SSE, the run still
            counts as converged if the SSE has fallen to this fraction of its
            starting value; otherwise it ends STALLED unless the last step was
            below xtol
        pivot_tol: Relative pivot threshold of the linear solver
        residual_scale: Linear or log10 residuals
        spacing: Bourdet spacing for model curves (None: config default)
        observed_spacing: Bourdet spacing used when the dataset has no derivative
        smooth_factor: Smoothing applied to a derivative computed here
    """

    max_iterations: int = 100
    max_retries: int = 10
    initial_damping: float = 1e-3
    damping_factor: float = 10.0
    min_damping: float = 1e-12
    max_damping: float = 1e12
    ftol: float = 1e-10
    xtol: float = 1e-10
    fd_rel_step: float = 1e-4
    fd_min_scale: float = 1e-8
    stall_ratio: float = 1e-8
    pivot_tol: float = PIVOT_TOLERANCE
    residual_scale: ResidualScale = ResidualScale.LINEAR
    spacing: float | None = None
    observed_spacing: float | None = None
    smooth_factor: float | None = None

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> "LMOptions":
        """Build options from a plain mapping (e.g. a YAML section)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(settings) - known)
        if unknown:
            logger.warning("Ignoring unknown optimizer settings: %s", ", ".join(unknown))
        values = {key: value for key, value in settings.items() if key in known}
        if "residual_scale" in values:
            values["residual_scale"] = ResidualScale(values["residual_scale"])
        return cls(**values)


IterationCallback = Callable[[IterationEvent], None]


def ensure_derivative(dataset: ObservedDataset, options: LMOptions) -> ObservedDataset:
    """Return ``dataset`` with a derivative, computing the Bourdet one if absent."""
    if dataset.derivative is not None:
        return dataset
    spacing = config.BOURDET_SPACING if options.observed_spacing is None else options.observed_spacing
    smooth = config.SMOOTH_FACTOR if options.smooth_factor is None else options.smooth_factor
    return dataset.with_derivative(spacing, smooth)


def validate_fit_request(
    model: ModelIdentifier | str,
    dataset: ObservedDataset,
    params: Sequence[FitParam],
    weight: float,
    registry: ModelRegistry | None = None,
) -> None:
    """Reject a fit request before any background work starts.

    Raises:
        InvalidInputError: Unknown model, bad bounds, duplicate or missing
            parameters, nothing to fit, or an invalid weight
    """
    spec = get_model(model, registry)
    if not isinstance(dataset, ObservedDataset):
        raise InvalidInputError("dataset must be an ObservedDataset")

    names = [param.name for param in params]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise InvalidInputError(f"Duplicate parameters: {', '.join(duplicates)}")
    for param in params:
        param.validate()
    resolve_parameters(spec, {param.name: param.value for param in params})

    n_fitted = sum(1 for param in params if param.fit)
    if n_fitted == 0:
        raise InvalidInputError("No parameters selected for fitting")
    if 2 * len(dataset) < n_fitted:
        raise InvalidInputError(
            f"{len(dataset)} observations cannot determine {n_fitted} parameters"
        )
    if not math.isfinite(weight) or weight < 0:
        raise InvalidInputError(f"Derivative weight must be finite and >= 0, got {weight}")


def _relative_step(candidate: np.ndarray, x: np.ndarray) -> float:
    if x.size == 0:
        return 0.0
    return float(np.max(np.abs(candidate - x) / np.maximum(np.abs(x), _STEP_FLOOR)))


class LevenbergMarquardt:
    """Levenberg-Marquardt optimizer over a model registry."""

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        options: LMOptions | None = None,
    ) -> None:
        self._registry = registry
        self._options = options if options is not None else config.lm_options_from_config()
        self._state = OptimizerState.INITIALIZED

    @property
    def options(self) -> LMOptions:
        return self._options

    @property
    def state(self) -> OptimizerState:
        return self._state

    # ------------------------------------------------------------------------
    # EVALUATION HELPERS
    # ------------------------------------------------------------------------
    def _evaluate(
        self,
        model: ModelIdentifier,
        values: dict[str, float],
        dataset: ObservedDataset,
        weight: float,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        pressure, derivative = evaluate_model(
            model, values, dataset.time, registry=self._registry, spacing=self._options.spacing
        )
        residuals = residuals_from_curve(
            pressure, derivative, dataset, weight, scale=self._options.residual_scale
        )
        return pressure, derivative, residuals

    def _damped_step(
        self, jacobian: np.ndarray, residuals: np.ndarray, damping: float
    ) -> np.ndarray:
        """Solve (J^T J + lambda diag(J^T J)) delta = -J^T r.

        The system is symmetrically scaled by diag(J^T J)^-1/2 before the
        solve so the pivot test does not depend on parameter units.
        """
        jtj = jacobian.T @ jacobian
        gradient = jacobian.T @ residuals
        diagonal = np.diag(jtj).copy()
        scale = np.ones_like(diagonal)
        positive = diagonal > 0
        scale[positive] = 1.0 / np.sqrt(diagonal[positive])

        damped = jtj + damping * np.diag(diagonal)
        scaled = damped * scale[:, None] * scale[None, :]
        solution = solve_linear_system(
            scaled, -gradient * scale, pivot_tol=self._options.pivot_tol
        )
        return solution * scale

    # ------------------------------------------------------------------------
    # MAIN LOOP
    # ------------------------------------------------------------------------
    def fit(
        self,
        model: ModelIdentifier | str,
        dataset: ObservedDataset,
        params: Sequence[FitParam],
        weight: float = 1.0,
        *,
        cancel_event: threading.Event | None = None,
        on_iteration: IterationCallback | None = None,
        run_id: int = 0,
    ) -> FitResult:
        """Fit the ``fit=True`` parameters of ``params`` to ``dataset``.

        Args:
            model: Model identifier
            dataset: Observed data; a Bourdet derivative is computed if missing
            params: Full parameter list (not modified)
            weight: Weight of derivative residuals relative to pressure residuals
            cancel_event: Checked before every iteration; when set the fit stops
            on_iteration: Called after every accepted iteration
            run_id: Identifier copied into iteration events

        Returns:
            FitResult with the best parameters found
        """
        opts = self._options
        spec = get_model(model, self._registry)
        identifier = spec.identifier
        validate_fit_request(identifier, dataset, params, weight, self._registry)

        self._state = OptimizerState.INITIALIZED
        dataset = ensure_derivative(dataset, opts)
        current = [replace(param) for param in params]
        fitted = [i for i, param in enumerate(current) if param.fit]
        lower = np.array([current[i].lb for i in fitted])
        upper = np.array([current[i].ub for i in fitted])

        values = {param.name: float(param.value) for param in current}
        _, _, residuals = self._evaluate(identifier, values, dataset, weight)
        sse = sum_squared_error(residuals)
        if not math.isfinite(sse):
            raise InvalidInputError(
                f"Model '{identifier.value}' cannot be evaluated at the initial parameters"
            )

        logger.info(
            "Starting LM fit: model=%s, fitted=%s, points=%d, weight=%g, initial SSE=%.6g",
            identifier.value,
            [current[i].name for i in fitted],
            len(dataset),
            weight,
            sse,
        )

        self._state = OptimizerState.ITERATING
        damping = opts.initial_damping
        history = [sse]
        iteration = 0
        reason: StopReason

        while True:
            if cancel_event is not None and cancel_event.is_set():
                reason = StopReason.CANCELLED
                break
            if iteration >= opts.max_iterations:
                reason = StopReason.MAX_ITERATIONS
                break

            jacobian = compute_jacobian(
                identifier,
                current,
                residuals,
                dataset,
                weight,
                registry=self._registry,
                scale=opts.residual_scale,
                spacing=opts.spacing,
                rel_step=opts.fd_rel_step,
                min_scale=opts.fd_min_scale,
            )
            x = np.array([current[i].value for i in fitted], dtype=np.float64)

            accepted = None
            singular = False
            last_step = math.inf
            cancelled = False
            for attempt in range(opts.max_retries):
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
                try:
                    delta = self._damped_step(jacobian, residuals, damping)
                except SingularMatrixError as exc:
                    singular = True
                    logger.debug("Singular system at lambda=%.3e: %s", damping, exc)
                    damping = min(damping * opts.damping_factor, opts.max_damping)
                    continue
                singular = False

                candidate = np.clip(x + delta, lower, upper)
                last_step = _relative_step(candidate, x)
                trial = dict(values)
                for i, value in zip(fitted, candidate):
                    trial[current[i].name] = float(value)
                pressure, derivative, trial_residuals = self._evaluate(
                    identifier, trial, dataset, weight
                )
                trial_sse = sum_squared_error(trial_residuals)

                if trial_sse < sse:
                    accepted = (candidate, trial, pressure, derivative, trial_residuals, trial_sse)
                    damping = max(damping / opts.damping_factor, opts.min_damping)
                    break

                logger.debug(
                    "Iteration %d attempt %d rejected: SSE %.6g >= %.6g, lambda -> %.3e",
                    iteration + 1,
                    attempt + 1,
                    trial_sse,
                    sse,
                    min(damping * opts.damping_factor, opts.max_damping),
                )
                damping = min(damping * opts.damping_factor, opts.max_damping)

            if cancelled:
                reason = StopReason.CANCELLED
                break
            if accepted is None:
                if singular:
                    reason = StopReason.SINGULAR_JACOBIAN
                elif last_step < opts.xtol or sse <= opts.stall_ratio * history[0]:
                    # Steps blocked by bounds, or an SSE already at its floor
                    reason = StopReason.CONVERGED
                else:
                    logger.warning(
                        "No improving step found after %d attempts at SSE=%.6g",
                        opts.max_retries,
                        sse,
                    )
                    reason = StopReason.STALLED
                break

            candidate, trial, pressure, derivative, trial_residuals, trial_sse = accepted
            for i, value in zip(fitted, candidate):
                current[i].value = float(value)
            values = trial
            residuals = trial_residuals
            improvement = (sse - trial_sse) / sse if sse > 0 else 0.0
            step = last_step
            sse = trial_sse
            history.append(sse)
            iteration += 1

            logger.debug(
                "Iteration %d accepted: SSE=%.6g, improvement=%.3e, lambda=%.3e",
                iteration,
                sse,
                improvement,
                damping,
            )

            if on_iteration is not None:
                on_iteration(
                    IterationEvent(
                        run_id=run_id,
                        iteration=iteration,
                        sse=sse,
                        parameters=dict(values),
                        time=np.array(dataset.time),
                        pressure=np.array(pressure),
                        derivative=np.array(derivative),
                    )
                )

            if sse == 0.0 or improvement < opts.ftol or step < opts.xtol:
                reason = StopReason.CONVERGED
                break

        self._state = {
            StopReason.CONVERGED: OptimizerState.CONVERGED,
            StopReason.MAX_ITERATIONS: OptimizerState.MAX_ITERATIONS_REACHED,
            StopReason.CANCELLED: OptimizerState.CANCELLED,
            StopReason.SINGULAR_JACOBIAN: OptimizerState.FAILED,
            StopReason.STALLED: OptimizerState.FAILED,
        }[reason]

        logger.info(
            "LM fit finished: model=%s, reason=%s, iterations=%d, SSE=%.6g",
            identifier.value,
            reason.value,
            iteration,
            sse,
        )

        return FitResult(
            model=identifier,
            parameters=dict(values),
            sum_squared_error=sse,
            iteration_count=iteration,
            converged=reason is StopReason.CONVERGED,
            stopped_reason=reason,
            sse_history=tuple(history),
        )
