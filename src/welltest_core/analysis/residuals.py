"""
Weighted residual vector and finite-difference Jacobian for model fitting.
"""

import math
from collections.abc import Mapping, Sequence

import numpy as np

from welltest_core.analysis.evaluator import evaluate_model
from welltest_core.analysis.models import ModelRegistry
from welltest_core.types.analysis import (
    FitParam,
    ModelIdentifier,
    ObservedDataset,
    ResidualScale,
)

# Floor used before taking log10 of model values in ResidualScale.LOG
LOG_FLOOR = 1e-30


def _differences(
    model_values: np.ndarray, observed: np.ndarray, scale: ResidualScale
) -> np.ndarray:
    if scale is ResidualScale.LOG:
        diff = np.zeros_like(observed)
        valid = observed > 0
        diff[valid] = np.log10(np.maximum(model_values[valid], LOG_FLOOR)) - np.log10(
            observed[valid]
        )
        # Propagate non-finite model output so the step is rejected
        diff[~np.isfinite(model_values)] = np.nan
        return diff
    return model_values - observed


def compute_residuals(
    model: ModelIdentifier | str,
    params: Mapping[str, float],
    dataset: ObservedDataset,
    weight: float,
    *,
    registry: ModelRegistry | None = None,
    scale: ResidualScale = ResidualScale.LINEAR,
    spacing: float | None = None,
) -> np.ndarray:
    """Pressure residuals followed by weighted derivative residuals.

    Returns ``[p_model - p_obs, weight * (d_model - d_obs)]`` (log10 differences
    under ``ResidualScale.LOG``), length ``2 * len(dataset)``.
    The dataset must carry a derivative.
    """
    pressure, derivative = evaluate_model(
        model, params, dataset.time, registry=registry, spacing=spacing
    )
    return residuals_from_curve(pressure, derivative, dataset, weight, scale=scale)


def residuals_from_curve(
    pressure: np.ndarray,
    derivative: np.ndarray,
    dataset: ObservedDataset,
    weight: float,
    *,
    scale: ResidualScale = ResidualScale.LINEAR,
) -> np.ndarray:
    """Residuals for a model curve already evaluated at ``dataset.time``."""
    if dataset.derivative is None:
        raise ValueError("Observed dataset has no derivative; compute it before fitting")

    scale = ResidualScale(scale)
    pressure_residuals = _differences(pressure, dataset.pressure, scale)
    derivative_residuals = weight * _differences(derivative, dataset.derivative, scale)
    return np.concatenate([pressure_residuals, derivative_residuals])


def sum_squared_error(residuals: np.ndarray) -> float:
    """Sum of squared residuals; ``inf`` when any residual is not finite."""
    if not np.all(np.isfinite(residuals)):
        return float("inf")
    return float(residuals @ residuals)


def bound_scale(param: FitParam) -> float:
    """Smallest non-zero magnitude among the bounds of ``param``, or 0."""
    magnitudes = [abs(b) for b in (param.lb, param.ub) if b != 0.0 and math.isfinite(b)]
    return min(magnitudes, default=0.0)


def finite_difference_step(
    param: FitParam, rel_step: float, min_scale: float
) -> float:
    """Forward-difference step scaled to the parameter magnitude.

    The magnitude is floored by the smaller non-zero bound magnitude (and by
    ``min_scale``), so a parameter sitting at zero, such as skin, still gets
    a step that moves the model above inversion noise.

    The step is flipped backwards when going forward would leave the upper
    bound; if neither direction fits, the larger room within the bounds is used.
    """
    value = float(param.value)
    step = rel_step * max(abs(value), bound_scale(param), min_scale)
    if value + step <= param.ub:
        return step
    if value - step >= param.lb:
        return -step
    room_up = param.ub - value
    room_down = value - param.lb
    return room_up if room_up >= room_down else -room_down


def compute_jacobian(
    model: ModelIdentifier | str,
    params: Sequence[FitParam],
    residuals: np.ndarray,
    dataset: ObservedDataset,
    weight: float,
    *,
    registry: ModelRegistry | None = None,
    scale: ResidualScale = ResidualScale.LINEAR,
    spacing: float | None = None,
    rel_step: float = 1e-4,
    min_scale: float = 1e-8,
) -> np.ndarray:
    """Forward-difference Jacobian with one column per fitted parameter.

    Args:
        model: Model identifier
        params: Full parameter list; only entries with ``fit=True`` get a column
        residuals: Residuals already evaluated at ``params``
        dataset: Observed data (with derivative)
        weight: Derivative residual weight

    Returns:
        Array of shape (len(residuals), number of fitted parameters)
    """
    base = {param.name: float(param.value) for param in params}
    fitted = [param for param in params if param.fit]
    jacobian = np.zeros((residuals.size, len(fitted)), dtype=np.float64)

    for column, param in enumerate(fitted):
        step = finite_difference_step(param, rel_step, min_scale)
        if step == 0.0:
            continue
        perturbed = dict(base)
        perturbed[param.name] = base[param.name] + step
        shifted = compute_residuals(
            model,
            perturbed,
            dataset,
            weight,
            registry=registry,
            scale=scale,
            spacing=spacing,
        )
        jacobian[:, column] = (shifted - residuals) / step

    return jacobian
