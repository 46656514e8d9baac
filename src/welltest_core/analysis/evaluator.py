"""
Model evaluation: pressure change and log-time derivative for any registered model.
"""

import math
from collections.abc import Mapping

import numpy as np

from welltest_core import config
from welltest_core.analysis.derivative import bourdet_derivative
from welltest_core.analysis.models import ModelRegistry, get_model
from welltest_core.errors import InvalidInputError
from welltest_core.types.analysis import ModelCurve, ModelIdentifier, ModelSpec


def _validate_times(times) -> np.ndarray:
    t = np.asarray(times, dtype=np.float64)
    if t.ndim != 1:
        raise InvalidInputError("times must be a one-dimensional array")
    if t.size and (not np.all(np.isfinite(t)) or np.any(t <= 0)):
        raise InvalidInputError("times must be finite and strictly positive")
    return t


def resolve_parameters(spec: ModelSpec, params: Mapping[str, float]) -> dict[str, float]:
    """Pick the model's parameters out of ``params``; extra keys are ignored."""
    missing = [name for name in spec.parameter_names if name not in params]
    if missing:
        raise InvalidInputError(
            f"Model '{spec.identifier.value}' requires parameters: {', '.join(missing)}"
        )
    values = {name: float(params[name]) for name in spec.parameter_names}
    bad = [name for name, value in values.items() if not math.isfinite(value)]
    if bad:
        raise InvalidInputError(f"Non-finite values for parameters: {', '.join(bad)}")
    return values


def model_grid(
    times: np.ndarray,
    points_per_cycle: int | None = None,
    padding: float | None = None,
) -> np.ndarray:
    """Dense log-spaced grid covering ``times`` with ``padding`` log cycles either side."""
    if points_per_cycle is None:
        points_per_cycle = config.MODEL_POINTS_PER_CYCLE
    padding = config.MODEL_GRID_PADDING if padding is None else padding

    lo = math.log10(float(times.min())) - padding
    hi = math.log10(float(times.max())) + padding
    n_points = max(int(math.ceil((hi - lo) * points_per_cycle)) + 1, 3)
    return np.logspace(lo, hi, n_points)


def _bourdet_on_grid(
    spec: ModelSpec, values: dict[str, float], t: np.ndarray, spacing: float
) -> np.ndarray:
    grid = model_grid(t)
    grid_pressure = spec.pressure(grid, values)
    grid_derivative = bourdet_derivative(grid, grid_pressure, spacing)
    return np.interp(np.log(t), np.log(grid), grid_derivative)


def evaluate_model(
    model: ModelIdentifier | str,
    params: Mapping[str, float],
    times,
    *,
    registry: ModelRegistry | None = None,
    spacing: float | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Evaluate a model's pressure change and derivative at ``times``.

    Models without a closed-form derivative get a Bourdet derivative taken on
    a dense log grid around ``times`` and interpolated back onto them.

    Args:
        model: Model identifier
        params: Parameter values by name; keys the model does not use are ignored
        times: Positive elapsed times in hours
        registry: Model registry (defaults to the built-in one)
        spacing: Bourdet spacing for the model curve (``config.MODEL_SPACING``)

    Returns:
        Tuple of (pressure, derivative), each the same length as ``times``

    Raises:
        InvalidInputError: On non-positive times, unknown model or missing parameters
    """
    spec = get_model(model, registry)
    t = _validate_times(times)
    values = resolve_parameters(spec, params)
    spacing = config.MODEL_SPACING if spacing is None else spacing

    if t.size == 0:
        return np.array([], dtype=np.float64), np.array([], dtype=np.float64)

    pressure = np.asarray(spec.pressure(t, values), dtype=np.float64)
    if spec.derivative is not None:
        derivative = np.asarray(spec.derivative(t, values), dtype=np.float64)
    else:
        derivative = _bourdet_on_grid(spec, values, t, spacing)
    return pressure, derivative


def evaluate_curve(
    model: ModelIdentifier | str,
    params: Mapping[str, float],
    times,
    *,
    registry: ModelRegistry | None = None,
    spacing: float | None = None,
) -> ModelCurve:
    """Same as evaluate_model but bundled with its time vector."""
    pressure, derivative = evaluate_model(
        model, params, times, registry=registry, spacing=spacing
    )
    return ModelCurve(
        time=np.array(times, dtype=np.float64), pressure=pressure, derivative=derivative
    )
