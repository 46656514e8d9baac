"""
Bourdet pressure derivative and the smoothing pass applied after it.
"""

import logging

import numpy as np
import pandas as pd

from welltest_core.errors import InvalidInputError

logger = logging.getLogger(__name__)


def bourdet_derivative(
    time: np.ndarray, pressure: np.ndarray, spacing: float
) -> np.ndarray:
    """Log-time derivative dP/d(ln t) using the Bourdet three-point scheme.

    For each interior point the left neighbour is the closest earlier point at
    least ``spacing`` away in ln t (the first point when none is that far), and
    the right neighbour likewise towards later times (the last point when
    none). The backward and forward slopes are combined with weights equal to
    the opposite log interval. The first and last points use the one-sided
    forward and backward slope.

    Args:
        time: Strictly increasing positive times
        pressure: Pressure change at each time
        spacing: Minimum neighbour distance in natural-log time units

    Returns:
        Derivative array with the same length as ``time``; empty when fewer
        than two points are given
    """
    t = np.asarray(time, dtype=np.float64)
    p = np.asarray(pressure, dtype=np.float64)
    if t.shape != p.shape:
        raise InvalidInputError(
            f"time and pressure lengths differ ({t.size} != {p.size})"
        )
    n = t.size
    if n < 2:
        return np.array([], dtype=np.float64)
    if np.any(t <= 0):
        raise InvalidInputError("Bourdet derivative requires positive times")
    spacing = max(float(spacing), 0.0)

    x = np.log(t)
    idx = np.arange(n)
    left = np.searchsorted(x, x - spacing, side="right") - 1
    left = np.clip(np.minimum(left, idx - 1), 0, n - 1)
    right = np.searchsorted(x, x + spacing, side="left")
    right = np.clip(np.maximum(right, idx + 1), 0, n - 1)

    derivative = np.empty(n, dtype=np.float64)

    # One-sided slopes at the ends
    derivative[0] = (p[right[0]] - p[0]) / (x[right[0]] - x[0])
    derivative[-1] = (p[-1] - p[left[-1]]) / (x[-1] - x[left[-1]])

    if n > 2:
        i = idx[1:-1]
        dx_left = x[i] - x[left[i]]
        dx_right = x[right[i]] - x[i]
        slope_left = (p[i] - p[left[i]]) / dx_left
        slope_right = (p[right[i]] - p[i]) / dx_right
        derivative[1:-1] = (slope_left * dx_right + slope_right * dx_left) / (
            dx_left + dx_right
        )

    return derivative


def smooth_derivative(derivative: np.ndarray, factor: float) -> np.ndarray:
    """Centered moving average over ``int(factor)`` samples.

    The window shrinks at both ends so the output keeps the input length.
    A factor of 1 or less returns an unchanged copy.
    """
    values = np.asarray(derivative, dtype=np.float64)
    window = int(factor) if np.isfinite(factor) else 1
    if window <= 1 or values.size == 0:
        return values.copy()

    window = min(window, values.size)
    smoothed = pd.Series(values).rolling(window=window, center=True, min_periods=1).mean()
    logger.debug("Smoothed %d derivative points with window %d", values.size, window)
    return smoothed.to_numpy(dtype=np.float64)
