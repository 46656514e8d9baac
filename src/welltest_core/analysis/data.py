"""
Turn raw gauge readings into an observed dataset ready for fitting.
"""

import logging

import numpy as np

from welltest_core import config
from welltest_core.analysis.derivative import bourdet_derivative, smooth_derivative
from welltest_core.errors import InvalidInputError
from welltest_core.types.analysis import FlowPeriod, ObservedDataset

logger = logging.getLogger(__name__)


def pressure_difference(
    pressure: np.ndarray,
    period: FlowPeriod | str,
    initial_pressure: float | None = None,
) -> np.ndarray:
    """Pressure change for a drawdown or build-up period.

    Drawdown uses ``|p_i - p|`` against the initial reservoir pressure;
    build-up uses ``|p - p[0]|`` against the first (shut-in) reading.
    """
    p = np.asarray(pressure, dtype=np.float64)
    period = FlowPeriod(period)

    if period is FlowPeriod.DRAWDOWN:
        if initial_pressure is None:
            raise InvalidInputError("Drawdown analysis requires the initial pressure")
        return np.abs(float(initial_pressure) - p)

    if p.size == 0:
        return p.copy()
    return np.abs(p - p[0])


def prepare_observed_data(
    time: np.ndarray,
    pressure: np.ndarray,
    period: FlowPeriod | str = FlowPeriod.DRAWDOWN,
    initial_pressure: float | None = None,
    spacing: float | None = None,
    smooth_factor: float | None = None,
) -> ObservedDataset:
    """Build an ObservedDataset with its Bourdet derivative from raw readings.

    Samples with non-positive elapsed time or pressure change are dropped,
    as they cannot be shown on a log-log diagnostic plot.
    """
    t = np.asarray(time, dtype=np.float64)
    p = np.asarray(pressure, dtype=np.float64)
    if t.shape != p.shape:
        raise InvalidInputError(f"time and pressure lengths differ ({t.size} != {p.size})")

    spacing = config.BOURDET_SPACING if spacing is None else spacing
    smooth_factor = config.SMOOTH_FACTOR if smooth_factor is None else smooth_factor

    dp = pressure_difference(p, period, initial_pressure)
    mask = np.isfinite(t) & np.isfinite(dp) & (t > 0) & (dp > 0)
    dropped = int(t.size - mask.sum())
    if dropped:
        logger.info("Dropped %d samples with non-positive time or pressure change", dropped)

    t_valid = t[mask]
    dp_valid = dp[mask]
    order = np.argsort(t_valid, kind="stable")
    t_valid = t_valid[order]
    dp_valid = dp_valid[order]

    # Keep the first reading of any repeated timestamp
    unique = np.ones(t_valid.size, dtype=bool)
    unique[1:] = np.diff(t_valid) > 0
    t_valid = t_valid[unique]
    dp_valid = dp_valid[unique]

    derivative = bourdet_derivative(t_valid, dp_valid, spacing)
    derivative = smooth_derivative(derivative, smooth_factor)
    if derivative.size != t_valid.size:
        derivative = None

    return ObservedDataset(time=t_valid, pressure=dp_valid, derivative=derivative)
