"""
Line-source (Theis) model: infinite-acting radial flow without wellbore storage.
"""

from dataclasses import replace

import numpy as np
from scipy.special import exp1

from welltest_core.analysis.models.units import (
    BASIC_PARAMETERS,
    PERMEABILITY,
    SKIN,
    dimensionless_time,
    pressure_scale,
)

LABEL = "Line source (Theis)"

PARAMETERS = (PERMEABILITY, replace(SKIN, default=0.0, fit=False), *BASIC_PARAMETERS)


def eval(t: np.ndarray, params: dict[str, float]) -> np.ndarray:
    """Pressure change: 0.5 E1(1 / 4tD) + S, scaled to psi."""
    t_d = dimensionless_time(t, params, params["rw"])
    p_d = 0.5 * exp1(1.0 / (4.0 * t_d)) + params["S"]
    return pressure_scale(params) * p_d


def eval_derivative(t: np.ndarray, params: dict[str, float]) -> np.ndarray:
    """Closed-form log-time derivative: 0.5 exp(-1 / 4tD), scaled to psi."""
    t_d = dimensionless_time(t, params, params["rw"])
    return pressure_scale(params) * 0.5 * np.exp(-1.0 / (4.0 * t_d))
