"""
Infinite-conductivity vertical fracture (linear flow, then pseudo-radial flow).

Approximated by the uniform-flux solution evaluated at xD = 0.732, with
dimensionless time and storage referred to the fracture half-length.
"""

from dataclasses import replace

import numpy as np
from scipy.special import iti0k0

from welltest_core.analysis.laplace import invert_stehfest, wellbore_storage_and_skin
from welltest_core.analysis.models.units import (
    BASIC_PARAMETERS,
    PERMEABILITY,
    SKIN,
    STORAGE,
    dimensionless_storage,
    dimensionless_time,
    pressure_scale,
)
from welltest_core.types.analysis import ParameterSpec

LABEL = "Infinite-conductivity fracture + wellbore storage + skin"

EQUIVALENT_POSITION = 0.732

HALF_LENGTH = ParameterSpec("xf", "Fracture Half-Length", "ft", 100.0, 1.0, 1e4, fit=True)

PARAMETERS = (
    PERMEABILITY,
    HALF_LENGTH,
    replace(SKIN, label="Fracture Face Skin", default=0.1, lb=0.0),
    replace(STORAGE, default=0.001),
    *BASIC_PARAMETERS,
)


def _integral_k0(x: np.ndarray) -> np.ndarray:
    return iti0k0(x)[1]


def sandface(s: np.ndarray, position: float = EQUIVALENT_POSITION) -> np.ndarray:
    u = np.sqrt(s)
    total = _integral_k0(u * (1.0 + position)) + _integral_k0(u * (1.0 - position))
    return total / (2.0 * s * u)


def eval(t: np.ndarray, params: dict[str, float]) -> np.ndarray:
    xf = params["xf"]
    t_d = dimensionless_time(t, params, xf)
    c_d = dimensionless_storage(params, xf)
    skin = params["S"]

    def transform(s: np.ndarray) -> np.ndarray:
        return wellbore_storage_and_skin(sandface(s), s, skin, c_d)

    return pressure_scale(params) * invert_stehfest(transform, t_d)
