"""
Single sealing fault near a well in a homogeneous reservoir (image well).
"""

import numpy as np
from scipy.special import k0e, k1e

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

LABEL = "Sealing fault + wellbore storage + skin"

PARAMETERS = (
    PERMEABILITY,
    SKIN,
    STORAGE,
    ParameterSpec("L", "Distance to Fault", "ft", 200.0, 1.0, 1e5, fit=True),
    *BASIC_PARAMETERS,
)


def sandface(s: np.ndarray, distance: float) -> np.ndarray:
    """Well plus its image at 2L: (K0(u) + K0(2 L u)) / (s u K1(u))."""
    u = np.sqrt(s)
    image = k0e(2.0 * distance * u) * np.exp(-u * (2.0 * distance - 1.0))
    return (k0e(u) + image) / (s * u * k1e(u))


def eval(t: np.ndarray, params: dict[str, float]) -> np.ndarray:
    rw = params["rw"]
    t_d = dimensionless_time(t, params, rw)
    c_d = dimensionless_storage(params, rw)
    skin = params["S"]
    distance = max(params["L"] / rw, 1.0)

    def transform(s: np.ndarray) -> np.ndarray:
        return wellbore_storage_and_skin(sandface(s, distance), s, skin, c_d)

    return pressure_scale(params) * invert_stehfest(transform, t_d)
