"""
Homogeneous reservoir: infinite-acting radial flow with wellbore storage and skin.
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

LABEL = "Homogeneous + wellbore storage + skin"

PARAMETERS = (PERMEABILITY, SKIN, STORAGE, *BASIC_PARAMETERS)


def sandface(s: np.ndarray) -> np.ndarray:
    """Finite-wellbore radial solution K0(sqrt s) / (s sqrt s K1(sqrt s))."""
    u = np.sqrt(s)
    return k0e(u) / (s * u * k1e(u))


def eval(t: np.ndarray, params: dict[str, float]) -> np.ndarray:
    rw = params["rw"]
    t_d = dimensionless_time(t, params, rw)
    c_d = dimensionless_storage(params, rw)
    skin = params["S"]

    def transform(s: np.ndarray) -> np.ndarray:
        return wellbore_storage_and_skin(sandface(s), s, skin, c_d)

    return pressure_scale(params) * invert_stehfest(transform, t_d)
