"""
Dual-porosity reservoir (Warren-Root, pseudo-steady interporosity flow).
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

LABEL = "Dual porosity (pseudo-steady) + wellbore storage + skin"

PARAMETERS = (
    PERMEABILITY,
    SKIN,
    STORAGE,
    ParameterSpec("omega", "Storativity Ratio", "", 0.1, 1e-4, 1.0, fit=True),
    ParameterSpec("lambda", "Interporosity Flow Coefficient", "", 1e-6, 1e-10, 1e-2, fit=True),
    *BASIC_PARAMETERS,
)


def transfer_function(s: np.ndarray, omega: float, lam: float) -> np.ndarray:
    """f(s) = (omega (1 - omega) s + lambda) / ((1 - omega) s + lambda)."""
    return (omega * (1.0 - omega) * s + lam) / ((1.0 - omega) * s + lam)


def sandface(s: np.ndarray, omega: float, lam: float) -> np.ndarray:
    z = np.sqrt(s * transfer_function(s, omega, lam))
    return k0e(z) / (s * z * k1e(z))


def eval(t: np.ndarray, params: dict[str, float]) -> np.ndarray:
    rw = params["rw"]
    t_d = dimensionless_time(t, params, rw)
    c_d = dimensionless_storage(params, rw)
    skin = params["S"]
    omega = params["omega"]
    lam = params["lambda"]

    def transform(s: np.ndarray) -> np.ndarray:
        return wellbore_storage_and_skin(sandface(s, omega, lam), s, skin, c_d)

    return pressure_scale(params) * invert_stehfest(transform, t_d)
