"""
Two-zone radial composite reservoir with wellbore storage and skin.

The inner zone (radius ri) and the outer zone differ in mobility
(M = inner/outer) and storativity (F = inner/outer).
"""

import numpy as np
from scipy.special import i0e, i1e, k0e, k1e

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

LABEL = "Radial composite + wellbore storage + skin"

PARAMETERS = (
    PERMEABILITY,
    SKIN,
    STORAGE,
    ParameterSpec("ri", "Inner Zone Radius", "ft", 100.0, 1.0, 1e5, fit=True),
    ParameterSpec("M", "Mobility Ratio", "", 2.0, 1e-3, 1e3, fit=True),
    ParameterSpec("F", "Storativity Ratio", "", 1.0, 1e-3, 1e3),
    *BASIC_PARAMETERS,
)


def sandface(s: np.ndarray, radius: float, mobility: float, storativity: float) -> np.ndarray:
    """Composite Laplace solution written with exponentially scaled Bessel functions.

    Inner zone p = A I0 + B K0, outer zone p = C K0(sigma r); continuity of
    pressure and flux at ``radius`` fixes A/B, scaled here by exp(-2 u R).
    """
    u = np.sqrt(s)
    sigma = u * np.sqrt(mobility / storativity)
    u_r = u * radius

    g = (sigma / mobility) * k1e(sigma * radius) / k0e(sigma * radius)
    ratio = (u * k1e(u_r) - g * k0e(u_r)) / (u * i1e(u_r) + g * i0e(u_r))
    decay = np.exp(-2.0 * u * (radius - 1.0))

    numerator = k0e(u) + ratio * i0e(u) * decay
    denominator = s * u * (k1e(u) - ratio * i1e(u) * decay)
    return numerator / denominator


def eval(t: np.ndarray, params: dict[str, float]) -> np.ndarray:
    rw = params["rw"]
    t_d = dimensionless_time(t, params, rw)
    c_d = dimensionless_storage(params, rw)
    skin = params["S"]
    radius = max(params["ri"] / rw, 1.0)
    mobility = params["M"]
    storativity = params["F"]

    def transform(s: np.ndarray) -> np.ndarray:
        return wellbore_storage_and_skin(
            sandface(s, radius, mobility, storativity), s, skin, c_d
        )

    return pressure_scale(params) * invert_stehfest(transform, t_d)
