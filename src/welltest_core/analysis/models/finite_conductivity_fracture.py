"""
Finite-conductivity vertical fracture: bilinear flow, then formation linear flow.

Fracture flow is one-dimensional with leak-off into linear flow in the
formation; fracture storage is neglected.
"""

from dataclasses import replace

import numpy as np

from welltest_core.analysis.laplace import invert_stehfest, wellbore_storage_and_skin
from welltest_core.analysis.models.infinite_conductivity_fracture import HALF_LENGTH
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

LABEL = "Finite-conductivity fracture (bilinear flow) + wellbore storage + skin"

PARAMETERS = (
    PERMEABILITY,
    HALF_LENGTH,
    ParameterSpec("Fcd", "Dimensionless Fracture Conductivity", "", 10.0, 1e-2, 1e4, fit=True),
    replace(SKIN, label="Fracture Face Skin", default=0.1, lb=0.0),
    replace(STORAGE, default=0.001),
    *BASIC_PARAMETERS,
)


def sandface(s: np.ndarray, conductivity: float) -> np.ndarray:
    """pi / (s Fcd psi tanh psi) with psi = sqrt(2 sqrt(s) / Fcd)."""
    psi = np.sqrt(2.0 * np.sqrt(s) / conductivity)
    return np.pi / (s * conductivity * psi * np.tanh(psi))


def eval(t: np.ndarray, params: dict[str, float]) -> np.ndarray:
    xf = params["xf"]
    t_d = dimensionless_time(t, params, xf)
    c_d = dimensionless_storage(params, xf)
    skin = params["S"]
    conductivity = params["Fcd"]

    def transform(s: np.ndarray) -> np.ndarray:
        return wellbore_storage_and_skin(sandface(s, conductivity), s, skin, c_d)

    return pressure_scale(params) * invert_stehfest(transform, t_d)
