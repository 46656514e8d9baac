"""
Oilfield-unit conversions between dimensional and dimensionless variables.

Units: t [h], dp [psi], k [md], h/rw/lengths [ft], mu [cp], ct [1/psi],
q [STB/d], B [rb/STB], C [bbl/psi].
"""

import numpy as np

from welltest_core.types.analysis import ParameterSpec

TIME_CONSTANT = 0.0002637
PRESSURE_CONSTANT = 141.2
STORAGE_CONSTANT = 0.8936


# Reservoir and well properties shared by every model, held fixed by default
BASIC_PARAMETERS: tuple[ParameterSpec, ...] = (
    ParameterSpec("q", "Flow Rate", "STB/d", 500.0, 1e-3, 1e6),
    ParameterSpec("B", "Formation Volume Factor", "rb/STB", 1.2, 0.1, 10.0),
    ParameterSpec("mu", "Viscosity", "cp", 1.0, 1e-3, 1e4),
    ParameterSpec("h", "Net Thickness", "ft", 50.0, 0.1, 1e4),
    ParameterSpec("phi", "Porosity", "", 0.2, 1e-4, 0.6),
    ParameterSpec("ct", "Total Compressibility", "1/psi", 1e-5, 1e-8, 1e-2),
    ParameterSpec("rw", "Wellbore Radius", "ft", 0.3, 0.01, 5.0),
)

PERMEABILITY = ParameterSpec("k", "Permeability", "md", 10.0, 1e-4, 1e5, fit=True)
SKIN = ParameterSpec("S", "Skin Factor", "", 2.0, -5.0, 100.0, fit=True)
STORAGE = ParameterSpec("C", "Wellbore Storage", "bbl/psi", 0.01, 1e-6, 10.0, fit=True)


def dimensionless_time(t: np.ndarray, p: dict[str, float], length: float) -> np.ndarray:
    return TIME_CONSTANT * p["k"] * t / (p["phi"] * p["mu"] * p["ct"] * length**2)


def dimensionless_storage(p: dict[str, float], length: float) -> float:
    return STORAGE_CONSTANT * p["C"] / (p["phi"] * p["ct"] * p["h"] * length**2)


def pressure_scale(p: dict[str, float]) -> float:
    """Multiplier turning a dimensionless pressure into psi."""
    return PRESSURE_CONSTANT * p["q"] * p["B"] * p["mu"] / (p["k"] * p["h"])
