"""
Analysis types for well-test model fitting.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, TypeAlias

import numpy as np

from welltest_core.errors import InvalidInputError


class ModelIdentifier(str, Enum):
    """Closed set of analytical well-test response models."""

    LINE_SOURCE = "line_source"
    HOMOGENEOUS = "homogeneous"
    RADIAL_COMPOSITE = "radial_composite"
    DUAL_POROSITY = "dual_porosity"
    SEALING_FAULT = "sealing_fault"
    INFINITE_CONDUCTIVITY_FRACTURE = "infinite_conductivity_fracture"
    FINITE_CONDUCTIVITY_FRACTURE = "finite_conductivity_fracture"


class StopReason(str, Enum):
    """Why a fit run ended."""

    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    CANCELLED = "cancelled"
    SINGULAR_JACOBIAN = "singular_jacobian"
    STALLED = "stalled"
    FAILED = "failed"


class OptimizerState(str, Enum):
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ResidualScale(str, Enum):
    """How model/observation differences enter the residual vector."""

    LINEAR = "linear"
    LOG = "log"


class FlowPeriod(str, Enum):
    """Flow period used to turn raw gauge pressure into a pressure change."""

    DRAWDOWN = "drawdown"
    BUILDUP = "buildup"


@dataclass(slots=True)
class FitParam:
    """A single model parameter with bounds and a fit flag."""

    name: str
    value: float
    lb: float
    ub: float
    fit: bool = True
    label: str = ""

    def validate(self) -> None:
        """Raise InvalidInputError unless ``lb <= value <= ub`` with finite values."""
        if not all(np.isfinite(v) for v in (self.value, self.lb, self.ub)):
            raise InvalidInputError(f"Parameter '{self.name}' has non-finite value or bounds")
        if self.lb > self.ub:
            raise InvalidInputError(
                f"Parameter '{self.name}' has lower bound {self.lb} above upper bound {self.ub}"
            )
        if not self.lb <= self.value <= self.ub:
            raise InvalidInputError(
                f"Parameter '{self.name}'={self.value} outside bounds [{self.lb}, {self.ub}]"
            )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "value": float(self.value),
            "lb": float(self.lb),
            "ub": float(self.ub),
            "fit": bool(self.fit),
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FitParam":
        return cls(
            name=str(data["name"]),
            value=float(data["value"]),
            lb=float(data["lb"]),
            ub=float(data["ub"]),
            fit=bool(data.get("fit", True)),
            label=str(data.get("label", "")),
        )


FitParams: TypeAlias = list[FitParam]


def params_to_values(params: FitParams) -> dict[str, float]:
    """Flatten a parameter list to a name -> value mapping."""
    return {param.name: float(param.value) for param in params}


@dataclass(frozen=True, slots=True)
class ParameterSpec:
    """Schema entry describing one model parameter."""

    name: str
    label: str
    unit: str
    default: float
    lb: float
    ub: float
    fit: bool = False

    def to_fit_param(self) -> FitParam:
        return FitParam(
            name=self.name,
            value=self.default,
            lb=self.lb,
            ub=self.ub,
            fit=self.fit,
            label=self.label,
        )


PressureFunc: TypeAlias = Callable[[np.ndarray, dict[str, float]], np.ndarray]


@dataclass(frozen=True, slots=True)
class ModelSpec:
    """Registry entry: evaluator functions plus the model's parameter schema.

    ``derivative`` is None when the model has no closed-form log-time
    derivative; the evaluator then falls back to the Bourdet algorithm.
    """

    identifier: ModelIdentifier
    label: str
    parameters: tuple[ParameterSpec, ...]
    pressure: PressureFunc
    derivative: PressureFunc | None = None

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.parameters)

    def get_parameter(self, name: str) -> ParameterSpec:
        for spec in self.parameters:
            if spec.name == name:
                return spec
        raise InvalidInputError(
            f"Model '{self.identifier.value}' has no parameter '{name}'"
        )


def _readonly(values, name: str) -> np.ndarray:
    array = np.array(values, dtype=np.float64, copy=True)
    if array.ndim != 1:
        raise InvalidInputError(f"{name} must be one-dimensional")
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class ObservedDataset:
    """Observed time (hours), pressure change (psi) and optional derivative.

    Arrays are copied and made read-only so a running fit never sees them
    change underneath it.
    """

    time: np.ndarray
    pressure: np.ndarray
    derivative: np.ndarray | None = None

    def __post_init__(self) -> None:
        time = _readonly(self.time, "time")
        pressure = _readonly(self.pressure, "pressure")
        if len(time) != len(pressure):
            raise InvalidInputError(
                f"time and pressure lengths differ ({len(time)} != {len(pressure)})"
            )
        if len(time) == 0:
            raise InvalidInputError("Observed dataset is empty")
        if not np.all(np.isfinite(time)) or np.any(time <= 0):
            raise InvalidInputError("Observed times must be finite and positive")
        if np.any(np.diff(time) <= 0):
            raise InvalidInputError("Observed times must be strictly increasing")
        if not np.all(np.isfinite(pressure)) or np.any(pressure <= 0):
            raise InvalidInputError("Observed pressure changes must be finite and positive")
        object.__setattr__(self, "time", time)
        object.__setattr__(self, "pressure", pressure)

        if self.derivative is not None:
            derivative = _readonly(self.derivative, "derivative")
            if len(derivative) != len(time):
                raise InvalidInputError(
                    f"derivative length {len(derivative)} does not match time length {len(time)}"
                )
            object.__setattr__(self, "derivative", derivative)

    def __len__(self) -> int:
        return len(self.time)

    def with_derivative(self, spacing: float, smooth_factor: float = 1.0) -> "ObservedDataset":
        """Return a copy whose derivative is recomputed with the Bourdet method."""
        from welltest_core.analysis.derivative import bourdet_derivative, smooth_derivative

        derivative = bourdet_derivative(self.time, self.pressure, spacing)
        derivative = smooth_derivative(derivative, smooth_factor)
        return ObservedDataset(time=self.time, pressure=self.pressure, derivative=derivative)

    def to_dict(self) -> dict:
        data = {
            "time": self.time.tolist(),
            "pressure": self.pressure.tolist(),
        }
        if self.derivative is not None:
            data["derivative"] = self.derivative.tolist()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ObservedDataset":
        return cls(
            time=data["time"],
            pressure=data["pressure"],
            derivative=data.get("derivative"),
        )


@dataclass(frozen=True)
class FitResult:
    """Outcome of one fit run; produced once, never mutated.

    ``converged`` is True only for ``StopReason.CONVERGED``. A run whose
    worker raised carries ``StopReason.FAILED``, the starting parameters and
    the exception text in ``error``.
    """

    model: ModelIdentifier
    parameters: dict[str, float]
    sum_squared_error: float
    iteration_count: int
    converged: bool
    stopped_reason: StopReason
    sse_history: tuple[float, ...] = ()
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "model": self.model.value,
            "parameters": {name: float(value) for name, value in self.parameters.items()},
            "sum_squared_error": float(self.sum_squared_error),
            "iteration_count": int(self.iteration_count),
            "converged": bool(self.converged),
            "stopped_reason": self.stopped_reason.value,
            "sse_history": [float(v) for v in self.sse_history],
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FitResult":
        return cls(
            model=ModelIdentifier(data["model"]),
            parameters={str(k): float(v) for k, v in data["parameters"].items()},
            sum_squared_error=float(data["sum_squared_error"]),
            iteration_count=int(data["iteration_count"]),
            converged=bool(data["converged"]),
            stopped_reason=StopReason(data["stopped_reason"]),
            sse_history=tuple(float(v) for v in data.get("sse_history", ())),
            error=data.get("error"),
        )


@dataclass(frozen=True, eq=False)
class ModelCurve:
    """Model pressure and derivative evaluated on a time vector."""

    time: np.ndarray
    pressure: np.ndarray
    derivative: np.ndarray


@dataclass(frozen=True, eq=False)
class SensitivityCurve:
    """One curve of a sensitivity sweep."""

    value: float
    time: np.ndarray
    pressure: np.ndarray
    derivative: np.ndarray


@dataclass(frozen=True, eq=False)
class IterationEvent:
    """Progress snapshot emitted after every accepted LM iteration."""

    run_id: int
    iteration: int
    sse: float
    parameters: dict[str, float]
    time: np.ndarray
    pressure: np.ndarray
    derivative: np.ndarray


@dataclass(frozen=True)
class FitCompletedEvent:
    """Last event of every fit run."""

    run_id: int
    result: FitResult


@dataclass
class SweepRequest:
    """A parameter name with the ordered override values to sweep."""

    name: str
    values: list[float] = field(default_factory=list)
