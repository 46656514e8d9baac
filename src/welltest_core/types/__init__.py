"""Shared data types for well-test analysis."""

from welltest_core.types.analysis import (
    FitCompletedEvent,
    FitParam,
    FitParams,
    FitResult,
    FlowPeriod,
    IterationEvent,
    ModelCurve,
    ModelIdentifier,
    ModelSpec,
    ObservedDataset,
    OptimizerState,
    ParameterSpec,
    ResidualScale,
    SensitivityCurve,
    StopReason,
    SweepRequest,
    params_to_values,
)

__all__ = [
    "FitCompletedEvent",
    "FitParam",
    "FitParams",
    "FitResult",
    "FlowPeriod",
    "IterationEvent",
    "ModelCurve",
    "ModelIdentifier",
    "ModelSpec",
    "ObservedDataset",
    "OptimizerState",
    "ParameterSpec",
    "ResidualScale",
    "SensitivityCurve",
    "StopReason",
    "SweepRequest",
    "params_to_values",
]
