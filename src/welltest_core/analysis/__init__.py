"""
Well-test analysis: model evaluation, derivatives, fitting and sensitivity.
"""

from welltest_core.analysis.data import pressure_difference, prepare_observed_data
from welltest_core.analysis.derivative import bourdet_derivative, smooth_derivative
from welltest_core.analysis.evaluator import evaluate_curve, evaluate_model
from welltest_core.analysis.fitting_service import FitHandle, FittingController
from welltest_core.analysis.linalg import solve_linear_system
from welltest_core.analysis.models import (
    DEFAULT_REGISTRY,
    ModelRegistry,
    default_fit_params,
    get_model,
    list_models,
)
from welltest_core.analysis.optimizer import LevenbergMarquardt, LMOptions
from welltest_core.analysis.residuals import (
    compute_jacobian,
    compute_residuals,
    sum_squared_error,
)
from welltest_core.analysis.sensitivity import (
    generate_sensitivity,
    parse_sensitivity_values,
)
from welltest_core.analysis.session import FittingSession, unique_name

__all__ = [
    "DEFAULT_REGISTRY",
    "FitHandle",
    "FittingController",
    "FittingSession",
    "LMOptions",
    "LevenbergMarquardt",
    "ModelRegistry",
    "bourdet_derivative",
    "compute_jacobian",
    "compute_residuals",
    "default_fit_params",
    "evaluate_curve",
    "evaluate_model",
    "generate_sensitivity",
    "get_model",
    "list_models",
    "parse_sensitivity_values",
    "prepare_observed_data",
    "pressure_difference",
    "smooth_derivative",
    "solve_linear_system",
    "sum_squared_error",
    "unique_name",
]
