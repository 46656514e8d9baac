"""
Sensitivity sweeps: evaluate a model for several values of one parameter.
"""

import logging
import math
import re
from collections.abc import Mapping, Sequence

import numpy as np

from welltest_core.analysis.evaluator import evaluate_model
from welltest_core.analysis.models import ModelRegistry, get_model
from welltest_core.types.analysis import ModelIdentifier, SensitivityCurve, SweepRequest

logger = logging.getLogger(__name__)

# Comma, semicolon, whitespace and the full-width comma
_SEPARATORS = re.compile(r"[,;\s，]+")


def parse_sensitivity_values(text: str) -> list[float]:
    """Parse a delimited list of numbers, skipping tokens that are not finite numbers.

    >>> parse_sensitivity_values("1, 2;abc 3")
    [1.0, 2.0, 3.0]
    """
    values = []
    for token in _SEPARATORS.split(text.strip()):
        if not token:
            continue
        try:
            value = float(token)
        except ValueError:
            logger.debug("Skipping malformed sensitivity value %r", token)
            continue
        if not math.isfinite(value):
            logger.debug("Skipping non-finite sensitivity value %r", token)
            continue
        values.append(value)
    return values


def generate_sensitivity(
    model: ModelIdentifier | str,
    base_params: Mapping[str, float],
    swept_name: str | SweepRequest,
    values: Sequence[float] | str | None = None,
    times=None,
    *,
    registry: ModelRegistry | None = None,
    spacing: float | None = None,
) -> list[SensitivityCurve]:
    """Evaluate ``model`` once per swept value of one parameter.

    Args:
        model: Model identifier
        base_params: Parameter values shared by every curve
        swept_name: Parameter to override, or a SweepRequest carrying the values
        values: Override values, as numbers or a delimited string
        times: Positive times at which the curves are evaluated
        registry: Model registry (defaults to the built-in one)
        spacing: Bourdet spacing for model derivatives

    Returns:
        One SensitivityCurve per value, in input order

    Raises:
        InvalidInputError: If the parameter does not belong to the model or
            the times/parameters are invalid
    """
    if isinstance(swept_name, SweepRequest):
        name = swept_name.name
        if values is None:
            values = swept_name.values
    else:
        name = swept_name
    if values is None:
        values = []
    if isinstance(values, str):
        values = parse_sensitivity_values(values)
    if times is None:
        raise TypeError("generate_sensitivity() requires times")

    spec = get_model(model, registry)
    spec.get_parameter(name)
    t = np.array(times, dtype=np.float64)

    curves = []
    for value in values:
        params = dict(base_params)
        params[name] = float(value)
        pressure, derivative = evaluate_model(
            spec.identifier, params, t, registry=registry, spacing=spacing
        )
        curves.append(
            SensitivityCurve(
                value=float(value),
                time=t.copy(),
                pressure=pressure,
                derivative=derivative,
            )
        )

    logger.debug(
        "Generated %d sensitivity curves for %s.%s", len(curves), spec.identifier.value, name
    )
    return curves
