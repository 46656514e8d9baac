"""Shared fixtures: synthetic datasets generated from known parameters."""

import time
from dataclasses import replace

import numpy as np
import pytest

from welltest_core.analysis.evaluator import evaluate_model
from welltest_core.analysis.models import DEFAULT_REGISTRY, default_fit_params
from welltest_core.types.analysis import ModelIdentifier, ObservedDataset, params_to_values


def make_dataset(model, overrides, times):
    values = params_to_values(default_fit_params(model))
    values.update(overrides)
    pressure, derivative = evaluate_model(model, values, times)
    return ObservedDataset(time=times, pressure=pressure, derivative=derivative)


@pytest.fixture
def times():
    """Sixty log-spaced times from 0.001 h to 100 h."""
    return np.logspace(-3, 2, 60)


@pytest.fixture
def homogeneous_dataset(times):
    """Homogeneous reservoir response with k=10, S=2, C=0.01."""
    return make_dataset(
        ModelIdentifier.HOMOGENEOUS, {"k": 10.0, "S": 2.0, "C": 0.01}, times
    )


@pytest.fixture
def line_source_dataset():
    """Line-source response with k=10 at times where it is well defined."""
    return make_dataset(ModelIdentifier.LINE_SOURCE, {"k": 10.0}, np.logspace(-2, 2, 40))


@pytest.fixture
def slow_registry():
    """Registry whose homogeneous model sleeps on every evaluation."""
    spec = DEFAULT_REGISTRY[ModelIdentifier.HOMOGENEOUS]

    def slow_pressure(t, params):
        time.sleep(0.02)
        return spec.pressure(t, params)

    return DEFAULT_REGISTRY.replace(replace(spec, pressure=slow_pressure))
