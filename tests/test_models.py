"""Tests for the model registry and the analytical model evaluator."""

from dataclasses import replace

import numpy as np
import pytest

from welltest_core.analysis.evaluator import evaluate_curve, evaluate_model, model_grid
from welltest_core.analysis.laplace import invert_stehfest, stehfest_weights
from welltest_core.analysis.models import (
    DEFAULT_REGISTRY,
    default_fit_params,
    get_model,
    list_models,
)
from welltest_core.analysis.models.units import pressure_scale
from welltest_core.errors import InvalidInputError
from welltest_core.types.analysis import ModelIdentifier, params_to_values


def defaults(model):
    return params_to_values(default_fit_params(model))


class TestRegistry:
    """Test model lookup and parameter schemas."""

    def test_all_models_registered(self):
        """Every identifier resolves to a spec."""
        assert sorted(list_models()) == sorted(m.value for m in ModelIdentifier)
        for identifier in ModelIdentifier:
            assert get_model(identifier.value).identifier is identifier

    def test_unknown_model(self):
        """Unknown names raise InvalidInputError."""
        with pytest.raises(InvalidInputError, match="Unknown model"):
            get_model("triple_porosity")
        assert "triple_porosity" not in DEFAULT_REGISTRY

    def test_default_params_within_bounds(self):
        """Schema defaults satisfy their own bounds."""
        for identifier in ModelIdentifier:
            params = default_fit_params(identifier)
            assert any(param.fit for param in params)
            for param in params:
                param.validate()

    def test_basic_parameters_fixed(self):
        """Reservoir and well properties are not fitted by default."""
        params = {p.name: p for p in default_fit_params(ModelIdentifier.HOMOGENEOUS)}
        for name in ("q", "B", "mu", "h", "phi", "ct", "rw"):
            assert params[name].fit is False
        assert params["k"].fit and params["S"].fit and params["C"].fit

    def test_replace_returns_new_registry(self):
        """Replacing a spec leaves the default registry untouched."""
        spec = DEFAULT_REGISTRY[ModelIdentifier.HOMOGENEOUS]
        custom = DEFAULT_REGISTRY.replace(replace(spec, label="custom"))
        assert custom[ModelIdentifier.HOMOGENEOUS].label == "custom"
        assert DEFAULT_REGISTRY[ModelIdentifier.HOMOGENEOUS].label != "custom"
        assert len(custom) == len(DEFAULT_REGISTRY)


class TestStehfest:
    """Test the Laplace inversion."""

    def test_weights_sum_to_zero(self):
        """Stehfest weights sum to zero for any even N."""
        assert stehfest_weights(12).sum() == pytest.approx(0.0, abs=1e-6)

    def test_odd_terms_rejected(self):
        """N must be even."""
        with pytest.raises(ValueError):
            stehfest_weights(7)

    def test_exponential(self):
        """1 / (s + 1) inverts to exp(-t)."""
        t = np.array([0.1, 0.5, 1.0, 2.0])
        values = invert_stehfest(lambda s: 1.0 / (s + 1.0), t)
        np.testing.assert_allclose(values, np.exp(-t), rtol=5e-3)


class TestEvaluateModel:
    """Test model curves for the whole model family."""

    @pytest.mark.parametrize("identifier", list(ModelIdentifier))
    def test_finite_at_defaults(self, identifier, times):
        """Defaults give finite, positive pressure and one value per time."""
        pressure, derivative = evaluate_model(identifier, defaults(identifier), times)
        assert pressure.shape == times.shape
        assert derivative.shape == times.shape
        assert np.all(np.isfinite(pressure))
        assert np.all(np.isfinite(derivative))
        assert np.all(pressure > 0)

    def test_line_source_closed_form_derivative(self):
        """The analytic derivative agrees with a Bourdet derivative of the pressure."""
        params = defaults(ModelIdentifier.LINE_SOURCE)
        t = np.logspace(-1, 2, 30)
        spec = get_model(ModelIdentifier.LINE_SOURCE)
        _, derivative = evaluate_model(ModelIdentifier.LINE_SOURCE, params, t)
        numeric = evaluate_model(
            ModelIdentifier.LINE_SOURCE,
            params,
            t,
            registry=DEFAULT_REGISTRY.replace(replace(spec, derivative=None)),
        )[1]
        np.testing.assert_allclose(derivative, numeric, rtol=1e-2)

    def test_homogeneous_flow_regimes(self):
        """Unit slope at early time and a 0.5 dimensionless plateau at late time."""
        params = defaults(ModelIdentifier.HOMOGENEOUS)
        t = np.array([1e-4, 200.0])
        pressure, derivative = evaluate_model(ModelIdentifier.HOMOGENEOUS, params, t)

        storage_only = params["q"] * params["B"] * t[0] / (24.0 * params["C"])
        assert pressure[0] == pytest.approx(storage_only, rel=0.05)
        assert derivative[-1] == pytest.approx(0.5 * pressure_scale(params), rel=0.02)

    def test_extra_parameters_ignored(self, times):
        """Keys the model does not use have no effect."""
        params = defaults(ModelIdentifier.HOMOGENEOUS)
        base = evaluate_model(ModelIdentifier.HOMOGENEOUS, params, times)
        extra = evaluate_model(ModelIdentifier.HOMOGENEOUS, {**params, "xf": 5.0}, times)
        np.testing.assert_array_equal(base[0], extra[0])

    def test_missing_parameter(self, times):
        """A missing required parameter is rejected."""
        params = defaults(ModelIdentifier.SEALING_FAULT)
        del params["L"]
        with pytest.raises(InvalidInputError, match="L"):
            evaluate_model(ModelIdentifier.SEALING_FAULT, params, times)

    def test_non_positive_times(self):
        """Zero or negative times are rejected."""
        params = defaults(ModelIdentifier.HOMOGENEOUS)
        with pytest.raises(InvalidInputError):
            evaluate_model(ModelIdentifier.HOMOGENEOUS, params, np.array([0.0, 1.0]))

    def test_empty_times(self):
        """An empty time vector gives empty curves."""
        pressure, derivative = evaluate_model(
            ModelIdentifier.HOMOGENEOUS, defaults(ModelIdentifier.HOMOGENEOUS), np.array([])
        )
        assert pressure.size == 0 and derivative.size == 0

    def test_curve_and_grid(self, times):
        """evaluate_curve bundles times; the grid covers them with padding."""
        curve = evaluate_curve("homogeneous", defaults(ModelIdentifier.HOMOGENEOUS), times)
        np.testing.assert_array_equal(curve.time, times)
        grid = model_grid(times)
        assert grid[0] < times[0] and grid[-1] > times[-1]
