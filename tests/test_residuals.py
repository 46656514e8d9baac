"""Tests for residual vectors and the finite-difference Jacobian."""

import numpy as np
import pytest

from welltest_core.analysis.models import default_fit_params
from welltest_core.analysis.residuals import (
    compute_jacobian,
    compute_residuals,
    finite_difference_step,
    sum_squared_error,
)
from welltest_core.types.analysis import (
    FitParam,
    ModelIdentifier,
    ObservedDataset,
    ResidualScale,
    params_to_values,
)


class TestResiduals:
    """Test the pressure and derivative residual layout."""

    def test_zero_at_truth(self, line_source_dataset):
        """Residuals vanish when the model generated the data."""
        params = params_to_values(default_fit_params(ModelIdentifier.LINE_SOURCE))
        residuals = compute_residuals(
            ModelIdentifier.LINE_SOURCE, params, line_source_dataset, 1.0
        )
        assert residuals.shape == (2 * len(line_source_dataset),)
        np.testing.assert_allclose(residuals, 0.0, atol=1e-9)

    def test_weight_scales_derivative_part(self, line_source_dataset):
        """Only the second half of the vector carries the weight."""
        params = params_to_values(default_fit_params(ModelIdentifier.LINE_SOURCE))
        params["k"] = 12.0
        n = len(line_source_dataset)
        r1 = compute_residuals(ModelIdentifier.LINE_SOURCE, params, line_source_dataset, 1.0)
        r3 = compute_residuals(ModelIdentifier.LINE_SOURCE, params, line_source_dataset, 3.0)
        np.testing.assert_allclose(r3[:n], r1[:n])
        np.testing.assert_allclose(r3[n:], 3.0 * r1[n:])

    def test_log_scale(self, line_source_dataset):
        """Log residuals are log10 ratios."""
        params = params_to_values(default_fit_params(ModelIdentifier.LINE_SOURCE))
        params["q"] *= 10.0
        r = compute_residuals(
            ModelIdentifier.LINE_SOURCE,
            params,
            line_source_dataset,
            1.0,
            scale=ResidualScale.LOG,
        )
        np.testing.assert_allclose(r, 1.0, rtol=1e-9)

    def test_requires_derivative(self, line_source_dataset):
        """Datasets without a derivative are rejected."""
        bare = ObservedDataset(line_source_dataset.time, line_source_dataset.pressure)
        params = params_to_values(default_fit_params(ModelIdentifier.LINE_SOURCE))
        with pytest.raises(ValueError):
            compute_residuals(ModelIdentifier.LINE_SOURCE, params, bare, 1.0)

    def test_sse(self):
        """Sum of squares, infinite for non-finite residuals."""
        assert sum_squared_error(np.array([3.0, 4.0])) == pytest.approx(25.0)
        assert sum_squared_error(np.array([1.0, np.nan])) == float("inf")


class TestJacobian:
    """Test forward differences over fitted parameters."""

    def test_step_direction(self):
        """Steps go backwards at the upper bound."""
        inside = FitParam("k", 10.0, 1.0, 100.0)
        at_upper = FitParam("k", 100.0, 1.0, 100.0)
        assert finite_difference_step(inside, 1e-6, 1e-8) == pytest.approx(1e-5)
        assert finite_difference_step(at_upper, 1e-6, 1e-8) == pytest.approx(-1e-4)

    def test_step_floor(self):
        """A zero value is stepped on the scale of its nearest non-zero bound."""
        assert finite_difference_step(FitParam("S", 0.0, -5.0, 100.0), 1e-4, 1e-8) == pytest.approx(5e-4)
        assert finite_difference_step(FitParam("S", 0.0, 0.0, 100.0), 1e-4, 1e-8) == pytest.approx(1e-2)
        assert finite_difference_step(FitParam("x", 0.0, 0.0, 0.0), 1e-4, 1e-8) == 0.0

    def test_step_small_magnitudes(self):
        """Small positive parameters keep a step relative to their own value."""
        param = FitParam("lambda", 1e-6, 1e-10, 1e-2)
        assert finite_difference_step(param, 1e-4, 1e-8) == pytest.approx(1e-10)

    def test_columns_follow_fit_flags(self, homogeneous_dataset):
        """Only fitted parameters produce columns."""
        params = default_fit_params(ModelIdentifier.HOMOGENEOUS)
        for param in params:
            param.fit = param.name in ("k", "C")
        residuals = compute_residuals(
            ModelIdentifier.HOMOGENEOUS,
            params_to_values(params),
            homogeneous_dataset,
            1.0,
        )
        jac = compute_jacobian(
            ModelIdentifier.HOMOGENEOUS, params, residuals, homogeneous_dataset, 1.0
        )
        assert jac.shape == (residuals.size, 2)
        assert np.all(np.isfinite(jac))
        assert np.any(jac[:, 0] != 0) and np.any(jac[:, 1] != 0)

    def test_matches_analytic_slope(self, line_source_dataset):
        """d(pressure)/dq is the pressure divided by q for the line source."""
        params = default_fit_params(ModelIdentifier.LINE_SOURCE)
        for param in params:
            param.fit = param.name == "q"
        values = params_to_values(params)
        residuals = compute_residuals(
            ModelIdentifier.LINE_SOURCE, values, line_source_dataset, 1.0
        )
        jac = compute_jacobian(
            ModelIdentifier.LINE_SOURCE, params, residuals, line_source_dataset, 1.0
        )
        n = len(line_source_dataset)
        np.testing.assert_allclose(
            jac[:n, 0], line_source_dataset.pressure / values["q"], rtol=1e-4
        )
