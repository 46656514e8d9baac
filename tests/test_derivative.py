"""Tests for the Bourdet derivative, smoothing and observed-data preparation."""

import numpy as np
import pytest

from welltest_core.analysis.data import prepare_observed_data, pressure_difference
from welltest_core.analysis.derivative import bourdet_derivative, smooth_derivative
from welltest_core.errors import InvalidInputError
from welltest_core.types.analysis import FlowPeriod


class TestBourdetDerivative:
    """Test the three-point Bourdet scheme."""

    def test_semilog_straight_line(self):
        """A line in ln t has a constant derivative equal to its slope."""
        t = np.logspace(-2, 3, 50)
        p = 7.0 + 3.5 * np.log(t)
        for spacing in (0.0, 0.1, 0.5):
            np.testing.assert_allclose(bourdet_derivative(t, p, spacing), 3.5, rtol=1e-10)

    def test_irregular_sampling(self):
        """Uneven sampling still recovers the slope of a semilog line."""
        rng = np.random.default_rng(0)
        t = np.sort(rng.uniform(0.01, 100.0, 80))
        p = 2.0 * np.log(t) + 1.0
        np.testing.assert_allclose(bourdet_derivative(t, p, 0.2), 2.0, rtol=1e-10)

    def test_power_law(self):
        """For p = t the log derivative approaches t when the spacing is small."""
        t = np.logspace(-1, 1, 200)
        deriv = bourdet_derivative(t, t.copy(), 0.0)
        np.testing.assert_allclose(deriv[1:-1], t[1:-1], rtol=1e-3)

    def test_length_preserved(self):
        """Output has one value per input sample."""
        t = np.logspace(0, 1, 7)
        assert bourdet_derivative(t, np.log(t), 0.3).shape == (7,)

    def test_short_input(self):
        """Fewer than two points give an empty result."""
        assert bourdet_derivative(np.array([1.0]), np.array([2.0]), 0.1).size == 0
        assert bourdet_derivative(np.array([]), np.array([]), 0.1).size == 0

    def test_two_points(self):
        """Two points share the one-sided slope."""
        t = np.array([1.0, np.e])
        p = np.array([0.0, 4.0])
        np.testing.assert_allclose(bourdet_derivative(t, p, 0.1), [4.0, 4.0])

    def test_mismatched_lengths(self):
        """Mismatched arrays are rejected."""
        with pytest.raises(InvalidInputError):
            bourdet_derivative(np.array([1.0, 2.0]), np.array([1.0]), 0.1)

    def test_non_positive_time(self):
        """Times must be positive for log derivatives."""
        with pytest.raises(InvalidInputError):
            bourdet_derivative(np.array([0.0, 1.0]), np.array([1.0, 2.0]), 0.1)


class TestSmoothDerivative:
    """Test the moving-average smoothing pass."""

    def test_factor_one_is_identity(self):
        """A window of one sample leaves the data unchanged."""
        d = np.array([1.0, 5.0, 2.0, 8.0])
        out = smooth_derivative(d, 1)
        np.testing.assert_array_equal(out, d)
        assert out is not d

    def test_length_preserved(self):
        """Any window keeps the input length."""
        d = np.arange(10, dtype=float)
        for factor in (0, 2, 3, 5, 50):
            assert smooth_derivative(d, factor).shape == d.shape

    def test_centered_average(self):
        """Interior points are averaged over a centered window."""
        d = np.array([0.0, 3.0, 6.0, 3.0, 0.0])
        out = smooth_derivative(d, 3)
        assert out[2] == pytest.approx(4.0)
        assert out[0] == pytest.approx(1.5)

    def test_constant_unchanged(self):
        """A constant signal survives smoothing."""
        np.testing.assert_allclose(smooth_derivative(np.full(9, 2.5), 4), 2.5)


class TestObservedData:
    """Test pressure-change computation and dataset preparation."""

    def test_drawdown(self):
        """Drawdown is measured from the initial pressure."""
        dp = pressure_difference(np.array([4990.0, 4980.0]), FlowPeriod.DRAWDOWN, 5000.0)
        np.testing.assert_allclose(dp, [10.0, 20.0])

    def test_drawdown_requires_initial_pressure(self):
        """Drawdown without an initial pressure is rejected."""
        with pytest.raises(InvalidInputError):
            pressure_difference(np.array([4990.0]), "drawdown")

    def test_buildup(self):
        """Build-up is measured from the shut-in reading."""
        dp = pressure_difference(np.array([3000.0, 3050.0, 3080.0]), "buildup")
        np.testing.assert_allclose(dp, [0.0, 50.0, 80.0])

    def test_prepare_drops_invalid_samples(self):
        """Zero times and zero pressure changes are removed."""
        t = np.array([0.0, 0.1, 0.2, 0.3, 0.4])
        p = np.array([3000.0, 3000.0, 3010.0, 3020.0, 3025.0])
        dataset = prepare_observed_data(t, p, FlowPeriod.BUILDUP, smooth_factor=1)
        np.testing.assert_allclose(dataset.time, [0.2, 0.3, 0.4])
        np.testing.assert_allclose(dataset.pressure, [10.0, 20.0, 25.0])
        assert dataset.derivative is not None
        assert len(dataset.derivative) == 3

    def test_prepare_sorts_and_drops_repeats(self):
        """Unsorted readings are ordered and repeated times dropped."""
        t = np.array([0.3, 0.1, 0.2, 0.2])
        p = np.array([4970.0, 4990.0, 4980.0, 4981.0])
        dataset = prepare_observed_data(t, p, initial_pressure=5000.0)
        np.testing.assert_allclose(dataset.time, [0.1, 0.2, 0.3])
        np.testing.assert_allclose(dataset.pressure, [10.0, 20.0, 30.0])
