"""Tests for the Qt fitting controller and worker threads."""

import time

import pytest
from PySide6.QtCore import QCoreApplication

from welltest_core import config
from welltest_core.analysis.models import default_fit_params
from welltest_core.analysis.optimizer import LMOptions
from welltest_core.errors import InvalidInputError
from welltest_core.types.analysis import ModelIdentifier, StopReason
from welltest_qt.controllers.fitting import FittingController


@pytest.fixture
def app():
    """Create QCoreApplication instance for testing."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


def process_until(app, predicate, timeout=60.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("Timed out waiting for Qt signals")
        app.processEvents()
        time.sleep(0.01)


def start_params(model=ModelIdentifier.LINE_SOURCE, **values):
    params = default_fit_params(model)
    for param in params:
        if param.name in values:
            param.value = values[param.name]
    return params


class TestQtFittingController:
    """Test signal delivery and parameter write-back."""

    def test_fit_completes(self, app, line_source_dataset):
        """Iterations arrive in order and parameters are written back."""
        controller = FittingController()
        iterations, results, running = [], [], []
        controller.iteration_updated.connect(iterations.append)
        controller.fit_completed.connect(results.append)
        controller.running_changed.connect(running.append)

        params = start_params(k=30.0)
        controller.start_fit(ModelIdentifier.LINE_SOURCE, line_source_dataset, params, 1.0)
        process_until(app, lambda: bool(results))

        assert results[0].stopped_reason is StopReason.CONVERGED
        assert params[0].value == pytest.approx(10.0, rel=1e-3)
        assert [e.iteration for e in iterations] == list(range(1, len(iterations) + 1))
        assert running == [True, False]
        assert not controller.is_running()

    def test_invalid_request(self, app, line_source_dataset):
        """Validation errors are raised before a thread starts."""
        controller = FittingController()
        params = start_params()
        for param in params:
            param.fit = False
        with pytest.raises(InvalidInputError):
            controller.start_fit(ModelIdentifier.LINE_SOURCE, line_source_dataset, params, 1.0)
        assert not controller.is_running()

    def test_restart_cancels_previous(self, app, line_source_dataset):
        """Only one fit runs; the previous one completes before the next starts."""
        controller = FittingController()
        results = []
        controller.fit_completed.connect(results.append)

        first = start_params(k=300.0)
        second = start_params(k=30.0)
        controller.start_fit(ModelIdentifier.LINE_SOURCE, line_source_dataset, first, 1.0)
        controller.start_fit(ModelIdentifier.LINE_SOURCE, line_source_dataset, second, 1.0)
        assert len(results) == 1

        process_until(app, lambda: len(results) == 2)
        assert results[1].stopped_reason is StopReason.CONVERGED
        assert second[0].value == pytest.approx(10.0, rel=1e-3)

    def test_cancel(self, app, slow_registry, homogeneous_dataset):
        """A run cancelled right after starting ends CANCELLED with no iterations."""
        controller = FittingController(registry=slow_registry)
        iterations, results = [], []
        controller.iteration_updated.connect(iterations.append)
        controller.fit_completed.connect(results.append)

        params = start_params(ModelIdentifier.HOMOGENEOUS, k=15.0, S=4.0, C=0.02)
        controller.start_fit(ModelIdentifier.HOMOGENEOUS, homogeneous_dataset, params, 1.0)
        controller.cancel_fit()
        assert controller.wait(60000)
        app.processEvents()

        assert len(results) == 1
        assert results[0].stopped_reason is StopReason.CANCELLED
        assert not results[0].converged
        assert iterations == []
        assert not controller.is_running()

    def test_cancel_after_first_iteration(self, app, slow_registry, homogeneous_dataset):
        """No iteration signals are relayed once the run is cancelled."""
        controller = FittingController(registry=slow_registry)
        iterations, results = [], []

        def on_iteration(event):
            iterations.append(event)
            controller.cancel_fit()

        controller.iteration_updated.connect(on_iteration)
        controller.fit_completed.connect(results.append)

        params = start_params(ModelIdentifier.HOMOGENEOUS, k=15.0, S=4.0, C=0.02)
        controller.start_fit(ModelIdentifier.HOMOGENEOUS, homogeneous_dataset, params, 1.0)
        process_until(app, lambda: bool(results))
        # Late queued signals from the worker must still be dropped
        app.processEvents()

        assert len(iterations) == 1
        assert results[0].stopped_reason is StopReason.CANCELLED
        assert results[0].iteration_count <= 2
        assert not controller.is_running()

    def test_options_default_to_config(self, app, monkeypatch):
        """Without explicit options the lm config section is used."""
        monkeypatch.setattr(config, "LM_SETTINGS", {"max_iterations": 4})
        assert FittingController().options.max_iterations == 4

        explicit = LMOptions(max_retries=2)
        assert FittingController(options=explicit).options is explicit
