"""
One analysis: a dataset, a model with its parameter list, and the
controller that fits them.
"""

import logging
from collections.abc import Collection
from typing import Any

from welltest_core.analysis.evaluator import evaluate_curve
from welltest_core.analysis.fitting_service import FitHandle, FittingController
from welltest_core.analysis.models import ModelRegistry, default_fit_params, get_model
from welltest_core.analysis.optimizer import LMOptions
from welltest_core.types.analysis import (
    FitParam,
    FitResult,
    ModelCurve,
    ModelIdentifier,
    ObservedDataset,
    params_to_values,
)

logger = logging.getLogger(__name__)


def unique_name(base: str, existing: Collection[str]) -> str:
    """Return ``base`` or the first free ``"base N"`` (N >= 2) not in ``existing``."""
    if base not in existing:
        return base
    suffix = 2
    while f"{base} {suffix}" in existing:
        suffix += 1
    return f"{base} {suffix}"


class FittingSession:
    """A named analysis holding at most one active fit."""

    def __init__(
        self,
        name: str,
        model: ModelIdentifier | str,
        dataset: ObservedDataset,
        params: list[FitParam] | None = None,
        weight: float = 1.0,
        registry: ModelRegistry | None = None,
        options: LMOptions | None = None,
    ) -> None:
        self.name = name
        self._registry = registry
        self.model = get_model(model, registry).identifier
        self.dataset = dataset
        self.params = params if params is not None else default_fit_params(self.model, registry)
        self.weight = float(weight)
        self.last_result: FitResult | None = None
        self.controller = FittingController(registry, options)
        self.controller.on_completed(self._on_completed)

    def _on_completed(self, result: FitResult) -> None:
        self.last_result = result

    # ------------------------------------------------------------------------
    # PARAMETERS AND MODEL
    # ------------------------------------------------------------------------
    def reset_parameters(self) -> None:
        """Restore schema defaults for the current model, in place."""
        self.params[:] = default_fit_params(self.model, self._registry)

    def set_model(self, model: ModelIdentifier | str) -> None:
        """Switch model; values of parameters shared with the old model are kept."""
        identifier = get_model(model, self._registry).identifier
        if identifier is self.model:
            return
        if self.controller.is_running():
            self.controller.cancel_fit()
            self.controller.wait()

        previous = {param.name: param for param in self.params}
        fresh = default_fit_params(identifier, self._registry)
        for param in fresh:
            old = previous.get(param.name)
            if old is not None and param.lb <= old.value <= param.ub:
                param.value = old.value
                param.fit = old.fit
        logger.info("Analysis '%s': model %s -> %s", self.name, self.model.value, identifier.value)
        self.model = identifier
        self.params[:] = fresh
        self.last_result = None

    def model_curve(self, times=None) -> ModelCurve:
        """Current model curve, at the observed times unless ``times`` is given."""
        t = self.dataset.time if times is None else times
        return evaluate_curve(
            self.model,
            params_to_values(self.params),
            t,
            registry=self._registry,
            spacing=self.controller.options.spacing,
        )

    # ------------------------------------------------------------------------
    # FITTING
    # ------------------------------------------------------------------------
    def start_fit(self) -> FitHandle:
        return self.controller.start_fit(self.model, self.dataset, self.params, self.weight)

    def cancel_fit(self) -> None:
        self.controller.cancel_fit()

    # ------------------------------------------------------------------------
    # SNAPSHOTS
    # ------------------------------------------------------------------------
    def snapshot(self) -> dict[str, Any]:
        """Plain-record state of this analysis."""
        return {
            "name": self.name,
            "model": self.model.value,
            "weight": self.weight,
            "parameters": [param.to_dict() for param in self.params],
            "dataset": self.dataset.to_dict(),
            "result": self.last_result.to_dict() if self.last_result else None,
        }

    @classmethod
    def from_snapshot(
        cls,
        data: dict[str, Any],
        registry: ModelRegistry | None = None,
        options: LMOptions | None = None,
    ) -> "FittingSession":
        session = cls(
            name=str(data["name"]),
            model=data["model"],
            dataset=ObservedDataset.from_dict(data["dataset"]),
            params=[FitParam.from_dict(item) for item in data["parameters"]],
            weight=float(data.get("weight", 1.0)),
            registry=registry,
            options=options,
        )
        if data.get("result"):
            session.last_result = FitResult.from_dict(data["result"])
        return session
