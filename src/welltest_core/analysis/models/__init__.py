"""
Analytical well-test response models and the registry that maps model
identifiers to their evaluators and parameter schemas.
"""

from collections.abc import Iterator, Mapping
from types import MappingProxyType

from welltest_core.analysis.models import (
    dual_porosity,
    finite_conductivity_fracture,
    homogeneous,
    infinite_conductivity_fracture,
    line_source,
    radial_composite,
    sealing_fault,
)
from welltest_core.errors import InvalidInputError
from welltest_core.types.analysis import FitParam, ModelIdentifier, ModelSpec

MODELS = {
    ModelIdentifier.LINE_SOURCE: line_source,
    ModelIdentifier.HOMOGENEOUS: homogeneous,
    ModelIdentifier.RADIAL_COMPOSITE: radial_composite,
    ModelIdentifier.DUAL_POROSITY: dual_porosity,
    ModelIdentifier.SEALING_FAULT: sealing_fault,
    ModelIdentifier.INFINITE_CONDUCTIVITY_FRACTURE: infinite_conductivity_fracture,
    ModelIdentifier.FINITE_CONDUCTIVITY_FRACTURE: finite_conductivity_fracture,
}


def _spec_from_module(identifier: ModelIdentifier, module) -> ModelSpec:
    required = ["LABEL", "PARAMETERS", "eval"]
    for attr in required:
        if not hasattr(module, attr):
            raise ValueError(f"Model module missing required attribute: {attr}")
    return ModelSpec(
        identifier=identifier,
        label=module.LABEL,
        parameters=tuple(module.PARAMETERS),
        pressure=module.eval,
        derivative=getattr(module, "eval_derivative", None),
    )


def to_identifier(model: ModelIdentifier | str) -> ModelIdentifier:
    """Accept either an enum member or its string value."""
    if isinstance(model, ModelIdentifier):
        return model
    try:
        return ModelIdentifier(str(model).lower())
    except ValueError:
        available = ", ".join(m.value for m in ModelIdentifier)
        raise InvalidInputError(
            f"Unknown model: {model}. Available models: {available}"
        ) from None


class ModelRegistry(Mapping):
    """Immutable mapping from model identifier to ModelSpec."""

    def __init__(self, specs: Mapping[ModelIdentifier, ModelSpec]) -> None:
        self._specs = MappingProxyType(dict(specs))

    @classmethod
    def from_modules(cls, modules: Mapping[ModelIdentifier, object]) -> "ModelRegistry":
        return cls({ident: _spec_from_module(ident, mod) for ident, mod in modules.items()})

    def __getitem__(self, model: ModelIdentifier | str) -> ModelSpec:
        identifier = to_identifier(model)
        if identifier not in self._specs:
            available = ", ".join(m.value for m in self._specs)
            raise InvalidInputError(
                f"Model {identifier.value} is not registered. Available models: {available}"
            )
        return self._specs[identifier]

    def __contains__(self, model: object) -> bool:
        try:
            return to_identifier(model) in self._specs
        except InvalidInputError:
            return False

    def __iter__(self) -> Iterator[ModelIdentifier]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def replace(self, spec: ModelSpec) -> "ModelRegistry":
        """Return a new registry with ``spec`` added or substituted."""
        specs = dict(self._specs)
        specs[spec.identifier] = spec
        return ModelRegistry(specs)


DEFAULT_REGISTRY = ModelRegistry.from_modules(MODELS)


def get_model(
    model: ModelIdentifier | str, registry: ModelRegistry | None = None
) -> ModelSpec:
    return (DEFAULT_REGISTRY if registry is None else registry)[model]


def list_models(registry: ModelRegistry | None = None) -> list[str]:
    """Return all registered model identifiers as strings."""
    registry = DEFAULT_REGISTRY if registry is None else registry
    return [identifier.value for identifier in registry]


def default_fit_params(
    model: ModelIdentifier | str, registry: ModelRegistry | None = None
) -> list[FitParam]:
    """Fresh parameter list initialised from the model schema defaults."""
    return [spec.to_fit_param() for spec in get_model(model, registry).parameters]


__all__ = [
    "DEFAULT_REGISTRY",
    "MODELS",
    "ModelRegistry",
    "default_fit_params",
    "get_model",
    "list_models",
    "to_identifier",
]
