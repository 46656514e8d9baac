"""Numerical defaults for the well-test core, optionally overridden from YAML."""

# =============================================================================
# IMPORTS
# =============================================================================

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================

CONFIG_ENV_VAR = "WELLTEST_CONFIG"


def _default_config_path() -> Path:
    """Config file location: ``$WELLTEST_CONFIG`` or ``~/.welltest/config.yaml``."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".welltest" / "config.yaml"


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from a YAML file.

    Missing files yield an empty mapping; unreadable or malformed files are
    logged and ignored so that defaults stay in effect.
    """
    config_file = Path(path) if path is not None else _default_config_path()

    if not config_file.exists():
        logger.debug("No config file found at %s, using defaults", config_file)
        return {}

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config from %s: %s", config_file, e)
        return {}

    if not isinstance(config, dict):
        logger.warning("Ignoring config %s: top level must be a mapping", config_file)
        return {}

    logger.info("Loaded configuration from %s", config_file)
    return config


# =============================================================================
# CONFIGURATION CONSTANTS
# =============================================================================

_config = load_config()

# Number of Gaver-Stehfest terms used to invert Laplace-space solutions (even)
STEHFEST_TERMS = int(_config.get("stehfest_terms", 12))

# Bourdet spacing, in natural-log time units, for observed data
BOURDET_SPACING = float(_config.get("bourdet_spacing", 0.1))

# Default smoothing window applied after the Bourdet pass (<= 1 disables it)
SMOOTH_FACTOR = float(_config.get("smooth_factor", 1.0))

# Model curves: Bourdet spacing and the dense log grid the derivative is taken on
MODEL_SPACING = float(_config.get("model_spacing", 0.05))
MODEL_POINTS_PER_CYCLE = int(_config.get("model_points_per_cycle", 40))
MODEL_GRID_PADDING = float(_config.get("model_grid_padding", 0.5))

# Levenberg-Marquardt overrides; keys match LMOptions field names
LM_SETTINGS: dict[str, Any] = dict(_config.get("lm", {}) or {})


def lm_options_from_config(settings: dict[str, Any] | None = None):
    """Build LMOptions from the ``lm`` config section, ignoring unknown keys."""
    from welltest_core.analysis.optimizer import LMOptions

    settings = LM_SETTINGS if settings is None else settings
    return LMOptions.from_mapping(settings)
