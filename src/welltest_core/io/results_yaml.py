"""
Fit results YAML: write and read analysis snapshots as plain records.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

RESULTS_VERSION = 1


# =============================================================================
# PUBLIC API - WRITING
# =============================================================================


def save_fit_results(file_path: Path, analyses: list[dict[str, Any]]) -> None:
    """Write analysis snapshots (see ``FittingSession.snapshot``) to YAML."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"version": RESULTS_VERSION, "analyses": list(analyses)}
    with open(file_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(payload, f, sort_keys=False)
    logger.info("Saved %d analyses to %s", len(analyses), file_path)


# =============================================================================
# PUBLIC API - LOADING
# =============================================================================


def load_fit_results(file_path: Path) -> list[dict[str, Any]]:
    """Read analysis snapshots written by :func:`save_fit_results`.

    Raises:
        ValueError: If the file cannot be parsed or has no ``analyses`` list
    """
    file_path = Path(file_path)
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ValueError(f"Failed to load YAML file {file_path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("analyses"), list):
        raise ValueError(f"YAML file {file_path} missing 'analyses' section")

    version = data.get("version", RESULTS_VERSION)
    if version != RESULTS_VERSION:
        logger.warning("Results file %s has version %s, expected %s", file_path, version, RESULTS_VERSION)

    return data["analyses"]
