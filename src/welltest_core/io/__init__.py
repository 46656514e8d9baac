"""
Persistence helpers for well-test analyses.
"""

from welltest_core.io.results_yaml import load_fit_results, save_fit_results

__all__ = [
    "load_fit_results",
    "save_fit_results",
]
