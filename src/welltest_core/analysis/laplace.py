"""
Numerical Laplace inversion (Gaver-Stehfest) for well-test solutions.
"""

import math
from functools import lru_cache
from typing import Callable

import numpy as np

from welltest_core import config


@lru_cache(maxsize=None)
def _stehfest_weights(n_terms: int) -> tuple[float, ...]:
    half = n_terms // 2
    weights = []
    for k in range(1, n_terms + 1):
        total = 0.0
        for j in range((k + 1) // 2, min(k, half) + 1):
            num = j**half * math.factorial(2 * j)
            den = (
                math.factorial(half - j)
                * math.factorial(j)
                * math.factorial(j - 1)
                * math.factorial(k - j)
                * math.factorial(2 * j - k)
            )
            total += num / den
        weights.append(total * (-1) ** (k + half))
    return tuple(weights)


def stehfest_weights(n_terms: int) -> np.ndarray:
    """Stehfest weights V_1..V_N (N must be a positive even integer)."""
    if n_terms <= 0 or n_terms % 2:
        raise ValueError(f"Stehfest term count must be a positive even integer, got {n_terms}")
    return np.array(_stehfest_weights(n_terms))


def invert_stehfest(
    transform: Callable[[np.ndarray], np.ndarray],
    t: np.ndarray,
    n_terms: int | None = None,
) -> np.ndarray:
    """Invert a Laplace-space function at every time in ``t``.

    Args:
        transform: Vectorized F(s); called once with an array of shape (len(t), N)
        t: Positive times
        n_terms: Number of Stehfest terms (defaults to ``config.STEHFEST_TERMS``)

    Returns:
        f(t) with the same shape as ``t``
    """
    n_terms = config.STEHFEST_TERMS if n_terms is None else n_terms
    weights = stehfest_weights(n_terms)
    t = np.asarray(t, dtype=np.float64)

    ln2_t = math.log(2.0) / t
    s = ln2_t[:, None] * np.arange(1, n_terms + 1)[None, :]
    values = np.asarray(transform(s), dtype=np.float64)
    return ln2_t * (values @ weights)


def wellbore_storage_and_skin(
    sandface: np.ndarray, s: np.ndarray, skin: float, storage: float
) -> np.ndarray:
    """Add skin and wellbore storage to a sandface Laplace solution.

    Uses p_w = (s p_D + S) / (s (1 + C_D s (s p_D + S))).
    """
    with_skin = s * sandface + skin
    return with_skin / (s * (1.0 + storage * s * with_skin))
