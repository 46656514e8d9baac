"""
Dense linear solver for the Levenberg-Marquardt normal equations.
"""

import warnings

import numpy as np
from scipy.linalg import LinAlgError, LinAlgWarning, lu_factor, lu_solve

from welltest_core.errors import SingularMatrixError

PIVOT_TOLERANCE = 1e-14


def solve_linear_system(
    a: np.ndarray, b: np.ndarray, pivot_tol: float = PIVOT_TOLERANCE
) -> np.ndarray:
    """Solve ``a x = b`` through an LU factorization with partial pivoting.

    Args:
        a: Square coefficient matrix
        b: Right-hand side vector
        pivot_tol: Pivots of U with magnitude at or below ``pivot_tol * max|a|``
            are treated as zero

    Returns:
        Solution vector

    Raises:
        SingularMatrixError: If the matrix is singular, nearly singular or
            contains non-finite entries
    """
    m = np.array(a, dtype=np.float64, copy=True)
    rhs = np.array(b, dtype=np.float64, copy=True)
    n = m.shape[0]
    if m.ndim != 2 or m.shape[1] != n or rhs.shape != (n,):
        raise ValueError(f"Incompatible shapes {m.shape} and {rhs.shape}")
    if n == 0:
        return rhs
    if not (np.all(np.isfinite(m)) and np.all(np.isfinite(rhs))):
        raise SingularMatrixError("Linear system contains non-finite values")

    threshold = pivot_tol * float(np.max(np.abs(m)))
    if threshold == 0.0:
        raise SingularMatrixError("Linear system matrix is zero")

    # Exact zero pivots are reported below, not as a warning
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", LinAlgWarning)
        try:
            lu, piv = lu_factor(m, overwrite_a=True, check_finite=False)
        except LinAlgError as exc:
            raise SingularMatrixError(f"LU factorization failed: {exc}") from exc

    pivots = np.abs(np.diag(lu))
    col = int(np.argmin(pivots))
    if pivots[col] <= threshold:
        raise SingularMatrixError(f"Zero pivot in column {col} (|pivot|={pivots[col]:.3e})")

    return lu_solve((lu, piv), rhs, overwrite_b=True, check_finite=False)
