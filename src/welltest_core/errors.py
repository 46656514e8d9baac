"""
Exceptions raised by the well-test core.
"""


class InvalidInputError(ValueError):
    """Input rejected before any computation starts.

    Raised for non-positive or unordered times, mismatched array lengths,
    missing or out-of-bounds parameters and unknown models.
    """


class SingularMatrixError(ArithmeticError):
    """The damped normal equations could not be solved (zero or tiny pivot)."""
