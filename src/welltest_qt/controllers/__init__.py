"""Controller layer for the welltest Qt bridge."""

from .fitting import FittingController

__all__ = ["FittingController"]
