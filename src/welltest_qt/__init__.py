"""welltest Qt - runs well-test fits on Qt threads and relays progress as signals."""

from .controllers import FittingController

__all__ = ["FittingController"]
