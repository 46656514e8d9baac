"""Core library for well-test (pressure-transient) model fitting."""

__version__ = "0.1.0"
