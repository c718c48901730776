"""
Error Taxonomy
==============
Exceptions raised by the simulation kernel.

    ConfigurationError          invalid input, raised before any trial runs
    SimulationError             a trial reached an invalid state, aborts the run
    ExecutionUnitError          worker pool failed, absorbed by sequential fallback
    NumericalDegeneracyWarning  Cholesky residual clamped to zero, run proceeds
"""


class MarketSimError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(MarketSimError, ValueError):
    """Out-of-range or inconsistent configuration."""


class SimulationError(MarketSimError, RuntimeError):
    """A weekly step produced a non-finite or impossible state."""


class ExecutionUnitError(MarketSimError, RuntimeError):
    """Execution units could not be created or died before returning results."""


class NumericalDegeneracyWarning(RuntimeWarning):
    """Emitted when a factorisation pivot is clamped to zero."""
