"""Exception and warning types raised by the planner.

Configuration and bounds errors abort a projection and surface to the
caller.  ``InsufficientDataError`` is recoverable: the Monte Carlo simulator
falls back to statistical sampling when it sees one.  ``ConvergenceWarning``
is a warning rather than an exception so that the break-even solver can still
return its best-effort rate.
"""

from __future__ import annotations

from typing import List, Optional


class PlannerError(Exception):
    """Base class for all planner errors."""


class ConfigurationError(PlannerError, ValueError):
    """Household, scenario or run parameters are inconsistent."""


class BoundsError(PlannerError, IndexError):
    """A requested projection year lies outside the configured horizon."""


class InsufficientDataError(PlannerError):
    """Historical market data is missing or too short for sampling."""


class SimulationCancelled(PlannerError):
    """Raised inside a trial once a cancellation request is observed."""


class SystemicFailureError(PlannerError):
    """Too many Monte Carlo trials failed for the batch to be meaningful."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class ConvergenceWarning(UserWarning):
    """The break-even solver stopped without reaching its tolerance."""


__all__ = [
    "PlannerError",
    "ConfigurationError",
    "BoundsError",
    "InsufficientDataError",
    "SimulationCancelled",
    "SystemicFailureError",
    "ConvergenceWarning",
]
