"""Retirement planning for FERS households.

Deterministic scenario projections, Monte Carlo simulation and break-even
withdrawal analysis for federal employees and their spouses.  The most used
entry points are re-exported here; the building blocks live in
:mod:`fers_planner.calculators`.
"""

from __future__ import annotations

from .calculators.breakeven import BreakEvenSolver
from .calculators.market import HistoricalBootstrapSampler, StatisticalParameters, StatisticalSampler
from .calculators.monte_carlo import MonteCarloConfig, MonteCarloSimulator
from .calculators.projection import ProjectionEngine, compare_scenarios, projection_frame, summarize
from .calculators.survivor import analyze_survivor_viability
from .errors import (
    BoundsError,
    ConfigurationError,
    ConvergenceWarning,
    InsufficientDataError,
    PlannerError,
    SimulationCancelled,
    SystemicFailureError,
)
from .historical import DataFrameHistoricalData, HistoricalDataProvider
from .log import configure_logging
from .models import (
    AnnualCashFlow,
    GenericScenario,
    GlobalAssumptions,
    Household,
    MortalityAssumptions,
    MortalitySpec,
    Participant,
    ParticipantScenario,
    SimulationResult,
)

__version__ = "0.1.0"

__all__ = [
    "BreakEvenSolver",
    "HistoricalBootstrapSampler",
    "StatisticalParameters",
    "StatisticalSampler",
    "MonteCarloConfig",
    "MonteCarloSimulator",
    "ProjectionEngine",
    "compare_scenarios",
    "projection_frame",
    "summarize",
    "analyze_survivor_viability",
    "BoundsError",
    "ConfigurationError",
    "ConvergenceWarning",
    "InsufficientDataError",
    "PlannerError",
    "SimulationCancelled",
    "SystemicFailureError",
    "DataFrameHistoricalData",
    "HistoricalDataProvider",
    "configure_logging",
    "AnnualCashFlow",
    "GenericScenario",
    "GlobalAssumptions",
    "Household",
    "MortalityAssumptions",
    "MortalitySpec",
    "Participant",
    "ParticipantScenario",
    "SimulationResult",
]
