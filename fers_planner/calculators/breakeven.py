"""Break-even TSP withdrawal rate.

Finds the ``variable_percentage`` rate at which projected net income in the
first fully retired year matches a target, by default today's working net
income.  Net income rises with the withdrawal rate, so bisection over
``[lower, upper]`` is enough.

Each trial rate is injected into a deep copy of the scenario; the caller's
scenario is never modified.
"""

from __future__ import annotations

import copy
import warnings
from dataclasses import replace
from typing import Optional, Sequence

from loguru import logger

from ..errors import BoundsError, ConfigurationError, ConvergenceWarning
from ..models import BreakEvenAnalysis, BreakEvenResult, GenericScenario, GlobalAssumptions, Household
from .projection import ProjectionEngine, current_net_income


def with_withdrawal_rate(scenario: GenericScenario, rate: float) -> GenericScenario:
    """Copy of ``scenario`` with every participant on ``variable_percentage`` at ``rate``."""
    clone = copy.deepcopy(scenario)
    participants = {
        name: replace(choices, withdrawal_strategy="variable_percentage", withdrawal_params={"rate": rate})
        for name, choices in clone.participants.items()
    }
    return replace(clone, participants=participants)


class BreakEvenSolver:
    def __init__(
        self,
        engine: Optional[ProjectionEngine] = None,
        lower: float = 0.001,
        upper: float = 0.15,
        tolerance: float = 1000.0,
        max_iterations: int = 50,
        min_width: float = 0.0001,
    ):
        if not 0 <= lower < upper:
            raise ConfigurationError(f"invalid bisection interval [{lower}, {upper}]")
        self.engine = engine or ProjectionEngine()
        self.lower = lower
        self.upper = upper
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.min_width = min_width

    def first_full_retirement_year(
        self, household: Household, scenario: GenericScenario, assumptions: GlobalAssumptions
    ) -> int:
        """Index of the first year in which every participant is retired all year."""
        resolved = self.engine.resolve(household, scenario, assumptions)
        indexes = resolved.retirement_indexes
        if any(i is None for i in indexes):
            raise ConfigurationError(f"scenario {scenario.name!r}: every participant needs a retirement date")
        year_index = max(0, max(indexes) + 1)
        if year_index >= assumptions.projection_years:
            raise BoundsError(
                f"first full retirement year {year_index} is outside the {assumptions.projection_years}-year horizon"
            )
        return year_index

    def _net_income(self, household, scenario, assumptions, rate: float, year_index: int):
        projection = self.engine.project(
            household, with_withdrawal_rate(scenario, rate), assumptions, years=year_index + 1
        )
        return projection[-1]

    def solve(
        self,
        household: Household,
        scenario: GenericScenario,
        assumptions: GlobalAssumptions,
        target_income: float,
    ) -> BreakEvenResult:
        year_index = self.first_full_retirement_year(household, scenario, assumptions)
        lo, hi = self.lower, self.upper
        converged = False
        iterations = 0
        rate = (lo + hi) / 2
        cash_flow = None
        while iterations < self.max_iterations:
            iterations += 1
            rate = (lo + hi) / 2
            cash_flow = self._net_income(household, scenario, assumptions, rate, year_index)
            diff = cash_flow.net_income - target_income
            logger.debug(f"{scenario.name}: rate {rate:.5f} -> net {cash_flow.net_income:,.0f} (diff {diff:,.0f})")
            if abs(diff) <= self.tolerance:
                converged = True
                break
            if diff < 0:
                lo = rate
            else:
                hi = rate
            if hi - lo < self.min_width:
                break

        if not converged:
            message = (
                f"break-even rate for {scenario.name!r} did not converge after {iterations} iterations; "
                f"best estimate {rate:.4%}"
            )
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning, stacklevel=2)

        return BreakEvenResult(
            scenario_name=scenario.name,
            rate=rate,
            converged=converged,
            iterations=iterations,
            year_index=year_index,
            year=cash_flow.year,
            target_income=target_income,
            projected_net_income=cash_flow.net_income,
            difference=cash_flow.net_income - target_income,
            total_withdrawal=cash_flow.total_withdrawal,
            total_balance=cash_flow.total_tsp_balance,
        )

    def analyze(
        self,
        household: Household,
        scenarios: Sequence[GenericScenario],
        assumptions: GlobalAssumptions,
        target_income: Optional[float] = None,
    ) -> BreakEvenAnalysis:
        """Solve every scenario against one target."""
        if target_income is None:
            target_income = current_net_income(household, assumptions)
        logger.info(f"Break-even analysis of {len(scenarios)} scenario(s), target net income {target_income:,.0f}")
        results = tuple(self.solve(household, s, assumptions, target_income) for s in scenarios)
        return BreakEvenAnalysis(target_income=target_income, results=results)


__all__ = ["BreakEvenSolver", "with_withdrawal_rate"]
