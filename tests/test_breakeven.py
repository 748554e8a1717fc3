"""Tests for the break-even withdrawal rate solver."""

import datetime as dt

import pytest

from fers_planner.calculators.breakeven import BreakEvenSolver, with_withdrawal_rate
from fers_planner.calculators.projection import ProjectionEngine, current_net_income
from fers_planner.errors import BoundsError, ConfigurationError, ConvergenceWarning
from fers_planner.models import SINGLE, GenericScenario, GlobalAssumptions, Household, Participant, ParticipantScenario


def _retiree():
    return Household((Participant("alex", dt.date(1960, 1, 1), tsp_traditional=1000000.0),), SINGLE)


def _scenario(retirement_date=dt.date(2024, 1, 1)):
    return GenericScenario(
        "retired",
        {"alex": ParticipantScenario(retirement_date=retirement_date, withdrawal_strategy="fixed_amount",
                                     withdrawal_params={"amount": 30000.0})},
    )


def _net_at(rate, household, scenario, assumptions, year_index=0):
    flows = ProjectionEngine().project(household, with_withdrawal_rate(scenario, rate), assumptions, years=year_index + 1)
    return flows[-1].net_income


def test_recovers_known_rate():
    """The solver finds the rate that produced the target income."""
    household, scenario, assumptions = _retiree(), _scenario(), GlobalAssumptions()
    target = _net_at(0.05, household, scenario, assumptions)
    result = BreakEvenSolver().solve(household, scenario, assumptions, target)
    assert result.converged
    assert abs(result.difference) <= 1000.0
    assert result.rate == pytest.approx(0.05, abs=0.005)
    assert result.year_index == 0 and result.year == 2025
    assert result.total_withdrawal == pytest.approx(1000000.0 * result.rate)


def test_input_scenario_is_not_modified():
    scenario = _scenario()
    BreakEvenSolver().solve(_retiree(), scenario, GlobalAssumptions(), 40000.0)
    assert scenario.participants["alex"].withdrawal_strategy == "fixed_amount"
    assert scenario.participants["alex"].withdrawal_params == {"amount": 30000.0}


def test_unreachable_target_warns():
    with pytest.warns(ConvergenceWarning):
        result = BreakEvenSolver().solve(_retiree(), _scenario(), GlobalAssumptions(), 10_000_000.0)
    assert not result.converged
    assert result.rate > 0.149
    assert result.iterations < 50


def test_first_full_retirement_year():
    solver = BreakEvenSolver()
    assumptions = GlobalAssumptions(projection_years=30)
    assert solver.first_full_retirement_year(_retiree(), _scenario(dt.date(2027, 3, 1)), assumptions) == 3
    with pytest.raises(BoundsError):
        solver.first_full_retirement_year(_retiree(), _scenario(dt.date(2054, 6, 1)), assumptions)
    with pytest.raises(ConfigurationError):
        solver.first_full_retirement_year(_retiree(), _scenario(None), assumptions)


def test_analyze_defaults_to_current_net_income():
    worker = Participant("alex", dt.date(1965, 1, 1), current_salary=90000.0, tsp_traditional=800000.0)
    household = Household((worker,), SINGLE)
    assumptions = GlobalAssumptions()
    scenarios = [_scenario(dt.date(2027, 1, 1)), _scenario(dt.date(2030, 1, 1))]
    analysis = BreakEvenSolver().analyze(household, scenarios, assumptions)
    assert analysis.target_income == pytest.approx(current_net_income(household, assumptions))
    assert [r.year_index for r in analysis.results] == [3, 6]
    assert all(r.converged for r in analysis.results)


def test_invalid_interval():
    with pytest.raises(ConfigurationError):
        BreakEvenSolver(lower=0.2, upper=0.1)


class _CountingEngine(ProjectionEngine):
    def __init__(self):
        super().__init__()
        self.projections = 0

    def project(self, *args, **kwargs):
        self.projections += 1
        return super().project(*args, **kwargs)


def test_unconverged_result_is_last_evaluated_rate():
    """No extra projection is run once the interval collapses."""
    engine = _CountingEngine()
    household, scenario, assumptions = _retiree(), _scenario(), GlobalAssumptions()
    with pytest.warns(ConvergenceWarning):
        result = BreakEvenSolver(engine).solve(household, scenario, assumptions, 10_000_000.0)
    assert engine.projections == result.iterations
    assert result.projected_net_income == pytest.approx(_net_at(result.rate, household, scenario, assumptions))
