"""Tests for Monte Carlo aggregation."""

import pytest

from fers_planner.calculators.aggregate import aggregate, percentile, percentile_bands
from fers_planner.errors import InsufficientDataError
from fers_planner.models import SimulationTrial


def test_percentiles_interpolate_linearly():
    values = list(range(1, 101))
    assert percentile(values, 10) == pytest.approx(10.9)
    bands = percentile_bands(values)
    assert (bands.p10, bands.p25, bands.p50, bands.p75, bands.p90) == pytest.approx((10.9, 25.75, 50.5, 75.25, 90.1))


def test_percentile_of_nothing():
    with pytest.raises(InsufficientDataError):
        percentile([], 50)
    assert percentile_bands([]).p50 == 0.0


def _trial(index, balances, depletion=None, error=None):
    return SimulationTrial(
        index=index,
        seed=index,
        success=depletion is None and error is None,
        depletion_year=depletion,
        balances=tuple(balances),
        net_incomes=tuple(b / 10 for b in balances),
        error=error,
    )


def test_aggregate_trials():
    trials = [
        _trial(0, [100.0, 90.0, 80.0]),
        _trial(1, [100.0, 50.0, 0.0], depletion=3),
        _trial(2, [100.0, 0.0, 0.0], depletion=2),
        _trial(3, [120.0, 110.0, 100.0]),
        _trial(4, [], error="RuntimeError: boom"),
    ]
    result = aggregate(trials, years=3, num_trials=5, seed=7, sampler="statistical")
    assert result.completed_trials == 5
    assert result.failed_trials == 1
    assert result.success_rate == pytest.approx(0.4)
    # depletion years 3, 2 and two trials capped at the horizon
    assert result.median_tsp_longevity == pytest.approx(3.0)
    assert result.ending_balance.p50 == pytest.approx(40.0)
    assert result.balance_by_year["p50"] == pytest.approx([100.0, 70.0, 40.0])
    assert len(result.trials) == 5
    assert not result.partial


def test_errored_trials_count_as_failures():
    """A trial that raised is a failed outcome, not a skipped one."""
    trials = [_trial(i, [100.0, 100.0]) for i in range(8)]
    trials += [_trial(8 + i, [], error="RuntimeError: boom") for i in range(2)]
    result = aggregate(trials, years=2, num_trials=10, seed=1, sampler="statistical")
    assert result.completed_trials == 10
    assert result.failed_trials == 2
    assert result.success_rate == pytest.approx(0.8)
    assert result.ending_balance.p10 == pytest.approx(100.0)
