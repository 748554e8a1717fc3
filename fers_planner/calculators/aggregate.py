"""Reduce Monte Carlo trials to summary statistics.

Percentiles use linear interpolation between closest ranks (numpy's default
``linear`` method), so the 10th percentile of ``1..100`` is ``10.9``.

Example
-------

>>> percentile(list(range(1, 101)), 10)
10.9
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np

from ..errors import InsufficientDataError
from ..models import PercentileBands, SimulationResult, SimulationTrial

BAND_PERCENTILES = (10, 25, 50, 75, 90)


def percentile(values: Sequence[float], p: float) -> float:
    if len(values) == 0:
        raise InsufficientDataError("cannot take a percentile of no values")
    return float(np.percentile(np.asarray(values, dtype=float), p))


def percentile_bands(values: Sequence[float]) -> PercentileBands:
    if len(values) == 0:
        return PercentileBands(0.0, 0.0, 0.0, 0.0, 0.0)
    p10, p25, p50, p75, p90 = np.percentile(np.asarray(values, dtype=float), BAND_PERCENTILES)
    return PercentileBands(float(p10), float(p25), float(p50), float(p75), float(p90))


def balance_percentiles_by_year(trials: Sequence[SimulationTrial], years: int) -> Dict[str, List[float]]:
    """P10/P50/P90 of the combined TSP balance for each projection year."""
    rows = [t.balances for t in trials if len(t.balances) == years]
    if not rows:
        return {"p10": [], "p50": [], "p90": []}
    matrix = np.asarray(rows, dtype=float)
    p10, p50, p90 = np.percentile(matrix, [10, 50, 90], axis=0)
    return {"p10": p10.tolist(), "p50": p50.tolist(), "p90": p90.tolist()}


def aggregate(
    trials: Sequence[SimulationTrial],
    years: int,
    num_trials: int,
    seed: int,
    sampler: str,
    partial: bool = False,
    warnings: Sequence[str] = (),
    keep_trials: bool = True,
) -> SimulationResult:
    """Build a :class:`SimulationResult` from completed trials.

    Parameters
    ----------
    trials:
        Completed trials, including ones that raised (``error`` set).  Errored
        trials count towards ``failed_trials`` and as failures in the success
        rate; they are left out of the percentile bands.
    years:
        Projection horizon.  Trials that never deplete the TSP count as
        lasting the full horizon for median longevity.
    num_trials:
        Trials requested; differs from ``len(trials)`` when cancelled.
    """
    good = [t for t in trials if t.error is None]
    failed = len(trials) - len(good)
    success_rate = sum(1 for t in good if t.success) / len(trials) if trials else 0.0
    longevity: Optional[float] = None
    if good:
        longevity = float(np.median([t.depletion_year if t.depletion_year is not None else years for t in good]))
    return SimulationResult(
        num_trials=num_trials,
        completed_trials=len(trials),
        success_rate=success_rate,
        ending_balance=percentile_bands([t.ending_balance for t in good]),
        net_income=percentile_bands([t.final_net_income for t in good]),
        median_tsp_longevity=longevity if longevity is not None else 0.0,
        balance_by_year=balance_percentiles_by_year(good, years),
        seed=seed,
        sampler=sampler,
        partial=partial,
        failed_trials=failed,
        warnings=tuple(warnings),
        trials=tuple(trials) if keep_trials else (),
    )


__all__ = ["BAND_PERCENTILES", "percentile", "percentile_bands", "balance_percentiles_by_year", "aggregate"]
