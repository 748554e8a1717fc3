"""Monte Carlo simulation of a household scenario.

Every trial is a full deterministic projection driven by its own market
sampler.  Trial seeds are spawned from one top-level seed with
:class:`numpy.random.SeedSequence`, so a trial's sequence depends only on the
top-level seed and its index, never on which worker ran it or in what order.
Results are sorted back into trial order before aggregation, which makes the
outcome identical for any pool size.

Trials are submitted in chunks to a :mod:`concurrent.futures` pool (processes
by default).  Historical data is read from the provider once per run and
shipped to workers as a read-only :class:`HistoricalTable`.

Example
-------

>>> import datetime as dt
>>> from fers_planner.models import (GenericScenario, GlobalAssumptions, Household,
...     Participant, ParticipantScenario, SINGLE)
>>> person = Participant("pat", dt.date(1962, 1, 1), tsp_traditional=800000.0)
>>> scenario = GenericScenario("base", {"pat": ParticipantScenario(retirement_date=dt.date(2025, 1, 1))})
>>> config = MonteCarloConfig(num_trials=20, years=10, use_historical=False, seed=1, max_workers=1)
>>> result = MonteCarloSimulator().run(Household((person,), SINGLE), scenario, GlobalAssumptions(), config)
>>> 0.0 <= result.success_rate <= 1.0
True
"""

from __future__ import annotations

import copy
import os
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from ..errors import ConfigurationError, InsufficientDataError, SimulationCancelled, SystemicFailureError
from ..historical import HistoricalDataProvider
from ..models import FUNDS, GenericScenario, GlobalAssumptions, Household, SimulationResult, SimulationTrial
from .aggregate import aggregate
from .market import HistoricalBootstrapSampler, HistoricalTable, StatisticalParameters, StatisticalSampler
from .projection import ProjectionEngine, ResolvedScenario
from .withdrawals import StrategyRegistry

EXECUTORS = ("process", "thread")

# shortfalls below a cent are rounding
_SHORTFALL_TOLERANCE = 0.01


def validate_allocation(allocation: Mapping[str, float]) -> None:
    unknown = [fund for fund in allocation if fund not in FUNDS]
    if unknown:
        raise ConfigurationError(f"unknown TSP fund(s) in allocation: {unknown}")
    if any(weight < 0 for weight in allocation.values()):
        raise ConfigurationError("allocation weights must be non-negative")
    total = sum(allocation.values())
    if abs(total - 1.0) > 1e-6:
        raise ConfigurationError(f"allocation weights must sum to 1, got {total:.6f}")


@dataclass(frozen=True)
class MonteCarloConfig:
    """Simulation parameters.

    ``allocation`` overrides every participant's TSP allocation; left as
    ``None`` each participant keeps their own (or the assumptions' default).
    ``withdrawal_strategy`` likewise overrides every participant's strategy.
    """

    num_trials: int = 1000
    years: int = 25
    use_historical: bool = True
    allocation: Optional[Mapping[str, float]] = None
    withdrawal_strategy: Optional[str] = None
    withdrawal_params: Mapping[str, Any] = field(default_factory=dict)
    seed: Optional[int] = None
    max_workers: Optional[int] = None
    executor: str = "process"
    chunk_size: int = 50
    failure_threshold: float = 0.25
    min_historical_years: int = 20
    statistical: Optional[StatisticalParameters] = None
    keep_cash_flows: bool = True

    def validate(self) -> None:
        if self.num_trials <= 0:
            raise ConfigurationError("num_trials must be positive")
        if self.years <= 0:
            raise ConfigurationError("years must be positive")
        if self.executor not in EXECUTORS:
            raise ConfigurationError(f"executor must be one of {EXECUTORS}, got {self.executor!r}")
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")
        if not 0.0 <= self.failure_threshold <= 1.0:
            raise ConfigurationError("failure_threshold must be between 0 and 1")
        if self.allocation is not None:
            validate_allocation(self.allocation)


@dataclass(frozen=True)
class TrialChunk:
    """Everything a worker needs to run a slice of trials."""

    household: Household
    scenario: GenericScenario
    assumptions: GlobalAssumptions
    registry: StrategyRegistry
    allocation: Optional[Mapping[str, float]]
    years: int
    table: Optional[HistoricalTable]
    statistical: StatisticalParameters
    trials: Tuple[Tuple[int, int], ...]
    keep_cash_flows: bool = True


def trial_seeds(seed: int, num_trials: int) -> List[int]:
    """One integer seed per trial, spawned from ``seed``."""
    children = np.random.SeedSequence(seed).spawn(num_trials)
    return [int(child.generate_state(1, dtype=np.uint64)[0]) for child in children]


def run_trial(
    engine: ProjectionEngine,
    resolved: ResolvedScenario,
    chunk: TrialChunk,
    index: int,
    seed: int,
    cancel: Any = None,
) -> SimulationTrial:
    """Run one trial.  Errors other than cancellation are recorded on the trial."""
    if chunk.table is not None:
        sampler = HistoricalBootstrapSampler(chunk.years, seed, table=chunk.table)
    else:
        sampler = StatisticalSampler(chunk.years, seed, params=chunk.statistical)
    try:
        flows = engine.run(resolved, sampler=sampler, years=chunk.years, cancel=cancel)
    except SimulationCancelled:
        raise
    except Exception as exc:
        return SimulationTrial(index=index, seed=seed, success=False, depletion_year=None, error=f"{type(exc).__name__}: {exc}")

    depletion_year = None
    for cf in flows:
        if cf.shortfall > _SHORTFALL_TOLERANCE:
            depletion_year = cf.year_index + 1
            break
    return SimulationTrial(
        index=index,
        seed=seed,
        success=depletion_year is None,
        depletion_year=depletion_year,
        balances=tuple(cf.total_tsp_balance for cf in flows),
        net_incomes=tuple(cf.net_income for cf in flows),
        cash_flows=flows if chunk.keep_cash_flows else (),
    )


def run_chunk(chunk: TrialChunk, cancel: Any = None) -> List[SimulationTrial]:
    """Worker entry point; stops early once ``cancel`` is set."""
    engine = ProjectionEngine(chunk.registry)
    resolved = engine.resolve(chunk.household, chunk.scenario, chunk.assumptions, chunk.allocation)
    trials: List[SimulationTrial] = []
    for index, seed in chunk.trials:
        if cancel is not None and cancel.is_set():
            break
        try:
            trials.append(run_trial(engine, resolved, chunk, index, seed, cancel))
        except SimulationCancelled:
            break
    return trials


class MonteCarloSimulator:
    def __init__(self, provider: Optional[HistoricalDataProvider] = None, registry: Optional[StrategyRegistry] = None):
        self.provider = provider
        self.engine = ProjectionEngine(registry)

    @property
    def registry(self) -> StrategyRegistry:
        return self.engine.registry

    def _historical_table(self, config: MonteCarloConfig, notes: List[str]) -> HistoricalTable:
        if self.provider is None:
            raise InsufficientDataError("no historical data provider configured")
        report = self.provider.validate_data_quality()
        for issue in report.issues:
            message = f"historical data quality: {issue}"
            logger.warning(message)
            notes.append(message)
        table = HistoricalTable.from_provider(self.provider)
        if len(table) < config.min_historical_years:
            raise InsufficientDataError(
                f"{len(table)} historical year(s) available, at least {config.min_historical_years} required"
            )
        return table

    @staticmethod
    def _override_strategy(scenario: GenericScenario, config: MonteCarloConfig) -> GenericScenario:
        if config.withdrawal_strategy is None:
            return scenario
        clone = copy.deepcopy(scenario)
        participants = {
            name: replace(
                choices,
                withdrawal_strategy=config.withdrawal_strategy,
                withdrawal_params=dict(config.withdrawal_params),
            )
            for name, choices in clone.participants.items()
        }
        return replace(clone, participants=participants)

    def run(
        self,
        household: Household,
        scenario: GenericScenario,
        assumptions: GlobalAssumptions,
        config: Optional[MonteCarloConfig] = None,
        cancel: Any = None,
    ) -> SimulationResult:
        """Run ``config.num_trials`` trials and aggregate them.

        ``cancel`` is any object with ``is_set()`` (e.g. ``threading.Event``).
        Setting it stops the run; trials finished so far are aggregated into
        a result flagged ``partial``.
        """
        config = config or MonteCarloConfig()
        config.validate()
        scenario = self._override_strategy(scenario, config)
        # configuration errors abort here rather than once per trial
        resolved = self.engine.resolve(household, scenario, assumptions, config.allocation)

        seed = config.seed if config.seed is not None else int(np.random.SeedSequence().entropy)
        notes: List[str] = []
        table = None
        sampler_name = "statistical"
        if config.use_historical:
            try:
                table = self._historical_table(config, notes)
                sampler_name = "historical"
            except InsufficientDataError as exc:
                message = f"{exc}; falling back to statistical sampling"
                logger.warning(message)
                notes.append(message)
        statistical = config.statistical or StatisticalParameters.from_assumptions(assumptions)
        sampled = table.funds if table is not None else tuple(statistical.fund_returns)
        for name, plan in zip(household.names, resolved.plans):
            missing = sorted(fund for fund, weight in plan.allocation.items() if weight and fund not in sampled)
            if missing:
                raise ConfigurationError(
                    f"{name}: allocation holds fund(s) {missing} the {sampler_name} sampler does not model"
                )

        seeds = trial_seeds(seed, config.num_trials)
        pairs = list(enumerate(seeds))
        chunks = [
            TrialChunk(
                household=household,
                scenario=scenario,
                assumptions=assumptions,
                registry=self.registry,
                allocation=config.allocation,
                years=config.years,
                table=table,
                statistical=statistical,
                trials=tuple(pairs[start:start + config.chunk_size]),
                keep_cash_flows=config.keep_cash_flows,
            )
            for start in range(0, len(pairs), config.chunk_size)
        ]
        workers = config.max_workers or os.cpu_count() or 1
        logger.info(
            f"Monte Carlo '{scenario.name}': {config.num_trials} trials x {config.years} years, "
            f"{sampler_name} sampler, seed {seed}, {workers} worker(s)"
        )

        trials = self._execute(chunks, config, workers, cancel)
        trials.sort(key=lambda t: t.index)
        partial = len(trials) < config.num_trials
        if partial:
            logger.warning(f"Monte Carlo cancelled after {len(trials)} of {config.num_trials} trials")

        failed = [t for t in trials if t.error is not None]
        if failed:
            logger.warning(f"{len(failed)} of {len(trials)} trials failed")
            if len(failed) / len(trials) > config.failure_threshold:
                raise SystemicFailureError(
                    f"{len(failed)} of {len(trials)} trials failed (threshold {config.failure_threshold:.0%})",
                    errors=[f"trial {t.index}: {t.error}" for t in failed],
                )

        result = aggregate(
            trials,
            years=config.years,
            num_trials=config.num_trials,
            seed=seed,
            sampler=sampler_name,
            partial=partial,
            warnings=notes,
        )
        logger.info(
            f"Monte Carlo '{scenario.name}' finished: success rate {result.success_rate:.1%}, "
            f"median ending balance {result.ending_balance.p50:,.0f}"
        )
        return result

    def _execute(
        self, chunks: Sequence[TrialChunk], config: MonteCarloConfig, workers: int, cancel: Any
    ) -> List[SimulationTrial]:
        trials: List[SimulationTrial] = []
        if workers <= 1:
            for chunk in chunks:
                if cancel is not None and cancel.is_set():
                    break
                trials.extend(run_chunk(chunk, cancel))
                logger.debug(f"Completed {len(trials)} trials")
            return trials

        if config.executor == "process":
            pool_cls, worker_cancel = ProcessPoolExecutor, None
        else:
            pool_cls, worker_cancel = ThreadPoolExecutor, cancel
        with pool_cls(max_workers=workers) as pool:
            futures = [pool.submit(run_chunk, chunk, worker_cancel) for chunk in chunks]
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                trials.extend(future.result())
                logger.debug(f"Completed {len(trials)} trials")
                if cancel is not None and cancel.is_set():
                    for pending in futures:
                        pending.cancel()
                    break
        return trials


__all__ = [
    "EXECUTORS",
    "MonteCarloConfig",
    "MonteCarloSimulator",
    "TrialChunk",
    "run_chunk",
    "run_trial",
    "trial_seeds",
    "validate_allocation",
]
