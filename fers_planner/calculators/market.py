"""Yearly market samples for projections.

Each sampler yields one :class:`~fers_planner.models.MarketSample` per
projection year.  It is bound to a seed, so the same seed reproduces the same
sequence, and :meth:`MarketSampler.reset` (or iterating again) restarts it.

* :class:`HistoricalBootstrapSampler` draws whole historical years with
  replacement, so the year's fund returns, inflation and COLA stay together.
* :class:`StatisticalSampler` draws each series from a normal distribution,
  optionally with correlated fund returns.
* :class:`DeterministicSampler` repeats the scenario's inflation and COLA
  assumptions and leaves returns to the engine's return assumptions.

Example
-------

>>> sampler = StatisticalSampler(years=3, seed=7)
>>> first = [s.fund_returns["C"] for s in sampler]
>>> again = [s.fund_returns["C"] for s in sampler]
>>> first == again
True
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..errors import BoundsError, ConfigurationError, InsufficientDataError
from ..historical import HistoricalDataProvider
from ..models import FUNDS, GlobalAssumptions, MarketSample

DEFAULT_FUND_PARAMETERS: Dict[str, Tuple[float, float]] = {
    "C": (0.10, 0.16),
    "S": (0.12, 0.20),
    "I": (0.08, 0.18),
    "F": (0.05, 0.06),
    "G": (0.03, 0.01),
}


@dataclass(frozen=True)
class StatisticalParameters:
    """Mean and standard deviation per series, with floors on each draw.

    ``correlation`` is a fund-by-fund matrix ordered like ``fund_returns``.
    """

    fund_returns: Mapping[str, Tuple[float, float]] = field(default_factory=lambda: dict(DEFAULT_FUND_PARAMETERS))
    inflation: Tuple[float, float] = (0.025, 0.01)
    cola: Tuple[float, float] = (0.025, 0.005)
    correlation: Optional[Sequence[Sequence[float]]] = None
    return_floor: float = -0.5
    inflation_floor: float = -0.05
    cola_floor: float = -0.02

    @classmethod
    def from_assumptions(cls, assumptions: GlobalAssumptions, **overrides) -> "StatisticalParameters":
        """Centre inflation and COLA on the scenario's assumptions."""
        params = dict(
            inflation=(assumptions.inflation_rate, 0.01),
            cola=(assumptions.cola_rate, 0.005),
        )
        params.update(overrides)
        return cls(**params)


@dataclass(frozen=True)
class HistoricalTable:
    """Historical series flattened into arrays for fast bootstrap draws."""

    years: Tuple[int, ...]
    funds: Tuple[str, ...]
    returns: np.ndarray
    inflation: np.ndarray
    cola: np.ndarray

    @classmethod
    def from_provider(cls, provider: HistoricalDataProvider, funds: Sequence[str] = FUNDS) -> "HistoricalTable":
        years = tuple(sorted(provider.get_available_years()))
        returns = np.array([[provider.get_tsp_return(f, y) for f in funds] for y in years], dtype=float)
        inflation = np.array([provider.get_inflation_rate(y) for y in years], dtype=float)
        cola = np.array([provider.get_cola_rate(y) for y in years], dtype=float)
        return cls(years, tuple(funds), returns.reshape(len(years), len(funds)), inflation, cola)

    def __len__(self) -> int:
        return len(self.years)


class MarketSampler(ABC):
    """A finite, restartable sequence of ``years`` market samples."""

    def __init__(self, years: int, seed=None):
        if years <= 0:
            raise ConfigurationError("sampler horizon must be positive")
        self.years = years
        self.seed = seed
        self.reset()

    def reset(self) -> None:
        self._rng = np.random.default_rng(self.seed)
        self._drawn = 0

    def next_year(self) -> MarketSample:
        if self._drawn >= self.years:
            raise BoundsError(f"sampler exhausted after {self.years} years")
        self._drawn += 1
        return self._draw()

    def __iter__(self) -> Iterator[MarketSample]:
        self.reset()
        for _ in range(self.years):
            yield self.next_year()

    @abstractmethod
    def _draw(self) -> MarketSample:
        ...


class HistoricalBootstrapSampler(MarketSampler):
    """Resample whole historical years with replacement."""

    def __init__(
        self,
        years: int,
        seed=None,
        provider: Optional[HistoricalDataProvider] = None,
        table: Optional[HistoricalTable] = None,
        min_years: int = 1,
    ):
        if table is None:
            if provider is None:
                raise InsufficientDataError("no historical data provider configured")
            table = HistoricalTable.from_provider(provider)
        if len(table) < max(1, min_years):
            raise InsufficientDataError(
                f"{len(table)} historical year(s) available, at least {max(1, min_years)} required"
            )
        self.table = table
        super().__init__(years, seed)

    def _draw(self) -> MarketSample:
        i = int(self._rng.integers(len(self.table)))
        row = self.table.returns[i]
        return MarketSample(
            fund_returns={fund: float(row[j]) for j, fund in enumerate(self.table.funds)},
            inflation=float(self.table.inflation[i]),
            cola=float(self.table.cola[i]),
            year=self.table.years[i],
        )


class StatisticalSampler(MarketSampler):
    """Independent (or fund-correlated) normal draws per series."""

    def __init__(self, years: int, seed=None, params: Optional[StatisticalParameters] = None):
        self.params = params or StatisticalParameters()
        self._funds = tuple(self.params.fund_returns)
        self._means = np.array([self.params.fund_returns[f][0] for f in self._funds], dtype=float)
        self._stds = np.array([self.params.fund_returns[f][1] for f in self._funds], dtype=float)
        self._cov = None
        if self.params.correlation is not None:
            corr = np.asarray(self.params.correlation, dtype=float)
            if corr.shape != (len(self._funds), len(self._funds)):
                raise ConfigurationError(f"correlation matrix must be {len(self._funds)}x{len(self._funds)}")
            self._cov = np.outer(self._stds, self._stds) * corr
        super().__init__(years, seed)

    def _draw(self) -> MarketSample:
        p = self.params
        if self._cov is None:
            returns = self._rng.normal(self._means, self._stds)
        else:
            returns = self._rng.multivariate_normal(self._means, self._cov)
        returns = np.maximum(returns, p.return_floor)
        inflation = max(p.inflation_floor, float(self._rng.normal(*p.inflation)))
        cola = max(p.cola_floor, float(self._rng.normal(*p.cola)))
        return MarketSample(
            fund_returns={fund: float(r) for fund, r in zip(self._funds, returns)},
            inflation=inflation,
            cola=cola,
        )


class DeterministicSampler(MarketSampler):
    """Constant inflation and COLA; returns come from the engine's assumptions."""

    def __init__(self, assumptions: GlobalAssumptions, years: Optional[int] = None):
        self.assumptions = assumptions
        super().__init__(years or assumptions.projection_years, seed=None)

    def _draw(self) -> MarketSample:
        return MarketSample(fund_returns={}, inflation=self.assumptions.inflation_rate, cola=self.assumptions.cola_rate)


__all__ = [
    "DEFAULT_FUND_PARAMETERS",
    "StatisticalParameters",
    "HistoricalTable",
    "MarketSampler",
    "HistoricalBootstrapSampler",
    "StatisticalSampler",
    "DeterministicSampler",
]
