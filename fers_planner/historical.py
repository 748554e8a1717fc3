"""Historical market data.

:class:`HistoricalDataProvider` is the interface the Monte Carlo simulator
samples from.  :class:`DataFrameHistoricalData` implements it over a pandas
DataFrame indexed by calendar year with one column per TSP fund (``C``,
``S``, ``I``, ``F``, ``G``) plus ``inflation`` and ``cola``.  All values are
annual rates expressed as fractions.

Data is read once at startup (see :meth:`DataFrameHistoricalData.from_csv`);
sampling afterwards never touches the filesystem.

Example
-------

>>> import pandas as pd
>>> frame = pd.DataFrame(
...     {"C": [0.1, -0.05], "S": [0.12, -0.1], "I": [0.08, 0.02], "F": [0.03, 0.04],
...      "G": [0.02, 0.02], "inflation": [0.03, 0.02], "cola": [0.028, 0.021]},
...     index=[2000, 2001],
... )
>>> data = DataFrameHistoricalData(frame)
>>> data.get_available_years()
[2000, 2001]
>>> data.get_tsp_return("C", 2001)
-0.05
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Tuple, Union

import pandas as pd
from loguru import logger

from .errors import InsufficientDataError
from .models import FUNDS

SERIES = FUNDS + ("inflation", "cola")

_RETURN_RANGE = (-0.9, 2.0)
_RATE_RANGE = (-0.2, 0.5)


@dataclass(frozen=True)
class DataQualityReport:
    years: int
    first_year: Optional[int]
    last_year: Optional[int]
    issues: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.issues


class HistoricalDataProvider(ABC):
    """Read-only source of annual fund returns, inflation and COLA."""

    @abstractmethod
    def get_tsp_return(self, fund: str, year: int) -> float:
        ...

    @abstractmethod
    def get_inflation_rate(self, year: int) -> float:
        ...

    @abstractmethod
    def get_cola_rate(self, year: int) -> float:
        ...

    @abstractmethod
    def get_available_years(self) -> List[int]:
        """Years for which every series has a value, ascending."""

    @abstractmethod
    def validate_data_quality(self) -> DataQualityReport:
        ...


class DataFrameHistoricalData(HistoricalDataProvider):
    def __init__(self, frame: pd.DataFrame, min_years: int = 1):
        missing = [col for col in SERIES if col not in frame.columns]
        if missing:
            raise InsufficientDataError(f"historical data is missing columns {missing}")
        self._frame = frame.loc[:, list(SERIES)].astype(float).sort_index()
        self._frame.index = self._frame.index.astype(int)
        self.min_years = min_years

    @classmethod
    def from_csv(cls, path: Union[str, Path], year_column: str = "year", **kwargs) -> "DataFrameHistoricalData":
        frame = pd.read_csv(path).set_index(year_column)
        logger.info(f"Loaded {len(frame)} years of historical data from {path}")
        return cls(frame, **kwargs)

    @classmethod
    def from_records(cls, records: Mapping[int, Mapping[str, float]], **kwargs) -> "DataFrameHistoricalData":
        return cls(pd.DataFrame.from_dict(records, orient="index"), **kwargs)

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    def _value(self, column: str, year: int) -> float:
        try:
            value = self._frame.at[year, column]
        except KeyError:
            raise InsufficientDataError(f"no {column} data for {year}") from None
        if pd.isna(value):
            raise InsufficientDataError(f"{column} value for {year} is missing")
        return float(value)

    def get_tsp_return(self, fund: str, year: int) -> float:
        if fund not in FUNDS:
            raise KeyError(f"unknown TSP fund {fund!r}")
        return self._value(fund, year)

    def get_inflation_rate(self, year: int) -> float:
        return self._value("inflation", year)

    def get_cola_rate(self, year: int) -> float:
        return self._value("cola", year)

    def get_available_years(self) -> List[int]:
        return [int(y) for y in self._frame.dropna().index]

    def validate_data_quality(self) -> DataQualityReport:
        issues: List[str] = []
        years = self.get_available_years()
        incomplete = self._frame.index[self._frame.isna().any(axis=1)]
        if len(incomplete):
            issues.append(f"{len(incomplete)} year(s) with missing values: {[int(y) for y in incomplete]}")
        if len(years) < self.min_years:
            issues.append(f"only {len(years)} complete year(s) available, {self.min_years} required")
        if years:
            gaps = sorted(set(range(years[0], years[-1] + 1)) - set(years))
            if gaps:
                issues.append(f"gaps in year coverage: {gaps}")
        for col in SERIES:
            low, high = _RETURN_RANGE if col in FUNDS else _RATE_RANGE
            series = self._frame[col].dropna()
            outliers = series[(series < low) | (series > high)]
            if len(outliers):
                issues.append(f"{col} has implausible values in {[int(y) for y in outliers.index]}")
        return DataQualityReport(
            years=len(years),
            first_year=years[0] if years else None,
            last_year=years[-1] if years else None,
            issues=tuple(issues),
        )


__all__ = ["SERIES", "DataQualityReport", "HistoricalDataProvider", "DataFrameHistoricalData"]
