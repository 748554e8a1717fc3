"""Tests for the DataFrame-backed historical data provider."""

import math

import pandas as pd
import pytest

from fers_planner.errors import InsufficientDataError
from fers_planner.historical import SERIES, DataFrameHistoricalData


def _frame(years=(2000, 2001, 2002)):
    rows = {
        year: {"C": 0.1, "S": 0.12, "I": 0.05, "F": 0.03, "G": 0.02, "inflation": 0.025, "cola": 0.02}
        for year in years
    }
    return pd.DataFrame.from_dict(rows, orient="index")


def test_lookup_by_fund_and_year():
    data = DataFrameHistoricalData(_frame())
    assert data.get_available_years() == [2000, 2001, 2002]
    assert data.get_tsp_return("S", 2001) == 0.12
    assert data.get_inflation_rate(2002) == 0.025
    assert data.get_cola_rate(2000) == 0.02


def test_missing_year_or_fund():
    data = DataFrameHistoricalData(_frame())
    with pytest.raises(InsufficientDataError):
        data.get_tsp_return("C", 1999)
    with pytest.raises(KeyError):
        data.get_tsp_return("L2050", 2000)


def test_missing_columns_rejected():
    with pytest.raises(InsufficientDataError):
        DataFrameHistoricalData(_frame().drop(columns=["cola"]))


def test_incomplete_years_are_not_available():
    frame = _frame()
    frame.loc[2001, "I"] = math.nan
    data = DataFrameHistoricalData(frame)
    assert data.get_available_years() == [2000, 2002]
    with pytest.raises(InsufficientDataError):
        data.get_tsp_return("I", 2001)


def test_data_quality_report():
    frame = _frame((2000, 2001, 2003))
    frame.loc[2003, "C"] = 3.5
    report = DataFrameHistoricalData(frame, min_years=5).validate_data_quality()
    assert not report.ok
    assert report.years == 3
    assert (report.first_year, report.last_year) == (2000, 2003)
    assert any("gaps" in issue for issue in report.issues)
    assert any("implausible" in issue for issue in report.issues)
    assert any("required" in issue for issue in report.issues)


def test_clean_data_passes_quality_check():
    assert DataFrameHistoricalData(_frame()).validate_data_quality().ok


def test_from_csv(tmp_path):
    path = tmp_path / "history.csv"
    _frame().rename_axis("year").reset_index().to_csv(path, index=False)
    data = DataFrameHistoricalData.from_csv(path)
    assert data.get_available_years() == [2000, 2001, 2002]
    assert list(data.frame.columns) == list(SERIES)


def test_from_records():
    data = DataFrameHistoricalData.from_records(
        {1999: {"C": 0.2, "S": 0.1, "I": 0.0, "F": 0.01, "G": 0.02, "inflation": 0.03, "cola": 0.025}}
    )
    assert data.get_tsp_return("C", 1999) == 0.2
