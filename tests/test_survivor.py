"""Tests for survivor viability analysis."""

import datetime as dt

import pytest

from fers_planner.calculators.survivor import analyze_survivor_viability, insurance_present_value, viability_score
from fers_planner.errors import BoundsError, ConfigurationError
from fers_planner.models import (
    SINGLE,
    GenericScenario,
    GlobalAssumptions,
    Household,
    MortalitySpec,
    Participant,
    ParticipantScenario,
)


def _household():
    annuitant = Participant(
        "alex",
        dt.date(1960, 1, 1),
        hire_date=dt.date(1990, 1, 1),
        high3_salary=100000.0,
        survivor_election=0.5,
        tsp_traditional=400000.0,
    )
    spouse = Participant("sam", dt.date(1962, 1, 1), tsp_traditional=200000.0)
    return Household((annuitant, spouse))


def _scenario(death_age=67):
    choice = ParticipantScenario(
        retirement_date=dt.date(2024, 1, 1), withdrawal_strategy="fixed_amount", withdrawal_params={"amount": 10000.0}
    )
    mortality = {"alex": MortalitySpec(death_age=death_age)} if death_age is not None else {}
    return GenericScenario("survivor", {"alex": choice, "sam": choice}, mortality=mortality)


def _assumptions():
    return GlobalAssumptions(projection_years=10, tsp_return_pre_retirement=0.0, tsp_return_post_retirement=0.0)


def test_score_thresholds():
    assert viability_score(-20.0) == "EXCELLENT"
    assert viability_score(5.0) == "EXCELLENT"
    assert viability_score(15.0) == "GOOD"
    assert viability_score(25.0) == "CAUTION"
    assert viability_score(40.0) == "RISK"
    assert viability_score(40.1) == "CRITICAL"


def test_insurance_present_value():
    assert insurance_present_value(10000.0, 3, 0.0) == pytest.approx(30000.0)
    assert insurance_present_value(10000.0, 2, 0.05) == pytest.approx(10000.0 + 10000.0 / 1.05)
    assert insurance_present_value(-5000.0, 10, 0.03) == 0.0


def test_survivor_after_annuitant_death():
    analysis = analyze_survivor_viability(_household(), _scenario(), _assumptions())
    assert (analysis.deceased, analysis.survivor) == ("alex", "sam")
    assert analysis.death_year == 2027 and analysis.death_age == 67
    assert analysis.survivor_age == 65
    assert analysis.pre_death.year == 2026 and analysis.post_death.year == 2028
    assert analysis.pre_death.filing_status == "married_filing_jointly"
    assert analysis.post_death.filing_status == SINGLE
    # survivor annuity plus the merged TSP
    assert analysis.pre_death.pension_income == 0.0
    assert analysis.post_death.pension_income > 0.0
    assert analysis.post_death.tsp_balance > analysis.pre_death.tsp_balance

    assert analysis.target_income == pytest.approx(0.8 * analysis.pre_death.net_income)
    assert analysis.income_shortfall == pytest.approx(analysis.target_income - analysis.post_death.net_income)
    assert analysis.shortfall_percentage == pytest.approx(analysis.income_shortfall / analysis.target_income * 100)
    assert analysis.viability_score == viability_score(analysis.shortfall_percentage)
    assert analysis.recommended_coverage == pytest.approx(1.2 * analysis.insurance_present_value)
    assert analysis.irmaa_change == "same"


def test_recommendations_for_large_shortfall():
    analysis = analyze_survivor_viability(_household(), _scenario(), _assumptions(), target_income_factor=3.0)
    assert analysis.viability_score == "CRITICAL"
    assert analysis.insurance_present_value > 0
    assert any("falls short" in note for note in analysis.recommendations)
    assert "Consider increasing life insurance coverage" in analysis.recommendations


def test_invalid_inputs():
    with pytest.raises(ConfigurationError):
        analyze_survivor_viability(_household(), _scenario(death_age=None), _assumptions())
    single = Household((_household().participants[0],), SINGLE)
    with pytest.raises(ConfigurationError):
        analyze_survivor_viability(single, GenericScenario("x", {"alex": ParticipantScenario()}), _assumptions())
    with pytest.raises(BoundsError):
        analyze_survivor_viability(_household(), _scenario(death_age=75), _assumptions())
