"""Tests for the FERS annuity, COLA and supplement rules."""

import datetime as dt
import math

from fers_planner.calculators import pension


def test_years_of_service_whole_months():
    assert pension.years_of_service(dt.date(1995, 3, 1), dt.date(2025, 3, 1)) == 30.0
    # one day short of the anniversary loses the month
    service = pension.years_of_service(dt.date(1995, 3, 15), dt.date(2025, 3, 1))
    assert math.isclose(service, 359 / 12)


def test_sick_leave_adds_service():
    service = pension.years_of_service(dt.date(1995, 3, 1), dt.date(2025, 3, 1), sick_leave_hours=2087)
    assert math.isclose(service, 31.0)


def test_multiplier():
    assert pension.fers_multiplier(62, 20) == 0.011
    assert pension.fers_multiplier(61, 30) == 0.01
    assert pension.fers_multiplier(62, 19) == 0.01


def test_annuity_with_survivor_election():
    annuity, survivor = pension.fers_annuity(100000, 30, retirement_age=62, survivor_election=0.5)
    assert math.isclose(annuity, 29700.0)
    assert math.isclose(survivor, 16500.0)
    annuity, survivor = pension.fers_annuity(100000, 30, retirement_age=60, survivor_election=0.0)
    assert math.isclose(annuity, 30000.0)
    assert survivor == 0.0


def test_diet_cola():
    assert pension.fers_cola(0.015, age=63) == 0.015
    assert pension.fers_cola(0.025, age=63) == 0.02
    assert math.isclose(pension.fers_cola(0.04, age=63), 0.03)
    assert pension.fers_cola(0.04, age=61) == 0.0


def test_supplement_eligibility():
    assert pension.supplement_eligible(57, 30, birth_year=1966)
    assert not pension.supplement_eligible(58, 25, birth_year=1966)
    assert pension.supplement_eligible(60, 20, birth_year=1965)
    assert not pension.supplement_eligible(62, 30, birth_year=1963)


def test_minimum_retirement_age():
    assert pension.minimum_retirement_age(1960) == 56.0
    assert pension.minimum_retirement_age(1970) == 57.0


def test_supplement_amount():
    """Age-62 benefit scaled by service over 40 years."""
    assert math.isclose(pension.special_retirement_supplement(1500, 30), 13500.0)
    assert math.isclose(pension.special_retirement_supplement(1500, 45), 18000.0)
