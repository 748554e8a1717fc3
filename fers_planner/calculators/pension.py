"""FERS basic annuity, cost-of-living adjustments and the special retirement
supplement.

* Annuity = high-3 salary x years of service x multiplier.  The multiplier is
  1.1 % when retiring at 62 or later with at least 20 years of service and
  1.0 % otherwise.
* A survivor election of 50 % reduces the retiree's annuity by 10 %; a 25 %
  election reduces it by 5 %.  The survivor receives the elected percentage of
  the unreduced annuity.
* FERS COLAs start at 62 and follow the "diet COLA" rule: full inflation up
  to 2 %, 2 % for inflation between 2 % and 3 %, and inflation minus one
  point above 3 %.
* The special retirement supplement approximates the Social Security earned
  during federal service (age-62 benefit x service / 40) and is paid until
  62 to immediate retirees leaving before 62.

Example
-------

>>> annuity, survivor = fers_annuity(100000, 30, retirement_age=62, survivor_election=0.5)
>>> round(annuity, 2), round(survivor, 2)
(29700.0, 16500.0)
>>> fers_cola(0.025, age=63)
0.02
"""

from __future__ import annotations

import datetime as dt
from typing import Tuple

SICK_LEAVE_HOURS_PER_YEAR = 2087.0

_SURVIVOR_REDUCTION = {0.0: 1.0, 0.25: 0.95, 0.5: 0.90}


def years_of_service(hire_date: dt.date, retirement_date: dt.date, sick_leave_hours: float = 0.0) -> float:
    """Creditable service in years, counted in whole months plus sick leave."""
    months = (retirement_date.year - hire_date.year) * 12 + retirement_date.month - hire_date.month
    if retirement_date.day < hire_date.day:
        months -= 1
    return max(0.0, months / 12 + sick_leave_hours / SICK_LEAVE_HOURS_PER_YEAR)


def minimum_retirement_age(birth_year: int) -> float:
    """FERS MRA: 55 for 1947 and earlier, rising to 57 for 1970 and later."""
    if birth_year <= 1947:
        return 55.0
    if birth_year <= 1952:
        return 55.0 + (birth_year - 1947) * 2 / 12
    if birth_year <= 1964:
        return 56.0
    if birth_year <= 1969:
        return 56.0 + (birth_year - 1964) * 2 / 12
    return 57.0


def fers_multiplier(retirement_age: float, service_years: float) -> float:
    if retirement_age >= 62 and service_years >= 20:
        return 0.011
    return 0.01


def fers_annuity(
    high3_salary: float,
    service_years: float,
    retirement_age: float,
    survivor_election: float = 0.0,
) -> Tuple[float, float]:
    """Annual annuity paid to the retiree and the survivor annuity.

    Returns
    -------
    tuple of float
        ``(retiree_annuity, survivor_annuity)``.
    """
    basic = high3_salary * service_years * fers_multiplier(retirement_age, service_years)
    reduction = _SURVIVOR_REDUCTION.get(survivor_election, 1.0)
    return basic * reduction, basic * survivor_election


def fers_cola(inflation: float, age: int) -> float:
    """COLA applied to a FERS annuity for a retiree of ``age``."""
    if age < 62 or inflation <= 0:
        return 0.0
    if inflation <= 0.02:
        return inflation
    if inflation <= 0.03:
        return 0.02
    return inflation - 0.01


def supplement_eligible(retirement_age: float, service_years: float, birth_year: int) -> bool:
    """Whether an immediate retirement before 62 qualifies for the supplement."""
    if retirement_age >= 62:
        return False
    if retirement_age >= 60 and service_years >= 20:
        return True
    return retirement_age >= minimum_retirement_age(birth_year) and service_years >= 30


def special_retirement_supplement(ss_benefit_62: float, service_years: float) -> float:
    """Annual supplement from the monthly age-62 Social Security estimate."""
    return ss_benefit_62 * 12 * min(service_years, 40.0) / 40.0


__all__ = [
    "years_of_service",
    "minimum_retirement_age",
    "fers_multiplier",
    "fers_annuity",
    "fers_cola",
    "supplement_eligible",
    "special_retirement_supplement",
]
