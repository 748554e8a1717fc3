"""Social Security benefits by claiming age.

Participants supply their estimated monthly benefit at 62, at full retirement
age (FRA) and at 70, as printed on an SSA statement.  The benefit for any
other claiming age is interpolated linearly between those three points.

* Claiming at 62 or earlier pays the age-62 amount.
* Claiming at 70 or later pays the age-70 amount.
* Between 62 and FRA, and between FRA and 70, the amount moves linearly.

Benefits start in the year the participant reaches the claiming age and are
paid from the birthday month on in that first year.  A surviving spouse
receives the larger of their own benefit and the deceased's.

Example
-------

>>> # Halfway between 62 and FRA 67
>>> monthly_benefit(1800, 2600, 3300, claim_age=64.5)
2200.0
>>> monthly_benefit(1800, 2600, 3300, claim_age=70)
3300.0
"""

from __future__ import annotations

import datetime as dt

DEFAULT_FRA = 67.0


def full_retirement_age(birth_year: int) -> float:
    """FRA in years: 66 plus two months per birth year after 1954, capped at 67."""
    if birth_year <= 1954:
        return 66.0
    if birth_year >= 1960:
        return DEFAULT_FRA
    return 66.0 + (birth_year - 1954) * 2 / 12


def monthly_benefit(
    benefit_62: float,
    benefit_fra: float,
    benefit_70: float,
    claim_age: float,
    fra: float = DEFAULT_FRA,
) -> float:
    """Monthly benefit when claiming at ``claim_age``.

    Parameters
    ----------
    benefit_62, benefit_fra, benefit_70 : float
        Monthly benefit estimates at 62, FRA and 70.
    claim_age : float
        Claiming age in years.
    fra : float, optional
        Full retirement age (default 67).

    Returns
    -------
    float
        Monthly benefit before any cost-of-living adjustments.
    """
    if claim_age <= 62:
        return benefit_62
    if claim_age >= 70:
        return benefit_70
    if claim_age <= fra:
        return benefit_62 + (benefit_fra - benefit_62) * (claim_age - 62) / (fra - 62)
    return benefit_fra + (benefit_70 - benefit_fra) * (claim_age - fra) / (70 - fra)


def months_paid_in_claim_year(birth_date: dt.date) -> int:
    """Months of benefits in the year the claiming age is reached."""
    return 13 - birth_date.month


def survivor_benefit(own_monthly: float, deceased_monthly: float) -> float:
    return max(own_monthly, deceased_monthly)


__all__ = [
    "DEFAULT_FRA",
    "full_retirement_age",
    "monthly_benefit",
    "months_paid_in_claim_year",
    "survivor_benefit",
]
