"""Required Minimum Distribution (RMD) rules for traditional TSP balances.

SECURE 2.0 sets the first distribution age by year of birth:

* born 1950 or earlier: 72
* born 1951-1959: 73
* born 1960 or later: 75

A scenario may override this with a configured age.  The annual amount is the
prior year-end traditional balance divided by the Uniform Lifetime Table
period for the owner's age.  Roth TSP balances carry no RMD.

Example
-------

>>> rmd_start_age(1955)
73
>>> round(compute_rmd(balance=100000, age=73), 2)
3773.58
"""

from __future__ import annotations

from typing import Dict, Optional

# Uniform Lifetime Table, distributions after 2021 (IRS Pub. 590-B).
_UNIFORM_LIFETIME: Dict[int, float] = {
    72: 27.4, 73: 26.5, 74: 25.5, 75: 24.6, 76: 23.7, 77: 22.9, 78: 22.0,
    79: 21.1, 80: 20.2, 81: 19.4, 82: 18.5, 83: 17.7, 84: 16.8, 85: 16.0,
    86: 15.2, 87: 14.4, 88: 13.7, 89: 12.9, 90: 12.2, 91: 11.5, 92: 10.8,
    93: 10.1, 94: 9.5, 95: 8.9, 96: 8.4, 97: 7.8, 98: 7.3, 99: 6.8,
    100: 6.4, 101: 6.0, 102: 5.6, 103: 5.2, 104: 4.9, 105: 4.6, 106: 4.3,
    107: 4.1, 108: 3.9, 109: 3.7, 110: 3.5, 111: 3.4, 112: 3.3, 113: 3.1,
    114: 3.0, 115: 2.9, 116: 2.8, 117: 2.7, 118: 2.5, 119: 2.3, 120: 2.0,
}
_FIRST_AGE = min(_UNIFORM_LIFETIME)
_LAST_AGE = max(_UNIFORM_LIFETIME)


def rmd_start_age(birth_year: int) -> int:
    """Age at which RMDs must begin for someone born in ``birth_year``."""
    if birth_year <= 1950:
        return 72
    if birth_year <= 1959:
        return 73
    return 75


def required_distribution_age(birth_year: int, configured: Optional[int] = None) -> int:
    """The configured RMD age when given, otherwise the statutory one."""
    return configured if configured is not None else rmd_start_age(birth_year)


def distribution_period(age: int) -> Optional[float]:
    """Uniform Lifetime period for ``age``; ages past the table use its last row."""
    if age < _FIRST_AGE:
        return None
    return _UNIFORM_LIFETIME[min(age, _LAST_AGE)]


def compute_rmd(balance: float, age: int) -> float:
    """Compute the Required Minimum Distribution for a given age and balance.

    Parameters
    ----------
    balance : float
        Traditional balance on December 31 of the prior year.
    age : int
        Age of the account owner in the distribution year.

    Returns
    -------
    float
        The RMD amount, zero below the first table age or for a non-positive
        balance.
    """
    if balance <= 0:
        return 0.0
    period = distribution_period(age)
    if period is None:
        return 0.0
    return balance / period


__all__ = ["rmd_start_age", "required_distribution_age", "distribution_period", "compute_rmd"]
