"""Calculators behind the FERS household planner.

The ``calculators`` package contains small, focused modules that each implement
one piece of the planning logic:

* ``taxes`` – federal and state income tax, FICA, Social Security taxation and Medicare IRMAA.
* ``rmd`` – Required Minimum Distribution ages and the Uniform Lifetime table.
* ``social_security`` – claiming-age benefit interpolation and survivor benefits.
* ``pension`` – FERS service, annuity, COLA and the special retirement supplement.
* ``withdrawals`` – TSP withdrawal strategies and the strategy registry.
* ``mortality`` – household mortality state machine and survivor policies.
* ``market`` – historical bootstrap, statistical and deterministic market samplers.
* ``projection`` – the year-by-year projection engine and scenario comparison.
* ``monte_carlo`` – parallel, seeded Monte Carlo trials over the projection engine.
* ``aggregate`` – percentile statistics over Monte Carlo trials.
* ``breakeven`` – bisection for the withdrawal rate that matches a target income.
* ``survivor`` – survivor viability after a configured death.

Each module exposes a few public functions or classes with clear parameters and
returns.  See individual docstrings for details.
"""

from . import (  # noqa: F401
    aggregate,
    breakeven,
    market,
    monte_carlo,
    mortality,
    pension,
    projection,
    rmd,
    social_security,
    survivor,
    taxes,
    withdrawals,
)

__all__ = [
    "taxes",
    "rmd",
    "social_security",
    "pension",
    "withdrawals",
    "mortality",
    "market",
    "projection",
    "monte_carlo",
    "aggregate",
    "breakeven",
    "survivor",
]
