"""Household composition as a finite-state machine.

A household moves through ``BOTH_ALIVE -> ONE_DECEASED -> BOTH_DECEASED`` as
configured deaths occur.  A single-person household goes straight from
``BOTH_ALIVE`` to ``BOTH_DECEASED``.  :func:`transition` is evaluated once per
projection year and is the only place the state changes; the projection
engine asks the state who is alive and which policies apply instead of
branching on death flags itself.

Three survivor policies hang off a transition:

* spending: survivor withdrawals are scaled by the survivor spending factor;
* TSP disposition: ``merge`` moves the deceased's balances into the
  survivors' accounts, ``keep_separate`` leaves them as an inherited account;
* filing status: ``immediate`` files single from the year of death,
  ``next_year`` keeps joint filing for that year.

Example
-------

>>> state = MortalityState()
>>> state, newly = transition(state, year_index=3, death_years={1: 3}, household_size=2)
>>> state.phase.value, newly
('one_deceased', (1,))
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import ConfigurationError
from ..models import MARRIED_JOINT, SINGLE, GenericScenario, Household, MortalityAssumptions, MortalitySpec

TSP_DISPOSITIONS = ("merge", "keep_separate")
FILING_SWITCHES = ("immediate", "next_year")


class HouseholdPhase(str, Enum):
    BOTH_ALIVE = "both_alive"
    ONE_DECEASED = "one_deceased"
    BOTH_DECEASED = "both_deceased"


@dataclass(frozen=True)
class MortalityState:
    phase: HouseholdPhase = HouseholdPhase.BOTH_ALIVE
    deaths: Tuple[Tuple[int, int], ...] = ()

    @property
    def deceased(self) -> Tuple[int, ...]:
        return tuple(pid for pid, _ in self.deaths)

    def is_alive(self, participant_id: int) -> bool:
        return participant_id not in self.deceased

    def survivors(self, ids: Iterable[int]) -> List[int]:
        return [pid for pid in ids if self.is_alive(pid)]

    @property
    def first_death_year(self) -> Optional[int]:
        if not self.deaths:
            return None
        return min(year for _, year in self.deaths)


def validate_mortality_spec(name: str, spec: MortalitySpec) -> None:
    if (spec.death_age is None) == (spec.death_date is None):
        raise ConfigurationError(f"{name}: mortality spec needs exactly one of death_age or death_date")
    if spec.death_age is not None and spec.death_age < 0:
        raise ConfigurationError(f"{name}: death age must be non-negative")


def validate_mortality_assumptions(assumptions: MortalityAssumptions) -> None:
    if assumptions.tsp_disposition not in TSP_DISPOSITIONS:
        raise ConfigurationError(f"unknown TSP disposition {assumptions.tsp_disposition!r}")
    if assumptions.filing_status_switch not in FILING_SWITCHES:
        raise ConfigurationError(f"unknown filing status switch {assumptions.filing_status_switch!r}")


def death_year_index(birth_year: int, spec: MortalitySpec, start_year: int) -> int:
    """Projection year index in which the death occurs."""
    if spec.death_date is not None:
        return spec.death_date.year - start_year
    return birth_year + spec.death_age - start_year


def death_schedule(household: Household, scenario: GenericScenario, start_year: int) -> Dict[int, int]:
    """Map participant id to death year index for every configured death."""
    validate_mortality_assumptions(scenario.mortality_assumptions)
    schedule: Dict[int, int] = {}
    for name, spec in scenario.mortality.items():
        pid = household.participant_id(name)
        validate_mortality_spec(name, spec)
        schedule[pid] = death_year_index(household.participants[pid].birth_year, spec, start_year)
    return schedule


def transition(
    state: MortalityState,
    year_index: int,
    death_years: Mapping[int, int],
    household_size: int,
) -> Tuple[MortalityState, Tuple[int, ...]]:
    """Advance the household to ``year_index``.

    Returns the new state and the ids of participants whose death fires in
    this evaluation (deaths scheduled before the projection start fire in
    year 0).
    """
    newly = tuple(
        sorted(pid for pid, year in death_years.items() if year <= year_index and state.is_alive(pid))
    )
    if not newly:
        return state, ()
    deaths = state.deaths + tuple((pid, year_index) for pid in newly)
    if len(deaths) >= household_size:
        phase = HouseholdPhase.BOTH_DECEASED
    else:
        phase = HouseholdPhase.ONE_DECEASED
    return MortalityState(phase=phase, deaths=deaths), newly


def filing_status_for_year(
    base_status: str,
    state: MortalityState,
    year_index: int,
    policy: str,
    household_size: int,
) -> str:
    """Filing status in effect for ``year_index`` given deaths so far."""
    if base_status != MARRIED_JOINT or state.phase is HouseholdPhase.BOTH_ALIVE:
        return base_status
    if household_size - len(state.deaths) >= 2:
        return base_status
    first_death = state.first_death_year
    if policy == "next_year" and year_index <= first_death:
        return base_status
    return SINGLE


def spending_factor(state: MortalityState, assumptions: MortalityAssumptions) -> float:
    if state.phase is HouseholdPhase.ONE_DECEASED:
        return assumptions.spending_factor
    return 1.0


def dispose_balances(
    traditional: Mapping[int, float],
    roth: Mapping[int, float],
    deceased_id: int,
    survivors: List[int],
    policy: str,
) -> Tuple[Dict[int, float], Dict[int, float]]:
    """Apply the TSP disposition policy to the deceased's balances."""
    traditional, roth = dict(traditional), dict(roth)
    if policy != "merge" or not survivors:
        return traditional, roth
    share = 1.0 / len(survivors)
    for pid in survivors:
        traditional[pid] += traditional[deceased_id] * share
        roth[pid] += roth[deceased_id] * share
    traditional[deceased_id] = 0.0
    roth[deceased_id] = 0.0
    return traditional, roth


__all__ = [
    "HouseholdPhase",
    "MortalityState",
    "validate_mortality_spec",
    "validate_mortality_assumptions",
    "death_year_index",
    "death_schedule",
    "transition",
    "filing_status_for_year",
    "spending_factor",
    "dispose_balances",
]
