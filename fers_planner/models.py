"""Domain objects consumed and produced by the planner.

Inputs (:class:`Participant`, :class:`Household`, :class:`GenericScenario`,
:class:`GlobalAssumptions`) are frozen dataclasses owned by the caller.  The
calculators never modify them; overrides such as an injected withdrawal rate
are applied to deep copies.

Outputs are plain records meant for external formatters.  Per-participant
values are stored in dictionaries keyed by the participant's integer id (its
position in :attr:`Household.participants`); ``names`` on each record maps ids
back to names.

Example
-------

>>> import datetime as dt
>>> alice = Participant("alice", dt.date(1965, 3, 1), tsp_traditional=400000.0)
>>> household = Household((alice,), filing_status=SINGLE)
>>> household.participant_id("alice")
0
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ConfigurationError

FUNDS: Tuple[str, ...] = ("C", "S", "I", "F", "G")
DEFAULT_ALLOCATION: Dict[str, float] = {"C": 0.6, "S": 0.2, "I": 0.1, "F": 0.1, "G": 0.0}

MARRIED_JOINT = "married_filing_jointly"
SINGLE = "single"
FILING_STATUSES = (MARRIED_JOINT, SINGLE)

SURVIVOR_ELECTIONS = (0.0, 0.25, 0.5)


def _age_on(birth_date: dt.date, when: dt.date) -> int:
    return when.year - birth_date.year - ((when.month, when.day) < (birth_date.month, birth_date.day))


@dataclass(frozen=True)
class Participant:
    """A household member.  Social Security amounts are monthly."""

    name: str
    birth_date: dt.date
    hire_date: Optional[dt.date] = None
    is_federal: bool = True
    current_salary: float = 0.0
    high3_salary: float = 0.0
    tsp_traditional: float = 0.0
    tsp_roth: float = 0.0
    ss_benefit_62: float = 0.0
    ss_benefit_fra: float = 0.0
    ss_benefit_70: float = 0.0
    survivor_election: float = 0.0
    tsp_contribution_rate: float = 0.0
    sick_leave_hours: float = 0.0
    fehb_premium_per_pay_period: float = 0.0
    marketplace_premium_monthly: float = 0.0
    tsp_allocation: Optional[Mapping[str, float]] = None

    @property
    def birth_year(self) -> int:
        return self.birth_date.year

    def age_on(self, when: dt.date) -> int:
        """Age in whole years on ``when``."""
        return _age_on(self.birth_date, when)

    def age_at_year_end(self, year: int) -> int:
        return year - self.birth_date.year

    def validate(self) -> None:
        if not (self.ss_benefit_62 <= self.ss_benefit_fra <= self.ss_benefit_70):
            raise ConfigurationError(
                f"{self.name}: Social Security benefits must satisfy benefit62 <= benefitFRA <= benefit70"
            )
        if self.survivor_election not in SURVIVOR_ELECTIONS:
            raise ConfigurationError(
                f"{self.name}: survivor election must be one of {SURVIVOR_ELECTIONS}, got {self.survivor_election}"
            )
        if self.tsp_traditional < 0 or self.tsp_roth < 0:
            raise ConfigurationError(f"{self.name}: TSP balances cannot be negative")
        if self.hire_date is not None and self.hire_date < self.birth_date:
            raise ConfigurationError(f"{self.name}: hire date precedes birth date")


@dataclass(frozen=True)
class Household:
    participants: Tuple[Participant, ...]
    filing_status: str = MARRIED_JOINT
    fehb_holder: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "participants", tuple(self.participants))

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.participants)

    @property
    def ids(self) -> range:
        return range(len(self.participants))

    def name_to_id(self) -> Dict[str, int]:
        return {p.name: i for i, p in enumerate(self.participants)}

    def participant_id(self, name: str) -> int:
        for i, p in enumerate(self.participants):
            if p.name == name:
                return i
        raise ConfigurationError(f"unknown participant {name!r}; household has {list(self.names)}")

    def validate(self) -> None:
        if not self.participants:
            raise ConfigurationError("household has no participants")
        if len(set(self.names)) != len(self.names):
            raise ConfigurationError(f"participant names must be unique, got {list(self.names)}")
        if self.filing_status not in FILING_STATUSES:
            raise ConfigurationError(f"unsupported filing status {self.filing_status!r}")
        if self.fehb_holder is not None:
            self.participant_id(self.fehb_holder)
        for p in self.participants:
            p.validate()


@dataclass(frozen=True)
class ParticipantScenario:
    """Per-participant choices for one scenario.

    ``withdrawal_params`` keys depend on the strategy: ``amount`` for
    ``fixed_amount``, ``rate`` for ``4_percent_rule`` and
    ``variable_percentage``, ``target_monthly`` for ``need_based``.

    ``target_bracket`` and ``bracket_buffer`` only apply to the
    ``bracket_fill`` source policy: traditional withdrawals fill ordinary
    income up to ``bracket_buffer`` dollars below the top of that federal
    bracket before Roth money is used.
    """

    retirement_date: Optional[dt.date] = None
    ss_claim_age: int = 67
    withdrawal_strategy: str = "4_percent_rule"
    withdrawal_params: Mapping[str, Any] = field(default_factory=dict)
    withdrawal_sources: str = "proportional"
    tsp_contribution_rate: Optional[float] = None
    target_bracket: float = 0.12
    bracket_buffer: float = 0.0

    def validate(self, name: str) -> None:
        if not 62 <= self.ss_claim_age <= 70:
            raise ConfigurationError(f"{name}: Social Security claim age must be 62-70, got {self.ss_claim_age}")
        if self.bracket_buffer < 0:
            raise ConfigurationError(f"{name}: bracket buffer must be non-negative")


@dataclass(frozen=True)
class MortalitySpec:
    """When a participant dies: exactly one of ``death_age`` or ``death_date``."""

    death_age: Optional[int] = None
    death_date: Optional[dt.date] = None


@dataclass(frozen=True)
class MortalityAssumptions:
    survivor_spending_factor: float = 0.75
    tsp_disposition: str = "merge"
    filing_status_switch: str = "immediate"

    @property
    def spending_factor(self) -> float:
        return min(1.0, max(0.0, self.survivor_spending_factor))


@dataclass(frozen=True)
class GenericScenario:
    name: str
    participants: Mapping[str, ParticipantScenario]
    mortality: Mapping[str, MortalitySpec] = field(default_factory=dict)
    mortality_assumptions: MortalityAssumptions = field(default_factory=MortalityAssumptions)


@dataclass(frozen=True)
class GlobalAssumptions:
    start_year: int = 2025
    projection_years: int = 30
    inflation_rate: float = 0.025
    cola_rate: float = 0.025
    fehb_premium_inflation: float = 0.065
    medicare_premium_inflation: float = 0.055
    tsp_return_pre_retirement: float = 0.055
    tsp_return_post_retirement: float = 0.045
    rmd_age: Optional[int] = None
    state: str = "PA"
    tax_year: int = 2025
    tax_tables: Optional[Dict[str, Dict]] = None
    default_allocation: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_ALLOCATION))
    discount_rate: float = 0.03


@dataclass(frozen=True)
class AnnualCashFlow:
    """One projected year for a scenario."""

    year_index: int
    year: int
    names: Tuple[str, ...]
    ages: Dict[int, int]
    is_retired: Dict[int, bool]
    is_deceased: Dict[int, bool]
    salaries: Dict[int, float]
    pensions: Dict[int, float]
    survivor_pensions: Dict[int, float]
    fers_supplements: Dict[int, float]
    social_security: Dict[int, float]
    withdrawals_traditional: Dict[int, float]
    withdrawals_roth: Dict[int, float]
    rmds: Dict[int, float]
    shortfalls: Dict[int, float]
    tsp_contributions: Dict[int, float]
    agency_contributions: Dict[int, float]
    traditional_balances: Dict[int, float]
    roth_balances: Dict[int, float]
    gross_income: float
    federal_tax: float
    state_tax: float
    local_tax: float
    fica_tax: float
    fehb_premium: float
    marketplace_premium: float
    medicare_premium: float
    magi: float
    taxable_social_security: float
    net_income: float
    filing_status: str
    mortality_phase: str
    portfolio_returns: Dict[int, float]
    opening_tsp_balance: float = 0.0

    @property
    def total_tsp_balance(self) -> float:
        return sum(self.traditional_balances.values()) + sum(self.roth_balances.values())

    @property
    def total_withdrawal(self) -> float:
        return sum(self.withdrawals_traditional.values()) + sum(self.withdrawals_roth.values())

    @property
    def total_taxes(self) -> float:
        return self.federal_tax + self.state_tax + self.local_tax + self.fica_tax

    @property
    def healthcare_premiums(self) -> float:
        return self.fehb_premium + self.marketplace_premium + self.medicare_premium

    @property
    def shortfall(self) -> float:
        return sum(self.shortfalls.values())

    def by_name(self, field_name: str) -> Dict[str, Any]:
        """Return a per-participant field keyed by participant name."""
        values = getattr(self, field_name)
        return {self.names[pid]: value for pid, value in values.items()}


@dataclass(frozen=True)
class MarketSample:
    """Market conditions for one projection year.

    An empty ``fund_returns`` means the engine should fall back to the
    deterministic return assumptions.
    """

    fund_returns: Mapping[str, float]
    inflation: float
    cola: float
    year: Optional[int] = None

    def portfolio_return(self, allocation: Mapping[str, float]) -> Optional[float]:
        if not self.fund_returns:
            return None
        return float(sum(weight * self.fund_returns[fund] for fund, weight in allocation.items() if weight))


@dataclass(frozen=True)
class SimulationTrial:
    index: int
    seed: int
    success: bool
    depletion_year: Optional[int]
    balances: Tuple[float, ...] = ()
    net_incomes: Tuple[float, ...] = ()
    cash_flows: Tuple[AnnualCashFlow, ...] = ()
    error: Optional[str] = None

    @property
    def ending_balance(self) -> float:
        return self.balances[-1] if self.balances else 0.0

    @property
    def final_net_income(self) -> float:
        return self.net_incomes[-1] if self.net_incomes else 0.0


@dataclass(frozen=True)
class PercentileBands:
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float


@dataclass(frozen=True)
class SimulationResult:
    num_trials: int
    completed_trials: int
    success_rate: float
    ending_balance: PercentileBands
    net_income: PercentileBands
    median_tsp_longevity: float
    balance_by_year: Dict[str, List[float]]
    seed: int
    sampler: str
    partial: bool = False
    failed_trials: int = 0
    warnings: Tuple[str, ...] = ()
    trials: Tuple[SimulationTrial, ...] = ()


@dataclass(frozen=True)
class ScenarioSummary:
    name: str
    first_year_net_income: float
    year5_net_income: float
    year10_net_income: float
    total_lifetime_income: float
    tsp_longevity: int
    initial_tsp_balance: float
    final_tsp_balance: float
    projection: Tuple[AnnualCashFlow, ...] = ()


@dataclass(frozen=True)
class ScenarioComparison:
    baseline_net_income: float
    scenarios: Tuple[ScenarioSummary, ...]

    def get(self, name: str) -> ScenarioSummary:
        for summary in self.scenarios:
            if summary.name == name:
                return summary
        raise KeyError(name)


@dataclass(frozen=True)
class BreakEvenResult:
    scenario_name: str
    rate: float
    converged: bool
    iterations: int
    year_index: int
    year: int
    target_income: float
    projected_net_income: float
    difference: float
    total_withdrawal: float
    total_balance: float


@dataclass(frozen=True)
class BreakEvenAnalysis:
    target_income: float
    results: Tuple[BreakEvenResult, ...]


@dataclass(frozen=True)
class SurvivorYearAnalysis:
    """The survivor's side of one projected year."""

    year: int
    filing_status: str
    net_income: float
    monthly_income: float
    healthcare_costs: float
    taxes: float
    pension_income: float
    social_security: float
    tsp_withdrawal: float
    tsp_balance: float
    withdrawal_rate: float
    irmaa_tier: int


@dataclass(frozen=True)
class SurvivorViabilityAnalysis:
    scenario_name: str
    deceased: str
    survivor: str
    death_year: int
    death_age: int
    survivor_age: int
    pre_death: SurvivorYearAnalysis
    post_death: SurvivorYearAnalysis
    target_income: float
    income_shortfall: float
    shortfall_percentage: float
    viability_score: str
    tax_change: float
    healthcare_change: float
    irmaa_change: str
    tsp_longevity_change: int
    insurance_present_value: float
    recommended_coverage: float
    recommendations: Tuple[str, ...] = ()


__all__ = [
    "FUNDS",
    "DEFAULT_ALLOCATION",
    "MARRIED_JOINT",
    "SINGLE",
    "Participant",
    "Household",
    "ParticipantScenario",
    "MortalitySpec",
    "MortalityAssumptions",
    "GenericScenario",
    "GlobalAssumptions",
    "AnnualCashFlow",
    "MarketSample",
    "SimulationTrial",
    "PercentileBands",
    "SimulationResult",
    "ScenarioSummary",
    "ScenarioComparison",
    "BreakEvenResult",
    "BreakEvenAnalysis",
    "SurvivorYearAnalysis",
    "SurvivorViabilityAnalysis",
]
