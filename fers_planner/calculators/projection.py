"""Year-by-year household projection.

:class:`ProjectionEngine` threads a :class:`ProjectionState` through the
horizon.  Each step reads the prior state and one market sample and returns an
immutable :class:`~fers_planner.models.AnnualCashFlow` plus the next state;
nothing shared is modified, which is what lets Monte Carlo trials run in
parallel.

One year, in order:

1. mortality transition (survivor annuity, Social Security survivor
   benefit, TSP disposition);
2. per participant: salary and TSP contributions while working, FERS
   annuity, supplement, Social Security, withdrawals with the RMD floor;
3. household taxes (federal, state, local, FICA), FEHB or marketplace
   premiums and Medicare Part B with IRMAA on MAGI from two years earlier;
4. end-of-year balances: ``(balance - withdrawal + contributions) x (1 + r)``.

Example
-------

>>> import datetime as dt
>>> from fers_planner.models import (GenericScenario, GlobalAssumptions, Household,
...     Participant, ParticipantScenario, SINGLE)
>>> person = Participant("pat", dt.date(1965, 6, 1), tsp_traditional=500000.0)
>>> scenario = GenericScenario("fixed", {"pat": ParticipantScenario(
...     retirement_date=dt.date(2024, 1, 1), withdrawal_strategy="fixed_amount",
...     withdrawal_params={"amount": 20000})})
>>> assumptions = GlobalAssumptions(projection_years=5, tsp_return_post_retirement=0.0)
>>> flows = ProjectionEngine().project(Household((person,), SINGLE), scenario, assumptions)
>>> flows[-1].total_tsp_balance
400000.0
"""

from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from loguru import logger

from ..errors import BoundsError, ConfigurationError, SimulationCancelled
from ..models import (
    AnnualCashFlow,
    GenericScenario,
    GlobalAssumptions,
    Household,
    MarketSample,
    ParticipantScenario,
    ScenarioComparison,
    ScenarioSummary,
)
from . import mortality, pension, rmd, social_security, taxes
from .market import DeterministicSampler, MarketSampler
from .withdrawals import (
    SOURCE_POLICIES,
    StrategyRegistry,
    WithdrawalContext,
    WithdrawalStrategy,
    default_registry,
    split_withdrawal,
)

FEHB_PAY_PERIODS = 26
MEDICARE_AGE = 65

PER_PARTICIPANT_FIELDS = (
    "ages",
    "is_retired",
    "is_deceased",
    "salaries",
    "pensions",
    "survivor_pensions",
    "fers_supplements",
    "social_security",
    "withdrawals_traditional",
    "withdrawals_roth",
    "rmds",
    "shortfalls",
    "tsp_contributions",
    "agency_contributions",
    "traditional_balances",
    "roth_balances",
    "portfolio_returns",
)


def agency_contribution_rate(employee_rate: float) -> float:
    """Agency automatic 1 % plus the match on the first 5 % of pay."""
    return 0.01 + min(employee_rate, 0.03) + 0.5 * min(max(employee_rate - 0.03, 0.0), 0.02)


def work_fraction(retirement_date: dt.date) -> float:
    """Share of the retirement year worked before ``retirement_date``."""
    days_in_year = 366 if calendar.isleap(retirement_date.year) else 365
    return (retirement_date - dt.date(retirement_date.year, 1, 1)).days / days_in_year


@dataclass(frozen=True)
class ParticipantState:
    """Balances and benefit rates carried into a year.

    Benefit rates are full-year amounts (Social Security is monthly);
    ``survivor_pension`` is the survivor annuity received from a deceased
    participant.
    """

    traditional: float
    roth: float
    salary: float
    pension: float = 0.0
    survivor_annuity: float = 0.0
    supplement: float = 0.0
    ss_monthly: float = 0.0
    ss_survivor_floor: float = 0.0
    survivor_pension: float = 0.0
    retirement_balance: Optional[float] = None
    years_retired: int = 0
    cumulative_inflation: float = 1.0
    pension_started: bool = False
    ss_started: bool = False


@dataclass(frozen=True)
class ProjectionState:
    year_index: int
    participants: Tuple[ParticipantState, ...]
    mortality: mortality.MortalityState = field(default_factory=mortality.MortalityState)
    magi_history: Tuple[float, ...] = ()


@dataclass(frozen=True)
class ParticipantPlan:
    """A participant's scenario choices with derived FERS figures."""

    scenario: ParticipantScenario
    strategy: WithdrawalStrategy
    retirement_index: Optional[int]
    work_fraction: float
    retirement_age: int
    service_years: float
    pension: float
    survivor_annuity: float
    supplement: float
    rmd_age: int
    claim_monthly: float
    allocation: Mapping[str, float]
    contribution_rate: float


@dataclass(frozen=True)
class ResolvedScenario:
    household: Household
    scenario: GenericScenario
    assumptions: GlobalAssumptions
    plans: Tuple[ParticipantPlan, ...]
    death_years: Dict[int, int]
    fehb_holder: Optional[int]
    tax_tables: Dict[str, Dict]

    @property
    def size(self) -> int:
        return len(self.plans)

    @property
    def retirement_indexes(self) -> List[Optional[int]]:
        return [plan.retirement_index for plan in self.plans]


@dataclass(frozen=True)
class _Flows:
    salary: float = 0.0
    pension: float = 0.0
    survivor_pension: float = 0.0
    supplement: float = 0.0
    social_security: float = 0.0
    withdrawal_traditional: float = 0.0
    withdrawal_roth: float = 0.0
    rmd: float = 0.0
    shortfall: float = 0.0
    contribution: float = 0.0
    agency_contribution: float = 0.0
    traditional_end: float = 0.0
    roth_end: float = 0.0
    retired: bool = False
    portfolio_return: float = 0.0


class ProjectionEngine:
    """Deterministic household projection driven by market samples."""

    def __init__(self, registry: Optional[StrategyRegistry] = None):
        self.registry = registry or default_registry()

    # -- setup -----------------------------------------------------------

    def resolve(
        self,
        household: Household,
        scenario: GenericScenario,
        assumptions: GlobalAssumptions,
        allocation: Optional[Mapping[str, float]] = None,
    ) -> ResolvedScenario:
        """Validate inputs and derive everything that is fixed per scenario."""
        household.validate()
        known = household.name_to_id()
        for name in scenario.participants:
            if name not in known:
                raise ConfigurationError(f"scenario {scenario.name!r} references unknown participant {name!r}")
        death_years = mortality.death_schedule(household, scenario, assumptions.start_year)

        plans = []
        for person in household.participants:
            try:
                choices = scenario.participants[person.name]
            except KeyError:
                raise ConfigurationError(
                    f"scenario {scenario.name!r} has no entry for participant {person.name!r}"
                ) from None
            choices.validate(person.name)
            plans.append(self._plan(person, choices, assumptions, allocation))

        tables = assumptions.tax_tables or taxes.load_tax_tables()
        for plan in plans:
            if plan.scenario.withdrawal_sources == "bracket_fill":
                taxes.bracket_ceiling(plan.scenario.target_bracket, household.filing_status, assumptions.tax_year, tables)
        fehb_holder = household.participant_id(household.fehb_holder) if household.fehb_holder else None
        return ResolvedScenario(
            household=household,
            scenario=scenario,
            assumptions=assumptions,
            plans=tuple(plans),
            death_years=death_years,
            fehb_holder=fehb_holder,
            tax_tables=tables,
        )

    def _plan(self, person, choices: ParticipantScenario, assumptions: GlobalAssumptions, allocation) -> ParticipantPlan:
        if choices.withdrawal_sources not in SOURCE_POLICIES:
            raise ConfigurationError(f"{person.name}: unknown withdrawal source policy {choices.withdrawal_sources!r}")
        strategy = self.registry.create(choices.withdrawal_strategy, choices.withdrawal_params)

        retirement_index = None
        worked = retirement_age = 0
        service = annuity = survivor = supplement = 0.0
        if choices.retirement_date is not None:
            retirement_index = choices.retirement_date.year - assumptions.start_year
            worked = work_fraction(choices.retirement_date)
            retirement_age = person.age_on(choices.retirement_date)
            if person.is_federal and person.hire_date is not None:
                service = pension.years_of_service(person.hire_date, choices.retirement_date, person.sick_leave_hours)
                annuity, survivor = pension.fers_annuity(
                    person.high3_salary, service, retirement_age, person.survivor_election
                )
                if person.ss_benefit_62 > 0 and pension.supplement_eligible(retirement_age, service, person.birth_year):
                    supplement = pension.special_retirement_supplement(person.ss_benefit_62, service)

        claim_monthly = social_security.monthly_benefit(
            person.ss_benefit_62,
            person.ss_benefit_fra,
            person.ss_benefit_70,
            choices.ss_claim_age,
            social_security.full_retirement_age(person.birth_year),
        )
        contribution_rate = (
            choices.tsp_contribution_rate if choices.tsp_contribution_rate is not None else person.tsp_contribution_rate
        )
        return ParticipantPlan(
            scenario=choices,
            strategy=strategy,
            retirement_index=retirement_index,
            work_fraction=worked,
            retirement_age=retirement_age,
            service_years=service,
            pension=annuity,
            survivor_annuity=survivor,
            supplement=supplement,
            rmd_age=rmd.required_distribution_age(person.birth_year, assumptions.rmd_age),
            claim_monthly=claim_monthly,
            allocation=allocation or person.tsp_allocation or assumptions.default_allocation,
            contribution_rate=contribution_rate,
        )

    def initial_state(self, resolved: ResolvedScenario) -> ProjectionState:
        return ProjectionState(
            year_index=0,
            participants=tuple(
                ParticipantState(traditional=p.tsp_traditional, roth=p.tsp_roth, salary=p.current_salary)
                for p in resolved.household.participants
            ),
        )

    # -- projection ------------------------------------------------------

    def project(
        self,
        household: Household,
        scenario: GenericScenario,
        assumptions: GlobalAssumptions,
        sampler: Optional[MarketSampler] = None,
        years: Optional[int] = None,
        allocation: Optional[Mapping[str, float]] = None,
        cancel: Any = None,
    ) -> Tuple[AnnualCashFlow, ...]:
        """Project ``years`` (default: the assumptions' horizon) years.

        ``cancel`` is any object with ``is_set()``; it is checked before each
        year and raises :class:`SimulationCancelled` once set.
        """
        resolved = self.resolve(household, scenario, assumptions, allocation)
        return self.run(resolved, sampler=sampler, years=years, cancel=cancel)

    def run(
        self,
        resolved: ResolvedScenario,
        sampler: Optional[MarketSampler] = None,
        years: Optional[int] = None,
        cancel: Any = None,
    ) -> Tuple[AnnualCashFlow, ...]:
        horizon = years or resolved.assumptions.projection_years
        if sampler is None:
            sampler = DeterministicSampler(resolved.assumptions, horizon)
        sampler.reset()
        state = self.initial_state(resolved)
        flows: List[AnnualCashFlow] = []
        for year_index in range(horizon):
            if cancel is not None and cancel.is_set():
                raise SimulationCancelled(f"cancelled before year {year_index}")
            cash_flow, state = self.step(resolved, year_index, sampler.next_year(), state)
            flows.append(cash_flow)
        return tuple(flows)

    def project_year(
        self,
        household: Household,
        scenario: GenericScenario,
        assumptions: GlobalAssumptions,
        year_index: int,
        sample: MarketSample,
        prior_state: Optional[ProjectionState] = None,
    ) -> Tuple[AnnualCashFlow, ProjectionState]:
        """Compute a single year from ``prior_state`` (the initial state for year 0)."""
        if not 0 <= year_index < assumptions.projection_years:
            raise BoundsError(f"year index {year_index} outside horizon of {assumptions.projection_years} years")
        resolved = self.resolve(household, scenario, assumptions)
        if prior_state is None:
            if year_index != 0:
                raise ConfigurationError("prior_state is required after the first year")
            prior_state = self.initial_state(resolved)
        elif prior_state.year_index != year_index:
            raise ConfigurationError(f"prior state is for year {prior_state.year_index}, not {year_index}")
        return self.step(resolved, year_index, sample, prior_state)

    def analyze_year(
        self,
        household: Household,
        scenario: GenericScenario,
        assumptions: GlobalAssumptions,
        year_index: int,
        sampler: Optional[MarketSampler] = None,
    ) -> AnnualCashFlow:
        """Project through ``year_index`` and return that year's record."""
        if not 0 <= year_index < assumptions.projection_years:
            raise BoundsError(f"year index {year_index} outside horizon of {assumptions.projection_years} years")
        return self.project(household, scenario, assumptions, sampler=sampler, years=year_index + 1)[-1]

    def step(
        self,
        resolved: ResolvedScenario,
        year_index: int,
        sample: MarketSample,
        prior: ProjectionState,
    ) -> Tuple[AnnualCashFlow, ProjectionState]:
        a = resolved.assumptions
        household = resolved.household
        policy = resolved.scenario.mortality_assumptions
        ids = range(resolved.size)
        year = a.start_year + year_index

        state, newly_deceased = mortality.transition(prior.mortality, year_index, resolved.death_years, resolved.size)
        parts = self._apply_deaths(resolved, list(prior.participants), state, newly_deceased)
        factor = mortality.spending_factor(state, policy)
        filing_status = mortality.filing_status_for_year(
            household.filing_status, state, year_index, policy.filing_status_switch, resolved.size
        )
        survivors = state.survivors(ids)

        flows: Dict[int, _Flows] = {}
        next_parts: List[ParticipantState] = []
        for pid in ids:
            if state.is_alive(pid):
                flow, nxt = self._living_year(
                    resolved, pid, year_index, year, sample, parts[pid], factor, filing_status, len(survivors)
                )
            else:
                flow, nxt = self._deceased_year(
                    resolved, pid, year, sample, parts[pid], factor, bool(survivors) and policy.tsp_disposition == "keep_separate"
                )
            flows[pid] = flow
            next_parts.append(nxt)

        ages = {pid: household.participants[pid].age_at_year_end(year) for pid in ids}
        salaries = sum(f.salary for f in flows.values())
        contributions = sum(f.contribution for f in flows.values())
        pensions = sum(f.pension + f.survivor_pension + f.supplement for f in flows.values())
        traditional_out = sum(f.withdrawal_traditional for f in flows.values())
        roth_out = sum(f.withdrawal_roth for f in flows.values())
        ss_total = sum(f.social_security for f in flows.values())

        tables = resolved.tax_tables
        other_income = salaries - contributions + pensions + traditional_out
        taxable_ss = taxes.taxable_social_security(ss_total, other_income, filing_status, a.tax_year, tables)
        magi = other_income + taxable_ss
        seniors = sum(1 for pid in survivors if ages[pid] >= MEDICARE_AGE)
        federal = taxes.compute_federal_tax(magi, filing_status, a.tax_year, tables, seniors=seniors)
        retirement_income = pensions + traditional_out
        state_tax = taxes.compute_state_tax(
            salaries + retirement_income, a.state, filing_status, a.tax_year, tables, retirement_income=retirement_income
        )
        local_tax = taxes.compute_local_tax(salaries, a.state, a.tax_year, tables)
        fica = taxes.compute_fica([flows[pid].salary for pid in ids], filing_status, a.tax_year, tables)

        history = prior.magi_history + (magi,)
        irmaa_magi = history[-3] if len(history) >= 3 else magi
        medicare_factor = (1 + a.medicare_premium_inflation) ** year_index
        monthly_part_b = taxes.part_b_premium(irmaa_magi, filing_status, a.tax_year, tables)
        medicare = sum(12 * monthly_part_b * medicare_factor for pid in survivors if ages[pid] >= MEDICARE_AGE)

        fehb = self._fehb_premium(resolved, state, survivors, year_index)
        health_factor = (1 + a.fehb_premium_inflation) ** year_index
        marketplace = 0.0
        if fehb <= 0:
            marketplace = sum(
                household.participants[pid].marketplace_premium_monthly * 12 * health_factor
                for pid in survivors
                if flows[pid].retired and ages[pid] < MEDICARE_AGE
            )

        gross = salaries + pensions + ss_total + traditional_out + roth_out
        deductions = federal + state_tax + local_tax + fica + contributions + fehb + marketplace + medicare

        cash_flow = AnnualCashFlow(
            year_index=year_index,
            year=year,
            names=household.names,
            ages=ages,
            is_retired={pid: flows[pid].retired for pid in ids},
            is_deceased={pid: not state.is_alive(pid) for pid in ids},
            salaries={pid: flows[pid].salary for pid in ids},
            pensions={pid: flows[pid].pension for pid in ids},
            survivor_pensions={pid: flows[pid].survivor_pension for pid in ids},
            fers_supplements={pid: flows[pid].supplement for pid in ids},
            social_security={pid: flows[pid].social_security for pid in ids},
            withdrawals_traditional={pid: flows[pid].withdrawal_traditional for pid in ids},
            withdrawals_roth={pid: flows[pid].withdrawal_roth for pid in ids},
            rmds={pid: flows[pid].rmd for pid in ids},
            shortfalls={pid: flows[pid].shortfall for pid in ids},
            tsp_contributions={pid: flows[pid].contribution for pid in ids},
            agency_contributions={pid: flows[pid].agency_contribution for pid in ids},
            traditional_balances={pid: flows[pid].traditional_end for pid in ids},
            roth_balances={pid: flows[pid].roth_end for pid in ids},
            gross_income=gross,
            federal_tax=federal,
            state_tax=state_tax,
            local_tax=local_tax,
            fica_tax=fica,
            fehb_premium=fehb,
            marketplace_premium=marketplace,
            medicare_premium=medicare,
            magi=magi,
            taxable_social_security=taxable_ss,
            net_income=gross - deductions,
            filing_status=filing_status,
            mortality_phase=state.phase.value,
            portfolio_returns={pid: flows[pid].portfolio_return for pid in ids},
            opening_tsp_balance=sum(p.traditional + p.roth for p in prior.participants),
        )
        next_state = ProjectionState(
            year_index=year_index + 1,
            participants=tuple(next_parts),
            mortality=state,
            magi_history=history[-2:],
        )
        return cash_flow, next_state

    # -- per-year pieces -------------------------------------------------

    def _apply_deaths(
        self,
        resolved: ResolvedScenario,
        parts: List[ParticipantState],
        state: mortality.MortalityState,
        newly_deceased: Sequence[int],
    ) -> List[ParticipantState]:
        if not newly_deceased:
            return parts
        survivors = state.survivors(range(resolved.size))
        disposition = resolved.scenario.mortality_assumptions.tsp_disposition
        traditional = {pid: p.traditional for pid, p in enumerate(parts)}
        roth = {pid: p.roth for pid, p in enumerate(parts)}
        for dead in newly_deceased:
            deceased = parts[dead]
            if survivors:
                annuity_share = deceased.survivor_annuity / len(survivors) if deceased.pension_started else 0.0
                deceased_ss = (
                    deceased.ss_monthly if deceased.ss_started else resolved.household.participants[dead].ss_benefit_fra
                )
                for pid in survivors:
                    current = parts[pid]
                    floor = max(current.ss_survivor_floor, deceased_ss)
                    parts[pid] = replace(
                        current,
                        survivor_pension=current.survivor_pension + annuity_share,
                        ss_survivor_floor=floor,
                        ss_monthly=max(current.ss_monthly, floor) if current.ss_started else current.ss_monthly,
                    )
            traditional, roth = mortality.dispose_balances(traditional, roth, dead, survivors, disposition)
        return [replace(p, traditional=traditional[pid], roth=roth[pid]) for pid, p in enumerate(parts)]

    def _living_year(
        self,
        resolved: ResolvedScenario,
        pid: int,
        year_index: int,
        year: int,
        sample: MarketSample,
        st: ParticipantState,
        spending_factor: float,
        filing_status: str,
        living: int,
    ) -> Tuple[_Flows, ParticipantState]:
        a = resolved.assumptions
        person = resolved.household.participants[pid]
        plan = resolved.plans[pid]
        age = person.age_at_year_end(year)

        ri = plan.retirement_index
        if ri is None or year_index < ri:
            worked = 1.0
        elif year_index == ri:
            worked = plan.work_fraction
        else:
            worked = 0.0
        retired = ri is not None and year_index >= ri
        retired_share = 1.0 - worked if retired else 0.0

        salary = st.salary * worked
        contribution = salary * plan.contribution_rate
        agency = salary * agency_contribution_rate(plan.contribution_rate) if person.is_federal and salary > 0 else 0.0

        annuity, survivor_annuity, started = st.pension, st.survivor_annuity, st.pension_started
        pension_paid = 0.0
        if retired and plan.pension > 0:
            if not started:
                annuity, survivor_annuity, started = plan.pension, plan.survivor_annuity, True
            else:
                cola = pension.fers_cola(sample.inflation, age)
                annuity *= 1 + cola
                survivor_annuity *= 1 + cola
            pension_paid = annuity * retired_share

        supplement_rate = st.supplement
        supplement_paid = 0.0
        if retired and plan.supplement > 0 and age <= 62:
            supplement_rate = supplement_rate or plan.supplement
            share = retired_share
            if age == 62:
                share *= (person.birth_date.month - 1) / 12
            supplement_paid = supplement_rate * share

        ss_cola = max(0.0, sample.cola)
        monthly, ss_started = st.ss_monthly, st.ss_started
        ss_paid = 0.0
        claim_age = plan.scenario.ss_claim_age
        if age >= claim_age:
            if not ss_started:
                monthly = max(plan.claim_monthly, st.ss_survivor_floor)
                ss_started = True
                months = social_security.months_paid_in_claim_year(person.birth_date) if age == claim_age else 12
            else:
                monthly *= 1 + ss_cola
                months = 12
            ss_paid = monthly * months

        balance = st.traditional + st.roth
        required = rmd.compute_rmd(st.traditional, age) if retired and age >= plan.rmd_age else 0.0
        retirement_balance = st.retirement_balance
        requested = 0.0
        if retired:
            if retirement_balance is None:
                retirement_balance = balance
            context = WithdrawalContext(balance, retirement_balance, st.years_retired, st.cumulative_inflation, age)
            requested = plan.strategy.requested_amount(context) * retired_share * spending_factor
        room = float("inf")
        if plan.scenario.withdrawal_sources == "bracket_fill":
            # household bracket shared evenly between living participants
            ceiling = taxes.bracket_ceiling(plan.scenario.target_bracket, filing_status, a.tax_year, resolved.tax_tables)
            ordinary = salary - contribution + pension_paid + supplement_paid + st.survivor_pension
            room = (ceiling - plan.scenario.bracket_buffer) / max(living, 1) - ordinary
        from_traditional, from_roth, shortfall = split_withdrawal(
            max(requested, required),
            st.traditional,
            st.roth,
            required,
            plan.scenario.withdrawal_sources,
            bracket_room=room,
        )

        r = sample.portfolio_return(plan.allocation)
        if r is None:
            r = a.tsp_return_post_retirement if retired else a.tsp_return_pre_retirement
        traditional_end = max(0.0, (st.traditional - from_traditional + contribution + agency) * (1 + r))
        roth_end = max(0.0, (st.roth - from_roth) * (1 + r))

        flow = _Flows(
            salary=salary,
            pension=pension_paid,
            survivor_pension=st.survivor_pension,
            supplement=supplement_paid,
            social_security=ss_paid,
            withdrawal_traditional=from_traditional,
            withdrawal_roth=from_roth,
            rmd=required,
            shortfall=shortfall,
            contribution=contribution,
            agency_contribution=agency,
            traditional_end=traditional_end,
            roth_end=roth_end,
            retired=retired,
            portfolio_return=r,
        )
        nxt = ParticipantState(
            traditional=traditional_end,
            roth=roth_end,
            salary=st.salary if retired else st.salary * (1 + sample.cola),
            pension=annuity,
            survivor_annuity=survivor_annuity,
            supplement=supplement_rate,
            ss_monthly=monthly,
            ss_survivor_floor=st.ss_survivor_floor * (1 + ss_cola),
            survivor_pension=st.survivor_pension * (1 + pension.fers_cola(sample.inflation, 62)),
            retirement_balance=retirement_balance,
            years_retired=st.years_retired + 1 if retired else 0,
            cumulative_inflation=st.cumulative_inflation * (1 + sample.inflation) if retired else 1.0,
            pension_started=started,
            ss_started=ss_started,
        )
        return flow, nxt

    def _deceased_year(
        self,
        resolved: ResolvedScenario,
        pid: int,
        year: int,
        sample: MarketSample,
        st: ParticipantState,
        spending_factor: float,
        draw_inherited: bool,
    ) -> Tuple[_Flows, ParticipantState]:
        """Only an inherited (``keep_separate``) account is still active."""
        a = resolved.assumptions
        plan = resolved.plans[pid]
        balance = st.traditional + st.roth
        from_traditional = from_roth = shortfall = 0.0
        retirement_balance = st.retirement_balance
        if draw_inherited and balance > 0:
            if retirement_balance is None:
                retirement_balance = balance
            context = WithdrawalContext(
                balance,
                retirement_balance,
                st.years_retired,
                st.cumulative_inflation,
                resolved.household.participants[pid].age_at_year_end(year),
            )
            requested = plan.strategy.requested_amount(context) * spending_factor
            from_traditional, from_roth, shortfall = split_withdrawal(
                requested, st.traditional, st.roth, 0.0, plan.scenario.withdrawal_sources
            )
        r = sample.portfolio_return(plan.allocation)
        if r is None:
            r = a.tsp_return_post_retirement
        traditional_end = max(0.0, (st.traditional - from_traditional) * (1 + r))
        roth_end = max(0.0, (st.roth - from_roth) * (1 + r))
        flow = _Flows(
            withdrawal_traditional=from_traditional,
            withdrawal_roth=from_roth,
            shortfall=shortfall,
            traditional_end=traditional_end,
            roth_end=roth_end,
            portfolio_return=r,
        )
        nxt = ParticipantState(
            traditional=traditional_end,
            roth=roth_end,
            salary=0.0,
            retirement_balance=retirement_balance,
            years_retired=st.years_retired + 1 if draw_inherited else st.years_retired,
            cumulative_inflation=st.cumulative_inflation * (1 + sample.inflation),
            pension_started=st.pension_started,
            ss_started=st.ss_started,
        )
        return flow, nxt

    def _fehb_premium(
        self,
        resolved: ResolvedScenario,
        state: mortality.MortalityState,
        survivors: Sequence[int],
        year_index: int,
    ) -> float:
        """FEHB premium for the holder, continued for survivors of an annuitant
        who elected a survivor annuity."""
        holder_id = resolved.fehb_holder
        if holder_id is None or not survivors:
            return 0.0
        holder = resolved.household.participants[holder_id]
        if not state.is_alive(holder_id) and holder.survivor_election <= 0:
            return 0.0
        growth = (1 + resolved.assumptions.fehb_premium_inflation) ** year_index
        return holder.fehb_premium_per_pay_period * FEHB_PAY_PERIODS * growth


# -- scenario-level helpers ---------------------------------------------------


def summarize(
    projection: Sequence[AnnualCashFlow],
    assumptions: GlobalAssumptions,
    name: str = "",
    keep_projection: bool = True,
) -> ScenarioSummary:
    """Headline numbers for one projected scenario.

    Lifetime income is the present value of net income at
    ``assumptions.discount_rate``.  TSP longevity counts the years until the
    combined TSP balance first reaches zero, or the full horizon if it never
    does.
    """
    if not projection:
        raise BoundsError("cannot summarize an empty projection")

    def net_at(index: int) -> float:
        return projection[min(index, len(projection) - 1)].net_income

    lifetime = sum(cf.net_income / (1 + assumptions.discount_rate) ** i for i, cf in enumerate(projection))
    longevity = len(projection)
    for i, cf in enumerate(projection):
        if cf.total_tsp_balance <= 0:
            longevity = i + 1
            break
    initial_balance = projection[0].opening_tsp_balance
    return ScenarioSummary(
        name=name,
        first_year_net_income=net_at(0),
        year5_net_income=net_at(4),
        year10_net_income=net_at(9),
        total_lifetime_income=lifetime,
        tsp_longevity=longevity,
        initial_tsp_balance=initial_balance,
        final_tsp_balance=projection[-1].total_tsp_balance,
        projection=tuple(projection) if keep_projection else (),
    )


def current_net_income(household: Household, assumptions: GlobalAssumptions) -> float:
    """Net income of a full working year at current salaries."""
    tables = assumptions.tax_tables or taxes.load_tax_tables()
    year = assumptions.start_year
    wages = [p.current_salary for p in household.participants]
    contributions = sum(p.current_salary * p.tsp_contribution_rate for p in household.participants)
    seniors = sum(1 for p in household.participants if p.age_at_year_end(year) >= MEDICARE_AGE)
    status = household.filing_status
    income = sum(wages) - contributions
    total_taxes = (
        taxes.compute_federal_tax(income, status, assumptions.tax_year, tables, seniors=seniors)
        + taxes.compute_state_tax(sum(wages), assumptions.state, status, assumptions.tax_year, tables)
        + taxes.compute_local_tax(sum(wages), assumptions.state, assumptions.tax_year, tables)
        + taxes.compute_fica(wages, status, assumptions.tax_year, tables)
    )
    fehb = 0.0
    if household.fehb_holder:
        holder = household.participants[household.participant_id(household.fehb_holder)]
        fehb = holder.fehb_premium_per_pay_period * FEHB_PAY_PERIODS
    return sum(wages) - total_taxes - contributions - fehb


def compare_scenarios(
    household: Household,
    scenarios: Sequence[GenericScenario],
    assumptions: GlobalAssumptions,
    engine: Optional[ProjectionEngine] = None,
) -> ScenarioComparison:
    """Project each scenario deterministically and summarize it."""
    engine = engine or ProjectionEngine()
    summaries = []
    for scenario in scenarios:
        projection = engine.project(household, scenario, assumptions)
        summary = summarize(projection, assumptions, name=scenario.name)
        logger.info(
            f"Scenario '{scenario.name}': first-year net {summary.first_year_net_income:,.0f}, "
            f"TSP longevity {summary.tsp_longevity} years"
        )
        summaries.append(summary)
    return ScenarioComparison(baseline_net_income=current_net_income(household, assumptions), scenarios=tuple(summaries))


def projection_frame(projection: Sequence[AnnualCashFlow]) -> pd.DataFrame:
    """Flatten a projection into a DataFrame indexed by calendar year.

    Per-participant values become ``"<name>.<field>"`` columns.
    """
    rows = []
    for cf in projection:
        row: Dict[str, Any] = {
            "year": cf.year,
            "year_index": cf.year_index,
            "filing_status": cf.filing_status,
            "mortality_phase": cf.mortality_phase,
            "gross_income": cf.gross_income,
            "federal_tax": cf.federal_tax,
            "state_tax": cf.state_tax,
            "local_tax": cf.local_tax,
            "fica_tax": cf.fica_tax,
            "fehb_premium": cf.fehb_premium,
            "marketplace_premium": cf.marketplace_premium,
            "medicare_premium": cf.medicare_premium,
            "magi": cf.magi,
            "net_income": cf.net_income,
            "total_withdrawal": cf.total_withdrawal,
            "opening_tsp_balance": cf.opening_tsp_balance,
            "total_tsp_balance": cf.total_tsp_balance,
        }
        for field_name in PER_PARTICIPANT_FIELDS:
            for pid, value in getattr(cf, field_name).items():
                row[f"{cf.names[pid]}.{field_name}"] = value
        rows.append(row)
    return pd.DataFrame(rows).set_index("year")


__all__ = [
    "ParticipantState",
    "ProjectionState",
    "ParticipantPlan",
    "ResolvedScenario",
    "ProjectionEngine",
    "agency_contribution_rate",
    "work_fraction",
    "summarize",
    "current_net_income",
    "compare_scenarios",
    "projection_frame",
]
