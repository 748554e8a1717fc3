"""Tests for the deterministic projection engine."""

import datetime as dt

import pytest

from fers_planner.calculators import taxes
from fers_planner.calculators.market import DeterministicSampler
from fers_planner.calculators.projection import (
    ProjectionEngine,
    compare_scenarios,
    current_net_income,
    projection_frame,
    summarize,
    work_fraction,
)
from fers_planner.calculators.withdrawals import WithdrawalStrategy, default_registry
from fers_planner.errors import BoundsError, ConfigurationError
from fers_planner.models import (
    SINGLE,
    GenericScenario,
    GlobalAssumptions,
    Household,
    MortalityAssumptions,
    MortalitySpec,
    Participant,
    ParticipantScenario,
)


def _retired_couple(balance=500000.0, birth=dt.date(1965, 3, 1)):
    return Household(
        (
            Participant("alex", birth, tsp_traditional=balance),
            Participant("sam", birth, tsp_traditional=balance),
        )
    )


def _fixed_scenario(amount=20000.0, names=("alex", "sam"), **kwargs):
    choice = ParticipantScenario(
        retirement_date=dt.date(2024, 6, 1),
        withdrawal_strategy="fixed_amount",
        withdrawal_params={"amount": amount},
    )
    return GenericScenario("fixed", {name: choice for name in names}, **kwargs)


def _zero_return_assumptions(years=25):
    return GlobalAssumptions(projection_years=years, tsp_return_pre_retirement=0.0, tsp_return_post_retirement=0.0)


def test_fixed_withdrawals_deplete_on_schedule():
    """500k each, 20k/yr each, no growth: the balance lasts exactly 25 years."""
    flows = ProjectionEngine().project(_retired_couple(), _fixed_scenario(), _zero_return_assumptions())
    assert len(flows) == 25
    assert flows[23].total_tsp_balance > 0
    assert flows[24].total_tsp_balance == pytest.approx(0.0, abs=1e-6)
    assert all(cf.shortfall == 0.0 for cf in flows)
    assert flows[0].traditional_balances == {0: 480000.0, 1: 480000.0}


def test_first_year_net_income():
    """40k of withdrawals: 1,000 federal tax after the joint deduction, PA exempts it."""
    cf = ProjectionEngine().project(_retired_couple(), _fixed_scenario(), _zero_return_assumptions())[0]
    assert cf.gross_income == pytest.approx(40000.0)
    assert cf.federal_tax == pytest.approx(1000.0)
    assert cf.state_tax == 0.0
    assert cf.net_income == pytest.approx(39000.0)


def test_balances_never_negative_and_shortfall_recorded():
    household = _retired_couple(balance=200000.0)
    flows = ProjectionEngine().project(household, _fixed_scenario(amount=100000.0), _zero_return_assumptions(5))
    assert all(b >= 0 for cf in flows for b in cf.traditional_balances.values())
    assert flows[1].total_tsp_balance == 0.0
    assert flows[2].shortfall == pytest.approx(200000.0)


def test_projection_is_deterministic():
    engine = ProjectionEngine()
    args = (_retired_couple(), _fixed_scenario(), GlobalAssumptions())
    assert engine.project(*args) == engine.project(*args)


def test_unknown_participant_rejected():
    scenario = _fixed_scenario(names=("alex", "sam", "pat"))
    with pytest.raises(ConfigurationError):
        ProjectionEngine().project(_retired_couple(), scenario, GlobalAssumptions())


def test_missing_participant_rejected():
    with pytest.raises(ConfigurationError):
        ProjectionEngine().project(_retired_couple(), _fixed_scenario(names=("alex",)), GlobalAssumptions())


def test_analyze_year_bounds():
    engine = ProjectionEngine()
    args = (_retired_couple(), _fixed_scenario(), _zero_return_assumptions())
    assert engine.analyze_year(*args, year_index=24).year == 2049
    with pytest.raises(BoundsError):
        engine.analyze_year(*args, year_index=25)
    with pytest.raises(BoundsError):
        engine.analyze_year(*args, year_index=-1)


def test_project_year_chains_state():
    engine = ProjectionEngine()
    household, scenario, assumptions = _retired_couple(), _fixed_scenario(), _zero_return_assumptions()
    full = engine.project(household, scenario, assumptions, years=3)
    resolved = engine.resolve(household, scenario, assumptions)
    state = engine.initial_state(resolved)
    sample = DeterministicSampler(assumptions).next_year()
    for year_index in range(3):
        cf, state = engine.project_year(household, scenario, assumptions, year_index, sample, state)
        assert cf == full[year_index]
    with pytest.raises(BoundsError):
        engine.project_year(household, scenario, assumptions, 25, sample, state)


def test_working_year_retirement_and_pension():
    """Retiring mid-2025 prorates salary, annuity and supplement."""
    worker = Participant(
        "alex",
        dt.date(1965, 1, 1),
        hire_date=dt.date(1995, 7, 2),
        current_salary=100000.0,
        high3_salary=100000.0,
        tsp_traditional=300000.0,
        tsp_contribution_rate=0.05,
        ss_benefit_62=1500.0,
        ss_benefit_fra=2100.0,
        ss_benefit_70=2600.0,
    )
    scenario = GenericScenario(
        "mid-year",
        {"alex": ParticipantScenario(retirement_date=dt.date(2025, 7, 2), withdrawal_strategy="fixed_amount",
                                     withdrawal_params={"amount": 10000.0})},
    )
    flows = ProjectionEngine().project(Household((worker,), SINGLE), scenario, GlobalAssumptions(projection_years=5))
    wf = work_fraction(dt.date(2025, 7, 2))
    first, second = flows[0], flows[1]
    assert wf == pytest.approx(182 / 365)
    assert first.salaries[0] == pytest.approx(100000.0 * wf)
    assert first.tsp_contributions[0] == pytest.approx(5000.0 * wf)
    assert first.agency_contributions[0] == pytest.approx(5000.0 * wf)
    # 30 years at 1% with no survivor election; age 60 so no COLA next year
    assert first.pensions[0] == pytest.approx(30000.0 * (1 - wf))
    assert second.pensions[0] == pytest.approx(30000.0)
    assert first.fers_supplements[0] == pytest.approx(13500.0 * (1 - wf))
    assert first.withdrawals_traditional[0] == pytest.approx(10000.0 * (1 - wf))
    assert first.is_retired[0] and first.fica_tax > 0
    assert second.salaries[0] == 0.0 and second.fica_tax == 0.0


def test_social_security_starts_in_claim_year():
    person = Participant(
        "alex", dt.date(1960, 4, 1), ss_benefit_62=1500.0, ss_benefit_fra=2000.0, ss_benefit_70=2600.0
    )
    scenario = GenericScenario(
        "ss",
        {"alex": ParticipantScenario(retirement_date=dt.date(2020, 1, 1), ss_claim_age=67,
                                     withdrawal_strategy="fixed_amount", withdrawal_params={"amount": 0.0})},
    )
    flows = ProjectionEngine().project(Household((person,), SINGLE), scenario, GlobalAssumptions(projection_years=4))
    assert flows[1].social_security[0] == 0.0
    # turns 67 in 2027: April through December
    assert flows[2].social_security[0] == pytest.approx(2000.0 * 9)
    assert flows[3].social_security[0] == pytest.approx(2000.0 * 1.025 * 12)


def test_medicare_premiums_for_participants_over_65():
    household = _retired_couple(balance=100000.0, birth=dt.date(1955, 6, 1))
    flows = ProjectionEngine().project(household, _fixed_scenario(amount=10000.0), _zero_return_assumptions(2))
    assert flows[0].medicare_premium == pytest.approx(2 * 12 * 185.0)
    assert flows[1].medicare_premium == pytest.approx(2 * 12 * 185.0 * 1.055)


def test_survivor_annuity_and_filing_status_after_death():
    annuitant = Participant(
        "alex",
        dt.date(1960, 1, 1),
        hire_date=dt.date(1990, 1, 1),
        high3_salary=100000.0,
        survivor_election=0.5,
        tsp_traditional=200000.0,
    )
    spouse = Participant("sam", dt.date(1962, 1, 1), tsp_traditional=100000.0)
    choice = ParticipantScenario(
        retirement_date=dt.date(2024, 1, 1), withdrawal_strategy="fixed_amount", withdrawal_params={"amount": 5000.0}
    )
    scenario = GenericScenario(
        "survivor",
        {"alex": choice, "sam": choice},
        mortality={"alex": MortalitySpec(death_age=67)},
    )
    flows = ProjectionEngine().project(Household((annuitant, spouse)), scenario, _zero_return_assumptions(4))
    # 34 years at 1.1%: 37,400 basic, 10% survivor reduction
    assert flows[0].pensions[0] == pytest.approx(37400.0 * 0.9)
    assert flows[1].survivor_pensions[1] == 0.0
    died = flows[2]
    assert died.is_deceased[0] and not died.is_deceased[1]
    assert died.mortality_phase == "one_deceased"
    assert died.pensions[0] == 0.0
    # survivor annuity carried one diet COLA (2.5% inflation -> 2%)
    assert died.survivor_pensions[1] == pytest.approx(18700.0 * 1.02)
    assert died.filing_status == SINGLE
    assert died.traditional_balances[0] == 0.0
    # merged: 190k + 90k, less this year's 5,000 x 0.75 survivor withdrawal
    assert died.traditional_balances[1] == pytest.approx(190000.0 + 90000.0 - 3750.0)


def test_next_year_filing_switch_and_keep_separate():
    household = _retired_couple()
    scenario = _fixed_scenario(
        mortality={"sam": MortalitySpec(death_date=dt.date(2026, 5, 1))},
        mortality_assumptions=MortalityAssumptions(tsp_disposition="keep_separate", filing_status_switch="next_year"),
    )
    flows = ProjectionEngine().project(household, scenario, _zero_return_assumptions(3))
    assert flows[1].filing_status == "married_filing_jointly"
    assert flows[2].filing_status == SINGLE
    # inherited account keeps paying at the survivor spending factor
    assert flows[1].withdrawals_traditional[1] == pytest.approx(15000.0)
    assert flows[1].traditional_balances[1] == pytest.approx(480000.0 - 15000.0)


def test_summarize_and_compare():
    household, assumptions = _retired_couple(), _zero_return_assumptions()
    flows = ProjectionEngine().project(household, _fixed_scenario(), assumptions)
    summary = summarize(flows, assumptions, name="fixed")
    assert summary.tsp_longevity == 25
    assert summary.initial_tsp_balance == pytest.approx(1000000.0)
    assert summary.final_tsp_balance == pytest.approx(0.0, abs=1e-6)
    assert summary.first_year_net_income == pytest.approx(39000.0)
    assert summary.total_lifetime_income < sum(cf.net_income for cf in flows)

    slow = GenericScenario("slow", {name: ParticipantScenario(retirement_date=dt.date(2024, 6, 1),
                                                               withdrawal_strategy="fixed_amount",
                                                               withdrawal_params={"amount": 10000.0})
                                    for name in ("alex", "sam")})
    comparison = compare_scenarios(household, [_fixed_scenario(), slow], assumptions)
    assert [s.name for s in comparison.scenarios] == ["fixed", "slow"]
    assert comparison.get("slow").tsp_longevity == 25
    assert comparison.get("slow").final_tsp_balance == pytest.approx(500000.0)
    assert comparison.baseline_net_income == current_net_income(household, assumptions)


def test_current_net_income_for_workers():
    worker = Participant("alex", dt.date(1970, 1, 1), current_salary=100000.0, tsp_contribution_rate=0.05,
                         fehb_premium_per_pay_period=200.0)
    household = Household((worker,), SINGLE, fehb_holder="alex")
    net = current_net_income(household, GlobalAssumptions())
    federal = 1160.0 + (47150 - 11600) * 0.12 + (80000 - 47150) * 0.22
    expected = 100000.0 - federal - 3070.0 - 1000.0 - 7650.0 - 5000.0 - 5200.0
    assert net == pytest.approx(expected)


def test_projection_frame():
    flows = ProjectionEngine().project(_retired_couple(), _fixed_scenario(), _zero_return_assumptions(3))
    frame = projection_frame(flows)
    assert list(frame.index) == [2025, 2026, 2027]
    assert frame.loc[2025, "alex.withdrawals_traditional"] == pytest.approx(20000.0)
    assert frame.loc[2027, "total_tsp_balance"] == pytest.approx(880000.0)


def test_summary_opening_balance_ignores_growth():
    """The starting balance is the balance before the first year's growth."""
    person = Participant("alex", dt.date(1960, 1, 1), tsp_traditional=1000000.0)
    scenario = GenericScenario(
        "growth",
        {"alex": ParticipantScenario(retirement_date=dt.date(2024, 1, 1), withdrawal_strategy="fixed_amount",
                                     withdrawal_params={"amount": 40000.0})},
    )
    assumptions = GlobalAssumptions(projection_years=3, tsp_return_post_retirement=0.10)
    flows = ProjectionEngine().project(Household((person,), SINGLE), scenario, assumptions)
    assert flows[0].total_tsp_balance == pytest.approx(1056000.0)
    assert flows[0].opening_tsp_balance == pytest.approx(1000000.0)
    assert flows[1].opening_tsp_balance == pytest.approx(flows[0].total_tsp_balance)
    assert summarize(flows, assumptions).initial_tsp_balance == pytest.approx(1000000.0)


class _SpikeInThirdYear(WithdrawalStrategy):
    name = "spike"

    @classmethod
    def from_params(cls, params):
        return cls()

    def requested_amount(self, context):
        return 400000.0 if context.years_retired == 2 else 10000.0


def test_irmaa_uses_income_from_two_years_earlier():
    """A MAGI spike in 2027 raises Part B only in 2029."""
    registry = default_registry()
    registry.register(_SpikeInThirdYear.name, _SpikeInThirdYear)
    person = Participant("alex", dt.date(1958, 1, 1), tsp_traditional=2000000.0)
    scenario = GenericScenario(
        "spike",
        {"alex": ParticipantScenario(retirement_date=dt.date(2024, 1, 1), withdrawal_strategy="spike")},
    )
    flows = ProjectionEngine(registry).project(Household((person,), SINGLE), scenario, _zero_return_assumptions(6))
    assert flows[2].magi > 10 * flows[3].magi
    for i in (0, 1, 2, 3, 5):
        assert flows[i].medicare_premium == pytest.approx(12 * 185.0 * 1.055 ** i)
    expected = 12 * taxes.part_b_premium(flows[2].magi, SINGLE) * 1.055 ** 4
    assert flows[4].medicare_premium == pytest.approx(expected)
    assert flows[4].medicare_premium > 12 * 185.0 * 1.055 ** 4


def test_projection_runs_to_horizon_after_both_deaths():
    household = _retired_couple(birth=dt.date(1960, 1, 1))
    scenario = _fixed_scenario(mortality={"alex": MortalitySpec(death_age=66), "sam": MortalitySpec(death_age=67)})
    flows = ProjectionEngine().project(household, scenario, _zero_return_assumptions(6))
    assert len(flows) == 6
    assert flows[1].mortality_phase == "one_deceased"
    for cf in flows[2:]:
        assert cf.mortality_phase == "both_deceased"
        assert all(cf.is_deceased.values())
        assert cf.gross_income == 0.0
        assert cf.total_taxes == 0.0
        assert cf.healthcare_premiums == 0.0
        assert cf.net_income == 0.0
    assert flows[-1].year == 2030


def _bracket_fill_scenario(target=0.12, buffer=2150.0):
    return GenericScenario(
        "fill",
        {"alex": ParticipantScenario(retirement_date=dt.date(2024, 1, 1), withdrawal_strategy="fixed_amount",
                                     withdrawal_params={"amount": 80000.0}, withdrawal_sources="bracket_fill",
                                     target_bracket=target, bracket_buffer=buffer)},
    )


def test_bracket_fill_draws_traditional_up_to_bracket_top():
    """Single filer: 12% bracket tops out at 62,150 of gross income; 2,150 buffer leaves 60,000."""
    person = Participant("alex", dt.date(1959, 1, 1), tsp_traditional=500000.0, tsp_roth=500000.0)
    household = Household((person,), SINGLE)
    cf = ProjectionEngine().project(household, _bracket_fill_scenario(), _zero_return_assumptions(2))[0]
    assert cf.withdrawals_traditional[0] == pytest.approx(60000.0)
    assert cf.withdrawals_roth[0] == pytest.approx(20000.0)
    with pytest.raises(ConfigurationError):
        ProjectionEngine().project(household, _bracket_fill_scenario(target=0.15), _zero_return_assumptions(2))
