"""Survivor viability: can the survivor live on what is left after a death?

The scenario is projected twice, once as given and once with every
configured death removed.  The year before the death is read from the
baseline and the year after it from the projection with the death; the
survivor's net income is then compared with a share of the couple's income.

The shortfall percentage maps to a score:

========== ===================
shortfall  score
========== ===================
<= 5 %     ``EXCELLENT``
<= 15 %    ``GOOD``
<= 25 %    ``CAUTION``
<= 40 %    ``RISK``
above      ``CRITICAL``
========== ===================

Life insurance need is the present value of the annual shortfall over
``analysis_years``, with a 20 % margin for the recommended coverage.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import replace
from typing import List, Optional

from loguru import logger

from ..errors import BoundsError, ConfigurationError
from ..models import (
    AnnualCashFlow,
    GenericScenario,
    GlobalAssumptions,
    Household,
    SurvivorViabilityAnalysis,
    SurvivorYearAnalysis,
)
from . import mortality, taxes
from .projection import ProjectionEngine, summarize

SCORE_THRESHOLDS = ((5.0, "EXCELLENT"), (15.0, "GOOD"), (25.0, "CAUTION"), (40.0, "RISK"))
COVERAGE_MARGIN = 1.2


def viability_score(shortfall_percentage: float) -> str:
    for limit, score in SCORE_THRESHOLDS:
        if shortfall_percentage <= limit:
            return score
    return "CRITICAL"


def insurance_present_value(annual_shortfall: float, years: int, discount_rate: float) -> float:
    """Present value of ``years`` annual shortfalls, the first undiscounted."""
    shortfall = max(0.0, annual_shortfall)
    return sum(shortfall / (1 + discount_rate) ** i for i in range(years))


def survivor_year(cf: AnnualCashFlow, survivor_id: int, assumptions: GlobalAssumptions) -> SurvivorYearAnalysis:
    balance = cf.traditional_balances[survivor_id] + cf.roth_balances[survivor_id]
    withdrawal = cf.withdrawals_traditional[survivor_id] + cf.withdrawals_roth[survivor_id]
    return SurvivorYearAnalysis(
        year=cf.year,
        filing_status=cf.filing_status,
        net_income=cf.net_income,
        monthly_income=cf.net_income / 12,
        healthcare_costs=cf.healthcare_premiums,
        taxes=cf.total_taxes,
        pension_income=(
            cf.pensions[survivor_id] + cf.survivor_pensions[survivor_id] + cf.fers_supplements[survivor_id]
        ),
        social_security=cf.social_security[survivor_id],
        tsp_withdrawal=withdrawal,
        tsp_balance=balance,
        withdrawal_rate=withdrawal / (balance + withdrawal) if balance + withdrawal > 0 else 0.0,
        irmaa_tier=taxes.irmaa_tier(cf.magi, cf.filing_status, assumptions.tax_year, assumptions.tax_tables),
    )


def _recommendations(analysis: SurvivorViabilityAnalysis) -> List[str]:
    notes = []
    if analysis.shortfall_percentage > 10:
        notes.append(f"Survivor income falls short of target by {analysis.shortfall_percentage:.1f}%")
    if analysis.tsp_longevity_change < -5:
        notes.append(
            f"TSP longevity reduced by {-analysis.tsp_longevity_change} years; consider increasing life insurance"
        )
    if analysis.tax_change > 5000:
        notes.append(f"Taxes increase by ${analysis.tax_change:,.0f}/year; consider Roth conversions")
    if analysis.irmaa_change == "higher":
        notes.append("IRMAA tier increases; consider Roth TSP withdrawals")
    if analysis.viability_score in ("RISK", "CRITICAL"):
        notes.append("Consider increasing life insurance coverage")
        notes.append("Review survivor benefit elections on pensions")
    return notes


def analyze_survivor_viability(
    household: Household,
    scenario: GenericScenario,
    assumptions: GlobalAssumptions,
    engine: Optional[ProjectionEngine] = None,
    target_income_factor: float = 0.8,
    analysis_years: int = 10,
    discount_rate: Optional[float] = None,
) -> SurvivorViabilityAnalysis:
    """Compare the survivor's first full year alone with the year before the death.

    The deceased is the first participant, in household order, with a
    mortality entry in ``scenario``.  Raises :class:`ConfigurationError` for
    a one-person household or a scenario without a death, and
    :class:`BoundsError` when the years around the death fall outside the
    projection horizon.
    """
    if len(household.participants) != 2:
        raise ConfigurationError("survivor analysis needs a two-person household")
    deceased_id = next(
        (pid for pid, p in enumerate(household.participants) if p.name in scenario.mortality), None
    )
    if deceased_id is None:
        raise ConfigurationError(f"scenario {scenario.name!r} has no death to analyze")
    survivor_id = 1 - deceased_id
    deceased = household.participants[deceased_id]
    survivor = household.participants[survivor_id]
    spec = scenario.mortality[deceased.name]
    mortality.validate_mortality_spec(deceased.name, spec)

    death_index = mortality.death_year_index(deceased.birth_year, spec, assumptions.start_year)
    pre_index, post_index = death_index - 1, death_index + 1
    if pre_index < 0 or post_index >= assumptions.projection_years:
        raise BoundsError(
            f"death in {assumptions.start_year + death_index} leaves no full year on both sides "
            f"within the {assumptions.projection_years}-year horizon"
        )
    death_year = assumptions.start_year + death_index
    death_age = spec.death_age if spec.death_age is not None else deceased.age_on(spec.death_date)

    engine = engine or ProjectionEngine()
    baseline = engine.project(household, replace(scenario, mortality={}), assumptions)
    with_death = engine.project(household, scenario, assumptions)
    pre = survivor_year(baseline[pre_index], survivor_id, assumptions)
    post = survivor_year(with_death[post_index], survivor_id, assumptions)

    target = pre.net_income * target_income_factor
    shortfall = target - post.net_income
    percentage = shortfall / target * 100 if target > 0 else 0.0
    if post.irmaa_tier > pre.irmaa_tier:
        irmaa_change = "higher"
    elif post.irmaa_tier < pre.irmaa_tier:
        irmaa_change = "lower"
    else:
        irmaa_change = "same"
    longevity_change = (
        summarize(with_death, assumptions, keep_projection=False).tsp_longevity
        - summarize(baseline, assumptions, keep_projection=False).tsp_longevity
    )
    rate = assumptions.discount_rate if discount_rate is None else discount_rate
    present_value = insurance_present_value(shortfall, analysis_years, rate)

    analysis = SurvivorViabilityAnalysis(
        scenario_name=scenario.name,
        deceased=deceased.name,
        survivor=survivor.name,
        death_year=death_year,
        death_age=death_age,
        survivor_age=survivor.age_on(dt.date(death_year, 6, 30)),
        pre_death=pre,
        post_death=post,
        target_income=target,
        income_shortfall=shortfall,
        shortfall_percentage=percentage,
        viability_score=viability_score(percentage),
        tax_change=post.taxes - pre.taxes,
        healthcare_change=post.healthcare_costs - pre.healthcare_costs,
        irmaa_change=irmaa_change,
        tsp_longevity_change=longevity_change,
        insurance_present_value=present_value,
        recommended_coverage=present_value * COVERAGE_MARGIN,
    )
    analysis = replace(analysis, recommendations=tuple(_recommendations(analysis)))
    logger.info(
        f"Survivor viability for '{scenario.name}': {survivor.name} after {deceased.name}'s death in "
        f"{death_year}, shortfall {percentage:.1f}% ({analysis.viability_score})"
    )
    return analysis


__all__ = [
    "SCORE_THRESHOLDS",
    "viability_score",
    "insurance_present_value",
    "survivor_year",
    "analyze_survivor_viability",
]
