"""Tax and premium calculations for a FERS household.

Every function here is pure: it reads the tax tables and returns an amount.
The bundled tables (``data/tax_tables.json``) hold 2025 federal brackets for
married-filing-jointly and single filers, the Social Security taxation
thresholds, FICA parameters, Medicare Part B/IRMAA tiers and a few states.
Pennsylvania, the default, taxes wages at a flat 3.07 % plus a 1 % local
earned income tax and exempts retirement income.

Example
-------

>>> # Federal tax on $100 000 for a married couple under 65
>>> round(compute_federal_tax(100000, filing_status="married_filing_jointly"), 2)
7936.0

>>> # Part B premium just above the first single-filer IRMAA tier
>>> round(part_b_premium(103001, filing_status="single"), 2)
254.9

Any function accepting ``tax_tables`` takes a dictionary with the same
schema, so scenarios can model other years or states.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..errors import ConfigurationError

_DEFAULT_TAX_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "tax_tables.json"


def _load_tax_tables(path: Optional[Path] = None) -> Dict[str, Dict]:
    """Load tax tables from JSON.  If ``path`` is not provided, load the
    default file shipped with the package.

    Parameters
    ----------
    path : Path, optional
        Path to a JSON file containing the tax tables.

    Returns
    -------
    dict
        The parsed tax tables.
    """
    p = path or _DEFAULT_TAX_TABLE_PATH
    with open(p, "r", encoding="utf-8") as f:
        tables = json.load(f)
    return tables


@lru_cache(maxsize=1)
def _default_tax_tables() -> Dict[str, Dict]:
    return _load_tax_tables()


def load_tax_tables(path: Optional[Path] = None) -> Dict[str, Dict]:
    """Return tax tables from ``path``, or the cached bundled tables.

    The cached dictionary is shared; treat it as read-only.
    """
    if path is None:
        return _default_tax_tables()
    return _load_tax_tables(Path(path))


def _year_tables(year: int, tax_tables: Optional[Dict[str, Dict]]) -> Dict:
    tables = tax_tables or _default_tax_tables()
    try:
        return tables[str(year)]
    except KeyError:
        raise ConfigurationError(f"no tax tables for {year}; available: {sorted(tables)}") from None


def _status_key(filing_status: str) -> str:
    return "married_filing_jointly" if filing_status == "married_filing_jointly" else "single"


def _progressive_tax(taxable: float, brackets: Iterable[Dict]) -> float:
    tax = 0.0
    remaining = taxable
    for bracket in brackets:
        rate = bracket["rate"]
        start = bracket["start"]
        end = bracket["end"] if bracket["end"] is not None else float("inf")
        width = end - start
        if remaining <= 0:
            break
        if taxable > start:
            amount = min(remaining, width)
            tax += amount * rate
            remaining -= amount
        else:
            break
    return tax


def standard_deduction(
    filing_status: str = "married_filing_jointly",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
    seniors: int = 0,
) -> float:
    """Standard deduction including the additional amount per filer aged 65+."""
    info = _year_tables(year, tax_tables)["federal"][_status_key(filing_status)]
    return info.get("standard_deduction", 0.0) + seniors * info.get("additional_senior_deduction", 0.0)


def compute_federal_tax(
    income: float,
    filing_status: str = "married_filing_jointly",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
    seniors: int = 0,
) -> float:
    """Compute federal income tax due on ordinary income.

    ``income`` is reduced by the standard deduction (plus the additional
    deduction for each of ``seniors`` filers aged 65 or older) before the
    brackets for ``filing_status`` are applied cumulatively.
    """
    brackets = _year_tables(year, tax_tables)["federal"][_status_key(filing_status)]["brackets"]
    taxable_income = max(0.0, income - standard_deduction(filing_status, year, tax_tables, seniors))
    return _progressive_tax(taxable_income, brackets)


def bracket_ceiling(
    rate: float,
    filing_status: str = "married_filing_jointly",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
    seniors: int = 0,
) -> float:
    """Gross ordinary income at which the ``rate`` bracket ends.

    The bracket's upper edge plus the standard deduction; the top bracket
    has no ceiling and returns ``inf``.
    """
    brackets = _year_tables(year, tax_tables)["federal"][_status_key(filing_status)]["brackets"]
    for bracket in brackets:
        if abs(bracket["rate"] - rate) < 1e-9:
            if bracket["end"] is None:
                return float("inf")
            return bracket["end"] + standard_deduction(filing_status, year, tax_tables, seniors)
    raise ConfigurationError(f"no {rate:.0%} federal bracket for {filing_status} in {year}")


def taxable_social_security(
    benefits: float,
    other_income: float,
    filing_status: str = "married_filing_jointly",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Portion of Social Security benefits subject to federal tax.

    Uses provisional income (other income plus half of benefits) against the
    base and adjusted thresholds; at most 85 % of benefits are taxable.
    """
    if benefits <= 0:
        return 0.0
    thresholds = _year_tables(year, tax_tables)["social_security_taxation"][_status_key(filing_status)]
    base, adjusted = thresholds["base"], thresholds["adjusted"]
    provisional = other_income + 0.5 * benefits
    if provisional <= base:
        return 0.0
    if provisional <= adjusted:
        return min(0.5 * (provisional - base), 0.5 * benefits)
    tier_one = min(0.5 * (adjusted - base), 0.5 * benefits)
    return min(0.85 * benefits, 0.85 * (provisional - adjusted) + tier_one)


def compute_state_tax(
    taxable_income: float,
    state: str = "PA",
    filing_status: str = "married_filing_jointly",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
    retirement_income: float = 0.0,
) -> float:
    """Compute state income tax on ``taxable_income``.

    ``retirement_income`` is the part of ``taxable_income`` made up of
    pension, supplement and TSP distributions; it is excluded for states that
    exempt retirement income.  The state rules may define either a flat rate
    or progressive brackets, optionally per filing status.
    """
    state_info = _year_tables(year, tax_tables).get("state", {}).get(state)
    if not state_info:
        return 0.0

    if state_info.get("exempt_retirement_income"):
        taxable_income -= retirement_income
    status_info = state_info.get(_status_key(filing_status), state_info)
    taxable = max(0.0, taxable_income - status_info.get("standard_deduction", 0.0))

    if "brackets" in status_info:
        return _progressive_tax(taxable, status_info["brackets"])
    rate = status_info.get("rate")
    if rate is None:
        return 0.0
    return taxable * rate


def compute_local_tax(
    wages: float,
    state: str = "PA",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Local earned income tax, levied on wages only."""
    if wages <= 0:
        return 0.0
    state_info = _year_tables(year, tax_tables).get("state", {}).get(state) or {}
    return wages * state_info.get("local_earned_income_rate", 0.0)


def compute_fica(
    wages: Iterable[float],
    filing_status: str = "married_filing_jointly",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Employee FICA on each earner's wages.

    Social Security tax stops at the per-person wage base.  Medicare tax has
    no cap, and the additional Medicare tax applies to combined household
    wages above the filing-status threshold.
    """
    fica = _year_tables(year, tax_tables)["fica"]
    per_person: List[float] = [max(0.0, w) for w in wages]
    total_wages = sum(per_person)
    if total_wages <= 0:
        return 0.0
    wage_base = fica["social_security_wage_base"]
    ss_tax = sum(min(w, wage_base) for w in per_person) * fica["social_security_rate"]
    medicare_tax = total_wages * fica["medicare_rate"]
    threshold = fica["additional_medicare_threshold"][_status_key(filing_status)]
    additional = max(0.0, total_wages - threshold) * fica["additional_medicare_rate"]
    return ss_tax + medicare_tax + additional


def irmaa_tier(
    magi: float,
    filing_status: str = "married_filing_jointly",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> int:
    """Number of IRMAA thresholds strictly exceeded by ``magi`` (0 = no surcharge).

    Thresholds are scanned in ascending order and the scan stops at the first
    one not exceeded, so income exactly at a threshold stays in the lower tier.
    """
    key = _status_key(filing_status)
    tier = 0
    for threshold in _year_tables(year, tax_tables)["medicare"]["irmaa"]:
        if magi > threshold[key]:
            tier += 1
        else:
            break
    return tier


def part_b_premium(
    magi: float,
    filing_status: str = "married_filing_jointly",
    year: int = 2025,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Monthly Medicare Part B premium for one beneficiary.

    The premium is the base premium plus the surcharge of the highest IRMAA
    tier reached; tier surcharges are not cumulative.
    """
    medicare = _year_tables(year, tax_tables)["medicare"]
    premium = medicare["part_b_base_premium"]
    tier = irmaa_tier(magi, filing_status, year, tax_tables)
    if tier:
        premium += medicare["irmaa"][tier - 1]["surcharge"]
    return premium


__all__ = [
    "load_tax_tables",
    "standard_deduction",
    "compute_federal_tax",
    "bracket_ceiling",
    "taxable_social_security",
    "compute_state_tax",
    "compute_local_tax",
    "compute_fica",
    "irmaa_tier",
    "part_b_premium",
]
