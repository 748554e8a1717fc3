"""TSP withdrawal strategies.

A strategy turns a :class:`WithdrawalContext` into a requested annual amount.
The projection engine then enforces the RMD floor and caps the request at the
available balance with :func:`split_withdrawal`, which also decides how much
comes from the traditional and Roth sub-accounts.

Strategies are created through an explicit :class:`StrategyRegistry`, so
callers can register their own without touching module state:

>>> registry = default_registry()
>>> strategy = registry.create("fixed_amount", {"amount": 40000})
>>> strategy.requested_amount(WithdrawalContext(balance=1e6, retirement_balance=1e6))
40000.0
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple, Type

from ..errors import ConfigurationError

SOURCE_POLICIES = ("proportional", "traditional_first", "roth_first", "standard", "tax_efficient", "bracket_fill")

_FIRST_SOURCE = {
    "traditional_first": "traditional",
    "standard": "traditional",
    "roth_first": "roth",
    "tax_efficient": "roth",
}


@dataclass(frozen=True)
class WithdrawalContext:
    """Inputs a strategy may use.

    ``cumulative_inflation`` is the growth of prices since the first
    retirement year (1.0 in that year).
    """

    balance: float
    retirement_balance: float
    years_retired: int = 0
    cumulative_inflation: float = 1.0
    age: int = 0


def _param(params: Mapping[str, Any], key: str, default: Any = None) -> float:
    value = params.get(key, default)
    if value is None:
        raise ConfigurationError(f"withdrawal strategy parameter {key!r} is required")
    value = float(value)
    if value < 0:
        raise ConfigurationError(f"withdrawal strategy parameter {key!r} must be non-negative")
    return value


class WithdrawalStrategy(ABC):
    name: str = ""

    @classmethod
    @abstractmethod
    def from_params(cls, params: Mapping[str, Any]) -> "WithdrawalStrategy":
        ...

    @abstractmethod
    def requested_amount(self, context: WithdrawalContext) -> float:
        ...


class FixedAmount(WithdrawalStrategy):
    """The same nominal amount every year."""

    name = "fixed_amount"

    def __init__(self, amount: float):
        self.amount = amount

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "FixedAmount":
        return cls(_param(params, "amount"))

    def requested_amount(self, context: WithdrawalContext) -> float:
        return self.amount


class FourPercentRule(WithdrawalStrategy):
    """A share of the balance at retirement, raised with inflation afterwards."""

    name = "4_percent_rule"

    def __init__(self, rate: float = 0.04):
        self.rate = rate

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "FourPercentRule":
        return cls(_param(params, "rate", 0.04))

    def requested_amount(self, context: WithdrawalContext) -> float:
        return context.retirement_balance * self.rate * context.cumulative_inflation


class NeedBased(WithdrawalStrategy):
    """Withdraw a monthly spending target, optionally inflation adjusted."""

    name = "need_based"

    def __init__(self, target_monthly: float, inflation_adjusted: bool = False):
        self.target_monthly = target_monthly
        self.inflation_adjusted = inflation_adjusted

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "NeedBased":
        return cls(_param(params, "target_monthly"), bool(params.get("inflation_adjusted", False)))

    def requested_amount(self, context: WithdrawalContext) -> float:
        amount = self.target_monthly * 12
        if self.inflation_adjusted:
            amount *= context.cumulative_inflation
        return amount


class VariablePercentage(WithdrawalStrategy):
    """A fixed share of the start-of-year balance."""

    name = "variable_percentage"

    def __init__(self, rate: float):
        self.rate = rate

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "VariablePercentage":
        return cls(_param(params, "rate"))

    def requested_amount(self, context: WithdrawalContext) -> float:
        return context.balance * self.rate


class StrategyRegistry:
    """Maps strategy identifiers to strategy classes."""

    def __init__(self) -> None:
        self._strategies: Dict[str, Type[WithdrawalStrategy]] = {}

    def register(self, name: str, strategy: Type[WithdrawalStrategy]) -> None:
        self._strategies[name] = strategy

    def names(self) -> List[str]:
        return sorted(self._strategies)

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

    def create(self, name: str, params: Mapping[str, Any]) -> WithdrawalStrategy:
        try:
            strategy = self._strategies[name]
        except KeyError:
            raise ConfigurationError(
                f"unknown withdrawal strategy {name!r}; registered: {self.names()}"
            ) from None
        return strategy.from_params(params)


def default_registry() -> StrategyRegistry:
    registry = StrategyRegistry()
    for strategy in (FixedAmount, FourPercentRule, NeedBased, VariablePercentage):
        registry.register(strategy.name, strategy)
    return registry


def split_withdrawal(
    amount: float,
    traditional: float,
    roth: float,
    rmd: float = 0.0,
    sources: str = "proportional",
    bracket_room: float = float("inf"),
) -> Tuple[float, float, float]:
    """Split ``amount`` across the sub-accounts without overdrawing them.

    The RMD portion always comes from the traditional balance.  The rest
    follows ``sources``:

    * ``proportional``: pro rata to the remaining balances;
    * ``traditional_first`` / ``standard``: traditional, then Roth;
    * ``roth_first`` / ``tax_efficient``: Roth, then traditional;
    * ``bracket_fill``: traditional up to ``bracket_room`` (ordinary income
      still fitting in the target bracket, the RMD included), then Roth,
      then any traditional balance left.

    Returns
    -------
    tuple of float
        ``(from_traditional, from_roth, shortfall)`` where ``shortfall`` is
        the part of ``amount`` the balances could not cover.
    """
    if sources not in SOURCE_POLICIES:
        raise ConfigurationError(f"unknown withdrawal source policy {sources!r}")
    amount = max(0.0, amount)
    traditional = max(0.0, traditional)
    roth = max(0.0, roth)

    from_rmd = min(rmd, traditional, amount)
    trad_available = traditional - from_rmd
    remaining = amount - from_rmd
    first = _FIRST_SOURCE.get(sources)

    if first == "traditional":
        from_trad = min(remaining, trad_available)
        from_roth = min(remaining - from_trad, roth)
    elif first == "roth":
        from_roth = min(remaining, roth)
        from_trad = min(remaining - from_roth, trad_available)
    elif sources == "bracket_fill":
        from_trad = min(remaining, trad_available, max(0.0, bracket_room - from_rmd))
        from_roth = min(remaining - from_trad, roth)
        from_trad += min(remaining - from_trad - from_roth, trad_available - from_trad)
    else:
        total = trad_available + roth
        if total <= 0:
            from_trad = from_roth = 0.0
        else:
            take = min(remaining, total)
            from_trad = min(take * (trad_available / total), trad_available)
            from_roth = min(take - from_trad, roth)

    shortfall = max(0.0, remaining - from_trad - from_roth)
    return from_rmd + from_trad, from_roth, shortfall


__all__ = [
    "SOURCE_POLICIES",
    "WithdrawalContext",
    "WithdrawalStrategy",
    "FixedAmount",
    "FourPercentRule",
    "NeedBased",
    "VariablePercentage",
    "StrategyRegistry",
    "default_registry",
    "split_withdrawal",
]
