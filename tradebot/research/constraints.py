"""
Constraint and exclusion filter.

A symbol is excluded when any reason applies. All reasons are collected, in a
fixed order, so the exclusion record explains every rule that fired.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from tradebot.research.config import ConcentrationPolicy, ResearchConstraints
from tradebot.research.data import (
    Fundamentals,
    LiquidityMetrics,
    Position,
    RiskFlags,
    Technicals,
)
from tradebot.research.factors import industry_of, sector_of

logger = logging.getLogger(__name__)


def build_red_flags(
    constraints: ResearchConstraints,
    f: Optional[Fundamentals],
    t: Optional[Technicals],
    liquidity: Optional[LiquidityMetrics],
    risk: Optional[RiskFlags],
) -> list[str]:
    """Red flags for a symbol. Numeric floors/ceilings apply only when configured above 0."""
    flags: list[str] = []
    if (
        constraints.min_market_cap > 0
        and f is not None and f.market_cap is not None
        and f.market_cap < constraints.min_market_cap
    ):
        flags.append("market cap below minimum")
    if (
        constraints.min_dollar_volume > 0
        and liquidity is not None and liquidity.avg_dollar_volume is not None
        and liquidity.avg_dollar_volume < constraints.min_dollar_volume
    ):
        flags.append("dollar volume below minimum")
    if (
        constraints.max_drawdown > 0
        and t is not None and t.max_drawdown is not None
        and t.max_drawdown > constraints.max_drawdown
    ):
        flags.append("drawdown exceeds max")
    if risk is not None:
        if risk.legal_issues:
            flags.append("legal issues")
        if risk.accounting_anomaly:
            flags.append("accounting anomaly")
        if risk.regulatory_overhang:
            flags.append("regulatory overhang")
        if risk.high_short_interest:
            flags.append("high short interest")
    return flags


@dataclass(frozen=True)
class PortfolioExposure:
    """Current position market value grouped by sector and industry."""
    sectors: Mapping[str, float] = field(default_factory=dict)
    industries: Mapping[str, float] = field(default_factory=dict)
    total: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.total <= 0

    def order_notional(self, max_notional: float, fraction: float) -> float:
        """Hypothetical order size, never more than `fraction` of the portfolio."""
        return max(0.0, min(max_notional, fraction * self.total))

    def _weight(self, group_value: float, policy: ConcentrationPolicy, notional: float) -> float:
        if policy is ConcentrationPolicy.POST_TRADE:
            return (group_value + notional) / (self.total + notional)
        return group_value / self.total

    def sector_weight(self, sector: str, policy: ConcentrationPolicy, notional: float = 0.0) -> float:
        return self._weight(self.sectors.get(sector, 0.0), policy, notional)

    def industry_weight(self, industry: str, policy: ConcentrationPolicy, notional: float = 0.0) -> float:
        return self._weight(self.industries.get(industry, 0.0), policy, notional)


def compute_exposure(
    positions: Iterable[Position],
    fundamentals: Mapping[str, Fundamentals],
) -> PortfolioExposure:
    """Group position values by the sector/industry found in research fundamentals."""
    sectors: dict[str, float] = {}
    industries: dict[str, float] = {}
    total = 0.0
    for p in positions:
        if p.market_value is None:
            continue
        f = fundamentals.get(p.symbol)
        sector = sector_of(f)
        industry = industry_of(f)
        sectors[sector] = sectors.get(sector, 0.0) + p.market_value
        industries[industry] = industries.get(industry, 0.0) + p.market_value
        total += p.market_value
    return PortfolioExposure(sectors=sectors, industries=industries, total=total)


def exclusion_reasons(
    symbol: str,
    sector: str,
    industry: str,
    red_flags: Iterable[str],
    t: Optional[Technicals],
    exposure: PortfolioExposure,
    constraints: ResearchConstraints,
) -> list[str]:
    """
    Every reason that excludes the symbol, in evaluation order.

    Args:
        symbol: Ticker being evaluated
        sector: Symbol sector ("unknown" when missing)
        industry: Symbol industry ("unknown" when missing)
        red_flags: Output of build_red_flags for the symbol
        t: Technicals, for correlation with the portfolio
        exposure: Current portfolio grouping
        constraints: Configured rules

    Returns:
        Empty list when the symbol may be scored
    """
    reasons: list[str] = []
    if constraints.include_symbols and symbol not in constraints.include_symbols:
        reasons.append("not in allowlist")
    if symbol in constraints.exclude_symbols:
        reasons.append("excluded symbol")
    if sector in constraints.exclude_sectors:
        reasons.append("excluded sector")
    if industry in constraints.exclude_industries:
        reasons.append("excluded industry")
    reasons.extend(f"red flag: {flag}" for flag in red_flags)
    if (
        t is not None and t.correlation_with_portfolio is not None
        and t.correlation_with_portfolio > constraints.max_correlation
    ):
        reasons.append("correlation above max")

    if not exposure.is_empty:
        policy = constraints.concentration_policy
        notional = exposure.order_notional(
            constraints.candidate_notional, constraints.candidate_fraction
        )
        if exposure.sector_weight(sector, policy, notional) > constraints.sector_cap:
            reasons.append("sector cap exceeded")
        if exposure.industry_weight(industry, policy, notional) > constraints.industry_cap:
            reasons.append("industry cap exceeded")

    if reasons:
        logger.debug(f"Excluding {symbol}: {', '.join(reasons)}")
    return reasons
