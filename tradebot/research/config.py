"""
Research Engine Configuration.

Every tunable of a research cycle lives here, frozen for the duration of a
cycle. Values come from application settings via ``ResearchConfig.from_settings``.

The feedback learning rate and minimum-closure threshold have never been
calibrated; treat their defaults as starting points, not validated values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tradebot.core.config import DEFAULT_RESEARCH_WEIGHTS, Settings
from tradebot.research.types import FactorWeights


class ConcentrationPolicy(str, Enum):
    """How sector and industry caps account for a prospective order."""

    # Group weight after adding the candidate's hypothetical notional
    POST_TRADE = "post_trade"
    # Group weight of current positions only
    PRE_TRADE = "pre_trade"


@dataclass(frozen=True)
class ResearchConstraints:
    """
    Hard exclusion rules.

    Floors and ceilings set to 0 are disabled. An empty ``include_symbols``
    allows every symbol.
    """

    include_symbols: frozenset[str] = frozenset()
    exclude_symbols: frozenset[str] = frozenset()
    exclude_sectors: frozenset[str] = frozenset()
    exclude_industries: frozenset[str] = frozenset()

    max_correlation: float = 0.85
    sector_cap: float = 0.35
    industry_cap: float = 0.25

    min_market_cap: float = 1_000_000_000
    min_dollar_volume: float = 5_000_000
    max_drawdown: float = 0.6

    concentration_policy: ConcentrationPolicy = ConcentrationPolicy.POST_TRADE
    # Hypothetical order used by the post-trade policy: candidate_notional,
    # capped at candidate_fraction of current portfolio value
    candidate_notional: float = 500.0
    candidate_fraction: float = 0.1

    def to_dict(self) -> dict[str, Any]:
        return {
            "include_symbols": sorted(self.include_symbols),
            "exclude_symbols": sorted(self.exclude_symbols),
            "exclude_sectors": sorted(self.exclude_sectors),
            "exclude_industries": sorted(self.exclude_industries),
            "max_correlation": self.max_correlation,
            "sector_cap": self.sector_cap,
            "industry_cap": self.industry_cap,
            "min_market_cap": self.min_market_cap,
            "min_dollar_volume": self.min_dollar_volume,
            "max_drawdown": self.max_drawdown,
            "concentration_policy": self.concentration_policy.value,
            "candidate_notional": self.candidate_notional,
            "candidate_fraction": self.candidate_fraction,
        }


DEFAULT_BASE_WEIGHTS = FactorWeights.from_mapping(DEFAULT_RESEARCH_WEIGHTS)

# Fixed contribution of the peer factor, outside the renormalized weight set
PEER_WEIGHT = 0.05


@dataclass(frozen=True)
class ResearchConfig:
    """Parameters of one research cycle."""

    symbols: tuple[str, ...] = ()
    research_symbols_cap: int = 10
    base_weights: FactorWeights = DEFAULT_BASE_WEIGHTS
    constraints: ResearchConstraints = field(default_factory=ResearchConstraints)
    recency_half_life_days: float = 14.0

    # Paper trading
    paper_trade_top_n: int = 5
    paper_trade_horizon_days: int = 7

    # Weight feedback
    learning_rate: float = 0.05
    min_closed_trades: int = 3
    loss_threshold: float = -0.05

    # Aggregate next steps are capped
    max_next_steps: int = 15

    @classmethod
    def from_settings(cls, s: Settings) -> ResearchConfig:
        constraints = ResearchConstraints(
            include_symbols=frozenset(s.research_include_symbols),
            exclude_symbols=frozenset(s.research_exclude_symbols),
            exclude_sectors=frozenset(s.research_exclude_sectors),
            exclude_industries=frozenset(s.research_exclude_industries),
            max_correlation=s.research_max_correlation,
            sector_cap=s.research_sector_cap,
            industry_cap=s.research_industry_cap,
            min_market_cap=s.research_min_market_cap,
            min_dollar_volume=s.research_min_dollar_volume,
            max_drawdown=s.research_max_drawdown,
            concentration_policy=ConcentrationPolicy(s.research_concentration_policy),
            candidate_notional=s.research_candidate_notional,
            candidate_fraction=s.research_candidate_fraction,
        )
        return cls(
            symbols=tuple(s.symbols),
            research_symbols_cap=s.research_symbols_cap,
            base_weights=FactorWeights.from_mapping(s.research_weights).normalized(),
            constraints=constraints,
            recency_half_life_days=s.research_recency_half_life_days,
            paper_trade_top_n=s.paper_trade_top_n,
            paper_trade_horizon_days=s.paper_trade_horizon_days,
            learning_rate=s.weight_learning_rate,
            min_closed_trades=s.weight_min_closed_trades,
            loss_threshold=s.loss_diagnosis_threshold,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbols": list(self.symbols),
            "research_symbols_cap": self.research_symbols_cap,
            "base_weights": self.base_weights.to_dict(),
            "constraints": self.constraints.to_dict(),
            "recency_half_life_days": self.recency_half_life_days,
            "paper_trade_top_n": self.paper_trade_top_n,
            "paper_trade_horizon_days": self.paper_trade_horizon_days,
            "learning_rate": self.learning_rate,
            "min_closed_trades": self.min_closed_trades,
            "loss_threshold": self.loss_threshold,
        }
