"""
Research Analysis & Adaptive Weighting Engine.

Scores and ranks candidate symbols under regime-aware factor weights and
hard exclusion constraints, then recalibrates the weights from simulated
paper trades.

Modules:
- data: research input models and JSON loader
- regimes: regime detection and regime weight adjustment
- factors: the seven factor scorers
- constraints: red flags and exclusion rules
- ranking: candidate ranking and data quality
- paper_trading: paper trade open/close simulation
- feedback: weight feedback and loss diagnosis
- service: cycle orchestration
- store: PostgreSQL persistence
"""

from .config import ConcentrationPolicy, ResearchConfig, ResearchConstraints
from .ranking import build_research_analysis
from .types import (
    BASE_FACTORS,
    CycleOutcome,
    Factor,
    FactorScores,
    FactorWeights,
    MarketRegime,
    PaperTrade,
    ResearchAnalysis,
    ResearchCandidate,
    ResearchExclusion,
    TradeStatus,
)

__all__ = [
    "BASE_FACTORS",
    "ConcentrationPolicy",
    "CycleOutcome",
    "Factor",
    "FactorScores",
    "FactorWeights",
    "MarketRegime",
    "PaperTrade",
    "ResearchAnalysis",
    "ResearchCandidate",
    "ResearchConfig",
    "ResearchConstraints",
    "ResearchExclusion",
    "TradeStatus",
    "build_research_analysis",
]
