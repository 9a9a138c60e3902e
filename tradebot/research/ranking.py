"""
Candidate ranking.

Builds a ResearchAnalysis for one cycle from a frozen input snapshot. The
function is pure: identical inputs (including ``as_of``) give identical output.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Sequence

from tradebot.research.config import PEER_WEIGHT, ResearchConfig
from tradebot.research.constraints import build_red_flags, compute_exposure, exclusion_reasons
from tradebot.research.data import (
    EarningsCallSummary,
    Fundamentals,
    InsiderActivity,
    InstitutionalFlow,
    LiquidityMetrics,
    Position,
    ResearchData,
    RiskFlags,
    SymbolSnapshot,
    Technicals,
)
from tradebot.research.factors import (
    clamp,
    compute_peer_medians,
    industry_of,
    score_fundamentals,
    score_macro,
    score_peer,
    score_quality,
    score_sentiment,
    score_technicals,
    score_valuation,
    sector_of,
)
from tradebot.research.regimes import adjust_weights_for_regime, detect_regime
from tradebot.research.types import (
    BASE_FACTORS,
    ChecklistItem,
    ChecklistStatus,
    FactorScores,
    FactorWeights,
    ResearchAnalysis,
    ResearchCandidate,
    ResearchExclusion,
)

logger = logging.getLogger(__name__)

MAX_DRIVERS = 3
MAX_RISKS = 3
LOW_DATA_QUALITY = 0.6
LOW_LIQUIDITY_DOLLAR_VOLUME = 10_000_000
DEEP_DRAWDOWN = 0.4

_KPI_UP = re.compile(r"up|growth|improv", re.IGNORECASE)
_KPI_DOWN = re.compile(r"down|declin|deterior", re.IGNORECASE)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# Checklist
# =============================================================================


def _checklist_item(factor: str, value: Optional[float], neutral_floor: float, pass_floor: float) -> ChecklistItem:
    if value is None or math.isnan(value):
        return ChecklistItem(factor, ChecklistStatus.NEUTRAL, "missing")
    if value >= pass_floor:
        return ChecklistItem(factor, ChecklistStatus.PASS)
    if value >= neutral_floor:
        return ChecklistItem(factor, ChecklistStatus.NEUTRAL)
    return ChecklistItem(factor, ChecklistStatus.FAIL)


def build_checklist(f: Optional[Fundamentals]) -> tuple[ChecklistItem, ...]:
    """
    Five qualitative flags for display and next-step suggestions.

    Leverage is judged on equity/debt (1 / debt-to-equity), so zero debt
    passes. Valuation is judged on earnings yield (1 / P/E); a P/E of 0 is
    treated as missing.
    """
    if f is None:
        f = Fundamentals()
    leverage = None
    if f.debt_to_equity is not None:
        leverage = math.inf if f.debt_to_equity == 0 else 1 / f.debt_to_equity
    earnings_yield = 1 / f.pe if f.pe else None
    return (
        _checklist_item("growth", f.revenue_growth, 0.0, 0.05),
        _checklist_item("profitability", f.net_margin, 0.02, 0.08),
        _checklist_item("leverage", leverage, 0.3, 1.0),
        _checklist_item("moat", f.gross_margin, 0.35, 0.50),
        _checklist_item("valuation", earnings_yield, 0.02, 0.06),
    )


def next_steps_from_checklist(checklist: Iterable[ChecklistItem], data_quality: float) -> tuple[str, ...]:
    steps: list[str] = []
    for item in checklist:
        if item.status is ChecklistStatus.FAIL:
            steps.append(f"revalidate {item.factor} thesis")
        if item.status is ChecklistStatus.NEUTRAL and item.note == "missing":
            steps.append(f"collect missing {item.factor} data")
    if data_quality < LOW_DATA_QUALITY:
        steps.append("fill missing data for key factors")
    return tuple(dict.fromkeys(steps))


# =============================================================================
# Drivers & risks
# =============================================================================


def latest_earnings(earnings: Optional[Sequence[EarningsCallSummary]]) -> Optional[EarningsCallSummary]:
    if not earnings:
        return None
    return max(earnings, key=lambda e: e.published_at or _EPOCH)


def collect_drivers(
    f: Optional[Fundamentals],
    t: Optional[Technicals],
    earnings: Optional[Sequence[EarningsCallSummary]],
    insider: Optional[InsiderActivity],
    institutional: Optional[InstitutionalFlow],
) -> tuple[str, ...]:
    drivers: list[str] = []
    if f is not None:
        if f.revenue_growth is not None and f.revenue_growth > 0.1:
            drivers.append("Strong revenue growth")
        if f.net_margin is not None and f.net_margin > 0.15:
            drivers.append("High profitability")
        if f.roic is not None and f.roic > 0.15:
            drivers.append("High ROIC quality")
    if t is not None:
        if t.momentum_3m is not None and t.momentum_3m > 0.1:
            drivers.append("Positive 3M momentum")
        if t.rsi is not None and t.rsi < 40:
            drivers.append("RSI reset provides upside")
    latest = latest_earnings(earnings)
    if latest is not None:
        if latest.tone is not None and latest.tone > 0.4:
            drivers.append("Positive earnings call tone")
        if latest.guidance_delta is not None and latest.guidance_delta > 0:
            drivers.append("Guidance raised")
        if any(_KPI_UP.search(k) for k in latest.kpi_trends):
            drivers.append("KPIs trending up")
    if insider is not None and insider.net_value is not None and insider.net_value > 0:
        drivers.append("Insider buying activity")
    if institutional is not None and institutional.net_value is not None and institutional.net_value > 0:
        drivers.append("Institutional inflows")
    return tuple(drivers[:MAX_DRIVERS])


def collect_risks(
    liquidity: Optional[LiquidityMetrics],
    risk: Optional[RiskFlags],
    t: Optional[Technicals],
    earnings: Optional[Sequence[EarningsCallSummary]],
) -> tuple[str, ...]:
    risks: list[str] = []
    if (
        liquidity is not None and liquidity.avg_dollar_volume is not None
        and liquidity.avg_dollar_volume < LOW_LIQUIDITY_DOLLAR_VOLUME
    ):
        risks.append("Low liquidity")
    if risk is not None:
        if risk.legal_issues:
            risks.append("Legal overhang")
        if risk.accounting_anomaly:
            risks.append("Accounting anomaly")
    if t is not None and t.max_drawdown is not None and t.max_drawdown > DEEP_DRAWDOWN:
        risks.append("Deep drawdown risk")
    latest = latest_earnings(earnings)
    if latest is not None:
        if latest.tone is not None and latest.tone < -0.3:
            risks.append("Negative earnings tone")
        if latest.guidance_delta is not None and latest.guidance_delta < 0:
            risks.append("Guidance cut")
        if any(_KPI_DOWN.search(k) for k in latest.kpi_trends):
            risks.append("KPIs trending down")
    return tuple(risks[:MAX_RISKS])


def compute_data_quality(data: ResearchData, symbol: str) -> float:
    """
    Share of the eight per-symbol sources present, floored at 0.2.

    A source is present when the symbol has an entry, so an empty news or
    earnings list still counts.
    """
    parts = (
        symbol in data.fundamentals,
        symbol in data.technicals,
        symbol in data.news,
        symbol in data.earnings,
        symbol in data.insider,
        symbol in data.institutional,
        symbol in data.liquidity,
        symbol in data.risk,
    )
    return clamp(sum(parts) / len(parts), 0.2, 1.0)


def composite_score(scores: FactorScores, weights: FactorWeights) -> float:
    weighted = sum(scores.get(f) * weights.get(f) for f in BASE_FACTORS)
    return clamp(weighted + scores.peer * PEER_WEIGHT)


# =============================================================================
# Analysis
# =============================================================================


def build_research_analysis(
    symbols: Sequence[str],
    snapshots: Mapping[str, SymbolSnapshot],
    positions: Sequence[Position],
    data: ResearchData,
    base_weights: FactorWeights,
    config: ResearchConfig,
    as_of: datetime,
) -> ResearchAnalysis:
    """
    Score, filter and rank the symbol universe.

    Args:
        symbols: Universe to evaluate (duplicates are ignored)
        snapshots: Latest prices by symbol
        positions: Current positions, for concentration checks
        data: Research inputs
        base_weights: Persisted base weights (regime adjustment is applied here)
        config: Cycle parameters
        as_of: Reference time for recency decay

    Returns:
        ResearchAnalysis with candidates sorted by descending score
    """
    universe = list(dict.fromkeys(symbols))
    regime = detect_regime(data.macro)
    weights = adjust_weights_for_regime(base_weights, regime)
    peer_medians = compute_peer_medians(universe, data.fundamentals)
    exposure = compute_exposure(positions, data.fundamentals)
    constraints = config.constraints

    candidates: list[ResearchCandidate] = []
    excluded: list[ResearchExclusion] = []
    next_steps: list[str] = []

    for symbol in universe:
        f = data.fundamentals.get(symbol)
        t = data.technicals.get(symbol)
        news = data.news.get(symbol)
        earnings = data.earnings.get(symbol)
        insider = data.insider.get(symbol)
        institutional = data.institutional.get(symbol)
        liquidity = data.liquidity.get(symbol)
        risk = data.risk.get(symbol)
        sector = sector_of(f)
        industry = industry_of(f)

        red_flags = build_red_flags(constraints, f, t, liquidity, risk)
        reasons = exclusion_reasons(symbol, sector, industry, red_flags, t, exposure, constraints)
        if reasons:
            excluded.append(ResearchExclusion(symbol, sector, industry, tuple(reasons)))
            continue

        scores = FactorScores(
            fundamentals=score_fundamentals(f),
            technicals=score_technicals(t, snapshots.get(symbol)),
            macro=score_macro(data.macro, regime),
            sentiment=score_sentiment(
                news, earnings, insider, institutional, as_of, config.recency_half_life_days
            ),
            quality=score_quality(f),
            valuation=score_valuation(f),
            peer=score_peer(f, peer_medians.get(sector)),
        )
        score = composite_score(scores, weights)
        data_quality = compute_data_quality(data, symbol)
        confidence = clamp(0.7 * score + 0.3 * data_quality)
        checklist = build_checklist(f)

        if not earnings:
            next_steps.append(f"{symbol}: fetch earnings call summary")
        if not news:
            next_steps.append(f"{symbol}: review recent news sentiment")
        if insider is None:
            next_steps.append(f"{symbol}: check insider activity")
        if institutional is None:
            next_steps.append(f"{symbol}: check institutional flows")

        candidates.append(ResearchCandidate(
            symbol=symbol,
            sector=sector,
            industry=industry,
            score=score,
            confidence=confidence,
            factor_scores=scores,
            checklist=checklist,
            red_flags=tuple(red_flags),
            drivers=collect_drivers(f, t, earnings, insider, institutional),
            risks=collect_risks(liquidity, risk, t, earnings),
            next_steps=next_steps_from_checklist(checklist, data_quality),
            sources=data.sources.get(symbol, ()),
            data_quality=data_quality,
            regime=regime,
        ))

    ranked = tuple(sorted(candidates, key=lambda c: -c.score))
    overall_quality = (
        sum(c.data_quality for c in ranked) / len(ranked) if ranked else 0.5
    )

    logger.info(
        f"Research analysis: regime={regime.value}, {len(ranked)} candidates, "
        f"{len(excluded)} excluded"
    )

    return ResearchAnalysis(
        regime=regime,
        candidates=ranked,
        excluded=tuple(excluded),
        weights=weights,
        constraints=constraints.to_dict(),
        next_steps=tuple(dict.fromkeys(next_steps))[: config.max_next_steps],
        data_quality=overall_quality,
    )
