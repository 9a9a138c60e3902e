"""
Factor scorers.

Each scorer maps one category of research data to a score in [0, 1].
Sub-scores with missing or non-finite inputs are left out of a blend rather
than counted as neutral; a blend with nothing defined is neutral (0.5).

Thresholds are expressed as (mid, ceiling) for positive-is-better metrics and
(good, bad) for inverse metrics.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np

from tradebot.research.data import (
    EarningsCallSummary,
    Fundamentals,
    InsiderActivity,
    InstitutionalFlow,
    MacroData,
    NewsItem,
    SymbolSnapshot,
    Technicals,
)
from tradebot.research.types import MarketRegime

logger = logging.getLogger(__name__)

NEUTRAL = 0.5

# Normalization ranges for net insider / institutional dollar flow
INSIDER_FLOW_RANGE = 1_000_000.0
INSTITUTIONAL_FLOW_RANGE = 5_000_000.0

MACRO_TREND_SCORES = {"up": 0.7, "down": 0.3, "flat": 0.5}


# =============================================================================
# Helpers
# =============================================================================


def _is_number(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return min(hi, max(lo, value))


def normalize(value: float, lo: float, hi: float) -> float:
    """Linear map of [lo, hi] onto [0, 1], clamped."""
    if not math.isfinite(value) or hi == lo:
        return NEUTRAL
    return clamp((value - lo) / (hi - lo))


def median(values: Iterable[Optional[float]]) -> Optional[float]:
    finite = [v for v in values if _is_number(v)]
    if not finite:
        return None
    return float(np.median(finite))


def average(values: Iterable[Optional[float]]) -> Optional[float]:
    """Mean of the defined values, or None when nothing is defined."""
    finite = [v for v in values if _is_number(v)]
    if not finite:
        return None
    return float(np.mean(finite))


def blend(values: Iterable[Optional[float]]) -> float:
    """Mean of the defined values, neutral when nothing is defined."""
    result = average(values)
    return NEUTRAL if result is None else result


def weighted_average(items: Iterable[tuple[float, float]]) -> Optional[float]:
    """Weighted mean over (value, weight) pairs with a positive finite weight."""
    usable = [
        (v, w) for v, w in items
        if math.isfinite(v) and math.isfinite(w) and w > 0
    ]
    if not usable:
        return None
    values = np.array([v for v, _ in usable])
    weights = np.array([w for _, w in usable])
    return float(np.average(values, weights=weights))


def score_positive(value: Optional[float], mid: float, ceiling: float) -> Optional[float]:
    """
    Score a metric where higher is better.

    <= 0 scores 0.2, (0, mid] scores 0.6 and >= ceiling scores 1.0. Between
    mid and ceiling the score is the position within that band, so it restarts
    from 0 just above mid.
    """
    if not _is_number(value):
        return None
    if value <= 0:
        return 0.2
    if value >= ceiling:
        return 1.0
    if value <= mid:
        return 0.6
    return normalize(value, mid, ceiling)


def score_inverse(value: Optional[float], good: float, bad: float) -> Optional[float]:
    """
    Score a metric where lower is better.

    1.0 at or below good, 0.2 at or above bad, and 1 - (value - good) / (bad - good)
    in between.
    """
    if not _is_number(value):
        return None
    if value <= good:
        return 1.0
    if value >= bad:
        return 0.2
    return clamp(1.0 - (value - good) / (bad - good))


def decay_weight(published_at: Optional[datetime], as_of: datetime, half_life_days: float) -> float:
    """
    Recency weight 0.5 ** (age_days / half_life).

    Undated items weigh nothing; future-dated items weigh 1.
    """
    if published_at is None:
        return 0.0
    age_days = (as_of - published_at).total_seconds() / 86400
    if age_days < 0:
        return 1.0
    return 0.5 ** (age_days / max(1.0, half_life_days))


def compare_to_median(value: float, median_value: float) -> float:
    if not math.isfinite(value) or not math.isfinite(median_value):
        return NEUTRAL
    scale = max(0.0001, abs(median_value))
    return clamp(0.5 + (value - median_value) / (2 * scale))


# =============================================================================
# Scorers
# =============================================================================


def score_fundamentals(f: Optional[Fundamentals]) -> float:
    """Growth, profitability and leverage."""
    if f is None:
        return NEUTRAL
    growth = average([
        score_positive(f.revenue_growth, 0.05, 0.15),
        score_positive(f.eps_growth, 0.05, 0.20),
    ])
    profitability = average([
        score_positive(f.operating_margin, 0.10, 0.25),
        score_positive(f.net_margin, 0.05, 0.20),
    ])
    leverage = score_inverse(f.debt_to_equity, 1.0, 3.0)
    return blend([growth, profitability, leverage])


def score_quality(f: Optional[Fundamentals]) -> float:
    if f is None:
        return NEUTRAL
    return blend([
        score_positive(f.roic, 0.10, 0.20),
        score_positive(f.roe, 0.10, 0.25),
        score_positive(f.fcf_yield, 0.03, 0.08),
    ])


def score_valuation(f: Optional[Fundamentals]) -> float:
    if f is None:
        return NEUTRAL
    return blend([
        score_inverse(f.pe, 15, 40),
        score_inverse(f.ps, 3, 10),
        score_inverse(f.ev_ebitda, 10, 25),
    ])


def score_technicals(t: Optional[Technicals], snapshot: Optional[SymbolSnapshot]) -> float:
    """RSI closeness to 50, multi-horizon momentum and distance from the 200-day SMA."""
    if t is None and snapshot is None:
        return NEUTRAL

    rsi_score = None
    if t is not None and _is_number(t.rsi):
        rsi_score = clamp(1 - abs(t.rsi - 50) / 50)

    momentum = None
    if t is not None:
        momentum = average([
            score_positive(t.momentum_1m, 0.02, 0.08),
            score_positive(t.momentum_3m, 0.04, 0.15),
            score_positive(t.momentum_6m, 0.06, 0.20),
        ])

    trend_score = None
    price = snapshot.reference_price if snapshot is not None else None
    if _is_number(price) and t is not None and _is_number(t.sma200):
        trend_score = clamp((price - t.sma200) / max(1.0, t.sma200) + 0.5)

    return blend([rsi_score, momentum, trend_score])


def _tone(value: Optional[float]) -> float:
    return value if _is_number(value) else 0.0


def score_sentiment(
    news: Optional[Sequence[NewsItem]],
    earnings: Optional[Sequence[EarningsCallSummary]],
    insider: Optional[InsiderActivity],
    institutional: Optional[InstitutionalFlow],
    as_of: datetime,
    half_life_days: float,
) -> float:
    """
    Recency-weighted news and earnings tone plus insider/institutional flow.

    News weight is importance (default 1) times recency decay; earnings
    weight is recency decay only. An item without a sentiment or tone value
    reads as neutral (0) but keeps its weight.
    """
    news_score = weighted_average(
        (
            normalize(_tone(n.sentiment) + 1, 0, 2),
            (n.importance if n.importance is not None else 1.0)
            * decay_weight(n.published_at, as_of, half_life_days),
        )
        for n in (news or ())
    )
    earnings_score = weighted_average(
        (
            normalize(_tone(e.tone) + 1, 0, 2),
            decay_weight(e.published_at, as_of, half_life_days),
        )
        for e in (earnings or ())
    )
    insider_score = None
    if insider is not None and insider.net_value is not None:
        insider_score = normalize(insider.net_value, -INSIDER_FLOW_RANGE, INSIDER_FLOW_RANGE)
    institutional_score = None
    if institutional is not None and institutional.net_value is not None:
        institutional_score = normalize(
            institutional.net_value, -INSTITUTIONAL_FLOW_RANGE, INSTITUTIONAL_FLOW_RANGE
        )
    return blend([news_score, earnings_score, insider_score, institutional_score])


def score_macro(macro: MacroData, regime: MarketRegime) -> float:
    """Risk-on score, trend and VIX level, shifted by the regime."""
    risk_on = macro.risk_on_score if macro.risk_on_score is not None else NEUTRAL
    trend_score = MACRO_TREND_SCORES[macro.market_trend or "flat"]
    vix_score = clamp(1 - (macro.vix - 15) / 20) if macro.vix is not None else NEUTRAL
    base = blend([risk_on, trend_score, vix_score])

    if regime is MarketRegime.HIGH_VOL:
        return clamp(base * 0.8)
    if regime is MarketRegime.RISK_ON:
        return clamp(base + 0.1)
    if regime is MarketRegime.RISK_OFF:
        return clamp(base - 0.1)
    return clamp(base)


@dataclass(frozen=True)
class PeerMedians:
    """Sector medians used for peer-relative scoring."""
    revenue_growth: Optional[float] = None
    net_margin: Optional[float] = None
    pe: Optional[float] = None
    fcf_yield: Optional[float] = None


def sector_of(f: Optional[Fundamentals]) -> str:
    return (f.sector if f is not None and f.sector else None) or "unknown"


def industry_of(f: Optional[Fundamentals]) -> str:
    return (f.industry if f is not None and f.industry else None) or "unknown"


def compute_peer_medians(
    symbols: Iterable[str],
    fundamentals: Mapping[str, Fundamentals],
) -> dict[str, PeerMedians]:
    """Median revenue growth, net margin, P/E and FCF yield per sector."""
    by_sector: dict[str, list[Fundamentals]] = {}
    for symbol in symbols:
        f = fundamentals.get(symbol)
        if f is None:
            continue
        by_sector.setdefault(sector_of(f), []).append(f)

    return {
        sector: PeerMedians(
            revenue_growth=median(f.revenue_growth for f in group),
            net_margin=median(f.net_margin for f in group),
            pe=median(f.pe for f in group),
            fcf_yield=median(f.fcf_yield for f in group),
        )
        for sector, group in by_sector.items()
    }


def score_peer(f: Optional[Fundamentals], medians: Optional[PeerMedians]) -> float:
    """Relative standing against sector medians. A lower P/E than peers scores higher."""
    if f is None or medians is None:
        return NEUTRAL
    comparisons: list[float] = []
    if f.revenue_growth is not None and medians.revenue_growth is not None:
        comparisons.append(compare_to_median(f.revenue_growth, medians.revenue_growth))
    if f.net_margin is not None and medians.net_margin is not None:
        comparisons.append(compare_to_median(f.net_margin, medians.net_margin))
    if f.pe is not None and medians.pe is not None:
        comparisons.append(compare_to_median(medians.pe, f.pe))
    if f.fcf_yield is not None and medians.fcf_yield is not None:
        comparisons.append(compare_to_median(f.fcf_yield, medians.fcf_yield))
    return blend(comparisons)
