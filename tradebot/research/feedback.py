"""
Weight feedback from closed paper trades.

Compares the entry factor snapshots of winning and losing trades and nudges
the base weights toward the factors that separated them. Losing trades
beyond a threshold are diagnosed by their weakest factor.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from typing import Optional, Sequence

import pandas as pd

from tradebot.research.types import (
    BASE_FACTORS,
    Factor,
    FactorWeights,
    PaperTrade,
    ResearchErrorEntry,
    WeightFeedback,
)

logger = logging.getLogger(__name__)


def _with_returns(trades: Sequence[PaperTrade]) -> list[PaperTrade]:
    return [
        t for t in trades
        if t.return_pct is not None and math.isfinite(t.return_pct)
    ]


def factor_frame(trades: Sequence[PaperTrade]) -> pd.DataFrame:
    """One row per trade: base factor snapshot values (NaN when absent) and return."""
    columns = [f.value for f in BASE_FACTORS] + ["return_pct"]
    rows = [
        [t.factors.get(f, math.nan) for f in BASE_FACTORS] + [t.return_pct]
        for t in trades
    ]
    return pd.DataFrame(rows, columns=columns, dtype=float)


def compute_weight_feedback(
    base: FactorWeights,
    closed: Sequence[PaperTrade],
    learning_rate: float = 0.05,
    min_closed_trades: int = 3,
) -> Optional[WeightFeedback]:
    """
    Shift base weights toward factors that were higher in winners than losers.

    Parameters
    ----------
    base : FactorWeights
        Base weights read at cycle start.
    closed : Sequence[PaperTrade]
        Trades closed in this cycle.
    learning_rate : float
        Step size applied to each winner-minus-loser mean difference.
    min_closed_trades : int
        Below this many closures the sample is too small and nothing changes.

    Returns
    -------
    WeightFeedback or None
        None when the sample is insufficient.
    """
    trades = _with_returns(closed)
    if len(trades) < min_closed_trades:
        logger.debug(f"Weight feedback skipped: {len(trades)} closures < {min_closed_trades}")
        return None

    df = factor_frame(trades)
    winners = df[df["return_pct"] >= 0]
    losers = df[df["return_pct"] < 0]

    deltas: dict[Factor, float] = {}
    for factor in BASE_FACTORS:
        winner_mean = winners[factor.value].mean()
        loser_mean = losers[factor.value].mean()
        if pd.isna(winner_mean) or pd.isna(loser_mean):
            continue
        deltas[factor] = learning_rate * float(winner_mean - loser_mean)

    weights = base.with_deltas(deltas).normalized()
    logger.info(
        f"Weight feedback from {len(trades)} trades "
        f"({len(winners)} won, {len(losers)} lost): {weights.to_dict()}"
    )
    return WeightFeedback(
        previous=base,
        weights=weights,
        deltas=deltas,
        winners=len(winners),
        losers=len(losers),
    )


def weakest_factor(trade: PaperTrade) -> Optional[Factor]:
    """Lowest base factor in the entry snapshot; ties go to the earlier factor."""
    present = [
        f for f in BASE_FACTORS
        if f in trade.factors and math.isfinite(trade.factors[f])
    ]
    if not present:
        return None
    return min(present, key=lambda f: trade.factors[f])


def diagnose_losses(
    closed: Sequence[PaperTrade],
    now: datetime,
    threshold: float = -0.05,
) -> list[ResearchErrorEntry]:
    """Record the weakest factor of each trade that lost at least ``-threshold``."""
    entries: list[ResearchErrorEntry] = []
    for trade in _with_returns(closed):
        if trade.return_pct > threshold:
            continue
        factor = weakest_factor(trade)
        context = json.dumps({
            "entry_price": trade.entry_price,
            "exit_price": trade.exit_price,
            "return_pct": trade.return_pct,
            "score": trade.score,
            "confidence": trade.confidence,
            "factors": {f.value: v for f, v in trade.factors.items()},
        })
        if factor is None:
            reason = f"paper trade lost {trade.return_pct:.1%} with no factor snapshot"
        else:
            reason = (
                f"paper trade lost {trade.return_pct:.1%}; weakest factor "
                f"{factor.value} ({trade.factors[factor]:.2f})"
            )
        entries.append(ResearchErrorEntry(
            symbol=trade.symbol,
            reason=reason,
            created_at=now,
            rule=f"weak_{factor.value}" if factor is not None else None,
            context=context,
        ))
    if entries:
        logger.info(f"Diagnosed {len(entries)} losing paper trades")
    return entries
