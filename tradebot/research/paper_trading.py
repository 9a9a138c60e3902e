"""
Paper trade simulation.

Open trades close once their horizon has elapsed, at the latest live price.
New trades open on top-ranked candidates without an open trade. Both steps
return new immutable trades; persistence happens in the cycle service.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from tradebot.research.data import SymbolSnapshot
from tradebot.research.types import PaperTrade, ResearchAnalysis

logger = logging.getLogger(__name__)


def live_price(snapshot: Optional[SymbolSnapshot]) -> Optional[float]:
    return snapshot.price if snapshot is not None else None


def close_due_trades(
    open_trades: Iterable[PaperTrade],
    snapshots: Mapping[str, SymbolSnapshot],
    now: datetime,
) -> list[PaperTrade]:
    """
    Close every open trade whose horizon has elapsed.

    A due trade without a usable price stays open and is retried next cycle.

    Returns:
        The newly closed trades
    """
    closed: list[PaperTrade] = []
    for trade in open_trades:
        if not trade.is_open or not trade.is_due(now):
            continue
        price = live_price(snapshots.get(trade.symbol))
        if price is None:
            logger.warning(f"Paper trade {trade.id} ({trade.symbol}) is due but has no price")
            continue
        closed_trade = trade.close(price, now, notes=f"closed after {trade.horizon_days}d horizon")
        closed.append(closed_trade)
        logger.info(
            f"Closed paper trade {trade.symbol}: {trade.entry_price:.2f} -> {price:.2f} "
            f"({closed_trade.return_pct:+.2%})"
        )
    return closed


def open_paper_trades(
    analysis: ResearchAnalysis,
    open_trades: Iterable[PaperTrade],
    snapshots: Mapping[str, SymbolSnapshot],
    now: datetime,
    top_n: int = 5,
    horizon_days: int = 7,
) -> list[PaperTrade]:
    """
    Open one trade per top-N candidate that has no open trade and a live price.

    Args:
        analysis: This cycle's ranking
        open_trades: Trades still open after this cycle's closures
        snapshots: Latest prices by symbol
        now: Entry timestamp
        top_n: Number of top candidates considered
        horizon_days: Holding period of new trades

    Returns:
        Newly opened trades (not yet persisted, so without ids)
    """
    held = {t.symbol for t in open_trades if t.is_open}
    opened: list[PaperTrade] = []
    for candidate in analysis.top(top_n):
        if candidate.symbol in held:
            continue
        price = live_price(snapshots.get(candidate.symbol))
        if price is None:
            logger.debug(f"No live price for {candidate.symbol}, skipping paper trade")
            continue
        opened.append(PaperTrade(
            symbol=candidate.symbol,
            created_at=now,
            entry_at=now,
            entry_price=price,
            horizon_days=horizon_days,
            score=candidate.score,
            confidence=candidate.confidence,
            factors=candidate.factor_scores.as_mapping(),
        ))
        held.add(candidate.symbol)
    if opened:
        logger.info(f"Opened {len(opened)} paper trades: {', '.join(t.symbol for t in opened)}")
    return opened


def remaining_open(open_trades: Sequence[PaperTrade], closed: Sequence[PaperTrade]) -> list[PaperTrade]:
    """Open trades minus the ones closed this cycle."""
    closed_keys = {(t.id, t.symbol, t.entry_at) for t in closed}
    return [
        t for t in open_trades
        if t.is_open and (t.id, t.symbol, t.entry_at) not in closed_keys
    ]
