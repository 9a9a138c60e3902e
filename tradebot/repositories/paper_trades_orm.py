"""Paper trades repository using SQLAlchemy ORM.

Closure updates are guarded by ``status = 'open'`` so a trade can only be
closed once even if two writers race.

Usage:
    from tradebot.repositories import paper_trades_orm as paper_trades_repo

    open_trades = await paper_trades_repo.list_open_trades()
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradebot.core.exceptions import PaperTradeStateError
from tradebot.core.logging import get_logger
from tradebot.database.connection import get_session
from tradebot.database.orm import PaperTradeRecord
from tradebot.research.types import Factor, PaperTrade, TradeStatus

logger = get_logger("repositories.paper_trades_orm")


def factors_from_json(raw: Mapping[str, Any] | None) -> dict[Factor, float]:
    """Parse a stored factor snapshot, dropping unknown factors and non-numeric values."""
    factors: dict[Factor, float] = {}
    for key, value in (raw or {}).items():
        try:
            factor = Factor(key)
        except ValueError:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isfinite(value):
            factors[factor] = float(value)
    return factors


def trade_from_orm(row: PaperTradeRecord) -> PaperTrade:
    return PaperTrade(
        id=row.id,
        symbol=row.symbol,
        created_at=row.created_at or row.entry_at,
        entry_at=row.entry_at,
        entry_price=float(row.entry_price),
        horizon_days=row.horizon_days,
        score=float(row.score),
        confidence=float(row.confidence),
        factors=factors_from_json(row.factors),
        status=TradeStatus(row.status),
        exit_at=row.exit_at,
        exit_price=float(row.exit_price) if row.exit_price is not None else None,
        return_pct=float(row.return_pct) if row.return_pct is not None else None,
        notes=row.notes,
    )


def trade_to_orm(trade: PaperTrade) -> PaperTradeRecord:
    return PaperTradeRecord(
        symbol=trade.symbol,
        status=trade.status.value,
        entry_at=trade.entry_at,
        entry_price=trade.entry_price,
        horizon_days=trade.horizon_days,
        score=trade.score,
        confidence=trade.confidence,
        factors={f.value: v for f, v in trade.factors.items()},
        notes=trade.notes,
        created_at=trade.created_at,
    )


async def list_open_trades() -> list[PaperTrade]:
    """All open paper trades, oldest first."""
    async with get_session() as session:
        result = await session.execute(
            select(PaperTradeRecord)
            .where(PaperTradeRecord.status == TradeStatus.OPEN.value)
            .order_by(PaperTradeRecord.id.asc())
        )
        return [trade_from_orm(row) for row in result.scalars().all()]


async def insert_trades(session: AsyncSession, trades: Iterable[PaperTrade]) -> list[int]:
    """Insert new open trades inside the caller's transaction."""
    rows = [trade_to_orm(t) for t in trades]
    if not rows:
        return []
    session.add_all(rows)
    await session.flush()
    return [row.id for row in rows]


async def close_trades(session: AsyncSession, trades: Sequence[PaperTrade]) -> int:
    """
    Persist closures inside the caller's transaction.

    Raises:
        PaperTradeStateError: a trade has no id, or was already closed in storage
    """
    closed = 0
    for trade in trades:
        if trade.id is None or trade.status is not TradeStatus.CLOSED:
            raise PaperTradeStateError(
                message=f"Cannot persist closure of {trade.symbol}: not a stored closed trade",
                details={"id": trade.id, "symbol": trade.symbol},
            )
        result = await session.execute(
            update(PaperTradeRecord)
            .where(
                PaperTradeRecord.id == trade.id,
                PaperTradeRecord.status == TradeStatus.OPEN.value,
            )
            .values(
                status=TradeStatus.CLOSED.value,
                exit_at=trade.exit_at,
                exit_price=trade.exit_price,
                return_pct=trade.return_pct,
                notes=trade.notes,
            )
        )
        if result.rowcount != 1:
            raise PaperTradeStateError(
                message=f"Paper trade {trade.id} ({trade.symbol}) is no longer open",
                details={"id": trade.id, "symbol": trade.symbol},
            )
        closed += 1
    return closed


async def prune_closed_trades(session: AsyncSession, keep: int) -> int:
    """Delete closed trades beyond the newest ``keep``. Open trades are never pruned."""
    newest = (
        select(PaperTradeRecord.id)
        .where(PaperTradeRecord.status == TradeStatus.CLOSED.value)
        .order_by(PaperTradeRecord.id.desc())
        .limit(keep)
    )
    result = await session.execute(
        delete(PaperTradeRecord)
        .where(
            PaperTradeRecord.status == TradeStatus.CLOSED.value,
            PaperTradeRecord.id.not_in(newest),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info(f"Pruned {result.rowcount} closed paper trades")
    return result.rowcount

