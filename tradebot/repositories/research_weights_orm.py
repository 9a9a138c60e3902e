"""Research weights repository using SQLAlchemy ORM.

The table is append-only; the newest row is the effective base weight vector.

Usage:
    from tradebot.repositories import research_weights_orm as weights_repo

    record = await weights_repo.get_latest_weights()
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradebot.core.logging import get_logger
from tradebot.database.connection import get_session
from tradebot.database.orm import ResearchWeight
from tradebot.research.types import FactorWeights, WeightRecord

logger = get_logger("repositories.research_weights_orm")


def weight_record_from_orm(
    row: ResearchWeight,
    fallback: Optional[FactorWeights] = None,
) -> WeightRecord:
    """Convert a row; factors missing from the stored JSON come from ``fallback``."""
    weights = FactorWeights.from_mapping(row.weights or {}, fallback=fallback)
    return WeightRecord(
        id=row.id,
        weights=weights.normalized(),
        created_at=row.created_at,
        note=row.note,
    )


async def get_latest_weights(fallback: Optional[FactorWeights] = None) -> Optional[WeightRecord]:
    """Get the most recent weight record."""
    async with get_session() as session:
        result = await session.execute(
            select(ResearchWeight)
            .order_by(ResearchWeight.created_at.desc(), ResearchWeight.id.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return weight_record_from_orm(row, fallback) if row else None


async def add_weights(
    session: AsyncSession,
    weights: FactorWeights,
    created_at: datetime,
    note: str | None = None,
) -> int:
    """Append a weight record inside the caller's transaction."""
    row = ResearchWeight(weights=weights.to_dict(), note=note, created_at=created_at)
    session.add(row)
    await session.flush()
    return row.id
