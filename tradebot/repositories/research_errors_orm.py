"""Research errors repository using SQLAlchemy ORM.

Loss diagnostics are write-only from the engine's point of view.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from tradebot.database.orm import ResearchErrorLog
from tradebot.research.types import ResearchErrorEntry


def error_to_orm(entry: ResearchErrorEntry) -> ResearchErrorLog:
    return ResearchErrorLog(
        symbol=entry.symbol,
        reason=entry.reason,
        rule=entry.rule,
        context=entry.context,
        created_at=entry.created_at,
    )


async def insert_errors(session: AsyncSession, entries: Iterable[ResearchErrorEntry]) -> int:
    rows = [error_to_orm(e) for e in entries]
    if rows:
        session.add_all(rows)
        await session.flush()
    return len(rows)
