"""Research runs repository using SQLAlchemy ORM.

Each research cycle writes one row: the full analysis payload on success, or
the error message on failure.

Usage:
    from tradebot.repositories import research_runs_orm as runs_repo
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradebot.core.logging import get_logger
from tradebot.database.connection import get_session
from tradebot.database.orm import ResearchRun
from tradebot.research.types import CycleOutcome

logger = get_logger("repositories.research_runs_orm")


def run_from_outcome(outcome: CycleOutcome) -> ResearchRun:
    analysis = outcome.analysis
    payload: dict[str, Any] | None = None
    if analysis is not None:
        payload = {
            "analysis": analysis.to_dict(),
            "opened": [t.symbol for t in outcome.opened],
            "closed": [
                {"symbol": t.symbol, "return_pct": t.return_pct} for t in outcome.closed
            ],
            "weights_updated": outcome.feedback is not None,
        }
    return ResearchRun(
        cycle_id=outcome.cycle_id,
        status="ok" if outcome.ok else "error",
        regime=analysis.regime.value if analysis else None,
        candidate_count=len(analysis.candidates) if analysis else 0,
        excluded_count=len(analysis.excluded) if analysis else 0,
        data_quality=analysis.data_quality if analysis else None,
        payload=payload,
        error="; ".join(outcome.failures) or None,
        started_at=outcome.started_at,
        finished_at=outcome.finished_at,
    )


def run_to_dict(row: ResearchRun) -> dict[str, Any]:
    return {
        "id": row.id,
        "cycle_id": row.cycle_id,
        "status": row.status,
        "regime": row.regime,
        "candidate_count": row.candidate_count,
        "excluded_count": row.excluded_count,
        "data_quality": row.data_quality,
        "payload": row.payload,
        "error": row.error,
        "started_at": row.started_at.isoformat() if row.started_at else None,
        "finished_at": row.finished_at.isoformat() if row.finished_at else None,
    }


async def insert_run(session: AsyncSession, outcome: CycleOutcome) -> int:
    """Insert the run row inside the caller's transaction."""
    row = run_from_outcome(outcome)
    session.add(row)
    await session.flush()
    return row.id


async def get_latest_run() -> Optional[dict[str, Any]]:
    """Most recent research run."""
    async with get_session() as session:
        result = await session.execute(
            select(ResearchRun).order_by(ResearchRun.id.desc()).limit(1)
        )
        row = result.scalar_one_or_none()
        return run_to_dict(row) if row else None


async def prune_runs(session: AsyncSession, keep: int) -> int:
    """Delete runs beyond the newest ``keep``."""
    newest = select(ResearchRun.id).order_by(ResearchRun.id.desc()).limit(keep)
    result = await session.execute(
        delete(ResearchRun)
        .where(ResearchRun.id.not_in(newest))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info(f"Pruned {result.rowcount} research runs")
    return result.rowcount
