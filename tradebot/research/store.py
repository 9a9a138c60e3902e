"""SQLAlchemy-backed research store.

Writes of one cycle (run record, opened and closed paper trades, weight
update, loss diagnostics and retention pruning) share one session and commit
together.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from tradebot.core.exceptions import StorageError
from tradebot.core.logging import get_logger
from tradebot.database.connection import get_session
from tradebot.repositories import paper_trades_orm as paper_trades_repo
from tradebot.repositories import research_errors_orm as research_errors_repo
from tradebot.repositories import research_runs_orm as research_runs_repo
from tradebot.repositories import research_weights_orm as research_weights_repo
from tradebot.research.types import CycleOutcome, FactorWeights, PaperTrade, WeightRecord

logger = get_logger("research.store")


class SqlResearchStore:
    """ResearchStore on PostgreSQL."""

    def __init__(
        self,
        default_weights: FactorWeights,
        max_runs: int = 100,
        max_paper_trades: int = 500,
    ):
        self.default_weights = default_weights
        self.max_runs = max_runs
        self.max_paper_trades = max_paper_trades

    async def get_latest_weights(self) -> Optional[WeightRecord]:
        try:
            return await research_weights_repo.get_latest_weights(fallback=self.default_weights)
        except SQLAlchemyError as e:
            raise StorageError(message=f"Failed to load research weights: {e}") from e

    async def list_open_paper_trades(self) -> List[PaperTrade]:
        try:
            return await paper_trades_repo.list_open_trades()
        except SQLAlchemyError as e:
            raise StorageError(message=f"Failed to load open paper trades: {e}") from e

    async def save_cycle(self, outcome: CycleOutcome) -> int:
        """Persist a cycle atomically and return the research run id."""
        try:
            async with get_session() as session:
                run_id = await research_runs_repo.insert_run(session, outcome)
                await paper_trades_repo.close_trades(session, outcome.closed)
                await paper_trades_repo.insert_trades(session, outcome.opened)
                if outcome.feedback is not None:
                    await research_weights_repo.add_weights(
                        session,
                        outcome.feedback.weights,
                        created_at=outcome.finished_at,
                        note=outcome.feedback.note,
                    )
                await research_errors_repo.insert_errors(session, outcome.errors)
                await research_runs_repo.prune_runs(session, self.max_runs)
                await paper_trades_repo.prune_closed_trades(session, self.max_paper_trades)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(message=f"Failed to save research cycle: {e}") from e

        logger.info(
            f"Saved research run {run_id}: {len(outcome.opened)} opened, "
            f"{len(outcome.closed)} closed, weights updated: {outcome.feedback is not None}"
        )
        return run_id
