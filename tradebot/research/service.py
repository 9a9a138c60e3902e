"""Research cycle orchestration.

One cycle:
1. Gather research data, positions, latest weights, open paper trades and
   research symbols concurrently
2. Fetch price snapshots for the universe and every open paper trade
3. Rank candidates, close due paper trades, open new ones
4. Run weight feedback on this cycle's closures
5. Persist everything in a single transaction

Only one cycle runs at a time per service; an overlapping trigger is dropped.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from tradebot.core.data_helpers import run_in_executor
from tradebot.core.exceptions import ResearchCycleError
from tradebot.core.logging import cycle_id_var, get_logger
from tradebot.research.config import ResearchConfig
from tradebot.research.data import Position, ResearchData, SymbolSnapshot
from tradebot.research.feedback import compute_weight_feedback, diagnose_losses
from tradebot.research.paper_trading import close_due_trades, open_paper_trades, remaining_open
from tradebot.research.ranking import build_research_analysis
from tradebot.research.types import CycleOutcome, PaperTrade, WeightRecord

logger = get_logger("research.service")


class MarketDataProvider(Protocol):
    """Protocol for market data providers."""

    async def get_snapshots(self, symbols: Sequence[str]) -> Dict[str, SymbolSnapshot]:
        """Latest trade and daily bar for each symbol."""
        ...

    async def get_research_symbols(self, cap: int) -> List[str]:
        """Movers and most-active symbols worth researching."""
        ...


class BrokerageProvider(Protocol):
    """Protocol for brokerage account access."""

    async def get_positions(self) -> List[Position]:
        ...


class ResearchStore(Protocol):
    """Protocol for research persistence."""

    async def get_latest_weights(self) -> Optional[WeightRecord]:
        ...

    async def list_open_paper_trades(self) -> List[PaperTrade]:
        ...

    async def save_cycle(self, outcome: CycleOutcome) -> int:
        """Persist a cycle atomically and return the research run id."""
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_universe(
    symbols: Sequence[str],
    positions: Sequence[Position],
    research_symbols: Sequence[str],
) -> list[str]:
    """Configured symbols, then held symbols, then research symbols, deduplicated."""
    return list(dict.fromkeys([
        *symbols,
        *(p.symbol for p in positions),
        *research_symbols,
    ]))


class ResearchCycleService:
    """Runs research cycles against injected collaborators."""

    def __init__(
        self,
        market_data: MarketDataProvider,
        brokerage: BrokerageProvider,
        store: ResearchStore,
        load_research: Callable[[], ResearchData],
        config: ResearchConfig,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._market_data = market_data
        self._brokerage = brokerage
        self._store = store
        self._load_research = load_research
        self._config = config
        self._clock = clock
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_cycle(self) -> Optional[CycleOutcome]:
        """
        Run one research cycle.

        Returns:
            The persisted outcome, or None if another cycle was in progress

        Raises:
            ResearchCycleError: upstream I/O failed; an error run was recorded
        """
        if self._running:
            logger.info("Research cycle already in progress, dropping trigger")
            return None

        self._running = True
        cycle_id = uuid.uuid4().hex
        token = cycle_id_var.set(cycle_id)
        started_at = self._clock()
        try:
            outcome = await self._execute(cycle_id, started_at)
            logger.info(outcome.summary())
            return outcome
        except Exception as e:
            logger.exception(f"Research cycle failed: {e}")
            recorded = await self._record_failure(cycle_id, started_at, e)
            raise ResearchCycleError(
                message=f"Research cycle could not complete: {e}",
                details={"cycle_id": cycle_id, "error_run_recorded": recorded},
            ) from e
        finally:
            self._running = False
            cycle_id_var.reset(token)

    async def _execute(self, cycle_id: str, started_at: datetime) -> CycleOutcome:
        cfg = self._config

        research, positions, weight_record, open_trades, research_symbols = await asyncio.gather(
            run_in_executor(self._load_research),
            self._brokerage.get_positions(),
            self._store.get_latest_weights(),
            self._store.list_open_paper_trades(),
            self._market_data.get_research_symbols(cfg.research_symbols_cap),
        )

        base_weights = (
            weight_record.weights.normalized() if weight_record is not None else cfg.base_weights
        )
        universe = build_universe(cfg.symbols, positions, research_symbols)
        snapshot_symbols = list(dict.fromkeys([*universe, *(t.symbol for t in open_trades)]))
        snapshots = await self._market_data.get_snapshots(snapshot_symbols)

        logger.info(
            f"Research inputs: {len(universe)} symbols, {len(positions)} positions, "
            f"{len(open_trades)} open paper trades, {len(snapshots)} snapshots"
        )

        now = self._clock()
        analysis = build_research_analysis(
            universe, snapshots, positions, research, base_weights, cfg, as_of=now
        )
        closed = close_due_trades(open_trades, snapshots, now)
        opened = open_paper_trades(
            analysis,
            remaining_open(open_trades, closed),
            snapshots,
            now,
            top_n=cfg.paper_trade_top_n,
            horizon_days=cfg.paper_trade_horizon_days,
        )
        feedback = compute_weight_feedback(
            base_weights,
            closed,
            learning_rate=cfg.learning_rate,
            min_closed_trades=cfg.min_closed_trades,
        )
        errors = diagnose_losses(closed, now, cfg.loss_threshold) if feedback is not None else []

        outcome = CycleOutcome(
            started_at=started_at,
            finished_at=self._clock(),
            cycle_id=cycle_id,
            analysis=analysis,
            opened=tuple(opened),
            closed=tuple(closed),
            feedback=feedback,
            errors=tuple(errors),
        )
        run_id = await self._store.save_cycle(outcome)
        return replace(outcome, run_id=run_id)

    async def _record_failure(self, cycle_id: str, started_at: datetime, error: Exception) -> bool:
        failure = CycleOutcome(
            started_at=started_at,
            finished_at=self._clock(),
            cycle_id=cycle_id,
            failures=(str(error) or type(error).__name__,),
        )
        try:
            await self._store.save_cycle(failure)
        except Exception as save_error:
            logger.error(f"Could not record failed research cycle: {save_error}")
            return False
        return True
