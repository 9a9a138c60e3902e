"""Research cycle job."""

from __future__ import annotations

from functools import partial

from tradebot.core.config import settings
from tradebot.core.logging import get_logger
from tradebot.research.config import ResearchConfig
from tradebot.research.data import load_research_data
from tradebot.research.service import ResearchCycleService
from tradebot.research.store import SqlResearchStore
from tradebot.services.alpaca import AlpacaClient

from .registry import register_job


logger = get_logger("jobs.research")

# One service per process so its run lock spans every trigger
_service: ResearchCycleService | None = None


def build_research_service() -> ResearchCycleService:
    """Wire the research cycle to Alpaca, PostgreSQL and the research data directory."""
    config = ResearchConfig.from_settings(settings)
    alpaca = AlpacaClient.from_settings(settings)
    store = SqlResearchStore(
        default_weights=config.base_weights,
        max_runs=settings.max_research_runs,
        max_paper_trades=settings.max_paper_trades,
    )
    return ResearchCycleService(
        market_data=alpaca,
        brokerage=alpaca,
        store=store,
        load_research=partial(load_research_data, settings.research_data_dir),
        config=config,
    )


def get_research_service() -> ResearchCycleService:
    global _service
    if _service is None:
        _service = build_research_service()
    return _service


@register_job("research_cycle")
async def research_cycle_job() -> str:
    """Run one research cycle: rank, simulate paper trades, update weights."""
    outcome = await get_research_service().run_cycle()
    if outcome is None:
        return "Skipped: research cycle already in progress"
    return outcome.summary()
