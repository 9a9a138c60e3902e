"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tradebot.research.config import ResearchConfig, ResearchConstraints
from tradebot.research.data import (
    Fundamentals,
    LiquidityMetrics,
    MacroData,
    ResearchData,
    SymbolSnapshot,
    Technicals,
)
from tradebot.research.types import Factor, PaperTrade


NOW = datetime(2026, 3, 2, 14, 30, tzinfo=timezone.utc)


def make_trade(
    symbol: str = "AAPL",
    entry_price: float = 100.0,
    days_ago: float = 7,
    factors: dict[Factor, float] | None = None,
    trade_id: int | None = 1,
    horizon_days: int = 7,
) -> PaperTrade:
    """Open paper trade entered ``days_ago`` before NOW."""
    entry_at = NOW - timedelta(days=days_ago)
    return PaperTrade(
        id=trade_id,
        symbol=symbol,
        created_at=entry_at,
        entry_at=entry_at,
        entry_price=entry_price,
        horizon_days=horizon_days,
        score=0.6,
        confidence=0.6,
        factors=factors if factors is not None else {f: 0.5 for f in Factor},
    )


def closed_trade(
    return_pct: float,
    factors: dict[Factor, float],
    symbol: str = "AAPL",
    trade_id: int = 1,
) -> PaperTrade:
    """Trade entered at 100 and closed at the price giving ``return_pct``."""
    trade = make_trade(symbol=symbol, factors=factors, trade_id=trade_id)
    return trade.close(100.0 * (1 + return_pct), NOW)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def trade_factory():
    """Build open paper trades relative to NOW."""
    return make_trade


@pytest.fixture
def closed_trade_factory():
    """Build paper trades closed at NOW with a given return."""
    return closed_trade


@pytest.fixture
def permissive_constraints() -> ResearchConstraints:
    """Constraints with every numeric floor and cap effectively disabled."""
    return ResearchConstraints(
        min_market_cap=0,
        min_dollar_volume=0,
        max_drawdown=0,
        max_correlation=1.0,
        sector_cap=1.0,
        industry_cap=1.0,
    )


@pytest.fixture
def config(permissive_constraints) -> ResearchConfig:
    return ResearchConfig(constraints=permissive_constraints)


@pytest.fixture
def research_data() -> ResearchData:
    """Three symbols across two sectors with a neutral macro backdrop."""
    return ResearchData(
        fundamentals={
            "AAPL": Fundamentals(
                symbol="AAPL", sector="Technology", industry="Consumer Electronics",
                market_cap=3e12, pe=28, ps=7, ev_ebitda=22,
                revenue_growth=0.08, eps_growth=0.10,
                gross_margin=0.45, operating_margin=0.30, net_margin=0.25,
                debt_to_equity=1.5, roic=0.30, roe=0.60, fcf_yield=0.035,
            ),
            "MSFT": Fundamentals(
                symbol="MSFT", sector="Technology", industry="Software",
                market_cap=3e12, pe=32, ps=12, ev_ebitda=24,
                revenue_growth=0.15, eps_growth=0.18,
                gross_margin=0.70, operating_margin=0.42, net_margin=0.35,
                debt_to_equity=0.4, roic=0.25, roe=0.38, fcf_yield=0.028,
            ),
            "XOM": Fundamentals(
                symbol="XOM", sector="Energy", industry="Oil & Gas",
                market_cap=4.5e11, pe=12, ps=1.2, ev_ebitda=6,
                revenue_growth=-0.05, eps_growth=-0.10,
                gross_margin=0.30, operating_margin=0.15, net_margin=0.10,
                debt_to_equity=0.2, roic=0.12, roe=0.15, fcf_yield=0.07,
            ),
        },
        technicals={
            "AAPL": Technicals(symbol="AAPL", rsi=55, sma200=180, momentum_3m=0.12, max_drawdown=0.2),
            "MSFT": Technicals(symbol="MSFT", rsi=62, sma200=390, momentum_3m=0.05, max_drawdown=0.15),
            "XOM": Technicals(symbol="XOM", rsi=38, sma200=110, momentum_3m=-0.04, max_drawdown=0.3),
        },
        macro=MacroData(vix=18, market_trend="flat", risk_on_score=0.5),
        liquidity={
            "AAPL": LiquidityMetrics(avg_dollar_volume=1e10),
            "MSFT": LiquidityMetrics(avg_dollar_volume=8e9),
            "XOM": LiquidityMetrics(avg_dollar_volume=2e9),
        },
    )


@pytest.fixture
def snapshots() -> dict[str, SymbolSnapshot]:
    return {
        "AAPL": SymbolSnapshot(symbol="AAPL", latest_trade_price=190.0, daily_close=188.0),
        "MSFT": SymbolSnapshot(symbol="MSFT", latest_trade_price=410.0, daily_close=405.0),
        "XOM": SymbolSnapshot(symbol="XOM", latest_trade_price=105.0, daily_close=104.0),
    }
