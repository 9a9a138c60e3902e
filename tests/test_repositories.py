"""Tests for ORM conversions in the research repositories."""

import pytest

from tradebot.core.exceptions import PaperTradeStateError
from tradebot.database.orm import PaperTradeRecord, ResearchWeight
from tradebot.repositories.paper_trades_orm import (
    close_trades,
    factors_from_json,
    trade_from_orm,
    trade_to_orm,
)
from tradebot.repositories.research_errors_orm import error_to_orm
from tradebot.repositories.research_runs_orm import run_from_outcome
from tradebot.repositories.research_weights_orm import weight_record_from_orm
from tradebot.research.ranking import build_research_analysis
from tradebot.research.types import (
    CycleOutcome,
    Factor,
    FactorWeights,
    ResearchErrorEntry,
    TradeStatus,
)


class TestPaperTradeConversion:
    """PaperTrade <-> paper_trades rows."""

    def test_factors_from_json_drops_unknown_and_invalid(self):
        factors = factors_from_json({
            "technicals": 0.7,
            "peer": 1,
            "momentum": 0.3,
            "quality": "high",
            "macro": True,
            "valuation": float("nan"),
        })
        assert factors == {Factor.TECHNICALS: 0.7, Factor.PEER: 1.0}

    def test_factors_from_json_handles_null(self):
        assert factors_from_json(None) == {}

    def test_round_trip_of_open_trade(self, trade_factory):
        trade = trade_factory(symbol="MSFT", entry_price=410.0)
        row = trade_to_orm(trade)
        row.id = 7
        assert row.status == "open"
        assert row.factors["technicals"] == 0.5

        loaded = trade_from_orm(row)
        assert loaded.id == 7
        assert loaded.symbol == "MSFT"
        assert loaded.status is TradeStatus.OPEN
        assert loaded.factors == trade.factors
        assert loaded.exit_price is None

    def test_closed_row(self, now):
        row = PaperTradeRecord(
            id=3, symbol="XOM", status="closed", entry_at=now, entry_price=100.0,
            horizon_days=7, score=0.6, confidence=0.55, factors={"macro": 0.4},
            exit_at=now, exit_price=95.0, return_pct=-0.05, notes="closed after 7d horizon",
            created_at=now,
        )
        trade = trade_from_orm(row)
        assert not trade.is_open
        assert trade.return_pct == -0.05
        assert trade.factors == {Factor.MACRO: 0.4}

    @pytest.mark.asyncio
    async def test_close_trades_rejects_unsaved_trade(self, trade_factory, now, mocker):
        session = mocker.AsyncMock()
        unsaved = trade_factory(trade_id=None).close(110.0, now)
        with pytest.raises(PaperTradeStateError):
            await close_trades(session, [unsaved])
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_trades_detects_closure_race(self, trade_factory, now, mocker):
        session = mocker.AsyncMock()
        session.execute.return_value = mocker.Mock(rowcount=0)
        with pytest.raises(PaperTradeStateError):
            await close_trades(session, [trade_factory().close(110.0, now)])

    @pytest.mark.asyncio
    async def test_close_trades_updates_each_trade(self, trade_factory, now, mocker):
        session = mocker.AsyncMock()
        session.execute.return_value = mocker.Mock(rowcount=1)
        trades = [
            trade_factory(symbol="A", trade_id=1).close(101.0, now),
            trade_factory(symbol="B", trade_id=2).close(99.0, now),
        ]
        assert await close_trades(session, trades) == 2
        assert session.execute.await_count == 2


class TestResearchRunConversion:
    """CycleOutcome -> research_runs row."""

    def test_successful_run(self, research_data, snapshots, config, now):
        analysis = build_research_analysis(
            ["AAPL", "MSFT"], snapshots, [], research_data, FactorWeights.uniform(), config, now
        )
        outcome = CycleOutcome(started_at=now, finished_at=now, cycle_id="abc", analysis=analysis)
        row = run_from_outcome(outcome)
        assert row.status == "ok"
        assert row.regime == "neutral"
        assert row.candidate_count == 2
        assert row.error is None
        assert row.payload["analysis"]["candidates"][0]["symbol"] == analysis.candidates[0].symbol
        assert row.payload["weights_updated"] is False

    def test_failed_run(self, now):
        outcome = CycleOutcome(
            started_at=now, finished_at=now, cycle_id="abc", failures=("Alpaca API unavailable",)
        )
        row = run_from_outcome(outcome)
        assert row.status == "error"
        assert row.payload is None
        assert row.error == "Alpaca API unavailable"
        assert row.candidate_count == 0


class TestWeightsAndErrors:
    def test_weight_record_fills_gaps_and_normalizes(self, now):
        row = ResearchWeight(id=1, weights={"technicals": 2.0, "bogus": 5}, note=None, created_at=now)
        record = weight_record_from_orm(row, fallback=FactorWeights.uniform())
        assert record.weights.total == pytest.approx(1.0)
        assert record.weights.technicals > record.weights.macro

    def test_error_to_orm(self, now):
        entry = ResearchErrorEntry(
            symbol="TSLA", reason="lost", created_at=now, rule="weak_macro", context="{}"
        )
        row = error_to_orm(entry)
        assert (row.symbol, row.rule, row.context) == ("TSLA", "weak_macro", "{}")
