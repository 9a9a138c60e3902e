"""Tests for candidate ranking and research analysis."""

from dataclasses import replace
from datetime import timedelta

import pytest

from tradebot.research.config import ResearchConfig, ResearchConstraints
from tradebot.research.data import (
    EarningsCallSummary,
    Fundamentals,
    InsiderActivity,
    InstitutionalFlow,
    NewsItem,
    Position,
    ResearchData,
    RiskFlags,
    Technicals,
)
from tradebot.research.ranking import (
    build_checklist,
    build_research_analysis,
    collect_drivers,
    collect_risks,
    compute_data_quality,
    latest_earnings,
    next_steps_from_checklist,
)
from tradebot.research.types import BASE_FACTORS, ChecklistStatus, FactorWeights, MarketRegime


def _analyze(symbols, snapshots, data, config, now, positions=()):
    return build_research_analysis(
        symbols, snapshots, list(positions), data, FactorWeights.uniform(), config, as_of=now
    )


class TestBuildResearchAnalysis:
    """End-to-end ranking over a fixed snapshot."""

    def test_same_inputs_give_same_output(self, research_data, snapshots, config, now):
        first = _analyze(["AAPL", "MSFT", "XOM"], snapshots, research_data, config, now)
        second = _analyze(["AAPL", "MSFT", "XOM"], snapshots, research_data, config, now)
        assert first.to_dict() == second.to_dict()

    def test_candidates_and_exclusions_partition_the_universe(self, research_data, snapshots, config, now):
        config = replace(
            config,
            constraints=replace(config.constraints, exclude_symbols=frozenset({"XOM"})),
        )
        analysis = _analyze(
            ["AAPL", "MSFT", "XOM", "AAPL", "NEW"], snapshots, research_data, config, now
        )
        ranked = {c.symbol for c in analysis.candidates}
        excluded = {e.symbol for e in analysis.excluded}
        assert ranked.isdisjoint(excluded)
        assert ranked | excluded == {"AAPL", "MSFT", "XOM", "NEW"}
        assert excluded == {"XOM"}
        assert analysis.excluded[0].reasons == ("excluded symbol",)
        assert len(analysis.candidates) == 3

    def test_candidates_sorted_by_descending_score(self, research_data, snapshots, config, now):
        analysis = _analyze(["XOM", "AAPL", "MSFT"], snapshots, research_data, config, now)
        scores = [c.score for c in analysis.candidates]
        assert scores == sorted(scores, reverse=True)

    def test_confidence_blends_score_and_data_quality(self, research_data, snapshots, config, now):
        analysis = _analyze(["AAPL", "MSFT", "XOM"], snapshots, research_data, config, now)
        for c in analysis.candidates:
            assert 0.0 <= c.score <= 1.0
            assert c.confidence == pytest.approx(0.7 * c.score + 0.3 * c.data_quality)

    def test_effective_weights_sum_to_one(self, research_data, snapshots, config, now):
        analysis = _analyze(["AAPL"], snapshots, research_data, config, now)
        assert analysis.weights.total == pytest.approx(1.0)
        assert all(analysis.weights.get(f) >= 0 for f in BASE_FACTORS)
        assert analysis.regime is MarketRegime.NEUTRAL

    def test_red_flag_excludes_symbol(self, research_data, snapshots, config, now):
        data = research_data.model_copy(update={"risk": {"MSFT": RiskFlags(legal_issues=True)}})
        analysis = _analyze(["AAPL", "MSFT"], snapshots, data, config, now)
        assert [c.symbol for c in analysis.candidates] == ["AAPL"]
        assert analysis.excluded[0].reasons == ("red flag: legal issues",)

    def test_concentrated_sector_is_excluded(self, research_data, snapshots, config, now):
        config = replace(
            config,
            constraints=replace(config.constraints, sector_cap=0.5, candidate_notional=100),
        )
        positions = [Position(symbol="AAPL", market_value=9000), Position(symbol="XOM", market_value=1000)]
        analysis = _analyze(["MSFT", "XOM"], snapshots, research_data, config, now, positions)
        assert [e.symbol for e in analysis.excluded] == ["MSFT"]
        assert "sector cap exceeded" in analysis.excluded[0].reasons
        assert [c.symbol for c in analysis.candidates] == ["XOM"]

    def test_fresh_sector_passes_default_industry_cap_on_small_portfolio(self, now):
        data = ResearchData(fundamentals={
            "A": Fundamentals(symbol="A", sector="Tech", industry="Software"),
            "B": Fundamentals(symbol="B", sector="Energy", industry="Oil"),
            "C": Fundamentals(symbol="C", sector="Health", industry="Pharma"),
            "D": Fundamentals(symbol="D", sector="Tech", industry="Hardware"),
        })
        config = ResearchConfig(constraints=ResearchConstraints(sector_cap=0.5))
        positions = [Position(symbol="A", market_value=700), Position(symbol="B", market_value=300)]

        analysis = _analyze(["C", "D"], {}, data, config, now, positions)

        assert [c.symbol for c in analysis.candidates] == ["C"]
        assert [e.symbol for e in analysis.excluded] == ["D"]
        assert analysis.excluded[0].reasons == ("sector cap exceeded",)

    def test_empty_universe(self, research_data, snapshots, config, now):
        analysis = _analyze([], snapshots, research_data, config, now)
        assert analysis.candidates == ()
        assert analysis.excluded == ()
        assert analysis.data_quality == 0.5

    def test_symbol_without_data_is_scored_neutrally(self, snapshots, config, now):
        analysis = _analyze(["NEW"], {}, ResearchData(), config, now)
        candidate = analysis.candidates[0]
        assert candidate.sector == "unknown"
        assert candidate.data_quality == 0.2
        assert candidate.score == pytest.approx(0.5 + 0.5 * 0.05)

    def test_next_steps_are_capped(self, research_data, snapshots, config, now):
        analysis = _analyze(["AAPL", "MSFT", "XOM", "NEW"], snapshots, research_data, config, now)
        assert len(analysis.next_steps) == config.max_next_steps
        assert analysis.next_steps[0] == "AAPL: fetch earnings call summary"

    def test_aggregate_data_quality_is_mean(self, research_data, snapshots, config, now):
        analysis = _analyze(["AAPL", "NEW"], snapshots, research_data, config, now)
        assert analysis.data_quality == pytest.approx((0.375 + 0.2) / 2)


class TestChecklist:
    """Qualitative checklist and its next steps."""

    def test_zero_debt_passes_leverage(self):
        checklist = {i.factor: i for i in build_checklist(Fundamentals(symbol="A", debt_to_equity=0))}
        assert checklist["leverage"].status is ChecklistStatus.PASS

    def test_zero_pe_is_missing(self):
        checklist = {i.factor: i for i in build_checklist(Fundamentals(symbol="A", pe=0))}
        assert checklist["valuation"].status is ChecklistStatus.NEUTRAL
        assert checklist["valuation"].note == "missing"

    def test_thresholds(self):
        f = Fundamentals(
            symbol="A", revenue_growth=0.10, net_margin=0.01,
            debt_to_equity=2.0, gross_margin=0.40, pe=10,
        )
        statuses = {i.factor: i.status for i in build_checklist(f)}
        assert statuses == {
            "growth": ChecklistStatus.PASS,
            "profitability": ChecklistStatus.FAIL,
            "leverage": ChecklistStatus.NEUTRAL,
            "moat": ChecklistStatus.NEUTRAL,
            "valuation": ChecklistStatus.PASS,
        }

    def test_next_steps(self):
        f = Fundamentals(symbol="A", revenue_growth=-0.1)
        steps = next_steps_from_checklist(build_checklist(f), data_quality=0.4)
        assert steps[0] == "revalidate growth thesis"
        assert "collect missing profitability data" in steps
        assert steps[-1] == "fill missing data for key factors"


class TestDriversAndRisks:
    """Explanatory drivers and risks."""

    def test_latest_earnings_by_publication_date(self, now):
        old = EarningsCallSummary(published_at=now - timedelta(days=90), tone=0.9)
        new = EarningsCallSummary(published_at=now - timedelta(days=2), tone=-0.5)
        assert latest_earnings([new, old]) is new
        assert latest_earnings([]) is None

    def test_drivers_capped_at_three(self, now):
        drivers = collect_drivers(
            Fundamentals(symbol="A", revenue_growth=0.2, net_margin=0.2, roic=0.2),
            Technicals(symbol="A", momentum_3m=0.2, rsi=30),
            None,
            InsiderActivity(net_value=1),
            InstitutionalFlow(net_value=1),
        )
        assert drivers == ("Strong revenue growth", "High profitability", "High ROIC quality")

    def test_earnings_drivers_use_latest_call(self, now):
        earnings = [
            EarningsCallSummary(published_at=now - timedelta(days=90), tone=-0.8),
            EarningsCallSummary(
                published_at=now, tone=0.5, guidance_delta=0.02, kpi_trends=["subscribers up"]
            ),
        ]
        drivers = collect_drivers(None, None, earnings, None, None)
        assert drivers == ("Positive earnings call tone", "Guidance raised", "KPIs trending up")

    def test_risks(self, now):
        earnings = [EarningsCallSummary(published_at=now, tone=-0.6, kpi_trends=["margins declining"])]
        risks = collect_risks(None, RiskFlags(accounting_anomaly=True), Technicals(symbol="A", max_drawdown=0.5), earnings)
        assert risks == ("Accounting anomaly", "Deep drawdown risk", "Negative earnings tone")


class TestDataQuality:
    """Share of per-symbol sources present."""

    def test_empty_lists_count_as_present(self, now):
        data = ResearchData(
            news={"A": ()},
            earnings={"A": (EarningsCallSummary(published_at=now),)},
            fundamentals={"A": Fundamentals(symbol="A")},
        )
        assert compute_data_quality(data, "A") == pytest.approx(3 / 8)
        assert compute_data_quality(data, "B") == 0.2

    def test_full_coverage(self, research_data, now):
        data = research_data.model_copy(update={
            "news": {"AAPL": (NewsItem(published_at=now, sentiment=0.1),)},
            "earnings": {"AAPL": (EarningsCallSummary(published_at=now, tone=0.1),)},
            "insider": {"AAPL": InsiderActivity(net_value=1)},
            "institutional": {"AAPL": InstitutionalFlow(net_value=1)},
            "risk": {"AAPL": RiskFlags()},
        })
        assert compute_data_quality(data, "AAPL") == 1.0
