"""Tests for red flags, portfolio exposure and exclusion rules."""

import pytest

from tradebot.research.config import ConcentrationPolicy, ResearchConstraints
from tradebot.research.constraints import (
    PortfolioExposure,
    build_red_flags,
    compute_exposure,
    exclusion_reasons,
)
from tradebot.research.data import (
    Fundamentals,
    LiquidityMetrics,
    Position,
    RiskFlags,
    Technicals,
)


EMPTY = PortfolioExposure()


class TestRedFlags:
    """Red flags from thresholds and risk booleans."""

    def test_threshold_breaches(self):
        constraints = ResearchConstraints()
        flags = build_red_flags(
            constraints,
            Fundamentals(symbol="X", market_cap=5e8),
            Technicals(symbol="X", max_drawdown=0.7),
            LiquidityMetrics(avg_dollar_volume=1e6),
            None,
        )
        assert flags == [
            "market cap below minimum",
            "dollar volume below minimum",
            "drawdown exceeds max",
        ]

    def test_disabled_thresholds_never_flag(self):
        constraints = ResearchConstraints(min_market_cap=0, min_dollar_volume=0, max_drawdown=0)
        flags = build_red_flags(
            constraints,
            Fundamentals(symbol="X", market_cap=1),
            Technicals(symbol="X", max_drawdown=0.99),
            LiquidityMetrics(avg_dollar_volume=1),
            None,
        )
        assert flags == []

    def test_missing_metrics_never_flag(self):
        assert build_red_flags(ResearchConstraints(), None, None, None, None) == []

    def test_risk_booleans(self):
        risk = RiskFlags(legal_issues=True, high_short_interest="true")
        flags = build_red_flags(ResearchConstraints(), None, None, None, risk)
        assert flags == ["legal issues", "high short interest"]


class TestExposure:
    """Position grouping and concentration weights."""

    def test_compute_exposure_groups_by_sector(self):
        fundamentals = {
            "A": Fundamentals(symbol="A", sector="Tech", industry="Software"),
            "B": Fundamentals(symbol="B", sector="Energy", industry="Oil"),
        }
        positions = [
            Position(symbol="A", market_value=700),
            Position(symbol="B", market_value=300),
            Position(symbol="C", market_value=None),
        ]
        exposure = compute_exposure(positions, fundamentals)
        assert exposure.total == 1000
        assert exposure.sectors == {"Tech": 700, "Energy": 300}

    def test_unknown_sector_for_unresearched_holding(self):
        exposure = compute_exposure([Position(symbol="Z", market_value=100)], {})
        assert exposure.sectors == {"unknown": 100}
        assert exposure.industries == {"unknown": 100}

    def test_post_trade_weight(self):
        exposure = PortfolioExposure(sectors={"A": 700, "B": 300}, total=1000)
        weight = exposure.sector_weight("A", ConcentrationPolicy.POST_TRADE, 500)
        assert weight == pytest.approx(1200 / 1500)

    def test_pre_trade_weight(self):
        exposure = PortfolioExposure(sectors={"A": 700, "B": 300}, total=1000)
        assert exposure.sector_weight("A", ConcentrationPolicy.PRE_TRADE) == pytest.approx(0.7)
        assert exposure.sector_weight("C", ConcentrationPolicy.PRE_TRADE) == 0.0

    def test_order_notional_is_capped_by_portfolio_size(self):
        small = PortfolioExposure(sectors={"A": 1000}, total=1000)
        large = PortfolioExposure(sectors={"A": 100_000}, total=100_000)
        assert small.order_notional(500, 0.1) == pytest.approx(100)
        assert large.order_notional(500, 0.1) == 500
        assert PortfolioExposure().order_notional(500, 0.1) == 0.0


class TestExclusionReasons:
    """Hard exclusion rules."""

    def _reasons(self, constraints, symbol="X", sector="Tech", industry="Software",
                 red_flags=(), t=None, exposure=EMPTY):
        return exclusion_reasons(symbol, sector, industry, red_flags, t, exposure, constraints)

    def test_clean_symbol_is_not_excluded(self):
        assert self._reasons(ResearchConstraints()) == []

    def test_allowlist(self):
        constraints = ResearchConstraints(include_symbols=frozenset({"AAPL"}))
        assert self._reasons(constraints, symbol="MSFT") == ["not in allowlist"]
        assert self._reasons(constraints, symbol="AAPL") == []

    def test_blocklists(self):
        constraints = ResearchConstraints(
            exclude_symbols=frozenset({"X"}),
            exclude_sectors=frozenset({"Tech"}),
            exclude_industries=frozenset({"Software"}),
        )
        assert self._reasons(constraints) == [
            "excluded symbol",
            "excluded sector",
            "excluded industry",
        ]

    def test_red_flags_become_reasons(self):
        reasons = self._reasons(ResearchConstraints(), red_flags=["legal issues"])
        assert reasons == ["red flag: legal issues"]

    def test_correlation_above_max(self):
        t = Technicals(symbol="X", correlation_with_portfolio=0.9)
        assert self._reasons(ResearchConstraints(max_correlation=0.85), t=t) == [
            "correlation above max"
        ]

    def test_all_reasons_are_collected(self):
        constraints = ResearchConstraints(exclude_symbols=frozenset({"X"}))
        t = Technicals(symbol="X", correlation_with_portfolio=0.95)
        reasons = self._reasons(constraints, red_flags=["accounting anomaly"], t=t)
        assert reasons == [
            "excluded symbol",
            "red flag: accounting anomaly",
            "correlation above max",
        ]

    def test_empty_portfolio_skips_caps(self):
        constraints = ResearchConstraints(sector_cap=0.01, industry_cap=0.01)
        assert self._reasons(constraints) == []

    @pytest.mark.parametrize("policy", list(ConcentrationPolicy))
    def test_sector_cap_excludes_concentrated_sector(self, policy):
        """With {A: 700, B: 300} and a 0.5 cap, sector A is over the cap under either policy."""
        constraints = ResearchConstraints(
            sector_cap=0.5,
            industry_cap=1.0,
            concentration_policy=policy,
            candidate_notional=100,
        )
        exposure = PortfolioExposure(
            sectors={"A": 700, "B": 300}, industries={"i": 1000}, total=1000
        )
        assert self._reasons(constraints, sector="A", industry="i", exposure=exposure) == [
            "sector cap exceeded"
        ]
        assert self._reasons(constraints, sector="B", industry="i", exposure=exposure) == []

    def test_fresh_sector_allowed_under_both_policies(self):
        exposure = PortfolioExposure(
            sectors={"A": 7000, "B": 3000}, industries={"i": 10000}, total=10000
        )
        for policy in ConcentrationPolicy:
            constraints = ResearchConstraints(
                sector_cap=0.5, industry_cap=1.0, concentration_policy=policy
            )
            assert self._reasons(constraints, sector="C", industry="j", exposure=exposure) == []

    def test_fresh_sector_on_small_portfolio_under_default_caps(self):
        """{A: 700 Tech/Software, B: 300 Energy/Oil} with a 0.5 sector cap."""
        constraints = ResearchConstraints(sector_cap=0.5)
        exposure = PortfolioExposure(
            sectors={"Tech": 700, "Energy": 300},
            industries={"Software": 700, "Oil": 300},
            total=1000,
        )
        assert self._reasons(constraints, sector="Health", industry="Pharma", exposure=exposure) == []
        assert self._reasons(constraints, sector="Tech", industry="Hardware", exposure=exposure) == [
            "sector cap exceeded"
        ]

    def test_industry_cap(self):
        constraints = ResearchConstraints(
            sector_cap=1.0,
            industry_cap=0.25,
            concentration_policy=ConcentrationPolicy.PRE_TRADE,
        )
        exposure = PortfolioExposure(
            sectors={"Tech": 1000}, industries={"Software": 400, "Chips": 600}, total=1000
        )
        assert self._reasons(constraints, exposure=exposure) == ["industry cap exceeded"]
