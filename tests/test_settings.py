"""Tests for settings parsing and research configuration."""

import pytest
from pydantic import ValidationError

from tradebot.core.config import DEFAULT_RESEARCH_WEIGHTS, Settings
from tradebot.research.config import ConcentrationPolicy, ResearchConfig


class TestSettings:
    """Settings parsing."""

    def test_symbol_lists_from_csv(self):
        s = Settings(symbols="aapl, msft ,,nvda", research_exclude_sectors="Energy, Utilities")
        assert s.symbols == ["AAPL", "MSFT", "NVDA"]
        assert s.research_exclude_sectors == ["Energy", "Utilities"]

    def test_symbol_lists_from_env(self, monkeypatch):
        monkeypatch.setenv("SYMBOLS", "tsla,amd")
        monkeypatch.setenv("RESEARCH_INCLUDE_SYMBOLS", "TSLA")
        s = Settings()
        assert s.symbols == ["TSLA", "AMD"]
        assert s.research_include_symbols == ["TSLA"]

    def test_partial_weights_are_filled_from_defaults(self):
        s = Settings(research_weights={"technicals": 0.5})
        assert s.research_weights["technicals"] == 0.5
        assert s.research_weights["fundamentals"] == DEFAULT_RESEARCH_WEIGHTS["fundamentals"]

    def test_unknown_weight_key_rejected(self):
        with pytest.raises(ValidationError):
            Settings(research_weights={"momentum": 0.5})

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError):
            Settings(research_weights={"macro": -0.1})

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="verbose")

    def test_alpaca_credentials_from_env(self, monkeypatch):
        monkeypatch.setenv("APCA_API_KEY_ID", "my-key")
        assert Settings().alpaca_key_id == "my-key"


class TestResearchConfig:
    """ResearchConfig built from settings."""

    def test_from_settings(self):
        s = Settings(
            symbols="AAPL",
            research_exclude_symbols="GME",
            research_concentration_policy="pre_trade",
            research_candidate_fraction=0.2,
            research_weights={"technicals": 0.45},
            paper_trade_top_n=3,
        )
        config = ResearchConfig.from_settings(s)
        assert config.symbols == ("AAPL",)
        assert config.constraints.exclude_symbols == frozenset({"GME"})
        assert config.constraints.concentration_policy is ConcentrationPolicy.PRE_TRADE
        assert config.constraints.candidate_fraction == 0.2
        assert config.paper_trade_top_n == 3
        assert config.base_weights.total == pytest.approx(1.0)
        assert config.base_weights.technicals == pytest.approx(0.45 / 1.25)

    def test_to_dict_is_json_friendly(self):
        data = ResearchConfig().to_dict()
        assert data["constraints"]["concentration_policy"] == "post_trade"
        assert data["constraints"]["include_symbols"] == []
        assert data["constraints"]["candidate_fraction"] == 0.1
        assert sum(data["base_weights"].values()) == pytest.approx(1.0)
