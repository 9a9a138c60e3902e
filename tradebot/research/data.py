"""
Research input models and the JSON file loader.

Research files are produced by an external pipeline and arrive with camelCase
keys and loosely-typed numbers. Every numeric field is optional; non-finite or
unparseable values are coerced to ``None`` so downstream scorers treat them as
missing. A malformed entry is dropped with a warning instead of failing the
whole load.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Literal, Mapping, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from tradebot.core.data_helpers import safe_datetime, safe_float


logger = logging.getLogger(__name__)


def _optional_float(value: Any) -> float | None:
    return safe_float(value)


def _optional_trend(value: Any) -> str | None:
    if isinstance(value, str) and value.strip().lower() in ("up", "down", "flat"):
        return value.strip().lower()
    return None


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _string_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(v for v in value if isinstance(v, str))


OptionalFloat = Annotated[Optional[float], BeforeValidator(_optional_float)]
OptionalTimestamp = Annotated[Optional[datetime], BeforeValidator(safe_datetime)]
MarketTrend = Annotated[Optional[Literal["up", "down", "flat"]], BeforeValidator(_optional_trend)]
StringTuple = Annotated[tuple[str, ...], BeforeValidator(_string_tuple)]
Flag = Annotated[bool, BeforeValidator(_flag)]


class _ResearchModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class Fundamentals(_ResearchModel):
    symbol: str = ""
    sector: Optional[str] = None
    industry: Optional[str] = None
    market_cap: OptionalFloat = None
    pe: OptionalFloat = None
    ps: OptionalFloat = None
    ev_ebitda: OptionalFloat = None
    revenue_growth: OptionalFloat = None
    eps_growth: OptionalFloat = None
    gross_margin: OptionalFloat = None
    operating_margin: OptionalFloat = None
    net_margin: OptionalFloat = None
    debt_to_equity: OptionalFloat = None
    roic: OptionalFloat = None
    roe: OptionalFloat = None
    fcf_yield: OptionalFloat = None


class Technicals(_ResearchModel):
    symbol: str = ""
    rsi: OptionalFloat = None
    sma50: OptionalFloat = None
    sma200: OptionalFloat = None
    atr_pct: OptionalFloat = None
    beta: OptionalFloat = None
    max_drawdown: OptionalFloat = None
    momentum_1m: OptionalFloat = Field(default=None, alias="momentum1m")
    momentum_3m: OptionalFloat = Field(default=None, alias="momentum3m")
    momentum_6m: OptionalFloat = Field(default=None, alias="momentum6m")
    correlation_with_market: OptionalFloat = None
    correlation_with_portfolio: OptionalFloat = None


class MacroData(_ResearchModel):
    updated_at: Optional[str] = None
    vix: OptionalFloat = None
    yield_curve_slope: OptionalFloat = None
    inflation: OptionalFloat = None
    unemployment: OptionalFloat = None
    market_trend: MarketTrend = None
    risk_on_score: OptionalFloat = None


class NewsItem(_ResearchModel):
    published_at: OptionalTimestamp = None
    sentiment: OptionalFloat = None
    importance: OptionalFloat = None
    source: Optional[str] = None
    headline: Optional[str] = None


class EarningsCallSummary(_ResearchModel):
    published_at: OptionalTimestamp = None
    tone: OptionalFloat = None
    guidance_delta: OptionalFloat = None
    kpi_trends: StringTuple = ()
    source: Optional[str] = None


class _CapitalFlow(_ResearchModel):
    updated_at: Optional[str] = None
    net_shares: OptionalFloat = None
    net_value: OptionalFloat = None
    source: Optional[str] = None


class InsiderActivity(_CapitalFlow):
    pass


class InstitutionalFlow(_CapitalFlow):
    pass


class LiquidityMetrics(_ResearchModel):
    avg_volume: OptionalFloat = None
    avg_dollar_volume: OptionalFloat = None
    spread_pct: OptionalFloat = None


class RiskFlags(_ResearchModel):
    legal_issues: Flag = False
    accounting_anomaly: Flag = False
    regulatory_overhang: Flag = False
    high_short_interest: Flag = False
    source: Optional[str] = None


class ResearchData(BaseModel):
    """All research inputs for one cycle, keyed by symbol."""

    model_config = ConfigDict(frozen=True)

    fundamentals: dict[str, Fundamentals] = Field(default_factory=dict)
    technicals: dict[str, Technicals] = Field(default_factory=dict)
    macro: MacroData = Field(default_factory=MacroData)
    news: dict[str, tuple[NewsItem, ...]] = Field(default_factory=dict)
    earnings: dict[str, tuple[EarningsCallSummary, ...]] = Field(default_factory=dict)
    insider: dict[str, InsiderActivity] = Field(default_factory=dict)
    institutional: dict[str, InstitutionalFlow] = Field(default_factory=dict)
    liquidity: dict[str, LiquidityMetrics] = Field(default_factory=dict)
    risk: dict[str, RiskFlags] = Field(default_factory=dict)
    sources: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    updated_at: Optional[str] = None


class SymbolSnapshot(BaseModel):
    """Latest market prices for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    latest_trade_price: OptionalFloat = None
    daily_close: OptionalFloat = None

    @property
    def price(self) -> float | None:
        """Live price for paper trading: latest trade, else daily close."""
        for value in (self.latest_trade_price, self.daily_close):
            if value is not None and value > 0:
                return value
        return None

    @property
    def reference_price(self) -> float | None:
        """Price used for trend scoring: daily close, else latest trade."""
        return self.daily_close if self.daily_close is not None else self.latest_trade_price


class Position(BaseModel):
    """Current brokerage position."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    qty: OptionalFloat = None
    market_value: OptionalFloat = None
    cost_basis: OptionalFloat = None


# =============================================================================
# Parsing
# =============================================================================


def _parse_entries(category: str, raw: Any, model: type[_ResearchModel]) -> dict[str, Any]:
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning(f"Research category {category} is not an object, ignoring")
        return {}
    out: dict[str, Any] = {}
    for symbol, entry in raw.items():
        if not isinstance(entry, Mapping):
            logger.warning(f"Invalid {category} entry for {symbol}, ignoring")
            continue
        try:
            out[symbol] = model.model_validate(entry)
        except ValidationError as e:
            logger.warning(f"Invalid {category} entry for {symbol}: {e.error_count()} errors")
    return out


def _parse_lists(category: str, raw: Any, model: type[_ResearchModel]) -> dict[str, tuple]:
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning(f"Research category {category} is not an object, ignoring")
        return {}
    out: dict[str, tuple] = {}
    for symbol, items in raw.items():
        if not isinstance(items, list):
            logger.warning(f"Invalid {category} list for {symbol}, ignoring")
            continue
        parsed = []
        for item in items:
            if not isinstance(item, Mapping):
                continue
            try:
                parsed.append(model.model_validate(item))
            except ValidationError:
                logger.debug(f"Dropping invalid {category} item for {symbol}")
        out[symbol] = tuple(parsed)
    return out


def parse_research_data(payload: Mapping[str, Any]) -> ResearchData:
    """
    Build ResearchData from raw decoded JSON categories.

    Args:
        payload: Mapping of category name (fundamentals, technicals, macro,
            news, earnings, insider, institutional, liquidity, risk, sources,
            updatedAt) to its decoded JSON value.

    Returns:
        ResearchData where every unusable entry has been dropped.
    """
    macro_raw = payload.get("macro")
    macro = MacroData()
    if isinstance(macro_raw, Mapping):
        try:
            macro = MacroData.model_validate(macro_raw)
        except ValidationError as e:
            logger.warning(f"Invalid macro data: {e.error_count()} errors")

    sources_raw = payload.get("sources")
    sources: dict[str, tuple[str, ...]] = {}
    if isinstance(sources_raw, Mapping):
        sources = {symbol: _string_tuple(v) for symbol, v in sources_raw.items()}

    updated_at = payload.get("updatedAt")

    return ResearchData(
        fundamentals=_parse_entries("fundamentals", payload.get("fundamentals"), Fundamentals),
        technicals=_parse_entries("technicals", payload.get("technicals"), Technicals),
        macro=macro,
        news=_parse_lists("news", payload.get("news"), NewsItem),
        earnings=_parse_lists("earnings", payload.get("earnings"), EarningsCallSummary),
        insider=_parse_entries("insider", payload.get("insider"), InsiderActivity),
        institutional=_parse_entries("institutional", payload.get("institutional"), InstitutionalFlow),
        liquidity=_parse_entries("liquidity", payload.get("liquidity"), LiquidityMetrics),
        risk=_parse_entries("risk", payload.get("risk"), RiskFlags),
        sources=sources,
        updated_at=updated_at if isinstance(updated_at, str) else None,
    )


RESEARCH_FILES: tuple[tuple[str, str], ...] = (
    ("fundamentals", "fundamentals.json"),
    ("technicals", "technicals.json"),
    ("macro", "macro.json"),
    ("news", "news.json"),
    ("earnings", "earnings.json"),
    ("insider", "insider.json"),
    ("institutional", "institutional.json"),
    ("liquidity", "liquidity.json"),
    ("risk", "risk.json"),
    ("sources", "sources.json"),
)


def _read_json(path: Path) -> Any:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read research file {path}: {e}")
        return None


def load_research_data(directory: str | Path) -> ResearchData:
    """Load research JSON files from a directory. Missing files mean missing data."""
    base = Path(directory)
    payload: dict[str, Any] = {}
    for key, filename in RESEARCH_FILES:
        value = _read_json(base / filename)
        if value is not None:
            payload[key] = value

    meta = _read_json(base / "meta.json")
    if isinstance(meta, Mapping) and meta.get("updatedAt"):
        payload["updatedAt"] = meta["updatedAt"]

    data = parse_research_data(payload)
    logger.info(
        f"Loaded research data from {base}: {len(data.fundamentals)} fundamentals, "
        f"{len(data.technicals)} technicals, {len(data.news)} news symbols"
    )
    return data
