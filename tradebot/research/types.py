"""
Core type definitions for the research engine.

All dataclasses are frozen so a cycle's analysis cannot be mutated after it
is built. Factor-keyed values use the closed ``Factor`` enum rather than free
string keys.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from tradebot.core.data_helpers import pct_change
from tradebot.core.exceptions import PaperTradeStateError


class MarketRegime(str, Enum):
    """Coarse macro-market classification."""
    RISK_ON = "risk_on"
    RISK_OFF = "risk_off"
    HIGH_VOL = "high_vol"
    NEUTRAL = "neutral"


class Factor(str, Enum):
    """Scoring factors. ``PEER`` sits outside the renormalized weight set."""
    FUNDAMENTALS = "fundamentals"
    TECHNICALS = "technicals"
    MACRO = "macro"
    SENTIMENT = "sentiment"
    QUALITY = "quality"
    VALUATION = "valuation"
    PEER = "peer"


BASE_FACTORS: tuple[Factor, ...] = (
    Factor.FUNDAMENTALS,
    Factor.TECHNICALS,
    Factor.MACRO,
    Factor.SENTIMENT,
    Factor.QUALITY,
    Factor.VALUATION,
)


class ChecklistStatus(str, Enum):
    PASS = "pass"
    NEUTRAL = "neutral"
    FAIL = "fail"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class FactorWeights:
    """
    Weight vector over the six base factors.

    Instances are values: every adjustment returns a new vector.
    """
    fundamentals: float
    technicals: float
    macro: float
    sentiment: float
    quality: float
    valuation: float

    @classmethod
    def uniform(cls) -> FactorWeights:
        w = 1.0 / len(BASE_FACTORS)
        return cls(*(w for _ in BASE_FACTORS))

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, Any],
        fallback: FactorWeights | None = None,
    ) -> FactorWeights:
        """Build from a string-keyed mapping, filling gaps from ``fallback``."""
        base = fallback or cls.uniform()
        kwargs: dict[str, float] = {}
        for factor in BASE_FACTORS:
            raw = values.get(factor.value)
            try:
                value = float(raw) if raw is not None else None
            except (TypeError, ValueError):
                value = None
            if value is None or not math.isfinite(value):
                value = base.get(factor)
            kwargs[factor.value] = value
        return cls(**kwargs)

    def get(self, factor: Factor) -> float:
        return getattr(self, factor.value)

    def with_deltas(self, deltas: Mapping[Factor, float]) -> FactorWeights:
        changes = {f.value: self.get(f) + d for f, d in deltas.items() if f in BASE_FACTORS}
        return replace(self, **changes)

    @property
    def total(self) -> float:
        return sum(self.get(f) for f in BASE_FACTORS)

    def normalized(self) -> FactorWeights:
        """Floor negatives at zero and rescale to sum to 1."""
        floored = {
            f.value: max(0.0, self.get(f)) if math.isfinite(self.get(f)) else 0.0
            for f in BASE_FACTORS
        }
        total = sum(floored.values())
        if total <= 0:
            return FactorWeights.uniform()
        return FactorWeights(**{k: v / total for k, v in floored.items()})

    def to_dict(self) -> dict[str, float]:
        return {f.value: self.get(f) for f in BASE_FACTORS}


@dataclass(frozen=True)
class FactorScores:
    """Per-factor scores of a single symbol, each in [0, 1]."""
    fundamentals: float
    technicals: float
    macro: float
    sentiment: float
    quality: float
    valuation: float
    peer: float

    def get(self, factor: Factor) -> float:
        return getattr(self, factor.value)

    def as_mapping(self) -> dict[Factor, float]:
        return {f: self.get(f) for f in Factor}

    def to_dict(self) -> dict[str, float]:
        return {f.value: self.get(f) for f in Factor}


@dataclass(frozen=True)
class ChecklistItem:
    factor: str
    status: ChecklistStatus
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"factor": self.factor, "status": self.status.value}
        if self.note is not None:
            out["note"] = self.note
        return out


@dataclass(frozen=True)
class ResearchCandidate:
    """A ranked symbol with its explanatory metadata."""
    symbol: str
    sector: str
    industry: str
    score: float
    confidence: float
    factor_scores: FactorScores
    checklist: tuple[ChecklistItem, ...]
    red_flags: tuple[str, ...]
    drivers: tuple[str, ...]
    risks: tuple[str, ...]
    next_steps: tuple[str, ...]
    sources: tuple[str, ...]
    data_quality: float
    regime: MarketRegime

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "sector": self.sector,
            "industry": self.industry,
            "score": self.score,
            "confidence": self.confidence,
            "factor_scores": self.factor_scores.to_dict(),
            "checklist": [item.to_dict() for item in self.checklist],
            "red_flags": list(self.red_flags),
            "drivers": list(self.drivers),
            "risks": list(self.risks),
            "next_steps": list(self.next_steps),
            "sources": list(self.sources),
            "data_quality": self.data_quality,
            "regime": self.regime.value,
        }


@dataclass(frozen=True)
class ResearchExclusion:
    symbol: str
    sector: str
    industry: str
    reasons: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "sector": self.sector,
            "industry": self.industry,
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class ResearchAnalysis:
    """One cycle's ranking output."""
    regime: MarketRegime
    candidates: tuple[ResearchCandidate, ...]
    excluded: tuple[ResearchExclusion, ...]
    weights: FactorWeights
    constraints: Mapping[str, Any]
    next_steps: tuple[str, ...]
    data_quality: float

    def top(self, n: int) -> tuple[ResearchCandidate, ...]:
        return self.candidates[: max(0, n)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "regime": self.regime.value,
            "candidates": [c.to_dict() for c in self.candidates],
            "excluded": [e.to_dict() for e in self.excluded],
            "weights": self.weights.to_dict(),
            "constraints": dict(self.constraints),
            "next_steps": list(self.next_steps),
            "data_quality": self.data_quality,
        }


@dataclass(frozen=True)
class PaperTrade:
    """
    Simulated position used for weight calibration.

    ``factors`` is the factor snapshot taken at entry; it may be partial when
    loaded from storage written by an older schema.
    """
    symbol: str
    created_at: datetime
    entry_at: datetime
    entry_price: float
    horizon_days: int
    score: float
    confidence: float
    factors: Mapping[Factor, float]
    status: TradeStatus = TradeStatus.OPEN
    id: int | None = None
    exit_at: datetime | None = None
    exit_price: float | None = None
    return_pct: float | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status is TradeStatus.OPEN

    def is_due(self, now: datetime) -> bool:
        """True once the full horizon has elapsed since entry."""
        return (now - self.entry_at).total_seconds() >= self.horizon_days * 86400

    def close(
        self,
        exit_price: float,
        exit_at: datetime,
        notes: str | None = None,
    ) -> PaperTrade:
        """Return the closed version of this trade. Closing happens once."""
        if not self.is_open:
            raise PaperTradeStateError(
                message=f"Paper trade {self.id} for {self.symbol} is already closed",
                details={"id": self.id, "symbol": self.symbol},
            )
        return_pct = pct_change(exit_price, self.entry_price)
        return replace(
            self,
            status=TradeStatus.CLOSED,
            exit_at=exit_at,
            exit_price=exit_price,
            return_pct=return_pct,
            notes=notes if notes is not None else self.notes,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "created_at": self.created_at.isoformat(),
            "entry_at": self.entry_at.isoformat(),
            "entry_price": self.entry_price,
            "horizon_days": self.horizon_days,
            "score": self.score,
            "confidence": self.confidence,
            "factors": {f.value: v for f, v in self.factors.items()},
            "status": self.status.value,
            "exit_at": self.exit_at.isoformat() if self.exit_at else None,
            "exit_price": self.exit_price,
            "return_pct": self.return_pct,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class WeightRecord:
    """Persisted base weight vector. The latest record is the effective one."""
    weights: FactorWeights
    created_at: datetime
    id: int | None = None
    note: str | None = None


@dataclass(frozen=True)
class ResearchErrorEntry:
    """Advisory diagnostic for a losing paper trade. Never read back."""
    symbol: str
    reason: str
    created_at: datetime
    rule: str | None = None
    context: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class WeightFeedback:
    """Outcome of one weight feedback step."""
    previous: FactorWeights
    weights: FactorWeights
    deltas: Mapping[Factor, float]
    winners: int
    losers: int

    @property
    def note(self) -> str:
        n = self.winners + self.losers
        return f"feedback from {n} closed paper trades ({self.winners} won, {self.losers} lost)"


@dataclass(frozen=True)
class CycleOutcome:
    """Everything a research cycle produced, persisted in one transaction."""
    started_at: datetime
    finished_at: datetime
    cycle_id: str
    analysis: ResearchAnalysis | None = None
    opened: tuple[PaperTrade, ...] = ()
    closed: tuple[PaperTrade, ...] = ()
    feedback: WeightFeedback | None = None
    errors: tuple[ResearchErrorEntry, ...] = ()
    failures: tuple[str, ...] = ()
    run_id: int | None = None

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        if not self.ok:
            return f"Research cycle failed: {'; '.join(self.failures)}"
        ranked = len(self.analysis.candidates) if self.analysis else 0
        excluded = len(self.analysis.excluded) if self.analysis else 0
        reweighted = "yes" if self.feedback else "no"
        return (
            f"Ranked {ranked}, excluded {excluded}, opened {len(self.opened)}, "
            f"closed {len(self.closed)} paper trades, reweighted: {reweighted}"
        )
