"""SQLAlchemy ORM models for the research engine.

Tables:
- research_runs: one row per research cycle (analysis payload or error)
- paper_trades: simulated positions used for weight calibration
- research_weights: append-only history of base factor weights
- research_errors: advisory loss diagnostics
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Naming convention for constraints and indexes (deterministic names for Alembic)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class ResearchRun(Base):
    """Persisted outcome of a research cycle."""
    __tablename__ = "research_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    cycle_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # ok | error
    regime: Mapped[str | None] = mapped_column(String(20))
    candidate_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    excluded_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    data_quality: Mapped[float | None] = mapped_column(Numeric(6, 4, asdecimal=False))
    payload: Mapped[dict | None] = mapped_column(JSONB)  # ResearchAnalysis.to_dict()
    error: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("status IN ('ok', 'error')", name="valid_status"),
        Index("idx_research_runs_created", "created_at"),
    )


class PaperTradeRecord(Base):
    """Simulated trade opened on a top-ranked candidate."""
    __tablename__ = "paper_trades"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="open", server_default="open")
    entry_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    entry_price: Mapped[float] = mapped_column(Numeric(18, 6, asdecimal=False), nullable=False)
    horizon_days: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[float] = mapped_column(Numeric(8, 6, asdecimal=False), nullable=False)
    confidence: Mapped[float] = mapped_column(Numeric(8, 6, asdecimal=False), nullable=False)
    factors: Mapped[dict] = mapped_column(JSONB, nullable=False)  # factor -> score at entry
    exit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    exit_price: Mapped[float | None] = mapped_column(Numeric(18, 6, asdecimal=False))
    return_pct: Mapped[float | None] = mapped_column(Numeric(12, 6, asdecimal=False))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("status IN ('open', 'closed')", name="valid_status"),
        CheckConstraint("entry_price > 0", name="positive_entry_price"),
        Index("idx_paper_trades_status", "status"),
        Index("idx_paper_trades_symbol_status", "symbol", "status"),
        Index("idx_paper_trades_exit", "exit_at"),
    )


class ResearchWeight(Base):
    """Base factor weight vector. The newest row is the effective one."""
    __tablename__ = "research_weights"

    id: Mapped[int] = mapped_column(primary_key=True)
    weights: Mapped[dict] = mapped_column(JSONB, nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_research_weights_created", "created_at"),
    )


class ResearchErrorLog(Base):
    """Diagnostic written when a paper trade loses beyond the threshold."""
    __tablename__ = "research_errors"

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    rule: Mapped[str | None] = mapped_column(String(50))
    context: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_research_errors_symbol", "symbol"),
    )
