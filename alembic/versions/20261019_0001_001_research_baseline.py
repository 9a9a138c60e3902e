"""research_baseline

Revision ID: 001_research_baseline
Revises:
Create Date: 2026-10-19 00:01:00.000000+00:00

Creates the research engine schema: research runs, paper trades, weight
history and loss diagnostics.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = "001_research_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create research tables."""
    op.create_table(
        "research_runs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("cycle_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("regime", sa.String(20)),
        sa.Column("candidate_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("excluded_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("data_quality", sa.Numeric(6, 4)),
        sa.Column("payload", JSONB),
        sa.Column("error", sa.Text),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.CheckConstraint("status IN ('ok', 'error')", name="ck_research_runs_valid_status"),
    )
    op.create_index("idx_research_runs_created", "research_runs", ["created_at"])

    op.create_table(
        "paper_trades",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="open"),
        sa.Column("entry_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("entry_price", sa.Numeric(18, 6), nullable=False),
        sa.Column("horizon_days", sa.Integer, nullable=False),
        sa.Column("score", sa.Numeric(8, 6), nullable=False),
        sa.Column("confidence", sa.Numeric(8, 6), nullable=False),
        sa.Column("factors", JSONB, nullable=False),
        sa.Column("exit_at", sa.DateTime(timezone=True)),
        sa.Column("exit_price", sa.Numeric(18, 6)),
        sa.Column("return_pct", sa.Numeric(12, 6)),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.CheckConstraint("status IN ('open', 'closed')", name="ck_paper_trades_valid_status"),
        sa.CheckConstraint("entry_price > 0", name="ck_paper_trades_positive_entry_price"),
    )
    op.create_index("idx_paper_trades_status", "paper_trades", ["status"])
    op.create_index("idx_paper_trades_symbol_status", "paper_trades", ["symbol", "status"])
    op.create_index("idx_paper_trades_exit", "paper_trades", ["exit_at"])

    op.create_table(
        "research_weights",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("weights", JSONB, nullable=False),
        sa.Column("note", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("idx_research_weights_created", "research_weights", ["created_at"])

    op.create_table(
        "research_errors",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("symbol", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("rule", sa.String(50)),
        sa.Column("context", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("idx_research_errors_symbol", "research_errors", ["symbol"])


def downgrade() -> None:
    """Drop research tables."""
    op.drop_index("idx_research_errors_symbol", table_name="research_errors")
    op.drop_table("research_errors")
    op.drop_index("idx_research_weights_created", table_name="research_weights")
    op.drop_table("research_weights")
    op.drop_index("idx_paper_trades_exit", table_name="paper_trades")
    op.drop_index("idx_paper_trades_symbol_status", table_name="paper_trades")
    op.drop_index("idx_paper_trades_status", table_name="paper_trades")
    op.drop_table("paper_trades")
    op.drop_index("idx_research_runs_created", table_name="research_runs")
    op.drop_table("research_runs")
