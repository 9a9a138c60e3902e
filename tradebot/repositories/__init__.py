"""Data access layer repositories.

Each repository module provides async functions for database operations on
the ORM models in `tradebot.database.orm`. Read functions open their own
session via `get_session()`; write functions take the caller's session so a
research cycle commits in one transaction.

- paper_trades_orm: simulated trades and their closures
- research_errors_orm: loss diagnostics
- research_runs_orm: one row per research cycle
- research_weights_orm: base factor weight history
"""

from . import paper_trades_orm
from . import research_errors_orm
from . import research_runs_orm
from . import research_weights_orm

__all__ = [
    "paper_trades_orm",
    "research_errors_orm",
    "research_runs_orm",
    "research_weights_orm",
]
