"""Tradebot research analysis and adaptive weighting engine."""

__version__ = "1.0.0"
