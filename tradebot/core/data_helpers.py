"""
Centralized Data Conversion Helpers.

This module provides safe type conversion utilities used across the codebase.
Research inputs arrive as loosely-typed JSON, so every numeric field passes
through here before it reaches a scorer.

Usage:
    from tradebot.core.data_helpers import safe_float, safe_datetime, pct_change
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any


def safe_float(value: Any, default: float | None = None) -> float | None:
    """
    Safely convert value to float.

    Handles None, NaN, Inf, booleans and conversion errors gracefully.

    Args:
        value: Any value to convert
        default: Default to return if conversion fails

    Returns:
        Float value or default if conversion fails
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        f = float(value)
    except (ValueError, TypeError):
        return default
    if not math.isfinite(f):
        return default
    return f


def safe_datetime(value: Any) -> datetime | None:
    """
    Safely convert value to a timezone-aware UTC datetime.

    Handles datetime, date, ISO strings (including a trailing "Z") and
    epoch timestamps. Naive values are assumed to be UTC.

    Args:
        value: Any value to convert

    Returns:
        Aware datetime or None if conversion fails
    """
    if value is None or isinstance(value, bool):
        return None
    parsed: datetime | None = None
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            parsed = datetime(value.year, value.month, value.day)
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        elif isinstance(value, (int, float)):
            if not math.isfinite(value):
                return None
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    except (ValueError, TypeError, OSError, OverflowError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


async def run_in_executor(func: Any, *args: Any) -> Any:
    """
    Run a blocking function in the default thread pool.

    Use this to wrap blocking I/O calls (like reading research files) in
    async code.
    """
    import asyncio
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


def pct_change(
    current: float | None,
    previous: float | None,
    *,
    as_percent: bool = False,
) -> float | None:
    """
    Compute percentage change between two values.

    Args:
        current: Current/new value
        previous: Previous/old value (base for comparison)
        as_percent: If True, multiply by 100 (e.g., 0.05 -> 5.0)

    Returns:
        Percentage change as decimal (0.05) or percent (5.0), or None if invalid

    Examples:
        >>> pct_change(110, 100)
        0.1
        >>> pct_change(50, 100)
        -0.5
    """
    if current is None or previous is None or previous == 0:
        return None
    result = (current - previous) / abs(previous)
    return result * 100 if as_percent else result


__all__ = [
    "safe_float",
    "safe_datetime",
    "run_in_executor",
    "pct_change",
]
