"""
Market regime detection and regime-aware weight adjustment.

The regime is read from the macro snapshot and shifts factor weights for the
current cycle only. The persisted base weights are never changed here.
"""

from __future__ import annotations

import logging
from typing import Mapping

from tradebot.research.data import MacroData
from tradebot.research.types import Factor, FactorWeights, MarketRegime

logger = logging.getLogger(__name__)


# VIX level at or above which the market is considered high-volatility
HIGH_VOL_VIX = 25.0
RISK_ON_FLOOR = 0.6
RISK_OFF_CEILING = 0.4

REGIME_WEIGHT_DELTAS: Mapping[MarketRegime, Mapping[Factor, float]] = {
    MarketRegime.HIGH_VOL: {
        Factor.QUALITY: 0.05,
        Factor.VALUATION: 0.05,
        Factor.TECHNICALS: -0.05,
        Factor.SENTIMENT: -0.05,
    },
    MarketRegime.RISK_ON: {
        Factor.TECHNICALS: 0.05,
        Factor.SENTIMENT: 0.05,
        Factor.VALUATION: -0.05,
        Factor.QUALITY: -0.05,
    },
    MarketRegime.RISK_OFF: {
        Factor.FUNDAMENTALS: 0.05,
        Factor.VALUATION: 0.05,
        Factor.TECHNICALS: -0.05,
        Factor.SENTIMENT: -0.05,
    },
    MarketRegime.NEUTRAL: {},
}


def detect_regime(macro: MacroData) -> MarketRegime:
    """
    Classify the market regime from macro data.

    Parameters
    ----------
    macro : MacroData
        Macro snapshot. Missing VIX counts as 0, missing risk-on score as
        0.5 and missing trend as flat.

    Returns
    -------
    MarketRegime
        ``high_vol`` takes precedence over the risk-on/off classification.
    """
    vix = macro.vix if macro.vix is not None else 0.0
    risk_on = macro.risk_on_score if macro.risk_on_score is not None else 0.5
    trend = macro.market_trend or "flat"

    if vix >= HIGH_VOL_VIX:
        return MarketRegime.HIGH_VOL
    if risk_on >= RISK_ON_FLOOR and trend == "up":
        return MarketRegime.RISK_ON
    if risk_on <= RISK_OFF_CEILING and trend == "down":
        return MarketRegime.RISK_OFF
    return MarketRegime.NEUTRAL


def adjust_weights_for_regime(weights: FactorWeights, regime: MarketRegime) -> FactorWeights:
    """Apply the regime's fixed deltas, then renormalize to sum to 1."""
    adjusted = weights.with_deltas(REGIME_WEIGHT_DELTAS[regime]).normalized()
    logger.debug(f"Regime {regime.value} weights: {adjusted.to_dict()}")
    return adjusted
