"""Liquidation cascade risk.

Crowded positioning (elevated open interest, extreme funding) and a
volatility spike together are what turn a move into a cascade of forced
closes. Each input adds to a score in [0, 1] that maps to a risk level and
a position size multiplier.
"""

from typing import Optional

from perpsclaw.core.models import (
    FundingRateData,
    LiquidationRisk,
    LiquidationRiskData,
    OpenInterestData,
)

# Score contributions
ELEVATED_OI_WEIGHT = 0.2
OI_BUILDUP_WEIGHT = 0.15
EXTREME_FUNDING_WEIGHT = 0.25
VOL_SPIKE_WEIGHT = 0.2

OI_BUILDUP_PCT = 10.0
VOL_SPIKE_RATIO = 1.5
VOL_SURGE_RATIO = 2.0

SIZE_MULTIPLIERS = {
    LiquidationRisk.LOW: 1.0,
    LiquidationRisk.MEDIUM: 0.75,
    LiquidationRisk.HIGH: 0.5,
    LiquidationRisk.EXTREME: 0.25,
}

WARNINGS = {
    LiquidationRisk.HIGH: "HIGH liquidation risk: reduce position sizes and widen stops",
    LiquidationRisk.EXTREME: (
        "EXTREME liquidation risk: consider closing positions or using minimal size"
    ),
}


def classify_liquidation_risk(score: float) -> LiquidationRisk:
    if score >= 0.7:
        return LiquidationRisk.EXTREME
    if score >= 0.5:
        return LiquidationRisk.HIGH
    if score >= 0.3:
        return LiquidationRisk.MEDIUM
    return LiquidationRisk.LOW


def assess_liquidation_risk(
    open_interest: Optional[OpenInterestData],
    funding: Optional[FundingRateData],
    volatility: float,
    avg_volatility: float,
) -> LiquidationRiskData:
    """
    Score liquidation cascade risk.

    Missing open interest or funding data contributes nothing. Volatility
    only counts once there is an average to compare it with.

    Args:
        open_interest: Analysed open interest, if the venue reports it
        funding: Analysed funding rate, if the venue reports it
        volatility: Current volatility (ATR percent)
        avg_volatility: Baseline volatility on the same scale

    Returns:
        LiquidationRiskData with level, size multiplier and warning
    """
    score = 0.0

    if open_interest is not None:
        if open_interest.is_elevated:
            score += ELEVATED_OI_WEIGHT
        if open_interest.change_24h_percent > OI_BUILDUP_PCT:
            score += OI_BUILDUP_WEIGHT

    if funding is not None and funding.is_extreme:
        score += EXTREME_FUNDING_WEIGHT

    if avg_volatility > 0:
        if volatility > avg_volatility * VOL_SPIKE_RATIO:
            score += VOL_SPIKE_WEIGHT
        if volatility > avg_volatility * VOL_SURGE_RATIO:
            score += VOL_SPIKE_WEIGHT

    score = max(0.0, min(1.0, score))
    level = classify_liquidation_risk(score)

    return LiquidationRiskData(
        level=level,
        score=score,
        cascade_probability=score * 0.5,
        size_multiplier=SIZE_MULTIPLIERS[level],
        warning=WARNINGS.get(level),
    )
