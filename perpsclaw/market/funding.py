"""Perpetual funding rate analysis.

Funding is read contrarian: when one side pays heavily, that side is
crowded and the market is biased the other way.
"""

import math

from perpsclaw.core.models import FundingDirection, FundingRateData

# |rate| below this is treated as balanced
NEUTRAL_BAND = 0.00005

# |rate| above this (0.1% per interval) is extreme
EXTREME_RATE = 0.001


def analyze_funding_rate(rate: float, interval_hours: float = 8) -> FundingRateData:
    """
    Classify a raw funding rate.

    Args:
        rate: Funding rate per interval as a decimal (0.0001 = 0.01%)
        interval_hours: Hours between funding payments

    Returns:
        FundingRateData with paying side, extremity and annualized rate
    """
    if not math.isfinite(rate):
        rate = 0.0

    if rate > NEUTRAL_BAND:
        direction = FundingDirection.LONGS_PAY
    elif rate < -NEUTRAL_BAND:
        direction = FundingDirection.SHORTS_PAY
    else:
        direction = FundingDirection.NEUTRAL

    fundings_per_year = 365 * 24 / interval_hours if interval_hours > 0 else 0.0

    return FundingRateData(
        rate=rate,
        rate_percent=rate * 100,
        direction=direction,
        is_extreme=abs(rate) > EXTREME_RATE,
        annualized_rate=rate * fundings_per_year * 100,
    )


def funding_rate_signal(data: FundingRateData) -> float:
    """Directional bias in [-1, 1]; negative is bearish.

    Extreme funding gives a fixed +/-0.5 against the paying side. Otherwise
    the bias is a mild contrarian reading proportional to the rate.
    """
    if data.is_extreme:
        if data.direction == FundingDirection.LONGS_PAY:
            return -0.5
        if data.direction == FundingDirection.SHORTS_PAY:
            return 0.5

    return max(-1.0, min(1.0, -data.rate * 100))
