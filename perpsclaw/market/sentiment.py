"""Composite market sentiment and the per-tick market data bundle."""

from typing import Optional

from perpsclaw.core.models import (
    FundingRateData,
    LiquidationRisk,
    MarketData,
    MarketSentiment,
    OpenInterestData,
    SentimentLevel,
)
from perpsclaw.market.funding import funding_rate_signal
from perpsclaw.market.liquidation import assess_liquidation_risk
from perpsclaw.market.open_interest import open_interest_signal

FUNDING_WEIGHT = 0.3
OPEN_INTEREST_WEIGHT = 0.3
MOMENTUM_WEIGHT = 0.4

# Confidence haircut by liquidation risk level
CONFIDENCE_MULTIPLIERS = {
    LiquidationRisk.HIGH: 0.7,
    LiquidationRisk.EXTREME: 0.5,
}

# Extra haircut on both multipliers when the crowd is at an extreme
EXTREME_SENTIMENT_MULTIPLIER = 0.8


def rsi_momentum(rsi_value: float) -> float:
    """RSI mapped to [-0.5, 0.5]; saturated outside the 30/70 band."""
    if rsi_value > 70:
        return 0.5
    if rsi_value < 30:
        return -0.5
    return (rsi_value - 50) / 50


def classify_sentiment(score: float) -> SentimentLevel:
    if score >= 0.5:
        return SentimentLevel.EXTREME_GREED
    if score >= 0.2:
        return SentimentLevel.GREED
    if score <= -0.5:
        return SentimentLevel.EXTREME_FEAR
    if score <= -0.2:
        return SentimentLevel.FEAR
    return SentimentLevel.NEUTRAL


def calculate_market_sentiment(
    funding: Optional[FundingRateData],
    open_interest: Optional[OpenInterestData],
    price_change: float,
    rsi_value: float,
) -> MarketSentiment:
    """
    Blend funding, open interest and RSI momentum into one score.

    Weights are 0.3 funding, 0.3 open interest and 0.4 momentum. A missing
    input contributes a neutral 0.

    Args:
        funding: Analysed funding rate, if available
        open_interest: Analysed open interest, if available
        price_change: Recent price change in percent
        rsi_value: Current RSI

    Returns:
        MarketSentiment with the score in [-1, 1] and its level
    """
    funding_bias = funding_rate_signal(funding) if funding is not None else 0.0
    oi_bias = (
        open_interest_signal(open_interest, price_change)
        if open_interest is not None else 0.0
    )
    momentum = rsi_momentum(rsi_value)

    score = (
        funding_bias * FUNDING_WEIGHT
        + oi_bias * OPEN_INTEREST_WEIGHT
        + momentum * MOMENTUM_WEIGHT
    )
    score = max(-1.0, min(1.0, score))

    return MarketSentiment(
        score=score,
        level=classify_sentiment(score),
        funding_signal=funding_bias,
        open_interest_signal=oi_bias,
        momentum_signal=momentum,
    )


def build_market_data(
    funding: Optional[FundingRateData],
    open_interest: Optional[OpenInterestData],
    price_change: float,
    rsi_value: float,
    volatility: float,
    avg_volatility: float,
) -> MarketData:
    """
    Bundle the derivatives-market readings for one tick.

    The position multiplier is the liquidation size multiplier; high and
    extreme liquidation risk also cut confidence. Extreme fear or greed
    shaves a further 20% off both.
    """
    liquidation = assess_liquidation_risk(open_interest, funding, volatility, avg_volatility)
    sentiment = calculate_market_sentiment(funding, open_interest, price_change, rsi_value)

    confidence_multiplier = CONFIDENCE_MULTIPLIERS.get(liquidation.level, 1.0)
    position_multiplier = liquidation.size_multiplier

    if sentiment.level in (SentimentLevel.EXTREME_GREED, SentimentLevel.EXTREME_FEAR):
        confidence_multiplier *= EXTREME_SENTIMENT_MULTIPLIER
        position_multiplier *= EXTREME_SENTIMENT_MULTIPLIER

    return MarketData(
        funding=funding,
        open_interest=open_interest,
        liquidation_risk=liquidation,
        sentiment=sentiment,
        position_multiplier=position_multiplier,
        confidence_multiplier=confidence_multiplier,
    )
