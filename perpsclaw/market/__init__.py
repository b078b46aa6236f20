"""Derivatives market analysis: funding, open interest, liquidation risk
and sentiment."""

from perpsclaw.market.funding import analyze_funding_rate, funding_rate_signal
from perpsclaw.market.liquidation import assess_liquidation_risk
from perpsclaw.market.open_interest import OpenInterestTracker, open_interest_signal
from perpsclaw.market.sentiment import build_market_data, calculate_market_sentiment

__all__ = [
    'analyze_funding_rate',
    'funding_rate_signal',
    'OpenInterestTracker',
    'open_interest_signal',
    'assess_liquidation_risk',
    'calculate_market_sentiment',
    'build_market_data',
]
