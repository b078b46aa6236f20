"""Market regime classification for the PerpsClaw decision engine."""

from perpsclaw.regime.detector import (
    RegimeChangeTracker,
    calculate_atr_percentile,
    classify_trend_strength,
    classify_volatility_regime,
    detect_regime,
    recommended_agents,
    risk_adjustment,
    should_agent_trade,
    state_based_regime,
)

__all__ = [
    'RegimeChangeTracker',
    'calculate_atr_percentile',
    'classify_trend_strength',
    'classify_volatility_regime',
    'detect_regime',
    'recommended_agents',
    'risk_adjustment',
    'should_agent_trade',
    'state_based_regime',
]
