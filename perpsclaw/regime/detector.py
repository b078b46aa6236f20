"""Market regime detection and agent selection.

Combines three independent reads of the market into one RegimeState:
- Hurst exponent: trending vs mean-reverting behaviour
- ATR percentile: volatility bucket
- ADX: trend strength

A state-based return classifier (bull/bear/neutral) contributes to the
composite confidence and the human-readable description. The regime then
decides which agents should trade and how much risk they may take.
"""

from typing import List, Optional, Sequence, Tuple

import structlog

from perpsclaw.core.models import (
    AgentName,
    AgentTradeDecision,
    MarketBias,
    MarketRegime,
    RegimeChange,
    RegimeState,
    TrendStrength,
    VolatilityRegime,
)
from perpsclaw.indicators import (
    adx,
    atr,
    classify_regime,
    hurst_exponent,
    realized_volatility,
    sma,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Classifiers
# =============================================================================

def classify_volatility_regime(percentile: float) -> VolatilityRegime:
    """Bucket an ATR percentile (0-100)."""
    if percentile >= 90:
        return VolatilityRegime.EXTREME
    if percentile >= 70:
        return VolatilityRegime.HIGH
    if percentile >= 30:
        return VolatilityRegime.MEDIUM
    return VolatilityRegime.LOW


def classify_trend_strength(adx_value: float) -> TrendStrength:
    """Bucket an ADX reading."""
    if adx_value >= 40:
        return TrendStrength.STRONG
    if adx_value >= 25:
        return TrendStrength.MODERATE
    if adx_value >= 15:
        return TrendStrength.WEAK
    return TrendStrength.NONE


def calculate_atr_percentile(
    prices: Sequence[float], period: int = 14, lookback: int = 100
) -> float:
    """Rank the current ATR against ATRs of progressively truncated history."""
    if len(prices) < lookback + period:
        return 50.0

    current_atr = atr(prices, period)
    historical = []
    for i in range(period, min(lookback, len(prices) - period)):
        window = prices[:len(prices) - i]
        if len(window) >= period + 1:
            historical.append(atr(window, period))

    if not historical:
        return 50.0

    below = sum(1 for value in historical if value < current_atr)
    return below / len(historical) * 100


# =============================================================================
# State-Based Classification
# =============================================================================

def _market_state(prices: Sequence[float]) -> Tuple[float, float, float]:
    """Blended short/medium return, 10-period realized vol and SMA-20 slope."""
    if len(prices) < 20:
        return 0.0, 0.0, 0.0

    last = prices[-1]
    short_base = prices[-5]
    medium_base = prices[-20]
    short_return = (last - short_base) / short_base if short_base > 0 else 0.0
    medium_return = (last - medium_base) / medium_base if medium_base > 0 else 0.0

    volatility = realized_volatility(prices, 10)

    sma20 = sma(prices, 20)
    prev_sma20 = sma(prices[:-1], 20)
    trend = (sma20 - prev_sma20) / prev_sma20 if prev_sma20 > 0 else 0.0

    return (short_return + medium_return) / 2, volatility, trend


def state_based_regime(prices: Sequence[float]) -> Tuple[MarketBias, float]:
    """Classify recent price action as bull, bear or neutral.

    Returns:
        Tuple of (bias, confidence in [0, 1])
    """
    returns, _, trend = _market_state(prices)

    if returns > 0.02 and trend > 0:
        return MarketBias.BULL, min(1.0, abs(returns) * 10 + abs(trend) * 50)

    if returns < -0.02 and trend < 0:
        return MarketBias.BEAR, min(1.0, abs(returns) * 10 + abs(trend) * 50)

    return MarketBias.NEUTRAL, max(0.0, 1.0 - abs(returns) * 5)


# =============================================================================
# Composite Regime
# =============================================================================

def recommended_agents(
    regime: MarketRegime,
    volatility: VolatilityRegime,
    trend: TrendStrength,
) -> List[AgentName]:
    """Agents suited to a regime; never empty."""
    agents: List[AgentName] = []

    if regime == MarketRegime.TRENDING and trend != TrendStrength.NONE:
        agents.append(AgentName.SHARK)

    if regime == MarketRegime.MEAN_REVERTING:
        agents.append(AgentName.WOLF)

    if regime == MarketRegime.RANDOM and volatility in (
        VolatilityRegime.LOW,
        VolatilityRegime.MEDIUM,
    ):
        agents.append(AgentName.GRID)

    if regime == MarketRegime.RANDOM and trend == TrendStrength.MODERATE:
        agents.extend([AgentName.SHARK, AgentName.WOLF])

    if volatility == VolatilityRegime.EXTREME:
        # Only the tight-stop agent survives extreme volatility
        agents = [a for a in agents if a == AgentName.WOLF]
    elif volatility == VolatilityRegime.HIGH and regime == MarketRegime.TRENDING:
        if AgentName.SHARK not in agents:
            agents.append(AgentName.SHARK)

    if not agents:
        agents.append(AgentName.WOLF)

    return agents


def risk_adjustment(
    volatility: VolatilityRegime,
    trend: TrendStrength,
    regime: MarketRegime,
) -> float:
    """Position-size multiplier in [0.2, 1.5]."""
    adjustment = {
        VolatilityRegime.EXTREME: 0.25,
        VolatilityRegime.HIGH: 0.5,
        VolatilityRegime.MEDIUM: 0.8,
        VolatilityRegime.LOW: 1.0,
    }[volatility]

    if trend == TrendStrength.STRONG:
        adjustment *= 1.2
    elif trend == TrendStrength.NONE:
        adjustment *= 0.7

    if regime == MarketRegime.RANDOM:
        adjustment *= 0.8

    return max(0.2, min(1.5, adjustment))


def describe_regime(
    regime: MarketRegime,
    volatility: VolatilityRegime,
    trend: TrendStrength,
    bias: MarketBias,
) -> str:
    """Human-readable regime summary."""
    parts = [{
        MarketBias.BULL: "Bullish market",
        MarketBias.BEAR: "Bearish market",
        MarketBias.NEUTRAL: "Neutral/ranging market",
    }[bias]]

    parts.append({
        MarketRegime.TRENDING: "with persistent trends",
        MarketRegime.MEAN_REVERTING: "with mean-reverting behavior",
        MarketRegime.RANDOM: "with random walk characteristics",
    }[regime])

    parts.append(f"({volatility.value} volatility)")

    if trend != TrendStrength.NONE:
        parts.append(f"- {trend.value} trend strength")

    return " ".join(parts)


def detect_regime(prices: Sequence[float]) -> RegimeState:
    """Classify the market from a price history.

    Args:
        prices: Oldest-first price samples (100+ recommended)

    Returns:
        Complete regime state with agent recommendations
    """
    hurst = hurst_exponent(prices)
    primary = classify_regime(hurst)

    current_atr = atr(prices, 14)
    last_price = prices[-1] if len(prices) else 0.0
    atr_pct = current_atr / last_price * 100 if last_price > 0 else 0.0

    volatility = classify_volatility_regime(calculate_atr_percentile(prices))
    adx_value = adx(prices, 14)
    trend = classify_trend_strength(adx_value)
    bias, bias_confidence = state_based_regime(prices)

    confidence = 0.5
    if hurst > 0.6 or hurst < 0.4:
        confidence += 0.2
    if adx_value > 25 or adx_value < 15:
        confidence += 0.15
    confidence += bias_confidence * 0.15
    confidence = max(0.0, min(1.0, confidence))

    return RegimeState(
        primary_regime=primary,
        volatility_regime=volatility,
        trend_strength=trend,
        hurst=hurst,
        atr_percent=atr_pct,
        adx_value=adx_value,
        confidence=confidence,
        risk_adjustment=risk_adjustment(volatility, trend, primary),
        recommended_agents=recommended_agents(primary, volatility, trend),
        description=describe_regime(primary, volatility, trend, bias),
        market_bias=bias,
    )


# =============================================================================
# Regime Change Tracking
# =============================================================================

class RegimeChangeTracker:
    """Remembers the last primary regime seen by one agent.

    Each agent owns its own tracker, so concurrent agents and test runs do
    not interfere.
    """

    def __init__(self, agent: Optional[str] = None):
        self.previous_regime: Optional[MarketRegime] = None
        self.change_count = 0
        self.logger = logger.bind(agent=agent) if agent else logger

    def check_regime_change(self, prices: Sequence[float]) -> RegimeChange:
        """Compare the current primary regime with the last one seen."""
        current = classify_regime(hurst_exponent(prices))
        return self.observe(current)

    def observe(self, current: MarketRegime) -> RegimeChange:
        """Record an already-classified regime."""
        changed = self.previous_regime is not None and self.previous_regime != current

        if changed:
            self.change_count += 1
            self.logger.info(
                "regime.changed",
                from_regime=self.previous_regime.value,
                to_regime=current.value,
                change_count=self.change_count,
            )

        result = RegimeChange(
            changed=changed,
            from_regime=self.previous_regime,
            to_regime=current,
            change_count=self.change_count,
        )
        self.previous_regime = current
        return result

    def reset_regime_tracking(self) -> None:
        """Return to the untouched initial state."""
        self.previous_regime = None
        self.change_count = 0


# =============================================================================
# Agent Selection
# =============================================================================

def should_agent_trade(agent_name: str, regime_state: RegimeState) -> AgentTradeDecision:
    """Decide whether an agent may trade in the given regime."""
    name = agent_name.lower()
    recommended = {agent.value for agent in regime_state.recommended_agents}

    if name not in recommended:
        return AgentTradeDecision(
            should_trade=False,
            reason=(
                f"{agent_name} not recommended in {regime_state.primary_regime.value} "
                f"regime with {regime_state.volatility_regime.value} volatility"
            ),
            size_multiplier=0.0,
        )

    multiplier = regime_state.risk_adjustment * (0.5 + regime_state.confidence * 0.5)
    return AgentTradeDecision(
        should_trade=True,
        reason=regime_state.description,
        size_multiplier=max(0.1, min(1.5, multiplier)),
    )
