"""Data models for the PerpsClaw decision engine.

This module defines the value objects that flow through a decision cycle:
- Market data: candles, indicator snapshots, funding, open interest,
  liquidation risk and sentiment
- Regime state: composite classification and per-agent trade decisions
- Signals: strategy context in, trade signal out
- Bookkeeping: grid levels, daily PnL tracking, per-tick audit records

Prices and sizes are plain floats; every value here feeds numerical
statistics rather than order accounting. Timestamps are timezone-aware UTC.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class SignalDirection(str, Enum):
    """What a strategy wants done with the position."""
    LONG = "long"                 # Open or add to a long
    SHORT = "short"               # Open or add to a short
    CLOSE = "close"               # Reduce or flatten the current position
    NONE = "none"                 # Do nothing


class MarketRegime(str, Enum):
    """Hurst-based market behaviour classification."""
    TRENDING = "trending"
    MEAN_REVERTING = "mean_reverting"
    RANDOM = "random"


class VolatilityRegime(str, Enum):
    """Volatility bucket from the ATR percentile."""
    LOW = "low"                   # < 30th percentile
    MEDIUM = "medium"             # 30-69
    HIGH = "high"                 # 70-89
    EXTREME = "extreme"           # >= 90


class TrendStrength(str, Enum):
    """ADX-based trend strength bucket."""
    NONE = "none"                 # ADX < 15
    WEAK = "weak"                 # 15-24
    MODERATE = "moderate"         # 25-39
    STRONG = "strong"             # >= 40


class MarketBias(str, Enum):
    """Directional bias from the state-based return classifier."""
    BULL = "bull"
    BEAR = "bear"
    NEUTRAL = "neutral"


class GridSide(str, Enum):
    """Side of a grid level relative to the reference price."""
    BUY = "buy"
    SELL = "sell"


class AgentName(str, Enum):
    """Trading agents; each runs exactly one strategy."""
    SHARK = "shark"               # Momentum
    WOLF = "wolf"                 # Mean reversion
    GRID = "grid"                 # Range grid


class FundingDirection(str, Enum):
    """Which side of the perp market pays funding."""
    LONGS_PAY = "longs_pay"
    SHORTS_PAY = "shorts_pay"
    NEUTRAL = "neutral"


class LiquidationRisk(str, Enum):
    """Likelihood of a forced-liquidation cascade."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"


class SentimentLevel(str, Enum):
    """Crowd positioning read from funding, open interest and momentum."""
    EXTREME_FEAR = "extreme_fear"
    FEAR = "fear"
    NEUTRAL = "neutral"
    GREED = "greed"
    EXTREME_GREED = "extreme_greed"


# =============================================================================
# Market Data Models
# =============================================================================

class Candle(BaseModel):
    """OHLC bar aggregated from scalar price samples.

    Attributes:
        open_time: Bucket start (UTC)
        open: First sample in the bucket
        high: Highest sample
        low: Lowest sample
        close: Last sample
        complete: False only for the bucket still being filled
    """
    open_time: datetime = Field(..., description="Bucket start time (UTC)")
    open: float = Field(..., gt=0, description="Opening price")
    high: float = Field(..., gt=0, description="Highest price")
    low: float = Field(..., gt=0, description="Lowest price")
    close: float = Field(..., gt=0, description="Closing price")
    complete: bool = Field(default=False, description="Bucket closed")

    @model_validator(mode="after")
    def check_range(self) -> "Candle":
        """Validate high/low bracket open and close."""
        if self.high < max(self.open, self.close):
            raise ValueError("High must be >= max(open, close)")
        if self.low > min(self.open, self.close):
            raise ValueError("Low must be <= min(open, close)")
        return self

    @property
    def range(self) -> float:
        """Price range (high - low)."""
        return self.high - self.low


class FundingRateData(BaseModel):
    """Analysed perpetual funding rate.

    Attributes:
        rate: Raw funding rate per interval (0.0001 = 0.01%)
        rate_percent: Rate expressed in percent
        direction: Which side pays
        is_extreme: |rate| above the extreme threshold
        annualized_rate: Rate compounded linearly over a year, in percent
    """
    model_config = ConfigDict(frozen=True)

    rate: float = Field(..., description="Funding rate per interval")
    rate_percent: float = Field(..., description="Funding rate in percent")
    direction: FundingDirection = Field(..., description="Paying side")
    is_extreme: bool = Field(default=False, description="Extreme funding")
    annualized_rate: float = Field(default=0.0, description="Annualized rate (%)")


class OpenInterestData(BaseModel):
    """Open interest against its own recent history.

    Attributes:
        open_interest: Open contracts in base units
        open_interest_usd: Open interest marked at the current price
        change_24h: Change against the oldest sample within 24 hours
        change_24h_percent: Same change in percent
        is_elevated: More than 20% above its recent average
    """
    model_config = ConfigDict(frozen=True)

    open_interest: float = Field(..., ge=0)
    open_interest_usd: float = Field(..., ge=0)
    change_24h: float = 0.0
    change_24h_percent: float = 0.0
    is_elevated: bool = False


class LiquidationRiskData(BaseModel):
    """Cascade risk scored from crowding and volatility."""
    model_config = ConfigDict(frozen=True)

    level: LiquidationRisk
    score: float = Field(..., ge=0, le=1)
    cascade_probability: float = Field(..., ge=0, le=1)
    size_multiplier: float = Field(..., gt=0, le=1)
    warning: Optional[str] = None


class MarketSentiment(BaseModel):
    """Weighted blend of funding, open-interest and momentum bias."""
    model_config = ConfigDict(frozen=True)

    score: float = Field(..., ge=-1, le=1)
    level: SentimentLevel
    funding_signal: float = 0.0
    open_interest_signal: float = 0.0
    momentum_signal: float = 0.0


class MarketData(BaseModel):
    """Derivatives-market context for one tick.

    ``position_multiplier`` and ``confidence_multiplier`` shrink new
    exposure when liquidation risk or sentiment runs hot.
    """
    model_config = ConfigDict(frozen=True)

    funding: Optional[FundingRateData] = None
    open_interest: Optional[OpenInterestData] = None
    liquidation_risk: LiquidationRiskData
    sentiment: MarketSentiment
    position_multiplier: float = Field(default=1.0, gt=0, le=1)
    confidence_multiplier: float = Field(default=1.0, gt=0, le=1)


# =============================================================================
# Indicator & Regime Models
# =============================================================================

class RSIThresholds(BaseModel):
    """Oversold/overbought RSI levels."""
    model_config = ConfigDict(frozen=True)

    oversold: float
    overbought: float


class IndicatorSnapshot(BaseModel):
    """Full indicator set computed from one price history.

    Never mutated; a new snapshot is derived every tick.
    """
    model_config = ConfigDict(frozen=True)

    sma10: float = 0.0
    sma20: float = 0.0
    sma30: float = 0.0
    ema10: float = 0.0
    ema20: float = 0.0
    std_dev20: float = 0.0
    rsi14: float = 50.0
    atr14: float = 0.0
    atr_percent: float = 0.0
    hurst: float = 0.5
    regime: MarketRegime = MarketRegime.RANDOM
    adx: float = 0.0
    realized_vol: float = 0.0
    vol_percentile: float = 50.0


class RegimeState(BaseModel):
    """Composite market regime for one tick.

    Attributes:
        primary_regime: Hurst classification
        volatility_regime: ATR percentile bucket
        trend_strength: ADX bucket
        hurst: Hurst exponent used
        atr_percent: ATR as percent of price
        adx_value: ADX used
        confidence: Agreement between Hurst, ADX and return signals
        risk_adjustment: Position-size multiplier for this regime
        recommended_agents: Agents suited to the regime (never empty)
        description: Human-readable summary
        market_bias: Bull/bear/neutral from recent returns
    """
    model_config = ConfigDict(frozen=True)

    primary_regime: MarketRegime
    volatility_regime: VolatilityRegime
    trend_strength: TrendStrength
    hurst: float
    atr_percent: float
    adx_value: float
    confidence: float = Field(..., ge=0, le=1)
    risk_adjustment: float = Field(..., gt=0, le=1.5)
    recommended_agents: List[AgentName] = Field(..., min_length=1)
    description: str
    market_bias: MarketBias = MarketBias.NEUTRAL


class RegimeChange(BaseModel):
    """Result of comparing the current regime with the last one seen."""
    model_config = ConfigDict(frozen=True)

    changed: bool
    from_regime: Optional[MarketRegime] = None
    to_regime: MarketRegime
    change_count: int = Field(default=0, ge=0)


class AgentTradeDecision(BaseModel):
    """Whether an agent should trade in the current regime."""
    model_config = ConfigDict(frozen=True)

    should_trade: bool
    reason: str = Field(..., min_length=1)
    size_multiplier: float = Field(default=0.0, ge=0)


# =============================================================================
# Signal Models
# =============================================================================

class TradeSignal(BaseModel):
    """Strategy output, possibly rewritten by the risk manager.

    Attributes:
        direction: long / short / close / none
        size: Base-asset units (>= 0)
        confidence: Signal confidence in [0, 1]
        reason: Human-readable explanation, also for "do nothing"
    """
    model_config = ConfigDict(frozen=True)

    direction: SignalDirection = Field(..., description="Signal direction")
    size: float = Field(default=0.0, ge=0, description="Size in base units")
    confidence: float = Field(default=0.0, ge=0, le=1, description="Confidence 0-1")
    reason: str = Field(default="No signal", description="Explanation")

    @property
    def is_actionable(self) -> bool:
        """True for anything but a none signal."""
        return self.direction != SignalDirection.NONE


class StrategyContext(BaseModel):
    """Read-only per-tick input to strategies and the risk manager.

    Optional indicator fields are precomputed by the orchestrator; strategies
    fall back to computing them from ``price_history`` when absent.
    """
    model_config = ConfigDict(frozen=True)

    current_price: float = Field(..., gt=0, description="Latest price")
    price_history: List[float] = Field(default_factory=list, description="Oldest-first prices")
    position_size: float = Field(default=0.0, description="Signed position (+long/-short)")
    entry_price: float = Field(default=0.0, ge=0, description="Average entry price")
    unrealized_pnl: float = Field(default=0.0, description="Unrealized PnL (USD)")
    available_collateral: float = Field(default=0.0, description="Free collateral (USD)")

    # Precomputed indicators
    atr: Optional[float] = Field(default=None, ge=0)
    atr_percent: Optional[float] = Field(default=None, ge=0)
    hurst: Optional[float] = Field(default=None, ge=0, le=1)
    regime: Optional[MarketRegime] = None
    rsi: Optional[float] = Field(default=None, ge=0, le=100)
    adx: Optional[float] = Field(default=None, ge=0)

    candles: Optional[List[Candle]] = None
    funding_rate: Optional[float] = None
    market_data: Optional[MarketData] = None
    regime_state: Optional[RegimeState] = None

    @property
    def is_flat(self) -> bool:
        return self.position_size == 0

    @property
    def is_long(self) -> bool:
        return self.position_size > 0

    @property
    def is_short(self) -> bool:
        return self.position_size < 0


# =============================================================================
# Collaborator Models
# =============================================================================

class PositionSnapshot(BaseModel):
    """Account state reported by the account collaborator once per tick."""
    model_config = ConfigDict(frozen=True)

    position_size: float = 0.0
    entry_price: float = Field(default=0.0, ge=0)
    unrealized_pnl: float = 0.0
    available_collateral: float = 0.0


class ExecutionResult(BaseModel):
    """Outcome reported by the execution collaborator."""
    model_config = ConfigDict(frozen=True)

    success: bool
    filled_size: float = Field(default=0.0, ge=0)
    price: Optional[float] = None
    message: str = ""


# =============================================================================
# Strategy State Models
# =============================================================================

class GridLevel(BaseModel):
    """One price tier of the grid strategy.

    Attributes:
        price: Level price
        filled: Level has triggered and awaits reset
        side: Buy below the reference, sell above
    """
    price: float = Field(..., gt=0)
    filled: bool = False
    side: GridSide


# =============================================================================
# Orchestrator Bookkeeping
# =============================================================================

class DailyTracker(BaseModel):
    """Realized PnL for one UTC day."""
    date: date
    realized_pnl: float = 0.0
    peak_pnl: float = 0.0

    def record(self, pnl: float) -> None:
        """Add realized PnL and track the intraday peak."""
        self.realized_pnl += pnl
        if self.realized_pnl > self.peak_pnl:
            self.peak_pnl = self.realized_pnl

    @property
    def drawdown_from_peak(self) -> float:
        return self.peak_pnl - self.realized_pnl


class TickRecord(BaseModel):
    """Structured per-tick audit record handed to the audit collaborator.

    Attributes:
        timestamp: Tick time (UTC)
        agent: Agent name
        price: Price sample of the tick
        regime: Regime snapshot, when enough history exists
        hurst: Hurst exponent used by the tick
        atr: ATR used by the tick
        atr_percent: ATR as percent of price
        position_size: Signed position before execution
        entry_price: Entry price before execution
        unrealized_pnl: Unrealized PnL before execution
        raw_signal: Strategy output
        signal: Signal after regime gating and risk checks
        risk_checks: Annotations added by the risk manager and gating
        executed: Whether the signal was sent for execution
    """
    timestamp: datetime = Field(default_factory=utc_now)
    agent: str
    price: float
    regime: Optional[RegimeState] = None
    hurst: Optional[float] = None
    atr: Optional[float] = None
    atr_percent: Optional[float] = None
    position_size: float = 0.0
    entry_price: float = 0.0
    unrealized_pnl: float = 0.0
    raw_signal: TradeSignal
    signal: TradeSignal
    risk_checks: List[str] = Field(default_factory=list)
    executed: bool = False

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten to primitive values for structured logging."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "agent": self.agent,
            "price": self.price,
            "regime": self.regime.primary_regime.value if self.regime else None,
            "volatility": self.regime.volatility_regime.value if self.regime else None,
            "hurst": self.hurst,
            "atr": self.atr,
            "atr_percent": self.atr_percent,
            "position_size": self.position_size,
            "direction": self.signal.direction.value,
            "size": self.signal.size,
            "confidence": self.signal.confidence,
            "reason": self.signal.reason,
            "risk_checks": list(self.risk_checks),
            "executed": self.executed,
        }
