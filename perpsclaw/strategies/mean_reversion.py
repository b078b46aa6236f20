"""
Mean Reversion Strategy (Wolf)

Bollinger Bands with RSI confirmation. Band width and RSI thresholds adapt
to the Hurst exponent; strongly trending markets are avoided.
"""
from typing import Optional

from perpsclaw.core.models import (
    FundingRateData,
    RSIThresholds,
    SignalDirection,
    StrategyContext,
    TradeSignal,
    AgentName,
)
from perpsclaw.indicators import (
    IndicatorCache,
    adaptive_bb_width,
    adaptive_rsi_thresholds,
    rsi,
    sma,
)
from perpsclaw.indicators.statistics import TRENDING_THRESHOLD
from perpsclaw.market.funding import analyze_funding_rate, funding_rate_signal
from perpsclaw.strategies.base import BaseStrategy

MIN_SAMPLES = 30

# Hurst above which mean reversion stands aside entirely
STRONG_TREND_HURST = 0.6

# Distance from the middle band that counts as reverted
MIDDLE_BAND_TOLERANCE = 0.005

# Share of the position taken off halfway to the middle band
PARTIAL_PROFIT_FRACTION = 0.5

# Samples searched for the prior extreme in divergence entries
DIVERGENCE_LOOKBACK = 10

# Price within this fraction of a band counts as approaching it
BAND_PROXIMITY = 0.01


class MeanReversionStrategy(BaseStrategy):
    """
    Mean Reversion Strategy.

    Strategy Logic:
    - Long below the lower band with RSI oversold, short above the upper
      band with RSI overbought (closing the opposite side first)
    - Take half off halfway back to the middle band, flatten at the middle
    - Smaller entries on RSI divergence near a band
    - Extreme funding nudges confidence and near-band direction

    Filters:
    - Stands aside (and flattens) when Hurst > 0.6
    - Exits early when the regime turns trending against the position

    Risk Level: MEDIUM
    Best For: Ranging, anti-persistent markets
    """

    agent = AgentName.WOLF

    def __init__(self, **kwargs):
        super().__init__("Mean Reversion", **kwargs)

        self.bb_period = kwargs.get('bb_period', 20)
        self.base_bb_width = kwargs.get('bb_width', 2.0)
        self.rsi_period = kwargs.get('rsi_period', 14)
        self.trade_size = kwargs.get('trade_size', 0.4)
        self.adaptive = kwargs.get('adaptive', True)

        # Entry price the partial profit was last taken for
        self._partial_taken_entry: Optional[float] = None

    def _evaluate(self, ctx: StrategyContext) -> TradeSignal:
        prices = ctx.price_history
        if len(prices) < MIN_SAMPLES:
            return self._none(f"Insufficient data (need {MIN_SAMPLES}+ samples)")

        if ctx.is_flat:
            self._partial_taken_entry = None

        ind = IndicatorCache.from_context(ctx)
        hurst = ind.hurst()
        price = ctx.current_price

        if hurst > STRONG_TREND_HURST:
            if not ctx.is_flat:
                return self._close(
                    ctx,
                    f"Strong trend (H={hurst:.2f}), exiting mean-reversion position",
                    confidence=0.75,
                )
            return self._none(f"Trending regime (H={hurst:.2f}), mean reversion paused")

        middle = ind.sma(self.bb_period)
        sd = ind.std_dev(self.bb_period)
        if middle <= 0:
            return self._none("Invalid price history")

        width = adaptive_bb_width(self.base_bb_width, hurst) if self.adaptive else self.base_bb_width
        upper = middle + width * sd
        lower = middle - width * sd
        thresholds = (
            adaptive_rsi_thresholds(hurst) if self.adaptive
            else RSIThresholds(oversold=30, overbought=70)
        )
        rsi_value = ind.rsi(self.rsi_period)

        # Regime drifting toward trending while the position fights it
        if hurst > TRENDING_THRESHOLD and not ctx.is_flat:
            slope = middle - sma(prices[:-1], self.bb_period)
            if (ctx.is_long and slope < 0) or (ctx.is_short and slope > 0):
                side = "long" if ctx.is_long else "short"
                return self._close(
                    ctx,
                    f"Regime shifting to trending (H={hurst:.2f}) against {side} position",
                    confidence=0.7,
                )

        funding = analyze_funding_rate(ctx.funding_rate) if ctx.funding_rate is not None else None
        bias = funding_rate_signal(funding) if funding is not None and funding.is_extreme else 0.0

        # Oversold: price below lower band + RSI below threshold
        if price < lower and rsi_value < thresholds.oversold:
            if ctx.is_short:
                return self._close(ctx, "Close short: oversold reversal", confidence=0.8)
            if ctx.is_flat:
                return self._create_signal(
                    SignalDirection.LONG, self.trade_size, 0.7 + bias * 0.2,
                    f"Oversold: price={price:.2f} < BB_lower={lower:.2f}, "
                    f"RSI={rsi_value:.1f} < {thresholds.oversold:.0f}"
                    + self._funding_note(funding, bias),
                )

        # Overbought: price above upper band + RSI above threshold
        if price > upper and rsi_value > thresholds.overbought:
            if ctx.is_long:
                return self._close(ctx, "Close long: overbought reversal", confidence=0.8)
            if ctx.is_flat:
                return self._create_signal(
                    SignalDirection.SHORT, self.trade_size, 0.7 - bias * 0.2,
                    f"Overbought: price={price:.2f} > BB_upper={upper:.2f}, "
                    f"RSI={rsi_value:.1f} > {thresholds.overbought:.0f}"
                    + self._funding_note(funding, bias),
                )

        if not ctx.is_flat:
            if abs(price - middle) / middle < MIDDLE_BAND_TOLERANCE:
                return self._close(
                    ctx, f"Mean revert: price near BB middle={middle:.2f}", confidence=0.6
                )

            partial = self._partial_profit(ctx, middle)
            if partial is not None:
                return partial

            side = "long" if ctx.is_long else "short"
            return self._none(f"Holding {side}, waiting for reversion to {middle:.2f}")

        if sd > 0:
            divergence = self._divergence_entry(ctx, ind, lower, upper, thresholds)
            if divergence is not None:
                return divergence

            if funding is not None and funding.is_extreme:
                funded = self._funding_entry(ctx, funding, bias, middle, lower, upper, rsi_value, thresholds)
                if funded is not None:
                    return funded

        return self._none(
            f"Price {price:.2f} inside bands [{lower:.2f}, {upper:.2f}], RSI={rsi_value:.1f}"
        )

    def _partial_profit(self, ctx: StrategyContext, middle: float) -> Optional[TradeSignal]:
        """Take half off once price has covered half the way to the middle band."""
        entry = ctx.entry_price
        if entry <= 0 or self._partial_taken_entry == entry:
            return None

        distance = middle - entry
        if (ctx.is_long and distance <= 0) or (ctx.is_short and distance >= 0):
            return None

        progress = (ctx.current_price - entry) / distance
        if progress < 0.5:
            return None

        self._partial_taken_entry = entry
        side = "long" if ctx.is_long else "short"
        return self._close(
            ctx,
            f"Partial profit: closing 50% of {side} at {progress:.0%} of the way "
            f"from entry {entry:.2f} to BB middle {middle:.2f}",
            confidence=0.65,
            size=abs(ctx.position_size) * PARTIAL_PROFIT_FRACTION,
        )

    def _divergence_entry(
        self,
        ctx: StrategyContext,
        ind: IndicatorCache,
        lower: float,
        upper: float,
        thresholds: RSIThresholds,
    ) -> Optional[TradeSignal]:
        """Half-size entry when price tests a band without a new extreme while RSI recovers."""
        prices = ctx.price_history
        if len(prices) < DIVERGENCE_LOOKBACK + self.rsi_period + 2:
            return None

        price = ctx.current_price
        rsi_now = ind.rsi(self.rsi_period)
        start = len(prices) - 1 - DIVERGENCE_LOOKBACK
        recent = list(prices[start:-1])
        size = self.trade_size * 0.5

        # Bullish: higher low in price, higher RSI than at the low
        if price <= lower * (1 + BAND_PROXIMITY):
            low_idx = start + recent.index(min(recent))
            rsi_at_low = rsi(prices[:low_idx + 1], self.rsi_period)
            if (
                price > prices[low_idx]
                and rsi_now > rsi_at_low + 5
                and rsi_now < thresholds.oversold + 15
            ):
                return self._create_signal(
                    SignalDirection.LONG, size, 0.55,
                    f"Bullish divergence: price {price:.2f} above recent low "
                    f"{prices[low_idx]:.2f}, RSI {rsi_at_low:.1f} -> {rsi_now:.1f}",
                )

        # Bearish: lower high in price, lower RSI than at the high
        if price >= upper * (1 - BAND_PROXIMITY):
            high_idx = start + recent.index(max(recent))
            rsi_at_high = rsi(prices[:high_idx + 1], self.rsi_period)
            if (
                price < prices[high_idx]
                and rsi_now < rsi_at_high - 5
                and rsi_now > thresholds.overbought - 15
            ):
                return self._create_signal(
                    SignalDirection.SHORT, size, 0.55,
                    f"Bearish divergence: price {price:.2f} below recent high "
                    f"{prices[high_idx]:.2f}, RSI {rsi_at_high:.1f} -> {rsi_now:.1f}",
                )

        return None

    def _funding_entry(
        self,
        ctx: StrategyContext,
        funding: FundingRateData,
        bias: float,
        middle: float,
        lower: float,
        upper: float,
        rsi_value: float,
        thresholds: RSIThresholds,
    ) -> Optional[TradeSignal]:
        """Lean toward the side being paid when price is already near its band."""
        price = ctx.current_price
        size = self.trade_size * 0.5

        if bias > 0 and price <= lower + (middle - lower) * 0.25 and rsi_value < thresholds.oversold + 10:
            return self._create_signal(
                SignalDirection.LONG, size, 0.55,
                f"Funding-biased long: shorts paying {funding.rate_percent:.3f}% "
                f"near BB_lower={lower:.2f}",
            )

        if bias < 0 and price >= upper - (upper - middle) * 0.25 and rsi_value > thresholds.overbought - 10:
            return self._create_signal(
                SignalDirection.SHORT, size, 0.55,
                f"Funding-biased short: longs paying {funding.rate_percent:.3f}% "
                f"near BB_upper={upper:.2f}",
            )

        return None

    def _funding_note(self, funding: Optional[FundingRateData], bias: float) -> str:
        if funding is None or bias == 0:
            return ""
        return f", funding {funding.direction.value} ({funding.rate_percent:.3f}%)"
