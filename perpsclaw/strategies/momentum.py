"""
Momentum Strategy (Shark)

SMA crossover with a breakout filter, gated by regime and trend strength.
Periods stretch and shrink with volatility; position size scales with
ADX, Hurst and inverse volatility.
"""
from typing import Optional, Sequence, Tuple

from perpsclaw.core.models import (
    AgentName,
    MarketRegime,
    SignalDirection,
    StrategyContext,
    TradeSignal,
)
from perpsclaw.indicators import IndicatorCache, adaptive_period, sma
from perpsclaw.strategies.base import BaseStrategy, clamp

MIN_SAMPLES = 50

# Price must sit within 0.5% of the breakout extreme
BREAKOUT_TOLERANCE = 0.005

# SMAs closer than this fraction mean the trend is spent
CONVERGENCE_THRESHOLD = 0.001

# Previous price within this fraction of the fast SMA counts as a pullback
PULLBACK_TOLERANCE = 0.002


class MomentumStrategy(BaseStrategy):
    """
    Momentum Strategy.

    Strategy Logic:
    - Long on a bullish fast/slow SMA cross confirmed by a breakout to the
      recent high, with price above both SMAs; short mirrors it
    - Add to a winning trend when price bounces off the fast SMA
    - Exit on the opposite cross, or when the SMAs converge again after
      spreading apart during the trade

    Filters:
    - Stands aside (and flattens) in mean-reverting regimes
    - Requires ADX >= 20 to open a new position

    Risk Level: MEDIUM-HIGH
    Best For: Persistent trends
    """

    agent = AgentName.SHARK

    def __init__(self, **kwargs):
        super().__init__("Momentum", **kwargs)

        self.fast_period = kwargs.get('fast_period', 10)
        self.slow_period = kwargs.get('slow_period', 30)
        self.breakout_period = kwargs.get('breakout_period', 20)
        self.baseline_atr_period = kwargs.get('baseline_atr_period', 50)
        self.min_adx = kwargs.get('min_adx', 20.0)
        self.base_size = kwargs.get('base_size', 0.5)
        self.adaptive = kwargs.get('adaptive', True)
        self.regime_filter = kwargs.get('regime_filter', True)

        # Set once the SMAs have spread apart while a position is open
        self._convergence_armed = False

    def _evaluate(self, ctx: StrategyContext) -> TradeSignal:
        prices = ctx.price_history
        if len(prices) < MIN_SAMPLES:
            return self._none(f"Insufficient data (need {MIN_SAMPLES}+ samples)")

        ind = IndicatorCache.from_context(ctx)
        hurst = ind.hurst()

        if self.regime_filter and ind.regime() == MarketRegime.MEAN_REVERTING:
            if not ctx.is_flat:
                return self._close(
                    ctx,
                    f"Mean-reverting regime (H={hurst:.2f}), closing momentum position",
                    confidence=0.7,
                )
            return self._none(f"Mean-reverting regime (H={hurst:.2f}), momentum paused")

        current_atr = ind.close_atr()
        avg_atr = ind.close_atr(self.baseline_atr_period)
        fast_period, slow_period, breakout_period = self._periods(
            current_atr, avg_atr, len(prices)
        )

        fast = sma(prices, fast_period)
        slow = sma(prices, slow_period)
        prev_fast = sma(prices[:-1], fast_period)
        prev_slow = sma(prices[:-1], slow_period)

        window = prices[-breakout_period:]
        high = max(window)
        low = min(window)

        adx_value = ind.adx()
        price = ctx.current_price

        bullish_cross = prev_fast <= prev_slow and fast > slow
        bearish_cross = prev_fast >= prev_slow and fast < slow

        gap = abs(fast - slow) / slow if slow > 0 else 0.0
        if ctx.is_flat:
            self._convergence_armed = False
        elif gap >= CONVERGENCE_THRESHOLD:
            self._convergence_armed = True

        # Exits
        if not ctx.is_flat:
            # A fresh crossover starts with the SMAs nearly touching
            if self._convergence_armed and gap < CONVERGENCE_THRESHOLD:
                return self._close(
                    ctx,
                    f"SMA convergence: SMA({fast_period})={fast:.2f} ~ "
                    f"SMA({slow_period})={slow:.2f}, trend exhausted",
                    confidence=0.6,
                )
            if ctx.is_long and bearish_cross:
                return self._close(ctx, "Close long: bearish SMA cross", confidence=0.8)
            if ctx.is_short and bullish_cross:
                return self._close(ctx, "Close short: bullish SMA cross", confidence=0.8)

        # Entries
        if ctx.is_flat:
            breakout_up = (
                bullish_cross
                and price >= high * (1 - BREAKOUT_TOLERANCE)
                and price > fast and price > slow
            )
            breakout_down = (
                bearish_cross
                and price <= low * (1 + BREAKOUT_TOLERANCE)
                and price < fast and price < slow
            )

            if breakout_up or breakout_down:
                if adx_value < self.min_adx:
                    return self._none(
                        f"Crossover but ADX={adx_value:.1f} < {self.min_adx:.0f}, trend too weak"
                    )

                size = self._position_size(adx_value, hurst, current_atr, avg_atr)
                confidence = self._confidence(adx_value, hurst)

                if breakout_up:
                    return self._create_signal(
                        SignalDirection.LONG, size, confidence,
                        f"SMA({fast_period})={fast:.2f} > SMA({slow_period})={slow:.2f} + "
                        f"{breakout_period}-high breakout, ADX={adx_value:.1f}, H={hurst:.2f}",
                    )
                return self._create_signal(
                    SignalDirection.SHORT, size, confidence,
                    f"SMA({fast_period})={fast:.2f} < SMA({slow_period})={slow:.2f} + "
                    f"{breakout_period}-low breakdown, ADX={adx_value:.1f}, H={hurst:.2f}",
                )

        pyramid = self._pyramid(
            ctx, prices, fast_period, fast, slow, adx_value, hurst, current_atr, avg_atr
        )
        if pyramid is not None:
            return pyramid

        return self._none(
            f"No setup: SMA({fast_period})={fast:.2f}, SMA({slow_period})={slow:.2f}, "
            f"ADX={adx_value:.1f}"
        )

    def _periods(self, current_atr: float, avg_atr: float, samples: int) -> Tuple[int, int, int]:
        """Fast, slow and breakout periods, scaled by relative volatility."""
        fast = self.fast_period
        slow = self.slow_period
        breakout = self.breakout_period

        if self.adaptive:
            fast = adaptive_period(fast, current_atr, avg_atr)
            slow = adaptive_period(slow, current_atr, avg_atr)
            breakout = adaptive_period(breakout, current_atr, avg_atr)

        # The previous-tick SMA needs one spare sample
        slow = max(3, min(slow, samples - 1))
        fast = max(2, min(fast, slow - 1))
        breakout = max(2, min(breakout, samples))
        return fast, slow, breakout

    def _pyramid(
        self,
        ctx: StrategyContext,
        prices: Sequence[float],
        fast_period: int,
        fast: float,
        slow: float,
        adx_value: float,
        hurst: float,
        current_atr: float,
        avg_atr: float,
    ) -> Optional[TradeSignal]:
        """Add to a winning position on a bounce off the fast SMA."""
        if ctx.is_flat or ctx.unrealized_pnl <= 0 or adx_value < self.min_adx:
            return None

        price = ctx.current_price
        prev_price = prices[-2]
        prev_fast = sma(prices[:-1], fast_period)
        size = max(0.1, self._position_size(adx_value, hurst, current_atr, avg_atr) * 0.5)

        if ctx.is_long and fast > slow:
            touched = prev_price <= prev_fast * (1 + PULLBACK_TOLERANCE)
            if touched and price > fast and price > prev_price:
                return self._create_signal(
                    SignalDirection.LONG, size, 0.6,
                    f"Pyramid long: bounce off SMA({fast_period})={fast:.2f}",
                )

        if ctx.is_short and fast < slow:
            touched = prev_price >= prev_fast * (1 - PULLBACK_TOLERANCE)
            if touched and price < fast and price < prev_price:
                return self._create_signal(
                    SignalDirection.SHORT, size, 0.6,
                    f"Pyramid short: rejection at SMA({fast_period})={fast:.2f}",
                )

        return None

    def _position_size(
        self, adx_value: float, hurst: float, current_atr: float, avg_atr: float
    ) -> float:
        """Base size scaled by trend strength, persistence and calm markets."""
        adx_factor = clamp(adx_value / 25, 0.5, 1.5)
        hurst_factor = clamp(1 + (hurst - 0.5) * 2, 0.5, 1.5)
        if current_atr > 0 and avg_atr > 0:
            vol_factor = clamp(avg_atr / current_atr, 0.5, 1.5)
        else:
            vol_factor = 1.0

        return clamp(self.base_size * adx_factor * hurst_factor * vol_factor, 0.1, 1.0)

    def _confidence(self, adx_value: float, hurst: float) -> float:
        return clamp(0.6 + min(adx_value, 50) / 250 + max(0.0, hurst - 0.5) * 0.4, 0.0, 0.95)
