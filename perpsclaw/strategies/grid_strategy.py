"""
Grid Trading Strategy

Lays a ladder of price levels around a reference price and trades the
oscillations between them. Profits from range-bound markets.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from perpsclaw.core.config import GridConfig
from perpsclaw.core.models import (
    AgentName,
    GridLevel,
    GridSide,
    LiquidationRisk,
    SignalDirection,
    StrategyContext,
    TradeSignal,
    utc_now,
)
from perpsclaw.indicators import IndicatorCache
from perpsclaw.strategies.base import BaseStrategy

MIN_SAMPLES = 5

# Hurst above which the grid steps aside for a trend
TREND_PAUSE_HURST = 0.6

# Liquidation risk at which the grid flattens and waits
CASCADE_RISK_LEVELS = (LiquidationRisk.HIGH, LiquidationRisk.EXTREME)


@dataclass
class GridState:
    """Levels and reference of the active grid."""
    levels: List[GridLevel]
    reference_price: float
    last_price: float
    created_at: datetime = field(default_factory=utc_now)


class GridStrategy(BaseStrategy):
    """
    Grid Trading Strategy.

    Strategy Logic:
    - Build evenly spaced levels around the reference price, half of them
      buys below it and half sells above it
    - Downward cross through a buy level: go long one grid unit
    - Upward cross through a sell level: take one unit off a long, or go
      short one unit when flat
    - Filled levels re-arm once price moves more than two spacings away
    - Rebuild the grid when price drifts too far from the reference

    Risk Level: LOW-MEDIUM
    Best For: Sideways/ranging markets

    Risk Controls:
    - Steps aside (and flattens) in strongly trending markets
    - Steps aside (and flattens) when liquidation risk is high
    - Net position limited to half the grid's units
    """

    agent = AgentName.GRID

    def __init__(self, config: Optional[GridConfig] = None, **kwargs):
        super().__init__("Grid", **kwargs)
        config = config or GridConfig()

        # Grid configuration
        self.grid_levels = kwargs.get('grid_levels', config.grid_levels)
        self.grid_spacing_pct = kwargs.get('grid_spacing_pct', config.grid_spacing_pct)
        self.size_per_level = kwargs.get('size_per_level', config.size_per_level)
        self.reinit_drift_pct = kwargs.get('reinit_drift_pct', config.reinit_drift_pct)
        self.regime_filter = kwargs.get('regime_filter', True)

        self.state: Optional[GridState] = None

        self.logger.info(
            "grid_strategy.created",
            grid_levels=self.grid_levels,
            grid_spacing_pct=self.grid_spacing_pct,
            size_per_level=self.size_per_level,
        )

    @property
    def max_position(self) -> float:
        return self.size_per_level * self.grid_levels / 2

    def _evaluate(self, ctx: StrategyContext) -> TradeSignal:
        prices = ctx.price_history
        if len(prices) < MIN_SAMPLES:
            return self._none(f"Insufficient data (need {MIN_SAMPLES}+ samples)")

        price = ctx.current_price

        if self.regime_filter:
            hurst = IndicatorCache.from_context(ctx).hurst()
            if hurst > TREND_PAUSE_HURST:
                if not ctx.is_flat:
                    self.state = None
                    return self._close(
                        ctx,
                        f"Strong trend detected (H={hurst:.2f}), closing grid positions",
                        confidence=0.7,
                    )
                return self._none(f"Trending regime (H={hurst:.2f}), Grid paused")

        market = ctx.market_data
        if market is not None and market.liquidation_risk.level in CASCADE_RISK_LEVELS:
            level = market.liquidation_risk.level.value
            if not ctx.is_flat:
                return self._close(
                    ctx, f"{level.capitalize()} liquidation risk, closing grid positions",
                    confidence=0.8,
                )
            return self._none(f"{level.capitalize()} liquidation risk, Grid paused")

        if self.state is None:
            self.state = self._create_grid(price)
            return self._none(
                f"Grid initialized: {len(self.state.levels)} levels at "
                f"{self.grid_spacing_pct * 100:.2f}% spacing around {price:.2f}"
            )

        drift = abs(price - self.state.reference_price) / self.state.reference_price
        if drift > self.reinit_drift_pct:
            previous = self.state.reference_price
            self.state = self._create_grid(price)
            return self._none(
                f"Grid initialized: re-centered after {drift * 100:.1f}% drift "
                f"from {previous:.2f}"
            )

        prev_price = self.state.last_price
        self.state.last_price = price

        for level in self.state.levels:
            if level.filled:
                continue

            if self._should_trigger_buy(level, prev_price, price):
                level.filled = True
                return self._create_signal(
                    SignalDirection.LONG,
                    self.size_per_level,
                    confidence=0.65,
                    reason=f"Grid buy at {level.price:.2f}",
                )

            if self._should_trigger_sell(level, prev_price, price):
                level.filled = True
                return self._sell_signal(ctx, level)

        self._reset_filled_levels(price)

        # Net exposure beyond the grid's capacity is trimmed back to 80%
        if abs(ctx.position_size) > self.max_position:
            excess = abs(ctx.position_size) - self.max_position * 0.8
            return self._close(
                ctx,
                f"Grid position limit: {abs(ctx.position_size):.4f} > "
                f"{self.max_position:.4f}, reducing by {excess:.4f}",
                confidence=0.7,
                size=excess,
            )

        return self._none(f"Price {price:.2f} between grid levels")

    def _sell_signal(self, ctx: StrategyContext, level: GridLevel) -> TradeSignal:
        """Take profit off a long, or open a short when flat."""
        position = ctx.position_size

        if position > self.size_per_level:
            return self._close(
                ctx,
                f"Grid sell at {level.price:.2f}: partial close of one unit",
                confidence=0.65,
                size=self.size_per_level,
            )

        if position > 0:
            return self._close(
                ctx,
                f"Grid sell at {level.price:.2f}: closing residual long",
                confidence=0.65,
            )

        if position == 0:
            return self._create_signal(
                SignalDirection.SHORT,
                self.size_per_level,
                confidence=0.6,
                reason=f"Grid sell at {level.price:.2f}: opening short",
            )

        return self._none(f"Grid sell level {level.price:.2f} hit, already short")

    def _create_grid(self, center_price: float) -> GridState:
        """Create grid levels around center price, sorted ascending."""
        levels = []
        for i in range(self.grid_levels):
            offset = (i - self.grid_levels / 2 + 0.5) * self.grid_spacing_pct
            levels.append(GridLevel(
                price=center_price * (1 + offset),
                side=GridSide.BUY if offset < 0 else GridSide.SELL,
            ))
        levels.sort(key=lambda lvl: lvl.price)

        self.logger.info(
            "grid_strategy.initialized",
            center_price=center_price,
            lowest=levels[0].price,
            highest=levels[-1].price,
        )
        return GridState(levels=levels, reference_price=center_price, last_price=center_price)

    def _should_trigger_buy(self, level: GridLevel, prev_price: float, price: float) -> bool:
        """Price crossed down through a buy level."""
        return level.side == GridSide.BUY and prev_price > level.price >= price

    def _should_trigger_sell(self, level: GridLevel, prev_price: float, price: float) -> bool:
        """Price crossed up through a sell level."""
        return level.side == GridSide.SELL and prev_price < level.price <= price

    def _reset_filled_levels(self, price: float):
        """Re-arm filled levels price has moved well away from."""
        for level in self.state.levels:
            if level.filled and abs(price - level.price) / level.price > self.grid_spacing_pct * 2:
                level.filled = False

    def get_grid_info(self) -> Optional[Dict[str, Any]]:
        """Get current grid information."""
        if self.state is None:
            return None

        return {
            'reference_price': self.state.reference_price,
            'last_price': self.state.last_price,
            'levels': [
                {'price': lvl.price, 'side': lvl.side.value, 'filled': lvl.filled}
                for lvl in self.state.levels
            ],
            'filled': sum(1 for lvl in self.state.levels if lvl.filled),
            'created_at': self.state.created_at.isoformat(),
        }

    def reset_grid(self):
        """Manually reset the grid; the next tick rebuilds it."""
        self.state = None
        self.logger.info("grid_strategy.reset")
