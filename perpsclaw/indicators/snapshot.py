"""Indicator snapshots and the per-tick indicator accessor."""

from typing import Any, Callable, Dict, Hashable, Optional, Sequence, Tuple

from perpsclaw.core.models import IndicatorSnapshot, MarketRegime, StrategyContext
from perpsclaw.indicators.statistics import (
    classify_regime,
    hurst_exponent,
    realized_volatility,
    volatility_percentile,
)
from perpsclaw.indicators.technical import adx, atr, atr_percent, ema, rsi, sma, std_dev

DEFAULT_PERIOD = 14


def calculate_indicators(prices: Sequence[float]) -> IndicatorSnapshot:
    """Compute the full indicator set for one price history."""
    hurst = hurst_exponent(prices)

    return IndicatorSnapshot(
        sma10=sma(prices, 10),
        sma20=sma(prices, 20),
        sma30=sma(prices, 30),
        ema10=ema(prices, 10),
        ema20=ema(prices, 20),
        std_dev20=std_dev(prices, 20),
        rsi14=rsi(prices, DEFAULT_PERIOD),
        atr14=atr(prices, DEFAULT_PERIOD),
        atr_percent=atr_percent(prices, DEFAULT_PERIOD),
        hurst=hurst,
        regime=classify_regime(hurst),
        adx=adx(prices, DEFAULT_PERIOD),
        realized_vol=realized_volatility(prices, 20),
        vol_percentile=volatility_percentile(prices, DEFAULT_PERIOD, 100),
    )


class IndicatorCache:
    """Memoizing indicator accessor for a single tick.

    Lookups are two-tier: a precomputed value (from the strategy context or
    an indicator snapshot) wins; otherwise the value is computed from the
    price history once and cached by name and arguments. Precomputed values
    only stand in for the default 14-period readings.

    Usage:
        ind = IndicatorCache.from_context(ctx)
        if ind.adx() >= 20 and ind.regime() == MarketRegime.TRENDING:
            ...
    """

    def __init__(
        self,
        prices: Sequence[float],
        precomputed: Optional[Dict[str, Any]] = None,
    ):
        self.prices = prices
        self._precomputed = {
            key: value for key, value in (precomputed or {}).items() if value is not None
        }
        self._cache: Dict[Tuple[Hashable, ...], Any] = {}

    @classmethod
    def from_context(cls, ctx: StrategyContext) -> "IndicatorCache":
        return cls(
            ctx.price_history,
            {
                "atr": ctx.atr,
                "atr_percent": ctx.atr_percent,
                "hurst": ctx.hurst,
                "regime": ctx.regime,
                "rsi": ctx.rsi,
                "adx": ctx.adx,
            },
        )

    def _get(self, key: Tuple[Hashable, ...], compute: Callable[[], Any]) -> Any:
        if key not in self._cache:
            self._cache[key] = compute()
        return self._cache[key]

    def _lookup(self, name: str, period: int, compute: Callable[[], Any]) -> Any:
        if period == DEFAULT_PERIOD and name in self._precomputed:
            return self._precomputed[name]
        return self._get((name, period), compute)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def sma(self, period: int) -> float:
        return self._get(("sma", period), lambda: sma(self.prices, period))

    def ema(self, period: int) -> float:
        return self._get(("ema", period), lambda: ema(self.prices, period))

    def std_dev(self, period: int) -> float:
        return self._get(("std_dev", period), lambda: std_dev(self.prices, period))

    def rsi(self, period: int = DEFAULT_PERIOD) -> float:
        return self._lookup("rsi", period, lambda: rsi(self.prices, period))

    def atr(self, period: int = DEFAULT_PERIOD) -> float:
        return self._lookup("atr", period, lambda: atr(self.prices, period))

    def close_atr(self, period: int = DEFAULT_PERIOD) -> float:
        """Close-to-close ATR from the price history, ignoring any OHLC value."""
        return self._get(("close_atr", period), lambda: atr(self.prices, period))

    def atr_percent(self, period: int = DEFAULT_PERIOD) -> float:
        return self._lookup("atr_percent", period, lambda: atr_percent(self.prices, period))

    def adx(self, period: int = DEFAULT_PERIOD) -> float:
        return self._lookup("adx", period, lambda: adx(self.prices, period))

    def hurst(self) -> float:
        if "hurst" in self._precomputed:
            return self._precomputed["hurst"]
        return self._get(("hurst",), lambda: hurst_exponent(self.prices))

    def regime(self) -> MarketRegime:
        if "regime" in self._precomputed:
            return MarketRegime(self._precomputed["regime"])
        return self._get(("regime",), lambda: classify_regime(self.hurst()))

    def realized_volatility(self, period: int = 20) -> float:
        return self._get(
            ("realized_vol", period), lambda: realized_volatility(self.prices, period)
        )
