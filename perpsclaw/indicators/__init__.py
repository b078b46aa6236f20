"""Indicator library for the PerpsClaw decision engine.

Pure, deterministic functions over oldest-first price sequences:
- Moving averages, RSI, ADX and close-only / OHLC ATR
- Hurst exponent and regime classification
- Realized volatility and volatility percentile
- Kelly sizing and regime-adaptive parameters
"""

from perpsclaw.indicators.sizing import (
    adaptive_bb_width,
    adaptive_period,
    adaptive_rsi_thresholds,
    kelly_fraction,
    kelly_position_size,
)
from perpsclaw.indicators.snapshot import IndicatorCache, calculate_indicators
from perpsclaw.indicators.statistics import (
    classify_regime,
    hurst_exponent,
    realized_volatility,
    volatility_percentile,
)
from perpsclaw.indicators.technical import (
    adx,
    atr,
    atr_ohlc,
    atr_percent,
    atr_percent_ohlc,
    atr_stop_distance,
    atr_stop_distance_ohlc,
    atr_take_profit_distance,
    ema,
    rsi,
    sma,
    std_dev,
    true_range,
    true_range_ohlc,
)

__all__ = [
    'sma',
    'ema',
    'std_dev',
    'rsi',
    'adx',
    'true_range',
    'true_range_ohlc',
    'atr',
    'atr_ohlc',
    'atr_percent',
    'atr_percent_ohlc',
    'atr_stop_distance',
    'atr_stop_distance_ohlc',
    'atr_take_profit_distance',
    'hurst_exponent',
    'classify_regime',
    'realized_volatility',
    'volatility_percentile',
    'kelly_fraction',
    'kelly_position_size',
    'adaptive_period',
    'adaptive_bb_width',
    'adaptive_rsi_thresholds',
    'calculate_indicators',
    'IndicatorCache',
]
