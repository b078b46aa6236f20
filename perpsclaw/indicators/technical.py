"""Moving averages, oscillators and range indicators.

Every function works on an oldest-first sequence of closing prices and
returns a neutral default when the sequence is shorter than the window it
needs: 0 for averages, ranges and ADX, 50 for RSI. None of them raise.

Only close prices are available at this layer, so true range is
approximated from consecutive close deltas. The ``*_ohlc`` variants use real
candles when an aggregator provides them.
"""

from typing import List, Sequence

from perpsclaw.core.models import Candle


# =============================================================================
# Moving Averages
# =============================================================================

def sma(prices: Sequence[float], period: int) -> float:
    """Simple moving average of the last ``period`` samples."""
    if period <= 0 or len(prices) < period:
        return 0.0
    return float(sum(prices[-period:]) / period)


def ema(prices: Sequence[float], period: int) -> float:
    """Exponential moving average, seeded with the SMA of the first window."""
    if period <= 0 or len(prices) < period:
        return 0.0

    multiplier = 2.0 / (period + 1)
    value = sum(prices[:period]) / period

    for price in prices[period:]:
        value = (price - value) * multiplier + value

    return float(value)


def std_dev(prices: Sequence[float], period: int) -> float:
    """Population standard deviation of the last ``period`` samples."""
    if period <= 0 or len(prices) < period:
        return 0.0

    window = prices[-period:]
    mean = sum(window) / period
    variance = sum((p - mean) ** 2 for p in window) / period
    return variance ** 0.5


# =============================================================================
# Oscillators
# =============================================================================

def rsi(prices: Sequence[float], period: int = 14) -> float:
    """Relative Strength Index over the trailing ``period`` changes.

    Uses simple averages of gains and losses. A window with no losses
    (including a flat one) reads 100.
    """
    if period <= 0 or len(prices) < period + 1:
        return 50.0

    gains = 0.0
    losses = 0.0
    start = len(prices) - period
    for i in range(start, len(prices)):
        change = prices[i] - prices[i - 1]
        if change > 0:
            gains += change
        else:
            losses -= change

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def adx(prices: Sequence[float], period: int = 14) -> float:
    """Directional movement strength from close-only deltas.

    Returns the DX of EMA-smoothed +DM, -DM and true range. Always >= 0.
    """
    if period <= 0 or len(prices) < period + 1:
        return 0.0

    plus_dm: List[float] = []
    minus_dm: List[float] = []
    tr_values: List[float] = []

    for i in range(1, len(prices)):
        up_move = prices[i] - prices[i - 1]
        down_move = prices[i - 1] - prices[i]

        plus_dm.append(up_move if up_move > down_move and up_move > 0 else 0.0)
        minus_dm.append(down_move if down_move > up_move and down_move > 0 else 0.0)
        tr_values.append(abs(prices[i] - prices[i - 1]))

    smoothed_tr = ema(tr_values, period)
    if smoothed_tr <= 0:
        return 0.0

    plus_di = ema(plus_dm, period) / smoothed_tr * 100
    minus_di = ema(minus_dm, period) / smoothed_tr * 100

    di_sum = plus_di + minus_di
    if di_sum <= 0:
        return 0.0

    return abs(plus_di - minus_di) / di_sum * 100


# =============================================================================
# True Range / ATR (close-only)
# =============================================================================

def true_range(prices: Sequence[float], index: int) -> float:
    """Close-only true range at ``index``.

    Without highs and lows the bar range is estimated as the close delta, so
    the result is twice the absolute change. This overstates range relative
    to real OHLC data.
    """
    if index <= 0 or index >= len(prices):
        return 0.0

    delta = abs(prices[index] - prices[index - 1])
    estimated_range = delta * 2
    return max(delta, estimated_range)


def _wilder(values: Sequence[float], period: int) -> float:
    """Seed with the SMA of the first window, then Wilder-smooth the rest."""
    value = sum(values[:period]) / period
    for tr in values[period:]:
        value = (value * (period - 1) + tr) / period
    return value


def atr(prices: Sequence[float], period: int = 14) -> float:
    """Average true range from close-only data."""
    if period <= 0 or len(prices) < period + 1:
        return 0.0

    ranges = [true_range(prices, i) for i in range(1, len(prices))]
    return float(_wilder(ranges, period))


def atr_percent(prices: Sequence[float], period: int = 14) -> float:
    """ATR as a percentage of the latest price."""
    if not prices or prices[-1] <= 0:
        return 0.0
    return atr(prices, period) / prices[-1] * 100


def atr_stop_distance(
    prices: Sequence[float], multiplier: float = 2.0, period: int = 14
) -> float:
    """Price distance for an ATR-scaled stop-loss."""
    return atr(prices, period) * multiplier


def atr_take_profit_distance(
    prices: Sequence[float], multiplier: float = 3.0, period: int = 14
) -> float:
    """Price distance for an ATR-scaled take-profit."""
    return atr(prices, period) * multiplier


# =============================================================================
# True Range / ATR (OHLC candles)
# =============================================================================

def true_range_ohlc(candle: Candle, prev_close: float) -> float:
    """Classic true range of a candle against the previous close."""
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


def atr_ohlc(candles: Sequence[Candle], period: int = 14) -> float:
    """Wilder ATR over OHLC candles."""
    if period <= 0 or len(candles) < period + 1:
        return 0.0

    ranges = [
        true_range_ohlc(candles[i], candles[i - 1].close)
        for i in range(1, len(candles))
    ]
    return float(_wilder(ranges, period))


def atr_percent_ohlc(candles: Sequence[Candle], period: int = 14) -> float:
    """OHLC ATR as a percentage of the last close."""
    if not candles or candles[-1].close <= 0:
        return 0.0
    return atr_ohlc(candles, period) / candles[-1].close * 100


def atr_stop_distance_ohlc(
    candles: Sequence[Candle], multiplier: float = 2.0, period: int = 14
) -> float:
    """Price distance for an ATR-scaled stop from OHLC candles."""
    return atr_ohlc(candles, period) * multiplier
