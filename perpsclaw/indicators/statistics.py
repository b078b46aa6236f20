"""Statistical market measures: Hurst exponent and volatility.

The Hurst exponent is estimated with rescaled-range (R/S) analysis on log
returns. Values above 0.5 indicate persistence (trends continue), values
below 0.5 indicate anti-persistence (moves tend to reverse).
"""

import math
from typing import Optional, Sequence

import numpy as np

from perpsclaw.core.models import MarketRegime
from perpsclaw.indicators.technical import atr

# Hurst bands around the random-walk value of 0.5
TRENDING_THRESHOLD = 0.55
MEAN_REVERTING_THRESHOLD = 0.45

# Growth factor of the R/S window ladder
WINDOW_GROWTH = 1.5


def _log_returns(prices: Sequence[float]) -> Optional[np.ndarray]:
    """Log returns, or None when any price is non-positive."""
    values = np.asarray(prices, dtype=float)
    if values.size < 2 or np.any(values <= 0) or not np.all(np.isfinite(values)):
        return None
    return np.diff(np.log(values))


def hurst_exponent(
    prices: Sequence[float],
    min_window: int = 10,
    max_window: Optional[int] = None,
) -> float:
    """Estimate the Hurst exponent by rescaled-range analysis.

    Window sizes start at ``min_window`` and grow by a factor of 1.5 up to
    ``max_window`` (default: half the series). For each size the returns are
    split into non-overlapping windows; the mean R/S across windows is
    regressed against window size on a log-log scale.

    Args:
        prices: Oldest-first price samples
        min_window: Smallest window size
        max_window: Largest window size

    Returns:
        Slope of the regression clamped to [0, 1]; 0.5 when the series is
        shorter than ``2 * min_window`` or the fit is degenerate.
    """
    if min_window < 2 or len(prices) < min_window * 2:
        return 0.5

    returns = _log_returns(prices)
    if returns is None:
        return 0.5

    if max_window is None:
        max_window = len(prices) // 2

    log_n = []
    log_rs = []

    window_size = min_window
    while window_size <= max_window:
        num_windows = len(returns) // window_size
        rs_values = []

        for w in range(num_windows):
            window = returns[w * window_size:(w + 1) * window_size]
            deviations = np.cumsum(window - window.mean())
            spread = deviations.max() - deviations.min()
            sigma = window.std()
            if sigma > 0:
                rs_values.append(spread / sigma)

        if rs_values:
            avg_rs = float(np.mean(rs_values))
            if avg_rs > 0:
                log_n.append(math.log(window_size))
                log_rs.append(math.log(avg_rs))

        window_size = int(window_size * WINDOW_GROWTH)

    if len(log_n) < 2 or len(set(log_n)) < 2:
        return 0.5

    slope, _ = np.polyfit(log_n, log_rs, 1)
    if not np.isfinite(slope):
        return 0.5

    return float(min(1.0, max(0.0, slope)))


def classify_regime(hurst: float) -> MarketRegime:
    """Map a Hurst exponent to a market regime."""
    if hurst > TRENDING_THRESHOLD:
        return MarketRegime.TRENDING
    if hurst < MEAN_REVERTING_THRESHOLD:
        return MarketRegime.MEAN_REVERTING
    return MarketRegime.RANDOM


def realized_volatility(
    prices: Sequence[float], period: int = 20, periods_per_year: int = 365
) -> float:
    """Annualized standard deviation of log returns, in percent."""
    if period <= 0 or len(prices) < period + 1:
        return 0.0

    returns = _log_returns(prices[-(period + 1):])
    if returns is None:
        return 0.0

    return float(returns.std() * math.sqrt(periods_per_year) * 100)


def volatility_percentile(
    prices: Sequence[float], period: int = 14, lookback: int = 100
) -> float:
    """Percent of trailing historical ATR readings below the current ATR."""
    if period <= 0 or lookback <= period or len(prices) < lookback + period:
        return 50.0

    current = atr(prices, period)
    history = [
        atr(prices[:len(prices) - lookback + i], period)
        for i in range(period, lookback)
    ]

    below = sum(1 for value in history if value < current)
    return below / len(history) * 100
