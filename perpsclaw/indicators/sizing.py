"""Position sizing and regime-adaptive parameter scaling."""

import math

from perpsclaw.core.models import RSIThresholds
from perpsclaw.indicators.statistics import MEAN_REVERTING_THRESHOLD, TRENDING_THRESHOLD

# Never risk more than this fraction of capital, whatever Kelly says
MAX_KELLY_FRACTION = 0.25

# Fraction of full Kelly used for position sizing
HALF_KELLY = 0.5


# =============================================================================
# Kelly Criterion
# =============================================================================

def kelly_fraction(
    win_rate: float, avg_win_loss_ratio: float, fraction_multiplier: float = 1.0
) -> float:
    """Kelly fraction of capital to risk.

    f* = p - (1 - p) / b, scaled by ``fraction_multiplier`` (0.5 for
    half-Kelly) and clamped to [0, 0.25]. Invalid inputs and negative edges
    return 0.

    Args:
        win_rate: Historical win probability p, in (0, 1)
        avg_win_loss_ratio: Average win / average loss b, > 0
        fraction_multiplier: Share of full Kelly to use

    Returns:
        Fraction of capital in [0, 0.25]
    """
    values = (win_rate, avg_win_loss_ratio, fraction_multiplier)
    if not all(math.isfinite(v) for v in values):
        return 0.0
    if avg_win_loss_ratio <= 0 or win_rate <= 0 or win_rate >= 1:
        return 0.0

    full_kelly = win_rate - (1 - win_rate) / avg_win_loss_ratio
    kelly = full_kelly * fraction_multiplier

    return max(0.0, min(MAX_KELLY_FRACTION, kelly))


def kelly_position_size(
    account_value: float,
    price: float,
    win_rate: float,
    avg_win_loss_ratio: float,
    current_vol: float,
    avg_vol: float,
) -> float:
    """Half-Kelly position size in base units, reduced in high volatility.

    The size is scaled by ``min(1, avg_vol / current_vol)`` so it shrinks as
    current volatility rises above its average.
    """
    if price <= 0 or account_value <= 0:
        return 0.0

    kelly = kelly_fraction(win_rate, avg_win_loss_ratio, HALF_KELLY)

    if avg_vol > 0 and current_vol > 0:
        vol_adjustment = min(1.0, avg_vol / current_vol)
    else:
        vol_adjustment = 1.0

    return account_value * kelly * vol_adjustment / price


# =============================================================================
# Adaptive Parameters
# =============================================================================

def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves going toward positive infinity."""
    return int(math.floor(value + 0.5))


def adaptive_period(
    base_period: int,
    current_atr: float,
    avg_atr: float,
    min_scale: float = 0.5,
    max_scale: float = 2.0,
) -> int:
    """Scale an indicator period with relative volatility.

    Higher volatility lengthens the period to filter noise. The scale is
    ``current_atr / avg_atr`` clamped to [min_scale, max_scale].
    """
    if avg_atr == 0:
        return base_period

    vol_ratio = current_atr / avg_atr
    scale = max(min_scale, min(max_scale, vol_ratio))
    return round_half_up(base_period * scale)


def adaptive_bb_width(base_width: float, hurst: float) -> float:
    """Bollinger width multiplier: tighter when mean-reverting, wider when trending."""
    hurst = max(0.0, min(1.0, hurst))
    return base_width * (0.5 + hurst)


def adaptive_rsi_thresholds(hurst: float) -> RSIThresholds:
    """RSI levels by regime; trends need more extreme readings."""
    if hurst > TRENDING_THRESHOLD:
        return RSIThresholds(oversold=20, overbought=80)
    if hurst < MEAN_REVERTING_THRESHOLD:
        return RSIThresholds(oversold=35, overbought=65)
    return RSIThresholds(oversold=30, overbought=70)
