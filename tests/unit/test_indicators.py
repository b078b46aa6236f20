"""
Unit tests for the indicator library.

Covers moving averages, oscillators, close-only and OHLC ATR, the Hurst
exponent, volatility measures, Kelly sizing and adaptive parameters.
"""
import math
from datetime import datetime, timedelta, timezone

import pytest

from perpsclaw.core.models import Candle, MarketRegime
from perpsclaw.indicators import (
    IndicatorCache,
    adaptive_bb_width,
    adaptive_period,
    adaptive_rsi_thresholds,
    adx,
    atr,
    atr_ohlc,
    atr_percent,
    atr_percent_ohlc,
    atr_stop_distance,
    atr_take_profit_distance,
    calculate_indicators,
    classify_regime,
    ema,
    hurst_exponent,
    kelly_fraction,
    kelly_position_size,
    realized_volatility,
    rsi,
    sma,
    std_dev,
    true_range,
    volatility_percentile,
)
from perpsclaw.indicators.sizing import round_half_up
from tests.helpers import make_context, oscillating_path, random_walk, trending_path


def _candles(n: int, close: float = 100.0, half_range: float = 1.0):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        Candle(
            open_time=start + timedelta(minutes=i),
            open=close,
            high=close + half_range,
            low=close - half_range,
            close=close,
            complete=True,
        )
        for i in range(n)
    ]


# =============================================================================
# Moving Averages
# =============================================================================

class TestMovingAverages:
    """Test SMA, EMA and standard deviation."""

    def test_sma_uses_last_window(self):
        assert sma([1, 2, 3, 4, 5], 3) == pytest.approx(4.0)

    def test_sma_insufficient_data(self):
        assert sma([1, 2], 3) == 0.0

    def test_ema_seeded_with_sma(self):
        assert ema([1, 2, 3], 3) == pytest.approx(2.0)
        # Seed 2.0, multiplier 0.5: (4 - 2) * 0.5 + 2
        assert ema([1, 2, 3, 4], 3) == pytest.approx(3.0)

    def test_ema_insufficient_data(self):
        assert ema([1.0], 5) == 0.0

    def test_std_dev_population(self):
        assert std_dev([2, 4, 4, 4, 5, 5, 7, 9], 8) == pytest.approx(2.0)

    def test_std_dev_flat(self):
        assert std_dev([100.0] * 20, 20) == 0.0


# =============================================================================
# Oscillators
# =============================================================================

class TestRSI:
    """Test the Relative Strength Index."""

    def test_neutral_when_short(self):
        assert rsi([100.0] * 10, 14) == 50.0

    def test_all_gains(self):
        assert rsi(trending_path(20), 14) == 100.0

    def test_all_losses(self):
        assert rsi(trending_path(20, drift=-0.5), 14) == pytest.approx(0.0)

    def test_balanced_moves(self):
        prices = [100.0 if i % 2 == 0 else 101.0 for i in range(15)]
        assert rsi(prices, 14) == pytest.approx(50.0)

    def test_bounded(self):
        value = rsi(random_walk(100), 14)
        assert 0.0 <= value <= 100.0


class TestADX:
    """Test close-only ADX."""

    def test_zero_when_short(self):
        assert adx([100.0] * 10, 14) == 0.0

    def test_zero_when_flat(self):
        assert adx([100.0] * 40, 14) == 0.0

    def test_one_sided_trend_is_maximal(self):
        assert adx(trending_path(40), 14) == pytest.approx(100.0)

    def test_non_negative(self):
        assert adx(random_walk(100, seed=7), 14) >= 0.0


# =============================================================================
# True Range / ATR
# =============================================================================

class TestATR:
    """Test close-only and OHLC average true range."""

    def test_true_range_doubles_close_delta(self):
        assert true_range([100.0, 101.0], 1) == pytest.approx(2.0)

    def test_true_range_first_index(self):
        assert true_range([100.0, 101.0], 0) == 0.0

    def test_atr_constant_steps(self):
        prices = trending_path(20, drift=1.0)
        assert atr(prices, 14) == pytest.approx(2.0)

    def test_atr_insufficient_data(self):
        assert atr([100.0] * 14, 14) == 0.0

    def test_atr_percent(self):
        prices = trending_path(20, drift=1.0)
        assert atr_percent(prices, 14) == pytest.approx(2.0 / prices[-1] * 100)

    def test_stop_and_target_distances(self):
        prices = trending_path(20, drift=1.0)
        assert atr_stop_distance(prices) == pytest.approx(4.0)
        assert atr_take_profit_distance(prices) == pytest.approx(6.0)

    def test_atr_ohlc(self):
        candles = _candles(15)
        assert atr_ohlc(candles, 14) == pytest.approx(2.0)
        assert atr_percent_ohlc(candles, 14) == pytest.approx(2.0)

    def test_atr_ohlc_needs_period_plus_one(self):
        assert atr_ohlc(_candles(14), 14) == 0.0


# =============================================================================
# Hurst Exponent & Regime
# =============================================================================

class TestHurst:
    """Test R/S Hurst estimation and regime classification."""

    def test_neutral_when_short(self):
        assert hurst_exponent(random_walk(19)) == 0.5

    def test_neutral_on_invalid_prices(self):
        prices = random_walk(100)
        prices[50] = 0.0
        assert hurst_exponent(prices) == 0.5

    def test_bounded(self):
        for seed in range(5):
            h = hurst_exponent(random_walk(200, seed=seed))
            assert 0.0 <= h <= 1.0

    def test_alternating_series_is_anti_persistent(self):
        h = hurst_exponent(oscillating_path(200))
        assert h < 0.45
        assert classify_regime(h) == MarketRegime.MEAN_REVERTING

    @pytest.mark.parametrize("hurst,expected", [
        (0.70, MarketRegime.TRENDING),
        (0.56, MarketRegime.TRENDING),
        (0.55, MarketRegime.RANDOM),
        (0.50, MarketRegime.RANDOM),
        (0.45, MarketRegime.RANDOM),
        (0.30, MarketRegime.MEAN_REVERTING),
    ])
    def test_classify_regime(self, hurst, expected):
        assert classify_regime(hurst) == expected


class TestVolatility:
    """Test realized volatility and the volatility percentile."""

    def test_realized_vol_insufficient_data(self):
        assert realized_volatility([100.0] * 10, 20) == 0.0

    def test_realized_vol_constant_returns(self):
        prices = [100.0 * 1.01 ** i for i in range(30)]
        assert realized_volatility(prices, 20) == pytest.approx(0.0, abs=1e-9)

    def test_realized_vol_annualised_percent(self):
        prices = oscillating_path(30)
        step = math.log(101.0 / 99.0)
        assert realized_volatility(prices, 20) == pytest.approx(step * math.sqrt(365) * 100)

    def test_volatility_percentile_neutral_when_short(self):
        assert volatility_percentile(random_walk(50), 14, 100) == 50.0

    def test_volatility_percentile_bounded(self):
        value = volatility_percentile(random_walk(200), 14, 100)
        assert 0.0 <= value <= 100.0


# =============================================================================
# Sizing & Adaptive Parameters
# =============================================================================

class TestKelly:
    """Test Kelly fraction and position size."""

    def test_full_kelly(self):
        assert kelly_fraction(0.55, 1.2) == pytest.approx(0.175)

    def test_half_kelly(self):
        assert kelly_fraction(0.55, 1.2, 0.5) == pytest.approx(0.0875)

    def test_capped(self):
        assert kelly_fraction(0.6, 3.0) == pytest.approx(0.25)

    def test_negative_edge_is_zero(self):
        assert kelly_fraction(0.3, 1.0) == 0.0

    @pytest.mark.parametrize("win_rate,ratio", [
        (0.0, 1.5), (1.0, 1.5), (0.5, 0.0), (float("nan"), 1.5),
    ])
    def test_invalid_inputs(self, win_rate, ratio):
        assert kelly_fraction(win_rate, ratio) == 0.0

    def test_position_size(self):
        assert kelly_position_size(1000, 100, 0.55, 1.2, 1.0, 1.0) == pytest.approx(0.875)

    def test_position_size_shrinks_in_high_volatility(self):
        assert kelly_position_size(1000, 100, 0.55, 1.2, 2.0, 1.0) == pytest.approx(0.4375)

    def test_position_size_invalid_price(self):
        assert kelly_position_size(1000, 0, 0.55, 1.2, 1.0, 1.0) == 0.0


class TestAdaptiveParameters:
    """Test volatility- and regime-adaptive parameters."""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(-2.5) == -2

    def test_period_scales_with_volatility(self):
        assert adaptive_period(20, 2.0, 1.0) == 40
        assert adaptive_period(10, 1.25, 1.0) == 13

    def test_period_clamped(self):
        assert adaptive_period(20, 10.0, 1.0) == 40
        assert adaptive_period(20, 0.1, 1.0) == 10

    def test_period_unchanged_without_baseline(self):
        assert adaptive_period(20, 1.0, 0.0) == 20

    def test_bb_width(self):
        assert adaptive_bb_width(2.0, 0.5) == pytest.approx(2.0)
        assert adaptive_bb_width(2.0, 0.3) == pytest.approx(1.6)
        assert adaptive_bb_width(2.0, 1.5) == pytest.approx(3.0)

    def test_rsi_thresholds(self):
        trending = adaptive_rsi_thresholds(0.6)
        reverting = adaptive_rsi_thresholds(0.4)
        neutral = adaptive_rsi_thresholds(0.5)
        assert (trending.oversold, trending.overbought) == (20, 80)
        assert (reverting.oversold, reverting.overbought) == (35, 65)
        assert (neutral.oversold, neutral.overbought) == (30, 70)


# =============================================================================
# Snapshot & Cache
# =============================================================================

class TestIndicatorSnapshot:
    """Test the full snapshot and the per-tick cache."""

    def test_snapshot_matches_functions(self):
        prices = random_walk(150)
        snap = calculate_indicators(prices)
        assert snap.sma20 == pytest.approx(sma(prices, 20))
        assert snap.rsi14 == pytest.approx(rsi(prices, 14))
        assert snap.regime == classify_regime(snap.hurst)
        assert 0.0 <= snap.vol_percentile <= 100.0

    def test_snapshot_is_immutable(self):
        snap = calculate_indicators(random_walk(50))
        with pytest.raises(Exception):
            snap.sma10 = 1.0

    def test_cache_prefers_precomputed(self):
        prices = random_walk(80)
        ctx = make_context(prices, hurst=0.7, atr=5.0)
        ind = IndicatorCache.from_context(ctx)
        assert ind.hurst() == 0.7
        assert ind.regime() == MarketRegime.TRENDING
        assert ind.atr() == 5.0
        # Non-default periods are always computed
        assert ind.atr(50) == pytest.approx(atr(prices, 50))

    def test_cache_computes_missing(self):
        prices = random_walk(80)
        ind = IndicatorCache.from_context(make_context(prices))
        assert ind.hurst() == pytest.approx(hurst_exponent(prices))
        assert ind.rsi() == pytest.approx(rsi(prices, 14))

    def test_close_atr_ignores_precomputed(self):
        prices = random_walk(80)
        ind = IndicatorCache.from_context(make_context(prices, atr=5.0))

        assert ind.atr() == 5.0
        assert ind.close_atr() == pytest.approx(atr(prices, 14))
        assert ind.close_atr(50) == pytest.approx(atr(prices, 50))
