"""Unit tests for the rolling price window, candles and candle aggregation."""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from perpsclaw.core.models import Candle
from perpsclaw.core.prices import CandleAggregator, PriceSeries

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestPriceSeries:
    """Test the bounded sample window."""

    def test_append_and_latest(self):
        series = PriceSeries(max_size=5)
        series.append(100.0)
        series.append(101.0)

        assert series.prices == [100.0, 101.0]
        assert series.latest == 101.0
        assert len(series) == 2

    def test_oldest_evicted(self):
        series = PriceSeries(max_size=3)
        for price in [1.0, 2.0, 3.0, 4.0]:
            series.append(price)
        assert series.prices == [2.0, 3.0, 4.0]

    def test_prices_is_a_copy(self):
        series = PriceSeries()
        series.append(100.0)
        series.prices.append(5.0)
        assert len(series) == 1

    def test_empty(self):
        assert PriceSeries().latest is None

    @pytest.mark.parametrize("bad", [0.0, -1.0, float("nan"), float("inf")])
    def test_invalid_samples_rejected(self, bad):
        series = PriceSeries()
        with pytest.raises(ValueError):
            series.append(bad)
        assert len(series) == 0


class TestCandle:
    """Test OHLC invariants."""

    def test_valid_candle(self):
        candle = Candle(open_time=T0, open=100, high=102, low=99, close=101)
        assert candle.range == pytest.approx(3.0)
        assert candle.complete is False

    def test_high_below_close_rejected(self):
        with pytest.raises(ValidationError):
            Candle(open_time=T0, open=100, high=100.5, low=99, close=101)

    def test_low_above_open_rejected(self):
        with pytest.raises(ValidationError):
            Candle(open_time=T0, open=100, high=102, low=100.5, close=101)


class TestCandleAggregator:
    """Test bucket building from scalar samples."""

    def test_samples_fold_into_one_bucket(self):
        agg = CandleAggregator(interval_ms=60000)
        for offset, price in [(0, 100.0), (10, 103.0), (20, 98.0), (50, 101.0)]:
            agg.add(price, T0 + timedelta(seconds=offset))

        (candle,) = agg.candles
        assert (candle.open, candle.high, candle.low, candle.close) == (100.0, 103.0, 98.0, 101.0)
        assert candle.open_time == T0
        assert candle.complete is False
        assert agg.complete_candles == []

    def test_rollover_completes_previous_bucket(self):
        agg = CandleAggregator(interval_ms=60000)
        agg.add(100.0, T0)
        agg.add(102.0, T0 + timedelta(seconds=30))
        agg.add(101.0, T0 + timedelta(seconds=61))

        first, second = agg.candles
        assert first.complete is True
        assert first.close == 102.0
        assert second.complete is False
        assert second.open == 101.0
        assert second.open_time == T0 + timedelta(minutes=1)
        assert agg.complete_candles == [first]

    def test_candle_invariants_hold(self):
        agg = CandleAggregator(interval_ms=1000)
        prices = [100.0, 105.0, 95.0, 101.0, 99.0, 103.0]
        for i, price in enumerate(prices):
            agg.add(price, T0 + timedelta(milliseconds=400 * i))

        for candle in agg.candles:
            assert candle.low <= min(candle.open, candle.close)
            assert candle.high >= max(candle.open, candle.close)

    def test_history_bounded(self):
        agg = CandleAggregator(interval_ms=1000, max_candles=3)
        for i in range(5):
            agg.add(100.0 + i, T0 + timedelta(seconds=i))
        assert len(agg) == 3
        assert agg.candles[0].open == 102.0

    def test_late_sample_joins_open_bucket(self):
        agg = CandleAggregator(interval_ms=60000)
        agg.add(100.0, T0 + timedelta(minutes=1))
        agg.add(90.0, T0)

        (candle,) = agg.candles
        assert candle.low == 90.0
        assert candle.close == 90.0
