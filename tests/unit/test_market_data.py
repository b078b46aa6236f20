"""
Unit tests for open interest, liquidation risk and sentiment analysis.

Liquidation scores add 0.2 for elevated open interest, 0.15 for a 10%+
buildup, 0.25 for extreme funding and 0.2 per volatility threshold.
"""
from datetime import datetime, timedelta, timezone

import pytest

from perpsclaw.core.models import LiquidationRisk, OpenInterestData, SentimentLevel
from perpsclaw.market import (
    OpenInterestTracker,
    analyze_funding_rate,
    assess_liquidation_risk,
    build_market_data,
    calculate_market_sentiment,
    open_interest_signal,
)
from perpsclaw.market.liquidation import classify_liquidation_risk
from perpsclaw.market.sentiment import classify_sentiment, rsi_momentum

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

EXTREME_FUNDING = analyze_funding_rate(0.002)


def _oi(change_pct: float = 0.0, elevated: bool = False) -> OpenInterestData:
    return OpenInterestData(
        open_interest=1000.0,
        open_interest_usd=150_000.0,
        change_24h_percent=change_pct,
        is_elevated=elevated,
    )


# =============================================================================
# Open Interest
# =============================================================================

class TestOpenInterestTracker:
    """Test open interest history and derived readings."""

    def test_first_reading(self):
        data = OpenInterestTracker().analyze(1000.0, 150.0, T0)

        assert data.open_interest == 1000.0
        assert data.open_interest_usd == pytest.approx(150_000.0)
        assert data.change_24h == 0.0
        assert data.is_elevated is False

    def test_change_against_oldest_reading_in_window(self):
        tracker = OpenInterestTracker()
        tracker.analyze(1000.0, 150.0, T0)
        data = tracker.analyze(1100.0, 150.0, T0 + timedelta(hours=1))

        assert data.change_24h == pytest.approx(100.0)
        assert data.change_24h_percent == pytest.approx(10.0)

    def test_readings_older_than_a_day_ignored(self):
        tracker = OpenInterestTracker()
        tracker.analyze(1000.0, 150.0, T0)
        tracker.analyze(1200.0, 150.0, T0 + timedelta(hours=25))
        data = tracker.analyze(1300.0, 150.0, T0 + timedelta(hours=26))

        assert data.change_24h == pytest.approx(100.0)
        assert data.change_24h_percent == pytest.approx(100 / 12)

    def test_elevated_against_recent_average(self):
        tracker = OpenInterestTracker()
        for i in range(11):
            tracker.analyze(1000.0, 150.0, T0 + timedelta(minutes=i))
        data = tracker.analyze(1500.0, 150.0, T0 + timedelta(minutes=11))

        # Average of twelve readings is ~1041.7; 1500 is more than 20% above
        assert data.is_elevated is True

    def test_short_history_never_elevated(self):
        tracker = OpenInterestTracker()
        for i in range(5):
            tracker.analyze(1000.0, 150.0, T0 + timedelta(minutes=i))
        assert tracker.analyze(1500.0, 150.0, T0 + timedelta(minutes=5)).is_elevated is False

    def test_history_bounded(self):
        tracker = OpenInterestTracker(max_history=3)
        for i in range(5):
            tracker.analyze(1000.0 + i, 150.0, T0 + timedelta(minutes=i))
        assert len(tracker) == 3

        tracker.reset()
        assert len(tracker) == 0


class TestOpenInterestSignal:
    """Test the positioning bias."""

    def test_buildup_with_rising_price_is_bullish(self):
        assert open_interest_signal(_oi(6.0), price_change=2.0) == 0.3

    def test_buildup_with_falling_price_is_bearish(self):
        assert open_interest_signal(_oi(6.0), price_change=-2.0) == -0.3

    def test_small_or_shrinking_change_is_neutral(self):
        assert open_interest_signal(_oi(4.0), price_change=2.0) == 0.0
        assert open_interest_signal(_oi(-8.0), price_change=2.0) == 0.0


# =============================================================================
# Liquidation Risk
# =============================================================================

class TestLiquidationRisk:
    """Test cascade risk scoring."""

    def test_calm_market(self):
        risk = assess_liquidation_risk(None, None, volatility=1.0, avg_volatility=1.0)

        assert risk.level == LiquidationRisk.LOW
        assert risk.score == 0.0
        assert risk.size_multiplier == 1.0
        assert risk.cascade_probability == 0.0
        assert risk.warning is None

    def test_medium(self):
        # Extreme funding 0.25 + volatility above 1.5x 0.2
        risk = assess_liquidation_risk(None, EXTREME_FUNDING, volatility=1.6, avg_volatility=1.0)

        assert risk.level == LiquidationRisk.MEDIUM
        assert risk.score == pytest.approx(0.45)
        assert risk.size_multiplier == 0.75

    def test_high(self):
        risk = assess_liquidation_risk(None, EXTREME_FUNDING, volatility=2.5, avg_volatility=1.0)

        assert risk.level == LiquidationRisk.HIGH
        assert risk.score == pytest.approx(0.65)
        assert risk.size_multiplier == 0.5
        assert risk.warning.startswith("HIGH liquidation risk")

    def test_extreme_is_capped(self):
        risk = assess_liquidation_risk(
            _oi(change_pct=12.0, elevated=True), EXTREME_FUNDING,
            volatility=2.5, avg_volatility=1.0,
        )

        assert risk.level == LiquidationRisk.EXTREME
        assert risk.score == pytest.approx(1.0)
        assert risk.cascade_probability == pytest.approx(0.5)
        assert risk.size_multiplier == 0.25
        assert risk.warning.startswith("EXTREME liquidation risk")

    def test_open_interest_crowding(self):
        risk = assess_liquidation_risk(
            _oi(change_pct=12.0, elevated=True), None, volatility=1.0, avg_volatility=1.0
        )
        assert risk.score == pytest.approx(0.35)
        assert risk.level == LiquidationRisk.MEDIUM

    def test_volatility_needs_baseline(self):
        risk = assess_liquidation_risk(None, None, volatility=5.0, avg_volatility=0.0)
        assert risk.score == 0.0

    @pytest.mark.parametrize("score,level", [
        (0.29, LiquidationRisk.LOW),
        (0.3, LiquidationRisk.MEDIUM),
        (0.5, LiquidationRisk.HIGH),
        (0.7, LiquidationRisk.EXTREME),
    ])
    def test_levels(self, score, level):
        assert classify_liquidation_risk(score) == level


# =============================================================================
# Sentiment
# =============================================================================

class TestSentiment:
    """Test the weighted sentiment blend."""

    def test_rsi_momentum(self):
        assert rsi_momentum(80.0) == 0.5
        assert rsi_momentum(20.0) == -0.5
        assert rsi_momentum(60.0) == pytest.approx(0.2)

    def test_missing_inputs_are_neutral(self):
        sentiment = calculate_market_sentiment(None, None, price_change=0.0, rsi_value=50.0)

        assert sentiment.score == 0.0
        assert sentiment.level == SentimentLevel.NEUTRAL

    def test_greed(self):
        # 0.3 x 0.5 funding + 0.3 x 0.3 open interest + 0.4 x 0.5 momentum
        sentiment = calculate_market_sentiment(
            analyze_funding_rate(-0.002), _oi(6.0), price_change=3.0, rsi_value=80.0
        )

        assert sentiment.funding_signal == 0.5
        assert sentiment.open_interest_signal == 0.3
        assert sentiment.momentum_signal == 0.5
        assert sentiment.score == pytest.approx(0.44)
        assert sentiment.level == SentimentLevel.GREED

    def test_fear(self):
        sentiment = calculate_market_sentiment(
            EXTREME_FUNDING, _oi(6.0), price_change=-3.0, rsi_value=20.0
        )

        assert sentiment.score == pytest.approx(-0.44)
        assert sentiment.level == SentimentLevel.FEAR

    @pytest.mark.parametrize("score,level", [
        (0.5, SentimentLevel.EXTREME_GREED),
        (0.2, SentimentLevel.GREED),
        (0.1, SentimentLevel.NEUTRAL),
        (-0.2, SentimentLevel.FEAR),
        (-0.5, SentimentLevel.EXTREME_FEAR),
    ])
    def test_levels(self, score, level):
        assert classify_sentiment(score) == level


# =============================================================================
# Market Data Bundle
# =============================================================================

class TestBuildMarketData:
    """Test the per-tick multipliers."""

    def test_calm_market_has_no_haircut(self):
        market = build_market_data(
            analyze_funding_rate(0.0001), _oi(), price_change=0.5, rsi_value=55.0,
            volatility=1.0, avg_volatility=1.0,
        )

        assert market.position_multiplier == 1.0
        assert market.confidence_multiplier == 1.0
        assert market.liquidation_risk.level == LiquidationRisk.LOW
        assert market.open_interest.open_interest == 1000.0

    def test_high_risk(self):
        market = build_market_data(
            EXTREME_FUNDING, None, price_change=0.0, rsi_value=50.0,
            volatility=2.5, avg_volatility=1.0,
        )

        assert market.position_multiplier == pytest.approx(0.5)
        assert market.confidence_multiplier == pytest.approx(0.7)
        assert market.funding.is_extreme is True
        assert market.open_interest is None

    def test_extreme_risk(self):
        market = build_market_data(
            EXTREME_FUNDING, _oi(change_pct=12.0, elevated=True),
            price_change=3.0, rsi_value=80.0, volatility=2.5, avg_volatility=1.0,
        )

        assert market.liquidation_risk.level == LiquidationRisk.EXTREME
        assert market.position_multiplier == pytest.approx(0.25)
        assert market.confidence_multiplier == pytest.approx(0.5)
