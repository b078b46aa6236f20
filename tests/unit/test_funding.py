"""Unit tests for perpetual funding rate analysis."""
import pytest

from perpsclaw.core.models import FundingDirection
from perpsclaw.market import analyze_funding_rate, funding_rate_signal


class TestAnalyzeFundingRate:
    """Test funding classification."""

    def test_longs_pay(self):
        data = analyze_funding_rate(0.0001)
        assert data.direction == FundingDirection.LONGS_PAY
        assert data.rate_percent == pytest.approx(0.01)
        assert data.is_extreme is False

    def test_shorts_pay(self):
        assert analyze_funding_rate(-0.0001).direction == FundingDirection.SHORTS_PAY

    def test_neutral_band(self):
        assert analyze_funding_rate(0.00003).direction == FundingDirection.NEUTRAL

    def test_extreme(self):
        assert analyze_funding_rate(0.0015).is_extreme is True
        assert analyze_funding_rate(-0.0015).is_extreme is True
        assert analyze_funding_rate(0.001).is_extreme is False

    def test_annualized_rate(self):
        # Three fundings a day for a year
        data = analyze_funding_rate(0.0001, interval_hours=8)
        assert data.annualized_rate == pytest.approx(0.0001 * 1095 * 100)

    def test_non_finite_is_neutral(self):
        data = analyze_funding_rate(float("nan"))
        assert data.direction == FundingDirection.NEUTRAL
        assert data.rate == 0.0


class TestFundingSignal:
    """Test the contrarian funding bias."""

    def test_extreme_longs_pay_is_bearish(self):
        assert funding_rate_signal(analyze_funding_rate(0.002)) == -0.5

    def test_extreme_shorts_pay_is_bullish(self):
        assert funding_rate_signal(analyze_funding_rate(-0.002)) == 0.5

    def test_mild_rate_is_proportional(self):
        assert funding_rate_signal(analyze_funding_rate(0.0005)) == pytest.approx(-0.05)

    def test_bounded(self):
        for rate in (-0.0009, -0.0001, 0.0, 0.0001, 0.0009):
            assert -1.0 <= funding_rate_signal(analyze_funding_rate(rate)) <= 1.0
