"""
Unit tests for the paper trading account.

Tests fills, average entry, realized PnL and collateral bookkeeping.
"""
import pytest

from perpsclaw.core.models import SignalDirection, TradeSignal
from perpsclaw.exchange import PaperAccount


def _signal(direction: SignalDirection, size: float) -> TradeSignal:
    return TradeSignal(direction=direction, size=size, confidence=0.8, reason="test")


@pytest.fixture
def account():
    return PaperAccount(budget=1000.0, max_leverage=2.0)


class TestPaperAccountSetup:
    def test_rejects_bad_budget(self):
        with pytest.raises(ValueError):
            PaperAccount(budget=0.0)

    def test_rejects_bad_leverage(self):
        with pytest.raises(ValueError):
            PaperAccount(budget=100.0, max_leverage=0.0)

    def test_from_config(self, agent_config):
        account = PaperAccount.from_config(agent_config)
        assert account.budget == 100.0
        assert account.max_leverage == 3.0
        assert account.available_collateral == 100.0


class TestPaperFills:
    """Test fill accounting."""

    @pytest.mark.asyncio
    async def test_open_long(self, account):
        result = await account.execute(_signal(SignalDirection.LONG, 1.0), 100.0)

        assert result.success is True
        assert result.filled_size == 1.0
        assert result.price == 100.0
        assert account.position_size == 1.0
        assert account.entry_price == 100.0

    @pytest.mark.asyncio
    async def test_adding_averages_entry(self, account):
        await account.execute(_signal(SignalDirection.LONG, 1.0), 100.0)
        await account.execute(_signal(SignalDirection.LONG, 1.0), 110.0)

        assert account.position_size == pytest.approx(2.0)
        assert account.entry_price == pytest.approx(105.0)
        # Margin 2 * 105 / 2x
        assert account.available_collateral == pytest.approx(895.0)

    @pytest.mark.asyncio
    async def test_partial_close_realizes_pnl(self, account):
        await account.execute(_signal(SignalDirection.LONG, 1.0), 100.0)
        await account.execute(_signal(SignalDirection.LONG, 1.0), 110.0)
        result = await account.execute(_signal(SignalDirection.CLOSE, 1.0), 115.0)

        assert result.filled_size == pytest.approx(1.0)
        assert account.realized_pnl == pytest.approx(10.0)
        assert account.position_size == pytest.approx(1.0)
        assert account.entry_price == pytest.approx(105.0)

    @pytest.mark.asyncio
    async def test_close_capped_at_position(self, account):
        await account.execute(_signal(SignalDirection.SHORT, 0.5), 200.0)
        result = await account.execute(_signal(SignalDirection.CLOSE, 2.0), 190.0)

        assert result.filled_size == pytest.approx(0.5)
        assert account.position_size == 0.0
        assert account.entry_price == 0.0
        assert account.realized_pnl == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_flip_reopens_at_fill_price(self, account):
        await account.execute(_signal(SignalDirection.LONG, 1.0), 105.0)
        await account.execute(_signal(SignalDirection.SHORT, 3.0), 100.0)

        assert account.realized_pnl == pytest.approx(-5.0)
        assert account.position_size == pytest.approx(-2.0)
        assert account.entry_price == pytest.approx(100.0)

    @pytest.mark.asyncio
    async def test_snapshot_marks_short(self, account):
        await account.execute(_signal(SignalDirection.SHORT, 2.0), 100.0)
        snapshot = await account.get_position(90.0)

        assert snapshot.position_size == pytest.approx(-2.0)
        assert snapshot.unrealized_pnl == pytest.approx(20.0)
        assert snapshot.available_collateral == pytest.approx(900.0)


class TestPaperRejections:
    """Test signals that cannot fill."""

    @pytest.mark.asyncio
    async def test_none_signal(self, account):
        result = await account.execute(_signal(SignalDirection.NONE, 0.0), 100.0)
        assert result.success is False
        assert account.fills == 0

    @pytest.mark.asyncio
    async def test_close_when_flat(self, account):
        result = await account.execute(_signal(SignalDirection.CLOSE, 1.0), 100.0)
        assert result.success is False
        assert result.message == "No position to close"

    @pytest.mark.asyncio
    async def test_summary(self, account):
        await account.execute(_signal(SignalDirection.LONG, 1.0), 100.0)
        summary = account.get_summary()

        assert summary['fills'] == 1
        assert summary['margin_used'] == pytest.approx(50.0)
        assert summary['available_collateral'] == pytest.approx(950.0)
