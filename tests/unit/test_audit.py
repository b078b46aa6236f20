"""Unit tests for the in-memory audit tail."""
from datetime import timedelta

from perpsclaw.core.models import SignalDirection, TickRecord, TradeSignal
from perpsclaw.utils.audit import StructlogAuditSink
from tests.helpers import ManualClock


def _record(agent: str, clock: ManualClock, executed: bool = False) -> TickRecord:
    signal = TradeSignal(direction=SignalDirection.NONE, reason="hold")
    return TickRecord(
        timestamp=clock(),
        agent=agent,
        price=100.0,
        raw_signal=signal,
        signal=signal,
        executed=executed,
    )


class TestStructlogAuditSink:
    def test_history_bounded_per_agent(self):
        sink = StructlogAuditSink(history_size=3)
        clock = ManualClock()
        for _ in range(5):
            sink.record(_record("Shark", clock))
            clock.advance(30)
        sink.record(_record("Wolf", clock))

        assert len(sink.recent("Shark", limit=10)) == 3
        assert len(sink.recent("Wolf")) == 1

    def test_recent_across_agents_is_time_ordered(self):
        sink = StructlogAuditSink()
        clock = ManualClock()
        sink.record(_record("Wolf", clock))
        clock.advance(10)
        sink.record(_record("Shark", clock))

        records = sink.recent()
        assert [r.agent for r in records] == ["Wolf", "Shark"]
        assert records[1].timestamp - records[0].timestamp == timedelta(seconds=10)

    def test_limit(self):
        sink = StructlogAuditSink()
        clock = ManualClock()
        for _ in range(4):
            sink.record(_record("Grid", clock))

        assert len(sink.recent("Grid", limit=2)) == 2
        assert sink.recent("Grid", limit=0) == []
        assert sink.recent("Unknown") == []

    def test_executed_filter(self):
        sink = StructlogAuditSink()
        clock = ManualClock()
        sink.record(_record("Shark", clock))
        sink.record(_record("Shark", clock, executed=True))

        assert len(sink.executed("Shark")) == 1
