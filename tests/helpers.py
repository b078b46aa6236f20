"""Price paths and collaborator fakes shared by the test suite."""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import numpy as np

from perpsclaw.core.interfaces import (
    AccountProvider,
    AuditSink,
    ExecutionClient,
    PriceFeed,
)
from perpsclaw.core.models import (
    ExecutionResult,
    PositionSnapshot,
    StrategyContext,
    TickRecord,
    TradeSignal,
)


# =============================================================================
# Price Path Helpers
# =============================================================================

def random_walk(n: int, start: float = 100.0, vol: float = 0.01, seed: int = 42) -> List[float]:
    """Geometric random walk from a seeded generator."""
    rng = np.random.default_rng(seed)
    returns = rng.normal(0.0, vol, n - 1)
    path = start * np.exp(np.concatenate([[0.0], np.cumsum(returns)]))
    return [float(p) for p in path]


def trending_path(n: int, start: float = 100.0, drift: float = 0.5) -> List[float]:
    """Straight line with a constant step."""
    return [start + drift * i for i in range(n)]


def oscillating_path(n: int, center: float = 100.0, amplitude: float = 1.0) -> List[float]:
    """Saw-tooth that flips direction every sample."""
    return [center + (amplitude if i % 2 else -amplitude) for i in range(n)]


def make_context(prices: List[float], **kwargs) -> StrategyContext:
    """Strategy context whose current price is the last sample."""
    values = {
        "current_price": prices[-1],
        "price_history": list(prices),
        "available_collateral": 100.0,
    }
    values.update(kwargs)
    return StrategyContext(**values)


# =============================================================================
# Collaborator Fakes
# =============================================================================

class FakeFeed(PriceFeed):
    """Serves a scripted sequence of prices (or exceptions); repeats the last."""

    def __init__(self, prices, funding: Optional[float] = None,
                 open_interest: Optional[float] = None):
        self.prices = list(prices)
        self.funding = funding
        self.open_interest = open_interest
        self.calls = 0

    async def fetch_price(self) -> float:
        item = self.prices[min(self.calls, len(self.prices) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item

    async def fetch_funding_rate(self) -> Optional[float]:
        return self.funding

    async def fetch_open_interest(self) -> Optional[float]:
        return self.open_interest


class FakeAccount(AccountProvider):
    """Fixed position with unrealized PnL marked at the requested price."""

    def __init__(self, position_size: float = 0.0, entry_price: float = 0.0,
                 collateral: float = 100.0):
        self.position_size = position_size
        self.entry_price = entry_price
        self.collateral = collateral

    async def get_position(self, price: float) -> PositionSnapshot:
        unrealized = self.position_size * (price - self.entry_price) if self.position_size else 0.0
        return PositionSnapshot(
            position_size=self.position_size,
            entry_price=self.entry_price,
            unrealized_pnl=unrealized,
            available_collateral=self.collateral,
        )


class FakeExecutor(ExecutionClient):
    """Records every execution request and fills it."""

    def __init__(self, success: bool = True):
        self.success = success
        self.executed: List[TradeSignal] = []

    async def execute(self, signal: TradeSignal, price: float) -> ExecutionResult:
        self.executed.append(signal)
        if not self.success:
            return ExecutionResult(success=False, message="rejected")
        return ExecutionResult(success=True, filled_size=signal.size, price=price)


class ListAuditSink(AuditSink):
    def __init__(self):
        self.records: List[TickRecord] = []

    def record(self, record: TickRecord) -> None:
        self.records.append(record)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)
