"""
Collaborator interfaces for the decision-cycle orchestrator.

The engine never talks to an exchange directly. Market data, account state,
order execution and audit output are supplied through these abstract
classes, so the same runner drives paper accounts, live venues and test
fakes.
"""
from abc import ABC, abstractmethod
from typing import Optional

from perpsclaw.core.models import (
    ExecutionResult,
    PositionSnapshot,
    TickRecord,
    TradeSignal,
)


class PriceFeed(ABC):
    """Source of the latest market price."""

    @abstractmethod
    async def fetch_price(self) -> float:
        """Latest price; raise FeedError when unavailable."""
        pass

    async def fetch_funding_rate(self) -> Optional[float]:
        """Current funding rate per interval, or None if the venue has none."""
        return None

    async def fetch_open_interest(self) -> Optional[float]:
        """Open interest in base units, or None if the venue does not report it."""
        return None

    async def close(self) -> None:
        """Release connections held by the feed."""
        return None


class AccountProvider(ABC):
    """Reports the agent's position and collateral."""

    @abstractmethod
    async def get_position(self, price: float) -> PositionSnapshot:
        """Position marked at ``price``."""
        pass


class ExecutionClient(ABC):
    """Turns a final trade signal into an order."""

    @abstractmethod
    async def execute(self, signal: TradeSignal, price: float) -> ExecutionResult:
        pass


class AuditSink(ABC):
    """Receives one structured record per tick."""

    @abstractmethod
    def record(self, record: TickRecord) -> None:
        pass
