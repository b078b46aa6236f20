"""Paper trading account: simulated perpetual position with instant fills."""
from typing import Any, Dict

import structlog

from perpsclaw.core.config import AgentConfig
from perpsclaw.core.interfaces import AccountProvider, ExecutionClient
from perpsclaw.core.models import (
    ExecutionResult,
    PositionSnapshot,
    SignalDirection,
    TradeSignal,
)

logger = structlog.get_logger(__name__)

# Residual size treated as flat
DUST = 1e-9


class PaperAccount(AccountProvider, ExecutionClient):
    """
    Single-symbol perpetual account for paper trading.

    Every signal fills in full at the price it is executed with. Tracks the
    signed position, its average entry, and realized PnL from reductions.
    Available collateral is the budget plus realized PnL, less the margin
    the open position ties up at ``max_leverage``.
    """

    def __init__(self, budget: float, max_leverage: float = 1.0, name: str = "paper"):
        if budget <= 0:
            raise ValueError("budget must be positive")
        if max_leverage <= 0:
            raise ValueError("max_leverage must be positive")

        self.budget = budget
        self.max_leverage = max_leverage
        self.position_size = 0.0
        self.entry_price = 0.0
        self.realized_pnl = 0.0
        self.fills = 0
        self.logger = logger.bind(account=name)

    @classmethod
    def from_config(cls, config: AgentConfig) -> "PaperAccount":
        return cls(config.budget, config.max_leverage, name=config.name)

    # === AccountProvider ===

    async def get_position(self, price: float) -> PositionSnapshot:
        return self.snapshot(price)

    def snapshot(self, price: float) -> PositionSnapshot:
        """Position marked at ``price``."""
        unrealized = self.position_size * (price - self.entry_price) if self.position_size else 0.0
        return PositionSnapshot(
            position_size=self.position_size,
            entry_price=self.entry_price,
            unrealized_pnl=unrealized,
            available_collateral=self.available_collateral,
        )

    @property
    def margin_used(self) -> float:
        return abs(self.position_size) * self.entry_price / self.max_leverage

    @property
    def available_collateral(self) -> float:
        return self.budget + self.realized_pnl - self.margin_used

    # === ExecutionClient ===

    async def execute(self, signal: TradeSignal, price: float) -> ExecutionResult:
        if signal.direction == SignalDirection.NONE or signal.size <= 0:
            return ExecutionResult(success=False, message="Nothing to execute")
        if price <= 0:
            return ExecutionResult(success=False, message=f"Invalid fill price: {price}")

        if signal.direction == SignalDirection.LONG:
            delta = signal.size
        elif signal.direction == SignalDirection.SHORT:
            delta = -signal.size
        else:
            if self.position_size == 0:
                return ExecutionResult(success=False, message="No position to close")
            reduce = min(signal.size, abs(self.position_size))
            delta = -reduce if self.position_size > 0 else reduce

        realized = self._apply_fill(delta, price)
        self.fills += 1

        self.logger.warning(
            "paper_account.paper_trade",
            direction=signal.direction.value,
            size=round(abs(delta), 6),
            price=price,
            position=round(self.position_size, 6),
            entry_price=round(self.entry_price, 4),
            realized=round(realized, 4),
        )

        return ExecutionResult(
            success=True,
            filled_size=abs(delta),
            price=price,
            message="paper fill",
        )

    def _apply_fill(self, delta: float, price: float) -> float:
        """Apply a signed fill; returns PnL realized by it."""
        pos = self.position_size

        # Opening or adding: weighted average entry
        if pos == 0 or (pos > 0) == (delta > 0):
            new_size = abs(pos) + abs(delta)
            self.entry_price = (abs(pos) * self.entry_price + abs(delta) * price) / new_size
            self.position_size = pos + delta
            return 0.0

        # Reducing, closing or flipping
        closed = min(abs(delta), abs(pos))
        direction = 1.0 if pos > 0 else -1.0
        realized = closed * (price - self.entry_price) * direction
        self.realized_pnl += realized

        self.position_size = pos + delta
        if abs(self.position_size) < DUST:
            self.position_size = 0.0
            self.entry_price = 0.0
        elif abs(delta) > abs(pos):
            # Flipped through zero; the remainder opens at the fill price
            self.entry_price = price

        return realized

    def get_summary(self) -> Dict[str, Any]:
        return {
            'budget': self.budget,
            'position_size': self.position_size,
            'entry_price': self.entry_price,
            'realized_pnl': self.realized_pnl,
            'margin_used': self.margin_used,
            'available_collateral': self.available_collateral,
            'fills': self.fills,
        }
