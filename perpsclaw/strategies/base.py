"""Base class for all trading strategies."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog

from perpsclaw.core.models import (
    AgentName,
    SignalDirection,
    StrategyContext,
    TradeSignal,
)

logger = structlog.get_logger(__name__)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class BaseStrategy(ABC):
    """Abstract base class for trading strategies.

    A strategy is a per-agent state machine: it owns whatever state it needs
    between ticks and turns one StrategyContext into one TradeSignal.
    """

    agent: AgentName

    def __init__(self, name: str, **kwargs):
        self.name = name
        self.params = kwargs
        self.is_active = True
        self.logger = logger.bind(strategy=name)

        # Track strategy activity
        self.evaluations = 0
        self.signals_generated = 0

    def evaluate(self, ctx: StrategyContext) -> TradeSignal:
        """
        Decide what to do on this tick.

        Args:
            ctx: Per-tick price history, position and precomputed indicators

        Returns:
            TradeSignal; none signals always carry an explanatory reason
        """
        self.evaluations += 1
        if not self.is_active:
            return self._none("Strategy paused")

        signal = self._evaluate(ctx)
        if signal.direction != SignalDirection.NONE:
            self.signals_generated += 1
            self.logger.info(
                f"{self.log_prefix}.signal",
                direction=signal.direction.value,
                size=round(signal.size, 6),
                confidence=round(signal.confidence, 3),
                reason=signal.reason,
                price=ctx.current_price,
            )
        return signal

    @abstractmethod
    def _evaluate(self, ctx: StrategyContext) -> TradeSignal:
        """Strategy-specific decision logic."""
        pass

    @property
    def log_prefix(self) -> str:
        return f"{self.agent.value}_strategy"

    def get_stats(self) -> Dict[str, Any]:
        """Get strategy statistics."""
        return {
            'name': self.name,
            'agent': self.agent.value,
            'is_active': self.is_active,
            'evaluations': self.evaluations,
            'signals_generated': self.signals_generated,
        }

    def pause(self):
        """Pause the strategy."""
        self.is_active = False
        self.logger.info("strategy.paused")

    def resume(self):
        """Resume the strategy."""
        self.is_active = True
        self.logger.info("strategy.resumed")

    # === Signal helpers ===

    def _none(self, reason: str) -> TradeSignal:
        return TradeSignal(direction=SignalDirection.NONE, reason=reason)

    def _create_signal(
        self,
        direction: SignalDirection,
        size: float,
        confidence: float = 0.5,
        reason: Optional[str] = None,
    ) -> TradeSignal:
        """Helper to create a trade signal with bounded confidence."""
        return TradeSignal(
            direction=direction,
            size=max(0.0, size),
            confidence=clamp(confidence, 0.0, 1.0),
            reason=reason or f"{self.name} {direction.value}",
        )

    def _close(self, ctx: StrategyContext, reason: str, confidence: float = 0.8,
               size: Optional[float] = None) -> TradeSignal:
        """Close the whole position, or ``size`` units of it."""
        if size is None:
            size = abs(ctx.position_size)
        return self._create_signal(SignalDirection.CLOSE, size, confidence, reason)
