"""
Trading strategies for the PerpsClaw decision engine.

Each agent runs one strategy state machine:
- MomentumStrategy (shark): SMA crossover with breakout and ADX filters
- MeanReversionStrategy (wolf): adaptive Bollinger Bands with RSI
- GridStrategy (grid): fixed-spacing price ladder for ranging markets
"""

from perpsclaw.core.config import GridConfig
from perpsclaw.core.models import AgentName
from perpsclaw.strategies.base import BaseStrategy
from perpsclaw.strategies.grid_strategy import GridStrategy
from perpsclaw.strategies.mean_reversion import MeanReversionStrategy
from perpsclaw.strategies.momentum import MomentumStrategy


def create_strategy(agent: AgentName, grid_config: GridConfig = None, **kwargs) -> BaseStrategy:
    """Factory for the strategy an agent runs."""
    agent = AgentName(agent)
    if agent == AgentName.SHARK:
        return MomentumStrategy(**kwargs)
    if agent == AgentName.WOLF:
        return MeanReversionStrategy(**kwargs)
    return GridStrategy(config=grid_config, **kwargs)


__all__ = [
    "BaseStrategy",
    "MomentumStrategy",
    "MeanReversionStrategy",
    "GridStrategy",
    "create_strategy",
]
