"""Configuration management for the PerpsClaw decision engine."""

from typing import Dict, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from perpsclaw.core.models import AgentName

# =============================================================================
# Agent Configuration
# =============================================================================


class AgentConfig(BaseSettings):
    """Static per-agent configuration, loaded once before the first tick.

    Frozen: the orchestrator, strategies and risk manager all read the same
    instance for the lifetime of the process.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AGENT_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    name: str = Field(default="agent")
    symbol: str = Field(default="SOL/USDT:USDT")

    # Capital (USD collateral) and leverage
    budget: float = Field(default=100.0, gt=0)
    max_leverage: float = Field(default=3.0)

    # Scheduling
    loop_interval_ms: int = Field(default=30000, gt=0)

    # Fallback stop-loss / take-profit as fractions of notional
    stop_loss_pct: float = Field(default=0.05)
    take_profit_pct: float = Field(default=0.10)

    # ATR-scaled stops
    atr_stop_multiplier: float = Field(default=2.0, gt=0)
    atr_take_profit_multiplier: float = Field(default=3.0, gt=0)
    use_atr_stops: bool = Field(default=True)

    # Feature toggles
    adaptive_enabled: bool = Field(default=True)
    regime_filter_enabled: bool = Field(default=True)

    # Half-Kelly cap on new exposure, from the historical edge below
    use_kelly_sizing: bool = Field(default=True)
    kelly_win_rate: float = Field(default=0.55)
    kelly_avg_win_loss_ratio: float = Field(default=1.5, gt=0)

    # Data windows
    history_size: int = Field(default=200, ge=50)
    candle_interval_ms: int = Field(default=60000, gt=0)
    max_candles: int = Field(default=100, gt=0)

    # Execution gating
    min_signal_confidence: float = Field(default=0.5, ge=0, le=1)
    daily_loss_limit_pct: float = Field(default=0.15, gt=0, le=1)
    max_backoff_ms: int = Field(default=300000, gt=0)

    @field_validator("stop_loss_pct", "take_profit_pct")
    @classmethod
    def validate_pct(cls, v):
        """Validate stop/target is a fraction between 0 and 1."""
        if v <= 0 or v >= 1:
            raise ValueError("Stop-loss/take-profit must be between 0 and 1")
        return v

    @field_validator("max_leverage")
    @classmethod
    def validate_leverage(cls, v):
        """Validate leverage does not exceed safe limits."""
        if v <= 0 or v > 20:
            raise ValueError("Leverage must be between 0 and 20")
        return v

    @field_validator("kelly_win_rate")
    @classmethod
    def validate_win_rate(cls, v):
        """Validate win rate is a probability."""
        if v <= 0 or v >= 1:
            raise ValueError("Win rate must be between 0 and 1")
        return v

    @property
    def loop_interval_seconds(self) -> float:
        return self.loop_interval_ms / 1000.0

    @property
    def max_notional(self) -> float:
        """Largest allowed position notional in USD."""
        return self.budget * self.max_leverage


# =============================================================================
# Grid Configuration
# =============================================================================


class GridConfig(BaseSettings):
    """Grid strategy parameters."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="GRID_", case_sensitive=False, extra="ignore"
    )

    grid_levels: int = Field(default=10, ge=2)
    grid_spacing_pct: float = Field(default=0.005, gt=0, lt=0.1)
    size_per_level: float = Field(default=0.1, gt=0)
    reinit_drift_pct: float = Field(default=0.05, gt=0, lt=1)

    @field_validator("grid_levels")
    @classmethod
    def validate_even_levels(cls, v):
        """Validate levels split evenly around the reference price."""
        if v % 2 != 0:
            raise ValueError("Grid levels must be an even number")
        return v


# =============================================================================
# Exchange Configuration
# =============================================================================


class ExchangeConfig(BaseSettings):
    """Market data / execution venue configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="EXCHANGE_", case_sensitive=False, extra="ignore"
    )

    exchange_id: str = Field(default="bybit")
    api_key: str = Field(default="")
    api_secret: str = Field(default="")
    testnet: bool = Field(default=True)
    timeout_ms: int = Field(default=30000, gt=0)

    # Trading mode: paper (simulation) or live (real trading)
    trading_mode: Literal["paper", "live"] = Field(default="paper")

    @property
    def is_paper_trading(self) -> bool:
        return self.trading_mode == "paper"


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_file: Optional[str] = Field(default="logs/perpsclaw.log")

    # In-memory audit tail kept per agent
    audit_history_size: int = Field(default=100, gt=0)


# =============================================================================
# Agent Presets
# =============================================================================

AGENT_PRESETS: Dict[AgentName, Dict] = {
    AgentName.SHARK: {
        "name": "Shark",
        "budget": 100.0,
        "loop_interval_ms": 30000,
        "max_leverage": 5.0,
        "stop_loss_pct": 0.05,
        "take_profit_pct": 0.10,
        "kelly_win_rate": 0.45,
        "kelly_avg_win_loss_ratio": 2.0,
    },
    AgentName.WOLF: {
        "name": "Wolf",
        "budget": 100.0,
        "loop_interval_ms": 45000,
        "max_leverage": 3.0,
        "stop_loss_pct": 0.03,
        "take_profit_pct": 0.05,
        "kelly_win_rate": 0.6,
        "kelly_avg_win_loss_ratio": 1.2,
    },
    AgentName.GRID: {
        "name": "Grid",
        "budget": 100.0,
        "loop_interval_ms": 15000,
        "max_leverage": 2.0,
        "stop_loss_pct": 0.08,
        "take_profit_pct": 0.15,
        "kelly_win_rate": 0.55,
        "kelly_avg_win_loss_ratio": 1.0,
    },
}


def get_agent_config(agent: AgentName, **overrides) -> AgentConfig:
    """Build the frozen config for an agent from its preset.

    Preset values win over the environment; keyword overrides win over both.
    """
    values = dict(AGENT_PRESETS[AgentName(agent)])
    values.update(overrides)
    return AgentConfig(**values)


# =============================================================================
# Global Configuration Container
# =============================================================================


class PerpsClawConfig:
    """
    Container for all PerpsClaw configurations.

    Usage:
        from perpsclaw.core.config import perpsclaw_config

        agent = perpsclaw_config.agent(AgentName.WOLF)
        if perpsclaw_config.exchange.is_paper_trading:
            ...
    """

    def __init__(self):
        self.exchange = ExchangeConfig()
        self.grid = GridConfig()
        self.logging = LoggingConfig()

    def agent(self, name: AgentName, **overrides) -> AgentConfig:
        return get_agent_config(name, **overrides)

    def validate_configuration(self, agent: Optional[AgentConfig] = None) -> dict:
        """
        Validate the complete configuration and return any issues.

        Returns:
            Dictionary with 'valid' boolean and 'issues' list
        """
        issues = []

        if not self.exchange.is_paper_trading:
            if not self.exchange.api_key or self.exchange.api_key.startswith("your_"):
                issues.append("Missing or invalid API key for live trading")
            if not self.exchange.api_secret or self.exchange.api_secret.startswith("your_"):
                issues.append("Missing or invalid API secret for live trading")

        if agent is not None:
            if agent.take_profit_pct <= agent.stop_loss_pct:
                issues.append(
                    f"Take-profit ({agent.take_profit_pct:.2%}) should exceed "
                    f"stop-loss ({agent.stop_loss_pct:.2%})"
                )
            if agent.atr_take_profit_multiplier <= agent.atr_stop_multiplier:
                issues.append("ATR take-profit multiplier should exceed stop multiplier")

        return {"valid": len(issues) == 0, "issues": issues}


# =============================================================================
# Global Configuration Instances
# =============================================================================

logging_config = LoggingConfig()
perpsclaw_config = PerpsClawConfig()


__all__ = [
    "AgentConfig",
    "GridConfig",
    "ExchangeConfig",
    "LoggingConfig",
    "AGENT_PRESETS",
    "get_agent_config",
    "PerpsClawConfig",
    "perpsclaw_config",
    "logging_config",
]
