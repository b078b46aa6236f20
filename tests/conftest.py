"""Pytest fixtures for the PerpsClaw test suite."""
import pytest

from perpsclaw.core.config import AgentConfig, GridConfig
from tests.helpers import ListAuditSink, ManualClock


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def agent_config():
    """Agent configuration with round numbers for hand-checked tests."""
    return AgentConfig(
        name="test",
        budget=100.0,
        max_leverage=3.0,
        loop_interval_ms=30000,
        stop_loss_pct=0.05,
        take_profit_pct=0.10,
        use_atr_stops=True,
        adaptive_enabled=True,
        regime_filter_enabled=False,
        use_kelly_sizing=False,
        min_signal_confidence=0.5,
        daily_loss_limit_pct=0.15,
        max_backoff_ms=300000,
    )


@pytest.fixture
def grid_config():
    """Default grid: 10 levels at 0.5% spacing, 0.1 units per level."""
    return GridConfig(
        grid_levels=10,
        grid_spacing_pct=0.005,
        size_per_level=0.1,
        reinit_drift_pct=0.05,
    )


# =============================================================================
# Orchestrator Fixtures
# =============================================================================

@pytest.fixture
def clock():
    """Manual UTC clock starting 2024-03-01 12:00."""
    return ManualClock()


@pytest.fixture
def audit_sink():
    return ListAuditSink()
