"""Risk management module for the PerpsClaw decision engine.

This module provides the per-signal risk gate:
- Fixed and ATR-scaled stop-loss / take-profit
- Leverage clamp on new exposure
- Collateral gate
"""

from perpsclaw.risk.risk_manager import (
    RiskAssessment,
    RiskCheck,
    RiskLevel,
    RiskManager,
    RiskRule,
    apply_risk_checks,
    create_risk_manager,
)

__all__ = [
    'RiskManager',
    'RiskAssessment',
    'RiskCheck',
    'RiskRule',
    'RiskLevel',
    'apply_risk_checks',
    'create_risk_manager',
]
