"""Risk management - the last word on every signal before execution.

Every strategy signal passes through an ordered list of risk rules:
1. Stop-loss / take-profit on the open position (may force a close)
2. Liquidation risk haircut on new exposure in crowded, volatile markets
3. Half-Kelly cap on resulting exposure
4. Leverage clamp on new exposure (shrinks the size to the headroom)
5. Collateral gate (blocks new exposure without free collateral)

A rule may rewrite the signal. Blocking rules end the evaluation, so a
forced stop-loss close is never resized or blocked by a later rule.

CRITICAL: Any changes to this file must be reviewed and tested thoroughly.
Incorrect risk controls can lead to catastrophic losses.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from perpsclaw.core.config import AgentConfig
from perpsclaw.core.models import SignalDirection, StrategyContext, TradeSignal
from perpsclaw.indicators import atr, kelly_position_size

logger = structlog.get_logger(__name__)


class RiskLevel(Enum):
    """Risk severity levels."""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class RiskCheck:
    """Result of a single risk rule.

    Attributes:
        passed: Whether the signal passed the rule untouched
        reason: Human-readable explanation if the rule intervened
        risk_level: Severity of the intervention
        signal: Replacement signal when the rule rewrote it
        metadata: Additional diagnostic information
    """
    passed: bool
    reason: str = ""
    risk_level: RiskLevel = RiskLevel.NORMAL
    signal: Optional[TradeSignal] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RiskRule:
    """Individual risk rule definition.

    Attributes:
        name: Unique identifier for the rule
        check_fn: Function that performs the validation
        priority: Lower numbers = higher priority (checked first)
        is_blocking: If True, an intervention stops all further checks
    """
    name: str
    check_fn: Callable[[TradeSignal, StrategyContext, AgentConfig], RiskCheck]
    priority: int = 100
    is_blocking: bool = True


@dataclass
class RiskAssessment:
    """Final signal plus the annotations of every rule that intervened."""
    signal: TradeSignal
    checks: List[str] = field(default_factory=list)
    rule_triggered: Optional[str] = None

    @property
    def modified(self) -> bool:
        return bool(self.checks)


OPENING_DIRECTIONS = (SignalDirection.LONG, SignalDirection.SHORT)

# Sizes below this are treated as no headroom
MIN_HEADROOM = 1e-9

# Close-only ATR periods comparing current volatility with its baseline
KELLY_VOL_PERIOD = 14
KELLY_BASELINE_PERIOD = 50


class RiskManager:
    """
    Per-agent risk gate applied to every strategy signal.

    Rules run in priority order:
    - stop_loss_take_profit: closes the whole position when unrealized PnL
      breaches the fixed or ATR-scaled threshold
    - liquidation_risk: scales new exposure by the market data multipliers
    - kelly_cap: limits resulting exposure to half-Kelly of the budget,
      levered and shrunk in high volatility
    - leverage_clamp: keeps resulting notional within budget x max leverage
    - collateral: refuses new exposure without free collateral

    Close signals are never touched. None signals only change when the open
    position breaches a stop.
    """

    def __init__(self):
        self._risk_rules: List[RiskRule] = []
        self._register_default_rules()

        # Tracking
        self.interventions: Dict[str, int] = {}

    def _register_default_rules(self):
        """Register the default set of risk rules in priority order."""
        self._risk_rules = [
            # Priority 1: Stop-loss / take-profit (forced close, blocking)
            RiskRule(
                name="stop_loss_take_profit",
                check_fn=self._check_stop_loss_take_profit,
                priority=1,
                is_blocking=True,
            ),
            # Priority 2: Liquidation risk haircut (resizes)
            RiskRule(
                name="liquidation_risk",
                check_fn=self._check_liquidation_risk,
                priority=2,
                is_blocking=False,
            ),
            # Priority 3: Half-Kelly exposure cap (resizes)
            RiskRule(
                name="kelly_cap",
                check_fn=self._check_kelly,
                priority=3,
                is_blocking=False,
            ),
            # Priority 4: Leverage clamp (resizes, later rules still apply)
            RiskRule(
                name="leverage_clamp",
                check_fn=self._check_leverage,
                priority=4,
                is_blocking=False,
            ),
            # Priority 5: Collateral gate
            RiskRule(
                name="collateral",
                check_fn=self._check_collateral,
                priority=5,
                is_blocking=True,
            ),
        ]
        self._risk_rules.sort(key=lambda r: r.priority)

    def evaluate(
        self,
        signal: TradeSignal,
        ctx: StrategyContext,
        config: AgentConfig,
    ) -> RiskAssessment:
        """
        Run a signal through all risk rules.

        Args:
            signal: Strategy output
            ctx: Context the strategy evaluated
            config: Agent configuration

        Returns:
            RiskAssessment with the final signal and rule annotations
        """
        current = signal
        checks: List[str] = []
        triggered: Optional[str] = None

        for rule in self._risk_rules:
            result = rule.check_fn(current, ctx, config)
            if result.passed:
                continue

            triggered = rule.name
            checks.append(f"{rule.name}: {result.reason}")
            self.interventions[rule.name] = self.interventions.get(rule.name, 0) + 1
            if result.signal is not None:
                current = result.signal

            if rule.is_blocking:
                logger.warning(
                    "risk_manager.signal_overridden",
                    agent=config.name,
                    rule=rule.name,
                    reason=result.reason,
                    original=signal.direction.value,
                    final=current.direction.value,
                    risk_level=result.risk_level.value,
                )
                break

            logger.info(
                "risk_manager.signal_adjusted",
                agent=config.name,
                rule=rule.name,
                reason=result.reason,
                **result.metadata,
            )

        return RiskAssessment(signal=current, checks=checks, rule_triggered=triggered)

    def apply_risk_checks(
        self,
        signal: TradeSignal,
        ctx: StrategyContext,
        config: AgentConfig,
    ) -> TradeSignal:
        """Final signal after all risk rules."""
        return self.evaluate(signal, ctx, config).signal

    # === Risk Rule Implementations ===

    def _check_stop_loss_take_profit(
        self,
        signal: TradeSignal,
        ctx: StrategyContext,
        config: AgentConfig,
    ) -> RiskCheck:
        """Force a full close when the position breaches its stop or target."""
        if signal.direction == SignalDirection.CLOSE:
            return RiskCheck(passed=True)
        if ctx.position_size == 0 or ctx.entry_price <= 0:
            return RiskCheck(passed=True)

        notional = abs(ctx.position_size) * ctx.entry_price
        pnl_pct = ctx.unrealized_pnl / notional
        stop_pct, target_pct = self.stop_thresholds(ctx, config)
        size = abs(ctx.position_size)

        if pnl_pct <= -stop_pct:
            reason = f"Stop-loss at {pnl_pct * 100:.2f}%"
            return RiskCheck(
                passed=False,
                reason=reason,
                risk_level=RiskLevel.CRITICAL,
                signal=TradeSignal(
                    direction=SignalDirection.CLOSE,
                    size=size,
                    confidence=1.0,
                    reason=reason,
                ),
                metadata={"pnl_pct": pnl_pct, "threshold": stop_pct},
            )

        if pnl_pct >= target_pct:
            reason = f"Take-profit at {pnl_pct * 100:.2f}%"
            return RiskCheck(
                passed=False,
                reason=reason,
                risk_level=RiskLevel.WARNING,
                signal=TradeSignal(
                    direction=SignalDirection.CLOSE,
                    size=size,
                    confidence=1.0,
                    reason=reason,
                ),
                metadata={"pnl_pct": pnl_pct, "threshold": target_pct},
            )

        return RiskCheck(passed=True)
    def _check_liquidation_risk(
        self,
        signal: TradeSignal,
        ctx: StrategyContext,
        config: AgentConfig,
    ) -> RiskCheck:
        """Shrink size and confidence of new exposure when a cascade is likely."""
        if signal.direction not in OPENING_DIRECTIONS or ctx.market_data is None:
            return RiskCheck(passed=True)

        market = ctx.market_data
        if market.position_multiplier >= 1.0 and market.confidence_multiplier >= 1.0:
            return RiskCheck(passed=True)

        size = signal.size * market.position_multiplier
        confidence = signal.confidence * market.confidence_multiplier
        level = market.liquidation_risk.level
        reason = (
            f"{level.value} liquidation risk, {market.sentiment.level.value} sentiment: "
            f"size x{market.position_multiplier:.2f}, "
            f"confidence x{market.confidence_multiplier:.2f}"
        )
        return RiskCheck(
            passed=False,
            reason=reason,
            risk_level=RiskLevel.WARNING,
            signal=signal.model_copy(update={"size": size, "confidence": confidence}),
            metadata={"liquidation_score": market.liquidation_risk.score},
        )

    def _check_kelly(
        self,
        signal: TradeSignal,
        ctx: StrategyContext,
        config: AgentConfig,
    ) -> RiskCheck:
        """Cap resulting exposure at the levered half-Kelly position size."""
        if not config.use_kelly_sizing or signal.direction not in OPENING_DIRECTIONS:
            return RiskCheck(passed=True)

        prices = ctx.price_history
        max_size = kelly_position_size(
            config.budget,
            ctx.current_price,
            config.kelly_win_rate,
            config.kelly_avg_win_loss_ratio,
            current_vol=atr(prices, KELLY_VOL_PERIOD),
            avg_vol=atr(prices, KELLY_BASELINE_PERIOD),
        ) * config.max_leverage

        if max_size <= MIN_HEADROOM:
            reason = (
                f"Kelly edge non-positive: win rate {config.kelly_win_rate:.2f}, "
                f"win/loss {config.kelly_avg_win_loss_ratio:.2f}"
            )
            return RiskCheck(
                passed=False,
                reason=reason,
                risk_level=RiskLevel.WARNING,
                signal=TradeSignal(direction=SignalDirection.NONE, reason=reason),
            )

        headroom = self._headroom(signal, ctx, max_size)
        if signal.size <= headroom:
            return RiskCheck(passed=True)

        if headroom <= MIN_HEADROOM:
            reason = f"Kelly cap reached: {abs(ctx.position_size):.4f} of {max_size:.4f} units"
            return RiskCheck(
                passed=False,
                reason=reason,
                risk_level=RiskLevel.WARNING,
                signal=TradeSignal(direction=SignalDirection.NONE, reason=reason),
            )

        reason = f"Size capped {signal.size:.4f} -> {headroom:.4f} by half-Kelly"
        return RiskCheck(
            passed=False,
            reason=reason,
            risk_level=RiskLevel.NORMAL,
            signal=signal.model_copy(update={"size": headroom}),
            metadata={"requested": signal.size, "kelly_size": max_size},
        )

    def _check_leverage(
        self,
        signal: TradeSignal,
        ctx: StrategyContext,
        config: AgentConfig,
    ) -> RiskCheck:
        """Shrink new exposure so resulting notional stays within the limit."""
        if signal.direction not in OPENING_DIRECTIONS:
            return RiskCheck(passed=True)

        current = abs(ctx.position_size)
        headroom = self._headroom(signal, ctx, config.max_notional / ctx.current_price)

        if signal.size <= headroom:
            return RiskCheck(passed=True)

        if headroom <= MIN_HEADROOM:
            reason = (
                f"Max leverage reached: {current:.4f} units at "
                f"{config.max_leverage:.1f}x on {config.budget:.2f} budget"
            )
            return RiskCheck(
                passed=False,
                reason=reason,
                risk_level=RiskLevel.WARNING,
                signal=TradeSignal(direction=SignalDirection.NONE, reason=reason),
            )

        reason = f"Size clamped {signal.size:.4f} -> {headroom:.4f} by leverage limit"
        return RiskCheck(
            passed=False,
            reason=reason,
            risk_level=RiskLevel.WARNING,
            signal=signal.model_copy(update={"size": headroom}),
            metadata={"requested": signal.size, "clamped": headroom},
        )

    def _check_collateral(
        self,
        signal: TradeSignal,
        ctx: StrategyContext,
        config: AgentConfig,
    ) -> RiskCheck:
        """Refuse new exposure without free collateral."""
        if signal.direction not in OPENING_DIRECTIONS:
            return RiskCheck(passed=True)

        if ctx.available_collateral <= 0:
            return RiskCheck(
                passed=False,
                reason="No collateral",
                risk_level=RiskLevel.CRITICAL,
                signal=TradeSignal(direction=SignalDirection.NONE, reason="No collateral"),
            )

        return RiskCheck(passed=True)

    # === Helpers ===

    @staticmethod
    def _headroom(signal: TradeSignal, ctx: StrategyContext, max_size: float) -> float:
        """Units the signal may add before the position exceeds ``max_size``."""
        current = abs(ctx.position_size)
        same_side = (
            ctx.position_size == 0
            or (signal.direction == SignalDirection.LONG) == (ctx.position_size > 0)
        )
        if same_side:
            return max_size - current
        # Reversing flattens the existing position first
        return max_size + current

    def stop_thresholds(self, ctx: StrategyContext, config: AgentConfig):
        """Stop-loss and take-profit as fractions of notional.

        ATR-scaled when the context carries an ATR reading and ATR stops are
        enabled; the fixed configured percentages otherwise.
        """
        if config.use_atr_stops and ctx.atr and ctx.entry_price > 0:
            return (
                ctx.atr * config.atr_stop_multiplier / ctx.entry_price,
                ctx.atr * config.atr_take_profit_multiplier / ctx.entry_price,
            )
        return config.stop_loss_pct, config.take_profit_pct

    def get_risk_report(self) -> Dict[str, Any]:
        return {
            "rules": [rule.name for rule in self._risk_rules],
            "interventions": dict(self.interventions),
        }


# === Convenience Functions ===

def create_risk_manager() -> RiskManager:
    """Factory function to create a configured RiskManager instance."""
    return RiskManager()


def apply_risk_checks(
    signal: TradeSignal,
    ctx: StrategyContext,
    config: AgentConfig,
) -> TradeSignal:
    """Apply the default risk rules to a signal."""
    return create_risk_manager().apply_risk_checks(signal, ctx, config)
