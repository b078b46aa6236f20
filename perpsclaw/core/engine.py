"""Per-agent decision loop - wires price data, strategy, risk and execution."""
import asyncio
import math
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import structlog

from perpsclaw.core.config import AgentConfig
from perpsclaw.core.exceptions import ExecutionError, FeedError
from perpsclaw.core.interfaces import (
    AccountProvider,
    AuditSink,
    ExecutionClient,
    PriceFeed,
)
from perpsclaw.core.models import (
    DailyTracker,
    MarketData,
    PositionSnapshot,
    RegimeState,
    SignalDirection,
    StrategyContext,
    TickRecord,
    TradeSignal,
    utc_now,
)
from perpsclaw.core.prices import CandleAggregator, PriceSeries
from perpsclaw.indicators import atr_ohlc, atr_percent, atr_percent_ohlc, rsi
from perpsclaw.market import OpenInterestTracker, analyze_funding_rate, build_market_data
from perpsclaw.regime import RegimeChangeTracker, detect_regime, should_agent_trade
from perpsclaw.risk import RiskManager
from perpsclaw.strategies.base import BaseStrategy

logger = structlog.get_logger(__name__)

# Samples needed before the regime classifier runs
REGIME_MIN_SAMPLES = 20

# Complete candles needed for a 14-period OHLC ATR
OHLC_ATR_PERIOD = 14
OHLC_MIN_CANDLES = OHLC_ATR_PERIOD + 1

# Samples needed before derivatives market data is assessed
MARKET_MIN_SAMPLES = 15

# Close-only ATR period used as the volatility baseline
BASELINE_VOL_PERIOD = 50

# Loops between trades
COOLDOWN_INTERVALS = 2

# Sleep multiplier while the daily loss circuit breaker is tripped
HALTED_INTERVALS = 10


class AgentRunner:
    """
    Runs one agent's decision cycle on a fixed interval.

    Responsibilities:
    - Maintains the rolling price window and OHLC candles
    - Classifies the regime and gates new entries on it
    - Runs the strategy and the risk manager on every tick
    - Executes signals subject to confidence and cooldown
    - Tracks daily realized PnL and trips a circuit breaker on losses
    - Backs off exponentially when collaborators fail

    The clock and sleep function are injectable so the loop can be driven
    deterministically.
    """

    def __init__(
        self,
        config: AgentConfig,
        strategy: BaseStrategy,
        feed: PriceFeed,
        account: AccountProvider,
        executor: ExecutionClient,
        audit: Optional[AuditSink] = None,
        risk_manager: Optional[RiskManager] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.strategy = strategy
        self.feed = feed
        self.account = account
        self.executor = executor
        self.audit = audit
        self.risk_manager = risk_manager or RiskManager()
        self._clock = clock
        self._sleep = sleep
        self.logger = logger.bind(agent=config.name)

        # Market data
        self.prices = PriceSeries(config.history_size)
        self.candles = CandleAggregator(config.candle_interval_ms, config.max_candles)
        self.regime_tracker = RegimeChangeTracker(agent=config.name)
        self.open_interest = OpenInterestTracker()

        # State
        self.daily = DailyTracker(date=self._clock().date())
        self.last_trade_at: Optional[datetime] = None
        self.last_regime: Optional[RegimeState] = None
        self.last_record: Optional[TickRecord] = None
        self.consecutive_errors = 0
        self.ticks = 0
        self.trades = 0

        # Control
        self._running = False

    # === Loop control ===

    async def run(self):
        """Tick until stop() is called; the current tick always completes."""
        self._running = True
        self.logger.info(
            "agent_runner.started",
            strategy=self.strategy.name,
            budget=self.config.budget,
            max_leverage=self.config.max_leverage,
            interval_s=self.config.loop_interval_seconds,
            cooldown_s=self.cooldown_seconds,
            daily_loss_limit=self.daily_loss_limit,
        )

        while self._running:
            delay = await self.run_once()
            if not self._running:
                break
            await self._sleep(delay)

        self.logger.info(
            "agent_runner.stopped",
            ticks=self.ticks,
            trades=self.trades,
            daily_pnl=round(self.daily.realized_pnl, 2),
        )

    def stop(self):
        """Ask the loop to exit after the in-flight tick."""
        if self._running:
            self.logger.info("agent_runner.stopping")
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def cooldown_seconds(self) -> float:
        return self.config.loop_interval_seconds * COOLDOWN_INTERVALS

    @property
    def daily_loss_limit(self) -> float:
        """Daily realized loss (USD, positive) that halts trading."""
        return self.config.daily_loss_limit_pct * self.config.budget

    async def run_once(self) -> float:
        """
        Run a single tick.

        Returns:
            Seconds to wait before the next tick
        """
        try:
            delay = await self._tick()
        except Exception as e:
            self.consecutive_errors += 1
            delay = self._backoff_delay()
            self.logger.error(
                "agent_runner.tick_error",
                error=str(e),
                error_type=type(e).__name__,
                consecutive_errors=self.consecutive_errors,
                backoff_s=delay,
            )
            return delay

        self.consecutive_errors = 0
        return delay

    def _backoff_delay(self) -> float:
        interval = self.config.loop_interval_seconds
        cap = self.config.max_backoff_ms / 1000.0
        return min(interval * (2 ** self.consecutive_errors), cap)

    # === Tick ===

    async def _tick(self) -> float:
        interval = self.config.loop_interval_seconds
        now = self._clock()
        self._roll_daily(now)

        price = await self._fetch_price()
        self.prices.append(price)
        self.candles.add(price, now)
        self.ticks += 1

        if self.daily.realized_pnl < -self.daily_loss_limit:
            self.logger.warning(
                "agent_runner.circuit_breaker",
                daily_pnl=round(self.daily.realized_pnl, 2),
                limit=-self.daily_loss_limit,
            )
            return interval * HALTED_INTERVALS

        position = await self.account.get_position(price)
        funding = await self._fetch_funding()
        open_interest = await self._fetch_open_interest()
        history = self.prices.prices

        regime_state = None
        if len(history) >= REGIME_MIN_SAMPLES:
            regime_state = detect_regime(history)
            self.regime_tracker.observe(regime_state.primary_regime)
            self.last_regime = regime_state

        market_data = self._market_data(now, price, history, funding, open_interest)
        ctx = self._build_context(price, history, position, regime_state, funding, market_data)

        raw_signal = self.strategy.evaluate(ctx)
        gated, checks = self._apply_regime_gate(raw_signal, regime_state)

        assessment = self.risk_manager.evaluate(gated, ctx, self.config)
        signal = assessment.signal
        checks.extend(assessment.checks)

        self.logger.info(
            "agent_runner.tick",
            price=round(price, 4),
            position=round(position.position_size, 4),
            pnl=round(position.unrealized_pnl, 2),
            daily_pnl=round(self.daily.realized_pnl, 2),
            regime=regime_state.primary_regime.value if regime_state else None,
            signal=signal.direction.value,
            reason=signal.reason,
        )

        executed = False
        try:
            if self._should_execute(signal, now):
                await self._execute(signal, price, position)
                self.last_trade_at = now
                executed = True
        finally:
            self._record(now, price, ctx, regime_state, raw_signal, signal, checks, executed)

        return interval

    async def _fetch_price(self) -> float:
        price = await self.feed.fetch_price()
        if price is None or not math.isfinite(price) or price <= 0:
            raise FeedError(f"Invalid price from feed: {price}")
        return float(price)

    async def _fetch_funding(self) -> Optional[float]:
        """Funding is optional context; a failed read does not fail the tick."""
        try:
            rate = await self.feed.fetch_funding_rate()
        except FeedError as e:
            self.logger.warning("agent_runner.funding_unavailable", error=str(e))
            return None
        if rate is None or not math.isfinite(rate):
            return None
        return float(rate)

    async def _fetch_open_interest(self) -> Optional[float]:
        """Open interest is optional context, like funding."""
        try:
            amount = await self.feed.fetch_open_interest()
        except FeedError as e:
            self.logger.warning("agent_runner.open_interest_unavailable", error=str(e))
            return None
        if amount is None or not math.isfinite(amount) or amount < 0:
            return None
        return float(amount)

    def _market_data(
        self,
        now: datetime,
        price: float,
        history: List[float],
        funding: Optional[float],
        open_interest: Optional[float],
    ) -> Optional[MarketData]:
        """Funding, open interest, liquidation risk and sentiment for this tick."""
        oi_data = None
        if open_interest is not None:
            oi_data = self.open_interest.analyze(open_interest, price, now)

        if len(history) < MARKET_MIN_SAMPLES:
            return None

        funding_data = analyze_funding_rate(funding) if funding is not None else None
        price_change = (history[-1] - history[0]) / history[0] * 100
        market = build_market_data(
            funding_data,
            oi_data,
            price_change=price_change,
            rsi_value=rsi(history),
            volatility=atr_percent(history),
            avg_volatility=atr_percent(history, BASELINE_VOL_PERIOD),
        )

        liquidation = market.liquidation_risk
        if liquidation.warning:
            self.logger.warning(
                "agent_runner.liquidation_risk",
                level=liquidation.level.value,
                score=round(liquidation.score, 2),
                warning=liquidation.warning,
            )
        return market

    def _roll_daily(self, now: datetime):
        today = now.date()
        if self.daily.date == today:
            return

        self.logger.info(
            "agent_runner.daily_reset",
            previous_day=self.daily.date.isoformat(),
            final_pnl=round(self.daily.realized_pnl, 2),
        )
        self.daily = DailyTracker(date=today)

    def _build_context(
        self,
        price: float,
        history: List[float],
        position: PositionSnapshot,
        regime_state: Optional[RegimeState],
        funding: Optional[float],
        market_data: Optional[MarketData] = None,
    ) -> StrategyContext:
        complete = self.candles.complete_candles
        atr_value = None
        atr_pct = None
        if len(complete) >= OHLC_MIN_CANDLES:
            atr_value = atr_ohlc(complete, OHLC_ATR_PERIOD)
            atr_pct = atr_percent_ohlc(complete, OHLC_ATR_PERIOD)

        return StrategyContext(
            current_price=price,
            price_history=history,
            position_size=position.position_size,
            entry_price=position.entry_price,
            unrealized_pnl=position.unrealized_pnl,
            available_collateral=position.available_collateral,
            atr=atr_value,
            atr_percent=atr_pct,
            hurst=regime_state.hurst if regime_state else None,
            regime=regime_state.primary_regime if regime_state else None,
            adx=regime_state.adx_value if regime_state else None,
            candles=complete if atr_value is not None else None,
            funding_rate=funding,
            market_data=market_data,
            regime_state=regime_state,
        )

    def _apply_regime_gate(
        self, signal: TradeSignal, regime_state: Optional[RegimeState]
    ) -> Tuple[TradeSignal, List[str]]:
        """Block or resize new entries according to the current regime."""
        checks: List[str] = []
        if (
            not self.config.regime_filter_enabled
            or regime_state is None
            or signal.direction not in (SignalDirection.LONG, SignalDirection.SHORT)
        ):
            return signal, checks

        decision = should_agent_trade(self.strategy.agent.value, regime_state)
        if not decision.should_trade:
            checks.append(f"regime_filter: {decision.reason}")
            self.logger.info(
                "agent_runner.regime_blocked",
                direction=signal.direction.value,
                reason=decision.reason,
            )
            return TradeSignal(
                direction=SignalDirection.NONE,
                reason=f"Regime filter: {decision.reason}",
            ), checks

        if self.config.adaptive_enabled and decision.size_multiplier != 1.0:
            checks.append(f"regime_size: x{decision.size_multiplier:.2f}")
            signal = signal.model_copy(
                update={"size": signal.size * decision.size_multiplier}
            )

        return signal, checks

    def _should_execute(self, signal: TradeSignal, now: datetime) -> bool:
        if signal.direction == SignalDirection.NONE or signal.size <= 0:
            return False
        if signal.confidence <= self.config.min_signal_confidence:
            return False

        if self.last_trade_at is not None:
            elapsed = (now - self.last_trade_at).total_seconds()
            if elapsed <= self.cooldown_seconds:
                self.logger.info(
                    "agent_runner.cooldown_active",
                    direction=signal.direction.value,
                    remaining_s=round(self.cooldown_seconds - elapsed, 1),
                )
                return False

        return True

    async def _execute(self, signal: TradeSignal, price: float, position: PositionSnapshot):
        result = await self.executor.execute(signal, price)
        if not result.success:
            raise ExecutionError(result.message or f"{signal.direction.value} not filled")

        self.trades += 1
        self.logger.info(
            "agent_runner.executed",
            direction=signal.direction.value,
            size=round(signal.size, 6),
            filled=round(result.filled_size, 6),
            price=result.price or price,
            reason=signal.reason,
        )

        if signal.direction == SignalDirection.CLOSE and position.position_size != 0:
            fraction = min(1.0, signal.size / abs(position.position_size))
            realized = position.unrealized_pnl * fraction
            self.daily.record(realized)
            self.logger.info(
                "agent_runner.pnl_realized",
                realized=round(realized, 2),
                daily_pnl=round(self.daily.realized_pnl, 2),
            )

    def _record(
        self,
        now: datetime,
        price: float,
        ctx: StrategyContext,
        regime_state: Optional[RegimeState],
        raw_signal: TradeSignal,
        signal: TradeSignal,
        checks: List[str],
        executed: bool,
    ):
        record = TickRecord(
            timestamp=now,
            agent=self.config.name,
            price=price,
            regime=regime_state,
            hurst=ctx.hurst,
            atr=ctx.atr,
            atr_percent=ctx.atr_percent,
            position_size=ctx.position_size,
            entry_price=ctx.entry_price,
            unrealized_pnl=ctx.unrealized_pnl,
            raw_signal=raw_signal,
            signal=signal,
            risk_checks=checks,
            executed=executed,
        )
        self.last_record = record
        if self.audit is not None:
            self.audit.record(record)

    def get_status(self) -> Dict:
        """Get current runner status."""
        return {
            'agent': self.config.name,
            'running': self._running,
            'ticks': self.ticks,
            'trades': self.trades,
            'samples': len(self.prices),
            'candles': len(self.candles),
            'latest_price': self.prices.latest,
            'consecutive_errors': self.consecutive_errors,
            'last_trade_at': self.last_trade_at.isoformat() if self.last_trade_at else None,
            'daily': {
                'date': self.daily.date.isoformat(),
                'realized_pnl': self.daily.realized_pnl,
                'peak_pnl': self.daily.peak_pnl,
            },
            'circuit_breaker': self.daily.realized_pnl < -self.daily_loss_limit,
            'regime': self.last_regime.primary_regime.value if self.last_regime else None,
            'regime_changes': self.regime_tracker.change_count,
            'strategy': self.strategy.get_stats(),
            'risk_interventions': dict(self.risk_manager.interventions),
        }
